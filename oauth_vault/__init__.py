"""Encrypted OAuth credential vault for the marketing analytics dashboard."""

__version__ = "0.1.0"
