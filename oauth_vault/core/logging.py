"""
Logging utilities for the FastAPI application and operator scripts.

Provides a consistent logging format and scrubs OAuth token shapes from every
record that reaches the root handlers.
"""

import logging
import re
import sys

_TOKEN_PATTERNS = (
    re.compile(r"ya29\.[0-9A-Za-z\-_.]+"),
    re.compile(r"1//[0-9A-Za-z\-_]+"),
    re.compile(r"(?i)(bearer\s+)[0-9A-Za-z\-_.~+/]+=*"),
)
REDACTED = "[redacted]"


def redact(text: str) -> str:
    """Mask Google access/refresh tokens and bearer values in ``text``."""
    for pattern in _TOKEN_PATTERNS:
        if pattern.groups:
            text = pattern.sub(lambda match: f"{match.group(1)}{REDACTED}", text)
        else:
            text = pattern.sub(REDACTED, text)
    return text


class SecretRedactionFilter(logging.Filter):
    """Rewrite log records so token material never reaches a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        scrubbed = redact(message)
        if scrubbed != message:
            record.msg = scrubbed
            record.args = None
        return True


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with a sensible default format."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    redaction = SecretRedactionFilter()
    for handler in logging.getLogger().handlers:
        if not any(isinstance(existing, SecretRedactionFilter) for existing in handler.filters):
            handler.addFilter(redaction)


__all__ = ["REDACTED", "SecretRedactionFilter", "configure_logging", "redact"]
