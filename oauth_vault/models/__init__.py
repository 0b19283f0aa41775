"""Domain model exports."""

from .oauth import CredentialRecord, DecryptedPair, SealedSecret, TokenGrant

__all__ = ["CredentialRecord", "DecryptedPair", "SealedSecret", "TokenGrant"]
