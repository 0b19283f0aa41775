"""
Domain models for OAuth credential persistence.

A stored credential pair never holds plaintext: both tokens are kept as
``SealedSecret`` triples and only the vault turns them back into strings.
"""

from __future__ import annotations

import base64
import binascii
from datetime import datetime, timezone
from typing import Any, Dict, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class SealedSecret(NamedTuple):
    """Ciphertext, nonce and authentication tag produced by one seal call."""

    ciphertext: bytes
    nonce: bytes
    tag: bytes

    def to_columns(self, prefix: str) -> Dict[str, str]:
        """Render as base64 text columns named ``<prefix>_cipher|_nonce|_tag``."""
        return {
            f"{prefix}_cipher": _b64(self.ciphertext),
            f"{prefix}_nonce": _b64(self.nonce),
            f"{prefix}_tag": _b64(self.tag),
        }

    @classmethod
    def from_columns(cls, row: Dict[str, Any], prefix: str) -> Optional["SealedSecret"]:
        """Parse the three columns back, returning None when any is missing or malformed."""
        try:
            return cls(
                ciphertext=_unb64(row[f"{prefix}_cipher"]),
                nonce=_unb64(row[f"{prefix}_nonce"]),
                tag=_unb64(row[f"{prefix}_tag"]),
            )
        except (KeyError, TypeError, ValueError, binascii.Error):
            return None

    def __repr__(self) -> str:
        return f"SealedSecret(ciphertext=<{len(self.ciphertext)} bytes>)"


class CredentialRecord(BaseModel):
    """Encrypted-at-rest credential pair for one user."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    user_id: str = Field(..., description="Opaque user identifier, unique per record.")
    access_token: Optional[SealedSecret] = Field(
        None, description="Sealed access token; None when the stored columns are unreadable."
    )
    refresh_token: Optional[SealedSecret] = Field(
        None, description="Sealed refresh token; None when the stored columns are unreadable."
    )
    expiry: datetime = Field(..., description="Absolute UTC instant after which the access token is stale.")
    scope: tuple[str, ...] = Field(default_factory=tuple)
    updated_at: Optional[datetime] = None

    def to_row(self) -> Dict[str, Any]:
        """Serialize into the canonical store row."""
        if self.access_token is None or self.refresh_token is None:
            raise ValueError("Credential rows must carry both sealed tokens.")
        row: Dict[str, Any] = {"user_id": self.user_id}
        row.update(self.access_token.to_columns("access_token"))
        row.update(self.refresh_token.to_columns("refresh_token"))
        row["expiry"] = self.expiry.isoformat()
        row["scope"] = list(self.scope)
        row["updated_at"] = (self.updated_at or datetime.now(timezone.utc)).isoformat()
        return row

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CredentialRecord":
        """Build a record from a store row, tolerating damaged cipher columns."""
        scope = row.get("scope") or ()
        if isinstance(scope, str):
            scope = scope.split()
        return cls(
            user_id=str(row["user_id"]),
            access_token=SealedSecret.from_columns(row, "access_token"),
            refresh_token=SealedSecret.from_columns(row, "refresh_token"),
            expiry=parse_timestamp(row.get("expiry")) or EPOCH,
            scope=tuple(scope),
            updated_at=parse_timestamp(row.get("updated_at")),
        )


class DecryptedPair(BaseModel):
    """Plaintext view of a credential pair. Never persisted or logged."""

    access_token: Optional[str] = Field(None, repr=False)
    refresh_token: Optional[str] = Field(None, repr=False)
    expiry: datetime
    scope: tuple[str, ...] = Field(default_factory=tuple)


class TokenGrant(BaseModel):
    """Successful response from the provider token endpoint."""

    access_token: str = Field(..., repr=False)
    expires_in: int
    token_type: str = "Bearer"
    refresh_token: Optional[str] = Field(None, repr=False)
    scope: tuple[str, ...] = Field(default_factory=tuple)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 value into an aware UTC datetime, or None."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _b64(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def _unb64(value: Any) -> bytes:
    if not isinstance(value, str):
        raise ValueError("Expected base64 text.")
    return base64.b64decode(value.encode("ascii"), validate=True)


__all__ = [
    "CredentialRecord",
    "DecryptedPair",
    "EPOCH",
    "SealedSecret",
    "TokenGrant",
    "parse_timestamp",
]
