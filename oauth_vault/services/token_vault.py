"""
Encrypted-at-rest storage for a user's OAuth token pair.

The vault is the only component that converts between plaintext tokens and
the sealed representation kept in the record store. It performs no retries:
store failures surface as ``StoreError`` and unreadable material surfaces as
``TokenUnreadableError``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, Optional, Protocol

from oauth_vault.models.oauth import CredentialRecord, DecryptedPair, SealedSecret
from oauth_vault.services.errors import (
    AuthenticationFailure,
    CredentialNotFoundError,
    TokenUnreadableError,
)
from oauth_vault.services.token_cipher import TokenCipherService

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_BUFFER = timedelta(seconds=60)


class CredentialStore(Protocol):
    """Record store keyed uniquely by ``user_id``."""

    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        ...

    def upsert(self, row: Dict[str, Any]) -> None:
        ...

    def update(self, user_id: str, fields: Dict[str, Any]) -> bool:
        ...

    def delete(self, user_id: str) -> bool:
        ...


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_stale(
    expiry: datetime,
    now: datetime,
    buffer: timedelta = DEFAULT_REFRESH_BUFFER,
) -> bool:
    """Return True when ``now + buffer`` has reached ``expiry``.

    The boundary counts as stale so a token is refreshed before it can expire
    in flight.
    """
    return now + buffer >= expiry


class TokenVault:
    """Seal, store, load and open credential pairs."""

    def __init__(
        self,
        store: CredentialStore,
        cipher: TokenCipherService,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._cipher = cipher
        self._clock = clock

    def load(self, user_id: str) -> CredentialRecord:
        """Read the stored record for ``user_id``."""
        row = self._store.get(user_id)
        if not row:
            raise CredentialNotFoundError(user_id)
        return CredentialRecord.from_row(row)

    def decrypt_pair(self, record: CredentialRecord) -> DecryptedPair:
        """Open both sealed tokens independently.

        Raises ``TokenUnreadableError`` naming every field that failed; the
        readable remainder is attached as ``partial``.
        """
        access_token = self._open(record.access_token)
        refresh_token = self._open(record.refresh_token)
        pair = DecryptedPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expiry=record.expiry,
            scope=record.scope,
        )

        unreadable = frozenset(
            name
            for name, value in (("access_token", access_token), ("refresh_token", refresh_token))
            if value is None
        )
        if unreadable:
            logger.warning(
                "Unreadable credential fields for user %s: %s",
                record.user_id,
                ", ".join(sorted(unreadable)),
            )
            raise TokenUnreadableError(unreadable, partial=pair)
        return pair

    @staticmethod
    def is_stale(
        expiry: datetime,
        now: datetime,
        buffer: timedelta = DEFAULT_REFRESH_BUFFER,
    ) -> bool:
        return is_stale(expiry, now, buffer)

    def persist(
        self,
        user_id: str,
        access_token: str,
        refresh_token: str,
        expiry: datetime,
        scope: Iterable[str] = (),
    ) -> CredentialRecord:
        """Seal both tokens and upsert the full record."""
        _require_aware(expiry)
        record = CredentialRecord(
            user_id=user_id,
            access_token=self._cipher.seal(access_token),
            refresh_token=self._cipher.seal(refresh_token),
            expiry=expiry,
            scope=tuple(scope),
            updated_at=self._clock(),
        )
        self._store.upsert(record.to_row())
        logger.info("Stored credential pair for user %s", user_id)
        return record

    def persist_access_token_only(
        self,
        user_id: str,
        access_token: str,
        expiry: datetime,
    ) -> None:
        """Overwrite the access token and expiry, leaving the refresh token untouched."""
        _require_aware(expiry)
        fields = self._cipher.seal(access_token).to_columns("access_token")
        fields["expiry"] = expiry.isoformat()
        fields["updated_at"] = self._clock().isoformat()
        if not self._store.update(user_id, fields):
            raise CredentialNotFoundError(user_id)
        logger.info("Stored refreshed access token for user %s", user_id)

    def delete(self, user_id: str) -> bool:
        """Remove the user's record. Returns whether one existed."""
        removed = self._store.delete(user_id)
        logger.info("Deleted credential for user %s (existed=%s)", user_id, removed)
        return removed

    def _open(self, sealed: Optional[SealedSecret]) -> Optional[str]:
        if sealed is None:
            return None
        try:
            return self._cipher.open(*sealed)
        except AuthenticationFailure:
            return None


def _require_aware(expiry: datetime) -> None:
    if expiry.tzinfo is None:
        raise ValueError("Token expiry must be a timezone-aware instant.")


__all__ = [
    "CredentialStore",
    "DEFAULT_REFRESH_BUFFER",
    "TokenVault",
    "is_stale",
    "utcnow",
]
