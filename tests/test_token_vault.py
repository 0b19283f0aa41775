try:
    from . import _bootstrap, _fakes  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401
    import _fakes  # type: ignore

from datetime import datetime, timedelta, timezone

import pytest

from oauth_vault.services.errors import (
    CredentialNotFoundError,
    StoreError,
    TokenUnreadableError,
)
from oauth_vault.services.token_cipher import TokenCipherService
from oauth_vault.services.token_vault import TokenVault, is_stale

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _vault(store: _fakes.InMemoryStore | None = None) -> tuple[TokenVault, _fakes.InMemoryStore]:
    store = store or _fakes.InMemoryStore()
    cipher = TokenCipherService.from_base64(_bootstrap.TEST_ENCRYPTION_KEY)
    return TokenVault(store, cipher, clock=lambda: NOW), store


def test_is_stale_boundary_counts_as_stale() -> None:
    buffer = timedelta(seconds=60)
    expiry = NOW + buffer

    assert is_stale(expiry, NOW, buffer) is True
    assert is_stale(expiry + timedelta(microseconds=1), NOW, buffer) is False
    assert is_stale(NOW - timedelta(seconds=1), NOW, timedelta(0)) is True


def test_persist_stores_only_ciphertext() -> None:
    vault, store = _vault()

    vault.persist("user-1", "ya29.access", "1//refresh", NOW + timedelta(hours=1), ["scope-a"])

    row = store.rows["user-1"]
    serialized = repr(row)
    assert "ya29.access" not in serialized
    assert "1//refresh" not in serialized
    assert row["expiry"] == (NOW + timedelta(hours=1)).isoformat()
    assert row["scope"] == ["scope-a"]
    assert row["updated_at"] == NOW.isoformat()


def test_load_and_decrypt_pair_roundtrip() -> None:
    vault, _ = _vault()
    vault.persist("user-1", "ya29.access", "1//refresh", NOW + timedelta(hours=1), ["scope-a"])

    pair = vault.decrypt_pair(vault.load("user-1"))

    assert pair.access_token == "ya29.access"
    assert pair.refresh_token == "1//refresh"
    assert pair.expiry == NOW + timedelta(hours=1)
    assert pair.scope == ("scope-a",)


def test_load_missing_user_raises_not_found() -> None:
    vault, _ = _vault()

    with pytest.raises(CredentialNotFoundError):
        vault.load("ghost")


def test_decrypt_pair_reports_access_field_and_keeps_refresh() -> None:
    vault, store = _vault()
    vault.persist("user-1", "ya29.access", "1//refresh", NOW, [])
    _fakes.flip_tag(store.rows["user-1"], "access_token")

    with pytest.raises(TokenUnreadableError) as excinfo:
        vault.decrypt_pair(vault.load("user-1"))

    assert excinfo.value.unreadable_fields == frozenset({"access_token"})
    assert excinfo.value.refresh_token_readable
    assert excinfo.value.partial.refresh_token == "1//refresh"
    assert excinfo.value.partial.access_token is None


def test_decrypt_pair_reports_both_fields() -> None:
    vault, store = _vault()
    vault.persist("user-1", "ya29.access", "1//refresh", NOW, [])
    _fakes.flip_tag(store.rows["user-1"], "access_token")
    _fakes.flip_tag(store.rows["user-1"], "refresh_token")

    with pytest.raises(TokenUnreadableError) as excinfo:
        vault.decrypt_pair(vault.load("user-1"))

    assert excinfo.value.unreadable_fields == frozenset({"access_token", "refresh_token"})
    assert not excinfo.value.refresh_token_readable


def test_malformed_columns_load_as_unreadable() -> None:
    vault, store = _vault()
    vault.persist("user-1", "ya29.access", "1//refresh", NOW, [])
    store.rows["user-1"]["refresh_token_nonce"] = "%%% not base64 %%%"
    store.rows["user-1"]["expiry"] = "garbage"

    record = vault.load("user-1")
    assert record.refresh_token is None
    assert is_stale(record.expiry, NOW)

    with pytest.raises(TokenUnreadableError) as excinfo:
        vault.decrypt_pair(record)
    assert excinfo.value.unreadable_fields == frozenset({"refresh_token"})


def test_persist_access_token_only_reseals_and_keeps_refresh() -> None:
    vault, store = _vault()
    vault.persist("user-1", "ya29.old", "1//refresh", NOW, ["scope-a"])
    before = dict(store.rows["user-1"])

    vault.persist_access_token_only("user-1", "ya29.old", NOW + timedelta(hours=1))

    after = store.rows["user-1"]
    assert after["access_token_nonce"] != before["access_token_nonce"]
    assert after["access_token_cipher"] != before["access_token_cipher"]
    assert after["refresh_token_cipher"] == before["refresh_token_cipher"]
    assert after["refresh_token_nonce"] == before["refresh_token_nonce"]
    assert after["scope"] == ["scope-a"]

    pair = vault.decrypt_pair(vault.load("user-1"))
    assert pair.access_token == "ya29.old"
    assert pair.refresh_token == "1//refresh"
    assert pair.expiry == NOW + timedelta(hours=1)


def test_persist_access_token_only_never_creates_partial_record() -> None:
    vault, store = _vault()

    with pytest.raises(CredentialNotFoundError):
        vault.persist_access_token_only("ghost", "ya29.access", NOW)

    assert store.rows == {}


def test_persist_rejects_naive_expiry() -> None:
    vault, _ = _vault()

    with pytest.raises(ValueError):
        vault.persist("user-1", "a", "r", datetime(2025, 1, 1), [])


def test_store_errors_propagate_without_retry() -> None:
    store = _fakes.InMemoryStore()
    store.fail_writes = True
    vault, _ = _vault(store)

    with pytest.raises(StoreError):
        vault.persist("user-1", "a", "r", NOW, [])


def test_delete_removes_record() -> None:
    vault, store = _vault()
    vault.persist("user-1", "a", "r", NOW, [])

    assert vault.delete("user-1") is True
    assert vault.delete("user-1") is False
    assert "user-1" not in store.rows
