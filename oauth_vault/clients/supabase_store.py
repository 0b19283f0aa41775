"""
Credential record store backed by a Supabase table through PostgREST.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from oauth_vault.services.errors import StoreError

logger = logging.getLogger(__name__)


class SupabaseCredentialStore:
    """CRUD on ``<table>`` keyed uniquely by ``user_id``."""

    def __init__(
        self,
        *,
        base_url: str,
        service_role_key: str,
        table: str = "google_oauth_tokens",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._endpoint = f"{base_url.rstrip('/')}/rest/v1/{table}"
        self._client = httpx.Client(
            headers={
                "apikey": service_role_key,
                "Authorization": f"Bearer {service_role_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    def _request(
        self,
        method: str,
        *,
        params: Dict[str, str],
        json_body: Any = None,
        prefer: Optional[str] = None,
    ) -> httpx.Response:
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = self._client.request(
                method, self._endpoint, params=params, json=json_body, headers=headers
            )
        except httpx.HTTPError as exc:
            raise StoreError(f"Supabase {method} failed: {type(exc).__name__}") from exc
        if not response.is_success:
            logger.warning("Supabase %s returned status %s", method, response.status_code)
            raise StoreError(f"Supabase {method} returned status {response.status_code}.")
        return response

    @staticmethod
    def _rows(response: httpx.Response) -> list[Dict[str, Any]]:
        try:
            rows = response.json()
        except ValueError as exc:
            raise StoreError("Supabase returned a non-JSON body.") from exc
        return rows if isinstance(rows, list) else []

    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        response = self._request(
            "GET",
            params={"select": "*", "user_id": f"eq.{user_id}", "limit": "1"},
        )
        rows = self._rows(response)
        return rows[0] if rows else None

    def upsert(self, row: Dict[str, Any]) -> None:
        if not row.get("user_id"):
            raise ValueError("Credential row must include 'user_id'")
        self._request(
            "POST",
            params={"on_conflict": "user_id"},
            json_body=row,
            prefer="resolution=merge-duplicates,return=minimal",
        )

    def update(self, user_id: str, fields: Dict[str, Any]) -> bool:
        response = self._request(
            "PATCH",
            params={"user_id": f"eq.{user_id}", "select": "user_id"},
            json_body=fields,
            prefer="return=representation",
        )
        return bool(self._rows(response))

    def delete(self, user_id: str) -> bool:
        response = self._request(
            "DELETE",
            params={"user_id": f"eq.{user_id}", "select": "user_id"},
            prefer="return=representation",
        )
        return bool(self._rows(response))

    def close(self) -> None:
        self._client.close()


__all__ = ["SupabaseCredentialStore"]
