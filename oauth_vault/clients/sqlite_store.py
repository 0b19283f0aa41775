"""SQLite-backed credential record store for local and single-host deployments."""

from __future__ import annotations

import json
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Any, Dict, Optional

from oauth_vault.services.errors import StoreError


class SQLiteCredentialStore:
    """One JSON document per user in a table keyed by ``user_id``."""

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _execute(self, sql: str, params: tuple = ()) -> tuple[list[sqlite3.Row], int]:
        """Run one statement in its own transaction, returning (rows, rowcount)."""
        try:
            with closing(self._connect()) as conn, conn:
                cursor = conn.execute(sql, params)
                return cursor.fetchall(), cursor.rowcount
        except sqlite3.Error as exc:
            raise StoreError(f"SQLite credential store failed: {exc}") from exc

    def _ensure_schema(self) -> None:
        self._execute(
            """
            CREATE TABLE IF NOT EXISTS credentials (
                user_id TEXT PRIMARY KEY,
                data TEXT NOT NULL
            )
            """
        )

    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        rows, _ = self._execute(
            "SELECT data FROM credentials WHERE user_id = ?",
            (user_id,),
        )
        if not rows:
            return None
        return json.loads(rows[0]["data"])

    def upsert(self, row: Dict[str, Any]) -> None:
        user_id = row.get("user_id")
        if not user_id:
            raise ValueError("Credential row must include 'user_id'")

        self._execute(
            """
            INSERT INTO credentials (user_id, data)
            VALUES (?, ?)
            ON CONFLICT(user_id) DO UPDATE SET data = excluded.data
            """,
            (user_id, json.dumps(row)),
        )

    def update(self, user_id: str, fields: Dict[str, Any]) -> bool:
        _, rowcount = self._execute(
            "UPDATE credentials SET data = json_patch(data, ?) WHERE user_id = ?",
            (json.dumps(fields), user_id),
        )
        return rowcount > 0

    def delete(self, user_id: str) -> bool:
        _, rowcount = self._execute(
            "DELETE FROM credentials WHERE user_id = ?",
            (user_id,),
        )
        return rowcount > 0


__all__ = ["SQLiteCredentialStore"]
