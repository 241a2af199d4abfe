"""SQLite-backed key-value record storage for credentials and scheduled messages."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Optional


class SQLiteStore:
    """Simple key-value store using a normalized table keyed by (pk, sk).

    Every mutation is committed before the call returns, so a record that was
    acknowledged survives a process restart. Rows keep their insertion order
    through SQLite's rowid, which upserts leave untouched.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_records (
                    pk TEXT NOT NULL,
                    sk TEXT NOT NULL,
                    data TEXT NOT NULL,
                    PRIMARY KEY (pk, sk)
                )
                """
            )

    def put_item(self, item: Dict[str, Any]) -> None:
        pk = item.get("pk")
        sk = item.get("sk")
        if not pk or not sk:
            raise ValueError("Item must include 'pk' and 'sk' keys")

        data_json = json.dumps(item)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO kv_records (pk, sk, data)
                VALUES (?, ?, ?)
                ON CONFLICT(pk, sk) DO UPDATE SET data = excluded.data
                """,
                (pk, sk, data_json),
            )

    def get_item(
        self, *, partition_key: str, sort_key: str
    ) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT data FROM kv_records WHERE pk = ? AND sk = ?",
                (partition_key, sort_key),
            ).fetchone()
        if not row:
            return None
        return json.loads(row["data"])

    def list_items(
        self,
        *,
        partition_key: str,
        field: str | None = None,
        value: Any = None,
    ) -> list[Dict[str, Any]]:
        """Return records of a partition in insertion order.

        When ``field`` is given only records whose top-level JSON attribute
        equals ``value`` are returned.
        """
        query = "SELECT data FROM kv_records WHERE pk = ?"
        params: list[Any] = [partition_key]
        if field is not None:
            query += " AND json_extract(data, ?) = ?"
            params.extend([f"$.{field}", value])
        query += " ORDER BY rowid"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [json.loads(row["data"]) for row in rows]

    def compare_and_swap(
        self,
        *,
        partition_key: str,
        sort_key: str,
        field: str,
        expected: Iterable[Any],
        changes: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """Merge ``changes`` into a record only if ``field`` is in ``expected``.

        The read and the write share one ``BEGIN IMMEDIATE`` transaction, so
        concurrent writers cannot interleave between the check and the update.
        Returns the updated record, or ``None`` when the record is missing or
        its current value does not match.
        """
        allowed = list(expected)
        conn = sqlite3.connect(
            self._db_path, check_same_thread=False, isolation_level=None
        )
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    "SELECT data FROM kv_records WHERE pk = ? AND sk = ?",
                    (partition_key, sort_key),
                ).fetchone()
                if not row:
                    conn.execute("ROLLBACK")
                    return None
                record = json.loads(row["data"])
                if record.get(field) not in allowed:
                    conn.execute("ROLLBACK")
                    return None
                record.update(changes)
                conn.execute(
                    "UPDATE kv_records SET data = ? WHERE pk = ? AND sk = ?",
                    (json.dumps(record), partition_key, sort_key),
                )
                conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
        finally:
            conn.close()
        return record


__all__ = ["SQLiteStore"]
