"""
Engine share store
==================

SQLite-backed storage of the shares one engine holds, keyed by
(contract address, sharing id). Shares are opaque bytes; a share is
written once and never overwritten.

Copyright (c) 2026 CruxLabx
"""

from __future__ import annotations

import sqlite3
import threading
import time
from pathlib import Path
from typing import Optional, Union


class ShareStore:
    """
    Usage:
        store = ShareStore(db_path)
        stored = store.put(contract, 42, share)   # False if already present
        share = store.get(contract, 42)
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self._db_path = str(db_path)
        if self._db_path != ":memory:":
            path = Path(self._db_path).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            self._db_path = str(path)
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        if self._db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._lock = threading.Lock()
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS shares (
                contract TEXT NOT NULL,
                sharing_id TEXT NOT NULL,
                data BLOB NOT NULL,
                stored_at REAL NOT NULL,
                PRIMARY KEY (contract, sharing_id)
            );
        """)

    def put(self, contract: str, sharing_id: int, data: bytes) -> bool:
        """Store a share. Returns False if one is already stored."""
        with self._lock, self._conn:
            cur = self._conn.execute(
                """INSERT OR IGNORE INTO shares (contract, sharing_id, data, stored_at)
                   VALUES (?, ?, ?, ?)""",
                # Sharing ids are u128, wider than SQLite integers
                (contract, str(sharing_id), data, time.time()),
            )
            return cur.rowcount == 1

    def get(self, contract: str, sharing_id: int) -> Optional[bytes]:
        with self._lock:
            row = self._conn.execute(
                "SELECT data FROM shares WHERE contract = ? AND sharing_id = ?",
                (contract, str(sharing_id)),
            ).fetchone()
        return bytes(row["data"]) if row else None

    def contains(self, contract: str, sharing_id: int) -> bool:
        return self.get(contract, sharing_id) is not None

    def delete(self, contract: str, sharing_id: int) -> bool:
        with self._lock, self._conn:
            cur = self._conn.execute(
                "DELETE FROM shares WHERE contract = ? AND sharing_id = ?",
                (contract, str(sharing_id)),
            )
            return cur.rowcount == 1

    def count(self, contract: Optional[str] = None) -> int:
        sql = "SELECT COUNT(*) FROM shares"
        params: tuple = ()
        if contract is not None:
            sql += " WHERE contract = ?"
            params = (contract,)
        with self._lock:
            return self._conn.execute(sql, params).fetchone()[0]

    def get_stats(self) -> dict:
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) AS n, COALESCE(SUM(LENGTH(data)), 0) AS size FROM shares"
            ).fetchone()
        return {"shares": row["n"], "storage_bytes": row["size"]}

    def close(self) -> None:
        with self._lock:
            self._conn.close()
