# =============================================================================
# muni_core/offline/local_store.py
# Local SQLite Key/Value Store for Offline Operations
# =============================================================================
"""
LocalStore - durable on-device key/value storage.

Every value is a JSON string. The sync queue, the failure log and one cache
bucket per domain collection each live under their own key.

Features:
- SQLite file survives process restarts
- Thread-local connections
- Atomic read-modify-write via update()
- Storage errors surface as LocalStorageError
"""

from __future__ import annotations
import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, List, Optional, Union
import logging

import numpy as np
import pandas as pd

from muni_core.errors import LocalStorageError

logger = logging.getLogger(__name__)


def to_json_safe(value: Any) -> Any:
    """Convert numpy/pandas/datetime values so json.dumps accepts them."""
    if isinstance(value, dict):
        return {str(k): to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(v) for v in value]
    if value is None or isinstance(value, (str, bool)):
        return value
    if pd.api.types.is_scalar(value) and pd.isna(value):
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, np.bool_):
        return bool(value)
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        return float(value)
    return value


class LocalStore:
    """
    SQLite-backed key/value store.

    Usage:
        store = LocalStore(Path("local_data/muni_services.db"))
        store.set_json("sync_queue", [])
        store.update("sync_queue", lambda raw: ...)
    """

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value TEXT,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    """

    def __init__(self, db_path: Union[str, Path]):
        """
        Initialize local store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._write_lock = threading.RLock()
        self._ensure_directory()
        self._initialize()

    def _ensure_directory(self) -> None:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LocalStorageError(f"Cannot create store directory: {e}") from e

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if getattr(self._local, "connection", None) is None:
            try:
                conn = sqlite3.connect(str(self.db_path), check_same_thread=False, timeout=10)
            except sqlite3.Error as e:
                raise LocalStorageError(f"Cannot open local store: {e}") from e
            conn.row_factory = sqlite3.Row
            self._local.connection = conn
            self._connections.append(conn)
        return self._local.connection

    @contextmanager
    def transaction(self):
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise LocalStorageError(f"Local store transaction failed: {e}") from e
        except Exception:
            conn.rollback()
            raise

    def _initialize(self) -> None:
        with self.transaction() as conn:
            conn.execute(self.SCHEMA)
        logger.info(f"Local store initialized at: {self.db_path}")

    # =========================================================================
    # RAW STRING ACCESS
    # =========================================================================

    def _read(self, conn: sqlite3.Connection, key: str) -> Optional[str]:
        row = conn.execute("SELECT value FROM kv_store WHERE key = ?", [key]).fetchone()
        return row["value"] if row else None

    def _write(self, conn: sqlite3.Connection, key: str, value: str) -> None:
        conn.execute(
            """
            INSERT OR REPLACE INTO kv_store (key, value, updated_at)
            VALUES (?, ?, ?)
            """,
            [key, value, datetime.now().isoformat()]
        )

    def get(self, key: str) -> Optional[str]:
        """Return the stored string for key, or None."""
        try:
            return self._read(self._get_connection(), key)
        except sqlite3.Error as e:
            raise LocalStorageError(f"Failed to read '{key}': {e}", key=key) from e

    def set(self, key: str, value: str) -> None:
        """Store a string value; durable once this returns."""
        with self._write_lock, self.transaction() as conn:
            self._write(conn, key, value)

    def delete(self, key: str) -> None:
        with self._write_lock, self.transaction() as conn:
            conn.execute("DELETE FROM kv_store WHERE key = ?", [key])

    def keys(self, prefix: str = "") -> List[str]:
        try:
            rows = self._get_connection().execute(
                "SELECT key FROM kv_store WHERE key LIKE ? ORDER BY key",
                [f"{prefix}%"]
            ).fetchall()
        except sqlite3.Error as e:
            raise LocalStorageError(f"Failed to list keys: {e}") from e
        return [row["key"] for row in rows]

    # =========================================================================
    # JSON ACCESS
    # =========================================================================

    @staticmethod
    def _decode(key: str, raw: Optional[str], default: Any) -> Any:
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise LocalStorageError(f"Corrupt JSON under '{key}': {e}", key=key) from e

    @staticmethod
    def _encode(key: str, value: Any) -> str:
        try:
            return json.dumps(to_json_safe(value))
        except (TypeError, ValueError) as e:
            raise LocalStorageError(f"Cannot serialize value for '{key}': {e}", key=key) from e

    def get_json(self, key: str, default: Any = None) -> Any:
        return self._decode(key, self.get(key), default)

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, self._encode(key, value))

    def update(self, key: str, fn: Callable[[Any], Any], default: Any = None) -> Any:
        """
        Atomic read-modify-write of a JSON value.

        fn receives the freshly read value (or default) and returns the value
        to persist. The read, fn and the write happen under one lock and one
        transaction.

        Returns:
            The value that was written
        """
        with self._write_lock, self.transaction() as conn:
            current = self._decode(key, self._read(conn, key), default)
            new_value = fn(current)
            self._write(conn, key, self._encode(key, new_value))
            return new_value

    def close(self) -> None:
        """Close every connection opened by this store."""
        for conn in self._connections:
            try:
                conn.close()
            except sqlite3.Error as e:
                logger.debug(f"Error closing connection: {e}")
        self._connections.clear()
        self._local = threading.local()
