"""
SQLite Storage
Persistent KV store backing alerts, events and the dedup ledger.

Responsibilities:
- Store JSON documents by key with optional TTL
- Atomic insert-if-absent and counters
- Prefix scans

NOT responsible for:
- Validation (done upstream)
- Key layout (see db.kv.keys)
- Business logic (alert stores handle this)
"""

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Optional, Tuple

from core import Clock, StoreError, SystemClock


class SQLiteKVStore:
    """
    SQLite persistence for KV documents.

    Tables:
        - kv: key → JSON value, expires_at (unix seconds, NULL = no TTL)
    """

    backend = "sqlite"

    def __init__(self, db_path: str = "data/alerts.db", clock: Optional[Clock] = None):
        self.db_path = db_path
        self._clock = clock or SystemClock()
        self._ensure_directory()
        self._init_schema()

    def _ensure_directory(self):
        """Create data directory"""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    def _init_schema(self):
        """Initialize database schema"""
        with self._connect() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    expires_at REAL
                );

                CREATE INDEX IF NOT EXISTS idx_kv_expires
                ON kv(expires_at);
            """)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.db_path, timeout=5.0)
        except sqlite3.Error as e:
            raise StoreError(f"cannot open {self.db_path}: {e}") from e
        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            raise StoreError(f"sqlite failure on {self.db_path}: {e}") from e
        finally:
            conn.close()

    def _ts(self) -> float:
        return self._clock.now().timestamp()

    def _expiry(self, ttl_seconds: Optional[int]) -> Optional[float]:
        return self._ts() + ttl_seconds if ttl_seconds else None

    # =========================================================================
    # Read Operations
    # =========================================================================

    def get(self, key: str) -> Optional[Any]:
        with self._connect() as conn:
            row = conn.execute(
                """SELECT value FROM kv
                   WHERE key = ? AND (expires_at IS NULL OR expires_at > ?)""",
                [key, self._ts()]
            ).fetchone()
        return json.loads(row[0]) if row else None

    def exists(self, key: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                """SELECT 1 FROM kv
                   WHERE key = ? AND (expires_at IS NULL OR expires_at > ?)""",
                [key, self._ts()]
            ).fetchone()
        return row is not None

    def list_by_prefix(self, prefix: str) -> List[Tuple[str, Any]]:
        with self._connect() as conn:
            cursor = conn.execute(
                """SELECT key, value FROM kv
                   WHERE substr(key, 1, ?) = ?
                     AND (expires_at IS NULL OR expires_at > ?)
                   ORDER BY key""",
                [len(prefix), prefix, self._ts()]
            )
            rows = cursor.fetchall()
        return [(row[0], json.loads(row[1])) for row in rows]

    # =========================================================================
    # Write Operations
    # =========================================================================

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        with self._connect() as conn:
            conn.execute(
                """INSERT OR REPLACE INTO kv (key, value, expires_at)
                   VALUES (?, ?, ?)""",
                [key, json.dumps(value), self._expiry(ttl_seconds)]
            )

    def set_if_absent(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        """Single statement: inserts, or replaces only an expired row"""
        now = self._ts()
        with self._connect() as conn:
            cursor = conn.execute(
                """INSERT INTO kv (key, value, expires_at) VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE
                   SET value = excluded.value, expires_at = excluded.expires_at
                   WHERE kv.expires_at IS NOT NULL AND kv.expires_at <= ?""",
                [key, json.dumps(value), self._expiry(ttl_seconds), now]
            )
            return cursor.rowcount == 1

    def delete(self, key: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM kv WHERE key = ?", [key])
            return cursor.rowcount > 0

    def increment_counter(self, key: str, ttl_seconds: Optional[int] = None) -> int:
        now = self._ts()
        with self._connect() as conn:
            conn.execute(
                """INSERT INTO kv (key, value, expires_at) VALUES (?, '1', ?)
                   ON CONFLICT(key) DO UPDATE SET
                       value = CASE
                           WHEN kv.expires_at IS NOT NULL AND kv.expires_at <= ? THEN '1'
                           ELSE CAST(CAST(kv.value AS INTEGER) + 1 AS TEXT)
                       END,
                       expires_at = excluded.expires_at""",
                [key, self._expiry(ttl_seconds), now]
            )
            row = conn.execute("SELECT value FROM kv WHERE key = ?", [key]).fetchone()
        return int(json.loads(row[0]))

    # =========================================================================
    # Management
    # =========================================================================

    def purge_expired(self) -> int:
        """Physically remove expired rows"""
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM kv WHERE expires_at IS NOT NULL AND expires_at <= ?",
                [self._ts()]
            )
            return cursor.rowcount

    def clear(self):
        with self._connect() as conn:
            conn.execute("DELETE FROM kv")

    def get_stats(self) -> dict:
        with self._connect() as conn:
            count = conn.execute("SELECT COUNT(*) FROM kv").fetchone()[0]
        return {"key_count": count, "db_path": self.db_path}
