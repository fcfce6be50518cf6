"""
Key-value cache store for contact matcher.

Persists cached values (e.g. the known first names snapshot) across process
restarts. Values are stored as JSON; expiry is the caller's responsibility.
"""
import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from contact_matcher.utils.db_paths import get_cache_db_path

logger = logging.getLogger(__name__)


class SqliteCacheStore:
    """
    SQLite-based key-value store.

    Keys are grouped by namespace, like ("banking", "analyser_xcm/first_names").
    """

    def __init__(self, db_path: Optional[str] = None):
        """Initialize the cache store."""
        if db_path is None:
            db_path = get_cache_db_path()

        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Initialize the database schema."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS cache (
                    namespace TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (namespace, key)
                )
            """)
            conn.commit()

    def get(self, namespace: str, key: str) -> Optional[Any]:
        """
        Get a cached value.

        Returns:
            The decoded value, or None if absent or unreadable
        """
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT value FROM cache WHERE namespace = ? AND key = ?",
                (namespace, key),
            ).fetchone()

        if row is None:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError as e:
            logger.warning(f"Discarding unreadable cache entry {namespace}/{key}: {e}")
            return None

    def set(self, namespace: str, key: str, value: Any) -> None:
        """Store a value (must be JSON serializable), replacing any previous one."""
        now = datetime.now(timezone.utc).isoformat()
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO cache (namespace, key, value, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(namespace, key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (namespace, key, json.dumps(value), now),
            )
            conn.commit()

    def delete(self, namespace: str, key: str) -> bool:
        """Delete a cached value. Returns True if something was deleted."""
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                "DELETE FROM cache WHERE namespace = ? AND key = ?",
                (namespace, key),
            )
            conn.commit()
            return cursor.rowcount > 0


# Singleton instance
_cache_store: Optional[SqliteCacheStore] = None


def get_cache_store() -> SqliteCacheStore:
    """Get or create SqliteCacheStore singleton."""
    global _cache_store
    if _cache_store is None:
        _cache_store = SqliteCacheStore()
    return _cache_store
