"""
Bank transaction store for contact matcher.

Holds imported transactions with their parsed data (payer name, IBAN,
purpose, ...). The contact resolver writes the resolved contact ID back
into the parsed data and marks the transaction as resolved.
"""
import json
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from contact_matcher.utils.db_paths import get_transactions_db_path

logger = logging.getLogger(__name__)

STATUS_NEW = "new"
STATUS_RESOLVED = "resolved"


@dataclass
class BankTransaction:
    """An imported bank transaction."""
    id: int
    data_parsed: dict[str, Any] = field(default_factory=dict)
    status: str = STATUS_NEW
    contact_id: Optional[str] = None
    resolved_at: Optional[str] = None
    created_at: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "data_parsed": self.data_parsed,
            "status": self.status,
            "contact_id": self.contact_id,
            "resolved_at": self.resolved_at,
            "created_at": self.created_at,
        }


class TransactionStore:
    """
    SQLite-based transaction store.

    Also the record sink for contact resolution: save_record() persists
    updated parsed data, mark_resolved() records the resolution.
    """

    def __init__(self, db_path: Optional[str] = None):
        """Initialize the transaction store."""
        if db_path is None:
            db_path = get_transactions_db_path()

        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Initialize the database schema."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS transactions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    data_parsed TEXT NOT NULL DEFAULT '{}',
                    status TEXT NOT NULL DEFAULT 'new',
                    contact_id TEXT,
                    resolved_at TEXT,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_transactions_status
                ON transactions(status)
            """)
            conn.commit()

    def _row_to_transaction(self, row: sqlite3.Row) -> BankTransaction:
        try:
            data = json.loads(row["data_parsed"] or "{}")
        except json.JSONDecodeError:
            logger.warning(f"Transaction {row['id']} has unreadable parsed data")
            data = {}
        return BankTransaction(
            id=row["id"],
            data_parsed=data,
            status=row["status"],
            contact_id=row["contact_id"],
            resolved_at=row["resolved_at"],
            created_at=row["created_at"],
        )

    def add(self, data_parsed: dict[str, Any]) -> BankTransaction:
        """Import a transaction. Returns the stored BankTransaction."""
        now = datetime.now(timezone.utc).isoformat()
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                "INSERT INTO transactions (data_parsed, status, created_at) VALUES (?, ?, ?)",
                (json.dumps(data_parsed), STATUS_NEW, now),
            )
            conn.commit()
            return BankTransaction(id=cursor.lastrowid, data_parsed=dict(data_parsed), created_at=now)

    def get(self, transaction_id: int) -> Optional[BankTransaction]:
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute(
                "SELECT * FROM transactions WHERE id = ?", (transaction_id,)
            ).fetchone()
        return self._row_to_transaction(row) if row else None

    def list_pending(self, limit: Optional[int] = None) -> list[BankTransaction]:
        """Transactions not yet resolved, oldest first."""
        query = "SELECT * FROM transactions WHERE status != ? ORDER BY id"
        params: list = [STATUS_RESOLVED]
        if limit:
            query += " LIMIT ?"
            params.append(limit)
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_transaction(r) for r in rows]

    def save_record(self, record_id: int, record: dict[str, Any]) -> None:
        """Replace the parsed data of a transaction."""
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                "UPDATE transactions SET data_parsed = ? WHERE id = ?",
                (json.dumps(record), record_id),
            )
            conn.commit()
        if cursor.rowcount == 0:
            raise KeyError(f"Transaction {record_id} not found")
        logger.debug(f"Saved parsed data of transaction {record_id}")

    def mark_resolved(self, record_id: int, contact_id: str) -> None:
        """Mark a transaction as resolved to a contact."""
        now = datetime.now(timezone.utc).isoformat()
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                "UPDATE transactions SET status = ?, contact_id = ?, resolved_at = ? WHERE id = ?",
                (STATUS_RESOLVED, contact_id, now, record_id),
            )
            conn.commit()
        if cursor.rowcount == 0:
            raise KeyError(f"Transaction {record_id} not found")


# Singleton instance
_transaction_store: Optional[TransactionStore] = None


def get_transaction_store() -> TransactionStore:
    """Get or create TransactionStore singleton."""
    global _transaction_store
    if _transaction_store is None:
        _transaction_store = TransactionStore()
    return _transaction_store
