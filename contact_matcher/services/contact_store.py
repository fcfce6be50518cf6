"""
Contact store for contact matcher.

SQLite table of contacts used by the local get-or-create directory and as
the authoritative source of known first names for 'db' name mode.

Contacts are soft-deleted (is_deleted = 1) so IDs referenced by already
reconciled transactions stay valid.
"""
import logging
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from contact_matcher.services.errors import CacheSourceUnavailable
from contact_matcher.utils.db_paths import get_contacts_db_path

logger = logging.getLogger(__name__)

# Columns a get-or-create call can match on or fill in
CONTACT_FIELDS = ("first_name", "last_name", "organization_name", "email")


@dataclass
class Contact:
    """A contact record."""
    id: int
    contact_type: str
    first_name: str = ""
    last_name: str = ""
    organization_name: str = ""
    email: str = ""
    is_deleted: bool = False
    created_at: str = ""

    @property
    def display_name(self) -> str:
        if self.organization_name and not (self.first_name or self.last_name):
            return self.organization_name
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "contact_type": self.contact_type,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "organization_name": self.organization_name,
            "email": self.email,
            "display_name": self.display_name,
            "is_deleted": self.is_deleted,
            "created_at": self.created_at,
        }


class ContactStore:
    """
    SQLite-based contact store.

    Thread-safe: writes that must not interleave (find-then-create) take
    the store lock via get_or_create().
    """

    def __init__(self, db_path: Optional[str] = None):
        """Initialize the contact store."""
        if db_path is None:
            db_path = get_contacts_db_path()

        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self):
        """Initialize the database schema."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS contacts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    contact_type TEXT NOT NULL DEFAULT 'Individual',
                    first_name TEXT NOT NULL DEFAULT '',
                    last_name TEXT NOT NULL DEFAULT '',
                    organization_name TEXT NOT NULL DEFAULT '',
                    email TEXT NOT NULL DEFAULT '',
                    is_deleted INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_contacts_first_name
                ON contacts(first_name)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_contacts_last_name
                ON contacts(last_name)
            """)
            conn.commit()

    def _row_to_contact(self, row: sqlite3.Row) -> Contact:
        return Contact(
            id=row["id"],
            contact_type=row["contact_type"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            organization_name=row["organization_name"],
            email=row["email"],
            is_deleted=bool(row["is_deleted"]),
            created_at=row["created_at"],
        )

    def add(self, contact_type: str = "Individual", **fields) -> Contact:
        """
        Create a contact.

        Args:
            contact_type: Individual, Organization, Household, ...
            **fields: Any of CONTACT_FIELDS (unknown keys are ignored)

        Returns:
            The created Contact
        """
        values = {f: str(fields.get(f) or "").strip() for f in CONTACT_FIELDS}
        now = datetime.now(timezone.utc).isoformat()

        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                """
                INSERT INTO contacts (contact_type, first_name, last_name, organization_name, email, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    contact_type,
                    values["first_name"],
                    values["last_name"],
                    values["organization_name"],
                    values["email"],
                    now,
                ),
            )
            conn.commit()
            contact_id = cursor.lastrowid

        logger.info(f"Created {contact_type} contact {contact_id}")
        return Contact(id=contact_id, contact_type=contact_type, created_at=now, **values)

    def get(self, contact_id: int) -> Optional[Contact]:
        """Get a contact by ID (including soft-deleted ones)."""
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute(
                "SELECT * FROM contacts WHERE id = ?", (contact_id,)
            ).fetchone()
        return self._row_to_contact(row) if row else None

    def soft_delete(self, contact_id: int) -> bool:
        """Mark a contact as deleted. Returns True if it existed."""
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                "UPDATE contacts SET is_deleted = 1 WHERE id = ?", (contact_id,)
            )
            conn.commit()
            return cursor.rowcount > 0

    def find(self, contact_type: str, criteria: dict[str, str]) -> Optional[Contact]:
        """
        Find the oldest live contact matching all criteria (case-insensitive).

        Args:
            contact_type: Required contact type
            criteria: Column -> value, columns must be in CONTACT_FIELDS

        Returns:
            Matching Contact or None
        """
        clauses = ["is_deleted = 0", "contact_type = ?"]
        params: list = [contact_type]
        for column, value in criteria.items():
            if column not in CONTACT_FIELDS:
                raise ValueError(f"Cannot match on unknown contact field '{column}'")
            clauses.append(f"LOWER({column}) = LOWER(?)")
            params.append(value)

        query = f"SELECT * FROM contacts WHERE {' AND '.join(clauses)} ORDER BY id LIMIT 1"
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute(query, params).fetchone()
        return self._row_to_contact(row) if row else None

    def get_or_create(
        self,
        contact_type: str,
        criteria: dict[str, str],
        values: dict[str, str],
    ) -> tuple[Contact, bool]:
        """
        Return the contact matching criteria, creating it from values if missing.

        Returns:
            Tuple of (contact, created)
        """
        with self._lock:
            existing = self.find(contact_type, criteria)
            if existing:
                return existing, False
            return self.add(contact_type=contact_type, **values), True

    def count(self, include_deleted: bool = False) -> int:
        query = "SELECT COUNT(*) FROM contacts"
        if not include_deleted:
            query += " WHERE is_deleted = 0"
        with sqlite3.connect(self.db_path) as conn:
            return conn.execute(query).fetchone()[0]

    def list_distinct_first_names(self, exclude_deleted: bool = True) -> set[str]:
        """
        Get all distinct first names, lowercased.

        Raises:
            CacheSourceUnavailable: if the contacts database can't be read
        """
        query = "SELECT DISTINCT LOWER(first_name) FROM contacts WHERE first_name != ''"
        if exclude_deleted:
            query += " AND is_deleted = 0"
        try:
            with sqlite3.connect(self.db_path) as conn:
                rows = conn.execute(query).fetchall()
        except sqlite3.Error as e:
            raise CacheSourceUnavailable(f"Cannot read first names from {self.db_path}: {e}") from e
        return {row[0] for row in rows}


# Singleton instance
_contact_store: Optional[ContactStore] = None


def get_contact_store() -> ContactStore:
    """Get or create ContactStore singleton."""
    global _contact_store
    if _contact_store is None:
        _contact_store = ContactStore()
    return _contact_store
