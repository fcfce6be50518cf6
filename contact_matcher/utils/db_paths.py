"""
Database path utilities for contact matcher services.
"""
from pathlib import Path

from config.settings import settings


def _resolve(configured: str, default_name: str) -> str:
    if configured:
        path = Path(configured)
    else:
        path = Path(settings.data_path) / default_name
    path.parent.mkdir(parents=True, exist_ok=True)
    return str(path)


def get_contacts_db_path() -> str:
    """
    Get the path to the contacts database.

    Creates the parent directory if it doesn't exist.

    Returns:
        Path to contacts.db (or MATCHER_CONTACTS_DB)
    """
    return _resolve(settings.contacts_db_path, "contacts.db")


def get_cache_db_path() -> str:
    """Get the path to the key-value cache database."""
    return _resolve(settings.cache_db_path, "cache.db")


def get_transactions_db_path() -> str:
    """Get the path to the bank transactions database."""
    return _resolve(settings.transactions_db_path, "transactions.db")
