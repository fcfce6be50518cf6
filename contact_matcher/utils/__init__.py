"""
Shared utility functions for contact matcher services.
"""

from contact_matcher.utils.db_paths import (
    get_cache_db_path,
    get_contacts_db_path,
    get_transactions_db_path,
)

__all__ = ["get_cache_db_path", "get_contacts_db_path", "get_transactions_db_path"]
