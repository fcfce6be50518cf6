"""
Centralized singleton reset utilities for testing.

These functions reset global singleton instances to prevent test pollution.
Singletons that persist across tests can cause:
- Stores pointing at another test's temporary database
- Mock objects leaking between tests
- Settings changes not taking effect

Usage in conftest.py:
    @pytest.fixture(autouse=True)
    def reset_singletons_after_test():
        yield
        reset_all_singletons()
"""


def reset_store_singletons() -> None:
    """Reset the SQLite-backed stores so they re-read their paths from settings."""
    from contact_matcher.services import cache_store, contact_store, transaction_store

    cache_store._cache_store = None
    contact_store._contact_store = None
    transaction_store._transaction_store = None


def reset_service_singletons() -> None:
    """Reset the directory client, the first name oracle and the analyser config."""
    from config.resolver_config import reload_analysers
    from contact_matcher.services import contact_directory, first_name_oracle

    contact_directory._directory = None
    first_name_oracle._oracle = None
    reload_analysers()


def reset_all_singletons() -> None:
    """Reset all singletons."""
    reset_store_singletons()
    reset_service_singletons()
