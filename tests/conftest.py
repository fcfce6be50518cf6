"""
Pytest configuration and shared fixtures for contact matcher tests.

Test Categories:
- unit: Fast tests with no external dependencies

The remote directory client is tested against httpx.MockTransport, so no
running service is needed.

Every test runs against temporary SQLite databases; nothing is written to ./data.
"""
import pytest

from tests.reset_singletons import reset_all_singletons


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """
    Point all database paths at a per-test temporary directory.

    Patches the shared settings object in place, since modules hold a
    reference to it. Singletons are reset before and after each test.
    """
    from config.settings import settings

    data_dir = tmp_path / "data"
    monkeypatch.setattr(settings, "data_path", data_dir)
    monkeypatch.setattr(settings, "contacts_db_path", "")
    monkeypatch.setattr(settings, "cache_db_path", "")
    monkeypatch.setattr(settings, "transactions_db_path", "")
    monkeypatch.setattr(settings, "directory_url", "")
    monkeypatch.setattr(settings, "analysers_path", tmp_path / "analysers.yaml")

    reset_all_singletons()
    yield settings
    reset_all_singletons()


@pytest.fixture
def contact_store(tmp_path):
    from contact_matcher.services.contact_store import ContactStore
    return ContactStore(str(tmp_path / "contacts.db"))


@pytest.fixture
def cache_store(tmp_path):
    from contact_matcher.services.cache_store import SqliteCacheStore
    return SqliteCacheStore(str(tmp_path / "cache.db"))


@pytest.fixture
def transaction_store(tmp_path):
    from contact_matcher.services.transaction_store import TransactionStore
    return TransactionStore(str(tmp_path / "transactions.db"))


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class FakeDirectory:
    """In-memory idempotent get-or-create, records every call."""

    def __init__(self):
        self.calls = []
        self._ids = {}

    def get_or_create(self, fields):
        self.calls.append(dict(fields))
        key = tuple(sorted((k, str(v)) for k, v in fields.items()))
        if key not in self._ids:
            self._ids[key] = str(len(self._ids) + 100)
        return self._ids[key]


@pytest.fixture
def fake_directory():
    return FakeDirectory()
