"""
Known first names lookup for 'db' name mode.

Answers "is this token a known first name?" from a snapshot of all distinct
first names in the contacts database. The snapshot is loaded lazily, kept
for a TTL (one week by default) and then replaced as a whole. It is also
written to the key-value cache store, so a restarted process can pick up a
fresh snapshot without querying the contacts table again.
"""
import logging
import threading
import time
from typing import Callable, Optional, Protocol

from config.settings import settings
from contact_matcher.services.errors import CacheSourceUnavailable

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "banking"
CACHE_KEY = "analyser_xcm/first_names"


class FirstNameSource(Protocol):
    def list_distinct_first_names(self, exclude_deleted: bool = True) -> set[str]:
        ...


class CacheStore(Protocol):
    def get(self, namespace: str, key: str):
        ...

    def set(self, namespace: str, key: str, value) -> None:
        ...

    def delete(self, namespace: str, key: str) -> bool:
        ...


class FirstNameOracle:
    """
    Cached set of known first names with TTL refresh.

    Thread-safe: the check-TTL / reload / replace sequence runs under a lock,
    so concurrent callers on a stale snapshot trigger a single reload. The
    snapshot itself is an immutable frozenset swapped in one assignment;
    lookups on a fresh snapshot never take the lock.
    """

    def __init__(
        self,
        source: FirstNameSource,
        cache_store: Optional[CacheStore] = None,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the oracle.

        Args:
            source: Authoritative source of first names (the contacts DB)
            cache_store: Optional persistent store for the snapshot
            ttl_seconds: Max snapshot age (default from settings, one week)
            clock: Returns the current time in epoch seconds
        """
        self._source = source
        self._cache_store = cache_store
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.first_name_cache_ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._names: Optional[frozenset[str]] = None
        self._loaded_at: float = 0.0
        self.reload_count = 0

    def _is_stale(self) -> bool:
        if self._names is None:
            return True
        return self._clock() - self._loaded_at > self.ttl_seconds

    def is_first_name(self, token: str) -> bool:
        """
        Check if a token is a known first name (case-insensitive).

        Raises:
            CacheSourceUnavailable: if the snapshot must be (re)loaded and the source fails
        """
        if not token or not token.strip():
            return False
        return token.strip().lower() in self._snapshot()

    def _snapshot(self) -> frozenset[str]:
        """Current snapshot, loading it first if it is missing or stale."""
        names = self._names
        if names is not None and self._clock() - self._loaded_at <= self.ttl_seconds:
            return names

        with self._lock:
            self._refresh_locked()
            return self._names

    def refresh_if_stale(self) -> bool:
        """
        Load the snapshot if it is missing or older than the TTL.

        Returns:
            True if a new snapshot was installed
        """
        if not self._is_stale():
            return False

        with self._lock:
            return self._refresh_locked()

    def _refresh_locked(self) -> bool:
        # Another thread may have refreshed while we waited
        if not self._is_stale():
            return False

        if self._names is None and self._adopt_persisted_snapshot():
            return True

        self._reload()
        return True

    def refresh(self) -> None:
        """Reload the snapshot from the source now, regardless of its age."""
        with self._lock:
            self._reload()

    def invalidate(self) -> None:
        """Drop the in-memory and persisted snapshot; the next lookup reloads."""
        with self._lock:
            self._names = None
            self._loaded_at = 0.0
            if self._cache_store is not None:
                self._cache_store.delete(CACHE_NAMESPACE, CACHE_KEY)

    def _adopt_persisted_snapshot(self) -> bool:
        """Use the snapshot from the cache store if it is within the TTL."""
        if self._cache_store is None:
            return False

        try:
            cached = self._cache_store.get(CACHE_NAMESPACE, CACHE_KEY)
        except Exception as e:
            logger.warning(f"Could not read persisted first name snapshot: {e}")
            return False
        if not isinstance(cached, dict) or "names" not in cached or "loaded_at" not in cached:
            return False

        loaded_at = float(cached["loaded_at"])
        if self._clock() - loaded_at > self.ttl_seconds:
            logger.debug("Persisted first name snapshot expired")
            return False

        self._names = frozenset(cached["names"])
        self._loaded_at = loaded_at
        logger.info(f"Loaded {len(self._names)} first names from cache store")
        return True

    def _reload(self) -> None:
        """Fetch all first names from the source and install them. Caller holds the lock."""
        started = time.monotonic()
        try:
            names = self._source.list_distinct_first_names(exclude_deleted=True)
        except CacheSourceUnavailable:
            raise
        except Exception as e:
            raise CacheSourceUnavailable(f"Loading first names failed: {e}") from e

        snapshot = frozenset(n.strip().lower() for n in names if n and n.strip())
        loaded_at = self._clock()

        self._names = snapshot
        self._loaded_at = loaded_at
        self.reload_count += 1

        elapsed = time.monotonic() - started
        logger.info(f"Loading all first names: {len(snapshot)} names in {elapsed:.3f}s")

        if self._cache_store is not None:
            try:
                self._cache_store.set(
                    CACHE_NAMESPACE,
                    CACHE_KEY,
                    {"names": sorted(snapshot), "loaded_at": loaded_at},
                )
            except Exception as e:
                logger.warning(f"Could not persist first name snapshot: {e}")

    def stats(self) -> dict:
        """Snapshot size and age, for health/diagnostics."""
        names = self._names
        return {
            "loaded": names is not None,
            "count": len(names) if names is not None else 0,
            "loaded_at": self._loaded_at if names is not None else None,
            "age_seconds": (self._clock() - self._loaded_at) if names is not None else None,
            "ttl_seconds": self.ttl_seconds,
            "stale": self._is_stale(),
            "reload_count": self.reload_count,
        }


# Singleton instance
_oracle: Optional[FirstNameOracle] = None


def get_first_name_oracle() -> FirstNameOracle:
    """Get or create the FirstNameOracle backed by the contact store and cache store."""
    global _oracle
    if _oracle is None:
        from contact_matcher.services.cache_store import get_cache_store
        from contact_matcher.services.contact_store import get_contact_store
        _oracle = FirstNameOracle(get_contact_store(), get_cache_store())
    return _oracle
