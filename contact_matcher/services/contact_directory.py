"""
Contact directory: the "get or create contact" service.

Two implementations share one contract, get_or_create(fields) -> contact ID:
- SqliteContactDirectory matches against the local contact store
- HttpContactDirectory calls a remote /api/contacts/getorcreate endpoint

Both raise ExternalServiceFailure when the call can't be completed.
Identical inputs always resolve to the same contact, so callers may retry.
"""
import logging
import sqlite3
from typing import Any, Mapping, Optional, Protocol, Union

import httpx

from config.resolver_config import get_directory_match_fields
from config.settings import settings
from contact_matcher.services.contact_store import CONTACT_FIELDS, Contact, ContactStore, get_contact_store
from contact_matcher.services.errors import ExternalServiceFailure, InsufficientContactData
from contact_matcher.services.resilience import RetryConfig, is_retryable_status, retry_sync

logger = logging.getLogger(__name__)


def normalize_contact_id(value: Union[str, int, None]) -> Optional[str]:
    """
    Normalize a contact ID to its string form.

    Handles ints, numeric strings with whitespace and floats like 12.0 coming
    out of JSON, so 12, "12" and " 12 " compare equal.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return str(value)
        value = int(value)
    text = str(value).strip()
    return text or None


class ContactDirectory(Protocol):
    def get_or_create(self, fields: Mapping[str, Any]) -> str:
        ...


class SqliteContactDirectory:
    """
    Get-or-create against the local contact store.

    The profile in the fields selects which contact fields must match
    (see directory_profiles in analysers.yaml). Empty values never take
    part in matching.
    """

    SERVICE_NAME = "contact_directory"

    def __init__(self, store: Optional[ContactStore] = None):
        self._store = store or get_contact_store()

    @property
    def store(self) -> ContactStore:
        return self._store

    def get_or_create_contact(self, fields: Mapping[str, Any]) -> tuple[Contact, bool]:
        """
        Resolve fields to a contact, creating it if no contact matches.

        Returns:
            Tuple of (contact, created)

        Raises:
            InsufficientContactData: if the fields can't identify a contact
            ExternalServiceFailure: if the DB fails
        """
        params = dict(fields)
        profile = params.get("profile")
        contact_type = str(params.get("contact_type") or "Individual")
        values = {f: str(params.get(f) or "").strip() for f in CONTACT_FIELDS}

        criteria = {
            f: values[f]
            for f in get_directory_match_fields(profile)
            if f in values and values[f]
        }
        if not criteria:
            raise InsufficientContactData(
                self.SERVICE_NAME,
                "Not enough identifying data to match or create a contact",
                params=params,
            )

        try:
            contact, created = self._store.get_or_create(contact_type, criteria, values)
        except sqlite3.Error as e:
            raise ExternalServiceFailure(self.SERVICE_NAME, str(e), params=params) from e

        logger.debug(
            f"{'Created' if created else 'Matched'} contact {contact.id} "
            f"(profile={profile or 'default'}, on {', '.join(sorted(criteria))})"
        )
        return contact, created

    def get_or_create(self, fields: Mapping[str, Any]) -> str:
        contact, _ = self.get_or_create_contact(fields)
        return normalize_contact_id(contact.id)


class _RetryableStatus(Exception):
    """Transient HTTP status from the directory service."""

    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"HTTP {response.status_code}")


class HttpContactDirectory:
    """
    Get-or-create against a remote contact matcher instance.

    Connection errors, timeouts and transient statuses (5xx, 429, 408) are
    retried; anything else fails immediately.
    """

    SERVICE_NAME = "remote_contact_directory"
    ENDPOINT = "/api/contacts/getorcreate"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        client: Optional[httpx.Client] = None,
        retry_delay: float = 0.5,
    ):
        """
        Initialize the client.

        Args:
            base_url: Service URL (default from settings)
            timeout: Request timeout in seconds (default from settings)
            max_retries: Retries on transient errors (default from settings)
            client: Preconfigured httpx client (e.g. with a mock transport)
            retry_delay: Base delay between retries in seconds
        """
        self.base_url = (base_url or settings.directory_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.directory_timeout
        self._client = client or httpx.Client(timeout=self.timeout)
        self._retry_config = RetryConfig(
            max_retries=max_retries if max_retries is not None else settings.directory_max_retries,
            base_delay=retry_delay,
            retryable_exceptions=(httpx.TransportError, _RetryableStatus),
        )

    def _post(self, params: dict) -> httpx.Response:
        @retry_sync(self._retry_config)
        def post_getorcreate() -> httpx.Response:
            response = self._client.post(f"{self.base_url}{self.ENDPOINT}", json=params)
            if is_retryable_status(response.status_code):
                raise _RetryableStatus(response)
            return response

        return post_getorcreate()

    def get_or_create(self, fields: Mapping[str, Any]) -> str:
        params = dict(fields)
        try:
            response = self._post(params)
        except (httpx.TransportError, _RetryableStatus) as e:
            raise ExternalServiceFailure(self.SERVICE_NAME, f"Request failed: {e}", params=params) from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        if response.status_code >= 400 or payload.get("is_error"):
            message = payload.get("error") or payload.get("detail") or f"HTTP {response.status_code}"
            raise ExternalServiceFailure(self.SERVICE_NAME, str(message), params=params)

        contact_id = normalize_contact_id(payload.get("id"))
        if contact_id is None:
            raise ExternalServiceFailure(self.SERVICE_NAME, "Response contained no contact id", params=params)
        return contact_id

    def close(self) -> None:
        self._client.close()


# Singleton instance
_directory: Optional[ContactDirectory] = None


def get_contact_directory() -> ContactDirectory:
    """Get the configured directory: remote if MATCHER_DIRECTORY_URL is set, else local."""
    global _directory
    if _directory is None:
        if settings.directory_is_remote:
            logger.info(f"Using remote contact directory at {settings.directory_url}")
            _directory = HttpContactDirectory()
        else:
            _directory = SqliteContactDirectory()
    return _directory
