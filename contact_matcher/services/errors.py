"""
Error types for contact resolution.

Only genuine service/infrastructure failures are exceptions. A transaction
that lacks the required fields, or an analyser with name extraction switched
off, is a normal "nothing to do" result and never raises.
"""
from typing import Any, Optional


class MatcherError(Exception):
    """Base class for contact matcher errors."""
    pass


class ExternalServiceFailure(MatcherError):
    """Raised when the get-or-create contact service fails or is unreachable."""

    def __init__(self, service: str, message: str, params: Optional[dict[str, Any]] = None):
        self.service = service
        self.message = message
        self.params = params
        super().__init__(f"{service}: {message}")


class CacheSourceUnavailable(MatcherError):
    """Raised when the known first names can't be loaded from their source."""
    pass


class InsufficientContactData(ExternalServiceFailure):
    """Raised by the directory when the fields can't identify any contact."""
    pass
