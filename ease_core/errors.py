"""Error taxonomy for the purchase ledger and rank promotion engine."""

from __future__ import annotations


class EaseError(Exception):
    """Base class for every error raised by Ease Core."""


class ConfigurationError(EaseError):
    """Raised when a required setting (such as the webhook secret) is missing."""


class AuthenticationError(EaseError):
    """Raised when an inbound event carries a missing or invalid signature."""

    def __init__(self, category: str, message: str | None = None) -> None:
        self.category = category
        super().__init__(message or category.replace("_", " "))


class ValidationError(EaseError):
    """Raised when a contribution or payload is malformed or non-positive."""


class PersistenceError(EaseError):
    """Raised when the backing storage cannot be read or written."""


class CollaboratorError(EaseError):
    """Raised when a Discord call (role change, announcement) fails.

    Never propagated to callers of the ingestion pipeline; the ledger mutation
    has already been committed when this is raised.
    """

    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"{operation} failed{detail}")
