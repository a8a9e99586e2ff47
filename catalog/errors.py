"""
Exception types raised by the catalog persistence and service layers.

Absence is never an error: lookups return ``None`` and boolean operations
return ``False``.
"""

from typing import Iterable, List, Optional


class CatalogError(Exception):
    """Base class for catalog errors."""


class DatabaseConnectionError(CatalogError, ConnectionError):
    """The backing store could not be reached."""


class ConstraintViolationError(CatalogError):
    """A uniqueness constraint rejected a write that has no boolean outcome."""


class OperationCancelledError(CatalogError):
    """The caller cancelled the operation; any open transaction was rolled back."""


class ValidationError(CatalogError):
    """Caller-supplied data is invalid. Raised before the store is touched."""

    def __init__(self, errors: Optional[Iterable[str]] = None, message: Optional[str] = None):
        self.errors: List[str] = list(errors or [])
        if message is None:
            message = "; ".join(self.errors) or "Validation failed"
        super().__init__(message)
