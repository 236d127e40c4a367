# Overview: Error taxonomy shared by services and routes.

"""
Every service failure is raised as a LedgerError subclass. Routes never build
error bodies by hand: the app-level error handler renders `to_dict()` with
`http_status`.

Nothing here is retried automatically. A PersistenceError (for example a
unique-constraint collision on a generated invoice number) is surfaced so
the caller can re-submit.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for expected, client-visible failures."""

    code = "ERROR"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(LedgerError, ValueError):
    """400-level input problem, raised before any I/O."""

    code = "VALIDATION_ERROR"


class NotFoundError(LedgerError):
    code = "NOT_FOUND"
    http_status = 404


class ConflictError(LedgerError):
    """409-level business rule conflict (e.g., duplicate SKU)."""

    code = "CONFLICT"
    http_status = 409


class InsufficientStockError(LedgerError):
    """Requested quantity exceeds the variant's on-hand stock."""

    code = "INSUFFICIENT_STOCK"
    http_status = 409

    def __init__(self, sku: str, available: int, requested: int | None = None):
        super().__init__(
            f"Insufficient stock for {sku}. Available: {available}",
            details={"sku": sku, "available": available, "requested": requested},
        )
        self.sku = sku
        self.available = available


class CannotReverseError(LedgerError):
    """Cancelling a stock entry would drive a variant's stock negative."""

    code = "CANNOT_REVERSE"
    http_status = 409


class InvalidStateError(LedgerError):
    code = "INVALID_STATE"
    http_status = 409


class MissingReasonError(LedgerError):
    code = "MISSING_REASON"

    def __init__(self, message: str = "Cancel reason is required"):
        super().__init__(message)


class PersistenceError(LedgerError):
    """Generic transaction failure; the whole atomic phase was rolled back."""

    code = "PERSISTENCE_FAILURE"
    http_status = 500


class PermissionDeniedError(LedgerError):
    code = "PERMISSION_DENIED"
    http_status = 403
