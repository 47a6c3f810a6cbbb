"""
Error taxonomy for the ledger core.

Every error carries a human-readable message, an HTTP-ish status code the
request layer can map directly, and a ``details`` dict with the values a UI
needs to react (available stock, current balance, ...).
"""
from __future__ import annotations


class LedgerError(Exception):
    """Base class for all errors raised by the ledger core."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        rv = dict(self.details)
        rv["error"] = self.message
        rv["code"] = type(self).__name__
        return rv


class ValidationError(LedgerError, ValueError):
    """Malformed selection, quantity, or payload. Caller should re-prompt."""


class NotFoundError(LedgerError):
    status_code = 404


class ConflictError(LedgerError):
    """Business rule conflict (e.g. changing valuation on a product with history)."""

    status_code = 409


class InsufficientStock(LedgerError):
    status_code = 409

    def __init__(self, available: int, requested: int, product_id: int | None = None):
        super().__init__(
            f"Not enough units available: requested {requested}, available {available}",
            details={"product_id": product_id, "available": available, "requested": requested},
        )
        self.available = available
        self.requested = requested


class InsufficientTokens(LedgerError):
    status_code = 402

    def __init__(self, balance: int, required: int):
        super().__init__(
            f"Insufficient tokens. Need {required}, have {balance}",
            details={"balance": balance, "required": required},
        )
        self.balance = balance
        self.required = required


class PendingRequestExists(LedgerError):
    status_code = 409

    def __init__(self, request_id: int | None = None):
        super().__init__(
            "You already have a pending token purchase request",
            details={"request_id": request_id},
        )
        self.request_id = request_id


class AlreadyReviewed(LedgerError):
    status_code = 409

    def __init__(self, request_id: int, status: str):
        super().__init__(
            "This purchase has already been reviewed",
            details={"request_id": request_id, "status": status},
        )
        self.status = status


class StorageUnavailable(LedgerError):
    """Storage failure that outlasted every retry attempt. Passed through to the caller."""

    status_code = 503
