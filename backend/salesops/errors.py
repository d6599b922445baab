# Overview: Domain error taxonomy shared by services and routes.

"""
Domain errors.

Services raise these; routes translate them to JSON responses with the
status code carried on each class. None of them are retried automatically
except LedgerContention, which is what remains after the ledger has already
exhausted its own bounded retries.
"""

from __future__ import annotations


class SalesOpsError(Exception):
    """Base class for business rule failures."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(SalesOpsError):
    """Malformed draft or input; rejected before any state change."""

    status_code = 400


class PermissionDenied(SalesOpsError):
    status_code = 403


class NotFound(SalesOpsError):
    status_code = 404


class FeatureDisabled(SalesOpsError):
    """Operation belongs to a module switched off in configuration."""

    status_code = 404


class InvalidTransition(SalesOpsError):
    """Illegal status change (e.g. approving an already terminal entity)."""

    status_code = 409


class DuplicateRecord(SalesOpsError):
    """Unique business key already taken (catalog codes, target periods)."""

    status_code = 409


class LedgerError(SalesOpsError):
    """Stock ledger rule violation."""

    status_code = 422


class InsufficientStock(LedgerError):
    def __init__(self, product_id: int, branch_id: int, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for product {product_id} at branch {branch_id}. "
            f"Requested: {requested}, Available: {available}",
            details={
                "product_id": product_id,
                "branch_id": branch_id,
                "requested": requested,
                "available": available,
            },
        )
        self.product_id = product_id
        self.branch_id = branch_id
        self.requested = requested
        self.available = available


class InvalidAdjustment(LedgerError):
    pass


class LedgerContention(SalesOpsError):
    """Lock or transaction conflicts persisted past the retry limit."""

    status_code = 503
