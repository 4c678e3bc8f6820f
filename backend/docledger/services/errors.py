# Overview: Error taxonomy shared by every docledger service.

"""
Service error taxonomy.

- NotFoundError: a referenced document is absent. Raised before any write.
- ValidationError: a business rule rejects the request. Raised before any write.
- ConflictError: a unique key is already taken. Raised before any write.
- OperationFailedError: the store failed after a saga had started writing.
  Always raised after compensation has been attempted.

Every error carries a dotted message `key` (also its str()) and optional
interpolation `vars`; the HTTP layer maps `status_code` directly.
"""
from __future__ import annotations

from dataclasses import dataclass


class ServiceError(Exception):
    """Base class for errors surfaced by the services."""

    status_code = 500

    def __init__(self, key: str, **vars):
        super().__init__(key)
        self.key = key
        self.vars = vars

    def to_dict(self) -> dict:
        return {"error": self.key, "vars": self.vars or None}


class NotFoundError(ServiceError):
    """Raised when a referenced account/category/product/PO/batch is absent."""
    status_code = 404


class ValidationError(ServiceError):
    """Raised when input or a business rule rejects the operation."""
    status_code = 400


class ConflictError(ServiceError):
    """Raised when a unique key (batch number, account name) is already taken."""
    status_code = 409


class InvalidStatusTransitionError(ValidationError):
    """Raised when a purchase order status change is not in the transition table."""

    def __init__(self, key: str, from_status: str, to_status: str):
        super().__init__(key, **{"from": from_status, "to": to_status})
        self.from_status = from_status
        self.to_status = to_status


@dataclass(frozen=True)
class SecondaryFailure:
    """A compensation step that failed while unwinding a saga."""
    step: str
    error: Exception

    def describe(self) -> str:
        return f"{self.step}: {type(self.error).__name__}: {self.error}"


class OperationFailedError(ServiceError):
    """
    Raised when a multi-document operation failed part way through.

    The message stays the opaque key; the triggering exception is chained as
    __cause__ and exposed as `cause` for server-side logging.
    """
    status_code = 500

    def __init__(self, key: str, *, cause: Exception | None = None,
                 secondary_failures: list[SecondaryFailure] | None = None, **vars):
        super().__init__(key, **vars)
        self.cause = cause
        self.secondary_failures = list(secondary_failures or [])

    @property
    def fully_compensated(self) -> bool:
        return not self.secondary_failures
