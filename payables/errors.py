"""
Domain errors and the typed result returned by every core operation.

Services raise DomainError subclasses internally; the service_operation
decorator converts them at the operation boundary into a ServiceResult:

    ServiceResult(success=False, error_code="INVALID_STATE", message="...")

so callers never see these exceptions.
"""

import functools
from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar

import structlog
from pydantic import ValidationError

logger = structlog.get_logger()

T = TypeVar("T")

PAYLOAD_TAGS = frozenset({"vendor", "category", "invoice_profile", "payment_type"})

UNAUTHORIZED = "UNAUTHORIZED"
NOT_FOUND = "NOT_FOUND"
INVALID_STATE = "INVALID_STATE"
VALIDATION_FAILED = "VALIDATION_FAILED"
CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"
DEPENDENCY_FAILURE = "DEPENDENCY_FAILURE"


def _field_path(loc: tuple) -> str:
    parts = [str(p) for i, p in enumerate(loc) if not (i == 0 and p in PAYLOAD_TAGS)]
    return ".".join(parts) or "payload"


class DomainError(Exception):
    """Base exception for all domain errors."""

    code = "DOMAIN_ERROR"

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class Unauthorized(DomainError):
    """Actor lacks the role or ownership required for the operation."""

    code = UNAUTHORIZED


class NotFound(DomainError):
    code = NOT_FOUND


class InvalidState(DomainError):
    """Entity is not in the required state for the operation."""

    code = INVALID_STATE


class ValidationFailed(DomainError):
    code = VALIDATION_FAILED

    @classmethod
    def from_pydantic(cls, exc: ValidationError) -> "ValidationFailed":
        """Flatten a pydantic error into a message naming the first bad field.

        Discriminated-union errors are located under the tag value
        (``("vendor", "name")``), which is dropped from the field path.
        """
        errors = [
            {"field": _field_path(e["loc"]), "message": e["msg"]}
            for e in exc.errors(include_url=False)
        ]
        first = errors[0]
        return cls(f"{first['field']}: {first['message']}", {"errors": errors})


class ConcurrencyConflict(DomainError):
    code = CONCURRENCY_CONFLICT


class DependencyFailure(DomainError):
    """A collaborator (materialization, default lookup) failed; work rolled back."""

    code = DEPENDENCY_FAILURE


# Payment ledger specialisations. They keep the kind of their parent so
# callers can match on error_code alone.


class InvoiceNotFound(NotFound):
    def __init__(self, invoice_id):
        super().__init__(f"Invoice {invoice_id} not found", {"invoice_id": str(invoice_id)})


class InvoiceArchived(InvalidState):
    def __init__(self, invoice_id):
        super().__init__(
            "Cannot add payment to archived invoice", {"invoice_id": str(invoice_id)}
        )


class InvoiceNotEditable(InvalidState):
    MESSAGES = {
        "pending_approval": (
            "Cannot add payment to invoice pending approval. "
            "Please wait for admin approval first."
        ),
        "rejected": "Cannot add payment to rejected invoice.",
        "on_hold": "Cannot add payment to invoice on hold.",
    }

    def __init__(self, invoice_id, status: str):
        super().__init__(
            self.MESSAGES.get(status, f"Cannot add payment to invoice in status {status}"),
            {"invoice_id": str(invoice_id), "status": status},
        )


class PendingPaymentExists(ConcurrencyConflict):
    def __init__(self, invoice_id):
        super().__init__(
            "Cannot add payment while another payment is pending approval",
            {"invoice_id": str(invoice_id)},
        )


class AmountExceedsBalance(ValidationFailed):
    def __init__(self, amount, remaining_balance):
        super().__init__(
            f"Payment amount ({amount:.2f}) exceeds remaining balance "
            f"({remaining_balance:.2f})",
            {"amount": str(amount), "remaining_balance": str(remaining_balance)},
        )


@dataclass
class ServiceResult(Generic[T]):
    success: bool
    data: Optional[T] = None
    error_code: Optional[str] = None
    message: Optional[str] = None
    details: dict = field(default_factory=dict)

    @classmethod
    def ok(cls, data: T) -> "ServiceResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: DomainError) -> "ServiceResult[Any]":
        return cls(
            success=False,
            error_code=error.code,
            message=error.message,
            details=error.details,
        )


@dataclass
class BulkItemResult:
    id: Any
    success: bool
    error_code: Optional[str] = None
    message: Optional[str] = None


def service_operation(func):
    """Run a core operation and wrap its outcome in a ServiceResult."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs) -> ServiceResult:
        try:
            with structlog.contextvars.bound_contextvars(operation=func.__name__):
                data = await func(*args, **kwargs)
        except DomainError as e:
            logger.info(
                "operation_failed",
                operation=func.__name__,
                error_code=e.code,
                message=e.message,
            )
            return ServiceResult.fail(e)
        except Exception:
            logger.exception("operation_error", operation=func.__name__)
            raise
        return ServiceResult.ok(data)

    return wrapper
