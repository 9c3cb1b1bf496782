"""
Base exception classes for application-wide error handling.

This module provides a standardized exception hierarchy that enables:
- Consistent error reporting across the service layer
- Machine-readable error codes for caller handling
- Detailed error information for debugging

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Input validation failures
    ├── NotFoundError - Resource not found
    ├── ConflictError - State conflicts (concurrent modifications, transitions)
    └── ExternalServiceError - Collaborator/service failures

Usage:
    from core.exceptions import ValidationError, NotFoundError

    # Raise with message only
    raise ValidationError("Refund reason is too long")

    # Raise with error code for caller handling
    raise NotFoundError("Refund not found", error_code="REFUND_NOT_FOUND")

    # Raise with additional details
    raise ValidationError(
        "Validation failed",
        error_code="VALIDATION_ERROR",
        details={"amount": ["Must be positive"]}
    )

    # Convert to dict for a presentation layer
    try:
        ...
    except BaseApplicationError as e:
        return e.to_dict()

Note:
    These exceptions are for domain/business logic errors. Callers can
    check ``is_retryable`` to decide whether the same request may succeed
    if repeated later.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Provides a consistent interface for error handling across the application.
    All custom exceptions should inherit from this class.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for caller-side handling
        details: Additional error context (field errors, metadata, etc.)
        is_retryable: Whether repeating the request may succeed

    Example:
        try:
            refund = RefundWorkflowService.approve(refund_id, approved_by="Manager A")
        except NotFoundError as e:
            logger.warning(f"Refund not found: {e.error_code}")
            return e.to_dict()
    """

    default_error_code: str = "APPLICATION_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            error_code: Machine-readable error code (defaults to class default)
            details: Additional error context
        """
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for a response payload.

        Returns:
            Dict with error, error_code, and details keys

        Example:
            {
                "error": "Refund 6f1c... not found",
                "error_code": "REFUND_NOT_FOUND",
                "details": {"refund_id": "6f1c..."}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails.

    Use for:
    - Invalid amounts or formats
    - Missing required fields
    - Business rule violations

    Example:
        raise ValidationError(
            "Validation failed",
            error_code="VALIDATION_ERROR",
            details={"notes": ["Must be at most 2000 characters"]}
        )
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested resource is not found.

    Use for single-resource lookups where existence is expected.

    Example:
        refund = Refund.objects.filter(id=refund_id).first()
        if not refund:
            raise NotFoundError(
                f"Refund {refund_id} not found",
                error_code="REFUND_NOT_FOUND",
                details={"refund_id": str(refund_id)}
            )
    """

    default_error_code: str = "NOT_FOUND"


class ConflictError(BaseApplicationError):
    """
    Raised when operation conflicts with current resource state.

    Use for:
    - Concurrent modification conflicts
    - Invalid state transitions
    - Optimistic locking failures

    Example:
        if refund.status != "pending":
            raise ConflictError(
                f"Cannot approve refund in {refund.status} status",
                error_code="ILLEGAL_TRANSITION",
                details={"current_status": refund.status, "action": "approve"}
            )
    """

    default_error_code: str = "CONFLICT"


class ExternalServiceError(BaseApplicationError):
    """
    Raised when a call to an external collaborator fails.

    Use for:
    - Payment gateway failures
    - Network timeouts
    - Collaborator unavailability

    Example:
        try:
            gateway.set_payment_status(payment_id, "refunded")
        except DatabaseError as e:
            raise ExternalServiceError(
                "Payment gateway unavailable",
                error_code="PAYMENT_GATEWAY_ERROR",
                details={"original_error": str(e)}
            )

    Note:
        Log the original error for debugging but don't expose
        internal details to callers.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
