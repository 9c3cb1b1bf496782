"""
Base service layer patterns for business logic encapsulation.

This module provides foundational patterns for the service layer:
- ServiceResult: Standard result wrapper for consistent success/failure handling
- BaseService: Base class with common service utilities

Service Layer Philosophy:
    Services encapsulate business logic separate from models and from
    whatever presentation layer calls them. Models handle data, services
    handle logic.

Pattern Comparison:
    - ServiceResult: Use for checks whose failure is an ordinary outcome
      (validators report a reason instead of raising)
    - Exceptions: Use for failures the caller must handle by kind
      (see core.exceptions)

Usage:
    from core.services import BaseService, ServiceResult

    def validate_actor(actor: str | None) -> ServiceResult[None]:
        if not actor:
            return ServiceResult.failure("Actor is required", "MISSING_ACTOR")
        return ServiceResult.success(None)

    class RefundWorkflowService(BaseService):
        @classmethod
        def approve(cls, refund_id, approved_by):
            refund = RefundStore.get_by_id(refund_id)
            ...
            cls.get_logger().info("Refund approved")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Generic, TypeVar

# Generic type for ServiceResult data
T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Provides consistent success/failure handling without exceptions.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code for caller handling
        errors: Field-level errors for validation failures

    Usage:
        # Success case
        return ServiceResult.success(None)

        # Failure case
        return ServiceResult.failure(
            "Refund amount exceeds remaining refundable amount",
            error_code="INVALID_AMOUNT",
            errors={"amount": ["Must be at most 40.00"]},
        )

        # Check result
        result = validate_creation(total, already_refunded, amount)
        if not result:
            print(f"Error: {result.error} ({result.error_code})")
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """
        Create a successful result.

        Args:
            data: The result data

        Returns:
            ServiceResult with success=True and data set
        """
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code for caller handling
            errors: Field-level errors (for validation failures)

        Returns:
            ServiceResult with success=False and error details
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
        )

    def __bool__(self) -> bool:
        """Allow using result in boolean context (same as ``result.success``)."""
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Provides a logger named after each service.

    Design Notes:
        - Use @classmethod (no instance state)
        - Services should be stateless; collaborators are injected at
          class level so tests can swap them
        - Raise typed exceptions from core.exceptions for failures the
          caller must distinguish
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Returns a logger named after the service class for
        easy filtering in logs.
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")
