"""
Core Application - Infrastructure & Base Classes

This app contains infrastructure code shared by the domain apps
(payments, refunds):

- Generic, reusable base classes (no domain-specific logic)
- Clear extension points for domain apps
- Infrastructure concerns separated from business logic

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes
    - ValidationError: Input validation failures
    - NotFoundError: Resource not found
    - ConflictError: State conflicts (concurrent modifications, transitions)
    - ExternalServiceError: Collaborator/service failures
"""

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from core.services import BaseService, ServiceResult

# Note: Models and model mixins are NOT imported here because they
# depend on Django's app registry being ready. Import them directly:
#   from core.models import BaseModel
#   from core.model_mixins import UUIDPrimaryKeyMixin

__all__ = [
    # Services
    "BaseService",
    "ServiceResult",
    # Exceptions
    "BaseApplicationError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "ExternalServiceError",
]
