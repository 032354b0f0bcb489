"""
Core Application - Infrastructure & Base Classes

Generic, reusable base classes with no gateway-specific logic.

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
    - ConflictError: State conflicts (duplicates, etc.)
    - ExternalServiceError: Third-party service failures

Helpers (import from core.helpers):
    - hash_string: String hashing
    - get_client_ip: Client IP extraction

Views (import from core.views):
    - health_check: Database and cache health endpoint
"""
