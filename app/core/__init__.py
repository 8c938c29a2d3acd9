"""
Core Application - Infrastructure & Base Classes

This app contains infrastructure code shared by the domain apps
(authentication, payments):

- Generic, reusable base classes (no domain-specific logic)
- Clear extension points for domain apps
- Infrastructure concerns separated from business logic

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes
    - ValidationError: Input validation failures
    - NotFoundError: Resource not found
    - PermissionDeniedError: Authorization failures
    - ConflictError: State conflicts (transitions, lock contention)
    - ExternalServiceError: Third-party service failures

Views (import from core.views):
    - health_check: Liveness endpoint for load balancers
"""
