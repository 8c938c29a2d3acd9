"""
Base exception classes for application-wide error handling.

This module provides a standardized exception hierarchy that enables:
- Consistent error payloads for views and webhook acknowledgements
- Machine-readable error codes for client handling
- Detailed error information for debugging

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Input validation failures
    ├── NotFoundError - Resource not found
    ├── PermissionDeniedError - Caller may not perform the operation
    ├── ConflictError - State conflicts (concurrent modifications, transitions)
    └── ExternalServiceError - Third-party service failures

Usage:
    from core.exceptions import ValidationError, NotFoundError

    # Raise with message only
    raise ValidationError("Amount must be a number")

    # Raise with error code and details
    raise ValidationError(
        "Amount out of range",
        error_code="INVALID_AMOUNT",
        details={"min": "0", "max": "100"},
    )

    # Convert to dict for a JSON response
    try:
        ...
    except BaseApplicationError as e:
        return JsonResponse(e.to_dict(), status=400)

Note:
    These exceptions are for domain/business logic errors.
    Expected failures inside services are returned as ServiceResult
    (see core.services); exceptions cover everything else.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (bounds, identifiers, etc.)

    Example:
        try:
            PaymentService.apply_status(store, payment_id, "completed")
        except ConflictError as e:
            logger.warning(f"Transition refused: {e.error_code}")
    """

    default_error_code: str = "APPLICATION_ERROR"

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
        Convert exception to dictionary for a JSON response.

        Returns:
            Dict with error, error_code, and details keys

        Example:
            {
                "error": "Invalid amount",
                "error_code": "INVALID_AMOUNT",
                "details": {"max": "100"}
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
    - Invalid field formats (amounts, identifiers)
    - Business rule violations (testnet limits)
    - Unparseable payloads
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested resource is not found.

    Note:
        Use for single-resource lookups where existence is expected.
    """

    default_error_code: str = "NOT_FOUND"


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when the caller may not perform an operation.

    Use for:
    - Operations that require a live, authenticated session
    - Requests whose sender identity could not be verified
    """

    default_error_code: str = "PERMISSION_DENIED"


class ConflictError(BaseApplicationError):
    """
    Raised when operation conflicts with current resource state.

    Use for:
    - Concurrent modification conflicts
    - Invalid state transitions
    - Lock contention

    Example:
        if record.status == "completed":
            raise ConflictError(
                "Payment already completed",
                error_code="INVALID_STATE_TRANSITION",
                details={"current_status": record.status},
            )
    """

    default_error_code: str = "CONFLICT"


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Use for:
    - Payment provider API failures
    - Network timeouts
    - Unexpected provider responses

    Note:
        Log the original error for debugging but don't expose
        internal details to end users.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
