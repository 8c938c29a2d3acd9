"""
Payment-specific exceptions for cashout and webhook operations.

This module provides a hierarchy of exceptions for the payment lifecycle,
including payment domain errors, concurrency control errors, and
provider-specific errors.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── InvalidAmountError - Cashout amount outside the testnet bounds (also ValidationError)
    ├── MalformedWebhookPayloadError - Webhook body is not a JSON object (also ValidationError)
    ├── UnmatchedPaymentError - Webhook references a payment not in the slot (also NotFoundError)
    └── ProviderError - Payment provider call failed
        ├── ProviderRequestError - Provider rejected the request (permanent)
        ├── ProviderUnavailableError - Provider unreachable (transient)
        └── ProviderTimeoutError - Provider did not answer in time (transient)

    UnauthenticatedError - Operation requires a live session (inherits PermissionDeniedError)
    InvalidSignatureError - Webhook signature mismatch (inherits PermissionDeniedError)
    InvalidStateTransitionError - Backward/terminal status change (inherits ConflictError)
    LockAcquisitionError - Session lock timeout (inherits ConflictError)

Usage:
    from payments.exceptions import (
        InvalidAmountError,
        InvalidStateTransitionError,
        LockAcquisitionError,
    )

    # Amount outside the configured range
    raise InvalidAmountError(
        "Invalid amount. Testnet limit: 0-100 π",
        details={"min": "0", "max": "100", "violated": "max"},
    )

    # Invalid state transition
    raise InvalidStateTransitionError(
        "Cannot move payment from 'completed' to 'approved'",
        details={"current_status": "completed", "target_status": "approved"},
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """
    Base exception for all payment operations.

    All payment-specific exceptions inherit from this class,
    which itself inherits from BaseApplicationError for
    consistent error payloads.
    """

    default_error_code: str = "PAYMENT_ERROR"


class InvalidAmountError(PaymentError, ValidationError):
    """
    Raised when a cashout amount is outside the configured bounds.

    The violated bound is carried in details so the caller can display it:
        {"min": "0", "max": "100", "violated": "min" | "max"}
    """

    default_error_code: str = "INVALID_AMOUNT"


class MalformedWebhookPayloadError(PaymentError, ValidationError):
    """
    Raised when an inbound webhook body cannot be parsed into an event.

    Never surfaces as a fault to the provider; the webhook view converts it
    into an `invalid_payload` acknowledgement.
    """

    default_error_code: str = "INVALID_PAYLOAD"


class UnmatchedPaymentError(PaymentError, NotFoundError):
    """
    Raised when a status update references a payment not held in the slot.

    Expected noise: only the most recent payment per session is retained,
    so callbacks for stale or foreign payments land here.
    """

    default_error_code: str = "PAYMENT_NOT_MATCHED"


class UnauthenticatedError(PermissionDeniedError):
    """
    Raised when an operation requires a live, authenticated session.

    Example:
        if not AuthService.is_authenticated(store):
            raise UnauthenticatedError("Not authenticated")
    """

    default_error_code: str = "UNAUTHENTICATED"


class InvalidSignatureError(PermissionDeniedError):
    """
    Raised when a webhook signature does not match the shared secret.
    """

    default_error_code: str = "INVALID_SIGNATURE"


# =============================================================================
# Provider Exceptions
# =============================================================================


class ProviderError(PaymentError, ExternalServiceError):
    """
    Base exception for all payment provider errors.

    Use is_retryable to tell transient failures from permanent ones.
    No automatic retries happen inside a request; the flag only drives
    logging and the message shown to the user.
    """

    default_error_code: str = "PROVIDER_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        provider_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if provider_code:
            details["provider_code"] = provider_code
        super().__init__(message, error_code=error_code, details=details)
        self.provider_code = provider_code


class ProviderRequestError(ProviderError):
    """
    Raised when the provider rejects a request (4xx, bad credentials).

    Not retryable - the request itself must change.
    """

    default_error_code: str = "PROVIDER_REQUEST_REJECTED"


class ProviderUnavailableError(ProviderError):
    """
    Raised when the provider cannot be reached or answers with a 5xx.
    """

    default_error_code: str = "PROVIDER_UNAVAILABLE"
    is_retryable: bool = True


class ProviderTimeoutError(ProviderError):
    """
    Raised when the provider does not complete within the configured timeout.
    """

    default_error_code: str = "PROVIDER_TIMEOUT"
    is_retryable: bool = True


# =============================================================================
# Concurrency & State Exceptions
# =============================================================================


class LockAcquisitionError(ConflictError):
    """
    Raised when the per-session payment lock cannot be acquired.

    Example:
        raise LockAcquisitionError(
            "Failed to acquire lock 'lock:session:abc:payment' within 5.0s",
            details={"key": "lock:session:abc:payment", "timeout": 5.0},
        )
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a payment status change is not a forward edge.

    Allowed edges:
        pending -> approved -> completed
        pending -> completed
        pending/approved -> failed

    Internal only: PaymentService converts it into a `transition_rejected`
    audit entry and never shows it to end users.
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


__all__ = [
    "PaymentError",
    "InvalidAmountError",
    "MalformedWebhookPayloadError",
    "UnmatchedPaymentError",
    "UnauthenticatedError",
    "InvalidSignatureError",
    "ProviderError",
    "ProviderRequestError",
    "ProviderUnavailableError",
    "ProviderTimeoutError",
    "LockAcquisitionError",
    "InvalidStateTransitionError",
]
