"""
State enums for the payment slot and webhook events.

These are Django TextChoices so values serialize as plain strings inside the
JSON session payload and compare equal to the raw strings providers send.

State Machines Overview:

PaymentStatus:
    pending → approved → completed
    pending → completed (provider skipped the approval callback)
    pending/approved → failed
    completed, failed are terminal

WebhookEventType:
    payment_approved, payment_completed, payment_failed → status updates
    test → liveness probe, no state change
    unknown → anything else, acknowledged and ignored
"""

from django.db import models


class PaymentStatus(models.TextChoices):
    """
    States for a PaymentRecord held in the session slot.

    Terminal states: COMPLETED, FAILED
    Non-terminal states can only move forward.

    State Flow:
        PENDING → APPROVED → COMPLETED
        PENDING → COMPLETED

    Failure Flow:
        PENDING → FAILED
        APPROVED → FAILED
    """

    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


# Forward-only edges keyed by raw value. Anything not listed is rejected.
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    PaymentStatus.PENDING.value: frozenset(
        {
            PaymentStatus.APPROVED.value,
            PaymentStatus.COMPLETED.value,
            PaymentStatus.FAILED.value,
        }
    ),
    PaymentStatus.APPROVED.value: frozenset(
        {PaymentStatus.COMPLETED.value, PaymentStatus.FAILED.value}
    ),
    PaymentStatus.COMPLETED.value: frozenset(),
    PaymentStatus.FAILED.value: frozenset(),
}

TERMINAL_STATUSES: frozenset[str] = frozenset(
    {PaymentStatus.COMPLETED.value, PaymentStatus.FAILED.value}
)


def can_transition(current: str, target: str) -> bool:
    """Return True if `current` → `target` is a forward edge."""
    return str(target) in ALLOWED_TRANSITIONS.get(str(current), frozenset())


def is_terminal(status: str) -> bool:
    """Return True if no transition leaves `status`."""
    return str(status) in TERMINAL_STATUSES


class WebhookEventType(models.TextChoices):
    """
    Event types accepted on the provider callback endpoint.

    Anything the provider sends that is not listed here is treated as
    UNKNOWN: logged, acknowledged, never applied.
    """

    PAYMENT_APPROVED = "payment_approved", "Payment Approved"
    PAYMENT_COMPLETED = "payment_completed", "Payment Completed"
    PAYMENT_FAILED = "payment_failed", "Payment Failed"
    TEST = "test", "Test"
    UNKNOWN = "unknown", "Unknown"


class TransitionOutcome(models.TextChoices):
    """
    Result of applying a provider status update to the payment slot.

    APPLIED: the slot moved forward
    UNMATCHED: the slot is empty or holds another payment
    REJECTED: the edge is not allowed (backward, terminal, duplicate)
    """

    APPLIED = "applied", "Applied"
    UNMATCHED = "unmatched", "Unmatched"
    REJECTED = "rejected", "Rejected"


__all__ = [
    "ALLOWED_TRANSITIONS",
    "TERMINAL_STATUSES",
    "PaymentStatus",
    "TransitionOutcome",
    "WebhookEventType",
    "can_transition",
    "is_terminal",
]
