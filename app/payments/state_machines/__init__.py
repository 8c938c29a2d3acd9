"""
State machine enums and helpers for the payment slot.

Transitions are validated against ALLOWED_TRANSITIONS; the payment record
is a plain value object, so there is no model-level FSM here.
"""

from payments.state_machines.states import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    PaymentStatus,
    TransitionOutcome,
    WebhookEventType,
    can_transition,
    is_terminal,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "TERMINAL_STATUSES",
    "PaymentStatus",
    "TransitionOutcome",
    "WebhookEventType",
    "can_transition",
    "is_terminal",
]
