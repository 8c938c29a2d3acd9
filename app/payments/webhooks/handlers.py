"""
Webhook event handlers for Pi payment callbacks.

This module provides a handler registry and implementations for
processing the Pi callback event types.

The handler registry allows:
- Clean separation between event routing and handling
- Easy extension for new event types
- Unknown event types acknowledged without side effects

Usage:
    from payments.webhooks.handlers import dispatch_webhook, register_handler

    # Register a custom handler
    @register_handler("payment_cancelled")
    def handle_payment_cancelled(event: WebhookEvent, store: SessionStore) -> ServiceResult:
        ...

    # Dispatch an event to its handler
    result = dispatch_webhook(event, store)
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable

from core.services import ServiceResult
from payments.audit import record_event
from payments.services import PaymentService
from payments.state_machines import PaymentStatus, WebhookEventType

if TYPE_CHECKING:
    from authentication.session_store import SessionStore
    from payments.types import WebhookEvent


logger = logging.getLogger(__name__)

Handler = Callable[["WebhookEvent", "SessionStore"], ServiceResult]


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Handler] = {}


def register_handler(event_type: str) -> Callable[[Handler], Handler]:
    """
    Decorator to register a webhook event handler.

    Usage:
        @register_handler("payment_approved")
        def handle_payment_approved(event, store) -> ServiceResult:
            ...

    A handler whose result data holds a "response" dict replaces the
    default {"status": "received"} acknowledgement.
    """

    def decorator(func: Handler) -> Handler:
        WEBHOOK_HANDLERS[str(event_type)] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(event: WebhookEvent, store: SessionStore) -> ServiceResult:
    """
    Dispatch a webhook event to the appropriate handler.

    If no handler is registered, logs and returns success (unknown events
    are expected noise).
    """
    handler = WEBHOOK_HANDLERS.get(event.type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {event.type}",
            extra={"payment_id": event.payment_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {event.type} to handler",
        extra={"payment_id": event.payment_id},
    )
    return handler(event, store)


# =============================================================================
# Payment Handlers
# =============================================================================


@register_handler(WebhookEventType.PAYMENT_APPROVED)
def handle_payment_approved(event: WebhookEvent, store: SessionStore) -> ServiceResult:
    """The payer approved the payment in the Pi app."""
    record_event(
        "payment_approved",
        {
            "payment_id": event.payment_id,
            "amount": event.amount,
            "processed_at": int(time.time()),
        },
    )
    outcome = PaymentService.apply_status(
        store,
        event.payment_id,
        PaymentStatus.APPROVED,
        {"amount": event.amount},
    )
    return ServiceResult.success({"outcome": outcome.value})


@register_handler(WebhookEventType.PAYMENT_COMPLETED)
def handle_payment_completed(event: WebhookEvent, store: SessionStore) -> ServiceResult:
    """
    The blockchain transaction for the payment is final.

    The completion is confirmed with the provider before the slot moves.
    """
    record_event("payment_completed", {"txid": event.txid})
    outcome = PaymentService.complete_payment(store, event.payment_id, event.txid)
    return ServiceResult.success({"outcome": outcome.value})


@register_handler(WebhookEventType.PAYMENT_FAILED)
def handle_payment_failed(event: WebhookEvent, store: SessionStore) -> ServiceResult:
    """The provider gave up on the payment (cancelled or expired)."""
    record_event(
        "payment_failed",
        {"payment_id": event.payment_id, "reason": event.reason},
    )
    outcome = PaymentService.apply_status(
        store,
        event.payment_id,
        PaymentStatus.FAILED,
        {"reason": event.reason},
    )
    return ServiceResult.success({"outcome": outcome.value})


# =============================================================================
# Probe
# =============================================================================


@register_handler(WebhookEventType.TEST)
def handle_test(event: WebhookEvent, store: SessionStore) -> ServiceResult:
    """Liveness probe; touches nothing."""
    return ServiceResult.success(
        {"response": {"status": "ok", "message": "Webhook working"}}
    )


__all__ = [
    "WEBHOOK_HANDLERS",
    "dispatch_webhook",
    "handle_payment_approved",
    "handle_payment_completed",
    "handle_payment_failed",
    "handle_test",
    "register_handler",
]
