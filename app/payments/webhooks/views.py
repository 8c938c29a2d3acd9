"""
Webhook endpoint views for Pi payment callbacks.

This module provides the HTTP endpoint for receiving Pi callbacks.
The view:
1. Verifies the HMAC signature (when PI_WEBHOOK_SECRET is set)
2. Parses the JSON body into a WebhookEvent
3. Records the payload in the audit trail
4. Dispatches the event to its handler synchronously
5. Always answers with a JSON acknowledgement

Callbacks act on the payment slot of the session the request carries,
so the demo's in-browser "Test Webhook" button and the provider share
one code path.

Usage:
    # In urls.py
    from payments.webhooks.views import pi_callback

    urlpatterns = [
        path("webhooks/pi/", pi_callback, name="pi_callback"),
    ]
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings
from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt

from authentication.session_store import SessionStore
from payments.audit import record_event
from payments.exceptions import InvalidSignatureError, MalformedWebhookPayloadError
from payments.types import WebhookEvent
from payments.webhooks.handlers import dispatch_webhook

if TYPE_CHECKING:
    from typing import Any


logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Pi-Signature"


@dataclass
class WebhookResponse:
    """Status code and JSON body returned to the webhook caller."""

    body: dict[str, Any]
    status_code: int = 200

    @classmethod
    def received(cls) -> WebhookResponse:
        return cls({"status": "received"})

    @classmethod
    def method_not_allowed(cls) -> WebhookResponse:
        return cls({"status": "method_not_allowed"}, status_code=405)

    def as_http(self) -> JsonResponse:
        response = JsonResponse(self.body, status=self.status_code)
        if self.status_code == 405:
            response["Allow"] = "POST"
        return response


def compute_signature(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of the raw body."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: str | None, secret: str | None = None) -> None:
    """
    Check the X-Pi-Signature header against the shared secret.

    A blank secret disables the check.

    Raises:
        InvalidSignatureError: Header missing or not matching
    """
    secret = settings.PI_WEBHOOK_SECRET if secret is None else secret
    if not secret:
        return
    if not signature:
        raise InvalidSignatureError("Missing webhook signature")
    if not hmac.compare_digest(compute_signature(body, secret), signature.strip().lower()):
        raise InvalidSignatureError("Webhook signature mismatch")


def parse_event(body: bytes) -> WebhookEvent:
    """
    Decode a webhook body.

    Raises:
        MalformedWebhookPayloadError: Not JSON, or not a JSON object
    """
    try:
        payload = json.loads(body)
    except (ValueError, UnicodeDecodeError) as e:
        raise MalformedWebhookPayloadError(
            "Webhook body is not valid JSON",
            details={"error": str(e)},
        ) from e

    if not isinstance(payload, dict):
        raise MalformedWebhookPayloadError(
            "Webhook body is not a JSON object",
            details={"type": type(payload).__name__},
        )
    return WebhookEvent.from_payload(payload)


def ingest(body: bytes, store: SessionStore, signature: str | None = None) -> WebhookResponse:
    """
    Process one webhook delivery and build the acknowledgement.

    Never raises: handler failures are logged and still acknowledged,
    so the provider does not treat them as delivery faults.
    """
    try:
        verify_signature(body, signature)
    except InvalidSignatureError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"error": e.message},
        )
        return WebhookResponse({"status": "invalid_signature"}, status_code=403)

    try:
        event = parse_event(body)
    except MalformedWebhookPayloadError as e:
        logger.info("Webhook payload rejected", extra=e.details)
        return WebhookResponse({"status": "invalid_payload"})

    record_event("webhook_received", event.raw)
    logger.info(
        f"Received Pi webhook: {event.type}",
        extra={"event_type": event.type, "payment_id": event.payment_id},
    )

    try:
        result = dispatch_webhook(event, store)
    except Exception as e:
        logger.error(
            f"Webhook handler failed: {type(e).__name__}",
            extra={"event_type": event.type, "payment_id": event.payment_id},
            exc_info=True,
        )
        return WebhookResponse.received()

    if not result.success:
        logger.warning(
            f"Webhook handler reported failure: {result.error}",
            extra={"event_type": event.type, "error_code": result.error_code},
        )
    elif isinstance(result.data, dict) and "response" in result.data:
        return WebhookResponse(result.data["response"])

    return WebhookResponse.received()


@csrf_exempt
def pi_callback(request: HttpRequest) -> JsonResponse:
    """
    Receive a Pi payment callback.

    Security:
    - HMAC-SHA256 over the raw body in X-Pi-Signature when
      PI_WEBHOOK_SECRET is configured; unsigned otherwise (demo mode)
    - CSRF exemption required for external webhooks
    - Only POST requests accepted; anything else gets a JSON 405

    Returns:
        JsonResponse with status:
        - 200: {"status": "received"}, {"status": "invalid_payload"} or
          the probe answer {"status": "ok", "message": "Webhook working"}
        - 403: {"status": "invalid_signature"}
        - 405: {"status": "method_not_allowed"}
    """
    if request.method != "POST":
        logger.info("Webhook called with wrong method", extra={"method": request.method})
        return WebhookResponse.method_not_allowed().as_http()

    response = ingest(
        request.body,
        SessionStore(request),
        signature=request.headers.get(SIGNATURE_HEADER),
    )
    return response.as_http()


__all__ = [
    "SIGNATURE_HEADER",
    "WebhookResponse",
    "compute_signature",
    "ingest",
    "parse_event",
    "pi_callback",
    "verify_signature",
]
