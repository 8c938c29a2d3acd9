"""
Tests for webhook views.

Tests cover:
- Probe, matched and unmatched status callbacks
- Malformed bodies and unknown event types
- HMAC signature verification
- Error handling (handler failures are still acknowledged)
"""

from unittest.mock import patch

import pytest
from django.core.cache import cache

from authentication.session_store import slot_cache_key
from payments.exceptions import InvalidSignatureError, MalformedWebhookPayloadError
from payments.services import PaymentService
from payments.webhooks.views import compute_signature, parse_event, verify_signature


def stored(client):
    return cache.get(slot_cache_key(client.session.session_key))


def slot_status(client):
    return stored(client)["status"]


# =============================================================================
# Probe Tests
# =============================================================================


class TestWebhookProbe:
    """Tests for the {"type": "test"} liveness probe."""

    def test_probe_answer(self, client, post_webhook, audit_events):
        response = post_webhook(client, {"type": "test"})

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "message": "Webhook working"}
        assert audit_events() == [("webhook_received", {"type": "test"})]

    def test_probe_through_index_alias(self, client, post_webhook):
        response = post_webhook(client, {"type": "test"}, path="/?webhook=pi_callback")

        assert response.json() == {"status": "ok", "message": "Webhook working"}

    @pytest.mark.parametrize("path", ["/webhooks/pi/", "/?webhook=pi_callback"])
    def test_get_not_allowed(self, client, path):
        response = client.get(path)

        assert response.status_code == 405
        assert response["Allow"] == "POST"
        assert response.json() == {"status": "method_not_allowed"}


# =============================================================================
# Status Callback Tests
# =============================================================================


class TestWebhookStatusUpdates:
    """Tests for payment_* callbacks against the session slot."""

    def test_completed_without_payment_id(self, logged_in_client, cashout_payment_id, post_webhook):
        response = post_webhook(logged_in_client, {"type": "payment_completed", "txid": "tx_42"})

        assert response.json() == {"status": "received"}
        assert slot_status(logged_in_client) == "pending"

    def test_completed_for_other_payment(self, logged_in_client, cashout_payment_id, post_webhook):
        post_webhook(
            logged_in_client,
            {"type": "payment_completed", "payment_id": "test_pay_other", "txid": "tx_42"},
        )

        assert slot_status(logged_in_client) == "pending"

    def test_approved_then_completed(self, logged_in_client, cashout_payment_id, post_webhook):
        post_webhook(
            logged_in_client,
            {"type": "payment_approved", "payment_id": cashout_payment_id, "amount": 5.0},
        )
        assert slot_status(logged_in_client) == "approved"

        response = post_webhook(
            logged_in_client,
            {"type": "payment_completed", "payment_id": cashout_payment_id, "txid": "tx_42"},
        )

        assert response.json() == {"status": "received"}
        slot = stored(logged_in_client)
        assert slot["status"] == "completed"
        assert slot["txid"] == "tx_42"

    def test_late_approval_after_completion(self, logged_in_client, cashout_payment_id, post_webhook):
        post_webhook(
            logged_in_client,
            {"type": "payment_completed", "payment_id": cashout_payment_id, "txid": "tx_42"},
        )

        response = post_webhook(
            logged_in_client,
            {"type": "payment_approved", "payment_id": cashout_payment_id},
        )

        assert response.json() == {"status": "received"}
        assert slot_status(logged_in_client) == "completed"

    def test_failed(self, logged_in_client, cashout_payment_id, post_webhook, audit_events):
        post_webhook(
            logged_in_client,
            {"type": "payment_failed", "payment_id": cashout_payment_id, "reason": "expired"},
        )

        assert slot_status(logged_in_client) == "failed"
        assert ("payment_failed", {"payment_id": cashout_payment_id, "reason": "expired"}) in audit_events()

    def test_unknown_type(self, logged_in_client, cashout_payment_id, post_webhook):
        response = post_webhook(
            logged_in_client,
            {"type": "payment_refunded", "payment_id": cashout_payment_id},
        )

        assert response.json() == {"status": "received"}
        assert slot_status(logged_in_client) == "pending"

    def test_anonymous_session(self, client, post_webhook):
        response = post_webhook(client, {"type": "payment_approved", "payment_id": "test_pay_1"})

        assert response.json() == {"status": "received"}


# =============================================================================
# Malformed Payload Tests
# =============================================================================


class TestWebhookMalformedPayload:
    """Tests for bodies that are not a JSON object."""

    @pytest.mark.parametrize("body", [b"not json", b"[1, 2]", b'"text"', b"", b"\xff\xfe"])
    def test_invalid_payload(self, client, post_webhook, audit_events, body):
        response = post_webhook(client, body)

        assert response.status_code == 200
        assert response.json() == {"status": "invalid_payload"}
        assert audit_events() == []

    def test_missing_type_is_acknowledged(self, client, post_webhook, audit_events):
        response = post_webhook(client, {"payment_id": "test_pay_1"})

        assert response.json() == {"status": "received"}
        assert audit_events() == [("webhook_received", {"payment_id": "test_pay_1"})]


# =============================================================================
# Signature Tests
# =============================================================================


class TestWebhookSignature:
    """Tests for X-Pi-Signature verification."""

    @pytest.fixture(autouse=True)
    def webhook_secret(self, settings):
        settings.PI_WEBHOOK_SECRET = "s3cret"

    def test_valid_signature(self, client, post_webhook):
        response = post_webhook(client, {"type": "test"}, secret="s3cret")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_missing_signature(self, client, post_webhook, audit_events):
        response = post_webhook(client, {"type": "test"})

        assert response.status_code == 403
        assert response.json() == {"status": "invalid_signature"}
        assert audit_events() == []

    def test_wrong_secret(self, client, post_webhook):
        response = post_webhook(client, {"type": "test"}, secret="other")

        assert response.status_code == 403

    def test_signature_checked_before_parsing(self, client, post_webhook):
        response = post_webhook(client, b"not json", signature="deadbeef")

        assert response.status_code == 403


class TestVerifySignature:
    """Tests for verify_signature()."""

    def test_blank_secret_disables_check(self):
        verify_signature(b"{}", None, secret="")

    def test_case_and_whitespace_tolerated(self):
        body = b'{"type": "test"}'
        signature = compute_signature(body, "s3cret").upper()

        verify_signature(body, f" {signature} ", secret="s3cret")

    def test_mismatch(self):
        with pytest.raises(InvalidSignatureError):
            verify_signature(b"{}", compute_signature(b"[]", "s3cret"), secret="s3cret")


class TestParseEvent:
    """Tests for parse_event()."""

    def test_object(self):
        event = parse_event(b'{"type": "payment_completed", "payment_id": "p1", "txid": "tx_1"}')

        assert event.type == "payment_completed"
        assert event.payment_id == "p1"
        assert event.txid == "tx_1"

    def test_non_object(self):
        with pytest.raises(MalformedWebhookPayloadError) as exc_info:
            parse_event(b"[]")

        assert exc_info.value.details == {"type": "list"}


# =============================================================================
# Error Handling Tests
# =============================================================================


class TestWebhookErrorHandling:
    """Tests for handler failures."""

    def test_handler_exception_acknowledged(self, logged_in_client, cashout_payment_id, post_webhook):
        with patch.object(PaymentService, "apply_status", side_effect=RuntimeError("boom")):
            response = post_webhook(
                logged_in_client,
                {"type": "payment_approved", "payment_id": cashout_payment_id},
            )

        assert response.status_code == 200
        assert response.json() == {"status": "received"}
        assert slot_status(logged_in_client) == "pending"
