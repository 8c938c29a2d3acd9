"""
Tests for PaymentService.

Tests cover:
- Cashout requests (bounds, default memo, provider failures, audit)
- Forward-only status updates from webhooks
- Retention of the payment slot
"""

import time
from concurrent.futures import Future
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from django.contrib.messages.middleware import MessageMiddleware
from django.contrib.sessions.middleware import SessionMiddleware
from django.core.cache import cache
from django.http import HttpResponse

from authentication.services import AuthService
from authentication.session_store import slot_cache_key
from payments.adapters.mock import resolved
from payments.exceptions import ProviderRequestError, ProviderUnavailableError
from payments.locks import SessionLock
from payments.services import PaymentService
from payments.state_machines import PaymentStatus, TransitionOutcome
from payments.tests.factories import PaymentRecordFactory


def backend_slot(store):
    """The payment slot as stored in the shared cache."""
    return cache.get(slot_cache_key(store.session_key))


def provider_returning(future):
    provider = MagicMock()
    provider.create_payment.return_value = future
    return provider


def provider_completing(future):
    provider = MagicMock()
    provider.complete_payment.return_value = future
    return provider


def finish_request(store):
    """Run the response half of the message and session middleware."""
    response = HttpResponse()
    MessageMiddleware(lambda r: response).process_response(store.request, response)
    SessionMiddleware(lambda r: response).process_response(store.request, response)


# =============================================================================
# Cashout
# =============================================================================


class TestRequestCashout:
    """Tests for PaymentService.request_cashout()."""

    def test_creates_pending_payment_with_default_memo(self, logged_in_store):
        """A blank memo falls back to the app's default memo."""
        result = PaymentService.request_cashout(logged_in_store, 5.0, "")

        assert result.success
        record = result.data
        assert record.amount == Decimal("5.0")
        assert record.memo == "Testnet cashout from Pi Freebie Demo"
        assert record.status == PaymentStatus.PENDING
        assert record.user_id == "test_uid_alice"
        assert record.payment_id.startswith("test_pay_")
        assert logged_in_store.get_last_payment() == record

    def test_persists_slot_immediately(self, logged_in_store):
        result = PaymentService.request_cashout(logged_in_store, "7.5", "lunch")

        assert backend_slot(logged_in_store)["payment_id"] == result.data.payment_id

    def test_memo_is_trimmed(self, logged_in_store):
        result = PaymentService.request_cashout(logged_in_store, "1", "  coffee  ")

        assert result.data.memo == "coffee"

    def test_default_memo_uses_app_name(self, logged_in_store, settings):
        settings.PI_APP_NAME = "Other Demo"

        result = PaymentService.request_cashout(logged_in_store, "1", "   ")

        assert result.data.memo == "Testnet cashout from Other Demo"

    def test_amount_kept_exact(self, logged_in_store):
        result = PaymentService.request_cashout(logged_in_store, "12.345", "")

        assert result.data.amount == Decimal("12.345")
        assert result.data.to_dict()["amount"] == "12.345"

    def test_new_cashout_replaces_previous(self, logged_in_store, pending_payment):
        result = PaymentService.request_cashout(logged_in_store, "3", "")

        assert logged_in_store.get_last_payment().payment_id == result.data.payment_id
        assert result.data.payment_id != pending_payment.payment_id

    def test_payment_ids_unique(self, logged_in_store):
        ids = {
            PaymentService.request_cashout(logged_in_store, "1", "").data.payment_id
            for _ in range(5)
        }

        assert len(ids) == 5

    def test_records_audit_event(self, logged_in_store, audit_events):
        result = PaymentService.request_cashout(logged_in_store, "5.0", "")

        action, payload = audit_events()[-1]
        assert action == "cashout_initiated"
        assert payload == {
            "payment_id": result.data.payment_id,
            "amount": "5.0",
            "uid": "test_uid_alice",
            "memo": "Testnet cashout from Pi Freebie Demo",
            "timestamp": int(result.data.created_at),
        }

    # -------------------------------------------------------------------------
    # Bounds
    # -------------------------------------------------------------------------

    @pytest.mark.parametrize("amount", ["0.01", "1", "50", "100", "100.0"])
    def test_accepts_amounts_in_range(self, logged_in_store, amount):
        assert PaymentService.request_cashout(logged_in_store, amount, "").success

    @pytest.mark.parametrize(
        "amount,violated",
        [
            ("0", "min"),
            ("-1", "min"),
            ("abc", "min"),
            ("", "min"),
            ("NaN", "min"),
            ("100.01", "max"),
            ("1000", "max"),
        ],
    )
    def test_rejects_amounts_out_of_range(self, logged_in_store, pending_payment, amount, violated):
        """Out-of-range amounts fail and leave the slot untouched."""
        result = PaymentService.request_cashout(logged_in_store, amount, "")

        assert not result.success
        assert result.error_code == "INVALID_AMOUNT"
        assert result.error == "Invalid amount. Testnet limit: 0-100 π"
        assert result.details["violated"] == violated
        assert result.details["min"] == "0"
        assert result.details["max"] == "100"
        assert logged_in_store.get_last_payment() == pending_payment

    def test_bounds_follow_settings(self, logged_in_store, settings):
        settings.MAX_CASHOUT_AMOUNT = "10"

        result = PaymentService.request_cashout(logged_in_store, "10.5", "")

        assert result.error_code == "INVALID_AMOUNT"
        assert result.error == "Invalid amount. Testnet limit: 0-10 π"

    def test_invalid_amount_not_audited(self, logged_in_store, audit_events):
        PaymentService.request_cashout(logged_in_store, "0", "")

        assert [a for a, _ in audit_events() if a == "cashout_initiated"] == []

    # -------------------------------------------------------------------------
    # Failures
    # -------------------------------------------------------------------------

    def test_requires_authentication(self, store):
        result = PaymentService.request_cashout(store, "5", "")

        assert not result.success
        assert result.error_code == "UNAUTHENTICATED"
        assert store.get_last_payment() is None

    def test_provider_error_leaves_slot(self, logged_in_store, pending_payment):
        future = Future()
        future.set_exception(ProviderUnavailableError("Pi API service error. Please retry."))

        with patch(
            "payments.services.payment_service.get_provider",
            return_value=provider_returning(future),
        ):
            result = PaymentService.request_cashout(logged_in_store, "5", "")

        assert not result.success
        assert result.error_code == "PROVIDER_ERROR"
        assert result.error == "Error: Pi API service error. Please retry."
        assert logged_in_store.get_last_payment() == pending_payment

    def test_provider_timeout(self, logged_in_store, settings):
        settings.PI_PROVIDER_TIMEOUT_SECONDS = 0.01
        never_resolves = Future()

        with patch(
            "payments.services.payment_service.get_provider",
            return_value=provider_returning(never_resolves),
        ):
            result = PaymentService.request_cashout(logged_in_store, "5", "")

        assert result.error_code == "PROVIDER_ERROR"
        assert result.details["provider_code"] == "timeout"
        assert logged_in_store.get_last_payment() is None

    def test_session_busy(self, logged_in_store, settings):
        settings.PAYMENT_LOCK_TIMEOUT_SECONDS = 0.05
        SessionLock(logged_in_store.session_key, blocking=False).acquire()

        result = PaymentService.request_cashout(logged_in_store, "5", "")

        assert result.error_code == "LOCK_ACQUISITION_FAILED"
        assert logged_in_store.get_last_payment() is None

    def test_logged_out_by_other_request(self, logged_in_store, second_store, audit_events):
        """A logout on the same session while the cashout runs leaves no slot."""
        AuthService.logout(second_store(logged_in_store.session_key))

        result = PaymentService.request_cashout(logged_in_store, "5", "")

        assert not result.success
        assert result.error_code == "UNAUTHENTICATED"
        assert backend_slot(logged_in_store) is None
        assert "cashout_initiated" not in [action for action, _ in audit_events()]


# =============================================================================
# Status updates
# =============================================================================


class TestApplyStatus:
    """Tests for PaymentService.apply_status()."""

    # -------------------------------------------------------------------------
    # Applied
    # -------------------------------------------------------------------------

    def test_pending_to_approved(self, logged_in_store, pending_payment):
        outcome = PaymentService.apply_status(
            logged_in_store, pending_payment.payment_id, PaymentStatus.APPROVED
        )

        assert outcome == TransitionOutcome.APPLIED
        assert logged_in_store.get_last_payment().status == "approved"
        assert backend_slot(logged_in_store)["status"] == "approved"

    def test_approved_to_completed_sets_txid(self, logged_in_store, approved_payment):
        outcome = PaymentService.apply_status(
            logged_in_store,
            approved_payment.payment_id,
            PaymentStatus.COMPLETED,
            {"txid": "tx_42"},
        )

        assert outcome == TransitionOutcome.APPLIED
        record = logged_in_store.get_last_payment()
        assert record.status == "completed"
        assert record.txid == "tx_42"

    def test_pending_to_completed(self, logged_in_store, pending_payment):
        outcome = PaymentService.apply_status(
            logged_in_store, pending_payment.payment_id, "completed", {"txid": "tx_1"}
        )

        assert outcome == TransitionOutcome.APPLIED

    @pytest.mark.parametrize("fixture", ["pending_payment", "approved_payment"])
    def test_failed_from_open_states(self, request, logged_in_store, fixture):
        record = request.getfixturevalue(fixture)

        outcome = PaymentService.apply_status(logged_in_store, record.payment_id, "failed")

        assert outcome == TransitionOutcome.APPLIED
        assert logged_in_store.get_last_payment().status == "failed"

    def test_audits_change(self, logged_in_store, pending_payment, audit_events):
        PaymentService.apply_status(logged_in_store, pending_payment.payment_id, "approved")

        assert (
            "payment_status_changed",
            {
                "payment_id": pending_payment.payment_id,
                "from": "pending",
                "to": "approved",
                "txid": None,
            },
        ) in audit_events()

    # -------------------------------------------------------------------------
    # Rejected
    # -------------------------------------------------------------------------

    def test_completed_never_moves_back(self, logged_in_store, completed_payment):
        outcome = PaymentService.apply_status(
            logged_in_store, completed_payment.payment_id, "approved"
        )

        assert outcome == TransitionOutcome.REJECTED
        assert logged_in_store.get_last_payment() == completed_payment

    def test_duplicate_completion_absorbed(self, logged_in_store, completed_payment, audit_events):
        """A re-delivered completion is rejected and changes nothing."""
        outcome = PaymentService.apply_status(
            logged_in_store,
            completed_payment.payment_id,
            "completed",
            {"txid": "tx_other"},
        )

        assert outcome == TransitionOutcome.REJECTED
        assert logged_in_store.get_last_payment().txid == completed_payment.txid
        action, payload = audit_events()[-1]
        assert action == "transition_rejected"
        assert payload["reason"] == "duplicate"

    def test_approved_never_returns_to_pending(self, logged_in_store, approved_payment):
        outcome = PaymentService.apply_status(
            logged_in_store, approved_payment.payment_id, "pending"
        )

        assert outcome == TransitionOutcome.REJECTED
        assert logged_in_store.get_last_payment().status == "approved"

    # -------------------------------------------------------------------------
    # Unmatched
    # -------------------------------------------------------------------------

    def test_other_payment_id(self, logged_in_store, pending_payment, audit_events):
        outcome = PaymentService.apply_status(logged_in_store, "pay_123456789", "approved")

        assert outcome == TransitionOutcome.UNMATCHED
        assert logged_in_store.get_last_payment() == pending_payment
        assert audit_events()[-1][0] == "payment_unmatched"

    def test_empty_slot(self, logged_in_store):
        outcome = PaymentService.apply_status(logged_in_store, "test_pay_x", "approved")

        assert outcome == TransitionOutcome.UNMATCHED

    def test_blank_payment_id(self, logged_in_store, pending_payment):
        outcome = PaymentService.apply_status(logged_in_store, "", "completed")

        assert outcome == TransitionOutcome.UNMATCHED
        assert logged_in_store.get_last_payment().status == "pending"

    def test_anonymous_session(self, store):
        assert PaymentService.apply_status(store, "test_pay_x", "approved") == (
            TransitionOutcome.UNMATCHED
        )


class TestOverlappingRequests:
    """Two requests for the same session updating the slot."""

    def test_completed_survives_stale_session_save(
        self, logged_in_store, pending_payment, second_store
    ):
        first = second_store(logged_in_store.session_key)
        second = second_store(logged_in_store.session_key)
        # Both requests load the session before either one writes
        assert first.get() is not None
        assert second.get() is not None

        PaymentService.apply_status(first, pending_payment.payment_id, "approved")
        PaymentService.apply_status(
            second, pending_payment.payment_id, "completed", {"txid": "tx_42"}
        )
        first.flash("Payment approved")
        finish_request(second)
        finish_request(first)

        record = logged_in_store.get_last_payment()
        assert record.status == "completed"
        assert record.txid == "tx_42"

    def test_cashout_survives_stale_session_save(self, logged_in_store, second_store):
        first = second_store(logged_in_store.session_key)
        assert first.get() is not None
        first.flash("Dashboard viewed")

        result = PaymentService.request_cashout(
            second_store(logged_in_store.session_key), "5", ""
        )
        finish_request(first)

        assert logged_in_store.get_last_payment() == result.data


# =============================================================================
# Completion
# =============================================================================


class TestCompletePayment:
    """Tests for PaymentService.complete_payment()."""

    def test_completes_with_provider_txid(self, logged_in_store, approved_payment):
        outcome = PaymentService.complete_payment(
            logged_in_store, approved_payment.payment_id, "tx_42"
        )

        assert outcome == TransitionOutcome.APPLIED
        record = logged_in_store.get_last_payment()
        assert record.status == "completed"
        assert record.txid == "tx_42"

    def test_provider_supplies_missing_txid(self, logged_in_store, pending_payment):
        outcome = PaymentService.complete_payment(logged_in_store, pending_payment.payment_id)

        assert outcome == TransitionOutcome.APPLIED
        assert logged_in_store.get_last_payment().txid.startswith("test_tx_")

    def test_provider_error_leaves_slot(self, logged_in_store, approved_payment, audit_events):
        future = Future()
        future.set_exception(
            ProviderRequestError("A txid is required", provider_code="missing_txid")
        )

        with patch(
            "payments.services.payment_service.get_provider",
            return_value=provider_completing(future),
        ):
            outcome = PaymentService.complete_payment(logged_in_store, approved_payment.payment_id)

        assert outcome == TransitionOutcome.REJECTED
        assert logged_in_store.get_last_payment() == approved_payment
        action, payload = audit_events()[-1]
        assert action == "completion_failed"
        assert payload["payment_id"] == approved_payment.payment_id

    def test_provider_refuses(self, logged_in_store, approved_payment):
        completion = MagicMock(completed=False, txid="tx_42")

        with patch(
            "payments.services.payment_service.get_provider",
            return_value=provider_completing(resolved(completion)),
        ):
            outcome = PaymentService.complete_payment(
                logged_in_store, approved_payment.payment_id, "tx_42"
            )

        assert outcome == TransitionOutcome.REJECTED
        assert logged_in_store.get_last_payment().status == "approved"

    def test_provider_timeout(self, logged_in_store, approved_payment, settings, audit_events):
        settings.PI_PROVIDER_TIMEOUT_SECONDS = 0.01

        with patch(
            "payments.services.payment_service.get_provider",
            return_value=provider_completing(Future()),
        ):
            outcome = PaymentService.complete_payment(
                logged_in_store, approved_payment.payment_id, "tx_42"
            )

        assert outcome == TransitionOutcome.REJECTED
        assert audit_events()[-1][1]["error_code"] == "PROVIDER_TIMEOUT"

    @pytest.mark.parametrize(
        "fixture,payment_id,expected",
        [
            ("completed_payment", None, TransitionOutcome.REJECTED),
            ("pending_payment", "test_pay_other", TransitionOutcome.UNMATCHED),
        ],
    )
    def test_provider_not_asked(self, request, logged_in_store, fixture, payment_id, expected):
        record = request.getfixturevalue(fixture)
        provider = MagicMock()

        with patch("payments.services.payment_service.get_provider", return_value=provider):
            outcome = PaymentService.complete_payment(
                logged_in_store, payment_id or record.payment_id, "tx_42"
            )

        assert outcome == expected
        provider.complete_payment.assert_not_called()
        assert logged_in_store.get_last_payment() == record


# =============================================================================
# Retention
# =============================================================================


class TestExpireStalePayment:
    """Tests for PaymentService.expire_stale_payment()."""

    def test_keeps_payment_within_window(self, logged_in_store):
        record = PaymentRecordFactory(created_at=1000.0)
        logged_in_store.set_last_payment(record)

        assert PaymentService.expire_stale_payment(logged_in_store, now=1000.0 + 86400) is False
        assert logged_in_store.get_last_payment() == record

    def test_drops_payment_past_window(self, logged_in_store):
        logged_in_store.set_last_payment(PaymentRecordFactory(created_at=1000.0))

        assert PaymentService.expire_stale_payment(logged_in_store, now=1000.0 + 86401) is True
        assert logged_in_store.get_last_payment() is None

    def test_uses_clock_by_default(self, logged_in_store):
        logged_in_store.set_last_payment(PaymentRecordFactory(created_at=time.time() - 86401))

        assert PaymentService.expire_stale_payment(logged_in_store) is True
        assert logged_in_store.get_last_payment() is None

    def test_retention_follows_settings(self, logged_in_store, settings):
        settings.PAYMENT_RETENTION_SECONDS = 60
        logged_in_store.set_last_payment(PaymentRecordFactory(created_at=1000.0))

        assert PaymentService.expire_stale_payment(logged_in_store, now=1061.0) is True

    def test_no_payment(self, logged_in_store):
        assert PaymentService.expire_stale_payment(logged_in_store) is False
