"""
Payment lifecycle service for the session payment slot.

This module provides the PaymentService class which owns every change to
the single payment a session keeps:

- request_cashout: validate, ask the provider, store a pending record
- apply_status: forward-only status updates driven by webhooks
- complete_payment: confirm a completion with the provider, then apply it
- expire_stale_payment: drop a slot older than the retention window

Usage:
    from payments.services import PaymentService

    result = PaymentService.request_cashout(store, "5.0", "")
    if result.success:
        record = result.data

    outcome = PaymentService.apply_status(
        store, "test_pay_...", PaymentStatus.COMPLETED, {"txid": "tx_42"}
    )
"""

from __future__ import annotations

import contextlib
import logging
import time
from concurrent.futures import TimeoutError as FutureTimeoutError
from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings

from core.services import BaseService, ServiceResult
from payments.adapters import get_provider
from payments.audit import record_event
from payments.exceptions import (
    InvalidAmountError,
    InvalidStateTransitionError,
    LockAcquisitionError,
    ProviderError,
    ProviderTimeoutError,
    UnauthenticatedError,
    UnmatchedPaymentError,
)
from payments.locks import SessionLock
from payments.state_machines import (
    PaymentStatus,
    TransitionOutcome,
    can_transition,
    is_terminal,
)
from payments.types import CreatePaymentParams, PaymentRecord, parse_amount

if TYPE_CHECKING:
    from typing import Any, Iterator

    from authentication.session_store import SessionStore
    from payments.types import ProviderPayment


logger = logging.getLogger(__name__)


class PaymentService(BaseService):
    """
    Owns the lifecycle of the payment held in a session's slot.

    Only the most recent payment per session is tracked. A new cashout
    replaces the slot; webhooks move it forward; age removes it.

    Concurrency:
        Slot writes run under SessionLock and re-check the stored slot
        before writing. Provider calls happen before the lock is taken.
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def amount_bounds() -> tuple[Decimal, Decimal]:
        """(exclusive minimum, inclusive maximum) for a cashout."""
        return (
            Decimal(str(settings.MIN_CASHOUT_AMOUNT)),
            Decimal(str(settings.MAX_CASHOUT_AMOUNT)),
        )

    @staticmethod
    def default_memo() -> str:
        return f"Testnet cashout from {settings.PI_APP_NAME}"

    @classmethod
    def validate_amount(cls, raw: Any) -> Decimal:
        """
        Parse and range-check a cashout amount.

        Raises:
            InvalidAmountError: amount <= minimum or amount > maximum
        """
        amount = parse_amount(raw)
        minimum, maximum = cls.amount_bounds()

        violated = None
        if amount <= minimum:
            violated = "min"
        elif amount > maximum:
            violated = "max"

        if violated:
            raise InvalidAmountError(
                f"Invalid amount. Testnet limit: {minimum:f}-{maximum:f} π",
                details={
                    "min": str(minimum),
                    "max": str(maximum),
                    "violated": violated,
                    "amount": str(amount),
                },
            )
        return amount

    # =========================================================================
    # Cashout
    # =========================================================================

    @classmethod
    def request_cashout(
        cls,
        store: SessionStore,
        amount: Any,
        memo: str = "",
    ) -> ServiceResult[PaymentRecord]:
        """
        Create a pending payment for the logged-in user.

        Args:
            store: The caller's session
            amount: Raw amount (string from the form, or a number)
            memo: Optional memo; blank uses the default memo

        Returns:
            ServiceResult with the stored PaymentRecord. Failures carry
            UNAUTHENTICATED, INVALID_AMOUNT (details hold the bounds),
            PROVIDER_ERROR or LOCK_ACQUISITION_FAILED; the slot is
            unchanged on every failure.
        """
        log = cls.get_logger()

        pi_session = store.get()
        if pi_session is None or not pi_session.is_valid:
            return ServiceResult.from_exception(UnauthenticatedError("Not authenticated"))

        try:
            value = cls.validate_amount(amount)
        except InvalidAmountError as e:
            log.info(
                "Cashout rejected: amount out of range",
                extra={"user_id": pi_session.user_id, **e.details},
            )
            return ServiceResult.from_exception(e)

        memo = (memo or "").strip() or cls.default_memo()
        params = CreatePaymentParams(
            amount=value,
            uid=pi_session.user_id,
            memo=memo,
            metadata={"app": settings.PI_APP_NAME},
        )

        try:
            payment = cls._create_with_provider(params)
        except ProviderError as e:
            log.warning(
                f"Provider failed to create payment: {e.message}",
                extra={
                    "user_id": pi_session.user_id,
                    "error_code": e.error_code,
                    "retryable": e.is_retryable,
                },
            )
            return ServiceResult.failure(
                f"Error: {e.message}",
                error_code="PROVIDER_ERROR",
                details=e.details or None,
            )

        record = PaymentRecord.new(
            payment_id=payment.payment_id,
            amount=value,
            memo=memo,
            user_id=pi_session.user_id,
            testnet=payment.testnet,
        )

        try:
            with cls._slot_lock(store):
                # Another request may have logged this session out meanwhile
                if not store.is_live():
                    log.info(
                        "Cashout not stored: session ended during provider call",
                        extra={"user_id": pi_session.user_id, "payment_id": record.payment_id},
                    )
                    return ServiceResult.from_exception(UnauthenticatedError("Session ended"))
                store.set_last_payment(record)
        except LockAcquisitionError as e:
            log.warning("Cashout not stored: session busy", extra=e.details)
            return ServiceResult.from_exception(e)

        record_event(
            "cashout_initiated",
            {
                "payment_id": record.payment_id,
                "amount": record.amount,
                "uid": record.user_id,
                "memo": record.memo,
                "timestamp": int(record.created_at),
            },
        )
        log.info(
            f"Cashout initiated: {record.payment_id}",
            extra={"payment_id": record.payment_id, "amount": str(record.amount)},
        )
        return ServiceResult.success(record)

    @classmethod
    def _create_with_provider(cls, params: CreatePaymentParams) -> ProviderPayment:
        """Wait for the provider without holding any lock."""
        timeout = settings.PI_PROVIDER_TIMEOUT_SECONDS
        future = get_provider().create_payment(params)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError as e:
            future.cancel()
            raise ProviderTimeoutError(
                f"Payment provider did not answer within {timeout}s",
                provider_code="timeout",
            ) from e

    # =========================================================================
    # Status updates
    # =========================================================================

    @classmethod
    def apply_status(
        cls,
        store: SessionStore,
        payment_id: str,
        new_status: str,
        extra: dict[str, Any] | None = None,
    ) -> TransitionOutcome:
        """
        Move the slot's payment to `new_status` if allowed.

        Args:
            store: Session whose slot is updated
            payment_id: Payment the provider reported on
            new_status: Target PaymentStatus
            extra: Event data; "txid" is kept for completed payments

        Returns:
            APPLIED, UNMATCHED (empty slot or different payment) or
            REJECTED (backward, terminal or repeated status)

        Raises:
            LockAcquisitionError: Another request holds the session lock
        """
        extra = extra or {}
        new_status = str(new_status)

        with cls._slot_lock(store):
            current = store.get_last_payment()
            try:
                cls._match(current, payment_id)
            except UnmatchedPaymentError as e:
                record_event("payment_unmatched", {**e.details, "status": new_status})
                return TransitionOutcome.UNMATCHED

            try:
                cls._check_transition(current, new_status)
            except InvalidStateTransitionError as e:
                record_event("transition_rejected", e.details)
                cls.get_logger().info(e.message, extra=e.details)
                return TransitionOutcome.REJECTED

            updated = current.with_status(new_status, txid=extra.get("txid") or None)
            if not store.compare_and_set_last_payment(
                current.payment_id, updated, expected_status=current.status
            ):
                record_event(
                    "payment_unmatched",
                    {"payment_id": payment_id, "status": new_status},
                )
                return TransitionOutcome.UNMATCHED

        record_event(
            "payment_status_changed",
            {
                "payment_id": payment_id,
                "from": current.status,
                "to": updated.status,
                "txid": updated.txid,
            },
        )
        cls.get_logger().info(
            f"Payment {payment_id}: {current.status} -> {updated.status}",
            extra={"payment_id": payment_id, "status": updated.status},
        )
        return TransitionOutcome.APPLIED

    @classmethod
    def complete_payment(
        cls,
        store: SessionStore,
        payment_id: str,
        txid: str = "",
    ) -> TransitionOutcome:
        """
        Confirm a completed payment with the provider, then mark it completed.

        The provider is only asked when the slot holds `payment_id` and may
        still move to completed. The txid stored is the one the provider
        acknowledged.

        Returns:
            APPLIED, UNMATCHED, or REJECTED (also when the provider refuses
            the completion)
        """
        current = store.get_last_payment()
        if (
            current is None
            or current.payment_id != payment_id
            or not can_transition(current.status, PaymentStatus.COMPLETED)
        ):
            # apply_status records why nothing changed
            return cls.apply_status(store, payment_id, PaymentStatus.COMPLETED, {"txid": txid})

        timeout = settings.PI_PROVIDER_TIMEOUT_SECONDS
        future = get_provider().complete_payment(payment_id, txid or None)
        try:
            completion = future.result(timeout=timeout)
        except FutureTimeoutError:
            future.cancel()
            return cls._completion_failed(
                payment_id, txid, "PROVIDER_TIMEOUT", f"No answer within {timeout}s"
            )
        except ProviderError as e:
            return cls._completion_failed(payment_id, txid, e.error_code, e.message)

        if not completion.completed:
            return cls._completion_failed(
                payment_id, txid, "NOT_COMPLETED", "Provider refused the completion"
            )

        return cls.apply_status(
            store,
            payment_id,
            PaymentStatus.COMPLETED,
            {"txid": completion.txid},
        )

    @classmethod
    def _completion_failed(
        cls,
        payment_id: str,
        txid: str,
        error_code: str,
        message: str,
    ) -> TransitionOutcome:
        details = {"payment_id": payment_id, "txid": txid, "error_code": error_code}
        record_event("completion_failed", {**details, "message": message})
        cls.get_logger().warning(
            f"Provider did not confirm completion of {payment_id}: {message}",
            extra=details,
        )
        return TransitionOutcome.REJECTED

    @staticmethod
    def _match(current: PaymentRecord | None, payment_id: str) -> None:
        """
        Raises:
            UnmatchedPaymentError: slot empty or holding another payment
        """
        if current is not None and payment_id and current.payment_id == payment_id:
            return
        raise UnmatchedPaymentError(
            f"Payment {payment_id!r} is not held in the session slot",
            details={
                "payment_id": payment_id,
                "slot_payment_id": current.payment_id if current else None,
            },
        )

    @staticmethod
    def _check_transition(current: PaymentRecord, new_status: str) -> None:
        """
        Raises:
            InvalidStateTransitionError: edge is not forward-only
        """
        if can_transition(current.status, new_status):
            return
        reason = "terminal" if is_terminal(current.status) else "not_forward"
        if current.status == new_status:
            reason = "duplicate"
        raise InvalidStateTransitionError(
            f"Cannot move payment from '{current.status}' to '{new_status}'",
            details={
                "payment_id": current.payment_id,
                "current_status": current.status,
                "target_status": new_status,
                "reason": reason,
            },
        )

    # =========================================================================
    # Retention
    # =========================================================================

    @classmethod
    def expire_stale_payment(cls, store: SessionStore, now: float | None = None) -> bool:
        """
        Drop the slot if it is older than PAYMENT_RETENTION_SECONDS.

        Returns:
            True if a payment was discarded
        """
        record = store.get_last_payment()
        if record is None:
            return False

        now = time.time() if now is None else now
        if record.age_seconds(now) <= settings.PAYMENT_RETENTION_SECONDS:
            return False

        store.clear_last_payment()
        cls.get_logger().info(
            f"Discarded stale payment {record.payment_id}",
            extra={"payment_id": record.payment_id, "status": record.status},
        )
        return True

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    @contextlib.contextmanager
    def _slot_lock(store: SessionStore) -> Iterator[None]:
        # Sessions without a key have never been saved and cannot be shared
        if store.session_key is None:
            yield
            return
        with SessionLock(
            store.session_key,
            ttl=settings.PAYMENT_LOCK_TTL_SECONDS,
            timeout=settings.PAYMENT_LOCK_TIMEOUT_SECONDS,
        ):
            yield


__all__ = ["PaymentService"]
