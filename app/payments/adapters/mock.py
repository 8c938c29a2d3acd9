"""
In-process stand-in for the Pi payment platform.

Every call succeeds immediately and returns an already-resolved future,
so the lifecycle code exercises exactly the same path it would with the
HTTP provider. Identifiers follow the testnet demo conventions:

    payment ids:  test_pay_<32 hex chars>
    txids:        test_tx_<4 digits>
    uids:         test_uid_<12 hex chars>   (generated when none is given)
"""

from __future__ import annotations

import logging
import secrets
import uuid
from concurrent.futures import Future
from typing import TypeVar

from payments.state_machines import PaymentStatus
from payments.types import (
    CreatePaymentParams,
    ProviderCompletion,
    ProviderIdentity,
    ProviderPayment,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def resolved(value: T) -> Future[T]:
    """Return a future that already holds `value`."""
    future: Future[T] = Future()
    future.set_result(value)
    return future


def generate_uid() -> str:
    """Generate a throwaway testnet UID."""
    return f"test_uid_{uuid.uuid4().hex[:12]}"


class MockPiProvider:
    """
    Mock provider used by default and in tests.

    Holds no credentials and makes no network calls. Thread-safe: the
    only state touched is the random source.
    """

    name = "mock"

    def authenticate_user(
        self,
        uid: str,
        access_token: str | None = None,
    ) -> Future[ProviderIdentity]:
        """Accept any UID; generate one when the caller has none."""
        uid = uid or generate_uid()
        logger.debug("Mock authentication", extra={"uid": uid})
        return resolved(ProviderIdentity(uid=uid, authenticated=True, testnet=True))

    def create_payment(self, params: CreatePaymentParams) -> Future[ProviderPayment]:
        """Register a pending payment under a fresh test_pay_ id."""
        payment_id = f"test_pay_{uuid.uuid4().hex}"
        logger.debug(
            "Mock payment created",
            extra={"payment_id": payment_id, "amount": str(params.amount)},
        )
        return resolved(
            ProviderPayment(
                payment_id=payment_id,
                amount=params.amount,
                status=PaymentStatus.PENDING.value,
                testnet=True,
                raw_response={
                    "identifier": payment_id,
                    "amount": str(params.amount),
                    "memo": params.memo,
                    "user_uid": params.uid,
                    "metadata": dict(params.metadata),
                },
            )
        )

    def complete_payment(
        self,
        payment_id: str,
        txid: str | None = None,
    ) -> Future[ProviderCompletion]:
        """Acknowledge completion, inventing a txid when none is given."""
        txid = txid or f"test_tx_{1000 + secrets.randbelow(9000)}"
        return resolved(
            ProviderCompletion(
                payment_id=payment_id,
                txid=txid,
                completed=True,
                raw_response={"identifier": payment_id, "transaction": {"txid": txid}},
            )
        )


__all__ = ["MockPiProvider", "generate_uid", "resolved"]
