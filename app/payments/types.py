"""
Data types for the cashout lifecycle and webhook ingestion.

This module defines dataclasses used throughout the payments app
for type-safe data transfer between the session, services and views.

Types:
    PaymentRecord: The single payment retained in a session's slot
    WebhookEvent: A parsed provider callback (transient)
    CreatePaymentParams: Parameters for asking the provider to create a payment
    ProviderPayment: What the provider answered for a created payment
    ProviderCompletion: What the provider answered for a completed payment

Usage:
    from payments.types import PaymentRecord

    record = PaymentRecord.new(
        payment_id="test_pay_5f2c...",
        amount=Decimal("5.0"),
        memo="Testnet cashout from Pi Freebie Demo",
        user_id="test_uid_a1b2",
    )
    store.set_last_payment(record)
    PaymentRecord.from_dict(record.to_dict()) == record
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field, replace
from decimal import Decimal, InvalidOperation
from typing import Any

from payments.state_machines import PaymentStatus, WebhookEventType


def parse_amount(raw: Any) -> Decimal:
    """
    Parse a user or provider supplied amount.

    Non-numeric, NaN and infinite inputs parse to zero, so they fall out
    of the allowed range instead of raising. The numeric value is kept
    as given; no rounding is applied.
    """
    if isinstance(raw, Decimal):
        value = raw
    elif isinstance(raw, bool) or raw is None:
        return Decimal("0")
    else:
        try:
            value = Decimal(str(raw).strip())
        except (InvalidOperation, ValueError):
            return Decimal("0")
    if not value.is_finite():
        return Decimal("0")
    return value


@dataclass(frozen=True)
class PaymentRecord:
    """
    The payment retained in a session's single payment slot.

    Attributes:
        payment_id: Unique provider identifier, never reused
        amount: Cashout amount, exact as requested
        status: One of PaymentStatus
        memo: Free-text annotation shown to the payer
        user_id: Pi UID of the session that created it
        created_at: POSIX timestamp of creation
        txid: Blockchain transaction id, only set once completed
        testnet: Always True for the testnet provider

    Note:
        Instances are immutable; status changes go through
        with_status() which returns a new record.
    """

    payment_id: str
    amount: Decimal
    status: str = PaymentStatus.PENDING.value
    memo: str = ""
    user_id: str = ""
    created_at: float = field(default_factory=time.time)
    txid: str | None = None
    testnet: bool = True

    @classmethod
    def new(
        cls,
        payment_id: str,
        amount: Decimal,
        memo: str,
        user_id: str,
        created_at: float | None = None,
        testnet: bool = True,
    ) -> PaymentRecord:
        """Create a fresh record in the pending state."""
        return cls(
            payment_id=payment_id,
            amount=amount,
            status=PaymentStatus.PENDING.value,
            memo=memo,
            user_id=user_id,
            created_at=time.time() if created_at is None else created_at,
            testnet=testnet,
        )

    def with_status(self, status: str, txid: str | None = None) -> PaymentRecord:
        """Return a copy moved to `status`; txid is kept only for completed."""
        status = str(status)
        if status == PaymentStatus.COMPLETED.value:
            return replace(self, status=status, txid=txid or self.txid)
        return replace(self, status=status, txid=None)

    def age_seconds(self, now: float | None = None) -> float:
        """Seconds elapsed since the record was created."""
        return (time.time() if now is None else now) - self.created_at

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe representation for the session and audit log."""
        data = asdict(self)
        data["amount"] = str(self.amount)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PaymentRecord:
        """Rebuild a record from to_dict() output."""
        return cls(
            payment_id=data["payment_id"],
            amount=Decimal(str(data["amount"])),
            status=data.get("status", PaymentStatus.PENDING.value),
            memo=data.get("memo", ""),
            user_id=data.get("user_id", ""),
            created_at=float(data.get("created_at", 0)),
            txid=data.get("txid"),
            testnet=data.get("testnet", True),
        )


@dataclass
class WebhookEvent:
    """
    A provider callback after JSON parsing.

    Attributes:
        type: Event type string; missing or non-string becomes "unknown"
        payment_id: Payment referenced by the event (may match nothing)
        amount: Approved amount, if sent
        txid: Transaction id, for completed payments
        reason: Failure reason, for failed payments
        raw: The complete parsed payload

    Example payload:
        {
            "type": "payment_approved",
            "payment_id": "pay_123456789",
            "amount": 5.0,
            "uid": "test_uid_a1b2",
            "memo": "Test payment",
            "timestamp": 1735689600
        }
    """

    type: str
    payment_id: str = ""
    amount: Any = None
    txid: str = ""
    reason: str = ""
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> WebhookEvent:
        """Build an event from an already-parsed JSON object."""
        event_type = payload.get("type")
        if not isinstance(event_type, str) or not event_type:
            event_type = WebhookEventType.UNKNOWN.value
        return cls(
            type=event_type,
            payment_id=_as_text(payload.get("payment_id")),
            amount=payload.get("amount", 0),
            txid=_as_text(payload.get("txid")),
            reason=_as_text(payload.get("reason")),
            raw=payload,
        )


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


@dataclass
class CreatePaymentParams:
    """
    Parameters for asking the provider to create a payment.

    Attributes:
        amount: Validated cashout amount
        uid: Pi UID of the payee
        memo: Memo shown in the Pi wallet
        metadata: Extra key-value pairs forwarded to the provider
    """

    amount: Decimal
    uid: str
    memo: str
    metadata: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate parameters after initialization."""
        if self.amount <= 0:
            raise ValueError("amount must be positive")
        if not self.uid:
            raise ValueError("uid is required")


@dataclass
class ProviderPayment:
    """
    Result from a provider create-payment call.

    Attributes:
        payment_id: Provider payment identifier
        amount: Amount the provider registered
        status: Provider-side status (pending for new payments)
        testnet: Whether the payment lives on the testnet
        raw_response: Full provider response (for debugging)
    """

    payment_id: str
    amount: Decimal
    status: str = PaymentStatus.PENDING.value
    testnet: bool = True
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProviderCompletion:
    """
    Result from a provider complete-payment call.

    Attributes:
        payment_id: Provider payment identifier
        txid: Blockchain transaction id
        completed: Whether the provider accepted the completion
        raw_response: Full provider response (for debugging)
    """

    payment_id: str
    txid: str
    completed: bool = True
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProviderIdentity:
    """
    Result from a provider user-authentication call.

    Attributes:
        uid: Pi UID confirmed by the provider
        username: Pi username, when the provider returns one
        authenticated: Whether the provider vouched for the user
        testnet: Whether the identity is a testnet account
    """

    uid: str
    username: str = ""
    authenticated: bool = True
    testnet: bool = True


__all__ = [
    "CreatePaymentParams",
    "PaymentRecord",
    "ProviderCompletion",
    "ProviderIdentity",
    "ProviderPayment",
    "WebhookEvent",
    "parse_amount",
]
