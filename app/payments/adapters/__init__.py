"""
Payment provider adapters.

All calls to the Pi payment platform go through a PaymentProvider so the
lifecycle code is identical for the mock and the HTTP implementation.

Usage:
    from payments.adapters import get_provider
    from payments.types import CreatePaymentParams

    future = get_provider().create_payment(
        CreatePaymentParams(amount=Decimal("5"), uid="test_uid_a1b2", memo="demo")
    )
    payment = future.result(timeout=10)
"""

from payments.adapters.base import PROVIDERS, PaymentProvider, get_provider
from payments.adapters.mock import MockPiProvider, generate_uid
from payments.adapters.pi_network import PiNetworkProvider

__all__ = [
    "PROVIDERS",
    "MockPiProvider",
    "PaymentProvider",
    "PiNetworkProvider",
    "generate_uid",
    "get_provider",
]
