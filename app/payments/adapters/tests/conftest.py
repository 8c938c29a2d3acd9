"""
Pytest fixtures for payment provider tests.

Sections:
    - Test Data Fixtures
    - HTTP Provider Fixtures
"""

from decimal import Decimal

import httpx
import pytest

from payments.adapters import PiNetworkProvider
from payments.types import CreatePaymentParams


# =============================================================================
# Test Data Fixtures
# =============================================================================


@pytest.fixture
def params():
    """Create-payment parameters for a 5 π cashout to alice."""
    return CreatePaymentParams(
        amount=Decimal("5.0"),
        uid="test_uid_alice",
        memo="Testnet cashout from Pi Freebie Demo",
        metadata={"app": "Pi Freebie Demo"},
    )


# =============================================================================
# HTTP Provider Fixtures
# =============================================================================


@pytest.fixture
def make_provider():
    """
    Build a PiNetworkProvider whose HTTP calls are answered by a handler.

    Usage:
        provider = make_provider(lambda request: httpx.Response(200, json={}))
    """
    providers = []

    def _make(handler):
        provider = PiNetworkProvider(
            base_url="https://api.testnet.example",
            api_key="test_key",
            timeout=2.0,
            transport=httpx.MockTransport(handler),
        )
        providers.append(provider)
        return provider

    yield _make

    for provider in providers:
        provider.close()
