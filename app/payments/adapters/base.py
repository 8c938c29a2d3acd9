"""
Payment provider contract and provider selection.

The lifecycle code talks to the Pi payment platform only through the
PaymentProvider protocol. Every operation returns a
concurrent.futures.Future so callers decide how long to wait, and so a
slow provider never runs while the session lock is held.

Available implementations:
    MockPiProvider: Resolved futures with generated test identifiers (default)
    PiNetworkProvider: HTTP client for the Pi platform API

Usage:
    from payments.adapters import get_provider

    future = get_provider().create_payment(params)
    payment = future.result(timeout=settings.PI_PROVIDER_TIMEOUT_SECONDS)

Note:
    The implementation is chosen by the PI_PROVIDER setting and cached for
    the life of the process. Call get_provider.cache_clear() after
    changing the setting (tests do this through a fixture).
"""

from __future__ import annotations

import functools
import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

if TYPE_CHECKING:
    from concurrent.futures import Future

    from payments.types import (
        CreatePaymentParams,
        ProviderCompletion,
        ProviderIdentity,
        ProviderPayment,
    )

logger = logging.getLogger(__name__)


@runtime_checkable
class PaymentProvider(Protocol):
    """
    Protocol for Pi payment providers.

    Implementations must not raise from the methods themselves; failures
    are delivered through the returned future as ProviderError subclasses.

    Example:
        class StaticProvider:
            name = "static"
            def authenticate_user(self, uid, access_token=None): ...
            def create_payment(self, params): ...
            def complete_payment(self, payment_id, txid=None): ...

        # StaticProvider is a valid PaymentProvider
        # even without explicit inheritance (duck typing)
    """

    name: str

    def authenticate_user(
        self,
        uid: str,
        access_token: str | None = None,
    ) -> Future[ProviderIdentity]:
        """
        Confirm a Pi user identity.

        Args:
            uid: Pi UID claimed by the login form (may be empty)
            access_token: Pi SDK access token, when the client has one

        Returns:
            Future resolving to the confirmed identity
        """
        ...

    def create_payment(self, params: CreatePaymentParams) -> Future[ProviderPayment]:
        """
        Ask the provider to create an app-to-user payment.

        Returns:
            Future resolving to the created payment (status pending)
        """
        ...

    def complete_payment(
        self,
        payment_id: str,
        txid: str | None = None,
    ) -> Future[ProviderCompletion]:
        """
        Tell the provider a payment's blockchain transaction is final.

        Returns:
            Future resolving to the completion acknowledgement
        """
        ...


PROVIDERS = {
    "mock": "payments.adapters.mock.MockPiProvider",
    "pi": "payments.adapters.pi_network.PiNetworkProvider",
}


@functools.lru_cache(maxsize=1)
def get_provider() -> PaymentProvider:
    """
    Return the process-wide provider selected by settings.PI_PROVIDER.

    Raises:
        ImproperlyConfigured: If PI_PROVIDER names no known provider
    """
    from django.utils.module_loading import import_string

    name = getattr(settings, "PI_PROVIDER", "mock")
    path = PROVIDERS.get(name)
    if path is None:
        raise ImproperlyConfigured(
            f"Unknown PI_PROVIDER {name!r}; expected one of {sorted(PROVIDERS)}"
        )

    provider = import_string(path)()
    logger.info(f"Payment provider selected: {provider.name}", extra={"provider": name})
    return provider


__all__ = ["PROVIDERS", "PaymentProvider", "get_provider"]
