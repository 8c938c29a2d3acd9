"""
Payments app configuration.

This app provides the testnet cashout lifecycle:
- Single payment slot per session
- Pi payment provider adapters (mock and HTTP)
- Webhook ingestion and audit trail
"""

from django.apps import AppConfig
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    name = "payments"
    verbose_name = "Pi Payments"

    def ready(self):
        """
        Fail at startup when PI_PROVIDER names no known provider.

        The provider itself is built on first use (see get_provider).
        """
        from payments.adapters.base import PROVIDERS

        if settings.PI_PROVIDER not in PROVIDERS:
            raise ImproperlyConfigured(
                f"Unknown PI_PROVIDER {settings.PI_PROVIDER!r}; "
                f"expected one of {sorted(PROVIDERS)}"
            )
