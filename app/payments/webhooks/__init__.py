"""
Webhook handling for Pi payment callbacks.

This module provides the view and handlers for processing Pi webhooks.
Webhooks are optionally signature-checked, recorded in the audit trail
and applied synchronously to the caller's session payment slot.

Usage:
    # In urls.py
    from payments.webhooks.views import pi_callback

    urlpatterns = [
        path("webhooks/pi/", pi_callback, name="pi_callback"),
    ]
"""

from payments.webhooks.handlers import dispatch_webhook, register_handler
from payments.webhooks.views import ingest, pi_callback

__all__ = [
    "dispatch_webhook",
    "ingest",
    "pi_callback",
    "register_handler",
]
