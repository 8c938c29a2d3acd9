"""
Payment services for the session payment slot.

This module provides:
- PaymentService: cashout creation, webhook status updates, retention

Usage:
    from payments.services import PaymentService

    result = PaymentService.request_cashout(store, "5.0", "")
    if result.success:
        store.flash(f"Testnet cashout initiated! Payment ID: {result.data.payment_id}")
"""

from payments.services.payment_service import PaymentService

__all__ = ["PaymentService"]
