"""
Payments app for the Pi testnet cashout demo.

This app handles:
- Cashout requests within the testnet limit
- The session's single payment slot and its forward-only status
- Pi webhook callbacks (approved, completed, failed, test)
- The audit trail of every action

Related apps:
    - authentication: SessionStore and the logged-in Pi user

Usage:
    from payments.services import PaymentService

    result = PaymentService.request_cashout(store, "5.0", "")
    outcome = PaymentService.apply_status(store, payment_id, "approved")
"""
