"""
Tests for payments app.

This package contains test modules for:
- test_types.py: PaymentRecord, WebhookEvent and amount parsing
- test_state_transitions.py: Forward-only transition table
- test_locks.py: SessionLock tests
- test_audit.py: Audit trail tests
- test_services.py: PaymentService tests
- test_serializers.py: Form and record serializer tests
- test_views.py: Entry point (login, cashout, tabs) tests

Usage:
    pytest payments/tests/
    pytest payments/tests/test_services.py
"""
