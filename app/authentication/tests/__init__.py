"""
Tests for authentication app.

This package contains test modules for:
- test_session_store.py: SessionStore and PiSession tests
- test_services.py: AuthService tests
- test_middleware.py: SessionTimeoutMiddleware tests

Usage:
    pytest authentication/tests/
    pytest authentication/tests/test_services.py
"""
