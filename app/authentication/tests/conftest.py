"""
Test configuration and fixtures for authentication tests.

This module provides:
- Session stores at a fixed login time
- A session engine handle for reading what was actually persisted

Shared fixtures (store, logged_in_store, second_store, audit_events) live
in the root conftest.
"""

from importlib import import_module

import pytest
from django.conf import settings

# 2026-01-01 12:00:00 UTC
LOGIN_TIME = 1767268800.0


@pytest.fixture
def backend_session():
    """
    Load a session straight from the session engine.

    Usage:
        assert backend_session(store.session_key)["pi"]["username"] == "alice"
    """
    engine = import_module(settings.SESSION_ENGINE)

    def _load(session_key):
        return engine.SessionStore(session_key)

    return _load


@pytest.fixture
def session_at_login_time(store):
    """A store logged in as bob at LOGIN_TIME."""
    store.create(user_id="test_uid_bob", username="bob", login_time=LOGIN_TIME)
    return store

