"""
Root pytest configuration for the Django project.

This module configures pytest-django and provides project-wide fixtures.
App-specific fixtures are defined in each app's tests/conftest.py.
"""

import os

import django
import pytest

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")


def pytest_configure():
    """Configure Django settings before tests run."""
    django.setup()


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full user journey workflows)
    - test_views.py, test_services.py, test_handlers.py, etc. → integration
    - test_state_transitions.py, test_types.py, test_locks.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    # Filename patterns for each category
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_views.py",
        "test_services.py",
        "test_handlers.py",
        "test_middleware.py",
        "test_session_store.py",
    ]

    unit_patterns = [
        "test_serializers.py",
        "test_adapters.py",
        "test_audit.py",
        "test_types.py",
        "test_state_transitions.py",
        "test_locks.py",
        "test_exceptions.py",
    ]

    for item in items:
        # Skip if test already has unit/integration/e2e marker
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filepath = str(item.fspath)
        filename = filepath.split("/")[-1]

        # Check patterns in priority order
        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            # Default: integration (safe for Django request-level tests)
            item.add_marker(pytest.mark.integration)


# =============================================================================
# Shared Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clear_cache():
    """
    Isolate tests from each other.

    Sessions, locks and the provider selection all outlive a single test
    otherwise.
    """
    from django.core.cache import cache

    from payments.adapters import get_provider

    cache.clear()
    get_provider.cache_clear()
    yield
    cache.clear()
    get_provider.cache_clear()


@pytest.fixture
def rf():
    """Request factory for creating test requests."""
    from django.test import RequestFactory

    return RequestFactory()


@pytest.fixture
def prepare_request():
    """
    Attach a session and a message store to a RequestFactory request.

    Usage:
        request = prepare_request(rf.get("/"))
    """
    from django.contrib.messages.middleware import MessageMiddleware
    from django.contrib.sessions.middleware import SessionMiddleware
    from django.http import HttpResponse

    def _prepare(request, session_key=None):
        SessionMiddleware(lambda r: HttpResponse()).process_request(request)
        if session_key is not None:
            request.session = request.session.__class__(session_key)
        MessageMiddleware(lambda r: HttpResponse()).process_request(request)
        return request

    return _prepare


@pytest.fixture
def store(rf, prepare_request):
    """A SessionStore around a fresh, anonymous session."""
    from authentication.session_store import SessionStore

    return SessionStore(prepare_request(rf.get("/")))


@pytest.fixture
def logged_in_store(store):
    """A SessionStore logged in as alice (uid test_uid_alice)."""
    from authentication.services import AuthService

    result = AuthService.login(store, "alice", "test_uid_alice")
    assert result.success
    return store


@pytest.fixture
def second_store(rf, prepare_request):
    """
    Factory for another request's view of an existing session.

    Usage:
        other = second_store(store.session_key)
    """
    from authentication.session_store import SessionStore

    def _make(session_key):
        return SessionStore(prepare_request(rf.get("/"), session_key=session_key))

    return _make


@pytest.fixture
def logged_in_client(client):
    """Test client logged in as alice (uid test_uid_alice)."""
    response = client.post(
        "/",
        {"action": "login", "pi_username": "alice", "pi_uid": "test_uid_alice"},
    )
    assert response.status_code == 302
    return client


@pytest.fixture
def cashout_payment_id(logged_in_client, stored_slot):
    """Request a 5 π cashout through the form and return the stored payment id."""
    response = logged_in_client.post("/", {"action": "cashout", "amount": "5", "memo": ""})
    assert response.status_code == 302
    return stored_slot(logged_in_client)["payment_id"]


@pytest.fixture
def audit_events(caplog):
    """
    Return a callable listing audit entries as (action, payload) pairs.

    Usage:
        assert ("login", {"uid": "u1", "username": "alice"}) in audit_events()
    """
    import json
    import logging

    caplog.set_level(logging.INFO, logger="audit")

    def _events():
        events = []
        for record in caplog.records:
            if record.name != "audit":
                continue
            action, _, body = record.getMessage().partition(" | ")
            events.append((action, json.loads(body)))
        return events

    return _events


@pytest.fixture
def stored_slot():
    """
    Return the payment slot stored for a test client's session, or None.

    Usage:
        assert stored_slot(client)["status"] == "pending"
    """
    from django.core.cache import cache

    from authentication.session_store import slot_cache_key

    def _slot(client):
        session_key = client.session.session_key
        if session_key is None:
            return None
        return cache.get(slot_cache_key(session_key))

    return _slot


# =============================================================================
# Payment Slot Fixtures
# =============================================================================


@pytest.fixture
def pending_payment(logged_in_store):
    """Store a pending payment in alice's slot."""
    from payments.tests.factories import PaymentRecordFactory

    record = PaymentRecordFactory(user_id="test_uid_alice")
    logged_in_store.set_last_payment(record)
    return record


@pytest.fixture
def approved_payment(logged_in_store):
    """Store an approved payment in alice's slot."""
    from payments.state_machines import PaymentStatus
    from payments.tests.factories import PaymentRecordFactory

    record = PaymentRecordFactory(user_id="test_uid_alice", status=PaymentStatus.APPROVED.value)
    logged_in_store.set_last_payment(record)
    return record


@pytest.fixture
def completed_payment(logged_in_store):
    """Store a completed payment in alice's slot."""
    from payments.tests.factories import PaymentRecordFactory

    record = PaymentRecordFactory(user_id="test_uid_alice", completed=True)
    logged_in_store.set_last_payment(record)
    return record
