"""
Pytest fixtures for webhook tests.

Provides a helper for posting callbacks the way the Pi platform does.
Client fixtures (logged_in_client, cashout_payment_id) live in the root
conftest.
"""

import json

import pytest

from payments.webhooks.views import SIGNATURE_HEADER, compute_signature


# =============================================================================
# Delivery Helpers
# =============================================================================


@pytest.fixture
def post_webhook():
    """
    POST a callback body to the webhook endpoint.

    Usage:
        response = post_webhook(client, {"type": "test"})
        response = post_webhook(client, b"not json")
        response = post_webhook(client, payload, secret="s3cret")
    """

    def _post(client, payload, secret=None, signature=None, path="/webhooks/pi/"):
        body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
        headers = {}
        if secret is not None:
            signature = compute_signature(body, secret)
        if signature is not None:
            headers[f"HTTP_{SIGNATURE_HEADER.upper().replace('-', '_')}"] = signature
        return client.post(path, data=body, content_type="application/json", **headers)

    return _post
