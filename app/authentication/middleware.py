"""
Request-level session checks.

SessionTimeoutMiddleware runs before every view:

1. AuthService.check_timeout() destroys a session older than
   SESSION_TIMEOUT_SECONDS. Page requests are redirected to the entry
   page; webhook deliveries carry on with the now-empty session.
2. PaymentService.expire_stale_payment() drops a payment slot older
   than PAYMENT_RETENTION_SECONDS.

Must be listed after SessionMiddleware and MessageMiddleware.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.contrib import messages
from django.shortcuts import redirect

from authentication.services import AuthService
from authentication.session_store import SessionStore
from payments.services import PaymentService

if TYPE_CHECKING:
    from typing import Callable

    from django.http import HttpRequest, HttpResponse

logger = logging.getLogger(__name__)

WEBHOOK_PATH_PREFIX = "/webhooks/"


def is_webhook_request(request: HttpRequest) -> bool:
    return request.GET.get("webhook") == "pi_callback" or request.path.startswith(
        WEBHOOK_PATH_PREFIX
    )


class SessionTimeoutMiddleware:
    """Expire idle sessions and stale payments before the view runs."""

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        store = SessionStore(request)

        if AuthService.check_timeout(store):
            if not is_webhook_request(request):
                store.flash("Session expired. Please log in again.", messages.WARNING)
                return redirect("index")
            logger.debug("Session expired during webhook delivery", extra={"path": request.path})

        PaymentService.expire_stale_payment(store)
        return self.get_response(request)
