"""
Views for the Pi testnet cashout demo.

The whole demo is served from one entry point, like a single-page app:

    POST /  action=login     -> 302 /?page=dashboard (200 state on failure)
    POST /  action=logout    -> 302 /
    POST /  action=cashout   -> 302 /?page=cashout (outcome as a flash message)
    GET  /?page=<tab>        -> JSON state document for the tab
    POST /?webhook=pi_callback -> webhook (see payments.webhooks.views)

Related files:
    - services/payment_service.py: PaymentService
    - serializers.py: form and PaymentRecord serializers
    - webhooks/views.py: pi_callback

Security:
    - Form posts are CSRF-protected; the webhook branch is exempt
    - Session timeout is enforced by SessionTimeoutMiddleware first
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from django.conf import settings
from django.contrib import messages
from django.http import HttpRequest, HttpResponse, JsonResponse
from django.shortcuts import redirect
from django.urls import reverse
from django.views.decorators.csrf import csrf_exempt, csrf_protect
from django.views.decorators.http import require_http_methods

from authentication.services import AuthService
from authentication.session_store import SessionStore
from payments.adapters import get_provider
from payments.audit import recent_events
from payments.serializers import CashoutSerializer, LoginSerializer, PaymentRecordSerializer
from payments.services import PaymentService
from payments.webhooks.views import pi_callback

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)

PAGES = ("dashboard", "cashout", "webhook", "sdk")
DEFAULT_PAGE = "dashboard"


@csrf_exempt
def index(request: HttpRequest) -> HttpResponse:
    """
    Entry point. Routes webhook deliveries away from the CSRF-protected
    page handler.
    """
    if request.GET.get("webhook") == "pi_callback":
        return pi_callback(request)
    return page(request)


@csrf_protect
@require_http_methods(["GET", "POST"])
def page(request: HttpRequest) -> HttpResponse:
    store = SessionStore(request)

    if request.method == "POST":
        action = request.POST.get("action", "")
        if action == "login":
            return _login(request, store)
        if action == "logout":
            AuthService.logout(store)
            return redirect("index")
        if action == "cashout":
            return _cashout(request, store)
        logger.info("Ignoring unknown form action", extra={"action": action})

    return JsonResponse(build_state(request, store, request.GET.get("page", DEFAULT_PAGE)))


def _login(request: HttpRequest, store: SessionStore) -> HttpResponse:
    form = LoginSerializer(data=request.POST)
    data = form.validated_data if form.is_valid() else {}

    result = AuthService.login(
        store,
        data.get("pi_username", ""),
        data.get("pi_uid", ""),
        access_token=data.get("access_token") or None,
    )
    if not result.success:
        state = build_state(request, store, "login")
        state["error"] = result.to_response()
        return JsonResponse(state)

    return redirect(f"{_index_url()}?page=dashboard")


def _cashout(request: HttpRequest, store: SessionStore) -> HttpResponse:
    if not AuthService.is_authenticated(store):
        return JsonResponse(
            {"status": "unauthenticated", "error": "Not authenticated"},
            status=403,
        )

    form = CashoutSerializer(data=request.POST)
    data = form.validated_data if form.is_valid() else {"amount": "", "memo": ""}

    result = PaymentService.request_cashout(store, data["amount"], data["memo"])
    if result.success:
        store.flash(
            f"✅ Testnet cashout initiated! Payment ID: {result.data.payment_id}",
            messages.SUCCESS,
        )
    else:
        store.flash(f"❌ {result.error}", messages.ERROR)

    return redirect(f"{_index_url()}?page=cashout")


def _index_url() -> str:
    return reverse("index")


def build_state(
    request: HttpRequest,
    store: SessionStore,
    page_name: str,
    now: float | None = None,
) -> dict[str, Any]:
    """
    JSON state document for one tab.

    Consumes the pending flash message, so it is shown exactly once.
    """
    now = time.time() if now is None else now
    authenticated = AuthService.is_authenticated(store)

    if not authenticated:
        page_name = "login"
    elif page_name not in PAGES:
        page_name = DEFAULT_PAGE

    last_payment = store.get_last_payment() if authenticated else None
    state: dict[str, Any] = {
        "app": settings.PI_APP_NAME,
        "testnet": True,
        "page": page_name,
        "authenticated": authenticated,
        "session": AuthService.session_summary(store, now),
        "last_payment": PaymentRecordSerializer(last_payment).data if last_payment else None,
        "message": store.pop_flash(),
    }

    if page_name == "cashout":
        minimum, maximum = PaymentService.amount_bounds()
        state["cashout"] = {
            "min": str(minimum),
            "max": str(maximum),
            "default_memo": PaymentService.default_memo(),
            "recipient": state["session"]["user_id"],
        }
    elif page_name == "webhook":
        state["webhook"] = {
            "url": request.build_absolute_uri(f"{_index_url()}?webhook=pi_callback"),
            "signed": bool(settings.PI_WEBHOOK_SECRET),
            "example_payload": {
                "type": "payment_approved",
                "payment_id": "pay_123456789",
                "amount": 5.0,
                "uid": state["session"]["user_id"],
                "memo": "Test payment",
                "timestamp": int(now),
            },
            "recent_events": recent_events(limit=5),
        }
    elif page_name == "sdk":
        state["sdk"] = {
            "provider": get_provider().name,
            "api_base_url": settings.PI_API_BASE_URL,
            "testnet": True,
        }

    return state
