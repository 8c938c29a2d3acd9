"""
Authentication services.

This module provides the AuthService class for the mock Pi login,
logout and the idle-timeout check run on every request.

Related files:
    - session_store.py: SessionStore, PiSession
    - middleware.py: SessionTimeoutMiddleware (runs check_timeout)
    - payments/audit.py: login and logout audit entries

Security:
    - Session key is rotated on login
    - Sessions expire SESSION_TIMEOUT_SECONDS after login, idle or not
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import TimeoutError as FutureTimeoutError
from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings

from core.services import BaseService, ServiceResult
from payments.adapters import generate_uid, get_provider
from payments.audit import record_event
from payments.exceptions import ProviderError

if TYPE_CHECKING:
    from typing import Any

    from authentication.session_store import PiSession, SessionStore

logger = logging.getLogger(__name__)


class AuthService(BaseService):
    """
    Centralized authentication business logic.

    All methods take the SessionStore explicitly.

    Usage:
        from authentication.services import AuthService

        result = AuthService.login(store, "alice", "")
        if result.success:
            pi_session = result.data

        if AuthService.check_timeout(store):
            return redirect("/")
    """

    # Shown on the dashboard; the demo has no real wallet
    DEMO_BALANCE = Decimal("50.0")

    @staticmethod
    def is_authenticated(store: SessionStore) -> bool:
        """True if the store holds a live, authenticated session."""
        pi_session = store.get()
        return pi_session is not None and pi_session.is_valid

    @staticmethod
    def check_timeout(store: SessionStore, now: float | None = None) -> bool:
        """
        Destroy the session if it outlived SESSION_TIMEOUT_SECONDS.

        Must run before any other session-dependent logic.

        Returns:
            True if the session was destroyed and the caller should restart
        """
        pi_session = store.get()
        if pi_session is None or not pi_session.is_valid:
            return False

        now = time.time() if now is None else now
        if now - pi_session.login_time <= settings.SESSION_TIMEOUT_SECONDS:
            return False

        store.destroy()
        logger.info(
            f"Session timed out for {pi_session.user_id}",
            extra={
                "user_id": pi_session.user_id,
                "age_seconds": int(now - pi_session.login_time),
            },
        )
        return True

    @classmethod
    def login(
        cls,
        store: SessionStore,
        username: str,
        uid: str = "",
        access_token: str | None = None,
    ) -> ServiceResult[PiSession]:
        """
        Log in with a Pi username and optional UID.

        A blank UID is replaced with a generated testnet UID. Any previous
        session state (including the payment slot) is discarded.

        Args:
            store: Session to log into
            username: Pi username (required)
            uid: Pi UID (optional)
            access_token: Pi SDK access token, for the HTTP provider

        Returns:
            ServiceResult with the new PiSession, or MISSING_USERNAME
            / PROVIDER_ERROR failures (session untouched). An identity the
            provider did not verify is a PROVIDER_ERROR.
        """
        username = (username or "").strip()
        uid = (uid or "").strip()

        if not username:
            return ServiceResult.failure(
                "Pi username is required",
                error_code="MISSING_USERNAME",
                errors={"pi_username": ["This field is required."]},
            )

        try:
            identity = get_provider().authenticate_user(uid, access_token).result(
                timeout=settings.PI_PROVIDER_TIMEOUT_SECONDS
            )
        except FutureTimeoutError:
            return ServiceResult.failure(
                "Pi authentication timed out. Please retry.",
                error_code="PROVIDER_ERROR",
            )
        except ProviderError as e:
            cls.get_logger().warning(
                f"Pi authentication failed: {e.message}",
                extra={"uid": uid, "error_code": e.error_code},
            )
            return ServiceResult.from_exception(e, error_code="PROVIDER_ERROR")

        if not identity.authenticated:
            cls.get_logger().warning(
                "Pi authentication refused: identity not verified",
                extra={"uid": uid, "provider_uid": identity.uid},
            )
            return ServiceResult.failure(
                "Pi could not verify this user. Sign in through the Pi Browser.",
                error_code="PROVIDER_ERROR",
            )

        user_id = identity.uid or uid or generate_uid()
        pi_session = store.create(user_id=user_id, username=username)

        record_event("login", {"uid": user_id, "username": username})
        cls.get_logger().info(
            f"User logged in: {username}",
            extra={"user_id": user_id, "username": username},
        )
        return ServiceResult.success(pi_session)

    @staticmethod
    def logout(store: SessionStore) -> None:
        """Destroy the session. Safe when nobody is logged in."""
        pi_session = store.get()
        store.destroy()
        if pi_session is not None:
            record_event("logout", {"uid": pi_session.user_id, "username": pi_session.username})
            logger.info(
                f"User logged out: {pi_session.username}",
                extra={"user_id": pi_session.user_id},
            )

    @classmethod
    def session_summary(cls, store: SessionStore, now: float | None = None) -> dict[str, Any] | None:
        """
        Dashboard view of the current session.

        Returns:
            Dict with user_id, username, minutes_active, network and
            balance, or None when nobody is logged in
        """
        pi_session = store.get()
        if pi_session is None or not pi_session.is_valid:
            return None

        now = time.time() if now is None else now
        return {
            "user_id": pi_session.user_id,
            "username": pi_session.username,
            "login_time": pi_session.login_time,
            "minutes_active": int((now - pi_session.login_time) // 60),
            "network": "Testnet" if pi_session.testnet else "Mainnet",
            "balance": str(cls.DEMO_BALANCE),
        }


__all__ = ["AuthService"]
