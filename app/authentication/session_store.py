"""
Session-scoped state for the Pi testnet demo.

SessionStore wraps the request's Django session (cache-backed, see
SESSION_ENGINE) and is passed explicitly to AuthService and
PaymentService. Nothing else reads or writes the session keys below.

Session layout:
    pi               -> PiSession.to_dict()
    _messages        -> django.contrib.messages queue (flash messages)

The single payment slot lives outside the session dict, in its own cache
entry keyed by the session key:

    pi:slot:<session_key>  -> PaymentRecord.to_dict()

SessionMiddleware saves the whole session dict at the end of every request
that modified it. Kept inside that dict, the slot written by one request
would be overwritten by the stale copy of an overlapping request for the
same session. The separate entry is only written under SessionLock.

Usage:
    store = SessionStore(request)
    if store.get() is None:
        ...
    store.set_last_payment(record)
    store.flash("Testnet cashout initiated!", messages.SUCCESS)
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING

from django.conf import settings
from django.contrib import messages
from django.core.cache import cache

from payments.types import PaymentRecord

if TYPE_CHECKING:
    from typing import Any

    from django.contrib.sessions.backends.base import SessionBase
    from django.http import HttpRequest

logger = logging.getLogger(__name__)

SESSION_KEY = "pi"


def slot_cache_key(session_key: str) -> str:
    """Cache key holding the payment slot of `session_key`."""
    return f"pi:slot:{session_key}"


@dataclass
class PiSession:
    """
    An authenticated demo session.

    Attributes:
        session_id: Django session key (None until first saved)
        user_id: Pi UID, given at login or generated
        username: Display name entered at login
        authenticated: True while the session is live
        login_time: POSIX timestamp of login
        testnet: Always True in testnet mode
    """

    session_id: str | None
    user_id: str
    username: str
    authenticated: bool = True
    login_time: float = 0.0
    testnet: bool = True

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("session_id")
        return data

    @classmethod
    def from_dict(cls, session_id: str | None, data: dict[str, Any]) -> PiSession:
        return cls(
            session_id=session_id,
            user_id=data.get("user_id", ""),
            username=data.get("username", ""),
            authenticated=bool(data.get("authenticated")),
            login_time=float(data.get("login_time") or 0),
            testnet=data.get("testnet", True),
        )

    @property
    def is_valid(self) -> bool:
        """authenticated holds only together with a user id and login time."""
        return self.authenticated and bool(self.user_id) and self.login_time > 0


class SessionStore:
    """
    Explicit handle on one client's session.

    Wraps request.session so services never touch ambient global state.
    Flash messages go through django.contrib.messages, so the request
    must have passed SessionMiddleware and MessageMiddleware.
    """

    def __init__(self, request: HttpRequest) -> None:
        self.request = request

    @property
    def session(self) -> SessionBase:
        return self.request.session

    @property
    def session_key(self) -> str | None:
        return self.session.session_key

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    def get(self) -> PiSession | None:
        """Return the current session, or None if nobody is logged in."""
        data = self.session.get(SESSION_KEY)
        if not data:
            return None
        return PiSession.from_dict(self.session_key, data)

    def create(self, user_id: str, username: str, login_time: float | None = None) -> PiSession:
        """
        Start a new session, discarding everything the old one held.

        The session key is rotated, so a key known before login is useless
        afterwards.
        """
        self._drop_slot()
        self.session.flush()
        pi_session = PiSession(
            session_id=None,
            user_id=user_id,
            username=username,
            authenticated=True,
            login_time=time.time() if login_time is None else login_time,
            testnet=True,
        )
        self.session[SESSION_KEY] = pi_session.to_dict()
        self.session.save()
        pi_session.session_id = self.session_key
        return pi_session

    def destroy(self) -> None:
        """Drop all session state. Safe to call on an empty session."""
        self._drop_slot()
        self.session.flush()

    def is_live(self) -> bool:
        """
        True if the session still exists in the session backend.

        False once another request for the same session logged out or
        timed it out, even though this request still holds its old copy.
        """
        return self.session_key is not None and self.session.exists(self.session_key)

    # =========================================================================
    # Payment slot
    # =========================================================================

    def get_last_payment(self) -> PaymentRecord | None:
        """
        Return the payment slot.

        Always read from the cache, so a write made by a concurrent request
        for the same session is seen.
        """
        if self.session_key is None:
            return None
        data = cache.get(slot_cache_key(self.session_key))
        if not data:
            return None
        return PaymentRecord.from_dict(data)

    def set_last_payment(self, record: PaymentRecord) -> None:
        """
        Replace the slot unconditionally.

        A session that was never saved gets its key first.
        """
        if self.session_key is None:
            self.session.save()
        cache.set(
            slot_cache_key(self.session_key),
            record.to_dict(),
            # Retention is enforced by PaymentService; this only reaps orphans
            timeout=settings.PAYMENT_RETENTION_SECONDS + settings.SESSION_COOKIE_AGE,
        )

    def clear_last_payment(self) -> None:
        self._drop_slot()

    def compare_and_set_last_payment(
        self,
        expected_id: str,
        record: PaymentRecord,
        expected_status: str | None = None,
    ) -> bool:
        """
        Write `record` only if the stored slot still holds `expected_id`
        (and, when given, `expected_status`).

        Callers hold SessionLock around this call.

        Returns:
            True if the slot was written
        """
        stored = self.get_last_payment()
        if (
            stored is None
            or stored.payment_id != expected_id
            or (expected_status is not None and stored.status != str(expected_status))
        ):
            logger.info(
                "Payment slot changed underneath update",
                extra={
                    "expected_payment_id": expected_id,
                    "stored_payment_id": stored.payment_id if stored else None,
                },
            )
            return False
        self.set_last_payment(record)
        return True

    def _drop_slot(self) -> None:
        if self.session_key is not None:
            cache.delete(slot_cache_key(self.session_key))

    # =========================================================================
    # Flash messages
    # =========================================================================

    def flash(self, message: str, level: int = messages.INFO) -> None:
        """Queue a message for the next rendered page."""
        messages.add_message(self.request, level, message)

    def pop_flash(self) -> str | None:
        """
        Consume queued messages and return the newest one.

        Iterating the message storage marks it used, so the message is gone
        after this render.
        """
        texts = [str(message) for message in messages.get_messages(self.request)]
        return texts[-1] if texts else None


__all__ = ["SESSION_KEY", "PiSession", "SessionStore", "slot_cache_key"]
