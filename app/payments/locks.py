"""
Concurrency control for the per-session payment slot.

Two requests carrying the same session cookie (a double-clicked cashout
form, or a webhook racing a new cashout) must not interleave their
read-modify-write of the slot. SessionLock provides that mutual exclusion
through the configured Django cache:

    - django-redis when REDIS_URL is set (shared across processes)
    - local memory otherwise (single process, e.g. runserver and tests)

Usage:

    from payments.locks import SessionLock

    with SessionLock(request.session.session_key, ttl=10):
        # Only one request for this session can execute this at a time
        store.compare_and_set_last_payment(expected_id, record)

Note:
    Hold the lock only around slot reads and writes. Provider calls
    happen before the lock is taken.
"""

from __future__ import annotations

import logging
import time
import uuid as uuid_module
from typing import TYPE_CHECKING

from django.core.cache import cache

from payments.exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


class SessionLock:
    """
    Cache-based lock with TTL scoped to one session's payment slot.

    Features:
        - Automatic TTL prevents deadlocks from crashed workers
        - Token-based ownership prevents release by another request
        - Blocking and non-blocking acquisition modes
        - Context manager support

    Example:
        lock = SessionLock(session_key, ttl=10, blocking=True, timeout=5.0)
        try:
            with lock:
                store.set_last_payment(record)
        except LockAcquisitionError:
            # Another request for this session holds the lock
            handle_contention()

    Args:
        session_key: Django session key the lock protects
        ttl: Lock TTL in seconds (auto-releases after this time)
        blocking: If True, acquire() waits until lock is available
        timeout: Maximum wait time in seconds (only if blocking=True)
    """

    RETRY_INTERVAL = 0.05

    def __init__(
        self,
        session_key: str,
        ttl: int = 10,
        blocking: bool = True,
        timeout: float = 5.0,
    ) -> None:
        self.key = self.key_for(session_key)
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None

    @staticmethod
    def key_for(session_key: str) -> str:
        """Cache key guarding the payment slot of `session_key`."""
        return f"lock:session:{session_key}:payment"

    def acquire(self) -> bool:
        """
        Attempt to acquire the lock.

        Returns:
            True if lock was acquired

        Raises:
            LockAcquisitionError: If lock couldn't be acquired
        """
        token = str(uuid_module.uuid4())

        if self.blocking:
            end_time = time.monotonic() + self.timeout
            while True:
                if self._try_acquire(token):
                    return True
                if time.monotonic() >= end_time:
                    break
                time.sleep(self.RETRY_INTERVAL)

            logger.warning(
                f"Session lock timed out: {self.key}",
                extra={"lock_key": self.key, "timeout": self.timeout},
            )
            raise LockAcquisitionError(
                f"Failed to acquire lock '{self.key}' within {self.timeout}s",
                details={"key": self.key, "timeout": self.timeout},
            )

        if not self._try_acquire(token):
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )
        return True

    def _try_acquire(self, token: str) -> bool:
        """Try once to acquire the lock."""
        # cache.add only writes when the key is absent
        if cache.add(self.key, token, timeout=self.ttl):
            self._token = token
            return True
        return False

    def release(self) -> bool:
        """
        Release the lock if we hold it.

        Returns:
            True if lock was released, False if we didn't hold it

        Note:
            Safe to call multiple times. If the TTL already expired and
            another request took the lock, that lock is left alone.
        """
        if self._token is None:
            return False

        token, self._token = self._token, None
        if cache.get(self.key) != token:
            return False
        cache.delete(self.key)
        return True

    @property
    def is_held(self) -> bool:
        """Check if we currently hold the lock."""
        return self._token is not None

    def __enter__(self) -> SessionLock:
        """Context manager entry - acquire the lock."""
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        """Context manager exit - always release the lock."""
        self.release()
        return False


__all__ = ["SessionLock"]
