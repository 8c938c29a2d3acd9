"""
Append-only audit trail for login, cashout and webhook actions.

Every action is written as one line on the ``audit`` logger:

    2026-01-01 12:00:00 | cashout_initiated | {"payment_id": "test_pay_...", ...}

Persistence is the logging configuration's job (see LOGGING in
config/settings.py, which attaches a rotating file handler writing
AUDIT_LOG_FILE). Nothing in the payment lifecycle reads the trail back;
recent_events() exists only so the webhook page can show the last lines.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from pathlib import Path
from typing import Any

from django.conf import settings

logger = logging.getLogger(__name__)

audit_logger = logging.getLogger("audit")


def _default(value: Any) -> str:
    return str(value)


def record_event(action: str, payload: dict[str, Any] | None = None) -> None:
    """
    Append one action to the audit trail.

    Never raises: an unserialisable payload is logged with its repr and a
    broken handler is reported on the module logger.
    """
    try:
        body = json.dumps(payload or {}, ensure_ascii=False, default=_default)
    except (TypeError, ValueError):
        body = json.dumps({"repr": repr(payload)}, ensure_ascii=False)

    try:
        audit_logger.info(
            "%s | %s",
            action,
            body,
            extra={"audit_action": action},
        )
    except Exception:
        logger.error(f"Failed to write audit event {action}", exc_info=True)


def recent_events(limit: int = 5) -> list[str]:
    """
    Return the newest `limit` audit lines, newest first.

    Returns an empty list when the audit file does not exist yet.
    """
    path = Path(settings.AUDIT_LOG_FILE)
    if not path.exists():
        return []

    with path.open(encoding="utf-8", errors="replace") as handle:
        tail = deque((line.rstrip("\n") for line in handle if line.strip()), maxlen=limit)

    return list(reversed(tail))


__all__ = ["record_event", "recent_events"]
