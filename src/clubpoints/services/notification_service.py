"""Fire-and-forget member notifications.

Delivery channels are pluggable; the default dispatcher only logs. Dispatch
runs after the request's transaction has committed and a failing channel
never affects the operation that triggered it.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol
from uuid import UUID

logger = logging.getLogger(__name__)

POINTS_RECEIVED = "points_received"
POINTS_ADJUSTED = "points_adjusted"
CHECKIN_AWARDED = "checkin_awarded"
KIOSK_PAYMENT = "kiosk_payment"


class NotificationDispatcher(Protocol):
    def send(self, member_id: UUID, event: str, data: dict[str, Any]) -> None: ...


class LoggingDispatcher:
    """Dispatcher that records notifications in the application log."""

    def send(self, member_id: UUID, event: str, data: dict[str, Any]) -> None:
        logger.info("notify member %s: %s %s", member_id, event, data)


_dispatcher: NotificationDispatcher = LoggingDispatcher()


def set_dispatcher(dispatcher: NotificationDispatcher) -> None:
    global _dispatcher
    _dispatcher = dispatcher


def get_dispatcher() -> NotificationDispatcher:
    return _dispatcher


def notify(member_id: UUID, event: str, **data: Any) -> None:
    try:
        _dispatcher.send(member_id, event, data)
    except Exception:
        logger.exception("failed to send %s notification to member %s", event, member_id)
