"""Event management and the rotating event QR code."""

from __future__ import annotations

import logging
import math
import secrets
from datetime import datetime, timedelta
from typing import Any, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ..core.config import get_settings
from ..core.errors import InvalidOperation, NotFound
from ..models import Event, EventCheckin, EventStatus, QRToken
from ..utils.datetime import as_naive_utc
from . import member_service, token_protocol

logger = logging.getLogger(__name__)


class EventEnded(InvalidOperation):
    """Raised by display reads once the event's window has closed."""


def get_event(session: Session, event_id: UUID) -> Event:
    event = session.get(Event, event_id)
    if event is None:
        raise NotFound("Event not found")
    return event


def create_event(
    session: Session,
    *,
    name: str,
    start_at: datetime,
    end_at: datetime,
    total_points: int,
    description: Optional[str] = None,
    allow_multiple_checkins: bool = False,
    max_checkins_per_user: Optional[int] = None,
    checkin_interval_seconds: Optional[int] = None,
    qr_rotation_seconds: Optional[int] = None,
    status: EventStatus = EventStatus.DRAFT,
    created_by: Optional[UUID] = None,
) -> Event:
    """Create an event with a freshly generated signing secret."""

    start_at = as_naive_utc(start_at)
    end_at = as_naive_utc(end_at)
    if end_at <= start_at:
        raise InvalidOperation("End time must be after start time.")
    if total_points < 0:
        raise InvalidOperation("Total points cannot be negative.")
    if created_by is not None:
        member_service.ensure_member(session, created_by)
    if allow_multiple_checkins:
        if not max_checkins_per_user or max_checkins_per_user < 1:
            raise InvalidOperation("max_checkins_per_user is required when multiple check-ins are allowed.")
        if not checkin_interval_seconds or checkin_interval_seconds < 1:
            raise InvalidOperation("checkin_interval_seconds is required when multiple check-ins are allowed.")
    else:
        max_checkins_per_user = None
        checkin_interval_seconds = None

    event = Event(
        name=name,
        description=description,
        start_at=start_at,
        end_at=end_at,
        total_points=total_points,
        allow_multiple_checkins=allow_multiple_checkins,
        max_checkins_per_user=max_checkins_per_user,
        checkin_interval_seconds=checkin_interval_seconds,
        qr_rotation_seconds=qr_rotation_seconds or get_settings().default_qr_rotation_seconds,
        qr_secret=secrets.token_hex(32),
        status=status,
        created_by=created_by,
    )
    session.add(event)
    session.flush()
    logger.info("created event %s (%s)", event.event_id, name)
    return event


def list_events(
    session: Session,
    *,
    status: Optional[EventStatus] = None,
    limit: int = 50,
    offset: int = 0,
) -> Sequence[Event]:
    stmt = select(Event).order_by(Event.start_at.desc()).offset(offset).limit(limit)
    if status:
        stmt = stmt.where(Event.status == status)
    return session.execute(stmt).scalars().all()


def list_available(session: Session, *, now: Optional[datetime] = None) -> Sequence[Event]:
    """Active events that have not ended yet, soonest first."""

    stmt = (
        select(Event)
        .where(Event.status == EventStatus.ACTIVE, Event.end_at >= as_naive_utc(now))
        .order_by(Event.start_at.asc())
    )
    return session.execute(stmt).scalars().all()


def update_status(session: Session, event_id: UUID, status: EventStatus) -> Event:
    event = get_event(session, event_id)
    event.status = status
    session.flush()
    logger.info("event %s moved to %s", event_id, status.value)
    return event


def complete_if_ended(session: Session, event: Event, *, now: Optional[datetime] = None) -> bool:
    """Flip an ACTIVE event past its end time to COMPLETED.

    Advisory housekeeping only; check-ins are judged against the time window,
    not against this status change.
    """

    if event.status == EventStatus.ACTIVE and as_naive_utc(now) > event.end_at:
        event.status = EventStatus.COMPLETED
        session.flush()
        logger.info("event %s completed after its end time", event.event_id)
        return True
    return False


def complete_ended_events(session: Session, *, now: Optional[datetime] = None) -> int:
    """Bulk variant of ``complete_if_ended`` used by the housekeeping job."""

    stmt = (
        update(Event)
        .where(Event.status == EventStatus.ACTIVE, Event.end_at < as_naive_utc(now))
        .values(status=EventStatus.COMPLETED)
        .execution_options(synchronize_session=False)
    )
    return session.execute(stmt).rowcount or 0


def current_sequence(event: Event, now: datetime) -> int:
    """Index of the rotation window containing ``now``, counted from the event start."""

    elapsed = as_naive_utc(now) - event.start_at
    return max(0, elapsed // timedelta(seconds=event.qr_rotation_seconds))


def window_expiry(event: Event, sequence: int) -> datetime:
    return event.start_at + timedelta(seconds=event.qr_rotation_seconds * (sequence + 1))


def get_current_token(session: Session, event_id: UUID, *, now: Optional[datetime] = None) -> QRToken:
    """Return the token for the current rotation window, issuing it on first demand."""

    now = as_naive_utc(now)
    event = get_event(session, event_id)
    sequence = current_sequence(event, now)
    return token_protocol.issue(
        session,
        token_protocol.EVENT_PAYLOAD,
        event,
        sequence=sequence,
        expires_at=window_expiry(event, sequence),
    )


def get_display_data(session: Session, event_id: UUID, *, now: Optional[datetime] = None) -> dict[str, Any]:
    """Everything the check-in screen shows: event details, live QR payload and stats."""

    now = as_naive_utc(now)
    event = get_event(session, event_id)

    if event.status != EventStatus.ACTIVE:
        raise InvalidOperation("Event is not active")
    if complete_if_ended(session, event, now=now):
        raise EventEnded("Event has ended")
    if now < event.start_at:
        raise InvalidOperation("Event has not started yet")

    token = get_current_token(session, event_id, now=now)
    remaining = token.expires_at - now
    next_rotation_in = max(0, math.ceil(remaining.total_seconds()))

    total_checkins, unique_members = session.execute(
        select(
            func.count(EventCheckin.checkin_id),
            func.count(func.distinct(EventCheckin.member_id)),
        ).where(EventCheckin.event_id == event_id)
    ).one()

    return {
        "event": event,
        "qr_payload": token.payload,
        "sequence": token.sequence,
        "expires_at": token.expires_at,
        "next_rotation_in": next_rotation_in,
        "total_checkins": int(total_checkins),
        "unique_members": int(unique_members),
    }
