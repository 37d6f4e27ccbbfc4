"""Event check-ins: QR validation, eligibility rules and point awards."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.database import atomic
from ..core.errors import (
    AlreadyProcessed,
    Expired,
    InvalidOperation,
    InvalidToken,
    NotFound,
    RateLimited,
)
from ..models import Event, EventCheckin, EventStatus, TransactionCategory
from ..utils.datetime import as_naive_utc
from . import event_service, ledger_service, member_service, token_protocol
from .token_protocol import TokenError, TokenValidation

logger = logging.getLogger(__name__)

# Reasons a member may not check in right now.
EVENT_INACTIVE = "event_inactive"
OUTSIDE_WINDOW = "outside_window"
ALREADY_CHECKED_IN = "already_checked_in"
LIMIT_REACHED = "limit_reached"
INTERVAL_PENDING = "interval_pending"


@dataclass(frozen=True)
class CheckinEligibility:
    can_checkin: bool
    checkin_count: int
    checkins_remaining: int
    wait_seconds: int = 0
    reason: Optional[str] = None
    last_checkin_at: Optional[datetime] = None


@dataclass
class CheckinResult:
    checkin: EventCheckin
    event: Event
    points_awarded: int
    checkin_number: int
    checkins_remaining: int


def max_checkins(event: Event) -> int:
    if not event.allow_multiple_checkins:
        return 1
    return event.max_checkins_per_user or 1


def calculate_award(event: Event, checkin_number: int) -> int:
    """Points for the ``checkin_number``-th check-in.

    Multi check-in events split ``total_points`` evenly with floor division;
    the remainder goes to the final check-in so the full sequence adds up to
    exactly ``total_points``.
    """

    if not event.allow_multiple_checkins:
        return event.total_points

    limit = max_checkins(event)
    base, remainder = divmod(event.total_points, limit)
    return base + remainder if checkin_number == limit else base


def evaluate_eligibility(
    event: Event,
    checkins: Sequence[EventCheckin],
    *,
    now: Optional[datetime] = None,
) -> CheckinEligibility:
    """Decide whether a member may check in, given their check-ins newest first."""

    now = as_naive_utc(now)
    count = len(checkins)
    limit = max_checkins(event)
    remaining = max(limit - count, 0)
    last_at = checkins[0].created_at if checkins else None

    def blocked(reason: str, wait: int = 0) -> CheckinEligibility:
        return CheckinEligibility(False, count, remaining, wait, reason, last_at)

    if event.status != EventStatus.ACTIVE:
        return blocked(EVENT_INACTIVE)
    if now < event.start_at or now > event.end_at:
        return blocked(OUTSIDE_WINDOW)
    if not event.allow_multiple_checkins:
        if count > 0:
            return blocked(ALREADY_CHECKED_IN)
    else:
        if count >= limit:
            return blocked(LIMIT_REACHED)
        if count > 0 and event.checkin_interval_seconds:
            elapsed = (now - last_at).total_seconds()
            if elapsed < event.checkin_interval_seconds:
                return blocked(INTERVAL_PENDING, math.ceil(event.checkin_interval_seconds - elapsed))

    return CheckinEligibility(True, count, remaining, 0, None, last_at)


def _raise_for(eligibility: CheckinEligibility) -> None:
    reason = eligibility.reason
    if reason == EVENT_INACTIVE:
        raise InvalidOperation("Event is not active")
    if reason == OUTSIDE_WINDOW:
        raise InvalidOperation("Event is outside its check-in period")
    if reason == ALREADY_CHECKED_IN:
        raise AlreadyProcessed("Already checked in to this event")
    if reason == LIMIT_REACHED:
        raise AlreadyProcessed("Check-in limit reached for this event")
    if reason == INTERVAL_PENDING:
        raise RateLimited(f"Wait {eligibility.wait_seconds} seconds before checking in again", eligibility.wait_seconds)


def raise_for_token(validation: TokenValidation) -> None:
    """Translate a rejected token into the matching typed error."""

    if validation.error == TokenError.EXPIRED:
        raise Expired(validation.message)
    if validation.error == TokenError.ALREADY_PROCESSED:
        raise AlreadyProcessed(validation.message)
    if validation.error == TokenError.CONTEXT_NOT_FOUND:
        raise NotFound(validation.message)
    raise InvalidToken(validation.message)


def member_checkins(session: Session, event_id: UUID, member_id: UUID) -> Sequence[EventCheckin]:
    stmt = (
        select(EventCheckin)
        .where(EventCheckin.event_id == event_id, EventCheckin.member_id == member_id)
        .order_by(EventCheckin.created_at.desc(), EventCheckin.checkin_number.desc())
    )
    return session.execute(stmt).scalars().all()


def process_checkin(
    session: Session,
    *,
    member_id: UUID,
    qr_payload: str,
    now: Optional[datetime] = None,
) -> CheckinResult:
    """Redeem a scanned event QR code for points."""

    now = as_naive_utc(now)
    validation = token_protocol.validate(session, token_protocol.EVENT_PAYLOAD, qr_payload, now=now)
    if not validation.valid:
        logger.info("check-in by %s rejected: %s", member_id, validation.error.value)
        raise_for_token(validation)

    member_service.ensure_member(session, member_id)
    event = event_service.get_event(session, validation.context_id)
    token = validation.token

    existing = member_checkins(session, event.event_id, member_id)
    eligibility = evaluate_eligibility(event, existing, now=now)
    if not eligibility.can_checkin:
        _raise_for(eligibility)

    if any(checkin.token_id == token.token_id for checkin in existing):
        raise AlreadyProcessed("This QR code was already used")

    checkin_number = len(existing) + 1
    points = calculate_award(event, checkin_number)

    try:
        with atomic(session):
            checkin = EventCheckin(
                event_id=event.event_id,
                member_id=member_id,
                token_id=token.token_id,
                sequence=token.sequence,
                checkin_number=checkin_number,
                points_awarded=points,
                created_at=now,
            )
            session.add(checkin)
            session.flush()

            balance = ledger_service.get_or_create_balance(session, member_id)
            ledger_service.lock_balance(session, balance.balance_id)
            ledger_service.apply_entry(
                session,
                balance,
                points,
                TransactionCategory.EVENT_AWARD,
                f"Check-in: {event.name}",
                checkin_id=checkin.checkin_id,
                now=now,
            )
    except IntegrityError as exc:
        # A concurrent request from the same member claimed this token or slot.
        raise AlreadyProcessed("This QR code was already used") from exc

    logger.info(
        "member %s checked in to event %s (#%s, %s points)",
        member_id,
        event.event_id,
        checkin_number,
        points,
    )
    return CheckinResult(
        checkin=checkin,
        event=event,
        points_awarded=points,
        checkin_number=checkin_number,
        checkins_remaining=max_checkins(event) - checkin_number,
    )


def get_checkin_status(
    session: Session,
    *,
    event_id: UUID,
    member_id: UUID,
    now: Optional[datetime] = None,
) -> dict:
    """Member-facing summary of their check-ins and whether another is possible now."""

    now = as_naive_utc(now)
    event = event_service.get_event(session, event_id)
    event_service.complete_if_ended(session, event, now=now)

    checkins = member_checkins(session, event_id, member_id)
    eligibility = evaluate_eligibility(event, checkins, now=now)
    return {
        "event": event,
        "checkin_count": eligibility.checkin_count,
        "checkins_remaining": eligibility.checkins_remaining,
        "total_points_earned": sum(checkin.points_awarded for checkin in checkins),
        "can_checkin": eligibility.can_checkin,
        "wait_time_seconds": eligibility.wait_seconds,
        "last_checkin_at": eligibility.last_checkin_at,
    }
