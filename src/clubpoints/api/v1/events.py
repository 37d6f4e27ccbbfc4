"""Event management, QR display and check-in endpoints."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.errors import PointsRuleViolation
from ...models import EventStatus
from ...schemas import (
    CheckinCreate,
    CheckinRead,
    CheckinReceipt,
    CheckinStatus,
    EventCreate,
    EventDisplay,
    EventRead,
    EventStatusUpdate,
)
from ...services import checkin_service, event_service, notification_service
from ...services.event_service import EventEnded
from .deps import get_current_member_id, to_http

router = APIRouter(prefix="/events", tags=["events"])


@router.post("", response_model=EventRead, status_code=status.HTTP_201_CREATED, summary="Create an event")
def create_event(
    payload: EventCreate,
    member_id: UUID = Depends(get_current_member_id),
    db: Session = Depends(get_db),
) -> EventRead:
    """Create an event; a signing secret is generated for its QR codes.

    Example request body::

        {
            "name": "Spring hackathon",
            "start_at": "2025-03-01T09:00:00Z",
            "end_at": "2025-03-01T18:00:00Z",
            "total_points": 100,
            "allow_multiple_checkins": true,
            "max_checkins_per_user": 3,
            "checkin_interval_seconds": 3600
        }
    """

    try:
        event = event_service.create_event(
            db,
            name=payload.name,
            description=payload.description,
            start_at=payload.start_at,
            end_at=payload.end_at,
            total_points=payload.total_points,
            allow_multiple_checkins=payload.allow_multiple_checkins,
            max_checkins_per_user=payload.max_checkins_per_user,
            checkin_interval_seconds=payload.checkin_interval_seconds,
            qr_rotation_seconds=payload.qr_rotation_seconds,
            status=payload.status,
            created_by=member_id,
        )
        db.commit()
        db.refresh(event)
        return event
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc


@router.get("", response_model=List[EventRead], summary="List events")
def list_events(
    *,
    event_status: Optional[EventStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
) -> List[EventRead]:
    return list(event_service.list_events(db, status=event_status, limit=limit, offset=offset))


@router.get("/available", response_model=List[EventRead], summary="Events open for check-in now")
def list_available_events(db: Session = Depends(get_db)) -> List[EventRead]:
    return list(event_service.list_available(db))


@router.post(
    "/checkin",
    response_model=CheckinReceipt,
    status_code=status.HTTP_201_CREATED,
    summary="Check in by scanning the event QR code",
    responses={
        400: {"description": "Invalid QR code, event not active or check-in limit reached"},
        404: {"description": "Event not found"},
        409: {"description": "This QR code was already used by the member"},
        410: {"description": "QR code expired"},
        429: {"description": "Minimum interval between check-ins not elapsed"},
    },
)
def check_in(
    payload: CheckinCreate,
    background_tasks: BackgroundTasks,
    member_id: UUID = Depends(get_current_member_id),
    db: Session = Depends(get_db),
) -> CheckinReceipt:
    try:
        result = checkin_service.process_checkin(db, member_id=member_id, qr_payload=payload.qr_payload)
        db.commit()
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc

    background_tasks.add_task(
        notification_service.notify,
        member_id,
        notification_service.CHECKIN_AWARDED,
        event_name=result.event.name,
        points=result.points_awarded,
        checkin_number=result.checkin_number,
    )
    return CheckinReceipt(
        checkin_id=result.checkin.checkin_id,
        event_id=result.event.event_id,
        event_name=result.event.name,
        points_awarded=result.points_awarded,
        checkin_number=result.checkin_number,
        checkins_remaining=result.checkins_remaining,
    )


@router.get("/{event_id}", response_model=EventRead, summary="Event details")
def get_event(event_id: UUID, db: Session = Depends(get_db)) -> EventRead:
    try:
        return event_service.get_event(db, event_id)
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc


@router.patch("/{event_id}/status", response_model=EventRead, summary="Change event status")
def update_event_status(
    event_id: UUID,
    payload: EventStatusUpdate,
    db: Session = Depends(get_db),
) -> EventRead:
    try:
        event = event_service.update_status(db, event_id, payload.status)
        db.commit()
        db.refresh(event)
        return event
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc


@router.get("/{event_id}/display", response_model=EventDisplay, summary="Current rotating QR code")
def get_event_display(event_id: UUID, db: Session = Depends(get_db)) -> EventDisplay:
    """Return the QR payload for the current rotation window plus live stats.

    Polled by the check-in screen; the code changes every
    ``qr_rotation_seconds`` and ``next_rotation_in`` says when to poll again.
    """

    try:
        data = event_service.get_display_data(db, event_id)
        db.commit()
    except EventEnded as exc:
        # the event was just marked completed; keep that
        db.commit()
        raise to_http(exc) from exc
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc

    return EventDisplay(
        event=EventRead.model_validate(data["event"]),
        qr_payload=data["qr_payload"],
        sequence=data["sequence"],
        expires_at=data["expires_at"],
        next_rotation_in=data["next_rotation_in"],
        total_checkins=data["total_checkins"],
        unique_members=data["unique_members"],
    )


@router.get("/{event_id}/checkin-status", response_model=CheckinStatus, summary="Caller's check-in status")
def get_checkin_status(
    event_id: UUID,
    member_id: UUID = Depends(get_current_member_id),
    db: Session = Depends(get_db),
) -> CheckinStatus:
    try:
        data = checkin_service.get_checkin_status(db, event_id=event_id, member_id=member_id)
        db.commit()
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc

    event = data["event"]
    return CheckinStatus(
        event_id=event.event_id,
        event_name=event.name,
        total_points=event.total_points,
        allow_multiple_checkins=event.allow_multiple_checkins,
        max_checkins_per_user=event.max_checkins_per_user,
        checkin_count=data["checkin_count"],
        checkins_remaining=data["checkins_remaining"],
        total_points_earned=data["total_points_earned"],
        can_checkin=data["can_checkin"],
        wait_time_seconds=data["wait_time_seconds"],
        last_checkin_at=data["last_checkin_at"],
    )


@router.get("/{event_id}/checkins", response_model=List[CheckinRead], summary="Caller's check-ins, newest first")
def list_member_checkins(
    event_id: UUID,
    member_id: UUID = Depends(get_current_member_id),
    db: Session = Depends(get_db),
) -> List[CheckinRead]:
    return list(checkin_service.member_checkins(db, event_id, member_id))
