"""Pydantic schemas for events and check-ins."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..models import EventStatus


class EventCreate(BaseModel):
    """Request body for creating an event."""

    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = None
    start_at: datetime
    end_at: datetime
    total_points: int = Field(..., ge=0)
    allow_multiple_checkins: bool = False
    max_checkins_per_user: Optional[int] = Field(None, ge=1)
    checkin_interval_seconds: Optional[int] = Field(None, ge=1)
    qr_rotation_seconds: Optional[int] = Field(None, ge=5, le=3600)
    status: EventStatus = EventStatus.DRAFT


class EventRead(BaseModel):
    """Event details; the signing secret is never exposed."""

    event_id: UUID
    name: str
    description: Optional[str]
    start_at: datetime
    end_at: datetime
    total_points: int
    allow_multiple_checkins: bool
    max_checkins_per_user: Optional[int]
    checkin_interval_seconds: Optional[int]
    qr_rotation_seconds: int
    status: EventStatus
    created_at: datetime

    class Config:
        from_attributes = True


class EventStatusUpdate(BaseModel):
    status: EventStatus


class EventDisplay(BaseModel):
    """Data for the screen that shows the rotating QR code."""

    event: EventRead
    qr_payload: str
    sequence: int
    expires_at: datetime
    next_rotation_in: int
    total_checkins: int
    unique_members: int


class CheckinCreate(BaseModel):
    qr_payload: str = Field(..., min_length=1, max_length=2048)


class CheckinRead(BaseModel):
    checkin_id: UUID
    event_id: UUID
    checkin_number: int
    points_awarded: int
    created_at: datetime

    class Config:
        from_attributes = True


class CheckinReceipt(BaseModel):
    checkin_id: UUID
    event_id: UUID
    event_name: str
    points_awarded: int
    checkin_number: int
    checkins_remaining: int


class CheckinStatus(BaseModel):
    event_id: UUID
    event_name: str
    total_points: int
    allow_multiple_checkins: bool
    max_checkins_per_user: Optional[int]
    checkin_count: int
    checkins_remaining: int
    total_points_earned: int
    can_checkin: bool
    wait_time_seconds: int
    last_checkin_at: Optional[datetime]
