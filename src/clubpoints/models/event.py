"""Events and the check-ins redeemed against them."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from ..core.database import Base


class EventStatus(str, enum.Enum):
    """Event lifecycle states."""

    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Event(Base):
    """A timed event whose rotating QR code awards points on check-in."""

    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint("end_at > start_at", name="events_window_check"),
        CheckConstraint("total_points >= 0", name="events_total_points_positive"),
        CheckConstraint("qr_rotation_seconds > 0", name="events_rotation_positive"),
    )

    event_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    description = Column(String)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    total_points = Column(Integer, nullable=False)
    allow_multiple_checkins = Column(Boolean, nullable=False, default=False)
    max_checkins_per_user = Column(Integer)
    checkin_interval_seconds = Column(Integer)
    qr_rotation_seconds = Column(Integer, nullable=False, default=30)
    qr_secret = Column(String, nullable=False)
    status = Column(Enum(EventStatus, name="event_status"), nullable=False, default=EventStatus.DRAFT)
    created_by = Column(Uuid, ForeignKey("members.member_id", ondelete="SET NULL"))
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    checkins = relationship("EventCheckin", back_populates="event")


class EventCheckin(Base):
    """A member consuming one rotating token of an event."""

    __tablename__ = "event_checkins"
    __table_args__ = (
        UniqueConstraint("event_id", "member_id", "token_id", name="event_checkins_token_unique"),
        UniqueConstraint("event_id", "member_id", "checkin_number", name="event_checkins_number_unique"),
    )

    checkin_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    event_id = Column(Uuid, ForeignKey("events.event_id", ondelete="RESTRICT"), nullable=False)
    member_id = Column(Uuid, ForeignKey("members.member_id", ondelete="RESTRICT"), nullable=False)
    token_id = Column(Uuid, ForeignKey("qr_tokens.token_id", ondelete="RESTRICT"), nullable=False)
    sequence = Column(Integer, nullable=False)
    checkin_number = Column(Integer, nullable=False)
    points_awarded = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    event = relationship("Event", back_populates="checkins")
