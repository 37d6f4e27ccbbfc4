"""Member directory model."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from ..core.database import Base


class Member(Base):
    """A club member who can hold points."""

    __tablename__ = "members"
    __table_args__ = (
        UniqueConstraint("email", name="members_email_unique"),
    )

    member_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String, nullable=False)
    display_name = Column(String, nullable=False)
    status = Column(String, nullable=False, default="ACTIVE")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    balance = relationship("PointsBalance", back_populates="member", uselist=False)
