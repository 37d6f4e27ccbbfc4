"""Persisted QR tokens."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String, UniqueConstraint, Uuid

from ..core.database import Base


class TokenContextType(str, enum.Enum):
    """Kind of entity whose secret signs a token."""

    EVENT = "EVENT"
    KIOSK = "KIOSK"


class QRToken(Base):
    """One signed payload emitted for a context and sequence number."""

    __tablename__ = "qr_tokens"
    __table_args__ = (
        UniqueConstraint("context_type", "context_id", "sequence", name="qr_tokens_context_sequence_unique"),
        UniqueConstraint("order_id", name="qr_tokens_order_unique"),
    )

    token_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    context_type = Column(Enum(TokenContextType, name="qr_token_context_type"), nullable=False)
    context_id = Column(Uuid, nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    payload = Column(String, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    order_id = Column(Uuid, ForeignKey("kiosk_orders.order_id", ondelete="CASCADE"))
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
