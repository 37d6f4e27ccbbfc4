"""Points balance and its append-only transaction log."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
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


class TransactionCategory(str, enum.Enum):
    """Ledger entry classification."""

    CREDIT = "CREDIT"
    DEBIT = "DEBIT"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"
    ADJUSTMENT = "ADJUSTMENT"
    EVENT_AWARD = "EVENT_AWARD"
    PURCHASE_DEBIT = "PURCHASE_DEBIT"


class PointsBalance(Base):
    """Running point total for one member, kept in step with its entries."""

    __tablename__ = "points_balances"
    __table_args__ = (
        UniqueConstraint("member_id", name="points_balances_member_unique"),
        CheckConstraint("balance >= 0", name="points_balances_non_negative"),
    )

    balance_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    member_id = Column(Uuid, ForeignKey("members.member_id", ondelete="RESTRICT"), nullable=False)
    balance = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    member = relationship("Member", back_populates="balance")
    entries = relationship("PointsTransaction", back_populates="balance_record")


class PointsTransaction(Base):
    """Immutable ledger entry; positive amounts credit, negative amounts debit."""

    __tablename__ = "points_transactions"

    transaction_id = Column(Integer, primary_key=True, autoincrement=True)
    balance_id = Column(Uuid, ForeignKey("points_balances.balance_id", ondelete="RESTRICT"), nullable=False)
    category = Column(Enum(TransactionCategory, name="points_transaction_category"), nullable=False)
    amount = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    description = Column(String, nullable=False, default="")
    related_member_id = Column(Uuid, ForeignKey("members.member_id", ondelete="SET NULL"))
    order_id = Column(Uuid, ForeignKey("store_orders.order_id", ondelete="SET NULL"))
    kiosk_order_id = Column(Uuid, ForeignKey("kiosk_orders.order_id", ondelete="SET NULL"))
    checkin_id = Column(Uuid, ForeignKey("event_checkins.checkin_id", ondelete="SET NULL"))
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    balance_record = relationship("PointsBalance", back_populates="entries")
