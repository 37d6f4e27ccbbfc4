"""Pydantic schemas for the points ledger."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..models import TransactionCategory


class BalanceRead(BaseModel):
    """Current balance of one member."""

    balance_id: UUID
    member_id: UUID
    balance: int
    updated_at: datetime

    class Config:
        from_attributes = True


class TransactionRead(BaseModel):
    """One immutable ledger entry."""

    transaction_id: int
    category: TransactionCategory
    amount: int
    balance_after: int
    description: str
    related_member_id: Optional[UUID]
    order_id: Optional[UUID]
    kiosk_order_id: Optional[UUID]
    checkin_id: Optional[UUID]
    created_at: datetime

    class Config:
        from_attributes = True


class TransferCreate(BaseModel):
    """Request body for sending points to another member."""

    to_member_id: UUID
    amount: int = Field(..., gt=0, description="Points to transfer.")
    description: Optional[str] = Field(None, max_length=200)


class TransferReceipt(BaseModel):
    sender_balance: int
    recipient_balance: int
    out_transaction: TransactionRead
    in_transaction: TransactionRead


class AdjustmentCreate(BaseModel):
    """Administrative credit (positive) or debit (negative)."""

    member_id: UUID
    amount: int = Field(..., description="Signed, non-zero adjustment.")
    reason: str = Field(..., min_length=1, max_length=200)
    admin_id: UUID


class AdjustmentReceipt(BaseModel):
    balance: BalanceRead
    transaction: TransactionRead


class MemberBalance(BaseModel):
    member_id: UUID
    display_name: str
    email: str
    balance: int


class SystemSummary(BaseModel):
    total_points: int = Field(..., ge=0)
    total_accounts: int = Field(..., ge=0)
