"""Points balance, history, transfer and admin ledger endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.errors import PointsRuleViolation
from ...models import TransactionCategory
from ...schemas import (
    AdjustmentCreate,
    AdjustmentReceipt,
    BalanceRead,
    MemberBalance,
    SystemSummary,
    TransactionRead,
    TransferCreate,
    TransferReceipt,
)
from ...services import ledger_service, member_service, notification_service
from .deps import get_current_member_id, to_http

router = APIRouter(prefix="/points", tags=["points"])


@router.get(
    "/balance",
    response_model=BalanceRead,
    summary="Current member balance",
    responses={
        200: {
            "description": "Balance of the calling member",
            "content": {
                "application/json": {
                    "example": {
                        "balance_id": "11111111-1111-1111-1111-111111111111",
                        "member_id": "aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa",
                        "balance": 120,
                        "updated_at": "2025-11-12T12:05:30",
                    }
                }
            },
        },
        404: {"description": "Member not found"},
    },
)
def get_balance(
    member_id: UUID = Depends(get_current_member_id),
    db: Session = Depends(get_db),
) -> BalanceRead:
    """Return the caller's balance, opening an empty account on first access."""

    try:
        balance = ledger_service.get_or_create_balance(db, member_id)
        db.commit()
        db.refresh(balance)
        return balance
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc


@router.get("/history", response_model=List[TransactionRead], summary="Ledger entries, newest first")
def get_history(
    member_id: UUID = Depends(get_current_member_id),
    db: Session = Depends(get_db),
) -> List[TransactionRead]:
    return list(ledger_service.history(db, member_id))


@router.post(
    "/transfer",
    response_model=TransferReceipt,
    summary="Send points to another member",
    responses={
        400: {"description": "Invalid amount, self-transfer or insufficient balance"},
        404: {"description": "Recipient not found"},
    },
)
def transfer_points(
    payload: TransferCreate,
    background_tasks: BackgroundTasks,
    member_id: UUID = Depends(get_current_member_id),
    db: Session = Depends(get_db),
) -> TransferReceipt:
    """Move points from the caller to ``to_member_id``.

    Example request body::

        {
            "to_member_id": "bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb",
            "amount": 25,
            "description": "Thanks for the notes"
        }
    """

    try:
        result = ledger_service.transfer(
            db,
            from_member_id=member_id,
            to_member_id=payload.to_member_id,
            amount=payload.amount,
            description=payload.description,
        )
        sender_name = member_service.get_display_name(db, member_id)
        db.commit()
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc

    background_tasks.add_task(
        notification_service.notify,
        payload.to_member_id,
        notification_service.POINTS_RECEIVED,
        amount=payload.amount,
        from_name=sender_name,
    )
    return TransferReceipt(
        sender_balance=result.sender_balance.balance,
        recipient_balance=result.recipient_balance.balance,
        out_transaction=TransactionRead.model_validate(result.out_entry),
        in_transaction=TransactionRead.model_validate(result.in_entry),
    )


@router.post("/adjust", response_model=AdjustmentReceipt, summary="Administrative balance adjustment")
def adjust_points(
    payload: AdjustmentCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
) -> AdjustmentReceipt:
    try:
        balance, entry = ledger_service.adjust(
            db,
            member_id=payload.member_id,
            amount=payload.amount,
            reason=payload.reason,
            admin_id=payload.admin_id,
        )
        db.commit()
        db.refresh(balance)
        db.refresh(entry)
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc

    background_tasks.add_task(
        notification_service.notify,
        payload.member_id,
        notification_service.POINTS_ADJUSTED,
        amount=payload.amount,
        reason=payload.reason,
    )
    return AdjustmentReceipt(
        balance=BalanceRead.model_validate(balance),
        transaction=TransactionRead.model_validate(entry),
    )


@router.get("/admin/transactions", response_model=List[TransactionRead], summary="All ledger entries")
def list_transactions(
    *,
    member_id: Optional[UUID] = Query(None, description="Only entries of this member"),
    category: Optional[TransactionCategory] = Query(None),
    start: Optional[datetime] = Query(None, description="Inclusive lower bound on created_at"),
    end: Optional[datetime] = Query(None, description="Exclusive upper bound on created_at"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
) -> List[TransactionRead]:
    entries = ledger_service.list_transactions(
        db,
        member_id=member_id,
        category=category,
        start=start,
        end=end,
        limit=limit,
        offset=offset,
    )
    return list(entries)


@router.get("/admin/balances", response_model=List[MemberBalance], summary="Balances by member")
def list_balances(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
) -> List[MemberBalance]:
    response: List[MemberBalance] = []
    for balance, member in ledger_service.list_balances(db, limit=limit, offset=offset):
        response.append(
            MemberBalance(
                member_id=member.member_id,
                display_name=member.display_name,
                email=member.email,
                balance=balance.balance,
            )
        )
    return response


@router.get("/admin/summary", response_model=SystemSummary, summary="Points in circulation")
def get_summary(db: Session = Depends(get_db)) -> SystemSummary:
    return SystemSummary(**ledger_service.system_summary(db))
