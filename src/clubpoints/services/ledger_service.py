"""Points ledger: balances and their append-only transaction log.

A balance row is a denormalised running total. It only changes through
``apply_entry``, which moves the total and appends the matching
``PointsTransaction`` in the same unit of work, so the balance always equals
the sum of its entries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ..core.database import atomic
from ..core.errors import InsufficientBalance, InvalidAmount, InvalidOperation, NotFound
from ..models import Member, PointsBalance, PointsTransaction, TransactionCategory
from ..utils.datetime import utcnow
from . import member_service

logger = logging.getLogger(__name__)


@dataclass
class TransferResult:
    sender_balance: PointsBalance
    recipient_balance: PointsBalance
    out_entry: PointsTransaction
    in_entry: PointsTransaction


def find_balance(session: Session, member_id: UUID) -> Optional[PointsBalance]:
    stmt = select(PointsBalance).where(PointsBalance.member_id == member_id)
    return session.execute(stmt).scalar_one_or_none()


def get_or_create_balance(session: Session, member_id: UUID) -> PointsBalance:
    """Return the member's balance, creating it at zero on first access."""

    balance = find_balance(session, member_id)
    if balance is not None:
        return balance

    member_service.ensure_member(session, member_id)

    try:
        with atomic(session):
            balance = PointsBalance(member_id=member_id, balance=0)
            session.add(balance)
            session.flush()
    except IntegrityError:
        logger.info("balance for member %s created concurrently; reusing it", member_id)
        balance = find_balance(session, member_id)
        if balance is None:
            raise
    return balance


def lock_balance(session: Session, balance_id: UUID) -> PointsBalance:
    """Re-read a balance row with a row lock held until the transaction ends."""

    stmt = (
        select(PointsBalance)
        .where(PointsBalance.balance_id == balance_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    balance = session.execute(stmt).scalar_one_or_none()
    if balance is None:
        raise NotFound(f"Balance {balance_id} not found")
    return balance


def apply_entry(
    session: Session,
    balance: PointsBalance,
    amount: int,
    category: TransactionCategory,
    description: str,
    *,
    related_member_id: Optional[UUID] = None,
    order_id: Optional[UUID] = None,
    kiosk_order_id: Optional[UUID] = None,
    checkin_id: Optional[UUID] = None,
    now: Optional[datetime] = None,
) -> PointsTransaction:
    """Move ``balance`` by ``amount`` and append the ledger entry.

    Callers run this inside the same atomic unit as any paired redemption
    write. The update only matches when the resulting balance stays
    non-negative, which re-checks debits against the committed value even if
    the caller's pre-flight read is stale.
    """

    if not isinstance(amount, int) or isinstance(amount, bool):
        raise InvalidAmount("Points amounts must be whole numbers.")

    timestamp = now or utcnow()
    stmt = (
        update(PointsBalance)
        .where(
            PointsBalance.balance_id == balance.balance_id,
            PointsBalance.balance + amount >= 0,
        )
        .values(balance=PointsBalance.balance + amount, updated_at=timestamp)
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    session.refresh(balance)
    if result.rowcount != 1:
        raise InsufficientBalance(
            f"Insufficient balance. Current balance: {balance.balance}, required: {-amount}"
        )

    entry = PointsTransaction(
        balance_id=balance.balance_id,
        category=category,
        amount=amount,
        balance_after=balance.balance,
        description=description,
        related_member_id=related_member_id,
        order_id=order_id,
        kiosk_order_id=kiosk_order_id,
        checkin_id=checkin_id,
        created_at=timestamp,
    )
    session.add(entry)
    session.flush()
    return entry


def transfer(
    session: Session,
    *,
    from_member_id: UUID,
    to_member_id: UUID,
    amount: int,
    description: Optional[str] = None,
    now: Optional[datetime] = None,
) -> TransferResult:
    """Move points between two members as one atomic unit."""

    if from_member_id == to_member_id:
        raise InvalidOperation("Cannot transfer points to yourself.")
    if amount <= 0:
        raise InvalidAmount("Transfer amount must be positive.")

    recipient = session.get(Member, to_member_id)
    if recipient is None:
        raise NotFound("Recipient member not found")

    sender_balance = get_or_create_balance(session, from_member_id)
    if sender_balance.balance < amount:
        raise InsufficientBalance(
            f"Insufficient balance. Current balance: {sender_balance.balance}, required: {amount}"
        )
    recipient_balance = get_or_create_balance(session, to_member_id)
    sender_name = member_service.get_display_name(session, from_member_id)

    with atomic(session):
        # Lock in a fixed order so opposing transfers cannot deadlock.
        for balance_id in sorted([sender_balance.balance_id, recipient_balance.balance_id], key=str):
            lock_balance(session, balance_id)

        out_entry = apply_entry(
            session,
            sender_balance,
            -amount,
            TransactionCategory.TRANSFER_OUT,
            description or f"Transfer to {recipient.display_name}",
            related_member_id=to_member_id,
            now=now,
        )
        in_entry = apply_entry(
            session,
            recipient_balance,
            amount,
            TransactionCategory.TRANSFER_IN,
            f"Transfer from {sender_name}",
            related_member_id=from_member_id,
            now=now,
        )

    logger.info("transferred %s points from %s to %s", amount, from_member_id, to_member_id)
    return TransferResult(sender_balance, recipient_balance, out_entry, in_entry)


def adjust(
    session: Session,
    *,
    member_id: UUID,
    amount: int,
    reason: str,
    admin_id: UUID,
    now: Optional[datetime] = None,
) -> tuple[PointsBalance, PointsTransaction]:
    """Administrative credit or debit; never allowed to leave the balance negative."""

    if amount == 0:
        raise InvalidAmount("Adjustment amount cannot be zero.")
    member_service.ensure_member(session, admin_id)

    balance = get_or_create_balance(session, member_id)
    if balance.balance + amount < 0:
        raise InvalidOperation(
            "Adjustment would result in negative balance. "
            f"Current balance: {balance.balance}, adjustment: {amount}"
        )

    with atomic(session):
        lock_balance(session, balance.balance_id)
        try:
            entry = apply_entry(
                session,
                balance,
                amount,
                TransactionCategory.ADJUSTMENT,
                reason,
                related_member_id=admin_id,
                now=now,
            )
        except InsufficientBalance as exc:
            raise InvalidOperation(
                f"Adjustment would result in negative balance. Current balance: {balance.balance}, "
                f"adjustment: {amount}"
            ) from exc

    logger.info("admin %s adjusted member %s by %s points", admin_id, member_id, amount)
    return balance, entry


def history(session: Session, member_id: UUID) -> Sequence[PointsTransaction]:
    """Return the member's entries, newest first; empty when no balance exists yet."""

    balance = find_balance(session, member_id)
    if balance is None:
        return []

    stmt = (
        select(PointsTransaction)
        .where(PointsTransaction.balance_id == balance.balance_id)
        .order_by(PointsTransaction.created_at.desc(), PointsTransaction.transaction_id.desc())
    )
    return session.execute(stmt).scalars().all()


def list_transactions(
    session: Session,
    *,
    member_id: Optional[UUID] = None,
    category: Optional[TransactionCategory] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 100,
    offset: int = 0,
) -> Sequence[PointsTransaction]:
    """Admin listing of ledger entries across members."""

    stmt = (
        select(PointsTransaction)
        .options(joinedload(PointsTransaction.balance_record))
        .order_by(PointsTransaction.created_at.desc(), PointsTransaction.transaction_id.desc())
        .offset(offset)
        .limit(limit)
    )
    if member_id:
        stmt = stmt.join(PointsBalance).where(PointsBalance.member_id == member_id)
    if category:
        stmt = stmt.where(PointsTransaction.category == category)
    if start:
        stmt = stmt.where(PointsTransaction.created_at >= start)
    if end:
        stmt = stmt.where(PointsTransaction.created_at < end)
    return session.execute(stmt).scalars().all()


def list_balances(session: Session, *, limit: int = 100, offset: int = 0) -> Sequence[tuple]:
    """Balances with member details, largest first."""

    stmt = (
        select(PointsBalance, Member)
        .join(Member, Member.member_id == PointsBalance.member_id)
        .order_by(PointsBalance.balance.desc(), Member.display_name.asc())
        .offset(offset)
        .limit(limit)
    )
    return session.execute(stmt).all()


def system_summary(session: Session) -> dict[str, int]:
    stmt = select(func.coalesce(func.sum(PointsBalance.balance), 0), func.count(PointsBalance.balance_id))
    total_points, total_accounts = session.execute(stmt).one()
    return {"total_points": int(total_points), "total_accounts": int(total_accounts)}
