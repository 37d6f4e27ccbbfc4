"""Points store: catalog, cart and checkout."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session, selectinload

from ..core.database import atomic
from ..core.errors import InsufficientBalance, InsufficientStock, InvalidOperation, NotFound
from ..models import (
    Cart,
    CartItem,
    OrderStatus,
    StoreItem,
    StoreOrder,
    StoreOrderItem,
    TransactionCategory,
)
from ..utils.datetime import as_naive_utc
from . import inventory, ledger_service, member_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlannedLine:
    store_item_id: UUID
    quantity: int
    points_price: int


@dataclass(frozen=True)
class CheckoutPlan:
    """Outcome of the checkout pre-flight: what to charge and what to take from stock."""

    member_id: UUID
    cart_id: UUID
    balance_id: UUID
    total_points: int
    lines: tuple[PlannedLine, ...] = field(default_factory=tuple)


def create_item(
    session: Session,
    *,
    name: str,
    points_price: int,
    stock: int = 0,
    description: Optional[str] = None,
    offer_ends_at: Optional[datetime] = None,
) -> StoreItem:
    if points_price <= 0:
        raise InvalidOperation("Price must be positive.")
    if stock < 0:
        raise InvalidOperation("Stock cannot be negative.")

    item = StoreItem(
        name=name,
        description=description,
        points_price=points_price,
        stock=0,
        offer_ends_at=as_naive_utc(offer_ends_at) if offer_ends_at else None,
    )
    session.add(item)
    session.flush()
    if stock:
        inventory.adjust_stock(session, item, stock, reason="Initial stock")
    return item


def get_item(session: Session, store_item_id: UUID) -> StoreItem:
    item = session.get(StoreItem, store_item_id)
    if item is None:
        raise NotFound("Store item not found")
    return item


def list_items(session: Session, *, now: Optional[datetime] = None) -> Sequence[StoreItem]:
    """Catalog of items currently on sale."""

    now = as_naive_utc(now)
    stmt = (
        select(StoreItem)
        .where(
            StoreItem.is_active.is_(True),
            or_(StoreItem.offer_ends_at.is_(None), StoreItem.offer_ends_at >= now),
        )
        .order_by(StoreItem.name.asc())
    )
    return session.execute(stmt).scalars().all()


def adjust_item_stock(session: Session, *, store_item_id: UUID, delta: int, reason: str) -> StoreItem:
    item = get_item(session, store_item_id)
    with atomic(session):
        inventory.lock_item(session, StoreItem, store_item_id)
        inventory.adjust_stock(session, item, delta, reason=reason)
    return item


def _find_cart(session: Session, member_id: UUID) -> Optional[Cart]:
    stmt = (
        select(Cart)
        .options(selectinload(Cart.items).selectinload(CartItem.store_item))
        .where(Cart.member_id == member_id)
    )
    return session.execute(stmt).scalar_one_or_none()


def get_cart(session: Session, member_id: UUID) -> Cart:
    """Return the member's cart, creating an empty one on first use."""

    cart = _find_cart(session, member_id)
    if cart is None:
        member_service.ensure_member(session, member_id)
        cart = Cart(member_id=member_id)
        session.add(cart)
        session.flush()
    return cart


def cart_total(cart: Cart) -> int:
    return sum(line.store_item.points_price * line.quantity for line in cart.items)


def _sellable_item(session: Session, store_item_id: UUID, *, now: Optional[datetime] = None) -> StoreItem:
    item = get_item(session, store_item_id)
    inventory.check_available(item, 1, now=now)
    return item


def add_to_cart(
    session: Session,
    *,
    member_id: UUID,
    store_item_id: UUID,
    quantity: int = 1,
    now: Optional[datetime] = None,
) -> Cart:
    if quantity <= 0:
        raise InvalidOperation("Quantity must be positive")
    item = _sellable_item(session, store_item_id, now=now)
    cart = get_cart(session, member_id)

    line = next((line for line in cart.items if line.store_item_id == store_item_id), None)
    requested = quantity + (line.quantity if line else 0)
    if requested > item.stock:
        raise InsufficientStock(f"Insufficient stock. Available: {item.stock}, requested: {requested}")

    if line:
        line.quantity = requested
    else:
        cart.items.append(CartItem(store_item=item, quantity=quantity))
    session.flush()
    return cart


def update_cart_item(session: Session, *, member_id: UUID, cart_item_id: UUID, quantity: int) -> Cart:
    if quantity <= 0:
        raise InvalidOperation("Quantity must be positive")
    cart = _find_cart(session, member_id)
    line = next((line for line in cart.items if line.cart_item_id == cart_item_id), None) if cart else None
    if line is None:
        raise NotFound("Cart item not found")

    item = _sellable_item(session, line.store_item_id)
    if quantity > item.stock:
        raise InsufficientStock(f"Insufficient stock. Available: {item.stock}, requested: {quantity}")
    line.quantity = quantity
    session.flush()
    return cart


def remove_from_cart(session: Session, *, member_id: UUID, cart_item_id: UUID) -> Cart:
    cart = _find_cart(session, member_id)
    line = next((line for line in cart.items if line.cart_item_id == cart_item_id), None) if cart else None
    if line is None:
        raise NotFound("Cart item not found")
    cart.items.remove(line)
    session.flush()
    return cart


def clear_cart(session: Session, *, member_id: UUID) -> Cart:
    cart = _find_cart(session, member_id)
    if cart is None:
        raise NotFound("Cart not found")
    cart.items.clear()
    session.flush()
    return cart


def plan_checkout(session: Session, *, member_id: UUID, now: Optional[datetime] = None) -> CheckoutPlan:
    """Pre-flight: every line sellable in the requested quantity and the total affordable."""

    cart = _find_cart(session, member_id)
    if cart is None or not cart.items:
        raise InvalidOperation("Cart is empty")

    lines = []
    for line in cart.items:
        item = session.get(StoreItem, line.store_item_id, populate_existing=True)
        inventory.check_available(item, line.quantity, now=now)
        lines.append(PlannedLine(item.store_item_id, line.quantity, item.points_price))
    total = sum(line.points_price * line.quantity for line in lines)

    balance = ledger_service.get_or_create_balance(session, member_id)
    if balance.balance < total:
        raise InsufficientBalance(
            f"Insufficient points balance. Current: {balance.balance}, required: {total}"
        )
    return CheckoutPlan(member_id, cart.cart_id, balance.balance_id, total, tuple(lines))


def execute_checkout(session: Session, plan: CheckoutPlan, *, now: Optional[datetime] = None) -> StoreOrder:
    """Write the order, debit, stock movements and cart clearing as one unit.

    Stock and balance are re-checked against the rows as they are now, so a
    plan made stale by a concurrent checkout fails without side effects.
    """

    now = as_naive_utc(now)
    with atomic(session):
        order = StoreOrder(
            member_id=plan.member_id,
            total_points=plan.total_points,
            status=OrderStatus.PENDING,
            created_at=now,
        )
        session.add(order)
        session.flush()
        reference = f"Order #{str(order.order_id)[:8]}"

        for line in plan.lines:
            session.add(
                StoreOrderItem(
                    order_id=order.order_id,
                    store_item_id=line.store_item_id,
                    quantity=line.quantity,
                    points_price=line.points_price,
                )
            )

        balance = ledger_service.lock_balance(session, plan.balance_id)
        ledger_service.apply_entry(
            session,
            balance,
            -plan.total_points,
            TransactionCategory.PURCHASE_DEBIT,
            reference,
            order_id=order.order_id,
            now=now,
        )

        for line in plan.lines:
            item = inventory.lock_item(session, StoreItem, line.store_item_id)
            inventory.check_available(item, line.quantity, now=now)
            inventory.decrement_stock(session, item, line.quantity, reason=reference)

        session.execute(delete(CartItem).where(CartItem.cart_id == plan.cart_id))
        order.status = OrderStatus.COMPLETED
        session.flush()

    session.expire_all()
    logger.info("member %s checked out order %s for %s points", plan.member_id, order.order_id, plan.total_points)
    return order


def checkout(session: Session, *, member_id: UUID, now: Optional[datetime] = None) -> StoreOrder:
    plan = plan_checkout(session, member_id=member_id, now=now)
    return execute_checkout(session, plan, now=now)


def list_orders(session: Session, *, member_id: UUID, limit: int = 50, offset: int = 0) -> Sequence[StoreOrder]:
    stmt = (
        select(StoreOrder)
        .options(selectinload(StoreOrder.items).selectinload(StoreOrderItem.store_item))
        .where(StoreOrder.member_id == member_id)
        .order_by(StoreOrder.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return session.execute(stmt).scalars().all()
