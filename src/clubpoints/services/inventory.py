"""Stock checks and audited stock movements for store items and kiosk products."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..core.errors import Expired, InsufficientStock, InvalidOperation, NotFound
from ..models import KioskProduct, StoreItem
from ..utils.datetime import utcnow

InventoryItem = Union[StoreItem, KioskProduct]


def _primary_key(model):
    return model.store_item_id if model is StoreItem else model.product_id


def lock_item(session: Session, model, item_id) -> InventoryItem:
    """Read an inventory row fresh from the store with a row lock."""

    stmt = (
        select(model)
        .where(_primary_key(model) == item_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    item = session.execute(stmt).scalar_one_or_none()
    if item is None:
        raise NotFound(f"Item {item_id} no longer exists")
    return item


def check_available(item: Optional[InventoryItem], quantity: int, *, now: Optional[datetime] = None) -> None:
    """Raise unless ``quantity`` units of ``item`` can be sold right now."""

    if item is None:
        raise NotFound("Item no longer exists")
    if not item.is_active:
        raise InvalidOperation(f'"{item.name}" is no longer available')
    if item.offer_ends_at is not None and item.offer_ends_at < (now or utcnow()):
        raise Expired(f'Offer for "{item.name}" has expired')
    if item.stock < quantity:
        raise InsufficientStock(
            f'Insufficient stock for "{item.name}". Available: {item.stock}, requested: {quantity}'
        )


def decrement_stock(session: Session, item: InventoryItem, quantity: int, *, reason: str) -> InventoryItem:
    """Take ``quantity`` units and write the audit movement.

    The update only matches while enough stock remains, so of two units of
    work racing for the last units only the first to commit succeeds.
    """

    model = type(item)
    key = _primary_key(model)
    stmt = (
        update(model)
        .where(key == item.item_id, model.stock >= quantity)
        .values(stock=model.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    session.refresh(item)
    if result.rowcount != 1:
        raise InsufficientStock(
            f'Insufficient stock for "{item.name}". Available: {item.stock}, requested: {quantity}'
        )
    session.add(item.record_movement(-quantity, reason))
    return item


def adjust_stock(session: Session, item: InventoryItem, delta: int, *, reason: str) -> InventoryItem:
    """Administrative stock correction; the result may not go below zero."""

    if delta == 0:
        raise InvalidOperation("Stock adjustment cannot be zero.")
    if delta < 0:
        return decrement_stock(session, item, -delta, reason=reason)

    model = type(item)
    session.execute(
        update(model)
        .where(_primary_key(model) == item.item_id)
        .values(stock=model.stock + delta)
        .execution_options(synchronize_session=False)
    )
    session.refresh(item)
    session.add(item.record_movement(delta, reason))
    return item
