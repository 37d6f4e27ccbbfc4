"""Kiosks: product catalog, QR orders and point payments."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ..core.config import get_settings
from ..core.database import atomic
from ..core.errors import AlreadyProcessed, Expired, InsufficientBalance, InvalidOperation, NotFound
from ..models import (
    Kiosk,
    KioskOrder,
    KioskOrderItem,
    KioskProduct,
    OrderStatus,
    TransactionCategory,
)
from ..utils.datetime import as_naive_utc
from . import inventory, ledger_service, member_service, token_protocol
from .checkin_service import raise_for_token

logger = logging.getLogger(__name__)


@dataclass
class OrderLine:
    product_id: UUID
    quantity: int


@dataclass
class PaymentResult:
    order: KioskOrder
    kiosk: Kiosk
    total_points: int
    balance_after: int


def create_kiosk(session: Session, *, name: str, description: Optional[str] = None) -> Kiosk:
    existing = session.execute(select(Kiosk).where(Kiosk.name == name)).scalar_one_or_none()
    if existing is not None:
        raise InvalidOperation("A kiosk with this name already exists", status_code=409)

    kiosk = Kiosk(name=name, description=description, qr_secret=secrets.token_hex(32))
    session.add(kiosk)
    try:
        with atomic(session):
            session.flush()
    except IntegrityError as exc:
        raise InvalidOperation("A kiosk with this name already exists", status_code=409) from exc
    logger.info("created kiosk %s (%s)", kiosk.kiosk_id, name)
    return kiosk


def get_kiosk(session: Session, kiosk_id: UUID) -> Kiosk:
    kiosk = session.get(Kiosk, kiosk_id)
    if kiosk is None:
        raise NotFound("Kiosk not found")
    return kiosk


def toggle_kiosk(session: Session, kiosk_id: UUID) -> Kiosk:
    """Switch a kiosk between open and closed; closed kiosks take no new orders."""

    kiosk = get_kiosk(session, kiosk_id)
    kiosk.is_active = not kiosk.is_active
    session.flush()
    logger.info("kiosk %s %s", kiosk_id, "opened" if kiosk.is_active else "closed")
    return kiosk


def _active_kiosk(session: Session, kiosk_id: UUID) -> Kiosk:
    kiosk = get_kiosk(session, kiosk_id)
    if not kiosk.is_active:
        raise InvalidOperation("Kiosk is not active")
    return kiosk


def get_product(session: Session, kiosk_id: UUID, product_id: UUID) -> KioskProduct:
    product = session.get(KioskProduct, product_id)
    if product is None or product.kiosk_id != kiosk_id:
        raise NotFound("Product not found")
    return product


def create_product(
    session: Session,
    *,
    kiosk_id: UUID,
    name: str,
    points_price: int,
    stock: int = 0,
    description: Optional[str] = None,
) -> KioskProduct:
    get_kiosk(session, kiosk_id)
    if points_price <= 0:
        raise InvalidOperation("Price must be positive.")
    if stock < 0:
        raise InvalidOperation("Stock cannot be negative.")

    product = KioskProduct(kiosk_id=kiosk_id, name=name, description=description, points_price=points_price, stock=0)
    session.add(product)
    session.flush()
    if stock:
        inventory.adjust_stock(session, product, stock, reason="Initial stock")
    return product


def adjust_product_stock(session: Session, *, kiosk_id: UUID, product_id: UUID, delta: int, reason: str) -> KioskProduct:
    product = get_product(session, kiosk_id, product_id)
    with atomic(session):
        inventory.lock_item(session, KioskProduct, product_id)
        inventory.adjust_stock(session, product, delta, reason=reason)
    return product


def toggle_product(session: Session, *, kiosk_id: UUID, product_id: UUID) -> KioskProduct:
    product = get_product(session, kiosk_id, product_id)
    product.is_active = not product.is_active
    session.flush()
    return product


def get_display_data(session: Session, kiosk_id: UUID) -> dict:
    """Kiosk details with the products currently on sale."""

    kiosk = _active_kiosk(session, kiosk_id)
    stmt = (
        select(KioskProduct)
        .where(KioskProduct.kiosk_id == kiosk_id, KioskProduct.is_active.is_(True), KioskProduct.stock > 0)
        .order_by(KioskProduct.name.asc())
    )
    return {"kiosk": kiosk, "products": session.execute(stmt).scalars().all()}


def _next_sequence(session: Session, kiosk: Kiosk) -> int:
    stmt = (
        update(Kiosk)
        .where(Kiosk.kiosk_id == kiosk.kiosk_id)
        .values(order_sequence=Kiosk.order_sequence + 1)
        .execution_options(synchronize_session=False)
    )
    session.execute(stmt)
    session.refresh(kiosk)
    return kiosk.order_sequence


def create_order(
    session: Session,
    *,
    kiosk_id: UUID,
    lines: Sequence[OrderLine],
    now: Optional[datetime] = None,
) -> KioskOrder:
    """Price a basket and mint its single-use payment QR code."""

    now = as_naive_utc(now)
    kiosk = _active_kiosk(session, kiosk_id)
    if not lines:
        raise InvalidOperation("Order has no items")

    quantities: dict[UUID, int] = {}
    for line in lines:
        if line.quantity <= 0:
            raise InvalidOperation("Quantities must be positive")
        quantities[line.product_id] = quantities.get(line.product_id, 0) + line.quantity

    products = session.execute(
        select(KioskProduct).where(
            KioskProduct.product_id.in_(list(quantities)),
            KioskProduct.kiosk_id == kiosk_id,
            KioskProduct.is_active.is_(True),
        )
    ).scalars().all()
    by_id = {product.product_id: product for product in products}
    if len(by_id) != len(quantities):
        raise NotFound("One or more products were not found or are inactive")

    total = 0
    for product_id, quantity in quantities.items():
        product = by_id[product_id]
        inventory.check_available(product, quantity, now=now)
        total += product.points_price * quantity

    ttl = timedelta(seconds=get_settings().kiosk_order_ttl_seconds)
    with atomic(session):
        order = KioskOrder(
            kiosk_id=kiosk_id,
            sequence=_next_sequence(session, kiosk),
            total_points=total,
            status=OrderStatus.PENDING,
            expires_at=now + ttl,
            created_at=now,
        )
        session.add(order)
        session.flush()
        for product_id, quantity in quantities.items():
            session.add(
                KioskOrderItem(
                    order_id=order.order_id,
                    product_id=product_id,
                    quantity=quantity,
                    points_price=by_id[product_id].points_price,
                )
            )
        token_protocol.issue(
            session,
            token_protocol.KIOSK_PAYLOAD,
            kiosk,
            sequence=order.sequence,
            expires_at=order.expires_at,
            order=order,
        )

    logger.info("kiosk %s opened order %s for %s points", kiosk_id, order.order_id, total)
    return order


def _load_order(session: Session, order_id: UUID, *, lock: bool = False) -> Optional[KioskOrder]:
    stmt = (
        select(KioskOrder)
        .options(selectinload(KioskOrder.items).selectinload(KioskOrderItem.product), selectinload(KioskOrder.token))
        .where(KioskOrder.order_id == order_id)
        .execution_options(populate_existing=True)
    )
    if lock:
        stmt = stmt.with_for_update(of=KioskOrder)
    return session.execute(stmt).scalar_one_or_none()


def expire_if_stale(session: Session, order: KioskOrder, *, now: Optional[datetime] = None) -> bool:
    if order.status == OrderStatus.PENDING and as_naive_utc(now) > order.expires_at:
        order.status = OrderStatus.EXPIRED
        session.flush()
        logger.info("kiosk order %s expired", order.order_id)
        return True
    return False


def get_order_status(session: Session, *, kiosk_id: UUID, order_id: UUID, now: Optional[datetime] = None) -> KioskOrder:
    """Read an order, lazily marking it EXPIRED once its code has lapsed."""

    order = _load_order(session, order_id)
    if order is None or order.kiosk_id != kiosk_id:
        raise NotFound("Order not found")
    expire_if_stale(session, order, now=now)
    return order


def cancel_order(session: Session, *, kiosk_id: UUID, order_id: UUID) -> KioskOrder:
    order = _load_order(session, order_id, lock=True)
    if order is None or order.kiosk_id != kiosk_id:
        raise NotFound("Order not found")
    if not _finish_order(session, order, OrderStatus.CANCELLED):
        raise AlreadyProcessed("Only pending orders can be cancelled")
    logger.info("kiosk order %s cancelled", order_id)
    return order


def _finish_order(session: Session, order: KioskOrder, status: OrderStatus, **values) -> bool:
    """Move a PENDING order to a terminal status; ``False`` when it already left PENDING."""

    stmt = (
        update(KioskOrder)
        .where(KioskOrder.order_id == order.order_id, KioskOrder.status == OrderStatus.PENDING)
        .values(status=status, **values)
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    session.refresh(order)
    return result.rowcount == 1


def _validated_order(session: Session, qr_payload: str, now: datetime) -> KioskOrder:
    validation = token_protocol.validate(session, token_protocol.KIOSK_PAYLOAD, qr_payload, now=now)
    if not validation.valid:
        logger.info("kiosk payment rejected: %s", validation.error.value)
        raise_for_token(validation)
    order = _load_order(session, validation.token.order_id)
    if order is None:
        raise NotFound("Order not found")
    return order


def preview_payment(session: Session, *, qr_payload: str, now: Optional[datetime] = None) -> KioskOrder:
    """Validate a scanned code and return the order it pays for, without charging."""

    return _validated_order(session, qr_payload, as_naive_utc(now))


def process_payment(
    session: Session,
    *,
    member_id: UUID,
    qr_payload: str,
    now: Optional[datetime] = None,
) -> PaymentResult:
    """Pay a pending kiosk order with points.

    The debit, every stock decrement with its movement row, and the order's
    move to COMPLETED form one atomic unit. Balance, stock and order status
    are each re-checked by conditional updates inside it.
    """

    now = as_naive_utc(now)
    order = _validated_order(session, qr_payload, now)
    if order.status != OrderStatus.PENDING:
        raise AlreadyProcessed("Order was already processed")
    if now > order.expires_at:
        raise Expired("QR code expired")

    member_service.ensure_member(session, member_id)
    balance = ledger_service.get_or_create_balance(session, member_id)
    if balance.balance < order.total_points:
        raise InsufficientBalance(
            f"Insufficient balance. Current balance: {balance.balance}, required: {order.total_points}"
        )
    for item in order.items:
        inventory.check_available(item.product, item.quantity, now=now)

    kiosk = order.kiosk
    with atomic(session):
        ledger_service.lock_balance(session, balance.balance_id)
        ledger_service.apply_entry(
            session,
            balance,
            -order.total_points,
            TransactionCategory.PURCHASE_DEBIT,
            f"Kiosk purchase: {kiosk.name}",
            kiosk_order_id=order.order_id,
            now=now,
        )
        for item in order.items:
            product = inventory.lock_item(session, KioskProduct, item.product_id)
            inventory.decrement_stock(session, product, item.quantity, reason=f"Sale - order {order.order_id}")
        if not _finish_order(session, order, OrderStatus.COMPLETED, paid_by_member_id=member_id, paid_at=now):
            raise AlreadyProcessed("Order was already processed")

    logger.info("member %s paid kiosk order %s (%s points)", member_id, order.order_id, order.total_points)
    return PaymentResult(order=order, kiosk=kiosk, total_points=order.total_points, balance_after=balance.balance)
