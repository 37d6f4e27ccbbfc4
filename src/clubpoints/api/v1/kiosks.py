"""Kiosk management, order and QR payment endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.errors import PointsRuleViolation
from ...models import KioskOrder
from ...schemas import (
    KioskCreate,
    KioskDisplay,
    KioskOrderCreate,
    KioskOrderItemRead,
    KioskOrderRead,
    KioskRead,
    PaymentPreview,
    PaymentReceipt,
    PaymentRequest,
    ProductCreate,
    ProductRead,
    StockAdjustment,
)
from ...services import kiosk_service, notification_service
from ...services.kiosk_service import OrderLine
from .deps import get_current_member_id, to_http

router = APIRouter(prefix="/kiosks", tags=["kiosks"])


def _order_items(order: KioskOrder) -> list[KioskOrderItemRead]:
    return [
        KioskOrderItemRead(
            product_id=item.product_id,
            product_name=item.product.name,
            quantity=item.quantity,
            points_price=item.points_price,
        )
        for item in order.items
    ]


def _order_read(order: KioskOrder) -> KioskOrderRead:
    return KioskOrderRead(
        order_id=order.order_id,
        kiosk_id=order.kiosk_id,
        total_points=order.total_points,
        status=order.status,
        qr_payload=order.token.payload if order.token is not None else None,
        expires_at=order.expires_at,
        paid_by_member_id=order.paid_by_member_id,
        paid_at=order.paid_at,
        items=_order_items(order),
        created_at=order.created_at,
    )


@router.post("/payments/preview", response_model=PaymentPreview, summary="Inspect a kiosk QR code")
def preview_payment(payload: PaymentRequest, db: Session = Depends(get_db)) -> PaymentPreview:
    """Validate a scanned payment code and show what it charges, without paying."""

    try:
        order = kiosk_service.preview_payment(db, qr_payload=payload.qr_payload)
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc

    return PaymentPreview(
        order_id=order.order_id,
        kiosk_name=order.kiosk.name,
        total_points=order.total_points,
        expires_at=order.expires_at,
        items=_order_items(order),
    )


@router.post(
    "/payments",
    response_model=PaymentReceipt,
    summary="Pay a kiosk order with points",
    responses={
        200: {
            "description": "Order paid",
            "content": {
                "application/json": {
                    "example": {
                        "order_id": "77777777-7777-7777-7777-777777777777",
                        "kiosk_name": "Cafeteria",
                        "total_points": 50,
                        "balance_after": 70,
                    }
                }
            },
        },
        400: {"description": "Invalid QR code or insufficient balance"},
        409: {"description": "Order already processed or out of stock"},
        410: {"description": "QR code expired"},
    },
)
def pay_order(
    payload: PaymentRequest,
    background_tasks: BackgroundTasks,
    member_id: UUID = Depends(get_current_member_id),
    db: Session = Depends(get_db),
) -> PaymentReceipt:
    try:
        result = kiosk_service.process_payment(db, member_id=member_id, qr_payload=payload.qr_payload)
        receipt = PaymentReceipt(
            order_id=result.order.order_id,
            kiosk_name=result.kiosk.name,
            total_points=result.total_points,
            balance_after=result.balance_after,
        )
        db.commit()
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc

    background_tasks.add_task(
        notification_service.notify,
        member_id,
        notification_service.KIOSK_PAYMENT,
        kiosk_name=receipt.kiosk_name,
        amount=receipt.total_points,
    )
    return receipt


@router.post("", response_model=KioskRead, status_code=status.HTTP_201_CREATED, summary="Register a kiosk")
def create_kiosk(payload: KioskCreate, db: Session = Depends(get_db)) -> KioskRead:
    try:
        kiosk = kiosk_service.create_kiosk(db, name=payload.name, description=payload.description)
        db.commit()
        db.refresh(kiosk)
        return kiosk
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc


@router.post("/{kiosk_id}/toggle", response_model=KioskRead, summary="Open or close a kiosk")
def toggle_kiosk(kiosk_id: UUID, db: Session = Depends(get_db)) -> KioskRead:
    try:
        kiosk = kiosk_service.toggle_kiosk(db, kiosk_id)
        db.commit()
        db.refresh(kiosk)
        return kiosk
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc


@router.get("/{kiosk_id}/display", response_model=KioskDisplay, summary="Kiosk with products on sale")
def get_kiosk_display(kiosk_id: UUID, db: Session = Depends(get_db)) -> KioskDisplay:
    try:
        data = kiosk_service.get_display_data(db, kiosk_id)
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc
    return KioskDisplay(
        kiosk=KioskRead.model_validate(data["kiosk"]),
        products=[ProductRead.model_validate(product) for product in data["products"]],
    )


@router.post(
    "/{kiosk_id}/products",
    response_model=ProductRead,
    status_code=status.HTTP_201_CREATED,
    summary="Add a product to a kiosk",
)
def create_product(kiosk_id: UUID, payload: ProductCreate, db: Session = Depends(get_db)) -> ProductRead:
    try:
        product = kiosk_service.create_product(
            db,
            kiosk_id=kiosk_id,
            name=payload.name,
            description=payload.description,
            points_price=payload.points_price,
            stock=payload.stock,
        )
        db.commit()
        db.refresh(product)
        return product
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc


@router.post("/{kiosk_id}/products/{product_id}/stock", response_model=ProductRead, summary="Adjust product stock")
def adjust_product_stock(
    kiosk_id: UUID,
    product_id: UUID,
    payload: StockAdjustment,
    db: Session = Depends(get_db),
) -> ProductRead:
    try:
        product = kiosk_service.adjust_product_stock(
            db,
            kiosk_id=kiosk_id,
            product_id=product_id,
            delta=payload.quantity,
            reason=payload.reason,
        )
        db.commit()
        db.refresh(product)
        return product
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc


@router.post("/{kiosk_id}/products/{product_id}/toggle", response_model=ProductRead, summary="Enable or disable a product")
def toggle_product(kiosk_id: UUID, product_id: UUID, db: Session = Depends(get_db)) -> ProductRead:
    try:
        product = kiosk_service.toggle_product(db, kiosk_id=kiosk_id, product_id=product_id)
        db.commit()
        db.refresh(product)
        return product
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc


@router.post(
    "/{kiosk_id}/orders",
    response_model=KioskOrderRead,
    status_code=status.HTTP_201_CREATED,
    summary="Open an order and mint its payment QR code",
)
def create_order(kiosk_id: UUID, payload: KioskOrderCreate, db: Session = Depends(get_db)) -> KioskOrderRead:
    """Price the basket and return the single-use QR payload the member scans.

    Example request body::

        {
            "items": [
                {"product_id": "88888888-8888-8888-8888-888888888888", "quantity": 2}
            ]
        }
    """

    try:
        order = kiosk_service.create_order(
            db,
            kiosk_id=kiosk_id,
            lines=[OrderLine(line.product_id, line.quantity) for line in payload.items],
        )
        db.commit()
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc
    return _order_read(order)


@router.get("/{kiosk_id}/orders/{order_id}", response_model=KioskOrderRead, summary="Order status")
def get_order(kiosk_id: UUID, order_id: UUID, db: Session = Depends(get_db)) -> KioskOrderRead:
    """Polled by the kiosk screen to learn when the member has paid."""

    try:
        order = kiosk_service.get_order_status(db, kiosk_id=kiosk_id, order_id=order_id)
        db.commit()
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc
    return _order_read(order)


@router.post("/{kiosk_id}/orders/{order_id}/cancel", response_model=KioskOrderRead, summary="Cancel a pending order")
def cancel_order(kiosk_id: UUID, order_id: UUID, db: Session = Depends(get_db)) -> KioskOrderRead:
    try:
        order = kiosk_service.cancel_order(db, kiosk_id=kiosk_id, order_id=order_id)
        db.commit()
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc
    return _order_read(order)
