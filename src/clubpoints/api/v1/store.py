"""Points store catalog, cart and checkout endpoints."""

from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.errors import PointsRuleViolation
from ...models import Cart
from ...schemas import (
    CartItemCreate,
    CartItemUpdate,
    CartRead,
    StockAdjustment,
    StoreItemCreate,
    StoreItemRead,
    StoreOrderRead,
)
from ...schemas.store import CartLineRead
from ...services import store_service
from .deps import get_current_member_id, to_http

router = APIRouter(prefix="/store", tags=["store"])


def _cart_read(cart: Cart) -> CartRead:
    return CartRead(
        cart_id=cart.cart_id,
        items=[CartLineRead.model_validate(line) for line in cart.items],
        total_points=store_service.cart_total(cart),
        item_count=sum(line.quantity for line in cart.items),
    )


@router.get("/items", response_model=List[StoreItemRead], summary="Items on sale")
def list_items(db: Session = Depends(get_db)) -> List[StoreItemRead]:
    return list(store_service.list_items(db))


@router.post("/items", response_model=StoreItemRead, status_code=status.HTTP_201_CREATED, summary="Add a store item")
def create_item(payload: StoreItemCreate, db: Session = Depends(get_db)) -> StoreItemRead:
    try:
        item = store_service.create_item(
            db,
            name=payload.name,
            description=payload.description,
            points_price=payload.points_price,
            stock=payload.stock,
            offer_ends_at=payload.offer_ends_at,
        )
        db.commit()
        db.refresh(item)
        return item
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc


@router.post("/items/{store_item_id}/stock", response_model=StoreItemRead, summary="Adjust item stock")
def adjust_item_stock(
    store_item_id: UUID,
    payload: StockAdjustment,
    db: Session = Depends(get_db),
) -> StoreItemRead:
    try:
        item = store_service.adjust_item_stock(
            db,
            store_item_id=store_item_id,
            delta=payload.quantity,
            reason=payload.reason,
        )
        db.commit()
        db.refresh(item)
        return item
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc


@router.get("/cart", response_model=CartRead, summary="Caller's cart")
def get_cart(
    member_id: UUID = Depends(get_current_member_id),
    db: Session = Depends(get_db),
) -> CartRead:
    try:
        cart = store_service.get_cart(db, member_id)
        response = _cart_read(cart)
        db.commit()
        return response
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc


@router.post("/cart/items", response_model=CartRead, status_code=status.HTTP_201_CREATED, summary="Add to cart")
def add_to_cart(
    payload: CartItemCreate,
    member_id: UUID = Depends(get_current_member_id),
    db: Session = Depends(get_db),
) -> CartRead:
    try:
        cart = store_service.add_to_cart(
            db,
            member_id=member_id,
            store_item_id=payload.store_item_id,
            quantity=payload.quantity,
        )
        response = _cart_read(cart)
        db.commit()
        return response
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc


@router.patch("/cart/items/{cart_item_id}", response_model=CartRead, summary="Change a cart line quantity")
def update_cart_item(
    cart_item_id: UUID,
    payload: CartItemUpdate,
    member_id: UUID = Depends(get_current_member_id),
    db: Session = Depends(get_db),
) -> CartRead:
    try:
        cart = store_service.update_cart_item(
            db,
            member_id=member_id,
            cart_item_id=cart_item_id,
            quantity=payload.quantity,
        )
        response = _cart_read(cart)
        db.commit()
        return response
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc


@router.delete("/cart/items/{cart_item_id}", response_model=CartRead, summary="Remove a cart line")
def remove_from_cart(
    cart_item_id: UUID,
    member_id: UUID = Depends(get_current_member_id),
    db: Session = Depends(get_db),
) -> CartRead:
    try:
        cart = store_service.remove_from_cart(db, member_id=member_id, cart_item_id=cart_item_id)
        response = _cart_read(cart)
        db.commit()
        return response
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc


@router.delete("/cart", response_model=CartRead, summary="Empty the cart")
def clear_cart(
    member_id: UUID = Depends(get_current_member_id),
    db: Session = Depends(get_db),
) -> CartRead:
    try:
        cart = store_service.clear_cart(db, member_id=member_id)
        response = _cart_read(cart)
        db.commit()
        return response
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc


@router.post(
    "/checkout",
    response_model=StoreOrderRead,
    status_code=status.HTTP_201_CREATED,
    summary="Buy everything in the cart",
    responses={
        400: {"description": "Empty cart, inactive item or insufficient balance"},
        409: {"description": "An item sold out"},
        410: {"description": "An offer has ended"},
    },
)
def checkout(
    member_id: UUID = Depends(get_current_member_id),
    db: Session = Depends(get_db),
) -> StoreOrderRead:
    """Charge the cart total, take the items from stock and empty the cart in one step."""

    try:
        order = store_service.checkout(db, member_id=member_id)
        db.commit()
        db.refresh(order)
        return order
    except PointsRuleViolation as exc:
        db.rollback()
        raise to_http(exc) from exc


@router.get("/orders", response_model=List[StoreOrderRead], summary="Caller's store orders")
def list_orders(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    member_id: UUID = Depends(get_current_member_id),
    db: Session = Depends(get_db),
) -> List[StoreOrderRead]:
    return list(store_service.list_orders(db, member_id=member_id, limit=limit, offset=offset))
