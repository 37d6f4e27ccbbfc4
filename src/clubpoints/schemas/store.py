"""Pydantic schemas for the points store."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..models import OrderStatus


class StoreItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = None
    points_price: int = Field(..., gt=0)
    stock: int = Field(0, ge=0)
    offer_ends_at: Optional[datetime] = None


class StoreItemRead(BaseModel):
    store_item_id: UUID
    name: str
    description: Optional[str]
    points_price: int
    stock: int
    is_active: bool
    offer_ends_at: Optional[datetime]

    class Config:
        from_attributes = True


class CartItemCreate(BaseModel):
    store_item_id: UUID
    quantity: int = Field(1, gt=0)


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., gt=0)


class CartLineRead(BaseModel):
    cart_item_id: UUID
    store_item: StoreItemRead
    quantity: int

    class Config:
        from_attributes = True


class CartRead(BaseModel):
    cart_id: UUID
    items: List[CartLineRead]
    total_points: int
    item_count: int


class StoreOrderItemRead(BaseModel):
    store_item_id: UUID
    quantity: int
    points_price: int

    class Config:
        from_attributes = True


class StoreOrderRead(BaseModel):
    order_id: UUID
    total_points: int
    status: OrderStatus
    items: List[StoreOrderItemRead]
    created_at: datetime

    class Config:
        from_attributes = True
