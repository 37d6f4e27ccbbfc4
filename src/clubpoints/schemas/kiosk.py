"""Pydantic schemas for kiosks and kiosk payments."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..models import OrderStatus


class KioskCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=80)
    description: Optional[str] = None


class KioskRead(BaseModel):
    kiosk_id: UUID
    name: str
    description: Optional[str]
    is_active: bool

    class Config:
        from_attributes = True


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = None
    points_price: int = Field(..., gt=0)
    stock: int = Field(0, ge=0)


class ProductRead(BaseModel):
    product_id: UUID
    kiosk_id: UUID
    name: str
    description: Optional[str]
    points_price: int
    stock: int
    is_active: bool

    class Config:
        from_attributes = True


class StockAdjustment(BaseModel):
    """Signed stock correction with the reason recorded in the movement log."""

    quantity: int
    reason: str = Field(..., min_length=1, max_length=200)


class KioskDisplay(BaseModel):
    kiosk: KioskRead
    products: List[ProductRead]


class OrderLineCreate(BaseModel):
    product_id: UUID
    quantity: int = Field(1, gt=0)


class KioskOrderCreate(BaseModel):
    items: List[OrderLineCreate] = Field(..., min_length=1)


class KioskOrderItemRead(BaseModel):
    product_id: UUID
    product_name: str
    quantity: int
    points_price: int


class KioskOrderRead(BaseModel):
    order_id: UUID
    kiosk_id: UUID
    total_points: int
    status: OrderStatus
    qr_payload: Optional[str]
    expires_at: datetime
    paid_by_member_id: Optional[UUID]
    paid_at: Optional[datetime]
    items: List[KioskOrderItemRead]
    created_at: datetime


class PaymentRequest(BaseModel):
    qr_payload: str = Field(..., min_length=1, max_length=2048)


class PaymentPreview(BaseModel):
    order_id: UUID
    kiosk_name: str
    total_points: int
    expires_at: datetime
    items: List[KioskOrderItemRead]


class PaymentReceipt(BaseModel):
    order_id: UUID
    kiosk_name: str
    total_points: int
    balance_after: int
