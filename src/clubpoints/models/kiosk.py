"""Unattended kiosks, their products and the orders paid by QR."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from ..core.database import Base


class OrderStatus(str, enum.Enum):
    """Order lifecycle; only PENDING may transition."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class Kiosk(Base):
    """A self-service point of sale that signs its own order QR codes."""

    __tablename__ = "kiosks"
    __table_args__ = (
        UniqueConstraint("name", name="kiosks_name_unique"),
    )

    kiosk_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    description = Column(String)
    is_active = Column(Boolean, nullable=False, default=True)
    qr_secret = Column(String, nullable=False)
    order_sequence = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    products = relationship("KioskProduct", back_populates="kiosk")


class KioskProduct(Base):
    """Stock-tracked product sold at a kiosk."""

    __tablename__ = "kiosk_products"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="kiosk_products_stock_non_negative"),
        CheckConstraint("points_price > 0", name="kiosk_products_price_positive"),
    )

    product_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    kiosk_id = Column(Uuid, ForeignKey("kiosks.kiosk_id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False)
    description = Column(String)
    points_price = Column(Integer, nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    kiosk = relationship("Kiosk", back_populates="products")

    @property
    def item_id(self):
        return self.product_id

    @property
    def offer_ends_at(self):
        return None

    def record_movement(self, quantity: int, reason: str) -> "KioskStockMovement":
        return KioskStockMovement(product_id=self.product_id, quantity=quantity, reason=reason)


class KioskStockMovement(Base):
    """Audit row for every kiosk stock change."""

    __tablename__ = "kiosk_stock_movements"

    movement_id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Uuid, ForeignKey("kiosk_products.product_id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, nullable=False)
    reason = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class KioskOrder(Base):
    """An order displayed as a single-use QR code on the kiosk screen."""

    __tablename__ = "kiosk_orders"
    __table_args__ = (
        UniqueConstraint("kiosk_id", "sequence", name="kiosk_orders_sequence_unique"),
        CheckConstraint("total_points > 0", name="kiosk_orders_total_positive"),
    )

    order_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    kiosk_id = Column(Uuid, ForeignKey("kiosks.kiosk_id", ondelete="RESTRICT"), nullable=False)
    sequence = Column(Integer, nullable=False)
    total_points = Column(Integer, nullable=False)
    status = Column(Enum(OrderStatus, name="order_status"), nullable=False, default=OrderStatus.PENDING)
    expires_at = Column(DateTime, nullable=False)
    paid_by_member_id = Column(Uuid, ForeignKey("members.member_id", ondelete="SET NULL"))
    paid_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    kiosk = relationship("Kiosk")
    items = relationship("KioskOrderItem", back_populates="order", order_by="KioskOrderItem.item_id")
    token = relationship("QRToken", uselist=False, viewonly=True)


class KioskOrderItem(Base):
    """Line of a kiosk order, priced at order creation."""

    __tablename__ = "kiosk_order_items"

    item_id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Uuid, ForeignKey("kiosk_orders.order_id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Uuid, ForeignKey("kiosk_products.product_id", ondelete="RESTRICT"), nullable=False)
    quantity = Column(Integer, nullable=False)
    points_price = Column(Integer, nullable=False)

    order = relationship("KioskOrder", back_populates="items")
    product = relationship("KioskProduct")
