"""Points store: catalog, carts and checkout orders."""

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
from .kiosk import OrderStatus


class StoreItem(Base):
    """Catalog item bought with points, optionally as a time-limited offer."""

    __tablename__ = "store_items"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="store_items_stock_non_negative"),
        CheckConstraint("points_price > 0", name="store_items_price_positive"),
    )

    store_item_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    description = Column(String)
    points_price = Column(Integer, nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    offer_ends_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    @property
    def item_id(self):
        return self.store_item_id

    def record_movement(self, quantity: int, reason: str) -> "StockMovement":
        return StockMovement(store_item_id=self.store_item_id, quantity=quantity, reason=reason)


class StockMovement(Base):
    """Audit row for every store stock change."""

    __tablename__ = "stock_movements"

    movement_id = Column(Integer, primary_key=True, autoincrement=True)
    store_item_id = Column(Uuid, ForeignKey("store_items.store_item_id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, nullable=False)
    reason = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Cart(Base):
    """One shopping cart per member."""

    __tablename__ = "carts"
    __table_args__ = (
        UniqueConstraint("member_id", name="carts_member_unique"),
    )

    cart_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    member_id = Column(Uuid, ForeignKey("members.member_id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    items = relationship(
        "CartItem",
        back_populates="cart",
        order_by="CartItem.created_at",
        cascade="all, delete-orphan",
    )


class CartItem(Base):
    """Quantity of one store item in a cart."""

    __tablename__ = "cart_items"
    __table_args__ = (
        UniqueConstraint("cart_id", "store_item_id", name="cart_items_item_unique"),
        CheckConstraint("quantity > 0", name="cart_items_quantity_positive"),
    )

    cart_item_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    cart_id = Column(Uuid, ForeignKey("carts.cart_id", ondelete="CASCADE"), nullable=False)
    store_item_id = Column(Uuid, ForeignKey("store_items.store_item_id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    cart = relationship("Cart", back_populates="items")
    store_item = relationship("StoreItem")


class StoreOrder(Base):
    """Order header written by a completed checkout."""

    __tablename__ = "store_orders"

    order_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    member_id = Column(Uuid, ForeignKey("members.member_id", ondelete="RESTRICT"), nullable=False)
    total_points = Column(Integer, nullable=False)
    status = Column(Enum(OrderStatus, name="order_status"), nullable=False, default=OrderStatus.PENDING)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    items = relationship("StoreOrderItem", back_populates="order", order_by="StoreOrderItem.item_id")


class StoreOrderItem(Base):
    """Line of a store order with the unit price charged."""

    __tablename__ = "store_order_items"

    item_id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Uuid, ForeignKey("store_orders.order_id", ondelete="CASCADE"), nullable=False)
    store_item_id = Column(Uuid, ForeignKey("store_items.store_item_id", ondelete="RESTRICT"), nullable=False)
    quantity = Column(Integer, nullable=False)
    points_price = Column(Integer, nullable=False)

    order = relationship("StoreOrder", back_populates="items")
    store_item = relationship("StoreItem")
