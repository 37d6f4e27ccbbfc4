"""SQLAlchemy models for clubpoints."""

from .event import Event, EventCheckin, EventStatus
from .kiosk import Kiosk, KioskOrder, KioskOrderItem, KioskProduct, KioskStockMovement, OrderStatus
from .member import Member
from .points import PointsBalance, PointsTransaction, TransactionCategory
from .store import Cart, CartItem, StockMovement, StoreItem, StoreOrder, StoreOrderItem
from .token import QRToken, TokenContextType

__all__ = [
    "Cart",
    "CartItem",
    "Event",
    "EventCheckin",
    "EventStatus",
    "Kiosk",
    "KioskOrder",
    "KioskOrderItem",
    "KioskProduct",
    "KioskStockMovement",
    "Member",
    "OrderStatus",
    "PointsBalance",
    "PointsTransaction",
    "QRToken",
    "StockMovement",
    "StoreItem",
    "StoreOrder",
    "StoreOrderItem",
    "TokenContextType",
    "TransactionCategory",
]
