"""Public schema exports."""

from .events import (
	CheckinCreate,
	CheckinRead,
	CheckinReceipt,
	CheckinStatus,
	EventCreate,
	EventDisplay,
	EventRead,
	EventStatusUpdate,
)
from .kiosk import (
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
from .points import (
	AdjustmentCreate,
	AdjustmentReceipt,
	BalanceRead,
	MemberBalance,
	SystemSummary,
	TransactionRead,
	TransferCreate,
	TransferReceipt,
)
from .store import (
	CartItemCreate,
	CartItemUpdate,
	CartRead,
	StoreItemCreate,
	StoreItemRead,
	StoreOrderRead,
)

__all__ = [
	"AdjustmentCreate",
	"AdjustmentReceipt",
	"BalanceRead",
	"CartItemCreate",
	"CartItemUpdate",
	"CartRead",
	"CheckinCreate",
	"CheckinRead",
	"CheckinReceipt",
	"CheckinStatus",
	"EventCreate",
	"EventDisplay",
	"EventRead",
	"EventStatusUpdate",
	"KioskCreate",
	"KioskDisplay",
	"KioskOrderCreate",
	"KioskOrderItemRead",
	"KioskOrderRead",
	"KioskRead",
	"MemberBalance",
	"PaymentPreview",
	"PaymentReceipt",
	"PaymentRequest",
	"ProductCreate",
	"ProductRead",
	"StockAdjustment",
	"StoreItemCreate",
	"StoreItemRead",
	"StoreOrderRead",
	"SystemSummary",
	"TransactionRead",
	"TransferCreate",
	"TransferReceipt",
]
