"""Service layer exports."""

from . import (
	checkin_service,
	event_service,
	inventory,
	kiosk_service,
	ledger_service,
	member_service,
	notification_service,
	store_service,
	token_protocol,
)

__all__ = [
	"checkin_service",
	"event_service",
	"inventory",
	"kiosk_service",
	"ledger_service",
	"member_service",
	"notification_service",
	"store_service",
	"token_protocol",
]
