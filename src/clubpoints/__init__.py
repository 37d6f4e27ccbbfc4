"""Club points ledger, event check-ins and QR kiosk payments."""
