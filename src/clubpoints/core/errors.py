"""Typed rule violations raised by the service layer."""

from __future__ import annotations


class PointsRuleViolation(Exception):
    """Raised when a business rule rejects an operation."""

    status_code = 400

    def __init__(self, detail: str, status_code: int | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code


class NotFound(PointsRuleViolation):
    """A user, context, item or order does not exist."""

    status_code = 404


class InvalidOperation(PointsRuleViolation):
    """The request is well-formed but not allowed."""


class InvalidAmount(InvalidOperation):
    """A zero or otherwise unusable points amount."""


class InvalidToken(InvalidOperation):
    """A QR payload that is malformed, forged or never issued."""


class InsufficientBalance(PointsRuleViolation):
    """A debit exceeds the current balance."""


class InsufficientStock(PointsRuleViolation):
    """Requested quantity exceeds the stock on hand."""

    status_code = 409


class Expired(PointsRuleViolation):
    """A token or offer is past its validity window."""

    status_code = 410


class AlreadyProcessed(PointsRuleViolation):
    """An order left pending already, or a token was already consumed."""

    status_code = 409


class RateLimited(PointsRuleViolation):
    """The minimum interval between check-ins has not elapsed."""

    status_code = 429

    def __init__(self, detail: str, wait_seconds: int) -> None:
        super().__init__(detail)
        self.wait_seconds = wait_seconds
