"""Signed QR tokens shared by event check-ins and kiosk payments.

A payload is a flat JSON object whose fields are signed with HMAC-SHA256
under the secret of the entity that issued it (an event or a kiosk). The
signature covers the compact JSON of the signed fields in the order the
payload shape declares them, so the scanner side can recompute it from what
it receives. Each payload is persisted once per ``(context, sequence)``.
"""

from __future__ import annotations

import enum
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.database import atomic
from ..models import Event, Kiosk, KioskOrder, OrderStatus, QRToken, TokenContextType
from ..utils.datetime import as_naive_utc, from_wire, to_wire

logger = logging.getLogger(__name__)

SIGNATURE_FIELD = "hmac"


class TokenError(str, enum.Enum):
    """Why a presented payload was rejected."""

    MALFORMED = "malformed"
    CONTEXT_NOT_FOUND = "context_not_found"
    BAD_SIGNATURE = "bad_signature"
    EXPIRED = "expired"
    TOKEN_NOT_FOUND = "token_not_found"
    ALREADY_PROCESSED = "already_processed"


ERROR_MESSAGES = {
    TokenError.MALFORMED: "Invalid QR code",
    TokenError.CONTEXT_NOT_FOUND: "QR code issuer not found",
    TokenError.BAD_SIGNATURE: "Invalid QR code",
    TokenError.EXPIRED: "QR code expired",
    TokenError.TOKEN_NOT_FOUND: "QR code not recognised",
    TokenError.ALREADY_PROCESSED: "Order was already processed",
}


@dataclass(frozen=True)
class TokenValidation:
    """Outcome of checking a presented payload."""

    valid: bool
    context_id: Optional[UUID] = None
    sequence: Optional[int] = None
    token: Optional[QRToken] = None
    fields: dict[str, Any] = field(default_factory=dict)
    error: Optional[TokenError] = None

    @property
    def message(self) -> str:
        return "QR code valid" if self.valid else ERROR_MESSAGES[self.error]

    @classmethod
    def reject(cls, error: TokenError, context_id: Optional[UUID] = None) -> "TokenValidation":
        return cls(valid=False, context_id=context_id, error=error)


class PayloadShape:
    """Layout and lookups for one kind of token context."""

    context_type: TokenContextType
    context_field: str
    signed_fields: tuple[str, ...]
    integer_fields: tuple[str, ...] = ()
    uuid_fields: tuple[str, ...] = ()

    def load_context(self, session: Session, context_id: UUID):
        raise NotImplementedError

    def context_id_of(self, context) -> UUID:
        raise NotImplementedError

    def payload_fields(self, context, sequence: int, expires_at: datetime, order=None) -> dict[str, Any]:
        raise NotImplementedError

    def find_token(self, session: Session, context_id: UUID, fields: dict[str, Any]) -> Optional[QRToken]:
        stmt = select(QRToken).where(
            QRToken.context_type == self.context_type,
            QRToken.context_id == context_id,
            QRToken.sequence == fields["sequence"],
        )
        return session.execute(stmt).scalar_one_or_none()

    def check_redeemable(self, session: Session, token: QRToken, fields: dict[str, Any]) -> Optional[TokenError]:
        return None

    def parse(self, raw: str) -> Optional[dict[str, Any]]:
        """Decode and type-check a raw payload; ``None`` when malformed."""

        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            return None
        if not isinstance(data, dict):
            return None

        required = self.signed_fields + (SIGNATURE_FIELD,)
        if any(name not in data for name in required):
            return None
        for name in self.integer_fields:
            value = data[name]
            if not isinstance(value, int) or isinstance(value, bool):
                return None
        for name in self.uuid_fields:
            if not isinstance(data[name], str):
                return None
            try:
                UUID(data[name])
            except ValueError:
                return None
        if not isinstance(data[SIGNATURE_FIELD], str):
            return None
        try:
            from_wire(data["expires_at"])
        except ValueError:
            return None
        return {name: data[name] for name in required}


class EventPayloadShape(PayloadShape):
    """``{event_id, sequence, expires_at, hmac}`` rotating event codes."""

    context_type = TokenContextType.EVENT
    context_field = "event_id"
    signed_fields = ("event_id", "sequence", "expires_at")
    integer_fields = ("sequence",)
    uuid_fields = ("event_id",)

    def load_context(self, session: Session, context_id: UUID) -> Optional[Event]:
        return session.get(Event, context_id)

    def context_id_of(self, context: Event) -> UUID:
        return context.event_id

    def payload_fields(self, context: Event, sequence: int, expires_at: datetime, order=None) -> dict[str, Any]:
        return {
            "event_id": str(context.event_id),
            "sequence": sequence,
            "expires_at": to_wire(expires_at),
        }


class KioskPayloadShape(PayloadShape):
    """``{kyosk_id, order_id, total_points, expires_at, hmac}`` single-order codes."""

    context_type = TokenContextType.KIOSK
    context_field = "kyosk_id"
    signed_fields = ("kyosk_id", "order_id", "total_points", "expires_at")
    integer_fields = ("total_points",)
    uuid_fields = ("kyosk_id", "order_id")

    def load_context(self, session: Session, context_id: UUID) -> Optional[Kiosk]:
        return session.get(Kiosk, context_id)

    def context_id_of(self, context: Kiosk) -> UUID:
        return context.kiosk_id

    def payload_fields(self, context: Kiosk, sequence: int, expires_at: datetime, order=None) -> dict[str, Any]:
        return {
            "kyosk_id": str(context.kiosk_id),
            "order_id": str(order.order_id),
            "total_points": order.total_points,
            "expires_at": to_wire(expires_at),
        }

    def find_token(self, session: Session, context_id: UUID, fields: dict[str, Any]) -> Optional[QRToken]:
        stmt = select(QRToken).where(
            QRToken.context_type == self.context_type,
            QRToken.context_id == context_id,
            QRToken.order_id == UUID(fields["order_id"]),
        )
        return session.execute(stmt).scalar_one_or_none()

    def check_redeemable(self, session: Session, token: QRToken, fields: dict[str, Any]) -> Optional[TokenError]:
        order = session.get(KioskOrder, token.order_id)
        if order is None or order.status != OrderStatus.PENDING:
            return TokenError.ALREADY_PROCESSED
        return None


EVENT_PAYLOAD = EventPayloadShape()
KIOSK_PAYLOAD = KioskPayloadShape()


def canonical_message(shape: PayloadShape, fields: dict[str, Any]) -> str:
    """Compact JSON of the signed fields in declaration order."""

    return json.dumps(
        {name: fields[name] for name in shape.signed_fields},
        separators=(",", ":"),
        ensure_ascii=False,
    )


def sign(shape: PayloadShape, fields: dict[str, Any], secret: str) -> str:
    """Hex HMAC-SHA256 of the canonical message under ``secret``."""

    message = canonical_message(shape, fields).encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def build_payload(shape: PayloadShape, fields: dict[str, Any], secret: str) -> str:
    body = {name: fields[name] for name in shape.signed_fields}
    body[SIGNATURE_FIELD] = sign(shape, fields, secret)
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False)


def _find_issued(session: Session, shape: PayloadShape, context_id: UUID, sequence: int) -> Optional[QRToken]:
    stmt = select(QRToken).where(
        QRToken.context_type == shape.context_type,
        QRToken.context_id == context_id,
        QRToken.sequence == sequence,
    )
    return session.execute(stmt).scalar_one_or_none()


def issue(
    session: Session,
    shape: PayloadShape,
    context,
    *,
    sequence: int,
    expires_at: datetime,
    order: Optional[KioskOrder] = None,
) -> QRToken:
    """Persist the signed token for ``(context, sequence)``, or return the existing one.

    Concurrent callers racing on the same key converge on a single row: the
    losing insert hits the unique constraint and re-reads the winner.
    """

    context_id = shape.context_id_of(context)
    existing = _find_issued(session, shape, context_id, sequence)
    if existing is not None:
        return existing

    expires_at = as_naive_utc(expires_at)
    fields = shape.payload_fields(context, sequence, expires_at, order)
    token = QRToken(
        context_type=shape.context_type,
        context_id=context_id,
        sequence=sequence,
        payload=build_payload(shape, fields, context.qr_secret),
        expires_at=expires_at,
        order_id=order.order_id if order is not None else None,
    )
    try:
        with atomic(session):
            session.add(token)
            session.flush()
    except IntegrityError:
        existing = _find_issued(session, shape, context_id, sequence)
        if existing is None:
            raise
        logger.debug("token %s/%s issued concurrently; reusing it", context_id, sequence)
        return existing

    logger.info("issued %s token %s for context %s", shape.context_type.value, sequence, context_id)
    return token


def validate(session: Session, shape: PayloadShape, raw: str, *, now: Optional[datetime] = None) -> TokenValidation:
    """Check a presented payload without raising for bad input.

    Checks run in order: structure, issuer, signature, expiry, issuance,
    and finally the shape's own redeemability rule. Storage errors propagate.
    """

    fields = shape.parse(raw)
    if fields is None:
        return TokenValidation.reject(TokenError.MALFORMED)

    context_id = UUID(str(fields[shape.context_field]))
    context = shape.load_context(session, context_id)
    if context is None:
        return TokenValidation.reject(TokenError.CONTEXT_NOT_FOUND, context_id)

    expected = sign(shape, fields, context.qr_secret)
    if not hmac.compare_digest(expected.encode("ascii"), fields[SIGNATURE_FIELD].encode("utf-8")):
        logger.warning("rejected %s payload with bad signature for context %s", shape.context_type.value, context_id)
        return TokenValidation.reject(TokenError.BAD_SIGNATURE, context_id)

    if as_naive_utc(now) > from_wire(fields["expires_at"]):
        return TokenValidation.reject(TokenError.EXPIRED, context_id)

    token = shape.find_token(session, context_id, fields)
    if token is None:
        return TokenValidation.reject(TokenError.TOKEN_NOT_FOUND, context_id)

    error = shape.check_redeemable(session, token, fields)
    if error is not None:
        return TokenValidation.reject(error, context_id)

    return TokenValidation(
        valid=True,
        context_id=context_id,
        sequence=token.sequence,
        token=token,
        fields=fields,
    )
