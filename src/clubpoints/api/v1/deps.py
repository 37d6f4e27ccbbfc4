"""Shared request dependencies and error translation."""

from __future__ import annotations

from uuid import UUID

from fastapi import Header, HTTPException

from ...core.errors import PointsRuleViolation, RateLimited


def get_current_member_id(x_user_id: UUID = Header(..., alias="X-User-Id")) -> UUID:
    """Identity of the acting member, as resolved by the upstream gateway."""

    return x_user_id


def to_http(exc: PointsRuleViolation) -> HTTPException:
    headers = None
    if isinstance(exc, RateLimited):
        headers = {"Retry-After": str(exc.wait_seconds)}
    return HTTPException(status_code=exc.status_code, detail=exc.detail, headers=headers)
