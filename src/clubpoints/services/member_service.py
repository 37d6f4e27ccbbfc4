"""Member directory lookups."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.errors import NotFound
from ..models import Member


def member_exists(session: Session, member_id: UUID) -> bool:
    stmt = select(Member.member_id).where(Member.member_id == member_id)
    return session.execute(stmt).scalar_one_or_none() is not None


def ensure_member(session: Session, member_id: UUID) -> Member:
    """Return the member or raise ``NotFound``."""

    member = session.get(Member, member_id)
    if member is None:
        raise NotFound(f"Member {member_id} not found")
    return member


def get_display_name(session: Session, member_id: UUID) -> str:
    return ensure_member(session, member_id).display_name


def create_member(session: Session, *, email: str, display_name: str) -> Member:
    member = Member(email=email, display_name=display_name)
    session.add(member)
    session.flush()
    return member
