"""Shared fixtures: an isolated SQLite database per test and small builders."""

import os
from datetime import datetime, timedelta

os.environ.setdefault("CLUBPOINTS_DATABASE_URL", "sqlite+pysqlite:///./clubpoints-test.db")
os.environ.setdefault("CLUBPOINTS_SCHEDULER_ENABLED", "false")

import pytest
from sqlalchemy import event
from sqlalchemy.orm import sessionmaker

from clubpoints.core.database import Base, build_engine
from clubpoints.models import EventStatus
from clubpoints.services import event_service, kiosk_service, ledger_service, member_service, store_service

# Fixed reference clock; events in tests start here.
T0 = datetime(2025, 3, 1, 9, 0, 0)
ADMIN_NOTE = "Opening balance"


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite+pysqlite:///{tmp_path / 'clubpoints.db'}")

    # Readers must not block writers in other sessions.
    @event.listens_for(engine, "connect")
    def _use_wal(dbapi_connection, connection_record):
        dbapi_connection.execute("PRAGMA journal_mode=WAL")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def make_member(db):
    counter = {"n": 0}

    def _make(name: str = "Member", balance: int = 0):
        counter["n"] += 1
        member = member_service.create_member(
            db,
            email=f"{name.lower().replace(' ', '.')}.{counter['n']}@example.edu",
            display_name=name,
        )
        if balance:
            ledger_service.adjust(
                db,
                member_id=member.member_id,
                amount=balance,
                reason=ADMIN_NOTE,
                admin_id=member.member_id,
                now=T0 - timedelta(days=1),
            )
        db.commit()
        return member

    return _make


@pytest.fixture
def make_event(db):
    def _make(**overrides):
        values = {
            "name": "Spring hackathon",
            "start_at": T0,
            "end_at": T0 + timedelta(hours=2),
            "total_points": 100,
            "qr_rotation_seconds": 30,
            "status": EventStatus.ACTIVE,
        }
        values.update(overrides)
        event = event_service.create_event(db, **values)
        db.commit()
        return event

    return _make


@pytest.fixture
def event_payload(db):
    """Return the QR payload shown on the event screen at ``at``."""

    def _payload(event, at: datetime) -> str:
        token = event_service.get_current_token(db, event.event_id, now=at)
        db.commit()
        return token.payload

    return _payload


@pytest.fixture
def kiosk(db):
    kiosk = kiosk_service.create_kiosk(db, name="Cafeteria")
    db.commit()
    return kiosk


@pytest.fixture
def make_product(db, kiosk):
    def _make(name: str = "Coffee", points_price: int = 25, stock: int = 10):
        product = kiosk_service.create_product(
            db,
            kiosk_id=kiosk.kiosk_id,
            name=name,
            points_price=points_price,
            stock=stock,
        )
        db.commit()
        return product

    return _make


@pytest.fixture
def make_store_item(db):
    def _make(name: str = "Hoodie", points_price: int = 40, stock: int = 5, offer_ends_at=None):
        item = store_service.create_item(
            db,
            name=name,
            points_price=points_price,
            stock=stock,
            offer_ends_at=offer_ends_at,
        )
        db.commit()
        return item

    return _make
