"""Tests for event check-ins and point awards."""

import uuid
from datetime import timedelta

import pytest

from clubpoints.core.errors import AlreadyProcessed, Expired, InvalidOperation, InvalidToken, NotFound, RateLimited
from clubpoints.models import EventStatus, TransactionCategory
from clubpoints.services import checkin_service, event_service, ledger_service
from clubpoints.services.event_service import EventEnded

from .conftest import T0


def _multi_event(make_event, **overrides):
    values = {
        "allow_multiple_checkins": True,
        "max_checkins_per_user": 3,
        "checkin_interval_seconds": 60,
    }
    values.update(overrides)
    return make_event(**values)


class TestAwards:
    def test_single_checkin_awards_total(self, db, make_member, make_event, event_payload):
        member = make_member("Ana")
        event = make_event(total_points=50)
        at = T0 + timedelta(seconds=5)

        result = checkin_service.process_checkin(
            db, member_id=member.member_id, qr_payload=event_payload(event, at), now=at
        )
        db.commit()

        assert result.points_awarded == 50
        assert result.checkin_number == 1
        assert result.checkins_remaining == 0
        entry = ledger_service.history(db, member.member_id)[0]
        assert entry.category == TransactionCategory.EVENT_AWARD
        assert entry.checkin_id == result.checkin.checkin_id
        assert entry.balance_after == 50

    def test_split_awards_add_up_to_total(self, db, make_member, make_event, event_payload):
        member = make_member("Ana")
        event = _multi_event(make_event, total_points=100)

        awarded = []
        for offset in (5, 70, 140):
            at = T0 + timedelta(seconds=offset)
            result = checkin_service.process_checkin(
                db, member_id=member.member_id, qr_payload=event_payload(event, at), now=at
            )
            db.commit()
            awarded.append(result.points_awarded)

        assert awarded == [33, 33, 34]
        assert ledger_service.find_balance(db, member.member_id).balance == 100

    def test_award_split_smaller_than_limit(self, db, make_event):
        event = _multi_event(make_event, total_points=2)

        assert [checkin_service.calculate_award(event, n) for n in (1, 2, 3)] == [0, 0, 2]


class TestRejections:
    def test_replayed_token(self, db, make_member, make_event, event_payload):
        member = make_member("Ana")
        event = _multi_event(make_event, checkin_interval_seconds=1)
        payload = event_payload(event, T0)

        checkin_service.process_checkin(db, member_id=member.member_id, qr_payload=payload, now=T0 + timedelta(seconds=2))
        db.commit()

        with pytest.raises(AlreadyProcessed):
            checkin_service.process_checkin(
                db, member_id=member.member_id, qr_payload=payload, now=T0 + timedelta(seconds=10)
            )

    def test_second_checkin_on_single_event(self, db, make_member, make_event, event_payload):
        member = make_member("Ana")
        event = make_event()
        checkin_service.process_checkin(
            db, member_id=member.member_id, qr_payload=event_payload(event, T0), now=T0
        )
        db.commit()

        later = T0 + timedelta(minutes=5)
        with pytest.raises(AlreadyProcessed):
            checkin_service.process_checkin(
                db, member_id=member.member_id, qr_payload=event_payload(event, later), now=later
            )

    def test_interval_enforced(self, db, make_member, make_event, event_payload):
        member = make_member("Ana")
        event = _multi_event(make_event)
        first = T0 + timedelta(seconds=5)
        checkin_service.process_checkin(
            db, member_id=member.member_id, qr_payload=event_payload(event, first), now=first
        )
        db.commit()

        second = T0 + timedelta(seconds=35)
        with pytest.raises(RateLimited) as excinfo:
            checkin_service.process_checkin(
                db, member_id=member.member_id, qr_payload=event_payload(event, second), now=second
            )
        assert excinfo.value.wait_seconds == 30
        assert excinfo.value.status_code == 429

    def test_limit_reached(self, db, make_member, make_event, event_payload):
        member = make_member("Ana")
        event = _multi_event(make_event, max_checkins_per_user=1)
        checkin_service.process_checkin(
            db, member_id=member.member_id, qr_payload=event_payload(event, T0), now=T0
        )
        db.commit()

        later = T0 + timedelta(minutes=5)
        with pytest.raises(AlreadyProcessed):
            checkin_service.process_checkin(
                db, member_id=member.member_id, qr_payload=event_payload(event, later), now=later
            )

    def test_expired_token(self, db, make_member, make_event, event_payload):
        member = make_member("Ana")
        event = make_event()
        payload = event_payload(event, T0)

        with pytest.raises(Expired):
            checkin_service.process_checkin(
                db, member_id=member.member_id, qr_payload=payload, now=T0 + timedelta(seconds=31)
            )

    def test_garbage_payload(self, db, make_member):
        member = make_member("Ana")

        with pytest.raises(InvalidToken):
            checkin_service.process_checkin(db, member_id=member.member_id, qr_payload="hello", now=T0)

    def test_inactive_event(self, db, make_member, make_event, event_payload):
        member = make_member("Ana")
        event = make_event()
        payload = event_payload(event, T0)
        event_service.update_status(db, event.event_id, EventStatus.CANCELLED)
        db.commit()

        with pytest.raises(InvalidOperation):
            checkin_service.process_checkin(db, member_id=member.member_id, qr_payload=payload, now=T0)

    def test_rejected_checkin_leaves_balance_alone(self, db, make_member, make_event, event_payload):
        member = make_member("Ana", balance=10)
        event = make_event()
        payload = event_payload(event, T0)

        with pytest.raises(Expired):
            checkin_service.process_checkin(
                db, member_id=member.member_id, qr_payload=payload, now=T0 + timedelta(minutes=1)
            )
        db.rollback()

        assert ledger_service.find_balance(db, member.member_id).balance == 10


class TestStatus:
    def test_status_after_checkin(self, db, make_member, make_event, event_payload):
        member = make_member("Ana")
        event = _multi_event(make_event, total_points=90)
        checkin_service.process_checkin(
            db, member_id=member.member_id, qr_payload=event_payload(event, T0), now=T0
        )
        db.commit()

        status = checkin_service.get_checkin_status(
            db, event_id=event.event_id, member_id=member.member_id, now=T0 + timedelta(seconds=20)
        )

        assert status["checkin_count"] == 1
        assert status["checkins_remaining"] == 2
        assert status["total_points_earned"] == 30
        assert status["can_checkin"] is False
        assert status["wait_time_seconds"] == 40
        assert status["last_checkin_at"] == T0

    def test_status_for_new_member(self, db, make_member, make_event):
        member = make_member("Ana")
        event = make_event()

        status = checkin_service.get_checkin_status(
            db, event_id=event.event_id, member_id=member.member_id, now=T0 + timedelta(minutes=1)
        )

        assert status["can_checkin"] is True
        assert status["checkins_remaining"] == 1


class TestDisplay:
    def test_display_data(self, db, make_member, make_event, event_payload):
        member = make_member("Ana")
        event = make_event()
        checkin_service.process_checkin(
            db, member_id=member.member_id, qr_payload=event_payload(event, T0), now=T0
        )
        db.commit()

        data = event_service.get_display_data(db, event.event_id, now=T0 + timedelta(seconds=45, milliseconds=500))

        assert data["sequence"] == 1
        assert data["next_rotation_in"] == 15
        assert data["total_checkins"] == 1
        assert data["unique_members"] == 1

    def test_display_after_end_completes_event(self, db, make_event):
        event = make_event()

        with pytest.raises(EventEnded):
            event_service.get_display_data(db, event.event_id, now=T0 + timedelta(hours=3))

        assert event_service.get_event(db, event.event_id).status == EventStatus.COMPLETED

    def test_housekeeping_completes_ended_events(self, db, make_event):
        ended = make_event(name="Ended", end_at=T0 + timedelta(minutes=30))
        running = make_event(name="Running")

        assert event_service.complete_ended_events(db, now=T0 + timedelta(hours=1)) == 1
        db.commit()

        assert event_service.get_event(db, ended.event_id).status == EventStatus.COMPLETED
        assert event_service.get_event(db, running.event_id).status == EventStatus.ACTIVE


class TestEventSetup:
    def test_unknown_creator_rejected(self, db):
        with pytest.raises(NotFound):
            event_service.create_event(
                db,
                name="Ghost meetup",
                start_at=T0,
                end_at=T0 + timedelta(hours=1),
                total_points=10,
                created_by=uuid.uuid4(),
            )
        db.rollback()

        assert event_service.list_events(db) == []

    def test_creator_recorded(self, db, make_member, make_event):
        organiser = make_member("Organiser")

        event = make_event(created_by=organiser.member_id)

        assert event.created_by == organiser.member_id
