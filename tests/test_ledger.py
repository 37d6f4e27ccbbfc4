"""
Unit tests for the points ledger

Tests cover:
1. Balance creation and history ordering
2. Transfers between members
3. Administrative adjustments
4. Admin listings and the system summary
5. Balance kept equal to the sum of its entries
"""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import func

from clubpoints.core.errors import InsufficientBalance, InvalidAmount, InvalidOperation, NotFound
from clubpoints.models import PointsBalance, PointsTransaction, TransactionCategory
from clubpoints.services import checkin_service, kiosk_service, ledger_service, store_service
from clubpoints.services.kiosk_service import OrderLine

from .conftest import T0


class TestBalances:
    """Tests for balance records."""

    def test_balance_created_at_zero(self, db, make_member):
        member = make_member("Ana")

        balance = ledger_service.get_or_create_balance(db, member.member_id)

        assert balance.balance == 0
        assert ledger_service.get_or_create_balance(db, member.member_id).balance_id == balance.balance_id

    def test_unknown_member_rejected(self, db):
        with pytest.raises(NotFound):
            ledger_service.get_or_create_balance(db, uuid.uuid4())

    def test_history_empty_without_balance(self, db, make_member):
        member = make_member("Ana")

        assert list(ledger_service.history(db, member.member_id)) == []

    def test_history_newest_first(self, db, make_member):
        alice = make_member("Alice", balance=100)
        bob = make_member("Bob")

        ledger_service.transfer(db, from_member_id=alice.member_id, to_member_id=bob.member_id, amount=10)
        db.commit()

        entries = ledger_service.history(db, alice.member_id)
        assert [entry.category for entry in entries] == [
            TransactionCategory.TRANSFER_OUT,
            TransactionCategory.ADJUSTMENT,
        ]
        assert entries[0].balance_after == 90


class TestTransfers:
    """Tests for member to member transfers."""

    def test_transfer_moves_points(self, db, make_member):
        alice = make_member("Alice", balance=100)
        bob = make_member("Bob")

        result = ledger_service.transfer(
            db,
            from_member_id=alice.member_id,
            to_member_id=bob.member_id,
            amount=40,
        )
        db.commit()

        assert result.sender_balance.balance == 60
        assert result.recipient_balance.balance == 40
        assert result.out_entry.amount == -40
        assert result.out_entry.related_member_id == bob.member_id
        assert result.in_entry.amount == 40
        assert result.in_entry.description == "Transfer from Alice"
        assert result.out_entry.description == "Transfer to Bob"

    def test_insufficient_balance_leaves_no_trace(self, db, make_member):
        alice = make_member("Alice", balance=30)
        bob = make_member("Bob")

        with pytest.raises(InsufficientBalance):
            ledger_service.transfer(db, from_member_id=alice.member_id, to_member_id=bob.member_id, amount=31)
        db.rollback()

        assert ledger_service.find_balance(db, alice.member_id).balance == 30
        assert db.query(PointsTransaction).filter_by(category=TransactionCategory.TRANSFER_OUT).count() == 0

    def test_self_transfer_rejected(self, db, make_member):
        alice = make_member("Alice", balance=30)

        with pytest.raises(InvalidOperation):
            ledger_service.transfer(db, from_member_id=alice.member_id, to_member_id=alice.member_id, amount=5)

    @pytest.mark.parametrize("amount", [0, -5])
    def test_non_positive_amount_rejected(self, db, make_member, amount):
        alice = make_member("Alice", balance=30)
        bob = make_member("Bob")

        with pytest.raises(InvalidAmount):
            ledger_service.transfer(db, from_member_id=alice.member_id, to_member_id=bob.member_id, amount=amount)

    def test_unknown_recipient(self, db, make_member):
        alice = make_member("Alice", balance=30)

        with pytest.raises(NotFound):
            ledger_service.transfer(db, from_member_id=alice.member_id, to_member_id=uuid.uuid4(), amount=5)


class TestAdjustments:
    """Tests for administrative adjustments."""

    def test_credit_and_debit(self, db, make_member):
        member = make_member("Ana")
        admin = make_member("Admin")

        balance, entry = ledger_service.adjust(
            db, member_id=member.member_id, amount=50, reason="Volunteer bonus", admin_id=admin.member_id
        )
        assert balance.balance == 50
        assert entry.related_member_id == admin.member_id

        balance, entry = ledger_service.adjust(
            db, member_id=member.member_id, amount=-20, reason="Correction", admin_id=admin.member_id
        )
        db.commit()
        assert balance.balance == 30
        assert entry.balance_after == 30
        assert entry.category == TransactionCategory.ADJUSTMENT

    def test_zero_rejected(self, db, make_member):
        member = make_member("Ana")

        with pytest.raises(InvalidAmount):
            ledger_service.adjust(db, member_id=member.member_id, amount=0, reason="Nothing", admin_id=member.member_id)

    def test_cannot_go_negative(self, db, make_member):
        member = make_member("Ana", balance=10)

        with pytest.raises(InvalidOperation):
            ledger_service.adjust(
                db, member_id=member.member_id, amount=-11, reason="Too much", admin_id=member.member_id
            )

    def test_unknown_admin_rejected_before_writing(self, db, make_member):
        member = make_member("Ana", balance=10)

        with pytest.raises(NotFound):
            ledger_service.adjust(db, member_id=member.member_id, amount=5, reason="Bonus", admin_id=uuid.uuid4())
        db.rollback()

        assert ledger_service.find_balance(db, member.member_id).balance == 10
        assert len(ledger_service.history(db, member.member_id)) == 1


class TestAdminViews:
    """Tests for ledger listings and totals."""

    def test_summary_counts_accounts_and_points(self, db, make_member):
        make_member("Alice", balance=100)
        make_member("Bob", balance=20)
        make_member("Carol")

        assert ledger_service.system_summary(db) == {"total_points": 120, "total_accounts": 2}

    def test_list_balances_largest_first(self, db, make_member):
        make_member("Bob", balance=20)
        make_member("Alice", balance=100)

        rows = ledger_service.list_balances(db)

        assert [member.display_name for _, member in rows] == ["Alice", "Bob"]

    def test_list_transactions_filters(self, db, make_member):
        alice = make_member("Alice", balance=100)
        bob = make_member("Bob")
        ledger_service.transfer(db, from_member_id=alice.member_id, to_member_id=bob.member_id, amount=10)
        db.commit()

        entries = ledger_service.list_transactions(db, member_id=bob.member_id)
        assert [entry.category for entry in entries] == [TransactionCategory.TRANSFER_IN]

        entries = ledger_service.list_transactions(db, category=TransactionCategory.ADJUSTMENT)
        assert len(entries) == 1


class TestBalanceMatchesEntries:
    """The stored balance always equals the sum of the member's entries."""

    @staticmethod
    def _entry_sum(db, member_id):
        return (
            db.query(func.coalesce(func.sum(PointsTransaction.amount), 0))
            .join(PointsBalance, PointsBalance.balance_id == PointsTransaction.balance_id)
            .filter(PointsBalance.member_id == member_id)
            .scalar()
        )

    def test_after_mixed_activity(
        self, db, make_member, make_event, event_payload, make_store_item, kiosk, make_product
    ):
        alice = make_member("Alice", balance=200)
        bob = make_member("Bob", balance=20)
        admin = make_member("Admin")

        ledger_service.adjust(db, member_id=alice.member_id, amount=-15, reason="Correction", admin_id=admin.member_id)
        ledger_service.transfer(db, from_member_id=alice.member_id, to_member_id=bob.member_id, amount=35)
        db.commit()

        event = make_event(total_points=40)
        at = T0 + timedelta(seconds=5)
        checkin_service.process_checkin(db, member_id=bob.member_id, qr_payload=event_payload(event, at), now=at)
        db.commit()

        mug = make_store_item("Mug", points_price=15, stock=4)
        store_service.add_to_cart(db, member_id=alice.member_id, store_item_id=mug.store_item_id, quantity=2)
        store_service.checkout(db, member_id=alice.member_id)
        db.commit()

        coffee = make_product("Coffee", points_price=25, stock=3)
        order = kiosk_service.create_order(db, kiosk_id=kiosk.kiosk_id, lines=[OrderLine(coffee.product_id, 2)])
        db.commit()
        kiosk_service.process_payment(db, member_id=bob.member_id, qr_payload=order.token.payload)
        db.commit()

        alice_balance = ledger_service.find_balance(db, alice.member_id).balance
        bob_balance = ledger_service.find_balance(db, bob.member_id).balance
        assert alice_balance == 200 - 15 - 35 - 30
        assert bob_balance == 20 + 35 + 40 - 50
        assert self._entry_sum(db, alice.member_id) == alice_balance
        assert self._entry_sum(db, bob.member_id) == bob_balance
        for member_id in (alice.member_id, bob.member_id):
            latest = ledger_service.history(db, member_id)[0]
            assert latest.balance_after == ledger_service.find_balance(db, member_id).balance
