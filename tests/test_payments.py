"""Tests for payment recording and status transitions."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from house_split.exceptions import InvalidStateError, NotFoundError, ValidationError
from house_split.ledger.payments import next_bill_status
from house_split.models import ShareInput


@pytest.fixture
def split_bill(bills, bill_data, alice, bob):
    """100.00 split 50/50 between Alice (receiver) and Bob."""
    return bills.create_bill(
        alice.id,
        bill_data(
            title="Groceries",
            total_amount=Decimal("100.00"),
            shares=[
                ShareInput(user_id=alice.id, percentage=Decimal("50")),
                ShareInput(user_id=bob.id, percentage=Decimal("50")),
            ],
        ),
    )


class TestRecordPayment:
    """Tests for record_payment."""

    def test_full_share_payment_marks_share_paid(
        self, bills, payments, split_bill, alice, bob
    ):
        """Bob paying his 50.00 settles his share; Alice's own share keeps the bill open."""
        payment = payments.record_payment(split_bill.id, bob.id, Decimal("50.00"), "pix")

        assert payment.status == "COMPLETED"
        assert payment.from_user_id == bob.id
        assert payment.to_user_id == alice.id
        assert payment.method == "pix"

        bill = bills.get_bill(split_bill.id)
        assert bill.share_for(bob.id).status == "PAID"
        assert bill.share_for(alice.id).status == "PENDING"
        assert bill.status == "PARTIALLY_PAID"

    def test_last_pending_share_marks_bill_paid(
        self, bills, payments, split_bill, alice, bob
    ):
        payments.record_payment(split_bill.id, bob.id, Decimal("50.00"))
        payments.record_payment(split_bill.id, alice.id, Decimal("50.00"))

        bill = bills.get_bill(split_bill.id)
        assert bill.status == "PAID"
        assert all(s.status == "PAID" for s in bill.shares)

    def test_partial_payments_do_not_accumulate(self, bills, payments, split_bill, bob):
        """Two payments adding up to the share leave it pending."""
        payments.record_payment(split_bill.id, bob.id, Decimal("20.00"))
        payments.record_payment(split_bill.id, bob.id, Decimal("30.00"))

        bill = bills.get_bill(split_bill.id)
        assert bill.share_for(bob.id).status == "PENDING"
        assert bill.status == "PARTIALLY_PAID"
        assert len(bills.list_payments(split_bill.id)) == 2

    def test_overpayment_covers_share(self, bills, payments, split_bill, bob):
        payments.record_payment(split_bill.id, bob.id, Decimal("75.00"))

        assert bills.get_bill(split_bill.id).share_for(bob.id).status == "PAID"

    def test_payment_from_non_participant(self, bills, payments, split_bill, carol):
        """The payment is logged; no share changes."""
        payments.record_payment(split_bill.id, carol.id, Decimal("10.00"))

        bill = bills.get_bill(split_bill.id)
        assert all(s.status == "PENDING" for s in bill.shares)
        assert bill.status == "PARTIALLY_PAID"

    def test_paid_bill_stays_paid(self, bills, payments, split_bill, alice, bob):
        """Status never moves backwards."""
        payments.record_payment(split_bill.id, bob.id, Decimal("50.00"))
        payments.record_payment(split_bill.id, alice.id, Decimal("50.00"))

        payments.record_payment(split_bill.id, bob.id, Decimal("1.00"))

        assert bills.get_bill(split_bill.id).status == "PAID"

    def test_requires_linked_receiver(self, bills, payments, bill_data, alice, bob):
        """Bills paid to a free-text receiver cannot take payments."""
        bill = bills.create_bill(
            alice.id, bill_data(receiver_id=None, receiver_name="Landlord")
        )

        with pytest.raises(InvalidStateError):
            payments.record_payment(bill.id, bob.id, Decimal("99.00"))

    def test_rejects_non_positive_amount(self, payments, split_bill, bob):
        with pytest.raises(ValidationError):
            payments.record_payment(split_bill.id, bob.id, Decimal("0"))
        with pytest.raises(ValidationError):
            payments.record_payment(split_bill.id, bob.id, Decimal("-5.00"))

    def test_missing_bill_not_found(self, payments, bob):
        with pytest.raises(NotFoundError):
            payments.record_payment(999, bob.id, Decimal("10.00"))

    def test_archived_bill_not_found(self, bills, payments, split_bill, alice, bob):
        bills.archive_bill(split_bill.id, alice.id)

        with pytest.raises(NotFoundError):
            payments.record_payment(split_bill.id, bob.id, Decimal("50.00"))

    def test_unknown_payer_not_found(self, payments, split_bill):
        with pytest.raises(NotFoundError, match="User"):
            payments.record_payment(split_bill.id, 999, Decimal("50.00"))

    def test_receiver_is_notified(self, db, payments, split_bill, alice, bob):
        """The receiver gets an inbox entry when someone else pays."""
        before = len(db.list_notifications(alice.id))

        payments.record_payment(split_bill.id, bob.id, Decimal("50.00"))

        notifications = db.list_notifications(alice.id)
        assert len(notifications) == before + 1
        assert notifications[0].type == "PAYMENT_REGISTERED"

    def test_receiver_paying_own_share_is_not_notified(
        self, db, payments, split_bill, alice
    ):
        before = len(db.list_notifications(alice.id))

        payments.record_payment(split_bill.id, alice.id, Decimal("50.00"))

        assert len(db.list_notifications(alice.id)) == before

    def test_records_activity(self, db, payments, split_bill, bob):
        payments.record_payment(split_bill.id, bob.id, Decimal("50.00"))

        assert db.list_activities(bob.id)[0].type == "PAYMENT_REGISTERED"

    def test_publishes_payment_event(self, events, payments, split_bill, alice, bob, group):
        handler = MagicMock()
        events.subscribe(handler)

        payment = payments.record_payment(split_bill.id, bob.id, Decimal("50.00"))

        published = [call.args[0] for call in handler.call_args_list]
        assert [(e.name, e.room) for e in published] == [
            ("payment:created", f"group:{group.id}"),
            ("notification:new", f"user:{alice.id}"),
        ]
        assert published[0].payload["id"] == payment.id
        assert published[0].payload["amount"] == "50.00"


class TestNextBillStatus:
    """Tests for the bill status derivation."""

    @pytest.mark.parametrize(
        "current,pending,expected",
        [
            ("OPEN", 2, "PARTIALLY_PAID"),
            ("OPEN", 0, "PAID"),
            ("PARTIALLY_PAID", 1, "PARTIALLY_PAID"),
            ("PARTIALLY_PAID", 0, "PAID"),
            ("PAID", 1, "PAID"),
        ],
    )
    def test_status_only_moves_forward(self, current, pending, expected):
        assert next_bill_status(current, pending) == expected
