"""Tests for recurring templates and due-bill generation."""

import sqlite3
from datetime import date
from decimal import Decimal

import pytest

from house_split.db import Database
from house_split.exceptions import (
    ForbiddenError,
    InvalidAllocationError,
    NotFoundError,
    ValidationError,
)
from house_split.ledger.recurrence import RecurrenceEngine, next_due_date
from house_split.models import Bill, BillUpdate, ShareInput


class TestNextDueDate:
    """Period arithmetic."""

    @pytest.mark.parametrize(
        "current,frequency,expected",
        [
            (date(2024, 1, 31), "MONTHLY", date(2024, 2, 29)),
            (date(2023, 1, 31), "MONTHLY", date(2023, 2, 28)),
            (date(2024, 2, 29), "MONTHLY", date(2024, 3, 29)),
            (date(2024, 12, 15), "MONTHLY", date(2025, 1, 15)),
            (date(2024, 1, 29), "WEEKLY", date(2024, 2, 5)),
            (date(2024, 2, 29), "YEARLY", date(2025, 2, 28)),
            (date(2024, 6, 1), "YEARLY", date(2025, 6, 1)),
        ],
    )
    def test_advances_one_period(self, current, frequency, expected):
        assert next_due_date(current, frequency) == expected


class TestCreateTemplate:
    """Tests for create_template."""

    def test_creates_template_and_first_bill(self, recurrence, template_data, alice):
        """The first bill is due at the first due date, the template one period later."""
        created = recurrence.create_template(alice.id, template_data())

        template = created.template
        assert template.id is not None
        assert template.next_due_date == date(2024, 2, 29)
        assert template.day_of_month == 31
        assert template.active is True
        assert [s.percentage for s in template.shares] == [Decimal("50"), Decimal("50")]

        bill = created.first_bill
        assert bill is not None
        assert bill.due_date == date(2024, 1, 31)
        assert bill.recurring_bill_id == template.id
        assert bill.category == "Utilities"
        assert [s.amount for s in bill.shares] == [Decimal("60.00"), Decimal("60.00")]

    def test_without_first_bill(self, bills, recurrence, template_data, alice, environment):
        created = recurrence.create_template(
            alice.id, template_data(create_first_bill=False)
        )

        assert created.first_bill is None
        assert bills.list_bills(environment.id) == []

    def test_invalid_percentages_store_nothing(
        self, recurrence, template_data, alice, bob, environment
    ):
        data = template_data(
            shares=[
                ShareInput(user_id=alice.id, percentage=Decimal("70")),
                ShareInput(user_id=bob.id, percentage=Decimal("70")),
            ]
        )

        with pytest.raises(InvalidAllocationError):
            recurrence.create_template(alice.id, data)

        assert recurrence.list_templates(environment.id) == []

    def test_actor_must_be_member(self, recurrence, template_data, dave):
        with pytest.raises(ForbiddenError):
            recurrence.create_template(dave.id, template_data())


class TestGenerateDue:
    """Tests for generate_due."""

    def test_generates_one_bill_per_due_template(
        self, db, recurrence, template_data, alice
    ):
        template = recurrence.create_template(alice.id, template_data()).template

        result = recurrence.generate_due(as_of=date(2024, 2, 29))

        assert result.count == 1
        bill = result.bills[0]
        assert bill.due_date == date(2024, 2, 29)
        assert bill.recurring_bill_id == template.id
        assert bill.title == "Internet"
        assert bill.category == "Utilities"
        assert [s.amount for s in bill.shares] == [Decimal("60.00"), Decimal("60.00")]
        assert db.get_recurring_bill(template.id).next_due_date == date(2024, 3, 29)

    def test_second_pass_generates_nothing(self, recurrence, template_data, alice):
        """Running twice for the same date does not duplicate bills."""
        recurrence.create_template(alice.id, template_data())

        first = recurrence.generate_due(as_of=date(2024, 2, 29))
        second = recurrence.generate_due(as_of=date(2024, 2, 29))

        assert first.count == 1
        assert second.count == 0
        assert second.bills == []

    def test_not_due_yet(self, recurrence, template_data, alice):
        recurrence.create_template(alice.id, template_data())

        assert recurrence.generate_due(as_of=date(2024, 2, 28)).count == 0

    def test_missed_periods_are_not_caught_up(self, db, recurrence, template_data, alice):
        """Each pass creates one bill per template, however late it runs."""
        template = recurrence.create_template(alice.id, template_data()).template

        first = recurrence.generate_due(as_of=date(2024, 6, 30))
        second = recurrence.generate_due(as_of=date(2024, 6, 30))

        assert [b.due_date for b in first.bills] == [date(2024, 2, 29)]
        assert [b.due_date for b in second.bills] == [date(2024, 3, 29)]
        assert db.get_recurring_bill(template.id).next_due_date == date(2024, 4, 29)

    def test_uses_template_percentages_at_generation(
        self, db, recurrence, template_data, alice
    ):
        """Amounts are derived from the template's current total."""
        template = recurrence.create_template(alice.id, template_data()).template
        db.conn.execute(
            "UPDATE recurring_bills SET total_amount = ? WHERE id = ?",
            ("99.99", template.id),
        )

        bill = recurrence.generate_due(as_of=date(2024, 2, 29)).bills[0]

        assert bill.total_amount == Decimal("99.99")
        assert [s.amount for s in bill.shares] == [Decimal("50.00"), Decimal("50.00")]

    def test_records_generated_activity(self, db, recurrence, template_data, alice):
        recurrence.create_template(alice.id, template_data())

        recurrence.generate_due(as_of=date(2024, 2, 29))

        latest = db.list_activities(alice.id)[0]
        assert latest.type == "RECURRING_BILL_GENERATED"
        assert latest.user_id is None

    def test_inactive_templates_are_skipped(self, recurrence, template_data, alice):
        template = recurrence.create_template(alice.id, template_data()).template
        recurrence.toggle(template.id, False, alice.id)

        assert recurrence.generate_due(as_of=date(2024, 12, 31)).count == 0

    def test_archived_environment_is_skipped(
        self, db, recurrence, template_data, alice, environment
    ):
        recurrence.create_template(alice.id, template_data())
        db.set_environment_archived(environment.id)

        assert recurrence.generate_due(as_of=date(2024, 12, 31)).count == 0

    def test_scope_filters(self, directory, recurrence, template_data, alice, group, environment):
        recurrence.create_template(alice.id, template_data())
        other = directory.create_group(alice.id, "Beach house")

        assert recurrence.generate_due(group_id=other.id, as_of=date(2024, 3, 1)).count == 0
        assert (
            recurrence.generate_due(
                group_id=group.id, environment_id=environment.id, as_of=date(2024, 3, 1)
            ).count
            == 1
        )

    def test_separate_connections_do_not_double_generate(
        self, db, recurrence, template_data, alice, bills, environment
    ):
        """Two engines on the same file materialize each template/date once."""
        recurrence.create_template(alice.id, template_data(create_first_bill=False))
        other_db = Database(db.db_path)
        try:
            other_engine = RecurrenceEngine(other_db)

            first = recurrence.generate_due(as_of=date(2024, 2, 29))
            second = other_engine.generate_due(as_of=date(2024, 2, 29))
        finally:
            other_db.close()

        assert first.count + second.count == 1
        assert len(bills.list_bills(environment.id)) == 1

    def test_bill_moved_onto_next_due_date_is_not_duplicated(
        self, db, bills, recurrence, template_data, alice
    ):
        """A pass advances a template whose bill already exists and still generates the rest."""
        internet = recurrence.create_template(alice.id, template_data())
        water = recurrence.create_template(
            alice.id, template_data(title="Water", total_amount=Decimal("40.00"))
        )
        bills.update_bill(
            internet.first_bill.id, alice.id, BillUpdate(due_date=date(2024, 2, 29))
        )

        result = recurrence.generate_due(as_of=date(2024, 2, 29))

        assert [b.title for b in result.bills] == ["Water"]
        assert db.get_recurring_bill(internet.template.id).next_due_date == date(2024, 3, 29)
        assert db.get_recurring_bill(water.template.id).next_due_date == date(2024, 3, 29)

        later = recurrence.generate_due(as_of=date(2024, 3, 29))
        assert sorted(b.title for b in later.bills) == ["Internet", "Water"]

    def test_edit_onto_sibling_due_date_rejected(
        self, bills, recurrence, template_data, alice
    ):
        created = recurrence.create_template(alice.id, template_data())
        generated = recurrence.generate_due(as_of=date(2024, 2, 29)).bills[0]

        with pytest.raises(ValidationError):
            bills.update_bill(
                generated.id, alice.id, BillUpdate(due_date=created.first_bill.due_date)
            )

        assert bills.get_bill(generated.id).due_date == date(2024, 2, 29)

    def test_template_and_due_date_are_unique(self, db, recurrence, template_data, alice):
        """The store itself refuses a second bill for the same template and date."""
        created = recurrence.create_template(alice.id, template_data())
        first_bill = created.first_bill

        duplicate = Bill(**first_bill.model_dump(exclude={"id", "shares"}))

        with pytest.raises(sqlite3.IntegrityError):
            db.insert_bill(duplicate)


class TestToggle:
    """Tests for toggle and list_templates."""

    def test_toggle_back_on(self, recurrence, template_data, alice, environment):
        template = recurrence.create_template(alice.id, template_data()).template

        recurrence.toggle(template.id, False, alice.id)
        enabled = recurrence.toggle(template.id, True, alice.id)

        assert enabled.active is True
        assert recurrence.list_templates(environment.id)[0].active is True

    def test_toggle_keeps_existing_bills(
        self, bills, recurrence, template_data, alice, environment
    ):
        template = recurrence.create_template(alice.id, template_data()).template

        recurrence.toggle(template.id, False, alice.id)

        assert len(bills.list_bills(environment.id)) == 1

    def test_missing_template_not_found(self, recurrence, alice):
        with pytest.raises(NotFoundError):
            recurrence.toggle(999, False, alice.id)

    def test_outsider_forbidden(self, recurrence, template_data, alice, dave):
        template = recurrence.create_template(alice.id, template_data()).template

        with pytest.raises(ForbiddenError):
            recurrence.toggle(template.id, False, dave.id)
