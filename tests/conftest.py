"""Shared fixtures: a fresh database with a three-person household."""

from datetime import date
from decimal import Decimal

import pytest

from house_split.db import Database
from house_split.directory import Directory
from house_split.events import EventBus
from house_split.ledger import (
    BalanceAggregator,
    BillManager,
    PaymentRecorder,
    RecurrenceEngine,
)
from house_split.models import BillCreate, RecurringBillCreate, ShareInput


@pytest.fixture
def db(tmp_path):
    """Create a temporary database."""
    db_path = tmp_path / "test.db"
    db = Database(db_path)
    yield db
    db.close()


@pytest.fixture
def directory(db):
    """Create a directory backed by the temporary database."""
    return Directory(db)


@pytest.fixture
def alice(directory):
    """Group owner and usual receiver."""
    return directory.create_user("Alice", "alice@example.com")


@pytest.fixture
def bob(directory):
    return directory.create_user("Bob", "bob@example.com")


@pytest.fixture
def carol(directory):
    return directory.create_user("Carol", "carol@example.com")


@pytest.fixture
def dave(directory):
    """A user who belongs to no group."""
    return directory.create_user("Dave", "dave@example.com")


@pytest.fixture
def group(directory, alice, bob, carol):
    """Alice's group with Bob and Carol as members."""
    group = directory.create_group(alice.id, "Apartment 42")
    directory.add_member(group.id, alice.id, user_id=bob.id)
    directory.add_member(group.id, alice.id, user_id=carol.id)
    return group


@pytest.fixture
def environment(db, group):
    """The default environment created with the group."""
    return db.list_environments(group.id)[0]


@pytest.fixture
def events():
    """An event bus with no subscribers."""
    return EventBus()


@pytest.fixture
def bills(db, events):
    return BillManager(db, events)


@pytest.fixture
def payments(db, events):
    return PaymentRecorder(db, events)


@pytest.fixture
def recurrence(db, events):
    return RecurrenceEngine(db, events)


@pytest.fixture
def balances(db):
    return BalanceAggregator(db)


@pytest.fixture
def bill_data(group, environment, alice, bob, carol):
    """Factory for bill inputs: 300.00 split 34/33/33, received by Alice."""

    def make(**overrides) -> BillCreate:
        fields = {
            "group_id": group.id,
            "environment_id": environment.id,
            "title": "Rent",
            "due_date": date(2024, 1, 31),
            "total_amount": Decimal("300.00"),
            "receiver_id": alice.id,
            "shares": [
                ShareInput(user_id=alice.id, percentage=Decimal("34")),
                ShareInput(user_id=bob.id, percentage=Decimal("33")),
                ShareInput(user_id=carol.id, percentage=Decimal("33")),
            ],
        }
        fields.update(overrides)
        return BillCreate(**fields)

    return make


@pytest.fixture
def template_data(group, environment, alice, bob):
    """Factory for recurring template inputs: 120.00 monthly, 50/50."""

    def make(**overrides) -> RecurringBillCreate:
        fields = {
            "group_id": group.id,
            "environment_id": environment.id,
            "title": "Internet",
            "total_amount": Decimal("120.00"),
            "frequency": "MONTHLY",
            "first_due_date": date(2024, 1, 31),
            "receiver_id": alice.id,
            "category": "Utilities",
            "shares": [
                ShareInput(user_id=alice.id, percentage=Decimal("50")),
                ShareInput(user_id=bob.id, percentage=Decimal("50")),
            ],
        }
        fields.update(overrides)
        return RecurringBillCreate(**fields)

    return make
