"""Tests for event publishing and webhook delivery."""

import json
import logging
from decimal import Decimal
from unittest.mock import MagicMock

import httpx
import pytest

from house_split.clients.webhook import WebhookPublisher
from house_split.config import Settings
from house_split.events import EventBus, group_room, make_event, user_room
from house_split.exceptions import DeliveryError
from house_split.models import Event, Payment
from house_split.service import LedgerService


def make_payment_event() -> Event:
    payment = Payment(id=7, bill_id=3, from_user_id=2, to_user_id=1, amount=Decimal("50.00"))
    return make_event("payment:created", group_room(1), payment)


class TestEventBus:
    """Tests for EventBus."""

    def test_payload_is_json_compatible(self):
        event = make_payment_event()

        assert event.payload["amount"] == "50.00"
        assert event.room == "group:1"
        json.dumps(event.payload)

    def test_rooms(self):
        assert group_room(4) == "group:4"
        assert user_room(9) == "user:9"

    def test_every_subscriber_receives_every_event(self):
        bus = EventBus()
        first, second = MagicMock(), MagicMock()
        bus.subscribe(first)
        bus.subscribe(second)

        bus.publish([make_payment_event(), make_payment_event()])

        assert first.call_count == 2
        assert second.call_count == 2

    def test_failing_subscriber_is_logged_not_raised(self, caplog):
        """Delivery problems never reach the caller."""
        bus = EventBus()
        bus.subscribe(MagicMock(side_effect=DeliveryError("boom")))
        after = MagicMock()
        bus.subscribe(after)

        with caplog.at_level(logging.ERROR, logger="house_split.events"):
            bus.publish([make_payment_event()])

        after.assert_called_once()
        assert "Failed to deliver payment:created" in caplog.text

    def test_failing_subscriber_does_not_roll_back(self, bills, events, bill_data, alice, environment):
        """The bill stays stored when delivery fails."""
        events.subscribe(MagicMock(side_effect=RuntimeError("socket closed")))

        bill = bills.create_bill(alice.id, bill_data())

        assert [b.id for b in bills.list_bills(environment.id)] == [bill.id]


class TestWebhookPublisher:
    """Tests for WebhookPublisher."""

    def test_posts_event_as_json(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(204)

        with WebhookPublisher(
            "https://hooks.example.com/ledger", transport=httpx.MockTransport(handler)
        ) as publisher:
            publisher(make_payment_event())

        assert len(requests) == 1
        body = json.loads(requests[0].content)
        assert body["name"] == "payment:created"
        assert body["room"] == "group:1"
        assert body["payload"]["id"] == 7
        assert str(requests[0].url) == "https://hooks.example.com/ledger"

    def test_error_status_raises_delivery_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500))

        with WebhookPublisher("https://hooks.example.com/ledger", transport=transport) as publisher:
            with pytest.raises(DeliveryError, match="payment:created"):
                publisher(make_payment_event())

    def test_connection_error_raises_delivery_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with WebhookPublisher(
            "https://hooks.example.com/ledger", transport=httpx.MockTransport(handler)
        ) as publisher:
            with pytest.raises(DeliveryError) as exc_info:
                publisher(make_payment_event())

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


class TestLedgerService:
    """Tests for the service wiring."""

    def test_from_settings_attaches_webhook(self, tmp_path):
        settings = Settings(
            database_path=tmp_path / "ledger.db",
            webhook_url="https://hooks.example.com/ledger",
        )

        with LedgerService.from_settings(settings) as service:
            assert isinstance(service._publisher, WebhookPublisher)
            assert service.balances.uncategorized_label == "Uncategorized"

    def test_without_webhook(self, tmp_path):
        settings = Settings(database_path=tmp_path / "ledger.db")

        with LedgerService.from_settings(settings) as service:
            assert service._publisher is None
            user = service.directory.create_user("Alice", "alice@example.com")
            assert service.directory.get_user(user.id).name == "Alice"
