"""Outbound ledger events for the notification layer."""

import logging
from collections.abc import Callable, Iterable

from pydantic import BaseModel

from .models import Event

logger = logging.getLogger(__name__)

BILL_CREATED = "bill:created"
PAYMENT_CREATED = "payment:created"
NOTIFICATION_NEW = "notification:new"

EventHandler = Callable[[Event], None]


def group_room(group_id: int) -> str:
    """Room name for events addressed to everyone in a group."""
    return f"group:{group_id}"


def user_room(user_id: int) -> str:
    """Room name for events addressed to a single user."""
    return f"user:{user_id}"


def make_event(name: str, room: str, entity: BaseModel) -> Event:
    """Wrap a created entity as an event payload."""
    return Event(name=name, room=room, payload=entity.model_dump(mode="json"))


class EventBus:
    """
    Fan-out of events to subscribers.

    Delivery is fire-and-forget: events are published after the ledger change
    has committed, and a failing subscriber is logged without affecting the
    caller or the other subscribers.
    """

    def __init__(self):
        """Initialize an event bus with no subscribers."""
        self._handlers: list[EventHandler] = []

    def subscribe(self, handler: EventHandler) -> None:
        """Register a handler called once per published event."""
        self._handlers.append(handler)

    def publish(self, events: Iterable[Event]) -> None:
        """Hand each event to every subscriber."""
        for event in events:
            logger.debug(f"Publishing {event.name} to {event.room}")
            for handler in self._handlers:
                try:
                    handler(event)
                except Exception:
                    logger.exception(f"Failed to deliver {event.name} to {event.room}")
