"""Service layer that wires the ledger components together.

The boundary (CLI, an HTTP layer) talks to one ``LedgerService`` that shares a
database connection and an event bus between every component.
"""

import logging

from .clients.webhook import WebhookPublisher
from .config import Settings
from .db import Database
from .directory import Directory
from .events import EventBus
from .inbox import Inbox
from .ledger import BalanceAggregator, BillManager, PaymentRecorder, RecurrenceEngine

logger = logging.getLogger(__name__)


class LedgerService:
    """Entry point composing the directory, the ledger and the inbox."""

    def __init__(
        self,
        settings: Settings,
        database: Database,
        events: EventBus | None = None,
    ):
        """Initialize the ledger service."""
        self.settings = settings
        self.db = database
        self.events = events or EventBus()
        self._publisher: WebhookPublisher | None = None

        self.directory = Directory(database, settings.default_environment_name)
        self.bills = BillManager(database, self.events)
        self.payments = PaymentRecorder(database, self.events)
        self.recurrence = RecurrenceEngine(database, self.events)
        self.balances = BalanceAggregator(database, settings.uncategorized_label)
        self.inbox = Inbox(
            database,
            notification_limit=settings.notification_limit,
            history_limit=settings.history_limit,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "LedgerService":
        """
        Open the configured database and attach the webhook when one is set.

        Args:
            settings: Application settings

        Returns:
            A ready-to-use service; call ``close()`` when done
        """
        service = cls(settings, Database(settings.database_path))
        if settings.webhook_url:
            service._publisher = WebhookPublisher(
                settings.webhook_url, timeout=settings.webhook_timeout
            )
            service.events.subscribe(service._publisher)
            logger.debug(f"Forwarding events to {settings.webhook_url}")
        return service

    def close(self):
        """Release the database connection and the webhook client."""
        if self._publisher is not None:
            self._publisher.close()
        self.db.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
