"""Per-user notification inbox and activity history."""

import logging

from .db import Database
from .exceptions import NotFoundError
from .models import Activity, DateWindow, Notification

logger = logging.getLogger(__name__)


class Inbox:
    """Reads and acknowledges the notifications written by ledger operations."""

    def __init__(
        self,
        database: Database,
        notification_limit: int = 100,
        history_limit: int = 50,
    ):
        """Initialize the inbox."""
        self.db = database
        self.notification_limit = notification_limit
        self.history_limit = history_limit

    def notifications(self, user_id: int) -> list[Notification]:
        """Get a user's notifications, newest first."""
        return self.db.list_notifications(user_id, limit=self.notification_limit)

    def mark_read(self, user_id: int, notification_id: int) -> None:
        """
        Mark one notification as read.

        Raises:
            NotFoundError: The notification does not belong to the user
        """
        if not self.db.mark_notifications_read(user_id, notification_id):
            raise NotFoundError("Notification", notification_id)

    def mark_all_read(self, user_id: int) -> int:
        """Mark every unread notification as read and return how many changed."""
        count = self.db.mark_notifications_read(user_id)
        logger.debug(f"Marked {count} notifications read for user {user_id}")
        return count

    def history(self, user_id: int, window: DateWindow | None = None) -> list[Activity]:
        """Get the activity of the user's groups, newest first."""
        return self.db.list_activities(user_id, window=window, limit=self.history_limit)
