"""Payment recording and the share/bill status transitions it drives."""

import logging
from decimal import Decimal

from ..db import Database
from ..events import (
    NOTIFICATION_NEW,
    PAYMENT_CREATED,
    EventBus,
    group_room,
    make_event,
    user_room,
)
from ..exceptions import InvalidStateError, NotFoundError, ValidationError
from ..models import Activity, BillStatus, Notification, Payment

logger = logging.getLogger(__name__)

_STATUS_ORDER: dict[str, int] = {"OPEN": 0, "PARTIALLY_PAID": 1, "PAID": 2}


def next_bill_status(current: BillStatus, pending_shares: int) -> BillStatus:
    """
    Derive a bill's status after a payment.

    PAID once no share is pending, PARTIALLY_PAID otherwise. The status never
    moves backwards, whatever the payment.
    """
    derived: BillStatus = "PAID" if pending_shares == 0 else "PARTIALLY_PAID"
    if _STATUS_ORDER[derived] < _STATUS_ORDER[current]:
        return current
    return derived


class PaymentRecorder:
    """Registers payments against bills."""

    def __init__(self, database: Database, events: EventBus | None = None):
        """Initialize the payment recorder."""
        self.db = database
        self.events = events or EventBus()

    def record_payment(
        self,
        bill_id: int,
        from_user_id: int,
        amount: Decimal,
        method: str | None = None,
        actor_id: int | None = None,
    ) -> Payment:
        """
        Record a completed payment from a member to the bill's receiver.

        The payer's share is marked PAID only when this single payment covers
        the full share amount; smaller payments are logged without changing any
        status and are not accumulated.

        Args:
            bill_id: Bill being paid
            from_user_id: Paying user
            amount: Amount transferred
            method: Optional free-text method (pix, cash, ...)
            actor_id: User registering the payment, defaults to the payer

        Returns:
            The stored payment

        Raises:
            NotFoundError: Bill missing or archived, or payer unknown
            ValidationError: Amount is not positive
            InvalidStateError: The bill has no linked receiver
        """
        bill = self.db.get_bill(bill_id)
        if bill is None or bill.archived:
            raise NotFoundError("Bill", bill_id)
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than zero")
        if bill.receiver_id is None:
            raise InvalidStateError(f"Bill {bill_id} has no linked receiver")
        if self.db.get_user(from_user_id) is None:
            raise NotFoundError("User", from_user_id)

        share = bill.share_for(from_user_id)
        covers_share = (
            share is not None and share.status == "PENDING" and amount >= share.amount
        )

        notifications: list[Notification] = []
        with self.db.transaction():
            payment = self.db.insert_payment(
                Payment(
                    bill_id=bill_id,
                    from_user_id=from_user_id,
                    to_user_id=bill.receiver_id,
                    amount=amount,
                    method=method,
                    status="COMPLETED",
                )
            )

            if covers_share and share is not None and share.id is not None:
                self.db.set_share_status(share.id, "PAID")

            status = next_bill_status(
                bill.status, self.db.count_pending_shares(bill_id)
            )
            if status != bill.status:
                self.db.set_bill_status(bill_id, status)

            self.db.insert_activity(
                Activity(
                    group_id=bill.group_id,
                    user_id=actor_id if actor_id is not None else from_user_id,
                    type="PAYMENT_REGISTERED",
                    description=f'Payment of {amount} registered on "{bill.title}"',
                )
            )

            if bill.receiver_id != from_user_id:
                notifications.append(
                    self.db.insert_notification(
                        Notification(
                            user_id=bill.receiver_id,
                            title="Payment received",
                            message=f'A payment of {amount} was made on "{bill.title}"',
                            type="PAYMENT_REGISTERED",
                        )
                    )
                )

        logger.info(
            f"Recorded payment {payment.id} of {amount} on bill {bill_id} "
            f"(share {'paid' if covers_share else 'unchanged'}, bill {status})"
        )

        events = [make_event(PAYMENT_CREATED, group_room(bill.group_id), payment)]
        events.extend(
            make_event(NOTIFICATION_NEW, user_room(n.user_id), n) for n in notifications
        )
        self.events.publish(events)
        return payment
