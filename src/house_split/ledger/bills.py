"""Bill lifecycle: creation, editing, archiving and listing."""

import logging
from typing import Any

from ..db import Database
from ..events import (
    BILL_CREATED,
    NOTIFICATION_NEW,
    EventBus,
    group_room,
    make_event,
    user_room,
)
from ..exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ..models import (
    Activity,
    Bill,
    BillCreate,
    BillStatus,
    BillUpdate,
    DateWindow,
    Event,
    Notification,
    Payment,
    ShareAllocation,
    ShareInput,
)
from .allocation import allocate_shares, allocation_residual
from .rules import (
    check_bill_fields,
    clean_text,
    ensure_active_members,
    is_group_admin,
    require_active_member,
    require_environment,
    require_group,
    resolve_receiver,
)

logger = logging.getLogger(__name__)


def materialize_bill(
    db: Database,
    bill: Bill,
    allocations: list[ShareAllocation],
    actor_id: int | None,
    activity_type: str = "BILL_CREATED",
) -> tuple[Bill, list[Notification]]:
    """
    Persist a bill with its shares, history entry and member notifications.

    Must run inside a transaction so the bill never exists without its shares.

    Returns:
        Tuple of (stored bill with shares, notifications written)
    """
    bill_id = db.insert_bill(bill)

    residual = allocation_residual(bill.total_amount, allocations)
    if residual:
        logger.debug(f"Bill {bill_id} shares differ from total by {residual}")

    db.insert_shares(bill_id, allocations)
    db.insert_activity(
        Activity(
            group_id=bill.group_id,
            user_id=actor_id,
            type=activity_type,
            description=f'Bill "{bill.title}" created',
        )
    )

    notifications = [
        db.insert_notification(
            Notification(
                user_id=allocation.user_id,
                title="New bill",
                message=(
                    f'Your share of "{bill.title}" is {allocation.amount} '
                    f"({allocation.percentage}%), due {bill.due_date.isoformat()}"
                ),
                type="BILL_CREATED",
            )
        )
        for allocation in allocations
    ]

    stored = db.get_bill(bill_id)
    if stored is None:
        raise RuntimeError(f"Bill {bill_id} vanished after insert")
    return stored, notifications


def bill_created_events(bill: Bill, notifications: list[Notification]) -> list[Event]:
    """Events announcing a new bill to its group and its participants."""
    events = [make_event(BILL_CREATED, group_room(bill.group_id), bill)]
    events.extend(
        make_event(NOTIFICATION_NEW, user_room(n.user_id), n) for n in notifications
    )
    return events


class BillManager:
    """Creates, edits, archives and lists bills."""

    def __init__(self, database: Database, events: EventBus | None = None):
        """Initialize the bill manager."""
        self.db = database
        self.events = events or EventBus()

    def create_bill(self, actor_id: int, data: BillCreate) -> Bill:
        """
        Create a bill and its shares atomically.

        Args:
            actor_id: The user creating the bill (must be an active member)
            data: Bill fields and the (member, percentage) share set

        Returns:
            The stored bill with its shares

        Raises:
            ValidationError: Missing/invalid field, unknown receiver or
                participant who is not an active member
            NotFoundError: Group or environment missing, archived or unrelated
            ForbiddenError: Actor is not an active member of the group
            InvalidAllocationError: Percentages don't add up to 100
        """
        check_bill_fields(data.title, data.total_amount, data.installments)
        if not data.shares:
            raise ValidationError("At least one share is required")

        require_group(self.db, data.group_id)
        require_environment(self.db, data.group_id, data.environment_id)
        require_active_member(self.db, data.group_id, actor_id)

        owner_id = data.owner_id if data.owner_id is not None else actor_id
        ensure_active_members(self.db, data.group_id, [owner_id], "Bill owner")
        ensure_active_members(
            self.db, data.group_id, [s.user_id for s in data.shares], "Participant"
        )
        receiver_id, receiver_name = resolve_receiver(
            self.db, data.group_id, data.receiver_id, data.receiver_name
        )

        allocations = allocate_shares(data.total_amount, data.shares)

        bill = Bill(
            group_id=data.group_id,
            environment_id=data.environment_id,
            title=data.title.strip(),
            due_date=data.due_date,
            total_amount=data.total_amount,
            installments=data.installments,
            pix_key=clean_text(data.pix_key),
            payment_link=clean_text(data.payment_link),
            attachment_url=clean_text(data.attachment_url),
            owner_id=owner_id,
            receiver_id=receiver_id,
            receiver_name=receiver_name,
            category=clean_text(data.category),
        )

        with self.db.transaction():
            bill, notifications = materialize_bill(self.db, bill, allocations, actor_id)

        logger.info(
            f"Created bill {bill.id} '{bill.title}' for {bill.total_amount} "
            f"split {len(bill.shares)} ways"
        )
        self.events.publish(bill_created_events(bill, notifications))
        return bill

    def get_bill(self, bill_id: int) -> Bill:
        """Get a live (non-archived) bill or raise NotFoundError."""
        bill = self.db.get_bill(bill_id)
        if bill is None or bill.archived:
            raise NotFoundError("Bill", bill_id)
        return bill

    def update_bill(self, bill_id: int, actor_id: int, changes: BillUpdate) -> Bill:
        """
        Apply a partial update to an open bill.

        Only fields set on ``changes`` are touched. A new share set replaces
        the old one wholesale; a new total without a share set re-derives the
        existing shares from their stored percentages. Bill fields and shares
        commit together or not at all.

        Raises:
            NotFoundError: Bill missing or archived
            ForbiddenError: Actor is neither the owner nor a group admin
            InvalidStateError: Bill is no longer OPEN
            ValidationError: An updated field is invalid
            InvalidAllocationError: New percentages don't add up to 100
        """
        bill = self.get_bill(bill_id)

        if bill.owner_id != actor_id and not is_group_admin(
            self.db, bill.group_id, actor_id
        ):
            raise ForbiddenError("Only the bill owner or a group admin can edit it")

        if bill.status != "OPEN":
            raise InvalidStateError(
                f"Only open bills can be edited (bill {bill_id} is {bill.status})"
            )

        fields = self._collect_fields(bill, changes)
        total_amount = fields.get("total_amount", bill.total_amount)

        new_allocations: list[ShareAllocation] | None = None
        rederived: list[tuple[int, ShareAllocation]] = []
        if changes.shares is not None:
            ensure_active_members(
                self.db,
                bill.group_id,
                [s.user_id for s in changes.shares],
                "Participant",
            )
            new_allocations = allocate_shares(total_amount, changes.shares)
        elif "total_amount" in fields:
            current = [
                ShareInput(user_id=s.user_id, percentage=s.percentage)
                for s in bill.shares
            ]
            allocations = allocate_shares(total_amount, current)
            rederived = [
                (share.id, allocation)
                for share, allocation in zip(bill.shares, allocations, strict=True)
                if share.id is not None
            ]

        with self.db.transaction():
            if fields:
                self.db.update_bill(bill_id, fields)
            if new_allocations is not None:
                self.db.delete_shares(bill_id)
                self.db.insert_shares(bill_id, new_allocations)
            for share_id, allocation in rederived:
                self.db.update_share_amount(share_id, allocation.amount)
            self.db.insert_activity(
                Activity(
                    group_id=bill.group_id,
                    user_id=actor_id,
                    type="BILL_UPDATED",
                    description=f'Bill "{fields.get("title", bill.title)}" updated',
                )
            )

        logger.info(
            f"Updated bill {bill_id}: {sorted(fields) or 'no fields'}"
            f"{', shares replaced' if new_allocations is not None else ''}"
        )
        return self.get_bill(bill_id)

    def _collect_fields(self, bill: Bill, changes: BillUpdate) -> dict[str, Any]:
        """Validate the explicitly set fields and return the column values."""
        fields = {
            name: getattr(changes, name)
            for name in changes.model_fields_set
            if name != "shares"
        }

        if "title" in fields:
            title = fields["title"]
            if title is None or not title.strip():
                raise ValidationError("Title cannot be blank")
            fields["title"] = title.strip()
        if "due_date" in fields and fields["due_date"] is None:
            raise ValidationError("Due date cannot be removed")
        if "due_date" in fields and bill.recurring_bill_id is not None:
            existing_id = self.db.find_recurring_bill_id(
                bill.recurring_bill_id, fields["due_date"]
            )
            if existing_id is not None and existing_id != bill.id:
                raise ValidationError(
                    f"Bill {existing_id} of the same recurring bill is already due "
                    f"{fields['due_date']}"
                )
        if "total_amount" in fields:
            total = fields["total_amount"]
            if total is None or total <= 0:
                raise ValidationError("Total amount must be greater than zero")
        if "installments" in fields:
            installments = fields["installments"]
            if installments is None or installments < 1:
                raise ValidationError("Installments must be at least 1")
        if "owner_id" in fields:
            if fields["owner_id"] is None:
                raise ValidationError("A bill must have an owner")
            ensure_active_members(self.db, bill.group_id, [fields["owner_id"]], "Bill owner")
        for name in ("pix_key", "payment_link", "attachment_url", "category"):
            if name in fields:
                fields[name] = clean_text(fields[name])

        if "receiver_id" in fields or "receiver_name" in fields:
            receiver_id = fields.get("receiver_id", bill.receiver_id)
            receiver_name = clean_text(fields.get("receiver_name", bill.receiver_name))
            if "receiver_id" not in fields and receiver_name is not None:
                # A new name replaces the linked receiver
                receiver_id = None
            if receiver_id is None and receiver_name is None:
                raise ValidationError("A receiver or a receiver name is required")
            fields["receiver_id"], fields["receiver_name"] = resolve_receiver(
                self.db, bill.group_id, receiver_id, receiver_name
            )

        return fields

    def archive_bill(self, bill_id: int, actor_id: int) -> None:
        """
        Hide a bill from listings and balances, keeping its payment history.

        Raises:
            NotFoundError: Bill missing or already archived
            ForbiddenError: Actor is not the bill owner
        """
        bill = self.get_bill(bill_id)
        if bill.owner_id != actor_id:
            raise ForbiddenError("Only the bill owner can archive it")

        with self.db.transaction():
            self.db.set_bill_archived(bill_id)
            self.db.insert_activity(
                Activity(
                    group_id=bill.group_id,
                    user_id=actor_id,
                    type="BILL_ARCHIVED",
                    description=f'Bill "{bill.title}" archived',
                )
            )

        logger.info(f"Archived bill {bill_id}")

    def list_bills(
        self,
        environment_id: int,
        window: DateWindow | None = None,
        status: BillStatus | None = None,
    ) -> list[Bill]:
        """
        List an environment's live bills ordered by due date.

        Args:
            environment_id: Environment to list
            window: Optional month; bills due in [first day, first day of next month)
            status: Optional status filter

        Returns:
            Bills with their shares
        """
        bills = self.db.list_bills(environment_id, window=window, status=status)
        logger.debug(f"Listed {len(bills)} bills for environment {environment_id}")
        return bills

    def list_payments(self, bill_id: int) -> list[Payment]:
        """Get the payment log of a bill (archived bills included)."""
        if self.db.get_bill(bill_id) is None:
            raise NotFoundError("Bill", bill_id)
        return self.db.list_payments(bill_id)
