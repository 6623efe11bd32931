"""Recurring bill templates and the generation of due bills."""

import logging
from datetime import date

from dateutil.relativedelta import relativedelta

from ..db import Database
from ..events import EventBus
from ..exceptions import NotFoundError, ValidationError
from ..models import (
    Bill,
    Event,
    Frequency,
    GenerationResult,
    RecurringBill,
    RecurringBillCreate,
    RecurringCreated,
    RecurringShare,
)
from .allocation import allocate_shares
from .bills import bill_created_events, materialize_bill
from .rules import (
    check_bill_fields,
    clean_text,
    ensure_active_members,
    require_active_member,
    require_environment,
    require_group,
    resolve_receiver,
)

logger = logging.getLogger(__name__)

_PERIODS: dict[str, relativedelta] = {
    "WEEKLY": relativedelta(weeks=1),
    "MONTHLY": relativedelta(months=1),
    "YEARLY": relativedelta(years=1),
}


def next_due_date(current: date, frequency: Frequency) -> date:
    """
    Advance a due date by one period.

    Months and years are calendar steps; when the day does not exist in the
    target month it is clamped to the month's last day (2024-01-31 ->
    2024-02-29, 2024-02-29 -> 2025-02-28 yearly). Steps always start from the
    previous value, so 2024-02-29 -> 2024-03-29 monthly.
    """
    return current + _PERIODS[frequency]


def _bill_from_template(template: RecurringBill, due_date: date) -> Bill:
    return Bill(
        group_id=template.group_id,
        environment_id=template.environment_id,
        title=template.title,
        due_date=due_date,
        total_amount=template.total_amount,
        installments=1,
        pix_key=template.pix_key,
        payment_link=template.payment_link,
        attachment_url=template.attachment_url,
        owner_id=template.owner_id,
        receiver_id=template.receiver_id,
        receiver_name=template.receiver_name,
        category=template.category,
        recurring_bill_id=template.id,
    )


class RecurrenceEngine:
    """Maintains recurring templates and materializes the bills they schedule."""

    def __init__(self, database: Database, events: EventBus | None = None):
        """Initialize the recurrence engine."""
        self.db = database
        self.events = events or EventBus()

    def create_template(self, actor_id: int, data: RecurringBillCreate) -> RecurringCreated:
        """
        Create a recurring template, optionally with its first bill.

        The template's next due date starts one period after the first due
        date; the first bill (when requested) is dated at the first due date.
        Template and first bill are stored in one transaction.

        Raises:
            ValidationError, NotFoundError, ForbiddenError,
            InvalidAllocationError: Same rules as creating a bill
        """
        check_bill_fields(data.title, data.total_amount)
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

        # Validates percentages even when no bill is created now
        allocations = allocate_shares(data.total_amount, data.shares)

        template = RecurringBill(
            group_id=data.group_id,
            environment_id=data.environment_id,
            title=data.title.strip(),
            total_amount=data.total_amount,
            frequency=data.frequency,
            day_of_month=data.first_due_date.day,
            next_due_date=next_due_date(data.first_due_date, data.frequency),
            pix_key=clean_text(data.pix_key),
            payment_link=clean_text(data.payment_link),
            attachment_url=clean_text(data.attachment_url),
            owner_id=owner_id,
            receiver_id=receiver_id,
            receiver_name=receiver_name,
            category=clean_text(data.category),
            shares=[
                RecurringShare(user_id=s.user_id, percentage=s.percentage)
                for s in data.shares
            ],
        )

        first_bill: Bill | None = None
        events: list[Event] = []
        with self.db.transaction():
            template = self.db.insert_recurring_bill(template)
            if data.create_first_bill:
                first_bill, notifications = materialize_bill(
                    self.db,
                    _bill_from_template(template, data.first_due_date),
                    allocations,
                    actor_id,
                )
                events = bill_created_events(first_bill, notifications)

        logger.info(
            f"Created {template.frequency.lower()} template {template.id} "
            f"'{template.title}', next due {template.next_due_date}"
        )
        self.events.publish(events)
        return RecurringCreated(template=template, first_bill=first_bill)

    def generate_due(
        self,
        group_id: int | None = None,
        environment_id: int | None = None,
        as_of: date | None = None,
    ) -> GenerationResult:
        """
        Materialize one bill for every active template that is due.

        Each due template yields exactly one bill, dated at its current next
        due date, and its next due date moves forward by one period. Missed
        periods are not caught up within a single pass. A template whose bill
        for that date already exists is only advanced. The whole pass runs in
        one write transaction, so overlapping passes cannot materialize the
        same template and date twice.

        Args:
            group_id: Only templates of this group
            environment_id: Only templates of this environment
            as_of: Reference date, defaults to today

        Returns:
            Count and list of created bills
        """
        as_of = as_of or date.today()

        created: list[Bill] = []
        events: list[Event] = []
        with self.db.transaction():
            templates = self.db.find_due_recurring_bills(
                as_of, group_id=group_id, environment_id=environment_id
            )
            for template in templates:
                if template.id is None:
                    continue
                advanced = next_due_date(template.next_due_date, template.frequency)
                existing_id = self.db.find_recurring_bill_id(
                    template.id, template.next_due_date
                )
                if existing_id is not None:
                    logger.warning(
                        f"Template {template.id} already has bill {existing_id} due "
                        f"{template.next_due_date}, advancing to {advanced}"
                    )
                    self.db.set_recurring_next_due_date(template.id, advanced)
                    continue
                allocations = allocate_shares(template.total_amount, template.shares)
                bill, notifications = materialize_bill(
                    self.db,
                    _bill_from_template(template, template.next_due_date),
                    allocations,
                    actor_id=None,
                    activity_type="RECURRING_BILL_GENERATED",
                )
                self.db.set_recurring_next_due_date(template.id, advanced)
                created.append(bill)
                events.extend(bill_created_events(bill, notifications))

        if created:
            logger.info(f"Generated {len(created)} recurring bills as of {as_of}")
        else:
            logger.debug(f"No recurring bills due as of {as_of}")

        self.events.publish(events)
        return GenerationResult(count=len(created), bills=created)

    def toggle(self, template_id: int, active: bool, actor_id: int) -> RecurringBill:
        """
        Enable or disable a template for future generation passes.

        Bills already materialized are not affected.

        Raises:
            NotFoundError: Template missing
            ForbiddenError: Actor is not an active member of the template's group
        """
        template = self.db.get_recurring_bill(template_id)
        if template is None:
            raise NotFoundError("Recurring bill", template_id)
        require_active_member(self.db, template.group_id, actor_id)

        self.db.set_recurring_active(template_id, active)
        template.active = active

        logger.info(f"Template {template_id} {'enabled' if active else 'disabled'}")
        return template

    def list_templates(self, environment_id: int) -> list[RecurringBill]:
        """List an environment's templates, newest first."""
        return self.db.list_recurring_bills(environment_id)
