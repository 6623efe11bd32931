"""Pydantic domain models for house-split."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, Field

Role = Literal["ADMIN", "MEMBER"]
BillStatus = Literal["OPEN", "PARTIALLY_PAID", "PAID"]
ShareStatus = Literal["PENDING", "PAID"]
PaymentStatus = Literal["PENDING", "COMPLETED", "CANCELLED"]
Frequency = Literal["WEEKLY", "MONTHLY", "YEARLY"]

# ============================================================================
# Directory Models
# ============================================================================


class User(BaseModel):
    """A registered person. Identity itself is managed outside the ledger."""

    id: int | None = None
    name: str
    email: str
    created_at: datetime = Field(default_factory=datetime.now)


class Group(BaseModel):
    """A set of people sharing expenses (roommates, family)."""

    id: int | None = None
    name: str
    description: str | None = None
    owner_id: int
    archived: bool = False
    created_at: datetime = Field(default_factory=datetime.now)


class Member(BaseModel):
    """Membership of a user in a group. Leaving deactivates, never deletes."""

    id: int | None = None
    group_id: int
    user_id: int
    role: Role = "MEMBER"
    active: bool = True
    created_at: datetime = Field(default_factory=datetime.now)


class Environment(BaseModel):
    """A sub-scope of a group (e.g. a household) that bills belong to."""

    id: int | None = None
    group_id: int
    name: str
    description: str | None = None
    archived: bool = False
    created_at: datetime = Field(default_factory=datetime.now)


class Category(BaseModel):
    """A reporting label, unique per (group, name)."""

    id: int | None = None
    group_id: int
    name: str
    archived: bool = False
    created_at: datetime = Field(default_factory=datetime.now)


# ============================================================================
# Ledger Models
# ============================================================================


class ShareInput(BaseModel):
    """A member's requested percentage of a bill."""

    user_id: int
    percentage: Decimal


class Share(BaseModel):
    """One member's percentage-derived portion of a bill."""

    id: int | None = None
    bill_id: int | None = None
    user_id: int
    percentage: Decimal
    amount: Decimal
    status: ShareStatus = "PENDING"
    created_at: datetime = Field(default_factory=datetime.now)


class Bill(BaseModel):
    """A single shared expense with a due date and percentage shares.

    due_date is a plain calendar date, so it never shifts across time zones.
    recurring_bill_id points back to the template that spawned the bill, if any.
    """

    id: int | None = None
    group_id: int
    environment_id: int
    title: str
    due_date: date
    total_amount: Decimal
    installments: int = 1
    pix_key: str | None = None
    payment_link: str | None = None
    attachment_url: str | None = None
    owner_id: int
    receiver_id: int | None = None
    receiver_name: str | None = None
    category: str | None = None
    status: BillStatus = "OPEN"
    archived: bool = False
    recurring_bill_id: int | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    shares: list[Share] = Field(default_factory=list)

    def share_for(self, user_id: int) -> Share | None:
        """Get the share belonging to a user, if they participate."""
        for share in self.shares:
            if share.user_id == user_id:
                return share
        return None


class Payment(BaseModel):
    """An append-only record of a transfer towards a bill's receiver."""

    id: int | None = None
    bill_id: int
    from_user_id: int
    to_user_id: int
    amount: Decimal
    method: str | None = None
    status: PaymentStatus = "COMPLETED"
    paid_at: datetime = Field(default_factory=datetime.now)


class RecurringShare(BaseModel):
    """A template percentage; amounts are derived when a bill is materialized."""

    id: int | None = None
    recurring_bill_id: int | None = None
    user_id: int
    percentage: Decimal


class RecurringBill(BaseModel):
    """A template that periodically materializes concrete bills."""

    id: int | None = None
    group_id: int
    environment_id: int
    title: str
    total_amount: Decimal
    frequency: Frequency
    day_of_month: int
    next_due_date: date
    pix_key: str | None = None
    payment_link: str | None = None
    attachment_url: str | None = None
    owner_id: int
    receiver_id: int | None = None
    receiver_name: str | None = None
    category: str | None = None
    active: bool = True
    created_at: datetime = Field(default_factory=datetime.now)
    shares: list[RecurringShare] = Field(default_factory=list)


class Activity(BaseModel):
    """An append-only history entry for display."""

    id: int | None = None
    group_id: int
    user_id: int | None = None
    type: str
    description: str
    created_at: datetime = Field(default_factory=datetime.now)


class Notification(BaseModel):
    """A per-user inbox entry."""

    id: int | None = None
    user_id: int
    title: str
    message: str
    type: str
    read: bool = False
    read_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.now)


# ============================================================================
# Operation Inputs
# ============================================================================


class BillCreate(BaseModel):
    """Input for creating a bill. owner_id defaults to the acting user."""

    group_id: int
    environment_id: int
    title: str
    due_date: date
    total_amount: Decimal
    installments: int = 1
    pix_key: str | None = None
    payment_link: str | None = None
    attachment_url: str | None = None
    owner_id: int | None = None
    receiver_id: int | None = None
    receiver_name: str | None = None
    category: str | None = None
    shares: list[ShareInput] = Field(default_factory=list)


class BillUpdate(BaseModel):
    """Partial bill update.

    Only fields explicitly set are applied (see ``model_fields_set``), so a
    nullable field can be cleared by setting it to None. A shares list, when
    set, replaces the whole share set.
    """

    title: str | None = None
    due_date: date | None = None
    total_amount: Decimal | None = None
    installments: int | None = None
    pix_key: str | None = None
    payment_link: str | None = None
    attachment_url: str | None = None
    owner_id: int | None = None
    receiver_id: int | None = None
    receiver_name: str | None = None
    category: str | None = None
    shares: list[ShareInput] | None = None


class RecurringBillCreate(BaseModel):
    """Input for creating a recurring template."""

    group_id: int
    environment_id: int
    title: str
    total_amount: Decimal
    frequency: Frequency = "MONTHLY"
    first_due_date: date
    pix_key: str | None = None
    payment_link: str | None = None
    attachment_url: str | None = None
    owner_id: int | None = None
    receiver_id: int | None = None
    receiver_name: str | None = None
    category: str | None = None
    shares: list[ShareInput] = Field(default_factory=list)
    create_first_bill: bool = True


class DateWindow(BaseModel):
    """A calendar month used to filter bills by due date."""

    month: int = Field(ge=1, le=12)
    year: int = Field(ge=1, le=9999)

    @property
    def start(self) -> date:
        """First day of the month (inclusive)."""
        return date(self.year, self.month, 1)

    @property
    def end(self) -> date:
        """First day of the following month (exclusive)."""
        if self.month == 12:
            return date(self.year + 1, 1, 1)
        return date(self.year, self.month + 1, 1)


class BillFilter(BaseModel):
    """Selects the bill population for balance queries."""

    group_ids: list[int] | None = None
    environment_id: int | None = None
    window: DateWindow | None = None


# ============================================================================
# Operation Outputs
# ============================================================================


class ShareAllocation(BaseModel):
    """A derived share amount produced by the allocator."""

    user_id: int
    percentage: Decimal
    amount: Decimal


class BalanceSummary(BaseModel):
    """What a person owes, is owed, and the difference."""

    total_to_pay: Decimal = Decimal("0")
    total_to_receive: Decimal = Decimal("0")
    net_balance: Decimal = Decimal("0")


class CategoryTotal(BaseModel):
    """Pending amount owed within one category."""

    category: str
    amount: Decimal


class DebtLine(BaseModel):
    """A pending share enriched with display data."""

    share_id: int
    bill_id: int
    group_id: int
    group_name: str
    environment_id: int
    environment_name: str
    title: str
    category: str | None = None
    due_date: date
    total_amount: Decimal
    share_amount: Decimal
    share_percentage: Decimal
    payer_user_id: int
    payer_name: str
    receiver_user_id: int | None = None
    receiver_user_name: str | None = None
    receiver_name: str | None = None
    owner_user_id: int
    owner_user_name: str | None = None


class MemberSummary(BalanceSummary):
    """Balance figures for one member of a group or environment."""

    user_id: int
    name: str
    categories: list[CategoryTotal] = Field(default_factory=list)


class GroupSummary(BaseModel):
    """Who owes whom within a group or environment."""

    group_id: int
    environment_id: int | None = None
    members: list[MemberSummary] = Field(default_factory=list)


class RecurringCreated(BaseModel):
    """Result of creating a recurring template."""

    template: RecurringBill
    first_bill: Bill | None = None


class GenerationResult(BaseModel):
    """Result of a recurrence generation pass."""

    count: int = 0
    bills: list[Bill] = Field(default_factory=list)


class Event(BaseModel):
    """An outbound event for the notification layer.

    room is ``group:<id>`` for group-addressed events and ``user:<id>`` for
    user-addressed ones; payload is the created entity.
    """

    name: str
    room: str
    payload: dict[str, Any]
