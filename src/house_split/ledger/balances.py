"""Read-only balance computations over pending shares."""

import logging
from decimal import Decimal

from ..db import Database
from ..exceptions import ForbiddenError
from ..models import (
    BalanceSummary,
    BillFilter,
    CategoryTotal,
    DateWindow,
    DebtLine,
    GroupSummary,
    MemberSummary,
)
from .rules import require_environment, require_group

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class BalanceAggregator:
    """Computes who owes what for a person, group or environment.

    Person-level queries look at the non-archived bills of every live group
    where the viewer is an active member. Nothing here writes to the database.
    """

    def __init__(self, database: Database, uncategorized_label: str = "Uncategorized"):
        """Initialize the balance aggregator."""
        self.db = database
        self.uncategorized_label = uncategorized_label

    def _person_filter(
        self,
        viewer_id: int,
        window: DateWindow | None,
        group_id: int | None,
        environment_id: int | None,
    ) -> BillFilter:
        """
        Build the bill population visible to a viewer.

        Raises:
            ForbiddenError: group_id is not one of the viewer's live groups
        """
        group_ids = self.db.get_active_group_ids(viewer_id)
        if group_id is not None:
            if group_id not in group_ids:
                raise ForbiddenError(
                    f"User {viewer_id} is not an active member of group {group_id}"
                )
            group_ids = [group_id]

        if not group_ids:
            logger.debug(f"User {viewer_id} has no active groups, empty balance scope")

        return BillFilter(group_ids=group_ids, environment_id=environment_id, window=window)

    def _category_label(self, category: str | None) -> str:
        if category is None or not category.strip():
            return self.uncategorized_label
        return category.strip()

    def total_to_pay(self, person_id: int, bill_filter: BillFilter) -> Decimal:
        """Sum of the person's pending share amounts."""
        debts = self.db.find_pending_debts(person_id, bill_filter)
        return sum((debt.share_amount for debt in debts), ZERO)

    def total_to_receive(self, person_id: int, bill_filter: BillFilter) -> Decimal:
        """Sum of other members' pending shares on bills the person receives."""
        shares = self.db.find_receivable_shares(person_id, bill_filter)
        return sum((share.amount for share in shares), ZERO)

    def _balance(self, person_id: int, bill_filter: BillFilter) -> BalanceSummary:
        to_pay = self.total_to_pay(person_id, bill_filter)
        to_receive = self.total_to_receive(person_id, bill_filter)
        return BalanceSummary(
            total_to_pay=to_pay,
            total_to_receive=to_receive,
            net_balance=to_receive - to_pay,
        )

    def _breakdown(self, person_id: int, bill_filter: BillFilter) -> list[CategoryTotal]:
        totals: dict[str, Decimal] = {}
        for debt in self.db.find_pending_debts(person_id, bill_filter):
            label = self._category_label(debt.category)
            totals[label] = totals.get(label, ZERO) + debt.share_amount
        return [CategoryTotal(category=name, amount=amount) for name, amount in totals.items()]

    def summary(
        self,
        viewer_id: int,
        person_id: int | None = None,
        window: DateWindow | None = None,
        group_id: int | None = None,
        environment_id: int | None = None,
    ) -> BalanceSummary:
        """
        Get what a person owes, is owed and the net balance.

        Args:
            viewer_id: User whose groups define the bill population
            person_id: Person to compute for, defaults to the viewer
            window: Optional due-date month
            group_id: Optional group filter
            environment_id: Optional environment filter

        Returns:
            Totals, all zero when the viewer belongs to no group
        """
        bill_filter = self._person_filter(viewer_id, window, group_id, environment_id)
        person = person_id if person_id is not None else viewer_id

        result = self._balance(person, bill_filter)
        logger.debug(
            f"Balance for user {person}: pay {result.total_to_pay}, "
            f"receive {result.total_to_receive}"
        )
        return result

    def category_breakdown(
        self,
        viewer_id: int,
        person_id: int | None = None,
        window: DateWindow | None = None,
        group_id: int | None = None,
        environment_id: int | None = None,
    ) -> list[CategoryTotal]:
        """
        Group what a person owes by bill category.

        Bills without a category land in the uncategorized bucket. Categories
        appear in the order they are first met by due date.
        """
        bill_filter = self._person_filter(viewer_id, window, group_id, environment_id)
        person = person_id if person_id is not None else viewer_id
        return self._breakdown(person, bill_filter)

    def debts(
        self,
        viewer_id: int,
        person_id: int | None = None,
        window: DateWindow | None = None,
        group_id: int | None = None,
        environment_id: int | None = None,
        category: str | None = None,
    ) -> list[DebtLine]:
        """
        List a person's pending shares with display data.

        Ordered by due date, then by share creation. ``category`` matches the
        labels produced by ``category_breakdown``, the uncategorized bucket
        included.
        """
        bill_filter = self._person_filter(viewer_id, window, group_id, environment_id)
        person = person_id if person_id is not None else viewer_id

        debts = self.db.find_pending_debts(person, bill_filter)
        if category is not None:
            wanted = self._category_label(category)
            debts = [d for d in debts if self._category_label(d.category) == wanted]
        return debts

    def group_member_summary(
        self,
        group_id: int,
        environment_id: int | None = None,
        window: DateWindow | None = None,
    ) -> GroupSummary:
        """
        Compute balances for every active member of a group or environment.

        A group-level summary covers every bill of the group; an
        environment-level summary covers only that environment's bills.

        Raises:
            NotFoundError: Group missing or archived, or environment not in it
        """
        require_group(self.db, group_id)
        if environment_id is not None:
            require_environment(self.db, group_id, environment_id)
            bill_filter = BillFilter(environment_id=environment_id, window=window)
        else:
            bill_filter = BillFilter(group_ids=[group_id], window=window)

        members = []
        for member in self.db.list_members(group_id):
            user = self.db.get_user(member.user_id)
            balance = self._balance(member.user_id, bill_filter)
            members.append(
                MemberSummary(
                    user_id=member.user_id,
                    name=user.name if user else f"User {member.user_id}",
                    total_to_pay=balance.total_to_pay,
                    total_to_receive=balance.total_to_receive,
                    net_balance=balance.net_balance,
                    categories=self._breakdown(member.user_id, bill_filter),
                )
            )

        return GroupSummary(
            group_id=group_id, environment_id=environment_id, members=members
        )
