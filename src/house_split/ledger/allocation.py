"""Share allocation: turning bill percentages into monetary amounts."""

from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal

from ..exceptions import InvalidAllocationError
from ..models import RecurringShare, ShareAllocation, ShareInput

MINOR_UNIT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_minor_units(amount: Decimal) -> Decimal:
    """
    Round an amount to the currency's minor unit (2 decimal places).
    Uses ROUND_HALF_UP for consistency.

    Args:
        amount: Amount as Decimal

    Returns:
        Amount quantized to cents
    """
    return amount.quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)


def validate_percentages(shares: Sequence[ShareInput | RecurringShare]) -> None:
    """
    Check that a share set can divide a bill.

    The percentages must round (half up) to exactly 100, each must lie within
    0..100, and a member may appear only once.

    Raises:
        InvalidAllocationError: If any of the above does not hold
    """
    if not shares:
        raise InvalidAllocationError("A bill needs at least one share")

    seen: set[int] = set()
    for share in shares:
        if share.user_id in seen:
            raise InvalidAllocationError(
                f"User {share.user_id} appears more than once in the share set"
            )
        seen.add(share.user_id)
        if not Decimal("0") <= share.percentage <= HUNDRED:
            raise InvalidAllocationError(
                f"Percentage for user {share.user_id} must be between 0 and 100, "
                f"got {share.percentage}"
            )

    total = sum((share.percentage for share in shares), Decimal("0"))
    if total.quantize(Decimal("1"), rounding=ROUND_HALF_UP) != HUNDRED:
        raise InvalidAllocationError(
            f"Share percentages must add up to 100%, got {total}%"
        )


def allocate_shares(
    total_amount: Decimal, shares: Sequence[ShareInput | RecurringShare]
) -> list[ShareAllocation]:
    """
    Derive each member's amount from the bill total.

    Each amount is rounded independently to cents. The rounded amounts are not
    forced to add up to the total: a residual of up to one cent per share is
    left as is (see ``allocation_residual``).

    Args:
        total_amount: Bill total
        shares: (member, percentage) pairs

    Returns:
        One allocation per share, in input order

    Raises:
        InvalidAllocationError: If the percentages are not a valid split
    """
    validate_percentages(shares)

    return [
        ShareAllocation(
            user_id=share.user_id,
            percentage=share.percentage,
            amount=to_minor_units(total_amount * share.percentage / HUNDRED),
        )
        for share in shares
    ]


def allocation_residual(
    total_amount: Decimal, allocations: Sequence[ShareAllocation]
) -> Decimal:
    """Difference between the bill total and the sum of its rounded shares."""
    return total_amount - sum((a.amount for a in allocations), Decimal("0"))
