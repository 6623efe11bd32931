"""Core ledger: share allocation, bills, payments, recurrence and balances."""

from .allocation import allocate_shares, allocation_residual, validate_percentages
from .balances import BalanceAggregator
from .bills import BillManager
from .payments import PaymentRecorder, next_bill_status
from .recurrence import RecurrenceEngine, next_due_date

__all__ = [
    "allocate_shares",
    "allocation_residual",
    "validate_percentages",
    "BalanceAggregator",
    "BillManager",
    "PaymentRecorder",
    "next_bill_status",
    "RecurrenceEngine",
    "next_due_date",
]
