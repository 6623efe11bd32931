"""house-split - Shared household bills split by percentage."""

__version__ = "0.1.0"

from .config import Settings, load_settings
from .db import Database
from .events import EventBus
from .ledger import (
    BalanceAggregator,
    BillManager,
    PaymentRecorder,
    RecurrenceEngine,
    allocate_shares,
)
from .models import (
    Bill,
    BillCreate,
    BillUpdate,
    DateWindow,
    RecurringBillCreate,
    ShareInput,
)
from .service import LedgerService

__all__ = [
    "Settings",
    "load_settings",
    "Database",
    "EventBus",
    "BalanceAggregator",
    "BillManager",
    "PaymentRecorder",
    "RecurrenceEngine",
    "allocate_shares",
    "Bill",
    "BillCreate",
    "BillUpdate",
    "DateWindow",
    "RecurringBillCreate",
    "ShareInput",
    "LedgerService",
]
