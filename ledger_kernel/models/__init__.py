"""Domain models for the ledger kernel."""

from ledger_kernel.models.account import Account, AccountTag, AccountType, NormalBalance
from ledger_kernel.models.cost_center import CostCenter
from ledger_kernel.models.fiscal_period import FiscalPeriod, PeriodStatus
from ledger_kernel.models.journal import EntryKind, JournalEntry, JournalLine
from ledger_kernel.models.period_balance import AccountPeriodBalance
from ledger_kernel.models.sequence import SequenceCounter

__all__ = [
    "Account",
    "AccountTag",
    "AccountType",
    "NormalBalance",
    "CostCenter",
    "FiscalPeriod",
    "PeriodStatus",
    "EntryKind",
    "JournalEntry",
    "JournalLine",
    "AccountPeriodBalance",
    "SequenceCounter",
]
