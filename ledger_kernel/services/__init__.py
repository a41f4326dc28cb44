"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.chart_of_accounts import AccountSeed, ChartOfAccountsService
from ledger_kernel.services.cost_center_service import CostCenterService
from ledger_kernel.services.journal_store import JournalStore
from ledger_kernel.services.period_closer import CloseResult, PeriodCloser
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.sequence_service import SequenceService, journal_sequence_name

__all__ = [
    "AccountSeed",
    "ChartOfAccountsService",
    "CloseResult",
    "CostCenterService",
    "JournalStore",
    "PeriodCloser",
    "PeriodService",
    "SequenceService",
    "journal_sequence_name",
]
