"""Selectors for the ledger kernel (read side)."""

from ledger_kernel.selectors.journal_selector import (
    DebitCredit,
    JournalLineView,
    JournalSelector,
)
from ledger_kernel.selectors.ledger_projector import LedgerProjector

__all__ = [
    "DebitCredit",
    "JournalLineView",
    "JournalSelector",
    "LedgerProjector",
]
