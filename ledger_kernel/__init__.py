"""
Ledger Kernel - multi-tenant double-entry accounting core.

A tenant-scoped, append-only journal with:
- Balanced posting with gapless per-tenant entry numbers
- Deterministic ledger projection (opening, movements, running balance)
- Fiscal period control with closing entries and balance snapshots
- Integer minor-unit arithmetic throughout
"""

__version__ = "0.1.0"
