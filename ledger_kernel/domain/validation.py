"""
Entry validation -- pure checks run before anything touches the database.

Responsibility:
    Shape and balance checks for an EntryRequest.  JournalStore calls
    ``validate_entry_request`` first; account, cost-center and period checks
    that need I/O follow in the service.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Failure modes:
    - InvalidEntryError: fewer than two lines, non-int amounts, negative
      amounts, both or neither side set, invalid tax_base.
    - UnbalancedEntryError: total debits != total credits.
"""

from __future__ import annotations

from typing import Any

from ledger_kernel.domain.dtos import EntryRequest
from ledger_kernel.exceptions import InvalidEntryError, UnbalancedEntryError

MIN_LINES = 2


def _is_amount(value: Any) -> bool:
    # bool is an int subclass; reject it along with float/Decimal
    return isinstance(value, int) and not isinstance(value, bool)


def validate_entry_request(request: EntryRequest) -> None:
    """
    Validate line shape and double-entry balance.

    Postconditions:
        - Every line has exactly one positive integer side.
        - ``request.total_debit == request.total_credit``.
    """
    if len(request.lines) < MIN_LINES:
        raise InvalidEntryError(f"entry requires at least {MIN_LINES} lines")
    if not request.description or not request.description.strip():
        raise InvalidEntryError("description is required")
    if not request.source_type:
        raise InvalidEntryError("source_type is required")

    for index, line in enumerate(request.lines):
        if not _is_amount(line.debit) or not _is_amount(line.credit):
            raise InvalidEntryError(
                "amounts must be integers in minor currency units", index
            )
        if line.debit < 0 or line.credit < 0:
            raise InvalidEntryError("amounts must be non-negative", index)
        if (line.debit > 0) == (line.credit > 0):
            raise InvalidEntryError(
                "exactly one of debit/credit must be non-zero", index
            )
        if line.tax_base is not None and (
            not _is_amount(line.tax_base) or line.tax_base < 0
        ):
            raise InvalidEntryError("tax_base must be a non-negative integer", index)

    if request.total_debit != request.total_credit:
        raise UnbalancedEntryError(request.total_debit, request.total_credit)
