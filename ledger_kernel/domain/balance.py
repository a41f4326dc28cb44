"""
Balance arithmetic -- sign conventions and the running-balance fold.

Responsibility:
    The single definition of how an account type maps to a normal balance
    side and how a debit/credit pair turns into a signed movement.  Every
    projector, report and closing computation goes through these functions.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - DEBIT-normal: ASSET, EXPENSE.  CREDIT-normal: LIABILITY, EQUITY, REVENUE.
    - Integer arithmetic only.  Amounts are minor currency units.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING
from uuid import UUID

from ledger_kernel.models.account import AccountType, NormalBalance

if TYPE_CHECKING:
    from ledger_kernel.domain.dtos import AccountInfo

_DEBIT_NORMAL = frozenset({AccountType.ASSET, AccountType.EXPENSE})


def normal_balance(account_type: AccountType | str) -> NormalBalance:
    """Normal balance side for an account type."""
    if AccountType(account_type) in _DEBIT_NORMAL:
        return NormalBalance.DEBIT
    return NormalBalance.CREDIT


def signed_amount(debit: int, credit: int, side: NormalBalance) -> int:
    """Movement expressed on the account's normal side.

    ``debit - credit`` for DEBIT-normal accounts, ``credit - debit``
    otherwise.  Positive means the balance grows.
    """
    if side == NormalBalance.DEBIT:
        return debit - credit
    return credit - debit


def natural_balance(debit_total: int, credit_total: int, side: NormalBalance) -> int:
    """Balance of aggregated totals on the normal side."""
    return signed_amount(debit_total, credit_total, side)


def fold_running_balance(
    opening_balance: int,
    side: NormalBalance,
    movements: Iterable[tuple[int, int]],
) -> list[int]:
    """
    Running balance after each ordered (debit, credit) movement.

    Preconditions:
        - ``movements`` is already in (date, entry_number, line_seq) order.
    Postconditions:
        - ``len(result) == len(movements)``.
        - ``result[-1]`` is the closing balance when movements exist.
    """
    running = opening_balance
    balances: list[int] = []
    for debit, credit in movements:
        running += signed_amount(debit, credit, side)
        balances.append(running)
    return balances


def trial_balance_sides(
    accounts: Iterable[AccountInfo], balances: Mapping[UUID, int]
) -> tuple[int, int]:
    """
    (sum of DEBIT-normal balances, sum of CREDIT-normal balances).

    The two are equal for any ledger built only from balanced entries.
    """
    debit_side = 0
    credit_side = 0
    for account in accounts:
        amount = balances.get(account.account_id, 0)
        if normal_balance(account.account_type) == NormalBalance.DEBIT:
            debit_side += amount
        else:
            credit_side += amount
    return debit_side, credit_side
