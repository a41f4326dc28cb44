"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable data structures that cross the kernel boundary: posting
    requests from business modules (EntryRequest, LineRequest), the posting
    result (PostedEntry), read-side snapshots of accounts, cost centers and
    periods, and the projector output (LedgerMovement, AccountLedger).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    ``from_model()`` class methods are boundary converters invoked only from
    services and selectors.

Invariants enforced:
    - Domain logic and reports accept/return DTOs, never ORM entities.
    - All monetary fields are ``int`` minor units.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from ledger_kernel.models.account import AccountType, NormalBalance
from ledger_kernel.models.fiscal_period import PeriodStatus
from ledger_kernel.models.journal import EntryKind, format_entry_reference

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account as AccountModel
    from ledger_kernel.models.cost_center import CostCenter as CostCenterModel
    from ledger_kernel.models.fiscal_period import FiscalPeriod as FiscalPeriodModel
    from ledger_kernel.models.journal import JournalEntry as JournalEntryModel


# =============================================================================
# Posting input
# =============================================================================


@dataclass(frozen=True)
class LineRequest:
    """
    One requested journal line.

    Exactly one of ``debit``/``credit`` must be non-zero; both are
    non-negative integers in minor currency units.
    """

    account_id: UUID
    debit: int = 0
    credit: int = 0
    cost_center_id: UUID | None = None
    memo: str | None = None
    tax_base: int | None = None

    @classmethod
    def dr(cls, account_id: UUID, amount: int, **kwargs) -> LineRequest:
        return cls(account_id=account_id, debit=amount, credit=0, **kwargs)

    @classmethod
    def cr(cls, account_id: UUID, amount: int, **kwargs) -> LineRequest:
        return cls(account_id=account_id, debit=0, credit=amount, **kwargs)


@dataclass(frozen=True)
class EntryRequest:
    """
    A journal entry as submitted by a business module.

    ``kind`` ADJUSTING or REVERSAL is how a caller explicitly targets a
    closed period.  CLOSING is reserved for PeriodCloser.
    """

    entry_date: date
    description: str
    source_type: str
    lines: tuple[LineRequest, ...]
    source_id: str | None = None
    counterparty_id: str | None = None
    kind: EntryKind = EntryKind.STANDARD

    @property
    def total_debit(self) -> int:
        return sum(line.debit for line in self.lines)

    @property
    def total_credit(self) -> int:
        return sum(line.credit for line in self.lines)


# =============================================================================
# Posting output
# =============================================================================


@dataclass(frozen=True)
class PostedLine:
    account_id: UUID
    debit: int
    credit: int
    line_seq: int
    cost_center_id: UUID | None = None
    memo: str | None = None
    tax_base: int | None = None


@dataclass(frozen=True)
class PostedEntry:
    """Immutable record of a persisted journal entry."""

    id: UUID
    tenant_id: UUID
    entry_number: int
    entry_date: date
    description: str
    source_type: str
    source_id: str | None
    counterparty_id: str | None
    kind: EntryKind
    posted_at: datetime
    lines: tuple[PostedLine, ...]
    reversal_of_id: UUID | None = None

    @property
    def reference(self) -> str:
        return format_entry_reference(self.entry_number)

    @property
    def total_debit(self) -> int:
        return sum(line.debit for line in self.lines)

    @property
    def total_credit(self) -> int:
        return sum(line.credit for line in self.lines)

    @classmethod
    def from_model(cls, model: JournalEntryModel) -> PostedEntry:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            entry_number=model.entry_number,
            entry_date=model.entry_date,
            description=model.description,
            source_type=model.source_type,
            source_id=model.source_id,
            counterparty_id=model.counterparty_id,
            kind=EntryKind(model.kind),
            posted_at=model.posted_at,
            reversal_of_id=model.reversal_of_id,
            lines=tuple(
                PostedLine(
                    account_id=line.account_id,
                    debit=line.debit,
                    credit=line.credit,
                    line_seq=line.line_seq,
                    cost_center_id=line.cost_center_id,
                    memo=line.memo,
                    tax_base=line.tax_base,
                )
                for line in sorted(model.lines, key=lambda ln: ln.line_seq)
            ),
        )


# =============================================================================
# Reference snapshots
# =============================================================================


@dataclass(frozen=True)
class AccountInfo:
    """
    Snapshot of account metadata.

    The bridge between the Account ORM model and pure code (projector fold,
    statement builders).
    """

    account_id: UUID
    code: str
    name: str
    account_type: AccountType
    parent_id: UUID | None = None
    is_active: bool = True
    tags: tuple[str, ...] = ()

    @property
    def normal_balance(self) -> NormalBalance:
        from ledger_kernel.domain.balance import normal_balance

        return normal_balance(self.account_type)

    @property
    def is_nominal(self) -> bool:
        return self.account_type in (AccountType.REVENUE, AccountType.EXPENSE)

    @classmethod
    def from_model(cls, model: AccountModel) -> AccountInfo:
        return cls(
            account_id=model.id,
            code=model.code,
            name=model.name,
            account_type=AccountType(model.account_type),
            parent_id=model.parent_id,
            is_active=model.is_active,
            tags=tuple(model.tags or ()),
        )


@dataclass(frozen=True)
class CostCenterInfo:
    cost_center_id: UUID
    code: str
    name: str
    parent_id: UUID | None = None
    is_active: bool = True
    description: str | None = None

    @classmethod
    def from_model(cls, model: CostCenterModel) -> CostCenterInfo:
        return cls(
            cost_center_id=model.id,
            code=model.code,
            name=model.name,
            parent_id=model.parent_id,
            is_active=model.is_active,
            description=model.description,
        )


@dataclass(frozen=True)
class FiscalPeriodInfo:
    """
    Pure domain representation of a fiscal period.

    Non-goals:
        - Does NOT enforce period locks (PeriodService does that).
    """

    id: UUID
    tenant_id: UUID
    period_code: str
    name: str
    start_date: date
    end_date: date
    status: PeriodStatus
    requires_reclose: bool = False
    closed_at: datetime | None = None
    ledger_hash: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status == PeriodStatus.OPEN

    @property
    def is_closed(self) -> bool:
        return self.status == PeriodStatus.CLOSED

    def contains_date(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date

    @classmethod
    def from_model(cls, model: FiscalPeriodModel) -> FiscalPeriodInfo:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            period_code=model.period_code,
            name=model.name,
            start_date=model.start_date,
            end_date=model.end_date,
            status=PeriodStatus(model.status),
            requires_reclose=model.requires_reclose,
            closed_at=model.closed_at,
            ledger_hash=model.ledger_hash,
        )


# =============================================================================
# Projection output
# =============================================================================


@dataclass(frozen=True)
class LedgerMovement:
    """One ordered line in an account's ledger with the balance after it."""

    entry_id: UUID
    entry_number: int
    entry_date: date
    description: str
    debit: int
    credit: int
    running_balance: int
    kind: EntryKind = EntryKind.STANDARD
    source_type: str | None = None
    source_id: str | None = None
    cost_center_id: UUID | None = None
    memo: str | None = None

    @property
    def entry_reference(self) -> str:
        return format_entry_reference(self.entry_number)


@dataclass(frozen=True)
class AccountLedger:
    """
    Projected ledger of one account over ``[date_from, date_to]``.

    Guarantees:
        - ``closing_balance == movements[-1].running_balance`` when movements
          exist, else ``closing_balance == opening_balance``.
    """

    account: AccountInfo
    date_from: date
    date_to: date
    opening_balance: int
    closing_balance: int
    total_debit: int = 0
    total_credit: int = 0
    movements: tuple[LedgerMovement, ...] = field(default_factory=tuple)

    @property
    def account_id(self) -> UUID:
        return self.account.account_id

    @property
    def net_change(self) -> int:
        return self.closing_balance - self.opening_balance

    @property
    def has_activity(self) -> bool:
        return bool(self.movements)
