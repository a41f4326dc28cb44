"""
Module: ledger_kernel.models.journal
Responsibility: ORM persistence for journal entries and journal lines -- the
    single source of financial truth in this system.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Entry numbers are unique per tenant (uq_journal_entry_tenant_number)
      and assigned from the locked per-tenant sequence row.
    - Each line carries exactly one non-zero side, as non-negative integer
      minor units (ck_journal_line_one_side).
    - Append-only: ORM listeners in db/immutability.py block UPDATE/DELETE on
      entries and lines once flushed.

Failure modes:
    - IntegrityError on duplicate (tenant_id, entry_number).
    - IntegrityError if a line violates the single-side check constraint.
    - ImmutabilityViolationError on UPDATE/DELETE of a posted entry or line.

Audit relevance:
    JournalEntry and JournalLine rows are the authoritative financial record.
    Every report is derived from them; corrections are new REVERSAL or
    ADJUSTING entries, never edits.
"""

from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TenantScopedBase, UUIDString

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account


ENTRY_REFERENCE_PREFIX = "CE"


class EntryKind(str, Enum):
    """Why an entry exists; governs which periods it may target."""

    STANDARD = "standard"
    ADJUSTING = "adjusting"
    REVERSAL = "reversal"
    CLOSING = "closing"


def format_entry_reference(entry_number: int) -> str:
    """Display form of an entry number, e.g. 42 -> 'CE-00042'."""
    return f"{ENTRY_REFERENCE_PREFIX}-{entry_number:05d}"


class JournalEntry(TenantScopedBase):
    """
    A posted, balanced journal entry.

    Contract:
        Rows are inserted fully formed by JournalStore.post() and are never
        updated or deleted afterwards.

    Guarantees:
        - total_debits == total_credits for every persisted entry.
        - entry_number is strictly increasing per tenant in posting order.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "entry_number", name="uq_journal_entry_tenant_number"
        ),
        Index("idx_journal_entry_tenant_date", "tenant_id", "entry_date", "entry_number"),
        Index("idx_journal_entry_source", "tenant_id", "source_type", "source_id"),
        # An entry is reversed at most once
        Index("uq_journal_entry_reversal_of", "reversal_of_id", unique=True),
    )

    entry_number: Mapped[int] = mapped_column(nullable=False)

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    # Originating business document (e.g. "invoice", INV-001)
    source_type: Mapped[str] = mapped_column(String(50), nullable=False)
    source_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Customer or supplier reference, used by withholding summaries
    counterparty_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    kind: Mapped[EntryKind] = mapped_column(
        String(20),
        default=EntryKind.STANDARD,
        nullable=False,
    )

    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    posted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        cascade="all",
        lazy="selectin",
        order_by="JournalLine.line_seq",
    )

    reversal_of: Mapped["JournalEntry | None"] = relationship(
        remote_side="JournalEntry.id",
        foreign_keys=[reversal_of_id],
    )

    def __repr__(self) -> str:
        return f"<JournalEntry {self.reference} {self.entry_date}>"

    @property
    def reference(self) -> str:
        return format_entry_reference(self.entry_number)

    @property
    def total_debits(self) -> int:
        return sum(line.debit for line in self.lines)

    @property
    def total_credits(self) -> int:
        return sum(line.credit for line in self.lines)

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits


class JournalLine(TenantScopedBase):
    """
    One side of a journal entry against a single account.

    ``cost_center_id`` is an orthogonal tag: it participates in cost-center
    reports but never in the balance check.  ``tax_base`` records the
    taxable base a tax line was computed from, when the producer knows it.
    """

    __tablename__ = "journal_lines"

    __table_args__ = (
        CheckConstraint(
            "debit >= 0 AND credit >= 0 AND "
            "((debit > 0 AND credit = 0) OR (debit = 0 AND credit > 0))",
            name="ck_journal_line_one_side",
        ),
        Index("idx_journal_line_entry", "journal_entry_id"),
        Index("idx_journal_line_tenant_account", "tenant_id", "account_id"),
        Index("idx_journal_line_cost_center", "cost_center_id"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    debit: Mapped[int] = mapped_column(default=0, nullable=False)

    credit: Mapped[int] = mapped_column(default=0, nullable=False)

    cost_center_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("cost_centers.id"),
        nullable=True,
    )

    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)

    tax_base: Mapped[int | None] = mapped_column(nullable=True)

    # Position within the entry (stable ordering tie-break)
    line_seq: Mapped[int] = mapped_column(Integer, nullable=False)

    entry: Mapped[JournalEntry] = relationship(back_populates="lines")

    account: Mapped["Account"] = relationship(back_populates="journal_lines")

    def __repr__(self) -> str:
        return f"<JournalLine {self.account_id} Dr {self.debit} Cr {self.credit}>"
