"""
Module: ledger_kernel.selectors.journal_selector
Responsibility: Read-only access to posted journal entries and lines:
    entries in a date range, flattened line views, per-account debit/credit
    aggregates and the canonical ledger hash.
Architecture position: Kernel > Selectors.  May import from models/ and
    domain/dtos.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only: no mutations of queried data.
    - Tenant scoping: every query filters on the explicit tenant_id.
    - Deterministic order: (entry_date, entry_number, line_seq).

Failure modes:
    - Returns empty results or zero totals when nothing matches; never
      raises on absence of data.

Audit relevance:
    canonical_hash() is a SHA-256 digest over every line dated on or
    before a cutoff.  PeriodCloser stores it at close and verify_period()
    recomputes it, so any change to history is detectable.
"""

import hashlib
import json
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import PostedEntry
from ledger_kernel.models.journal import EntryKind, JournalEntry, JournalLine
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class JournalLineView:
    """A journal line flattened together with its entry header."""

    entry_id: UUID
    entry_number: int
    entry_date: date
    description: str
    kind: EntryKind
    source_type: str
    source_id: str | None
    counterparty_id: str | None
    line_seq: int
    account_id: UUID
    debit: int
    credit: int
    cost_center_id: UUID | None = None
    memo: str | None = None
    tax_base: int | None = None


@dataclass(frozen=True)
class DebitCredit:
    debit: int = 0
    credit: int = 0


class JournalSelector(BaseSelector[JournalEntry]):
    """
    Selector for posted journal data.

    Contract:
        Every method filters by ``tenant_id`` and returns DTOs.  Date bounds
        are inclusive except ``before``, which is exclusive.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    # =========================================================================
    # Entries
    # =========================================================================

    def entries_in_range(
        self,
        tenant_id: UUID,
        date_from: date,
        date_to: date,
        *,
        kinds: Iterable[EntryKind] | None = None,
    ) -> list[PostedEntry]:
        """Entries dated within the range ordered by (date, number)."""
        stmt = select(JournalEntry).where(
            JournalEntry.tenant_id == tenant_id,
            JournalEntry.entry_date >= date_from,
            JournalEntry.entry_date <= date_to,
        )
        if kinds is not None:
            stmt = stmt.where(JournalEntry.kind.in_([EntryKind(k) for k in kinds]))
        entries = self.session.execute(
            stmt.order_by(JournalEntry.entry_date, JournalEntry.entry_number)
        ).scalars().all()
        return [PostedEntry.from_model(e) for e in entries]

    def entries_for_source(
        self,
        tenant_id: UUID,
        source_type: str,
        source_id: str,
    ) -> list[PostedEntry]:
        """Every entry posted for one source document, reversals included, in posting order."""
        entries = self.session.execute(
            select(JournalEntry)
            .where(
                JournalEntry.tenant_id == tenant_id,
                JournalEntry.source_type == source_type,
                JournalEntry.source_id == source_id,
            )
            .order_by(JournalEntry.entry_number)
        ).scalars().all()
        return [PostedEntry.from_model(e) for e in entries]

    def count_entries(self, tenant_id: UUID) -> int:
        return self.session.execute(
            select(func.count(JournalEntry.id)).where(JournalEntry.tenant_id == tenant_id)
        ).scalar_one()

    # =========================================================================
    # Lines
    # =========================================================================

    def _line_query(
        self,
        tenant_id: UUID,
        *,
        date_from: date | None,
        date_to: date | None,
        before: date | None,
        account_ids: Iterable[UUID] | None,
        cost_center_ids: Iterable[UUID] | None,
        include_closing: bool,
    ):
        stmt = (
            select(JournalLine, JournalEntry)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(JournalEntry.tenant_id == tenant_id)
        )
        if date_from is not None:
            stmt = stmt.where(JournalEntry.entry_date >= date_from)
        if date_to is not None:
            stmt = stmt.where(JournalEntry.entry_date <= date_to)
        if before is not None:
            stmt = stmt.where(JournalEntry.entry_date < before)
        if account_ids is not None:
            stmt = stmt.where(JournalLine.account_id.in_(list(account_ids)))
        if cost_center_ids is not None:
            stmt = stmt.where(JournalLine.cost_center_id.in_(list(cost_center_ids)))
        if not include_closing:
            stmt = stmt.where(JournalEntry.kind != EntryKind.CLOSING)
        return stmt

    def lines(
        self,
        tenant_id: UUID,
        *,
        date_from: date | None = None,
        date_to: date | None = None,
        account_ids: Iterable[UUID] | None = None,
        cost_center_ids: Iterable[UUID] | None = None,
        include_closing: bool = True,
    ) -> list[JournalLineView]:
        """Lines ordered by (entry_date, entry_number, line_seq)."""
        stmt = self._line_query(
            tenant_id,
            date_from=date_from,
            date_to=date_to,
            before=None,
            account_ids=account_ids,
            cost_center_ids=cost_center_ids,
            include_closing=include_closing,
        ).order_by(
            JournalEntry.entry_date,
            JournalEntry.entry_number,
            JournalLine.line_seq,
        )
        return [
            JournalLineView(
                entry_id=entry.id,
                entry_number=entry.entry_number,
                entry_date=entry.entry_date,
                description=entry.description,
                kind=EntryKind(entry.kind),
                source_type=entry.source_type,
                source_id=entry.source_id,
                counterparty_id=entry.counterparty_id,
                line_seq=line.line_seq,
                account_id=line.account_id,
                debit=line.debit,
                credit=line.credit,
                cost_center_id=line.cost_center_id,
                memo=line.memo,
                tax_base=line.tax_base,
            )
            for line, entry in self.session.execute(stmt).all()
        ]

    def account_totals(
        self,
        tenant_id: UUID,
        *,
        date_from: date | None = None,
        date_to: date | None = None,
        before: date | None = None,
        account_ids: Iterable[UUID] | None = None,
        cost_center_ids: Iterable[UUID] | None = None,
        include_closing: bool = True,
    ) -> dict[UUID, DebitCredit]:
        """Summed debits and credits per account; absent accounts had none."""
        base = self._line_query(
            tenant_id,
            date_from=date_from,
            date_to=date_to,
            before=before,
            account_ids=account_ids,
            cost_center_ids=cost_center_ids,
            include_closing=include_closing,
        ).subquery()
        stmt = select(
            base.c.account_id,
            func.sum(base.c.debit).label("debit_total"),
            func.sum(base.c.credit).label("credit_total"),
        ).group_by(base.c.account_id)
        # Postgres sums bigint into numeric; normalize to int
        return {
            row.account_id: DebitCredit(int(row.debit_total or 0), int(row.credit_total or 0))
            for row in self.session.execute(stmt).all()
        }

    # =========================================================================
    # Canonical ledger hash
    # =========================================================================

    def canonical_lines(self, tenant_id: UUID, as_of: date) -> list[dict]:
        """Every line dated on or before ``as_of`` in canonical order."""
        stmt = (
            select(
                JournalEntry.entry_number,
                JournalEntry.entry_date,
                JournalEntry.kind,
                JournalLine.line_seq,
                JournalLine.account_id,
                JournalLine.debit,
                JournalLine.credit,
                JournalLine.cost_center_id,
            )
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalEntry.tenant_id == tenant_id,
                JournalEntry.entry_date <= as_of,
            )
            .order_by(JournalEntry.entry_number, JournalLine.line_seq)
        )
        return [
            {
                "entry_number": row.entry_number,
                "entry_date": row.entry_date.isoformat(),
                "kind": EntryKind(row.kind).value,
                "line_seq": row.line_seq,
                "account_id": str(row.account_id),
                "debit": row.debit,
                "credit": row.credit,
                "cost_center_id": str(row.cost_center_id) if row.cost_center_id else "",
            }
            for row in self.session.execute(stmt).all()
        ]

    def canonical_hash(self, tenant_id: UUID, as_of: date) -> str:
        """SHA-256 hex digest of :meth:`canonical_lines`."""
        hasher = hashlib.sha256()
        for line in self.canonical_lines(tenant_id, as_of):
            hasher.update(json.dumps(line, sort_keys=True, separators=(",", ":")).encode("utf-8"))
            hasher.update(b"\n")
        return hasher.hexdigest()
