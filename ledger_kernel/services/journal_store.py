"""
JournalStore -- the only writer of journal entries and lines.

Responsibility:
    Validates an EntryRequest end to end, assigns the next per-tenant entry
    number and persists the entry with its lines in one flush.  Also creates
    reversal entries and resolves posted entries by id or number.

Architecture position:
    Kernel > Services -- imperative shell.
    Pure checks come from ``domain.validation``; the period gate from
    PeriodService; numbering from SequenceService.

Invariants enforced:
    - Every persisted entry balances (sum of debits == sum of credits).
    - Every line references an active account of the same tenant, and any
      cost center it carries belongs to the same tenant.
    - Entry numbers are gapless and strictly increasing per tenant; the
      counter row lock serializes concurrent posts of one tenant.
    - All validation happens before the first write; a failed post leaves
      nothing behind.
    - Posted entries are never mutated.  Reversal creates a new entry.

Failure modes:
    - InvalidEntryError, UnbalancedEntryError: request shape or balance.
    - AccountNotFoundError, AccountInactiveError, CostCenterNotFoundError.
    - ClosedPeriodError, PeriodNotFoundError, PeriodStateError: period gate.
    - EntryNotFoundError, EntryAlreadyReversedError: reversal.

Audit relevance:
    ``journal_entry_posted`` is logged for every persisted entry with its
    number, kind and totals.  Rejections are logged at WARNING.
"""

from collections.abc import Iterable
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import EntryRequest, LineRequest, PostedEntry
from ledger_kernel.domain.policy import KernelPolicy
from ledger_kernel.domain.validation import validate_entry_request
from ledger_kernel.exceptions import (
    AccountInactiveError,
    AccountNotFoundError,
    CostCenterNotFoundError,
    EntryAlreadyReversedError,
    EntryNotFoundError,
    InvalidEntryError,
    PeriodStateError,
    UnbalancedEntryError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.cost_center import CostCenter
from ledger_kernel.models.journal import EntryKind, JournalEntry, JournalLine
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.sequence_service import (
    SequenceService,
    journal_sequence_name,
)

logger = get_logger("services.journal_store")


class JournalStore(BaseService[JournalEntry]):
    """
    Append-only store for journal entries.

    Contract:
        ``post()`` either returns a PostedEntry whose lines are flushed in
        the caller's transaction, or raises a typed error with no rows
        written.  The caller commits.

    Guarantees:
        - Same-day entries are ordered by entry_number, which follows
          posting order within a tenant.
        - Postings dated on or before the end of a CLOSED period flag that
          period (and later closed ones) ``requires_reclose``.

    Non-goals:
        - Does NOT compute balances (LedgerProjector).
        - Does NOT commit.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: KernelPolicy | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._policy = policy or KernelPolicy()
        self._periods = PeriodService(session, self._clock, self._policy)
        self._sequences = SequenceService(session)

    # =========================================================================
    # Posting
    # =========================================================================

    def post(
        self,
        tenant_id: UUID,
        request: EntryRequest,
        *,
        actor_id: UUID | None = None,
    ) -> PostedEntry:
        """
        Validate and persist a journal entry.

        Preconditions:
            - Called inside an open transaction the caller will commit.
        Postconditions:
            - The entry and all its lines are flushed with the next
              entry_number of the tenant.

        Raises:
            InvalidEntryError: Malformed lines, or a CLOSING kind.
            UnbalancedEntryError: Debits != credits.
            AccountNotFoundError / AccountInactiveError: Bad account.
            CostCenterNotFoundError: Cost center not in the tenant.
            ClosedPeriodError: STANDARD entry into a closed period.
        """
        if EntryKind(request.kind) == EntryKind.CLOSING:
            logger.warning(
                "posting_rejected_invalid",
                extra={
                    "tenant_id": str(tenant_id),
                    "source_type": request.source_type,
                    "reason": "closing_kind_not_allowed",
                },
            )
            raise InvalidEntryError("closing entries are posted by the period close only")
        return self._post(tenant_id, request, actor_id=actor_id)

    def _post(
        self,
        tenant_id: UUID,
        request: EntryRequest,
        *,
        actor_id: UUID | None,
        reversal_of_id: UUID | None = None,
    ) -> PostedEntry:
        # PeriodCloser posts CLOSING entries through here directly.
        with LogContext.bind(tenant_id=str(tenant_id), actor_id=actor_id):
            try:
                validate_entry_request(request)
            except UnbalancedEntryError as exc:
                logger.warning(
                    "posting_rejected_unbalanced",
                    extra={
                        "source_type": request.source_type,
                        "source_id": request.source_id,
                        "total_debit": exc.total_debit,
                        "total_credit": exc.total_credit,
                    },
                )
                raise
            except InvalidEntryError as exc:
                logger.warning(
                    "posting_rejected_invalid",
                    extra={
                        "source_type": request.source_type,
                        "reason": exc.reason,
                        "line_index": exc.line_index,
                    },
                )
                raise

            kind = EntryKind(request.kind)
            # Closing must be able to zero deactivated nominal accounts
            self._check_accounts(
                tenant_id, request.lines, allow_inactive=kind == EntryKind.CLOSING
            )
            self._check_cost_centers(tenant_id, request.lines)
            self._periods.validate_posting_date(tenant_id, request.entry_date, kind)
            self._periods.mark_reclose_required(tenant_id, request.entry_date)

            entry_number = self._sequences.next_value(journal_sequence_name(tenant_id))
            entry = JournalEntry(
                tenant_id=tenant_id,
                entry_number=entry_number,
                entry_date=request.entry_date,
                description=request.description.strip(),
                source_type=request.source_type,
                source_id=request.source_id,
                counterparty_id=request.counterparty_id,
                kind=kind,
                reversal_of_id=reversal_of_id,
                posted_at=self._clock.now(),
                created_by_id=actor_id,
            )
            entry.lines = [
                JournalLine(
                    tenant_id=tenant_id,
                    account_id=line.account_id,
                    debit=line.debit,
                    credit=line.credit,
                    cost_center_id=line.cost_center_id,
                    memo=line.memo,
                    tax_base=line.tax_base,
                    line_seq=index,
                    created_by_id=actor_id,
                )
                for index, line in enumerate(request.lines)
            ]
            self.session.add(entry)
            self.session.flush()

            posted = PostedEntry.from_model(entry)
            logger.info(
                "journal_entry_posted",
                extra={
                    "entry_id": str(posted.id),
                    "entry_number": posted.entry_number,
                    "entry_date": str(posted.entry_date),
                    "kind": kind.value,
                    "source_type": posted.source_type,
                    "source_id": posted.source_id,
                    "line_count": len(posted.lines),
                    "total_amount": posted.total_debit,
                },
            )
            return posted

    def _check_accounts(
        self,
        tenant_id: UUID,
        lines: Iterable[LineRequest],
        *,
        allow_inactive: bool = False,
    ) -> None:
        lines = list(lines)
        wanted = {line.account_id for line in lines}
        accounts = {
            account.id: account
            for account in self.session.execute(
                select(Account).where(
                    Account.tenant_id == tenant_id,
                    Account.id.in_(wanted),
                )
            ).scalars()
        }
        for line in lines:
            account = accounts.get(line.account_id)
            if account is None:
                raise AccountNotFoundError(str(line.account_id))
            if not account.is_active and not allow_inactive:
                raise AccountInactiveError(str(account.id), account.code)

    def _check_cost_centers(self, tenant_id: UUID, lines: Iterable[LineRequest]) -> None:
        wanted = {line.cost_center_id for line in lines if line.cost_center_id is not None}
        if not wanted:
            return
        found = set(
            self.session.execute(
                select(CostCenter.id).where(
                    CostCenter.tenant_id == tenant_id,
                    CostCenter.id.in_(wanted),
                )
            ).scalars()
        )
        missing = wanted - found
        if missing:
            raise CostCenterNotFoundError(str(sorted(missing, key=str)[0]))

    # =========================================================================
    # Reversal
    # =========================================================================

    def reverse(
        self,
        tenant_id: UUID,
        entry_id: UUID,
        *,
        reversal_date: date | None = None,
        description: str | None = None,
        actor_id: UUID | None = None,
    ) -> PostedEntry:
        """
        Post the mirror image of an entry.

        Every line keeps its account, cost center and tax base with debit
        and credit swapped.  The reversal is dated ``reversal_date`` (the
        original date by default) and may target a closed period.

        Raises:
            EntryNotFoundError: No such entry in the tenant.
            EntryAlreadyReversedError: A reversal already exists.
            PeriodStateError: The entry is a CLOSING entry; re-run the
                period close instead.
        """
        original = self._get_orm(tenant_id, entry_id)

        if EntryKind(original.kind) == EntryKind.CLOSING:
            period = self._periods.period_for_date(tenant_id, original.entry_date)
            logger.warning(
                "reversal_rejected_closing_entry",
                extra={"tenant_id": str(tenant_id), "entry_id": str(entry_id)},
            )
            raise PeriodStateError(
                period.period_code if period else str(original.source_id),
                period.status.value if period else "unknown",
                "reverse the closing entry of",
            )

        existing = self.find_reversal(tenant_id, entry_id)
        if existing is not None:
            raise EntryAlreadyReversedError(str(entry_id), str(existing.id))

        request = EntryRequest(
            entry_date=reversal_date or original.entry_date,
            description=description or f"Reversal of {original.reference}",
            source_type=original.source_type,
            source_id=original.source_id,
            counterparty_id=original.counterparty_id,
            kind=EntryKind.REVERSAL,
            lines=tuple(
                LineRequest(
                    account_id=line.account_id,
                    debit=line.credit,
                    credit=line.debit,
                    cost_center_id=line.cost_center_id,
                    memo=line.memo,
                    tax_base=line.tax_base,
                )
                for line in original.lines
            ),
        )
        posted = self._post(
            tenant_id, request, actor_id=actor_id, reversal_of_id=original.id
        )
        logger.info(
            "journal_entry_reversed",
            extra={
                "tenant_id": str(tenant_id),
                "original_entry_id": str(original.id),
                "reversal_entry_id": str(posted.id),
            },
        )
        return posted

    def find_reversal(self, tenant_id: UUID, entry_id: UUID) -> PostedEntry | None:
        """The entry that reverses ``entry_id``, if any."""
        reversal = self.session.execute(
            select(JournalEntry).where(
                JournalEntry.tenant_id == tenant_id,
                JournalEntry.reversal_of_id == entry_id,
            )
        ).scalar_one_or_none()
        return PostedEntry.from_model(reversal) if reversal else None

    # =========================================================================
    # Lookups
    # =========================================================================

    def _get_orm(self, tenant_id: UUID, entry_id: UUID) -> JournalEntry:
        entry = self.session.execute(
            select(JournalEntry).where(
                JournalEntry.tenant_id == tenant_id,
                JournalEntry.id == entry_id,
            )
        ).scalar_one_or_none()
        if entry is None:
            raise EntryNotFoundError(str(entry_id))
        return entry

    def get_entry(self, tenant_id: UUID, entry_id: UUID) -> PostedEntry:
        return PostedEntry.from_model(self._get_orm(tenant_id, entry_id))

    def get_entry_by_number(self, tenant_id: UUID, entry_number: int) -> PostedEntry:
        entry = self.session.execute(
            select(JournalEntry).where(
                JournalEntry.tenant_id == tenant_id,
                JournalEntry.entry_number == entry_number,
            )
        ).scalar_one_or_none()
        if entry is None:
            raise EntryNotFoundError(str(entry_number))
        return PostedEntry.from_model(entry)
