"""
Module: ledger_kernel.selectors.ledger_projector
Responsibility: Projects per-account ledgers (opening balance, ordered
    movements with running balances, closing balance) and cumulative
    balances from posted journal lines.
Architecture position: Kernel > Selectors.  Reads through JournalSelector
    and the AccountPeriodBalance cache; the fold itself is
    ``domain.balance.fold_running_balance``.

Invariants enforced:
    - Ordering: movements are ordered by (entry_date, entry_number,
      line_seq), so same-day entries follow posting order.
    - Sign convention: DEBIT-normal accounts move by debit - credit,
      CREDIT-normal accounts by credit - debit.
    - closing_balance == last running balance, or opening when no movement.
    - Determinism: the same inputs over the same journal yield identical
      ledgers.

Failure modes:
    - InvalidDateRangeError: date_from > date_to.
    - AccountNotFoundError: a requested account is not in the tenant.

Audit relevance:
    A period snapshot is only trusted when its period is CLOSED and not
    flagged ``requires_reclose``.  Any posting dated inside or before a
    closed period flags it, so a stale snapshot is never read.
"""

from collections import defaultdict
from collections.abc import Iterable
from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.balance import fold_running_balance, natural_balance
from ledger_kernel.domain.dtos import AccountInfo, AccountLedger, LedgerMovement
from ledger_kernel.exceptions import AccountNotFoundError, InvalidDateRangeError
from ledger_kernel.models.account import Account
from ledger_kernel.models.fiscal_period import FiscalPeriod, PeriodStatus
from ledger_kernel.models.journal import JournalLine
from ledger_kernel.models.period_balance import AccountPeriodBalance
from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.selectors.journal_selector import JournalSelector


class LedgerProjector(BaseSelector[JournalLine]):
    """
    Read-only ledger projection.

    Contract:
        ``project()`` returns one AccountLedger per requested account (all
        tenant accounts when ``account_ids`` is None), keyed by account id
        and ordered by account code.  Accounts without lines in range are
        included with their opening balance and no movements.

    Guarantees:
        - Opening balance starts from the latest usable closed-period
          snapshot ending before ``date_from``; otherwise from a full scan
          of earlier history.
        - A cost-center filter or ``include_closing=False`` always uses
          the full filtered scan (snapshots cover unfiltered balances only).

    Non-goals:
        - Does NOT write snapshots (PeriodCloser owns them).
    """

    def __init__(self, session: Session):
        super().__init__(session)
        self._journal = JournalSelector(session)

    # =========================================================================
    # Accounts
    # =========================================================================

    def accounts(
        self, tenant_id: UUID, account_ids: Iterable[UUID] | None = None
    ) -> list[AccountInfo]:
        """Account snapshots ordered by code; inactive accounts included."""
        stmt = select(Account).where(Account.tenant_id == tenant_id)
        wanted = None
        if account_ids is not None:
            wanted = list(dict.fromkeys(account_ids))
            stmt = stmt.where(Account.id.in_(wanted))
        found = [
            AccountInfo.from_model(a)
            for a in self.session.execute(stmt.order_by(Account.code)).scalars()
        ]
        if wanted is not None and len(found) != len(wanted):
            known = {a.account_id for a in found}
            missing = next(a for a in wanted if a not in known)
            raise AccountNotFoundError(str(missing))
        return found

    # =========================================================================
    # Opening balances
    # =========================================================================

    def _snapshot_period(self, tenant_id: UUID, before: date) -> FiscalPeriod | None:
        return self.session.execute(
            select(FiscalPeriod)
            .where(
                FiscalPeriod.tenant_id == tenant_id,
                FiscalPeriod.status == PeriodStatus.CLOSED,
                FiscalPeriod.requires_reclose.is_(False),
                FiscalPeriod.end_date < before,
            )
            .order_by(FiscalPeriod.end_date.desc())
            .limit(1)
        ).scalar_one_or_none()

    def balances_before(
        self,
        tenant_id: UUID,
        accounts: list[AccountInfo],
        before: date,
        *,
        cost_center_ids: Iterable[UUID] | None = None,
        include_closing: bool = True,
        use_snapshots: bool = True,
    ) -> dict[UUID, int]:
        """Natural balance of each account over every line dated before ``before``."""
        ids = [a.account_id for a in accounts]
        seed: dict[UUID, int] = {}
        scan_from: date | None = None

        if use_snapshots and cost_center_ids is None and include_closing:
            period = self._snapshot_period(tenant_id, before)
            if period is not None:
                rows = self.session.execute(
                    select(
                        AccountPeriodBalance.account_id,
                        AccountPeriodBalance.closing_balance,
                    ).where(
                        AccountPeriodBalance.period_id == period.id,
                        AccountPeriodBalance.account_id.in_(ids),
                    )
                )
                seed = {account_id: balance for account_id, balance in rows}
                scan_from = period.end_date + timedelta(days=1)

        totals = self._journal.account_totals(
            tenant_id,
            date_from=scan_from,
            before=before,
            account_ids=ids,
            cost_center_ids=cost_center_ids,
            include_closing=include_closing,
        )
        balances = {}
        for account in accounts:
            moved = totals.get(account.account_id)
            delta = (
                natural_balance(moved.debit, moved.credit, account.normal_balance)
                if moved
                else 0
            )
            balances[account.account_id] = seed.get(account.account_id, 0) + delta
        return balances

    def balances_as_of(
        self,
        tenant_id: UUID,
        as_of: date,
        *,
        account_ids: Iterable[UUID] | None = None,
        include_closing: bool = True,
    ) -> dict[UUID, int]:
        """Cumulative natural balance per account from inception to ``as_of``."""
        accounts = self.accounts(tenant_id, account_ids)
        return self.balances_before(
            tenant_id,
            accounts,
            as_of + timedelta(days=1),
            include_closing=include_closing,
        )

    # =========================================================================
    # Projection
    # =========================================================================

    def project(
        self,
        tenant_id: UUID,
        account_ids: Iterable[UUID] | None,
        date_from: date,
        date_to: date,
        *,
        cost_center_id: UUID | None = None,
        include_closing: bool = True,
    ) -> dict[UUID, AccountLedger]:
        """
        Project ledgers for ``account_ids`` over ``[date_from, date_to]``.

        Raises:
            InvalidDateRangeError: If date_from > date_to.
            AccountNotFoundError: If a requested account is unknown.
        """
        if date_from > date_to:
            raise InvalidDateRangeError(str(date_from), str(date_to))

        accounts = self.accounts(tenant_id, account_ids)
        if not accounts:
            return {}
        cost_center_ids = [cost_center_id] if cost_center_id is not None else None

        opening = self.balances_before(
            tenant_id,
            accounts,
            date_from,
            cost_center_ids=cost_center_ids,
            include_closing=include_closing,
        )

        by_account = defaultdict(list)
        for line in self._journal.lines(
            tenant_id,
            date_from=date_from,
            date_to=date_to,
            account_ids=[a.account_id for a in accounts],
            cost_center_ids=cost_center_ids,
            include_closing=include_closing,
        ):
            by_account[line.account_id].append(line)

        ledgers: dict[UUID, AccountLedger] = {}
        for account in accounts:
            lines = by_account.get(account.account_id, [])
            start = opening[account.account_id]
            running = fold_running_balance(
                start, account.normal_balance, ((ln.debit, ln.credit) for ln in lines)
            )
            movements = tuple(
                LedgerMovement(
                    entry_id=ln.entry_id,
                    entry_number=ln.entry_number,
                    entry_date=ln.entry_date,
                    description=ln.description,
                    debit=ln.debit,
                    credit=ln.credit,
                    running_balance=balance,
                    kind=ln.kind,
                    source_type=ln.source_type,
                    source_id=ln.source_id,
                    cost_center_id=ln.cost_center_id,
                    memo=ln.memo,
                )
                for ln, balance in zip(lines, running)
            )
            ledgers[account.account_id] = AccountLedger(
                account=account,
                date_from=date_from,
                date_to=date_to,
                opening_balance=start,
                closing_balance=running[-1] if running else start,
                total_debit=sum(ln.debit for ln in lines),
                total_credit=sum(ln.credit for ln in lines),
                movements=movements,
            )
        return ledgers

    def project_account(
        self,
        tenant_id: UUID,
        account_id: UUID,
        date_from: date,
        date_to: date,
        *,
        cost_center_id: UUID | None = None,
        include_closing: bool = True,
    ) -> AccountLedger:
        """Single-account form of :meth:`project`."""
        return self.project(
            tenant_id,
            [account_id],
            date_from,
            date_to,
            cost_center_id=cost_center_id,
            include_closing=include_closing,
        )[account_id]
