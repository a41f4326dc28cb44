"""
PeriodCloser -- year/period end close and snapshot verification.

Responsibility:
    Closes a fiscal period: checks the trial-balance invariant, posts the
    CLOSING entry that moves nominal balances into retained earnings,
    writes the AccountPeriodBalance snapshot rows, stores the canonical
    ledger hash and marks the period CLOSED.  ``verify_period`` re-derives
    all of that and compares.

Architecture position:
    Kernel > Services -- imperative shell, orchestrating PeriodService,
    JournalStore, LedgerProjector and JournalSelector inside the caller's
    transaction.

Invariants enforced:
    - After close, every REVENUE and EXPENSE account has a zero cumulative
      balance as of the period end.
    - Snapshot closing balance of period N equals the projected opening
      balance of the day after, so closing(N) == opening(N+1).
    - Idempotent and resumable: re-running on a CLOSED or CLOSING period
      re-derives everything and posts only a residual closing entry (none
      when nothing changed since the last close).

Failure modes:
    - PeriodNotFoundError: no period ends on ``period_end``.
    - LedgerIntegrityError: trial balance does not balance, or
      ``verify_period`` finds a snapshot or hash mismatch.
    - AccountNotFoundError: retained-earnings account missing when a
      closing entry is needed.

Audit relevance:
    ``period_closed`` carries the period code, closing entry number, net
    income closed and ledger hash.  Integrity failures are logged at ERROR.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.balance import trial_balance_sides
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    AccountInfo,
    EntryRequest,
    FiscalPeriodInfo,
    LineRequest,
    PostedEntry,
)
from ledger_kernel.domain.policy import KernelPolicy
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    LedgerIntegrityError,
    PeriodStateError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import AccountType
from ledger_kernel.models.fiscal_period import FiscalPeriod, PeriodStatus
from ledger_kernel.models.journal import EntryKind
from ledger_kernel.models.period_balance import AccountPeriodBalance
from ledger_kernel.selectors.journal_selector import JournalSelector
from ledger_kernel.selectors.ledger_projector import LedgerProjector
from ledger_kernel.services.journal_store import JournalStore
from ledger_kernel.services.period_service import PeriodService

logger = get_logger("services.period_closer")

CLOSING_SOURCE_TYPE = "period_close"


@dataclass(frozen=True)
class CloseResult:
    """Outcome of one ``PeriodCloser.close`` run."""

    period: FiscalPeriodInfo
    closing_entry: PostedEntry | None
    net_income_closed: int
    ledger_hash: str
    snapshot_count: int
    was_already_closed: bool = False


@dataclass(frozen=True)
class _Snapshot:
    opening_balance: int
    closing_balance: int
    period_debit: int
    period_credit: int


class PeriodCloser:
    """
    Closes and verifies fiscal periods.

    Contract:
        ``close()`` flushes within the caller's transaction; the caller
        commits.  A failure leaves the transaction to be rolled back, so a
        crashed close can simply be run again.

    Guarantees:
        - Holds the period row ``FOR UPDATE`` for the whole close, so
          concurrent posts into the period wait or are rejected.

    Non-goals:
        - Does NOT create the next period.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: KernelPolicy | None = None,
    ):
        self.session = session
        self._clock = clock or SystemClock()
        self._policy = policy or KernelPolicy()
        self._periods = PeriodService(session, self._clock, self._policy)
        self._store = JournalStore(session, self._clock, self._policy)
        self._projector = LedgerProjector(session)
        self._journal = JournalSelector(session)

    # =========================================================================
    # Close
    # =========================================================================

    def close(
        self,
        tenant_id: UUID,
        period_end: date,
        *,
        actor_id: UUID | None = None,
    ) -> CloseResult:
        """
        Close the period ending on ``period_end``.

        Raises:
            PeriodNotFoundError: No period ends on that date.
            LedgerIntegrityError: Trial balance out of balance.
            AccountNotFoundError: Retained-earnings account missing.
        """
        with LogContext.bind(tenant_id=str(tenant_id), actor_id=actor_id):
            period = self._periods.lock_for_close(tenant_id, period_end)
            was_closed = PeriodStatus(period.status) == PeriodStatus.CLOSED
            if PeriodStatus(period.status) != PeriodStatus.CLOSING:
                period.status = PeriodStatus.CLOSING
                self.session.flush()
            logger.info(
                "period_close_started",
                extra={
                    "period_code": period.period_code,
                    "period_end": str(period_end),
                    "rerun": was_closed,
                },
            )

            accounts = self._projector.accounts(tenant_id)
            balances = self._projector.balances_before(
                tenant_id, accounts, period_end + timedelta(days=1)
            )
            self._check_trial_balance(period, accounts, balances)

            closing_entry, net_income = self._post_closing_entry(
                tenant_id, period, accounts, balances, actor_id
            )

            snapshots = self._derive_snapshots(tenant_id, period, accounts)
            self._write_snapshots(tenant_id, period, snapshots, actor_id)

            ledger_hash = self._journal.canonical_hash(tenant_id, period_end)
            period.ledger_hash = ledger_hash
            period.status = PeriodStatus.CLOSED
            period.requires_reclose = False
            if period.closed_at is None or closing_entry is not None or not was_closed:
                period.closed_at = self._clock.now()
            period.updated_by_id = actor_id
            self.session.flush()

            logger.info(
                "period_closed",
                extra={
                    "period_code": period.period_code,
                    "closing_entry_number": (
                        closing_entry.entry_number if closing_entry else None
                    ),
                    "net_income_closed": net_income,
                    "ledger_hash": ledger_hash,
                    "snapshot_count": len(snapshots),
                },
            )
            return CloseResult(
                period=FiscalPeriodInfo.from_model(period),
                closing_entry=closing_entry,
                net_income_closed=net_income,
                ledger_hash=ledger_hash,
                snapshot_count=len(snapshots),
                was_already_closed=was_closed,
            )

    def _check_trial_balance(
        self,
        period: FiscalPeriod,
        accounts: list[AccountInfo],
        balances: dict[UUID, int],
    ) -> None:
        debit_side, credit_side = trial_balance_sides(accounts, balances)
        if debit_side != credit_side:
            logger.error(
                "ledger_integrity_violation",
                extra={
                    "check": "trial_balance",
                    "period_code": period.period_code,
                    "debit_side": debit_side,
                    "credit_side": credit_side,
                },
            )
            raise LedgerIntegrityError(
                "trial_balance", debit_side, credit_side, f"period {period.period_code}"
            )

    def _post_closing_entry(
        self,
        tenant_id: UUID,
        period: FiscalPeriod,
        accounts: list[AccountInfo],
        balances: dict[UUID, int],
        actor_id: UUID | None,
    ) -> tuple[PostedEntry | None, int]:
        lines: list[LineRequest] = []
        net_income = 0
        for account in accounts:
            balance = balances.get(account.account_id, 0)
            if balance == 0 or not account.is_nominal:
                continue
            if account.account_type == AccountType.REVENUE:
                net_income += balance
                lines.append(
                    LineRequest.dr(account.account_id, balance)
                    if balance > 0
                    else LineRequest.cr(account.account_id, -balance)
                )
            else:
                net_income -= balance
                lines.append(
                    LineRequest.cr(account.account_id, balance)
                    if balance > 0
                    else LineRequest.dr(account.account_id, -balance)
                )

        if not lines:
            return None, 0

        if net_income != 0:
            retained = self._retained_earnings(accounts)
            lines.append(
                LineRequest.cr(retained.account_id, net_income)
                if net_income > 0
                else LineRequest.dr(retained.account_id, -net_income)
            )

        posted = self._store._post(
            tenant_id,
            EntryRequest(
                entry_date=period.end_date,
                description=f"Closing entry {period.period_code}",
                source_type=CLOSING_SOURCE_TYPE,
                source_id=period.period_code,
                kind=EntryKind.CLOSING,
                lines=tuple(lines),
            ),
            actor_id=actor_id,
        )
        return posted, net_income

    def _retained_earnings(self, accounts: list[AccountInfo]) -> AccountInfo:
        code = self._policy.retained_earnings_code
        for account in accounts:
            if account.code == code:
                return account
        raise AccountNotFoundError(code)

    # =========================================================================
    # Snapshots
    # =========================================================================

    def _derive_snapshots(
        self,
        tenant_id: UUID,
        period: FiscalPeriod,
        accounts: list[AccountInfo],
        *,
        use_snapshots: bool = True,
    ) -> dict[UUID, _Snapshot]:
        opening = self._projector.balances_before(
            tenant_id, accounts, period.start_date, use_snapshots=use_snapshots
        )
        closing = self._projector.balances_before(
            tenant_id,
            accounts,
            period.end_date + timedelta(days=1),
            use_snapshots=use_snapshots,
        )
        movement = self._journal.account_totals(
            tenant_id,
            date_from=period.start_date,
            date_to=period.end_date,
        )
        snapshots = {}
        for account in accounts:
            moved = movement.get(account.account_id)
            snapshots[account.account_id] = _Snapshot(
                opening_balance=opening[account.account_id],
                closing_balance=closing[account.account_id],
                period_debit=moved.debit if moved else 0,
                period_credit=moved.credit if moved else 0,
            )
        return snapshots

    def _stored_snapshots(self, period: FiscalPeriod) -> dict[UUID, AccountPeriodBalance]:
        rows = self.session.execute(
            select(AccountPeriodBalance).where(AccountPeriodBalance.period_id == period.id)
        ).scalars()
        return {row.account_id: row for row in rows}

    def _write_snapshots(
        self,
        tenant_id: UUID,
        period: FiscalPeriod,
        snapshots: dict[UUID, _Snapshot],
        actor_id: UUID | None,
    ) -> None:
        stored = self._stored_snapshots(period)
        for account_id, snap in snapshots.items():
            row = stored.get(account_id)
            if row is None:
                row = AccountPeriodBalance(
                    tenant_id=tenant_id,
                    period_id=period.id,
                    account_id=account_id,
                    period_start=period.start_date,
                    period_end=period.end_date,
                    created_by_id=actor_id,
                )
                self.session.add(row)
            row.opening_balance = snap.opening_balance
            row.closing_balance = snap.closing_balance
            row.period_debit = snap.period_debit
            row.period_credit = snap.period_credit
        self.session.flush()

    # =========================================================================
    # Verification
    # =========================================================================

    def verify_period(self, tenant_id: UUID, period_end: date) -> FiscalPeriodInfo:
        """
        Recompute a closed period's snapshots and ledger hash from the journal.

        Raises:
            PeriodNotFoundError: No period ends on that date.
            PeriodStateError: The period is not CLOSED.
            LedgerIntegrityError: Any stored value differs from the journal.
        """
        info = self._periods.get_period_ending(tenant_id, period_end)
        if info.status != PeriodStatus.CLOSED:
            raise PeriodStateError(info.period_code, info.status.value, "verify")
        period = self.session.get(FiscalPeriod, info.id)

        actual_hash = self._journal.canonical_hash(tenant_id, period_end)
        if actual_hash != period.ledger_hash:
            self._integrity_failure(
                period, "ledger_hash", period.ledger_hash or "", actual_hash
            )

        accounts = self._projector.accounts(tenant_id)
        derived = self._derive_snapshots(tenant_id, period, accounts, use_snapshots=False)
        stored = self._stored_snapshots(period)
        for account in accounts:
            expected = derived[account.account_id]
            row = stored.get(account.account_id)
            actual = (
                _Snapshot(
                    row.opening_balance,
                    row.closing_balance,
                    row.period_debit,
                    row.period_credit,
                )
                if row is not None
                else _Snapshot(0, 0, 0, 0)
            )
            if actual != expected:
                self._integrity_failure(
                    period,
                    "period_snapshot",
                    str(expected),
                    str(actual),
                    f"account {account.code}",
                )

        logger.info(
            "period_verified",
            extra={
                "tenant_id": str(tenant_id),
                "period_code": period.period_code,
                "ledger_hash": actual_hash,
            },
        )
        return FiscalPeriodInfo.from_model(period)

    def _integrity_failure(
        self,
        period: FiscalPeriod,
        check: str,
        expected: str,
        actual: str,
        detail: str = "",
    ) -> None:
        logger.error(
            "ledger_integrity_violation",
            extra={
                "check": check,
                "period_code": period.period_code,
                "expected": expected,
                "actual": actual,
                "detail": detail,
            },
        )
        raise LedgerIntegrityError(check, expected, actual, detail)
