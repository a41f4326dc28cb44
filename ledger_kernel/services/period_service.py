"""
PeriodService -- fiscal period calendar and posting-date gate.

Responsibility:
    Manages each tenant's fiscal periods (create, look up, OPEN -> CLOSING
    transitions) and decides whether a posting dated on a given day may be
    accepted, given the entry's kind.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by JournalStore before every posting and by PeriodCloser to lock
    and finalize a period.

Invariants enforced:
    - Periods of one tenant never overlap.
    - STANDARD postings are rejected in CLOSING and CLOSED periods.
    - ADJUSTING and REVERSAL postings may target a CLOSED period; doing so
      flags it (and every later closed period) ``requires_reclose``.
    - CLOSING postings are only accepted while the period is CLOSING.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - InvalidDateRangeError: start_date > end_date.
    - PeriodOverlapError: new range intersects an existing period.
    - PeriodNotFoundError: unknown period, or no period for a date when the
      tenant policy requires one.
    - ClosedPeriodError: ordinary posting into a CLOSING/CLOSED period.
    - PeriodStateError: invalid lifecycle transition.

Audit relevance:
    Period creation, state transitions and reclose flags are logged with
    period_code and tenant_id.  Rejected postings are logged at WARNING.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import FiscalPeriodInfo
from ledger_kernel.domain.policy import KernelPolicy
from ledger_kernel.exceptions import (
    ClosedPeriodError,
    InvalidDateRangeError,
    PeriodNotFoundError,
    PeriodOverlapError,
    PeriodStateError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.fiscal_period import FiscalPeriod, PeriodStatus
from ledger_kernel.models.journal import EntryKind
from ledger_kernel.services.base import BaseService

logger = get_logger("services.period")


class PeriodService(BaseService[FiscalPeriod]):
    """
    Service for fiscal period lifecycle and posting-date validation.

    Contract:
        Public lookups return frozen ``FiscalPeriodInfo`` DTOs.  Validation
        methods raise typed exceptions.  Lifecycle methods flush within the
        caller's transaction.

    Guarantees:
        - Concurrent close and post serialize on the period row:
          posting reads it ``FOR SHARE``, closing locks it ``FOR UPDATE``.

    Non-goals:
        - Does NOT compute balances or post closing entries (PeriodCloser).
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

    # =========================================================================
    # Creation
    # =========================================================================

    def create_period(
        self,
        tenant_id: UUID,
        *,
        period_code: str,
        name: str,
        start_date: date,
        end_date: date,
        actor_id: UUID | None = None,
    ) -> FiscalPeriodInfo:
        """
        Create a new OPEN fiscal period.

        Raises:
            InvalidDateRangeError: If start_date > end_date.
            PeriodOverlapError: If the range overlaps an existing period, or
                the code is already used by the tenant.
        """
        if start_date > end_date:
            raise InvalidDateRangeError(str(start_date), str(end_date))

        self._validate_no_overlap(tenant_id, period_code, start_date, end_date)

        period = FiscalPeriod(
            tenant_id=tenant_id,
            period_code=period_code,
            name=name,
            start_date=start_date,
            end_date=end_date,
            status=PeriodStatus.OPEN,
            requires_reclose=False,
            created_by_id=actor_id,
        )
        self.session.add(period)
        self.session.flush()

        logger.info(
            "period_created",
            extra={
                "tenant_id": str(tenant_id),
                "period_code": period_code,
                "start_date": str(start_date),
                "end_date": str(end_date),
            },
        )
        return FiscalPeriodInfo.from_model(period)

    def _validate_no_overlap(
        self,
        tenant_id: UUID,
        new_period_code: str,
        start_date: date,
        end_date: date,
    ) -> None:
        # Two ranges overlap if start1 <= end2 AND start2 <= end1
        overlapping = self.session.execute(
            select(FiscalPeriod)
            .where(
                FiscalPeriod.tenant_id == tenant_id,
                FiscalPeriod.start_date <= end_date,
                FiscalPeriod.end_date >= start_date,
            )
            .limit(1)
        ).scalar_one_or_none()
        if overlapping is not None:
            raise PeriodOverlapError(new_period_code, overlapping.period_code)

        duplicate = self._get_by_code(tenant_id, new_period_code)
        if duplicate is not None:
            raise PeriodOverlapError(new_period_code, duplicate.period_code)

    # =========================================================================
    # Lookups
    # =========================================================================

    def _get_by_code(self, tenant_id: UUID, period_code: str) -> FiscalPeriod | None:
        return self.session.execute(
            select(FiscalPeriod).where(
                FiscalPeriod.tenant_id == tenant_id,
                FiscalPeriod.period_code == period_code,
            )
        ).scalar_one_or_none()

    def _get_for_date(
        self, tenant_id: UUID, on_date: date, *, lock_shared: bool = False
    ) -> FiscalPeriod | None:
        stmt = select(FiscalPeriod).where(
            FiscalPeriod.tenant_id == tenant_id,
            FiscalPeriod.start_date <= on_date,
            FiscalPeriod.end_date >= on_date,
        )
        if lock_shared:
            stmt = stmt.with_for_update(read=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def get_period(self, tenant_id: UUID, period_code: str) -> FiscalPeriodInfo:
        """
        Raises:
            PeriodNotFoundError: If the tenant has no such period.
        """
        period = self._get_by_code(tenant_id, period_code)
        if period is None:
            raise PeriodNotFoundError(period_code)
        return FiscalPeriodInfo.from_model(period)

    def get_period_ending(self, tenant_id: UUID, period_end: date) -> FiscalPeriodInfo:
        period = self.session.execute(
            select(FiscalPeriod).where(
                FiscalPeriod.tenant_id == tenant_id,
                FiscalPeriod.end_date == period_end,
            )
        ).scalar_one_or_none()
        if period is None:
            raise PeriodNotFoundError(f"ending {period_end}")
        return FiscalPeriodInfo.from_model(period)

    def period_for_date(self, tenant_id: UUID, on_date: date) -> FiscalPeriodInfo | None:
        period = self._get_for_date(tenant_id, on_date)
        return FiscalPeriodInfo.from_model(period) if period else None

    def list_periods(self, tenant_id: UUID) -> list[FiscalPeriodInfo]:
        periods = self.session.execute(
            select(FiscalPeriod)
            .where(FiscalPeriod.tenant_id == tenant_id)
            .order_by(FiscalPeriod.start_date)
        ).scalars().all()
        return [FiscalPeriodInfo.from_model(p) for p in periods]

    # =========================================================================
    # Posting gate
    # =========================================================================

    def validate_posting_date(
        self,
        tenant_id: UUID,
        entry_date: date,
        kind: EntryKind = EntryKind.STANDARD,
    ) -> FiscalPeriodInfo | None:
        """
        Decide whether an entry of ``kind`` may be dated ``entry_date``.

        Postconditions:
            - Returns the covering period (or None when no period covers the
              date and the tenant policy allows that).
            - The period row stays share-locked until the transaction ends.

        Raises:
            PeriodNotFoundError: No covering period and policy requires one.
            ClosedPeriodError: STANDARD entry into a CLOSING/CLOSED period.
            PeriodStateError: CLOSING entry outside a CLOSING period.
        """
        period = self._get_for_date(tenant_id, entry_date, lock_shared=True)
        kind = EntryKind(kind)

        if period is None:
            if self._policy.require_period:
                raise PeriodNotFoundError(str(entry_date))
            if kind == EntryKind.CLOSING:
                raise PeriodNotFoundError(str(entry_date))
            return None

        status = PeriodStatus(period.status)

        if kind == EntryKind.CLOSING:
            if status != PeriodStatus.CLOSING:
                raise PeriodStateError(period.period_code, status.value, "post closing entry to")
            return FiscalPeriodInfo.from_model(period)

        if kind == EntryKind.STANDARD and status != PeriodStatus.OPEN:
            logger.warning(
                "posting_rejected_closed_period",
                extra={
                    "tenant_id": str(tenant_id),
                    "period_code": period.period_code,
                    "entry_date": str(entry_date),
                    "period_status": status.value,
                },
            )
            raise ClosedPeriodError(period.period_code, str(entry_date))

        return FiscalPeriodInfo.from_model(period)

    def mark_reclose_required(self, tenant_id: UUID, entry_date: date) -> list[str]:
        """
        Flag every CLOSED period ending on or after ``entry_date``.

        Their cached balances no longer reflect the journal; LedgerProjector
        ignores them until PeriodCloser runs again.

        Returns:
            Codes of the periods flagged.
        """
        periods = self.session.execute(
            select(FiscalPeriod).where(
                FiscalPeriod.tenant_id == tenant_id,
                FiscalPeriod.status == PeriodStatus.CLOSED,
                FiscalPeriod.end_date >= entry_date,
            )
        ).scalars().all()

        flagged = []
        for period in periods:
            if not period.requires_reclose:
                period.requires_reclose = True
                flagged.append(period.period_code)
        if flagged:
            self.session.flush()
            logger.info(
                "period_reclose_required",
                extra={
                    "tenant_id": str(tenant_id),
                    "entry_date": str(entry_date),
                    "period_codes": flagged,
                },
            )
        return flagged

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def lock_for_close(self, tenant_id: UUID, period_end: date) -> FiscalPeriod:
        """
        Lock the period ending on ``period_end`` for closing.

        Returns the ORM row; intended for PeriodCloser only.

        Raises:
            PeriodNotFoundError: If no period ends on that date.
        """
        period = self.session.execute(
            select(FiscalPeriod)
            .where(
                FiscalPeriod.tenant_id == tenant_id,
                FiscalPeriod.end_date == period_end,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if period is None:
            raise PeriodNotFoundError(f"ending {period_end}")
        return period

    def begin_closing(self, tenant_id: UUID, period_code: str) -> FiscalPeriodInfo:
        """
        OPEN -> CLOSING.  Blocks ordinary postings while the close runs.

        Raises:
            PeriodNotFoundError: Unknown period.
            PeriodStateError: Period is not OPEN.
        """
        period = self._get_by_code(tenant_id, period_code)
        if period is None:
            raise PeriodNotFoundError(period_code)
        period = self.lock_for_close(tenant_id, period.end_date)
        if PeriodStatus(period.status) != PeriodStatus.OPEN:
            raise PeriodStateError(period_code, PeriodStatus(period.status).value, "begin closing")

        period.status = PeriodStatus.CLOSING
        self.session.flush()
        logger.info(
            "period_closing_begun",
            extra={"tenant_id": str(tenant_id), "period_code": period_code},
        )
        return FiscalPeriodInfo.from_model(period)

    def cancel_closing(self, tenant_id: UUID, period_code: str) -> FiscalPeriodInfo:
        """
        CLOSING -> OPEN.

        Raises:
            PeriodNotFoundError: Unknown period.
            PeriodStateError: Period is not CLOSING.
        """
        period = self._get_by_code(tenant_id, period_code)
        if period is None:
            raise PeriodNotFoundError(period_code)
        period = self.lock_for_close(tenant_id, period.end_date)
        if PeriodStatus(period.status) != PeriodStatus.CLOSING:
            raise PeriodStateError(period_code, PeriodStatus(period.status).value, "cancel closing")

        period.status = PeriodStatus.OPEN
        self.session.flush()
        logger.info(
            "period_closing_cancelled",
            extra={"tenant_id": str(tenant_id), "period_code": period_code},
        )
        return FiscalPeriodInfo.from_model(period)
