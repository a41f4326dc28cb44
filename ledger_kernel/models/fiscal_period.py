"""
Module: ledger_kernel.models.fiscal_period
Responsibility: ORM persistence for tenant fiscal periods and the
    OPEN -> CLOSING -> CLOSED state machine.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``period_code`` is unique per tenant (uq_period_tenant_code).
    - Date ranges do not overlap within a tenant (checked by PeriodService).
    - ``requires_reclose`` is set whenever an adjusting or reversing entry
      lands in (or before the end of) a closed period; snapshots of such a
      period are not trusted until PeriodCloser runs again.

Audit relevance:
    ``ledger_hash`` pins the canonical hash of every journal line dated on or
    before ``end_date`` at the time of the last close, so tampering can be
    detected by PeriodCloser.verify_period().
"""

from datetime import date, datetime
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TenantScopedBase


class PeriodStatus(str, Enum):
    """Fiscal period lifecycle."""

    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class FiscalPeriod(TenantScopedBase):
    """
    Fiscal period for posting control.

    Contract:
        Once CLOSING or CLOSED, ordinary postings dated inside the period are
        rejected.  Adjusting and reversing entries may still target a CLOSED
        period; they flag it for reclose.
    """

    __tablename__ = "fiscal_periods"

    __table_args__ = (
        UniqueConstraint("tenant_id", "period_code", name="uq_period_tenant_code"),
        Index("idx_period_tenant_dates", "tenant_id", "start_date", "end_date"),
    )

    # Period identifier (e.g., "2024-01", "2024-Q1", "FY2024")
    period_code: Mapped[str] = mapped_column(String(20), nullable=False)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Inclusive boundaries
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[PeriodStatus] = mapped_column(
        String(20),
        default=PeriodStatus.OPEN,
        nullable=False,
    )

    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    requires_reclose: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    ledger_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def __repr__(self) -> str:
        return f"<FiscalPeriod {self.period_code} {self.status}>"

    @property
    def is_open(self) -> bool:
        return self.status == PeriodStatus.OPEN

    @property
    def is_closed(self) -> bool:
        return self.status == PeriodStatus.CLOSED

    def contains_date(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date
