"""
Module: ledger_kernel.models.period_balance
Responsibility: Cached per-account balances for a closed fiscal period.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One row per (period, account) (uq_period_balance_account).
    - Balances are natural-signed (positive on the account's normal side).
    - ``closing_balance`` of a period equals ``opening_balance`` of the next
      closed period for every account.

Audit relevance:
    Rows are derived data.  They can always be rebuilt from journal lines,
    and PeriodCloser.verify_period() does exactly that to detect drift.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TenantScopedBase, UUIDString


class AccountPeriodBalance(TenantScopedBase):
    """Opening/closing snapshot of one account for one closed period."""

    __tablename__ = "account_period_balances"

    __table_args__ = (
        UniqueConstraint("period_id", "account_id", name="uq_period_balance_account"),
        Index("idx_period_balance_tenant_end", "tenant_id", "period_end"),
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("fiscal_periods.id"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    opening_balance: Mapped[int] = mapped_column(default=0, nullable=False)
    closing_balance: Mapped[int] = mapped_column(default=0, nullable=False)

    period_debit: Mapped[int] = mapped_column(default=0, nullable=False)
    period_credit: Mapped[int] = mapped_column(default=0, nullable=False)
