"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the tenant's Chart of Accounts -- the
    target of every journal line.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``code`` is unique per tenant (uq_account_tenant_code).
    - ``account_type`` is immutable once referenced by a journal line
      (enforced by ChartOfAccountsService and db/immutability.py).
    - ``normal_balance`` is derived from ``account_type`` and never stored.

Failure modes:
    - IntegrityError on a duplicate (tenant_id, code) that bypassed the
      service-level DuplicateAccountCodeError check.

Audit relevance:
    Account rows define the structure of the general ledger.  Changing the
    type of a referenced account would flip the sign of historical balances,
    so the type is locked once referenced.
"""

from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TenantScopedBase, UUIDString

if TYPE_CHECKING:
    from ledger_kernel.models.journal import JournalLine


class AccountType(str, Enum):
    """Types of accounts in the chart of accounts."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class NormalBalance(str, Enum):
    """Normal balance side for an account."""

    DEBIT = "debit"
    CREDIT = "credit"


class AccountTag(str, Enum):
    """Standard tags for account categorization."""

    CASH = "cash"
    RETAINED_EARNINGS = "retained_earnings"
    RECEIVABLE = "receivable"
    PAYABLE = "payable"
    TAX = "tax"


NOMINAL_ACCOUNT_TYPES = frozenset({AccountType.REVENUE, AccountType.EXPENSE})


class Account(TenantScopedBase):
    """
    Chart of accounts entry.

    Contract:
        Each account has a tenant-unique code, a type that determines its
        normal balance, and an optional parent within the same tenant.

    Guarantees:
        - normal_balance is always consistent with account_type.
        - Hierarchy is a forest; cycles are rejected by the service layer.

    Non-goals:
        - Does not store balances.  Balances are projected from journal lines
          (LedgerProjector) or cached per closed period (AccountPeriodBalance).
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_account_tenant_code"),
        Index("idx_account_tenant_type", "tenant_id", "account_type"),
        Index("idx_account_parent", "parent_id"),
    )

    # Account code (e.g., "110505", "4135")
    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Tags for categorization (e.g., ["cash"], ["retained_earnings"])
    tags: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    journal_lines: Mapped[list["JournalLine"]] = relationship(
        "JournalLine",
        back_populates="account",
        lazy="dynamic",
    )

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"

    @property
    def normal_balance(self) -> NormalBalance:
        from ledger_kernel.domain.balance import normal_balance

        return normal_balance(AccountType(self.account_type))

    @property
    def is_nominal(self) -> bool:
        return AccountType(self.account_type) in NOMINAL_ACCOUNT_TYPES

    def has_tag(self, tag: str | AccountTag) -> bool:
        """Check if account has a specific tag."""
        if self.tags is None:
            return False
        tag_value = tag.value if isinstance(tag, AccountTag) else tag
        return tag_value in self.tags
