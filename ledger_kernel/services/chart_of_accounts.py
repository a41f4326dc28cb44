"""
ChartOfAccountsService -- tenant chart of accounts and its hierarchy.

Responsibility:
    Creates, looks up, re-parents, deactivates and deletes accounts, and
    seeds a tenant's chart from a seed list.  Every hierarchy change is
    checked against an id-indexed arena of the tenant's accounts (cycles) and
    the tenant's HierarchyRules (allowed parent/child types).

Architecture position:
    Kernel > Services -- imperative shell.  Typed repository for Account;
    the only writer of the ``accounts`` table.

Invariants enforced:
    - Account codes are unique per tenant.
    - The hierarchy is a forest confined to one tenant.
    - account_type is frozen once any journal line references the account.
    - Referenced accounts cannot be deleted.
    - Flush-only: never commits or rolls back.

Failure modes:
    - DuplicateAccountCodeError, AccountNotFoundError,
      InvalidHierarchyError, AccountInUseError.

Audit relevance:
    Account creation, re-parenting, type changes and (de)activation are
    logged with tenant_id, account_id and code.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.balance import normal_balance
from ledger_kernel.domain.dtos import AccountInfo
from ledger_kernel.domain.hierarchy import HierarchyArena, HierarchyNode
from ledger_kernel.domain.policy import KernelPolicy
from ledger_kernel.exceptions import (
    AccountInUseError,
    AccountNotFoundError,
    DuplicateAccountCodeError,
    InvalidHierarchyError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountType, NormalBalance
from ledger_kernel.models.journal import JournalLine
from ledger_kernel.services.base import BaseService

logger = get_logger("services.chart_of_accounts")

# Sentinel for "parent not supplied" (None means "make it a root")
_UNSET = object()


@dataclass(frozen=True)
class AccountSeed:
    """One account in a seed chart; ``parent_code`` refers to an earlier seed."""

    code: str
    name: str
    account_type: AccountType
    parent_code: str | None = None
    tags: tuple[str, ...] = ()


class ChartOfAccountsService(BaseService[Account]):
    """
    Typed repository and rules for a tenant's chart of accounts.

    Contract:
        Every method takes ``tenant_id`` explicitly and only ever sees that
        tenant's accounts.  Returns ``AccountInfo`` DTOs.

    Non-goals:
        - Does NOT compute balances (LedgerProjector).
    """

    def __init__(self, session: Session, policy: KernelPolicy | None = None):
        super().__init__(session)
        self._policy = policy or KernelPolicy()

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _get_orm(self, tenant_id: UUID, account_id: UUID) -> Account:
        account = self.session.execute(
            select(Account).where(
                Account.tenant_id == tenant_id,
                Account.id == account_id,
            )
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def _find_by_code(self, tenant_id: UUID, code: str) -> Account | None:
        return self.session.execute(
            select(Account).where(
                Account.tenant_id == tenant_id,
                Account.code == code,
            )
        ).scalar_one_or_none()

    def _arena(self, tenant_id: UUID) -> HierarchyArena[UUID]:
        rows = self.session.execute(
            select(Account.id, Account.parent_id).where(Account.tenant_id == tenant_id)
        ).all()
        return HierarchyArena(HierarchyNode(row.id, row.parent_id) for row in rows)

    def _check_parent_type(
        self, node_id: UUID | None, parent: Account, child_type: AccountType
    ) -> None:
        parent_type = AccountType(parent.account_type)
        if not self._policy.hierarchy.allows(parent_type, child_type):
            raise InvalidHierarchyError(
                str(node_id) if node_id else None,
                str(parent.id),
                f"{child_type.value} account cannot be nested under "
                f"{parent_type.value} account {parent.code}",
            )

    def is_referenced(self, account_id: UUID) -> bool:
        """True if any journal line references the account."""
        return bool(
            self.session.execute(
                select(exists().where(JournalLine.account_id == account_id))
            ).scalar()
        )

    # =========================================================================
    # Commands
    # =========================================================================

    def create_account(
        self,
        tenant_id: UUID,
        *,
        code: str,
        name: str,
        account_type: AccountType | str,
        parent_id: UUID | None = None,
        tags: Iterable[str] = (),
        actor_id: UUID | None = None,
    ) -> AccountInfo:
        """
        Create an account in the tenant's chart.

        Preconditions:
            - ``code`` is non-empty.
        Postconditions:
            - The account is flushed and active.

        Raises:
            DuplicateAccountCodeError: Code already used by the tenant.
            AccountNotFoundError: Parent missing or owned by another tenant.
            InvalidHierarchyError: Parent type disallows this child type.
        """
        code = code.strip()
        if not code:
            raise ValueError("account code is required")
        account_type = AccountType(account_type)

        if self._find_by_code(tenant_id, code) is not None:
            raise DuplicateAccountCodeError(code)

        if parent_id is not None:
            parent = self._get_orm(tenant_id, parent_id)
            self._check_parent_type(None, parent, account_type)

        account = Account(
            tenant_id=tenant_id,
            code=code,
            name=name,
            account_type=account_type,
            parent_id=parent_id,
            is_active=True,
            tags=list(tags) or None,
            created_by_id=actor_id,
        )
        self.session.add(account)
        self.session.flush()

        logger.info(
            "account_created",
            extra={
                "tenant_id": str(tenant_id),
                "account_id": str(account.id),
                "account_code": code,
                "account_type": account_type.value,
            },
        )
        return AccountInfo.from_model(account)

    def update_account(
        self,
        tenant_id: UUID,
        account_id: UUID,
        *,
        name: str | None = None,
        account_type: AccountType | str | None = None,
        parent_id: UUID | None | object = _UNSET,
        actor_id: UUID | None = None,
    ) -> AccountInfo:
        """
        Rename, retype or re-parent an account.

        Raises:
            AccountNotFoundError: Account or new parent missing.
            AccountInUseError: Type change on a referenced account.
            InvalidHierarchyError: New parent closes a cycle or its type
                disallows this account's type.
        """
        account = self._get_orm(tenant_id, account_id)

        new_type = AccountType(account.account_type)
        if account_type is not None and AccountType(account_type) != new_type:
            if self.is_referenced(account.id):
                raise AccountInUseError(
                    str(account.id), "account type is locked once referenced"
                )
            new_type = AccountType(account_type)

        if parent_id is not _UNSET:
            if parent_id is not None:
                parent = self._get_orm(tenant_id, parent_id)
                self._check_parent_type(account.id, parent, new_type)
            self._arena(tenant_id).check_parent(account.id, parent_id)
            account.parent_id = parent_id
        elif account.parent_id is not None and new_type != AccountType(account.account_type):
            parent = self._get_orm(tenant_id, account.parent_id)
            self._check_parent_type(account.id, parent, new_type)

        if new_type != AccountType(account.account_type):
            for child_id in self._arena(tenant_id).children(account.id):
                child = self._get_orm(tenant_id, child_id)
                if not self._policy.hierarchy.allows(new_type, AccountType(child.account_type)):
                    raise InvalidHierarchyError(
                        str(child.id),
                        str(account.id),
                        f"child {child.code} type not allowed under {new_type.value}",
                    )
            account.account_type = new_type

        if name is not None:
            account.name = name
        account.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "account_updated",
            extra={
                "tenant_id": str(tenant_id),
                "account_id": str(account.id),
                "account_code": account.code,
            },
        )
        return AccountInfo.from_model(account)

    def deactivate_account(self, tenant_id: UUID, account_id: UUID) -> AccountInfo:
        """Inactive accounts reject new postings but stay in reports."""
        account = self._get_orm(tenant_id, account_id)
        account.is_active = False
        self.session.flush()
        logger.info(
            "account_deactivated",
            extra={"tenant_id": str(tenant_id), "account_id": str(account_id)},
        )
        return AccountInfo.from_model(account)

    def reactivate_account(self, tenant_id: UUID, account_id: UUID) -> AccountInfo:
        account = self._get_orm(tenant_id, account_id)
        account.is_active = True
        self.session.flush()
        logger.info(
            "account_reactivated",
            extra={"tenant_id": str(tenant_id), "account_id": str(account_id)},
        )
        return AccountInfo.from_model(account)

    def delete_account(self, tenant_id: UUID, account_id: UUID) -> None:
        """
        Delete an unreferenced leaf account.

        Raises:
            AccountNotFoundError: Unknown account.
            AccountInUseError: A journal line references the account.
            InvalidHierarchyError: The account has children.
        """
        account = self._get_orm(tenant_id, account_id)
        if self.is_referenced(account.id):
            raise AccountInUseError(str(account.id))
        self._arena(tenant_id).remove(account.id)

        self.session.delete(account)
        self.session.flush()
        logger.info(
            "account_deleted",
            extra={
                "tenant_id": str(tenant_id),
                "account_id": str(account_id),
                "account_code": account.code,
            },
        )

    def seed_chart(
        self,
        tenant_id: UUID,
        seeds: Iterable[AccountSeed],
        actor_id: UUID | None = None,
    ) -> list[AccountInfo]:
        """
        Create accounts from a seed list, parents before children.

        Codes that already exist for the tenant are skipped, so seeding is
        safe to repeat.

        Returns:
            The accounts created by this call.
        """
        created: list[AccountInfo] = []
        for seed in seeds:
            if self._find_by_code(tenant_id, seed.code) is not None:
                continue
            parent_id = None
            if seed.parent_code is not None:
                parent = self._find_by_code(tenant_id, seed.parent_code)
                if parent is None:
                    raise AccountNotFoundError(seed.parent_code)
                parent_id = parent.id
            created.append(
                self.create_account(
                    tenant_id,
                    code=seed.code,
                    name=seed.name,
                    account_type=seed.account_type,
                    parent_id=parent_id,
                    tags=seed.tags,
                    actor_id=actor_id,
                )
            )
        logger.info(
            "chart_seeded",
            extra={"tenant_id": str(tenant_id), "created_count": len(created)},
        )
        return created

    # =========================================================================
    # Queries
    # =========================================================================

    @staticmethod
    def normal_balance(account_type: AccountType | str) -> NormalBalance:
        """DEBIT for ASSET/EXPENSE, CREDIT for LIABILITY/EQUITY/REVENUE."""
        return normal_balance(account_type)

    def get_account(self, tenant_id: UUID, account_id: UUID) -> AccountInfo:
        """
        Raises:
            AccountNotFoundError: Unknown id, or id of another tenant.
        """
        return AccountInfo.from_model(self._get_orm(tenant_id, account_id))

    def get_account_by_code(self, tenant_id: UUID, code: str) -> AccountInfo:
        account = self._find_by_code(tenant_id, code)
        if account is None:
            raise AccountNotFoundError(code)
        return AccountInfo.from_model(account)

    def list_accounts(
        self, tenant_id: UUID, *, include_inactive: bool = True
    ) -> list[AccountInfo]:
        stmt = select(Account).where(Account.tenant_id == tenant_id)
        if not include_inactive:
            stmt = stmt.where(Account.is_active.is_(True))
        accounts = self.session.execute(stmt.order_by(Account.code)).scalars().all()
        return [AccountInfo.from_model(a) for a in accounts]

    def list_children(
        self, tenant_id: UUID, account_id: UUID, *, recursive: bool = False
    ) -> list[AccountInfo]:
        """
        Direct children of an account (or all descendants), ordered by code.

        Raises:
            AccountNotFoundError: Unknown account.
        """
        self._get_orm(tenant_id, account_id)
        arena = self._arena(tenant_id)
        ids = arena.descendants(account_id) if recursive else arena.children(account_id)
        if not ids:
            return []
        accounts = self.session.execute(
            select(Account)
            .where(Account.tenant_id == tenant_id, Account.id.in_(ids))
            .order_by(Account.code)
        ).scalars().all()
        return [AccountInfo.from_model(a) for a in accounts]
