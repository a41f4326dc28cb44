"""
CostCenterService -- tenant cost centers, the secondary tagging dimension.

Responsibility:
    Creates, looks up, re-parents, deactivates and deletes cost centers.
    Codes are normalized (trimmed, upper-case) before uniqueness checks.

Architecture position:
    Kernel > Services -- imperative shell.  Typed repository for CostCenter.

Invariants enforced:
    - Normalized code is unique per tenant.
    - Hierarchy is a forest within the tenant (HierarchyArena).
    - A cost center tagged on any journal line cannot be deleted.

Failure modes:
    - DuplicateCostCenterCodeError, CostCenterNotFoundError,
      InvalidHierarchyError, CostCenterInUseError.
"""

from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import CostCenterInfo
from ledger_kernel.domain.hierarchy import HierarchyArena, HierarchyNode
from ledger_kernel.exceptions import (
    CostCenterInUseError,
    CostCenterNotFoundError,
    DuplicateCostCenterCodeError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.cost_center import CostCenter
from ledger_kernel.models.journal import JournalLine
from ledger_kernel.services.base import BaseService

logger = get_logger("services.cost_center")

_UNSET = object()


def normalize_cost_center_code(code: str) -> str:
    return code.strip().upper()


class CostCenterService(BaseService[CostCenter]):
    """Typed repository for a tenant's cost centers."""

    def __init__(self, session: Session):
        super().__init__(session)

    def _get_orm(self, tenant_id: UUID, cost_center_id: UUID) -> CostCenter:
        center = self.session.execute(
            select(CostCenter).where(
                CostCenter.tenant_id == tenant_id,
                CostCenter.id == cost_center_id,
            )
        ).scalar_one_or_none()
        if center is None:
            raise CostCenterNotFoundError(str(cost_center_id))
        return center

    def _find_by_code(self, tenant_id: UUID, code: str) -> CostCenter | None:
        return self.session.execute(
            select(CostCenter).where(
                CostCenter.tenant_id == tenant_id,
                CostCenter.code == code,
            )
        ).scalar_one_or_none()

    def arena(self, tenant_id: UUID) -> HierarchyArena[UUID]:
        """The tenant's cost-center forest as an id-indexed arena."""
        rows = self.session.execute(
            select(CostCenter.id, CostCenter.parent_id).where(
                CostCenter.tenant_id == tenant_id
            )
        ).all()
        return HierarchyArena(HierarchyNode(row.id, row.parent_id) for row in rows)

    def create_cost_center(
        self,
        tenant_id: UUID,
        *,
        code: str,
        name: str,
        parent_id: UUID | None = None,
        description: str | None = None,
        actor_id: UUID | None = None,
    ) -> CostCenterInfo:
        """
        Raises:
            DuplicateCostCenterCodeError: Normalized code already used.
            CostCenterNotFoundError: Parent missing or owned by another tenant.
        """
        normalized = normalize_cost_center_code(code)
        if not normalized:
            raise ValueError("cost center code is required")
        if self._find_by_code(tenant_id, normalized) is not None:
            raise DuplicateCostCenterCodeError(normalized)
        if parent_id is not None:
            self._get_orm(tenant_id, parent_id)

        center = CostCenter(
            tenant_id=tenant_id,
            code=normalized,
            name=name.strip(),
            description=description,
            parent_id=parent_id,
            is_active=True,
            created_by_id=actor_id,
        )
        self.session.add(center)
        self.session.flush()

        logger.info(
            "cost_center_created",
            extra={
                "tenant_id": str(tenant_id),
                "cost_center_id": str(center.id),
                "cost_center_code": normalized,
            },
        )
        return CostCenterInfo.from_model(center)

    def update_cost_center(
        self,
        tenant_id: UUID,
        cost_center_id: UUID,
        *,
        code: str | None = None,
        name: str | None = None,
        description: str | None = None,
        parent_id: UUID | None | object = _UNSET,
    ) -> CostCenterInfo:
        """
        Raises:
            DuplicateCostCenterCodeError: New code collides.
            InvalidHierarchyError: New parent closes a cycle.
        """
        center = self._get_orm(tenant_id, cost_center_id)

        if code is not None:
            normalized = normalize_cost_center_code(code)
            if normalized != center.code:
                if self._find_by_code(tenant_id, normalized) is not None:
                    raise DuplicateCostCenterCodeError(normalized)
                center.code = normalized
        if name is not None:
            center.name = name.strip()
        if description is not None:
            center.description = description
        if parent_id is not _UNSET:
            if parent_id is not None:
                self._get_orm(tenant_id, parent_id)
            self.arena(tenant_id).check_parent(center.id, parent_id)
            center.parent_id = parent_id

        self.session.flush()
        return CostCenterInfo.from_model(center)

    def deactivate_cost_center(self, tenant_id: UUID, cost_center_id: UUID) -> CostCenterInfo:
        center = self._get_orm(tenant_id, cost_center_id)
        center.is_active = False
        self.session.flush()
        logger.info(
            "cost_center_deactivated",
            extra={"tenant_id": str(tenant_id), "cost_center_id": str(cost_center_id)},
        )
        return CostCenterInfo.from_model(center)

    def delete_cost_center(self, tenant_id: UUID, cost_center_id: UUID) -> None:
        """
        Raises:
            CostCenterInUseError: Tagged on journal lines, or has children.
        """
        center = self._get_orm(tenant_id, cost_center_id)
        tagged = self.session.execute(
            select(exists().where(JournalLine.cost_center_id == center.id))
        ).scalar()
        if tagged:
            raise CostCenterInUseError(str(center.id), "tagged on journal lines")
        if self.arena(tenant_id).children(center.id):
            raise CostCenterInUseError(str(center.id), "has child cost centers")

        self.session.delete(center)
        self.session.flush()
        logger.info(
            "cost_center_deleted",
            extra={"tenant_id": str(tenant_id), "cost_center_id": str(cost_center_id)},
        )

    def get_cost_center(self, tenant_id: UUID, cost_center_id: UUID) -> CostCenterInfo:
        return CostCenterInfo.from_model(self._get_orm(tenant_id, cost_center_id))

    def get_cost_center_by_code(self, tenant_id: UUID, code: str) -> CostCenterInfo:
        center = self._find_by_code(tenant_id, normalize_cost_center_code(code))
        if center is None:
            raise CostCenterNotFoundError(code)
        return CostCenterInfo.from_model(center)

    def list_cost_centers(
        self, tenant_id: UUID, *, include_inactive: bool = True
    ) -> list[CostCenterInfo]:
        stmt = select(CostCenter).where(CostCenter.tenant_id == tenant_id)
        if not include_inactive:
            stmt = stmt.where(CostCenter.is_active.is_(True))
        centers = self.session.execute(stmt.order_by(CostCenter.code)).scalars().all()
        return [CostCenterInfo.from_model(c) for c in centers]

    def list_children(self, tenant_id: UUID, cost_center_id: UUID) -> list[CostCenterInfo]:
        self._get_orm(tenant_id, cost_center_id)
        child_ids = self.arena(tenant_id).children(cost_center_id)
        if not child_ids:
            return []
        centers = self.session.execute(
            select(CostCenter)
            .where(CostCenter.tenant_id == tenant_id, CostCenter.id.in_(child_ids))
            .order_by(CostCenter.code)
        ).scalars().all()
        return [CostCenterInfo.from_model(c) for c in centers]
