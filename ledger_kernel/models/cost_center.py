"""
Module: ledger_kernel.models.cost_center
Responsibility: ORM persistence for cost centers, the orthogonal tagging
    dimension on journal lines.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``code`` is stored normalized (trimmed, upper-case) and unique per
      tenant (uq_cost_center_tenant_code).
    - Hierarchy is a forest within a tenant (checked by CostCenterService).

Audit relevance:
    Cost centers never take part in the double-entry balance check; they only
    drive secondary aggregation in cost-center reports.
"""

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TenantScopedBase, UUIDString


class CostCenter(TenantScopedBase):
    """Hierarchical cost center owned by a tenant."""

    __tablename__ = "cost_centers"

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_cost_center_tenant_code"),
    )

    code: Mapped[str] = mapped_column(String(20), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("cost_centers.id"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<CostCenter {self.code}: {self.name}>"
