"""
PolicyRegistry -- which TenantPolicy governs which tenant.

Tenants without an explicit registration fall back to the registry's
default policy, which is the packaged ``defaults/policy.yaml`` unless the
caller supplies another one.
"""

from __future__ import annotations

from uuid import UUID

from ledger_config.loader import load_policy
from ledger_config.schema import TenantPolicy
from ledger_kernel.domain.policy import KernelPolicy
from ledger_kernel.logging_config import get_logger

logger = get_logger("config.registry")


class PolicyRegistry:
    """
    In-memory tenant -> policy map.

    Contract:
        ``get()`` always returns a policy; unregistered tenants receive
        the default.

    Non-goals:
        - Does NOT persist registrations.
    """

    def __init__(self, default: TenantPolicy | None = None):
        self._default = default if default is not None else load_policy()
        self._policies: dict[UUID, TenantPolicy] = {}

    @property
    def default(self) -> TenantPolicy:
        return self._default

    def register(self, tenant_id: UUID, policy: TenantPolicy) -> None:
        self._policies[tenant_id] = policy
        logger.info(
            "policy_registered",
            extra={
                "tenant_id": str(tenant_id),
                "policy_name": policy.name,
                "policy_version": policy.version,
                "checksum": policy.checksum,
            },
        )

    def get(self, tenant_id: UUID) -> TenantPolicy:
        return self._policies.get(tenant_id, self._default)

    def kernel_policy(self, tenant_id: UUID) -> KernelPolicy:
        return self.get(tenant_id).to_kernel_policy()

    def __contains__(self, tenant_id: UUID) -> bool:
        return tenant_id in self._policies
