"""
Kernel policy -- the tenant-configurable rules the kernel itself enforces.

Responsibility:
    Holds the small set of knobs the kernel services consult: which account
    types may nest under which, whether every posting date must fall in a
    defined fiscal period, and which account receives closed net income.

Architecture position:
    Kernel > Domain -- pure data.  The kernel never reads configuration
    files; ``ledger_config`` parses tenant YAML and bridges it into a
    ``KernelPolicy`` that callers pass to services.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from ledger_kernel.models.account import AccountType


def _same_type_only() -> dict[AccountType, frozenset[AccountType]]:
    return {t: frozenset({t}) for t in AccountType}


@dataclass(frozen=True)
class HierarchyRules:
    """
    Allowed child account types per parent type.

    The default only allows an account to nest under a parent of the same
    type (an EXPENSE account cannot sit under an ASSET account).
    """

    allowed_children: Mapping[AccountType, frozenset[AccountType]] = field(
        default_factory=_same_type_only
    )

    def allows(self, parent_type: AccountType, child_type: AccountType) -> bool:
        allowed = self.allowed_children.get(AccountType(parent_type), frozenset())
        return AccountType(child_type) in allowed


DEFAULT_RETAINED_EARNINGS_CODE = "3705"


@dataclass(frozen=True)
class KernelPolicy:
    hierarchy: HierarchyRules = field(default_factory=HierarchyRules)
    # When True, a posting date outside every defined period is rejected
    require_period: bool = False
    retained_earnings_code: str = DEFAULT_RETAINED_EARNINGS_CODE
