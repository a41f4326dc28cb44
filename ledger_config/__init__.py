"""
ledger_config -- per-tenant accounting policy.

Responsibility:
    Parses tenant policy YAML (hierarchy rules, retained-earnings account,
    statement and cash-flow classification, aging buckets, tax rules) into
    frozen dataclasses and keeps the tenant -> policy registry.

Architecture position:
    Configuration -- sits above ``ledger_kernel`` and below
    ``ledger_reports``.  The kernel MUST NEVER import from
    ``ledger_config``; ``TenantPolicy.to_kernel_policy()`` is the bridge.

Failure modes:
    - ``FileNotFoundError`` -- policy or chart file missing.
    - ``ValueError`` / ``KeyError`` -- schema violations.
    - ``yaml.YAMLError`` -- malformed YAML.

Audit relevance:
    Every loaded policy carries a SHA-256 ``checksum`` of its source
    document; ``policy_loaded`` and ``policy_registered`` log it.
"""

from ledger_config.loader import (
    DEFAULT_CHART_PATH,
    DEFAULT_POLICY_PATH,
    compute_checksum,
    load_chart_seeds,
    load_policy,
    parse_chart_seeds,
    parse_policy,
)
from ledger_config.registry import PolicyRegistry
from ledger_config.schema import (
    AgingBucket,
    AgingPolicy,
    CashFlowActivity,
    CashFlowMapping,
    StatementClassification,
    TaxKind,
    TaxPolicy,
    TaxRule,
    TenantPolicy,
)
from ledger_kernel.domain.policy import HierarchyRules

__all__ = [
    "AgingBucket",
    "AgingPolicy",
    "CashFlowActivity",
    "CashFlowMapping",
    "DEFAULT_CHART_PATH",
    "DEFAULT_POLICY_PATH",
    "HierarchyRules",
    "PolicyRegistry",
    "StatementClassification",
    "TaxKind",
    "TaxPolicy",
    "TaxRule",
    "TenantPolicy",
    "compute_checksum",
    "load_chart_seeds",
    "load_policy",
    "parse_chart_seeds",
    "parse_policy",
]
