"""
Policy Loader (``ledger_config.loader``).

Responsibility
--------------
Loads tenant policy and seed charts from YAML and parses them into the
frozen dataclasses of ``ledger_config.schema`` and the kernel's
``AccountSeed``.

Architecture position
---------------------
**Config layer** -- sits above ``ledger_kernel``.  The kernel never reads
YAML; callers pass it the ``KernelPolicy`` bridged from a ``TenantPolicy``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required fields have no silent defaults.
* ``compute_checksum`` is a deterministic SHA-256 over the raw document,
  stored on the parsed policy as its identity.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown account type, activity or tax kind  -> ``ValueError``.
* Missing required keys  -> ``KeyError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

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
from ledger_kernel.domain.policy import DEFAULT_RETAINED_EARNINGS_CODE, HierarchyRules
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import AccountTag, AccountType
from ledger_kernel.services.chart_of_accounts import AccountSeed

logger = get_logger("config.loader")

DEFAULTS_DIR = Path(__file__).parent / "defaults"
DEFAULT_POLICY_PATH = DEFAULTS_DIR / "policy.yaml"
DEFAULT_CHART_PATH = DEFAULTS_DIR / "chart_of_accounts.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _codes(values: Any, field_name: str) -> tuple[str, ...]:
    if values is None:
        return ()
    if not isinstance(values, (list, tuple)):
        raise ValueError(f"{field_name} must be a list of account code prefixes")
    return tuple(str(v) for v in values)


def parse_hierarchy(data: dict[str, Any] | None) -> HierarchyRules:
    """``allowed_children: {parent_type: [child_type, ...]}``; absent means same-type only."""
    if not data:
        return HierarchyRules()
    allowed = data["allowed_children"]
    return HierarchyRules(
        allowed_children={
            AccountType(parent): frozenset(AccountType(child) for child in children)
            for parent, children in allowed.items()
        }
    )


def parse_statements(data: dict[str, Any] | None) -> StatementClassification:
    if not data:
        return StatementClassification()
    defaults = StatementClassification()
    return StatementClassification(
        cost_of_sales_prefixes=_codes(
            data.get("cost_of_sales_prefixes", defaults.cost_of_sales_prefixes),
            "cost_of_sales_prefixes",
        ),
        current_earnings_label=data.get(
            "current_earnings_label", defaults.current_earnings_label
        ),
    )


def parse_cash_flow(data: dict[str, Any] | None) -> CashFlowMapping:
    if not data:
        return CashFlowMapping()
    defaults = CashFlowMapping()
    activity_prefixes = tuple(
        (str(prefix), CashFlowActivity(activity))
        for prefix, activity in (data.get("activity_prefixes") or {}).items()
    )
    return CashFlowMapping(
        cash_prefixes=_codes(data.get("cash_prefixes", defaults.cash_prefixes), "cash_prefixes"),
        activity_prefixes=activity_prefixes,
        default_activity=CashFlowActivity(
            data.get("default_activity", defaults.default_activity.value)
        ),
    )


def parse_aging(data: dict[str, Any] | None) -> AgingPolicy:
    if not data:
        return AgingPolicy()
    defaults = AgingPolicy()
    buckets = defaults.buckets
    if data.get("buckets"):
        buckets = tuple(
            AgingBucket(
                label=str(item["label"]),
                min_days=item.get("min_days"),
                max_days=item.get("max_days"),
            )
            for item in data["buckets"]
        )
    terms = defaults.payment_terms
    if data.get("payment_terms"):
        terms = tuple(
            (str(name).upper(), int(days)) for name, days in data["payment_terms"].items()
        )
    return AgingPolicy(
        buckets=buckets,
        payment_terms=terms,
        default_terms_days=int(data.get("default_terms_days", defaults.default_terms_days)),
    )


def parse_tax_rule(data: dict[str, Any]) -> TaxRule:
    rate_bp = int(data["rate_bp"])
    if rate_bp < 0:
        raise ValueError(f"tax rule {data['account_code']}: rate_bp must be >= 0")
    return TaxRule(
        account_code=str(data["account_code"]),
        kind=TaxKind(data["kind"]),
        rate_bp=rate_bp,
        label=data.get("label", ""),
    )


def parse_tax(data: dict[str, Any] | None) -> TaxPolicy:
    if not data:
        return TaxPolicy()
    return TaxPolicy(
        rules=tuple(parse_tax_rule(r) for r in data.get("rules") or ()),
        discrepancy_tolerance=int(data.get("discrepancy_tolerance", 1)),
        withholding_min_base=int(data.get("withholding_min_base", 0)),
    )


def parse_policy(data: dict[str, Any]) -> TenantPolicy:
    """
    Parse a ``TenantPolicy`` from a dict.

    Preconditions:
        - ``data`` contains ``name``.  Every section is optional and
          falls back to the schema defaults.
    Raises:
        KeyError: if required keys are missing.
        ValueError: on unknown enum values or invalid numbers.
    """
    return TenantPolicy(
        name=data["name"],
        version=int(data.get("version", 1)),
        currency=data.get("currency", "COP"),
        hierarchy=parse_hierarchy(data.get("hierarchy")),
        require_period=bool(data.get("require_period", False)),
        retained_earnings_code=str(
            data.get("retained_earnings_code", DEFAULT_RETAINED_EARNINGS_CODE)
        ),
        statements=parse_statements(data.get("statements")),
        cash_flow=parse_cash_flow(data.get("cash_flow")),
        aging=parse_aging(data.get("aging")),
        tax=parse_tax(data.get("tax")),
        checksum=compute_checksum(data),
    )


def load_policy(path: Path | None = None) -> TenantPolicy:
    """Load a tenant policy file; the packaged default when ``path`` is None."""
    path = Path(path) if path is not None else DEFAULT_POLICY_PATH
    policy = parse_policy(load_yaml_file(path))
    logger.info(
        "policy_loaded",
        extra={
            "path": str(path),
            "policy_name": policy.name,
            "policy_version": policy.version,
            "checksum": policy.checksum,
        },
    )
    return policy


def parse_chart_seeds(data: dict[str, Any]) -> list[AccountSeed]:
    """
    Parse ``accounts: [{code, name, type, parent?, tags?}]``.

    Raises:
        ValueError: if a parent code refers to an account not listed
            earlier in the document, or a tag is not an ``AccountTag``.
    """
    seeds: list[AccountSeed] = []
    seen: set[str] = set()
    for item in data["accounts"]:
        code = str(item["code"])
        parent = str(item["parent"]) if item.get("parent") is not None else None
        if parent is not None and parent not in seen:
            raise ValueError(f"account {code}: parent {parent} must be listed before it")
        seeds.append(
            AccountSeed(
                code=code,
                name=item["name"],
                account_type=AccountType(item["type"]),
                parent_code=parent,
                tags=tuple(AccountTag(t).value for t in item.get("tags") or ()),
            )
        )
        seen.add(code)
    return seeds


def load_chart_seeds(path: Path | None = None) -> list[AccountSeed]:
    """Load a seed chart; the packaged PUC chart when ``path`` is None."""
    path = Path(path) if path is not None else DEFAULT_CHART_PATH
    return parse_chart_seeds(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Postconditions:
        - Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
