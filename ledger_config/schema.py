"""
Tenant policy schema.

Defines the per-tenant policy tables the ledger consults: which account
types may nest, where closed net income goes, how accounts are grouped on
statements and in the cash flow, the aging buckets and payment terms, and
the tax rules that drive VAT and withholding summaries.

YAML documents are parsed into these types by ``ledger_config.loader``.
``TenantPolicy.to_kernel_policy()`` bridges the subset the kernel enforces
into a ``KernelPolicy``; the kernel never imports this package.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ledger_kernel.domain.policy import (
    DEFAULT_RETAINED_EARNINGS_CODE,
    HierarchyRules,
    KernelPolicy,
)

# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------


def longest_prefix(code: str, prefixes) -> str | None:
    """Longest entry of ``prefixes`` that ``code`` starts with."""
    best = None
    for prefix in prefixes:
        if code.startswith(prefix) and (best is None or len(prefix) > len(best)):
            best = prefix
    return best


@dataclass(frozen=True)
class StatementClassification:
    """Income statement grouping of EXPENSE accounts by code prefix."""

    cost_of_sales_prefixes: tuple[str, ...] = ("6",)
    current_earnings_label: str = "Current earnings"

    def is_cost_of_sales(self, code: str) -> bool:
        return longest_prefix(code, self.cost_of_sales_prefixes) is not None


# ---------------------------------------------------------------------------
# Cash flow
# ---------------------------------------------------------------------------


class CashFlowActivity(str, Enum):
    OPERATING = "operating"
    INVESTING = "investing"
    FINANCING = "financing"


@dataclass(frozen=True)
class CashFlowMapping:
    """
    Cash accounts and the activity bucket of every other account.

    An account is cash when its code starts with one of ``cash_prefixes``.
    A counterpart account is bucketed by the longest matching entry of
    ``activity_prefixes``; unmatched accounts fall into ``default_activity``.
    """

    cash_prefixes: tuple[str, ...] = ("11",)
    activity_prefixes: tuple[tuple[str, CashFlowActivity], ...] = ()
    default_activity: CashFlowActivity = CashFlowActivity.OPERATING

    def is_cash(self, code: str) -> bool:
        return longest_prefix(code, self.cash_prefixes) is not None

    def activity_for(self, code: str) -> CashFlowActivity:
        mapping = dict(self.activity_prefixes)
        prefix = longest_prefix(code, mapping)
        return mapping[prefix] if prefix is not None else self.default_activity


# ---------------------------------------------------------------------------
# Aging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AgingBucket:
    """Items ``min_days <= days_past_due <= max_days`` (open-ended when None)."""

    label: str
    min_days: int | None = None
    max_days: int | None = None

    def contains(self, days: int) -> bool:
        if self.min_days is not None and days < self.min_days:
            return False
        if self.max_days is not None and days > self.max_days:
            return False
        return True


DEFAULT_AGING_BUCKETS: tuple[AgingBucket, ...] = (
    AgingBucket("current", None, 0),
    AgingBucket("1-30", 1, 30),
    AgingBucket("31-60", 31, 60),
    AgingBucket("61-90", 61, 90),
    AgingBucket("90+", 91, None),
)

DEFAULT_PAYMENT_TERMS: tuple[tuple[str, int], ...] = (
    ("IMMEDIATE", 0),
    ("NET_15", 15),
    ("NET_30", 30),
    ("NET_60", 60),
)


@dataclass(frozen=True)
class AgingPolicy:
    """
    Aging buckets and payment terms.

    The first bucket is the "current" bucket; every later bucket counts
    as overdue.  Buckets must cover every integer day count exactly once.
    """

    buckets: tuple[AgingBucket, ...] = DEFAULT_AGING_BUCKETS
    payment_terms: tuple[tuple[str, int], ...] = DEFAULT_PAYMENT_TERMS
    default_terms_days: int = 30

    def __post_init__(self):
        if not self.buckets:
            raise ValueError("aging policy needs at least one bucket")
        labels = [b.label for b in self.buckets]
        if len(set(labels)) != len(labels):
            raise ValueError(f"duplicate aging bucket labels: {labels}")

    @property
    def labels(self) -> tuple[str, ...]:
        return tuple(b.label for b in self.buckets)

    def bucket_for(self, days_past_due: int) -> str:
        for bucket in self.buckets:
            if bucket.contains(days_past_due):
                return bucket.label
        raise ValueError(f"no aging bucket covers {days_past_due} days")

    def terms_days(self, terms: str | None) -> int:
        if terms is None:
            return self.default_terms_days
        return dict(self.payment_terms).get(terms.upper(), self.default_terms_days)


# ---------------------------------------------------------------------------
# Tax
# ---------------------------------------------------------------------------


class TaxKind(str, Enum):
    VAT_GENERATED = "vat_generated"
    VAT_DEDUCTIBLE = "vat_deductible"
    WITHHOLDING_PAYABLE = "withholding_payable"
    WITHHOLDING_RECEIVABLE = "withholding_receivable"


VAT_KINDS = frozenset({TaxKind.VAT_GENERATED, TaxKind.VAT_DEDUCTIBLE})
WITHHOLDING_KINDS = frozenset(
    {TaxKind.WITHHOLDING_PAYABLE, TaxKind.WITHHOLDING_RECEIVABLE}
)


@dataclass(frozen=True)
class TaxRule:
    """A tax account and its rate in basis points (1900 = 19%)."""

    account_code: str
    kind: TaxKind
    rate_bp: int
    label: str = ""

    def tax_on(self, base: int) -> int:
        """Tax on ``base`` rounded half up to the minor unit."""
        return (base * self.rate_bp + 5000) // 10000

    def base_for(self, tax: int) -> int:
        """Taxable base implied by a posted tax amount."""
        if self.rate_bp == 0:
            return 0
        return (tax * 10000 + self.rate_bp // 2) // self.rate_bp


@dataclass(frozen=True)
class TaxPolicy:
    """
    Tax rules keyed by account code.

    ``discrepancy_tolerance`` is the largest difference (minor units)
    between ``tax_base x rate`` and the posted tax amount that is still
    treated as rounding.
    """

    rules: tuple[TaxRule, ...] = ()
    discrepancy_tolerance: int = 1
    withholding_min_base: int = 0

    def __post_init__(self):
        codes = [r.account_code for r in self.rules]
        if len(set(codes)) != len(codes):
            raise ValueError(f"duplicate tax rule account codes: {codes}")

    def rule_for(self, account_code: str) -> TaxRule | None:
        for rule in self.rules:
            if rule.account_code == account_code:
                return rule
        return None

    def rules_of(self, kinds) -> tuple[TaxRule, ...]:
        return tuple(r for r in self.rules if r.kind in kinds)


# ---------------------------------------------------------------------------
# Tenant policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TenantPolicy:
    """Everything configurable per tenant."""

    name: str = "default"
    version: int = 1
    currency: str = "COP"
    hierarchy: HierarchyRules = field(default_factory=HierarchyRules)
    require_period: bool = False
    retained_earnings_code: str = DEFAULT_RETAINED_EARNINGS_CODE
    statements: StatementClassification = field(default_factory=StatementClassification)
    cash_flow: CashFlowMapping = field(default_factory=CashFlowMapping)
    aging: AgingPolicy = field(default_factory=AgingPolicy)
    tax: TaxPolicy = field(default_factory=TaxPolicy)
    checksum: str = ""

    def to_kernel_policy(self) -> KernelPolicy:
        return KernelPolicy(
            hierarchy=self.hierarchy,
            require_period=self.require_period,
            retained_earnings_code=self.retained_earnings_code,
        )
