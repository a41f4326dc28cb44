"""
Report Domain Models (``ledger_reports.models``).

Responsibility
--------------
Frozen dataclass value objects for every report the ledger produces:
trial balance, general ledger, general journal, balance sheet, income
statement, cash flow, cost-center balances, AR/AP aging and the tax
summaries (VAT declaration, withholding, year-to-date).

Architecture position
---------------------
**Reports layer** -- pure data definitions with ZERO I/O.  Built by the
pure functions in ``statements``, ``aging`` and ``tax`` and returned by
``ReportBuilder``.

Invariants enforced
-------------------
* All models are ``frozen=True`` (immutable after construction).
* All monetary fields are ``int`` minor units -- NEVER ``float``.
* Balances are natural-signed: positive on the account's normal side.

Audit relevance
---------------
* ``ReportMetadata`` records the tenant, range and generation timestamp
  so a report can be regenerated and compared.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from uuid import UUID

from ledger_kernel.domain.dtos import LedgerMovement


# =========================================================================
# Enums
# =========================================================================


class ReportType(str, Enum):
    """Types of ledger reports."""

    TRIAL_BALANCE = "trial_balance"
    GENERAL_LEDGER = "general_ledger"
    GENERAL_JOURNAL = "general_journal"
    BALANCE_SHEET = "balance_sheet"
    INCOME_STATEMENT = "income_statement"
    CASH_FLOW = "cash_flow"
    COST_CENTER_BALANCES = "cost_center_balances"
    RECEIVABLES_AGING = "receivables_aging"
    PAYABLES_AGING = "payables_aging"
    VAT_DECLARATION = "vat_declaration"
    WITHHOLDING_SUMMARY = "withholding_summary"
    TAX_YEAR_SUMMARY = "tax_year_summary"


# =========================================================================
# Report Metadata (common to all reports)
# =========================================================================


@dataclass(frozen=True)
class ReportMetadata:
    """Metadata attached to every report."""

    tenant_id: UUID
    report_type: ReportType
    currency: str
    generated_at: str  # ISO format timestamp from injected clock
    date_from: date | None = None
    date_to: date | None = None
    as_of: date | None = None
    filters: tuple[tuple[str, str], ...] | None = None


# =========================================================================
# Trial Balance
# =========================================================================


@dataclass(frozen=True)
class TrialBalanceLine:
    """
    One account row.

    ``closing_debit``/``closing_credit`` place the closing balance in the
    debit or credit column; a negative natural balance lands on the side
    opposite the account's normal side.
    """

    account_id: UUID
    account_code: str
    account_name: str
    account_type: str
    normal_balance: str
    opening_balance: int
    period_debit: int
    period_credit: int
    closing_balance: int
    closing_debit: int
    closing_credit: int


@dataclass(frozen=True)
class TrialBalanceReport:
    metadata: ReportMetadata
    lines: tuple[TrialBalanceLine, ...]
    total_period_debit: int
    total_period_credit: int
    total_closing_debit: int
    total_closing_credit: int
    debit_normal_total: int
    credit_normal_total: int
    is_balanced: bool


# =========================================================================
# General Ledger / General Journal
# =========================================================================


@dataclass(frozen=True)
class GeneralLedgerSection:
    """One account's ledger: opening, ordered movements, closing."""

    account_id: UUID
    account_code: str
    account_name: str
    account_type: str
    opening_balance: int
    movements: tuple[LedgerMovement, ...]
    total_debit: int
    total_credit: int
    closing_balance: int


@dataclass(frozen=True)
class GeneralLedgerReport:
    metadata: ReportMetadata
    sections: tuple[GeneralLedgerSection, ...]
    total_debit: int
    total_credit: int


@dataclass(frozen=True)
class JournalReportLine:
    line_seq: int
    account_id: UUID
    account_code: str
    account_name: str
    debit: int
    credit: int
    cost_center_id: UUID | None = None
    memo: str | None = None


@dataclass(frozen=True)
class JournalReportEntry:
    entry_id: UUID
    entry_number: int
    reference: str
    entry_date: date
    description: str
    kind: str
    source_type: str
    source_id: str | None
    lines: tuple[JournalReportLine, ...]
    total_debit: int
    total_credit: int
    reversal_of_id: UUID | None = None


@dataclass(frozen=True)
class GeneralJournalReport:
    metadata: ReportMetadata
    entries: tuple[JournalReportEntry, ...]
    total_debit: int
    total_credit: int


# =========================================================================
# Balance Sheet / Income Statement
# =========================================================================


@dataclass(frozen=True)
class StatementLine:
    """
    A statement row.  ``account_id`` is None for synthetic rows such as
    current earnings.
    """

    account_id: UUID | None
    account_code: str
    account_name: str
    balance: int


@dataclass(frozen=True)
class StatementSection:
    label: str
    lines: tuple[StatementLine, ...]
    total: int


@dataclass(frozen=True)
class BalanceSheetReport:
    metadata: ReportMetadata
    assets: StatementSection
    liabilities: StatementSection
    equity: StatementSection
    current_earnings: int
    total_assets: int
    total_liabilities: int
    total_equity: int
    total_liabilities_and_equity: int
    is_balanced: bool


@dataclass(frozen=True)
class IncomeStatementReport:
    metadata: ReportMetadata
    revenue: StatementSection
    cost_of_sales: StatementSection
    operating_expenses: StatementSection
    total_revenue: int
    total_cost_of_sales: int
    gross_profit: int
    total_operating_expenses: int
    net_income: int


# =========================================================================
# Cash Flow
# =========================================================================


@dataclass(frozen=True)
class CashFlowItem:
    """Net cash effect of one counterpart account (positive = inflow)."""

    account_id: UUID
    account_code: str
    account_name: str
    amount: int


@dataclass(frozen=True)
class CashFlowSection:
    activity: str
    items: tuple[CashFlowItem, ...]
    inflows: int
    outflows: int
    net: int


@dataclass(frozen=True)
class CashFlowReport:
    metadata: ReportMetadata
    operating: CashFlowSection
    investing: CashFlowSection
    financing: CashFlowSection
    opening_cash: int
    total_inflows: int
    total_outflows: int
    net_change: int
    closing_cash: int


# =========================================================================
# Cost Centers
# =========================================================================


@dataclass(frozen=True)
class CostCenterAccountLine:
    account_id: UUID
    account_code: str
    account_name: str
    account_type: str
    opening_balance: int
    period_debit: int
    period_credit: int
    closing_balance: int


@dataclass(frozen=True)
class CostCenterBalance:
    """
    Balances tagged with one cost center.

    ``lines`` and the ``total_*`` fields cover lines tagged with this
    center only; ``rollup_*`` add every descendant center.
    """

    cost_center_id: UUID
    code: str
    name: str
    parent_id: UUID | None
    lines: tuple[CostCenterAccountLine, ...]
    total_debit: int
    total_credit: int
    rollup_lines: tuple[CostCenterAccountLine, ...]
    rollup_debit: int
    rollup_credit: int


@dataclass(frozen=True)
class CostCenterReport:
    metadata: ReportMetadata
    centers: tuple[CostCenterBalance, ...]


# =========================================================================
# Aging
# =========================================================================


@dataclass(frozen=True)
class AgingRow:
    """Open balance of one party split into aging buckets."""

    party_id: str
    party_name: str
    buckets: tuple[tuple[str, int], ...]
    total_overdue: int
    total_balance: int
    document_count: int

    def amount_in(self, label: str) -> int:
        return dict(self.buckets).get(label, 0)


@dataclass(frozen=True)
class AgingReport:
    metadata: ReportMetadata
    bucket_labels: tuple[str, ...]
    rows: tuple[AgingRow, ...]
    totals: tuple[tuple[str, int], ...]
    total_overdue: int
    total_balance: int

    def total_in(self, label: str) -> int:
        return dict(self.totals).get(label, 0)


# =========================================================================
# Tax
# =========================================================================


@dataclass(frozen=True)
class TaxPeriod:
    """A declaration window, e.g. bimester 1 = January-February."""

    year: int
    number: int
    date_from: date
    date_to: date
    label: str


@dataclass(frozen=True)
class VatRateLine:
    account_code: str
    label: str
    rate_bp: int
    taxable_base: int
    tax_amount: int
    entry_count: int


@dataclass(frozen=True)
class TaxReconciliation:
    """Reported tax against the ledger movement of one tax account."""

    account_code: str
    reported_tax: int
    ledger_movement: int
    difference: int


@dataclass(frozen=True)
class TaxDiscrepancy:
    """A line whose posted tax does not match ``tax_base x rate``."""

    entry_id: UUID
    entry_number: int
    entry_date: date
    account_code: str
    taxable_base: int
    posted_tax: int
    expected_tax: int
    difference: int


@dataclass(frozen=True)
class VatDeclarationReport:
    metadata: ReportMetadata
    generated: tuple[VatRateLine, ...]
    deductible: tuple[VatRateLine, ...]
    total_generated_base: int
    total_generated: int
    total_deductible_base: int
    total_deductible: int
    net_payable: int
    reconciliation: tuple[TaxReconciliation, ...]
    discrepancies: tuple[TaxDiscrepancy, ...]
    is_reconciled: bool
    period: TaxPeriod | None = None


@dataclass(frozen=True)
class WithholdingRow:
    counterparty_id: str | None
    kind: str
    account_code: str
    label: str
    rate_bp: int
    total_base: int
    total_withheld: int
    entry_count: int


@dataclass(frozen=True)
class WithholdingSummaryReport:
    metadata: ReportMetadata
    rows: tuple[WithholdingRow, ...]
    total_base: int
    total_payable: int
    total_receivable: int
    discrepancies: tuple[TaxDiscrepancy, ...]
    period: TaxPeriod | None = None


@dataclass(frozen=True)
class TaxYearSummaryReport:
    metadata: ReportMetadata
    year: int
    vat_generated: int
    vat_deductible: int
    net_vat: int
    withholding_base: int
    withholding_payable: int
    withholding_receivable: int
