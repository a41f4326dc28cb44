"""
Report Builder Service (``ledger_reports.service``).

Responsibility
--------------
Orchestrates report generation -- trial balance, general ledger, general
journal, balance sheet, income statement, cash flow, cost-center balances,
AR/AP aging and tax summaries -- by bridging the kernel selectors
(``LedgerProjector``, ``JournalSelector``) to the pure transformation
functions in ``statements``, ``aging`` and ``tax``.  This is a
**read-only** service: no journal entries are posted.

Architecture position
---------------------
**Reports layer** -- sits above ``ledger_kernel`` and ``ledger_config``.
Constructor: ``session`` + ``clock`` + ``policies``.

Invariants enforced
-------------------
* Read-only -- no mutations to the journal.
* ``tenant_id`` is an explicit argument of every report.
* Trial balance, balance sheet and cash flow verify their accounting
  identity before returning.

Failure modes
-------------
* ``InvalidDateRangeError`` -- ``date_from > date_to``.
* ``AccountNotFoundError`` / ``CostCenterNotFoundError`` -- unknown filter.
* ``LedgerIntegrityError`` -- an identity check fails; logged at ERROR
  as ``ledger_integrity_violation`` and always propagated.

Audit relevance
---------------
Structured log events are emitted for every report generation, carrying
report type, tenant and range.  Reports are derived from the immutable
journal -- they do not modify it.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_config.registry import PolicyRegistry
from ledger_config.schema import VAT_KINDS, WITHHOLDING_KINDS, TenantPolicy
from ledger_kernel.domain.balance import natural_balance
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import AccountInfo
from ledger_kernel.exceptions import InvalidDateRangeError, LedgerIntegrityError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.selectors.journal_selector import JournalSelector
from ledger_kernel.selectors.ledger_projector import LedgerProjector
from ledger_kernel.services.cost_center_service import CostCenterService
from ledger_reports.aging import OpenItem, build_aging
from ledger_reports.models import (
    AgingReport,
    BalanceSheetReport,
    CashFlowReport,
    CostCenterReport,
    GeneralJournalReport,
    GeneralLedgerReport,
    IncomeStatementReport,
    ReportMetadata,
    ReportType,
    TaxPeriod,
    TaxYearSummaryReport,
    TrialBalanceReport,
    VatDeclarationReport,
    WithholdingSummaryReport,
)
from ledger_reports.statements import (
    build_balance_sheet,
    build_cash_flow,
    build_cost_center_report,
    build_general_journal,
    build_general_ledger,
    build_income_statement,
    build_trial_balance,
    render_to_dict,
)
from ledger_reports.tax import (
    build_tax_year_summary,
    build_vat_declaration,
    build_withholding_summary,
    month_period,
    vat_period_range,
)

logger = get_logger("reports.service")


def _check_range(date_from: date, date_to: date) -> None:
    if date_from > date_to:
        raise InvalidDateRangeError(str(date_from), str(date_to))


def _render_filters(filters: dict[str, object] | None) -> tuple[tuple[str, str], ...] | None:
    if not filters:
        return None
    rendered = tuple(sorted((k, str(v)) for k, v in filters.items() if v is not None))
    return rendered or None


class ReportBuilder:
    """
    Report generation service.

    Contract
    --------
    * Every public method returns a frozen report dataclass.
    * All methods are **read-only**.

    Guarantees
    ----------
    * Report generation delegates to pure transformation functions; this
      class only loads data and checks identities.
    * Clock is injectable for deterministic ``generated_at`` stamps.
    * Empty ledgers produce valid reports with zero totals.

    Non-goals
    ---------
    * Does NOT post journal entries.
    * Does NOT enforce fiscal-period locks.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policies: PolicyRegistry | TenantPolicy | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        if isinstance(policies, TenantPolicy):
            policies = PolicyRegistry(default=policies)
        self._policies = policies or PolicyRegistry()
        self._projector = LedgerProjector(session)
        self._journal = JournalSelector(session)
        self._cost_centers = CostCenterService(session)

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def policy(self, tenant_id: UUID) -> TenantPolicy:
        return self._policies.get(tenant_id)

    def _build_metadata(
        self,
        tenant_id: UUID,
        report_type: ReportType,
        date_from: date | None = None,
        date_to: date | None = None,
        as_of: date | None = None,
        filters: dict[str, object] | None = None,
    ) -> ReportMetadata:
        return ReportMetadata(
            tenant_id=tenant_id,
            report_type=report_type,
            currency=self.policy(tenant_id).currency,
            generated_at=self._clock.now().isoformat(),
            date_from=date_from,
            date_to=date_to,
            as_of=as_of,
            filters=_render_filters(filters),
        )

    def _integrity_failure(
        self,
        tenant_id: UUID,
        report_type: ReportType,
        check: str,
        expected: int,
        actual: int,
    ) -> LedgerIntegrityError:
        logger.error(
            "ledger_integrity_violation",
            extra={
                "tenant_id": str(tenant_id),
                "report_type": report_type.value,
                "check": check,
                "expected": expected,
                "actual": actual,
            },
        )
        return LedgerIntegrityError(check, expected, actual)

    def _accounts_by_id(self, tenant_id: UUID) -> dict[UUID, AccountInfo]:
        return {a.account_id: a for a in self._projector.accounts(tenant_id)}

    # =========================================================================
    # Trial balance / ledgers / journal
    # =========================================================================

    def trial_balance(
        self, tenant_id: UUID, date_from: date, date_to: date
    ) -> TrialBalanceReport:
        """
        Opening, period movement and closing balance per account.

        Raises:
            InvalidDateRangeError: date_from > date_to.
            LedgerIntegrityError: debit-normal and credit-normal closing
                balances differ.
        """
        _check_range(date_from, date_to)
        with LogContext.bind(tenant_id=str(tenant_id)):
            accounts = self._projector.accounts(tenant_id)
            opening = self._projector.balances_before(tenant_id, accounts, date_from)
            period = self._journal.account_totals(
                tenant_id, date_from=date_from, date_to=date_to
            )
            metadata = self._build_metadata(
                tenant_id, ReportType.TRIAL_BALANCE, date_from, date_to
            )
            report = build_trial_balance(accounts, opening, period, metadata)
            if not report.is_balanced:
                raise self._integrity_failure(
                    tenant_id,
                    ReportType.TRIAL_BALANCE,
                    "trial_balance",
                    report.debit_normal_total,
                    report.credit_normal_total,
                )
            logger.info(
                "trial_balance_generated",
                extra={
                    "date_from": str(date_from),
                    "date_to": str(date_to),
                    "line_count": len(report.lines),
                    "total_period_debit": report.total_period_debit,
                },
            )
            return report

    def general_ledger(
        self,
        tenant_id: UUID,
        date_from: date,
        date_to: date,
        *,
        account_ids: Iterable[UUID] | None = None,
        cost_center_id: UUID | None = None,
    ) -> GeneralLedgerReport:
        """
        One section per account.  Without an account filter, accounts with
        no movements in range are skipped.
        """
        _check_range(date_from, date_to)
        if cost_center_id is not None:
            self._cost_centers.get_cost_center(tenant_id, cost_center_id)
        wanted = list(account_ids) if account_ids is not None else None
        ledgers = self._projector.project(
            tenant_id, wanted, date_from, date_to, cost_center_id=cost_center_id
        )
        metadata = self._build_metadata(
            tenant_id,
            ReportType.GENERAL_LEDGER,
            date_from,
            date_to,
            filters={"cost_center_id": cost_center_id},
        )
        report = build_general_ledger(ledgers.values(), metadata, skip_empty=wanted is None)
        logger.info(
            "general_ledger_generated",
            extra={
                "tenant_id": str(tenant_id),
                "date_from": str(date_from),
                "date_to": str(date_to),
                "section_count": len(report.sections),
            },
        )
        return report

    def general_journal(
        self, tenant_id: UUID, date_from: date, date_to: date
    ) -> GeneralJournalReport:
        _check_range(date_from, date_to)
        entries = self._journal.entries_in_range(tenant_id, date_from, date_to)
        metadata = self._build_metadata(
            tenant_id, ReportType.GENERAL_JOURNAL, date_from, date_to
        )
        report = build_general_journal(entries, self._accounts_by_id(tenant_id), metadata)
        logger.info(
            "general_journal_generated",
            extra={
                "tenant_id": str(tenant_id),
                "date_from": str(date_from),
                "date_to": str(date_to),
                "entry_count": len(report.entries),
            },
        )
        return report

    # =========================================================================
    # Financial statements
    # =========================================================================

    def balance_sheet(self, tenant_id: UUID, as_of: date) -> BalanceSheetReport:
        """
        Assets, liabilities and equity from inception to ``as_of``.

        Raises:
            LedgerIntegrityError: assets != liabilities + equity.
        """
        accounts = self._projector.accounts(tenant_id)
        balances = self._projector.balances_before(
            tenant_id, accounts, as_of + timedelta(days=1)
        )
        metadata = self._build_metadata(tenant_id, ReportType.BALANCE_SHEET, as_of=as_of)
        report = build_balance_sheet(
            accounts, balances, self.policy(tenant_id).statements, metadata
        )
        if not report.is_balanced:
            raise self._integrity_failure(
                tenant_id,
                ReportType.BALANCE_SHEET,
                "balance_sheet",
                report.total_assets,
                report.total_liabilities_and_equity,
            )
        logger.info(
            "balance_sheet_generated",
            extra={
                "tenant_id": str(tenant_id),
                "as_of": str(as_of),
                "total_assets": report.total_assets,
                "current_earnings": report.current_earnings,
            },
        )
        return report

    def income_statement(
        self,
        tenant_id: UUID,
        date_from: date,
        date_to: date,
        *,
        cost_center_id: UUID | None = None,
    ) -> IncomeStatementReport:
        """
        Revenue and expense movement strictly within the range.

        Closing entries are excluded so a closed period still shows its
        results.
        """
        _check_range(date_from, date_to)
        if cost_center_id is not None:
            self._cost_centers.get_cost_center(tenant_id, cost_center_id)
        accounts = [a for a in self._projector.accounts(tenant_id) if a.is_nominal]
        totals = self._journal.account_totals(
            tenant_id,
            date_from=date_from,
            date_to=date_to,
            account_ids=[a.account_id for a in accounts],
            cost_center_ids=[cost_center_id] if cost_center_id is not None else None,
            include_closing=False,
        )
        movements = {
            a.account_id: natural_balance(
                totals[a.account_id].debit, totals[a.account_id].credit, a.normal_balance
            )
            for a in accounts
            if a.account_id in totals
        }
        metadata = self._build_metadata(
            tenant_id,
            ReportType.INCOME_STATEMENT,
            date_from,
            date_to,
            filters={"cost_center_id": cost_center_id},
        )
        report = build_income_statement(
            accounts, movements, self.policy(tenant_id).statements, metadata
        )
        logger.info(
            "income_statement_generated",
            extra={
                "tenant_id": str(tenant_id),
                "date_from": str(date_from),
                "date_to": str(date_to),
                "net_income": report.net_income,
            },
        )
        return report

    def cash_flow(self, tenant_id: UUID, date_from: date, date_to: date) -> CashFlowReport:
        """
        Direct-method cash flow classified by the tenant's activity mapping.

        Raises:
            LedgerIntegrityError: opening cash + net change != closing cash.
        """
        _check_range(date_from, date_to)
        mapping = self.policy(tenant_id).cash_flow
        accounts = self._accounts_by_id(tenant_id)
        cash_ids = [a.account_id for a in accounts.values() if mapping.is_cash(a.code)]

        def cash_before(before: date) -> int:
            if not cash_ids:
                return 0
            totals = self._journal.account_totals(
                tenant_id, before=before, account_ids=cash_ids
            )
            return sum(t.debit - t.credit for t in totals.values())

        opening = cash_before(date_from)
        closing = cash_before(date_to + timedelta(days=1))
        entries = self._journal.entries_in_range(tenant_id, date_from, date_to)
        metadata = self._build_metadata(tenant_id, ReportType.CASH_FLOW, date_from, date_to)
        report = build_cash_flow(entries, accounts, mapping, opening, closing, metadata)
        if report.opening_cash + report.net_change != report.closing_cash:
            raise self._integrity_failure(
                tenant_id,
                ReportType.CASH_FLOW,
                "cash_flow",
                report.closing_cash,
                report.opening_cash + report.net_change,
            )
        logger.info(
            "cash_flow_generated",
            extra={
                "tenant_id": str(tenant_id),
                "date_from": str(date_from),
                "date_to": str(date_to),
                "net_change": report.net_change,
            },
        )
        return report

    # =========================================================================
    # Cost centers
    # =========================================================================

    def cost_center_balances(
        self,
        tenant_id: UUID,
        date_from: date,
        date_to: date,
        *,
        cost_center_id: UUID | None = None,
    ) -> CostCenterReport:
        """
        Balances grouped by cost center then account.  With
        ``cost_center_id`` the report covers that center and its
        descendants.  Untagged lines are excluded.
        """
        _check_range(date_from, date_to)
        arena = self._cost_centers.arena(tenant_id)
        centers = self._cost_centers.list_cost_centers(tenant_id)
        if cost_center_id is not None:
            self._cost_centers.get_cost_center(tenant_id, cost_center_id)
            scope = {cost_center_id, *arena.descendants(cost_center_id)}
            centers = [c for c in centers if c.cost_center_id in scope]

        ledgers = {
            center.cost_center_id: self._projector.project(
                tenant_id, None, date_from, date_to, cost_center_id=center.cost_center_id
            ).values()
            for center in centers
        }
        metadata = self._build_metadata(
            tenant_id,
            ReportType.COST_CENTER_BALANCES,
            date_from,
            date_to,
            filters={"cost_center_id": cost_center_id},
        )
        report = build_cost_center_report(centers, arena, ledgers, metadata)
        logger.info(
            "cost_center_balances_generated",
            extra={
                "tenant_id": str(tenant_id),
                "date_from": str(date_from),
                "date_to": str(date_to),
                "center_count": len(report.centers),
            },
        )
        return report

    # =========================================================================
    # Aging
    # =========================================================================

    def _aging(
        self,
        tenant_id: UUID,
        as_of: date,
        items: Iterable[OpenItem],
        report_type: ReportType,
    ) -> AgingReport:
        metadata = self._build_metadata(tenant_id, report_type, as_of=as_of)
        report = build_aging(items, as_of, self.policy(tenant_id).aging, metadata)
        logger.info(
            f"{report_type.value}_generated",
            extra={
                "tenant_id": str(tenant_id),
                "as_of": str(as_of),
                "party_count": len(report.rows),
                "total_overdue": report.total_overdue,
            },
        )
        return report

    def receivables_aging(
        self, tenant_id: UUID, as_of: date, items: Iterable[OpenItem]
    ) -> AgingReport:
        """Customer balances by days past due."""
        return self._aging(tenant_id, as_of, items, ReportType.RECEIVABLES_AGING)

    def payables_aging(
        self, tenant_id: UUID, as_of: date, items: Iterable[OpenItem]
    ) -> AgingReport:
        """Supplier balances by days past due."""
        return self._aging(tenant_id, as_of, items, ReportType.PAYABLES_AGING)

    # =========================================================================
    # Tax
    # =========================================================================

    def _tax_accounts(self, tenant_id: UUID, kinds) -> dict[UUID, AccountInfo]:
        codes = {r.account_code for r in self.policy(tenant_id).tax.rules_of(kinds)}
        return {
            a.account_id: a
            for a in self._projector.accounts(tenant_id)
            if a.code in codes
        }

    def vat_declaration(
        self,
        tenant_id: UUID,
        date_from: date,
        date_to: date,
        *,
        period: TaxPeriod | None = None,
    ) -> VatDeclarationReport:
        """Generated and deductible VAT per rate with reconciliation."""
        _check_range(date_from, date_to)
        accounts = self._tax_accounts(tenant_id, VAT_KINDS)
        ids = list(accounts)
        lines = self._journal.lines(
            tenant_id, date_from=date_from, date_to=date_to, account_ids=ids
        ) if ids else []
        totals = self._journal.account_totals(
            tenant_id, date_from=date_from, date_to=date_to, account_ids=ids
        ) if ids else {}
        metadata = self._build_metadata(
            tenant_id, ReportType.VAT_DECLARATION, date_from, date_to
        )
        report = build_vat_declaration(
            lines, accounts, self.policy(tenant_id).tax, totals, metadata, period
        )
        log = logger.info if report.is_reconciled and not report.discrepancies else logger.warning
        log(
            "vat_declaration_generated",
            extra={
                "tenant_id": str(tenant_id),
                "date_from": str(date_from),
                "date_to": str(date_to),
                "net_payable": report.net_payable,
                "is_reconciled": report.is_reconciled,
                "discrepancy_count": len(report.discrepancies),
            },
        )
        return report

    def vat_declaration_for_bimester(
        self, tenant_id: UUID, year: int, bimester: int
    ) -> VatDeclarationReport:
        period = vat_period_range(year, bimester)
        return self.vat_declaration(
            tenant_id, period.date_from, period.date_to, period=period
        )

    def withholding_summary(
        self,
        tenant_id: UUID,
        date_from: date,
        date_to: date,
        *,
        period: TaxPeriod | None = None,
    ) -> WithholdingSummaryReport:
        """Withholding per counterparty and rate."""
        _check_range(date_from, date_to)
        accounts = self._tax_accounts(tenant_id, WITHHOLDING_KINDS)
        lines = self._journal.lines(
            tenant_id, date_from=date_from, date_to=date_to, account_ids=list(accounts)
        ) if accounts else []
        metadata = self._build_metadata(
            tenant_id, ReportType.WITHHOLDING_SUMMARY, date_from, date_to
        )
        report = build_withholding_summary(
            lines, accounts, self.policy(tenant_id).tax, metadata, period
        )
        logger.info(
            "withholding_summary_generated",
            extra={
                "tenant_id": str(tenant_id),
                "date_from": str(date_from),
                "date_to": str(date_to),
                "row_count": len(report.rows),
                "total_payable": report.total_payable,
            },
        )
        return report

    def withholding_summary_for_month(
        self, tenant_id: UUID, year: int, month: int
    ) -> WithholdingSummaryReport:
        period = month_period(year, month)
        return self.withholding_summary(
            tenant_id, period.date_from, period.date_to, period=period
        )

    def tax_year_summary(
        self, tenant_id: UUID, year: int, as_of: date | None = None
    ) -> TaxYearSummaryReport:
        """
        Year-to-date VAT and withholding totals from January 1 through
        ``as_of`` (December 31 when omitted or later).  An ``as_of`` before
        the year starts gives an all-zero summary.
        """
        date_from = date(year, 1, 1)
        date_to = date(year, 12, 31)
        if as_of is not None and as_of < date_to:
            date_to = as_of
        metadata = self._build_metadata(
            tenant_id, ReportType.TAX_YEAR_SUMMARY, date_from, date_to, as_of=date_to
        )
        if date_to < date_from:
            report = TaxYearSummaryReport(
                metadata=metadata,
                year=year,
                vat_generated=0,
                vat_deductible=0,
                net_vat=0,
                withholding_base=0,
                withholding_payable=0,
                withholding_receivable=0,
            )
        else:
            vat = self.vat_declaration(tenant_id, date_from, date_to)
            withholding = self.withholding_summary(tenant_id, date_from, date_to)
            report = build_tax_year_summary(year, vat, withholding, metadata)
        logger.info(
            "tax_year_summary_generated",
            extra={
                "tenant_id": str(tenant_id),
                "year": year,
                "net_vat": report.net_vat,
                "withholding_payable": report.withholding_payable,
            },
        )
        return report

    # =========================================================================
    # Rendering
    # =========================================================================

    def to_dict(self, report: object) -> dict:
        """Convert any report to a plain dict for JSON serialization."""
        return render_to_dict(report)
