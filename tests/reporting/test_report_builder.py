"""
ReportBuilder over a posted two-month scenario.

January-February 2024:
    - Capital contribution into the bank
    - Cash sale with 19% VAT, tagged to the sales cost center
    - Supplies bought on credit with deductible VAT, tagged to admin
    - Supplier paid from the bank
    - Office equipment bought from the bank
    - Payroll paid from the bank, tagged to the northern sales region
"""

from dataclasses import dataclass
from datetime import date
from uuid import UUID, uuid4

import pytest
from sqlalchemy import select

from ledger_config.schema import TenantPolicy
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    CostCenterNotFoundError,
    InvalidDateRangeError,
    LedgerIntegrityError,
    PeriodStateError,
)
from ledger_kernel.models.period_balance import AccountPeriodBalance
from ledger_reports.aging import OpenItem
from ledger_reports.models import ReportType
from ledger_reports.service import ReportBuilder

JAN_1 = date(2024, 1, 1)
FEB_29 = date(2024, 2, 29)


@dataclass
class Scenario:
    ledger: object
    sales_center: UUID
    north_center: UUID
    admin_center: UUID


@pytest.fixture
def scenario(ledger, chart, cost_centers, tenant_id) -> Scenario:
    equipment = chart.create_account(
        tenant_id, code="1524", name="Equipo de Oficina", account_type="asset"
    )
    ledger.accounts["1524"] = equipment

    sales = cost_centers.create_cost_center(tenant_id, code="VEN", name="Ventas")
    north = cost_centers.create_cost_center(
        tenant_id, code="VEN-N", name="Ventas Norte", parent_id=sales.cost_center_id
    )
    admin = cost_centers.create_cost_center(tenant_id, code="ADM", name="Administracion")

    ledger.post(
        date(2024, 1, 2),
        ledger.dr("111005", 10000000),
        ledger.cr("3105", 10000000),
        description="Aporte de capital",
        source_type="capital",
    )
    ledger.post(
        date(2024, 1, 15),
        ledger.dr("110505", 119000),
        ledger.cr("413505", 100000, cost_center_id=sales.cost_center_id),
        ledger.cr("240805", 19000, tax_base=100000),
        description="Venta de contado",
        source_type="invoice",
        source_id="FV-001",
    )
    ledger.post(
        date(2024, 1, 20),
        ledger.dr("5195", 200000, cost_center_id=admin.cost_center_id),
        ledger.dr("241205", 38000, tax_base=200000),
        ledger.cr("220505", 238000),
        description="Compra de papeleria",
        source_type="bill",
        source_id="FC-100",
    )
    ledger.post(
        date(2024, 2, 10),
        ledger.dr("220505", 238000),
        ledger.cr("111005", 238000),
        description="Pago a proveedor",
        source_type="payment",
    )
    ledger.post(
        date(2024, 2, 12),
        ledger.dr("1524", 500000),
        ledger.cr("111005", 500000),
        description="Compra de equipo",
        source_type="bill",
    )
    ledger.post(
        date(2024, 2, 28),
        ledger.dr("5105", 300000, cost_center_id=north.cost_center_id),
        ledger.cr("111005", 300000),
        description="Nomina febrero",
        source_type="payroll",
    )
    return Scenario(ledger, sales.cost_center_id, north.cost_center_id, admin.cost_center_id)


def _by_code(lines):
    return {line.account_code: line for line in lines}


class TestTrialBalance:

    def test_scenario(self, report_builder, scenario, tenant_id, deterministic_clock):
        report = report_builder.trial_balance(tenant_id, JAN_1, FEB_29)
        lines = _by_code(report.lines)

        assert report.is_balanced
        assert report.debit_normal_total == report.credit_normal_total == 10081000
        assert lines["111005"].closing_balance == 8962000
        assert lines["220505"].closing_balance == 0
        assert (lines["220505"].period_debit, lines["220505"].period_credit) == (238000, 238000)
        # Deductible VAT sits in a liability account with a debit balance
        assert lines["241205"].closing_balance == -38000
        assert lines["241205"].closing_debit == 38000
        assert report.total_closing_debit == report.total_closing_credit
        assert report.metadata.report_type == ReportType.TRIAL_BALANCE
        assert report.metadata.currency == "COP"
        assert report.metadata.generated_at == deterministic_clock.now().isoformat()

    def test_cash_sale_with_vat(self, report_builder, ledger, tenant_id):
        ledger.sale(date(2024, 1, 5), 100000, 19000)
        report = report_builder.trial_balance(tenant_id, JAN_1, date(2024, 1, 31))
        lines = _by_code(report.lines)
        assert set(lines) == {"110505", "413505", "240805"}
        assert lines["110505"].closing_balance == 119000
        assert lines["413505"].closing_balance == 100000
        assert lines["240805"].closing_balance == 19000
        assert report.is_balanced

    def test_opening_carries_prior_activity(self, report_builder, scenario, tenant_id):
        report = report_builder.trial_balance(tenant_id, date(2024, 2, 1), FEB_29)
        lines = _by_code(report.lines)
        assert lines["111005"].opening_balance == 10000000
        assert lines["111005"].closing_balance == 8962000
        assert lines["413505"].opening_balance == 100000
        assert (lines["413505"].period_debit, lines["413505"].period_credit) == (0, 0)

    def test_empty_ledger(self, report_builder, puc_chart, tenant_id):
        report = report_builder.trial_balance(tenant_id, JAN_1, FEB_29)
        assert report.lines == ()
        assert report.is_balanced

    def test_inverted_range(self, report_builder, tenant_id):
        with pytest.raises(InvalidDateRangeError):
            report_builder.trial_balance(tenant_id, FEB_29, JAN_1)

    def test_generation_logged(self, report_builder, scenario, tenant_id, captured_logs):
        report_builder.trial_balance(tenant_id, JAN_1, FEB_29)
        event = next(r for r in captured_logs() if r["message"] == "trial_balance_generated")
        assert event["tenant_id"] == str(tenant_id)
        assert event["date_from"] == "2024-01-01"


class TestLedgerAndJournal:

    def test_general_ledger_skips_idle_accounts(self, report_builder, scenario, tenant_id):
        report = report_builder.general_ledger(tenant_id, JAN_1, FEB_29)
        codes = [s.account_code for s in report.sections]
        assert codes == sorted(codes)
        assert "111005" in codes
        assert "130505" not in codes
        assert report.total_debit == report.total_credit

    def test_general_ledger_account_filter(self, report_builder, scenario, tenant_id):
        bank = scenario.ledger.account("111005").account_id
        idle = scenario.ledger.account("130505").account_id
        report = report_builder.general_ledger(
            tenant_id, JAN_1, FEB_29, account_ids=[bank, idle]
        )
        sections = _by_code(report.sections)
        assert set(sections) == {"111005", "130505"}
        assert [m.running_balance for m in sections["111005"].movements] == [
            10000000,
            9762000,
            9262000,
            8962000,
        ]
        assert sections["130505"].movements == ()

    def test_general_ledger_cost_center_filter(self, report_builder, scenario, tenant_id):
        report = report_builder.general_ledger(
            tenant_id, JAN_1, FEB_29, cost_center_id=scenario.admin_center
        )
        assert [s.account_code for s in report.sections] == ["5195"]
        assert report.metadata.filters == (("cost_center_id", str(scenario.admin_center)),)

    def test_unknown_filters(self, report_builder, scenario, tenant_id):
        with pytest.raises(CostCenterNotFoundError):
            report_builder.general_ledger(tenant_id, JAN_1, FEB_29, cost_center_id=uuid4())
        with pytest.raises(AccountNotFoundError):
            report_builder.general_ledger(tenant_id, JAN_1, FEB_29, account_ids=[uuid4()])

    def test_general_journal(self, report_builder, scenario, tenant_id):
        report = report_builder.general_journal(tenant_id, JAN_1, date(2024, 1, 31))
        assert [e.reference for e in report.entries] == ["CE-00001", "CE-00002", "CE-00003"]
        sale = report.entries[1]
        assert sale.source_id == "FV-001"
        assert [ln.account_code for ln in sale.lines] == ["110505", "413505", "240805"]
        assert report.total_debit == report.total_credit == 10357000


class TestStatements:

    def test_balance_sheet_with_current_earnings(self, report_builder, scenario, tenant_id):
        report = report_builder.balance_sheet(tenant_id, FEB_29)

        assert report.is_balanced
        assert report.total_assets == 9581000
        assert report.total_liabilities == -19000
        assert report.current_earnings == -400000
        earnings = report.equity.lines[-1]
        assert earnings.account_id is None
        assert earnings.account_name == "Resultado del ejercicio en curso"
        assert report.total_equity == 9600000
        assert report.metadata.as_of == FEB_29

    def test_balance_sheet_as_of_midway(self, report_builder, scenario, tenant_id):
        report = report_builder.balance_sheet(tenant_id, date(2024, 1, 31))
        assert report.total_assets == 10119000
        assert report.current_earnings == -100000

    def test_income_statement(self, report_builder, scenario, tenant_id):
        report = report_builder.income_statement(tenant_id, JAN_1, FEB_29)
        assert report.total_revenue == 100000
        assert report.total_cost_of_sales == 0
        assert report.total_operating_expenses == 500000
        assert report.net_income == -400000

    def test_income_statement_by_cost_center(self, report_builder, scenario, tenant_id):
        report = report_builder.income_statement(
            tenant_id, JAN_1, FEB_29, cost_center_id=scenario.admin_center
        )
        assert report.total_revenue == 0
        assert report.net_income == -200000

    def test_closed_period_keeps_its_results(
        self, report_builder, scenario, period_service, period_closer, tenant_id
    ):
        period_service.create_period(
            tenant_id,
            period_code="2024-B1",
            name="Enero - Febrero 2024",
            start_date=JAN_1,
            end_date=FEB_29,
        )
        period_closer.close(tenant_id, FEB_29)

        income = report_builder.income_statement(tenant_id, JAN_1, FEB_29)
        assert income.net_income == -400000

        balance = report_builder.balance_sheet(tenant_id, FEB_29)
        assert balance.current_earnings == 0
        retained = _by_code(balance.equity.lines)["3705"]
        assert retained.balance == -400000
        assert balance.is_balanced

    def test_closing_entry_cannot_be_reversed(
        self, report_builder, scenario, period_service, period_closer, journal_store, tenant_id
    ):
        period_service.create_period(
            tenant_id,
            period_code="2024-B1",
            name="Enero - Febrero 2024",
            start_date=JAN_1,
            end_date=FEB_29,
        )
        result = period_closer.close(tenant_id, FEB_29)

        with pytest.raises(PeriodStateError) as exc_info:
            journal_store.reverse(tenant_id, result.closing_entry.id)

        assert exc_info.value.period_code == "2024-B1"
        assert journal_store.find_reversal(tenant_id, result.closing_entry.id) is None
        income = report_builder.income_statement(tenant_id, JAN_1, FEB_29)
        assert income.total_revenue == 100000
        assert income.net_income == -400000

    def test_cash_flow(self, report_builder, scenario, tenant_id):
        report = report_builder.cash_flow(tenant_id, JAN_1, FEB_29)

        assert report.opening_cash == 0
        assert report.closing_cash == 9081000
        assert report.net_change == 9081000
        assert report.operating.net == -419000
        assert report.operating.inflows == 119000
        assert report.operating.outflows == 538000
        assert report.investing.net == -500000
        assert [i.account_code for i in report.investing.items] == ["1524"]
        assert report.financing.net == 10000000

    def test_cash_flow_second_month(self, report_builder, scenario, tenant_id):
        report = report_builder.cash_flow(tenant_id, date(2024, 2, 1), FEB_29)
        assert report.opening_cash == 10119000
        assert report.net_change == -1038000
        assert report.closing_cash == 9081000


class TestCostCenters:

    def test_all_centers(self, report_builder, scenario, tenant_id):
        report = report_builder.cost_center_balances(tenant_id, JAN_1, FEB_29)
        centers = {c.code: c for c in report.centers}
        assert list(centers) == ["ADM", "VEN", "VEN-N"]
        assert centers["ADM"].total_debit == 200000
        assert centers["VEN-N"].total_debit == 300000

    def test_rollup_over_subtree(self, report_builder, scenario, tenant_id):
        report = report_builder.cost_center_balances(
            tenant_id, JAN_1, FEB_29, cost_center_id=scenario.sales_center
        )
        centers = {c.code: c for c in report.centers}
        assert set(centers) == {"VEN", "VEN-N"}

        sales = centers["VEN"]
        assert [ln.account_code for ln in sales.lines] == ["413505"]
        assert (sales.total_debit, sales.total_credit) == (0, 100000)
        assert [ln.account_code for ln in sales.rollup_lines] == ["413505", "5105"]
        assert (sales.rollup_debit, sales.rollup_credit) == (300000, 100000)
        assert centers["VEN-N"].parent_id == scenario.sales_center


class TestAging:

    def test_receivables(self, report_builder, tenant_id):
        items = [
            OpenItem("FV-010", "800111", "Cliente Uno", date(2024, 1, 5), 500000, terms="NET_30"),
            OpenItem("FV-011", "800111", "Cliente Uno", date(2024, 3, 1), 200000, terms="NET_30"),
        ]
        report = report_builder.receivables_aging(tenant_id, date(2024, 3, 15), items)
        row = report.rows[0]
        assert row.amount_in("31-60") == 500000
        assert row.amount_in("current") == 200000
        assert report.metadata.report_type == ReportType.RECEIVABLES_AGING

    def test_payables_logged(self, report_builder, tenant_id, captured_logs):
        report_builder.payables_aging(tenant_id, date(2024, 3, 15), [])
        assert any(r["message"] == "payables_aging_generated" for r in captured_logs())


class TestIntegrity:

    def test_tampered_snapshot_breaks_trial_balance(
        self, report_builder, scenario, period_service, period_closer, session, tenant_id,
        captured_logs,
    ):
        period_service.create_period(
            tenant_id,
            period_code="2024-B1",
            name="Enero - Febrero 2024",
            start_date=JAN_1,
            end_date=FEB_29,
        )
        result = period_closer.close(tenant_id, FEB_29)
        bank = scenario.ledger.account("111005").account_id
        row = session.execute(
            select(AccountPeriodBalance).where(
                AccountPeriodBalance.period_id == result.period.id,
                AccountPeriodBalance.account_id == bank,
            )
        ).scalar_one()
        row.closing_balance += 1000
        session.flush()

        with pytest.raises(LedgerIntegrityError) as exc_info:
            report_builder.trial_balance(tenant_id, date(2024, 3, 1), date(2024, 3, 31))
        assert exc_info.value.check == "trial_balance"
        errors = [r for r in captured_logs() if r["message"] == "ledger_integrity_violation"]
        assert errors[0]["report_type"] == "trial_balance"

        with pytest.raises(LedgerIntegrityError):
            report_builder.balance_sheet(tenant_id, date(2024, 3, 31))


class TestPolicies:

    def test_tenant_policy_instance_is_default(self, session, deterministic_clock, tenant_id):
        builder = ReportBuilder(session, deterministic_clock, TenantPolicy(currency="USD"))
        assert builder.policy(tenant_id).currency == "USD"

    def test_to_dict(self, report_builder, scenario, tenant_id):
        rendered = report_builder.to_dict(report_builder.balance_sheet(tenant_id, FEB_29))
        assert rendered["metadata"]["report_type"] == "balance_sheet"
        assert rendered["metadata"]["as_of"] == "2024-02-29"
        assert rendered["equity"]["lines"][-1]["account_id"] is None
