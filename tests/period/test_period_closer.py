"""
Period close, re-close and verification.

Verifies:
- Closing zeroes every revenue and expense account into retained earnings
- Closing balance of a period equals the opening balance of the next day
- Re-running a close with no new activity posts nothing
- A late adjustment is picked up by the next close as a residual entry
- verify_period detects tampered snapshots and ledger hashes
"""

from datetime import date

import pytest
from sqlalchemy import select

from ledger_kernel.domain.dtos import EntryRequest, LineRequest
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    ClosedPeriodError,
    LedgerIntegrityError,
    PeriodNotFoundError,
    PeriodStateError,
)
from ledger_kernel.models.account import AccountType
from ledger_kernel.models.fiscal_period import FiscalPeriod, PeriodStatus
from ledger_kernel.models.journal import EntryKind
from ledger_kernel.models.period_balance import AccountPeriodBalance
from ledger_kernel.services.chart_of_accounts import AccountSeed
from ledger_kernel.services.period_closer import CLOSING_SOURCE_TYPE, PeriodCloser

FY_END = date(2024, 12, 31)


@pytest.fixture
def periods(period_service, tenant_id):
    period_service.create_period(
        tenant_id,
        period_code="FY2024",
        name="Ejercicio 2024",
        start_date=date(2024, 1, 1),
        end_date=FY_END,
    )
    period_service.create_period(
        tenant_id,
        period_code="FY2025",
        name="Ejercicio 2025",
        start_date=date(2025, 1, 1),
        end_date=date(2025, 12, 31),
    )


@pytest.fixture
def year_of_activity(ledger, periods):
    """Capital, two sales, cost of sales, payroll and rent."""
    ledger.post(
        date(2024, 1, 2),
        ledger.dr("110505", 10000000),
        ledger.cr("3105", 10000000),
        description="Aporte de capital",
        source_type="capital",
    )
    ledger.sale(date(2024, 3, 15), 2000000, 380000)
    ledger.sale(date(2024, 9, 1), 1000000, 190000)
    ledger.post(
        date(2024, 9, 1),
        ledger.dr("613505", 1200000),
        ledger.cr("143505", 1200000),
        description="Costo de ventas",
    )
    ledger.post(
        date(2024, 10, 30),
        ledger.dr("143505", 3000000),
        ledger.cr("220505", 3000000),
        description="Compra de mercancia",
    )
    ledger.post(
        date(2024, 11, 30),
        ledger.dr("5105", 800000),
        ledger.dr("5120", 400000),
        ledger.cr("111005", 1200000),
        description="Nomina y arriendo",
    )
    return ledger


class TestClose:

    def test_closing_entry_moves_net_income(
        self, period_closer, year_of_activity, projector, tenant_id, test_actor_id
    ):
        result = period_closer.close(tenant_id, FY_END, actor_id=test_actor_id)

        # 3,000,000 revenue - 1,200,000 cost - 1,200,000 expenses
        assert result.net_income_closed == 600000
        assert not result.was_already_closed
        assert result.period.status == PeriodStatus.CLOSED
        assert result.period.ledger_hash == result.ledger_hash

        entry = result.closing_entry
        assert entry.kind == EntryKind.CLOSING
        assert entry.entry_date == FY_END
        assert entry.description == "Closing entry FY2024"
        assert entry.source_type == CLOSING_SOURCE_TYPE
        assert entry.source_id == "FY2024"
        assert entry.total_debit == entry.total_credit

        balances = projector.balances_as_of(tenant_id, FY_END)
        for code in ("413505", "613505", "5105", "5120"):
            assert balances[year_of_activity.account(code).account_id] == 0
        assert balances[year_of_activity.account("3705").account_id] == 600000

    def test_snapshot_written_per_account(self, period_closer, year_of_activity, tenant_id, puc_chart):
        result = period_closer.close(tenant_id, FY_END)
        assert result.snapshot_count == len(puc_chart)

    def test_closing_equals_next_opening(
        self, period_closer, year_of_activity, projector, tenant_id, session
    ):
        result = period_closer.close(tenant_id, FY_END)
        snapshots = {
            row.account_id: row
            for row in session.execute(
                select(AccountPeriodBalance).where(
                    AccountPeriodBalance.period_id == result.period.id
                )
            ).scalars()
        }
        next_year = projector.project(tenant_id, None, date(2025, 1, 1), date(2025, 1, 31))
        for account_id, ledger in next_year.items():
            assert ledger.opening_balance == snapshots[account_id].closing_balance

    def test_opening_uses_snapshot_or_scan_consistently(
        self, period_closer, year_of_activity, projector, tenant_id
    ):
        period_closer.close(tenant_id, FY_END)
        accounts = projector.accounts(tenant_id)
        from_snapshot = projector.balances_before(tenant_id, accounts, date(2025, 1, 1))
        from_scan = projector.balances_before(
            tenant_id, accounts, date(2025, 1, 1), use_snapshots=False
        )
        assert from_snapshot == from_scan

    def test_empty_period_closes_without_entry(self, period_closer, periods, puc_chart, tenant_id):
        result = period_closer.close(tenant_id, FY_END)
        assert result.closing_entry is None
        assert result.net_income_closed == 0
        assert result.period.is_closed

    def test_net_loss_debits_retained_earnings(self, period_closer, ledger, periods, tenant_id):
        ledger.post(date(2024, 5, 1), ledger.dr("5105", 700000), ledger.cr("111005", 700000))
        result = period_closer.close(tenant_id, FY_END)

        assert result.net_income_closed == -700000
        retained = ledger.account("3705").account_id
        line = next(ln for ln in result.closing_entry.lines if ln.account_id == retained)
        assert (line.debit, line.credit) == (700000, 0)

    def test_deactivated_nominal_account_still_closed(
        self, period_closer, chart, year_of_activity, projector, tenant_id
    ):
        rent = year_of_activity.account("5120").account_id
        chart.deactivate_account(tenant_id, rent)
        period_closer.close(tenant_id, FY_END)
        assert projector.balances_as_of(tenant_id, FY_END, account_ids=[rent])[rent] == 0

    def test_missing_retained_earnings_account(self, session, chart, journal_store, periods, tenant_id):
        accounts = {
            a.code: a
            for a in chart.seed_chart(
                tenant_id,
                [
                    AccountSeed("1105", "Caja", AccountType.ASSET),
                    AccountSeed("4135", "Ventas", AccountType.REVENUE),
                ],
            )
        }
        journal_store.post(
            tenant_id,
            EntryRequest(
                entry_date=date(2024, 4, 4),
                description="Venta",
                source_type="invoice",
                lines=(
                    LineRequest.dr(accounts["1105"].account_id, 1000),
                    LineRequest.cr(accounts["4135"].account_id, 1000),
                ),
            ),
        )
        with pytest.raises(AccountNotFoundError):
            PeriodCloser(session).close(tenant_id, FY_END)

    def test_unknown_period_end(self, period_closer, periods, tenant_id):
        with pytest.raises(PeriodNotFoundError):
            period_closer.close(tenant_id, date(2024, 6, 30))

    def test_close_logged(self, period_closer, year_of_activity, tenant_id, captured_logs):
        result = period_closer.close(tenant_id, FY_END)
        event = next(r for r in captured_logs() if r["message"] == "period_closed")
        assert event["period_code"] == "FY2024"
        assert event["net_income_closed"] == 600000
        assert event["ledger_hash"] == result.ledger_hash
        assert event["closing_entry_number"] == result.closing_entry.entry_number


class TestReclose:

    def test_rerun_is_noop(self, period_closer, year_of_activity, journal_selector, tenant_id):
        first = period_closer.close(tenant_id, FY_END)
        entries_after_first = journal_selector.count_entries(tenant_id)

        second = period_closer.close(tenant_id, FY_END)

        assert second.was_already_closed
        assert second.closing_entry is None
        assert second.net_income_closed == 0
        assert second.ledger_hash == first.ledger_hash
        assert journal_selector.count_entries(tenant_id) == entries_after_first

    def test_adjustment_closed_as_residual(
        self, period_closer, period_service, year_of_activity, projector, tenant_id
    ):
        period_closer.close(tenant_id, FY_END)
        year_of_activity.post(
            date(2024, 12, 20),
            year_of_activity.dr("5195", 100000),
            year_of_activity.cr("2505", 100000),
            kind=EntryKind.ADJUSTING,
            description="Ajuste de gastos",
        )
        assert period_service.get_period(tenant_id, "FY2024").requires_reclose

        result = period_closer.close(tenant_id, FY_END)

        assert result.was_already_closed
        assert result.net_income_closed == -100000
        assert result.closing_entry.entry_number > 1
        assert not result.period.requires_reclose
        balances = projector.balances_as_of(tenant_id, FY_END)
        assert balances[year_of_activity.account("5195").account_id] == 0
        assert balances[year_of_activity.account("3705").account_id] == 500000

    def test_rerun_while_closing(self, period_closer, period_service, year_of_activity, tenant_id):
        period_service.begin_closing(tenant_id, "FY2024")
        result = period_closer.close(tenant_id, FY_END)
        assert result.net_income_closed == 600000
        assert not result.was_already_closed

    def test_standard_posting_blocked_after_close(self, period_closer, year_of_activity, tenant_id):
        period_closer.close(tenant_id, FY_END)
        with pytest.raises(ClosedPeriodError):
            year_of_activity.sale(date(2024, 12, 30), 1000, 190)


class TestVerify:

    def test_clean_period_verifies(self, period_closer, year_of_activity, tenant_id):
        result = period_closer.close(tenant_id, FY_END)
        verified = period_closer.verify_period(tenant_id, FY_END)
        assert verified.ledger_hash == result.ledger_hash

    def test_open_period_cannot_be_verified(self, period_closer, periods, tenant_id):
        with pytest.raises(PeriodStateError):
            period_closer.verify_period(tenant_id, FY_END)

    def test_tampered_snapshot_detected(
        self, period_closer, year_of_activity, session, tenant_id, captured_logs
    ):
        result = period_closer.close(tenant_id, FY_END)
        cash = year_of_activity.account("110505").account_id
        row = session.execute(
            select(AccountPeriodBalance).where(
                AccountPeriodBalance.period_id == result.period.id,
                AccountPeriodBalance.account_id == cash,
            )
        ).scalar_one()
        row.closing_balance += 1
        session.flush()

        with pytest.raises(LedgerIntegrityError) as exc_info:
            period_closer.verify_period(tenant_id, FY_END)
        assert exc_info.value.check == "period_snapshot"
        assert "110505" in exc_info.value.detail
        errors = [r for r in captured_logs() if r["message"] == "ledger_integrity_violation"]
        assert errors[0]["level"] == "ERROR"

    def test_tampered_hash_detected(self, period_closer, year_of_activity, session, tenant_id):
        result = period_closer.close(tenant_id, FY_END)
        period = session.get(FiscalPeriod, result.period.id)
        period.ledger_hash = "0" * 64
        session.flush()

        with pytest.raises(LedgerIntegrityError) as exc_info:
            period_closer.verify_period(tenant_id, FY_END)
        assert exc_info.value.check == "ledger_hash"
        assert exc_info.value.actual == result.ledger_hash

    def test_later_period_activity_does_not_disturb_verify(
        self, period_closer, year_of_activity, tenant_id
    ):
        period_closer.close(tenant_id, FY_END)
        year_of_activity.sale(date(2025, 2, 1), 5000, 950)
        period_closer.verify_period(tenant_id, FY_END)
