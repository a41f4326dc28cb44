"""
Pure report transformation functions.

These functions turn account metadata, projected balances and posted
entries into report dataclasses. ZERO I/O. ZERO side effects.

All monetary values are int minor units. All inputs/outputs are frozen
dataclasses.

Functions in this module follow the ledger_kernel/domain/ purity convention:
- No database access
- No clock access
- No file I/O
- Deterministic: same inputs always produce same outputs
"""

from __future__ import annotations

import dataclasses
from collections import defaultdict
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from enum import Enum
from uuid import UUID

from ledger_config.schema import CashFlowActivity, CashFlowMapping, StatementClassification
from ledger_kernel.domain.balance import natural_balance, normal_balance, trial_balance_sides
from ledger_kernel.domain.dtos import (
    AccountInfo,
    AccountLedger,
    CostCenterInfo,
    PostedEntry,
)
from ledger_kernel.domain.hierarchy import HierarchyArena
from ledger_kernel.models.account import AccountType, NormalBalance
from ledger_kernel.selectors.journal_selector import DebitCredit
from ledger_reports.models import (
    BalanceSheetReport,
    CashFlowItem,
    CashFlowReport,
    CashFlowSection,
    CostCenterAccountLine,
    CostCenterBalance,
    CostCenterReport,
    GeneralJournalReport,
    GeneralLedgerReport,
    GeneralLedgerSection,
    IncomeStatementReport,
    JournalReportEntry,
    JournalReportLine,
    ReportMetadata,
    StatementLine,
    StatementSection,
    TrialBalanceLine,
    TrialBalanceReport,
)

_NO_MOVEMENT = DebitCredit()


def _make_section(
    label: str,
    accounts: Iterable[AccountInfo],
    balances: Mapping[UUID, int],
    extra: Iterable[StatementLine] = (),
) -> StatementSection:
    """Section of the accounts with a non-zero balance, ordered by code."""
    lines = [
        StatementLine(
            account_id=a.account_id,
            account_code=a.code,
            account_name=a.name,
            balance=balances.get(a.account_id, 0),
        )
        for a in sorted(accounts, key=lambda a: a.code)
        if balances.get(a.account_id, 0) != 0
    ]
    lines.extend(extra)
    return StatementSection(
        label=label,
        lines=tuple(lines),
        total=sum(line.balance for line in lines),
    )


def _of_type(accounts: Iterable[AccountInfo], account_type: AccountType) -> list[AccountInfo]:
    return [a for a in accounts if a.account_type == account_type]


def net_income_of(accounts: Iterable[AccountInfo], balances: Mapping[UUID, int]) -> int:
    """REVENUE natural balances minus EXPENSE natural balances."""
    revenue = 0
    expense = 0
    for account in accounts:
        amount = balances.get(account.account_id, 0)
        if account.account_type == AccountType.REVENUE:
            revenue += amount
        elif account.account_type == AccountType.EXPENSE:
            expense += amount
    return revenue - expense


# =========================================================================
# 1. TRIAL BALANCE
# =========================================================================


def build_trial_balance(
    accounts: list[AccountInfo],
    opening: Mapping[UUID, int],
    period: Mapping[UUID, DebitCredit],
    metadata: ReportMetadata,
) -> TrialBalanceReport:
    """
    Build a trial balance over ``[date_from, date_to]``.

    Accounts with no movement and a zero opening balance are omitted from
    ``lines``; the debit-normal/credit-normal totals cover every account.
    """
    closing: dict[UUID, int] = {}
    lines = []
    for account in sorted(accounts, key=lambda a: a.code):
        moved = period.get(account.account_id, _NO_MOVEMENT)
        side = normal_balance(account.account_type)
        start = opening.get(account.account_id, 0)
        end = start + natural_balance(moved.debit, moved.credit, side)
        closing[account.account_id] = end
        if start == 0 and end == 0 and moved.debit == 0 and moved.credit == 0:
            continue
        # A negative natural balance shows on the opposite column
        on_debit = (side == NormalBalance.DEBIT) == (end >= 0)
        lines.append(
            TrialBalanceLine(
                account_id=account.account_id,
                account_code=account.code,
                account_name=account.name,
                account_type=account.account_type.value,
                normal_balance=side.value,
                opening_balance=start,
                period_debit=moved.debit,
                period_credit=moved.credit,
                closing_balance=end,
                closing_debit=abs(end) if on_debit else 0,
                closing_credit=0 if on_debit else abs(end),
            )
        )

    debit_side, credit_side = trial_balance_sides(accounts, closing)
    return TrialBalanceReport(
        metadata=metadata,
        lines=tuple(lines),
        total_period_debit=sum(line.period_debit for line in lines),
        total_period_credit=sum(line.period_credit for line in lines),
        total_closing_debit=sum(line.closing_debit for line in lines),
        total_closing_credit=sum(line.closing_credit for line in lines),
        debit_normal_total=debit_side,
        credit_normal_total=credit_side,
        is_balanced=debit_side == credit_side,
    )


# =========================================================================
# 2. GENERAL LEDGER / GENERAL JOURNAL
# =========================================================================


def build_general_ledger(
    ledgers: Iterable[AccountLedger],
    metadata: ReportMetadata,
    skip_empty: bool = True,
) -> GeneralLedgerReport:
    """One section per ledger, ordered by account code."""
    sections = tuple(
        GeneralLedgerSection(
            account_id=ledger.account_id,
            account_code=ledger.account.code,
            account_name=ledger.account.name,
            account_type=ledger.account.account_type.value,
            opening_balance=ledger.opening_balance,
            movements=ledger.movements,
            total_debit=ledger.total_debit,
            total_credit=ledger.total_credit,
            closing_balance=ledger.closing_balance,
        )
        for ledger in sorted(ledgers, key=lambda lg: lg.account.code)
        if ledger.has_activity or not skip_empty
    )
    return GeneralLedgerReport(
        metadata=metadata,
        sections=sections,
        total_debit=sum(s.total_debit for s in sections),
        total_credit=sum(s.total_credit for s in sections),
    )


def build_general_journal(
    entries: Iterable[PostedEntry],
    accounts: Mapping[UUID, AccountInfo],
    metadata: ReportMetadata,
) -> GeneralJournalReport:
    """Entries in (date, number) order with their lines."""
    rendered = []
    for entry in sorted(entries, key=lambda e: (e.entry_date, e.entry_number)):
        lines = tuple(
            JournalReportLine(
                line_seq=line.line_seq,
                account_id=line.account_id,
                account_code=accounts[line.account_id].code,
                account_name=accounts[line.account_id].name,
                debit=line.debit,
                credit=line.credit,
                cost_center_id=line.cost_center_id,
                memo=line.memo,
            )
            for line in entry.lines
        )
        rendered.append(
            JournalReportEntry(
                entry_id=entry.id,
                entry_number=entry.entry_number,
                reference=entry.reference,
                entry_date=entry.entry_date,
                description=entry.description,
                kind=entry.kind.value,
                source_type=entry.source_type,
                source_id=entry.source_id,
                lines=lines,
                total_debit=entry.total_debit,
                total_credit=entry.total_credit,
                reversal_of_id=entry.reversal_of_id,
            )
        )
    return GeneralJournalReport(
        metadata=metadata,
        entries=tuple(rendered),
        total_debit=sum(e.total_debit for e in rendered),
        total_credit=sum(e.total_credit for e in rendered),
    )


# =========================================================================
# 3. BALANCE SHEET
# =========================================================================


def build_balance_sheet(
    accounts: list[AccountInfo],
    balances: Mapping[UUID, int],
    statements: StatementClassification,
    metadata: ReportMetadata,
) -> BalanceSheetReport:
    """
    Build a balance sheet from cumulative natural balances.

    Unclosed net income (revenue minus expense, net of closing entries) is
    added to equity as a synthetic current-earnings line.
    """
    current_earnings = net_income_of(accounts, balances)

    assets = _make_section("Assets", _of_type(accounts, AccountType.ASSET), balances)
    liabilities = _make_section(
        "Liabilities", _of_type(accounts, AccountType.LIABILITY), balances,
    )
    earnings_line = ()
    if current_earnings != 0:
        earnings_line = (
            StatementLine(
                account_id=None,
                account_code="",
                account_name=statements.current_earnings_label,
                balance=current_earnings,
            ),
        )
    equity = _make_section(
        "Equity", _of_type(accounts, AccountType.EQUITY), balances, earnings_line,
    )

    total_l_and_e = liabilities.total + equity.total
    return BalanceSheetReport(
        metadata=metadata,
        assets=assets,
        liabilities=liabilities,
        equity=equity,
        current_earnings=current_earnings,
        total_assets=assets.total,
        total_liabilities=liabilities.total,
        total_equity=equity.total,
        total_liabilities_and_equity=total_l_and_e,
        is_balanced=assets.total == total_l_and_e,
    )


# =========================================================================
# 4. INCOME STATEMENT
# =========================================================================


def build_income_statement(
    accounts: list[AccountInfo],
    movements: Mapping[UUID, int],
    statements: StatementClassification,
    metadata: ReportMetadata,
) -> IncomeStatementReport:
    """
    Multi-step income statement from in-range natural movements.

        Revenue
        - Cost of Sales
        = Gross Profit
        - Operating Expenses
        = Net Income
    """
    expenses = _of_type(accounts, AccountType.EXPENSE)
    revenue = _make_section("Revenue", _of_type(accounts, AccountType.REVENUE), movements)
    cost_of_sales = _make_section(
        "Cost of Sales",
        [a for a in expenses if statements.is_cost_of_sales(a.code)],
        movements,
    )
    operating = _make_section(
        "Operating Expenses",
        [a for a in expenses if not statements.is_cost_of_sales(a.code)],
        movements,
    )
    gross_profit = revenue.total - cost_of_sales.total
    return IncomeStatementReport(
        metadata=metadata,
        revenue=revenue,
        cost_of_sales=cost_of_sales,
        operating_expenses=operating,
        total_revenue=revenue.total,
        total_cost_of_sales=cost_of_sales.total,
        gross_profit=gross_profit,
        total_operating_expenses=operating.total,
        net_income=gross_profit - operating.total,
    )


# =========================================================================
# 5. CASH FLOW STATEMENT (Direct Method)
# =========================================================================


def cash_contributions(
    entries: Iterable[PostedEntry],
    accounts: Mapping[UUID, AccountInfo],
    mapping: CashFlowMapping,
) -> list[tuple[AccountInfo, int]]:
    """
    Cash effect of every non-cash line of every entry touching cash.

    A counterpart line contributes ``credit - debit``: crediting revenue
    brings cash in, debiting an expense sends cash out.  Entries moving
    money only between cash accounts contribute nothing.
    """
    contributions = []
    for entry in entries:
        is_cash = [mapping.is_cash(accounts[ln.account_id].code) for ln in entry.lines]
        if not any(is_cash):
            continue
        for line, cash in zip(entry.lines, is_cash):
            if not cash:
                contributions.append((accounts[line.account_id], line.credit - line.debit))
    return contributions


def _cash_section(
    activity: CashFlowActivity,
    contributions: list[tuple[AccountInfo, int]],
) -> CashFlowSection:
    by_account: dict[UUID, int] = defaultdict(int)
    info: dict[UUID, AccountInfo] = {}
    inflows = 0
    outflows = 0
    for account, amount in contributions:
        by_account[account.account_id] += amount
        info[account.account_id] = account
        if amount > 0:
            inflows += amount
        else:
            outflows -= amount
    items = tuple(
        CashFlowItem(
            account_id=account_id,
            account_code=info[account_id].code,
            account_name=info[account_id].name,
            amount=amount,
        )
        for account_id, amount in sorted(by_account.items(), key=lambda kv: info[kv[0]].code)
    )
    return CashFlowSection(
        activity=activity.value,
        items=items,
        inflows=inflows,
        outflows=outflows,
        net=inflows - outflows,
    )


def build_cash_flow(
    entries: Iterable[PostedEntry],
    accounts: Mapping[UUID, AccountInfo],
    mapping: CashFlowMapping,
    opening_cash: int,
    closing_cash: int,
    metadata: ReportMetadata,
) -> CashFlowReport:
    """
    Build a direct-method cash flow statement.

    ``closing_cash`` is the ledger balance of the cash accounts; callers
    compare it with ``opening_cash + net_change``.
    """
    grouped: dict[CashFlowActivity, list] = {a: [] for a in CashFlowActivity}
    for account, amount in cash_contributions(entries, accounts, mapping):
        grouped[mapping.activity_for(account.code)].append((account, amount))

    operating = _cash_section(CashFlowActivity.OPERATING, grouped[CashFlowActivity.OPERATING])
    investing = _cash_section(CashFlowActivity.INVESTING, grouped[CashFlowActivity.INVESTING])
    financing = _cash_section(CashFlowActivity.FINANCING, grouped[CashFlowActivity.FINANCING])
    sections = (operating, investing, financing)
    return CashFlowReport(
        metadata=metadata,
        operating=operating,
        investing=investing,
        financing=financing,
        opening_cash=opening_cash,
        total_inflows=sum(s.inflows for s in sections),
        total_outflows=sum(s.outflows for s in sections),
        net_change=sum(s.net for s in sections),
        closing_cash=closing_cash,
    )


# =========================================================================
# 6. COST CENTER BALANCES
# =========================================================================


def _center_lines(ledgers: Iterable[AccountLedger]) -> tuple[CostCenterAccountLine, ...]:
    return tuple(
        CostCenterAccountLine(
            account_id=lg.account_id,
            account_code=lg.account.code,
            account_name=lg.account.name,
            account_type=lg.account.account_type.value,
            opening_balance=lg.opening_balance,
            period_debit=lg.total_debit,
            period_credit=lg.total_credit,
            closing_balance=lg.closing_balance,
        )
        for lg in sorted(ledgers, key=lambda lg: lg.account.code)
        if lg.has_activity or lg.opening_balance != 0
    )


def _roll_up(lines: Iterable[CostCenterAccountLine]) -> tuple[CostCenterAccountLine, ...]:
    merged: dict[UUID, CostCenterAccountLine] = {}
    for line in lines:
        prior = merged.get(line.account_id)
        if prior is None:
            merged[line.account_id] = line
            continue
        merged[line.account_id] = dataclasses.replace(
            prior,
            opening_balance=prior.opening_balance + line.opening_balance,
            period_debit=prior.period_debit + line.period_debit,
            period_credit=prior.period_credit + line.period_credit,
            closing_balance=prior.closing_balance + line.closing_balance,
        )
    return tuple(sorted(merged.values(), key=lambda ln: ln.account_code))


def build_cost_center_report(
    centers: list[CostCenterInfo],
    arena: HierarchyArena[UUID],
    ledgers: Mapping[UUID, Iterable[AccountLedger]],
    metadata: ReportMetadata,
) -> CostCenterReport:
    """
    Per-center balances plus a roll-up over each center's descendants.

    ``ledgers`` maps a cost center id to the ledgers projected with that
    center as filter; centers missing from it have no tagged lines.
    """
    own = {c.cost_center_id: _center_lines(ledgers.get(c.cost_center_id, ())) for c in centers}
    balances = []
    for center in sorted(centers, key=lambda c: c.code):
        subtree = [center.cost_center_id] + [
            d for d in arena.descendants(center.cost_center_id) if d in own
        ]
        rollup = _roll_up(line for node in subtree for line in own[node])
        lines = own[center.cost_center_id]
        balances.append(
            CostCenterBalance(
                cost_center_id=center.cost_center_id,
                code=center.code,
                name=center.name,
                parent_id=center.parent_id,
                lines=lines,
                total_debit=sum(ln.period_debit for ln in lines),
                total_credit=sum(ln.period_credit for ln in lines),
                rollup_lines=rollup,
                rollup_debit=sum(ln.period_debit for ln in rollup),
                rollup_credit=sum(ln.period_credit for ln in rollup),
            )
        )
    return CostCenterReport(metadata=metadata, centers=tuple(balances))


# =========================================================================
# 7. RENDERER (dict/JSON output)
# =========================================================================


def render_to_dict(obj: object) -> dict | list | str | int | float | bool | None:
    """
    Convert any report dataclass to a plain dict for JSON serialization.

    Handles:
    - UUID -> str
    - date / datetime -> ISO format string
    - Enum -> .value
    - Nested frozen dataclasses -> nested dicts
    - Tuples -> lists
    - None preserved
    """
    if obj is None:
        return None
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    if isinstance(obj, (list, tuple)):
        return [render_to_dict(item) for item in obj]
    if isinstance(obj, dict):
        return {str(k): render_to_dict(v) for k, v in obj.items()}
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {
            f.name: render_to_dict(getattr(obj, f.name))
            for f in dataclasses.fields(obj)
        }
    if isinstance(obj, (str, int, float, bool)):
        return obj
    return str(obj)
