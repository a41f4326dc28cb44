"""
Tax summaries -- pure functions over posted tax lines.

Responsibility
--------------
Builds the VAT declaration, the withholding summary and the year-to-date
tax summary from journal lines posted to the accounts named in the
tenant's ``TaxPolicy``.  Also provides the declaration windows
(bimonthly VAT, monthly withholding).

Invariants enforced
-------------------
* Generated VAT and payable withholding grow with credits; deductible VAT
  and receivable withholding grow with debits.  Reversals therefore
  subtract.
* The taxable base of a line is its recorded ``tax_base`` when present,
  otherwise it is implied from the posted tax and the rule's rate.
* Reported VAT per account must equal that account's ledger movement over
  the same range; the declaration lists any difference.

Failure modes
-------------
* ``ValueError`` for a bimester outside 1..6 or a month outside 1..12.
"""

from __future__ import annotations

import calendar
from collections import defaultdict
from collections.abc import Iterable, Mapping
from datetime import date
from uuid import UUID

from ledger_config.schema import (
    VAT_KINDS,
    WITHHOLDING_KINDS,
    TaxKind,
    TaxPolicy,
    TaxRule,
)
from ledger_kernel.domain.dtos import AccountInfo
from ledger_kernel.selectors.journal_selector import DebitCredit, JournalLineView
from ledger_reports.models import (
    ReportMetadata,
    TaxDiscrepancy,
    TaxPeriod,
    TaxReconciliation,
    TaxYearSummaryReport,
    VatDeclarationReport,
    VatRateLine,
    WithholdingRow,
    WithholdingSummaryReport,
)

MONTH_NAMES = (
    "Enero", "Febrero", "Marzo", "Abril", "Mayo", "Junio",
    "Julio", "Agosto", "Septiembre", "Octubre", "Noviembre", "Diciembre",
)

_CREDIT_GROWS = frozenset({TaxKind.VAT_GENERATED, TaxKind.WITHHOLDING_PAYABLE})


# =========================================================================
# Declaration windows
# =========================================================================


def vat_period_range(year: int, bimester: int) -> TaxPeriod:
    """Bimonthly VAT window: bimester 1 is January-February, 6 is November-December."""
    if not 1 <= bimester <= 6:
        raise ValueError(f"bimester must be between 1 and 6, got {bimester}")
    first_month = (bimester - 1) * 2 + 1
    last_month = first_month + 1
    return TaxPeriod(
        year=year,
        number=bimester,
        date_from=date(year, first_month, 1),
        date_to=date(year, last_month, calendar.monthrange(year, last_month)[1]),
        label=f"{MONTH_NAMES[first_month - 1]} - {MONTH_NAMES[last_month - 1]} {year}",
    )


def month_period(year: int, month: int) -> TaxPeriod:
    """Monthly withholding window."""
    if not 1 <= month <= 12:
        raise ValueError(f"month must be between 1 and 12, got {month}")
    return TaxPeriod(
        year=year,
        number=month,
        date_from=date(year, month, 1),
        date_to=date(year, month, calendar.monthrange(year, month)[1]),
        label=f"{MONTH_NAMES[month - 1]} {year}",
    )


# =========================================================================
# Line arithmetic
# =========================================================================


def tax_movement(kind: TaxKind, debit: int, credit: int) -> int:
    """Posted tax of a line (or of aggregated totals) for a rule kind."""
    if kind in _CREDIT_GROWS:
        return credit - debit
    return debit - credit


def compute_withholding(base: int, rule: TaxRule, min_base: int = 0) -> int:
    """Withholding due on ``base``; nothing at or below the minimum base."""
    if base <= min_base:
        return 0
    return rule.tax_on(base)


def _signed_base(line: JournalLineView, rule: TaxRule, tax: int) -> int:
    if line.tax_base is None:
        return rule.base_for(tax) if tax >= 0 else -rule.base_for(-tax)
    return line.tax_base if tax >= 0 else -line.tax_base


def _discrepancy(
    line: JournalLineView,
    rule: TaxRule,
    posted: int,
    expected: int,
    tolerance: int,
) -> TaxDiscrepancy | None:
    difference = posted - expected
    if abs(difference) <= tolerance:
        return None
    return TaxDiscrepancy(
        entry_id=line.entry_id,
        entry_number=line.entry_number,
        entry_date=line.entry_date,
        account_code=rule.account_code,
        taxable_base=line.tax_base or 0,
        posted_tax=posted,
        expected_tax=expected,
        difference=difference,
    )


def _tax_lines(
    lines: Iterable[JournalLineView],
    accounts: Mapping[UUID, AccountInfo],
    policy: TaxPolicy,
    kinds,
):
    """(line, rule, signed tax) for every line on a tax account of ``kinds``."""
    for line in lines:
        account = accounts.get(line.account_id)
        if account is None:
            continue
        rule = policy.rule_for(account.code)
        if rule is None or rule.kind not in kinds:
            continue
        yield line, rule, tax_movement(rule.kind, line.debit, line.credit)


# =========================================================================
# VAT declaration
# =========================================================================


def _rate_lines(groups: dict[str, list], rules: dict[str, TaxRule]) -> tuple[VatRateLine, ...]:
    rendered = [
        VatRateLine(
            account_code=code,
            label=rules[code].label,
            rate_bp=rules[code].rate_bp,
            taxable_base=sum(base for _, base, _ in items),
            tax_amount=sum(tax for _, _, tax in items),
            entry_count=len({entry_id for entry_id, _, _ in items}),
        )
        for code, items in groups.items()
    ]
    rendered.sort(key=lambda r: (-r.rate_bp, r.account_code))
    return tuple(rendered)


def build_vat_declaration(
    lines: Iterable[JournalLineView],
    accounts: Mapping[UUID, AccountInfo],
    policy: TaxPolicy,
    ledger_totals: Mapping[UUID, DebitCredit],
    metadata: ReportMetadata,
    period: TaxPeriod | None = None,
) -> VatDeclarationReport:
    """
    Generated and deductible VAT per rate, net payable, reconciliation
    against the tax accounts and per-line discrepancies.

    ``ledger_totals`` are the debit/credit totals of the VAT accounts over
    the declaration range, read independently of ``lines``.
    """
    generated: dict[str, list] = defaultdict(list)
    deductible: dict[str, list] = defaultdict(list)
    rules: dict[str, TaxRule] = {}
    discrepancies = []

    for line, rule, tax in _tax_lines(lines, accounts, policy, VAT_KINDS):
        rules[rule.account_code] = rule
        target = generated if rule.kind == TaxKind.VAT_GENERATED else deductible
        target[rule.account_code].append((line.entry_id, _signed_base(line, rule, tax), tax))
        if line.tax_base is not None:
            found = _discrepancy(
                line, rule, abs(tax), rule.tax_on(line.tax_base), policy.discrepancy_tolerance
            )
            if found is not None:
                discrepancies.append(found)

    generated_lines = _rate_lines(generated, rules)
    deductible_lines = _rate_lines(deductible, rules)

    reported = {r.account_code: r.tax_amount for r in generated_lines + deductible_lines}
    by_code = {a.code: a for a in accounts.values()}
    reconciliation = []
    for rule in policy.rules_of(VAT_KINDS):
        account = by_code.get(rule.account_code)
        if account is None:
            continue
        totals = ledger_totals.get(account.account_id, DebitCredit())
        movement = tax_movement(rule.kind, totals.debit, totals.credit)
        reported_tax = reported.get(rule.account_code, 0)
        reconciliation.append(
            TaxReconciliation(
                account_code=rule.account_code,
                reported_tax=reported_tax,
                ledger_movement=movement,
                difference=reported_tax - movement,
            )
        )
    reconciliation.sort(key=lambda r: r.account_code)

    total_generated = sum(r.tax_amount for r in generated_lines)
    total_deductible = sum(r.tax_amount for r in deductible_lines)
    return VatDeclarationReport(
        metadata=metadata,
        generated=generated_lines,
        deductible=deductible_lines,
        total_generated_base=sum(r.taxable_base for r in generated_lines),
        total_generated=total_generated,
        total_deductible_base=sum(r.taxable_base for r in deductible_lines),
        total_deductible=total_deductible,
        net_payable=total_generated - total_deductible,
        reconciliation=tuple(reconciliation),
        discrepancies=tuple(
            sorted(discrepancies, key=lambda d: (d.entry_date, d.entry_number, d.account_code))
        ),
        is_reconciled=all(r.difference == 0 for r in reconciliation),
        period=period,
    )


# =========================================================================
# Withholding
# =========================================================================


def build_withholding_summary(
    lines: Iterable[JournalLineView],
    accounts: Mapping[UUID, AccountInfo],
    policy: TaxPolicy,
    metadata: ReportMetadata,
    period: TaxPeriod | None = None,
) -> WithholdingSummaryReport:
    """
    Withholding per counterparty and rate, largest withheld amount first.

    A line with a recorded base whose withheld amount differs from
    ``compute_withholding(base)`` (including withholding below the
    minimum base) is listed as a discrepancy.
    """
    groups: dict[tuple[str | None, str], list] = defaultdict(list)
    rules: dict[str, TaxRule] = {}
    discrepancies = []

    for line, rule, tax in _tax_lines(lines, accounts, policy, WITHHOLDING_KINDS):
        rules[rule.account_code] = rule
        groups[(line.counterparty_id, rule.account_code)].append(
            (line.entry_id, _signed_base(line, rule, tax), tax)
        )
        if line.tax_base is not None:
            expected = compute_withholding(line.tax_base, rule, policy.withholding_min_base)
            found = _discrepancy(line, rule, abs(tax), expected, policy.discrepancy_tolerance)
            if found is not None:
                discrepancies.append(found)

    rows = [
        WithholdingRow(
            counterparty_id=counterparty_id,
            kind=rules[code].kind.value,
            account_code=code,
            label=rules[code].label,
            rate_bp=rules[code].rate_bp,
            total_base=sum(base for _, base, _ in items),
            total_withheld=sum(tax for _, _, tax in items),
            entry_count=len({entry_id for entry_id, _, _ in items}),
        )
        for (counterparty_id, code), items in groups.items()
    ]
    rows.sort(key=lambda r: (-r.total_withheld, r.counterparty_id or "", r.account_code))

    return WithholdingSummaryReport(
        metadata=metadata,
        rows=tuple(rows),
        total_base=sum(r.total_base for r in rows),
        total_payable=sum(
            r.total_withheld for r in rows if r.kind == TaxKind.WITHHOLDING_PAYABLE.value
        ),
        total_receivable=sum(
            r.total_withheld for r in rows if r.kind == TaxKind.WITHHOLDING_RECEIVABLE.value
        ),
        discrepancies=tuple(
            sorted(discrepancies, key=lambda d: (d.entry_date, d.entry_number, d.account_code))
        ),
        period=period,
    )


# =========================================================================
# Year to date
# =========================================================================


def build_tax_year_summary(
    year: int,
    vat: VatDeclarationReport,
    withholding: WithholdingSummaryReport,
    metadata: ReportMetadata,
) -> TaxYearSummaryReport:
    return TaxYearSummaryReport(
        metadata=metadata,
        year=year,
        vat_generated=vat.total_generated,
        vat_deductible=vat.total_deductible,
        net_vat=vat.net_payable,
        withholding_base=withholding.total_base,
        withholding_payable=withholding.total_payable,
        withholding_receivable=withholding.total_receivable,
    )
