"""
ledger_reports -- read-only reports over the tenant ledger.

``ReportBuilder`` loads balances and entries through the kernel selectors
and hands them to the pure builders in ``statements``, ``aging`` and
``tax``.  Every report is a frozen dataclass carrying ``ReportMetadata``
and can be serialised with ``render_to_dict``.
"""

from ledger_reports.aging import OpenItem, due_date_for_terms
from ledger_reports.models import ReportMetadata, ReportType
from ledger_reports.service import ReportBuilder
from ledger_reports.statements import render_to_dict
from ledger_reports.tax import month_period, vat_period_range

__all__ = [
    "OpenItem",
    "ReportBuilder",
    "ReportMetadata",
    "ReportType",
    "due_date_for_terms",
    "month_period",
    "render_to_dict",
    "vat_period_range",
]
