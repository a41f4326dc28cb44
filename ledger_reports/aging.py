"""
Receivables / payables aging -- pure functions.

Open documents come from the invoicing and purchasing modules as
``OpenItem`` values; nothing here touches the journal.  Bucket bounds and
payment terms come from the tenant's ``AgingPolicy``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta

from ledger_config.schema import AgingPolicy
from ledger_reports.models import AgingReport, AgingRow, ReportMetadata


@dataclass(frozen=True)
class OpenItem:
    """
    An unpaid (or partly paid) document.

    When ``due_date`` is None it is derived from ``issue_date`` and
    ``terms`` (IMMEDIATE, NET_15, NET_30, NET_60).
    """

    document_id: str
    party_id: str
    party_name: str
    issue_date: date
    total: int
    paid: int = 0
    due_date: date | None = None
    terms: str | None = None

    @property
    def remaining(self) -> int:
        return self.total - self.paid


def due_date_for_terms(
    issue_date: date,
    terms: str | None,
    policy: AgingPolicy | None = None,
) -> date:
    """Issue date plus the term's days; unknown terms use the default (30)."""
    policy = policy or AgingPolicy()
    return issue_date + timedelta(days=policy.terms_days(terms))


def days_past_due(item: OpenItem, as_of: date, policy: AgingPolicy | None = None) -> int:
    due = item.due_date or due_date_for_terms(item.issue_date, item.terms, policy)
    return (as_of - due).days


def build_aging(
    items: Iterable[OpenItem],
    as_of: date,
    policy: AgingPolicy,
    metadata: ReportMetadata,
) -> AgingReport:
    """
    Sum remaining balances per party into aging buckets.

    Items with nothing remaining are skipped.  The first bucket is
    "current"; every later bucket counts towards ``total_overdue``.  Rows
    are ordered by total balance descending.
    """
    labels = policy.labels
    current = labels[0]
    per_party: dict[str, dict[str, int]] = {}
    names: dict[str, str] = {}
    documents: dict[str, int] = {}

    for item in items:
        remaining = item.remaining
        if remaining <= 0:
            continue
        label = policy.bucket_for(days_past_due(item, as_of, policy))
        buckets = per_party.setdefault(item.party_id, dict.fromkeys(labels, 0))
        buckets[label] += remaining
        names.setdefault(item.party_id, item.party_name)
        documents[item.party_id] = documents.get(item.party_id, 0) + 1

    rows = []
    for party_id, buckets in per_party.items():
        balance = sum(buckets.values())
        rows.append(
            AgingRow(
                party_id=party_id,
                party_name=names[party_id],
                buckets=tuple((label, buckets[label]) for label in labels),
                total_overdue=balance - buckets[current],
                total_balance=balance,
                document_count=documents[party_id],
            )
        )
    rows.sort(key=lambda r: (-r.total_balance, r.party_name, r.party_id))

    totals = tuple((label, sum(r.amount_in(label) for r in rows)) for label in labels)
    return AgingReport(
        metadata=metadata,
        bucket_labels=labels,
        rows=tuple(rows),
        totals=totals,
        total_overdue=sum(r.total_overdue for r in rows),
        total_balance=sum(r.total_balance for r in rows),
    )
