"""
Receivables/payables aging over open documents.
"""

from datetime import date
from uuid import uuid4

import pytest
from hypothesis import given
from hypothesis import strategies as st

from ledger_config.schema import AgingBucket, AgingPolicy
from ledger_reports.aging import OpenItem, build_aging, days_past_due, due_date_for_terms
from ledger_reports.models import ReportMetadata, ReportType

AS_OF = date(2024, 6, 30)
POLICY = AgingPolicy()


def _metadata():
    return ReportMetadata(
        tenant_id=uuid4(),
        report_type=ReportType.RECEIVABLES_AGING,
        currency="COP",
        generated_at="2024-06-30T12:00:00+00:00",
        as_of=AS_OF,
    )


def _item(doc, party, due, total, paid=0, name=None):
    return OpenItem(
        document_id=doc,
        party_id=party,
        party_name=name or party.title(),
        issue_date=due,
        due_date=due,
        total=total,
        paid=paid,
    )


class TestDueDates:

    @pytest.mark.parametrize(
        "terms,expected",
        [
            ("IMMEDIATE", date(2024, 1, 31)),
            ("NET_15", date(2024, 2, 15)),
            ("net_30", date(2024, 3, 1)),
            ("NET_60", date(2024, 3, 31)),
            (None, date(2024, 3, 1)),
        ],
    )
    def test_terms(self, terms, expected):
        assert due_date_for_terms(date(2024, 1, 31), terms) == expected

    def test_explicit_due_date_wins(self):
        item = OpenItem(
            "FV-1", "c1", "Cliente", date(2024, 1, 1), 100,
            due_date=date(2024, 6, 1), terms="IMMEDIATE",
        )
        assert days_past_due(item, AS_OF) == 29

    def test_due_date_derived_from_terms(self):
        item = OpenItem("FV-1", "c1", "Cliente", date(2024, 5, 1), 100, terms="NET_30")
        assert days_past_due(item, AS_OF) == 30


class TestBuildAging:

    def test_buckets_per_party(self):
        items = [
            _item("FV-1", "acme", date(2024, 7, 15), 1000),
            _item("FV-2", "acme", date(2024, 6, 10), 500),
            _item("FV-3", "acme", date(2024, 3, 1), 300),
            _item("FV-4", "beta", date(2024, 5, 15), 2000, paid=500),
        ]
        report = build_aging(items, AS_OF, POLICY, _metadata())

        assert report.bucket_labels == ("current", "1-30", "31-60", "61-90", "90+")
        acme, beta = sorted(report.rows, key=lambda r: r.party_id)
        assert acme.amount_in("current") == 1000
        assert acme.amount_in("1-30") == 500
        assert acme.amount_in("90+") == 300
        assert acme.total_overdue == 800
        assert acme.total_balance == 1800
        assert acme.document_count == 3
        assert beta.amount_in("31-60") == 1500
        assert report.total_balance == 3300
        assert report.total_overdue == 2300
        assert report.total_in("current") == 1000

    def test_rows_ordered_by_balance(self):
        items = [
            _item("A", "small", AS_OF, 100),
            _item("B", "big", AS_OF, 900),
        ]
        report = build_aging(items, AS_OF, POLICY, _metadata())
        assert [r.party_id for r in report.rows] == ["big", "small"]

    def test_settled_documents_skipped(self):
        items = [_item("A", "paid", date(2024, 1, 1), 100, paid=100)]
        report = build_aging(items, AS_OF, POLICY, _metadata())
        assert report.rows == ()
        assert report.total_balance == 0

    def test_due_today_is_current(self):
        report = build_aging([_item("A", "p", AS_OF, 100)], AS_OF, POLICY, _metadata())
        assert report.rows[0].total_overdue == 0

    def test_custom_buckets(self):
        policy = AgingPolicy(
            buckets=(
                AgingBucket("al dia", None, 0),
                AgingBucket("vencido", 1, None),
            )
        )
        items = [_item("A", "p", date(2024, 6, 29), 100), _item("B", "p", AS_OF, 50)]
        report = build_aging(items, AS_OF, policy, _metadata())
        assert report.rows[0].buckets == (("al dia", 50), ("vencido", 100))

    @given(
        amounts=st.lists(
            st.tuples(
                st.integers(min_value=1, max_value=10**9),
                st.integers(min_value=-400, max_value=400),
            ),
            max_size=20,
        )
    )
    def test_buckets_sum_to_balance(self, amounts):
        items = [
            _item(f"D{i}", f"p{i % 3}", date.fromordinal(AS_OF.toordinal() - days), total)
            for i, (total, days) in enumerate(amounts)
        ]
        report = build_aging(items, AS_OF, POLICY, _metadata())
        assert sum(amount for _, amount in report.totals) == report.total_balance
        assert report.total_balance == sum(total for total, _ in amounts)
        for row in report.rows:
            assert sum(amount for _, amount in row.buckets) == row.total_balance
