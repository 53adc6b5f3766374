from datetime import datetime, timedelta, timezone

import pytest

from evidence_ledger.quality.coverage import MVCThresholds, analyze_coverage, confidence_label
from evidence_ledger.quality.rank import party_of, rank, score_item
from evidence_ledger.quality.recency import age_days, bucket_for, recency_message, recency_score
from evidence_ledger.retrieval.url import canonicalize, extract_domain, fingerprint
from evidence_ledger.schemas.evidence import EvidenceItem, EvidenceType

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


def make_item(url, evidence_type=EvidenceType.DOCS, days_old=None, title=None) -> EvidenceItem:
    key = canonicalize(url)
    return EvidenceItem(
        url=url,
        title=title,
        published_at=NOW - timedelta(days=days_old) if days_old is not None else None,
        canonical_key=key,
        canonical_url=key,
        domain=extract_domain(url),
        type=evidence_type,
        fingerprint=fingerprint(key),
    )


class TestRecency:
    def test_buckets(self):
        """
        WHY: Ranking, coverage and messaging share one bucket table.
        HOW: Look up bucket scores at the boundaries.
        EXPECTED: Inclusive upper bounds; anything older or undated scores 0.2.
        """
        assert bucket_for(30).score == 1.0
        assert bucket_for(31).score == 0.8
        assert bucket_for(365).score == 0.4
        assert bucket_for(366).score == 0.2
        assert bucket_for(None).score == 0.2

    def test_future_dates_count_as_today(self):
        """
        WHY: Sites occasionally publish with a future timestamp; negative ages break bucketing.
        HOW: Age an item published tomorrow.
        EXPECTED: 0 days and the freshest score.
        """
        item = make_item("https://acme.io/docs", days_old=-1)
        assert age_days(item, NOW) == 0
        assert recency_score(item, NOW) == 1.0

    def test_message(self):
        """
        WHY: The coverage summary explains how fresh the newest evidence is.
        HOW: Render messages for no dates and for a 45-day-old newest item.
        EXPECTED: Human-readable text naming the bucket and the age.
        """
        assert recency_message(None) == "No dated evidence yet"
        assert recency_message(45) == "Most recent evidence is from the last 90 days (45 days ago)"


class TestRanking:
    def test_newer_item_ranks_higher(self):
        """
        WHY: Fresh evidence is more useful than stale evidence of the same kind.
        HOW: Rank two items identical except for publish date, older one first in input.
        EXPECTED: The newer item comes first.
        """
        older = make_item("https://acme.io/docs/a", days_old=20)
        newer = make_item("https://acme.io/docs/b", days_old=2)

        assert rank([older, newer], ["acme.io"], now=NOW) == [newer, older]

    def test_same_day_items_order_by_timestamp(self):
        """
        WHY: Two posts from the same day still differ in freshness; whole-day ages would tie them.
        HOW: Rank items published ten hours and one hour before now, older one first in input.
        EXPECTED: The item from one hour ago comes first.
        """
        older = make_item("https://acme.com/p10")
        older = older.model_copy(update={"published_at": NOW - timedelta(hours=10)})
        newer = make_item("https://acme.com/p1")
        newer = newer.model_copy(update={"published_at": NOW - timedelta(hours=1)})

        assert rank([older, newer], ["acme.com"], now=NOW) == [newer, older]

    def test_first_party_ranks_higher(self):
        """
        WHY: The competitor's own pages are the authoritative source for its claims.
        HOW: Rank a third-party item ahead of an otherwise identical first-party item.
        EXPECTED: The first-party item comes first with a strictly higher score.
        """
        third = make_item("https://blog.example.com/docs/acme", days_old=5)
        first = make_item("https://docs.acme.io/docs/start", days_old=5)

        ranked = rank([third, first], ["www.acme.io"], now=NOW)

        assert ranked == [first, third]
        assert score_item(first, ["acme.io"], NOW).total > score_item(third, ["acme.io"], NOW).total

    def test_type_value_orders_equal_items(self):
        """
        WHY: Pricing is worth more than blog posts when everything else is equal.
        HOW: Rank a blog item ahead of a pricing item with the same age and party.
        EXPECTED: Pricing first.
        """
        blog = make_item("https://acme.io/blog/x", EvidenceType.BLOG, days_old=10)
        pricing = make_item("https://acme.io/pricing", EvidenceType.PRICING, days_old=10)

        assert rank([blog, pricing], ["acme.io"], now=NOW) == [pricing, blog]

    def test_ties_keep_input_order(self):
        """
        WHY: Ranking must be deterministic.
        HOW: Rank two undated items that differ only by URL.
        EXPECTED: Input order preserved.
        """
        a = make_item("https://acme.io/docs/a")
        b = make_item("https://acme.io/docs/b")
        assert rank([a, b], ["acme.io"], now=NOW) == [a, b]

    def test_party_of_title_keyed_item_is_unknown(self):
        """
        WHY: Items keyed by title have no domain and cannot be attributed.
        HOW: Check the party of an item without a domain.
        EXPECTED: "unknown".
        """
        item = EvidenceItem(url="", title="Acme news", canonical_key="title:acme news",
                            type=EvidenceType.BLOG, fingerprint=fingerprint("title:acme news"))
        assert party_of(item, ["acme.io"]) == "unknown"


class TestCoverage:
    def test_insufficient_when_too_few_competitors_have_evidence(self):
        """
        WHY: Generation on one competitor's evidence would misrepresent the market.
        HOW: Analyze rich, fresh evidence for only one of three competitors.
        EXPECTED: meets_mvc False and label "Insufficient" regardless of breadth and recency.
        """
        rich = [
            make_item(f"https://acme.io/{path}", t, days_old=1)
            for path, t in (
                ("pricing", EvidenceType.PRICING),
                ("docs", EvidenceType.DOCS),
                ("changelog", EvidenceType.CHANGELOG),
                ("security", EvidenceType.SECURITY),
                ("careers", EvidenceType.JOBS),
                ("customers", EvidenceType.CASE_STUDIES),
                ("blog", EvidenceType.BLOG),
            )
        ]
        report = analyze_coverage(
            {"c1": rich, "c2": [], "c3": []},
            first_party_domains={"c1": ["acme.io"]},
            thresholds=MVCThresholds(2, 2),
            now=NOW,
        )

        assert report.meets_mvc is False
        assert report.overall_confidence_label == "Insufficient"
        assert report.competitors_with_evidence == 1
        assert report.total_competitors == 3
        assert report.failed_checks

    def test_report_counts_gaps_and_party_split(self):
        """
        WHY: The coverage view drives which evidence an analyst goes looking for next.
        HOW: Analyze two competitors with pricing/docs/reviews evidence, one review third-party.
        EXPECTED: Counts per type, gaps for missing types in canonical order, party ratio and recency.
        """
        report = analyze_coverage(
            {
                "c1": [make_item("https://acme.io/pricing", EvidenceType.PRICING, days_old=10),
                       make_item("https://www.g2.com/products/acme", EvidenceType.REVIEWS, days_old=200)],
                "c2": [make_item("https://globex.com/docs", EvidenceType.DOCS, days_old=100)],
            },
            first_party_domains={"c1": ["acme.io"], "c2": ["globex.com"]},
            thresholds=MVCThresholds(2, 2),
            now=NOW,
        )

        assert report.counts_by_type[EvidenceType.PRICING] == 1
        assert report.counts_by_type[EvidenceType.REVIEWS] == 1
        assert report.types_covered == 3
        assert report.first_party_count == 2
        assert report.third_party_count == 1
        assert report.first_party_ratio == pytest.approx(2 / 3, abs=1e-4)
        assert report.newest_age_days == 10
        assert report.recency_score == 1.0
        assert report.meets_mvc is True
        # breadth 3/9 is below the Medium floor
        assert report.overall_confidence_label == "Low"
        assert [g.type for g in report.gaps] == [
            EvidenceType.JOBS, EvidenceType.CHANGELOG, EvidenceType.BLOG,
            EvidenceType.COMMUNITY, EvidenceType.SECURITY, EvidenceType.CASE_STUDIES,
        ]

    @pytest.mark.parametrize("meets,breadth,recency,expected", [
        (True, 0.8, 0.8, "High"),
        (True, 0.7, 0.6, "Medium"),
        (True, 0.5, 0.2, "Low"),
        (True, 0.9, None, "Low"),
        (False, 1.0, 1.0, "Insufficient"),
    ])
    def test_confidence_label(self, meets, breadth, recency, expected):
        """
        WHY: Labels gate how much weight users put on generated analysis.
        HOW: Evaluate label thresholds directly.
        EXPECTED: MVC gate first, then High/Medium floors, else Low.
        """
        assert confidence_label(meets, breadth, recency) == expected
