"""Evidence coverage analysis and minimum-viable-coverage (MVC) gating.

The report is derived from ranked items on every read and is never stored as
the source of truth.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Sequence

from ..config import get_settings
from ..schemas.evidence import (
    EVIDENCE_TYPES,
    CompetitorCoverage,
    CoverageReport,
    EvidenceItem,
    EvidenceType,
    Gap,
    assert_exhaustive,
)
from .rank import normalize_domains, party_of
from .recency import age_days, bucket_for, recency_message

EXPECTED_TYPES: List[EvidenceType] = [t for t in EVIDENCE_TYPES if t is not EvidenceType.OTHER]

GAP_SUGGESTIONS: Dict[EvidenceType, str] = {
    EvidenceType.PRICING: 'Try searching for "/pricing" or "/plans" pages',
    EvidenceType.DOCS: 'Try searching for "/docs" or documentation sites',
    EvidenceType.REVIEWS: "Try searching for product reviews on G2, Capterra, or Trustpilot",
    EvidenceType.JOBS: "Try searching for job postings on company careers pages",
    EvidenceType.CHANGELOG: "Try adding /releases or /blog product updates",
    EvidenceType.BLOG: "Try searching for company blog or news pages",
    EvidenceType.COMMUNITY: "Try searching for community forums or Discord servers",
    EvidenceType.SECURITY: "Try searching for security pages or compliance docs",
    EvidenceType.CASE_STUDIES: "Try searching for customer stories or case studies",
    EvidenceType.OTHER: "Try broadening search terms",
}

assert_exhaustive(GAP_SUGGESTIONS, EvidenceType, "GAP_SUGGESTIONS")

# (label, min breadth, min recency), checked in order after the MVC gate passes.
CONFIDENCE_LABELS = (
    ("High", 0.7, 0.8),
    ("Medium", 0.4, 0.6),
)


@dataclass(frozen=True)
class MVCThresholds:
    min_competitors_with_evidence: int = 2
    min_types_covered: int = 2

    @classmethod
    def from_settings(cls) -> "MVCThresholds":
        settings = get_settings()
        return cls(
            min_competitors_with_evidence=settings.MVC_MIN_COMPETITORS_WITH_EVIDENCE,
            min_types_covered=settings.MVC_MIN_TYPES_COVERED,
        )


def _zero_counts() -> Dict[EvidenceType, int]:
    return {t: 0 for t in EVIDENCE_TYPES}


def _ratio(first: int, third: int) -> Optional[float]:
    if first + third == 0:
        return None
    return round(first / (first + third), 4)


def _newest_age(items: Sequence[EvidenceItem], now: Optional[datetime]) -> Optional[int]:
    ages = [d for d in (age_days(item, now) for item in items) if d is not None]
    return min(ages) if ages else None


def confidence_label(meets_mvc: bool, breadth: float, recency: Optional[float]) -> str:
    if not meets_mvc:
        return "Insufficient"
    recency = recency or 0.0
    for label, min_breadth, min_recency in CONFIDENCE_LABELS:
        if breadth >= min_breadth and recency >= min_recency:
            return label
    return "Low"


def analyze_coverage(
    items_by_competitor: Mapping[str, Sequence[EvidenceItem]],
    total_competitors: Optional[int] = None,
    first_party_domains: Optional[Mapping[str, Sequence[str]]] = None,
    thresholds: Optional[MVCThresholds] = None,
    now: Optional[datetime] = None,
) -> CoverageReport:
    """
    Aggregate ranked evidence into a CoverageReport.

    items_by_competitor: competitor id -> its deduplicated, classified items.
    first_party_domains: competitor id -> that competitor's own domains.
    """
    thresholds = thresholds or MVCThresholds.from_settings()
    first_party_domains = first_party_domains or {}
    if total_competitors is None:
        total_competitors = len(items_by_competitor)

    counts = _zero_counts()
    competitors = []
    first_count = third_count = 0
    all_items: List[EvidenceItem] = []

    for competitor_id, items in items_by_competitor.items():
        domains = normalize_domains(first_party_domains.get(competitor_id))
        competitor_counts = _zero_counts()
        comp_first = comp_third = 0
        for item in items:
            competitor_counts[item.type] += 1
            counts[item.type] += 1
            party = party_of(item, domains)
            if party == "first":
                comp_first += 1
            elif party == "third":
                comp_third += 1
        first_count += comp_first
        third_count += comp_third
        all_items.extend(items)

        comp_newest = _newest_age(items, now)
        competitors.append(CompetitorCoverage(
            competitor_id=competitor_id,
            total=len(items),
            counts_by_type=competitor_counts,
            types_covered=sum(1 for t in EXPECTED_TYPES if competitor_counts[t] > 0),
            first_party_ratio=_ratio(comp_first, comp_third),
            recency_score=bucket_for(comp_newest).score if comp_newest is not None else None,
        ))

    competitors_with_evidence = sum(1 for c in competitors if c.total > 0)
    types_covered = sum(1 for t in EXPECTED_TYPES if counts[t] > 0)
    newest = _newest_age(all_items, now)
    recency = bucket_for(newest).score if newest is not None else None

    failed_checks = []
    if competitors_with_evidence < thresholds.min_competitors_with_evidence:
        failed_checks.append(
            f"Only {competitors_with_evidence} of {total_competitors} competitors have evidence "
            f"(need {thresholds.min_competitors_with_evidence})"
        )
    if types_covered < thresholds.min_types_covered:
        failed_checks.append(
            f"Only {types_covered} evidence types covered (need {thresholds.min_types_covered})"
        )
    meets_mvc = not failed_checks

    breadth = types_covered / len(EXPECTED_TYPES)
    gaps = [Gap(type=t, suggestion=GAP_SUGGESTIONS[t]) for t in EXPECTED_TYPES if counts[t] == 0]

    return CoverageReport(
        counts_by_type=counts,
        competitors=competitors,
        competitors_with_evidence=competitors_with_evidence,
        total_competitors=total_competitors,
        types_covered=types_covered,
        first_party_count=first_count,
        third_party_count=third_count,
        first_party_ratio=_ratio(first_count, third_count),
        recency_score=recency,
        newest_age_days=newest,
        recency_message=recency_message(newest),
        meets_mvc=meets_mvc,
        failed_checks=failed_checks,
        overall_confidence_label=confidence_label(meets_mvc, breadth, recency),
        gaps=gaps,
    )
