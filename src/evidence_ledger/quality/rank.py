"""Composite relevance ranking for classified evidence.

score = 0.35 * recency + 0.25 * party + 0.25 * type_value + 0.15 * confidence

Ties break on first-party status, then type value, then reference timestamp
(newest first, undated last), then original position.
"""

from datetime import datetime
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence

from ..schemas.evidence import Confidence, EvidenceItem, EvidenceType, assert_exhaustive
from .recency import recency_score

WEIGHTS = {
    "recency": 0.35,
    "party": 0.25,
    "type_value": 0.25,
    "confidence": 0.15,
}

PARTY_SCORES = {
    "first": 1.0,
    "third": 0.5,
    "unknown": 0.0,
}

# pricing > docs > reviews > changelog > security > case_studies > jobs > community > blog > other
TYPE_VALUES: Dict[EvidenceType, float] = {
    EvidenceType.PRICING: 1.0,
    EvidenceType.DOCS: 0.9,
    EvidenceType.REVIEWS: 0.8,
    EvidenceType.CHANGELOG: 0.7,
    EvidenceType.SECURITY: 0.6,
    EvidenceType.CASE_STUDIES: 0.5,
    EvidenceType.JOBS: 0.4,
    EvidenceType.COMMUNITY: 0.3,
    EvidenceType.BLOG: 0.2,
    EvidenceType.OTHER: 0.1,
}

CONFIDENCE_SCORES: Dict[Optional[Confidence], float] = {
    Confidence.HIGH: 1.0,
    Confidence.MEDIUM: 0.75,
    Confidence.LOW: 0.5,
    None: 0.25,
}

assert_exhaustive(TYPE_VALUES, EvidenceType, "TYPE_VALUES")
assert_exhaustive(CONFIDENCE_SCORES, Confidence, "CONFIDENCE_SCORES")


class ScoreBreakdown(NamedTuple):
    recency: float
    party: float
    type_value: float
    confidence: float
    total: float


def normalize_domains(domains: Optional[Iterable[str]]) -> List[str]:
    cleaned = []
    for domain in domains or []:
        d = (domain or "").strip().lower()
        if d.startswith("www."):
            d = d[4:]
        if d:
            cleaned.append(d)
    return cleaned


def party_of(item: EvidenceItem, first_party_domains: Sequence[str]) -> str:
    domain = (item.domain or "").lower()
    if not domain:
        return "unknown"
    for fp in first_party_domains:
        if domain == fp or domain.endswith("." + fp):
            return "first"
    return "third"


def score_item(
    item: EvidenceItem,
    first_party_domains: Iterable[str],
    now: Optional[datetime] = None,
) -> ScoreBreakdown:
    domains = normalize_domains(first_party_domains)
    recency = recency_score(item, now)
    party = PARTY_SCORES[party_of(item, domains)]
    type_value = TYPE_VALUES[item.type]
    confidence = CONFIDENCE_SCORES[item.confidence]
    total = (
        WEIGHTS["recency"] * recency
        + WEIGHTS["party"] * party
        + WEIGHTS["type_value"] * type_value
        + WEIGHTS["confidence"] * confidence
    )
    return ScoreBreakdown(recency, party, type_value, confidence, round(total, 6))


def rank(
    items: Iterable[EvidenceItem],
    first_party_domains: Iterable[str],
    now: Optional[datetime] = None,
) -> List[EvidenceItem]:
    domains = normalize_domains(first_party_domains)
    keyed = []
    for position, item in enumerate(items):
        breakdown = score_item(item, domains, now)
        reference = item.reference_date()
        keyed.append((
            -breakdown.total,
            -breakdown.party,
            -breakdown.type_value,
            -reference.timestamp() if reference is not None else float("inf"),
            position,
            item,
        ))
    keyed.sort(key=lambda k: k[:5])
    return [k[-1] for k in keyed]
