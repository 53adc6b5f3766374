"""Recency buckets shared by ranking, coverage scoring and coverage messaging.

One table: an item's age in days falls into the first bucket whose max_age_days
it does not exceed. Undated items score like the oldest bucket.
"""

from datetime import datetime, timezone
from typing import NamedTuple, Optional

from ..schemas.evidence import EvidenceHit


class RecencyBucket(NamedTuple):
    max_age_days: Optional[int]  # None means unbounded
    score: float
    label: str


RECENCY_BUCKETS = (
    RecencyBucket(30, 1.0, "the last 30 days"),
    RecencyBucket(90, 0.8, "the last 90 days"),
    RecencyBucket(180, 0.6, "the last 6 months"),
    RecencyBucket(365, 0.4, "the last year"),
    RecencyBucket(None, 0.2, "more than a year ago"),
)

MISSING_DATE_SCORE = RECENCY_BUCKETS[-1].score


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def age_days(item: EvidenceHit, now: Optional[datetime] = None) -> Optional[int]:
    """Whole days since published_at (else retrieved_at); future dates count as 0."""
    reference = item.reference_date()
    if reference is None:
        return None
    delta = _now(now) - reference
    return max(delta.days, 0)


def bucket_for(days: Optional[int]) -> RecencyBucket:
    if days is None:
        return RECENCY_BUCKETS[-1]
    for bucket in RECENCY_BUCKETS:
        if bucket.max_age_days is None or days <= bucket.max_age_days:
            return bucket
    return RECENCY_BUCKETS[-1]


def recency_score(item: EvidenceHit, now: Optional[datetime] = None) -> float:
    days = age_days(item, now)
    if days is None:
        return MISSING_DATE_SCORE
    return bucket_for(days).score


def recency_message(newest_age_days: Optional[int]) -> str:
    if newest_age_days is None:
        return "No dated evidence yet"
    bucket = bucket_for(newest_age_days)
    if bucket.max_age_days is None:
        return f"Most recent evidence is from {bucket.label} ({newest_age_days} days)"
    return f"Most recent evidence is from {bucket.label} ({newest_age_days} days ago)"
