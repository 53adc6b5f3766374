"""Pydantic schemas for evidence and coverage data.

Defines the closed EvidenceType set, raw EvidenceHit, classified EvidenceItem,
query plans, per-competitor evidence and the CoverageReport.
"""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EvidenceType(str, Enum):
    PRICING = "pricing"
    DOCS = "docs"
    REVIEWS = "reviews"
    JOBS = "jobs"
    CHANGELOG = "changelog"
    BLOG = "blog"
    COMMUNITY = "community"
    SECURITY = "security"
    CASE_STUDIES = "case_studies"
    OTHER = "other"


# Declaration order is the canonical enumeration order.
EVIDENCE_TYPES: List[EvidenceType] = list(EvidenceType)


class Confidence(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def _missing_(cls, value: object):
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered == "med":
                return cls.MEDIUM
            for member in cls:
                if member.value == lowered:
                    return member
        return None


def assert_exhaustive(table: Mapping[Any, Any], members: Iterable[Any], name: str) -> None:
    """Fail at import time when a per-member table misses an enum member."""
    missing = [m for m in members if m not in table]
    if missing:
        raise RuntimeError(f"{name} is missing entries for: {', '.join(str(m.value) for m in missing)}")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Lenient date parsing: ISO 8601 or RFC 2822; anything else is None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            try:
                parsed = parsedate_to_datetime(text)
            except (TypeError, ValueError):
                return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class EvidenceHit(BaseModel):
    """Raw search hit: untyped and unranked."""
    url: str = ""
    title: Optional[str] = None
    snippet: Optional[str] = None
    published_at: Optional[datetime] = None
    retrieved_at: Optional[datetime] = None
    harvest_type: Optional[EvidenceType] = None

    @field_validator("published_at", "retrieved_at", mode="before")
    @classmethod
    def _lenient_dates(cls, value: Any) -> Optional[datetime]:
        return parse_timestamp(value)

    def reference_date(self) -> Optional[datetime]:
        return self.published_at or self.retrieved_at


class EvidenceItem(EvidenceHit):
    """A canonicalized, deduplicated, classified hit. Immutable."""
    model_config = ConfigDict(frozen=True)

    canonical_key: str
    canonical_url: Optional[str] = None
    domain: str = ""
    type: EvidenceType
    fingerprint: str
    confidence: Optional[Confidence] = None


class QueryPlan(BaseModel):
    type: EvidenceType
    queries: List[str] = Field(..., min_length=1)
    preferred_domains: Optional[List[str]] = None


class HarvestStats(BaseModel):
    queries: int = 0
    failed_queries: int = 0
    returned: int = 0
    kept: int = 0
    deduped: int = 0


class CompetitorEvidence(BaseModel):
    competitor_id: str
    competitor_name: str
    primary_url: Optional[str] = None
    first_party_domains: List[str] = Field(default_factory=list)
    items: List[EvidenceItem] = Field(default_factory=list)
    stats: HarvestStats = Field(default_factory=HarvestStats)


class Gap(BaseModel):
    type: EvidenceType
    suggestion: str


class CompetitorCoverage(BaseModel):
    competitor_id: str
    total: int
    counts_by_type: Dict[EvidenceType, int]
    types_covered: int
    first_party_ratio: Optional[float] = None
    recency_score: Optional[float] = None


class CoverageReport(BaseModel):
    """Derived view; recomputed on every read and never stored as truth."""
    counts_by_type: Dict[EvidenceType, int]
    competitors: List[CompetitorCoverage] = Field(default_factory=list)
    competitors_with_evidence: int = 0
    total_competitors: int = 0
    types_covered: int = 0
    first_party_count: int = 0
    third_party_count: int = 0
    first_party_ratio: Optional[float] = None
    recency_score: Optional[float] = None
    newest_age_days: Optional[int] = None
    recency_message: str = ""
    meets_mvc: bool = False
    failed_checks: List[str] = Field(default_factory=list)
    overall_confidence_label: str = "Insufficient"
    gaps: List[Gap] = Field(default_factory=list)
