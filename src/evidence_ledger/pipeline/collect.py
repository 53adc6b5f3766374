"""Evidence collection: plan -> harvest -> canonicalize/dedupe -> classify -> rank.

EvidenceCollectionRun runs the pipeline for every competitor of a project and
stores the result as an evidence_bundle artifact.
"""

import uuid
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from ..config import get_settings
from ..errors import InputError
from ..log import get_logger
from ..mlops.tracking import tracker
from ..quality.coverage import analyze_coverage
from ..quality.rank import rank
from ..retrieval.classify import ClassifierRules, classify, get_rules
from ..retrieval.harvest import harvest
from ..retrieval.queries import plan_queries
from ..retrieval.search import SearchProvider, get_search_provider
from ..retrieval.url import canonical_url, canonicalize, dedupe, extract_domain, fingerprint
from ..schemas.artifacts import ArtifactMeta, ArtifactType, EvidenceBundleContent
from ..schemas.evidence import (
    EVIDENCE_TYPES,
    CompetitorEvidence,
    EvidenceHit,
    EvidenceItem,
    EvidenceType,
    HarvestStats,
)
from ..schemas.project import Competitor
from ..store.repo import Repo
from .access import authorize_project
from .result import RunResult, guarded_run

logger = get_logger("collect")


def build_item(hit: EvidenceHit, rules: Optional[ClassifierRules] = None) -> Optional[EvidenceItem]:
    """Classify a hit into an immutable EvidenceItem; None when it has no usable key."""
    key = canonicalize(hit)
    if not key:
        return None
    evidence_type = classify(hit, rules)
    if evidence_type is EvidenceType.OTHER and hit.harvest_type is not None:
        evidence_type = hit.harvest_type
    return EvidenceItem(
        **hit.model_dump(),
        canonical_key=key,
        canonical_url=canonical_url(hit.url),
        domain=extract_domain(hit.url),
        type=evidence_type,
        fingerprint=fingerprint(key),
    )


def first_party_domains_for(competitor: Competitor) -> List[str]:
    domain = extract_domain(competitor.url) if competitor.url else ""
    return [domain] if domain else []


def limit_per_type(items: Iterable[EvidenceItem], limit: int) -> List[EvidenceItem]:
    kept, counts = [], defaultdict(int)
    for item in items:
        if counts[item.type] >= limit:
            continue
        counts[item.type] += 1
        kept.append(item)
    return kept


def collect_competitor_evidence(
    competitor: Competitor,
    provider: SearchProvider,
    include_types: Optional[Iterable[EvidenceType]] = None,
    per_type_limit: Optional[int] = None,
    rules: Optional[ClassifierRules] = None,
    now: Optional[datetime] = None,
) -> CompetitorEvidence:
    per_type_limit = per_type_limit or get_settings().EVIDENCE_LIMIT_PER_TYPE
    rules = rules or get_rules()
    first_party = first_party_domains_for(competitor)

    plans = plan_queries(competitor.name, competitor.url, include_types)
    harvested = harvest(plans, provider)

    hits = harvested.all_hits()
    unique = dedupe(hits)
    items = [item for item in (build_item(h, rules) for h in unique) if item is not None]
    ranked = rank(items, first_party, now=now)
    kept = limit_per_type(ranked, per_type_limit)

    stats = HarvestStats(
        queries=harvested.stats.queries,
        failed_queries=harvested.stats.failed_queries,
        returned=harvested.stats.returned,
        kept=len(kept),
        deduped=len(hits) - len(unique),
    )
    logger.info(
        f"{competitor.name}: {stats.returned} hits, {stats.deduped} duplicates, {stats.kept} kept"
    )
    return CompetitorEvidence(
        competitor_id=competitor.id,
        competitor_name=competitor.name,
        primary_url=competitor.url,
        first_party_domains=first_party,
        items=kept,
        stats=stats,
    )


def render_evidence_text(evidence: CompetitorEvidence, max_chars: Optional[int] = None) -> str:
    """Plain-text digest of ranked evidence, grouped by type, for snapshot prompts."""
    max_chars = max_chars or get_settings().MAX_EVIDENCE_CHARS
    by_type: Dict[EvidenceType, List[EvidenceItem]] = defaultdict(list)
    for item in evidence.items:
        by_type[item.type].append(item)

    lines: List[str] = []
    for evidence_type in EVIDENCE_TYPES:
        items = by_type.get(evidence_type)
        if not items:
            continue
        lines.append(f"## {evidence_type.value}")
        for item in items:
            date = item.reference_date()
            header = item.title or item.canonical_url or item.url
            source = item.canonical_url or item.url or "no url"
            suffix = f" ({date.date().isoformat()})" if date else ""
            lines.append(f"- {header} [{source}]{suffix}")
            if item.snippet:
                lines.append(f"  {item.snippet}")
        lines.append("")

    text = "\n".join(lines).strip()
    return text[:max_chars]


class EvidenceCollectionRun:
    def __init__(self, provider: Optional[SearchProvider] = None):
        self._provider = provider

    @property
    def provider(self) -> SearchProvider:
        return self._provider or get_search_provider()

    def run(
        self,
        project_id: str,
        user_id: Optional[str],
        include_types: Optional[List[EvidenceType]] = None,
    ) -> RunResult:
        run_id = str(uuid.uuid4())
        return guarded_run("evidence", run_id, lambda: self._run(run_id, project_id, user_id, include_types))

    def _run(self, run_id: str, project_id: str, user_id: Optional[str],
             include_types: Optional[List[EvidenceType]]) -> RunResult:
        settings = get_settings()
        authorize_project(project_id, user_id)

        competitors = Repo.list_competitors(project_id)
        count = len(competitors)
        if count == 0:
            raise InputError("Add at least one competitor before collecting evidence",
                             code="INSUFFICIENT_COMPETITORS", competitor_count=count)
        if count > settings.MAX_COMPETITORS:
            raise InputError(f"At most {settings.MAX_COMPETITORS} competitors are supported",
                             code="TOO_MANY_COMPETITORS", competitor_count=count)

        collected: List[CompetitorEvidence] = []
        with tracker.start_generation_run(run_id, project_id, "evidence") as trace_id:
            for competitor in competitors:
                with tracker.start_nested_run(f"collect_{competitor.name}", parent_run_id=trace_id,
                                              tags={"competitor_id": competitor.id}):
                    collected.append(collect_competitor_evidence(competitor, self.provider, include_types))

            coverage = analyze_coverage(
                {c.competitor_id: c.items for c in collected},
                total_competitors=count,
                first_party_domains={c.competitor_id: c.first_party_domains for c in collected},
            )
            tracker.set_tags({
                "coverage_label": coverage.overall_confidence_label,
                "meets_mvc": coverage.meets_mvc,
            })

        bundle = EvidenceBundleContent(competitors=collected, coverage=coverage)
        artifact = Repo.create_artifact(
            project_id,
            ArtifactType.EVIDENCE_BUNDLE,
            bundle,
            ArtifactMeta(run_id=run_id, stage="evidence_collection", provider=getattr(self.provider, "provider", None)),
        )
        logger.info(f"Evidence run {run_id} stored bundle {artifact.id} "
                    f"({coverage.overall_confidence_label} coverage)")
        return RunResult.success(run_id, [artifact.id])
