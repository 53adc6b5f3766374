"""Concurrent execution of planned queries against a search provider.

Every query runs on a thread pool; a failing query is logged and counts as zero
hits, so siblings and other types are unaffected. Results are gathered back in
plan/query order, independent of completion order.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from ..config import get_settings
from ..log import get_logger
from ..schemas.evidence import EvidenceHit, EvidenceType, HarvestStats, QueryPlan
from .search import SearchProvider

logger = get_logger("harvest")


class HarvestResult(BaseModel):
    hits_by_type: Dict[EvidenceType, List[EvidenceHit]] = Field(default_factory=dict)
    stats: HarvestStats = Field(default_factory=HarvestStats)
    errors: List[str] = Field(default_factory=list)

    def all_hits(self) -> List[EvidenceHit]:
        return [hit for hits in self.hits_by_type.values() for hit in hits]


def _run_query(provider: SearchProvider, query: str, max_results: int) -> List[EvidenceHit]:
    return provider.search(query, max_results=max_results)


def harvest(
    plans: Sequence[QueryPlan],
    provider: SearchProvider,
    max_workers: Optional[int] = None,
    results_per_query: Optional[int] = None,
) -> HarvestResult:
    settings = get_settings()
    max_workers = max_workers or settings.HARVEST_CONCURRENCY
    results_per_query = results_per_query or settings.HARVEST_RESULTS_PER_QUERY

    result = HarvestResult(hits_by_type={plan.type: [] for plan in plans})
    jobs = [(plan.type, query) for plan in plans for query in plan.queries]
    if not jobs:
        return result

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="harvest") as pool:
        futures = [
            pool.submit(_run_query, provider, query, results_per_query)
            for _, query in jobs
        ]

        for (evidence_type, query), future in zip(jobs, futures):
            result.stats.queries += 1
            try:
                hits = future.result()
            except Exception as e:
                logger.warning(f"Query failed [{evidence_type.value}] '{query}': {e}")
                result.stats.failed_queries += 1
                result.errors.append(f"{query}: {e}")
                continue

            tagged = [hit.model_copy(update={"harvest_type": evidence_type}) for hit in hits]
            result.hits_by_type[evidence_type].extend(tagged)
            result.stats.returned += len(tagged)

    logger.info(
        f"Harvested {result.stats.returned} hits from {result.stats.queries} queries "
        f"({result.stats.failed_queries} failed)"
    )
    return result
