"""Best-effort concurrent reads for display data.

Every task is wrapped in an AuxResult: a failure is logged and replaced with
the task's default, and the join never short-circuits. Nothing here can change
a run's outcome.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence

from ..config import get_settings
from ..errors import AuxiliaryFetchError
from ..log import get_logger
from ..quality.coverage import analyze_coverage
from ..schemas.artifacts import ArtifactType, EvidenceBundleContent
from ..schemas.evidence import CoverageReport
from ..store.repo import Repo
from .access import authorize_project

logger = get_logger("auxiliary")


class AuxTask(NamedTuple):
    name: str
    fetch: Callable[[], Any]
    default: Callable[[], Any] = lambda: None


class AuxResult(NamedTuple):
    name: str
    ok: bool
    value: Any
    error: Optional[str] = None


def _run_task(task: AuxTask) -> AuxResult:
    try:
        return AuxResult(task.name, True, task.fetch())
    except Exception as e:
        failure = AuxiliaryFetchError(f"{task.name} fetch failed: {e}", task=task.name)
        logger.warning(failure.message)
        return AuxResult(task.name, False, task.default(), str(e))


def fetch_all(tasks: Sequence[AuxTask], max_workers: Optional[int] = None) -> Dict[str, AuxResult]:
    """Run every task concurrently; always returns one AuxResult per task name."""
    if not tasks:
        return {}
    max_workers = max_workers or get_settings().AUX_FETCH_CONCURRENCY
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="aux") as pool:
        results = list(pool.map(_run_task, tasks))
    return {r.name: r for r in results}


def load_evidence_bundle(project_id: str) -> Optional[EvidenceBundleContent]:
    artifact = Repo.get_latest_artifact(project_id, ArtifactType.EVIDENCE_BUNDLE)
    if artifact is None:
        return None
    return EvidenceBundleContent.model_validate(artifact.content)


def coverage_from_bundle(bundle: Optional[EvidenceBundleContent],
                         total_competitors: Optional[int] = None) -> Optional[CoverageReport]:
    """Recompute coverage from stored evidence; the stored report is never trusted as-is."""
    if bundle is None:
        return None
    return analyze_coverage(
        {c.competitor_id: c.items for c in bundle.competitors},
        total_competitors=total_competitors if total_competitors is not None else len(bundle.competitors),
        first_party_domains={c.competitor_id: c.first_party_domains for c in bundle.competitors},
    )


def load_project_overview(project_id: str, user_id: Optional[str]) -> Dict[str, Any]:
    """
    Display data for one project. Authorization is enforced; the reads behind
    it are auxiliary and fall back to empty defaults.
    """
    project = authorize_project(project_id, user_id)

    results = fetch_all([
        AuxTask("competitors", lambda: Repo.list_competitors(project_id), list),
        AuxTask("artifact_counts", lambda: Repo.count_artifacts(project_id), dict),
        AuxTask("latest_run_id", lambda: Repo.get_latest_run_id(project_id)),
        AuxTask("evidence_bundle", lambda: load_evidence_bundle(project_id)),
    ])

    competitors = results["competitors"].value
    bundle = results["evidence_bundle"].value
    coverage = fetch_all([
        AuxTask("coverage", lambda: coverage_from_bundle(bundle, len(competitors) or None)),
    ])["coverage"]

    failed: List[str] = [r.name for r in (*results.values(), coverage) if not r.ok]
    return {
        "project": project.model_dump(mode="json"),
        "competitors": [c.model_dump(mode="json") for c in competitors],
        "artifact_counts": results["artifact_counts"].value,
        "latest_run_id": results["latest_run_id"].value,
        "evidence_generated_at": bundle.generated_at.isoformat() if bundle else None,
        "coverage": coverage.value.model_dump(mode="json") if coverage.value else None,
        "degraded": failed,
    }


def load_coverage(project_id: str, user_id: Optional[str]) -> Optional[CoverageReport]:
    """Coverage of the latest evidence bundle, or None when nothing was collected or it cannot be read."""
    authorize_project(project_id, user_id)

    results = fetch_all([
        AuxTask("evidence_bundle", lambda: load_evidence_bundle(project_id)),
        AuxTask("competitors", lambda: Repo.list_competitors(project_id), list),
    ])
    bundle = results["evidence_bundle"].value
    if bundle is None:
        return None
    competitors = results["competitors"].value
    return fetch_all([
        AuxTask("coverage", lambda: coverage_from_bundle(bundle, len(competitors) or None)),
    ])["coverage"].value
