"""Analysis run: one snapshot per competitor, then a market synthesis.

Snapshots run sequentially because synthesis needs the complete set and a
single validation failure aborts the whole run. Nothing is persisted until
every step has succeeded.
"""

import uuid
from typing import Dict, List, Optional

from ..config import get_settings
from ..errors import InputError
from ..llm.client import Generator, llm_client
from ..llm.messages import build_snapshot_messages, build_synthesis_messages, truncate_evidence
from ..llm.schema import CompetitorSnapshot, MarketSynthesis
from ..llm.step import GenerationStep, UsageAccumulator, run_step_or_raise
from ..log import get_logger
from ..mlops.tracking import tracker
from ..schemas.artifacts import ArtifactMeta, ArtifactType, ProfilesContent
from ..schemas.project import Competitor, Project
from ..store.repo import PendingArtifact, Repo
from .access import authorize_project
from .auxiliary import AuxTask, fetch_all, load_evidence_bundle
from .collect import render_evidence_text
from .result import RunResult, guarded_run

logger = get_logger("generate")


def check_competitor_bounds(count: int) -> None:
    """Reject a run before any model call when the competitor count is out of range."""
    settings = get_settings()
    if count < settings.MIN_COMPETITORS:
        raise InputError(
            f"Add at least {settings.MIN_COMPETITORS} competitors to run an analysis (found {count})",
            code="INSUFFICIENT_COMPETITORS",
            competitor_count=count,
        )
    if count > settings.MAX_COMPETITORS:
        raise InputError(
            f"At most {settings.MAX_COMPETITORS} competitors are supported (found {count})",
            code="TOO_MANY_COMPETITORS",
            competitor_count=count,
        )


def check_project_fields(project: Project) -> None:
    missing = project.missing_fields()
    if missing:
        raise InputError(
            f"Complete the project before generating: missing {', '.join(missing)}",
            code="MISSING_PROJECT_FIELDS",
            missing_fields=missing,
        )


def bundle_digests(project_id: str) -> Dict[str, str]:
    """Evidence digests by competitor id from the latest bundle. Best-effort."""
    result = fetch_all([AuxTask("evidence_bundle", lambda: load_evidence_bundle(project_id))])
    bundle = result["evidence_bundle"].value
    if bundle is None:
        return {}
    return {c.competitor_id: render_evidence_text(c) for c in bundle.competitors if c.items}


def evidence_for(competitor: Competitor, digests: Dict[str, str]) -> str:
    text = competitor.evidence_text
    if not (text or "").strip():
        text = digests.get(competitor.id, "")
        if text:
            logger.info(f"Using collected evidence digest for {competitor.name}")
        else:
            logger.warning(f"No evidence available for {competitor.name}")
    evidence, _ = truncate_evidence(text, label=competitor.name)
    return evidence


class AnalysisRun:
    def __init__(self, generator: Optional[Generator] = None):
        self._generator = generator

    @property
    def generator(self) -> Generator:
        return self._generator or llm_client

    def run(self, project_id: str, user_id: Optional[str]) -> RunResult:
        run_id = str(uuid.uuid4())
        return guarded_run("analysis", run_id, lambda: self._run(run_id, project_id, user_id))

    def snapshot_step(self, project: Project, competitor: Competitor, evidence: str) -> GenerationStep:
        return GenerationStep(
            stage="snapshot",
            failure_stage="snapshot_validation",
            schema_model=CompetitorSnapshot,
            build_messages=lambda: build_snapshot_messages(project, competitor, evidence, CompetitorSnapshot),
            max_tokens=get_settings().SNAPSHOT_MAX_TOKENS,
            competitor_id=competitor.id,
            competitor_name=competitor.name,
        )

    def synthesis_step(self, project: Project, snapshots: List[dict]) -> GenerationStep:
        return GenerationStep(
            stage="synthesis",
            failure_stage="synthesis_validation",
            schema_model=MarketSynthesis,
            build_messages=lambda: build_synthesis_messages(project, snapshots, MarketSynthesis),
            temperature=0.3,
            max_tokens=get_settings().SYNTHESIS_MAX_TOKENS,
        )

    def _run(self, run_id: str, project_id: str, user_id: Optional[str]) -> RunResult:
        project = authorize_project(project_id, user_id)
        check_project_fields(project)
        competitors = Repo.list_competitors(project_id)
        check_competitor_bounds(len(competitors))

        digests = bundle_digests(project_id)
        usage = UsageAccumulator()
        logger.info(f"Analysis run {run_id}: {len(competitors)} competitors for '{project.name}'")

        with tracker.start_generation_run(run_id, project_id, "analysis",
                                          tags={"competitor_count": len(competitors)}) as trace_id:
            snapshots: List[CompetitorSnapshot] = []
            for competitor in competitors:
                step = self.snapshot_step(project, competitor, evidence_for(competitor, digests))
                with tracker.start_nested_run(f"snapshot_{competitor.name}", parent_run_id=trace_id,
                                              tags={"stage": "snapshot", "competitor_id": competitor.id}):
                    outcome = run_step_or_raise(step, self.generator, usage)
                snapshots.append(outcome.data)

            snapshot_dicts = [s.model_dump(mode="json") for s in snapshots]
            with tracker.start_nested_run("synthesis", parent_run_id=trace_id, tags={"stage": "synthesis"}):
                synthesis = run_step_or_raise(self.synthesis_step(project, snapshot_dicts), self.generator, usage).data

            tracker.log_usage(usage.total, model=usage.model)

        total = usage.total
        artifacts = Repo.create_artifacts(project_id, [
            PendingArtifact(
                ArtifactType.PROFILES,
                ProfilesContent(snapshots=snapshots),
                ArtifactMeta(run_id=run_id, stage="snapshot", provider=usage.provider,
                             model=usage.model, usage=total),
            ),
            PendingArtifact(
                ArtifactType.SYNTHESIS,
                synthesis,
                ArtifactMeta(run_id=run_id, stage="synthesis", provider=usage.provider,
                             model=usage.model, usage=total),
            ),
        ])
        logger.info(f"Analysis run {run_id} done: {usage.call_count} calls, {total.total_tokens} tokens")
        return RunResult.success(run_id, [a.id for a in artifacts], usage=total)
