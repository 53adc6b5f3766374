"""Results run: jobs-to-be-done, opportunities, scoring matrix, strategic bets.

Consumes the latest profiles and synthesis artifacts. Each document feeds the
next, so the steps run in a fixed order; the four artifacts are written
together once the last one validates.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, NamedTuple, Optional, Type

from pydantic import BaseModel

from ..config import get_settings
from ..errors import InputError
from ..llm.client import Generator, llm_client
from ..llm.messages import build_results_messages
from ..llm.schema import (
    DocumentMeta,
    JtbdContent,
    OpportunitiesContent,
    ScoringMatrixContent,
    StrategicBetsContent,
)
from ..llm.step import GenerationStep, UsageAccumulator, run_step_or_raise
from ..log import get_logger
from ..mlops.tracking import tracker
from ..schemas.artifacts import ArtifactMeta, ArtifactType
from ..schemas.project import Project
from ..store.repo import PendingArtifact, Repo
from .access import authorize_project
from .generate import check_project_fields
from .result import RunResult, guarded_run

logger = get_logger("results")


class ResultsStage(NamedTuple):
    artifact_type: ArtifactType
    prompt: str
    failure_stage: str
    schema: Type[BaseModel]
    temperature: float


RESULTS_STAGES = (
    ResultsStage(ArtifactType.JTBD, "jtbd", "jtbd_validation", JtbdContent, 0.2),
    ResultsStage(ArtifactType.OPPORTUNITIES, "opportunities", "opportunities_validation", OpportunitiesContent, 0.3),
    ResultsStage(ArtifactType.SCORING_MATRIX, "scoring", "scoring_validation", ScoringMatrixContent, 0.2),
    ResultsStage(ArtifactType.STRATEGIC_BETS, "strategic_bets", "strategic_bets_validation", StrategicBetsContent, 0.3),
)


def load_prerequisites(project_id: str) -> Dict[str, Any]:
    profiles = Repo.get_latest_artifact(project_id, ArtifactType.PROFILES)
    synthesis = Repo.get_latest_artifact(project_id, ArtifactType.SYNTHESIS)
    missing = [t.value for t, a in ((ArtifactType.PROFILES, profiles), (ArtifactType.SYNTHESIS, synthesis)) if a is None]
    if missing:
        raise InputError(
            "Run the competitor analysis before generating results",
            code="MISSING_PREREQUISITES",
            missing_artifacts=missing,
        )
    return {
        "competitor_profiles": profiles.content["snapshots"],
        "market_synthesis": synthesis.content,
    }


class ResultsRun:
    def __init__(self, generator: Optional[Generator] = None):
        self._generator = generator

    @property
    def generator(self) -> Generator:
        return self._generator or llm_client

    def run(self, project_id: str, user_id: Optional[str]) -> RunResult:
        run_id = str(uuid.uuid4())
        return guarded_run("results", run_id, lambda: self._run(run_id, project_id, user_id))

    def _step(self, stage: ResultsStage, project: Project, inputs: Dict[str, Any]) -> GenerationStep:
        snapshot = dict(inputs)
        return GenerationStep(
            stage=stage.artifact_type.value,
            failure_stage=stage.failure_stage,
            schema_model=stage.schema,
            build_messages=lambda: build_results_messages(stage.prompt, project, snapshot, stage.schema),
            temperature=stage.temperature,
            max_tokens=get_settings().RESULTS_MAX_TOKENS,
        )

    def _run(self, run_id: str, project_id: str, user_id: Optional[str]) -> RunResult:
        project = authorize_project(project_id, user_id)
        check_project_fields(project)
        inputs = load_prerequisites(project_id)

        usage = UsageAccumulator()
        documents: List[tuple] = []
        with tracker.start_generation_run(run_id, project_id, "results") as trace_id:
            for stage in RESULTS_STAGES:
                with tracker.start_nested_run(stage.artifact_type.value, parent_run_id=trace_id,
                                              tags={"stage": stage.artifact_type.value}):
                    outcome = run_step_or_raise(self._step(stage, project, inputs), self.generator, usage)
                document = outcome.data.model_copy(update={"meta": DocumentMeta(
                    generated_at=datetime.now(timezone.utc).isoformat(),
                    model=outcome.model,
                    run_id=run_id,
                )})
                documents.append((stage, document, outcome))
                inputs[stage.artifact_type.value] = document.model_dump(mode="json")
            tracker.log_usage(usage.total, model=usage.model)

        artifacts = Repo.create_artifacts(project_id, [
            PendingArtifact(
                stage.artifact_type,
                document,
                ArtifactMeta(run_id=run_id, stage=stage.artifact_type.value, provider=outcome.provider,
                             model=outcome.model, usage=outcome.usage),
            )
            for stage, document, outcome in documents
        ])
        total = usage.total
        logger.info(f"Results run {run_id} done: {usage.call_count} calls, {total.total_tokens} tokens")
        return RunResult.success(run_id, [a.id for a in artifacts], usage=total)
