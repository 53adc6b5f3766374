"""Artifact types, metadata and the content-schema registry.

The registry is a static table built once at import and checked against the
ArtifactType enum before anything can read it. Callers go through
get_artifact_entry() / validate_artifact_content(); nothing mutates it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Type

from pydantic import BaseModel, Field

from ..llm.schema import (
    CompetitorSnapshot,
    JtbdContent,
    MarketSynthesis,
    OpportunitiesContent,
    ScoringMatrixContent,
    StrategicBetsContent,
)
from .evidence import CompetitorEvidence, CoverageReport, assert_exhaustive


class ArtifactType(str, Enum):
    PROFILES = "profiles"
    SYNTHESIS = "synthesis"
    JTBD = "jtbd"
    OPPORTUNITIES = "opportunities"
    SCORING_MATRIX = "scoring_matrix"
    STRATEGIC_BETS = "strategic_bets"
    EVIDENCE_BUNDLE = "evidence_bundle"


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


class ArtifactMeta(BaseModel):
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    run_id: str
    stage: Optional[str] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    usage: Optional[TokenUsage] = None


class GenerationArtifact(BaseModel):
    """Stored artifact row. Never updated; regeneration inserts a new one."""
    id: str
    project_id: str
    type: ArtifactType
    schema_version: int
    meta: ArtifactMeta
    content: Dict[str, Any]
    created_at: Optional[datetime] = None


class ProfilesContent(BaseModel):
    snapshots: List[CompetitorSnapshot] = Field(..., min_length=1)


class EvidenceBundleContent(BaseModel):
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    competitors: List[CompetitorEvidence] = Field(default_factory=list)
    coverage: CoverageReport


class ArtifactEntry(NamedTuple):
    type: ArtifactType
    label: str
    schema_version: int
    content_model: Type[BaseModel]


_REGISTRY: Mapping[ArtifactType, ArtifactEntry] = MappingProxyType({
    ArtifactType.PROFILES: ArtifactEntry(ArtifactType.PROFILES, "Competitor profiles", 1, ProfilesContent),
    ArtifactType.SYNTHESIS: ArtifactEntry(ArtifactType.SYNTHESIS, "Market synthesis", 1, MarketSynthesis),
    ArtifactType.JTBD: ArtifactEntry(ArtifactType.JTBD, "Jobs to be done", 1, JtbdContent),
    ArtifactType.OPPORTUNITIES: ArtifactEntry(ArtifactType.OPPORTUNITIES, "Opportunities", 1, OpportunitiesContent),
    ArtifactType.SCORING_MATRIX: ArtifactEntry(ArtifactType.SCORING_MATRIX, "Scoring matrix", 1, ScoringMatrixContent),
    ArtifactType.STRATEGIC_BETS: ArtifactEntry(ArtifactType.STRATEGIC_BETS, "Strategic bets", 1, StrategicBetsContent),
    ArtifactType.EVIDENCE_BUNDLE: ArtifactEntry(ArtifactType.EVIDENCE_BUNDLE, "Evidence bundle", 1, EvidenceBundleContent),
})


def validate_registry(registry: Mapping[ArtifactType, ArtifactEntry] = _REGISTRY) -> None:
    assert_exhaustive(registry, ArtifactType, "artifact registry")
    for key, entry in registry.items():
        if entry.type is not key:
            raise RuntimeError(f"artifact registry entry {key.value} is registered as {entry.type.value}")
        if entry.schema_version < 1:
            raise RuntimeError(f"artifact registry entry {key.value} has invalid schema_version")
        if not issubclass(entry.content_model, BaseModel):
            raise RuntimeError(f"artifact registry entry {key.value} has no content model")


validate_registry()


def get_artifact_entry(artifact_type: ArtifactType | str) -> ArtifactEntry:
    return _REGISTRY[ArtifactType(artifact_type)]


def list_artifact_types() -> List[ArtifactType]:
    return list(_REGISTRY)


def validate_artifact_content(artifact_type: ArtifactType | str, content: Any) -> Dict[str, Any]:
    """
    Validate content against the registered schema for its type.
    Returns the normalized JSON-ready dict; raises pydantic.ValidationError.
    """
    entry = get_artifact_entry(artifact_type)
    if isinstance(content, BaseModel):
        content = content.model_dump(mode="json")
    model = entry.content_model.model_validate(content)
    return model.model_dump(mode="json")

