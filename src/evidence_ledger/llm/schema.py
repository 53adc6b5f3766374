"""Pydantic schemas for generated documents.

CompetitorSnapshot (one per competitor), MarketSynthesis (one per run) and the
follow-on results documents: JTBD, opportunities, scoring matrix, strategic bets.
"""

from __future__ import annotations

from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from ..schemas.evidence import Confidence

NonEmptyStr = Annotated[str, Field(min_length=1)]


def _coerce_confidence(value: Any) -> Any:
    if isinstance(value, str):
        return Confidence(value)
    return value


class ProofPoint(BaseModel):
    claim: NonEmptyStr
    evidence_quote: NonEmptyStr
    evidence_location: str = "pasted_text"
    confidence: Confidence

    @field_validator("confidence", mode="before")
    @classmethod
    def _accept_aliases(cls, value: Any) -> Any:
        return _coerce_confidence(value)


class CompetitorSnapshot(BaseModel):
    competitor_name: NonEmptyStr
    positioning_one_liner: NonEmptyStr
    target_audience: List[str] = Field(..., min_length=1)
    primary_use_cases: List[str] = Field(..., min_length=1)
    key_value_props: List[str] = Field(..., min_length=1, max_length=8)
    notable_capabilities: List[str] = Field(default_factory=list)
    business_model_signals: List[str] = Field(default_factory=list)
    proof_points: List[ProofPoint] = Field(..., min_length=1)
    risks_and_unknowns: List[str] = Field(default_factory=list)
    customer_struggles: List[str] = Field(default_factory=list)


class MarketSummary(BaseModel):
    headline: NonEmptyStr
    what_is_changing: List[str] = Field(..., min_length=1)
    what_buyers_care_about: List[str] = Field(..., min_length=1)


class Theme(BaseModel):
    theme: NonEmptyStr
    description: NonEmptyStr
    competitors_supporting: List[str] = Field(..., min_length=1)


class Cluster(BaseModel):
    cluster_name: NonEmptyStr
    who_is_in_it: List[str] = Field(..., min_length=1)
    cluster_logic: NonEmptyStr


class PositioningQuadrant(BaseModel):
    name: NonEmptyStr
    competitors: List[str] = Field(..., min_length=1)
    notes: str = ""


class PositioningMapText(BaseModel):
    axis_x: NonEmptyStr
    axis_y: NonEmptyStr
    quadrants: List[PositioningQuadrant] = Field(..., min_length=1)


class SynthesisOpportunity(BaseModel):
    opportunity: NonEmptyStr
    who_it_serves: NonEmptyStr
    why_now: NonEmptyStr
    why_competitors_miss_it: NonEmptyStr
    suggested_angle: NonEmptyStr
    risk_or_assumption: NonEmptyStr
    priority: int = Field(..., ge=1)


class DifferentiationAngle(BaseModel):
    angle: NonEmptyStr
    what_to_claim: NonEmptyStr
    how_to_prove: List[str] = Field(..., min_length=1)
    watch_out_for: List[str] = Field(default_factory=list)


class MarketSynthesis(BaseModel):
    market_summary: MarketSummary
    themes: List[Theme] = Field(..., min_length=1)
    clusters: List[Cluster] = Field(..., min_length=1)
    positioning_map_text: PositioningMapText
    opportunities: List[SynthesisOpportunity] = Field(..., min_length=1)
    recommended_differentiation_angles: List[DifferentiationAngle] = Field(..., min_length=1)


class DocumentMeta(BaseModel):
    """Model-supplied header on results documents; the run overwrites run_id/model."""
    generated_at: Optional[str] = None
    model: Optional[str] = None
    run_id: Optional[str] = None


class JobEvidence(BaseModel):
    competitor: Optional[str] = None
    citation: Optional[str] = None
    quote: Optional[str] = None


class Job(BaseModel):
    job_statement: NonEmptyStr
    context: str = ""
    desired_outcomes: List[str] = Field(..., min_length=1)
    constraints: List[str] = Field(default_factory=list)
    current_workarounds: List[str] = Field(default_factory=list)
    non_negotiables: List[str] = Field(default_factory=list)
    who: NonEmptyStr
    frequency: Literal["daily", "weekly", "monthly", "rare"]
    importance_score: int = Field(..., ge=1, le=5)
    satisfaction_score: int = Field(..., ge=1, le=5)
    opportunity_score: int = Field(0, ge=0, le=100)
    evidence: List[JobEvidence] = Field(default_factory=list)


class JtbdContent(BaseModel):
    meta: DocumentMeta = Field(default_factory=DocumentMeta)
    jobs: List[Job] = Field(..., min_length=1)


class Opportunity(BaseModel):
    title: NonEmptyStr
    type: Literal[
        "product_capability",
        "workflow",
        "pricing_packaging",
        "distribution",
        "trust_compliance",
        "integration",
        "services",
    ]
    who_it_serves: NonEmptyStr
    job_link: Optional[Union[str, int]] = None
    why_now: NonEmptyStr
    how_to_win: List[str] = Field(..., min_length=1)
    what_competitors_do_today: str = ""
    why_they_cant_easily_copy: str = ""
    effort: Literal["S", "M", "L"]
    impact: Confidence
    confidence: Confidence
    score: int = Field(0, ge=0, le=100)
    risks: List[str] = Field(default_factory=list)
    first_experiments: List[str] = Field(..., min_length=1)

    @field_validator("impact", "confidence", mode="before")
    @classmethod
    def _accept_aliases(cls, value: Any) -> Any:
        return _coerce_confidence(value)


class OpportunitiesContent(BaseModel):
    meta: DocumentMeta = Field(default_factory=DocumentMeta)
    opportunities: List[Opportunity] = Field(..., min_length=1)


class ScoringCriterion(BaseModel):
    id: NonEmptyStr
    name: NonEmptyStr
    description: str = ""
    weight: int = Field(3, ge=1, le=5)
    how_to_score: str = ""


class CriterionScore(BaseModel):
    competitor_id: Optional[str] = None
    competitor_name: NonEmptyStr
    criteria_id: NonEmptyStr
    score: int = Field(..., ge=1, le=5)
    evidence: Optional[str] = None


class CompetitorScoreSummary(BaseModel):
    competitor_id: Optional[str] = None
    competitor_name: NonEmptyStr
    total_weighted_score: float = Field(50.0, ge=0, le=100)
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)


class ScoringMatrixContent(BaseModel):
    meta: DocumentMeta = Field(default_factory=DocumentMeta)
    criteria: List[ScoringCriterion] = Field(..., min_length=1, max_length=15)
    scores: List[CriterionScore] = Field(default_factory=list)
    summary: List[CompetitorScoreSummary] = Field(default_factory=list)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_criteria_refs(self) -> "ScoringMatrixContent":
        ids = [c.id for c in self.criteria]
        if len(set(ids)) != len(ids):
            raise ValueError(f"criteria ids must be unique -> {ids!r}")
        known = set(ids)
        for score in self.scores:
            if score.criteria_id not in known:
                raise ValueError(f"score references unknown criteria_id -> {score.criteria_id!r}")
        return self


class DisconfirmingExperiment(BaseModel):
    experiment: NonEmptyStr
    success_signal: NonEmptyStr
    failure_signal: NonEmptyStr


class BetMeta(BaseModel):
    based_on_competitors: int = 0
    signals_used: List[str] = Field(default_factory=list)
    created_at: Optional[str] = None


class StrategicBet(BaseModel):
    id: NonEmptyStr
    title: NonEmptyStr
    confidence: Confidence
    bet_statement: NonEmptyStr
    tradeoffs: List[str] = Field(..., min_length=1)
    forced_capability: NonEmptyStr
    competitor_constraints: List[str] = Field(default_factory=list)
    disconfirming_experiment: DisconfirmingExperiment
    meta: BetMeta = Field(default_factory=BetMeta)

    @field_validator("confidence", mode="before")
    @classmethod
    def _accept_aliases(cls, value: Any) -> Any:
        return _coerce_confidence(value)

    @field_validator("bet_statement")
    @classmethod
    def _ends_with_punctuation(cls, value: str) -> str:
        if not value.strip().endswith((".", "!")):
            raise ValueError(f"bet_statement must end with . or ! -> {value!r}")
        return value


class StrategicBetsContent(BaseModel):
    meta: DocumentMeta = Field(default_factory=DocumentMeta)
    bets: List[StrategicBet] = Field(..., min_length=1, max_length=3)
