"""Message builders for every generation step plus the repair attempt.

Static instructions come from the YAML templates; project, competitor and
evidence context is assembled here.
"""

import json
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type

from pydantic import BaseModel

from ..config import get_settings
from ..errors import truncate_error
from ..log import get_logger
from ..schemas.project import Competitor, Project
from .prompts import load_prompt

logger = get_logger("messages")

Message = Dict[str, str]

EVIDENCE_START = "EVIDENCE_TEXT_START"
EVIDENCE_END = "EVIDENCE_TEXT_END"

_PROJECT_LABELS = (
    ("hypothesis", "Hypothesis"),
    ("your_product", "Your product"),
    ("business_goal", "Business goal"),
    ("market", "Market"),
    ("target_customer", "Target customer"),
    ("geography", "Geography"),
    ("primary_constraint", "Primary constraint"),
    ("risk_posture", "Risk posture"),
    ("ambition_level", "Ambition level"),
    ("explicit_non_goals", "Explicit non-goals"),
)


def truncate_evidence(text: Optional[str], limit: Optional[int] = None, label: str = "") -> Tuple[str, bool]:
    limit = limit or get_settings().MAX_EVIDENCE_CHARS
    text = (text or "").strip()
    if len(text) <= limit:
        return text, False
    logger.info(f"Truncating evidence{' for ' + label if label else ''}: {len(text)} -> {limit} chars")
    return text[:limit], True


def schema_shape(schema: Type[BaseModel]) -> str:
    return json.dumps(schema.model_json_schema(), indent=2)


def project_context(project: Project) -> str:
    lines = [f"Project: {project.name}"]
    for field, label in _PROJECT_LABELS:
        value = getattr(project, field)
        if value:
            lines.append(f"{label}: {value}")
    return "\n".join(lines)


def _system() -> Message:
    return {"role": "system", "content": load_prompt("system")}


def _dump(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def build_snapshot_messages(
    project: Project,
    competitor: Competitor,
    evidence_text: str,
    schema: Type[BaseModel],
) -> List[Message]:
    competitor_lines = [f"Name: {competitor.name}"]
    if competitor.url:
        competitor_lines.append(f"URL: {competitor.url}")
    if competitor.notes:
        competitor_lines.append(f"Analyst notes: {competitor.notes}")

    user = "\n".join([
        load_prompt("snapshot"),
        "",
        "PROJECT CONTEXT",
        project_context(project),
        "",
        "COMPETITOR CONTEXT",
        "\n".join(competitor_lines),
        "",
        "EVIDENCE TEXT",
        f"Use only the text between {EVIDENCE_START} and {EVIDENCE_END} as factual evidence.",
        EVIDENCE_START,
        evidence_text,
        EVIDENCE_END,
        "",
        "OUTPUT SCHEMA (JSON Schema)",
        schema_shape(schema),
    ])
    return [_system(), {"role": "user", "content": user}]


def build_synthesis_messages(
    project: Project,
    snapshots: Sequence[Dict[str, Any]],
    schema: Type[BaseModel],
) -> List[Message]:
    user = "\n".join([
        load_prompt("synthesis"),
        "",
        "PROJECT CONTEXT",
        project_context(project),
        "",
        f"COMPETITOR SNAPSHOTS ({len(snapshots)})",
        _dump(list(snapshots)),
        "",
        "OUTPUT SCHEMA (JSON Schema)",
        schema_shape(schema),
    ])
    return [_system(), {"role": "user", "content": user}]


def build_results_messages(
    prompt_name: str,
    project: Project,
    inputs: Dict[str, Any],
    schema: Type[BaseModel],
) -> List[Message]:
    """Results-stage messages: profiles, synthesis and earlier results documents as named inputs."""
    sections = [load_prompt(prompt_name), "", "PROJECT CONTEXT", project_context(project)]
    for name, value in inputs.items():
        sections.extend(["", name.upper().replace("_", " "), _dump(value)])
    sections.extend(["", "OUTPUT SCHEMA (JSON Schema)", schema_shape(schema)])
    return [_system(), {"role": "user", "content": "\n".join(sections)}]


def build_repair_messages(
    raw_output: str,
    schema: Type[BaseModel],
    error: Optional[str],
    max_error_chars: Optional[int] = None,
) -> List[Message]:
    limit = max_error_chars or get_settings().VALIDATION_ERROR_MAX_CHARS
    user = "\n".join([
        load_prompt("repair"),
        "",
        "VALIDATION ERRORS",
        truncate_error(error, limit) or "Response was not valid JSON.",
        "",
        "REQUIRED SCHEMA (JSON Schema)",
        schema_shape(schema),
        "",
        "PREVIOUS RESPONSE",
        raw_output or "(empty response)",
    ])
    return [_system(), {"role": "user", "content": user}]
