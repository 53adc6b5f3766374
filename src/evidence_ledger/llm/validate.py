"""Parse model output as JSON and check it against a document schema."""

import json
import re
from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

T = TypeVar("T", bound=BaseModel)

_FENCE_REGEX = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


class ValidationOutcome(BaseModel):
    """Result of checking raw model output; data holds the parsed schema instance."""
    ok: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    raw: str = ""

    @classmethod
    def success(cls, data: BaseModel, raw: str = "") -> "ValidationOutcome":
        return cls(ok=True, data=data, raw=raw)

    @classmethod
    def failure(cls, error: str, raw: str = "") -> "ValidationOutcome":
        return cls(ok=False, error=error, raw=raw)


def extract_json(text: Optional[str]) -> Optional[Any]:
    """
    Best-effort JSON extraction: the whole text, then a fenced block, then the
    outermost {...} span. Returns None when nothing parses.
    """
    if not text or not text.strip():
        return None
    candidates = [text.strip()]
    fence = _FENCE_REGEX.search(text)
    if fence:
        candidates.append(fence.group(1).strip())
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    return None


def summarize_errors(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "(root)"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


def parse_structured(text: Optional[str], schema: Type[T]) -> ValidationOutcome:
    raw = text or ""
    data = extract_json(raw)
    if data is None:
        return ValidationOutcome.failure("Response is not parseable as JSON", raw=raw)
    if not isinstance(data, dict):
        return ValidationOutcome.failure(f"Expected a JSON object, got {type(data).__name__}", raw=raw)
    try:
        parsed = schema.model_validate(data)
    except ValidationError as e:
        return ValidationOutcome.failure(summarize_errors(e), raw=raw)
    return ValidationOutcome.success(parsed, raw=raw)
