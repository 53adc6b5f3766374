"""Structured run outcome. Runs return one of these and never raise."""

from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from ..errors import LedgerError
from ..log import get_logger
from ..schemas.artifacts import TokenUsage

logger = get_logger("pipeline")


class RunResult(BaseModel):
    ok: bool
    run_id: Optional[str] = None
    artifact_ids: List[str] = Field(default_factory=list)
    usage: Optional[TokenUsage] = None
    message: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def success(cls, run_id: str, artifact_ids: List[str], usage: Optional[TokenUsage] = None) -> "RunResult":
        return cls(ok=True, run_id=run_id, artifact_ids=artifact_ids, usage=usage)

    @classmethod
    def failure(cls, message: str, details: Dict[str, Any], run_id: Optional[str] = None) -> "RunResult":
        return cls(ok=False, run_id=run_id, message=message, details=details)

    @property
    def code(self) -> Optional[str]:
        return self.details.get("code")


def guarded_run(name: str, run_id: str, fn: Callable[[], RunResult]) -> RunResult:
    """
    Execute a run body and turn every exception into a failed RunResult.
    Known errors keep their code and details; anything else becomes UNEXPECTED_ERROR.
    """
    try:
        return fn()
    except LedgerError as e:
        logger.warning(f"{name} run {run_id} rejected [{e.code}]: {e.message}")
        return RunResult.failure(e.message, e.to_details(), run_id=run_id)
    except Exception as e:
        logger.exception(f"{name} run {run_id} failed unexpectedly")
        return RunResult.failure(
            "An unexpected error occurred",
            {"code": "UNEXPECTED_ERROR", "name": type(e).__name__, "error": str(e)},
            run_id=run_id,
        )
