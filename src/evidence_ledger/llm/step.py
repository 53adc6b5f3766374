"""Validate-then-repair state machine shared by every generation step.

    PREPARE -> CALL -> VALIDATE -> DONE
                          |
                          +-> REPAIR -> VALIDATE_REPAIR -> DONE | FAILED

At most two generator calls per step: the original and one repair.
"""

import threading
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, Field

from ..config import get_settings
from ..errors import GenerationValidationError, truncate_error
from ..log import get_logger
from ..schemas.artifacts import TokenUsage
from .client import GenerationRequest, GenerationResponse, Generator
from .messages import Message, build_repair_messages
from .validate import ValidationOutcome, parse_structured

logger = get_logger("step")

REPAIR_TEMPERATURE = 0.1


class StepState(str, Enum):
    PREPARE = "prepare"
    CALL = "call"
    VALIDATE = "validate"
    REPAIR = "repair"
    VALIDATE_REPAIR = "validate_repair"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = (StepState.DONE, StepState.FAILED)


class GenerationStep(BaseModel):
    """One schema-bound generation: what to ask, what to expect, how to label a failure."""
    stage: str
    failure_stage: str
    schema_model: Type[BaseModel]
    build_messages: Callable[[], List[Message]]
    temperature: float = 0.2
    max_tokens: Optional[int] = None
    competitor_id: Optional[str] = None
    competitor_name: Optional[str] = None


class StepOutcome(BaseModel):
    state: StepState
    stage: str
    data: Optional[Any] = None
    error: Optional[str] = None
    calls: int = 0
    repaired: bool = False
    provider: Optional[str] = None
    model: Optional[str] = None
    usage: TokenUsage = Field(default_factory=TokenUsage)
    trace: List[StepState] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state is StepState.DONE

    def raise_for_failure(self, failure_stage: str, competitor_id: Optional[str] = None,
                          competitor_name: Optional[str] = None) -> None:
        if self.ok:
            return
        raise GenerationValidationError(
            f"Generated {self.stage} did not match its schema after repair",
            stage=failure_stage,
            validation_error=self.error,
            competitor_id=competitor_id,
            competitor_name=competitor_name,
        )


class UsageAccumulator:
    """Token usage summed across every generator call in a run. Thread-safe."""

    def __init__(self):
        self._lock = threading.Lock()
        self._total = TokenUsage()
        self._calls: List[Dict[str, Any]] = []
        self.provider: Optional[str] = None
        self.model: Optional[str] = None

    def record(self, response: GenerationResponse, stage: Optional[str] = None) -> None:
        usage = response.usage or TokenUsage()
        with self._lock:
            self._total = self._total + usage
            self.provider = response.provider
            self.model = response.model
            self._calls.append({
                "stage": stage,
                "provider": response.provider,
                "model": response.model,
                "usage": usage.model_dump(),
            })

    @property
    def total(self) -> TokenUsage:
        with self._lock:
            return self._total.model_copy()

    @property
    def call_count(self) -> int:
        with self._lock:
            return len(self._calls)


def run_step(step: GenerationStep, generator: Generator, usage: UsageAccumulator) -> StepOutcome:
    outcome = StepOutcome(state=StepState.PREPARE, stage=step.stage)
    max_error_chars = get_settings().VALIDATION_ERROR_MAX_CHARS
    messages: List[Message] = []
    raw = ""
    validation: Optional[ValidationOutcome] = None

    def call(msgs: List[Message], temperature: float) -> str:
        response = generator.generate(GenerationRequest(
            messages=msgs,
            json_mode=True,
            temperature=temperature,
            max_tokens=step.max_tokens,
        ))
        usage.record(response, stage=step.stage)
        outcome.calls += 1
        outcome.provider = response.provider
        outcome.model = response.model
        if response.usage:
            outcome.usage = outcome.usage + response.usage
        return response.text

    state = StepState.PREPARE
    while state not in TERMINAL_STATES:
        outcome.trace.append(state)

        if state is StepState.PREPARE:
            messages = step.build_messages()
            state = StepState.CALL

        elif state is StepState.CALL:
            raw = call(messages, step.temperature)
            state = StepState.VALIDATE

        elif state is StepState.VALIDATE:
            validation = parse_structured(raw, step.schema_model)
            if validation.ok:
                state = StepState.DONE
            else:
                logger.warning(f"{step.stage} failed validation, attempting repair: "
                               f"{truncate_error(validation.error, max_error_chars)}")
                state = StepState.REPAIR

        elif state is StepState.REPAIR:
            repair_messages = build_repair_messages(raw, step.schema_model, validation.error, max_error_chars)
            raw = call(repair_messages, REPAIR_TEMPERATURE)
            outcome.repaired = True
            state = StepState.VALIDATE_REPAIR

        elif state is StepState.VALIDATE_REPAIR:
            validation = parse_structured(raw, step.schema_model)
            state = StepState.DONE if validation.ok else StepState.FAILED

    outcome.trace.append(state)
    outcome.state = state
    if state is StepState.DONE:
        outcome.data = validation.data
    else:
        outcome.error = truncate_error(validation.error, max_error_chars)
        logger.error(f"{step.stage} failed validation after repair"
                     f"{' for ' + step.competitor_name if step.competitor_name else ''}: {outcome.error}")
    return outcome


def run_step_or_raise(step: GenerationStep, generator: Generator, usage: UsageAccumulator) -> StepOutcome:
    outcome = run_step(step, generator, usage)
    outcome.raise_for_failure(step.failure_stage, step.competitor_id, step.competitor_name)
    return outcome
