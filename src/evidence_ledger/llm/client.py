"""Text generator protocol and the OpenAI chat-completions implementation.

The OpenAI client is built on first use so the package imports without a key.
"""

from typing import Any, Dict, List, Optional, Protocol

from openai import OpenAI
from pydantic import BaseModel

from ..config import get_settings
from ..log import get_logger
from ..schemas.artifacts import TokenUsage

logger = get_logger("llm")


class GenerationRequest(BaseModel):
    messages: List[Dict[str, str]]
    json_mode: bool = True
    temperature: float = 0.2
    max_tokens: Optional[int] = None


class GenerationResponse(BaseModel):
    text: str
    provider: str
    model: str
    usage: Optional[TokenUsage] = None


class Generator(Protocol):
    def generate(self, request: GenerationRequest) -> GenerationResponse:
        ...


def _usage_from(raw: Any) -> Optional[TokenUsage]:
    if raw is None:
        return None
    prompt = getattr(raw, "prompt_tokens", None) or 0
    completion = getattr(raw, "completion_tokens", None) or 0
    total = getattr(raw, "total_tokens", None) or prompt + completion
    return TokenUsage(input_tokens=prompt, output_tokens=completion, total_tokens=total)


class LLMClient:
    provider = "openai"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, timeout: Optional[float] = None):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.model = model or settings.OPENAI_MODEL
        self.timeout = timeout or settings.OPENAI_TIMEOUT_S
        self._client: Optional[OpenAI] = None

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._client

    def generate(self, request: GenerationRequest) -> GenerationResponse:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": request.messages,
            "temperature": request.temperature,
        }
        if request.max_tokens:
            kwargs["max_tokens"] = request.max_tokens
        if request.json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        completion = self.client.chat.completions.create(**kwargs)
        choice = completion.choices[0] if completion.choices else None
        text = (choice.message.content if choice else None) or ""
        usage = _usage_from(getattr(completion, "usage", None))
        logger.debug(f"{self.model} returned {len(text)} chars (usage={usage})")

        return GenerationResponse(
            text=text,
            provider=self.provider,
            model=getattr(completion, "model", None) or self.model,
            usage=usage,
        )


llm_client = LLMClient()
