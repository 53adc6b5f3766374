from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
import yaml
from pathlib import Path
from typing import Dict, Any, Optional

class Settings(BaseSettings):
    OPENAI_API_KEY: str = Field("", description="OpenAI API Key")
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_TIMEOUT_S: float = 60.0
    TAVILY_API_KEY: str = Field("", description="Tavily search API Key")
    TAVILY_API_ENDPOINT: str = "https://api.tavily.com/search"
    TAVILY_TIMEOUT_S: float = 15.0
    TAVILY_SEARCH_DEPTH: str = "basic"
    DB_PATH: str = Field("./ledger.sqlite", description="Path to SQLite database")
    LOG_LEVEL: str = "INFO"

    # Run bounds
    MIN_COMPETITORS: int = 3
    MAX_COMPETITORS: int = 7
    MAX_EVIDENCE_CHARS: int = 12_000
    VALIDATION_ERROR_MAX_CHARS: int = 500

    # Token limits per generation
    SNAPSHOT_MAX_TOKENS: int = 1_600
    SYNTHESIS_MAX_TOKENS: int = 2_400
    RESULTS_MAX_TOKENS: int = 3_000

    # Evidence pipeline
    HARVEST_CONCURRENCY: int = 3
    HARVEST_RESULTS_PER_QUERY: int = 10
    EVIDENCE_LIMIT_PER_TYPE: int = 5
    EVIDENCE_EXCERPT_CHARS: int = 400
    MVC_MIN_COMPETITORS_WITH_EVIDENCE: int = 2
    MVC_MIN_TYPES_COVERED: int = 2
    AUX_FETCH_CONCURRENCY: int = 4
    CLASSIFIER_RULES_PATH: Optional[str] = Field(None, description="YAML file extending the classifier table")

    # Langfuse settings
    LANGFUSE_ENABLED: bool = Field(False, description="Enable Langfuse tracking")
    LANGFUSE_PUBLIC_KEY: str = ""
    LANGFUSE_SECRET_KEY: str = ""
    LANGFUSE_HOST: str = "https://cloud.langfuse.com"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

@lru_cache()
def get_settings() -> Settings:
    return Settings()

def load_classifier_rules(path: Optional[str] = None) -> Dict[str, Any]:
    """Read classifier table extensions; missing file means no extensions."""
    if path is None:
        path = get_settings().CLASSIFIER_RULES_PATH
    if not path:
        return {}
    rules_path = Path(path)
    if not rules_path.exists():
        return {}
    with open(rules_path, "r") as f:
        return yaml.safe_load(f) or {}
