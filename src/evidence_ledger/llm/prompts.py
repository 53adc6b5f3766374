import yaml
from functools import lru_cache
from pathlib import Path

TEMPLATE_DIR = Path(__file__).parent / "templates"


@lru_cache()
def load_prompt(name: str) -> str:
    yaml_path = TEMPLATE_DIR / f"{name}.yaml"
    if not yaml_path.exists():
        raise FileNotFoundError(f"Prompt {name} not found in {TEMPLATE_DIR}")
    with open(yaml_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    content = data.get("content", "")
    if not content.strip():
        raise ValueError(f"Prompt {name} has no content")
    return content.strip()
