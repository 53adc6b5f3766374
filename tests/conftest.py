import json
import os
from typing import Dict, List, Optional, Union
from unittest.mock import patch

import pytest
from dotenv import load_dotenv

from evidence_ledger.llm.client import GenerationRequest, GenerationResponse
from evidence_ledger.schemas.artifacts import TokenUsage
from evidence_ledger.schemas.evidence import EvidenceHit


@pytest.fixture(scope="session", autouse=True)
def _load_env():
    # Load .env once per session to avoid side-effects on import time
    load_dotenv()

def _truthy(v: str | None) -> bool:
    return v is not None and v.strip().lower() not in ("", "0", "false", "no")

@pytest.fixture(scope="session")
def allow_integration(_load_env) -> bool:
    return _truthy(os.getenv("RUN_INTEGRATION_TESTS"))

@pytest.fixture(scope="session")
def openai_api_key(_load_env) -> str | None:
    key = os.getenv("OPENAI_API_KEY")
    if not key or key == "sk-...":
        return None
    return key

@pytest.fixture(scope="session")
def tavily_api_key(_load_env) -> str | None:
    return os.getenv("TAVILY_API_KEY") or None


@pytest.fixture(scope="function")
def test_db(tmp_path):
    """
    Creates a temporary database for testing and initializes the schema.
    `store.db` holds the cached settings object, so changing DB_PATH on it
    redirects every connection.
    """
    db_file = tmp_path / "test_ledger.db"

    from evidence_ledger.config import get_settings
    settings = get_settings()

    original_db_path = settings.DB_PATH
    settings.DB_PATH = str(db_file)

    from evidence_ledger.store.db import init_db
    init_db()

    yield settings

    settings.DB_PATH = original_db_path


class FakeGenerator:
    """
    Scripted generator. Each call pops the next response; a response is either
    raw text or an exception to raise. Requests are kept for assertions.
    """

    def __init__(self, responses: List[Union[str, Exception]], usage: Optional[List[TokenUsage]] = None,
                 model: str = "fake-model"):
        self.responses = list(responses)
        self.usage = list(usage) if usage else None
        self.model = model
        self.requests: List[GenerationRequest] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    def generate(self, request: GenerationRequest) -> GenerationResponse:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError("FakeGenerator called more times than scripted")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        usage = self.usage.pop(0) if self.usage else TokenUsage(input_tokens=100, output_tokens=50, total_tokens=150)
        return GenerationResponse(text=response, provider="fake", model=self.model, usage=usage)


class FakeSearchProvider:
    """Returns canned hits per query substring; a query mapped to an exception raises it."""

    provider = "fake-search"

    def __init__(self, results: Optional[Dict[str, Union[List[EvidenceHit], Exception]]] = None):
        self.results = results or {}
        self.queries: List[str] = []

    def search(self, query: str, max_results: int = 10) -> List[EvidenceHit]:
        self.queries.append(query)
        for needle, result in self.results.items():
            if needle in query:
                if isinstance(result, Exception):
                    raise result
                return list(result)[:max_results]
        return []


@pytest.fixture
def fake_generator():
    return FakeGenerator


@pytest.fixture
def fake_search():
    return FakeSearchProvider


def snapshot_doc(name: str) -> dict:
    return {
        "competitor_name": name,
        "positioning_one_liner": f"{name} is analytics for busy ops teams",
        "target_audience": ["Operations leads"],
        "primary_use_cases": ["Weekly reporting"],
        "key_value_props": ["Setup in minutes"],
        "proof_points": [{
            "claim": "SOC 2 certified",
            "evidence_quote": "We are SOC 2 Type II certified",
            "confidence": "high",
        }],
    }


def synthesis_doc() -> dict:
    return {
        "market_summary": {
            "headline": "Reporting tools are converging on automation",
            "what_is_changing": ["AI summaries are table stakes"],
            "what_buyers_care_about": ["Time to first report"],
        },
        "themes": [{"theme": "Automation", "description": "Everyone automates", "competitors_supporting": ["Acme"]}],
        "clusters": [{"cluster_name": "Suites", "who_is_in_it": ["Acme"], "cluster_logic": "Broad platforms"}],
        "positioning_map_text": {
            "axis_x": "Breadth",
            "axis_y": "Ease of use",
            "quadrants": [{"name": "Broad and easy", "competitors": ["Acme"]}],
        },
        "opportunities": [{
            "opportunity": "Vertical templates",
            "who_it_serves": "Ops leads in logistics",
            "why_now": "Buyers want faster onboarding",
            "why_competitors_miss_it": "They sell horizontally",
            "suggested_angle": "Logistics reporting in a day",
            "risk_or_assumption": "Vertical is large enough",
            "priority": 1,
        }],
        "recommended_differentiation_angles": [{
            "angle": "Speed",
            "what_to_claim": "First report in a day",
            "how_to_prove": ["Onboarding benchmark"],
        }],
    }


def jtbd_doc() -> dict:
    return {"jobs": [{
        "job_statement": "When closing the week, I want a report so I can brief leadership",
        "desired_outcomes": ["Report ready by Friday"],
        "who": "Ops lead",
        "frequency": "weekly",
        "importance_score": 5,
        "satisfaction_score": 2,
    }]}


def opportunities_doc() -> dict:
    return {"opportunities": [{
        "title": "Logistics templates",
        "type": "product_capability",
        "who_it_serves": "Ops leads",
        "why_now": "Onboarding speed decides deals",
        "how_to_win": ["Ship ten templates"],
        "effort": "M",
        "impact": "high",
        "confidence": "med",
        "first_experiments": ["Pilot with three customers"],
    }]}


def scoring_doc() -> dict:
    return {
        "criteria": [{"id": "ease", "name": "Ease of use"}],
        "scores": [{"competitor_name": "Acme", "criteria_id": "ease", "score": 4}],
    }


def bets_doc() -> dict:
    return {"bets": [{
        "id": "bet-1",
        "title": "Own logistics reporting",
        "confidence": "medium",
        "bet_statement": "We win by owning logistics reporting.",
        "tradeoffs": ["Slower horizontal growth"],
        "forced_capability": "Template library",
        "disconfirming_experiment": {
            "experiment": "Pilot",
            "success_signal": "Two of three convert",
            "failure_signal": "None convert",
        },
    }]}


@pytest.fixture
def documents():
    """JSON text for a valid document of each generated type."""
    return {
        "snapshot": lambda name: json.dumps(snapshot_doc(name)),
        "synthesis": json.dumps(synthesis_doc()),
        "jtbd": json.dumps(jtbd_doc()),
        "opportunities": json.dumps(opportunities_doc()),
        "scoring_matrix": json.dumps(scoring_doc()),
        "strategic_bets": json.dumps(bets_doc()),
    }


@pytest.fixture
def seeded_project(test_db):
    """A complete project owned by user-1 with three competitors carrying pasted evidence."""
    from evidence_ledger.store.repo import Repo

    project = Repo.create_project(
        "user-1", "Ledger test",
        market="Ops reporting", target_customer="Mid-market ops teams",
    )
    competitors = [
        Repo.add_competitor(project.id, name, url=url, evidence_text=f"{name} sells reporting software.")
        for name, url in (
            ("Acme", "https://acme.io"),
            ("Globex", "https://globex.com"),
            ("Initech", "https://initech.dev"),
        )
    ]
    return project, competitors


@pytest.fixture(autouse=True)
def disabled_tracking():
    """Keeps runs from reaching Langfuse even when a local .env enables it."""
    from evidence_ledger.mlops.tracking import tracker
    with patch.object(tracker, "enabled", False):
        yield
