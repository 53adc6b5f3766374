import json
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from evidence_ledger.pipeline.auxiliary import AuxTask, fetch_all, load_coverage, load_project_overview
from evidence_ledger.pipeline.collect import EvidenceCollectionRun
from evidence_ledger.pipeline.result import RunResult
from evidence_ledger.schemas.artifacts import ArtifactMeta
from evidence_ledger.schemas.evidence import EvidenceHit, EvidenceType
from evidence_ledger.store.db import get_db_connection


def _boom():
    raise RuntimeError("store unavailable")


def _store_raw_bundle(project_id, content):
    with get_db_connection() as conn:
        conn.execute(
            """
            INSERT INTO artifacts (id, project_id, run_id, type, schema_version, meta, content)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            ("raw-bundle", project_id, "run-raw", "evidence_bundle", 1,
             ArtifactMeta(run_id="run-raw").model_dump_json(), json.dumps(content)),
        )
        conn.commit()


class TestFetchAll:
    def test_failures_are_replaced_with_defaults(self):
        """
        WHY: Display data is best-effort; one failing read must not hide the others.
        HOW: Fetch three tasks where the middle one raises.
        EXPECTED: Every task has a result; the failed one carries its default and the error.
        """
        results = fetch_all([
            AuxTask("a", lambda: 1),
            AuxTask("b", _boom, list),
            AuxTask("c", lambda: "three"),
        ], max_workers=2)

        assert results["a"].value == 1
        assert results["b"].ok is False
        assert results["b"].value == []
        assert "store unavailable" in results["b"].error
        assert results["c"].value == "three"

    def test_empty(self):
        assert fetch_all([]) == {}


class TestOverview:
    def test_overview_with_bundle(self, seeded_project, fake_search):
        """
        WHY: The overview is the project landing page data.
        HOW: Collect evidence, then load the overview.
        EXPECTED: Competitors, artifact counts, latest run id and recomputed coverage; nothing degraded.
        """
        project, _ = seeded_project
        provider = fake_search({"pricing plans": [EvidenceHit(url="https://acme.io/pricing", title="Pricing")]})
        run = EvidenceCollectionRun(provider).run(project.id, "user-1", [EvidenceType.PRICING])

        overview = load_project_overview(project.id, "user-1")

        assert [c["name"] for c in overview["competitors"]] == ["Acme", "Globex", "Initech"]
        assert overview["artifact_counts"] == {"evidence_bundle": 1}
        assert overview["latest_run_id"] == run.run_id
        assert overview["coverage"]["total_competitors"] == 3
        assert overview["degraded"] == []

    def test_overview_degrades_on_read_failure(self, seeded_project):
        """
        WHY: A broken artifact read must not take the whole page down.
        HOW: Make the artifact count read raise.
        EXPECTED: Empty counts, the task listed as degraded, other data intact.
        """
        project, _ = seeded_project
        with patch("evidence_ledger.pipeline.auxiliary.Repo.count_artifacts", side_effect=RuntimeError("locked")):
            overview = load_project_overview(project.id, "user-1")

        assert overview["artifact_counts"] == {}
        assert overview["degraded"] == ["artifact_counts"]
        assert len(overview["competitors"]) == 3
        assert overview["coverage"] is None

    def test_coverage_none_without_bundle(self, seeded_project):
        project, _ = seeded_project
        assert load_coverage(project.id, "user-1") is None

    def test_coverage_none_when_bundle_unreadable(self, seeded_project):
        """
        WHY: A stored bundle that no longer matches its model must not break the coverage read.
        HOW: Write an evidence_bundle row whose content fails validation, then load coverage.
        EXPECTED: None instead of a raised ValidationError.
        """
        project, _ = seeded_project
        _store_raw_bundle(project.id, {"competitors": 5})

        assert load_coverage(project.id, "user-1") is None


@pytest.fixture
def client(test_db):
    from evidence_ledger.main_api import app
    with TestClient(app) as c:
        yield c


class TestApi:
    def test_create_project_and_competitor(self, client):
        """
        WHY: Projects and competitors are created through the API before any run.
        HOW: POST a project and a competitor as user-1; POST a competitor as someone else.
        EXPECTED: 201s for the owner; 403 for the other user; 401 without a user.
        """
        resp = client.post("/projects", json={"name": "Ledger", "market": "Ops"}, headers={"X-User-Id": "user-1"})
        assert resp.status_code == 201
        project_id = resp.json()["id"]

        resp = client.post(f"/projects/{project_id}/competitors", json={"name": "Acme", "url": "https://acme.io"},
                           headers={"X-User-Id": "user-1"})
        assert resp.status_code == 201
        assert resp.json()["name"] == "Acme"

        resp = client.post(f"/projects/{project_id}/competitors", json={"name": "Evil"},
                           headers={"X-User-Id": "user-2"})
        assert resp.status_code == 403
        assert resp.json()["details"]["code"] == "FORBIDDEN"

        assert client.post("/projects", json={"name": "Anon"}).status_code == 401

    @pytest.mark.parametrize("code,status", [
        ("INSUFFICIENT_COMPETITORS", 400),
        ("UNAUTHENTICATED", 401),
        ("FORBIDDEN", 403),
        ("PROJECT_NOT_FOUND", 404),
        ("GENERATION_VALIDATION_FAILED", 422),
        ("UNEXPECTED_ERROR", 500),
    ])
    def test_run_failures_map_to_status(self, client, code, status):
        """
        WHY: Clients branch on HTTP status; the body keeps the structured details.
        HOW: Patch the analysis run to return a failure with each code.
        EXPECTED: Mapped status and the RunResult body.
        """
        failure = RunResult.failure("nope", {"code": code}, run_id="run-1")
        with patch("evidence_ledger.main_api.AnalysisRun.run", return_value=failure):
            resp = client.post("/projects/p1/generate", headers={"X-User-Id": "user-1"})

        assert resp.status_code == status
        assert resp.json()["details"]["code"] == code
        assert resp.json()["ok"] is False

    def test_generate_end_to_end(self, client, seeded_project, fake_generator, documents):
        """
        WHY: The generate endpoint wires the analysis run to HTTP.
        HOW: Inject a scripted generator and POST generate for the seeded project.
        EXPECTED: 200 with ok, two artifact ids and usage totals.
        """
        project, competitors = seeded_project
        generator = fake_generator([documents["snapshot"](c.name) for c in competitors] + [documents["synthesis"]])

        with patch("evidence_ledger.pipeline.generate.llm_client", generator):
            resp = client.post(f"/projects/{project.id}/generate", headers={"X-User-Id": "user-1"})

        body = resp.json()
        assert resp.status_code == 200, body
        assert body["ok"] is True
        assert len(body["artifact_ids"]) == 2
        assert body["usage"]["total_tokens"] == 600

    def test_coverage_and_overview_endpoints(self, client, seeded_project):
        """
        WHY: Read endpoints enforce ownership like the runs do.
        HOW: GET coverage and overview as the owner and as another user.
        EXPECTED: 200 with no coverage yet for the owner; 403 for the other user.
        """
        project, _ = seeded_project
        owner = {"X-User-Id": "user-1"}

        assert client.get(f"/projects/{project.id}/coverage", headers=owner).json() == {"coverage": None}
        assert client.get(f"/projects/{project.id}/overview", headers=owner).json()["project"]["id"] == project.id
        assert client.get(f"/projects/{project.id}/overview", headers={"X-User-Id": "user-2"}).status_code == 403
        assert client.get("/projects/missing/coverage", headers=owner).status_code == 404

    def test_coverage_endpoint_survives_unreadable_bundle(self, client, seeded_project):
        """
        WHY: The coverage view must degrade to "no coverage" rather than an unstructured 500.
        HOW: Store an evidence bundle that fails validation and GET coverage as the owner.
        EXPECTED: 200 with coverage None.
        """
        project, _ = seeded_project
        _store_raw_bundle(project.id, {"competitors": 5})

        resp = client.get(f"/projects/{project.id}/coverage", headers={"X-User-Id": "user-1"})

        assert resp.status_code == 200
        assert resp.json() == {"coverage": None}
