"""HTTP surface for projects, evidence collection and generation runs.

Callers identify themselves with the X-User-Id header. Runs always answer with
a RunResult body; failures carry their code and an HTTP status mapped from it.

Usage:
    uvicorn evidence_ledger.main_api:app
"""

from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .errors import AuthError, LedgerError
from .log import get_logger, setup_logging
from .pipeline.access import authorize_project
from .pipeline.auxiliary import load_coverage, load_project_overview
from .pipeline.collect import EvidenceCollectionRun
from .pipeline.generate import AnalysisRun
from .pipeline.result import RunResult
from .pipeline.results import ResultsRun
from .schemas.evidence import EvidenceType
from .store.db import init_db
from .store.repo import Repo

setup_logging()
logger = get_logger("api")

STATUS_BY_CODE = {
    "UNAUTHENTICATED": 401,
    "FORBIDDEN": 403,
    "PROJECT_NOT_FOUND": 404,
    "INVALID_INPUT": 400,
    "INSUFFICIENT_COMPETITORS": 400,
    "TOO_MANY_COMPETITORS": 400,
    "MISSING_PROJECT_FIELDS": 400,
    "MISSING_PREREQUISITES": 400,
    "GENERATION_VALIDATION_FAILED": 422,
}


def status_for(code: Optional[str]) -> int:
    return STATUS_BY_CODE.get(code or "", 500)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(title="Evidence Ledger", lifespan=lifespan)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    return JSONResponse(status_code=status_for(exc.code), content={"message": exc.message, "details": exc.to_details()})


def current_user(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    return x_user_id or None


def respond(result: RunResult) -> JSONResponse:
    status = 200 if result.ok else status_for(result.code)
    return JSONResponse(status_code=status, content=result.model_dump(mode="json"))


class ProjectIn(BaseModel):
    name: str
    market: Optional[str] = None
    target_customer: Optional[str] = None
    your_product: Optional[str] = None
    business_goal: Optional[str] = None
    hypothesis: Optional[str] = None
    geography: Optional[str] = None
    primary_constraint: Optional[str] = None
    risk_posture: Optional[str] = None
    ambition_level: Optional[str] = None
    explicit_non_goals: Optional[str] = None


class CompetitorIn(BaseModel):
    name: str
    url: Optional[str] = None
    notes: Optional[str] = None
    evidence_text: Optional[str] = None


class CollectEvidenceIn(BaseModel):
    include_types: Optional[List[EvidenceType]] = None


@app.post("/projects", status_code=201)
def create_project(body: ProjectIn, user_id: Optional[str] = Depends(current_user)):
    if not user_id:
        raise AuthError("Authentication required", code="UNAUTHENTICATED")
    fields = body.model_dump(exclude={"name"}, exclude_none=True)
    return Repo.create_project(user_id, body.name, **fields).model_dump(mode="json")


@app.post("/projects/{project_id}/competitors", status_code=201)
def add_competitor(project_id: str, body: CompetitorIn, user_id: Optional[str] = Depends(current_user)):
    authorize_project(project_id, user_id)
    return Repo.add_competitor(project_id, **body.model_dump()).model_dump(mode="json")


@app.post("/projects/{project_id}/collect-evidence")
def collect_evidence(project_id: str, body: Optional[CollectEvidenceIn] = None,
                     user_id: Optional[str] = Depends(current_user)):
    include_types = body.include_types if body else None
    return respond(EvidenceCollectionRun().run(project_id, user_id, include_types))


@app.post("/projects/{project_id}/generate")
def generate(project_id: str, user_id: Optional[str] = Depends(current_user)):
    return respond(AnalysisRun().run(project_id, user_id))


@app.post("/projects/{project_id}/generate-results")
def generate_results(project_id: str, user_id: Optional[str] = Depends(current_user)):
    return respond(ResultsRun().run(project_id, user_id))


@app.get("/projects/{project_id}/coverage")
def coverage(project_id: str, user_id: Optional[str] = Depends(current_user)):
    report = load_coverage(project_id, user_id)
    return {"coverage": report.model_dump(mode="json") if report else None}


@app.get("/projects/{project_id}/overview")
def overview(project_id: str, user_id: Optional[str] = Depends(current_user)):
    return load_project_overview(project_id, user_id)
