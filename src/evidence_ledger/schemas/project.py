from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

# Project fields a generation run cannot start without.
REQUIRED_PROJECT_FIELDS = ("name", "market", "target_customer")


class Project(BaseModel):
    id: str
    user_id: str
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
    created_at: Optional[datetime] = None

    def missing_fields(self) -> List[str]:
        return [f for f in REQUIRED_PROJECT_FIELDS if not (getattr(self, f) or "").strip()]


class Competitor(BaseModel):
    id: str
    project_id: str
    name: str
    url: Optional[str] = None
    notes: Optional[str] = None
    evidence_text: Optional[str] = None
    created_at: Optional[datetime] = None
