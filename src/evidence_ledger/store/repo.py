"""Repository pattern for database operations.

Projects and competitors are plain create/read records. Artifacts are
insert-only: content is re-validated against the artifact registry before it
is written, and a batch of artifacts is written in one transaction.
"""

import json
import uuid
from typing import Any, Dict, List, Optional, Sequence

from .db import get_db_connection
from ..log import get_logger
from ..schemas.artifacts import (
    ArtifactMeta,
    ArtifactType,
    GenerationArtifact,
    get_artifact_entry,
    validate_artifact_content,
)
from ..schemas.project import Competitor, Project

logger = get_logger("repo")

_PROJECT_COLUMNS = (
    "market", "target_customer", "your_product", "business_goal", "hypothesis", "geography",
    "primary_constraint", "risk_posture", "ambition_level", "explicit_non_goals",
)


def _new_id() -> str:
    return str(uuid.uuid4())


def _row_to_artifact(row) -> GenerationArtifact:
    return GenerationArtifact(
        id=row["id"],
        project_id=row["project_id"],
        type=ArtifactType(row["type"]),
        schema_version=row["schema_version"],
        meta=ArtifactMeta.model_validate_json(row["meta"]),
        content=json.loads(row["content"]),
        created_at=row["created_at"],
    )


class PendingArtifact:
    """Validated artifact waiting to be written together with its siblings."""

    def __init__(self, artifact_type: ArtifactType, content: Any, meta: ArtifactMeta):
        entry = get_artifact_entry(artifact_type)
        self.type = entry.type
        self.schema_version = entry.schema_version
        self.content = validate_artifact_content(entry.type, content)
        self.meta = meta


class Repo:
    @staticmethod
    def create_project(user_id: str, name: str, **fields: Optional[str]) -> Project:
        unknown = set(fields) - set(_PROJECT_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown project fields: {', '.join(sorted(unknown))}")
        project_id = _new_id()
        columns = ["id", "user_id", "name", *fields.keys()]
        values = [project_id, user_id, name, *fields.values()]
        with get_db_connection() as conn:
            conn.execute(
                f"INSERT INTO projects ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
                values,
            )
            conn.commit()
        return Repo.get_project(project_id)

    @staticmethod
    def get_project(project_id: str) -> Optional[Project]:
        with get_db_connection() as conn:
            row = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
            return Project(**dict(row)) if row else None

    @staticmethod
    def add_competitor(
        project_id: str,
        name: str,
        url: Optional[str] = None,
        notes: Optional[str] = None,
        evidence_text: Optional[str] = None,
    ) -> Competitor:
        competitor_id = _new_id()
        with get_db_connection() as conn:
            conn.execute(
                """
                INSERT INTO competitors (id, project_id, name, url, notes, evidence_text)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (competitor_id, project_id, name, url, notes, evidence_text),
            )
            conn.commit()
            row = conn.execute("SELECT * FROM competitors WHERE id = ?", (competitor_id,)).fetchone()
            return Competitor(**dict(row))

    @staticmethod
    def list_competitors(project_id: str) -> List[Competitor]:
        with get_db_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM competitors WHERE project_id = ? ORDER BY created_at ASC, rowid ASC",
                (project_id,),
            ).fetchall()
            return [Competitor(**dict(r)) for r in rows]

    @staticmethod
    def create_artifact(project_id: str, artifact_type: ArtifactType, content: Any,
                        meta: ArtifactMeta) -> GenerationArtifact:
        return Repo.create_artifacts(project_id, [PendingArtifact(artifact_type, content, meta)])[0]

    @staticmethod
    def create_artifacts(project_id: str, pending: Sequence[PendingArtifact]) -> List[GenerationArtifact]:
        """
        Insert a batch of validated artifacts atomically.
        Either every artifact is written or none is.
        """
        if not pending:
            return []
        rows = []
        for item in pending:
            rows.append((
                _new_id(),
                project_id,
                item.meta.run_id,
                item.type.value,
                item.schema_version,
                item.meta.model_dump_json(),
                json.dumps(item.content),
            ))

        with get_db_connection() as conn:
            try:
                conn.executemany(
                    """
                    INSERT INTO artifacts (id, project_id, run_id, type, schema_version, meta, content)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    rows,
                )
                conn.commit()
            except Exception:
                conn.rollback()
                raise

            ids = [r[0] for r in rows]
            found = conn.execute(
                f"SELECT * FROM artifacts WHERE id IN ({', '.join('?' for _ in ids)})", ids
            ).fetchall()
        by_id = {r["id"]: _row_to_artifact(r) for r in found}
        logger.info(f"Stored {len(ids)} artifact(s) for project {project_id}")
        return [by_id[i] for i in ids]

    @staticmethod
    def list_artifacts(project_id: str, artifact_type: Optional[ArtifactType] = None) -> List[GenerationArtifact]:
        query = "SELECT * FROM artifacts WHERE project_id = ?"
        params: List[Any] = [project_id]
        if artifact_type is not None:
            query += " AND type = ?"
            params.append(ArtifactType(artifact_type).value)
        query += " ORDER BY created_at DESC, rowid DESC"
        with get_db_connection() as conn:
            rows = conn.execute(query, params).fetchall()
            return [_row_to_artifact(r) for r in rows]

    @staticmethod
    def get_latest_artifact(project_id: str, artifact_type: ArtifactType) -> Optional[GenerationArtifact]:
        with get_db_connection() as conn:
            row = conn.execute(
                """
                SELECT * FROM artifacts WHERE project_id = ? AND type = ?
                ORDER BY created_at DESC, rowid DESC LIMIT 1
                """,
                (project_id, ArtifactType(artifact_type).value),
            ).fetchone()
            return _row_to_artifact(row) if row else None

    @staticmethod
    def get_latest_run_id(project_id: str) -> Optional[str]:
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT run_id FROM artifacts WHERE project_id = ? ORDER BY created_at DESC, rowid DESC LIMIT 1",
                (project_id,),
            ).fetchone()
            return row["run_id"] if row else None

    @staticmethod
    def count_artifacts(project_id: str) -> Dict[str, int]:
        with get_db_connection() as conn:
            rows = conn.execute(
                "SELECT type, COUNT(*) AS n FROM artifacts WHERE project_id = ? GROUP BY type",
                (project_id,),
            ).fetchall()
            return {r["type"]: r["n"] for r in rows}
