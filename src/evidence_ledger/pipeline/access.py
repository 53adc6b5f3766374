"""Project lookup and ownership checks shared by every run and read."""

from typing import Optional

from ..errors import AuthError, NotFoundError
from ..schemas.project import Project
from ..store.repo import Repo


def authorize_project(project_id: str, user_id: Optional[str]) -> Project:
    """
    Resolve a project the caller owns.
    No session -> UNAUTHENTICATED; unknown project -> PROJECT_NOT_FOUND;
    someone else's project -> FORBIDDEN.
    """
    if not user_id:
        raise AuthError("Authentication required", code="UNAUTHENTICATED")
    project = Repo.get_project(project_id)
    if project is None:
        raise NotFoundError("Project not found", code="PROJECT_NOT_FOUND", project_id=project_id)
    if project.user_id != user_id:
        raise AuthError("You do not have access to this project", code="FORBIDDEN")
    return project
