from __future__ import annotations

from sqlalchemy.orm import Session

from funnel_builder.db.models import FunnelProject
from funnel_builder.db.repositories.projects import ProjectsRepository


class ProjectNotFoundError(LookupError):
    pass


class ProjectAccessError(PermissionError):
    pass


def get_owned_project(session: Session, *, project_id: str, user_id: str) -> FunnelProject:
    project = ProjectsRepository(session).get(project_id=project_id)
    if project is None:
        raise ProjectNotFoundError(project_id)
    if project.user_id != user_id:
        raise ProjectAccessError(project_id)
    return project
