from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from funnel_builder.auth.dependencies import AuthContext, get_current_user
from funnel_builder.db.deps import get_session
from funnel_builder.db.enums import ProjectStatusEnum
from funnel_builder.db.repositories.projects import ProjectsRepository
from funnel_builder.routers.common import encode, require_project
from funnel_builder.schemas.projects import ProjectCreateRequest, ProjectUpdateRequest

router = APIRouter(prefix="/projects", tags=["projects"])

_FIELD_NAMES = {
    "name": "name",
    "description": "description",
    "targetAudience": "target_audience",
    "businessNiche": "business_niche",
    "status": "status",
    "currentStep": "current_step",
    "settings": "settings",
}


@router.get("")
def list_projects(
    status_filter: Optional[ProjectStatusEnum] = Query(default=None, alias="status"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return encode(ProjectsRepository(session).list(user_id=auth.user_id, status=status_filter))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_project(
    payload: ProjectCreateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    project = ProjectsRepository(session).create(
        user_id=auth.user_id,
        name=payload.name.strip(),
        description=payload.description,
        target_audience=payload.targetAudience,
        business_niche=payload.businessNiche,
    )
    return encode(project)


@router.get("/{project_id}")
def get_project(
    project_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return encode(require_project(session, auth, project_id))


@router.patch("/{project_id}")
def update_project(
    project_id: str,
    payload: ProjectUpdateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    project = require_project(session, auth, project_id)
    fields = {_FIELD_NAMES[key]: value for key, value in payload.model_dump(exclude_unset=True).items()}
    if not fields:
        return encode(project)
    return encode(ProjectsRepository(session).update(project, **fields))


@router.delete("/{project_id}")
def archive_project(
    project_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    project = require_project(session, auth, project_id)
    project = ProjectsRepository(session).update(project, status=ProjectStatusEnum.archived)
    return {"ok": True, "id": project.id, "status": project.status.value}
