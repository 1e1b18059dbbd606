from __future__ import annotations

from typing import Callable

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.orm import Session

from funnel_builder.auth.dependencies import AuthContext, get_current_user
from funnel_builder.db.deps import get_session
from funnel_builder.llm.client import LLMClient
from funnel_builder.routers.common import encode, get_llm_factory, require_project
from funnel_builder.schemas.generate import AutoGenerateRequest
from funnel_builder.services.auto_generation import (
    GenerationInProgressError,
    MissingIntakeError,
    ensure_can_start,
    mark_queued,
    run_auto_generation,
)

router = APIRouter(prefix="/generate", tags=["generate"])


@router.post("/auto-generate-all", status_code=status.HTTP_202_ACCEPTED)
def auto_generate_all(
    payload: AutoGenerateRequest,
    background_tasks: BackgroundTasks,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
    llm_factory: Callable[[], LLMClient] = Depends(get_llm_factory),
):
    project = require_project(session, auth, payload.projectId)
    try:
        ensure_can_start(session, project)
    except GenerationInProgressError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except MissingIntakeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    project = mark_queued(session, project)
    background_tasks.add_task(
        run_auto_generation,
        project_id=project.id,
        user_id=auth.user_id,
        slide_count=payload.slideCount,
        llm_factory=llm_factory,
    )
    return {"success": True, "projectId": project.id, "status": encode(project.generation_status)}


@router.get("/status/{project_id}")
def generation_status(
    project_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    project = require_project(session, auth, project_id)
    status_payload = project.generation_status or {}
    return {
        "projectId": project.id,
        "isGenerating": bool(status_payload.get("is_generating")),
        "status": encode(status_payload),
    }
