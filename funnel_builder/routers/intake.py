from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from funnel_builder.auth.dependencies import AuthContext, get_current_user
from funnel_builder.db.deps import get_session
from funnel_builder.db.repositories.intakes import TranscriptsRepository
from funnel_builder.routers.common import encode, require_project
from funnel_builder.schemas.intake import PasteIntakeRequest, ScrapeIntakeRequest
from funnel_builder.services.intake import (
    IntakeValidationError,
    ScrapeError,
    create_paste_intake,
    create_scrape_intake,
)
from funnel_builder.services.rate_limit import check_rate_limit, get_rate_limit_identifier

router = APIRouter(prefix="/intake", tags=["intake"])


@router.post("/paste", status_code=status.HTTP_201_CREATED)
def paste_intake(
    payload: PasteIntakeRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    project = require_project(session, auth, payload.projectId)
    try:
        transcript = create_paste_intake(
            session,
            user_id=auth.user_id,
            project=project,
            content=payload.content,
            session_name=payload.sessionName,
        )
    except IntakeValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return encode(transcript)


@router.post("/scrape", status_code=status.HTTP_201_CREATED)
def scrape_intake(
    payload: ScrapeIntakeRequest,
    request: Request,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    limited = check_rate_limit(get_rate_limit_identifier(request, auth.user_id), "scraping")
    if limited is not None:
        return limited

    project = require_project(session, auth, payload.projectId)
    try:
        transcript = create_scrape_intake(
            session,
            user_id=auth.user_id,
            project=project,
            url=payload.url.strip(),
            session_name=payload.sessionName,
        )
    except IntakeValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except ScrapeError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return encode(transcript)


@router.get("/{project_id}")
def list_intakes(
    project_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    project = require_project(session, auth, project_id)
    return encode(TranscriptsRepository(session).list(project_id=project.id))


@router.get("/{project_id}/{transcript_id}")
def get_intake(
    project_id: str,
    transcript_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    project = require_project(session, auth, project_id)
    transcript = TranscriptsRepository(session).get(project_id=project.id, transcript_id=transcript_id)
    if not transcript:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Intake not found")
    return encode(transcript)
