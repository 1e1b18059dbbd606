from __future__ import annotations

import json
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import ORJSONResponse, StreamingResponse
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from funnel_builder.auth.dependencies import AuthContext, bearer_scheme, get_current_user
from funnel_builder.db.deps import get_session
from funnel_builder.db.models import Presentation
from funnel_builder.db.repositories.decks import DeckStructuresRepository
from funnel_builder.db.repositories.presentations import PresentationsRepository
from funnel_builder.llm.client import LLMClient
from funnel_builder.routers.common import encode, get_llm_client, get_llm_factory, require_owned, require_project
from funnel_builder.schemas.presentations import SlideEditRequest, is_known_layout, is_known_quick_action
from funnel_builder.services.presentation_stream import (
    SSE_HEADERS,
    PresentationLimitError,
    PresentationStream,
    ResumeTargetError,
    prepare_generation,
)
from funnel_builder.services.rate_limit import check_rate_limit, get_rate_limit_identifier
from funnel_builder.services.slide_generator import (
    QUICK_ACTION_PROMPTS,
    InvalidCustomizationError,
    PresentationCustomization,
    SlideGenerationError,
    regenerate_slide,
)

router = APIRouter(prefix="/presentations", tags=["presentations"])


def _get_presentation(session: Session, auth: AuthContext, presentation_id: str) -> Presentation:
    return require_owned(PresentationsRepository(session).get(presentation_id=presentation_id), auth, "Presentation")


def _parse_customization(raw: Optional[str]) -> PresentationCustomization:
    if not raw:
        return PresentationCustomization()
    try:
        return PresentationCustomization.from_payload(json.loads(raw))
    except (json.JSONDecodeError, InvalidCustomizationError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid customization parameters"
        ) from exc


@router.get("/generate/stream")
def stream_presentation(
    request: Request,
    projectId: Optional[str] = None,
    deckStructureId: Optional[str] = None,
    customization: Optional[str] = None,
    resumePresentationId: Optional[str] = None,
    resumeFromSlide: Optional[int] = None,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: Session = Depends(get_session),
    llm_factory: Callable[[], LLMClient] = Depends(get_llm_factory),
):
    if not projectId or not deckStructureId:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="projectId and deckStructureId are required"
        )
    auth = get_current_user(credentials)

    is_resuming = bool(resumePresentationId)
    if not is_resuming:
        limited = check_rate_limit(get_rate_limit_identifier(request, auth.user_id), "presentation-generation")
        if limited is not None:
            return limited

    options = _parse_customization(customization)
    project = require_project(session, auth, projectId)
    deck = DeckStructuresRepository(session).get(deck_id=deckStructureId)
    if not deck or deck.funnel_project_id != project.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Deck structure not found")

    try:
        plan = prepare_generation(
            session,
            user_id=auth.user_id,
            project=project,
            deck=deck,
            customization=options,
            resume_presentation_id=resumePresentationId,
            resume_from_slide=resumeFromSlide,
        )
    except PresentationLimitError as exc:
        return ORJSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"error": str(exc), "code": "PRESENTATION_LIMIT_REACHED"},
        )
    except ResumeTargetError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Presentation not found") from exc

    stream = PresentationStream(plan, llm_factory=llm_factory)
    return StreamingResponse(stream.events(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.get("")
def list_presentations(
    projectId: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    project = require_project(session, auth, projectId)
    return encode(PresentationsRepository(session).list(project_id=project.id))


@router.get("/{presentation_id}")
def get_presentation(
    presentation_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return encode(_get_presentation(session, auth, presentation_id))


@router.delete("/{presentation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_presentation(
    presentation_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    PresentationsRepository(session).delete(_get_presentation(session, auth, presentation_id))
    return None


@router.patch("/{presentation_id}/slides/{slide_number}")
def edit_slide(
    presentation_id: str,
    slide_number: int,
    payload: SlideEditRequest,
    request: Request,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
    llm: LLMClient = Depends(get_llm_client),
):
    limited = check_rate_limit(get_rate_limit_identifier(request, auth.user_id), "slide-edit")
    if limited is not None:
        return limited

    if not payload.has_action():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No edit action provided")
    if payload.layoutType and not is_known_layout(payload.layoutType):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown layout: {payload.layoutType}")
    if payload.quickAction and not is_known_quick_action(payload.quickAction):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown quick action: {payload.quickAction}"
        )

    presentation = _get_presentation(session, auth, presentation_id)
    slides = list(presentation.slides or [])
    position = next(
        (index for index, slide in enumerate(slides) if slide.get("slideNumber") == slide_number),
        None,
    )
    if position is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Slide not found")

    slide = {**slides[position], **payload.direct_edits()}
    if payload.layoutType:
        slide["layoutType"] = payload.layoutType

    instruction = QUICK_ACTION_PROMPTS.get(payload.quickAction or "") or payload.customPrompt
    if instruction:
        project = require_project(session, auth, presentation.funnel_project_id)
        try:
            slide = regenerate_slide(
                slide,
                instruction,
                llm=llm,
                business_context={"projectName": project.name, "niche": project.business_niche},
            )
        except SlideGenerationError as exc:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    slides[position] = slide
    presentation = PresentationsRepository(session).update(presentation, slides=slides)
    return {"slide": slide, "presentation": encode(presentation)}
