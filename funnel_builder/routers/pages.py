from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from funnel_builder.auth.dependencies import AuthContext, get_current_user
from funnel_builder.db.deps import get_session
from funnel_builder.db.models import PitchVideo
from funnel_builder.db.repositories.decks import DeckStructuresRepository
from funnel_builder.db.repositories.offers import OffersRepository
from funnel_builder.db.repositories.pages import PageModel, PagesRepository, get_published_page_by_slug
from funnel_builder.db.repositories.pitch_videos import PitchVideosRepository
from funnel_builder.llm.client import LLMClient
from funnel_builder.routers.common import encode, get_llm_client, require_owned, require_project
from funnel_builder.schemas.pages import (
    AttachVideoRequest,
    EnrollmentPageGenerateRequest,
    PagePublishRequest,
    PageUpdateRequest,
    RegenerateFieldRequest,
    RegistrationPageGenerateRequest,
    WatchPageGenerateRequest,
)
from funnel_builder.services.intake import combine_intakes
from funnel_builder.services.pages import (
    PageGenerationError,
    UnknownPageFieldError,
    VideoNotReadyError,
    attach_video,
    generate_enrollment_page,
    generate_registration_page,
    generate_watch_page,
    publish_page,
    regenerate_field,
    unpublish_page,
    update_page,
)

router = APIRouter(prefix="/pages", tags=["pages"])
public_router = APIRouter(tags=["public"])

PageKind = Literal["enrollment", "registration", "watch"]


def _get_page(session: Session, auth: AuthContext, page_kind: str, page_id: str) -> PageModel:
    return require_owned(PagesRepository(session, page_kind).get(page_id=page_id), auth, "Page")


def _get_video(session: Session, auth: AuthContext, video_id: str) -> PitchVideo:
    return require_owned(PitchVideosRepository(session).get(video_id=video_id), auth, "Pitch video")


@router.post("/enrollment/generate", status_code=status.HTTP_201_CREATED)
def generate_enrollment(
    payload: EnrollmentPageGenerateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
    llm: LLMClient = Depends(get_llm_client),
):
    project = require_project(session, auth, payload.projectId)
    offer = OffersRepository(session).get(project_id=project.id, offer_id=payload.offerId)
    if not offer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Offer not found")
    try:
        page = generate_enrollment_page(
            session,
            user_id=auth.user_id,
            project=project,
            offer=offer,
            transcript=combine_intakes(session, project),
            llm=llm,
        )
    except PageGenerationError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return encode(page)


@router.post("/registration/generate", status_code=status.HTTP_201_CREATED)
def generate_registration(
    payload: RegistrationPageGenerateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
    llm: LLMClient = Depends(get_llm_client),
):
    project = require_project(session, auth, payload.projectId)
    decks = DeckStructuresRepository(session)
    if payload.deckStructureId:
        deck = decks.get(deck_id=payload.deckStructureId)
        if not deck or deck.funnel_project_id != project.id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Deck structure not found")
    else:
        deck = decks.latest(project_id=project.id)
    try:
        page = generate_registration_page(session, user_id=auth.user_id, project=project, deck=deck, llm=llm)
    except PageGenerationError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return encode(page)


@router.post("/watch/generate", status_code=status.HTTP_201_CREATED)
def generate_watch(
    payload: WatchPageGenerateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
    llm: LLMClient = Depends(get_llm_client),
):
    project = require_project(session, auth, payload.projectId)
    video = _get_video(session, auth, payload.pitchVideoId) if payload.pitchVideoId else None
    try:
        page = generate_watch_page(session, user_id=auth.user_id, project=project, video=video, llm=llm)
    except PageGenerationError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return encode(page)


@router.get("/{page_kind}")
def list_pages(
    page_kind: PageKind,
    projectId: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    project = require_project(session, auth, projectId)
    return encode(PagesRepository(session, page_kind).list(project_id=project.id))


@router.get("/{page_kind}/{page_id}")
def get_page(
    page_kind: PageKind,
    page_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return encode(_get_page(session, auth, page_kind, page_id))


@router.patch("/{page_kind}/{page_id}")
def update_page_route(
    page_kind: PageKind,
    page_id: str,
    payload: PageUpdateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    page = _get_page(session, auth, page_kind, page_id)
    return encode(update_page(session, page_kind, page, payload.to_fields()))


@router.delete("/{page_kind}/{page_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_page(
    page_kind: PageKind,
    page_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    PagesRepository(session, page_kind).delete(_get_page(session, auth, page_kind, page_id))
    return None


@router.post("/{page_kind}/{page_id}/publish")
def publish_page_route(
    page_kind: PageKind,
    page_id: str,
    payload: PagePublishRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    page = _get_page(session, auth, page_kind, page_id)
    project = require_project(session, auth, page.funnel_project_id)
    page = publish_page(session, page_kind, page, vanity_slug=payload.vanitySlug, project_name=project.name)
    return encode(page)


@router.post("/{page_kind}/{page_id}/unpublish")
def unpublish_page_route(
    page_kind: PageKind,
    page_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    page = _get_page(session, auth, page_kind, page_id)
    return encode(unpublish_page(session, page_kind, page))


@router.post("/{page_kind}/{page_id}/regenerate-field")
def regenerate_field_route(
    page_kind: PageKind,
    page_id: str,
    payload: RegenerateFieldRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
    llm: LLMClient = Depends(get_llm_client),
):
    page = _get_page(session, auth, page_kind, page_id)
    project = require_project(session, auth, page.funnel_project_id)
    try:
        page = regenerate_field(session, page_kind, page, payload.field, project=project, llm=llm)
    except UnknownPageFieldError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except PageGenerationError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return encode(page)


@router.post("/watch/{page_id}/video")
def attach_video_route(
    page_id: str,
    payload: AttachVideoRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    page = _get_page(session, auth, "watch", page_id)
    video = _get_video(session, auth, payload.pitchVideoId)
    try:
        page = attach_video(session, page, video)
    except VideoNotReadyError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return encode(page)


@public_router.get("/p/{slug}", response_class=HTMLResponse)
def public_page(slug: str, session: Session = Depends(get_session)):
    page = get_published_page_by_slug(session, slug)
    if page is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Page not found")
    return HTMLResponse(content=page.html_content)
