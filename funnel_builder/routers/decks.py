from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from funnel_builder.auth.dependencies import AuthContext, get_current_user
from funnel_builder.db.deps import get_session
from funnel_builder.db.models import DeckStructure
from funnel_builder.db.repositories.decks import DeckStructuresRepository, TalkTracksRepository
from funnel_builder.llm.client import LLMClient
from funnel_builder.routers.common import encode, get_llm_client, require_owned, require_project
from funnel_builder.routers.offers import resolve_transcript
from funnel_builder.schemas.decks import DeckGenerateRequest, DeckUpdateRequest, TalkTrackGenerateRequest
from funnel_builder.services.decks import (
    DeckGenerationError,
    generate_deck_structure,
    generate_talk_track,
    update_deck_slides,
)

router = APIRouter(prefix="/deck-structures", tags=["decks"])


def _get_deck(session: Session, auth: AuthContext, deck_id: str) -> DeckStructure:
    return require_owned(DeckStructuresRepository(session).get(deck_id=deck_id), auth, "Deck structure")


@router.post("/generate", status_code=status.HTTP_201_CREATED)
def generate_deck(
    payload: DeckGenerateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
    llm: LLMClient = Depends(get_llm_client),
):
    project = require_project(session, auth, payload.projectId)
    transcript = resolve_transcript(session, project, payload.transcriptId)
    try:
        deck = generate_deck_structure(
            session,
            user_id=auth.user_id,
            project=project,
            transcript=transcript,
            transcript_id=payload.transcriptId,
            slide_count=payload.slideCount,
            llm=llm,
        )
    except DeckGenerationError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return encode(deck)


@router.get("")
def list_decks(
    projectId: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    project = require_project(session, auth, projectId)
    return encode(DeckStructuresRepository(session).list(project_id=project.id))


@router.get("/{deck_id}")
def get_deck(
    deck_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return encode(_get_deck(session, auth, deck_id))


@router.patch("/{deck_id}")
def update_deck(
    deck_id: str,
    payload: DeckUpdateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    deck = _get_deck(session, auth, deck_id)
    slides = [slide.model_dump() for slide in payload.slides]
    return encode(update_deck_slides(session, deck, slides))


@router.delete("/{deck_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_deck(
    deck_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    DeckStructuresRepository(session).delete(_get_deck(session, auth, deck_id))
    return None


@router.post("/talk-track", status_code=status.HTTP_201_CREATED)
def create_talk_track(
    payload: TalkTrackGenerateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
    llm: LLMClient = Depends(get_llm_client),
):
    deck = _get_deck(session, auth, payload.deckStructureId)
    try:
        track = generate_talk_track(session, user_id=auth.user_id, deck=deck, llm=llm)
    except DeckGenerationError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return encode(track)


@router.get("/{deck_id}/talk-tracks")
def list_talk_tracks(
    deck_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    deck = _get_deck(session, auth, deck_id)
    return encode(TalkTracksRepository(session).list(deck_id=deck.id))
