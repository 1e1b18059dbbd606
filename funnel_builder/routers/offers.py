from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from funnel_builder.auth.dependencies import AuthContext, get_current_user
from funnel_builder.db.deps import get_session
from funnel_builder.db.models import FunnelProject
from funnel_builder.db.repositories.intakes import TranscriptsRepository
from funnel_builder.db.repositories.offers import OffersRepository
from funnel_builder.llm.client import LLMClient
from funnel_builder.llm.prompts import TranscriptData
from funnel_builder.routers.common import encode, get_llm_client, require_project
from funnel_builder.schemas.offers import OfferGenerateRequest, OfferUpdateRequest
from funnel_builder.services.intake import combine_intakes, transcript_data
from funnel_builder.services.offers import OfferGenerationError, determine_pathway_from_price, generate_offer

router = APIRouter(prefix="/offers", tags=["offers"])

_FIELD_NAMES = {"offerType": "offer_type", "displayOrder": "display_order"}


def resolve_transcript(session: Session, project: FunnelProject, transcript_id: Optional[str]) -> TranscriptData:
    """The named intake, or every intake of the project combined."""
    if transcript_id:
        transcript = TranscriptsRepository(session).get(project_id=project.id, transcript_id=transcript_id)
        if not transcript:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Intake not found")
        return transcript_data(transcript)
    combined = combine_intakes(session, project)
    if combined is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Complete an intake session first")
    return combined


def _get_offer(session: Session, auth: AuthContext, offer_id: str):
    offer = OffersRepository(session).get_by_id(offer_id=offer_id)
    if not offer or offer.user_id != auth.user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Offer not found")
    return offer


@router.post("/generate", status_code=status.HTTP_201_CREATED)
def generate_offer_route(
    payload: OfferGenerateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
    llm: LLMClient = Depends(get_llm_client),
):
    project = require_project(session, auth, payload.projectId)
    transcript = resolve_transcript(session, project, payload.transcriptId)
    try:
        offer = generate_offer(session, user_id=auth.user_id, project=project, transcript=transcript, llm=llm)
    except OfferGenerationError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return encode(offer)


@router.get("")
def list_offers(
    projectId: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    project = require_project(session, auth, projectId)
    return encode(OffersRepository(session).list(project_id=project.id))


@router.get("/{offer_id}")
def get_offer(
    offer_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return encode(_get_offer(session, auth, offer_id))


@router.patch("/{offer_id}")
def update_offer(
    offer_id: str,
    payload: OfferUpdateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    offer = _get_offer(session, auth, offer_id)
    fields = {_FIELD_NAMES.get(key, key): value for key, value in payload.model_dump(exclude_unset=True).items()}
    if "price" in fields and "pathway" not in fields:
        fields["pathway"] = determine_pathway_from_price(fields["price"])
    if not fields:
        return encode(offer)
    return encode(OffersRepository(session).update(offer, **fields))


@router.delete("/{offer_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_offer(
    offer_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    OffersRepository(session).delete(_get_offer(session, auth, offer_id))
    return None
