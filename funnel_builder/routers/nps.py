from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from funnel_builder.auth.dependencies import AuthContext, get_current_user
from funnel_builder.db.deps import get_session
from funnel_builder.db.repositories.nps import NpsResponsesRepository
from funnel_builder.routers.common import encode
from funnel_builder.schemas.nps import NpsCreateRequest
from funnel_builder.services.nps import summarize

router = APIRouter(prefix="/nps", tags=["nps"])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_nps_response(
    payload: NpsCreateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    response = NpsResponsesRepository(session).create(
        user_id=auth.user_id,
        score=payload.score,
        feedback=(payload.feedback or "").strip() or None,
        survey_type=payload.surveyType,
    )
    return encode(response)


@router.get("")
def list_nps_responses(
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return encode(NpsResponsesRepository(session).list(user_id=auth.user_id))


@router.get("/summary")
def nps_summary(
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return summarize(NpsResponsesRepository(session).list_all())
