from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from funnel_builder.auth.dependencies import AuthContext, get_current_user
from funnel_builder.db.deps import get_session
from funnel_builder.db.repositories.pitch_videos import PitchVideosRepository
from funnel_builder.routers.common import encode, require_owned, require_project
from funnel_builder.schemas.pages import PitchVideoCreateRequest, PitchVideoStatusRequest
from funnel_builder.services.pitch_videos import InvalidVideoTransitionError, update_video_status

router = APIRouter(prefix="/pitch-videos", tags=["pitch-videos"])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_pitch_video(
    payload: PitchVideoCreateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    project = require_project(session, auth, payload.projectId)
    video = PitchVideosRepository(session).create(
        user_id=auth.user_id,
        project_id=project.id,
        video_url=payload.videoUrl,
        provider=payload.provider,
        video_id=payload.videoId,
        thumbnail_url=payload.thumbnailUrl,
        video_duration=payload.videoDuration,
    )
    return encode(video)


@router.get("")
def list_pitch_videos(
    projectId: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    project = require_project(session, auth, projectId)
    return encode(PitchVideosRepository(session).list(project_id=project.id))


@router.get("/{video_id}")
def get_pitch_video(
    video_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    video = PitchVideosRepository(session).get(video_id=video_id)
    return encode(require_owned(video, auth, "Pitch video"))


@router.patch("/{video_id}/status")
def update_pitch_video_status(
    video_id: str,
    payload: PitchVideoStatusRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    video = require_owned(PitchVideosRepository(session).get(video_id=video_id), auth, "Pitch video")
    try:
        video = update_video_status(
            session,
            video,
            payload.status,
            video_url=payload.videoUrl,
            thumbnail_url=payload.thumbnailUrl,
            video_duration=payload.videoDuration,
        )
    except InvalidVideoTransitionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return encode(video)
