from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from funnel_builder.db.enums import VideoProcessingStatusEnum
from funnel_builder.db.models import PitchVideo
from funnel_builder.db.repositories.pitch_videos import PitchVideosRepository

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[VideoProcessingStatusEnum, frozenset[VideoProcessingStatusEnum]] = {
    VideoProcessingStatusEnum.uploaded: frozenset({VideoProcessingStatusEnum.processing}),
    VideoProcessingStatusEnum.processing: frozenset(
        {VideoProcessingStatusEnum.ready, VideoProcessingStatusEnum.failed}
    ),
    VideoProcessingStatusEnum.ready: frozenset(),
    VideoProcessingStatusEnum.failed: frozenset({VideoProcessingStatusEnum.processing}),
}


class InvalidVideoTransitionError(ValueError):
    pass


def can_transition(current: VideoProcessingStatusEnum, target: VideoProcessingStatusEnum) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def update_video_status(
    session: Session,
    video: PitchVideo,
    target: VideoProcessingStatusEnum,
    *,
    video_url: Optional[str] = None,
    thumbnail_url: Optional[str] = None,
    video_duration: Optional[int] = None,
) -> PitchVideo:
    current = video.processing_status
    if not can_transition(current, target):
        raise InvalidVideoTransitionError(f"Cannot move video from {current.value} to {target.value}")
    fields: dict[str, object] = {"processing_status": target}
    if video_url is not None:
        fields["video_url"] = video_url
    if thumbnail_url is not None:
        fields["thumbnail_url"] = thumbnail_url
    if video_duration is not None:
        fields["video_duration"] = video_duration
    video = PitchVideosRepository(session).update(video, **fields)
    logger.info(
        "Updated pitch video status",
        extra={"video_id": video.id, "from": current.value, "to": target.value},
    )
    return video
