from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from funnel_builder.db.models import PitchVideo


class PitchVideosRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list(self, *, project_id: str) -> List[PitchVideo]:
        stmt = (
            select(PitchVideo)
            .where(PitchVideo.funnel_project_id == project_id)
            .order_by(PitchVideo.created_at.desc())
        )
        return list(self.session.scalars(stmt).all())

    def get(self, *, video_id: str) -> Optional[PitchVideo]:
        return self.session.get(PitchVideo, video_id)

    def create(self, *, user_id: str, project_id: str, **fields) -> PitchVideo:
        video = PitchVideo(user_id=user_id, funnel_project_id=project_id, **fields)
        self.session.add(video)
        self.session.commit()
        self.session.refresh(video)
        return video

    def update(self, video: PitchVideo, **fields) -> PitchVideo:
        for key, value in fields.items():
            setattr(video, key, value)
        self.session.commit()
        self.session.refresh(video)
        return video
