from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from funnel_builder.db.models import VapiTranscript


class TranscriptsRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list(self, *, project_id: str) -> List[VapiTranscript]:
        stmt = (
            select(VapiTranscript)
            .where(VapiTranscript.funnel_project_id == project_id)
            .order_by(VapiTranscript.created_at.asc())
        )
        return list(self.session.scalars(stmt).all())

    def get(self, *, project_id: str, transcript_id: str) -> Optional[VapiTranscript]:
        stmt = select(VapiTranscript).where(
            VapiTranscript.funnel_project_id == project_id,
            VapiTranscript.id == transcript_id,
        )
        return self.session.scalars(stmt).first()

    def latest(self, *, project_id: str) -> Optional[VapiTranscript]:
        stmt = (
            select(VapiTranscript)
            .where(VapiTranscript.funnel_project_id == project_id)
            .order_by(VapiTranscript.created_at.desc())
            .limit(1)
        )
        return self.session.scalars(stmt).first()

    def create(self, *, user_id: str, project_id: str, transcript_text: str, **fields) -> VapiTranscript:
        transcript = VapiTranscript(
            user_id=user_id,
            funnel_project_id=project_id,
            transcript_text=transcript_text,
            **fields,
        )
        self.session.add(transcript)
        self.session.commit()
        self.session.refresh(transcript)
        return transcript
