from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from funnel_builder.db.models import NpsResponse


class NpsResponsesRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list(self, *, user_id: str) -> List[NpsResponse]:
        stmt = select(NpsResponse).where(NpsResponse.user_id == user_id).order_by(NpsResponse.created_at.desc())
        return list(self.session.scalars(stmt).all())

    def list_all(self) -> List[NpsResponse]:
        return list(self.session.scalars(select(NpsResponse)).all())

    def create(self, *, user_id: str, score: int, **fields) -> NpsResponse:
        response = NpsResponse(user_id=user_id, score=score, **fields)
        self.session.add(response)
        self.session.commit()
        self.session.refresh(response)
        return response
