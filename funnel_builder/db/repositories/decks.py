from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from funnel_builder.db.models import DeckStructure, TalkTrack


class DeckStructuresRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list(self, *, project_id: str) -> List[DeckStructure]:
        stmt = (
            select(DeckStructure)
            .where(DeckStructure.funnel_project_id == project_id)
            .order_by(DeckStructure.created_at.desc())
        )
        return list(self.session.scalars(stmt).all())

    def get(self, *, deck_id: str) -> Optional[DeckStructure]:
        return self.session.get(DeckStructure, deck_id)

    def latest(self, *, project_id: str) -> Optional[DeckStructure]:
        stmt = (
            select(DeckStructure)
            .where(DeckStructure.funnel_project_id == project_id)
            .order_by(DeckStructure.created_at.desc())
            .limit(1)
        )
        return self.session.scalars(stmt).first()

    def create(self, *, user_id: str, project_id: str, slides: List[dict], **fields) -> DeckStructure:
        deck = DeckStructure(
            user_id=user_id,
            funnel_project_id=project_id,
            slides=slides,
            total_slides=len(slides),
            **fields,
        )
        self.session.add(deck)
        self.session.commit()
        self.session.refresh(deck)
        return deck

    def update(self, deck: DeckStructure, **fields) -> DeckStructure:
        for key, value in fields.items():
            setattr(deck, key, value)
        if "slides" in fields:
            deck.total_slides = len(fields["slides"])
        self.session.commit()
        self.session.refresh(deck)
        return deck

    def delete(self, deck: DeckStructure) -> None:
        self.session.delete(deck)
        self.session.commit()


class TalkTracksRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list(self, *, deck_id: str) -> List[TalkTrack]:
        stmt = (
            select(TalkTrack)
            .where(TalkTrack.deck_structure_id == deck_id)
            .order_by(TalkTrack.created_at.desc())
        )
        return list(self.session.scalars(stmt).all())

    def create(self, *, user_id: str, project_id: str, deck_id: str, **fields) -> TalkTrack:
        track = TalkTrack(user_id=user_id, funnel_project_id=project_id, deck_structure_id=deck_id, **fields)
        self.session.add(track)
        self.session.commit()
        self.session.refresh(track)
        return track
