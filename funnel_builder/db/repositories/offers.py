from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from funnel_builder.db.models import Offer


class OffersRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list(self, *, project_id: str) -> List[Offer]:
        stmt = (
            select(Offer)
            .where(Offer.funnel_project_id == project_id)
            .order_by(Offer.display_order.asc(), Offer.created_at.desc())
        )
        return list(self.session.scalars(stmt).all())

    def get(self, *, project_id: str, offer_id: str) -> Optional[Offer]:
        stmt = select(Offer).where(Offer.funnel_project_id == project_id, Offer.id == offer_id)
        return self.session.scalars(stmt).first()

    def get_by_id(self, *, offer_id: str) -> Optional[Offer]:
        return self.session.get(Offer, offer_id)

    def latest(self, *, project_id: str) -> Optional[Offer]:
        stmt = (
            select(Offer)
            .where(Offer.funnel_project_id == project_id)
            .order_by(Offer.created_at.desc())
            .limit(1)
        )
        return self.session.scalars(stmt).first()

    def create(self, *, user_id: str, project_id: str, name: str, **fields) -> Offer:
        offer = Offer(user_id=user_id, funnel_project_id=project_id, name=name, **fields)
        self.session.add(offer)
        self.session.commit()
        self.session.refresh(offer)
        return offer

    def update(self, offer: Offer, **fields) -> Offer:
        for key, value in fields.items():
            setattr(offer, key, value)
        self.session.commit()
        self.session.refresh(offer)
        return offer

    def delete(self, offer: Offer) -> None:
        self.session.delete(offer)
        self.session.commit()
