from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from funnel_builder.db.base import utcnow
from funnel_builder.db.enums import DeliveryStatusEnum, SegmentEnum
from funnel_builder.db.models import (
    FollowupAgentConfig,
    FollowupDelivery,
    FollowupEvent,
    FollowupIntentScore,
    FollowupMessage,
    FollowupProspect,
    FollowupSequence,
    FollowupStory,
)


class _Repository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _save(self, obj):
        self.session.add(obj)
        self.session.commit()
        self.session.refresh(obj)
        return obj

    def _apply(self, obj, fields: dict[str, Any]):
        for key, value in fields.items():
            setattr(obj, key, value)
        self.session.commit()
        self.session.refresh(obj)
        return obj


class AgentConfigsRepository(_Repository):
    def list(self, *, user_id: str) -> List[FollowupAgentConfig]:
        stmt = (
            select(FollowupAgentConfig)
            .where(FollowupAgentConfig.user_id == user_id)
            .order_by(FollowupAgentConfig.created_at.desc())
        )
        return list(self.session.scalars(stmt).all())

    def get(self, *, config_id: str) -> Optional[FollowupAgentConfig]:
        return self.session.get(FollowupAgentConfig, config_id)

    def for_project(self, *, user_id: str, project_id: str) -> Optional[FollowupAgentConfig]:
        stmt = (
            select(FollowupAgentConfig)
            .where(
                FollowupAgentConfig.user_id == user_id,
                FollowupAgentConfig.funnel_project_id == project_id,
            )
            .order_by(FollowupAgentConfig.created_at.asc())
            .limit(1)
        )
        return self.session.scalars(stmt).first()

    def create(self, *, user_id: str, **fields) -> FollowupAgentConfig:
        return self._save(FollowupAgentConfig(user_id=user_id, **fields))

    def update(self, config: FollowupAgentConfig, **fields) -> FollowupAgentConfig:
        return self._apply(config, fields)


class ProspectsRepository(_Repository):
    def list(
        self,
        *,
        agent_config_id: str,
        segment: Optional[SegmentEnum] = None,
    ) -> List[FollowupProspect]:
        stmt = select(FollowupProspect).where(FollowupProspect.agent_config_id == agent_config_id)
        if segment is not None:
            stmt = stmt.where(FollowupProspect.segment == segment)
        stmt = stmt.order_by(FollowupProspect.combined_score.desc(), FollowupProspect.created_at.desc())
        return list(self.session.scalars(stmt).all())

    def get(self, *, prospect_id: str) -> Optional[FollowupProspect]:
        return self.session.get(FollowupProspect, prospect_id)

    def get_by_email(self, *, agent_config_id: str, email: str) -> Optional[FollowupProspect]:
        stmt = select(FollowupProspect).where(
            FollowupProspect.agent_config_id == agent_config_id,
            FollowupProspect.email == email,
        )
        return self.session.scalars(stmt).first()

    def create(self, *, user_id: str, agent_config_id: str, email: str, **fields) -> FollowupProspect:
        return self._save(
            FollowupProspect(user_id=user_id, agent_config_id=agent_config_id, email=email, **fields)
        )

    def update(self, prospect: FollowupProspect, **fields) -> FollowupProspect:
        return self._apply(prospect, fields)


class SequencesRepository(_Repository):
    def list(self, *, agent_config_id: Optional[str] = None, user_id: Optional[str] = None) -> List[FollowupSequence]:
        stmt = select(FollowupSequence)
        if agent_config_id:
            stmt = stmt.where(FollowupSequence.agent_config_id == agent_config_id)
        if user_id:
            stmt = stmt.join(
                FollowupAgentConfig, FollowupAgentConfig.id == FollowupSequence.agent_config_id
            ).where(FollowupAgentConfig.user_id == user_id)
        stmt = stmt.order_by(FollowupSequence.created_at.desc())
        return list(self.session.scalars(stmt).all())

    def get(self, *, sequence_id: str) -> Optional[FollowupSequence]:
        return self.session.get(FollowupSequence, sequence_id)

    def owner_id(self, sequence: FollowupSequence) -> Optional[str]:
        config = self.session.get(FollowupAgentConfig, sequence.agent_config_id)
        return config.user_id if config else None

    def create(self, *, agent_config_id: str, name: str, **fields) -> FollowupSequence:
        return self._save(FollowupSequence(agent_config_id=agent_config_id, name=name, **fields))

    def update(self, sequence: FollowupSequence, **fields) -> FollowupSequence:
        return self._apply(sequence, fields)

    def delete(self, sequence: FollowupSequence) -> None:
        self.session.delete(sequence)
        self.session.commit()


class MessagesRepository(_Repository):
    def list(self, *, sequence_id: str) -> List[FollowupMessage]:
        stmt = (
            select(FollowupMessage)
            .where(FollowupMessage.sequence_id == sequence_id)
            .order_by(FollowupMessage.message_order.asc())
        )
        return list(self.session.scalars(stmt).all())

    def get(self, *, message_id: str) -> Optional[FollowupMessage]:
        return self.session.get(FollowupMessage, message_id)

    def create(self, *, sequence_id: str, **fields) -> FollowupMessage:
        return self._save(FollowupMessage(sequence_id=sequence_id, **fields))

    def create_many(self, *, sequence_id: str, messages: list[dict[str, Any]]) -> List[FollowupMessage]:
        rows = [FollowupMessage(sequence_id=sequence_id, **message) for message in messages]
        self.session.add_all(rows)
        self.session.commit()
        for row in rows:
            self.session.refresh(row)
        return rows

    def update(self, message: FollowupMessage, **fields) -> FollowupMessage:
        return self._apply(message, fields)

    def delete(self, message: FollowupMessage) -> None:
        self.session.delete(message)
        self.session.commit()


class DeliveriesRepository(_Repository):
    def get(self, *, delivery_id: str) -> Optional[FollowupDelivery]:
        return self.session.get(FollowupDelivery, delivery_id)

    def list_for_prospect(self, *, prospect_id: str) -> List[FollowupDelivery]:
        stmt = (
            select(FollowupDelivery)
            .where(FollowupDelivery.prospect_id == prospect_id)
            .order_by(FollowupDelivery.scheduled_send_at.asc())
        )
        return list(self.session.scalars(stmt).all())

    def pending_for_prospect(self, *, prospect_id: str) -> List[FollowupDelivery]:
        stmt = (
            select(FollowupDelivery)
            .where(
                FollowupDelivery.prospect_id == prospect_id,
                FollowupDelivery.delivery_status == DeliveryStatusEnum.pending,
            )
            .order_by(FollowupDelivery.scheduled_send_at.asc())
        )
        return list(self.session.scalars(stmt).all())

    def ready_to_send(self, *, now: Optional[datetime] = None, limit: int = 100) -> List[FollowupDelivery]:
        stmt = (
            select(FollowupDelivery)
            .where(
                FollowupDelivery.delivery_status == DeliveryStatusEnum.pending,
                FollowupDelivery.scheduled_send_at <= (now or utcnow()),
            )
            .order_by(FollowupDelivery.scheduled_send_at.asc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all())

    def create_many(self, deliveries: list[FollowupDelivery]) -> List[FollowupDelivery]:
        self.session.add_all(deliveries)
        self.session.commit()
        for delivery in deliveries:
            self.session.refresh(delivery)
        return deliveries

    def update(self, delivery: FollowupDelivery, **fields) -> FollowupDelivery:
        return self._apply(delivery, fields)


class EventsRepository(_Repository):
    def list(self, *, prospect_id: str) -> List[FollowupEvent]:
        stmt = (
            select(FollowupEvent)
            .where(FollowupEvent.prospect_id == prospect_id)
            .order_by(FollowupEvent.created_at.asc())
        )
        return list(self.session.scalars(stmt).all())

    def create(
        self,
        *,
        prospect_id: str,
        event_type: str,
        delivery_id: Optional[str] = None,
        event_data: Optional[dict[str, Any]] = None,
    ) -> FollowupEvent:
        return self._save(
            FollowupEvent(
                prospect_id=prospect_id,
                delivery_id=delivery_id,
                event_type=event_type,
                event_data=event_data or {},
            )
        )


class IntentScoresRepository(_Repository):
    def list(self, *, prospect_id: str) -> List[FollowupIntentScore]:
        stmt = (
            select(FollowupIntentScore)
            .where(FollowupIntentScore.prospect_id == prospect_id)
            .order_by(FollowupIntentScore.created_at.desc())
        )
        return list(self.session.scalars(stmt).all())

    def create(self, *, prospect_id: str, **fields) -> FollowupIntentScore:
        return self._save(FollowupIntentScore(prospect_id=prospect_id, **fields))


class StoriesRepository(_Repository):
    def list(
        self,
        *,
        user_id: str,
        objection_category: Optional[str] = None,
        business_niche: Optional[str] = None,
    ) -> List[FollowupStory]:
        stmt = select(FollowupStory).where(FollowupStory.user_id == user_id)
        if objection_category:
            stmt = stmt.where(FollowupStory.objection_category == objection_category)
        if business_niche:
            stmt = stmt.where(FollowupStory.business_niche == business_niche)
        stmt = stmt.order_by(FollowupStory.created_at.desc())
        return list(self.session.scalars(stmt).all())

    def create(self, *, user_id: str, title: str, content: str, **fields) -> FollowupStory:
        return self._save(FollowupStory(user_id=user_id, title=title, content=content, **fields))
