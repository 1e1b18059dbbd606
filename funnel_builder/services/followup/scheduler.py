from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional

from sqlalchemy.orm import Session

from funnel_builder.db.base import as_utc, utcnow
from funnel_builder.db.enums import ConsentStateEnum, DeliveryStatusEnum
from funnel_builder.db.models import (
    FollowupAgentConfig,
    FollowupDelivery,
    FollowupProspect,
    FollowupSequence,
)
from funnel_builder.db.repositories.followup import (
    DeliveriesRepository,
    EventsRepository,
    MessagesRepository,
    ProspectsRepository,
    SequencesRepository,
)
from funnel_builder.db.repositories.offers import OffersRepository
from funnel_builder.db.repositories.projects import ProjectsRepository
from funnel_builder.services.followup.personalization import (
    build_personalization_values,
    personalize_cta,
    personalize_text,
)
from funnel_builder.services.followup.scoring import recalculate_intent_score

logger = logging.getLogger(__name__)

OPTED_OUT_STATES = (ConsentStateEnum.opted_out, ConsentStateEnum.complained)
CONVERTED_REASON = "Prospect converted - sequence stopped"
REPLIED_REASON = "Prospect replied - sequence stopped"
OPTED_OUT_REASON = "Prospect opted out"


class SchedulerError(RuntimeError):
    pass


class SequenceEligibilityError(SchedulerError):
    pass


class DeliveryNotFoundError(LookupError):
    pass


def check_eligibility(prospect: FollowupProspect, sequence: FollowupSequence) -> Optional[str]:
    """Return the reason the prospect cannot enter the sequence, or None when eligible."""
    if prospect.consent_state in OPTED_OUT_STATES:
        return "Prospect has opted out"
    if prospect.converted and sequence.stop_on_conversion:
        return "Prospect already converted"
    segment = getattr(prospect.segment, "value", prospect.segment)
    if segment not in (sequence.target_segments or []):
        return f"Segment {segment} not targeted by sequence"
    score = prospect.intent_score or 0
    if score < sequence.min_intent_score or score > sequence.max_intent_score:
        return f"Intent score {score} outside range {sequence.min_intent_score}-{sequence.max_intent_score}"
    return None


def build_sequence_context(session: Session, config: Optional[FollowupAgentConfig]) -> dict[str, Any]:
    if config is None:
        return {}
    context: dict[str, Any] = {}
    links = (config.knowledge_base or {}).get("links") if isinstance(config.knowledge_base, dict) else None
    if isinstance(links, dict):
        context.update({key: value for key, value in links.items() if isinstance(value, str)})
    if config.funnel_project_id:
        project = ProjectsRepository(session).get(project_id=config.funnel_project_id)
        if project is not None:
            context.setdefault("webinar_title", project.name)
    offer = None
    if config.offer_id and config.funnel_project_id:
        offer = OffersRepository(session).get(project_id=config.funnel_project_id, offer_id=config.offer_id)
    if offer is not None:
        context.setdefault("offer_name", offer.name)
        if offer.price is not None:
            context.setdefault("offer_price", f"{offer.currency or 'USD'} {offer.price:,.0f}")
        if offer.guarantee:
            context.setdefault("guarantee_terms", offer.guarantee)
        if offer.bonuses:
            context.setdefault("bonuses", ", ".join(str(bonus) for bonus in offer.bonuses))
    return context


def trigger_sequence(
    session: Session,
    *,
    prospect_id: str,
    sequence_id: str,
    trigger_time: Optional[datetime] = None,
    context: Optional[Mapping[str, Any]] = None,
) -> list[FollowupDelivery]:
    """Schedule one personalized pending delivery per sequence message for the prospect."""
    prospects = ProspectsRepository(session)
    prospect = prospects.get(prospect_id=prospect_id)
    if prospect is None:
        raise SchedulerError("Prospect not found")
    sequence = SequencesRepository(session).get(sequence_id=sequence_id)
    if sequence is None:
        raise SchedulerError("Sequence not found")

    reason = check_eligibility(prospect, sequence)
    if reason:
        logger.info(
            "Prospect not eligible for sequence",
            extra={"prospect_id": prospect_id, "sequence_id": sequence_id, "reason": reason},
        )
        raise SequenceEligibilityError(reason)

    messages = MessagesRepository(session).list(sequence_id=sequence_id)
    if not messages:
        raise SchedulerError("No messages found for sequence")

    config = session.get(FollowupAgentConfig, sequence.agent_config_id)
    values = build_personalization_values(
        prospect,
        {**build_sequence_context(session, config), **dict(context or {})},
    )
    start = as_utc(trigger_time) if trigger_time else utcnow()
    deliveries = [
        FollowupDelivery(
            prospect_id=prospect.id,
            message_id=message.id,
            channel=message.channel,
            personalized_subject=personalize_text(message.subject_line, values),
            personalized_body=personalize_text(message.body_content, values) or "",
            personalized_cta=personalize_cta(message.primary_cta, values),
            scheduled_send_at=start + timedelta(hours=message.send_delay_hours or 0),
            delivery_status=DeliveryStatusEnum.pending,
        )
        for message in messages
    ]
    deliveries = DeliveriesRepository(session).create_many(deliveries)

    prospects.update(
        prospect,
        next_scheduled_touch=min(delivery.scheduled_send_at for delivery in deliveries),
        total_touches=(prospect.total_touches or 0) + len(deliveries),
    )
    logger.info(
        "Triggered follow-up sequence",
        extra={"prospect_id": prospect_id, "sequence_id": sequence_id, "deliveries": len(deliveries)},
    )
    return deliveries


def get_deliveries_ready_to_send(session: Session, limit: int = 100) -> list[FollowupDelivery]:
    return DeliveriesRepository(session).ready_to_send(now=utcnow(), limit=limit)


def _get_delivery(session: Session, delivery_id: str) -> FollowupDelivery:
    delivery = DeliveriesRepository(session).get(delivery_id=delivery_id)
    if delivery is None:
        raise DeliveryNotFoundError(delivery_id)
    return delivery


def update_next_scheduled_touch(session: Session, prospect_id: str) -> Optional[datetime]:
    prospects = ProspectsRepository(session)
    prospect = prospects.get(prospect_id=prospect_id)
    if prospect is None:
        return None
    pending = DeliveriesRepository(session).pending_for_prospect(prospect_id=prospect_id)
    next_touch = pending[0].scheduled_send_at if pending else None
    prospects.update(prospect, next_scheduled_touch=next_touch)
    return next_touch


def mark_delivery_sent(session: Session, delivery_id: str) -> FollowupDelivery:
    deliveries = DeliveriesRepository(session)
    now = utcnow()
    delivery = deliveries.update(
        _get_delivery(session, delivery_id),
        delivery_status=DeliveryStatusEnum.sent,
        actual_sent_at=now,
    )
    prospect = ProspectsRepository(session).get(prospect_id=delivery.prospect_id)
    if prospect is not None:
        ProspectsRepository(session).update(prospect, last_touch_at=now)
    update_next_scheduled_touch(session, delivery.prospect_id)
    return delivery


def mark_delivery_failed(session: Session, delivery_id: str, error_message: str) -> FollowupDelivery:
    delivery = DeliveriesRepository(session).update(
        _get_delivery(session, delivery_id),
        delivery_status=DeliveryStatusEnum.failed,
        error_message=error_message,
    )
    logger.warning("Follow-up delivery failed", extra={"delivery_id": delivery_id, "error": error_message})
    return delivery


def cancel_pending_deliveries(session: Session, prospect_id: str, reason: str) -> int:
    deliveries = DeliveriesRepository(session)
    pending = deliveries.pending_for_prospect(prospect_id=prospect_id)
    for delivery in pending:
        delivery.delivery_status = DeliveryStatusEnum.failed
        delivery.error_message = reason
    session.commit()
    update_next_scheduled_touch(session, prospect_id)
    if pending:
        logger.info(
            "Cancelled pending follow-up deliveries",
            extra={"prospect_id": prospect_id, "count": len(pending), "reason": reason},
        )
    return len(pending)


def _sequence_for_delivery(session: Session, delivery: FollowupDelivery) -> Optional[FollowupSequence]:
    message = MessagesRepository(session).get(message_id=delivery.message_id)
    if message is None:
        return None
    return SequencesRepository(session).get(sequence_id=message.sequence_id)


def update_delivery_status(
    session: Session,
    delivery_id: str,
    status: DeliveryStatusEnum,
    *,
    event_data: Optional[dict[str, Any]] = None,
) -> FollowupDelivery:
    """Apply a provider status update, record the engagement event and rescore the prospect."""
    delivery = _get_delivery(session, delivery_id)
    prospects = ProspectsRepository(session)
    prospect = prospects.get(prospect_id=delivery.prospect_id)
    now = utcnow()

    fields: dict[str, Any] = {"delivery_status": status}
    prospect_fields: dict[str, Any] = {}
    if status == DeliveryStatusEnum.opened:
        if delivery.opened_at is None:
            fields["opened_at"] = now
    elif status == DeliveryStatusEnum.clicked:
        if delivery.first_click_at is None:
            fields["first_click_at"] = now
        fields["total_clicks"] = (delivery.total_clicks or 0) + 1
    elif status == DeliveryStatusEnum.replied:
        fields["replied_at"] = now
    elif status == DeliveryStatusEnum.bounced:
        prospect_fields["consent_state"] = ConsentStateEnum.bounced
    elif status == DeliveryStatusEnum.complained:
        prospect_fields["consent_state"] = ConsentStateEnum.complained

    delivery = DeliveriesRepository(session).update(delivery, **fields)
    EventsRepository(session).create(
        prospect_id=delivery.prospect_id,
        delivery_id=delivery.id,
        event_type=f"delivery_{status.value}",
        event_data=event_data,
    )
    if prospect is None:
        return delivery
    if prospect_fields:
        prospect = prospects.update(prospect, **prospect_fields)

    if status in (DeliveryStatusEnum.opened, DeliveryStatusEnum.clicked, DeliveryStatusEnum.replied):
        recalculate_intent_score(session, prospect, reason=f"Delivery {status.value}")

    if status == DeliveryStatusEnum.replied:
        sequence = _sequence_for_delivery(session, delivery)
        if sequence is not None and sequence.stop_on_reply:
            cancel_pending_deliveries(session, prospect.id, REPLIED_REASON)
    elif status in (DeliveryStatusEnum.bounced, DeliveryStatusEnum.complained):
        cancel_pending_deliveries(session, prospect.id, f"Delivery {status.value}")
    return delivery
