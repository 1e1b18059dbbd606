from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from funnel_builder.auth.dependencies import AuthContext, get_current_user
from funnel_builder.db.deps import get_session
from funnel_builder.db.enums import SegmentEnum
from funnel_builder.db.models import FollowupAgentConfig, FollowupDelivery, FollowupProspect, FollowupSequence
from funnel_builder.db.repositories.followup import (
    AgentConfigsRepository,
    DeliveriesRepository,
    MessagesRepository,
    ProspectsRepository,
    SequencesRepository,
)
from funnel_builder.db.repositories.offers import OffersRepository
from funnel_builder.llm.client import LLMClient
from funnel_builder.routers.common import encode, get_llm_client, require_owned, require_project
from funnel_builder.schemas.followup import (
    DeliveryFailedRequest,
    DeliveryStatusRequest,
    EngagementRequest,
    MessageCreateRequest,
    MessageUpdateRequest,
    ProspectUpsertRequest,
    SequenceCreateRequest,
    SequenceGenerateRequest,
    SequenceUpdateRequest,
    TriggerSequenceRequest,
)
from funnel_builder.services.followup.agent_config import get_or_create_agent_config
from funnel_builder.services.followup.message_generation import (
    MessageGenerationError,
    generate_dynamic_sequence_messages,
)
from funnel_builder.services.followup.prospects import EngagementEventError, record_engagement, upsert_prospect
from funnel_builder.services.followup.scheduler import (
    DeliveryNotFoundError,
    SchedulerError,
    get_deliveries_ready_to_send,
    mark_delivery_failed,
    mark_delivery_sent,
    trigger_sequence,
    update_delivery_status,
)
from funnel_builder.services.followup.sequences import (
    ALL_SEGMENTS,
    MessageNotFoundError,
    SequenceAccessError,
    SequenceNotFoundError,
    generate_followup_sequence,
    get_owned_sequence,
    get_sequence_message,
    refresh_message_count,
    update_message,
)

router = APIRouter(prefix="/followup", tags=["followup"])

_SEQUENCE_FIELDS = {
    "name": "name",
    "description": "description",
    "triggerDelayHours": "trigger_delay_hours",
    "deadlineHours": "deadline_hours",
    "targetSegments": "target_segments",
    "minIntentScore": "min_intent_score",
    "maxIntentScore": "max_intent_score",
    "stopOnReply": "stop_on_reply",
    "stopOnConversion": "stop_on_conversion",
    "requiresManualApproval": "requires_manual_approval",
    "isActive": "is_active",
}
_MESSAGE_FIELDS = {
    "id": "id",
    "sequenceId": "sequence_id",
    "createdAt": "created_at",
    "name": "name",
    "messageOrder": "message_order",
    "channel": "channel",
    "sendDelayHours": "send_delay_hours",
    "subjectLine": "subject_line",
    "bodyContent": "body_content",
    "primaryCta": "primary_cta",
    "personalizationRules": "personalization_rules",
    "abTestVariant": "ab_test_variant",
}
_PROSPECT_FIELDS = {
    "firstName": "first_name",
    "phone": "phone",
    "watchPercentage": "watch_percentage",
    "watchDurationSeconds": "watch_duration_seconds",
    "challengeNotes": "challenge_notes",
    "goalNotes": "goal_notes",
    "objectionHint": "objection_hint",
    "timezone": "timezone",
    "fitScore": "fit_score",
}


def _segments(values: Optional[list[SegmentEnum]]) -> list[str]:
    return [SegmentEnum(value).value for value in values] if values else list(ALL_SEGMENTS)


def _sequence(session: Session, auth: AuthContext, sequence_id: str) -> FollowupSequence:
    try:
        return get_owned_sequence(session, sequence_id=sequence_id, user_id=auth.user_id)
    except SequenceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sequence not found") from exc
    except SequenceAccessError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden") from exc


def _agent_config(session: Session, auth: AuthContext, config_id: str) -> FollowupAgentConfig:
    return require_owned(AgentConfigsRepository(session).get(config_id=config_id), auth, "Agent config")


def _prospect(session: Session, auth: AuthContext, prospect_id: str) -> FollowupProspect:
    return require_owned(ProspectsRepository(session).get(prospect_id=prospect_id), auth, "Prospect")


def _delivery(session: Session, auth: AuthContext, delivery_id: str) -> FollowupDelivery:
    delivery = DeliveriesRepository(session).get(delivery_id=delivery_id)
    if delivery is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Delivery not found")
    _prospect(session, auth, delivery.prospect_id)
    return delivery


def _sequence_payload(session: Session, sequence: FollowupSequence) -> dict[str, Any]:
    payload = encode(sequence)
    payload["messages"] = encode(MessagesRepository(session).list(sequence_id=sequence.id))
    return payload


# Sequences


@router.post("/sequences/generate", status_code=status.HTTP_201_CREATED)
def generate_sequence(
    payload: SequenceGenerateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
    llm: LLMClient = Depends(get_llm_client),
):
    project = require_project(session, auth, payload.projectId)
    offers = OffersRepository(session)
    if payload.offerId:
        offer = offers.get(project_id=project.id, offer_id=payload.offerId)
        if not offer:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Offer not found")
    else:
        offer = offers.latest(project_id=project.id)
    sequence, method = generate_followup_sequence(
        session,
        user_id=auth.user_id,
        project=project,
        offer=offer,
        segment=payload.segment.value,
        use_defaults=payload.useDefaults,
        llm=llm,
    )
    return {"sequence": _sequence_payload(session, sequence), "generationMethod": method}


@router.post("/sequences", status_code=status.HTTP_201_CREATED)
def create_sequence(
    payload: SequenceCreateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    config = _agent_config(session, auth, payload.agentConfigId)
    if payload.minIntentScore > payload.maxIntentScore:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="minIntentScore exceeds maxIntentScore")
    messages: list[dict[str, Any]] = []
    if payload.messageCount:
        try:
            messages = generate_dynamic_sequence_messages(
                payload.messageCount, payload.deadlineHours, payload.segment.value
            )
        except MessageGenerationError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    sequence = SequencesRepository(session).create(
        agent_config_id=config.id,
        name=payload.name,
        description=payload.description,
        sequence_type=payload.sequenceType,
        trigger_event=payload.triggerEvent,
        deadline_hours=payload.deadlineHours,
        target_segments=_segments(payload.targetSegments),
        min_intent_score=payload.minIntentScore,
        max_intent_score=payload.maxIntentScore,
        total_messages=len(messages),
    )
    if messages:
        MessagesRepository(session).create_many(sequence_id=sequence.id, messages=messages)
    return _sequence_payload(session, sequence)


@router.get("/sequences")
def list_sequences(
    agentConfigId: Optional[str] = None,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if agentConfigId:
        _agent_config(session, auth, agentConfigId)
    sequences = SequencesRepository(session).list(agent_config_id=agentConfigId, user_id=auth.user_id)
    return encode(sequences)


@router.get("/sequences/{sequence_id}")
def get_sequence(
    sequence_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return _sequence_payload(session, _sequence(session, auth, sequence_id))


@router.patch("/sequences/{sequence_id}")
def update_sequence(
    sequence_id: str,
    payload: SequenceUpdateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    sequence = _sequence(session, auth, sequence_id)
    fields = {_SEQUENCE_FIELDS[key]: value for key, value in payload.model_dump(exclude_unset=True).items()}
    if "target_segments" in fields:
        fields["target_segments"] = _segments(fields["target_segments"])
    low = fields.get("min_intent_score", sequence.min_intent_score)
    high = fields.get("max_intent_score", sequence.max_intent_score)
    if low is not None and high is not None and low > high:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="minIntentScore exceeds maxIntentScore")
    if fields:
        sequence = SequencesRepository(session).update(sequence, **fields)
    return _sequence_payload(session, sequence)


@router.delete("/sequences/{sequence_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_sequence(
    sequence_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    SequencesRepository(session).delete(_sequence(session, auth, sequence_id))
    return None


# Messages


@router.get("/sequences/{sequence_id}/messages")
def list_messages(
    sequence_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    sequence = _sequence(session, auth, sequence_id)
    return encode(MessagesRepository(session).list(sequence_id=sequence.id))


@router.post("/sequences/{sequence_id}/messages", status_code=status.HTTP_201_CREATED)
def create_message(
    sequence_id: str,
    payload: MessageCreateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    sequence = _sequence(session, auth, sequence_id)
    fields = {_MESSAGE_FIELDS[key]: value for key, value in payload.model_dump().items()}
    try:
        message = MessagesRepository(session).create(sequence_id=sequence.id, **fields)
    except IntegrityError as exc:
        session.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="A message with this order and variant already exists"
        ) from exc
    refresh_message_count(session, sequence)
    return encode(message)


@router.get("/sequences/{sequence_id}/messages/{message_id}")
def get_message(
    sequence_id: str,
    message_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    sequence = _sequence(session, auth, sequence_id)
    try:
        message = get_sequence_message(session, sequence=sequence, message_id=message_id)
    except MessageNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found") from exc
    return encode(message)


@router.patch("/sequences/{sequence_id}/messages/{message_id}")
def update_message_route(
    sequence_id: str,
    message_id: str,
    payload: MessageUpdateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    sequence = _sequence(session, auth, sequence_id)
    try:
        message = get_sequence_message(session, sequence=sequence, message_id=message_id)
    except MessageNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found") from exc
    fields = {
        _MESSAGE_FIELDS[key]: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if key in _MESSAGE_FIELDS
    }
    return encode(update_message(session, message, fields))


@router.delete("/sequences/{sequence_id}/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_message(
    sequence_id: str,
    message_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    sequence = _sequence(session, auth, sequence_id)
    try:
        message = get_sequence_message(session, sequence=sequence, message_id=message_id)
    except MessageNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found") from exc
    MessagesRepository(session).delete(message)
    refresh_message_count(session, sequence)
    return None


# Prospects


@router.post("/prospects")
def upsert_prospect_route(
    payload: ProspectUpsertRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    config = _agent_config(session, auth, payload.agentConfigId)
    fields = {
        _PROSPECT_FIELDS[key]: value
        for key, value in payload.model_dump(exclude={"agentConfigId", "email"}).items()
    }
    prospect, created = upsert_prospect(session, config=config, email=str(payload.email), **fields)
    return {"prospect": encode(prospect), "created": created}


@router.get("/prospects")
def list_prospects(
    agentConfigId: str,
    segment: Optional[SegmentEnum] = Query(default=None),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    config = _agent_config(session, auth, agentConfigId)
    return encode(ProspectsRepository(session).list(agent_config_id=config.id, segment=segment))


@router.get("/prospects/{prospect_id}")
def get_prospect(
    prospect_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    prospect = _prospect(session, auth, prospect_id)
    payload = encode(prospect)
    payload["deliveries"] = encode(DeliveriesRepository(session).list_for_prospect(prospect_id=prospect.id))
    return payload


@router.post("/prospects/{prospect_id}/engagement")
def record_engagement_route(
    prospect_id: str,
    payload: EngagementRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    prospect = _prospect(session, auth, prospect_id)
    try:
        prospect = record_engagement(
            session,
            prospect,
            event_type=payload.eventType,
            watch_percentage=payload.watchPercentage,
            watch_duration_seconds=payload.watchDurationSeconds,
        )
    except EngagementEventError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return encode(prospect)


# Scheduling


@router.post("/trigger", status_code=status.HTTP_201_CREATED)
def trigger_sequence_route(
    payload: TriggerSequenceRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    _prospect(session, auth, payload.prospectId)
    _sequence(session, auth, payload.sequenceId)
    try:
        deliveries = trigger_sequence(
            session,
            prospect_id=payload.prospectId,
            sequence_id=payload.sequenceId,
            trigger_time=payload.triggerTime,
        )
    except SchedulerError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return {"deliveries": encode(deliveries), "count": len(deliveries)}


@router.get("/deliveries/ready")
def deliveries_ready(
    limit: int = Query(default=100, ge=1, le=500),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    prospects = ProspectsRepository(session)
    owned: dict[str, bool] = {}
    ready = []
    for delivery in get_deliveries_ready_to_send(session, limit=limit):
        if delivery.prospect_id not in owned:
            prospect = prospects.get(prospect_id=delivery.prospect_id)
            owned[delivery.prospect_id] = prospect is not None and prospect.user_id == auth.user_id
        if owned[delivery.prospect_id]:
            ready.append(delivery)
    return encode(ready)


@router.post("/deliveries/{delivery_id}/sent")
def delivery_sent(
    delivery_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    delivery = _delivery(session, auth, delivery_id)
    return encode(mark_delivery_sent(session, delivery.id))


@router.post("/deliveries/{delivery_id}/failed")
def delivery_failed(
    delivery_id: str,
    payload: DeliveryFailedRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    delivery = _delivery(session, auth, delivery_id)
    return encode(mark_delivery_failed(session, delivery.id, payload.errorMessage))


@router.post("/deliveries/{delivery_id}/status")
def delivery_status(
    delivery_id: str,
    payload: DeliveryStatusRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    delivery = _delivery(session, auth, delivery_id)
    try:
        delivery = update_delivery_status(session, delivery.id, payload.status, event_data=payload.eventData)
    except DeliveryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Delivery not found") from exc
    return encode(delivery)


# Agent configs


@router.post("/agent-configs/{project_id}")
def ensure_agent_config(
    project_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    project = require_project(session, auth, project_id)
    return encode(get_or_create_agent_config(session, user_id=auth.user_id, project=project))


@router.get("/agent-configs")
def list_agent_configs(
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return encode(AgentConfigsRepository(session).list(user_id=auth.user_id))
