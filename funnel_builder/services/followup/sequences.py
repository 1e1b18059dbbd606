from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from funnel_builder.db.enums import ChannelEnum, SegmentEnum
from funnel_builder.db.models import FollowupMessage, FollowupSequence, FunnelProject, Offer
from funnel_builder.db.repositories.decks import DeckStructuresRepository
from funnel_builder.db.repositories.followup import MessagesRepository, SequencesRepository
from funnel_builder.llm.client import LLMClient
from funnel_builder.services.followup.agent_config import build_personalization_rules, get_or_create_agent_config
from funnel_builder.services.followup.message_generation import (
    extract_deck_context,
    extract_offer_context,
    generate_ai_sequence,
)

logger = logging.getLogger(__name__)

ALL_SEGMENTS = [segment.value for segment in SegmentEnum]
_IMMUTABLE_MESSAGE_FIELDS = {"id", "sequence_id", "created_at"}


class SequenceNotFoundError(LookupError):
    pass


class SequenceAccessError(PermissionError):
    pass


class MessageNotFoundError(LookupError):
    pass


def _cta(text: str, url: str) -> dict[str, Any]:
    return {"text": text, "url": url, "tracking_enabled": True}


DEFAULT_SEQUENCE: dict[str, Any] = {
    "name": "3-Day Webinar Follow-Up",
    "description": "Thank-you, story, offer recap and final call across the 72 hours after the webinar.",
    "sequence_type": "3_day_discount",
    "trigger_event": "webinar_end",
    "deadline_hours": 72,
    "messages": [
        {
            "name": "Day 0 - Thank You Email",
            "channel": ChannelEnum.email,
            "send_delay_hours": 0,
            "subject_line": "Thanks for joining, {{first_name}}!",
            "body_content": (
                "Hi {{first_name}},\n\n"
                "Thanks for spending time with us today. You watched {{watch_pct}}% of the session, "
                "and I'd love to know what stood out.\n\n"
                "You mentioned {{challenge_notes}}. What's the one change you want to make in the next "
                "30 days?\n\n"
                "Hit reply and tell me. I read every response.\n\n"
                "Your next step: {{next_step}}"
            ),
            "primary_cta": _cta("{{next_step}}", "{{replay_link}}"),
        },
        {
            "name": "Day 0 - Thank You SMS",
            "channel": ChannelEnum.sms,
            "send_delay_hours": 0,
            "subject_line": None,
            "body_content": (
                "Hi {{first_name}}, thanks for joining today! Want the replay or a quick summary? "
                "Reply R for replay, S for summary."
            ),
            "primary_cta": _cta("Get Replay", "{{replay_link}}"),
        },
        {
            "name": "Day 1 - Value + Story",
            "channel": ChannelEnum.email,
            "send_delay_hours": 24,
            "subject_line": "How [Client Name] solved {{challenge_notes}} in weeks",
            "body_content": (
                "Hi {{first_name}},\n\n"
                "A client came to us stuck on {{challenge_notes}}, the same thing you described.\n\n"
                "They started with the first step of the framework and nothing else. Within weeks they "
                "were moving toward {{goal_notes}}.\n\n"
                "If {{objection_hint}} is on your mind, that's the conversation worth having.\n\n"
                "Want to map it out together? {{book_call_url}}"
            ),
            "primary_cta": _cta("{{next_step}}", "{{book_call_url}}"),
        },
        {
            "name": "Day 2 - Offer Recap + Deadline",
            "channel": ChannelEnum.email,
            "send_delay_hours": 48,
            "subject_line": "Your offer ends tomorrow, here's what you get",
            "body_content": (
                "Hi {{first_name}},\n\n"
                "Quick recap of {{offer_name}} before the deadline tomorrow:\n\n"
                "- The complete framework from the training\n"
                "- A step-by-step plan for {{challenge_notes}}\n"
                "- Templates and resources ready to use\n"
                "- {{bonuses}}\n\n"
                "Investment: {{offer_price}}\n"
                "Guarantee: {{guarantee_terms}}\n\n"
                "The offer closes tomorrow at 11:59 PM {{timezone}}.\n\n"
                "Enroll here: {{checkout_url}}"
            ),
            "primary_cta": _cta("Enroll Now", "{{checkout_url}}"),
        },
        {
            "name": "Day 3 - Final Call",
            "channel": ChannelEnum.email,
            "send_delay_hours": 72,
            "subject_line": "Our mission + your next step, {{first_name}}",
            "body_content": (
                "Hi {{first_name}},\n\n"
                "I built this because too many people spend months on {{challenge_notes}} when the "
                "right framework solves it in weeks.\n\n"
                "Today is the last day. The offer closes at 11:59 PM {{timezone}}.\n\n"
                "If {{goal_notes}} matters to you, this is the moment: {{checkout_url}}\n\n"
                "Prefer to talk first? {{book_call_url}}"
            ),
            "primary_cta": _cta("Enroll Before Deadline", "{{checkout_url}}"),
        },
    ],
}


def default_sequence_messages() -> list[dict[str, Any]]:
    rules = build_personalization_rules()
    return [
        {**message, "message_order": index + 1, "personalization_rules": dict(rules)}
        for index, message in enumerate(DEFAULT_SEQUENCE["messages"])
    ]


def _create_sequence_with_messages(
    session: Session,
    *,
    agent_config_id: str,
    name: str,
    description: Optional[str],
    messages: list[dict[str, Any]],
) -> FollowupSequence:
    sequence = SequencesRepository(session).create(
        agent_config_id=agent_config_id,
        name=name,
        description=description,
        sequence_type=DEFAULT_SEQUENCE["sequence_type"],
        trigger_event=DEFAULT_SEQUENCE["trigger_event"],
        deadline_hours=DEFAULT_SEQUENCE["deadline_hours"],
        total_messages=len(messages),
        target_segments=list(ALL_SEGMENTS),
    )
    MessagesRepository(session).create_many(sequence_id=sequence.id, messages=messages)
    return sequence


def create_default_sequence(
    session: Session,
    *,
    user_id: str,
    project: FunnelProject,
    offer: Optional[Offer] = None,
) -> FollowupSequence:
    config = get_or_create_agent_config(
        session, user_id=user_id, project=project, offer_id=offer.id if offer else None
    )
    sequence = _create_sequence_with_messages(
        session,
        agent_config_id=config.id,
        name=DEFAULT_SEQUENCE["name"],
        description=DEFAULT_SEQUENCE["description"],
        messages=default_sequence_messages(),
    )
    logger.info(
        "Created default follow-up sequence",
        extra={"sequence_id": sequence.id, "project_id": project.id},
    )
    return sequence


def generate_followup_sequence(
    session: Session,
    *,
    user_id: str,
    project: FunnelProject,
    offer: Optional[Offer],
    segment: str = "engaged",
    use_defaults: bool = False,
    llm: Optional[LLMClient] = None,
) -> tuple[FollowupSequence, str]:
    """Create an AI-written sequence from the deck and offer, falling back to the default sequence.

    Returns the sequence and the generation method, ``"ai"`` or ``"default"``.
    """
    if use_defaults or offer is None:
        return create_default_sequence(session, user_id=user_id, project=project, offer=offer), "default"

    deck = DeckStructuresRepository(session).latest(project_id=project.id)
    if deck is None:
        logger.warning("No deck structure found, using default follow-up sequence", extra={"project_id": project.id})
        return create_default_sequence(session, user_id=user_id, project=project, offer=offer), "default"

    try:
        deck_title = (deck.metadata_json or {}).get("title") if isinstance(deck.metadata_json, dict) else None
        generated = generate_ai_sequence(
            extract_deck_context(deck_title, deck.slides or []),
            extract_offer_context(offer),
            segment,
            llm=llm,
        )
    except Exception:  # noqa: BLE001
        logger.exception("AI follow-up generation failed, using defaults", extra={"project_id": project.id})
        return create_default_sequence(session, user_id=user_id, project=project, offer=offer), "default"

    config = get_or_create_agent_config(session, user_id=user_id, project=project, offer_id=offer.id)
    sequence = _create_sequence_with_messages(
        session,
        agent_config_id=config.id,
        name=generated["name"],
        description=generated["description"],
        messages=generated["messages"],
    )
    return sequence, "ai"


def get_owned_sequence(session: Session, *, sequence_id: str, user_id: str) -> FollowupSequence:
    repo = SequencesRepository(session)
    sequence = repo.get(sequence_id=sequence_id)
    if sequence is None:
        raise SequenceNotFoundError(sequence_id)
    if repo.owner_id(sequence) != user_id:
        raise SequenceAccessError(sequence_id)
    return sequence


def get_sequence_message(session: Session, *, sequence: FollowupSequence, message_id: str) -> FollowupMessage:
    message = MessagesRepository(session).get(message_id=message_id)
    if message is None or message.sequence_id != sequence.id:
        raise MessageNotFoundError(message_id)
    return message


def update_message(session: Session, message: FollowupMessage, fields: dict[str, Any]) -> FollowupMessage:
    updates = {key: value for key, value in fields.items() if key not in _IMMUTABLE_MESSAGE_FIELDS}
    return MessagesRepository(session).update(message, **updates)


def refresh_message_count(session: Session, sequence: FollowupSequence) -> FollowupSequence:
    count = len(MessagesRepository(session).list(sequence_id=sequence.id))
    return SequencesRepository(session).update(sequence, total_messages=count)
