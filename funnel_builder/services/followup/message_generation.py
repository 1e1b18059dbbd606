from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Optional

from funnel_builder.db.enums import ChannelEnum
from funnel_builder.llm.client import LLMClient, LLMGenerationParams
from funnel_builder.llm.json_recovery import coerce_to_number, coerce_to_string
from funnel_builder.llm.prompts import DeckContext, followup_sequence_prompt
from funnel_builder.services.followup.agent_config import build_personalization_rules
from funnel_builder.services.followup.message_templates import MESSAGE_TYPES, Position, get_template

logger = logging.getLogger(__name__)

DEFAULT_SEGMENT = "sampler"
MAX_SEQUENCE_MESSAGES = 20

_MIDDLE_FILL = ("social_proof", "objection", "offer_recap", "sms_checkin", "value_story", "urgency", "sms_checkin")


class MessageGenerationError(RuntimeError):
    pass


@dataclass(frozen=True)
class MessagePlan:
    order: int
    type: str
    channel: ChannelEnum
    delay_hours: int
    position: Optional[Position] = None


def calculate_message_timing(count: int, deadline_hours: int) -> list[int]:
    """Spread ``count`` send offsets across the deadline window, front-loading early touches."""
    if count <= 0:
        return []
    d = deadline_hours
    if count == 1:
        return [0]
    if count == 2:
        return [0, d]
    if count == 3:
        return [0, math.floor(d * 0.67), d]
    if count == 4:
        return [0, 0, math.floor(d * 0.5), d]
    if count == 5:
        return [0, 0, math.floor(d * 0.33), math.floor(d * 0.67), d]

    gaps = count - 2
    timings = [0, math.floor(d * 0.03)]
    for i in range(1, gaps):
        progress = i / (gaps - 1)
        timings.append(math.floor(d * (progress ** 0.8) * 0.9))
    timings.append(d)
    return sorted(set(timings))[:count]


def _sms_position(index: int, count: int) -> Position:
    if index <= 2:
        return "early"
    if index >= count - 2:
        return "late"
    return "middle"


def _message_types(count: int) -> list[str]:
    if count == 1:
        return ["opening"]
    if count == 2:
        return ["opening", "closing"]
    if count == 3:
        return ["opening", "offer_recap", "closing"]
    if count == 4:
        return ["opening", "sms_checkin", "offer_recap", "closing"]
    if count == 5:
        return ["opening", "sms_checkin", "value_story", "offer_recap", "closing"]

    types = ["opening", "sms_checkin", "value_story"]
    remaining = count - 3
    types.extend(_MIDDLE_FILL[: min(remaining, len(_MIDDLE_FILL))])
    while len(types) < count - 1:
        types.append("value_story" if len(types) % 2 == 0 else "social_proof")
    types.append("closing")
    return types[:count]


def plan_message_sequence(count: int, deadline_hours: int) -> list[MessagePlan]:
    if count <= 0:
        return []
    timings = calculate_message_timing(count, deadline_hours)
    plans: list[MessagePlan] = []
    for index, message_type in enumerate(_message_types(count)):
        is_sms = message_type == "sms_checkin"
        plans.append(
            MessagePlan(
                order=index + 1,
                type=message_type,
                channel=ChannelEnum.sms if is_sms else ChannelEnum.email,
                delay_hours=timings[index] if index < len(timings) else 0,
                position=_sms_position(index, count) if is_sms else None,
            )
        )
    return plans


def message_name(message_type: str, delay_hours: int) -> str:
    type_name = message_type.replace("_", " ").title()
    return f"{type_name} (Day {delay_hours // 24})"


def _message_fields(
    message_type: str,
    *,
    segment: str,
    delay_hours: int,
    order: int,
    position: Position,
) -> dict[str, Any]:
    template = get_template(message_type, segment, position)
    return {
        "name": message_name(message_type, delay_hours),
        "message_order": order,
        "channel": template.channel,
        "send_delay_hours": delay_hours,
        "subject_line": template.subject_line or None,
        "body_content": template.body,
        "primary_cta": {
            "text": template.cta_text or "Take Action",
            "url": template.cta_url or "{next_step}",
            "tracking_enabled": True,
        },
        "personalization_rules": build_personalization_rules(),
    }


def generate_dynamic_sequence_messages(
    count: int,
    deadline_hours: int,
    segment: str = DEFAULT_SEGMENT,
) -> list[dict[str, Any]]:
    if count < 1 or count > MAX_SEQUENCE_MESSAGES:
        raise MessageGenerationError(f"Message count must be between 1 and {MAX_SEQUENCE_MESSAGES}")
    if deadline_hours < 0:
        raise MessageGenerationError("Deadline hours must not be negative")

    messages = [
        _message_fields(
            plan.type,
            segment=segment,
            delay_hours=plan.delay_hours,
            order=plan.order,
            position=plan.position or "middle",
        )
        for plan in plan_message_sequence(count, deadline_hours)
    ]
    logger.info(
        "Generated dynamic follow-up sequence",
        extra={
            "count": len(messages),
            "segment": segment,
            "sms_count": sum(1 for message in messages if message["channel"] == ChannelEnum.sms),
        },
    )
    return messages


def regenerate_single_message(
    message_type: str,
    segment: str = DEFAULT_SEGMENT,
    delay_hours: int = 0,
    order: int = 1,
    position: Position = "middle",
) -> dict[str, Any]:
    if message_type not in MESSAGE_TYPES:
        raise MessageGenerationError(f"Unknown message type: {message_type}")
    return _message_fields(
        message_type,
        segment=segment,
        delay_hours=delay_hours,
        order=order,
        position=position,
    )


def extract_deck_context(deck_title: Optional[str], slides: list[dict[str, Any]]) -> DeckContext:
    key_points: list[str] = []
    pain_points: list[str] = []
    solutions: list[str] = []
    main_promise = ""

    for slide in slides or []:
        title = coerce_to_string(slide.get("title"))
        section = slide.get("section") or ""
        if not title:
            continue
        if section in ("problem", "agitate"):
            pain_points.append(title)
        elif section == "solution":
            solutions.append(title)
        elif section == "hook" and not main_promise:
            main_promise = title
        if len(key_points) < 5:
            key_points.append(title)

    return DeckContext(
        title=deck_title or "Webinar Presentation",
        main_promise=main_promise or "Achieve the transformation you've been looking for",
        key_points=key_points
        or [
            "Transform your business with proven strategies",
            "Overcome the biggest challenges in your industry",
            "Implement a system that delivers results",
        ],
        pain_points=pain_points or ["Feeling stuck and overwhelmed", "Not seeing the results you want"],
        solutions=solutions or ["A proven framework to achieve your goals", "Step-by-step guidance and support"],
    )


def extract_offer_context(offer: Any) -> dict[str, Any]:
    features = offer.features if isinstance(offer.features, list) and offer.features else None
    return {
        "name": offer.name,
        "tagline": offer.tagline,
        "price": offer.price or 997,
        "features": features or ["Complete training program", "Expert guidance", "Proven framework"],
        "bonuses": offer.bonuses if isinstance(offer.bonuses, list) else None,
        "guarantee": offer.guarantee,
    }


def generate_ai_sequence(
    deck: DeckContext,
    offer: dict[str, Any],
    segment: str = "engaged",
    *,
    llm: Optional[LLMClient] = None,
) -> dict[str, Any]:
    """Ask the model for a follow-up sequence and coerce it into message rows.

    Returns ``{"name", "description", "messages"}``. Raises ``MessageGenerationError`` when the
    model returns no usable messages.
    """
    llm = llm or LLMClient()
    raw = llm.generate_json(
        followup_sequence_prompt(deck, offer, segment),
        LLMGenerationParams(temperature=0.7, max_tokens=4000),
        context="followup_sequence",
    )
    if not isinstance(raw, dict):
        raise MessageGenerationError("AI sequence response was not an object")

    messages: list[dict[str, Any]] = []
    for index, item in enumerate(raw.get("messages") or []):
        if not isinstance(item, dict):
            continue
        body = coerce_to_string(item.get("body_content"))
        if not body:
            continue
        channel = ChannelEnum.sms if item.get("channel") == "sms" else ChannelEnum.email
        delay = int(coerce_to_number(item.get("send_delay_hours")) or 0)
        messages.append(
            {
                "name": coerce_to_string(item.get("name")) or message_name("message", delay),
                "message_order": index + 1,
                "channel": channel,
                "send_delay_hours": max(0, delay),
                "subject_line": None if channel == ChannelEnum.sms else coerce_to_string(item.get("subject_line")) or None,
                "body_content": body,
                "primary_cta": {"text": "Take Action", "url": "{{next_step}}", "tracking_enabled": True},
                "personalization_rules": build_personalization_rules(),
            }
        )
    if not messages:
        raise MessageGenerationError("AI sequence contained no messages")

    return {
        "name": coerce_to_string(raw.get("sequence_name")) or "AI Follow-Up Sequence",
        "description": coerce_to_string(raw.get("sequence_description")) or None,
        "messages": messages,
    }
