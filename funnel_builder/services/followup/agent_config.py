from __future__ import annotations

import logging
from copy import deepcopy
from typing import Any, Optional

from sqlalchemy.orm import Session

from funnel_builder.db.models import FollowupAgentConfig, FunnelProject
from funnel_builder.db.repositories.followup import AgentConfigsRepository

logger = logging.getLogger(__name__)

DEFAULT_VOICE_CONFIG: dict[str, Any] = {
    "tone": "warm_direct",
    "personality": "professional_personal",
    "reading_level": "grade8",
    "empathy_level": "moderate",
    "urgency_level": "supportive",
    "emoji_policy": "minimal",
}

DEFAULT_SEGMENTATION_RULES: dict[str, dict[str, Any]] = {
    "no_show": {
        "watch_pct": [0, 0],
        "touch_count": 2,
        "cadence_hours": [0, 72],
        "tone": "gentle_reminder",
        "cta": "watch_replay",
    },
    "skimmer": {
        "watch_pct": [1, 24],
        "touch_count": 3,
        "cadence_hours": [0, 24, 72],
        "tone": "curiosity_building",
        "cta": "key_moments",
    },
    "sampler": {
        "watch_pct": [25, 49],
        "touch_count": 4,
        "cadence_hours": [0, 6, 24, 96],
        "tone": "value_reinforcement",
        "cta": "complete_watch",
    },
    "engaged": {
        "watch_pct": [50, 74],
        "touch_count": 5,
        "cadence_hours": [0, 3, 24, 48, 72],
        "tone": "conversion_focused",
        "cta": "book_call",
    },
    "hot": {
        "watch_pct": [75, 100],
        "touch_count": 5,
        "cadence_hours": [0, 1, 24, 48, 72],
        "tone": "urgency_driven",
        "cta": "claim_offer",
    },
}

DEFAULT_SCORING_CONFIG: dict[str, Any] = {
    "fit_weight": 0.3,
    "intent_weight": 0.7,
    "engagement_thresholds": {"hot": 60, "warm": 30},
}

DEFAULT_CHANNEL_CONFIG: dict[str, Any] = {
    "email": {"enabled": True, "daily_cap": 1, "preferred_send_hour": 10},
    "sms": {"enabled": True, "high_intent_only": True, "min_intent_score": 50},
}

DEFAULT_COMPLIANCE_CONFIG: dict[str, Any] = {
    "quiet_hours": {"start": "21:00", "end": "08:00"},
    "required_footer": True,
    "one_click_unsub": True,
}


def build_personalization_rules(
    segmentation_rules: Optional[dict[str, dict[str, Any]]] = None,
) -> dict[str, dict[str, str]]:
    rules = segmentation_rules or DEFAULT_SEGMENTATION_RULES
    return {segment: {"tone": rule["tone"], "cta": rule["cta"]} for segment, rule in rules.items()}


def cadence_for_segment(config: Optional[FollowupAgentConfig], segment: str) -> list[int]:
    rules = (config.segmentation_rules if config else None) or DEFAULT_SEGMENTATION_RULES
    rule = rules.get(segment) or DEFAULT_SEGMENTATION_RULES.get(segment) or {}
    return list(rule.get("cadence_hours") or [])


def default_agent_config_fields() -> dict[str, Any]:
    return {
        "voice_config": deepcopy(DEFAULT_VOICE_CONFIG),
        "segmentation_rules": deepcopy(DEFAULT_SEGMENTATION_RULES),
        "scoring_config": deepcopy(DEFAULT_SCORING_CONFIG),
        "channel_config": deepcopy(DEFAULT_CHANNEL_CONFIG),
        "compliance_config": deepcopy(DEFAULT_COMPLIANCE_CONFIG),
        "knowledge_base": {},
    }


def get_or_create_agent_config(
    session: Session,
    *,
    user_id: str,
    project: FunnelProject,
    offer_id: Optional[str] = None,
) -> FollowupAgentConfig:
    repo = AgentConfigsRepository(session)
    config = repo.for_project(user_id=user_id, project_id=project.id)
    if config is not None:
        return config
    config = repo.create(
        user_id=user_id,
        funnel_project_id=project.id,
        offer_id=offer_id,
        name=f"{project.name} Follow-Up Agent",
        **default_agent_config_fields(),
    )
    logger.info(
        "Created follow-up agent config",
        extra={"agent_config_id": config.id, "project_id": project.id},
    )
    return config
