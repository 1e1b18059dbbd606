from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from funnel_builder.db.base import utcnow
from funnel_builder.db.enums import ConsentStateEnum
from funnel_builder.db.models import FollowupAgentConfig, FollowupProspect
from funnel_builder.db.repositories.followup import EventsRepository, ProspectsRepository
from funnel_builder.services.followup.scheduler import (
    CONVERTED_REASON,
    OPTED_OUT_REASON,
    cancel_pending_deliveries,
)
from funnel_builder.services.followup.scoring import determine_segment, recalculate_intent_score

logger = logging.getLogger(__name__)

# Email opens and clicks arrive as delivery status updates.
ENGAGEMENT_EVENTS = ("watch", "replay", "offer_click")


class ProspectNotFoundError(LookupError):
    pass


class EngagementEventError(ValueError):
    pass


def upsert_prospect(
    session: Session,
    *,
    config: FollowupAgentConfig,
    email: str,
    **fields: Any,
) -> tuple[FollowupProspect, bool]:
    """Create or update the prospect for ``(config, email)`` and rescore it.

    Returns the prospect and whether it was newly created.
    """
    repo = ProspectsRepository(session)
    normalized = email.strip().lower()
    values = {key: value for key, value in fields.items() if value is not None}
    if "watch_percentage" in values:
        values["watch_percentage"] = max(0, min(100, int(values["watch_percentage"])))

    prospect = repo.get_by_email(agent_config_id=config.id, email=normalized)
    created = prospect is None
    if prospect is None:
        prospect = repo.create(
            user_id=config.user_id,
            agent_config_id=config.id,
            email=normalized,
            segment=determine_segment(values.get("watch_percentage", 0)),
            **values,
        )
    elif values:
        prospect = repo.update(prospect, **values)

    prospect = recalculate_intent_score(
        session, prospect, reason="Prospect created" if created else "Prospect updated"
    )
    return prospect, created


def record_engagement(
    session: Session,
    prospect: FollowupProspect,
    *,
    event_type: str,
    watch_percentage: Optional[int] = None,
    watch_duration_seconds: Optional[int] = None,
) -> FollowupProspect:
    if event_type not in ENGAGEMENT_EVENTS:
        raise EngagementEventError(f"Unknown engagement event: {event_type}")

    fields: dict[str, Any] = {}
    if event_type == "watch":
        if watch_percentage is None:
            raise EngagementEventError("watch_percentage is required for watch events")
        pct = max(0, min(100, int(watch_percentage)))
        # Watch progress only moves forward.
        fields["watch_percentage"] = max(prospect.watch_percentage or 0, pct)
        if watch_duration_seconds is not None:
            fields["watch_duration_seconds"] = max(prospect.watch_duration_seconds or 0, watch_duration_seconds)
        if prospect.watched_at is None and pct > 0:
            fields["watched_at"] = utcnow()
    elif event_type == "replay":
        fields["replay_count"] = (prospect.replay_count or 0) + 1
    elif event_type == "offer_click":
        fields["offer_clicks"] = (prospect.offer_clicks or 0) + 1

    prospect = ProspectsRepository(session).update(prospect, **fields)
    EventsRepository(session).create(
        prospect_id=prospect.id,
        event_type=event_type,
        event_data={key: value for key, value in fields.items() if key != "watched_at"},
    )
    return recalculate_intent_score(session, prospect, reason=f"Engagement: {event_type}")


def mark_converted(session: Session, prospect: FollowupProspect) -> FollowupProspect:
    prospect = ProspectsRepository(session).update(prospect, converted=True)
    EventsRepository(session).create(prospect_id=prospect.id, event_type="converted")
    cancel_pending_deliveries(session, prospect.id, CONVERTED_REASON)
    logger.info("Prospect converted", extra={"prospect_id": prospect.id})
    return prospect


def opt_out(session: Session, prospect: FollowupProspect) -> FollowupProspect:
    prospect = ProspectsRepository(session).update(prospect, consent_state=ConsentStateEnum.opted_out)
    EventsRepository(session).create(prospect_id=prospect.id, event_type="opted_out")
    cancel_pending_deliveries(session, prospect.id, OPTED_OUT_REASON)
    return prospect
