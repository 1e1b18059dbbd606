from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from funnel_builder.db.base import as_utc
from funnel_builder.db.enums import EngagementLevelEnum, SegmentEnum
from funnel_builder.db.models import FollowupDelivery, FollowupProspect
from funnel_builder.db.repositories.followup import (
    DeliveriesRepository,
    IntentScoresRepository,
    ProspectsRepository,
)

logger = logging.getLogger(__name__)

DEFAULT_FIT_SCORE = 50
NO_RESPONSE_HOURS = 999.0
_SPEED_BANDS = ((1, 15), (6, 12), (24, 8), (48, 4))


@dataclass(frozen=True)
class IntentScoreBreakdown:
    watch_score: float
    replay_score: float
    cta_click_score: float
    email_engagement_score: float
    response_speed_score: float
    intent_score: int
    fit_score: int
    combined_score: int


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_response_speed_score(hours: float) -> int:
    for max_hours, score in _SPEED_BANDS:
        if hours <= max_hours:
            return score
    return 0


def calculate_intent_score(
    *,
    watch_percentage: int,
    replay_count: int = 0,
    offer_clicks: int = 0,
    email_opens: int = 0,
    email_clicks: int = 0,
    response_speed_hours: float = NO_RESPONSE_HOURS,
    fit_score: int = DEFAULT_FIT_SCORE,
) -> IntentScoreBreakdown:
    watch = min(40.0, watch_percentage * 40 / 100)
    replay = min(10.0, replay_count * 5.0)
    cta = min(20.0, offer_clicks * 10.0)
    email = min(15.0, email_opens * 5.0 + email_clicks * 10.0)
    speed = float(calculate_response_speed_score(response_speed_hours))

    intent = min(100, _round_half_up(watch + replay + cta + email + speed))
    combined = _round_half_up(0.7 * intent + 0.3 * fit_score)
    return IntentScoreBreakdown(
        watch_score=watch,
        replay_score=replay,
        cta_click_score=cta,
        email_engagement_score=email,
        response_speed_score=speed,
        intent_score=intent,
        fit_score=fit_score,
        combined_score=combined,
    )


def determine_segment(watch_percentage: int) -> SegmentEnum:
    if watch_percentage <= 0:
        return SegmentEnum.no_show
    if watch_percentage <= 24:
        return SegmentEnum.skimmer
    if watch_percentage <= 49:
        return SegmentEnum.sampler
    if watch_percentage <= 89:
        return SegmentEnum.engaged
    return SegmentEnum.hot


def determine_engagement_level(combined_score: int) -> EngagementLevelEnum:
    if combined_score >= 70:
        return EngagementLevelEnum.hot
    if combined_score >= 40:
        return EngagementLevelEnum.warm
    return EngagementLevelEnum.cold


def calculate_next_touch_time(
    segment: str,
    touch_number: int,
    last_touch: datetime,
    cadence_hours: list[int],
) -> Optional[datetime]:
    """Return when touch ``touch_number`` (1-based) is due, or None once the cadence is exhausted."""
    if touch_number < 1 or touch_number > len(cadence_hours):
        logger.debug(
            "No further touches in cadence",
            extra={"segment": segment, "touch_number": touch_number},
        )
        return None
    return as_utc(last_touch) + timedelta(hours=cadence_hours[touch_number - 1])


@dataclass(frozen=True)
class EmailEngagement:
    opens: int
    clicks: int
    response_speed_hours: float


def _first_touch(delivery: FollowupDelivery) -> datetime:
    return as_utc(delivery.actual_sent_at or delivery.created_at)


def summarize_email_engagement(deliveries: list[FollowupDelivery]) -> EmailEngagement:
    """Count opened deliveries and total clicks, and whole hours from the first touch to the first reply."""
    opens = sum(1 for delivery in deliveries if delivery.opened_at)
    clicks = sum(delivery.total_clicks or 0 for delivery in deliveries)
    replies = [as_utc(delivery.replied_at) for delivery in deliveries if delivery.replied_at]
    if not replies:
        return EmailEngagement(opens=opens, clicks=clicks, response_speed_hours=NO_RESPONSE_HOURS)
    first_touch = min(_first_touch(delivery) for delivery in deliveries)
    hours = max(0.0, (min(replies) - first_touch).total_seconds() / 3600)
    return EmailEngagement(opens=opens, clicks=clicks, response_speed_hours=float(_round_half_up(hours)))


def recalculate_intent_score(
    session: Session,
    prospect: FollowupProspect,
    *,
    reason: str,
) -> FollowupProspect:
    """Rescore a prospect from its engagement counters and delivery history.

    Email opens and clicks are recounted from the prospect's deliveries and stored
    back on the prospect. Each recalculation adds a score history row.
    """
    previous_combined = prospect.combined_score or 0
    email = summarize_email_engagement(
        DeliveriesRepository(session).list_for_prospect(prospect_id=prospect.id)
    )
    breakdown = calculate_intent_score(
        watch_percentage=prospect.watch_percentage or 0,
        replay_count=prospect.replay_count or 0,
        offer_clicks=prospect.offer_clicks or 0,
        email_opens=email.opens,
        email_clicks=email.clicks,
        response_speed_hours=email.response_speed_hours,
        fit_score=prospect.fit_score if prospect.fit_score is not None else DEFAULT_FIT_SCORE,
    )
    prospect = ProspectsRepository(session).update(
        prospect,
        email_opens=email.opens,
        email_clicks=email.clicks,
        intent_score=breakdown.intent_score,
        fit_score=breakdown.fit_score,
        combined_score=breakdown.combined_score,
        segment=determine_segment(prospect.watch_percentage or 0),
        engagement_level=determine_engagement_level(breakdown.combined_score),
    )
    IntentScoresRepository(session).create(
        prospect_id=prospect.id,
        intent_score=breakdown.intent_score,
        fit_score=breakdown.fit_score,
        combined_score=breakdown.combined_score,
        change_reason=reason,
        change_delta=breakdown.combined_score - previous_combined,
    )
    logger.info(
        "Recalculated prospect intent score",
        extra={
            "prospect_id": prospect.id,
            "intent_score": breakdown.intent_score,
            "combined_score": breakdown.combined_score,
            "reason": reason,
        },
    )
    return prospect
