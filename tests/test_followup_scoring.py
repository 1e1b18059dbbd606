from datetime import datetime, timedelta, timezone

import pytest

from funnel_builder.db.enums import EngagementLevelEnum, SegmentEnum
from funnel_builder.services.followup.scoring import (
    calculate_intent_score,
    calculate_next_touch_time,
    calculate_response_speed_score,
    determine_engagement_level,
    determine_segment,
)


@pytest.mark.parametrize(
    "pct,expected",
    [
        (0, SegmentEnum.no_show),
        (1, SegmentEnum.skimmer),
        (24, SegmentEnum.skimmer),
        (25, SegmentEnum.sampler),
        (49, SegmentEnum.sampler),
        (50, SegmentEnum.engaged),
        (89, SegmentEnum.engaged),
        (90, SegmentEnum.hot),
        (100, SegmentEnum.hot),
    ],
)
def test_segment_boundaries(pct, expected):
    assert determine_segment(pct) == expected


@pytest.mark.parametrize(
    "hours,expected",
    [(0.5, 15), (1, 15), (5, 12), (6, 12), (24, 8), (48, 4), (49, 0), (999, 0)],
)
def test_response_speed_bands(hours, expected):
    assert calculate_response_speed_score(hours) == expected


def test_intent_score_caps_each_component():
    result = calculate_intent_score(
        watch_percentage=100,
        replay_count=10,
        offer_clicks=10,
        email_opens=10,
        email_clicks=10,
        response_speed_hours=0.1,
    )
    assert result.watch_score == 40
    assert result.replay_score == 10
    assert result.cta_click_score == 20
    assert result.email_engagement_score == 15
    assert result.response_speed_score == 15
    assert result.intent_score == 100
    assert result.combined_score == 85


def test_intent_score_defaults_fit_to_fifty():
    result = calculate_intent_score(watch_percentage=50)
    assert result.intent_score == 20
    assert result.fit_score == 50
    assert result.combined_score == 29


def test_engagement_levels():
    assert determine_engagement_level(70) == EngagementLevelEnum.hot
    assert determine_engagement_level(69) == EngagementLevelEnum.warm
    assert determine_engagement_level(40) == EngagementLevelEnum.warm
    assert determine_engagement_level(39) == EngagementLevelEnum.cold


def test_next_touch_time_stops_after_cadence():
    last = datetime(2025, 1, 1, tzinfo=timezone.utc)
    cadence = [0, 24, 48]
    assert calculate_next_touch_time("engaged", 2, last, cadence) == last + timedelta(hours=24)
    assert calculate_next_touch_time("engaged", 4, last, cadence) is None
    assert calculate_next_touch_time("engaged", 0, last, cadence) is None
