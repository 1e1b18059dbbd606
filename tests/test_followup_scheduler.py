from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from funnel_builder.db.base import as_utc, utcnow
from funnel_builder.db.enums import ConsentStateEnum, DeliveryStatusEnum, EngagementLevelEnum
from funnel_builder.db.repositories.followup import (
    DeliveriesRepository,
    IntentScoresRepository,
    MessagesRepository,
    ProspectsRepository,
    SequencesRepository,
)
from funnel_builder.services.followup.agent_config import get_or_create_agent_config
from funnel_builder.services.followup.prospects import upsert_prospect
from funnel_builder.services.followup.scheduler import (
    REPLIED_REASON,
    cancel_pending_deliveries,
    get_deliveries_ready_to_send,
    mark_delivery_sent,
    trigger_sequence,
    update_delivery_status,
    update_next_scheduled_touch,
)
from funnel_builder.services.followup.scoring import (
    NO_RESPONSE_HOURS,
    recalculate_intent_score,
    summarize_email_engagement,
)

from conftest import TEST_USER_ID


def _sequence(db_session, project, *, stop_on_reply=True, delays=(0, 24, 48)):
    config = get_or_create_agent_config(db_session, user_id=TEST_USER_ID, project=project)
    sequence = SequencesRepository(db_session).create(
        agent_config_id=config.id,
        name="Post-webinar",
        stop_on_reply=stop_on_reply,
        total_messages=len(delays),
    )
    MessagesRepository(db_session).create_many(
        sequence_id=sequence.id,
        messages=[
            {
                "name": f"Touch {index + 1}",
                "message_order": index + 1,
                "send_delay_hours": delay,
                "subject_line": "Quick question, {first_name}",
                "body_content": "Hi {first_name}, thanks for watching.",
            }
            for index, delay in enumerate(delays)
        ],
    )
    return config, sequence


def _triggered(db_session, project, **sequence_kwargs):
    config, sequence = _sequence(db_session, project, **sequence_kwargs)
    prospect, _created = upsert_prospect(
        db_session, config=config, email="lead@example.com", first_name="Sam", watch_percentage=60
    )
    deliveries = trigger_sequence(
        db_session,
        prospect_id=prospect.id,
        sequence_id=sequence.id,
        trigger_time=utcnow() - timedelta(hours=1),
    )
    return prospect, deliveries


def _reload(db_session, prospect):
    db_session.expire_all()
    return ProspectsRepository(db_session).get(prospect_id=prospect.id)


def test_ready_to_send_returns_only_due_pending_deliveries(db_session, project):
    _prospect, deliveries = _triggered(db_session, project)

    ready = get_deliveries_ready_to_send(db_session)

    assert [delivery.id for delivery in ready] == [deliveries[0].id]
    assert ready[0].personalized_subject == "Quick question, Sam"


def test_mark_delivery_sent_moves_next_touch(db_session, project):
    prospect, deliveries = _triggered(db_session, project)
    assert as_utc(prospect.next_scheduled_touch) == as_utc(deliveries[0].scheduled_send_at)

    sent = mark_delivery_sent(db_session, deliveries[0].id)

    assert sent.delivery_status == DeliveryStatusEnum.sent
    assert sent.actual_sent_at is not None
    prospect = _reload(db_session, prospect)
    assert prospect.last_touch_at is not None
    assert as_utc(prospect.next_scheduled_touch) == as_utc(deliveries[1].scheduled_send_at)
    assert get_deliveries_ready_to_send(db_session) == []


def test_update_next_scheduled_touch_clears_when_nothing_pending(db_session, project):
    prospect, deliveries = _triggered(db_session, project)
    for delivery in deliveries:
        DeliveriesRepository(db_session).update(delivery, delivery_status=DeliveryStatusEnum.sent)

    assert update_next_scheduled_touch(db_session, prospect.id) is None
    assert _reload(db_session, prospect).next_scheduled_touch is None
    assert update_next_scheduled_touch(db_session, "missing") is None


def test_cancel_pending_deliveries_leaves_sent_ones(db_session, project):
    prospect, deliveries = _triggered(db_session, project)
    mark_delivery_sent(db_session, deliveries[0].id)

    assert cancel_pending_deliveries(db_session, prospect.id, "Paused by owner") == 2
    assert cancel_pending_deliveries(db_session, prospect.id, "Paused by owner") == 0

    db_session.expire_all()
    rows = DeliveriesRepository(db_session).list_for_prospect(prospect_id=prospect.id)
    assert [row.delivery_status for row in rows] == [
        DeliveryStatusEnum.sent,
        DeliveryStatusEnum.failed,
        DeliveryStatusEnum.failed,
    ]
    assert [row.error_message for row in rows] == [None, "Paused by owner", "Paused by owner"]
    assert _reload(db_session, prospect).next_scheduled_touch is None


def test_reply_stops_the_sequence(db_session, project):
    prospect, deliveries = _triggered(db_session, project)
    mark_delivery_sent(db_session, deliveries[0].id)

    replied = update_delivery_status(db_session, deliveries[0].id, DeliveryStatusEnum.replied)

    assert replied.replied_at is not None
    db_session.expire_all()
    rows = DeliveriesRepository(db_session).list_for_prospect(prospect_id=prospect.id)
    assert [row.delivery_status for row in rows[1:]] == [DeliveryStatusEnum.failed, DeliveryStatusEnum.failed]
    assert {row.error_message for row in rows[1:]} == {REPLIED_REASON}
    prospect = _reload(db_session, prospect)
    assert prospect.next_scheduled_touch is None
    # Replying within the first hour earns the top speed band.
    assert prospect.intent_score == 24 + 15


def test_reply_keeps_the_sequence_when_stop_on_reply_is_off(db_session, project):
    prospect, deliveries = _triggered(db_session, project, stop_on_reply=False)
    mark_delivery_sent(db_session, deliveries[0].id)

    update_delivery_status(db_session, deliveries[0].id, DeliveryStatusEnum.replied)

    pending = DeliveriesRepository(db_session).pending_for_prospect(prospect_id=prospect.id)
    assert [row.id for row in pending] == [deliveries[1].id, deliveries[2].id]


@pytest.mark.parametrize(
    "status, consent",
    [
        (DeliveryStatusEnum.bounced, ConsentStateEnum.bounced),
        (DeliveryStatusEnum.complained, ConsentStateEnum.complained),
    ],
)
def test_bounce_and_complaint_cancel_remaining_touches(db_session, project, status, consent):
    prospect, deliveries = _triggered(db_session, project)
    mark_delivery_sent(db_session, deliveries[0].id)

    update_delivery_status(db_session, deliveries[0].id, status)

    prospect = _reload(db_session, prospect)
    assert prospect.consent_state == consent
    assert prospect.next_scheduled_touch is None
    rows = DeliveriesRepository(db_session).list_for_prospect(prospect_id=prospect.id)
    assert rows[0].delivery_status == status
    assert {row.error_message for row in rows[1:]} == {f"Delivery {status.value}"}


def test_repeated_opens_count_once_per_delivery(db_session, project):
    prospect, deliveries = _triggered(db_session, project)
    mark_delivery_sent(db_session, deliveries[0].id)

    for _ in range(3):
        update_delivery_status(db_session, deliveries[0].id, DeliveryStatusEnum.opened)

    prospect = _reload(db_session, prospect)
    assert prospect.email_opens == 1
    assert prospect.email_clicks == 0
    # Watch 60% scores 24; one opened delivery adds 5.
    assert prospect.intent_score == 24 + 5


def test_clicks_are_summed_from_delivery_totals(db_session, project):
    prospect, deliveries = _triggered(db_session, project)
    mark_delivery_sent(db_session, deliveries[0].id)

    update_delivery_status(db_session, deliveries[0].id, DeliveryStatusEnum.clicked)
    clicked = update_delivery_status(db_session, deliveries[0].id, DeliveryStatusEnum.clicked)

    assert clicked.total_clicks == 2
    assert clicked.first_click_at is not None
    prospect = _reload(db_session, prospect)
    assert prospect.email_clicks == 2
    assert prospect.intent_score == 24 + 15


def test_recalculate_records_history_with_delta(db_session, project):
    config, _sequence_row = _sequence(db_session, project)
    prospect, _created = upsert_prospect(db_session, config=config, email="lead@example.com", watch_percentage=60)
    assert prospect.combined_score == 32

    prospect = ProspectsRepository(db_session).update(prospect, offer_clicks=2)
    prospect = recalculate_intent_score(db_session, prospect, reason="Offer clicked")

    assert prospect.intent_score == 44
    assert prospect.combined_score == 46
    assert prospect.engagement_level == EngagementLevelEnum.warm
    history = [
        row
        for row in IntentScoresRepository(db_session).list(prospect_id=prospect.id)
        if row.change_reason == "Offer clicked"
    ]
    assert len(history) == 1
    assert history[0].intent_score == 44
    assert history[0].combined_score == 46
    assert history[0].change_delta == 14


def _delivery(**fields):
    values = {"opened_at": None, "total_clicks": 0, "replied_at": None, "actual_sent_at": None}
    values.update(fields)
    return SimpleNamespace(**values)


def test_response_speed_is_measured_from_first_touch_and_rounded():
    start = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)
    deliveries = [
        _delivery(created_at=start - timedelta(hours=5), actual_sent_at=start, replied_at=start + timedelta(minutes=100)),
        _delivery(created_at=start - timedelta(hours=5), opened_at=start, total_clicks=3),
    ]

    summary = summarize_email_engagement(deliveries)

    assert summary.response_speed_hours == 2
    assert summary.opens == 1
    assert summary.clicks == 3


def test_response_speed_falls_back_to_created_at_and_rounds_half_up():
    start = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)
    deliveries = [_delivery(created_at=start, replied_at=start + timedelta(minutes=150))]

    assert summarize_email_engagement(deliveries).response_speed_hours == 3
    assert summarize_email_engagement([_delivery(created_at=start)]).response_speed_hours == NO_RESPONSE_HOURS
