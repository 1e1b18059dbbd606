import pytest

from funnel_builder.db.enums import ChannelEnum
from funnel_builder.services.followup.message_generation import (
    MessageGenerationError,
    calculate_message_timing,
    generate_dynamic_sequence_messages,
    message_name,
    plan_message_sequence,
    regenerate_single_message,
)
from funnel_builder.services.followup.personalization import (
    build_personalization_values,
    personalize_cta,
    personalize_text,
)


def test_timing_for_small_sequences():
    assert calculate_message_timing(0, 72) == []
    assert calculate_message_timing(1, 72) == [0]
    assert calculate_message_timing(2, 72) == [0, 72]
    assert calculate_message_timing(3, 72) == [0, 48, 72]
    assert calculate_message_timing(5, 72) == [0, 0, 23, 48, 72]


def test_timing_for_long_sequence_is_sorted_and_bounded():
    timings = calculate_message_timing(10, 120)
    assert timings[0] == 0
    assert timings[-1] == 120
    assert timings == sorted(timings)
    assert len(timings) <= 10


def test_plan_uses_sms_for_checkins():
    plans = plan_message_sequence(5, 72)
    assert [plan.type for plan in plans] == ["opening", "sms_checkin", "value_story", "offer_recap", "closing"]
    assert plans[1].channel == ChannelEnum.sms
    assert plans[1].position == "early"
    assert all(plan.channel == ChannelEnum.email for plan in plans if plan.type != "sms_checkin")


def test_message_name_uses_day_number():
    assert message_name("offer_recap", 48) == "Offer Recap (Day 2)"
    assert message_name("opening", 0) == "Opening (Day 0)"


def test_dynamic_sequence_validates_count():
    with pytest.raises(MessageGenerationError):
        generate_dynamic_sequence_messages(0, 72)
    with pytest.raises(MessageGenerationError):
        generate_dynamic_sequence_messages(21, 72)


def test_dynamic_sequence_orders_messages():
    messages = generate_dynamic_sequence_messages(5, 72, "hot")
    assert [message["message_order"] for message in messages] == [1, 2, 3, 4, 5]
    assert messages[0]["name"] == "Opening (Day 0)"
    assert messages[-1]["send_delay_hours"] == 72
    assert messages[1]["channel"] == ChannelEnum.sms


def test_regenerate_single_message_rejects_unknown_type():
    with pytest.raises(MessageGenerationError):
        regenerate_single_message("carrier_pigeon", "engaged", 24, 2, "middle")


def test_personalize_replaces_both_token_styles():
    values = {"first_name": "Ana", "offer_name": "Coach Pro"}
    text = "Hi {first_name}, {{ offer_name }} is ready. {unknown_token} stays."
    assert personalize_text(text, values) == "Hi Ana, Coach Pro is ready. {unknown_token} stays."
    assert personalize_text(None, values) is None


def test_personalization_defaults_first_name():
    values = build_personalization_values(None, {"offer_name": "Coach Pro"})
    assert values["first_name"] == "there"
    assert values["offer_name"] == "Coach Pro"


def test_personalize_cta_only_touches_strings():
    cta = {"text": "Join {first_name}", "url": "https://x.test/{first_name}", "tracking_enabled": True}
    result = personalize_cta(cta, {"first_name": "Bo"})
    assert result == {"text": "Join Bo", "url": "https://x.test/Bo", "tracking_enabled": True}
    assert personalize_cta(None, {}) == {}
