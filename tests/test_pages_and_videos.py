from types import SimpleNamespace

import pytest

from funnel_builder.db.enums import PathwayTypeEnum, VideoProcessingStatusEnum as Status
from funnel_builder.services.nps import summarize
from funnel_builder.services.offers import determine_pathway_from_price
from funnel_builder.services.page_rendering import (
    render_enrollment_page,
    render_registration_page,
    render_watch_page,
    resolve_theme,
)
from funnel_builder.services.pitch_videos import can_transition


def test_theme_overrides_only_known_colors():
    theme = resolve_theme({"primary": " #000000 ", "accent": "#ff0000", "text": ""})
    assert theme["primary"] == "#000000"
    assert theme["text"] == "#1f2937"
    assert "accent" not in theme


def test_enrollment_page_escapes_user_content():
    html = render_enrollment_page(
        headline="<script>alert(1)</script>",
        subheadline=None,
        content_sections={"features": ["Weekly calls", ""], "price": "$997"},
        cta_config={"text": "Join", "url": 'https://pay.test/?a=1&b="2"'},
    )
    assert "<script>alert(1)</script>" not in html
    assert "&lt;script&gt;" in html
    assert "<li>Weekly calls</li>" in html
    assert "<li></li>" not in html
    assert 'href="https://pay.test/?a=1&amp;b=&quot;2&quot;"' in html


def test_registration_page_renders_form_fields():
    html = render_registration_page(
        headline="Free Masterclass",
        subheadline="Live this Thursday",
        benefit_bullets=["Learn the system"],
        trust_statement="No spam",
        cta_config={"text": "Save My Seat"},
        form_fields=[{"name": "email", "type": "email", "label": "Email", "required": True}],
    )
    assert '<input name="email" type="email" placeholder="Email" required>' in html
    assert '<button class="cta" type="submit">Save My Seat</button>' in html


def test_watch_page_embeds_video_only_when_present():
    with_video = render_watch_page(
        headline="Watch", subheadline=None, watch_prompt=None, cta_config={}, video_url="https://cdn.test/v.mp4"
    )
    without_video = render_watch_page(headline="Watch", subheadline=None, watch_prompt=None, cta_config={})
    assert 'src="https://cdn.test/v.mp4"' in with_video
    assert "<video" not in without_video
    assert "Get Started" in without_video


@pytest.mark.parametrize(
    "current, target, allowed",
    [
        (Status.uploaded, Status.processing, True),
        (Status.uploaded, Status.ready, False),
        (Status.processing, Status.ready, True),
        (Status.processing, Status.failed, True),
        (Status.failed, Status.processing, True),
        (Status.ready, Status.processing, False),
        (Status.ready, Status.failed, False),
    ],
)
def test_video_transitions(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_nps_summary_counts_categories():
    responses = [SimpleNamespace(score=score) for score in (10, 9, 8, 7, 6, 0)]
    assert summarize(responses) == {"total": 6, "promoters": 2, "passives": 2, "detractors": 2, "nps": 0}
    assert summarize([SimpleNamespace(score=10), SimpleNamespace(score=3), SimpleNamespace(score=9)])["nps"] == 33
    assert summarize([])["nps"] == 0


@pytest.mark.parametrize(
    "price, pathway",
    [
        (None, PathwayTypeEnum.direct_purchase),
        (1999, PathwayTypeEnum.direct_purchase),
        (2000, PathwayTypeEnum.book_call),
        (5000, PathwayTypeEnum.book_call),
    ],
)
def test_pathway_from_price(price, pathway):
    assert determine_pathway_from_price(price) is pathway
