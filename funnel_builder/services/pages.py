"""Enrollment, registration and watch page generation and publishing."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from funnel_builder.db.enums import PathwayTypeEnum, VideoProcessingStatusEnum
from funnel_builder.db.models import DeckStructure, FunnelProject, Offer, PitchVideo, WatchPage
from funnel_builder.db.repositories.pages import PageModel, PagesRepository
from funnel_builder.db.repositories.pitch_videos import PitchVideosRepository
from funnel_builder.llm.client import ChatMessage, LLMClient, LLMGenerationParams
from funnel_builder.llm.json_recovery import coerce_to_string, coerce_to_string_list
from funnel_builder.llm.prompts import (
    TranscriptData,
    enrollment_copy_prompt,
    registration_copy_prompt,
    watch_copy_prompt,
)
from funnel_builder.services.offers import determine_pathway_from_price
from funnel_builder.services.page_rendering import (
    DEFAULT_THEME,
    render_enrollment_page,
    render_registration_page,
    render_watch_page,
)

logger = logging.getLogger(__name__)

DEFAULT_FORM_FIELDS: list[dict[str, Any]] = [
    {"name": "first_name", "label": "First Name", "type": "text", "required": True},
    {"name": "email", "label": "Email Address", "type": "email", "required": True},
]

REGENERABLE_FIELDS: dict[str, tuple[str, ...]] = {
    "enrollment": ("headline", "subheadline", "cta_text", "urgency_text"),
    "registration": ("headline", "subheadline", "cta_text", "trust_statement", "benefit_bullets"),
    "watch": ("headline", "subheadline", "cta_text", "watch_prompt"),
}

_FIELD_GUIDANCE = {
    "headline": "a curiosity-driven headline of at most 14 words",
    "subheadline": "an outcome-focused subheadline of one sentence",
    "cta_text": "call to action button text of at most 6 words",
    "urgency_text": "one short urgency statement",
    "trust_statement": "one short trust statement about privacy and value",
    "benefit_bullets": "exactly 5 benefit bullets as a JSON array of strings",
    "watch_prompt": "one sentence encouraging the viewer to watch to the end",
}


class PageGenerationError(RuntimeError):
    pass


class UnknownPageFieldError(ValueError):
    pass


class VideoNotReadyError(RuntimeError):
    pass


def _copy_params() -> LLMGenerationParams:
    return LLMGenerationParams(temperature=0.7, max_tokens=2500)


def _require_copy(raw: Any, kind: str) -> dict[str, Any]:
    if not isinstance(raw, dict) or not coerce_to_string(raw.get("headline")):
        raise PageGenerationError(f"{kind.capitalize()} page copy response is missing a headline")
    return raw


def offer_payload(offer: Offer) -> dict[str, Any]:
    return {
        "name": offer.name,
        "tagline": offer.tagline,
        "price": offer.price,
        "currency": offer.currency,
        "promise": offer.promise,
        "features": offer.features or [],
        "bonuses": offer.bonuses or [],
        "guarantee": offer.guarantee,
    }


def render_page(page: PageModel, *, video_url: Optional[str] = None) -> str:
    if isinstance(page, WatchPage):
        return render_watch_page(
            headline=page.headline,
            subheadline=page.subheadline,
            watch_prompt=page.watch_prompt,
            cta_config=page.cta_config or {},
            video_url=video_url,
            theme=page.theme,
        )
    if hasattr(page, "benefit_bullets"):
        return render_registration_page(
            headline=page.headline,
            subheadline=page.subheadline,
            benefit_bullets=page.benefit_bullets or [],
            trust_statement=page.trust_statement,
            cta_config=page.cta_config or {},
            form_fields=page.form_fields or DEFAULT_FORM_FIELDS,
            theme=page.theme,
        )
    return render_enrollment_page(
        headline=page.headline,
        subheadline=page.subheadline,
        content_sections=page.content_sections or {},
        cta_config=page.cta_config or {},
        theme=page.theme,
    )


def _watch_video_url(session: Session, page: PageModel) -> Optional[str]:
    if not isinstance(page, WatchPage) or not page.pitch_video_id:
        return None
    video = PitchVideosRepository(session).get(video_id=page.pitch_video_id)
    return video.video_url if video else None


def rerender(session: Session, page_kind: str, page: PageModel) -> PageModel:
    html = render_page(page, video_url=_watch_video_url(session, page))
    return PagesRepository(session, page_kind).update(page, html_content=html)


def generate_enrollment_page(
    session: Session,
    *,
    user_id: str,
    project: FunnelProject,
    offer: Offer,
    transcript: Optional[TranscriptData] = None,
    llm: Optional[LLMClient] = None,
) -> PageModel:
    llm = llm or LLMClient()
    page_type = determine_pathway_from_price(offer.price)
    offer_dict = offer_payload(offer)
    raw = _require_copy(
        llm.generate_json(
            enrollment_copy_prompt(offer_dict, transcript or TranscriptData(project.description or ""), page_type.value),
            _copy_params(),
            context="enrollment_page",
        ),
        "enrollment",
    )

    def section(key: str) -> dict[str, str]:
        value = raw.get(key)
        if not isinstance(value, dict):
            return {"heading": "", "content": coerce_to_string(value) or ""}
        return {
            "heading": coerce_to_string(value.get("heading")) or "",
            "content": coerce_to_string(value.get("content")) or "",
        }

    content_sections = {
        "opening": coerce_to_string(raw.get("opening")) or "",
        "problemSection": section("problemSection"),
        "solutionSection": section("solutionSection"),
        "featuresHeading": coerce_to_string(raw.get("featuresHeading")) or "What You Get",
        "features": offer_dict["features"],
        "bonuses": offer_dict["bonuses"],
        "guarantee": offer.guarantee,
        "price": f"{offer.currency} {offer.price:,.0f}" if offer.price is not None else None,
    }
    default_cta = "Enroll Now" if page_type == PathwayTypeEnum.direct_purchase else "Book Your Call"
    cta_config = {
        "text": coerce_to_string(raw.get("ctaText")) or default_cta,
        "urgencyText": coerce_to_string(raw.get("urgencyText")),
        "url": None,
    }
    headline = coerce_to_string(raw.get("headline"))
    subheadline = coerce_to_string(raw.get("subheadline"))
    page = PagesRepository(session, "enrollment").create(
        user_id=user_id,
        project_id=project.id,
        offer_id=offer.id,
        page_type=page_type,
        headline=headline,
        subheadline=subheadline,
        content_sections=content_sections,
        cta_config=cta_config,
        theme=dict(DEFAULT_THEME),
        html_content=render_enrollment_page(
            headline=headline,
            subheadline=subheadline,
            content_sections=content_sections,
            cta_config=cta_config,
            theme=DEFAULT_THEME,
        ),
    )
    logger.info(
        "Generated enrollment page",
        extra={"project_id": project.id, "page_id": page.id, "page_type": page_type.value},
    )
    return page


def generate_registration_page(
    session: Session,
    *,
    user_id: str,
    project: FunnelProject,
    deck: Optional[DeckStructure] = None,
    llm: Optional[LLMClient] = None,
) -> PageModel:
    llm = llm or LLMClient()
    raw = _require_copy(
        llm.generate_json(
            registration_copy_prompt(
                name=project.name,
                niche=project.business_niche,
                target_audience=project.target_audience,
                deck_slides=deck.slides if deck else None,
            ),
            _copy_params(),
            context="registration_page",
        ),
        "registration",
    )
    headline = coerce_to_string(raw.get("headline"))
    subheadline = coerce_to_string(raw.get("subheadline"))
    bullets = coerce_to_string_list(raw.get("bulletPoints"), max_items=5)
    trust = coerce_to_string(raw.get("trustStatement"))
    cta_config = {"text": coerce_to_string(raw.get("ctaText")) or "Save My Seat"}
    form_fields = [dict(item) for item in DEFAULT_FORM_FIELDS]
    page = PagesRepository(session, "registration").create(
        user_id=user_id,
        project_id=project.id,
        deck_structure_id=deck.id if deck else None,
        headline=headline,
        subheadline=subheadline,
        benefit_bullets=bullets,
        trust_statement=trust,
        cta_config=cta_config,
        form_fields=form_fields,
        theme=dict(DEFAULT_THEME),
        html_content=render_registration_page(
            headline=headline,
            subheadline=subheadline,
            benefit_bullets=bullets,
            trust_statement=trust,
            cta_config=cta_config,
            form_fields=form_fields,
            theme=DEFAULT_THEME,
        ),
    )
    logger.info("Generated registration page", extra={"project_id": project.id, "page_id": page.id})
    return page


def generate_watch_page(
    session: Session,
    *,
    user_id: str,
    project: FunnelProject,
    video: Optional[PitchVideo] = None,
    llm: Optional[LLMClient] = None,
) -> PageModel:
    llm = llm or LLMClient()
    raw = _require_copy(
        llm.generate_json(
            watch_copy_prompt(
                name=project.name,
                niche=project.business_niche,
                video_duration_seconds=video.video_duration if video else None,
            ),
            _copy_params(),
            context="watch_page",
        ),
        "watch",
    )
    headline = coerce_to_string(raw.get("headline"))
    subheadline = coerce_to_string(raw.get("subheadline"))
    watch_prompt = coerce_to_string(raw.get("watchPrompt"))
    cta_config = {
        "text": coerce_to_string(raw.get("ctaText")) or "Get Started",
        "subtext": coerce_to_string(raw.get("ctaSubtext")),
        "url": None,
    }
    ready_video = video if video and video.processing_status == VideoProcessingStatusEnum.ready else None
    page = PagesRepository(session, "watch").create(
        user_id=user_id,
        project_id=project.id,
        pitch_video_id=ready_video.id if ready_video else None,
        headline=headline,
        subheadline=subheadline,
        watch_prompt=watch_prompt,
        cta_config=cta_config,
        theme=dict(DEFAULT_THEME),
        html_content=render_watch_page(
            headline=headline,
            subheadline=subheadline,
            watch_prompt=watch_prompt,
            cta_config=cta_config,
            video_url=ready_video.video_url if ready_video else None,
            theme=DEFAULT_THEME,
        ),
    )
    logger.info("Generated watch page", extra={"project_id": project.id, "page_id": page.id})
    return page


def update_page(session: Session, page_kind: str, page: PageModel, fields: dict[str, Any]) -> PageModel:
    """Apply edits and re-render. Publishing state and slugs change only through publish/unpublish."""
    protected = {"id", "user_id", "funnel_project_id", "created_at", "is_published", "vanity_slug", "html_content"}
    updates = {key: value for key, value in fields.items() if key not in protected and hasattr(page, key)}
    repo = PagesRepository(session, page_kind)
    if updates:
        page = repo.update(page, **updates)
    return rerender(session, page_kind, page)


def publish_page(
    session: Session,
    page_kind: str,
    page: PageModel,
    *,
    vanity_slug: Optional[str] = None,
    project_name: Optional[str] = None,
) -> PageModel:
    repo = PagesRepository(session, page_kind)
    desired = vanity_slug or page.vanity_slug or f"{project_name or page.headline}-{page_kind}"
    slug = repo.unique_vanity_slug(desired, exclude_page_id=page.id)
    page = repo.update(page, vanity_slug=slug, is_published=True)
    logger.info("Published page", extra={"page_id": page.id, "page_kind": page_kind, "slug": slug})
    return page


def unpublish_page(session: Session, page_kind: str, page: PageModel) -> PageModel:
    return PagesRepository(session, page_kind).update(page, is_published=False)


def _field_context(page: PageModel) -> dict[str, Any]:
    context: dict[str, Any] = {"headline": page.headline, "subheadline": page.subheadline}
    for attr in ("watch_prompt", "trust_statement", "benefit_bullets"):
        if hasattr(page, attr):
            context[attr] = getattr(page, attr)
    context["cta"] = page.cta_config or {}
    return context


def regenerate_field(
    session: Session,
    page_kind: str,
    page: PageModel,
    field_name: str,
    *,
    project: FunnelProject,
    llm: Optional[LLMClient] = None,
) -> PageModel:
    allowed = REGENERABLE_FIELDS.get(page_kind, ())
    if field_name not in allowed:
        raise UnknownPageFieldError(f"Field '{field_name}' cannot be regenerated for {page_kind} pages")

    llm = llm or LLMClient()
    messages = [
        ChatMessage(
            "system",
            "You are a direct response copywriter improving one element of a landing page. "
            "Keep it consistent with the rest of the page.",
        ),
        ChatMessage(
            "user",
            f"PROJECT: {project.name}\nNICHE: {project.business_niche or 'Not specified'}\n"
            f"PAGE TYPE: {page_kind}\n\n"
            f"CURRENT PAGE:\n{json.dumps(_field_context(page), indent=2, default=str)}\n\n"
            f"Write {_FIELD_GUIDANCE[field_name]} for the field '{field_name}'. "
            'Return JSON shaped as {"value": ...}.',
        ),
    ]
    raw = llm.generate_json(messages, _copy_params(), context=f"{page_kind}_field_{field_name}")
    value = raw.get("value") if isinstance(raw, dict) else None

    updates: dict[str, Any] = {}
    if field_name == "benefit_bullets":
        bullets = coerce_to_string_list(value, max_items=5)
        if not bullets:
            raise PageGenerationError("Regenerated bullets were empty")
        updates["benefit_bullets"] = bullets
    else:
        text = coerce_to_string(value)
        if not text:
            raise PageGenerationError(f"Regenerated {field_name} was empty")
        if field_name == "cta_text":
            updates["cta_config"] = {**(page.cta_config or {}), "text": text}
        elif field_name == "urgency_text":
            updates["cta_config"] = {**(page.cta_config or {}), "urgencyText": text}
        else:
            updates[field_name] = text
    return update_page(session, page_kind, page, updates)


def attach_video(session: Session, page: WatchPage, video: PitchVideo) -> PageModel:
    if video.processing_status != VideoProcessingStatusEnum.ready:
        raise VideoNotReadyError(f"Video {video.id} is {video.processing_status.value}, not ready")
    page = PagesRepository(session, "watch").update(page, pitch_video_id=video.id)
    return rerender(session, "watch", page)
