"""Turns deck-structure outlines into fully written presentation slides."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from funnel_builder.llm.client import ChatMessage, LLMClient, LLMGenerationParams
from funnel_builder.llm.json_recovery import coerce_to_string, coerce_to_string_list

logger = logging.getLogger(__name__)

TEXT_DENSITIES = ("minimal", "balanced", "detailed")
VISUAL_STYLES = ("professional", "creative", "minimal", "bold")
EMPHASIS_PREFERENCES = ("text", "visuals", "balanced")
ANIMATION_LEVELS = ("none", "subtle", "moderate", "dynamic")
IMAGE_STYLES = ("photography", "illustration", "abstract", "icons")

LAYOUT_TYPES = (
    "title",
    "section",
    "content_left",
    "content_right",
    "bullets",
    "quote",
    "statistics",
    "comparison",
    "process",
    "cta",
)

BULLET_RANGES: dict[str, tuple[int, int]] = {
    "minimal": (2, 3),
    "balanced": (3, 5),
    "detailed": (5, 7),
}

QUICK_ACTION_PROMPTS: dict[str, str] = {
    "regenerate_image": "Write a new, more compelling image prompt that captures the slide's key message.",
    "make_concise": (
        "Make the content more concise while keeping the key points. Title at most 12 words, "
        "each bullet at most 16 words."
    ),
    "better_title": "Rewrite the title to be more engaging and action-oriented in 10 words or fewer.",
    "change_layout": (
        "Restructure the content to suit a different layout. Title at most 12 words, each bullet at most 16 words."
    ),
    "regenerate_notes": "Write new speaker notes that give the presenter clearer, more engaging guidance.",
    "expand_content": (
        "Add specific detail, examples or data to the bullets without making them longer than 16 words. "
        "Add at most two new bullets, five in total."
    ),
    "simplify_language": (
        "Simplify the language with shorter sentences and common words. Title at most 12 words, "
        "each bullet at most 16 words."
    ),
}
MAX_CUSTOM_PROMPT_LENGTH = 1000


class SlideGenerationError(RuntimeError):
    pass


class InvalidCustomizationError(ValueError):
    pass


@dataclass
class DeckStructureSlide:
    slide_number: int
    title: str
    description: str = ""
    section: str = ""


@dataclass
class PresentationCustomization:
    text_density: str = "balanced"
    visual_style: str = "professional"
    emphasis_preference: str = "balanced"
    animation_level: str = "subtle"
    image_style: str = "photography"

    @classmethod
    def from_payload(cls, payload: Optional[dict[str, Any]]) -> "PresentationCustomization":
        """Build from the camelCase request payload, rejecting values outside each option set."""
        if payload is None:
            return cls()
        if not isinstance(payload, dict):
            raise InvalidCustomizationError("Customization must be an object")
        options = (
            ("textDensity", "text_density", TEXT_DENSITIES),
            ("visualStyle", "visual_style", VISUAL_STYLES),
            ("emphasisPreference", "emphasis_preference", EMPHASIS_PREFERENCES),
            ("animationLevel", "animation_level", ANIMATION_LEVELS),
            ("imageStyle", "image_style", IMAGE_STYLES),
        )
        values: dict[str, str] = {}
        for key, attr, allowed in options:
            if key not in payload:
                continue
            value = payload[key]
            if value not in allowed:
                raise InvalidCustomizationError(f"Invalid {key}: {value}")
            values[attr] = value
        return cls(**values)

    def to_payload(self) -> dict[str, str]:
        return {
            "textDensity": self.text_density,
            "visualStyle": self.visual_style,
            "emphasisPreference": self.emphasis_preference,
            "animationLevel": self.animation_level,
            "imageStyle": self.image_style,
        }


def deck_slide_from_payload(raw: Any, index: int) -> DeckStructureSlide:
    slide_number = index + 1
    if not isinstance(raw, dict):
        return DeckStructureSlide(slide_number=slide_number, title=f"Slide {slide_number}")
    title = coerce_to_string(raw.get("title"))
    if not title:
        return DeckStructureSlide(slide_number=slide_number, title=f"Slide {slide_number}")
    return DeckStructureSlide(
        slide_number=slide_number,
        title=title,
        description=coerce_to_string(raw.get("description")) or "",
        section=coerce_to_string(raw.get("section")) or "",
    )


def determine_layout_type(slide: DeckStructureSlide, index: int, total: int) -> str:
    if index == 0:
        return "title"
    if index == total - 1:
        return "cta"
    title = slide.title.lower()
    section = (slide.section or "").lower()
    if "section" in title or "part" in title or (section and title == section):
        return "section"
    if "quote" in title or "testimonial" in title:
        return "quote"
    if any(word in title for word in ("statistic", "number", "data")):
        return "statistics"
    if any(word in title for word in (" vs", "vs.", "comparison", "before", "after")):
        return "comparison"
    if any(word in title for word in ("step", "process", "how to")):
        return "process"
    return "bullets"


def fallback_slide(slide: DeckStructureSlide, layout_type: str) -> dict[str, Any]:
    return {
        "slideNumber": slide.slide_number,
        "title": slide.title,
        "content": [slide.description] if slide.description else [],
        "speakerNotes": f"Discuss {slide.title} with the audience.",
        "imagePrompt": None,
        "layoutType": layout_type,
        "section": slide.section,
    }


def _slide_prompt(
    slide: DeckStructureSlide,
    customization: PresentationCustomization,
    layout_type: str,
    business_context: Optional[dict[str, Any]] = None,
) -> list[ChatMessage]:
    low, high = BULLET_RANGES[customization.text_density]
    system = (
        "You write slides for high-converting webinar presentations. "
        f"Visual style: {customization.visual_style}. Image style: {customization.image_style}. "
        f"Emphasis: {customization.emphasis_preference}. "
        f"Use between {low} and {high} bullet points, each at most 16 words, and a title of at most 12 words."
    )
    context_block = ""
    if business_context:
        context_block = f"\n\nBUSINESS CONTEXT:\n{json.dumps(business_context, indent=2, default=str)}"
    user = (
        f"SLIDE {slide.slide_number} ({layout_type} layout, section: {slide.section or 'general'})\n"
        f"Outline title: {slide.title}\n"
        f"Outline description: {slide.description or 'n/a'}"
        f"{context_block}\n\n"
        'Return JSON shaped as {"title": "...", "content": ["..."], "speakerNotes": "...", '
        '"imagePrompt": "..."}.'
    )
    return [ChatMessage("system", system), ChatMessage("user", user)]


def _coerce_generated(
    raw: Any,
    slide: DeckStructureSlide,
    layout_type: str,
    max_bullets: int,
) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise SlideGenerationError("Slide response was not an object")
    return {
        "slideNumber": slide.slide_number,
        "title": coerce_to_string(raw.get("title")) or slide.title,
        "content": coerce_to_string_list(raw.get("content"), max_items=max_bullets),
        "speakerNotes": coerce_to_string(raw.get("speakerNotes")) or "",
        "imagePrompt": coerce_to_string(raw.get("imagePrompt")),
        "layoutType": layout_type,
        "section": slide.section,
    }


def generate_slide(
    slide: DeckStructureSlide,
    *,
    index: int,
    total: int,
    customization: PresentationCustomization,
    llm: LLMClient,
    business_context: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Write one slide. Any model failure returns a slide built from the outline instead."""
    layout_type = determine_layout_type(slide, index, total)
    _, max_bullets = BULLET_RANGES[customization.text_density]
    try:
        raw = llm.generate_json(
            _slide_prompt(slide, customization, layout_type, business_context),
            LLMGenerationParams(temperature=0.7, max_tokens=1500),
            context=f"slide_{slide.slide_number}",
        )
        return _coerce_generated(raw, slide, layout_type, max_bullets)
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "Slide generation failed, using outline fallback",
            extra={"slide_number": slide.slide_number, "error": str(exc)},
        )
        return fallback_slide(slide, layout_type)


def generate_presentation(
    slides: list[DeckStructureSlide],
    *,
    customization: PresentationCustomization,
    llm: LLMClient,
    on_slide_generated: Optional[Callable[[dict[str, Any], int], None]] = None,
    start_index: int = 0,
    business_context: Optional[dict[str, Any]] = None,
    should_stop: Optional[Callable[[], bool]] = None,
) -> list[dict[str, Any]]:
    total = len(slides)
    generated: list[dict[str, Any]] = []
    for index in range(start_index, total):
        if should_stop and should_stop():
            break
        slide = generate_slide(
            slides[index],
            index=index,
            total=total,
            customization=customization,
            llm=llm,
            business_context=business_context,
        )
        generated.append(slide)
        if on_slide_generated:
            on_slide_generated(slide, round((index + 1) / total * 100))
    return generated


def regenerate_slide(
    current: dict[str, Any],
    instruction: str,
    *,
    llm: LLMClient,
    business_context: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    system = (
        "You edit single slides of a webinar presentation. Apply the instruction and keep the slide "
        "professional and on-message."
    )
    user = (
        f"CURRENT SLIDE:\n{json.dumps({k: current.get(k) for k in ('title', 'content', 'speakerNotes', 'imagePrompt')}, indent=2)}\n\n"
        f"INSTRUCTION: {instruction}\n\n"
        'Return JSON shaped as {"title": "...", "content": ["..."], "speakerNotes": "...", "imagePrompt": "..."}.'
    )
    if business_context:
        user += f"\n\nBUSINESS CONTEXT:\n{json.dumps(business_context, indent=2, default=str)}"
    try:
        raw = llm.generate_json(
            [ChatMessage("system", system), ChatMessage("user", user)],
            LLMGenerationParams(temperature=0.7, max_tokens=1500),
            context="slide_regenerate",
        )
    except Exception as exc:
        raise SlideGenerationError("Failed to regenerate slide content") from exc
    if not isinstance(raw, dict):
        raise SlideGenerationError("Failed to regenerate slide content")

    updated = dict(current)
    title = coerce_to_string(raw.get("title"))
    if title:
        updated["title"] = title
    content = coerce_to_string_list(raw.get("content"), max_items=BULLET_RANGES["detailed"][1])
    if content:
        updated["content"] = content
    notes = coerce_to_string(raw.get("speakerNotes"))
    if notes:
        updated["speakerNotes"] = notes
    image_prompt = coerce_to_string(raw.get("imagePrompt"))
    if image_prompt:
        updated["imagePrompt"] = image_prompt
    updated["slideNumber"] = current.get("slideNumber")
    updated["layoutType"] = current.get("layoutType")
    return updated
