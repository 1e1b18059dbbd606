from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from funnel_builder.db.models import DeckStructure, FunnelProject, TalkTrack
from funnel_builder.db.repositories.decks import DeckStructuresRepository, TalkTracksRepository
from funnel_builder.llm.client import LLMClient, LLMGenerationParams
from funnel_builder.llm.json_recovery import coerce_to_number, coerce_to_string
from funnel_builder.llm.prompts import DECK_SECTIONS, TranscriptData, deck_structure_prompt, talk_track_prompt

logger = logging.getLogger(__name__)

CHUNK_SIZE = 10
TEMPLATE_TYPES = {5: "5_slide_test", 55: "55_slide_promo"}
PENDING_SECTION = "pending"


class DeckGenerationError(RuntimeError):
    pass


def placeholder_slide(slide_number: int) -> dict[str, Any]:
    return {
        "slideNumber": slide_number,
        "title": f"Slide {slide_number} - To Be Completed",
        "description": "This slide could not be generated. Edit it manually or regenerate the deck.",
        "section": PENDING_SECTION,
    }


def normalize_slide(raw: Any, slide_number: int) -> dict[str, Any]:
    if not isinstance(raw, dict):
        return placeholder_slide(slide_number)
    section = coerce_to_string(raw.get("section")) or ""
    section = section.lower()
    return {
        "slideNumber": slide_number,
        "title": coerce_to_string(raw.get("title")) or f"Slide {slide_number}",
        "description": coerce_to_string(raw.get("description")) or "",
        "section": section if section in DECK_SECTIONS else "solution",
    }


def renumber_slides(slides: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [{**slide, "slideNumber": index} for index, slide in enumerate(slides, start=1)]


def section_counts(slides: list[dict[str, Any]]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for slide in slides:
        section = slide.get("section") or PENDING_SECTION
        counts[section] = counts.get(section, 0) + 1
    return counts


def _generate_chunk(
    llm: LLMClient,
    transcript: TranscriptData,
    *,
    total_slides: int,
    start: int,
    end: int,
) -> list[dict[str, Any]]:
    raw = llm.generate_json(
        deck_structure_prompt(transcript, total_slides=total_slides, start_slide=start, end_slide=end),
        LLMGenerationParams(temperature=0.7, max_tokens=4000),
        context=f"deck_slides_{start}_{end}",
    )
    items = raw.get("slides") if isinstance(raw, dict) else raw
    if not isinstance(items, list):
        raise DeckGenerationError("Deck chunk response did not contain slides")
    return items


def build_deck_slides(
    transcript: TranscriptData,
    *,
    slide_count: int = 55,
    llm: Optional[LLMClient] = None,
) -> list[dict[str, Any]]:
    """Generate a deck in chunks of ten slides. A failed chunk becomes placeholder slides."""
    if slide_count not in TEMPLATE_TYPES:
        raise DeckGenerationError(f"Unsupported slide count: {slide_count}")
    llm = llm or LLMClient()
    slides: list[dict[str, Any]] = []
    for start in range(1, slide_count + 1, CHUNK_SIZE):
        end = min(start + CHUNK_SIZE - 1, slide_count)
        expected = end - start + 1
        try:
            items = _generate_chunk(llm, transcript, total_slides=slide_count, start=start, end=end)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Deck chunk generation failed, using placeholders",
                extra={"start": start, "end": end, "error": str(exc)},
            )
            items = []
        for offset in range(expected):
            slide_number = start + offset
            raw = items[offset] if offset < len(items) else None
            slides.append(normalize_slide(raw, slide_number) if raw is not None else placeholder_slide(slide_number))
    return slides


def generate_deck_structure(
    session: Session,
    *,
    user_id: str,
    project: FunnelProject,
    transcript: TranscriptData,
    transcript_id: Optional[str] = None,
    slide_count: int = 55,
    llm: Optional[LLMClient] = None,
) -> DeckStructure:
    slides = build_deck_slides(transcript, slide_count=slide_count, llm=llm)
    pending = sum(1 for slide in slides if slide["section"] == PENDING_SECTION)
    if pending == len(slides):
        raise DeckGenerationError("Deck generation failed for every slide")
    deck = DeckStructuresRepository(session).create(
        user_id=user_id,
        project_id=project.id,
        transcript_id=transcript_id,
        slides=slides,
        template_type=TEMPLATE_TYPES[slide_count],
        sections=section_counts(slides),
        metadata_json={"title": project.name, "pending_slides": pending},
    )
    logger.info(
        "Generated deck structure",
        extra={"project_id": project.id, "deck_id": deck.id, "slides": len(slides), "pending": pending},
    )
    return deck


def update_deck_slides(session: Session, deck: DeckStructure, slides: list[dict[str, Any]]) -> DeckStructure:
    ordered = renumber_slides(slides)
    return DeckStructuresRepository(session).update(deck, slides=ordered, sections=section_counts(ordered))


def generate_talk_track(
    session: Session,
    *,
    user_id: str,
    deck: DeckStructure,
    llm: Optional[LLMClient] = None,
) -> TalkTrack:
    llm = llm or LLMClient()
    raw = llm.generate_json(
        talk_track_prompt(deck.slides or []),
        LLMGenerationParams(temperature=0.7, max_tokens=8000),
        context="talk_track",
    )
    items = raw.get("slides") if isinstance(raw, dict) else None
    if not isinstance(items, list) or not items:
        raise DeckGenerationError("Talk track response contained no slides")

    timings: list[dict[str, Any]] = []
    scripts: list[str] = []
    for index, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            continue
        script = coerce_to_string(item.get("script")) or ""
        slide_number = int(coerce_to_number(item.get("slideNumber")) or index)
        duration = int(coerce_to_number(item.get("duration")) or 0)
        timings.append(
            {
                "slideNumber": slide_number,
                "duration": duration,
                "notes": coerce_to_string(item.get("notes")),
            }
        )
        scripts.append(f"[Slide {slide_number}]\n{script}")

    total = int(coerce_to_number(raw.get("totalDuration")) or sum(item["duration"] for item in timings))
    return TalkTracksRepository(session).create(
        user_id=user_id,
        project_id=deck.funnel_project_id,
        deck_id=deck.id,
        content="\n\n".join(scripts),
        slide_timings=timings,
        total_duration=total,
    )
