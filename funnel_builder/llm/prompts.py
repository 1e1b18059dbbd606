from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any, Optional

from funnel_builder.llm.client import ChatMessage


DECK_SECTIONS = ("hook", "problem", "agitate", "solution", "offer", "close")
BUSINESS_CONTEXT_CHARS = 1500
REGISTRATION_TOPIC_LIMIT = 8
DEFAULT_WATCH_MINUTES = 15

FOLLOWUP_TOKENS = (
    "first_name",
    "watch_pct",
    "minutes_watched",
    "challenge_notes",
    "goal_notes",
    "objection_hint",
    "offer_click",
    "timezone",
    "replay_link",
    "next_step",
    "checkout_url",
    "book_call_url",
)

_SEGMENT_GUIDANCE: dict[str, dict[str, str]] = {
    "no_show": {
        "focus": "Re-engage gently and build curiosity about what they missed",
        "tone": "Warm and inviting with no pressure",
        "cta": "Watch the replay or the key highlights",
    },
    "skimmer": {
        "focus": "Show the value they started to discover",
        "tone": "Encouraging and intriguing",
        "cta": "Finish watching or jump to the key moments",
    },
    "sampler": {
        "focus": "Reinforce value and encourage completion before a soft ask",
        "tone": "Supportive and value-focused",
        "cta": "Finish watching, then decide",
    },
    "engaged": {
        "focus": "Move toward conversion and answer objections",
        "tone": "Professional and consultative",
        "cta": "Book a call or enroll",
    },
    "hot": {
        "focus": "Direct conversion backed by social proof",
        "tone": "Confident and urgent",
        "cta": "Enroll now or book immediately",
    },
}


@dataclass
class TranscriptData:
    transcript_text: str
    extracted_data: dict[str, Any] = field(default_factory=dict)


@dataclass
class DeckContext:
    title: str
    main_promise: str = ""
    key_points: list[str] = field(default_factory=list)
    pain_points: list[str] = field(default_factory=list)
    solutions: list[str] = field(default_factory=list)


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text or "") / 4)


def _numbered(items: list[str]) -> str:
    return "\n".join(f"{idx}. {item}" for idx, item in enumerate(items, start=1)) or "(none)"


def _extracted_block(label: str, transcript: TranscriptData) -> str:
    if not transcript.extracted_data:
        return ""
    return f"{label}:\n{json.dumps(transcript.extracted_data, indent=2)}"


def segment_guidance(segment: str) -> dict[str, str]:
    return _SEGMENT_GUIDANCE.get(segment, _SEGMENT_GUIDANCE["engaged"])


def deck_structure_prompt(
    transcript: TranscriptData,
    *,
    total_slides: int,
    start_slide: int = 1,
    end_slide: Optional[int] = None,
) -> list[ChatMessage]:
    end_slide = end_slide or total_slides
    system = (
        f"You design persuasive {total_slides}-slide webinar decks. "
        "Every deck follows the arc hook, problem, agitate, solution, offer, close.\n\n"
        "For each slide provide a slide number, a punchy title of at most 8 words, "
        "a 1-2 sentence description of the slide content and visuals, and the section it belongs to. "
        "Keep it emotional, story-driven and focused on building desire."
    )
    user = (
        f"Using this intake transcript, write slides {start_slide} through {end_slide} "
        f"of a {total_slides}-slide deck.\n\n"
        f"TRANSCRIPT:\n{transcript.transcript_text}\n\n"
        f"{_extracted_block('EXTRACTED KEY INFO', transcript)}\n\n"
        'Return JSON shaped as {"slides": [{"slideNumber": 1, "title": "...", '
        '"description": "...", "section": "hook"}]}.\n'
        f"section must be one of: {', '.join(DECK_SECTIONS)}. "
        "Spread slides across sections roughly as hook 5-10, problem 8-12, agitate 5-8, "
        "solution 15-20, offer 8-12, close 5-8, scaled to the deck length."
    )
    return [ChatMessage("system", system), ChatMessage("user", user)]


def offer_prompt(transcript: TranscriptData, pricing: Optional[dict[str, Any]] = None) -> list[ChatMessage]:
    system = (
        "You are an offer strategist who builds offers with the 7 P's framework:\n"
        "1. Price: an investment that feels small next to the transformation.\n"
        "2. Promise: a specific, measurable outcome the client wants.\n"
        "3. Person: one narrowly defined ideal client with one core problem.\n"
        "4. Process: the unique method that delivers the outcome.\n"
        "5. Purpose: the mission behind the offer.\n"
        "6. Pathway: book_call for offers of $2,000 or more, direct_purchase below that.\n"
        "7. Proof: a specific guarantee that reverses the risk.\n\n"
        "Include 3-6 features and 3-5 bonuses."
    )
    known_prices = {key: value for key, value in (pricing or {}).items() if value is not None}
    if known_prices:
        pricing_block = (
            f"PRICING FOUND IN SOURCE: {json.dumps(known_prices)}\n"
            "Anchor the offer on the primary price above."
        )
    else:
        pricing_block = (
            "No pricing was found. Choose a price that reflects the transformation, "
            "the target market and comparable offers."
        )
    user = (
        "Create an offer from this business information.\n\n"
        f"TRANSCRIPT:\n{transcript.transcript_text}\n\n"
        f"{_extracted_block('KEY INFO', transcript)}\n\n"
        f"{pricing_block}\n\n"
        "Return JSON with keys: name, tagline, price (number), currency, promise, person, process, "
        "purpose, pathway (book_call or direct_purchase), features (list of 3-6 strings), "
        "bonuses (list of 3-5 strings), guarantee."
    )
    return [ChatMessage("system", system), ChatMessage("user", user)]


def enrollment_copy_prompt(
    offer: dict[str, Any],
    transcript: TranscriptData,
    page_type: str = "direct_purchase",
) -> list[ChatMessage]:
    direct = page_type == "direct_purchase"
    page_label = "a DIRECT PURCHASE page for an offer under $2k" if direct else "a BOOK CALL page for an offer of $2k or more"
    closing_focus = (
        "Add urgency and a strong purchase call to action."
        if direct
        else "Explain the value of the call, what happens on it, and invite them to book a strategy session."
    )
    system = (
        f"You are a direct response copywriter writing {page_label}. "
        "Write a curiosity-driven headline, an outcome-focused subheadline, a problem-aware opening, "
        "clear transformation-led benefits and social proof framing. "
        f"{closing_focus} Keep the voice conversational and authentic."
    )
    user = (
        f"OFFER:\n{json.dumps(offer, indent=2, default=str)}\n\n"
        f"BUSINESS CONTEXT:\n{transcript.transcript_text[:BUSINESS_CONTEXT_CHARS]}...\n\n"
        "Return JSON with keys: headline, subheadline, opening, "
        "problemSection {heading, content}, solutionSection {heading, content}, featuresHeading, "
        f"ctaText ({'purchase button text' if direct else 'low-friction booking button text'}), "
        f"urgencyText ({'urgency statement' if direct else 'gentle reason to book now'})."
    )
    return [ChatMessage("system", system), ChatMessage("user", user)]


def talk_track_prompt(slides: list[dict[str, Any]]) -> list[ChatMessage]:
    system = (
        "You coach presenters and write spoken scripts for webinar decks. "
        "Write 2-4 conversational sentences per slide with smooth transitions, "
        "15-30 seconds per slide, and a total of roughly 15-20 minutes."
    )
    user = (
        f"Write the talk track for this {len(slides)}-slide deck:\n"
        f"{json.dumps(slides, indent=2)}\n\n"
        'Return JSON shaped as {"totalDuration": 1080, "slides": [{"slideNumber": 1, '
        '"script": "...", "duration": 25, "notes": "delivery notes"}]}. '
        "Total duration should land between 900 and 1200 seconds."
    )
    return [ChatMessage("system", system), ChatMessage("user", user)]


def registration_copy_prompt(
    *,
    name: str,
    niche: Optional[str] = None,
    target_audience: Optional[str] = None,
    deck_slides: Optional[list[dict[str, Any]]] = None,
) -> list[ChatMessage]:
    system = (
        "You write registration pages that capture leads. Lead with curiosity, state the benefit plainly, "
        "list five specific things they will discover, build trust, and keep the call to action low-friction. "
        "Create intrigue without giving everything away."
    )
    topics = ""
    if deck_slides:
        titles = [str(slide.get("title", "")).strip() for slide in deck_slides[:REGISTRATION_TOPIC_LIMIT]]
        topics = "KEY TOPICS (from deck):\n" + "\n".join(f"- {title}" for title in titles if title)
    user = (
        f"PROJECT: {name}\n"
        f"NICHE: {niche or 'Not specified'}\n"
        f"AUDIENCE: {target_audience or 'Not specified'}\n\n"
        f"{topics}\n\n"
        "Return JSON with keys: headline, subheadline, bulletPoints (exactly 5 strings), "
        "ctaText, trustStatement."
    )
    return [ChatMessage("system", system), ChatMessage("user", user)]


def watch_copy_prompt(
    *,
    name: str,
    niche: Optional[str] = None,
    video_duration_seconds: Optional[int] = None,
) -> list[ChatMessage]:
    minutes = video_duration_seconds // 60 if video_duration_seconds else DEFAULT_WATCH_MINUTES
    system = (
        "You write video landing pages that get people to press play, watch to the end "
        "and take the next step."
    )
    user = (
        f"PROJECT: {name}\n"
        f"NICHE: {niche or 'Not specified'}\n"
        f"VIDEO LENGTH: {minutes} minutes\n\n"
        "Return JSON with keys: headline, subheadline, watchPrompt, ctaText, ctaSubtext."
    )
    return [ChatMessage("system", system), ChatMessage("user", user)]


def followup_sequence_prompt(
    deck: DeckContext,
    offer: dict[str, Any],
    segment: str = "engaged",
) -> list[ChatMessage]:
    guidance = segment_guidance(segment)
    tokens = ", ".join("{{" + token + "}}" for token in FOLLOWUP_TOKENS)
    system = (
        "You write post-webinar follow-up emails and SMS messages that sound like one real person "
        "helping another.\n\n"
        f"Use these personalization tokens: {tokens}.\n"
        "Open each email by mirroring {{challenge_notes}} or {{goal_notes}}. Focus on outcomes, use "
        "120-200 word micro-stories to reframe objections, handle {{objection_hint}} without sounding "
        "defensive, match the CTA to intent, and let deadlines support the message rather than lead it.\n\n"
        f"TARGET SEGMENT: {segment.upper()}\n"
        f"Focus: {guidance['focus']}\n"
        f"Tone: {guidance['tone']}\n"
        f"Primary CTA: {guidance['cta']}"
    )
    user = (
        "Write a 5-message follow-up sequence.\n\n"
        f"WEBINAR: {deck.title}\n"
        f"Main promise: {deck.main_promise}\n"
        f"Key points:\n{_numbered(deck.key_points)}\n"
        f"Pain points:\n{_numbered(deck.pain_points)}\n"
        f"Solutions:\n{_numbered(deck.solutions)}\n\n"
        f"OFFER:\n{json.dumps(offer, indent=2, default=str)}\n\n"
        "STRUCTURE:\n"
        "1. Day 0 email (0h): thank you, echo the value, ask a personal question.\n"
        "2. Day 0 SMS (0h): friendly check-in under 160 characters.\n"
        "3. Day 1 email (24h): story that mirrors their challenge with one CTA.\n"
        "4. Day 2 email (48h): offer recap, bonuses, guarantee and the T-1 deadline.\n"
        "5. Day 3 email (72h): why you built this, final call, deadline in {{timezone}}.\n\n"
        'Return JSON shaped as {"sequence_name": "...", "sequence_description": "...", "messages": '
        '[{"name": "...", "message_order": 1, "channel": "email", "send_delay_hours": 0, '
        '"subject_line": "...", "body_content": "...", "tone_notes": "..."}]}. '
        "SMS messages have no subject_line. CTAs should use {{next_step}}, {{checkout_url}}, "
        "{{book_call_url}} or {{replay_link}}."
    )
    return [ChatMessage("system", system), ChatMessage("user", user)]


def funnel_node_draft_prompt(
    *,
    node_title: str,
    node_description: str,
    fields: list[dict[str, Any]],
    business_context: dict[str, Any],
    pathway: str,
    framework: Optional[str] = None,
) -> list[ChatMessage]:
    field_lines = "\n".join(
        f"- {item['key']} ({item['type']}{', required' if item.get('required') else ''}): {item['label']}"
        for item in fields
    )
    system = (
        "You are a funnel strategist drafting the copy for one step of a webinar funnel. "
        "Write specific, benefit-driven content grounded in the business context. "
        "List fields are JSON arrays of strings; pricing fields are numbers."
    )
    if framework:
        system += f"\n\nFramework to follow: {framework}"
    user = (
        f"FUNNEL STEP: {node_title}\n{node_description}\n"
        f"PATHWAY: {pathway}\n\n"
        f"FIELDS:\n{field_lines}\n\n"
        f"BUSINESS CONTEXT:\n{json.dumps(business_context, indent=2, default=str)}\n\n"
        "Return one JSON object whose keys are exactly the field keys above."
    )
    return [ChatMessage("system", system), ChatMessage("user", user)]
