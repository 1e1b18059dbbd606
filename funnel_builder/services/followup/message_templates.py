"""Segment-aware follow-up copy.

Each getter returns the subject, body and CTA for one message slot. Placeholders use
single-brace tokens and are resolved per prospect when deliveries are scheduled.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Literal

from funnel_builder.db.enums import ChannelEnum

Position = Literal["early", "middle", "late"]

MESSAGE_TYPES = (
    "opening",
    "value_story",
    "social_proof",
    "objection",
    "offer_recap",
    "urgency",
    "closing",
    "sms_checkin",
)


@dataclass(frozen=True)
class SegmentPersonalization:
    tone: str
    cta_focus: str
    length: str
    emphasis: str


@dataclass(frozen=True)
class MessageTemplate:
    type: str
    channel: ChannelEnum
    subject_line: str
    body: str
    cta_text: str
    cta_url: str


SEGMENT_RULES: dict[str, SegmentPersonalization] = {
    "no_show": SegmentPersonalization(
        tone="gentle, curious",
        cta_focus="watch_replay",
        length="long",
        emphasis="Value of the content they missed and the key takeaways",
    ),
    "skimmer": SegmentPersonalization(
        tone="curiosity-building",
        cta_focus="complete_watch",
        length="medium",
        emphasis="What they will discover in the rest of the session",
    ),
    "sampler": SegmentPersonalization(
        tone="value reinforcement",
        cta_focus="complete_watch",
        length="medium",
        emphasis="Build on what they have already seen",
    ),
    "engaged": SegmentPersonalization(
        tone="conversion-focused",
        cta_focus="book_call",
        length="short",
        emphasis="Remove objections and show the path forward",
    ),
    "hot": SegmentPersonalization(
        tone="urgent, direct",
        cta_focus="claim_offer",
        length="short",
        emphasis="ROI, deadline and bonus",
    ),
}


def segment_rules(segment: str) -> SegmentPersonalization:
    return SEGMENT_RULES.get(segment, SEGMENT_RULES["sampler"])


def is_high_intent(segment: str) -> bool:
    return segment in ("engaged", "hot")


def _email(type_: str, subject: str, body: str, cta_text: str, cta_url: str) -> MessageTemplate:
    return MessageTemplate(
        type=type_,
        channel=ChannelEnum.email,
        subject_line=subject,
        body=body,
        cta_text=cta_text,
        cta_url=cta_url,
    )


def _sms(body: str) -> MessageTemplate:
    return MessageTemplate(
        type="sms_checkin",
        channel=ChannelEnum.sms,
        subject_line="",
        body=body,
        cta_text="",
        cta_url="",
    )


def get_opening_template(segment: str) -> MessageTemplate:
    if segment == "no_show":
        return _email(
            "opening",
            "{first_name}, here's what you missed from {webinar_title}",
            "Hey {first_name},\n\n"
            "You signed up for {webinar_title} but couldn't make it live. That happens.\n\n"
            "I pulled together the three takeaways that speak most directly to {challenge_notes}:\n\n"
            "1. The framework from the first fifteen minutes\n"
            "2. The live walkthrough of solving {challenge_notes}\n"
            "3. The next steps everyone asked about afterwards\n\n"
            "The ten-minute highlight reel covers all three. Reply \"SEND IT\" and it's yours.\n\n"
            "Talk soon!",
            "Watch 10-Minute Highlights",
            "{replay_link}",
        )
    if segment == "skimmer":
        return _email(
            "opening",
            "Quick question about {webinar_title}, {first_name}",
            "Hey {first_name},\n\n"
            "Thanks for dropping into {webinar_title}. You caught about {watch_pct}% of it.\n\n"
            "You mentioned {challenge_notes} when you registered, and the answer to that came up "
            "shortly after the {minutes_watched}-minute mark.\n\n"
            "That part runs about seven minutes and maps straight onto {goal_notes}.\n\n"
            "The full replay is here if you'd like the whole picture: {replay_link}\n\n"
            "Which would help more?",
            "Watch Key Segment",
            "{replay_link}",
        )
    if is_high_intent(segment):
        return _email(
            "opening",
            "Quick follow-up on {webinar_title}, {first_name}",
            "Hey {first_name},\n\n"
            "Thanks for watching {webinar_title}. Staying for {watch_pct}% tells me this lines up "
            "with {goal_notes}.\n\n"
            "One question: after what you saw about {challenge_notes}, what is the single thing you "
            "want to change in the next 30 days?\n\n"
            "Reply and I'll shape a plan around your answer.\n\n"
            "Looking forward to it!",
            "Let's Talk",
            "{next_step}",
        )
    return _email(
        "opening",
        "About that {webinar_title} session, {first_name}",
        "Hey {first_name},\n\n"
        "Thanks for watching part of {webinar_title}. You saw about {watch_pct}% and said you're "
        "working on {challenge_notes}.\n\n"
        "You've got the foundation. The next section covers {goal_notes} step by step, and it's "
        "where everything clicks.\n\n"
        "Here's the complete replay: {replay_link}\n\n"
        "Let me know what would help most!",
        "Complete The Training",
        "{replay_link}",
    )


def get_value_story_template(segment: str) -> MessageTemplate:
    return _email(
        "value_story",
        "How {client_name} solved {challenge_notes} in weeks",
        "Hey {first_name},\n\n"
        "A short story that may sound familiar if {challenge_notes} is on your plate.\n\n"
        "{client_name} was working toward {goal_notes} and kept hitting the same wall you described.\n\n"
        "They took the framework from {webinar_title} and started with the first step only. "
        "No overhaul, one focused action.\n\n"
        "Eighteen days later: {specific_result}\n\n"
        "What surprised them was how simple the path looked once the framework was in place.\n\n"
        "Want me to map how this applies to your situation?",
        "Yes, Map It Out" if is_high_intent(segment) else "Learn More",
        "{next_step}",
    )


def get_social_proof_template(segment: str) -> MessageTemplate:
    return _email(
        "social_proof",
        "Real results from people like you, {first_name}",
        "Hey {first_name},\n\n"
        "Three people from last month's group came in with the same challenge you mentioned, "
        "{challenge_notes}.\n\n"
        "One was skeptical about {goal_notes} until the framework made it click. Results in four weeks.\n"
        "Another said it was exactly the approach they had been missing.\n"
        "The third followed the steps as written and got the promised result.\n\n"
        "That's what the right approach to {challenge_notes} looks like.\n\n"
        "If {goal_notes} matters to you this quarter, let's talk about your situation.",
        "See If This Fits",
        "{next_step}",
    )


def get_objection_template(segment: str) -> MessageTemplate:
    if is_high_intent(segment):
        return _email(
            "objection",
            "Quick ROI math for you, {first_name}",
            "Hey {first_name},\n\n"
            "{goal_notes} deserves a straight conversation about return.\n\n"
            "{offer_name}: {offer_price}\n\n"
            "Staying on the current path keeps {challenge_notes} in place. Implementing the framework "
            "typically pays back within 4 to 8 weeks.\n\n"
            "The real cost is the time spent solving this alone.\n\n"
            "Two options:\n"
            "1. {checkout_url} to enroll and start this week\n"
            "2. {book_call_url} for a 15-minute call to map your situation first\n\n"
            "Which fits you?",
            "Let's Talk ROI",
            "{next_step}",
        )
    return _email(
        "objection",
        "Common questions about {webinar_title}",
        "Hey {first_name},\n\n"
        "A few questions that come up after {webinar_title}:\n\n"
        "Will this work for my situation? If you're facing {challenge_notes} and aiming for "
        "{goal_notes}, yes. The framework adapts to your context.\n\n"
        "How long does it take? First results usually land in 2 to 3 weeks.\n\n"
        "Not sure it's right for you? That's what {book_call_url} is for.\n\n"
        "Want to walk through it together?",
        "Map My Situation",
        "{next_step}",
    )


def get_offer_recap_template(segment: str) -> MessageTemplate:
    high_intent = is_high_intent(segment)
    opener = (
        "Quick reminder: your offer from {webinar_title} expires tomorrow at 11:59 PM {timezone}."
        if high_intent
        else "Based on your goal of {goal_notes}, here's what {offer_name} includes:"
    )
    deadline = "\nDeadline: tomorrow 11:59 PM {timezone}\n" if high_intent else ""
    return _email(
        "offer_recap",
        "Your offer expires tomorrow, {first_name}" if high_intent else "Here's what you get with {offer_name}",
        "Hey {first_name},\n\n"
        f"{opener}\n\n"
        "What you get:\n"
        "- The complete {webinar_title} framework\n"
        "- A step-by-step plan for {challenge_notes}\n"
        "- Ready-to-use templates and resources\n"
        "- {bonuses}\n\n"
        "Investment: {offer_price}\n"
        f"{deadline}\n"
        "Guarantee: {guarantee_terms}\n\n"
        "Two ways forward:\n"
        "1. {checkout_url} to enroll now\n"
        "2. {book_call_url} to ask questions first",
        "Enroll Before Deadline" if high_intent else "Review Full Details",
        "{checkout_url}",
    )


def get_urgency_template(segment: str) -> MessageTemplate:
    return _email(
        "urgency",
        "Last call: {offer_name} deadline tonight",
        "Hey {first_name},\n\n"
        "Your access to {offer_name} closes tonight at 11:59 PM {timezone}.\n\n"
        "After that the bonuses are gone and pricing returns to standard.\n\n"
        "You watched {watch_pct}% of {webinar_title}, so you've seen the framework work for "
        "{challenge_notes}.\n\n"
        "Enroll now: {checkout_url}\n"
        "Questions first: {book_call_url}",
        "Claim This Now",
        "{checkout_url}",
    )


def get_closing_template(segment: str) -> MessageTemplate:
    if is_high_intent(segment):
        closer = (
            "You've seen it work. The only question left is whether you're ready to implement it."
            if segment == "hot"
            else "The path forward is clear."
        )
        return _email(
            "closing",
            "Our mission + your next step, {first_name}",
            "Hey {first_name},\n\n"
            "I built {offer_name} because too many people spend months on {challenge_notes} when the "
            "right framework solves it in weeks.\n\n"
            f"You want {{goal_notes}}. You watched {{watch_pct}}% of the training. {closer}\n\n"
            "1. {checkout_url} to enroll and start this week\n"
            "2. {book_call_url} for one final call\n\n"
            "If this is your moment, I'm here to help.",
            "Let's Do This",
            "{next_step}",
        )
    next_line = (
        "If you want the full picture, here's the replay: {replay_link}"
        if segment in ("no_show", "skimmer")
        else "If you want help applying this to your situation, I'm here: {next_step}"
    )
    return _email(
        "closing",
        "Final thoughts on {webinar_title}, {first_name}",
        "Hey {first_name},\n\n"
        "Thanks for spending time with {webinar_title}.\n\n"
        "{challenge_notes} is solvable and {goal_notes} is within reach with the right framework.\n\n"
        f"{next_line}\n\n"
        "Keep moving forward.",
        "Explore Options",
        "{next_step}",
    )


def get_sms_checkin_template(segment: str, position: Position) -> MessageTemplate:
    if position == "early":
        return _sms(
            "{first_name}, thanks for joining {webinar_title}. Want the 7-min summary or the full "
            "breakdown? Reply 1 for summary, 2 for full."
        )
    if position == "middle":
        return _sms(
            "Hey {first_name}, quick q: based on {challenge_notes}, want the exact next step you "
            "should take? Reply YES and I'll text it."
        )
    if is_high_intent(segment):
        return _sms(
            "{first_name}, the offer ends tonight at 11:59 PM. Want the enroll link or one quick "
            "answer first? Reply L for link, Q for question."
        )
    return _sms(
        "{first_name}, {offer_name} closes soon. Want to talk through whether it fits? Reply YES "
        "for the calendar link."
    )


TEMPLATE_GETTERS: dict[str, Callable[[str], MessageTemplate]] = {
    "opening": get_opening_template,
    "value_story": get_value_story_template,
    "social_proof": get_social_proof_template,
    "objection": get_objection_template,
    "offer_recap": get_offer_recap_template,
    "urgency": get_urgency_template,
    "closing": get_closing_template,
}


def get_template(message_type: str, segment: str, position: Position = "middle") -> MessageTemplate:
    if message_type == "sms_checkin":
        return get_sms_checkin_template(segment, position)
    getter = TEMPLATE_GETTERS.get(message_type)
    if getter is None:
        raise ValueError(f"Unknown message type: {message_type}")
    return getter(segment)
