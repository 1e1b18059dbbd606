"""Funnel map node catalogue: definitions, pathway sequences and completion helpers."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from funnel_builder.db.enums import FunnelNodeTypeEnum as Node
from funnel_builder.db.enums import PathwayTypeEnum

FIELD_TYPES = ("text", "textarea", "list", "pricing", "select", "datetime")
CONDITIONAL_ACCESS_TYPES = ("live", "scheduled")


@dataclass(frozen=True)
class NodeField:
    key: str
    label: str
    type: str = "text"
    required: bool = False
    options: tuple[tuple[str, str], ...] = ()
    help_text: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "key": self.key,
            "label": self.label,
            "type": self.type,
            "required": self.required,
        }
        if self.options:
            payload["options"] = [{"value": value, "label": label} for value, label in self.options]
        if self.help_text:
            payload["helpText"] = self.help_text
        return payload


@dataclass(frozen=True)
class Benchmark:
    metric_name: str
    description: str
    low: float
    median: float
    high: float
    elite: float


@dataclass(frozen=True)
class NodeDefinition:
    node_type: Node
    title: str
    description: str
    pathways: tuple[PathwayTypeEnum, ...]
    fields: tuple[NodeField, ...]
    framework: Optional[str] = None
    conditional: bool = False

    def is_visible(self, registration_config: Optional[Mapping[str, Any]]) -> bool:
        if not self.conditional:
            return True
        access_type = (registration_config or {}).get("access_type")
        return access_type in CONDITIONAL_ACCESS_TYPES

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.node_type.value,
            "title": self.title,
            "description": self.description,
            "pathways": [pathway.value for pathway in self.pathways],
            "fields": [item.to_payload() for item in self.fields],
            "isConditional": self.conditional,
        }
        if self.framework:
            payload["framework"] = self.framework
        return payload


BOTH = (PathwayTypeEnum.direct_purchase, PathwayTypeEnum.book_call)
CALL_ONLY = (PathwayTypeEnum.book_call,)
SEVEN_PS = "7 Ps Framework"


def _f(key: str, label: str, type_: str = "text", *, required: bool = False, **extra: Any) -> NodeField:
    return NodeField(key=key, label=label, type=type_, required=required, **extra)


def _seven_ps_fields(*, detailed: bool) -> tuple[NodeField, ...]:
    if detailed:
        return (
            _f("promise", "Promise - Additional outcome", "textarea"),
            _f("person", "Person - Who needs this upgrade?", "textarea"),
            _f("problem", "Problem - What gap does this fill?", "textarea"),
            _f("product", "Product - What do they get?", "textarea"),
            _f("process", "Process - How does it enhance results?", "textarea"),
            _f("proof", "Proof - Success stories", "textarea"),
        )
    return tuple(
        _f(key, key.capitalize(), "textarea") for key in ("promise", "person", "problem", "product", "process", "proof")
    )


NODE_DEFINITIONS: dict[Node, NodeDefinition] = {
    definition.node_type: definition
    for definition in (
        NodeDefinition(
            Node.traffic_source,
            "Traffic Source",
            "Where your ideal customers come from",
            BOTH,
            (
                _f(
                    "primary_source",
                    "Primary Traffic Source",
                    "select",
                    options=(
                        ("facebook_ads", "Facebook/Instagram Ads"),
                        ("google_ads", "Google Ads"),
                        ("youtube_ads", "YouTube Ads"),
                        ("organic_social", "Organic Social Media"),
                        ("email_list", "Email List"),
                        ("affiliates", "Affiliate Partners"),
                        ("organic_search", "Organic Search (SEO)"),
                        ("podcast", "Podcast"),
                        ("other", "Other"),
                    ),
                ),
                _f("audience_targeting", "Audience Targeting", "textarea"),
                _f("ad_angle", "Ad Angle / Hook", "textarea"),
                _f("traffic_budget", "Monthly Ad Budget"),
            ),
        ),
        NodeDefinition(
            Node.registration,
            "Registration Page",
            "Where visitors sign up for your masterclass",
            BOTH,
            (
                _f(
                    "access_type",
                    "Access Type",
                    "select",
                    required=True,
                    options=(
                        ("immediate", "Immediate Access (On-Demand)"),
                        ("live", "Live Event"),
                        ("scheduled", "Scheduled Replay"),
                    ),
                    help_text="Live and scheduled events add a confirmation page.",
                ),
                _f("event_datetime", "Event Date & Time", "datetime"),
                _f("headline", "Main Headline", required=True),
                _f("subheadline", "Subheadline"),
                _f("bullet_points", "Key Benefits", "list", help_text="3-5 compelling reasons to attend"),
                _f("social_proof", "Social Proof Element", "textarea"),
                _f("cta_text", "Call-to-Action Button Text"),
            ),
        ),
        NodeDefinition(
            Node.registration_confirmation,
            "Registration Confirmation",
            "Confirmation page for live/scheduled events",
            BOTH,
            (
                _f("confirmation_headline", "Confirmation Headline", required=True),
                _f("confirmation_message", "Confirmation Message", "textarea"),
                _f("calendar_instructions", "Calendar Instructions", "textarea"),
                _f("pre_event_content", "Pre-Event Content", "textarea"),
                _f("share_prompt", "Social Share Prompt"),
            ),
            conditional=True,
        ),
        NodeDefinition(
            Node.masterclass,
            "Watch Masterclass",
            "The strategic heart - your presentation content",
            BOTH,
            (
                _f("title", "Masterclass Title", required=True),
                _f("promise", "The Big Promise", "textarea"),
                _f("hook", "Opening Hook", "textarea"),
                _f("origin_story", "Your Origin Story", "textarea"),
                _f("content_pillars", "3 Key Steps/Secrets", "list"),
                _f("poll_questions", "Engagement Poll Questions", "list"),
                _f("belief_shifts", "Belief Shifts", "textarea"),
                _f("transition_to_offer", "Transition to Offer", "textarea"),
                _f("offer_messaging", "Offer Messaging Preview", "textarea"),
            ),
            framework="Perfect Webinar Framework",
        ),
        NodeDefinition(
            Node.core_offer,
            "Core Offer Enrollment",
            "Present your offer using the 7 Ps framework",
            BOTH,
            (
                _f("promise", "Promise - What outcome do you guarantee?", "textarea", required=True),
                _f("person", "Person - Who is this specifically for?", "textarea"),
                _f("problem", "Problem - What painful problem does this solve?", "textarea"),
                _f("product", "Product - What exactly do they get?", "textarea"),
                _f("process", "Process - How does the transformation work?", "textarea"),
                _f("proof", "Proof - What results have others achieved?", "textarea"),
                _f("price", "Price", "pricing"),
                _f("guarantee", "Guarantee", "textarea"),
                _f("urgency", "Urgency/Scarcity Element"),
                _f("bonuses", "Bonuses", "list"),
            ),
            framework=SEVEN_PS,
        ),
        NodeDefinition(
            Node.checkout,
            "Checkout Page",
            "Secure payment processing",
            BOTH,
            (
                _f("headline", "Checkout Headline"),
                _f("order_summary", "Order Summary Text", "textarea"),
                _f("guarantee_reminder", "Guarantee Reminder", "textarea"),
                _f("urgency_element", "Urgency/Scarcity Element"),
                _f("trust_elements", "Trust Elements", "list"),
                _f("payment_options", "Payment Options", "textarea"),
            ),
        ),
        NodeDefinition(
            Node.order_bump,
            "Order Bump",
            "One-click add-on at checkout",
            BOTH,
            (
                _f("headline", "Order Bump Headline", required=True),
                _f("description", "Description", "textarea"),
                _f("promise", "Promise"),
                _f("price", "Price", "pricing"),
                _f("original_value", "Original Value"),
            ),
            framework=SEVEN_PS,
        ),
        NodeDefinition(
            Node.upsell_1,
            "Upsell 1",
            "Primary upsell offer after purchase",
            BOTH,
            (
                _f("headline", "Upsell Headline", required=True),
                *_seven_ps_fields(detailed=True),
                _f("price", "Price", "pricing"),
                _f("time_limit", "Time Limit"),
            ),
            framework=SEVEN_PS,
        ),
        NodeDefinition(
            Node.upsell_2,
            "Upsell 2",
            "Secondary upsell or downsell offer",
            BOTH,
            (
                _f("headline", "Upsell Headline", required=True),
                *_seven_ps_fields(detailed=False),
                _f("price", "Price", "pricing"),
                _f(
                    "is_downsell",
                    "Offer as Downsell?",
                    "select",
                    options=(("no", "No - Show as Upsell"), ("yes", "Yes - Show if Upsell 1 declined")),
                ),
            ),
            framework=SEVEN_PS,
        ),
        NodeDefinition(
            Node.call_booking,
            "Call Booking",
            "Schedule a call with your sales team",
            CALL_ONLY,
            (
                _f("booking_headline", "Booking Page Headline"),
                _f("call_description", "What to Expect on the Call", "textarea"),
                _f(
                    "call_duration",
                    "Call Duration",
                    "select",
                    options=tuple((value, f"{value} minutes") for value in ("15", "30", "45", "60")),
                ),
                _f("qualification_questions", "Pre-Call Qualification Questions", "list"),
                _f(
                    "calendar_type",
                    "Calendar Integration",
                    "select",
                    options=(
                        ("calendly", "Calendly"),
                        ("acuity", "Acuity Scheduling"),
                        ("hubspot", "HubSpot Meetings"),
                        ("custom", "Custom Integration"),
                    ),
                ),
                _f("calendar_url", "Calendar URL"),
            ),
        ),
        NodeDefinition(
            Node.call_booking_confirmation,
            "Call Booking Confirmation",
            "Confirmation after booking a sales call",
            CALL_ONLY,
            (
                _f("confirmation_headline", "Confirmation Headline", required=True),
                _f("confirmation_message", "Confirmation Message", "textarea"),
                _f("preparation_steps", "How to Prepare for the Call", "list"),
                _f("pre_call_content", "Pre-Call Content", "textarea"),
                _f("what_to_bring", "What to Bring/Have Ready", "list"),
            ),
        ),
        NodeDefinition(
            Node.sales_call,
            "Sales Call",
            "Close high-ticket offers on the call",
            CALL_ONLY,
            (
                _f("call_script_outline", "Call Script Outline", "textarea"),
                _f("discovery_questions", "Discovery Questions", "list"),
                _f("objection_handlers", "Key Objection Handlers", "list"),
                _f("close_technique", "Closing Technique", "textarea"),
                _f("follow_up_sequence", "Follow-up Sequence", "textarea"),
            ),
        ),
        NodeDefinition(
            Node.thank_you,
            "Thank You Page",
            "Post-purchase confirmation and next steps",
            BOTH,
            (
                _f("headline", "Thank You Headline"),
                _f("confirmation_message", "Confirmation Message", "textarea"),
                _f("next_steps", "Next Steps", "list"),
                _f("access_instructions", "Access Instructions", "textarea"),
                _f("community_invite", "Community Invitation", "textarea"),
                _f("share_prompt", "Social Share Prompt"),
            ),
        ),
    )
}

PATHWAY_SEQUENCES: dict[PathwayTypeEnum, tuple[Node, ...]] = {
    PathwayTypeEnum.direct_purchase: (
        Node.traffic_source,
        Node.registration,
        Node.registration_confirmation,
        Node.masterclass,
        Node.core_offer,
        Node.checkout,
        Node.order_bump,
        Node.upsell_1,
        Node.upsell_2,
        Node.thank_you,
    ),
    PathwayTypeEnum.book_call: (
        Node.traffic_source,
        Node.registration,
        Node.registration_confirmation,
        Node.masterclass,
        Node.core_offer,
        Node.call_booking,
        Node.call_booking_confirmation,
        Node.sales_call,
        Node.checkout,
        Node.order_bump,
        Node.upsell_1,
        Node.upsell_2,
        Node.thank_you,
    ),
}

# (node, pathway or None for all pathways) -> benchmark
BENCHMARKS: dict[tuple[Node, Optional[PathwayTypeEnum]], Benchmark] = {
    (Node.registration, None): Benchmark("landing_page_conversion", "Visitors who register for masterclass", 15, 25, 40, 55),
    (Node.masterclass, None): Benchmark("show_up_rate", "Registrants who watch masterclass", 20, 35, 50, 70),
    (Node.core_offer, PathwayTypeEnum.direct_purchase): Benchmark(
        "offer_click_rate", "Viewers who click to offer page", 10, 20, 35, 50
    ),
    (Node.core_offer, PathwayTypeEnum.book_call): Benchmark(
        "offer_click_rate", "Viewers who click to book call", 5, 12, 22, 35
    ),
    (Node.checkout, PathwayTypeEnum.direct_purchase): Benchmark(
        "sales_conversion", "Offer viewers who purchase", 2, 5, 10, 18
    ),
    (Node.call_booking, PathwayTypeEnum.book_call): Benchmark(
        "booking_rate", "Offer viewers who book a call", 8, 15, 25, 40
    ),
    (Node.sales_call, PathwayTypeEnum.book_call): Benchmark("close_rate", "Booked calls that close", 15, 25, 40, 60),
    (Node.upsell_1, None): Benchmark("upsell_take_rate", "Buyers who accept upsell 1", 10, 20, 35, 50),
    (Node.upsell_2, None): Benchmark("upsell_take_rate", "Upsell 1 buyers who accept upsell 2", 8, 15, 25, 40),
    (Node.order_bump, None): Benchmark("bump_take_rate", "Checkout visitors who add order bump", 20, 35, 50, 65),
}

_PLACEHOLDER_PATTERNS = (
    re.compile(r"\[.*\]"),
    re.compile(r"lorem ipsum", re.IGNORECASE),
    re.compile(r"placeholder", re.IGNORECASE),
    re.compile(r"TODO", re.IGNORECASE),
    re.compile(r"TBD", re.IGNORECASE),
)


def get_node_definition(node_type: Node) -> NodeDefinition:
    return NODE_DEFINITIONS[Node(node_type)]


def get_nodes_for_pathway(
    pathway: PathwayTypeEnum,
    registration_config: Optional[Mapping[str, Any]] = None,
) -> list[NodeDefinition]:
    """Ordered node definitions for a pathway, hiding conditional nodes whose condition fails."""
    return [
        NODE_DEFINITIONS[node_type]
        for node_type in PATHWAY_SEQUENCES[PathwayTypeEnum(pathway)]
        if NODE_DEFINITIONS[node_type].is_visible(registration_config)
    ]


def get_benchmark(node_type: Node, pathway: PathwayTypeEnum) -> Optional[Benchmark]:
    return BENCHMARKS.get((node_type, pathway)) or BENCHMARKS.get((node_type, None))


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def calculate_approval_progress(nodes: Iterable[Any]) -> dict[str, int]:
    items = list(nodes)
    approved = sum(1 for node in items if node.is_approved)
    total = len(items)
    percentage = _round_half_up(approved / total * 100) if total else 0
    return {"approved": approved, "total": total, "percentage": percentage}


def _is_filled(value: Any) -> bool:
    if isinstance(value, (list, tuple)):
        return len(value) > 0
    if isinstance(value, str):
        return bool(value.strip())
    return value is not None


def calculate_field_completion(content: Mapping[str, Any], fields: Iterable[NodeField]) -> int:
    fields = list(fields)
    if not fields:
        return 100
    filled = sum(1 for item in fields if _is_filled((content or {}).get(item.key)))
    return _round_half_up(filled / len(fields) * 100)


def validate_draft_quality(content: Mapping[str, Any], fields: Iterable[NodeField]) -> list[dict[str, str]]:
    issues: list[dict[str, str]] = []
    content = content or {}
    for item in fields:
        value = content.get(item.key)
        if item.required and (not value or (isinstance(value, str) and not value.strip())):
            issues.append({"field": item.key, "issue": "empty", "message": f"{item.label} is required but empty"})
            continue
        if not isinstance(value, str):
            continue
        stripped = value.strip()
        if 0 < len(stripped) < 10 and item.type == "textarea":
            issues.append({"field": item.key, "issue": "too_short", "message": f"{item.label} seems too brief"})
        if any(pattern.search(value) for pattern in _PLACEHOLDER_PATTERNS):
            issues.append(
                {"field": item.key, "issue": "placeholder", "message": f"{item.label} contains placeholder text"}
            )
    return issues
