from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from funnel_builder.db.enums import OfferTypeEnum, PathwayTypeEnum
from funnel_builder.db.models import FunnelProject, Offer
from funnel_builder.db.repositories.offers import OffersRepository
from funnel_builder.llm.client import LLMClient, LLMGenerationParams
from funnel_builder.llm.json_recovery import (
    coerce_to_number,
    coerce_to_string,
    coerce_to_string_list,
    extract_pricing,
)
from funnel_builder.llm.prompts import TranscriptData, offer_prompt

logger = logging.getLogger(__name__)

BOOK_CALL_PRICE_THRESHOLD = 2000


class OfferGenerationError(RuntimeError):
    pass


def determine_pathway_from_price(price: Optional[float]) -> PathwayTypeEnum:
    if price is None:
        return PathwayTypeEnum.direct_purchase
    return PathwayTypeEnum.book_call if price >= BOOK_CALL_PRICE_THRESHOLD else PathwayTypeEnum.direct_purchase


def normalize_offer(raw: Any) -> dict[str, Any]:
    """Coerce a model-produced offer into column values."""
    if not isinstance(raw, dict):
        raise OfferGenerationError("Offer response was not an object")
    name = coerce_to_string(raw.get("name"))
    if not name:
        raise OfferGenerationError("Offer response is missing a name")

    price = coerce_to_number(raw.get("price"))
    pathway_raw = coerce_to_string(raw.get("pathway"))
    try:
        pathway = PathwayTypeEnum(pathway_raw) if pathway_raw else determine_pathway_from_price(price)
    except ValueError:
        pathway = determine_pathway_from_price(price)

    return {
        "name": name,
        "tagline": coerce_to_string(raw.get("tagline")),
        "description": coerce_to_string(raw.get("description")),
        "price": price,
        "currency": (coerce_to_string(raw.get("currency")) or "USD").upper()[:8],
        "features": coerce_to_string_list(raw.get("features"), min_items=3, max_items=6),
        "bonuses": coerce_to_string_list(raw.get("bonuses"), max_items=5),
        "guarantee": coerce_to_string(raw.get("guarantee")),
        "promise": coerce_to_string(raw.get("promise")),
        "person": coerce_to_string(raw.get("person")),
        "process": coerce_to_string(raw.get("process")),
        "purpose": coerce_to_string(raw.get("purpose")),
        "pathway": pathway,
    }


def generate_offer(
    session: Session,
    *,
    user_id: str,
    project: FunnelProject,
    transcript: TranscriptData,
    llm: Optional[LLMClient] = None,
) -> Offer:
    llm = llm or LLMClient()
    pricing = extract_pricing(transcript.extracted_data)
    raw = llm.generate_json(
        offer_prompt(transcript, pricing),
        LLMGenerationParams(temperature=0.7, max_tokens=3000),
        context="offer",
    )
    fields = normalize_offer(raw)
    if fields["price"] is None and pricing.get("webinar") is not None:
        fields["price"] = pricing["webinar"]
        fields["pathway"] = determine_pathway_from_price(fields["price"])

    repo = OffersRepository(session)
    offer = repo.create(
        user_id=user_id,
        project_id=project.id,
        offer_type=OfferTypeEnum.main,
        display_order=len(repo.list(project_id=project.id)),
        **fields,
    )
    logger.info(
        "Generated offer",
        extra={"project_id": project.id, "offer_id": offer.id, "pathway": fields["pathway"].value},
    )
    return offer
