from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from funnel_builder.db.base import utcnow
from funnel_builder.db.enums import FunnelNodeStatusEnum, FunnelNodeTypeEnum, PathwayTypeEnum
from funnel_builder.db.models import FunnelNodeData, FunnelProject
from funnel_builder.db.repositories.funnel_map import FunnelMapConfigRepository, FunnelNodesRepository
from funnel_builder.db.repositories.offers import OffersRepository
from funnel_builder.llm.client import LLMClient, LLMGenerationParams
from funnel_builder.llm.json_recovery import coerce_to_number, coerce_to_string, coerce_to_string_list
from funnel_builder.llm.prompts import funnel_node_draft_prompt
from funnel_builder.services.funnel_nodes import (
    NodeDefinition,
    calculate_approval_progress,
    calculate_field_completion,
    get_benchmark,
    get_node_definition,
    get_nodes_for_pathway,
    validate_draft_quality,
)
from funnel_builder.services.intake import combine_intakes
from funnel_builder.services.offers import determine_pathway_from_price

logger = logging.getLogger(__name__)


class FunnelNodeNotFoundError(LookupError):
    pass


def business_context_for_project(session: Session, project: FunnelProject) -> dict[str, Any]:
    context: dict[str, Any] = {
        "project_name": project.name,
        "business_niche": project.business_niche,
        "ideal_customer": project.target_audience,
        "description": project.description,
    }
    intake = combine_intakes(session, project)
    if intake is not None:
        context.update(intake.extracted_data or {})
        context["intake_summary"] = intake.transcript_text[:3000]
    offer = OffersRepository(session).latest(project_id=project.id)
    if offer is not None:
        context.update(
            {
                "offer_name": offer.name,
                "promise_outcome": offer.promise,
                "pricing": {"webinar": offer.price},
                "guarantee": offer.guarantee,
                "bonuses": offer.bonuses,
                "deliverables": offer.features,
            }
        )
    return {key: value for key, value in context.items() if value not in (None, "", [], {})}


def _project_price(session: Session, project: FunnelProject) -> Optional[float]:
    offer = OffersRepository(session).latest(project_id=project.id)
    if offer is not None and offer.price is not None:
        return offer.price
    intake = combine_intakes(session, project)
    pricing = (intake.extracted_data or {}).get("pricing") if intake else None
    if isinstance(pricing, dict):
        return coerce_to_number(pricing.get("webinar")) or coerce_to_number(pricing.get("regular"))
    return None


def coerce_node_content(raw: Any, definition: NodeDefinition) -> dict[str, Any]:
    """Keep only the definition's fields, coerced to each field's type."""
    if not isinstance(raw, dict):
        return {}
    content: dict[str, Any] = {}
    for item in definition.fields:
        if item.key not in raw:
            continue
        value = raw[item.key]
        if item.type == "list":
            content[item.key] = coerce_to_string_list(value)
        elif item.type == "pricing":
            number = coerce_to_number(value)
            content[item.key] = number if number is not None else coerce_to_string(value)
        else:
            content[item.key] = coerce_to_string(value)
    return content


def generate_node_draft(
    definition: NodeDefinition,
    *,
    business_context: dict[str, Any],
    pathway: PathwayTypeEnum,
    llm: LLMClient,
) -> dict[str, Any]:
    raw = llm.generate_json(
        funnel_node_draft_prompt(
            node_title=definition.title,
            node_description=definition.description,
            fields=[item.to_payload() for item in definition.fields],
            business_context=business_context,
            pathway=pathway.value,
            framework=definition.framework,
        ),
        LLMGenerationParams(temperature=0.7, max_tokens=2500),
        context=f"funnel_draft_{definition.node_type.value}",
    )
    return coerce_node_content(raw, definition)


def generate_drafts(
    session: Session,
    *,
    user_id: str,
    project: FunnelProject,
    pathway: Optional[PathwayTypeEnum] = None,
    llm: Optional[LLMClient] = None,
) -> tuple[PathwayTypeEnum, list[dict[str, Any]]]:
    """Draft every node of the pathway. A node whose generation fails gets empty content."""
    llm = llm or LLMClient()
    pathway = PathwayTypeEnum(pathway) if pathway else determine_pathway_from_price(_project_price(session, project))
    business_context = business_context_for_project(session, project)
    repo = FunnelNodesRepository(session)

    drafts: list[dict[str, Any]] = []
    # Conditional nodes are drafted too so they are ready when the access type changes.
    for definition in get_nodes_for_pathway(pathway, {"access_type": "live"}):
        try:
            content = generate_node_draft(definition, business_context=business_context, pathway=pathway, llm=llm)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Funnel node draft failed",
                extra={"project_id": project.id, "node_type": definition.node_type.value, "error": str(exc)},
            )
            content = {}
        repo.upsert_draft(
            project_id=project.id,
            user_id=user_id,
            node_type=definition.node_type,
            draft_content=content,
            pathway_type=pathway,
        )
        drafts.append({"nodeType": definition.node_type.value, "content": content})

    FunnelMapConfigRepository(session).upsert(
        project_id=project.id,
        user_id=user_id,
        pathway_type=pathway,
        drafts_generated=True,
        drafts_generated_at=utcnow(),
    )
    logger.info(
        "Generated funnel drafts",
        extra={"project_id": project.id, "pathway": pathway.value, "nodes": len(drafts)},
    )
    return pathway, drafts


def node_content(node: FunnelNodeData) -> dict[str, Any]:
    return {**(node.draft_content or {}), **(node.refined_content or {})}


def registration_config(nodes: list[FunnelNodeData]) -> dict[str, Any]:
    for node in nodes:
        if node.node_type == FunnelNodeTypeEnum.registration:
            return node.approved_content or node_content(node)
    return {}


def describe_node(node: FunnelNodeData, pathway: PathwayTypeEnum) -> dict[str, Any]:
    definition = get_node_definition(node.node_type)
    content = node_content(node)
    benchmark = get_benchmark(node.node_type, pathway)
    return {
        "id": node.id,
        "nodeType": node.node_type.value,
        "status": node.status.value,
        "draftContent": node.draft_content or {},
        "refinedContent": node.refined_content or {},
        "approvedContent": node.approved_content,
        "isApproved": node.is_approved,
        "approvedAt": node.approved_at,
        "conversationHistory": node.conversation_history or [],
        "completion": calculate_field_completion(content, definition.fields),
        "qualityIssues": validate_draft_quality(content, definition.fields),
        "definition": definition.to_payload(),
        "benchmark": benchmark.__dict__ if benchmark else None,
    }


def funnel_map_overview(session: Session, project: FunnelProject) -> dict[str, Any]:
    config = FunnelMapConfigRepository(session).get(project_id=project.id)
    nodes = FunnelNodesRepository(session).list(project_id=project.id)
    pathway = config.pathway_type if config else determine_pathway_from_price(_project_price(session, project))
    visible = {definition.node_type for definition in get_nodes_for_pathway(pathway, registration_config(nodes))}
    active = [node for node in nodes if node.node_type in visible]
    return {
        "pathwayType": pathway.value,
        "draftsGenerated": bool(config and config.drafts_generated),
        "draftsGeneratedAt": config.drafts_generated_at if config else None,
        "nodes": [describe_node(node, pathway) for node in active],
        "progress": calculate_approval_progress(active),
    }


def get_node(session: Session, project: FunnelProject, node_type: FunnelNodeTypeEnum) -> FunnelNodeData:
    node = FunnelNodesRepository(session).get(project_id=project.id, node_type=node_type)
    if node is None:
        raise FunnelNodeNotFoundError(node_type)
    return node


def update_node_content(
    session: Session,
    *,
    user_id: str,
    project: FunnelProject,
    node_type: FunnelNodeTypeEnum,
    content: dict[str, Any],
) -> FunnelNodeData:
    definition = get_node_definition(node_type)
    repo = FunnelNodesRepository(session)
    node = repo.get(project_id=project.id, node_type=node_type)
    cleaned = coerce_node_content(content, definition)
    if node is None:
        config = FunnelMapConfigRepository(session).get(project_id=project.id)
        node = repo.upsert_draft(
            project_id=project.id,
            user_id=user_id,
            node_type=definition.node_type,
            draft_content={},
            pathway_type=config.pathway_type if config else PathwayTypeEnum.direct_purchase,
        )
    return repo.update(
        node,
        refined_content={**(node.refined_content or {}), **cleaned},
        status=FunnelNodeStatusEnum.refined,
    )


def approve_node(session: Session, project: FunnelProject, node_type: FunnelNodeTypeEnum) -> FunnelNodeData:
    node = get_node(session, project, node_type)
    approved = dict(node.refined_content) if node.refined_content else dict(node.draft_content or {})
    return FunnelNodesRepository(session).update(
        node,
        is_approved=True,
        approved_at=utcnow(),
        approved_content=approved,
        status=FunnelNodeStatusEnum.completed,
    )


def unapprove_node(session: Session, project: FunnelProject, node_type: FunnelNodeTypeEnum) -> FunnelNodeData:
    node = get_node(session, project, node_type)
    status = FunnelNodeStatusEnum.refined if node.refined_content else FunnelNodeStatusEnum.draft
    return FunnelNodesRepository(session).update(
        node,
        is_approved=False,
        approved_at=None,
        approved_content=None,
        status=status,
    )
