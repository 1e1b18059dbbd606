from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import ORJSONResponse
from fastapi.security import HTTPAuthorizationCredentials
from starlette.concurrency import run_in_threadpool
from pydantic import ValidationError
from sqlalchemy.orm import Session

from funnel_builder.auth.dependencies import AuthContext, bearer_scheme, get_current_user
from funnel_builder.db.deps import get_session
from funnel_builder.db.enums import FunnelNodeTypeEnum, PathwayTypeEnum
from funnel_builder.db.models import FunnelNodeData
from funnel_builder.llm.client import LLMClient
from funnel_builder.routers.common import encode, get_llm_client, require_project
from funnel_builder.schemas.funnel_map import FunnelChatRequest, GenerateDraftsRequest, NodeContentUpdateRequest
from funnel_builder.services.funnel_chat import process_chat
from funnel_builder.services.funnel_map import (
    FunnelNodeNotFoundError,
    approve_node,
    describe_node,
    funnel_map_overview,
    generate_drafts,
    unapprove_node,
    update_node_content,
)
from funnel_builder.services.projects import ProjectAccessError, ProjectNotFoundError, get_owned_project
from funnel_builder.services.rate_limit import check_rate_limit, get_rate_limit_identifier

router = APIRouter(prefix="/funnel-map", tags=["funnel-map"])
logger = logging.getLogger(__name__)


def _json(status_code: int, content: dict[str, Any], request_id: str) -> ORJSONResponse:
    return ORJSONResponse(status_code=status_code, content=content, headers={"X-Request-ID": request_id})


def _describe(node: FunnelNodeData) -> dict[str, Any]:
    return encode(describe_node(node, node.pathway_type or PathwayTypeEnum.direct_purchase))


def _validation_details(exc: ValidationError) -> list[dict[str, str]]:
    return [
        {"field": ".".join(str(part) for part in error.get("loc", ())), "message": error.get("msg", "")}
        for error in exc.errors()
    ]


@router.post("/chat")
async def funnel_chat(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: Session = Depends(get_session),
    llm: LLMClient = Depends(get_llm_client),
):
    request_id = str(uuid.uuid4())
    try:
        auth = get_current_user(credentials)
    except HTTPException as exc:
        return _json(exc.status_code, {"error": "Unauthorized"}, request_id)

    limited = check_rate_limit(get_rate_limit_identifier(request, auth.user_id), "funnel-chat")
    if limited is not None:
        limited.headers["X-Request-ID"] = request_id
        return limited

    try:
        payload = FunnelChatRequest.model_validate(await request.json())
    except ValueError as exc:
        # JSONDecodeError and ValidationError are both ValueErrors.
        details = (
            _validation_details(exc)
            if isinstance(exc, ValidationError)
            else [{"field": "body", "message": "Invalid JSON"}]
        )
        return _json(status.HTTP_400_BAD_REQUEST, {"error": "Invalid request", "details": details}, request_id)

    project_id = str(payload.projectId)
    try:
        get_owned_project(session, project_id=project_id, user_id=auth.user_id)
    except ProjectNotFoundError:
        return _json(status.HTTP_404_NOT_FOUND, {"error": "Project not found"}, request_id)
    except ProjectAccessError:
        return _json(status.HTTP_403_FORBIDDEN, {"error": "Forbidden"}, request_id)

    logger.info(
        "Processing funnel chat request",
        extra={
            "request_id": request_id,
            "project_id": project_id,
            "node_type": payload.nodeType.value,
            "message_length": len(payload.message),
        },
    )
    try:
        result = await run_in_threadpool(
            process_chat,
            session,
            user_id=auth.user_id,
            project_id=project_id,
            node_type=payload.nodeType,
            message=payload.message,
            history=[item.model_dump() for item in payload.conversationHistory],
            current_content=payload.currentContent,
            definition=payload.definition.model_dump(),
            business_context=payload.businessContext,
            llm=llm,
            request_id=request_id,
        )
    except Exception:  # noqa: BLE001
        logger.exception("Funnel chat failed", extra={"request_id": request_id, "project_id": project_id})
        return _json(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            {"error": "Failed to process chat request", "requestId": request_id},
            request_id,
        )
    return _json(status.HTTP_200_OK, result.to_payload(), request_id)


@router.post("/generate-drafts")
def generate_drafts_route(
    payload: GenerateDraftsRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
    llm: LLMClient = Depends(get_llm_client),
):
    project = require_project(session, auth, payload.projectId)
    pathway, drafts = generate_drafts(
        session, user_id=auth.user_id, project=project, pathway=payload.pathwayType, llm=llm
    )
    return {"success": True, "pathwayType": pathway.value, "drafts": drafts}


@router.get("/{project_id}")
def get_funnel_map(
    project_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    project = require_project(session, auth, project_id)
    return encode(funnel_map_overview(session, project))


@router.put("/{project_id}/nodes/{node_type}")
def update_node(
    project_id: str,
    node_type: FunnelNodeTypeEnum,
    payload: NodeContentUpdateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    project = require_project(session, auth, project_id)
    node = update_node_content(
        session, user_id=auth.user_id, project=project, node_type=node_type, content=payload.content
    )
    return _describe(node)


@router.post("/{project_id}/nodes/{node_type}/approve")
def approve_node_route(
    project_id: str,
    node_type: FunnelNodeTypeEnum,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    project = require_project(session, auth, project_id)
    try:
        node = approve_node(session, project, node_type)
    except FunnelNodeNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Funnel node not found") from exc
    return _describe(node)


@router.post("/{project_id}/nodes/{node_type}/unapprove")
def unapprove_node_route(
    project_id: str,
    node_type: FunnelNodeTypeEnum,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    project = require_project(session, auth, project_id)
    try:
        node = unapprove_node(session, project, node_type)
    except FunnelNodeNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Funnel node not found") from exc
    return _describe(node)
