from __future__ import annotations

from typing import Any, Callable

from fastapi import HTTPException, status
from fastapi.encoders import jsonable_encoder
from sqlalchemy import inspect
from sqlalchemy.orm import InstanceState, Session

from funnel_builder.auth.dependencies import AuthContext
from funnel_builder.db.models import FunnelProject
from funnel_builder.llm.client import LLMClient
from funnel_builder.services.projects import ProjectAccessError, ProjectNotFoundError, get_owned_project


def require_project(session: Session, auth: AuthContext, project_id: str) -> FunnelProject:
    try:
        return get_owned_project(session, project_id=str(project_id), user_id=auth.user_id)
    except ProjectNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found") from exc
    except ProjectAccessError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden") from exc


def require_owned(resource, auth: AuthContext, label: str):
    """404 for missing rows and rows owned by another user."""
    if resource is None or resource.user_id != auth.user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{label} not found")
    return resource


def get_llm_client() -> LLMClient:
    return LLMClient()


def get_llm_factory() -> Callable[[], LLMClient]:
    """Factory for work that outlives the request, such as streams and background jobs."""
    return LLMClient


def _reload_expired(value: Any) -> None:
    if isinstance(value, dict):
        for item in value.values():
            _reload_expired(item)
        return
    if isinstance(value, (list, tuple)):
        for item in value:
            _reload_expired(item)
        return
    state = inspect(value, raiseerr=False)
    if isinstance(state, InstanceState) and state.session is not None and (state.expired or state.expired_attributes):
        state.session.refresh(value)


def encode(value: Any) -> Any:
    """``jsonable_encoder`` for ORM rows, reloading any that a later commit expired."""
    _reload_expired(value)
    return jsonable_encoder(value)
