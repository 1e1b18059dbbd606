from __future__ import annotations

from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from funnel_builder.config import settings
from funnel_builder.db.enums import FunnelNodeTypeEnum, PathwayTypeEnum


class ConversationMessage(BaseModel):
    id: str
    role: Literal["user", "assistant"]
    content: str
    timestamp: str
    suggestedChanges: Optional[dict[str, Any]] = None


class FieldOption(BaseModel):
    value: str
    label: str


class NodeFieldDefinition(BaseModel):
    key: str
    label: str
    type: Literal["text", "textarea", "list", "pricing", "select", "datetime"]
    required: Optional[bool] = None
    helpText: Optional[str] = None
    options: Optional[list[FieldOption]] = None


class NodeDefinitionPayload(BaseModel):
    title: str
    description: str
    framework: Optional[str] = None
    fields: list[NodeFieldDefinition]


class FunnelChatRequest(BaseModel):
    projectId: UUID
    nodeType: FunnelNodeTypeEnum
    message: str = Field(min_length=1, max_length=settings.FUNNEL_CHAT_MAX_MESSAGE_LENGTH)
    conversationHistory: list[ConversationMessage] = Field(
        default_factory=list, max_length=settings.FUNNEL_CHAT_MAX_HISTORY
    )
    currentContent: dict[str, Any] = Field(default_factory=dict)
    definition: NodeDefinitionPayload
    businessContext: Optional[dict[str, Any]] = None


class GenerateDraftsRequest(BaseModel):
    projectId: str
    pathwayType: Optional[PathwayTypeEnum] = None


class NodeContentUpdateRequest(BaseModel):
    content: dict[str, Any]
