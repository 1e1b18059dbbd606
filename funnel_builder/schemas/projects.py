from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from funnel_builder.db.enums import ProjectStatusEnum


class ProjectCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    targetAudience: Optional[str] = None
    businessNiche: Optional[str] = None


class ProjectUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    targetAudience: Optional[str] = None
    businessNiche: Optional[str] = None
    status: Optional[ProjectStatusEnum] = None
    currentStep: Optional[int] = Field(default=None, ge=1, le=15)
    settings: Optional[dict[str, Any]] = None
