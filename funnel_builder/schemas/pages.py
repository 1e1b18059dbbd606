from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from funnel_builder.db.enums import VideoProcessingStatusEnum


class EnrollmentPageGenerateRequest(BaseModel):
    projectId: str
    offerId: str


class RegistrationPageGenerateRequest(BaseModel):
    projectId: str
    deckStructureId: Optional[str] = None


class WatchPageGenerateRequest(BaseModel):
    projectId: str
    pitchVideoId: Optional[str] = None


class PageUpdateRequest(BaseModel):
    headline: Optional[str] = Field(default=None, min_length=1)
    subheadline: Optional[str] = None
    contentSections: Optional[dict[str, Any]] = None
    ctaConfig: Optional[dict[str, Any]] = None
    benefitBullets: Optional[list[str]] = None
    trustStatement: Optional[str] = None
    formFields: Optional[list[dict[str, Any]]] = None
    watchPrompt: Optional[str] = None
    theme: Optional[dict[str, Any]] = None

    def to_fields(self) -> dict[str, Any]:
        mapping = {
            "headline": "headline",
            "subheadline": "subheadline",
            "contentSections": "content_sections",
            "ctaConfig": "cta_config",
            "benefitBullets": "benefit_bullets",
            "trustStatement": "trust_statement",
            "formFields": "form_fields",
            "watchPrompt": "watch_prompt",
            "theme": "theme",
        }
        data = self.model_dump(exclude_unset=True)
        return {mapping[key]: value for key, value in data.items() if key in mapping}


class PagePublishRequest(BaseModel):
    vanitySlug: Optional[str] = Field(default=None, max_length=120)


class RegenerateFieldRequest(BaseModel):
    field: str = Field(min_length=1)


class AttachVideoRequest(BaseModel):
    pitchVideoId: str


class PitchVideoCreateRequest(BaseModel):
    projectId: str
    videoUrl: Optional[str] = None
    provider: str = "upload"
    videoId: Optional[str] = None
    thumbnailUrl: Optional[str] = None
    videoDuration: Optional[int] = Field(default=None, ge=0)


class PitchVideoStatusRequest(BaseModel):
    status: VideoProcessingStatusEnum
    videoUrl: Optional[str] = None
    thumbnailUrl: Optional[str] = None
    videoDuration: Optional[int] = Field(default=None, ge=0)
