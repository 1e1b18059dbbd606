from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, EmailStr, Field

from funnel_builder.db.enums import ChannelEnum, DeliveryStatusEnum, SegmentEnum


class SequenceGenerateRequest(BaseModel):
    projectId: str
    offerId: Optional[str] = None
    segment: SegmentEnum = SegmentEnum.engaged
    useDefaults: bool = False


class SequenceCreateRequest(BaseModel):
    agentConfigId: str
    name: str = Field(min_length=1)
    description: Optional[str] = None
    sequenceType: str = "3_day_discount"
    triggerEvent: str = "webinar_end"
    deadlineHours: int = Field(default=72, ge=1, le=24 * 30)
    targetSegments: Optional[list[SegmentEnum]] = None
    minIntentScore: int = Field(default=0, ge=0, le=100)
    maxIntentScore: int = Field(default=100, ge=0, le=100)
    messageCount: Optional[int] = Field(default=None, ge=1, le=20)
    segment: SegmentEnum = SegmentEnum.sampler


class SequenceUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    triggerDelayHours: Optional[int] = Field(default=None, ge=0)
    deadlineHours: Optional[int] = Field(default=None, ge=1)
    targetSegments: Optional[list[SegmentEnum]] = None
    minIntentScore: Optional[int] = Field(default=None, ge=0, le=100)
    maxIntentScore: Optional[int] = Field(default=None, ge=0, le=100)
    stopOnReply: Optional[bool] = None
    stopOnConversion: Optional[bool] = None
    requiresManualApproval: Optional[bool] = None
    isActive: Optional[bool] = None


class MessageCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    messageOrder: int = Field(ge=1)
    channel: ChannelEnum = ChannelEnum.email
    sendDelayHours: int = Field(default=0, ge=0)
    subjectLine: Optional[str] = None
    bodyContent: str = Field(min_length=1)
    primaryCta: dict[str, Any] = Field(default_factory=dict)
    personalizationRules: dict[str, Any] = Field(default_factory=dict)
    abTestVariant: str = ""


class MessageUpdateRequest(BaseModel):
    model_config = {"extra": "allow"}

    name: Optional[str] = None
    messageOrder: Optional[int] = Field(default=None, ge=1)
    channel: Optional[ChannelEnum] = None
    sendDelayHours: Optional[int] = Field(default=None, ge=0)
    subjectLine: Optional[str] = None
    bodyContent: Optional[str] = None
    primaryCta: Optional[dict[str, Any]] = None
    personalizationRules: Optional[dict[str, Any]] = None


class ProspectUpsertRequest(BaseModel):
    agentConfigId: str
    email: EmailStr
    firstName: Optional[str] = None
    phone: Optional[str] = None
    watchPercentage: Optional[int] = Field(default=None, ge=0, le=100)
    watchDurationSeconds: Optional[int] = Field(default=None, ge=0)
    challengeNotes: Optional[str] = None
    goalNotes: Optional[str] = None
    objectionHint: Optional[str] = None
    timezone: Optional[str] = None
    fitScore: Optional[int] = Field(default=None, ge=0, le=100)


class EngagementRequest(BaseModel):
    eventType: str
    watchPercentage: Optional[int] = Field(default=None, ge=0, le=100)
    watchDurationSeconds: Optional[int] = Field(default=None, ge=0)


class TriggerSequenceRequest(BaseModel):
    prospectId: str
    sequenceId: str
    triggerTime: Optional[datetime] = None


class DeliveryStatusRequest(BaseModel):
    status: DeliveryStatusEnum
    eventData: dict[str, Any] = Field(default_factory=dict)


class DeliveryFailedRequest(BaseModel):
    errorMessage: str = Field(min_length=1)
