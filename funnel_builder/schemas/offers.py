from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from funnel_builder.db.enums import OfferTypeEnum, PathwayTypeEnum


class OfferGenerateRequest(BaseModel):
    projectId: str
    transcriptId: Optional[str] = None


class OfferUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    tagline: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=8)
    offerType: Optional[OfferTypeEnum] = None
    features: Optional[list[str]] = None
    bonuses: Optional[list[str]] = None
    guarantee: Optional[str] = None
    promise: Optional[str] = None
    person: Optional[str] = None
    process: Optional[str] = None
    purpose: Optional[str] = None
    pathway: Optional[PathwayTypeEnum] = None
    displayOrder: Optional[int] = None
