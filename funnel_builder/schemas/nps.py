from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from funnel_builder.db.enums import NpsSurveyTypeEnum


class NpsCreateRequest(BaseModel):
    score: int = Field(ge=0, le=10)
    feedback: Optional[str] = Field(default=None, max_length=5000)
    surveyType: NpsSurveyTypeEnum = NpsSurveyTypeEnum.quarterly
