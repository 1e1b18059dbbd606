from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class PasteIntakeRequest(BaseModel):
    projectId: str
    content: str
    sessionName: Optional[str] = Field(default=None, max_length=200)


class ScrapeIntakeRequest(BaseModel):
    projectId: str
    url: str = Field(min_length=1, max_length=2048)
    sessionName: Optional[str] = Field(default=None, max_length=200)
