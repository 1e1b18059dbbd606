from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


class DeckGenerateRequest(BaseModel):
    projectId: str
    transcriptId: Optional[str] = None
    slideCount: Literal[5, 55] = 55


class DeckSlide(BaseModel):
    title: str = Field(min_length=1)
    description: str = ""
    section: str = "solution"


class DeckUpdateRequest(BaseModel):
    slides: list[DeckSlide] = Field(min_length=1)


class TalkTrackGenerateRequest(BaseModel):
    deckStructureId: str
