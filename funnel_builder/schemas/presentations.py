from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from funnel_builder.services.slide_generator import LAYOUT_TYPES, MAX_CUSTOM_PROMPT_LENGTH, QUICK_ACTION_PROMPTS


class SlideEditRequest(BaseModel):
    title: Optional[str] = None
    content: Optional[list[str]] = None
    speakerNotes: Optional[str] = None
    imagePrompt: Optional[str] = None
    layoutType: Optional[str] = None
    quickAction: Optional[str] = None
    customPrompt: Optional[str] = Field(default=None, max_length=MAX_CUSTOM_PROMPT_LENGTH)

    def direct_edits(self) -> dict:
        fields = ("title", "content", "speakerNotes", "imagePrompt")
        return {name: getattr(self, name) for name in fields if getattr(self, name) is not None}

    def has_action(self) -> bool:
        return bool(self.direct_edits() or self.layoutType or self.quickAction or self.customPrompt)


def is_known_layout(layout: str) -> bool:
    return layout in LAYOUT_TYPES


def is_known_quick_action(action: str) -> bool:
    return action in QUICK_ACTION_PROMPTS
