from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


class AutoGenerateRequest(BaseModel):
    projectId: str
    slideCount: Literal[5, 55] = 55
