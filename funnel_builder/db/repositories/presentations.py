from __future__ import annotations

from typing import Any, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from funnel_builder.db.enums import PresentationStatusEnum
from funnel_builder.db.models import Presentation


class PresentationNotFoundError(LookupError):
    pass


class PresentationsRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list(self, *, project_id: str) -> List[Presentation]:
        stmt = (
            select(Presentation)
            .where(Presentation.funnel_project_id == project_id)
            .order_by(Presentation.created_at.desc())
        )
        return list(self.session.scalars(stmt).all())

    def get(self, *, presentation_id: str) -> Optional[Presentation]:
        return self.session.get(Presentation, presentation_id)

    def count_active(self, *, project_id: str) -> int:
        stmt = select(func.count(Presentation.id)).where(
            Presentation.funnel_project_id == project_id,
            Presentation.status != PresentationStatusEnum.failed,
        )
        return int(self.session.scalar(stmt) or 0)

    def create(self, *, user_id: str, project_id: str, title: str, **fields) -> Presentation:
        presentation = Presentation(user_id=user_id, funnel_project_id=project_id, title=title, **fields)
        self.session.add(presentation)
        self.session.commit()
        self.session.refresh(presentation)
        return presentation

    def update(self, presentation: Presentation, **fields) -> Presentation:
        for key, value in fields.items():
            setattr(presentation, key, value)
        self.session.commit()
        self.session.refresh(presentation)
        return presentation

    def delete(self, presentation: Presentation) -> None:
        self.session.delete(presentation)
        self.session.commit()

    def append_slide(self, *, presentation_id: str, slide: dict[str, Any], progress: int) -> Presentation:
        """Lock the row, add or replace the slide by number, and commit in one transaction."""
        stmt = (
            select(Presentation)
            .where(Presentation.id == presentation_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        try:
            presentation = self.session.scalars(stmt).first()
            if presentation is None:
                raise PresentationNotFoundError(presentation_id)
            slide_number = slide.get("slideNumber")
            slides = [existing for existing in presentation.slides or [] if existing.get("slideNumber") != slide_number]
            slides.append(slide)
            slides.sort(key=lambda item: item.get("slideNumber") or 0)
            presentation.slides = slides
            presentation.generation_progress = progress
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(presentation)
        return presentation
