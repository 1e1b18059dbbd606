from __future__ import annotations

from typing import List, Optional, Type, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from funnel_builder.db.models import EnrollmentPage, RegistrationPage, WatchPage
from funnel_builder.db.repositories.projects import slugify

PageModel = Union[EnrollmentPage, RegistrationPage, WatchPage]

PAGE_MODELS: dict[str, Type[PageModel]] = {
    "enrollment": EnrollmentPage,
    "registration": RegistrationPage,
    "watch": WatchPage,
}


class PagesRepository:
    def __init__(self, session: Session, page_kind: str) -> None:
        if page_kind not in PAGE_MODELS:
            raise ValueError(f"Unknown page kind: {page_kind}")
        self.session = session
        self.page_kind = page_kind
        self.model = PAGE_MODELS[page_kind]

    def list(self, *, project_id: str) -> List[PageModel]:
        stmt = (
            select(self.model)
            .where(self.model.funnel_project_id == project_id)
            .order_by(self.model.created_at.desc())
        )
        return list(self.session.scalars(stmt).all())

    def get(self, *, page_id: str) -> Optional[PageModel]:
        return self.session.get(self.model, page_id)

    def create(self, *, user_id: str, project_id: str, headline: str, **fields) -> PageModel:
        page = self.model(user_id=user_id, funnel_project_id=project_id, headline=headline, **fields)
        self.session.add(page)
        self.session.commit()
        self.session.refresh(page)
        return page

    def update(self, page: PageModel, **fields) -> PageModel:
        for key, value in fields.items():
            setattr(page, key, value)
        self.session.commit()
        self.session.refresh(page)
        return page

    def delete(self, page: PageModel) -> None:
        self.session.delete(page)
        self.session.commit()

    def unique_vanity_slug(self, desired: str, *, exclude_page_id: Optional[str] = None) -> str:
        base = slugify(desired, default=self.page_kind)
        suffix = 0
        while True:
            slug = base if suffix == 0 else f"{base}-{suffix + 1}"
            if not self._slug_taken(slug, exclude_page_id):
                return slug
            suffix += 1

    def _slug_taken(self, slug: str, exclude_page_id: Optional[str]) -> bool:
        # Vanity slugs share one public namespace across every page kind.
        for model in PAGE_MODELS.values():
            stmt = select(model.id).where(model.vanity_slug == slug)
            if exclude_page_id:
                stmt = stmt.where(model.id != exclude_page_id)
            if self.session.execute(stmt).first():
                return True
        return False


def get_published_page_by_slug(session: Session, slug: str) -> Optional[PageModel]:
    for model in PAGE_MODELS.values():
        stmt = select(model).where(model.vanity_slug == slug, model.is_published.is_(True))
        page = session.scalars(stmt).first()
        if page is not None:
            return page
    return None
