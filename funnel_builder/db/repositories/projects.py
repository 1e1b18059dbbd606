from __future__ import annotations

import re
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from funnel_builder.db.enums import ProjectStatusEnum
from funnel_builder.db.models import FunnelProject


def slugify(value: str, default: str = "funnel") -> str:
    text = (value or "").strip().lower()
    text = re.sub(r"[^a-z0-9]+", "-", text)
    text = re.sub(r"-{2,}", "-", text).strip("-")
    return text or default


class ProjectsRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _unique_slug(self, *, user_id: str, name: str, exclude_project_id: Optional[str] = None) -> str:
        base = slugify(name)
        suffix = 0
        while True:
            slug = base if suffix == 0 else f"{base}-{suffix + 1}"
            stmt = select(FunnelProject.id).where(FunnelProject.user_id == user_id, FunnelProject.slug == slug)
            if exclude_project_id:
                stmt = stmt.where(FunnelProject.id != exclude_project_id)
            if not self.session.execute(stmt).first():
                return slug
            suffix += 1

    def list(self, *, user_id: str, status: Optional[ProjectStatusEnum] = None) -> list[FunnelProject]:
        stmt = select(FunnelProject).where(FunnelProject.user_id == user_id)
        if status is not None:
            stmt = stmt.where(FunnelProject.status == status)
        stmt = stmt.order_by(FunnelProject.created_at.desc())
        return list(self.session.scalars(stmt).all())

    def get(self, *, project_id: str) -> Optional[FunnelProject]:
        return self.session.get(FunnelProject, project_id)

    def create(self, *, user_id: str, name: str, **fields) -> FunnelProject:
        project = FunnelProject(
            user_id=user_id,
            name=name,
            slug=self._unique_slug(user_id=user_id, name=name),
            **fields,
        )
        self.session.add(project)
        self.session.commit()
        self.session.refresh(project)
        return project

    def update(self, project: FunnelProject, **fields) -> FunnelProject:
        new_name = fields.get("name")
        if new_name and new_name != project.name:
            project.slug = self._unique_slug(
                user_id=project.user_id, name=new_name, exclude_project_id=project.id
            )
        for key, value in fields.items():
            setattr(project, key, value)
        self.session.commit()
        self.session.refresh(project)
        return project
