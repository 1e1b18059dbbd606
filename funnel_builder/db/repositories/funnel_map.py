from __future__ import annotations

from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from funnel_builder.db.base import utcnow
from funnel_builder.db.enums import FunnelNodeStatusEnum, FunnelNodeTypeEnum, PathwayTypeEnum
from funnel_builder.db.models import FunnelMapConfig, FunnelNodeData


class FunnelNodesRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list(self, *, project_id: str) -> List[FunnelNodeData]:
        stmt = (
            select(FunnelNodeData)
            .where(FunnelNodeData.funnel_project_id == project_id)
            .order_by(FunnelNodeData.created_at.asc())
        )
        return list(self.session.scalars(stmt).all())

    def get(self, *, project_id: str, node_type: FunnelNodeTypeEnum) -> Optional[FunnelNodeData]:
        stmt = select(FunnelNodeData).where(
            FunnelNodeData.funnel_project_id == project_id,
            FunnelNodeData.node_type == node_type,
        )
        return self.session.scalars(stmt).first()

    def upsert_draft(
        self,
        *,
        project_id: str,
        user_id: str,
        node_type: FunnelNodeTypeEnum,
        draft_content: dict[str, Any],
        pathway_type: PathwayTypeEnum,
    ) -> FunnelNodeData:
        node = self.get(project_id=project_id, node_type=node_type)
        if node is None:
            node = FunnelNodeData(
                funnel_project_id=project_id,
                user_id=user_id,
                node_type=node_type,
            )
            self.session.add(node)
        node.draft_content = draft_content
        node.pathway_type = pathway_type
        node.status = FunnelNodeStatusEnum.draft
        self.session.commit()
        self.session.refresh(node)
        return node

    def update(self, node: FunnelNodeData, **fields) -> FunnelNodeData:
        for key, value in fields.items():
            setattr(node, key, value)
        self.session.commit()
        self.session.refresh(node)
        return node

    def merge_conversation(
        self,
        *,
        project_id: str,
        user_id: str,
        node_type: FunnelNodeTypeEnum,
        new_message: dict[str, Any],
        content_updates: Optional[dict[str, Any]] = None,
        status: FunnelNodeStatusEnum = FunnelNodeStatusEnum.in_progress,
    ) -> FunnelNodeData:
        """Append one chat message and merge content updates in a single locked transaction.

        Concurrent chats on the same node serialize on the row lock so no message is lost.
        """
        try:
            node = self._lock_node(project_id=project_id, node_type=node_type)
            if node is None:
                node = FunnelNodeData(
                    funnel_project_id=project_id,
                    user_id=user_id,
                    node_type=node_type,
                    draft_content={},
                    refined_content={},
                    conversation_history=[],
                )
                self.session.add(node)
                try:
                    self.session.flush()
                except IntegrityError:
                    # Another request inserted the row first; retry against it.
                    self.session.rollback()
                    node = self._lock_node(project_id=project_id, node_type=node_type)
                    if node is None:
                        raise

            node.conversation_history = [*(node.conversation_history or []), new_message]
            if content_updates:
                node.refined_content = {**(node.refined_content or {}), **content_updates}
            node.status = status
            node.updated_at = utcnow()
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(node)
        return node

    def _lock_node(self, *, project_id: str, node_type: FunnelNodeTypeEnum) -> Optional[FunnelNodeData]:
        stmt = (
            select(FunnelNodeData)
            .where(
                FunnelNodeData.funnel_project_id == project_id,
                FunnelNodeData.node_type == node_type,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.session.scalars(stmt).first()


class FunnelMapConfigRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, *, project_id: str) -> Optional[FunnelMapConfig]:
        stmt = select(FunnelMapConfig).where(FunnelMapConfig.funnel_project_id == project_id)
        return self.session.scalars(stmt).first()

    def upsert(self, *, project_id: str, user_id: str, pathway_type: PathwayTypeEnum, **fields) -> FunnelMapConfig:
        config = self.get(project_id=project_id)
        if config is None:
            config = FunnelMapConfig(funnel_project_id=project_id, user_id=user_id, pathway_type=pathway_type)
            self.session.add(config)
        config.pathway_type = pathway_type
        for key, value in fields.items():
            setattr(config, key, value)
        self.session.commit()
        self.session.refresh(config)
        return config
