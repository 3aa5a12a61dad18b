# app/services/project_service.py

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import NotFound, StorageError, ValidationError
from app.core.rbac import ActorContext, ensure_allowed
from app.models.project import Project, ProjectStatus

logger = logging.getLogger(__name__)


class ProjectService:
    def __init__(self, db: Session):
        self.db = db

    def create_project(self, actor: ActorContext, *, name: str, client_id: UUID) -> Project:
        ensure_allowed("project.create", actor.role)

        name = (name or "").strip()
        if not name:
            raise ValidationError("name required")

        p = Project(name=name, client_id=client_id, status=ProjectStatus.starting.value)
        self.db.add(p)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to create project '%s': %s", name, e)
            raise StorageError("Failed to create project") from e
        self.db.refresh(p)
        return p

    def list_projects(self, actor: ActorContext) -> list[Project]:
        ensure_allowed("project.read", actor.role)

        stmt = select(Project).order_by(Project.created_at.desc())
        if not actor.is_admin:
            stmt = stmt.where(Project.client_id == actor.actor_user_id)
        return list(self.db.execute(stmt).scalars())

    def get_project(self, project_id: UUID) -> Project:
        p = self.db.get(Project, project_id)
        if not p:
            raise NotFound("Project not found")
        return p
