# app/api/projects.py

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import get_actor_context
from app.core.db import get_db
from app.core.rbac import ActorContext
from app.schemas.project import ProjectCreate, ProjectRead
from app.services.project_service import ProjectService


router = APIRouter(prefix="/projects", tags=["projects"])


@router.post("", response_model=ProjectRead, status_code=status.HTTP_201_CREATED)
def create_project(
    req: ProjectCreate,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    return ProjectService(db).create_project(actor, name=req.name, client_id=req.client_id)


@router.get("", response_model=list[ProjectRead])
def list_projects(
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    return ProjectService(db).list_projects(actor)
