# app/api/notifications.py

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_actor_context
from app.core.db import get_db
from app.core.rbac import ActorContext, ensure_allowed
from app.schemas.notification import NotificationRead
from app.services.notification_service import NotificationService


router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationRead])
def list_my_notifications(
    unread_only: bool = Query(False),
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db),
):
    ensure_allowed("notification.read", actor.role)
    return NotificationService(db).list_for_user(actor.actor_user_id, unread_only=unread_only)
