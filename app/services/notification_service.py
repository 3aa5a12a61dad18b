# app/services/notification_service.py

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.notification import Notification

logger = logging.getLogger(__name__)

DELIVERABLE_NOTIFICATION = "deliverable"


class NotificationService:
    """
    Notification collaborator: writes rows into ``notifications``.

    ``notify`` only adds the row to the session; the caller owns the commit.
    """

    def __init__(self, db: Session):
        self.db = db

    def notify(self, recipient_id: UUID, project_name: str, title: str) -> Notification:
        n = Notification(
            user_id=recipient_id,
            type=DELIVERABLE_NOTIFICATION,
            title="New Deliverable Available",
            message=f"{title} is ready for {project_name}",
            is_read=False,
        )
        self.db.add(n)
        self.db.flush()
        logger.info("Notified client %s about deliverable '%s'", recipient_id, title)
        return n

    def list_for_user(self, user_id: UUID, *, unread_only: bool = False) -> list[Notification]:
        stmt = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        return list(self.db.execute(stmt.order_by(Notification.created_at.desc())).scalars())
