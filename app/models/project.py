# app/models/project.py

from __future__ import annotations

import enum
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class ProjectStatus(str, enum.Enum):
    starting = "starting"
    in_progress = "in_progress"
    completed = "completed"


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # владелец проекта (клиент), ему уходят уведомления о deliverables
    client_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)

    status: Mapped[str] = mapped_column(
        String,
        nullable=False,
        default=ProjectStatus.starting.value,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
