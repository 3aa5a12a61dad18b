# app/schemas/deliverable.py

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.deliverable import DeliverableKind


class DeliverableRead(BaseModel):
    id: UUID
    project_id: UUID

    title: str
    description: str | None = None
    kind: DeliverableKind

    url: str | None = None
    file_path: str | None = None
    original_filename: str | None = None
    content_type: str | None = None
    size_bytes: int | None = None

    sent: bool
    sent_at: datetime | None = None

    created_by: UUID
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class DeliverableDeleteResponse(BaseModel):
    deliverable_id: UUID
    leftover_object: str | None = Field(
        default=None,
        description="Object key that could not be removed from storage (left for the orphan sweep).",
    )

    model_config = {"from_attributes": True}


class DownloadLinkRead(BaseModel):
    deliverable_id: UUID
    kind: DeliverableKind
    url: str
    expires_in: int | None = Field(
        default=None,
        description="Seconds until a signed URL expires. Null for url deliverables.",
    )

    model_config = {"from_attributes": True}
