#  app/schemas/deliverable_actions.py

from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.deliverable import DownloadLinkRead


class BulkRequest(BaseModel):
    ids: list[UUID] = Field(
        ...,
        min_length=1,
        description="Deliverable ids. Each one is processed independently.",
        examples=[["44444444-4444-4444-4444-444444444444"]],
    )

    # forbid unknown fields in request bodies
    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "examples": [
                {"ids": ["44444444-4444-4444-4444-444444444444", "55555555-5555-5555-5555-555555555555"]}
            ]
        },
    )


class BulkItemRead(BaseModel):
    deliverable_id: UUID
    ok: bool
    skipped: bool = False
    error: str | None = None
    link: DownloadLinkRead | None = None

    model_config = {"from_attributes": True}


class BulkResultRead(BaseModel):
    succeeded: int
    failed: int
    skipped: int
    items: list[BulkItemRead]

    model_config = {"from_attributes": True}
