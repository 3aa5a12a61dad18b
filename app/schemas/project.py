# app/schemas/project.py

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, examples=["Brand refresh"])
    client_id: UUID = Field(
        ...,
        description="Client user who owns the project and receives deliverables.",
        examples=["33333333-3333-3333-3333-333333333333"],
    )

    model_config = ConfigDict(extra="forbid")


class ProjectRead(BaseModel):
    id: UUID
    name: str
    client_id: UUID
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}
