# app/schemas/integrity.py

from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class BrokenDeliverableRead(BaseModel):
    deliverable_id: UUID
    title: str
    project_id: UUID
    file_path: str
    reason: str = Field(description="missing_object or signed_url_failed")
    has_fallback_url: bool
    message: str | None = None

    model_config = {"from_attributes": True}


class IntegrityReportRead(BaseModel):
    total: int
    healthy: int
    broken: list[BrokenDeliverableRead]

    model_config = {"from_attributes": True}


class RepairOutcomeRead(BaseModel):
    deliverable_id: UUID
    action: str = Field(description="converted_to_url, unrepairable or healthy")
    message: str | None = None

    model_config = {"from_attributes": True}


class RepairReportRead(BaseModel):
    scan: IntegrityReportRead
    converted: int
    unrepairable: int
    outcomes: list[RepairOutcomeRead]

    model_config = {"from_attributes": True}


class OrphanReportRead(BaseModel):
    total_objects: int
    orphaned: list[str]

    model_config = {"from_attributes": True}


class OrphanCleanupRequest(BaseModel):
    keys: list[str] = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")


class OrphanCleanupResponse(BaseModel):
    removed: list[str]
