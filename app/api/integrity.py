# app/api/integrity.py

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from app.api.deps import get_actor_context, get_integrity_service
from app.core.rbac import ActorContext
from app.schemas.integrity import (
    IntegrityReportRead,
    OrphanCleanupRequest,
    OrphanCleanupResponse,
    OrphanReportRead,
    RepairOutcomeRead,
    RepairReportRead,
)
from app.services.integrity_service import IntegrityService


router = APIRouter(prefix="/integrity", tags=["integrity"])


@router.get(
    "/scan",
    response_model=IntegrityReportRead,
    summary="Scan file deliverables",
    description="Checks that every file deliverable points at an object that exists and can be signed. Read-only.",
)
def scan(
    actor: ActorContext = Depends(get_actor_context),
    svc: IntegrityService = Depends(get_integrity_service),
):
    return IntegrityReportRead.model_validate(svc.scan(actor), from_attributes=True)


@router.post(
    "/repair",
    response_model=RepairReportRead,
    summary="Repair all broken file deliverables",
    description=(
        "Broken file deliverables that still carry a url are converted to url deliverables.\n\n"
        "The rest are reported as unrepairable and left untouched."
    ),
)
def repair_all(
    actor: ActorContext = Depends(get_actor_context),
    svc: IntegrityService = Depends(get_integrity_service),
):
    return RepairReportRead.model_validate(svc.repair_all(actor), from_attributes=True)


@router.post("/deliverables/{deliverable_id}/repair", response_model=RepairOutcomeRead)
def repair_one(
    deliverable_id: UUID,
    actor: ActorContext = Depends(get_actor_context),
    svc: IntegrityService = Depends(get_integrity_service),
):
    return RepairOutcomeRead.model_validate(svc.repair(deliverable_id, actor), from_attributes=True)


@router.get("/orphans", response_model=OrphanReportRead)
def find_orphans(
    actor: ActorContext = Depends(get_actor_context),
    svc: IntegrityService = Depends(get_integrity_service),
):
    return OrphanReportRead.model_validate(svc.find_orphaned_objects(actor), from_attributes=True)


@router.post("/orphans/cleanup", response_model=OrphanCleanupResponse)
def cleanup_orphans(
    req: OrphanCleanupRequest,
    actor: ActorContext = Depends(get_actor_context),
    svc: IntegrityService = Depends(get_integrity_service),
):
    return OrphanCleanupResponse(removed=svc.remove_orphaned_objects(actor, req.keys))
