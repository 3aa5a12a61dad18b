# app/api/deliverables.py

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Body, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import RedirectResponse

from app.api.deps import get_actor_context, get_deliverable_service
from app.core.rbac import ActorContext
from app.models.deliverable import DeliverableKind
from app.schemas.deliverable import DeliverableDeleteResponse, DeliverableRead, DownloadLinkRead
from app.schemas.deliverable_actions import BulkRequest, BulkResultRead
from app.services.bulk_service import BulkDeliverableService
from app.services.deliverable_service import (
    DeliverableFilters,
    DeliverableService,
    UploadedFile,
)


router = APIRouter(prefix="/deliverables", tags=["deliverables"])

BULK_OPENAPI_EXAMPLES = {
    "basic": {
        "summary": "Apply to several deliverables",
        "description": "Each id is processed independently; failures are reported per item.",
        "value": {
            "ids": [
                "44444444-4444-4444-4444-444444444444",
                "55555555-5555-5555-5555-555555555555",
            ]
        },
    }
}


def _read_upload(file: UploadFile | None, max_bytes: int) -> UploadedFile | None:
    if file is None or not file.filename:
        return None
    # one byte past the limit is enough for validation to reject it
    return UploadedFile(
        filename=file.filename,
        content_type=file.content_type,
        data=file.file.read(max_bytes + 1),
    )


def _max_upload_bytes(svc: DeliverableService) -> int:
    return svc.settings.deliverable_max_file_mb * 1024 * 1024


@router.post(
    "",
    response_model=DeliverableRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create deliverable (url or file)",
    description=(
        "Multipart form. `kind=url` requires `url`; `kind=file` requires `file`.\n\n"
        "The deliverable is created as a draft (`sent=false`)."
    ),
)
def create_deliverable(
    project_id: UUID = Form(...),
    kind: str = Form(..., examples=["url", "file"]),
    title: str = Form(""),
    description: str | None = Form(None),
    url: str | None = Form(None),
    file: UploadFile | None = File(None),
    actor: ActorContext = Depends(get_actor_context),
    svc: DeliverableService = Depends(get_deliverable_service),
):
    return svc.create(
        actor,
        project_id=project_id,
        title=title,
        kind=kind,
        description=description,
        url=url,
        upload=_read_upload(file, _max_upload_bytes(svc)),
    )


@router.get("", response_model=list[DeliverableRead])
def list_deliverables(
    project_id: UUID | None = Query(None),
    client_id: UUID | None = Query(None),
    status_filter: str | None = Query(None, alias="status", pattern="^(sent|draft)$"),
    kind: DeliverableKind | None = Query(None),
    search: str | None = Query(None, max_length=200),
    created_since: datetime | None = Query(None),
    actor: ActorContext = Depends(get_actor_context),
    svc: DeliverableService = Depends(get_deliverable_service),
):
    filters = DeliverableFilters(
        project_id=project_id,
        client_id=client_id,
        status=status_filter,
        kind=kind.value if kind else None,
        search=search,
        created_since=created_since,
    )
    return svc.list_deliverables(actor, filters)


# bulk routes are declared before /{deliverable_id}/... so "bulk" is never parsed as an id


@router.post("/bulk/send", response_model=BulkResultRead)
def bulk_send(
    body: BulkRequest = Body(..., openapi_examples=BULK_OPENAPI_EXAMPLES),
    actor: ActorContext = Depends(get_actor_context),
    svc: DeliverableService = Depends(get_deliverable_service),
):
    result = BulkDeliverableService(svc).bulk_send(body.ids, actor)
    return BulkResultRead.model_validate(result, from_attributes=True)


@router.post("/bulk/delete", response_model=BulkResultRead)
def bulk_delete(
    body: BulkRequest = Body(..., openapi_examples=BULK_OPENAPI_EXAMPLES),
    actor: ActorContext = Depends(get_actor_context),
    svc: DeliverableService = Depends(get_deliverable_service),
):
    result = BulkDeliverableService(svc).bulk_delete(body.ids, actor)
    return BulkResultRead.model_validate(result, from_attributes=True)


@router.post("/bulk/download", response_model=BulkResultRead)
def bulk_download(
    body: BulkRequest = Body(..., openapi_examples=BULK_OPENAPI_EXAMPLES),
    actor: ActorContext = Depends(get_actor_context),
    svc: DeliverableService = Depends(get_deliverable_service),
):
    result = BulkDeliverableService(svc).bulk_download(body.ids, actor)
    return BulkResultRead.model_validate(result, from_attributes=True)


@router.get("/{deliverable_id}", response_model=DeliverableRead)
def get_deliverable(
    deliverable_id: UUID,
    actor: ActorContext = Depends(get_actor_context),
    svc: DeliverableService = Depends(get_deliverable_service),
):
    return svc.get(deliverable_id, actor)


@router.patch("/{deliverable_id}", response_model=DeliverableRead)
def update_deliverable(
    deliverable_id: UUID,
    title: str | None = Form(None),
    description: str | None = Form(None),
    url: str | None = Form(None),
    file: UploadFile | None = File(None),
    actor: ActorContext = Depends(get_actor_context),
    svc: DeliverableService = Depends(get_deliverable_service),
):
    return svc.update(
        deliverable_id,
        actor,
        title=title,
        description=description,
        url=url,
        upload=_read_upload(file, _max_upload_bytes(svc)),
    )


@router.delete("/{deliverable_id}", response_model=DeliverableDeleteResponse)
def delete_deliverable(
    deliverable_id: UUID,
    actor: ActorContext = Depends(get_actor_context),
    svc: DeliverableService = Depends(get_deliverable_service),
):
    return DeliverableDeleteResponse.model_validate(svc.delete(deliverable_id, actor), from_attributes=True)


@router.post(
    "/{deliverable_id}/send",
    response_model=DeliverableRead,
    summary="Send deliverable to the client",
    description=(
        "Marks the deliverable sent (`sent=true`, `sent_at=now`) and notifies the project's client.\n\n"
        "Sending an already sent deliverable returns it unchanged and sends no second notification."
    ),
)
def send_deliverable(
    deliverable_id: UUID,
    actor: ActorContext = Depends(get_actor_context),
    svc: DeliverableService = Depends(get_deliverable_service),
):
    return svc.send(deliverable_id, actor)


@router.get(
    "/{deliverable_id}/download",
    response_model=DownloadLinkRead,
    summary="Get a download link",
    description=(
        "url deliverables return the stored link; file deliverables return a time-limited signed URL.\n\n"
        "`redirect=true` answers with 307 to the link instead of JSON."
    ),
)
def download_deliverable(
    deliverable_id: UUID,
    redirect: bool = Query(False),
    actor: ActorContext = Depends(get_actor_context),
    svc: DeliverableService = Depends(get_deliverable_service),
):
    link = svc.get_download(deliverable_id, actor)
    if redirect:
        return RedirectResponse(link.url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
    return DownloadLinkRead.model_validate(link, from_attributes=True)
