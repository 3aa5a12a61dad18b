# app/api/errors.py
from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.errors import (
    DeliverableError,
    DownloadError,
    Forbidden,
    NotFound,
    ObjectStoreError,
    RateLimitError,
    StorageError,
    ValidationError,
)

# most specific first: DownloadError is an ObjectStoreError
STATUS_BY_ERROR: list[tuple[type[DeliverableError], int]] = [
    (ValidationError, 422),
    (NotFound, 404),
    (Forbidden, 403),
    (RateLimitError, 429),
    (DownloadError, 502),
    (ObjectStoreError, 502),
    (StorageError, 503),
]


def status_for(exc: DeliverableError) -> int:
    for cls, code in STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return code
    return 500


async def deliverable_error_handler(request: Request, exc: DeliverableError) -> JSONResponse:
    return JSONResponse(status_code=status_for(exc), content={"detail": exc.message})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DeliverableError, deliverable_error_handler)
