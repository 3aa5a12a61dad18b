# app/api/deps.py
from __future__ import annotations

from functools import lru_cache
from uuid import UUID

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.db import get_db
from app.core.rbac import ActorContext
from app.services.deliverable_service import DeliverableService
from app.services.integrity_service import IntegrityService
from app.services.object_store import ObjectStore, S3ObjectStore
from app.services.rate_limit import DownloadRateLimiter


# -----------------------------------------------------------------------------
# Auth headers
# -----------------------------------------------------------------------------


def get_current_user_id(
    x_actor_user_id: str | None = Header(
        default=None,
        alias="X-Actor-User-Id",
        description="UUID of the user performing the request.",
        examples=["33333333-3333-3333-3333-333333333333"],
    ),
) -> UUID:
    if not x_actor_user_id:
        raise HTTPException(status_code=401, detail="Missing X-Actor-User-Id header")
    try:
        return UUID(x_actor_user_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Invalid X-Actor-User-Id format (must be UUID)") from e


def get_actor_role(
    x_role: str = Header(
        "client",
        alias="X-Role",
        description="Caller role: admin, client or system.",
        examples=["admin", "client", "system"],
    )
) -> str:
    return x_role.strip()


def get_actor_context(
    actor_user_id: UUID = Depends(get_current_user_id),
    role: str = Depends(get_actor_role),
) -> ActorContext:
    return ActorContext(actor_user_id=actor_user_id, role=role)


# -----------------------------------------------------------------------------
# Process-wide collaborators
# -----------------------------------------------------------------------------


@lru_cache
def get_object_store() -> ObjectStore:
    return S3ObjectStore.from_settings(settings)


@lru_cache
def get_download_limiter() -> DownloadRateLimiter:
    return DownloadRateLimiter.from_settings(settings)


def get_deliverable_service(
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    limiter: DownloadRateLimiter = Depends(get_download_limiter),
) -> DeliverableService:
    return DeliverableService(db, store, limiter=limiter, settings=settings)


def get_integrity_service(
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
) -> IntegrityService:
    return IntegrityService(db, store, settings=settings)
