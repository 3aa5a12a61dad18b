# app/services/deliverable_service.py
"""
Deliverable lifecycle: create -> (send) -> download -> delete.

Metadata rows live in the relational store, file payloads in the object
store. The two stores share no transaction: a successful upload followed by
a failed insert leaves an orphaned object behind. That window is accepted
here and closed later by ``IntegrityService.find_orphaned_objects``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import Settings, settings as default_settings
from app.core.errors import (
    DownloadError,
    Forbidden,
    NotFound,
    ObjectStoreError,
    StorageError,
    ValidationError,
)
from app.core.rbac import ActorContext, ensure_allowed
from app.models.deliverable import Deliverable, DeliverableKind
from app.models.project import Project
from app.services.deliverable_validation import (
    DeliverableInvariantViolation,
    check_location_invariant,
    normalize_description,
    normalize_title,
    validate_file,
    validate_url,
)
from app.services.notification_service import NotificationService
from app.services.object_store import ObjectStore, build_object_key
from app.services.rate_limit import DownloadRateLimiter

logger = logging.getLogger(__name__)

STATUS_SENT = "sent"
STATUS_DRAFT = "draft"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class UploadedFile:
    filename: str
    content_type: str | None
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class DownloadLink:
    deliverable_id: UUID
    kind: str
    url: str
    # None for url deliverables (the stored link does not expire)
    expires_in: int | None = None


@dataclass(frozen=True)
class DeleteResult:
    deliverable_id: UUID
    # object key that could not be removed from the store, if any
    leftover_object: str | None = None


@dataclass(frozen=True)
class DeliverableFilters:
    project_id: UUID | None = None
    client_id: UUID | None = None
    status: str | None = None  # sent / draft
    kind: str | None = None
    search: str | None = None
    created_since: datetime | None = None


class DeliverableService:
    def __init__(
        self,
        db: Session,
        store: ObjectStore,
        *,
        limiter: DownloadRateLimiter | None = None,
        settings: Settings | None = None,
    ):
        self.db = db
        self.store = store
        self.settings = settings or default_settings
        self.limiter = limiter or DownloadRateLimiter.from_settings(self.settings)

    # ---------- helpers ----------

    def _commit(self, what: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Metadata store failed to %s: %s", what, e)
            raise StorageError(f"Failed to {what}") from e

    def _get(self, model, pk, what: str):
        try:
            return self.db.get(model, pk)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Metadata store failed to load %s %s: %s", what, pk, e)
            raise StorageError(f"Failed to load {what}") from e

    def _load(self, deliverable_id: UUID) -> Deliverable:
        d = self._get(Deliverable, deliverable_id, "deliverable")
        if not d:
            raise NotFound("Deliverable not found")
        return d

    def _load_project(self, project_id: UUID) -> Project:
        p = self._get(Project, project_id, "project")
        if not p:
            raise NotFound("Project not found")
        return p

    def _ensure_can_access(self, d: Deliverable, actor: ActorContext) -> None:
        if actor.is_admin:
            return
        # клиент видит только отправленные deliverables своих проектов
        if d.project.client_id != actor.actor_user_id or not d.sent:
            raise Forbidden("You don't have permission to access this deliverable")

    def _upload(self, project_id: UUID, upload: UploadedFile) -> str:
        key = build_object_key(project_id, upload.filename)
        return self.store.upload(key, upload.data, upload.content_type)

    # ---------- Public API ----------

    def create(
        self,
        actor: ActorContext,
        *,
        project_id: UUID,
        title: str,
        kind: str,
        description: str | None = None,
        url: str | None = None,
        upload: UploadedFile | None = None,
    ) -> Deliverable:
        """
        Validate, upload the payload (file kind), then insert the row with sent=false.

        Nothing is written anywhere until validation and the permission check pass.
        If the insert fails after a successful upload the object stays in the store.
        """
        ensure_allowed("deliverable.create", actor.role)

        title = normalize_title(title)
        description = normalize_description(description)

        if kind == DeliverableKind.url.value:
            url = validate_url(url)
        elif kind == DeliverableKind.file.value:
            if upload is None or not upload.data:
                raise ValidationError("file required")
            validate_file(upload.filename, upload.content_type, upload.size, self.settings)
            url = None
        else:
            raise ValidationError("invalid kind")

        self._load_project(project_id)

        file_path = None
        if kind == DeliverableKind.file.value:
            file_path = self._upload(project_id, upload)

        d = Deliverable(
            project_id=project_id,
            title=title,
            description=description,
            kind=kind,
            url=url,
            file_path=file_path,
            original_filename=upload.filename if file_path else None,
            content_type=upload.content_type if file_path else None,
            size_bytes=upload.size if file_path else None,
            sent=False,
            sent_at=None,
            created_by=actor.actor_user_id,
        )
        check_location_invariant(d)

        self.db.add(d)
        try:
            self._commit("create deliverable")
        except StorageError:
            if file_path:
                logger.warning("Orphaned object left in store after failed insert: %s", file_path)
            raise

        self.db.refresh(d)
        logger.info("Created %s deliverable %s for project %s", kind, d.id, project_id)
        return d

    def update(
        self,
        deliverable_id: UUID,
        actor: ActorContext,
        *,
        title: str | None = None,
        description: str | None = None,
        url: str | None = None,
        upload: UploadedFile | None = None,
    ) -> Deliverable:
        """Edit title/description, replace the link (url) or the payload (file). Kind never changes."""
        ensure_allowed("deliverable.update", actor.role)

        d = self._load(deliverable_id)
        try:
            check_location_invariant(d)
        except DeliverableInvariantViolation as e:
            # legacy row with both url and file_path; nothing is uploaded for it
            logger.warning("Refusing to update deliverable %s: %s", deliverable_id, e)
            raise ValidationError("run integrity repair first") from e

        if title is not None:
            title = normalize_title(title)
        if d.kind == DeliverableKind.url.value:
            if upload is not None:
                raise ValidationError("kind cannot be changed")
            if url is not None:
                url = validate_url(url)
        else:
            if url is not None:
                raise ValidationError("kind cannot be changed")
            if upload is not None:
                if not upload.data:
                    raise ValidationError("file required")
                validate_file(upload.filename, upload.content_type, upload.size, self.settings)

        old_file_path = None
        if upload is not None:
            new_key = self._upload(d.project_id, upload)
            old_file_path = d.file_path
            d.file_path = new_key
            d.original_filename = upload.filename
            d.content_type = upload.content_type
            d.size_bytes = upload.size
        if url is not None:
            d.url = url
        if title is not None:
            d.title = title
        if description is not None:
            d.description = normalize_description(description)

        check_location_invariant(d)
        d.updated_at = _now()
        self._commit("update deliverable")
        self.db.refresh(d)

        if old_file_path and old_file_path != d.file_path:
            try:
                self.store.remove([old_file_path])
            except ObjectStoreError:
                logger.warning("Replaced object could not be removed, left orphaned: %s", old_file_path)

        return d

    def send(self, deliverable_id: UUID, actor: ActorContext) -> Deliverable:
        d, _ = self.send_once(deliverable_id, actor)
        return d

    def send_once(self, deliverable_id: UUID, actor: ActorContext) -> tuple[Deliverable, bool]:
        """
        Mark the deliverable sent and notify the client.

        The update only matches rows with sent=false, so a repeated send is a
        no-op: sent_at keeps its first value and no second notification goes out.
        Returns the row and whether this call performed the transition.
        """
        ensure_allowed("deliverable.send", actor.role)

        d = self._load(deliverable_id)

        now = _now()
        try:
            result = self.db.execute(
                update(Deliverable)
                .where(Deliverable.id == deliverable_id, Deliverable.sent.is_(False))
                .values(sent=True, sent_at=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Metadata store failed to send deliverable %s: %s", deliverable_id, e)
            raise StorageError("Failed to send deliverable") from e
        self._commit("send deliverable")
        self.db.refresh(d)

        if result.rowcount == 0:
            logger.info("Deliverable %s already sent at %s; skipping", deliverable_id, d.sent_at)
            return d, False

        # уведомление только после подтверждённого перехода; ошибка не откатывает send
        project = d.project
        try:
            NotificationService(self.db).notify(project.client_id, project.name, d.title)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("Deliverable %s sent but client notification failed: %s", deliverable_id, e)

        return d, True

    def get_download(self, deliverable_id: UUID, actor: ActorContext) -> DownloadLink:
        """
        Resolve where the requester should go to fetch the deliverable.

        The rate limit is checked before any store is contacted. File
        deliverables get a time-limited signed URL; the stored key is never
        exposed directly.
        """
        ensure_allowed("deliverable.download", actor.role)
        self.limiter.check(actor.actor_user_id)

        d = self._load(deliverable_id)
        self._ensure_can_access(d, actor)

        if d.kind == DeliverableKind.url.value:
            if not d.url:
                raise DownloadError("This deliverable doesn't have a valid download link")
            return DownloadLink(deliverable_id=d.id, kind=d.kind, url=d.url)

        if not d.file_path:
            raise DownloadError("This deliverable doesn't have a valid download link")

        ttl = self.settings.signed_url_ttl_seconds
        try:
            signed = self.store.signed_url(d.file_path, ttl)
        except ObjectStoreError as e:
            logger.warning("Signed URL failed for deliverable %s (%s); it may be broken", d.id, d.file_path)
            raise DownloadError("The file is no longer available for download") from e

        return DownloadLink(deliverable_id=d.id, kind=d.kind, url=signed, expires_in=ttl)

    def delete(self, deliverable_id: UUID, actor: ActorContext) -> DeleteResult:
        """
        Delete the row, then the stored payload.

        The row goes first: a leftover object is an orphan for the sweep, while
        a leftover row pointing at a deleted object would be a broken deliverable.
        """
        ensure_allowed("deliverable.delete", actor.role)

        d = self._load(deliverable_id)
        file_path = d.file_path

        self.db.delete(d)
        self._commit("delete deliverable")

        leftover = None
        if file_path:
            try:
                self.store.remove([file_path])
            except ObjectStoreError:
                logger.warning("Deliverable %s deleted but object %s was left in store", deliverable_id, file_path)
                leftover = file_path

        logger.info("Deleted deliverable %s", deliverable_id)
        return DeleteResult(deliverable_id=deliverable_id, leftover_object=leftover)

    def get(self, deliverable_id: UUID, actor: ActorContext) -> Deliverable:
        ensure_allowed("deliverable.read", actor.role)
        d = self._load(deliverable_id)
        self._ensure_can_access(d, actor)
        return d

    def list_deliverables(self, actor: ActorContext, filters: DeliverableFilters | None = None) -> list[Deliverable]:
        ensure_allowed("deliverable.read", actor.role)
        f = filters or DeliverableFilters()

        stmt = select(Deliverable).join(Project, Project.id == Deliverable.project_id)

        if not actor.is_admin:
            stmt = stmt.where(
                Project.client_id == actor.actor_user_id,
                Deliverable.sent.is_(True),
            )

        if f.project_id is not None:
            stmt = stmt.where(Deliverable.project_id == f.project_id)
        if f.client_id is not None:
            stmt = stmt.where(Project.client_id == f.client_id)
        if f.status == STATUS_SENT:
            stmt = stmt.where(Deliverable.sent.is_(True))
        elif f.status == STATUS_DRAFT:
            stmt = stmt.where(Deliverable.sent.is_(False))
        if f.kind is not None:
            stmt = stmt.where(Deliverable.kind == f.kind)
        if f.search:
            pattern = f"%{f.search.strip()}%"
            stmt = stmt.where(
                or_(
                    Deliverable.title.ilike(pattern),
                    Deliverable.description.ilike(pattern),
                    Project.name.ilike(pattern),
                )
            )
        if f.created_since is not None:
            stmt = stmt.where(Deliverable.created_at >= f.created_since)

        try:
            return list(self.db.execute(stmt.order_by(Deliverable.created_at.desc())).scalars())
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Metadata store failed to list deliverables: %s", e)
            raise StorageError("Failed to load deliverables") from e
