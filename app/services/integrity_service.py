# app/services/integrity_service.py
"""
Cross-store integrity checks between deliverable rows and stored objects.

Forward direction (``scan`` / ``repair``): every file deliverable must point
at an object that exists and can be signed. Broken rows that still carry a
url are converted to url deliverables; the rest are reported as unrepairable.

Reverse direction (``find_orphaned_objects``): objects under the deliverables
prefix that no row references, e.g. uploads whose insert failed.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import Settings, settings as default_settings
from app.core.errors import IntegrityWarning, NotFound, ObjectStoreError, StorageError
from app.core.rbac import ActorContext, ensure_allowed
from app.models.deliverable import Deliverable, DeliverableKind
from app.services.deliverable_validation import check_location_invariant
from app.services.object_store import KEY_PREFIX, ObjectStore

logger = logging.getLogger(__name__)

REASON_MISSING_OBJECT = "missing_object"
REASON_SIGNED_URL_FAILED = "signed_url_failed"

ACTION_CONVERTED = "converted_to_url"
ACTION_UNREPAIRABLE = "unrepairable"
ACTION_HEALTHY = "healthy"


@dataclass(frozen=True)
class FileCheck:
    exists: bool
    can_sign: bool
    error: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.exists and self.can_sign

    @property
    def reason(self) -> str | None:
        if not self.exists:
            return REASON_MISSING_OBJECT
        if not self.can_sign:
            return REASON_SIGNED_URL_FAILED
        return None


@dataclass(frozen=True)
class BrokenDeliverable:
    deliverable_id: UUID
    title: str
    project_id: UUID
    file_path: str
    reason: str
    has_fallback_url: bool
    message: str | None = None

    def as_warning(self) -> IntegrityWarning:
        return IntegrityWarning(self.deliverable_id, self.reason, self.message or self.reason)


@dataclass
class IntegrityReport:
    total: int = 0
    broken: list[BrokenDeliverable] = field(default_factory=list)

    @property
    def healthy(self) -> int:
        return self.total - len(self.broken)

    @property
    def warnings(self) -> list[IntegrityWarning]:
        return [b.as_warning() for b in self.broken]


@dataclass(frozen=True)
class RepairOutcome:
    deliverable_id: UUID
    action: str
    message: str | None = None


@dataclass
class RepairReport:
    scan: IntegrityReport
    outcomes: list[RepairOutcome] = field(default_factory=list)

    @property
    def converted(self) -> int:
        return sum(1 for o in self.outcomes if o.action == ACTION_CONVERTED)

    @property
    def unrepairable(self) -> int:
        return sum(1 for o in self.outcomes if o.action == ACTION_UNREPAIRABLE)


@dataclass(frozen=True)
class OrphanReport:
    total_objects: int
    orphaned: list[str]


class IntegrityService:
    def __init__(self, db: Session, store: ObjectStore, *, settings: Settings | None = None):
        self.db = db
        self.store = store
        self.settings = settings or default_settings

    # ---------- checks ----------

    def validate_file(self, file_path: str) -> FileCheck:
        """Existence check plus a short-lived signed URL. Never raises."""
        errors: list[str] = []

        try:
            exists = self.store.exists(file_path)
            if not exists:
                errors.append("object not found")
        except ObjectStoreError as e:
            exists = False
            errors.append(f"existence check failed: {e.message}")

        try:
            self.store.signed_url(file_path, self.settings.integrity_signed_url_ttl_seconds)
            can_sign = True
        except ObjectStoreError as e:
            can_sign = False
            errors.append(f"signed url failed: {e.message}")

        return FileCheck(exists=exists, can_sign=can_sign, error="; ".join(errors) or None)

    def _file_deliverables(self) -> list[Deliverable]:
        try:
            return list(
                self.db.execute(
                    select(Deliverable)
                    .where(
                        Deliverable.kind == DeliverableKind.file.value,
                        Deliverable.file_path.is_not(None),
                    )
                    .order_by(Deliverable.created_at.asc())
                ).scalars()
            )
        except SQLAlchemyError as e:
            logger.error("Integrity scan could not load deliverables: %s", e)
            raise StorageError("Failed to load deliverables") from e

    def _scan(self) -> tuple[IntegrityReport, dict[UUID, Deliverable]]:
        rows = self._file_deliverables()
        report = IntegrityReport(total=len(rows))
        broken_rows: dict[UUID, Deliverable] = {}

        for d in rows:
            check = self.validate_file(d.file_path)
            if check.is_valid:
                continue
            item = BrokenDeliverable(
                deliverable_id=d.id,
                title=d.title,
                project_id=d.project_id,
                file_path=d.file_path,
                reason=check.reason,
                has_fallback_url=bool(d.url),
                message=check.error,
            )
            logger.warning("Broken deliverable %s (%s): %s", d.id, item.reason, item.message)
            warnings.warn(item.as_warning(), stacklevel=3)
            report.broken.append(item)
            broken_rows[d.id] = d

        logger.info("Integrity scan: %d file deliverables, %d broken", report.total, len(report.broken))
        return report, broken_rows

    def scan(self, actor: ActorContext) -> IntegrityReport:
        ensure_allowed("integrity.scan", actor.role)
        report, _ = self._scan()
        return report

    # ---------- repair ----------

    def _convert_to_url(self, d: Deliverable) -> RepairOutcome:
        if not d.url:
            return RepairOutcome(d.id, ACTION_UNREPAIRABLE, "No alternative URL available")

        broken_path = d.file_path
        d.kind = DeliverableKind.url.value
        d.file_path = None
        d.original_filename = None
        d.content_type = None
        d.size_bytes = None
        check_location_invariant(d)

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to convert deliverable %s to url: %s", d.id, e)
            raise StorageError("Failed to repair deliverable") from e

        logger.info("Deliverable %s converted to url (broken object %s)", d.id, broken_path)
        return RepairOutcome(d.id, ACTION_CONVERTED)

    def repair(self, deliverable_id: UUID, actor: ActorContext) -> RepairOutcome:
        """Re-check one deliverable and convert it to url if it is broken and has a fallback."""
        ensure_allowed("integrity.repair", actor.role)

        d = self.db.get(Deliverable, deliverable_id)
        if not d:
            raise NotFound("Deliverable not found")

        if d.kind != DeliverableKind.file.value or not d.file_path:
            return RepairOutcome(d.id, ACTION_HEALTHY)

        check = self.validate_file(d.file_path)
        if check.is_valid:
            return RepairOutcome(d.id, ACTION_HEALTHY)

        return self._convert_to_url(d)

    def repair_all(self, actor: ActorContext) -> RepairReport:
        """Scan, then repair every broken deliverable found. One failed repair does not stop the rest."""
        ensure_allowed("integrity.repair", actor.role)

        report, broken_rows = self._scan()
        result = RepairReport(scan=report)
        for item in report.broken:
            try:
                outcome = self._convert_to_url(broken_rows[item.deliverable_id])
            except StorageError as e:
                outcome = RepairOutcome(item.deliverable_id, ACTION_UNREPAIRABLE, e.message)
            result.outcomes.append(outcome)
        return result

    # ---------- orphaned objects ----------

    def _referenced_keys(self) -> set[str]:
        try:
            rows = self.db.execute(
                select(Deliverable.file_path).where(Deliverable.file_path.is_not(None))
            ).scalars()
            return set(rows)
        except SQLAlchemyError as e:
            logger.error("Could not load referenced object keys: %s", e)
            raise StorageError("Failed to load deliverables") from e

    def find_orphaned_objects(self, actor: ActorContext, prefix: str = f"{KEY_PREFIX}/") -> OrphanReport:
        ensure_allowed("integrity.orphans", actor.role)

        keys = self.store.list_keys(prefix)
        referenced = self._referenced_keys()
        orphaned = sorted(k for k in keys if k not in referenced)
        logger.info("Orphan sweep under %r: %d objects, %d orphaned", prefix, len(keys), len(orphaned))
        return OrphanReport(total_objects=len(keys), orphaned=orphaned)

    def remove_orphaned_objects(self, actor: ActorContext, keys: list[str]) -> list[str]:
        """
        Delete the given keys, skipping any that a row references by now or
        that live outside the deliverables prefix. Returns the removed keys.
        """
        ensure_allowed("integrity.orphans", actor.role)

        referenced = self._referenced_keys()
        removable = sorted(
            {k for k in keys if k.startswith(f"{KEY_PREFIX}/") and k not in referenced}
        )
        if removable:
            self.store.remove(removable)
            logger.info("Removed %d orphaned object(s)", len(removable))
        return removable
