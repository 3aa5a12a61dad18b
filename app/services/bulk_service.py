# app/services/bulk_service.py

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable
from uuid import UUID

from app.core.errors import DeliverableError
from app.core.rbac import ActorContext
from app.services.deliverable_service import DeliverableService, DownloadLink

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BulkItemResult:
    deliverable_id: UUID
    ok: bool
    error: str | None = None
    # already in the target state, nothing done (e.g. sent twice)
    skipped: bool = False
    link: DownloadLink | None = None


@dataclass
class BulkResult:
    items: list[BulkItemResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for i in self.items if i.ok and not i.skipped)

    @property
    def failed(self) -> int:
        return sum(1 for i in self.items if not i.ok)

    @property
    def skipped(self) -> int:
        return sum(1 for i in self.items if i.skipped)


def _dedupe(ids: Iterable[UUID]) -> list[UUID]:
    seen: set[UUID] = set()
    out: list[UUID] = []
    for i in ids:
        if i not in seen:
            seen.add(i)
            out.append(i)
    return out


class BulkDeliverableService:
    """
    Apply a single-item operation to many deliverables.

    Items are independent: each one commits (or fails) on its own and a
    failure is recorded against that item instead of aborting the batch.
    """

    def __init__(
        self,
        deliverables: DeliverableService,
        *,
        download_delay_seconds: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.deliverables = deliverables
        if download_delay_seconds is None:
            download_delay_seconds = deliverables.settings.bulk_download_delay_seconds
        self.download_delay_seconds = download_delay_seconds
        self._sleep = sleep

    def _run(
        self,
        op: str,
        ids: Iterable[UUID],
        fn: Callable[[UUID], BulkItemResult],
        *,
        delay_seconds: float = 0,
    ) -> BulkResult:
        result = BulkResult()
        for n, deliverable_id in enumerate(_dedupe(ids)):
            if n and delay_seconds > 0:
                self._sleep(delay_seconds)
            try:
                result.items.append(fn(deliverable_id))
            except DeliverableError as e:
                logger.warning("Bulk %s failed for deliverable %s: %s", op, deliverable_id, e.message)
                # the next item starts from a clean session
                self.deliverables.db.rollback()
                result.items.append(BulkItemResult(deliverable_id=deliverable_id, ok=False, error=e.message))
        logger.info(
            "Bulk %s done: %d succeeded, %d failed, %d skipped",
            op, result.succeeded, result.failed, result.skipped,
        )
        return result

    def bulk_send(self, ids: Iterable[UUID], actor: ActorContext) -> BulkResult:
        def _send(deliverable_id: UUID) -> BulkItemResult:
            _, changed = self.deliverables.send_once(deliverable_id, actor)
            return BulkItemResult(deliverable_id=deliverable_id, ok=True, skipped=not changed)

        return self._run("send", ids, _send)

    def bulk_delete(self, ids: Iterable[UUID], actor: ActorContext) -> BulkResult:
        def _delete(deliverable_id: UUID) -> BulkItemResult:
            res = self.deliverables.delete(deliverable_id, actor)
            error = "file left in storage" if res.leftover_object else None
            return BulkItemResult(deliverable_id=deliverable_id, ok=True, error=error)

        return self._run("delete", ids, _delete)

    def bulk_download(self, ids: Iterable[UUID], actor: ActorContext) -> BulkResult:
        def _download(deliverable_id: UUID) -> BulkItemResult:
            link = self.deliverables.get_download(deliverable_id, actor)
            return BulkItemResult(deliverable_id=deliverable_id, ok=True, link=link)

        # пауза между элементами, чтобы не упереться в rate limit
        return self._run("download", ids, _download, delay_seconds=self.download_delay_seconds)
