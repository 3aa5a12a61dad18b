# scripts/integrity_scan.py
"""
Scheduled integrity check of file deliverables, run as the ``system`` role.

  python scripts/integrity_scan.py --scan      report only, exit 1 if anything is broken
  python scripts/integrity_scan.py --repair    convert what can be converted, exit 1 if unrepairable remain
  python scripts/integrity_scan.py --orphans   list stored objects no deliverable references
"""
from __future__ import annotations

import argparse
import sys
from typing import Callable
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logging_config import configure_logging
from app.core.rbac import ActorContext, Role
from app.services.integrity_service import IntegrityService
from app.services.object_store import ObjectStore, S3ObjectStore

# fixed actor id for scheduled runs, shows up in logs only
SYSTEM_ACTOR = ActorContext(actor_user_id=UUID(int=0), role=Role.SYSTEM)


def _run(svc: IntegrityService, mode: str) -> int:
    if mode == "scan":
        report = svc.scan(SYSTEM_ACTOR)
        for b in report.broken:
            print(f"[BROKEN] {b.deliverable_id} {b.reason} {b.file_path} fallback_url={b.has_fallback_url}")
        print(f"[OK] {report.total} file deliverables, {len(report.broken)} broken")
        return 1 if report.broken else 0

    if mode == "repair":
        result = svc.repair_all(SYSTEM_ACTOR)
        for o in result.outcomes:
            print(f"[{o.action.upper()}] {o.deliverable_id} {o.message or ''}".rstrip())
        print(f"[OK] converted={result.converted} unrepairable={result.unrepairable}")
        return 1 if result.unrepairable else 0

    report = svc.find_orphaned_objects(SYSTEM_ACTOR)
    for key in report.orphaned:
        print(f"[ORPHAN] {key}")
    print(f"[OK] {report.total_objects} objects, {len(report.orphaned)} orphaned")
    return 0


def main(
    argv: list[str] | None = None,
    *,
    session_factory: Callable[[], Session] | None = None,
    store: ObjectStore | None = None,
) -> int:
    parser = argparse.ArgumentParser("Deliverable integrity scanner")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--scan", action="store_true", help="Report broken file deliverables")
    group.add_argument("--repair", action="store_true", help="Repair broken file deliverables")
    group.add_argument("--orphans", action="store_true", help="List unreferenced stored objects")
    args = parser.parse_args(argv)

    if session_factory is None:
        from app.core.db import SessionLocal

        session_factory = SessionLocal
    if store is None:
        store = S3ObjectStore.from_settings(settings)

    mode = "scan" if args.scan else "repair" if args.repair else "orphans"
    db = session_factory()
    try:
        return _run(IntegrityService(db, store, settings=settings), mode)
    finally:
        db.close()


if __name__ == "__main__":
    configure_logging(settings.log_level)
    sys.exit(main())
