"""Cron entry point for deleting published objects that no catalog row references."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from src.uploadflow.config import load_config
from src.uploadflow.repositories.media_repository import MediaRepository
from src.uploadflow.storage.storage_base import StorageClient, StoredObject
from src.uploadflow.storage.storage_factory import create_storage

logger = logging.getLogger(__name__)

MEDIA_PREFIXES = ("videos", "images")


@dataclass(slots=True)
class SweepSummary:
    scanned: int
    orphaned: list[str] = field(default_factory=list)
    removed: int = 0
    dry_run: bool = False


def _is_stale(obj: StoredObject, cutoff: datetime) -> bool:
    if obj.created_at is None:
        return False
    created = obj.created_at
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return created <= cutoff


async def sweep_orphans(
    storage: StorageClient,
    media_repo: MediaRepository,
    bucket: str,
    *,
    grace: timedelta,
    dry_run: bool,
    reference_time: datetime | None = None,
    prefixes: tuple[str, ...] = MEDIA_PREFIXES,
) -> SweepSummary:
    """Remove objects under ``prefixes`` older than ``grace`` that have no media row."""
    now = reference_time or datetime.now(timezone.utc)
    cutoff = now - grace

    objects: list[StoredObject] = []
    for prefix in prefixes:
        objects.extend(await storage.list_objects(bucket, prefix))

    candidates = [obj.path for obj in objects if _is_stale(obj, cutoff)]
    known = media_repo.known_storage_paths(candidates)
    orphaned = [path for path in candidates if path not in known]
    summary = SweepSummary(scanned=len(objects), orphaned=orphaned, dry_run=dry_run)

    if orphaned and not dry_run:
        await storage.remove(bucket, orphaned)
        summary.removed = len(orphaned)
        logger.info("sweep.removed", extra={"bucket": bucket, "count": len(orphaned)})
    return summary


def perform_sweep(*, dry_run: bool, reference_time: datetime | None = None) -> SweepSummary:
    config = load_config()
    storage = create_storage(config.storage)
    media_repo = MediaRepository(config.session_factory)
    return asyncio.run(
        sweep_orphans(
            storage,
            media_repo,
            config.storage.media_bucket,
            grace=timedelta(minutes=config.orphan_grace_minutes),
            dry_run=dry_run,
            reference_time=reference_time,
        )
    )


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Delete media objects without catalog rows.")
    parser.add_argument("--dry-run", action="store_true", help="Only report orphans without deleting.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or [])
    try:
        summary = perform_sweep(dry_run=args.dry_run)
    except Exception as exc:
        print(f"sweep failed: {exc}", file=sys.stderr)
        return 2

    if summary.dry_run:
        print(f"sweep dry-run, scanned={summary.scanned}, orphaned={len(summary.orphaned)}")
        for path in summary.orphaned:
            print(f"  {path}")
    else:
        print(f"sweep done, scanned={summary.scanned}, removed={summary.removed}")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
