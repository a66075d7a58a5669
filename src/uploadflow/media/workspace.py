"""Scoped temporary directories for pipeline runs."""

from __future__ import annotations

import logging
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)


@contextmanager
def job_workspace(base_dir: Path | None, job_id: str) -> Iterator[Path]:
    """Yield a fresh directory unique to ``job_id``; remove it on every exit path."""
    if base_dir is not None:
        base_dir.mkdir(parents=True, exist_ok=True)
    path = Path(tempfile.mkdtemp(prefix=f"job-{job_id}-", dir=base_dir))
    try:
        yield path
    finally:
        try:
            shutil.rmtree(path)
        except OSError:
            logger.warning("workspace.cleanup_failed", extra={"job_id": job_id, "path": str(path)})
