"""Source metadata probing via ffprobe."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

from ..ingest.ingest_errors import InvalidInputError, MetadataTimeoutError
from .ffmpeg_runner import run_process

logger = logging.getLogger(__name__)


async def probe_duration(
    path: Path, *, binary: str = "ffprobe", timeout_seconds: float = 10.0
) -> float:
    """Return the container duration of ``path`` in seconds."""
    argv = [binary, "-v", "error", "-print_format", "json", "-show_format", str(path)]
    try:
        returncode, stdout, stderr = await run_process(argv, timeout_seconds)
    except asyncio.TimeoutError as exc:
        logger.warning("probe.timeout", extra={"path": str(path), "timeout_seconds": timeout_seconds})
        raise MetadataTimeoutError(f"metadata probe exceeded {timeout_seconds:.0f}s") from exc
    if returncode != 0:
        raise InvalidInputError(
            (stderr.decode("utf-8", errors="replace") or "ffprobe failed").strip()
        )
    try:
        payload = json.loads(stdout or b"{}")
        return float(payload["format"]["duration"])
    except (ValueError, KeyError, TypeError) as exc:
        raise InvalidInputError("source duration is unreadable") from exc
