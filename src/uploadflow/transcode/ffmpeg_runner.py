"""Async ffmpeg subprocess runner with a hard execution timeout."""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass

from ..ingest.ingest_errors import TranscodeFailedError, TranscodeTimeoutError

logger = logging.getLogger(__name__)


async def run_process(argv: list[str], timeout: float) -> tuple[int, bytes, bytes]:
    """Run ``argv`` and return ``(returncode, stdout, stderr)``.

    On timeout the process is killed and reaped before ``asyncio.TimeoutError``
    propagates.
    """
    proc = await asyncio.create_subprocess_exec(
        *argv,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise
    return proc.returncode if proc.returncode is not None else -1, stdout, stderr


def binary_available(binary: str) -> bool:
    return shutil.which(binary) is not None


@dataclass(slots=True)
class FfmpegRunner:
    binary: str = "ffmpeg"
    timeout_seconds: float = 120.0

    async def run(self, args: list[str]) -> None:
        """Execute one ffmpeg invocation; raise on non-zero exit or timeout."""
        argv = [self.binary, *args]
        logger.info("transcode.start", extra={"binary": self.binary, "arg_count": len(args)})
        try:
            returncode, _, stderr = await run_process(argv, self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            logger.error("transcode.timeout", extra={"timeout_seconds": self.timeout_seconds})
            raise TranscodeTimeoutError(self.timeout_seconds) from exc
        except OSError as exc:
            logger.error("transcode.spawn_failed", extra={"binary": self.binary, "error": str(exc)})
            raise TranscodeFailedError(f"cannot start {self.binary}: {exc}") from exc

        if returncode != 0:
            stderr_text = stderr.decode("utf-8", errors="replace")[-2000:]
            logger.error(
                "transcode.failed",
                extra={"exit_code": returncode, "stderr_tail": stderr_text},
            )
            raise TranscodeFailedError(
                f"ffmpeg exited with code {returncode}",
                exit_code=returncode,
                stderr=stderr_text,
            )
        logger.info("transcode.done", extra={"binary": self.binary})
