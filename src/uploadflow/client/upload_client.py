"""Async client that drives uploads against the UploadFlow HTTP API."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx

from ..ingest.ingest_errors import (
    CatalogWriteFailedError,
    ForbiddenError,
    IngestError,
    InvalidInputError,
    PublishUploadFailedError,
    SignUploadFailedError,
    TranscodeFailedError,
    TranscodeTimeoutError,
    UnauthorizedError,
    UpstreamFetchFailedError,
)
from ..ingest.ingest_service import read_image_size
from ..media.media_models import UploadSelection
from ..media.text import normalize_tags
from ..media.watermark import WatermarkCache
from ..media.workspace import job_workspace
from ..transcode.ffmpeg_runner import FfmpegRunner, binary_available
from ..transcode.transcode_spec import TranscodeSpec, build_ffmpeg_args
from ..utils.concurrency import DEFAULT_CONCURRENCY, BatchOutcome, CancelToken, run_bounded
from .tus_upload import TUS_CHUNK_SIZE, TusUpload, TusUploadError

logger = logging.getLogger(__name__)

UPLOAD_CHUNK_SIZE = 256 * 1024

ProgressCallback = Callable[[int, int], None]

_ERRORS_BY_REASON: dict[str, type[IngestError]] = {
    "unauthorized": UnauthorizedError,
    "forbidden": ForbiddenError,
    "invalid_input": InvalidInputError,
    "upstream_fetch_failed": UpstreamFetchFailedError,
    "transcode_failed": TranscodeFailedError,
    "publish_upload_failed": PublishUploadFailedError,
    "catalog_write_failed": CatalogWriteFailedError,
    "sign_upload_failed": SignUploadFailedError,
}


def local_transcoder_available(binary: str = "ffmpeg") -> bool:
    """True when an ffmpeg binary can be run in-process on this machine."""
    return binary_available(binary)


def error_from_response(response: httpx.Response) -> IngestError:
    try:
        payload = response.json()
    except ValueError:
        payload = {}
    detail = payload.get("detail", payload) if isinstance(payload, dict) else {}
    if not isinstance(detail, dict):
        detail = {"error": str(detail)}
    reason = detail.get("failure_reason")
    message = detail.get("error") or f"request failed with status {response.status_code}"
    if reason == "transcode_timeout":
        return TranscodeTimeoutError(message=message)
    if reason in _ERRORS_BY_REASON:
        return _ERRORS_BY_REASON[reason](message)
    if response.status_code == 401:
        return UnauthorizedError(message)
    if response.status_code == 403:
        return ForbiddenError(message)
    if response.status_code in (400, 422):
        return InvalidInputError(message)
    return IngestError(message)


@dataclass(slots=True)
class SubmissionMetadata:
    audience: str
    title: str | None = None
    description: str | None = None
    tags: list[str] = field(default_factory=list)

    def as_payload(self) -> dict[str, Any]:
        return {
            "audience": self.audience,
            "title": self.title,
            "description": self.description,
            "tags": normalize_tags(self.tags),
        }


@dataclass
class UploadClient:
    """Client side of the upload flow.

    Videos are either transcoded here (when ffmpeg is available) and
    finalized, or staged and handed to the server pipeline. Images are
    uploaded through the signed-upload handshake with bounded concurrency.
    """

    base_url: str
    user_id: str
    username: str = ""
    timeout_seconds: float = 30.0
    transport: httpx.AsyncBaseTransport | None = None
    upload_transport: httpx.AsyncBaseTransport | None = None
    concurrency: int = DEFAULT_CONCURRENCY
    watermark_logo: Path | None = None
    watermark_cache: WatermarkCache = field(default_factory=WatermarkCache)
    ffmpeg_bin: str = "ffmpeg"
    transcode_timeout_seconds: float = 120.0
    workspace_root: Path | None = None
    prefer_local_transcode: bool = True
    resumable_chunk_size: int = TUS_CHUNK_SIZE
    log: logging.Logger = field(default_factory=lambda: logger)

    def _cookies(self) -> dict[str, str]:
        return {"userId": self.user_id, "username": self.username, "isLoggedIn": "true"}

    def _api(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            cookies=self._cookies(),
            timeout=self.timeout_seconds,
            transport=self.transport,
        )

    async def _post(self, path: str, **kwargs: Any) -> dict[str, Any]:
        async with self._api() as client:
            response = await client.post(path, **kwargs)
        if response.status_code >= 400:
            raise error_from_response(response)
        return response.json()

    # signed uploads

    async def create_upload(
        self, kind: str, filename: str = "", *, staging: bool = False
    ) -> dict[str, str]:
        return await self._post(
            "/api/uploads/create",
            json={"kind": kind, "filename": filename, "staging": staging},
        )

    async def upload_signed(
        self,
        signed: dict[str, Any],
        data: bytes,
        *,
        content_type: str,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """Send ``data`` to the signed target, reporting ``(sent, total)`` as chunks go out.

        Providers that return a ``resumableUrl`` get a chunked tus upload; the
        local sink takes a single streamed PUT.
        """
        if signed.get("resumableUrl"):
            await self._upload_resumable(signed, data, content_type, on_progress)
            return
        total = len(data)

        async def body() -> AsyncIterator[bytes]:
            sent = 0
            for offset in range(0, total, UPLOAD_CHUNK_SIZE):
                chunk = data[offset : offset + UPLOAD_CHUNK_SIZE]
                sent += len(chunk)
                yield chunk
                if on_progress is not None:
                    on_progress(sent, total)

        if on_progress is not None:
            on_progress(0, total)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self.upload_transport or self.transport
            ) as client:
                response = await client.put(
                    signed["uploadUrl"],
                    content=body(),
                    headers={"Content-Type": content_type, "Content-Length": str(total)},
                )
        except httpx.HTTPError as exc:
            raise PublishUploadFailedError(f"upload of {signed['path']} failed") from exc
        if response.status_code >= 400:
            raise PublishUploadFailedError(
                f"upload of {signed['path']} returned {response.status_code}"
            )

    async def _upload_resumable(
        self,
        signed: dict[str, Any],
        data: bytes,
        content_type: str,
        on_progress: ProgressCallback | None,
    ) -> None:
        upload = TusUpload(
            endpoint=signed["resumableUrl"],
            token=signed["token"],
            bucket=signed["bucket"],
            path=signed["path"],
            content_type=content_type,
            chunk_size=self.resumable_chunk_size,
            timeout_seconds=self.timeout_seconds,
            transport=self.upload_transport or self.transport,
        )
        try:
            await upload.upload(data, on_progress)
        except (TusUploadError, httpx.HTTPError) as exc:
            self.log.error(
                "client.upload.resumable_failed",
                extra={"path": signed["path"], "upload_url": upload.upload_url},
            )
            raise PublishUploadFailedError(f"upload of {signed['path']} failed") from exc

    # video

    async def submit_trim_watermark(
        self,
        *,
        staging_video_path: str,
        staging_wm_path: str | None,
        selection: UploadSelection,
        metadata: SubmissionMetadata,
    ) -> dict[str, Any]:
        payload = {
            "stagingVideoPath": staging_video_path,
            "stagingWmPath": staging_wm_path,
            "startSec": selection.trim_start,
            "endSec": selection.trim_end,
            "position": selection.overlay_position.value,
            **metadata.as_payload(),
        }
        body = await self._post("/api/video/trim-watermark", json=payload)
        return body["row"]

    async def publish_video(
        self,
        selection: UploadSelection,
        metadata: SubmissionMetadata,
        *,
        on_progress: ProgressCallback | None = None,
        cancel: CancelToken | None = None,
    ) -> dict[str, Any] | None:
        """Publish one trimmed, watermarked clip; None when cancelled mid-way."""
        if self.prefer_local_transcode and local_transcoder_available(self.ffmpeg_bin):
            row = await self._publish_video_locally(selection, metadata, on_progress, cancel)
        else:
            row = await self._publish_video_via_server(selection, metadata, on_progress, cancel)
        if cancel is not None and cancel.cancelled:
            self.log.info("client.video.discarded", extra={"source": str(selection.source_file)})
            return None
        return row

    def _watermark_bytes(self) -> bytes | None:
        if self.watermark_logo is None:
            return None
        return self.watermark_cache.get_or_render(self.username or self.user_id, self.watermark_logo)

    async def _publish_video_locally(
        self,
        selection: UploadSelection,
        metadata: SubmissionMetadata,
        on_progress: ProgressCallback | None,
        cancel: CancelToken | None,
    ) -> dict[str, Any] | None:
        watermark = await asyncio.to_thread(self._watermark_bytes)
        if watermark is None:
            raise InvalidInputError("a watermark logo is required for local transcoding")
        spec = TranscodeSpec(
            trim_start=selection.trim_start,
            trim_end=selection.trim_end,
            overlay_position=selection.overlay_position,
            mute=selection.mute,
        )
        runner = FfmpegRunner(self.ffmpeg_bin, self.transcode_timeout_seconds)
        with job_workspace(self.workspace_root, "client") as workdir:
            input_path = workdir / "input.mp4"
            wm_path = workdir / "wm.png"
            output_path = workdir / "output.mp4"
            source = await asyncio.to_thread(selection.source_file.read_bytes)
            await asyncio.to_thread(input_path.write_bytes, source)
            await asyncio.to_thread(wm_path.write_bytes, watermark)
            await runner.run(build_ffmpeg_args(spec, input_path, wm_path, output_path))
            output = await asyncio.to_thread(output_path.read_bytes)
        if cancel is not None and cancel.cancelled:
            return None

        signed = await self.create_upload("video", selection.source_file.name)
        await self.upload_signed(signed, output, content_type="video/mp4", on_progress=on_progress)
        body = await self._post(
            "/api/media/finalize-video",
            json={
                "path": signed["path"],
                "durationSeconds": round(spec.duration, 3),
                **metadata.as_payload(),
            },
        )
        return body["row"]

    async def _publish_video_via_server(
        self,
        selection: UploadSelection,
        metadata: SubmissionMetadata,
        on_progress: ProgressCallback | None,
        cancel: CancelToken | None,
    ) -> dict[str, Any] | None:
        signed_video = await self.create_upload(
            "video", selection.source_file.name, staging=True
        )
        data = await asyncio.to_thread(selection.source_file.read_bytes)
        await self.upload_signed(
            signed_video, data, content_type="video/mp4", on_progress=on_progress
        )

        wm_path: str | None = None
        watermark = await asyncio.to_thread(self._watermark_bytes)
        if watermark is not None:
            signed_wm = await self.create_upload("watermark", "wm.png", staging=True)
            await self.upload_signed(signed_wm, watermark, content_type="image/png")
            wm_path = signed_wm["path"]
        if cancel is not None and cancel.cancelled:
            return None

        return await self.submit_trim_watermark(
            staging_video_path=signed_video["path"],
            staging_wm_path=wm_path,
            selection=selection,
            metadata=metadata,
        )

    # images

    async def upload_image(
        self,
        path: Path,
        metadata: SubmissionMetadata,
        on_progress: ProgressCallback | None = None,
    ) -> dict[str, Any]:
        data = await asyncio.to_thread(path.read_bytes)
        content_type = mimetypes.guess_type(path.name)[0] or "image/jpeg"
        signed = await self.create_upload("image", path.name)
        await self.upload_signed(signed, data, content_type=content_type, on_progress=on_progress)
        width, height = read_image_size(data)
        payload = metadata.as_payload()
        payload["title"] = payload["title"] or path.name
        body = await self._post(
            "/api/media/finalize-image",
            json={"path": signed["path"], "width": width, "height": height, **payload},
        )
        return body["row"]

    async def upload_images_batch(
        self,
        files: list[Path],
        metadata: SubmissionMetadata,
        *,
        cancel: CancelToken | None = None,
    ) -> BatchOutcome[dict[str, Any]]:
        """Upload every file independently; outcome is keyed by position in ``files``."""

        async def handle(_: int, path: Path) -> dict[str, Any]:
            return await self.upload_image(path, metadata)

        outcome = await run_bounded(files, handle, concurrency=self.concurrency, cancel=cancel)
        self.log.info(
            "client.images.batch_done",
            extra={"succeeded": len(outcome.successes), "failed": len(outcome.failures)},
        )
        return outcome

    # tags

    async def ensure_tag(self, label: str) -> dict[str, str]:
        body = await self._post("/api/tags", json={"label": label})
        return body["tag"]

    async def suggest_tags(self, query: str = "", limit: int = 50) -> list[str]:
        async with self._api() as client:
            response = await client.get("/api/tags", params={"q": query, "limit": limit})
        if response.status_code >= 400:
            raise error_from_response(response)
        return list(response.json().get("tags", []))
