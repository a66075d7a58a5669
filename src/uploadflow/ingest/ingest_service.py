"""Domain service for media ingestion."""

from __future__ import annotations

import asyncio
import io
import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from ..auth.identity import Identity, path_in_scope
from ..config import ClipPolicy, StorageSettings, TranscodeSettings
from ..exceptions import RepositoryError
from ..media.media_models import (
    Audience,
    MediaRecord,
    MediaType,
    TranscodeJob,
    parse_audience,
    utcnow,
)
from ..media.text import normalize_tags, safe_extension
from ..media.watermark import WatermarkCache
from ..media.workspace import job_workspace
from ..repositories.media_repository import MediaRepository
from ..storage.storage_base import SignedUpload, StorageClient, StorageError
from ..transcode.ffmpeg_runner import FfmpegRunner
from ..transcode.transcode_spec import TranscodeSpec, build_ffmpeg_args
from ..utils.concurrency import BatchOutcome, CancelToken, run_bounded
from .ingest_errors import (
    CatalogWriteFailedError,
    ForbiddenError,
    InvalidInputError,
    PublishUploadFailedError,
    SignUploadFailedError,
    TranscodeFailedError,
    UpstreamFetchFailedError,
)
from .ingest_schemas import TrimWatermarkRequest

logger = logging.getLogger(__name__)

UPLOAD_KINDS = ("video", "image", "watermark")


@dataclass(slots=True)
class MediaMetadata:
    """Catalog fields shared by every item of one submission."""

    audience: Audience
    title: str | None = None
    description: str | None = None
    tags: list[str] = field(default_factory=list)

    @classmethod
    def parse(
        cls,
        audience: str | None,
        title: str | None = None,
        description: str | None = None,
        tags: list[str] | None = None,
    ) -> "MediaMetadata":
        return cls(
            audience=parse_audience(audience),
            title=(title or "").strip() or None,
            description=(description or "").strip() or None,
            tags=normalize_tags(tags or []),
        )


@dataclass(slots=True)
class ImageUpload:
    filename: str
    data: bytes
    content_type: str | None = None


def read_image_size(data: bytes) -> tuple[int | None, int | None]:
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.width, img.height
    except (UnidentifiedImageError, OSError):
        return None, None


@dataclass(slots=True)
class IngestionPipeline:
    """Coordinates staging downloads, ffmpeg, publishing and catalog writes."""

    storage: StorageClient
    media_repo: MediaRepository
    runner: FfmpegRunner
    storage_settings: StorageSettings
    transcode_settings: TranscodeSettings = field(default_factory=TranscodeSettings)
    clip_policy: ClipPolicy = field(default_factory=ClipPolicy)
    watermark_cache: WatermarkCache = field(default_factory=WatermarkCache)
    watermark_logo: Path | None = None
    workspace_root: Path | None = None
    batch_concurrency: int = 3
    log: logging.Logger = field(default_factory=lambda: logger)

    async def ingest_video(
        self, identity: Identity, request: TrimWatermarkRequest
    ) -> MediaRecord:
        """Trim, watermark and publish one staged video, then record it."""
        if not request.staging_wm_path and self.watermark_logo is None:
            raise InvalidInputError("stagingWmPath is required")

        job = TranscodeJob.accept(
            job_id=uuid.uuid4().hex,
            identity=identity,
            staging_bucket=self.storage_settings.staging_bucket,
            video_path=request.staging_video_path,
            watermark_path=request.staging_wm_path,
            trim_start=request.start_sec,
            trim_end=request.end_sec,
            position=request.position,
            audience=request.audience,
            title=request.title,
            description=request.description,
            tags=request.tags,
            max_clip_seconds=self.clip_policy.max_clip_seconds,
        )
        context = {"job_id": job.job_id, "owner_id": job.owner_id}
        self.log.info(
            "ingest.video.accepted",
            extra={**context, "start": job.trim_start, "end": job.trim_end},
        )

        video_bytes = await self._fetch_staging(job.input_artifact.path, context)
        if job.watermark_artifact is not None:
            wm_bytes = await self._fetch_staging(job.watermark_artifact.path, context)
        elif self.watermark_logo is not None:
            wm_bytes = await self._render_server_watermark(identity, self.watermark_logo, context)
        else:
            raise InvalidInputError("stagingWmPath is required")

        output = await self._transcode(job, video_bytes, wm_bytes)

        storage_path = f"videos/{job.owner_id}/{uuid.uuid4()}.mp4"
        await self._publish(storage_path, output, "video/mp4", context)

        record = MediaRecord(
            id=str(uuid.uuid4()),
            owner_id=job.owner_id,
            media_type=MediaType.VIDEO,
            audience=job.audience,
            storage_path=storage_path,
            created_at=utcnow(),
            title=job.title,
            description=job.description,
            duration_seconds=round(job.duration, 3),
            tags=list(job.tags),
        )
        self._record(record, context)
        self.log.info(
            "ingest.video.published",
            extra={**context, "record_id": record.id, "storage_path": storage_path},
        )

        staged = [job.input_artifact.path]
        if job.watermark_artifact is not None:
            staged.append(job.watermark_artifact.path)
        await self._cleanup_staging(staged, context)
        return record

    async def _fetch_staging(self, path: str, context: dict[str, str]) -> bytes:
        bucket = self.storage_settings.staging_bucket
        try:
            payload = await self.storage.download(bucket, path)
        except StorageError as exc:
            self.log.error(
                "ingest.video.fetch_failed",
                extra={**context, "path": path, "status_code": exc.status_code},
            )
            raise UpstreamFetchFailedError(f"failed to download {path}") from exc
        if not payload:
            self.log.error("ingest.video.fetch_empty", extra={**context, "path": path})
            raise UpstreamFetchFailedError(f"staging object {path} is empty")
        return payload

    async def _render_server_watermark(
        self, identity: Identity, logo: Path, context: dict[str, str]
    ) -> bytes:
        try:
            return await asyncio.to_thread(
                self.watermark_cache.get_or_render, identity.display_name, logo
            )
        except OSError as exc:
            self.log.error("ingest.video.watermark_failed", extra={**context, "logo": str(logo)})
            raise UpstreamFetchFailedError("watermark logo is unavailable") from exc

    async def _transcode(self, job: TranscodeJob, video: bytes, watermark: bytes) -> bytes:
        settings = self.transcode_settings
        spec = TranscodeSpec(
            trim_start=job.trim_start,
            trim_end=job.trim_end,
            overlay_position=job.overlay_position,
            scale_height=settings.scale_height,
            frame_rate=settings.frame_rate,
            overlay_inset=settings.overlay_inset,
            video_preset=settings.video_preset,
            crf=settings.crf,
            audio_bitrate=settings.audio_bitrate,
        )
        with job_workspace(self.workspace_root, job.job_id) as workdir:
            input_path = workdir / "input.mp4"
            wm_path = workdir / "wm.png"
            output_path = workdir / "output.mp4"
            await asyncio.to_thread(input_path.write_bytes, video)
            await asyncio.to_thread(wm_path.write_bytes, watermark)

            await self.runner.run(build_ffmpeg_args(spec, input_path, wm_path, output_path))

            if not output_path.exists() or output_path.stat().st_size == 0:
                raise TranscodeFailedError("ffmpeg produced no output")
            return await asyncio.to_thread(output_path.read_bytes)

    async def _publish(
        self, path: str, data: bytes, content_type: str, context: dict[str, str]
    ) -> None:
        try:
            await self.storage.upload(
                self.storage_settings.media_bucket,
                path,
                data,
                content_type=content_type,
                cache_control="3600",
                upsert=False,
            )
        except StorageError as exc:
            self.log.error(
                "ingest.publish_failed",
                extra={**context, "path": path, "status_code": exc.status_code},
            )
            raise PublishUploadFailedError(f"failed to store {path}") from exc

    def _record(self, record: MediaRecord, context: dict[str, str]) -> None:
        try:
            self.media_repo.create(record)
        except RepositoryError as exc:
            self.log.error(
                "ingest.video.orphaned_upload"
                if record.media_type is MediaType.VIDEO
                else "ingest.image.orphaned_upload",
                extra={
                    **context,
                    "bucket": self.storage_settings.media_bucket,
                    "path": record.storage_path,
                    "error": str(exc),
                },
            )
            raise CatalogWriteFailedError("failed to record media") from exc

    async def _cleanup_staging(self, paths: list[str], context: dict[str, str]) -> None:
        try:
            await self.storage.remove(self.storage_settings.staging_bucket, paths)
        except StorageError as exc:
            self.log.warning(
                "ingest.video.staging_cleanup_failed",
                extra={**context, "paths": paths, "error": str(exc)},
            )

    async def publish_image(
        self, identity: Identity, upload: ImageUpload, metadata: MediaMetadata
    ) -> MediaRecord:
        """Store one image in the media bucket and insert its row."""
        if not upload.data:
            raise InvalidInputError(f"{upload.filename or 'image'} is empty")
        ext = safe_extension(upload.filename)
        storage_path = f"images/{identity.user_id}/{uuid.uuid4()}.{ext}"
        context = {"owner_id": identity.user_id, "upload_name": upload.filename}

        await self._publish(
            storage_path, upload.data, upload.content_type or f"image/{ext}", context
        )
        width, height = read_image_size(upload.data)
        record = MediaRecord(
            id=str(uuid.uuid4()),
            owner_id=identity.user_id,
            media_type=MediaType.IMAGE,
            audience=metadata.audience,
            storage_path=storage_path,
            created_at=utcnow(),
            title=metadata.title or upload.filename or None,
            description=metadata.description,
            width=width,
            height=height,
            tags=list(metadata.tags),
        )
        self._record(record, context)
        self.log.info(
            "ingest.image.published",
            extra={**context, "record_id": record.id, "storage_path": storage_path},
        )
        return record

    async def ingest_images(
        self,
        identity: Identity,
        uploads: list[ImageUpload],
        metadata: MediaMetadata,
        *,
        cancel: CancelToken | None = None,
    ) -> BatchOutcome[MediaRecord]:
        """Publish each image independently; failures are reported per index."""

        async def handle(_: int, upload: ImageUpload) -> MediaRecord:
            return await self.publish_image(identity, upload, metadata)

        outcome = await run_bounded(
            uploads, handle, concurrency=self.batch_concurrency, cancel=cancel
        )
        self.log.info(
            "ingest.images.batch_done",
            extra={
                "owner_id": identity.user_id,
                "succeeded": len(outcome.successes),
                "failed": len(outcome.failures),
            },
        )
        return outcome

    def finalize_upload(
        self,
        identity: Identity,
        path: str,
        media_type: MediaType,
        metadata: MediaMetadata,
        *,
        width: int | None = None,
        height: int | None = None,
        duration_seconds: float | None = None,
    ) -> MediaRecord:
        """Insert a row for an object the client already put in the media bucket."""
        if not path:
            raise InvalidInputError("path is required")
        if not path_in_scope(path, identity.user_id):
            raise ForbiddenError("path is outside the caller's scope")
        record = MediaRecord(
            id=str(uuid.uuid4()),
            owner_id=identity.user_id,
            media_type=media_type,
            audience=metadata.audience,
            storage_path=path,
            created_at=utcnow(),
            title=metadata.title,
            description=metadata.description,
            duration_seconds=duration_seconds,
            width=width,
            height=height,
            tags=list(metadata.tags),
        )
        try:
            self.media_repo.create(record)
        except RepositoryError as exc:
            self.log.error(
                "ingest.finalize.failed",
                extra={"owner_id": identity.user_id, "path": path, "error": str(exc)},
            )
            raise CatalogWriteFailedError("failed to record media") from exc
        self.log.info(
            "ingest.finalize.recorded",
            extra={"owner_id": identity.user_id, "record_id": record.id, "media_type": media_type.value},
        )
        return record

    async def create_signed_upload(
        self, identity: Identity, kind: str, filename: str = "", *, staging: bool = False
    ) -> SignedUpload:
        if kind not in UPLOAD_KINDS:
            raise InvalidInputError(f"unknown upload kind {kind!r}")
        object_id = uuid.uuid4()
        if kind == "watermark":
            path = f"wm/{identity.user_id}/{object_id}.png"
            staging = True
        elif kind == "video":
            path = f"videos/{identity.user_id}/{object_id}.mp4"
        else:
            path = f"images/{identity.user_id}/{object_id}.{safe_extension(filename)}"
        bucket = (
            self.storage_settings.staging_bucket if staging else self.storage_settings.media_bucket
        )
        try:
            signed = await self.storage.create_signed_upload(bucket, path)
        except StorageError as exc:
            self.log.error(
                "uploads.sign_failed",
                extra={"owner_id": identity.user_id, "bucket": bucket, "path": path},
            )
            raise SignUploadFailedError("failed to sign upload") from exc
        self.log.info(
            "uploads.signed",
            extra={"owner_id": identity.user_id, "bucket": bucket, "path": path, "kind": kind},
        )
        return signed
