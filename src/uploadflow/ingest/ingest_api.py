"""HTTP routes for video submission and media finalization."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import (
    APIRouter,
    Body,
    Depends,
    File,
    Form,
    HTTPException,
    Request,
    UploadFile,
    status,
)
from pydantic import ValidationError

from ..auth.auth_dependencies import require_identity
from ..auth.identity import Identity
from ..media.media_models import MediaRecord, MediaType
from .ingest_errors import (
    CatalogWriteFailedError,
    ForbiddenError,
    IngestError,
    InvalidInputError,
    SignUploadFailedError,
    UnauthorizedError,
)
from .ingest_schemas import (
    BatchFailureSchema,
    BatchSuccessSchema,
    BatchUploadResponse,
    FinalizeImageRequest,
    FinalizeVideoRequest,
    MediaRowResponse,
    MediaRowSchema,
    TrimWatermarkRequest,
)
from .ingest_service import ImageUpload, IngestionPipeline, MediaMetadata

router = APIRouter(prefix="/api", tags=["ingest"])
logger = logging.getLogger(__name__)

ERROR_MESSAGES = {
    "unauthorized": "Not authenticated",
    "forbidden": "Staging paths do not belong to this user",
    "invalid_input": "Invalid request",
    "upstream_fetch_failed": "Failed to download staging files",
    "transcode_failed": "Video processing failed",
    "transcode_timeout": "Video processing timed out",
    "publish_upload_failed": "Failed to upload processed media",
    "catalog_write_failed": "Failed to save media",
    "sign_upload_failed": "Failed to sign upload",
}


def status_for(exc: IngestError, *, catalog_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> int:
    if isinstance(exc, UnauthorizedError):
        return status.HTTP_401_UNAUTHORIZED
    if isinstance(exc, ForbiddenError):
        return status.HTTP_403_FORBIDDEN
    if isinstance(exc, (InvalidInputError, SignUploadFailedError)):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, CatalogWriteFailedError):
        return catalog_status
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def http_error(exc: IngestError, **kwargs: Any) -> HTTPException:
    reason = exc.failure_reason
    return HTTPException(
        status_code=status_for(exc, **kwargs),
        detail={"error": ERROR_MESSAGES.get(reason, "Internal error"), "failure_reason": reason},
    )


def get_ingest_pipeline(request: Request) -> IngestionPipeline:
    """Fetch ingestion pipeline from application state."""
    try:
        return request.app.state.ingest_pipeline  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover
        raise RuntimeError("IngestionPipeline is not configured") from exc


def _row(record: MediaRecord) -> MediaRowResponse:
    return MediaRowResponse(row=MediaRowSchema(id=record.id, storage_path=record.storage_path))


@router.post("/video/trim-watermark", response_model=MediaRowResponse)
async def trim_watermark(
    payload: Any = Body(None),
    identity: Identity = Depends(require_identity),
    pipeline: IngestionPipeline = Depends(get_ingest_pipeline),
) -> MediaRowResponse:
    """Trim a staged video, overlay the watermark and publish it."""
    try:
        body = TrimWatermarkRequest.model_validate(payload)
    except ValidationError as exc:
        logger.warning(
            "ingest.video.invalid_payload",
            extra={"owner_id": identity.user_id, "errors": exc.error_count()},
        )
        raise http_error(InvalidInputError("malformed body")) from exc

    try:
        record = await pipeline.ingest_video(identity, body)
    except IngestError as exc:
        logger.warning(
            "ingest.video.rejected",
            extra={"owner_id": identity.user_id, "failure_reason": exc.failure_reason},
        )
        raise http_error(exc) from exc
    return _row(record)


@router.post("/media/finalize-image", response_model=MediaRowResponse)
async def finalize_image(
    body: FinalizeImageRequest,
    identity: Identity = Depends(require_identity),
    pipeline: IngestionPipeline = Depends(get_ingest_pipeline),
) -> MediaRowResponse:
    try:
        metadata = MediaMetadata.parse(body.audience, body.title, body.description, body.tags)
        record = pipeline.finalize_upload(
            identity,
            body.path,
            MediaType.IMAGE,
            metadata,
            width=body.width,
            height=body.height,
        )
    except IngestError as exc:
        raise http_error(exc, catalog_status=status.HTTP_400_BAD_REQUEST) from exc
    return _row(record)


@router.post("/media/finalize-video", response_model=MediaRowResponse)
async def finalize_video(
    body: FinalizeVideoRequest,
    identity: Identity = Depends(require_identity),
    pipeline: IngestionPipeline = Depends(get_ingest_pipeline),
) -> MediaRowResponse:
    try:
        metadata = MediaMetadata.parse(body.audience, body.title, body.description, body.tags)
        record = pipeline.finalize_upload(
            identity,
            body.path,
            MediaType.VIDEO,
            metadata,
            duration_seconds=body.duration_seconds,
        )
    except IngestError as exc:
        raise http_error(exc, catalog_status=status.HTTP_400_BAD_REQUEST) from exc
    return _row(record)


@router.post("/media/images", response_model=BatchUploadResponse)
async def upload_images(
    files: list[UploadFile] = File(...),
    audience: str = Form(...),
    title: str | None = Form(None),
    description: str | None = Form(None),
    tags: list[str] | None = Form(None),
    identity: Identity = Depends(require_identity),
    pipeline: IngestionPipeline = Depends(get_ingest_pipeline),
) -> BatchUploadResponse:
    """Publish a batch of images; each file succeeds or fails on its own."""
    try:
        metadata = MediaMetadata.parse(audience, title, description, tags)
    except IngestError as exc:
        raise http_error(exc) from exc

    uploads = [
        ImageUpload(
            filename=upload.filename or "",
            data=await upload.read(),
            content_type=upload.content_type,
        )
        for upload in files
    ]
    outcome = await pipeline.ingest_images(identity, uploads, metadata)
    return BatchUploadResponse(
        successes=[
            BatchSuccessSchema(index=index, record_id=record.id, storage_path=record.storage_path)
            for index, record in outcome.ordered_successes()
        ],
        failures=[
            BatchFailureSchema(index=index, error_message=message)
            for index, message in outcome.ordered_failures()
        ],
    )
