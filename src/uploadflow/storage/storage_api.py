"""Signed upload handshake and the filesystem upload sink."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from ..auth.auth_dependencies import require_identity
from ..auth.identity import Identity
from ..ingest.ingest_api import get_ingest_pipeline, http_error
from ..ingest.ingest_errors import IngestError
from ..ingest.ingest_schemas import CreateUploadRequest, SignedUploadResponse
from ..ingest.ingest_service import IngestionPipeline
from .local_storage import LocalStorageClient
from .storage_base import StorageClient, StorageError

router = APIRouter(prefix="/api/uploads", tags=["uploads"])
logger = logging.getLogger(__name__)


def get_storage(request: Request) -> StorageClient:
    try:
        return request.app.state.storage  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover
        raise RuntimeError("Storage client is not configured") from exc


@router.post("/create", response_model=SignedUploadResponse, response_model_by_alias=True)
async def create_upload(
    body: CreateUploadRequest,
    identity: Identity = Depends(require_identity),
    pipeline: IngestionPipeline = Depends(get_ingest_pipeline),
) -> SignedUploadResponse:
    """Reserve an owner-scoped object path and return a signed upload target."""
    try:
        signed = await pipeline.create_signed_upload(
            identity, body.kind, body.filename, staging=body.staging
        )
    except IngestError as exc:
        raise http_error(exc) from exc
    return SignedUploadResponse(
        bucket=signed.bucket,
        path=signed.path,
        token=signed.token,
        project_ref=signed.project_ref,
        upload_url=signed.upload_url,
        resumable_url=signed.resumable_url,
    )


@router.put("/local/{bucket}/{path:path}")
async def local_upload(
    bucket: str,
    path: str,
    request: Request,
    token: str = Query(...),
    storage: StorageClient = Depends(get_storage),
) -> dict[str, str]:
    """Accept the body of a signed upload when storage lives on disk."""
    if not isinstance(storage, LocalStorageClient):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    if not storage.verify_token(bucket, path, token):
        logger.warning("uploads.local.invalid_token", extra={"bucket": bucket, "path": path})
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "Invalid upload token", "failure_reason": "forbidden"},
        )
    data = await request.body()
    try:
        await storage.upload(
            bucket,
            path,
            data,
            content_type=request.headers.get("content-type", "application/octet-stream"),
        )
    except StorageError as exc:
        raise HTTPException(
            status_code=exc.status_code or status.HTTP_400_BAD_REQUEST,
            detail={"error": str(exc), "failure_reason": "invalid_input"},
        ) from exc
    logger.info("uploads.local.stored", extra={"bucket": bucket, "path": path, "size": len(data)})
    return {"Key": f"{bucket}/{path}"}
