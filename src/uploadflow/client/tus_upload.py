"""Resumable uploads over the tus 1.0 protocol (Supabase ``/upload/resumable``)."""

from __future__ import annotations

import base64
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

import httpx

logger = logging.getLogger(__name__)

TUS_VERSION = "1.0.0"
TUS_CHUNK_SIZE = 6 * 1024 * 1024
DEFAULT_MAX_RETRIES = 3


class TusUploadError(Exception):
    """The tus server refused the upload or stopped answering."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def encode_metadata(metadata: dict[str, str]) -> str:
    """Render the ``Upload-Metadata`` header: ``key base64(value)`` pairs."""
    return ",".join(
        f"{key} {base64.b64encode(value.encode('utf-8')).decode('ascii')}"
        for key, value in metadata.items()
    )


def _offset_header(response: httpx.Response) -> int:
    raw = response.headers.get("Upload-Offset")
    if raw is None or not raw.isdigit():
        raise TusUploadError(
            f"tus server sent no usable Upload-Offset ({raw!r})", response.status_code
        )
    return int(raw)


@dataclass
class TusUpload:
    """One object uploaded in chunks to a tus endpoint with a signed token.

    ``upload_url`` is filled in after creation. Calling :meth:`upload` again on
    the same instance asks the server for its offset and continues from there.
    """

    endpoint: str
    token: str
    bucket: str
    path: str
    content_type: str = "application/octet-stream"
    cache_control: str = "3600"
    chunk_size: int = TUS_CHUNK_SIZE
    max_retries: int = DEFAULT_MAX_RETRIES
    timeout_seconds: float = 30.0
    transport: httpx.AsyncBaseTransport | None = None
    upload_url: str | None = None
    log: logging.Logger = field(default_factory=lambda: logger)

    def _headers(self, **extra: str) -> dict[str, str]:
        return {"Tus-Resumable": TUS_VERSION, "x-signature": self.token, "x-upsert": "false", **extra}

    async def _create(self, client: httpx.AsyncClient, total: int) -> str:
        metadata = encode_metadata(
            {
                "bucketName": self.bucket,
                "objectName": self.path,
                "contentType": self.content_type,
                "cacheControl": self.cache_control,
            }
        )
        response = await client.post(
            self.endpoint,
            headers=self._headers(**{"Upload-Length": str(total), "Upload-Metadata": metadata}),
        )
        if response.status_code != 201:
            raise TusUploadError(
                f"tus create for {self.path} returned {response.status_code}", response.status_code
            )
        location = response.headers.get("Location")
        if not location:
            raise TusUploadError("tus create response carries no Location", response.status_code)
        return str(httpx.URL(self.endpoint).join(location))

    async def _server_offset(self, client: httpx.AsyncClient) -> int:
        response = await client.head(self.upload_url or "", headers=self._headers())
        if response.status_code >= 400:
            raise TusUploadError(
                f"tus offset lookup for {self.path} returned {response.status_code}",
                response.status_code,
            )
        return _offset_header(response)

    async def _patch(self, client: httpx.AsyncClient, offset: int, chunk: bytes) -> int:
        response = await client.patch(
            self.upload_url or "",
            content=chunk,
            headers=self._headers(
                **{
                    "Upload-Offset": str(offset),
                    "Content-Type": "application/offset+octet-stream",
                }
            ),
        )
        if response.status_code >= 400:
            raise TusUploadError(
                f"tus patch for {self.path} at {offset} returned {response.status_code}",
                response.status_code,
            )
        return _offset_header(response)

    async def upload(
        self, data: bytes, on_progress: Callable[[int, int], None] | None = None
    ) -> None:
        """Send ``data``, retrying dropped chunks from the server's offset."""
        total = len(data)
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
            if self.upload_url is None:
                self.upload_url = await self._create(client, total)
                offset = 0
            else:
                offset = await self._server_offset(client)
                self.log.info("tus.upload.resumed", extra={"path": self.path, "offset": offset})
            if on_progress is not None:
                on_progress(offset, total)

            failures = 0
            while offset < total:
                chunk = data[offset : offset + self.chunk_size]
                try:
                    new_offset = await self._patch(client, offset, chunk)
                except httpx.TransportError as exc:
                    failures += 1
                    if failures > self.max_retries:
                        raise TusUploadError(f"tus upload of {self.path} kept failing") from exc
                    self.log.warning(
                        "tus.upload.retry",
                        extra={"path": self.path, "offset": offset, "attempt": failures},
                    )
                    offset = await self._server_offset(client)
                    continue
                if new_offset <= offset:
                    raise TusUploadError(f"tus server did not advance past {offset}")
                offset = new_offset
                failures = 0
                if on_progress is not None:
                    on_progress(offset, total)
