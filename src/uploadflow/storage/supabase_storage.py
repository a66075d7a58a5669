"""Supabase Storage REST adapter."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from urllib.parse import quote, urlparse

import httpx

from .storage_base import SignedUpload, StorageClient, StorageError, StoredObject

logger = logging.getLogger(__name__)

LIST_PAGE_SIZE = 100


def project_ref_from_url(base_url: str) -> str:
    host = urlparse(base_url).hostname or ""
    return host.split(".")[0]


def resumable_endpoint(base_url: str) -> str:
    """tus endpoint for resumable uploads; hosted projects use the direct storage host."""
    parsed = urlparse(base_url)
    host = parsed.hostname or ""
    if host.endswith(".supabase.co") and not host.endswith(".storage.supabase.co"):
        return f"https://{project_ref_from_url(base_url)}.storage.supabase.co/storage/v1/upload/resumable"
    return f"{base_url.rstrip('/')}/storage/v1/upload/resumable"


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass(slots=True)
class SupabaseStorageClient(StorageClient):
    """Talk to ``/storage/v1`` with the service role key."""

    base_url: str
    service_role_key: str
    timeout_seconds: float = 30.0
    transport: httpx.AsyncBaseTransport | None = None
    log: logging.Logger = field(default_factory=lambda: logger)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.service_role_key}",
            "apikey": self.service_role_key,
        }

    def _object_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/storage/v1/object/{bucket}/{quote(path.lstrip('/'))}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport)

    async def _request(
        self, method: str, url: str, *, headers: dict[str, str] | None = None, **kwargs: Any
    ) -> httpx.Response:
        try:
            async with self._client() as client:
                response = await client.request(
                    method, url, headers={**self._headers(), **(headers or {})}, **kwargs
                )
        except httpx.HTTPError as exc:
            raise StorageError(f"{method} {url} failed: {exc}") from exc
        if response.status_code >= 400:
            raise StorageError(
                f"{method} {url} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    async def download(self, bucket: str, path: str) -> bytes:
        response = await self._request("GET", self._object_url(bucket, path))
        return response.content

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        *,
        content_type: str,
        cache_control: str = "3600",
        upsert: bool = False,
    ) -> None:
        await self._request(
            "POST",
            self._object_url(bucket, path),
            content=data,
            headers={
                "Content-Type": content_type,
                "cache-control": f"max-age={cache_control}",
                "x-upsert": "true" if upsert else "false",
            },
        )

    async def remove(self, bucket: str, paths: list[str]) -> None:
        if not paths:
            return
        url = f"{self.base_url.rstrip('/')}/storage/v1/object/{bucket}"
        await self._request("DELETE", url, json={"prefixes": paths})
        self.log.info("storage.removed", extra={"bucket": bucket, "count": len(paths)})

    async def list_objects(self, bucket: str, prefix: str) -> list[StoredObject]:
        url = f"{self.base_url.rstrip('/')}/storage/v1/object/list/{bucket}"
        found: list[StoredObject] = []
        pending = [prefix.strip("/")]
        while pending:
            folder = pending.pop()
            offset = 0
            while True:
                response = await self._request(
                    "POST",
                    url,
                    json={"prefix": folder, "limit": LIST_PAGE_SIZE, "offset": offset},
                )
                entries = response.json() or []
                for entry in entries:
                    name = entry.get("name")
                    if not name:
                        continue
                    full_path = f"{folder}/{name}" if folder else name
                    # folders come back without an id
                    if entry.get("id") is None:
                        pending.append(full_path)
                        continue
                    found.append(StoredObject(full_path, _parse_timestamp(entry.get("created_at"))))
                if len(entries) < LIST_PAGE_SIZE:
                    break
                offset += LIST_PAGE_SIZE
        return found

    async def create_signed_upload(self, bucket: str, path: str) -> SignedUpload:
        base = self.base_url.rstrip("/")
        url = f"{base}/storage/v1/object/upload/sign/{bucket}/{quote(path.lstrip('/'))}"
        response = await self._request("POST", url)
        signed = response.json().get("url")
        if not signed:
            raise StorageError("storage did not return a signed upload url")
        token = httpx.URL(signed).params.get("token")
        if not token:
            raise StorageError("signed upload url carries no token")
        return SignedUpload(
            bucket=bucket,
            path=path,
            token=token,
            upload_url=f"{base}/storage/v1{signed}",
            project_ref=project_ref_from_url(base),
            resumable_url=resumable_endpoint(base),
        )
