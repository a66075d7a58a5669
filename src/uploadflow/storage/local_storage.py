"""Filesystem storage backend for local runs and tests."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import quote

from .storage_base import SignedUpload, StorageClient, StorageError, StoredObject

logger = logging.getLogger(__name__)

SIGNED_UPLOAD_TTL_SECONDS = 2 * 60 * 60


@dataclass(slots=True)
class LocalStorageClient(StorageClient):
    """Keep buckets as directories under ``root``.

    Signed uploads are HMAC tokens accepted by the ``/api/uploads/local`` sink.
    """

    root: Path
    signing_key: str
    public_base_url: str = "http://localhost:8000"
    token_ttl_seconds: int = SIGNED_UPLOAD_TTL_SECONDS
    log: logging.Logger = field(default_factory=lambda: logger)

    def resolve(self, bucket: str, path: str) -> Path:
        bucket_root = (self.root / bucket).resolve()
        target = (bucket_root / path.lstrip("/")).resolve()
        if target == bucket_root or bucket_root not in target.parents:
            raise StorageError(f"path escapes bucket: {path}", status_code=400)
        return target

    async def download(self, bucket: str, path: str) -> bytes:
        target = self.resolve(bucket, path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except FileNotFoundError as exc:
            raise StorageError(f"object not found: {bucket}/{path}", status_code=404) from exc

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
        target = self.resolve(bucket, path)
        if target.exists() and not upsert:
            raise StorageError(f"object already exists: {bucket}/{path}", status_code=409)
        target.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(target.write_bytes, data)

    async def remove(self, bucket: str, paths: list[str]) -> None:
        for path in paths:
            self.resolve(bucket, path).unlink(missing_ok=True)
        self.log.info("storage.removed", extra={"bucket": bucket, "count": len(paths)})

    async def list_objects(self, bucket: str, prefix: str) -> list[StoredObject]:
        bucket_root = (self.root / bucket).resolve()
        base = bucket_root / prefix.strip("/") if prefix.strip("/") else bucket_root
        if not base.exists():
            return []
        objects: list[StoredObject] = []
        for item in sorted(base.rglob("*")):
            if not item.is_file():
                continue
            created = datetime.fromtimestamp(item.stat().st_mtime, tz=timezone.utc)
            objects.append(StoredObject(item.relative_to(bucket_root).as_posix(), created))
        return objects

    def sign(self, bucket: str, path: str, expires_at: int) -> str:
        message = f"{bucket}/{path}:{expires_at}".encode("utf-8")
        digest = hmac.new(self.signing_key.encode("utf-8"), message, hashlib.sha256).hexdigest()
        return f"{expires_at}.{digest}"

    def verify_token(self, bucket: str, path: str, token: str, *, now: float | None = None) -> bool:
        expires_raw, _, _ = token.partition(".")
        try:
            expires_at = int(expires_raw)
        except ValueError:
            return False
        if expires_at < (now if now is not None else time.time()):
            return False
        return hmac.compare_digest(self.sign(bucket, path, expires_at), token)

    async def create_signed_upload(self, bucket: str, path: str) -> SignedUpload:
        self.resolve(bucket, path)
        token = self.sign(bucket, path, int(time.time()) + self.token_ttl_seconds)
        upload_url = (
            f"{self.public_base_url.rstrip('/')}/api/uploads/local/{bucket}/{quote(path)}"
            f"?token={token}"
        )
        return SignedUpload(
            bucket=bucket, path=path, token=token, upload_url=upload_url, project_ref="local"
        )
