"""Object storage abstractions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime


class StorageError(Exception):
    """Raised when the storage backend rejects or fails an operation."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True, slots=True)
class SignedUpload:
    bucket: str
    path: str
    token: str
    upload_url: str
    project_ref: str
    resumable_url: str | None = None


@dataclass(frozen=True, slots=True)
class StoredObject:
    path: str
    created_at: datetime | None


class StorageClient(ABC):
    """Bucket/path object store used for staging and published media."""

    @abstractmethod
    async def download(self, bucket: str, path: str) -> bytes:
        ...

    @abstractmethod
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
        ...

    @abstractmethod
    async def remove(self, bucket: str, paths: list[str]) -> None:
        ...

    @abstractmethod
    async def list_objects(self, bucket: str, prefix: str) -> list[StoredObject]:
        """Return every object under ``prefix`` (recursively)."""

    @abstractmethod
    async def create_signed_upload(self, bucket: str, path: str) -> SignedUpload:
        ...

    async def aclose(self) -> None:
        return None
