"""Storage backend selection."""

from __future__ import annotations

from ..config import StorageSettings
from .local_storage import LocalStorageClient
from .storage_base import StorageClient
from .supabase_storage import SupabaseStorageClient


def create_storage(settings: StorageSettings) -> StorageClient:
    if settings.backend == "supabase":
        if not settings.supabase_url or not settings.service_role_key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required")
        return SupabaseStorageClient(
            base_url=settings.supabase_url,
            service_role_key=settings.service_role_key,
            timeout_seconds=settings.timeout_seconds,
        )
    if settings.backend == "local":
        return LocalStorageClient(
            root=settings.local_root,
            signing_key=settings.signing_key,
            public_base_url=settings.public_base_url,
        )
    raise ValueError(f"Unknown storage backend '{settings.backend}'")
