"""Dependency wiring helpers."""

from fastapi import FastAPI

from .config import AppConfig
from .ingest.ingest_api import router as ingest_router
from .ingest.ingest_service import IngestionPipeline
from .media.watermark import WatermarkCache
from .repositories.media_repository import MediaRepository
from .repositories.tag_repository import TagRepository
from .storage.storage_api import router as uploads_router
from .storage.storage_base import StorageClient
from .storage.storage_factory import create_storage
from .tags.tags_api import router as tags_router
from .transcode.ffmpeg_runner import FfmpegRunner


def include_routers(app: FastAPI, config: AppConfig, storage: StorageClient | None = None) -> None:
    """Mount module routers and attach services."""
    storage_client = storage or create_storage(config.storage)
    media_repo = MediaRepository(config.session_factory)
    tag_repo = TagRepository(config.session_factory)
    watermark_cache = WatermarkCache(max_entries=config.watermark.cache_size)

    pipeline = IngestionPipeline(
        storage=storage_client,
        media_repo=media_repo,
        runner=FfmpegRunner(
            binary=config.transcode.ffmpeg_bin,
            timeout_seconds=config.transcode.timeout_seconds,
        ),
        storage_settings=config.storage,
        transcode_settings=config.transcode,
        clip_policy=config.clip_policy,
        watermark_cache=watermark_cache,
        watermark_logo=config.watermark.logo_path,
        workspace_root=config.workspace_root,
        batch_concurrency=config.batch_concurrency,
    )

    app.state.config = config
    app.state.storage = storage_client
    app.state.media_repo = media_repo
    app.state.tag_repo = tag_repo
    app.state.watermark_cache = watermark_cache
    app.state.ingest_pipeline = pipeline

    app.include_router(uploads_router)
    app.include_router(ingest_router)
    app.include_router(tags_router)
