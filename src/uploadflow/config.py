"""Application configuration builder."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .db.db_init import init_db


@dataclass(slots=True)
class StorageSettings:
    backend: str
    media_bucket: str
    staging_bucket: str
    supabase_url: str = ""
    service_role_key: str = ""
    local_root: Path = Path("var/storage")
    signing_key: str = ""
    public_base_url: str = "http://localhost:8000"
    timeout_seconds: float = 30.0


@dataclass(slots=True)
class TranscodeSettings:
    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"
    timeout_seconds: float = 120.0
    probe_timeout_seconds: float = 10.0
    scale_height: int = 720
    frame_rate: int = 30
    overlay_inset: int = 16
    video_preset: str = "ultrafast"
    crf: int = 32
    audio_bitrate: str = "128k"


@dataclass(slots=True)
class ClipPolicy:
    min_clip_seconds: float = 5.0
    max_clip_seconds: float = 60.0
    max_source_seconds: float = 65.0
    min_tags: int = 3
    max_tags: int = 10


@dataclass(slots=True)
class WatermarkSettings:
    logo_path: Path | None = None
    cache_size: int = 32


@dataclass(slots=True)
class AppConfig:
    database_url: str
    engine: Engine
    session_factory: sessionmaker[Session]
    storage: StorageSettings
    transcode: TranscodeSettings
    clip_policy: ClipPolicy
    watermark: WatermarkSettings
    workspace_root: Path
    batch_concurrency: int = 3
    orphan_grace_minutes: int = 60


def _optional_path(value: str | None) -> Path | None:
    if not value:
        return None
    return Path(value)


def load_storage_settings() -> StorageSettings:
    """Read storage backend settings (Supabase by default, filesystem for local runs)."""
    supabase_url = os.getenv("SUPABASE_URL", "")
    default_backend = "supabase" if supabase_url else "local"
    return StorageSettings(
        backend=os.getenv("UPLOADFLOW_STORAGE_BACKEND", default_backend).lower(),
        media_bucket=os.getenv("UPLOADFLOW_MEDIA_BUCKET", "media"),
        staging_bucket=os.getenv("UPLOADFLOW_STAGING_BUCKET", "uploads-staging"),
        supabase_url=supabase_url,
        service_role_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY", ""),
        local_root=Path(os.getenv("UPLOADFLOW_STORAGE_ROOT", "var/storage")),
        signing_key=os.getenv("UPLOADFLOW_SIGNING_KEY", "change-me"),
        public_base_url=os.getenv("UPLOADFLOW_PUBLIC_BASE_URL", "http://localhost:8000"),
        timeout_seconds=float(os.getenv("UPLOADFLOW_STORAGE_TIMEOUT_SECONDS", 30)),
    )


def load_transcode_settings() -> TranscodeSettings:
    return TranscodeSettings(
        ffmpeg_bin=os.getenv("UPLOADFLOW_FFMPEG_BIN", "ffmpeg"),
        ffprobe_bin=os.getenv("UPLOADFLOW_FFPROBE_BIN", "ffprobe"),
        timeout_seconds=float(os.getenv("UPLOADFLOW_TRANSCODE_TIMEOUT_SECONDS", 120)),
        probe_timeout_seconds=float(os.getenv("UPLOADFLOW_PROBE_TIMEOUT_SECONDS", 10)),
    )


def load_config() -> AppConfig:
    """Load configuration from environment (SQLite by default)."""
    workspace_root = Path(os.getenv("UPLOADFLOW_WORKSPACE_ROOT", "var/work"))
    workspace_root.mkdir(parents=True, exist_ok=True)

    storage = load_storage_settings()
    if storage.backend == "local":
        storage.local_root.mkdir(parents=True, exist_ok=True)

    clip_policy = ClipPolicy(
        min_clip_seconds=float(os.getenv("UPLOADFLOW_MIN_CLIP_SECONDS", 5)),
        max_clip_seconds=float(os.getenv("UPLOADFLOW_MAX_CLIP_SECONDS", 60)),
        max_source_seconds=float(os.getenv("UPLOADFLOW_MAX_SOURCE_SECONDS", 65)),
    )
    watermark = WatermarkSettings(
        logo_path=_optional_path(os.getenv("UPLOADFLOW_WATERMARK_LOGO")),
        cache_size=int(os.getenv("UPLOADFLOW_WATERMARK_CACHE_SIZE", 32)),
    )

    database_url = os.getenv("DATABASE_URL", "sqlite:///uploadflow.db")
    engine = create_engine(database_url, future=True)
    session_factory: sessionmaker[Session] = sessionmaker(bind=engine, expire_on_commit=False)

    init_db(engine)

    return AppConfig(
        database_url=database_url,
        engine=engine,
        session_factory=session_factory,
        storage=storage,
        transcode=load_transcode_settings(),
        clip_policy=clip_policy,
        watermark=watermark,
        workspace_root=workspace_root,
        batch_concurrency=int(os.getenv("UPLOADFLOW_BATCH_CONCURRENCY", 3)),
        orphan_grace_minutes=int(os.getenv("UPLOADFLOW_ORPHAN_GRACE_MINUTES", 60)),
    )
