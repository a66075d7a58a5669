from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.uploadflow.auth.identity import Identity
from src.uploadflow.config import (
    AppConfig,
    ClipPolicy,
    StorageSettings,
    TranscodeSettings,
    WatermarkSettings,
)
from src.uploadflow.db.db_init import init_db
from src.uploadflow.repositories.media_repository import MediaRepository
from src.uploadflow.repositories.tag_repository import TagRepository

USER_ID = "u-alice-0001"
OTHER_USER_ID = "u-mallory-02"
AUTH_COOKIES = {"userId": USER_ID, "username": "alice", "isLoggedIn": "true"}


@pytest.fixture
def engine():
    # one shared connection so TestClient worker threads see the same in-memory DB
    engine = create_engine(
        "sqlite://",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    init_db(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def media_repo(session_factory) -> MediaRepository:
    return MediaRepository(session_factory)


@pytest.fixture
def tag_repo(session_factory) -> TagRepository:
    return TagRepository(session_factory)


@pytest.fixture
def identity() -> Identity:
    return Identity(user_id=USER_ID, username="alice")


@pytest.fixture
def storage_settings(tmp_path: Path) -> StorageSettings:
    return StorageSettings(
        backend="local",
        media_bucket="media",
        staging_bucket="uploads-staging",
        local_root=tmp_path / "storage",
        signing_key="test-signing-key",
        public_base_url="http://testserver",
    )


@pytest.fixture
def logo_path(tmp_path: Path) -> Path:
    path = tmp_path / "logo.png"
    Image.new("RGBA", (40, 20), (200, 30, 30, 255)).save(path)
    return path


@pytest.fixture
def app_config(tmp_path: Path, engine, session_factory, storage_settings) -> AppConfig:
    return AppConfig(
        database_url="sqlite://",
        engine=engine,
        session_factory=session_factory,
        storage=storage_settings,
        transcode=TranscodeSettings(),
        clip_policy=ClipPolicy(),
        watermark=WatermarkSettings(),
        workspace_root=tmp_path / "work",
    )
