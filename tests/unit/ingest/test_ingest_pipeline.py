from __future__ import annotations

import asyncio
import logging
from datetime import timezone
from pathlib import Path

import pytest

from src.uploadflow.config import StorageSettings
from src.uploadflow.exceptions import DatabaseOperationError
from src.uploadflow.ingest.ingest_errors import (
    CatalogWriteFailedError,
    ForbiddenError,
    InvalidInputError,
    PublishUploadFailedError,
    SignUploadFailedError,
    TranscodeFailedError,
    UpstreamFetchFailedError,
)
from src.uploadflow.ingest.ingest_schemas import TrimWatermarkRequest
from src.uploadflow.ingest.ingest_service import (
    ImageUpload,
    IngestionPipeline,
    MediaMetadata,
)
from src.uploadflow.media.media_models import Audience, MediaType
from src.uploadflow.media.watermark import render_watermark_png
from src.uploadflow.repositories.media_repository import MediaRepository
from tests.conftest import OTHER_USER_ID, USER_ID
from tests.mocks.storage import InMemoryStorage
from tests.mocks.transcode import RecordingRunner

STAGING = "uploads-staging"
VIDEO_PATH = f"videos/{USER_ID}/clip.mp4"
WM_PATH = f"wm/{USER_ID}/wm.png"


class FailingMediaRepository(MediaRepository):
    def __init__(self) -> None:
        self.attempts = 0

    def create(self, record):
        self.attempts += 1
        raise DatabaseOperationError("media: database operation failed")


def build_pipeline(
    storage: InMemoryStorage,
    media_repo: MediaRepository,
    storage_settings: StorageSettings,
    tmp_path: Path,
    runner: RecordingRunner | None = None,
    **kwargs,
) -> IngestionPipeline:
    return IngestionPipeline(
        storage=storage,
        media_repo=media_repo,
        runner=runner or RecordingRunner(),
        storage_settings=storage_settings,
        workspace_root=tmp_path / "work",
        **kwargs,
    )


def staged_storage() -> InMemoryStorage:
    storage = InMemoryStorage()
    storage.put(STAGING, VIDEO_PATH, b"source-video")
    storage.put(STAGING, WM_PATH, b"wm-png")
    return storage


def trim_request(**overrides) -> TrimWatermarkRequest:
    payload = {
        "stagingVideoPath": VIDEO_PATH,
        "stagingWmPath": WM_PATH,
        "startSec": 5,
        "endSec": 15,
        "audience": "straight",
        "tags": ["cat"],
    }
    payload.update(overrides)
    return TrimWatermarkRequest.model_validate(payload)


@pytest.mark.asyncio
async def test_ingest_video_trims_publishes_and_records(
    identity, media_repo, storage_settings, tmp_path
) -> None:
    storage = staged_storage()
    runner = RecordingRunner(output=b"encoded")
    pipeline = build_pipeline(storage, media_repo, storage_settings, tmp_path, runner)

    record = await pipeline.ingest_video(identity, trim_request())

    assert len(runner.calls) == 1
    args = runner.calls[0]
    assert args[args.index("-ss") + 1] == "5.000"
    assert args[args.index("-t") + 1] == "10.000"
    assert "overlay=W-w-16:H-h-16" in args[args.index("-filter_complex") + 1]

    assert record.media_type is MediaType.VIDEO
    assert record.audience is Audience.STRAIGHT
    assert record.tags == ["Cat"]
    assert record.duration_seconds == pytest.approx(10.0)
    assert record.created_at.tzinfo is timezone.utc
    assert record.storage_path.startswith(f"videos/{USER_ID}/")
    assert record.storage_path.endswith(".mp4")

    assert storage.objects[("media", record.storage_path)] == b"encoded"
    rows = media_repo.list_by_owner(USER_ID)
    assert [row.id for row in rows] == [record.id]
    assert not storage.has(STAGING, VIDEO_PATH)
    assert not storage.has(STAGING, WM_PATH)
    # workspace is gone after the run
    assert list((tmp_path / "work").iterdir()) == []


@pytest.mark.asyncio
async def test_workspace_file_io_runs_in_worker_threads(
    identity, media_repo, storage_settings, tmp_path, monkeypatch
) -> None:
    offloaded: list[str] = []
    original_to_thread = asyncio.to_thread

    async def recording_to_thread(func, /, *args, **kwargs):
        offloaded.append(func.__name__)
        return await original_to_thread(func, *args, **kwargs)

    monkeypatch.setattr("src.uploadflow.ingest.ingest_service.asyncio.to_thread", recording_to_thread)
    pipeline = build_pipeline(staged_storage(), media_repo, storage_settings, tmp_path)

    await pipeline.ingest_video(identity, trim_request())

    assert offloaded == ["write_bytes", "write_bytes", "read_bytes"]


@pytest.mark.asyncio
async def test_transcode_failure_keeps_staging_and_writes_nothing(
    identity, media_repo, storage_settings, tmp_path
) -> None:
    storage = staged_storage()
    runner = RecordingRunner(
        error=TranscodeFailedError("ffmpeg exited with code 1", exit_code=1, stderr="boom")
    )
    pipeline = build_pipeline(storage, media_repo, storage_settings, tmp_path, runner)

    with pytest.raises(TranscodeFailedError) as excinfo:
        await pipeline.ingest_video(identity, trim_request())

    assert excinfo.value.exit_code == 1
    assert media_repo.list_by_owner(USER_ID) == []
    assert storage.paths("media") == []
    assert storage.has(STAGING, VIDEO_PATH)
    assert storage.removed == []


@pytest.mark.asyncio
async def test_missing_output_is_a_transcode_failure(
    identity, media_repo, storage_settings, tmp_path
) -> None:
    pipeline = build_pipeline(
        staged_storage(), media_repo, storage_settings, tmp_path, RecordingRunner(output=b"")
    )

    with pytest.raises(TranscodeFailedError):
        await pipeline.ingest_video(identity, trim_request())


@pytest.mark.asyncio
async def test_foreign_staging_path_is_forbidden_before_download(
    identity, media_repo, storage_settings, tmp_path
) -> None:
    storage = staged_storage()
    runner = RecordingRunner()
    pipeline = build_pipeline(storage, media_repo, storage_settings, tmp_path, runner)

    with pytest.raises(ForbiddenError):
        await pipeline.ingest_video(
            identity, trim_request(stagingVideoPath=f"videos/{OTHER_USER_ID}/clip.mp4")
        )

    assert storage.downloads == []
    assert runner.calls == []


@pytest.mark.asyncio
async def test_foreign_watermark_path_is_forbidden(
    identity, media_repo, storage_settings, tmp_path
) -> None:
    storage = staged_storage()
    pipeline = build_pipeline(storage, media_repo, storage_settings, tmp_path)

    with pytest.raises(ForbiddenError):
        await pipeline.ingest_video(
            identity, trim_request(stagingWmPath=f"wm/{OTHER_USER_ID}/wm.png")
        )
    assert storage.downloads == []


@pytest.mark.parametrize(
    "video_path",
    [
        f"videos/{USER_ID}/../../videos/{OTHER_USER_ID}/secret.mp4",
        f"videos/{USER_ID}/./../{OTHER_USER_ID}/secret.mp4",
        f"/videos/{USER_ID}/clip.mp4",
        f"videos\\{USER_ID}\\..\\{OTHER_USER_ID}\\secret.mp4",
    ],
)
@pytest.mark.asyncio
async def test_traversal_out_of_owner_scope_is_forbidden(
    video_path, identity, media_repo, storage_settings, tmp_path
) -> None:
    storage = staged_storage()
    victim_path = f"videos/{OTHER_USER_ID}/secret.mp4"
    storage.put(STAGING, victim_path, b"victim-video")
    runner = RecordingRunner()
    pipeline = build_pipeline(storage, media_repo, storage_settings, tmp_path, runner)

    with pytest.raises(ForbiddenError):
        await pipeline.ingest_video(identity, trim_request(stagingVideoPath=video_path))

    assert storage.downloads == []
    assert runner.calls == []
    assert storage.has(STAGING, victim_path)
    assert media_repo.list_by_owner(USER_ID) == []


@pytest.mark.parametrize(
    "overrides",
    [
        {"startSec": 10, "endSec": 10},
        {"startSec": 12, "endSec": 4},
        {"startSec": -1, "endSec": 4},
        {"startSec": 0, "endSec": 61},
        {"endSec": None},
        {"stagingVideoPath": None},
        {"audience": "nobody"},
        {"position": "middle"},
    ],
)
@pytest.mark.asyncio
async def test_invalid_trim_request_is_rejected_before_any_work(
    overrides, identity, media_repo, storage_settings, tmp_path
) -> None:
    storage = staged_storage()
    runner = RecordingRunner()
    pipeline = build_pipeline(storage, media_repo, storage_settings, tmp_path, runner)

    with pytest.raises(InvalidInputError):
        await pipeline.ingest_video(identity, trim_request(**overrides))

    assert storage.downloads == []
    assert runner.calls == []


@pytest.mark.asyncio
async def test_invalid_input_wins_over_forbidden(
    identity, media_repo, storage_settings, tmp_path
) -> None:
    pipeline = build_pipeline(staged_storage(), media_repo, storage_settings, tmp_path)

    with pytest.raises(InvalidInputError):
        await pipeline.ingest_video(
            identity,
            trim_request(stagingVideoPath=f"videos/{OTHER_USER_ID}/a.mp4", startSec=8, endSec=3),
        )


@pytest.mark.asyncio
async def test_missing_watermark_without_logo_is_invalid(
    identity, media_repo, storage_settings, tmp_path
) -> None:
    storage = staged_storage()
    pipeline = build_pipeline(storage, media_repo, storage_settings, tmp_path)

    with pytest.raises(InvalidInputError):
        await pipeline.ingest_video(identity, trim_request(stagingWmPath=None))
    assert storage.downloads == []


@pytest.mark.asyncio
async def test_watermark_rendered_server_side_when_logo_configured(
    identity, media_repo, storage_settings, tmp_path, logo_path
) -> None:
    storage = staged_storage()
    runner = RecordingRunner()
    pipeline = build_pipeline(
        storage, media_repo, storage_settings, tmp_path, runner, watermark_logo=logo_path
    )

    record = await pipeline.ingest_video(identity, trim_request(stagingWmPath=None))

    assert storage.downloads == [(STAGING, VIDEO_PATH)]
    assert len(pipeline.watermark_cache) == 1
    assert pipeline.watermark_cache.get_or_render(
        identity.display_name, logo_path
    ) == render_watermark_png(identity.display_name, logo_path)
    assert media_repo.get(record.id).storage_path == record.storage_path
    # only the video was staged, so only the video is cleaned up
    assert storage.removed == [(STAGING, [VIDEO_PATH])]


@pytest.mark.asyncio
async def test_unreadable_logo_is_a_fetch_failure(
    identity, media_repo, storage_settings, tmp_path
) -> None:
    runner = RecordingRunner()
    pipeline = build_pipeline(
        staged_storage(),
        media_repo,
        storage_settings,
        tmp_path,
        runner,
        watermark_logo=tmp_path / "missing-logo.png",
    )

    with pytest.raises(UpstreamFetchFailedError):
        await pipeline.ingest_video(identity, trim_request(stagingWmPath=None))
    assert runner.calls == []
    assert media_repo.list_by_owner(USER_ID) == []


@pytest.mark.asyncio
async def test_staging_download_failure(identity, media_repo, storage_settings, tmp_path) -> None:
    storage = staged_storage()
    storage.fail_download.add(WM_PATH)
    runner = RecordingRunner()
    pipeline = build_pipeline(storage, media_repo, storage_settings, tmp_path, runner)

    with pytest.raises(UpstreamFetchFailedError):
        await pipeline.ingest_video(identity, trim_request())
    assert runner.calls == []


@pytest.mark.asyncio
async def test_empty_staging_object_is_a_fetch_failure(
    identity, media_repo, storage_settings, tmp_path
) -> None:
    storage = staged_storage()
    storage.put(STAGING, VIDEO_PATH, b"")
    pipeline = build_pipeline(storage, media_repo, storage_settings, tmp_path)

    with pytest.raises(UpstreamFetchFailedError):
        await pipeline.ingest_video(identity, trim_request())


@pytest.mark.asyncio
async def test_publish_failure_writes_no_row(identity, media_repo, storage_settings, tmp_path) -> None:
    storage = staged_storage()
    storage.fail_upload = lambda path, data: path.startswith("videos/")
    pipeline = build_pipeline(storage, media_repo, storage_settings, tmp_path)

    with pytest.raises(PublishUploadFailedError):
        await pipeline.ingest_video(identity, trim_request())
    assert media_repo.list_by_owner(USER_ID) == []
    assert storage.has(STAGING, VIDEO_PATH)


@pytest.mark.asyncio
async def test_catalog_failure_logs_orphaned_upload(
    identity, storage_settings, tmp_path, caplog
) -> None:
    caplog.set_level(logging.INFO)
    storage = staged_storage()
    repo = FailingMediaRepository()
    pipeline = build_pipeline(storage, repo, storage_settings, tmp_path)

    with pytest.raises(CatalogWriteFailedError):
        await pipeline.ingest_video(identity, trim_request())

    assert repo.attempts == 1
    published = storage.paths("media")
    assert len(published) == 1
    orphan_logs = [r for r in caplog.records if r.getMessage() == "ingest.video.orphaned_upload"]
    assert len(orphan_logs) == 1
    assert orphan_logs[0].path == published[0]
    assert storage.has(STAGING, VIDEO_PATH)


@pytest.mark.asyncio
async def test_staging_cleanup_failure_is_not_fatal(
    identity, media_repo, storage_settings, tmp_path, caplog
) -> None:
    caplog.set_level(logging.INFO)
    storage = staged_storage()
    storage.fail_remove = True
    pipeline = build_pipeline(storage, media_repo, storage_settings, tmp_path)

    record = await pipeline.ingest_video(identity, trim_request())

    assert media_repo.get(record.id).id == record.id
    assert any(
        r.getMessage() == "ingest.video.staging_cleanup_failed" for r in caplog.records
    )


@pytest.mark.asyncio
async def test_image_batch_reports_failures_by_index(
    identity, media_repo, storage_settings, tmp_path
) -> None:
    storage = InMemoryStorage()
    storage.fail_upload = lambda path, data: data == b"broken"
    pipeline = build_pipeline(storage, media_repo, storage_settings, tmp_path)
    uploads = [
        ImageUpload(filename=f"photo{index}.jpg", data=f"img-{index}".encode(), content_type="image/jpeg")
        for index in range(5)
    ]
    uploads[3] = ImageUpload(filename="photo3.jpg", data=b"broken", content_type="image/jpeg")

    outcome = await pipeline.ingest_images(
        identity, uploads, MediaMetadata.parse("gay", tags=["cat", "Cat", "dog"])
    )

    assert sorted(outcome.successes) == [0, 1, 2, 4]
    assert list(outcome.failures) == [3]
    rows = media_repo.list_by_owner(USER_ID)
    assert len(rows) == 4
    assert all(row.media_type is MediaType.IMAGE for row in rows)
    assert all(row.tags == ["Cat", "Dog"] for row in rows)
    assert outcome.successes[0].title == "photo0.jpg"
    assert all(path.startswith(f"images/{USER_ID}/") for path in storage.paths("media"))


@pytest.mark.asyncio
async def test_publish_image_reads_dimensions(
    identity, media_repo, storage_settings, tmp_path, logo_path
) -> None:
    pipeline = build_pipeline(InMemoryStorage(), media_repo, storage_settings, tmp_path)

    record = await pipeline.publish_image(
        identity,
        ImageUpload(filename="Logo.PNG", data=logo_path.read_bytes(), content_type="image/png"),
        MediaMetadata.parse("animated", title="Logo"),
    )

    assert (record.width, record.height) == (40, 20)
    assert record.storage_path.endswith(".png")
    assert record.title == "Logo"


@pytest.mark.asyncio
async def test_publish_image_rejects_empty_file(
    identity, media_repo, storage_settings, tmp_path
) -> None:
    pipeline = build_pipeline(InMemoryStorage(), media_repo, storage_settings, tmp_path)

    with pytest.raises(InvalidInputError):
        await pipeline.publish_image(
            identity, ImageUpload(filename="x.jpg", data=b""), MediaMetadata.parse("straight")
        )


def test_finalize_upload_checks_scope(identity, media_repo, storage_settings, tmp_path) -> None:
    pipeline = build_pipeline(InMemoryStorage(), media_repo, storage_settings, tmp_path)
    metadata = MediaMetadata.parse("lesbian", tags=["sun"])

    with pytest.raises(ForbiddenError):
        pipeline.finalize_upload(
            identity, f"images/{OTHER_USER_ID}/a.jpg", MediaType.IMAGE, metadata
        )
    with pytest.raises(ForbiddenError):
        pipeline.finalize_upload(
            identity,
            f"images/{USER_ID}/../{OTHER_USER_ID}/a.jpg",
            MediaType.IMAGE,
            metadata,
        )

    record = pipeline.finalize_upload(
        identity, f"images/{USER_ID}/a.jpg", MediaType.IMAGE, metadata, width=10, height=20
    )
    assert media_repo.get(record.id).width == 10


def test_finalize_upload_duplicate_path_is_catalog_failure(
    identity, media_repo, storage_settings, tmp_path
) -> None:
    pipeline = build_pipeline(InMemoryStorage(), media_repo, storage_settings, tmp_path)
    metadata = MediaMetadata.parse("trans")
    path = f"videos/{USER_ID}/a.mp4"
    pipeline.finalize_upload(identity, path, MediaType.VIDEO, metadata, duration_seconds=12.0)

    with pytest.raises(CatalogWriteFailedError):
        pipeline.finalize_upload(identity, path, MediaType.VIDEO, metadata)


@pytest.mark.parametrize(
    ("kind", "staging", "bucket", "prefix", "suffix"),
    [
        ("video", False, "media", "videos/", ".mp4"),
        ("video", True, "uploads-staging", "videos/", ".mp4"),
        ("image", False, "media", "images/", ".webp"),
        ("watermark", False, "uploads-staging", "wm/", ".png"),
    ],
)
@pytest.mark.asyncio
async def test_create_signed_upload_paths(
    kind, staging, bucket, prefix, suffix, identity, media_repo, storage_settings, tmp_path
) -> None:
    pipeline = build_pipeline(InMemoryStorage(), media_repo, storage_settings, tmp_path)

    signed = await pipeline.create_signed_upload(identity, kind, "shot.WEBP", staging=staging)

    assert signed.bucket == bucket
    assert signed.path.startswith(f"{prefix}{USER_ID}/")
    assert signed.path.endswith(suffix)


@pytest.mark.asyncio
async def test_create_signed_upload_failures(
    identity, media_repo, storage_settings, tmp_path
) -> None:
    storage = InMemoryStorage()
    pipeline = build_pipeline(storage, media_repo, storage_settings, tmp_path)

    with pytest.raises(InvalidInputError):
        await pipeline.create_signed_upload(identity, "audio")

    storage.fail_sign = True
    with pytest.raises(SignUploadFailedError):
        await pipeline.create_signed_upload(identity, "image", "a.jpg")


@pytest.mark.asyncio
async def test_first_ten_seconds_with_duplicate_tags(
    identity, media_repo, storage_settings, tmp_path
) -> None:
    runner = RecordingRunner()
    pipeline = build_pipeline(staged_storage(), media_repo, storage_settings, tmp_path, runner)

    record = await pipeline.ingest_video(
        identity,
        trim_request(startSec=0, endSec=10, position="bottom-right", tags=["Cat", "Cat"]),
    )

    args = runner.calls[0]
    assert args[args.index("-ss") + 1] == "0.000"
    assert args[args.index("-t") + 1] == "10.000"
    assert args[args.index("-filter_complex") + 1].endswith("overlay=W-w-16:H-h-16[vout]")
    assert record.tags == ["Cat"]
    assert len(media_repo.list_by_owner(USER_ID)) == 1
