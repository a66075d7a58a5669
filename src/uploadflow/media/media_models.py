"""Media data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from ..auth.identity import Identity, path_in_scope
from ..ingest.ingest_errors import ForbiddenError, InvalidInputError
from .text import normalize_tags


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MediaType(str, Enum):
    VIDEO = "video"
    IMAGE = "image"


class Audience(str, Enum):
    STRAIGHT = "straight"
    GAY = "gay"
    TRANS = "trans"
    BISEXUAL = "bisexual"
    LESBIAN = "lesbian"
    ANIMATED = "animated"


class OverlayPosition(str, Enum):
    TOP_LEFT = "top-left"
    TOP_RIGHT = "top-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"


def parse_audience(value: str | None) -> Audience:
    try:
        return Audience((value or "").strip().lower())
    except ValueError:
        raise InvalidInputError(f"unknown audience {value!r}") from None


def parse_position(value: str | None) -> OverlayPosition:
    if not value:
        return OverlayPosition.BOTTOM_RIGHT
    try:
        return OverlayPosition(value.strip().lower())
    except ValueError:
        raise InvalidInputError(f"unknown overlay position {value!r}") from None


@dataclass(frozen=True, slots=True)
class StagingArtifact:
    """Bytes parked in the staging bucket for one user."""

    bucket: str
    path: str

    def owned_by(self, owner_id: str) -> bool:
        return path_in_scope(self.path, owner_id)


@dataclass(frozen=True, slots=True)
class TranscodeJob:
    """Immutable unit of work for one video pipeline run."""

    job_id: str
    owner_id: str
    input_artifact: StagingArtifact
    watermark_artifact: StagingArtifact | None
    trim_start: float
    trim_end: float
    overlay_position: OverlayPosition
    audience: Audience
    title: str | None = None
    description: str | None = None
    tags: tuple[str, ...] = ()

    @property
    def duration(self) -> float:
        return self.trim_end - self.trim_start

    @classmethod
    def accept(
        cls,
        *,
        job_id: str,
        identity: Identity,
        staging_bucket: str,
        video_path: str | None,
        watermark_path: str | None,
        trim_start: float | None,
        trim_end: float | None,
        position: str | None,
        audience: str | None,
        title: str | None,
        description: str | None,
        tags: list[str] | None,
        max_clip_seconds: float,
    ) -> "TranscodeJob":
        """Validate raw submission fields and check tenant scope.

        Input problems raise :class:`InvalidInputError`; staging paths that do
        not belong to ``identity`` raise :class:`ForbiddenError`. Both happen
        before anything external is touched.
        """
        if not video_path:
            raise InvalidInputError("stagingVideoPath is required")
        if trim_start is None or trim_end is None:
            raise InvalidInputError("startSec and endSec are required")
        start = float(trim_start)
        end = float(trim_end)
        if start < 0:
            raise InvalidInputError("startSec must not be negative")
        if end <= start:
            raise InvalidInputError("endSec must be greater than startSec")
        if end - start > max_clip_seconds + 1e-6:
            raise InvalidInputError(f"clip longer than {max_clip_seconds:.0f}s")
        overlay_position = parse_position(position)
        parsed_audience = parse_audience(audience)

        video = StagingArtifact(staging_bucket, video_path)
        watermark = StagingArtifact(staging_bucket, watermark_path) if watermark_path else None
        if not video.owned_by(identity.user_id):
            raise ForbiddenError("staging video is outside the caller's scope")
        if watermark is not None and not watermark.owned_by(identity.user_id):
            raise ForbiddenError("staging watermark is outside the caller's scope")

        return cls(
            job_id=job_id,
            owner_id=identity.user_id,
            input_artifact=video,
            watermark_artifact=watermark,
            trim_start=start,
            trim_end=end,
            overlay_position=overlay_position,
            audience=parsed_audience,
            title=(title or "").strip() or None,
            description=(description or "").strip() or None,
            tags=tuple(normalize_tags(tags or [])),
        )


@dataclass(slots=True)
class MediaRecord:
    id: str
    owner_id: str
    media_type: MediaType
    audience: Audience
    storage_path: str
    created_at: datetime
    title: str | None = None
    description: str | None = None
    duration_seconds: float | None = None
    width: int | None = None
    height: int | None = None
    tags: list[str] = field(default_factory=list)


@dataclass(slots=True)
class UploadSelection:
    """Client-side selection of one source video."""

    source_file: Path
    trim_start: float
    trim_end: float
    mute: bool = False
    overlay_position: OverlayPosition = OverlayPosition.BOTTOM_RIGHT

    @property
    def clip_seconds(self) -> float:
        return self.trim_end - self.trim_start


@dataclass(slots=True)
class Tag:
    slug: str
    label: str
    created_at: datetime | None = None
