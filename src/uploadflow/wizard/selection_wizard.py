"""Client-side upload wizard state machine."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from ..ingest.ingest_errors import (
    IngestError,
    MetadataTimeoutError,
    UnauthorizedError,
)
from ..media.media_models import Audience, OverlayPosition, UploadSelection, parse_audience
from ..utils.concurrency import CancelToken
from .image_arrangement import ImageArrangement
from .tag_selection import TagSelection
from .trim_window import TrimWindow, check_source_duration

logger = logging.getLogger(__name__)

METADATA_TIMEOUT_SECONDS = 10.0


class WizardState(str, Enum):
    PICK_SOURCE = "pick_source"
    TRIM_OR_ARRANGE = "trim_or_arrange"
    AUDIENCE = "audience"
    TAGS = "tags"
    DESCRIPTION = "description"
    SUBMITTING = "submitting"
    DONE = "done"
    FAILED = "failed"


_FORWARD = {
    WizardState.TRIM_OR_ARRANGE: WizardState.AUDIENCE,
    WizardState.AUDIENCE: WizardState.TAGS,
    WizardState.TAGS: WizardState.DESCRIPTION,
}
_BACKWARD = {
    WizardState.TRIM_OR_ARRANGE: WizardState.PICK_SOURCE,
    WizardState.AUDIENCE: WizardState.TRIM_OR_ARRANGE,
    WizardState.TAGS: WizardState.AUDIENCE,
    WizardState.DESCRIPTION: WizardState.TAGS,
}


class WizardTransitionError(Exception):
    """Raised when a step is requested from the wrong state or with incomplete input."""


@dataclass(slots=True)
class WizardSubmission:
    """Everything the submit step hands to the uploader."""

    audience: Audience
    tags: list[str]
    title: str | None
    description: str | None
    video: UploadSelection | None = None
    images: list[Path] = field(default_factory=list)
    cover_index: int = 0


DurationProbe = Callable[[Path], Awaitable[float]]


@dataclass
class SelectionWizard:
    min_clip_seconds: float = 5.0
    max_clip_seconds: float = 60.0
    max_source_seconds: float = 65.0
    metadata_timeout_seconds: float = METADATA_TIMEOUT_SECONDS

    state: WizardState = WizardState.PICK_SOURCE
    source: Path | None = None
    trim: TrimWindow | None = None
    mute: bool = False
    overlay_position: OverlayPosition = OverlayPosition.BOTTOM_RIGHT
    images: ImageArrangement[Path] | None = None
    audience: Audience | None = None
    tag_selection: TagSelection = field(default_factory=TagSelection)
    title: str | None = None
    description: str | None = None
    error: IngestError | None = None
    result: Any = None
    cancel_token: CancelToken = field(default_factory=CancelToken)

    async def pick_video(self, path: Path, probe: DurationProbe) -> TrimWindow | None:
        """Probe ``path`` and open the trim step; returns None if cancelled meanwhile."""
        self._require(WizardState.PICK_SOURCE)
        token = self.cancel_token
        try:
            duration = await asyncio.wait_for(probe(path), timeout=self.metadata_timeout_seconds)
        except asyncio.TimeoutError as exc:
            logger.warning("wizard.probe.timeout", extra={"path": str(path)})
            raise MetadataTimeoutError("reading video metadata timed out") from exc
        if token.cancelled:
            logger.info("wizard.probe.discarded", extra={"path": str(path)})
            return None

        check_source_duration(duration, self.max_source_seconds)
        self.source = path
        self.images = None
        self.trim = TrimWindow.initial(
            duration, min_seconds=self.min_clip_seconds, max_seconds=self.max_clip_seconds
        )
        self.state = WizardState.TRIM_OR_ARRANGE
        return self.trim

    def pick_images(self, files: list[Path]) -> ImageArrangement[Path]:
        self._require(WizardState.PICK_SOURCE)
        self.images = ImageArrangement.of(files)
        self.source = None
        self.trim = None
        self.state = WizardState.TRIM_OR_ARRANGE
        return self.images

    def update_trim(self, trim: TrimWindow) -> None:
        self._require(WizardState.TRIM_OR_ARRANGE)
        self.trim = trim

    def update_images(self, images: ImageArrangement[Path]) -> None:
        self._require(WizardState.TRIM_OR_ARRANGE)
        self.images = images

    def choose_audience(self, audience: str) -> None:
        self._require(WizardState.AUDIENCE)
        self.audience = parse_audience(audience)

    def describe(self, title: str | None, description: str | None) -> None:
        self._require(WizardState.DESCRIPTION)
        self.title = (title or "").strip() or None
        self.description = (description or "").strip() or None

    def next(self) -> WizardState:
        target = _FORWARD.get(self.state)
        if target is None:
            raise WizardTransitionError(f"cannot advance from {self.state.value}")
        if self.state is WizardState.TRIM_OR_ARRANGE and self.trim is None and self.images is None:
            raise WizardTransitionError("pick a source first")
        if self.state is WizardState.AUDIENCE and self.audience is None:
            raise WizardTransitionError("choose an audience")
        if self.state is WizardState.TAGS and not self.tag_selection.is_complete:
            raise WizardTransitionError(
                f"pick between {self.tag_selection.min_tags} and {self.tag_selection.max_tags} tags"
            )
        self.state = target
        return target

    def back(self) -> WizardState:
        target = _BACKWARD.get(self.state)
        if target is None:
            raise WizardTransitionError(f"cannot go back from {self.state.value}")
        if target is WizardState.PICK_SOURCE:
            self._reset_selection()
        self.state = target
        return target

    def cancel(self) -> None:
        """Drop the selection; work still in flight finishes but its result is ignored."""
        self.cancel_token.cancel()
        self.cancel_token = CancelToken()
        self._reset_selection()
        self.audience = None
        self.tag_selection = TagSelection(
            min_tags=self.tag_selection.min_tags, max_tags=self.tag_selection.max_tags
        )
        self.title = None
        self.description = None
        self.error = None
        self.state = WizardState.PICK_SOURCE

    def build_submission(self) -> WizardSubmission:
        if self.audience is None:
            raise WizardTransitionError("choose an audience")
        submission = WizardSubmission(
            audience=self.audience,
            tags=list(self.tag_selection.tags),
            title=self.title,
            description=self.description,
        )
        if self.trim is not None and self.source is not None:
            submission.video = UploadSelection(
                source_file=self.source,
                trim_start=self.trim.start,
                trim_end=self.trim.end,
                mute=self.mute,
                overlay_position=self.overlay_position,
            )
        elif self.images is not None:
            submission.images = self.images.ordered_files
            submission.cover_index = self.images.cover
        else:
            raise WizardTransitionError("pick a source first")
        return submission

    async def submit(self, submitter: Callable[[WizardSubmission], Awaitable[Any]]) -> Any:
        """Run ``submitter`` once; DONE on success, back to DESCRIPTION on error.

        Only :class:`UnauthorizedError` ends the wizard in FAILED.
        """
        self._require(WizardState.DESCRIPTION)
        submission = self.build_submission()
        token = self.cancel_token
        self.state = WizardState.SUBMITTING
        self.error = None
        try:
            result = await submitter(submission)
        except UnauthorizedError as exc:
            if token.cancelled:
                return None
            self.error = exc
            self.state = WizardState.FAILED
            raise
        except IngestError as exc:
            if token.cancelled:
                return None
            logger.warning("wizard.submit.failed", extra={"failure_reason": exc.failure_reason})
            self.error = exc
            self.state = WizardState.DESCRIPTION
            raise
        if token.cancelled:
            logger.info("wizard.submit.discarded")
            return None
        self.result = result
        self.state = WizardState.DONE
        return result

    def _require(self, expected: WizardState) -> None:
        if self.state is not expected:
            raise WizardTransitionError(
                f"expected state {expected.value}, wizard is in {self.state.value}"
            )

    def _reset_selection(self) -> None:
        self.source = None
        self.trim = None
        self.images = None
        self.mute = False
        self.overlay_position = OverlayPosition.BOTTOM_RIGHT


__all__ = [
    "SelectionWizard",
    "WizardState",
    "WizardSubmission",
    "WizardTransitionError",
]
