"""Trim window selection over a source video."""

from __future__ import annotations

from dataclasses import dataclass, replace

from ..ingest.ingest_errors import InvalidInputError, SourceTooLongError

SOURCE_TOLERANCE_SECONDS = 0.05


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def check_source_duration(
    duration: float, max_source_seconds: float = 65.0, tolerance: float = SOURCE_TOLERANCE_SECONDS
) -> float:
    """Reject sources longer than the ceiling (with a small tolerance)."""
    if duration <= 0:
        raise InvalidInputError("source has no duration")
    if duration > max_source_seconds + tolerance:
        raise SourceTooLongError(duration, max_source_seconds)
    return duration


@dataclass(frozen=True, slots=True)
class TrimWindow:
    """``[start, end]`` inside ``[0, duration]``.

    Every operation returns a new window whose length stays within
    ``[min(min_seconds, duration), min(max_seconds, duration)]``.
    """

    start: float
    end: float
    duration: float
    min_seconds: float = 5.0
    max_seconds: float = 60.0

    @classmethod
    def initial(
        cls, duration: float, *, min_seconds: float = 5.0, max_seconds: float = 60.0
    ) -> "TrimWindow":
        if duration <= 0:
            raise InvalidInputError("source has no duration")
        return cls(0.0, min(max_seconds, duration), duration, min_seconds, max_seconds)

    @property
    def length(self) -> float:
        return self.end - self.start

    @property
    def effective_min(self) -> float:
        return min(self.min_seconds, self.duration)

    @property
    def effective_max(self) -> float:
        return min(self.max_seconds, self.duration)

    def drag_left(self, delta: float) -> "TrimWindow":
        """Move the start edge; squeezing past the floor pushes the end edge."""
        floor, ceiling = self.effective_min, self.effective_max
        start = _clamp(self.start + delta, 0.0, self.duration - floor)
        end = self.end
        if end - start < floor:
            end = start + floor
        if end - start > ceiling:
            start = end - ceiling
        return replace(self, start=start, end=end)

    def drag_right(self, delta: float) -> "TrimWindow":
        """Move the end edge; squeezing past the floor pushes the start edge."""
        floor, ceiling = self.effective_min, self.effective_max
        end = _clamp(self.end + delta, floor, self.duration)
        start = self.start
        if end - start < floor:
            start = end - floor
        if end - start > ceiling:
            end = start + ceiling
        return replace(self, start=start, end=end)

    def move(self, delta: float) -> "TrimWindow":
        """Shift the whole window, clamped so it stays inside the source."""
        length = _clamp(self.length, self.effective_min, self.effective_max)
        # resizing to the allowed range is split evenly between both edges
        start = self.start + delta - (length - self.length) / 2
        start = _clamp(start, 0.0, self.duration - length)
        return replace(self, start=start, end=start + length)

    def normalized(self) -> "TrimWindow":
        return self.move(0.0)

    def as_tuple(self) -> tuple[float, float]:
        return (self.start, self.end)
