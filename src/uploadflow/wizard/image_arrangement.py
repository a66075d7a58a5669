"""Ordering and cover selection for a multi-image post."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Generic, TypeVar

from ..ingest.ingest_errors import InvalidInputError

F = TypeVar("F")


@dataclass(frozen=True, slots=True)
class ImageArrangement(Generic[F]):
    """Display order over an immutable file list.

    ``order`` holds original indices in display order and ``cover`` is a
    position inside ``order``. Both change together so the cover keeps
    pointing at the same file.
    """

    files: tuple[F, ...]
    order: tuple[int, ...]
    cover: int = 0

    @classmethod
    def of(cls, files: list[F] | tuple[F, ...]) -> "ImageArrangement[F]":
        if not files:
            raise InvalidInputError("at least one image is required")
        return cls(tuple(files), tuple(range(len(files))), 0)

    @property
    def ordered_files(self) -> list[F]:
        return [self.files[index] for index in self.order]

    @property
    def cover_file(self) -> F:
        return self.files[self.order[self.cover]]

    def move(self, position: int, direction: int) -> "ImageArrangement[F]":
        """Swap the image at ``position`` with its neighbour (``direction`` is -1 or +1)."""
        target = position + direction
        if direction not in (-1, 1) or not 0 <= position < len(self.order):
            raise InvalidInputError("invalid move")
        if not 0 <= target < len(self.order):
            return self
        order = list(self.order)
        order[position], order[target] = order[target], order[position]
        cover = self.cover
        if cover == position:
            cover = target
        elif cover == target:
            cover = position
        return replace(self, order=tuple(order), cover=cover)

    def remove(self, position: int) -> "ImageArrangement[F]":
        """Drop the image at ``position``; the last remaining image stays."""
        if not 0 <= position < len(self.order):
            raise InvalidInputError("invalid position")
        if len(self.order) <= 1:
            return self
        order = self.order[:position] + self.order[position + 1 :]
        cover = self.cover
        if cover == position:
            cover = max(0, position - 1)
        elif cover > position:
            cover -= 1
        return replace(self, order=order, cover=cover)

    def set_cover(self, position: int) -> "ImageArrangement[F]":
        if not 0 <= position < len(self.order):
            raise InvalidInputError("invalid position")
        return replace(self, cover=position)
