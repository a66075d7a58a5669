"""Tag picking rules for the wizard's TAGS step."""

from __future__ import annotations

from dataclasses import dataclass, field

from ..media.text import MAX_TAGS, to_title_case

MIN_TAGS = 3


@dataclass(slots=True)
class TagSelection:
    min_tags: int = MIN_TAGS
    max_tags: int = MAX_TAGS
    tags: list[str] = field(default_factory=list)

    def add(self, label: str) -> bool:
        """Add a Title-Cased label; return False for blanks, duplicates or a full list."""
        clean = to_title_case(label)
        if not clean or len(self.tags) >= self.max_tags:
            return False
        if clean.lower() in (tag.lower() for tag in self.tags):
            return False
        self.tags.append(clean)
        return True

    def remove(self, label: str) -> None:
        key = to_title_case(label).lower()
        self.tags = [tag for tag in self.tags if tag.lower() != key]

    def toggle(self, label: str) -> None:
        key = to_title_case(label).lower()
        if any(tag.lower() == key for tag in self.tags):
            self.remove(label)
        else:
            self.add(label)

    @property
    def is_complete(self) -> bool:
        return self.min_tags <= len(self.tags) <= self.max_tags
