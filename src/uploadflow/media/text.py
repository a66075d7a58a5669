"""Label helpers shared by tag selection, the tag catalog and ingest."""

from __future__ import annotations

import re
import unicodedata

MAX_TAGS = 10

_SEPARATORS = re.compile(r"[_-]+")
_SLUG_PUNCTUATION = re.compile(r"[^a-z0-9\s-]")
_SLUG_GAPS = re.compile(r"[\s-]+")


def to_title_case(value: str) -> str:
    """Collapse whitespace, underscores and dashes; capitalise every word (``"big_cat"`` -> ``"Big Cat"``)."""
    words = _SEPARATORS.sub(" ", value).split()
    return " ".join(word[:1].upper() + word[1:].lower() for word in words)


def slugify(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    cleaned = _SLUG_PUNCTUATION.sub("", normalized.strip().lower())
    return _SLUG_GAPS.sub("-", cleaned).strip("-")


def normalize_tags(tags: list[str] | tuple[str, ...], limit: int = MAX_TAGS) -> list[str]:
    """Title-case labels, drop blanks and case-insensitive duplicates, keep at most ``limit``."""
    seen: set[str] = set()
    result: list[str] = []
    for raw in tags:
        label = to_title_case(str(raw))
        if not label:
            continue
        key = label.lower()
        if key in seen:
            continue
        seen.add(key)
        result.append(label)
        if len(result) >= limit:
            break
    return result


def safe_extension(filename: str | None, default: str = "jpg") -> str:
    """Return a lowercase ``[a-z0-9]`` extension taken from ``filename``."""
    if not filename or "." not in filename:
        return default
    ext = re.sub(r"[^a-z0-9]", "", filename.rsplit(".", 1)[1].lower())
    return ext or default
