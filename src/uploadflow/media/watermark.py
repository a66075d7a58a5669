"""Watermark PNG synthesis (logo plus ``@username`` caption)."""

from __future__ import annotations

import io
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path

from PIL import Image, ImageDraw, ImageFont

logger = logging.getLogger(__name__)

PADDING_X = 10
PADDING_Y = 6
GAP_LOGO_TEXT = 4
TEXT_HEIGHT = 12
CORNER_RADIUS = 12
FONT_SIZE = 18
FONT_NAME = "DejaVuSans-Bold.ttf"


def _caption(username: str) -> str:
    name = username.strip()
    return name if name.startswith("@") else f"@{name}"


def _load_font() -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
    try:
        return ImageFont.truetype(FONT_NAME, FONT_SIZE)
    except OSError:
        return ImageFont.load_default()


def render_watermark_png(username: str, logo: Path | bytes) -> bytes:
    """Compose the overlay image and return PNG bytes.

    Canvas is the logo plus fixed padding with room for one caption line
    below it. The rounded background is fully transparent, so only the logo
    and the white caption are visible once composited over video.
    """
    source = io.BytesIO(logo) if isinstance(logo, bytes) else logo
    with Image.open(source) as opened:
        logo_img = opened.convert("RGBA")

    width = logo_img.width + PADDING_X * 2
    height = logo_img.height + PADDING_Y * 2 + GAP_LOGO_TEXT + TEXT_HEIGHT
    canvas = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    draw = ImageDraw.Draw(canvas)

    radius = min(CORNER_RADIUS, min(width, height) // 2)
    draw.rounded_rectangle((0, 0, width - 1, height - 1), radius=radius, fill=(255, 255, 255, 0))

    logo_x = (width - logo_img.width) // 2
    canvas.alpha_composite(logo_img, dest=(logo_x, PADDING_Y))

    caption = _caption(username)
    font = _load_font()
    left, top, right, bottom = draw.textbbox((0, 0), caption, font=font)
    center_y = PADDING_Y + logo_img.height + GAP_LOGO_TEXT + TEXT_HEIGHT / 2
    text_x = (width - (right - left)) / 2 - left
    text_y = center_y - (bottom - top) / 2 - top
    draw.text((text_x, text_y), caption, font=font, fill=(255, 255, 255, 255))

    buffer = io.BytesIO()
    canvas.save(buffer, format="PNG")
    return buffer.getvalue()


@dataclass
class WatermarkCache:
    """Bounded LRU of rendered watermarks keyed by logo source and username.

    Safe to call from worker threads; rendering runs outside ``_lock``.
    """

    max_entries: int = 32
    _entries: OrderedDict[tuple[str, str], bytes] = field(default_factory=OrderedDict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @staticmethod
    def _key(username: str, logo_source: Path | str) -> tuple[str, str]:
        return (str(logo_source), username.strip())

    def get_or_render(self, username: str, logo_source: Path | str) -> bytes:
        key = self._key(username, logo_source)
        with self._lock:
            cached = self._entries.get(key)
            if cached is not None:
                self._entries.move_to_end(key)
                return cached
        data = render_watermark_png(username, Path(logo_source))
        with self._lock:
            self._entries[key] = data
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("watermark.cache.evicted", extra={"logo": evicted[0]})
        return data

    def invalidate(self, logo_source: Path | str) -> int:
        """Drop every entry rendered from ``logo_source``; return how many were removed."""
        source = str(logo_source)
        with self._lock:
            stale = [key for key in self._entries if key[0] == source]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
