from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from io import BytesIO
from typing import List, Literal, Optional, Tuple

from PIL import Image

logger = logging.getLogger(__name__)

PaletteSource = Literal["vision", "histogram", "default"]

DEFAULT_PALETTE: Tuple[str, ...] = ("#E41F35", "#000000", "#FFFFFF", "#F5F5F5", "#666666", "#333333")
# Offered when no screenshot could be taken at all.
SUGGESTION_PALETTE: Tuple[str, ...] = ("#E41F35", "#000000", "#FFFFFF", "#0066CC", "#FF6600", "#333333")

PALETTE_SIZE = 6


@dataclass(frozen=True)
class ColorPalette:
    colors: List[str]
    source: PaletteSource
    reasoning: Optional[str] = None
    preview: Optional[bytes] = field(default=None, repr=False)

    @classmethod
    def default(cls, colors: Tuple[str, ...] = DEFAULT_PALETTE) -> "ColorPalette":
        return cls(colors=list(colors), source="default")


def to_hex(r: int, g: int, b: int) -> str:
    return f"#{r:02X}{g:02X}{b:02X}"


def is_near_white(r: int, g: int, b: int) -> bool:
    return r > 240 and g > 240 and b > 240


@dataclass
class PixelPalette:
    """
    Heuristic dominant-color extraction by stride sampling.

    Only every `stride`-th pixel on each axis is inspected so large screenshots
    stay cheap. Near-white pixels are ignored as page background.
    """

    stride: int = 10
    size: int = PALETTE_SIZE

    def extract(self, image_bytes: bytes) -> List[str]:
        try:
            return self._dominant_colors(image_bytes)
        except Exception:
            logger.exception("Error extracting colors, returning default palette")
            return list(DEFAULT_PALETTE)

    def palette(self, image_bytes: bytes) -> ColorPalette:
        """Like extract(), but tagged with the layer that produced the colors."""
        try:
            colors = self._dominant_colors(image_bytes)
        except Exception:
            logger.exception("Error extracting colors, returning default palette")
            return ColorPalette.default()
        if not colors:
            logger.info("No non-white pixels sampled, returning default palette")
            return ColorPalette.default()
        return ColorPalette(colors=colors, source="histogram", preview=image_bytes)

    def _dominant_colors(self, image_bytes: bytes) -> List[str]:
        logger.info("Extracting dominant colors from image")
        with Image.open(BytesIO(image_bytes)) as opened:
            img = opened.convert("RGB")

        width, height = img.size
        pixels = img.load()
        counts: Counter = Counter()
        for y in range(0, height, self.stride):
            for x in range(0, width, self.stride):
                r, g, b = pixels[x, y]
                if is_near_white(r, g, b):
                    continue
                counts[(r, g, b)] += 1

        colors = [to_hex(*rgb) for rgb, _ in counts.most_common(self.size)]
        logger.info("Extracted %s dominant colors", len(colors))
        return colors
