"""Ken Burns effects for still images (zoompan)."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Optional

from ..constants import (
    KEN_BURNS_MAX_ZOOM,
    KEN_BURNS_OFFSET_FACTOR,
    KEN_BURNS_ZOOM_STEP,
    OUTPUT_FPS,
    OUTPUT_RESOLUTION,
)

# Focal directions as (horizontal, vertical) pan signs
VARIANTS: tuple[tuple[str, int, int], ...] = (
    ("center", 0, 0),
    ("top_left", -1, -1),
    ("top_right", 1, -1),
    ("bottom_left", -1, 1),
    ("bottom_right", 1, 1),
    ("left", -1, 0),
    ("right", 1, 0),
    ("top", 0, -1),
    ("bottom", 0, 1),
)

_CENTER_X = "iw/2-(iw/zoom/2)"
_CENTER_Y = "ih/2-(ih/zoom/2)"


def _pan(center: str, sign: int, offset: int) -> str:
    if sign < 0:
        return f"{center}-{offset}"
    if sign > 0:
        return f"{center}+{offset}"
    return center


@dataclass(frozen=True)
class KenBurnsEffect:
    """A slow zoom with an optional pan toward one edge or corner."""

    name: str
    frames: int
    offset: int
    x: str
    y: str
    size: str = OUTPUT_RESOLUTION
    zoom_step: float = KEN_BURNS_ZOOM_STEP
    max_zoom: float = KEN_BURNS_MAX_ZOOM

    @property
    def zoom(self) -> str:
        return f"min(zoom+{self.zoom_step},{self.max_zoom})"

    def render(self) -> str:
        """Render as an ffmpeg zoompan filter."""
        return (
            f"zoompan=zoom='{self.zoom}':x='{self.x}':y='{self.y}'"
            f":d={self.frames}:s={self.size}"
        )


class KenBurnsGenerator:
    """Picks one of nine zoom/pan variants per clip.

    The randomness source is injectable so a seed pins the whole sequence.
    Selection is uniform and independent per call; nothing prevents two
    clips in a row from getting the same variant.
    """

    def __init__(
        self,
        fps: int = OUTPUT_FPS,
        size: str = OUTPUT_RESOLUTION,
        rng: Optional[random.Random] = None,
    ):
        self.fps = fps
        self.size = size
        self.rng = rng or random.Random()

    @classmethod
    def seeded(cls, seed: Optional[int]) -> KenBurnsGenerator:
        return cls(rng=random.Random(seed))

    def catalog(self, duration: float) -> list[KenBurnsEffect]:
        """All nine variants for a clip of `duration` seconds."""
        frames = int(round(duration * self.fps))
        offset = int(frames * KEN_BURNS_OFFSET_FACTOR)
        return [
            KenBurnsEffect(
                name=name,
                frames=frames,
                offset=offset,
                x=_pan(_CENTER_X, dx, offset),
                y=_pan(_CENTER_Y, dy, offset),
                size=self.size,
            )
            for name, dx, dy in VARIANTS
        ]

    def generate(self, duration: float) -> KenBurnsEffect:
        """Pick a variant uniformly at random."""
        return self.rng.choice(self.catalog(duration))
