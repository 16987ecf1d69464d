"""
Frame bookkeeping for animated textures (texture + '.png.mcmeta').

Frames are stacked vertically in the image, top to bottom. Playback itself belongs to
the renderer; this module only says which slice of the strip is visible at a given
game tick.
"""

import io
import logging
from dataclasses import dataclass

import pygame as pg

from blockmesh.cache import KeyedCache
from blockmesh.resources import load_json
from blockmesh.settings import TICKS_PER_SECOND

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnimationInfo:
    path: str
    frame_count: int
    frametime: int
    frames: tuple  # (frame index, ticks shown)
    interpolate: bool = False

    @property
    def cycle_ticks(self) -> int:
        return sum(t for _, t in self.frames)

    @property
    def repeat_v(self) -> float:
        return 1 / self.frame_count

    def frame_at(self, ticks: int) -> int:
        """Index into the strip of the frame visible after ticks game ticks."""
        t = ticks % self.cycle_ticks
        for index, duration in self.frames:
            if t < duration:
                return index
            t -= duration
        return self.frames[-1][0]

    def offset_v(self, frame_index: int) -> float:
        return 1 - (frame_index + 1) / self.frame_count


def parse_frames(raw, frame_count: int, frametime: int) -> tuple:
    if not raw:
        return tuple((i, frametime) for i in range(frame_count))
    frames = []
    for entry in raw:
        if isinstance(entry, dict):
            index, time = entry.get('index', 0), entry.get('time', frametime)
        else:
            index, time = entry, frametime
        if not isinstance(index, int) or not 0 <= index < frame_count:
            logger.warning('[Animation] ignoring out of range frame %r', entry)
            continue
        frames.append((index, max(1, int(time))))
    return tuple(frames) or tuple((i, frametime) for i in range(frame_count))


class AnimatedTextures:
    def __init__(self, accessor):
        self.accessor = accessor
        self.cache = KeyedCache('animations')

    def clear(self):
        self.cache.clear()

    def get(self, path: str) -> AnimationInfo | None:
        """Animation data for a texture path like 'block/water_still', None if static."""
        return self.cache.get_or_compute(path, lambda: self._load(path))

    def is_animated(self, path: str) -> bool:
        return self.get(path) is not None

    def _load(self, path: str) -> AnimationInfo | None:
        meta = load_json(self.accessor, f'textures/{path}.png.mcmeta')
        if meta is None:
            return None
        data = self.accessor.get_bytes(f'textures/{path}.png')
        if data is None:
            logger.warning('[Animation] %s has metadata but no image', path)
            return None
        try:
            width, height = pg.image.load(io.BytesIO(data), 'frame.png').get_size()
        except pg.error as e:
            logger.warning('[Animation] could not decode %s: %s', path, e)
            return None

        animation = meta.get('animation') or {}
        frame_count = max(1, height // width) if width else 1
        frametime = max(1, int(animation.get('frametime') or 1))
        return AnimationInfo(
            path=path,
            frame_count=frame_count,
            frametime=frametime,
            frames=parse_frames(animation.get('frames'), frame_count, frametime),
            interpolate=bool(animation.get('interpolate', False)),
        )

    def frame_offset(self, path: str, ticks: int) -> tuple[float, float] | None:
        """(offset_v, repeat_v) of the frame shown after ticks game ticks."""
        info = self.get(path)
        if info is None:
            return None
        return info.offset_v(info.frame_at(ticks)), info.repeat_v

    def frame_offset_at(self, path: str, seconds: float) -> tuple[float, float] | None:
        return self.frame_offset(path, int(seconds * TICKS_PER_SECOND))
