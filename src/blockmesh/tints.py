import io
import logging

import pygame as pg

from blockmesh.block import Block
from blockmesh.settings import DEFAULT_BIOME, DEFAULT_NAMESPACE

logger = logging.getLogger(__name__)

# biome id -> (temperature, downfall)
BIOME_CLIMATE = {
    'minecraft:ocean':               (0.5,  0.5),
    'minecraft:plains':              (0.8,  0.4),
    'minecraft:desert':              (2.0,  0.0),
    'minecraft:mountains':           (0.2,  0.3),
    'minecraft:windswept_hills':     (0.2,  0.3),
    'minecraft:forest':              (0.7,  0.8),
    'minecraft:taiga':               (0.25, 0.8),
    'minecraft:swamp':               (0.8,  0.9),
    'minecraft:river':               (0.5,  0.5),
    'minecraft:frozen_ocean':        (0.0,  0.5),
    'minecraft:frozen_river':        (0.0,  0.5),
    'minecraft:snowy_plains':        (0.0,  0.5),
    'minecraft:mushroom_fields':     (0.9,  1.0),
    'minecraft:beach':               (0.8,  0.4),
    'minecraft:birch_forest':        (0.6,  0.6),
    'minecraft:dark_forest':         (0.7,  0.8),
    'minecraft:snowy_taiga':         (-0.5, 0.4),
    'minecraft:old_growth_pine_taiga': (0.3, 0.8),
    'minecraft:savanna':             (2.0,  0.0),
    'minecraft:badlands':            (2.0,  0.0),
    'minecraft:jungle':              (0.95, 0.9),
    'minecraft:bamboo_jungle':       (0.95, 0.9),
    'minecraft:warm_ocean':          (0.5,  0.5),
    'minecraft:cold_ocean':          (0.5,  0.5),
    'minecraft:deep_ocean':          (0.5,  0.5),
    'minecraft:sunflower_plains':    (0.8,  0.4),
    'minecraft:flower_forest':       (0.7,  0.8),
    'minecraft:cherry_grove':        (0.5,  0.8),
}
DEFAULT_CLIMATE = (0.8, 0.4)

GRASS_TINTED_BLOCKS = {
    'minecraft:grass_block', 'minecraft:short_grass', 'minecraft:grass', 'minecraft:tall_grass',
    'minecraft:fern', 'minecraft:large_fern', 'minecraft:potted_fern', 'minecraft:sugar_cane',
}
# tinted from foliage.png instead of grass.png
FOLIAGE_TINTED_BLOCKS = {
    'minecraft:oak_leaves', 'minecraft:jungle_leaves', 'minecraft:acacia_leaves',
    'minecraft:dark_oak_leaves', 'minecraft:mangrove_leaves', 'minecraft:vine',
}
# fixed colors, never sampled
HARDCODED_LEAF_COLORS = {
    'minecraft:birch_leaves': (128, 167, 85),
    'minecraft:spruce_leaves': (97, 153, 97),
}
# used when a pack ships no colormap
HARDCODED_GRASS_PLANT_COLOR = (0x7C, 0xBD, 0x6B)
HARDCODED_FOLIAGE_COLOR = (0x48, 0xB5, 0x18)
WATER_COLOR = (0x3F, 0x76, 0xE4)
LILY_PAD_COLOR = (0x20, 0x80, 0x30)
ATTACHED_STEM_COLOR = (0xE0, 0xC7, 0x1C)

WHITE = (1.0, 1.0, 1.0)


def climate(biome: str) -> tuple[float, float]:
    key = biome if ':' in biome else f'{DEFAULT_NAMESPACE}:{biome}'
    return BIOME_CLIMATE.get(key, DEFAULT_CLIMATE)


def colormap_coords(biome: str) -> tuple[int, int]:
    temp, downfall = climate(biome)
    temp = max(0.0, min(1.0, temp))
    downfall = max(0.0, min(1.0, downfall)) * temp

    cx = int(255 * (1.0 - temp))
    cy = int(255 * (1.0 - downfall))
    return max(0, min(255, cx)), max(0, min(255, cy))


def get_biome_color(biome: str, colormap_surf: pg.Surface) -> tuple[int, int, int]:
    """RGB of the colormap pixel for a biome's clamped temperature and downfall."""
    cx, cy = colormap_coords(biome)
    # vanilla maps are 256x256, but packs may ship other sizes
    w, h = colormap_surf.get_size()
    cx = min(cx * w // 256, w - 1)
    cy = min(cy * h // 256, h - 1)
    color = colormap_surf.get_at((cx, cy))
    return (color.r, color.g, color.b)


def redstone_color(power: int) -> tuple[float, float, float]:
    f = max(0, min(15, power)) / 15.0
    r = f * 0.6 + (0.4 if power > 0 else 0.3)
    g = max(0.0, min(1.0, f * f * 0.7 - 0.5))
    b = max(0.0, min(1.0, f * f * 0.6 - 0.7))
    return (r, g, b)


def stem_color(age: int) -> tuple[int, int, int]:
    age = max(0, min(7, age))
    return (age * 32, 255 - age * 8, age * 4)


def _rgb(color) -> tuple[float, float, float]:
    r, g, b = color
    return (r / 255.0, g / 255.0, b / 255.0)


def _int_prop(properties: dict, key: str) -> int:
    try:
        return int(properties.get(key, 0))
    except ValueError:
        return 0


class TintProvider:
    """Biome and block-state tint colors, sampled from the pack's colormaps."""

    def __init__(self, accessor):
        self.accessor = accessor
        self._colormaps: dict[str, pg.Surface | None] = {}

    def clear(self):
        self._colormaps.clear()

    def colormap(self, name: str) -> pg.Surface | None:
        if name not in self._colormaps:
            self._colormaps[name] = self._load_colormap(name)
        return self._colormaps[name]

    def _load_colormap(self, name: str) -> pg.Surface | None:
        path = f'textures/colormap/{name}.png'
        data = self.accessor.get_bytes(path)
        if data is None:
            logger.debug('[Tints] no %s colormap, using built-in colors', name)
            return None
        try:
            return pg.image.load(io.BytesIO(data), f'{name}.png')
        except pg.error as e:
            logger.warning('[Tints] could not decode %s: %s', path, e)
            return None

    def _sample(self, name: str, biome: str, fallback) -> tuple[float, float, float]:
        surf = self.colormap(name)
        if surf is None:
            return _rgb(fallback)
        return _rgb(get_biome_color(biome, surf))

    def get_tint(self, block, biome: str = DEFAULT_BIOME) -> tuple[float, float, float]:
        """Tint color for a block in a given biome. Returns (r, g, b) in 0-1 range."""
        block_id = block.id if isinstance(block, Block) else block
        properties = block.properties if isinstance(block, Block) else {}

        if block_id in ('minecraft:water', 'minecraft:flowing_water'):
            return _rgb(WATER_COLOR)
        if block_id in HARDCODED_LEAF_COLORS:
            return _rgb(HARDCODED_LEAF_COLORS[block_id])
        if block_id == 'minecraft:redstone_wire':
            return redstone_color(_int_prop(properties, 'power'))
        if block_id == 'minecraft:lily_pad':
            return _rgb(LILY_PAD_COLOR)
        if block_id in ('minecraft:pumpkin_stem', 'minecraft:melon_stem'):
            return _rgb(stem_color(_int_prop(properties, 'age')))
        if block_id in ('minecraft:attached_pumpkin_stem', 'minecraft:attached_melon_stem'):
            return _rgb(ATTACHED_STEM_COLOR)
        if block_id in FOLIAGE_TINTED_BLOCKS:
            return self._sample('foliage', biome, HARDCODED_FOLIAGE_COLOR)
        if block_id in GRASS_TINTED_BLOCKS:
            return self._sample('grass', biome, HARDCODED_GRASS_PLANT_COLOR)
        return WHITE
