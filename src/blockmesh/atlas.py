"""
Texture atlas packing.

Textures are placed with a binary-tree guillotine packer: each placement splits a free
node into a 'right' remainder (same row height) and a 'down' remainder (full width).
Packing order matters for this kind of packer, so five sort orders are tried and the
one covering the most atlas area wins.
"""

import io
import logging
from dataclasses import dataclass, field

import pygame as pg

from blockmesh.block import strip_namespace
from blockmesh.errors import PackingOverflowError
from blockmesh.settings import (ATLAS_PADDING, ATLAS_SIZE, ATLAS_TEXTURE_PREFIXES,
                                DECODE_BATCH_SIZE, MISSING_TEXTURE)

logger = logging.getLogger(__name__)

TEX_SIZE = 16  # pixels per vanilla texture tile


@dataclass(frozen=True)
class UVRect:
    u: float
    v: float
    width: float
    height: float


@dataclass
class TextureInfo:
    path: str
    image: pg.Surface | None
    width: int
    height: int

    @classmethod
    def from_surface(cls, path: str, image: pg.Surface) -> 'TextureInfo':
        w, h = image.get_size()
        return cls(path, image, w, h)

    @property
    def area(self) -> int:
        return self.width * self.height


@dataclass
class PackedTexture:
    texture: TextureInfo
    x: int
    y: int

    @property
    def path(self) -> str:
        return self.texture.path

    @property
    def rect(self) -> tuple[int, int, int, int]:
        return (self.x, self.y, self.texture.width, self.texture.height)


@dataclass
class AtlasNode:
    x: int
    y: int
    width: int
    height: int
    used: bool = False
    right: 'AtlasNode | None' = None
    down: 'AtlasNode | None' = None


def _largest_first(t: TextureInfo):
    return (-max(t.width, t.height), -t.area)


STRATEGIES = {
    'largest-first': _largest_first,
    'area-first': lambda t: -t.area,
    'height-first': lambda t: (-t.height, -t.width),
    'width-first': lambda t: (-t.width, -t.height),
    'perimeter-first': lambda t: -(t.width + t.height),
}


def find_node(root: AtlasNode, width: int, height: int) -> AtlasNode | None:
    """First free node, depth-first with 'right' before 'down', that fits width x height."""
    stack = [root]
    while stack:
        node = stack.pop()
        if node.used:
            stack.append(node.down)
            stack.append(node.right)
        elif width <= node.width and height <= node.height:
            return node
    return None


def split_node(node: AtlasNode, width: int, height: int) -> AtlasNode:
    node.used = True
    node.down = AtlasNode(node.x, node.y + height, node.width, node.height - height)
    node.right = AtlasNode(node.x + width, node.y, node.width - width, height)
    return node


class AtlasPacker:
    def __init__(self, atlas_size: int = ATLAS_SIZE, padding: int = ATLAS_PADDING):
        self.atlas_size = atlas_size
        self.padding = padding

    def sort_textures(self, textures: list[TextureInfo]) -> dict[str, list[TextureInfo]]:
        return {name: sorted(textures, key=key) for name, key in STRATEGIES.items()}

    def _place(self, root: AtlasNode, texture: TextureInfo) -> PackedTexture:
        w = texture.width + self.padding
        h = texture.height + self.padding
        node = find_node(root, w, h)
        if node is None:
            raise PackingOverflowError(texture.path, texture.width, texture.height)
        split_node(node, w, h)
        return PackedTexture(texture, node.x, node.y)

    def pack(self, textures: list[TextureInfo]) -> list[PackedTexture]:
        """Place textures in the given order. Textures that do not fit are dropped."""
        root = AtlasNode(0, 0, self.atlas_size, self.atlas_size)
        packed = []
        for texture in textures:
            try:
                packed.append(self._place(root, texture))
            except PackingOverflowError as e:
                logger.warning('[Atlas] %s', e)
        return packed

    def efficiency(self, packed: list[PackedTexture]) -> float:
        used = sum(p.texture.area for p in packed)
        return used / (self.atlas_size * self.atlas_size) * 100

    def choose(self, textures: list[TextureInfo]) -> tuple[str, list[PackedTexture], float]:
        """Pack with every strategy and keep the most efficient (first one on ties)."""
        best = None
        for strategy, ordered in self.sort_textures(textures).items():
            packed = self.pack(ordered)
            eff = self.efficiency(packed)
            logger.debug('[Atlas] %s: %d placed, %.1f%%', strategy, len(packed), eff)
            if best is None or eff > best[2]:
                best = (strategy, packed, eff)
        return best

    def build(self, textures) -> 'TextureAtlas':
        """Build an atlas from TextureInfo items or (path, Surface) pairs."""
        infos = [t if isinstance(t, TextureInfo) else TextureInfo.from_surface(*t) for t in textures]
        strategy, packed, eff = self.choose(infos)
        logger.info('[Atlas] best packing strategy: %s with %.1f%% efficiency', strategy, eff)
        logger.info('[Atlas] packed %d/%d textures', len(packed), len(infos))

        surface = pg.Surface((self.atlas_size, self.atlas_size), pg.SRCALPHA)
        surface.fill((0, 0, 0, 0))
        uv_map = {}
        for placed in packed:
            if placed.texture.image is not None:
                # canvas is zeroed, so MAX copies pixels without blending
                surface.blit(placed.texture.image, (placed.x, placed.y),
                             special_flags=pg.BLEND_RGBA_MAX)
            uv_map[placed.path] = UVRect(
                placed.x / self.atlas_size,
                placed.y / self.atlas_size,
                placed.texture.width / self.atlas_size,
                placed.texture.height / self.atlas_size,
            )
        return TextureAtlas(surface, uv_map, eff, strategy, packed, self.atlas_size)


class TextureAtlas:
    def __init__(self, surface: pg.Surface, uv_map: dict, efficiency: float, strategy: str,
                 placements: list, size: int):
        self.surface = surface
        self.uv_map: dict[str, UVRect] = uv_map
        self.efficiency = efficiency
        self.strategy = strategy
        self.placements: list[PackedTexture] = placements
        self.size = size

    def get_uv(self, path: str) -> UVRect | None:
        rect = self.uv_map.get(path)
        if rect is not None:
            return rect
        # 'minecraft:block/x', 'x' and 'item/../x' style references
        bare = strip_namespace(path)
        for candidate in (bare, f"block/{bare.rsplit('/', 1)[-1]}"):
            rect = self.uv_map.get(candidate)
            if rect is not None:
                return rect
        return None

    def __contains__(self, path: str) -> bool:
        return self.get_uv(path) is not None

    def __len__(self) -> int:
        return len(self.uv_map)

    def visualize(self) -> pg.Surface:
        """Debug view: every placement outlined in its own color."""
        canvas = pg.Surface((self.size, self.size), pg.SRCALPHA)
        canvas.fill((200, 200, 200, 77))
        for index, placed in enumerate(self.placements):
            color = pg.Color(0, 0, 0)
            color.hsla = ((index * 137.508) % 360, 70, 50, 100)
            pg.draw.rect(canvas, color, placed.rect, width=1)
        return canvas

    def __repr__(self):
        return f'TextureAtlas({len(self)} textures, {self.strategy}, {self.efficiency:.1f}%)'


def missing_texture_surface() -> pg.Surface:
    """Magenta/black checkerboard."""
    surf = pg.Surface((TEX_SIZE, TEX_SIZE), pg.SRCALPHA)
    for y in range(TEX_SIZE):
        for x in range(TEX_SIZE):
            if (x // 4 + y // 4) % 2 == 0:
                surf.set_at((x, y), (255, 0, 255, 255))
            else:
                surf.set_at((x, y), (0, 0, 0, 255))
    return surf


def atlas_texture_paths(accessor, prefixes=ATLAS_TEXTURE_PREFIXES) -> list[str]:
    """Texture paths ('block/stone') eligible for the atlas. Animated textures are left out."""
    animated = {p[len('textures/'):-len('.png.mcmeta')]
                for p in accessor.list_files('textures/', '.png.mcmeta')}
    paths = []
    for file in accessor.list_files('textures/', '.png'):
        path = file[len('textures/'):-len('.png')]
        if path in animated:
            continue
        if any(path.startswith(prefix) for prefix in prefixes):
            paths.append(path)
    return paths


def decode_texture(accessor, path: str) -> pg.Surface | None:
    data = accessor.get_bytes(f'textures/{path}.png')
    if data is None:
        return None
    try:
        return pg.image.load(io.BytesIO(data), f"{path.rsplit('/', 1)[-1]}.png")
    except pg.error as e:
        logger.warning('[Atlas] could not decode %s: %s', path, e)
        return None


def load_atlas_textures(accessor, paths: list[str], batch_size: int = DECODE_BATCH_SIZE,
                        executor=None) -> list[tuple[str, pg.Surface]]:
    """Decode textures in batches of batch_size. Missing or broken images are skipped."""
    loaded = []
    for i in range(0, len(paths), batch_size):
        batch = paths[i:i + batch_size]
        if executor is not None:
            images = executor.map(lambda p: decode_texture(accessor, p), batch)
        else:
            images = (decode_texture(accessor, p) for p in batch)
        for path, image in zip(batch, images):
            if image is not None:
                loaded.append((path, image))
        logger.debug('[Atlas] decoded %d/%d textures', len(loaded), len(paths))
    return loaded


def build_pack_atlas(accessor, packer: AtlasPacker, prefixes=ATLAS_TEXTURE_PREFIXES,
                     batch_size: int = DECODE_BATCH_SIZE, executor=None) -> TextureAtlas:
    """Collect, decode and pack every eligible texture of a pack stack."""
    paths = atlas_texture_paths(accessor, prefixes)
    textures = load_atlas_textures(accessor, paths, batch_size, executor)
    logger.info('[Atlas] found %d eligible textures, decoded %d', len(paths), len(textures))
    if not any(path == MISSING_TEXTURE for path, _ in textures):
        textures.append((MISSING_TEXTURE, missing_texture_surface()))
    return packer.build(textures)
