"""
Materials attached to block meshes.

The pipeline never creates GPU objects: it asks a MaterialFactory for a handle and
stores whatever comes back. SimpleMaterialFactory returns plain Material records
that a renderer can translate into its own state.
"""

from dataclasses import dataclass, field
from typing import Protocol

from blockmesh.block import Direction, LiquidKind

WATER_OPACITY = 0.8
LAVA_OPACITY = 0.9

PLACEHOLDER_COLOR = 0x800080  # empty model
FALLBACK_COLOR = 0xFF00FF     # nothing rendered for a block

_THIN_TEXTURE_HINTS = ('pane', 'fence', 'rail', 'ladder', 'chain', 'bars')
_SINGLE_SIDED_HINTS = ('redstone_torch', 'lit')


@dataclass
class Material:
    texture: str | None = None
    tint: tuple | None = None      # (r, g, b) in 0..1
    color: int | None = None       # flat color, used by wireframes
    transparent: bool = True
    alpha_test: float = 0.01
    opacity: float = 1.0
    depth_write: bool = True
    double_sided: bool = False
    wireframe: bool = False
    liquid: LiquidKind = LiquidKind.NONE
    face_direction: Direction | None = None
    atlas_uv: object = None        # UVRect when the texture is sampled from the atlas
    biome: str | None = None
    user_data: dict = field(default_factory=dict)

    @property
    def is_liquid(self) -> bool:
        return self.liquid is not LiquidKind.NONE

    @property
    def is_water(self) -> bool:
        return self.liquid is LiquidKind.WATER

    @property
    def is_lava(self) -> bool:
        return self.liquid is LiquidKind.LAVA

    @property
    def use_atlas(self) -> bool:
        return self.atlas_uv is not None


class MaterialFactory(Protocol):
    def create(self, texture: str, *, tint=None, liquid: LiquidKind = LiquidKind.NONE,
               direction: Direction | None = None, atlas_uv=None,
               double_sided: bool = False, biome: str | None = None): ...

    def wireframe(self, color: int, double_sided: bool = False): ...


class SimpleMaterialFactory:
    def create(self, texture: str, *, tint=None, liquid: LiquidKind = LiquidKind.NONE,
               direction: Direction | None = None, atlas_uv=None,
               double_sided: bool = False, biome: str | None = None) -> Material:
        material = Material(
            texture=texture,
            tint=tint,
            double_sided=double_sided,
            liquid=liquid,
            face_direction=direction,
            atlas_uv=atlas_uv,
            biome=biome,
        )
        if liquid is not LiquidKind.NONE:
            material.transparent = True
            material.depth_write = False
            material.double_sided = False
            material.opacity = WATER_OPACITY if liquid is LiquidKind.WATER else LAVA_OPACITY
        return material

    def wireframe(self, color: int, double_sided: bool = False) -> Material:
        return Material(color=color, wireframe=True, transparent=False, alpha_test=0.0,
                        double_sided=double_sided)


def is_double_sided(texture: str, size, cullface: Direction | None, is_liquid: bool) -> bool:
    """Whether a face should render both sides (thin geometry, see-through shapes, loose faces)."""
    if any(hint in texture for hint in _SINGLE_SIDED_HINTS):
        return False
    if any(s < 0.01 for s in size):
        return True
    if any(hint in texture for hint in _THIN_TEXTURE_HINTS):
        return True
    return cullface is None and not is_liquid
