"""
Turns a flattened block model into scene meshes, one per material key.

Faces of every element are built in element-local space, grouped by material key,
rotated/placed as a whole element and finally merged per key across elements. The
blockstate's x/y rotation is never applied here; the caller rotates the returned node.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Callable

import numpy as np

from blockmesh.block import Block, Direction, LiquidKind
from blockmesh.errors import GeometryConstructionError
from blockmesh.materials import (PLACEHOLDER_COLOR, Material, SimpleMaterialFactory,
                                 is_double_sided)
from blockmesh.meshes.geometry import (Geometry, box_geometry, face_geometry, merge_geometries,
                                       remap_uvs, transform_element, uv_rotation)
from blockmesh.models import FULL_UV, Element, Model, resolve_texture
from blockmesh.scene import Mesh, SceneNode
from blockmesh.settings import (ATLAS_EXCLUDED_TEXTURES, DEFAULT_BIOME, MAX_TEXTURE_DEPTH,
                                WATER_SOURCE_HEIGHT)

logger = logging.getLogger(__name__)

FACE_ORDER = (Direction.DOWN, Direction.UP, Direction.NORTH,
              Direction.SOUTH, Direction.WEST, Direction.EAST)

LIQUID_TEXTURES = {
    LiquidKind.WATER: ('block/water_still', 'block/water_flow'),
    LiquidKind.LAVA: ('block/lava_still', 'block/lava_flow'),
}

WATERLOGGED_WATER_MODEL = Model.from_json({
    'elements': [{
        'from': [0, 0, 0],
        'to': [16, 16, 16],
        'faces': {
            'down': {'texture': 'block/water_still'},
            'up': {'texture': 'block/water_still'},
            'north': {'texture': 'block/water_flow'},
            'south': {'texture': 'block/water_flow'},
            'west': {'texture': 'block/water_flow'},
            'east': {'texture': 'block/water_flow'},
        },
    }],
})


def material_key(texture: str, direction: Direction, face, block: Block | None, biome: str) -> str:
    tint = face.tintindex if face.tintindex is not None else 'none'
    cull = face.cullface.value if face.cullface is not None else 'none'
    block_id = block.id if block is not None else 'none'
    props = json.dumps(block.properties, sort_keys=True) if block is not None else 'none'
    return (f'{texture}_dir:{direction.value}_tint:{tint}_cull:{cull}'
            f'_block:{block_id}_props:{props}_biome:{biome}')


def element_frame(element: Element, liquid: LiquidKind = LiquidKind.NONE):
    """(size, center) of an element in block space, with the still-water top lowered."""
    lo = np.asarray(element.from_, dtype=np.float64) / 16 - 0.5
    hi = np.asarray(element.to, dtype=np.float64) / 16 - 0.5
    if liquid is LiquidKind.WATER and element.to[1] == 16:
        hi[1] = WATER_SOURCE_HEIGHT / 16 - 0.5
    size = np.maximum(hi - lo, 0)
    return size, lo + size / 2


def is_standard_uv(uv) -> bool:
    return uv is None or tuple(uv) == FULL_UV


@dataclass
class _Group:
    material: object
    liquid: LiquidKind
    atlas_uv: object
    geometries: list = field(default_factory=list)


@dataclass
class _BuiltFace:
    direction: Direction
    face: object
    texture: str
    key: str
    geometry: Geometry
    material: object
    liquid: LiquidKind
    atlas_uv: object


@dataclass
class OptimizedFace:
    geometry: Geometry
    material: object
    direction: Direction
    cullface: Direction | None
    element_bounds: tuple
    can_batch: bool


@dataclass
class FaceData:
    cullable: dict = field(default_factory=dict)  # Direction -> list[OptimizedFace]
    non_cullable: list = field(default_factory=list)
    has_transparency: bool = False


class BlockMeshBuilder:
    def __init__(self, material_factory=None, tint_provider=None,
                 get_atlas: Callable[[], object] | None = None,
                 atlas_excluded=ATLAS_EXCLUDED_TEXTURES, max_texture_depth: int = MAX_TEXTURE_DEPTH):
        self.materials = material_factory or SimpleMaterialFactory()
        self.tints = tint_provider
        self.get_atlas = get_atlas or (lambda: None)
        self.atlas_excluded = tuple(atlas_excluded)
        self.max_texture_depth = max_texture_depth

    # --- public ---

    def build(self, model: Model, block: Block | None = None, biome: str = DEFAULT_BIOME,
              uvlock: bool = False, y: float = 0) -> SceneNode:
        if block is not None and block.is_waterlogged:
            return self.build_waterlogged(model, block, biome, uvlock, y)
        return self.build_solid(model, block, biome, uvlock, y)

    def build_solid(self, model: Model, block: Block | None = None, biome: str = DEFAULT_BIOME,
                    uvlock: bool = False, y: float = 0) -> SceneNode:
        if not model.elements:
            return self.placeholder()
        liquid = block.liquid if block is not None else LiquidKind.NONE

        groups: dict[str, _Group] = {}
        for element in model.elements:
            try:
                parts = self._element_groups(element, model, block, biome, uvlock, y)
            except GeometryConstructionError as e:
                logger.warning('[Meshes] skipping element %s-%s: %s', element.from_, element.to, e)
                continue
            for key, group in parts.items():
                target = groups.setdefault(key, _Group(group.material, group.liquid, group.atlas_uv))
                target.geometries.extend(group.geometries)

        node = SceneNode(user_data={'biome': biome})
        for key, group in groups.items():
            geometry = merge_geometries(group.geometries)
            if geometry.is_empty:
                continue
            if group.atlas_uv is not None:
                geometry = remap_uvs(geometry, group.atlas_uv)
            user_data = {'material_key': key}
            if group.liquid is not LiquidKind.NONE:
                user_data.update(is_liquid=True, is_water=group.liquid is LiquidKind.WATER,
                                 is_lava=group.liquid is LiquidKind.LAVA)
            node.add(Mesh(geometry, group.material, name=key,
                          render_order=1 if group.liquid is LiquidKind.WATER else 0,
                          user_data=user_data))

        if not node.children:
            return self.placeholder()
        if block is not None:
            node.user_data['block'] = block
        if liquid is not LiquidKind.NONE:
            node.user_data.update(is_liquid=True, is_water=liquid is LiquidKind.WATER,
                                  is_lava=liquid is LiquidKind.LAVA)
        return node

    def build_waterlogged(self, model: Model, block: Block, biome: str = DEFAULT_BIOME,
                          uvlock: bool = False, y: float = 0) -> SceneNode:
        """The block's own mesh plus a full water cube that renders after it."""
        main = self.build_solid(model, block, biome, uvlock, y)
        water = self.build(WATERLOGGED_WATER_MODEL, Block.create('water'), biome, uvlock, y)
        for mesh in water.children:
            if not isinstance(mesh, Mesh):
                continue
            mesh.render_order = 1
            if isinstance(mesh.material, Material):
                mesh.material.transparent = True
                mesh.material.depth_write = False

        return SceneNode('waterlogged', children=[main, water],
                         user_data={'is_waterlogged': True, 'block': block, 'biome': biome})

    def placeholder(self) -> Mesh:
        """Wireframe unit cube marking a model with nothing to render."""
        return Mesh(box_geometry(1, 1, 1), self.materials.wireframe(PLACEHOLDER_COLOR),
                    name='placeholder', user_data={'is_placeholder': True})

    def build_face_data(self, model: Model, block: Block | None = None, biome: str = DEFAULT_BIOME,
                        uvlock: bool = False, y: float = 0) -> FaceData:
        """Individually placed faces, split by whether a neighbor could cull them."""
        data = FaceData()
        for element in model.elements:
            try:
                faces = self._element_faces(element, model, block, biome, uvlock, y)
            except GeometryConstructionError as e:
                logger.warning('[Meshes] skipping element %s-%s: %s', element.from_, element.to, e)
                continue
            for optimized in faces:
                material = optimized.material
                if getattr(material, 'transparent', False) or getattr(material, 'opacity', 1.0) < 1:
                    data.has_transparency = True
                if optimized.cullface is not None:
                    data.cullable.setdefault(optimized.cullface, []).append(optimized)
                else:
                    data.non_cullable.append(optimized)
        return data

    # --- internals ---

    def _element_groups(self, element: Element, model: Model, block: Block | None, biome: str,
                        uvlock: bool, y: float) -> dict[str, _Group]:
        try:
            size, center = element_frame(element, block.liquid if block else LiquidKind.NONE)
            groups: dict[str, _Group] = {}
            for direction, face in element.faces.items():
                built = self._build_face(direction, face, size, model, block, biome, uvlock, y)
                if built.key not in groups:
                    groups[built.key] = _Group(built.material, built.liquid, built.atlas_uv)
                groups[built.key].geometries.append(built.geometry)

            for group in groups.values():
                merged = merge_geometries(group.geometries)
                group.geometries = [transform_element(merged, center, element.rotation)]
            return groups
        except Exception as e:
            raise GeometryConstructionError(f'{type(e).__name__}: {e}') from e

    def _element_faces(self, element: Element, model: Model, block: Block | None, biome: str,
                       uvlock: bool, y: float) -> list[OptimizedFace]:
        """Every face of one element, placed in block space."""
        try:
            size, center = element_frame(element, block.liquid if block else LiquidKind.NONE)
            rotated = element.rotation is not None and element.rotation.angle != 0
            faces = []
            for direction in FACE_ORDER:
                face = element.faces.get(direction)
                if face is None:
                    continue
                built = self._build_face(direction, face, size, model, block, biome, uvlock, y)
                geometry = built.geometry
                if built.atlas_uv is not None:
                    geometry = remap_uvs(geometry, built.atlas_uv)
                faces.append(OptimizedFace(
                    geometry=transform_element(geometry, center, element.rotation),
                    material=built.material,
                    direction=direction,
                    cullface=face.cullface,
                    element_bounds=(element.from_, element.to),
                    can_batch=not rotated and is_standard_uv(face.uv),
                ))
            return faces
        except Exception as e:
            raise GeometryConstructionError(f'{type(e).__name__}: {e}') from e

    def _build_face(self, direction: Direction, face, size, model: Model, block: Block | None,
                    biome: str, uvlock: bool, y: float) -> _BuiltFace:
        liquid = block.liquid if block is not None else LiquidKind.NONE
        rotation = uv_rotation(direction, face.rotation, y, uvlock)
        geometry = face_geometry(direction, size, face.uv_or_full, rotation)

        texture = resolve_texture(face.texture, model.textures, self.max_texture_depth)
        if liquid is not LiquidKind.NONE:
            still, flow = LIQUID_TEXTURES[liquid]
            texture = still if direction is Direction.UP else flow

        key = material_key(texture, direction, face, block, biome)
        atlas_uv = self._atlas_uv(texture, liquid)
        material = self.materials.create(
            texture,
            tint=self._tint(face, block, biome, liquid),
            liquid=liquid,
            direction=direction,
            atlas_uv=atlas_uv,
            double_sided=is_double_sided(texture, size, face.cullface, liquid is not LiquidKind.NONE),
            biome=biome,
        )
        logger.debug('[Meshes] %s face -> %s', direction.value, texture)
        return _BuiltFace(direction, face, texture, key, geometry, material, liquid, atlas_uv)

    def _tint(self, face, block: Block | None, biome: str, liquid: LiquidKind):
        if self.tints is None:
            return None
        if block is not None and face.tintindex is not None:
            return self.tints.get_tint(block, biome)
        if liquid is LiquidKind.WATER:
            return self.tints.get_tint('minecraft:water', biome)
        return None

    def _atlas_uv(self, texture: str, liquid: LiquidKind):
        atlas = self.get_atlas()
        if atlas is None or liquid is not LiquidKind.NONE:
            return None
        if any(excluded in texture for excluded in self.atlas_excluded):
            return None
        return atlas.get_uv(texture)
