"""
Loads block model JSONs and flattens them for meshing.

A flattened model has its parent chain merged in (child textures override parent
textures, child elements replace parent elements), the 'parent' key removed, and every
face texture resolved from '#key' indirections to a literal texture path. Water and
lava models are synthesized from their level instead of being read as-is.
"""

import logging
import re
from dataclasses import dataclass, field, replace

from blockmesh.block import Direction, strip_namespace
from blockmesh.cache import KeyedCache
from blockmesh.errors import UnresolvedReferenceError
from blockmesh.resources import load_json
from blockmesh.settings import (MAX_PARENT_DEPTH, MAX_TEXTURE_DEPTH, MISSING_TEXTURE,
                                WATER_SOURCE_HEIGHT)

logger = logging.getLogger(__name__)

FULL_UV = (0.0, 0.0, 16.0, 16.0)

_LEVEL_RE = re.compile(r'_level_(\d+)')


@dataclass(frozen=True)
class Face:
    texture: str
    cullface: Direction | None = None
    rotation: float = 0
    tintindex: int | None = None
    uv: tuple | None = None

    @classmethod
    def from_json(cls, data: dict) -> 'Face':
        uv = data.get('uv')
        return cls(
            texture=str(data.get('texture', '')),
            cullface=Direction.parse(data['cullface']) if data.get('cullface') else None,
            rotation=data.get('rotation', 0) or 0,
            tintindex=data.get('tintindex'),
            uv=tuple(float(c) for c in uv) if uv else None,
        )

    @property
    def uv_or_full(self) -> tuple:
        return self.uv if self.uv else FULL_UV


@dataclass(frozen=True)
class ElementRotation:
    origin: tuple = (8.0, 8.0, 8.0)
    axis: str = 'y'
    angle: float = 0.0
    rescale: bool = False

    @classmethod
    def from_json(cls, data: dict) -> 'ElementRotation':
        origin = data.get('origin', (8, 8, 8))
        return cls(
            origin=tuple(float(c) for c in origin),
            axis=str(data.get('axis', 'y')).lower(),
            angle=float(data.get('angle', 0)),
            rescale=bool(data.get('rescale', False)),
        )


@dataclass(frozen=True)
class Element:
    from_: tuple = (0.0, 0.0, 0.0)
    to: tuple = (16.0, 16.0, 16.0)
    faces: dict = field(default_factory=dict)  # Direction -> Face
    rotation: ElementRotation | None = None
    shade: bool = True

    @classmethod
    def from_json(cls, data: dict) -> 'Element':
        faces = {}
        for name, face_data in (data.get('faces') or {}).items():
            direction = Direction.parse(name)
            if direction is None or not isinstance(face_data, dict):
                logger.debug('[Models] ignoring face %r', name)
                continue
            faces[direction] = Face.from_json(face_data)
        rotation = data.get('rotation')
        return cls(
            from_=tuple(float(c) for c in data.get('from', (0, 0, 0))),
            to=tuple(float(c) for c in data.get('to', (16, 16, 16))),
            faces=faces,
            rotation=ElementRotation.from_json(rotation) if rotation else None,
            shade=bool(data.get('shade', True)),
        )

    @property
    def is_full_cube(self) -> bool:
        return self.from_ == (0.0, 0.0, 0.0) and self.to == (16.0, 16.0, 16.0)


@dataclass(frozen=True)
class Model:
    textures: dict = field(default_factory=dict)
    elements: tuple = ()
    extras: dict = field(default_factory=dict)  # display, ambientocclusion, ...

    @classmethod
    def from_json(cls, data: dict) -> 'Model':
        elements = []
        for raw in data.get('elements') or []:
            try:
                elements.append(Element.from_json(raw))
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning('[Models] skipping malformed element %r: %s', raw, e)
        textures = {k: v for k, v in texture_table(data).items() if isinstance(v, str)}
        extras = {k: v for k, v in data.items() if k not in ('parent', 'textures', 'elements')}
        return cls(textures, tuple(elements), extras)

    def texture_paths(self) -> set[str]:
        return {face.texture for element in self.elements for face in element.faces.values()}


def texture_table(data: dict) -> dict:
    """The 'textures' object of a model JSON. Anything but an object counts as empty."""
    textures = data.get('textures')
    if not isinstance(textures, dict):
        if textures:
            logger.warning('[Models] ignoring non-object textures %r', textures)
        return {}
    return textures


def resolve_texture(ref: str, textures: dict, max_depth: int = MAX_TEXTURE_DEPTH) -> str:
    """Follow '#key' indirections through a texture table to a literal path."""
    try:
        return _follow_texture(ref, textures, max_depth)
    except UnresolvedReferenceError as e:
        logger.warning('[Models] unresolved texture reference %s', e)
        return MISSING_TEXTURE


def _follow_texture(ref: str, textures: dict, max_depth: int) -> str:
    if not ref or ref == '#missing':
        return MISSING_TEXTURE
    if not ref.startswith('#'):
        return strip_namespace(ref)
    if not textures:
        raise UnresolvedReferenceError(ref, 'model has no textures')

    current = ref
    depth = 0
    while current.startswith('#') and depth < max_depth:
        current = textures.get(current[1:], current)
        depth += 1
    # a chain that needs every allowed hop counts as exhausted
    if depth >= max_depth or current.startswith('#'):
        raise UnresolvedReferenceError(ref, f'still unresolved after {depth} hops')
    return strip_namespace(current)


def resolve_faces(model: Model, max_depth: int = MAX_TEXTURE_DEPTH) -> Model:
    """Return a copy of model whose face textures are all literal paths."""
    elements = []
    for element in model.elements:
        faces = {
            direction: replace(face, texture=resolve_texture(face.texture, model.textures, max_depth))
            for direction, face in element.faces.items()
        }
        elements.append(replace(element, faces=faces))
    return replace(model, elements=tuple(elements))


def liquid_height(is_water: bool, level: int) -> int:
    """Height in pixels of a liquid block at the given level (0 = source)."""
    if level == 0:
        return WATER_SOURCE_HEIGHT if is_water else 16
    return max(0, 16 - 2 * level)


def liquid_model_json(is_water: bool, height: float) -> dict:
    still = 'block/water_still' if is_water else 'block/lava_still'
    flow = 'block/water_flow' if is_water else 'block/lava_flow'
    return {
        'textures': {
            'particle': still,
            'all': still,
            'top': still,
            'bottom': still,
            'north': flow,
            'south': flow,
            'east': flow,
            'west': flow,
        },
        'elements': [{
            'from': [0, 0, 0],
            'to': [16, height, 16],
            'faces': {
                'down':  {'texture': '#bottom', 'cullface': 'down'},
                'up':    {'texture': '#top', 'cullface': 'up'},
                'north': {'texture': '#north', 'cullface': 'north'},
                'south': {'texture': '#south', 'cullface': 'south'},
                'west':  {'texture': '#west', 'cullface': 'west'},
                'east':  {'texture': '#east', 'cullface': 'east'},
            },
        }],
    }


def is_liquid_model_path(path: str) -> bool:
    return path.startswith('block/water') or path.startswith('block/lava')


class ModelResolver:
    def __init__(self, accessor, max_parent_depth: int = MAX_PARENT_DEPTH,
                 max_texture_depth: int = MAX_TEXTURE_DEPTH):
        self.accessor = accessor
        self.max_parent_depth = max_parent_depth
        self.max_texture_depth = max_texture_depth
        self.cache = KeyedCache('models')

    def get_model(self, model_path: str) -> Model:
        """Flattened model for a path like 'block/oak_log' or 'minecraft:block/oak_log'."""
        path = strip_namespace(model_path)
        return self.cache.get_or_compute(path, lambda: self._build_model(path))

    def _build_model(self, path: str) -> Model:
        data = self.load_model_json(path)
        return resolve_faces(Model.from_json(data), self.max_texture_depth)

    def load_model_json(self, path: str) -> dict:
        """Merged JSON for a model path, without texture resolution. Missing models give {}."""
        path = strip_namespace(path)
        if is_liquid_model_path(path):
            return self._liquid_model_json(path)

        data = load_json(self.accessor, f'models/{path}.json')
        if data is None:
            logger.warning('[Models] model definition for %s not found', path)
            return {}
        if data.get('parent'):
            data = self._merge_parents(path, data)
        return data

    def _merge_parents(self, path: str, data: dict) -> dict:
        merged = dict(data)
        visited = {path}
        parent_ref = data.get('parent')
        depth = 0
        while parent_ref and depth < self.max_parent_depth:
            parent_path = strip_namespace(parent_ref)
            if parent_path in visited:
                logger.warning('[Models] parent cycle at %s while resolving %s', parent_path, path)
                break
            visited.add(parent_path)

            parent = load_json(self.accessor, f'models/{parent_path}.json')
            if parent is None:
                logger.warning('[Models] parent model %s not found (from %s)', parent_path, path)
                break

            textures = dict(texture_table(parent))
            textures.update(texture_table(merged))
            elements = merged.get('elements')
            if elements is None:
                elements = parent.get('elements')
            merged = {**parent, **merged, 'textures': textures}
            if elements is None:
                merged.pop('elements', None)
            else:
                merged['elements'] = elements

            parent_ref = parent.get('parent')
            depth += 1
        else:
            if parent_ref:
                logger.warning('[Models] parent chain of %s longer than %d, stopped at %s',
                               path, self.max_parent_depth, parent_ref)

        merged.pop('parent', None)
        return merged

    def _liquid_model_json(self, path: str) -> dict:
        is_water = path.startswith('block/water')
        match = _LEVEL_RE.search(path)
        level = int(match.group(1)) if match else 0
        model = liquid_model_json(is_water, liquid_height(is_water, level))

        original = load_json(self.accessor, f'models/{path}.json')
        if original is None and match:
            base = 'block/water' if is_water else 'block/lava'
            original = load_json(self.accessor, f'models/{base}.json')
        if original is not None:
            model['textures'].update(texture_table(original))
            # level models keep their computed height
            if original.get('elements') and not match:
                model['elements'] = original['elements']
        return model

    def texture_paths(self) -> set[str]:
        """Every texture referenced by a model resolved so far."""
        paths = set()
        for key in self.cache.keys():
            model = self.cache.peek(key)
            if model is not None:
                paths |= model.texture_paths()
        return paths
