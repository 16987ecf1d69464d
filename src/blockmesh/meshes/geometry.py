"""
Indexed triangle geometry for block faces.

All coordinates live in a block-centered cube: model space 0..16 maps to -0.5..0.5.
A face starts as a quad in the XY plane facing +Z, gets rotated onto its direction
and pushed out to the element's surface. Element rotation and placement come after.

Quad corners are ordered TL, TR, BL, BR; triangles are (0, 2, 1) and (2, 3, 1).
"""

import math
from dataclasses import dataclass

import numpy as np

from blockmesh.block import Direction

QUAD_INDICES = np.array([0, 2, 1, 2, 3, 1], dtype='u4')

# decimals kept when matching vertices for de-duplication
DEDUP_DECIMALS = 6

_AXES = {'x': 0, 'y': 1, 'z': 2}


@dataclass
class Geometry:
    positions: np.ndarray  # (N, 3) float32
    normals: np.ndarray    # (N, 3) float32
    uvs: np.ndarray        # (N, 2) float32
    indices: np.ndarray    # (M,) uint32

    @classmethod
    def empty(cls) -> 'Geometry':
        return cls(np.zeros((0, 3), dtype='f4'), np.zeros((0, 3), dtype='f4'),
                   np.zeros((0, 2), dtype='f4'), np.zeros(0, dtype='u4'))

    @property
    def vertex_count(self) -> int:
        return len(self.positions)

    @property
    def index_count(self) -> int:
        return len(self.indices)

    @property
    def is_empty(self) -> bool:
        return self.vertex_count == 0 or self.index_count == 0

    def bounding_box(self) -> tuple[np.ndarray, np.ndarray] | None:
        if self.vertex_count == 0:
            return None
        return self.positions.min(axis=0), self.positions.max(axis=0)

    def copy(self) -> 'Geometry':
        return Geometry(self.positions.copy(), self.normals.copy(),
                        self.uvs.copy(), self.indices.copy())

    def with_uvs(self, uvs: np.ndarray) -> 'Geometry':
        return Geometry(self.positions, self.normals, np.asarray(uvs, dtype='f4'), self.indices)


def rotation_matrix(axis: str, degrees: float) -> np.ndarray:
    """Right-handed 3x3 rotation about a principal axis."""
    a = math.radians(degrees)
    c, s = math.cos(a), math.sin(a)
    if axis == 'x':
        return np.array([[1, 0, 0], [0, c, -s], [0, s, c]])
    if axis == 'y':
        return np.array([[c, 0, s], [0, 1, 0], [-s, 0, c]])
    if axis == 'z':
        return np.array([[c, -s, 0], [s, c, 0], [0, 0, 1]])
    raise ValueError(f'unknown rotation axis: {axis!r}')


def plane_positions(width: float, height: float) -> np.ndarray:
    """Quad corners TL, TR, BL, BR in the XY plane, centered on the origin."""
    w, h = width / 2, height / 2
    return np.array([[-w, h, 0], [w, h, 0], [-w, -h, 0], [w, -h, 0]], dtype=np.float64)


# direction -> (plane width axis, plane height axis, rotation, offset axis, offset sign)
_FACE_SETUP = {
    Direction.DOWN:  (0, 2, ('x', 90),  1, -1),
    Direction.UP:    (0, 2, ('x', -90), 1, 1),
    Direction.NORTH: (0, 1, ('y', 180), 2, -1),
    Direction.SOUTH: (0, 1, None,       2, 1),
    Direction.WEST:  (2, 1, ('y', -90), 0, -1),
    Direction.EAST:  (2, 1, ('y', 90),  0, 1),
}


def face_positions(direction: Direction, size) -> np.ndarray:
    """Corners of one face of an element of the given size, relative to its center."""
    setup = _FACE_SETUP.get(direction)
    if setup is None:
        raise ValueError(f'unknown face direction: {direction!r}')
    w_axis, h_axis, rotation, offset_axis, sign = setup
    positions = plane_positions(size[w_axis], size[h_axis])
    if rotation is not None:
        positions = positions @ rotation_matrix(*rotation).T
    positions[:, offset_axis] += sign * size[offset_axis] / 2
    return positions


def face_uvs(uv, rotation: int = 0) -> np.ndarray:
    """
    Per-corner UVs for a pixel-space rect [u1, v1, u2, v2].

    V is flipped (image rows run downward, texture V runs upward). rotation must be a
    multiple of 90; the corners are cycled clockwise that many quarter turns.
    """
    u1, v1, u2, v2 = (c / 16 for c in uv)
    tl, tr, bl, br = (u1, 1 - v1), (u2, 1 - v1), (u1, 1 - v2), (u2, 1 - v2)
    rotation %= 360
    if rotation == 90:
        corners = (bl, tl, br, tr)
    elif rotation == 180:
        corners = (br, bl, tr, tl)
    elif rotation == 270:
        corners = (tr, br, tl, bl)
    else:
        corners = (tl, tr, bl, br)
    return np.array(corners, dtype=np.float64)


# faces that turn with the block's y rotation, and those that turn against it
_UV_TURN_WITH = frozenset({Direction.UP, Direction.NORTH, Direction.EAST})


def uv_rotation(direction: Direction, face_rotation: float = 0, block_y: float = 0,
                uvlock: bool = False) -> int:
    """Total UV rotation of a face snapped to a quarter turn in [0, 360)."""
    total = face_rotation or 0
    if not uvlock:
        total += block_y if direction in _UV_TURN_WITH else -block_y
    total %= 360
    return int(round(total / 90)) * 90 % 360


def face_geometry(direction: Direction, size, uv=(0, 0, 16, 16), rotation: int = 0) -> Geometry:
    positions = face_positions(direction, size)
    normals = np.tile(np.array(direction.normal, dtype=np.float64), (4, 1))
    return Geometry(positions, normals, face_uvs(uv, rotation), QUAD_INDICES.copy())


def transform_element(geometry: Geometry, center, rotation=None) -> Geometry:
    """
    Rotate element-local geometry about its rotation origin, then move it to center.

    The origin is given in model space; it is converted to block space and taken
    relative to the element's center before rotating.
    """
    positions = np.asarray(geometry.positions, dtype=np.float64)
    normals = np.asarray(geometry.normals, dtype=np.float64)
    center = np.asarray(center, dtype=np.float64)

    if rotation is not None:
        pivot = np.asarray(rotation.origin, dtype=np.float64) / 16 - 0.5 - center
        matrix = rotation_matrix(rotation.axis, rotation.angle)
        positions = positions - pivot
        if rotation.rescale:
            scale = np.full(3, 1 / math.cos(math.radians(rotation.angle)))
            scale[_AXES[rotation.axis]] = 1
            positions = positions * scale
        positions = positions @ matrix.T + pivot
        normals = normals @ matrix.T

    positions = positions + center
    return Geometry(positions, normals, geometry.uvs, geometry.indices)


def merge_geometries(geometries, dedup: bool = True) -> Geometry:
    """
    Concatenate geometries into one indexed buffer.

    With dedup, vertices whose position, normal and UV agree to DEDUP_DECIMALS are
    shared; the surviving vertices keep first-seen order.
    """
    parts = [g for g in geometries if not g.is_empty]
    if not parts:
        return Geometry.empty()

    offsets = np.cumsum([0] + [g.vertex_count for g in parts[:-1]])
    positions = np.concatenate([g.positions for g in parts]).astype(np.float64)
    normals = np.concatenate([g.normals for g in parts]).astype(np.float64)
    uvs = np.concatenate([g.uvs for g in parts]).astype(np.float64)
    indices = np.concatenate([g.indices.astype(np.int64) + off for g, off in zip(parts, offsets)])

    if dedup:
        # adding 0.0 folds -0.0 into 0.0
        keys = np.hstack([
            np.round(positions, DEDUP_DECIMALS) + 0.0,
            np.round(normals, DEDUP_DECIMALS) + 0.0,
            np.round(uvs, DEDUP_DECIMALS) + 0.0,
        ])
        _, first, inverse = np.unique(keys, axis=0, return_index=True, return_inverse=True)
        order = np.argsort(first)
        remap = np.empty(len(order), dtype=np.int64)
        remap[order] = np.arange(len(order))
        indices = remap[inverse.reshape(-1)][indices]
        keep = first[order]
        positions, normals, uvs = positions[keep], normals[keep], uvs[keep]

    return Geometry(positions.astype('f4'), normals.astype('f4'),
                    uvs.astype('f4'), indices.astype('u4'))


def remap_uvs(geometry: Geometry, rect) -> Geometry:
    """Map face-local UVs into an atlas region. rect has u, v, width, height."""
    flipped_v = 1.0 - rect.v - rect.height
    uvs = np.asarray(geometry.uvs, dtype=np.float64)
    remapped = np.empty_like(uvs)
    remapped[:, 0] = rect.u + uvs[:, 0] * rect.width
    remapped[:, 1] = flipped_v + uvs[:, 1] * rect.height
    return geometry.with_uvs(remapped)


def box_geometry(width: float = 1.0, height: float = 1.0, depth: float = 1.0) -> Geometry:
    """Closed box centered on the origin, 4 vertices per side."""
    size = (width, height, depth)
    return merge_geometries([face_geometry(d, size) for d in Direction], dedup=False)
