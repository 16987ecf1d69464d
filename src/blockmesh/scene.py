"""
Minimal scene graph handed to the embedding renderer.

Nodes carry a local glm.mat4; meshes pair a Geometry with a Material. Clones copy
the node tree but share geometry and materials.
"""

import glm
import numpy as np

from blockmesh.meshes.geometry import Geometry


def mat4_to_numpy(m: glm.mat4) -> np.ndarray:
    """Row-major 4x4 array of a glm (column-major) matrix."""
    return np.array([[m[c][r] for c in range(4)] for r in range(4)], dtype=np.float64)


def block_rotation(x: float = 0, y: float = 0) -> glm.mat4:
    """Blockstate rotation of a whole part: about Y by -y, then about X by -x, in local space."""
    m = glm.mat4()
    if y:
        m = glm.rotate(m, glm.radians(-y), glm.vec3(0, 1, 0))
    if x:
        m = glm.rotate(m, glm.radians(-x), glm.vec3(1, 0, 0))
    return m


class SceneNode:
    def __init__(self, name: str = '', matrix: glm.mat4 | None = None, children=None,
                 user_data: dict | None = None):
        self.name = name
        self.matrix = glm.mat4(matrix) if matrix is not None else glm.mat4()
        self.children: list[SceneNode] = []
        self.user_data = dict(user_data or {})
        for child in children or []:
            self.add(child)

    def add(self, node: 'SceneNode') -> 'SceneNode':
        self.children.append(node)
        return node

    def walk(self, parent: glm.mat4 | None = None):
        """Yield (node, world matrix) depth-first."""
        world = parent * self.matrix if parent is not None else glm.mat4(self.matrix)
        yield self, world
        for child in self.children:
            yield from child.walk(world)

    def iter_meshes(self):
        for node, world in self.walk():
            if isinstance(node, Mesh):
                yield node, world

    def find(self, name: str) -> 'SceneNode | None':
        for node, _ in self.walk():
            if node.name == name:
                return node
        return None

    @property
    def vertex_count(self) -> int:
        return sum(mesh.geometry.vertex_count for mesh, _ in self.iter_meshes())

    @property
    def index_count(self) -> int:
        return sum(mesh.geometry.index_count for mesh, _ in self.iter_meshes())

    def world_bounding_box(self) -> tuple[np.ndarray, np.ndarray] | None:
        lows, highs = [], []
        for mesh, world in self.iter_meshes():
            if mesh.geometry.vertex_count == 0:
                continue
            pts = np.asarray(mesh.geometry.positions, dtype=np.float64)
            homo = np.hstack([pts, np.ones((len(pts), 1))])
            moved = (homo @ mat4_to_numpy(world).T)[:, :3]
            lows.append(moved.min(axis=0))
            highs.append(moved.max(axis=0))
        if not lows:
            return None
        return np.min(lows, axis=0), np.max(highs, axis=0)

    def _copy_node(self) -> 'SceneNode':
        return SceneNode(self.name, self.matrix, user_data=self.user_data)

    def clone(self) -> 'SceneNode':
        node = self._copy_node()
        for child in self.children:
            node.add(child.clone())
        return node

    def __repr__(self):
        return f'{type(self).__name__}({self.name!r}, {len(self.children)} children)'


class Mesh(SceneNode):
    def __init__(self, geometry: Geometry, material, name: str = '', render_order: int = 0,
                 matrix: glm.mat4 | None = None, user_data: dict | None = None):
        super().__init__(name, matrix, user_data=user_data)
        self.geometry = geometry
        self.material = material
        self.render_order = render_order

    def _copy_node(self) -> 'Mesh':
        return Mesh(self.geometry, self.material, self.name, self.render_order,
                    self.matrix, self.user_data)
