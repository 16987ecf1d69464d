"""
moderngl upload of pipeline output. Optional: nothing in the pipeline imports this.

Vertex format per vertex: 8 floats
  x, y, z          (float32) - block-space position
  nx, ny, nz       (float32) - normal
  u, v             (float32) - texture (or atlas) coordinate
"""

from dataclasses import dataclass

import glm
import moderngl as mgl
import numpy as np
import pygame as pg

from blockmesh.meshes.geometry import Geometry

FLOATS_PER_VERTEX = 8
VERTEX_FORMAT = '3f 3f 2f'
VERTEX_ATTRS = ('in_position', 'in_normal', 'in_texcoord')


def interleave(geometry: Geometry) -> np.ndarray:
    """(N, 8) float32 array of position, normal, uv per vertex."""
    data = np.empty((geometry.vertex_count, FLOATS_PER_VERTEX), dtype='f4')
    data[:, 0:3] = geometry.positions
    data[:, 3:6] = geometry.normals
    data[:, 6:8] = geometry.uvs
    return data


def upload_atlas(ctx: mgl.Context, atlas, location: int | None = None) -> mgl.Texture:
    # GL rows start at the bottom of the image
    data = pg.image.tobytes(atlas.surface, 'RGBA', True)
    texture = ctx.texture((atlas.size, atlas.size), 4, data)
    texture.filter = (mgl.NEAREST, mgl.NEAREST)
    texture.repeat_x = True
    texture.repeat_y = True
    if location is not None:
        texture.use(location=location)
    return texture


@dataclass
class GpuPart:
    vao: mgl.VertexArray
    vbo: mgl.Buffer
    ibo: mgl.Buffer
    material: object
    matrix: glm.mat4
    render_order: int = 0


class GpuBlockMesh:
    """One VAO per mesh of a block node, drawn in render order."""

    def __init__(self, ctx: mgl.Context, program: mgl.Program, node):
        self.ctx = ctx
        self.program = program
        self.parts: list[GpuPart] = []
        for mesh, world in node.iter_meshes():
            if mesh.geometry.is_empty:
                continue
            vbo = ctx.buffer(interleave(mesh.geometry).tobytes())
            ibo = ctx.buffer(mesh.geometry.indices.astype('u4').tobytes())
            vao = ctx.vertex_array(
                program,
                [(vbo, VERTEX_FORMAT, *VERTEX_ATTRS)],
                index_buffer=ibo,
                index_element_size=4,
                skip_errors=True
            )
            self.parts.append(GpuPart(vao, vbo, ibo, mesh.material, world, mesh.render_order))
        self.parts.sort(key=lambda p: p.render_order)

    def render(self, m_model: glm.mat4 | None = None):
        base = m_model if m_model is not None else glm.mat4()
        uniform = self.program.get('m_model', None)
        for part in self.parts:
            if uniform is not None:
                uniform.write(base * part.matrix)
            part.vao.render()

    def release(self):
        """Release all GPU resources."""
        for part in self.parts:
            part.vao.release()
            part.vbo.release()
            part.ibo.release()
        self.parts = []
