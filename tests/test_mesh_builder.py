import numpy as np
import pytest

from blockmesh.atlas import UVRect
from blockmesh.block import Block, Direction
from blockmesh.materials import PLACEHOLDER_COLOR, WATER_OPACITY
from blockmesh.meshes.block_mesh_builder import BlockMeshBuilder, material_key
from blockmesh.models import Face, Model, ModelResolver
from blockmesh.scene import Mesh
from blockmesh.tints import TintProvider

from conftest import GRASS_COLOR


class StoneOnlyAtlas:
    def get_uv(self, path):
        if path == 'block/stone':
            return UVRect(0.5, 0.0, 0.5, 0.5)
        return None


@pytest.fixture
def models(packs):
    return ModelResolver(packs)


@pytest.fixture
def builder():
    return BlockMeshBuilder()


def meshes_of(node):
    return [mesh for mesh, _ in node.iter_meshes()]


def by_direction(node):
    return {mesh.material.face_direction: mesh for mesh in meshes_of(node)}


def test_one_mesh_per_material_key(models, builder):
    node = builder.build(models.get_model('block/stone'), Block.create('stone'))
    meshes = meshes_of(node)

    assert len(meshes) == 6
    assert node.vertex_count == 24
    assert node.index_count == 36
    assert {m.material.texture for m in meshes} == {'block/stone'}
    assert len({m.name for m in meshes}) == 6


def test_material_key_format():
    face = Face('#x', cullface=Direction.UP, tintindex=0)
    key = material_key('block/stone', Direction.UP, face, Block.create('stone'), 'plains')

    assert key == 'block/stone_dir:up_tint:0_cull:up_block:minecraft:stone_props:{}_biome:plains'


def test_material_key_without_block():
    key = material_key('block/stone', Direction.DOWN, Face('#x'), None, 'plains')

    assert key == 'block/stone_dir:down_tint:none_cull:none_block:none_props:none_biome:plains'


def test_empty_model_gives_placeholder(builder):
    node = builder.build(Model())

    assert isinstance(node, Mesh)
    assert node.user_data['is_placeholder']
    assert node.material.wireframe
    assert node.material.color == PLACEHOLDER_COLOR
    assert node.geometry.vertex_count == 24


def test_water_source(models, builder):
    node = builder.build(models.get_model('block/water'), Block.create('water'))
    meshes = by_direction(node)

    assert node.user_data['is_water']
    assert meshes[Direction.UP].material.texture == 'block/water_still'
    assert meshes[Direction.NORTH].material.texture == 'block/water_flow'
    for mesh in meshes.values():
        assert mesh.user_data['is_water']
        assert mesh.render_order == 1
        assert mesh.material.opacity == WATER_OPACITY
        assert not mesh.material.depth_write
    assert np.isclose(meshes[Direction.UP].geometry.positions[:, 1].max(), 0.375)


def test_waterlogged_adds_water_cube(models, builder):
    block = Block.create('oak_fence', {'waterlogged': 'true'})
    node = builder.build(models.get_model('block/oak_fence_post'), block)

    assert node.name == 'waterlogged'
    assert node.user_data['is_waterlogged']
    main, water = node.children
    assert len(meshes_of(main)) == 6
    water_meshes = meshes_of(water)
    assert len(water_meshes) == 6
    for mesh in water_meshes:
        assert mesh.user_data['is_water']
        assert mesh.render_order == 1
        assert mesh.material.transparent
        assert not mesh.material.depth_write
    top = max(m.geometry.positions[:, 1].max() for m in water_meshes)
    assert np.isclose(top, 0.375)


def test_tint_only_on_tinted_faces(packs, models):
    builder = BlockMeshBuilder(tint_provider=TintProvider(packs))
    node = builder.build(models.get_model('block/grass_block'), Block.create('grass_block'))
    meshes = by_direction(node)

    assert np.allclose(meshes[Direction.UP].material.tint, [c / 255 for c in GRASS_COLOR])
    assert meshes[Direction.DOWN].material.tint is None


def test_atlas_uvs(models):
    builder = BlockMeshBuilder(get_atlas=StoneOnlyAtlas)
    node = builder.build(models.get_model('block/stone'), Block.create('stone'))

    for mesh in meshes_of(node):
        assert mesh.material.use_atlas
        assert mesh.geometry.uvs.min() >= 0.5 - 1e-6
        assert mesh.geometry.uvs.max() <= 1.0 + 1e-6


def test_liquids_never_use_the_atlas(models):
    builder = BlockMeshBuilder(get_atlas=StoneOnlyAtlas)
    node = builder.build(models.get_model('block/water'), Block.create('water'))

    assert not any(mesh.material.use_atlas for mesh in meshes_of(node))


def test_broken_element_is_skipped(builder):
    model = Model.from_json({
        'textures': {'all': 'block/stone'},
        'elements': [
            {'from': [0, 0, 0], 'to': [8, 8, 8],
             'rotation': {'origin': [8, 8, 8], 'axis': 'w', 'angle': 22.5},
             'faces': {'up': {'texture': '#all'}}},
            {'from': [0, 0, 0], 'to': [16, 16, 16],
             'faces': {'up': {'texture': '#all'}}},
        ],
    })
    node = builder.build(model, Block.create('stone'))

    assert node.vertex_count == 4


def test_double_sided_faces(models, builder):
    node = builder.build(models.get_model('block/oak_fence_post'), Block.create('oak_fence'))
    meshes = by_direction(node)

    assert not meshes[Direction.DOWN].material.double_sided
    assert meshes[Direction.NORTH].material.double_sided


def test_face_data_split_by_cullface(models, builder):
    data = builder.build_face_data(models.get_model('block/oak_fence_post'),
                                   Block.create('oak_fence'))

    assert set(data.cullable) == {Direction.DOWN, Direction.UP}
    assert len(data.non_cullable) == 4
    face = data.cullable[Direction.UP][0]
    assert face.can_batch
    assert face.element_bounds == ((6.0, 0.0, 6.0), (10.0, 16.0, 10.0))
    assert np.allclose(face.geometry.positions[:, 1], 0.5)
