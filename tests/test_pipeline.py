import numpy as np

from blockmesh.block import Direction
from blockmesh.materials import FALLBACK_COLOR, PLACEHOLDER_COLOR
from blockmesh.pipeline import BlockPipeline
from blockmesh.resources import MemoryPack
from blockmesh.scene import mat4_to_numpy
from blockmesh.settings import MISSING_TEXTURE


def meshes_of(node):
    return [mesh for mesh, _ in node.iter_meshes()]


def world_normal(world, normal):
    return mat4_to_numpy(world)[:3, :3] @ np.asarray(normal, dtype=np.float64)


def test_simple_block(pipeline):
    node = pipeline.get_block_mesh('minecraft:stone')

    assert node.name == 'block_stone'
    assert len(node.children) == 1
    assert len(meshes_of(node)) == 6
    assert node.children[0].user_data['model'] == 'block/stone'


def test_rotated_log_faces_east(pipeline):
    node = pipeline.get_block_mesh('minecraft:oak_log[axis=x]')

    for mesh, world in node.iter_meshes():
        if mesh.material.face_direction is Direction.UP:
            assert mesh.material.texture == 'block/oak_log_top'
            assert np.allclose(world_normal(world, mesh.geometry.normals[0]), [1, 0, 0], atol=1e-6)
            break
    else:
        raise AssertionError('no up face')


def test_upright_log_is_not_rotated(pipeline):
    node = pipeline.get_block_mesh('minecraft:oak_log[axis=y]')

    assert np.allclose(mat4_to_numpy(node.children[0].matrix), np.eye(4))


def test_multipart_fence(pipeline):
    node = pipeline.get_block_mesh('minecraft:oak_fence[north=true,east=true]')

    assert [part.user_data['model'] for part in node.children] == [
        'block/oak_fence_post', 'block/oak_fence_side', 'block/oak_fence_side']
    east_side = node.children[2]
    # y=90 turns the north arm to face east
    low, high = east_side.world_bounding_box()
    assert high[0] > 0.45
    assert low[0] > -0.1


def test_waterlogged_fence(pipeline):
    node = pipeline.get_block_mesh('minecraft:oak_fence[north=true,waterlogged=true]')
    meshes = meshes_of(node)

    assert len(meshes) >= 2
    assert all(part.name == 'waterlogged' for part in node.children)
    assert any(mesh.user_data.get('is_water') for mesh in meshes)


def test_water_level(pipeline):
    node = pipeline.get_block_mesh('minecraft:water[level=4]')
    low, high = node.world_bounding_box()

    assert all(mesh.user_data.get('is_water') for mesh in meshes_of(node))
    assert np.isclose(high[1], 8 / 16 - 0.5)


def test_missing_blockstate_gives_fallback(pipeline):
    node = pipeline.get_block_mesh('minecraft:nothing')

    assert node.name == 'block_fallback_minecraft:nothing'
    assert node.user_data['is_placeholder']
    assert node.material.color == FALLBACK_COLOR
    assert np.allclose(node.geometry.bounding_box()[1], 0.4)


def test_missing_model_gives_placeholder_part(pipeline):
    node = pipeline.get_block_mesh('minecraft:ghost')
    part = node.children[0]

    assert part.user_data['is_placeholder']
    assert part.material.color == PLACEHOLDER_COLOR


def test_mesh_cache_returns_clones(pipeline):
    first = pipeline.get_block_mesh('minecraft:stone')
    second = pipeline.get_block_mesh('minecraft:stone')

    assert first is not second
    assert meshes_of(first)[0] is not meshes_of(second)[0]
    assert meshes_of(first)[0].geometry is meshes_of(second)[0].geometry
    assert pipeline.is_block_mesh_cached('minecraft:stone')
    assert not pipeline.is_block_mesh_cached('minecraft:stone', 'desert')
    assert pipeline.cache_stats()['mesh_hits'] == 1


def test_uncached_build_is_identical(pipeline):
    cached = pipeline.get_block_mesh('minecraft:oak_log[axis=z]')
    fresh = pipeline.get_block_mesh('minecraft:oak_log[axis=z]', use_cache=False)

    assert cached.vertex_count == fresh.vertex_count
    for a, b in zip(meshes_of(cached), meshes_of(fresh)):
        assert a.name == b.name
        assert np.allclose(a.geometry.positions, b.geometry.positions)
        assert np.allclose(a.geometry.uvs, b.geometry.uvs)


def test_atlas_build(pipeline):
    pipeline.get_block_mesh('minecraft:stone')
    assert pipeline.get_texture_uv('block/stone') is None

    atlas = pipeline.build_atlas()

    assert pipeline.build_atlas() is atlas
    assert pipeline.atlas is atlas
    # meshes built before the atlas sampled single textures
    assert not pipeline.is_block_mesh_cached('minecraft:stone')
    node = pipeline.get_block_mesh('minecraft:stone')
    assert all(mesh.material.use_atlas for mesh in meshes_of(node))
    assert pipeline.get_texture_uv('block/stone') == atlas.get_uv('block/stone')


def test_rebuild_atlas(pipeline):
    atlas = pipeline.build_atlas()

    assert pipeline.rebuild_atlas() is not atlas


def test_pack_change_invalidates_everything(pipeline, packs):
    pipeline.build_atlas()
    node = pipeline.get_block_mesh('minecraft:stone')
    assert meshes_of(node)[0].material.texture == 'block/stone'

    packs.add_pack(MemoryPack('override', {
        'models/block/stone.json': {'parent': 'block/cube_all', 'textures': {'all': 'block/oak_planks'}},
    }))

    assert pipeline.atlas is None
    assert pipeline.cache_stats()['block_meshes'] == 0
    node = pipeline.get_block_mesh('minecraft:stone')
    assert {m.material.texture for m in meshes_of(node)} == {'block/oak_planks'}


def test_optimization_data(pipeline):
    data = pipeline.get_block_optimization_data('minecraft:stone')

    assert data.is_cube
    assert data.has_cullable_faces
    assert set(data.cullable) == set(Direction)
    assert pipeline.get_block_optimization_data('minecraft:stone') is data


def test_geometry_info(pipeline):
    stone = pipeline.get_block_geometry_info('minecraft:stone')
    fence = pipeline.get_block_geometry_info('minecraft:oak_fence[north=true]')
    glass = pipeline.get_block_geometry_info('minecraft:glass')

    assert stone.is_cube and stone.has_cullable_faces and not stone.has_transparency
    assert not fence.is_cube
    assert glass.has_transparency and not glass.is_cube


def test_preload_block_models(pipeline):
    loaded = pipeline.preload_block_models()

    assert loaded > 0
    assert pipeline.cache_stats()['models'] == loaded
    assert 'block/oak_log_top' in pipeline.referenced_textures()


def test_context_manager(packs):
    with BlockPipeline(packs) as pipe:
        assert pipe.get_block_mesh('stone').vertex_count == 24


def test_cached_calls_are_geometrically_identical(pipeline):
    first = pipeline.get_block_mesh('minecraft:oak_fence[north=true,west=true]', 'forest')
    second = pipeline.get_block_mesh('minecraft:oak_fence[north=true,west=true]', 'forest')

    assert first.vertex_count == second.vertex_count
    assert first.index_count == second.index_count
    for a, b in zip(first.world_bounding_box(), second.world_bounding_box()):
        assert np.allclose(a, b)


FULL_CUBE_FACES = {d.value: {'texture': '#all', 'cullface': d.value} for d in Direction}


def test_short_element_is_skipped_not_raised(pipeline, packs):
    packs.add_pack(MemoryPack('odd', {
        'blockstates/odd.json': {'variants': {'': {'model': 'block/odd'}}},
        'models/block/odd.json': {
            'textures': {'all': 'block/stone'},
            'elements': [
                {'from': [0, 0], 'to': [16, 16], 'faces': FULL_CUBE_FACES},
                {'from': [0, 0, 0], 'to': [16, 16, 16], 'faces': FULL_CUBE_FACES},
            ],
        },
    }))

    node = pipeline.get_block_mesh('minecraft:odd')

    assert not node.user_data.get('is_placeholder')
    assert len(meshes_of(node)) == 6
    assert {m.material.texture for m in meshes_of(node)} == {'block/stone'}


def test_list_textures_render_missing_texture(pipeline, packs):
    packs.add_pack(MemoryPack('odd', {
        'blockstates/listed.json': {'variants': {'': {'model': 'block/listed'}}},
        'models/block/listed.json': {'parent': 'block/cube_all', 'textures': ['block/stone']},
    }))

    node = pipeline.get_block_mesh('minecraft:listed')

    assert not node.user_data.get('is_placeholder')
    assert {m.material.texture for m in meshes_of(node)} == {MISSING_TEXTURE}


def test_unexpected_part_failure_is_contained(pipeline, monkeypatch):
    def explode(*args, **kwargs):
        raise KeyError('boom')

    monkeypatch.setattr(pipeline.builder, 'build', explode)
    node = pipeline.get_block_mesh('minecraft:stone', use_cache=False)

    assert node.name == 'block_fallback_minecraft:stone'
    assert node.user_data['is_placeholder']


def test_close_detaches_from_pack_stack(packs):
    pipe = BlockPipeline(packs)
    pipe.get_block_mesh('minecraft:stone')
    pipe.close()

    packs.add_pack(MemoryPack('late'))

    assert pipe.cache_stats()['block_meshes'] == 1
