import io

import pygame as pg
import pytest

from blockmesh.pipeline import BlockPipeline
from blockmesh.resources import MemoryPack, PackStack
from blockmesh.settings import PipelineConfig

DIRECTIONS = ('down', 'up', 'north', 'south', 'west', 'east')

GRASS_COLOR = (10, 200, 30)


def png_bytes(size=(16, 16), color=(128, 128, 128, 255)) -> bytes:
    surf = pg.Surface(size, pg.SRCALPHA)
    surf.fill(color)
    buf = io.BytesIO()
    pg.image.save(surf, buf, 'texture.png')
    return buf.getvalue()


def cube_faces(texture='#{d}', cull=True) -> dict:
    return {
        d: ({'texture': texture.format(d=d), 'cullface': d} if cull
            else {'texture': texture.format(d=d)})
        for d in DIRECTIONS
    }


def pack_files() -> dict:
    files = {
        # blockstates
        'blockstates/stone.json': {'variants': {'': {'model': 'block/stone'}}},
        'blockstates/oak_log.json': {'variants': {
            'axis=y': {'model': 'block/oak_log'},
            'axis=z': {'model': 'block/oak_log', 'x': 90},
            'axis=x': {'model': 'block/oak_log', 'x': 90, 'y': 90},
        }},
        'blockstates/grass_block.json': {'variants': {
            '': {'model': 'block/grass_block'},
            'snowy=true': {'model': 'block/grass_block_snow'},
        }},
        'blockstates/furnace.json': {'variants': {
            'facing=north,lit=false': {'model': 'block/furnace'},
            'facing=east,lit=false': {'model': 'block/furnace', 'y': 90},
            'facing=east,lit=true': {'model': 'block/furnace_on', 'y': 90},
            'facing=north,lit=true': {'model': 'block/furnace_on'},
        }},
        'blockstates/oak_fence.json': {'multipart': [
            {'apply': {'model': 'block/oak_fence_post'}},
            {'when': {'north': True}, 'apply': {'model': 'block/oak_fence_side', 'uvlock': True}},
            {'when': {'east': 'true'},
             'apply': {'model': 'block/oak_fence_side', 'y': 90, 'uvlock': True}},
            {'when': {'OR': [{'south': 'true'}, {'west': 'true'}]},
             'apply': {'model': 'block/oak_fence_side', 'y': 180, 'uvlock': True}},
        ]},
        'blockstates/cobblestone_wall.json': {'multipart': [
            {'when': {'up': 'true'}, 'apply': {'model': 'block/oak_fence_post'}},
            {'when': {'north': 'low|tall'}, 'apply': {'model': 'block/oak_fence_side'}},
            {'when': {'AND': [{'east': 'low'}, {'west': 'low'}]},
             'apply': {'model': 'block/oak_fence_side', 'y': 90}},
        ]},
        'blockstates/mossy_stone.json': {'variants': {'': [
            {'model': 'block/stone', 'weight': 0},
            {'model': 'block/stone_mirrored'},
        ]}},
        'blockstates/observer.json': {'variants': {
            'facing=north': {'model': 'block/observer_a'},
            'facing=south': {'model': 'block/observer_b'},
            '': {'model': 'block/observer_c'},
        }},
        'blockstates/ghost.json': {'variants': {'': {'model': 'block/ghost'}}},
        'blockstates/broken.json': '{"variants": {',

        # models
        'models/block/block.json': {
            'display': {'gui': {'rotation': [30, 225, 0]}},
        },
        'models/block/cube.json': {
            'parent': 'block/block',
            'elements': [{'from': [0, 0, 0], 'to': [16, 16, 16], 'faces': cube_faces()}],
        },
        'models/block/cube_all.json': {
            'parent': 'block/cube',
            'textures': {'particle': '#all', **{d: '#all' for d in DIRECTIONS}},
        },
        'models/block/cube_column.json': {
            'parent': 'block/cube',
            'textures': {
                'particle': '#side',
                'down': '#end', 'up': '#end',
                'north': '#side', 'south': '#side', 'west': '#side', 'east': '#side',
            },
        },
        'models/block/stone.json': {
            'parent': 'minecraft:block/cube_all',
            'textures': {'all': 'minecraft:block/stone'},
        },
        'models/block/oak_log.json': {
            'parent': 'block/cube_column',
            'textures': {'end': 'block/oak_log_top', 'side': 'block/oak_log'},
        },
        'models/block/grass_block.json': {
            'parent': 'block/cube',
            'textures': {
                'down': 'block/stone', 'up': 'block/grass_block_top',
                **{d: 'block/stone' for d in ('north', 'south', 'west', 'east')},
            },
            'elements': [{
                'from': [0, 0, 0], 'to': [16, 16, 16],
                'faces': {
                    'down': {'texture': '#down', 'cullface': 'down'},
                    'up': {'texture': '#up', 'cullface': 'up', 'tintindex': 0},
                },
            }],
        },
        'models/block/custom_slab.json': {
            'parent': 'block/cube_all',
            'textures': {'all': 'block/stone'},
            'elements': [{'from': [0, 0, 0], 'to': [16, 8, 16], 'faces': cube_faces('#all')}],
        },
        'models/block/oak_fence_post.json': {
            'textures': {'texture': 'block/oak_planks'},
            'elements': [{
                'from': [6, 0, 6], 'to': [10, 16, 10],
                'faces': {
                    'down': {'texture': '#texture', 'cullface': 'down'},
                    'up': {'texture': '#texture', 'cullface': 'up'},
                    'north': {'texture': '#texture'},
                    'south': {'texture': '#texture'},
                    'west': {'texture': '#texture'},
                    'east': {'texture': '#texture'},
                },
            }],
        },
        'models/block/oak_fence_side.json': {
            'textures': {'texture': 'block/oak_planks'},
            'elements': [{
                'from': [7, 12, 0], 'to': [9, 15, 9],
                'faces': {d: {'texture': '#texture'} for d in DIRECTIONS},
            }],
        },
        'models/block/cycle_a.json': {
            'parent': 'block/cycle_b',
            'textures': {'all': 'block/stone'},
            'elements': [{'from': [0, 0, 0], 'to': [16, 16, 16], 'faces': cube_faces('#all')}],
        },
        'models/block/cycle_b.json': {'parent': 'block/cycle_a'},
        'models/block/broken_element.json': {
            'textures': {'all': 'block/stone'},
            'elements': [
                {'from': 'abc', 'to': [16, 16, 16]},
                {'from': [0, 0, 0], 'to': [16, 16, 16], 'faces': cube_faces('#all')},
            ],
        },
        'models/block/water.json': {'textures': {'particle': 'block/water_still'}},

        # textures
        'textures/block/stone.png': png_bytes(color=(120, 120, 120, 255)),
        'textures/block/oak_log.png': png_bytes(color=(100, 80, 50, 255)),
        'textures/block/oak_log_top.png': png_bytes(color=(150, 120, 70, 255)),
        'textures/block/oak_planks.png': png_bytes(color=(160, 130, 80, 255)),
        'textures/block/grass_block_top.png': png_bytes(color=(200, 200, 200, 255)),
        'textures/block/big.png': png_bytes((32, 32), (0, 0, 255, 255)),
        'textures/block/water_still.png': png_bytes((16, 32), (40, 60, 200, 180)),
        'textures/block/water_still.png.mcmeta': {'animation': {'frametime': 2}},
        'textures/colormap/grass.png': png_bytes((16, 16), (*GRASS_COLOR, 255)),
        'textures/item/stick.png': png_bytes(color=(90, 60, 30, 255)),
    }
    return files


@pytest.fixture
def pack():
    return MemoryPack('vanilla', pack_files())


@pytest.fixture
def packs(pack):
    """Fresh single-pack stack for each test."""
    return PackStack([pack])


@pytest.fixture
def pipeline(packs):
    pipe = BlockPipeline(packs, PipelineConfig(atlas_size=256, max_workers=2))
    yield pipe
    pipe.close()
