from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
import os

# resource packs
DEFAULT_NAMESPACE = 'minecraft'
DEFAULT_BIOME = 'plains'
MISSING_TEXTURE = 'block/missing_texture'

# model / texture resolution
MAX_PARENT_DEPTH = 5
MAX_TEXTURE_DEPTH = 5

# liquids
LIQUID_BLOCKS = frozenset({'water', 'flowing_water', 'lava', 'flowing_lava'})
WATER_SOURCE_HEIGHT = 14  # pixels, still water sits below the block top

# atlas
ATLAS_SIZE = 2048
ATLAS_PADDING = 1
ATLAS_TEXTURE_PREFIXES = ('block/',)
ATLAS_EXCLUDED_TEXTURES = (
    'water_still',
    'water_flow',
    'lava_still',
    'lava_flow',
)
DECODE_BATCH_SIZE = 50  # images decoded concurrently

# workers
MAX_WORKERS = min(8, (os.cpu_count() or 1) + 4)

# animation
TICKS_PER_SECOND = 20  # Minecraft default TPS


@dataclass
class PipelineConfig:
    """Per-pipeline overrides for the module defaults above."""
    atlas_size: int = ATLAS_SIZE
    atlas_padding: int = ATLAS_PADDING
    atlas_prefixes: tuple = ATLAS_TEXTURE_PREFIXES
    atlas_excluded: tuple = ATLAS_EXCLUDED_TEXTURES
    use_atlas: bool = True
    decode_batch_size: int = DECODE_BATCH_SIZE
    max_parent_depth: int = MAX_PARENT_DEPTH
    max_texture_depth: int = MAX_TEXTURE_DEPTH
    max_workers: int = MAX_WORKERS
    default_biome: str = DEFAULT_BIOME
    weighted_seed: int | None = None

    def make_executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=self.max_workers,
                                  thread_name_prefix='BlockMeshWorker')
