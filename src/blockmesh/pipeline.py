"""
Block pipeline facade: block string -> scene node.

Owns the resolvers, the mesh builder, the atlas and every cache. All caches are
dropped together whenever the pack stack changes.
"""

import logging
import random
from dataclasses import dataclass, field

from blockmesh.animation import AnimatedTextures
from blockmesh.atlas import AtlasPacker, TextureAtlas, build_pack_atlas
from blockmesh.block import Block, LiquidKind, parse_block_string
from blockmesh.blockstates import BlockstateResolver, ModelReference
from blockmesh.cache import KeyedCache
from blockmesh.errors import BlockMeshError
from blockmesh.materials import FALLBACK_COLOR
from blockmesh.meshes.block_mesh_builder import BlockMeshBuilder
from blockmesh.meshes.geometry import box_geometry
from blockmesh.models import ModelResolver
from blockmesh.resources import PackStack
from blockmesh.scene import Mesh, SceneNode, block_rotation
from blockmesh.settings import PipelineConfig
from blockmesh.tints import TintProvider

logger = logging.getLogger(__name__)

_ATLAS_KEY = 'atlas'

# rendered with blending whatever their model says
KNOWN_TRANSPARENT_BLOCKS = frozenset({
    'minecraft:glass',
    'minecraft:glass_pane',
    'minecraft:ice',
    'minecraft:water',
    'minecraft:lava',
    'minecraft:slime_block',
})


@dataclass
class BlockOptimizationData:
    is_cube: bool = False
    has_transparency: bool = False
    has_cullable_faces: bool = False
    cullable: dict = field(default_factory=dict)
    non_cullable: list = field(default_factory=list)


@dataclass(frozen=True)
class BlockGeometryInfo:
    is_cube: bool
    has_transparency: bool
    has_cullable_faces: bool


class BlockPipeline:
    def __init__(self, packs, config: PipelineConfig | None = None, material_factory=None):
        self.config = config or PipelineConfig()
        self.packs = packs if isinstance(packs, PackStack) else PackStack(packs)

        rng = random.Random(self.config.weighted_seed) if self.config.weighted_seed is not None else None
        self.blockstates = BlockstateResolver(self.packs, rng)
        self.models = ModelResolver(self.packs, self.config.max_parent_depth,
                                    self.config.max_texture_depth)
        self.tints = TintProvider(self.packs)
        self.animations = AnimatedTextures(self.packs)
        self.packer = AtlasPacker(self.config.atlas_size, self.config.atlas_padding)
        self.builder = BlockMeshBuilder(
            material_factory=material_factory,
            tint_provider=self.tints,
            get_atlas=self._active_atlas,
            atlas_excluded=self.config.atlas_excluded,
            max_texture_depth=self.config.max_texture_depth,
        )

        self.mesh_cache = KeyedCache('meshes')
        self.optimization_cache = KeyedCache('optimization')
        self.atlas_cache = KeyedCache('atlas')
        self.executor = self.config.make_executor()
        self.packs.subscribe(self.invalidate)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        self.packs.unsubscribe(self.invalidate)
        self.executor.shutdown(wait=True)

    # --- meshes ---

    def _biome(self, biome: str | None) -> str:
        return biome or self.config.default_biome

    def get_block_mesh(self, block_string: str, biome: str | None = None,
                       use_cache: bool = True) -> SceneNode:
        """Scene node for a block string like 'minecraft:oak_log[axis=x]'. Never raises for bad data."""
        biome = self._biome(biome)
        if not use_cache:
            return self._build_block(block_string, biome)
        key = f'{block_string}:{biome}'
        node = self.mesh_cache.get_or_compute(key, lambda: self._build_block(block_string, biome))
        return node.clone()

    def _build_block(self, block_string: str, biome: str) -> SceneNode:
        block = parse_block_string(block_string)
        root = SceneNode(f'block_{block.name}', user_data={'block': block, 'biome': biome})

        refs = self.blockstates.resolve(block)
        parts = self.executor.map(lambda ref: self._build_part(ref, block, biome), refs)
        for part in parts:
            if part is not None:
                root.add(part)

        if not root.children:
            logger.warning('[Pipeline] no parts rendered for %s, returning fallback', block_string)
            return self.fallback_mesh(f'block_fallback_{block.id}', block)
        return root

    def _build_part(self, ref: ModelReference, block: Block, biome: str) -> SceneNode | None:
        try:
            model = self.models.get_model(ref.model)
            # x/y only rotate the finished part; uvlock is all the builder sees
            node = self.builder.build(model, block, biome, uvlock=ref.uvlock)
        except BlockMeshError as e:
            logger.error('[Pipeline] error building %s for %s: %s', ref.model, block, e)
            return None
        except Exception:
            logger.exception('[Pipeline] unexpected failure building %s for %s', ref.model, block)
            return None
        node.matrix = block_rotation(ref.x, ref.y)
        node.user_data['model'] = ref.model
        return node

    def fallback_mesh(self, name: str, block: Block | None = None) -> Mesh:
        """Magenta wireframe cube, slightly smaller than a block."""
        return Mesh(box_geometry(0.8, 0.8, 0.8),
                    self.builder.materials.wireframe(FALLBACK_COLOR),
                    name=name, user_data={'is_placeholder': True, 'block': block})

    def is_block_mesh_cached(self, block_string: str, biome: str | None = None) -> bool:
        return f'{block_string}:{self._biome(biome)}' in self.mesh_cache

    def clear_mesh_cache(self):
        self.mesh_cache.clear()
        self.optimization_cache.clear()

    # --- culling support ---

    def get_block_optimization_data(self, block_string: str, biome: str | None = None,
                                    use_cache: bool = True) -> BlockOptimizationData:
        """Per-face data of the block's primary model for consumers that cull faces themselves."""
        biome = self._biome(biome)
        if not use_cache:
            return self._optimization_data(block_string, biome)
        key = f'opt_{block_string}:{biome}'
        return self.optimization_cache.get_or_compute(
            key, lambda: self._optimization_data(block_string, biome))

    def _optimization_data(self, block_string: str, biome: str) -> BlockOptimizationData:
        block = parse_block_string(block_string)
        refs = self.blockstates.resolve(block)
        if not refs:
            return BlockOptimizationData()
        primary = refs[0]
        model = self.models.get_model(primary.model)
        faces = self.builder.build_face_data(model, block, biome, uvlock=primary.uvlock)
        return BlockOptimizationData(
            is_cube=len(model.elements) == 1 and model.elements[0].is_full_cube,
            has_transparency=faces.has_transparency,
            has_cullable_faces=bool(faces.cullable),
            cullable=faces.cullable,
            non_cullable=faces.non_cullable,
        )

    def get_block_geometry_info(self, block_string: str) -> BlockGeometryInfo:
        """Cheap shape facts that need no geometry."""
        block = parse_block_string(block_string)
        refs = self.blockstates.resolve(block)
        models = [self.models.get_model(ref.model) for ref in refs]
        is_cube = (len(models) == 1 and len(models[0].elements) == 1
                   and models[0].elements[0].is_full_cube)
        has_cullable = any(face.cullface is not None
                           for model in models
                           for element in model.elements
                           for face in element.faces.values())
        return BlockGeometryInfo(is_cube, block.id in KNOWN_TRANSPARENT_BLOCKS, has_cullable)

    # --- atlas ---

    @property
    def atlas(self) -> TextureAtlas | None:
        return self.atlas_cache.peek(_ATLAS_KEY)

    def _active_atlas(self) -> TextureAtlas | None:
        return self.atlas if self.config.use_atlas else None

    def build_atlas(self) -> TextureAtlas:
        """Pack every eligible texture of the current pack set, at most once per pack set."""
        atlas = self.atlas_cache.peek(_ATLAS_KEY)
        if atlas is not None:
            return atlas
        atlas = self.atlas_cache.get_or_compute(_ATLAS_KEY, self._build_atlas)
        # meshes built so far sample individual textures
        self.clear_mesh_cache()
        return atlas

    def _build_atlas(self) -> TextureAtlas:
        atlas = build_pack_atlas(self.packs, self.packer, self.config.atlas_prefixes,
                                 self.config.decode_batch_size, self.executor)
        logger.info('[Pipeline] atlas built: %r', atlas)
        return atlas

    def rebuild_atlas(self) -> TextureAtlas:
        self.atlas_cache.clear()
        return self.build_atlas()

    def get_texture_uv(self, path: str):
        atlas = self.atlas
        return atlas.get_uv(path) if atlas is not None else None

    # --- preloading / bookkeeping ---

    def preload_block_models(self, block_ids: list[str] | None = None) -> int:
        """Resolve every model any blockstate can reference. Returns the number of models loaded."""
        names = block_ids if block_ids is not None else self.blockstates.list_blockstates()
        paths = set()
        for block_id in names:
            block = parse_block_string(block_id)
            if block.liquid is not LiquidKind.NONE:
                paths.update(ref.model for ref in self.blockstates.resolve(block))
                continue
            definition = self.blockstates.get_definition(block.name)
            if definition is None:
                logger.warning('[Pipeline] no blockstate to preload for %s', block_id)
                continue
            for refs in definition.variants.values():
                paths.update(ref.model for ref in refs)
            for rule in definition.multipart:
                paths.update(ref.model for ref in rule.apply)

        loaded = 0
        for _ in self.executor.map(self.models.get_model, sorted(paths)):
            loaded += 1
            if loaded % 50 == 0:
                logger.info('[Pipeline] preloaded %d/%d block models', loaded, len(paths))
        logger.info('[Pipeline] preloaded %d block models for %d blocks', loaded, len(names))
        return loaded

    def referenced_textures(self) -> set[str]:
        return self.models.texture_paths()

    def cache_stats(self) -> dict:
        return {
            'block_meshes': len(self.mesh_cache),
            'models': len(self.models.cache),
            'blockstates': len(self.blockstates.cache),
            'optimization': len(self.optimization_cache),
            'atlas_built': self.atlas is not None,
            'mesh_hits': self.mesh_cache.hits,
            'mesh_misses': self.mesh_cache.misses,
        }

    def invalidate(self, reason: str = 'manual'):
        """Drop every cache. Registered on the pack stack, so pack changes call this."""
        self.blockstates.cache.clear()
        self.models.cache.clear()
        self.mesh_cache.clear()
        self.optimization_cache.clear()
        self.atlas_cache.clear()
        self.tints.clear()
        self.animations.clear()
        logger.info('[Pipeline] caches invalidated (%s)', reason)
