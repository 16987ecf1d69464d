"""Block model to mesh pipeline for Minecraft resource packs."""

from blockmesh.block import Block, Direction, LiquidKind, parse_block_string
from blockmesh.pipeline import BlockPipeline
from blockmesh.resources import DirectoryPack, MemoryPack, PackStack
from blockmesh.settings import PipelineConfig

__all__ = [
    'Block',
    'BlockPipeline',
    'Direction',
    'DirectoryPack',
    'LiquidKind',
    'MemoryPack',
    'PackStack',
    'PipelineConfig',
    'parse_block_string',
]
