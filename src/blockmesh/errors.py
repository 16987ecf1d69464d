"""
Failure taxonomy for the block pipeline.

None of these escape the public pipeline operations: each one is raised inside a
component and caught at the boundary where the pipeline can recover (missing
definitions become empty results, broken references become the missing texture,
oversize textures are dropped from the atlas, broken elements are skipped).
"""


class BlockMeshError(Exception):
    """Base class for every recoverable pipeline failure."""


class MalformedDocumentError(BlockMeshError):
    def __init__(self, path: str, reason: str):
        super().__init__(f'{path}: {reason}')
        self.path = path
        self.reason = reason


class UnresolvedReferenceError(BlockMeshError):
    """A '#key' texture chain or a parent chain could not be followed to the end."""

    def __init__(self, reference: str, reason: str):
        super().__init__(f'{reference}: {reason}')
        self.reference = reference
        self.reason = reason


class PackingOverflowError(BlockMeshError):
    def __init__(self, path: str, width: int, height: int):
        super().__init__(f'could not fit texture {path} ({width}x{height})')
        self.path = path
        self.width = width
        self.height = height


class GeometryConstructionError(BlockMeshError):
    pass
