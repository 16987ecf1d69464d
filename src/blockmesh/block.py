"""
Block identity: namespace, name and an ordered property set, parsed from strings like
'minecraft:oak_log[axis=y]'. Also the direction and liquid enums the rest of the
pipeline switches on instead of comparing strings.
"""

from dataclasses import dataclass
from enum import Enum

from blockmesh.settings import DEFAULT_NAMESPACE, LIQUID_BLOCKS


class Direction(Enum):
    DOWN = 'down'
    UP = 'up'
    NORTH = 'north'
    SOUTH = 'south'
    WEST = 'west'
    EAST = 'east'

    @classmethod
    def parse(cls, value) -> 'Direction | None':
        if isinstance(value, Direction):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return None

    @property
    def normal(self) -> tuple[int, int, int]:
        return _NORMALS[self]

    @property
    def opposite(self) -> 'Direction':
        return _OPPOSITES[self]


_NORMALS = {
    Direction.DOWN:  (0, -1, 0),
    Direction.UP:    (0, 1, 0),
    Direction.NORTH: (0, 0, -1),
    Direction.SOUTH: (0, 0, 1),
    Direction.WEST:  (-1, 0, 0),
    Direction.EAST:  (1, 0, 0),
}
_OPPOSITES = {
    Direction.DOWN: Direction.UP,
    Direction.UP: Direction.DOWN,
    Direction.NORTH: Direction.SOUTH,
    Direction.SOUTH: Direction.NORTH,
    Direction.WEST: Direction.EAST,
    Direction.EAST: Direction.WEST,
}


class LiquidKind(Enum):
    NONE = 0
    WATER = 1
    LAVA = 2

    @classmethod
    def classify(cls, name: str) -> 'LiquidKind':
        if name not in LIQUID_BLOCKS:
            return cls.NONE
        return cls.WATER if name.endswith('water') else cls.LAVA


@dataclass(frozen=True, eq=False)
class Block:
    namespace: str
    name: str
    props: tuple = ()

    @classmethod
    def create(cls, name: str, properties: dict | None = None,
               namespace: str = DEFAULT_NAMESPACE) -> 'Block':
        pairs = tuple((str(k), str(v)) for k, v in (properties or {}).items())
        return cls(namespace, name, pairs)

    @property
    def id(self) -> str:
        return f'{self.namespace}:{self.name}'

    @property
    def properties(self) -> dict[str, str]:
        return dict(self.props)

    @property
    def liquid(self) -> LiquidKind:
        if self.namespace != DEFAULT_NAMESPACE:
            return LiquidKind.NONE
        return LiquidKind.classify(self.name)

    @property
    def is_waterlogged(self) -> bool:
        return self.properties.get('waterlogged') == 'true'

    def get(self, key: str, default: str | None = None) -> str | None:
        return self.properties.get(key, default)

    def with_properties(self, **changes) -> 'Block':
        props = self.properties
        props.update({k: str(v) for k, v in changes.items()})
        return Block(self.namespace, self.name, tuple(props.items()))

    def to_block_string(self) -> str:
        if not self.props:
            return self.id
        inner = ','.join(f'{k}={v}' for k, v in self.props)
        return f'{self.id}[{inner}]'

    def __eq__(self, other):
        if not isinstance(other, Block):
            return NotImplemented
        return (self.namespace == other.namespace and self.name == other.name
                and frozenset(self.props) == frozenset(other.props))

    def __hash__(self):
        return hash((self.namespace, self.name, frozenset(self.props)))

    def __str__(self):
        return self.to_block_string()


def _parse_properties(properties_str: str) -> tuple:
    props = {}
    for prop in properties_str.split(','):
        if '=' in prop:
            k, v = prop.split('=', 1)
            k, v = k.strip(), v.strip()
            if k and v:
                props[k] = v
    return tuple(props.items())


def parse_block_string(block_string: str) -> Block:
    """Parse 'ns:name[k=v,...]'. A missing namespace means minecraft."""
    text = block_string.strip()
    props = ()
    bracket = text.find('[')
    if bracket != -1:
        inner = text[bracket + 1:]
        if inner.endswith(']'):
            inner = inner[:-1]
        props = _parse_properties(inner)
        text = text[:bracket]

    if ':' in text:
        namespace, name = text.split(':', 1)
    else:
        namespace, name = DEFAULT_NAMESPACE, text
    return Block(namespace or DEFAULT_NAMESPACE, name, props)


def strip_namespace(ref: str) -> str:
    """'minecraft:block/stone' -> 'block/stone'. Other namespaces are kept."""
    prefix = f'{DEFAULT_NAMESPACE}:'
    if ref.startswith(prefix):
        return ref[len(prefix):]
    return ref
