"""
Resolves a block + its properties to the model references its blockstate file selects.

Variants are matched with a fixed fallback chain (exact key, empty key, best partial
match, single property, first variant). Multipart rules contribute one reference per
matching rule, in declaration order. Liquids never touch a blockstate file: their
reference is built straight from the 'level' property.
"""

import logging
import random
from dataclasses import dataclass, field

from blockmesh.block import Block, LiquidKind
from blockmesh.cache import KeyedCache
from blockmesh.resources import load_json

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelReference:
    model: str
    x: float = 0
    y: float = 0
    uvlock: bool = False
    weight: float = 1

    @classmethod
    def from_json(cls, data: dict) -> 'ModelReference':
        return cls(
            model=str(data.get('model', '')),
            x=data.get('x', 0) or 0,
            y=data.get('y', 0) or 0,
            uvlock=bool(data.get('uvlock', False)),
            weight=data.get('weight', 1),
        )


@dataclass
class Condition:
    """A multipart 'when': a flat property map, or an OR / AND over nested conditions."""
    entries: dict = field(default_factory=dict)
    any_of: list = field(default_factory=list)
    all_of: list = field(default_factory=list)

    @classmethod
    def from_json(cls, data: dict) -> 'Condition':
        if 'OR' in data:
            return cls(any_of=[cls.from_json(c) for c in data['OR']])
        if 'AND' in data:
            return cls(all_of=[cls.from_json(c) for c in data['AND']])
        return cls(entries={k: _condition_value(v) for k, v in data.items()})

    def matches(self, properties: dict) -> bool:
        if self.any_of:
            return any(c.matches(properties) for c in self.any_of)
        if self.all_of:
            return all(c.matches(properties) for c in self.all_of)
        for prop, expected in self.entries.items():
            actual = properties.get(prop)
            if actual is None:
                return False
            if '|' in expected:
                if actual not in expected.split('|'):
                    return False
            elif actual != expected:
                return False
        return True


@dataclass
class MultipartRule:
    apply: list
    when: Condition | None = None

    def applies_to(self, properties: dict) -> bool:
        return self.when is None or self.when.matches(properties)


@dataclass
class BlockstateDefinition:
    variants: dict = field(default_factory=dict)    # variant key -> list[ModelReference]
    multipart: list = field(default_factory=list)   # list[MultipartRule]

    @classmethod
    def from_json(cls, data: dict) -> 'BlockstateDefinition':
        variants = {}
        for key, value in (data.get('variants') or {}).items():
            refs = _model_list(value)
            if refs:
                variants[key] = refs
        multipart = []
        for part in data.get('multipart') or []:
            refs = _model_list(part.get('apply'))
            if not refs:
                continue
            when = part.get('when')
            multipart.append(MultipartRule(
                apply=refs,
                when=Condition.from_json(when) if isinstance(when, dict) else None,
            ))
        return cls(variants, multipart)

    @property
    def is_empty(self) -> bool:
        return not self.variants and not self.multipart

    def variant_property_names(self) -> set[str]:
        names = set()
        for key in self.variants:
            if key == '':
                continue
            for name, _ in parse_variant_key(key):
                names.add(name)
        return names


def _condition_value(value) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def _model_list(value) -> list:
    if isinstance(value, dict):
        return [ModelReference.from_json(value)]
    if isinstance(value, list):
        return [ModelReference.from_json(v) for v in value if isinstance(v, dict)]
    return []


def parse_variant_key(key: str) -> list[tuple[str, str]]:
    """Parse 'facing=east,half=bottom' into [('facing', 'east'), ('half', 'bottom')]."""
    pairs = []
    for prop in key.split(','):
        if '=' in prop:
            k, v = prop.split('=', 1)
            pairs.append((k.strip(), v.strip()))
    return pairs


def make_variant_key(properties: dict, names: set[str]) -> str:
    """Sorted, comma-joined 'k=v' for the properties the variants actually use."""
    parts = [f'{k}={v}' for k, v in properties.items() if k in names]
    return ','.join(sorted(parts))


def liquid_model_reference(block: Block) -> ModelReference:
    base = 'block/water' if 'water' in block.name else 'block/lava'
    level_str = block.get('level')
    try:
        level = int(level_str) if level_str else 0
    except ValueError:
        level = 0
    path = base if level == 0 else f'{base}_level_{level}'
    return ModelReference(path, 0, 0, False)


class BlockstateResolver:
    def __init__(self, accessor, rng: random.Random | None = None):
        self.accessor = accessor
        self.rng = rng
        self.cache = KeyedCache('blockstates')

    def get_definition(self, block_name: str) -> BlockstateDefinition | None:
        """Load and cache the blockstate file for a bare block name."""
        bare = block_name.split(':', 1)[-1]
        return self.cache.get_or_compute(bare, lambda: self._load_definition(bare))

    def _load_definition(self, bare: str) -> BlockstateDefinition | None:
        data = load_json(self.accessor, f'blockstates/{bare}.json')
        if data is None:
            return None
        return BlockstateDefinition.from_json(data)

    def list_blockstates(self) -> list[str]:
        names = []
        for path in self.accessor.list_files('blockstates/', '.json'):
            names.append('minecraft:' + path[len('blockstates/'):-len('.json')])
        return names

    def resolve(self, block: Block) -> list[ModelReference]:
        if block.liquid is not LiquidKind.NONE:
            return [liquid_model_reference(block)]

        definition = self.get_definition(block.name)
        if definition is None or definition.is_empty:
            logger.warning('[Blockstates] no blockstate definition found for %s', block.name)
            return []

        properties = block.properties
        refs = []
        if definition.variants:
            chosen = self.match_variant(definition, properties)
            if chosen is not None:
                refs.append(self._pick(chosen))

        for rule in definition.multipart:
            if rule.applies_to(properties):
                refs.append(self._pick(rule.apply))
        return refs

    def match_variant(self, definition: BlockstateDefinition, properties: dict) -> list | None:
        variants = definition.variants
        names = definition.variant_property_names()
        variant_key = make_variant_key(properties, names) if properties else ''

        # exact, then wildcard
        if variant_key in variants:
            return variants[variant_key]
        if '' in variants:
            return variants['']

        # best partial match: no conflicting property, most agreeing ones
        best_key = None
        best_count = -1
        for key in variants:
            if key == '':
                continue
            variant_props = dict(parse_variant_key(key))
            count = 0
            conflict = False
            for name, value in properties.items():
                if name not in variant_props:
                    continue
                if variant_props[name] == value:
                    count += 1
                else:
                    conflict = True
                    break
            if not conflict and count > best_count:
                best_key, best_count = key, count
        if best_key is not None:
            return variants[best_key]

        # single property keys, e.g. 'axis=y'
        for name, value in properties.items():
            single = f'{name}={value}'
            if single in variants:
                return variants[single]

        if variants:
            first = next(iter(variants))
            logger.debug('[Blockstates] falling back to first variant %r', first)
            return variants[first]
        return None

    def _pick(self, refs: list) -> ModelReference:
        """Index 0 unless a seeded RNG was supplied for weighted choice."""
        if self.rng is None or len(refs) == 1:
            return refs[0]
        weights = [max(0.0, float(r.weight)) for r in refs]
        if sum(weights) <= 0:
            return refs[0]
        return self.rng.choices(refs, weights=weights, k=1)[0]
