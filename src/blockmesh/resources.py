"""
Prioritized resource lookup across a stack of resource packs.

Paths are relative to 'assets/minecraft/' (e.g. 'blockstates/oak_log.json',
'models/block/cube.json', 'textures/block/stone.png'). The first pack in the stack
that has a file wins.
"""

import json
import logging
import os
import threading
from typing import Callable, Protocol

from blockmesh.errors import MalformedDocumentError

logger = logging.getLogger(__name__)

ASSETS_SUBDIR = os.path.join('assets', 'minecraft')


class ResourcePack(Protocol):
    name: str

    def read(self, path: str) -> bytes | None: ...

    def list(self, prefix: str = '', suffix: str = '') -> list[str]: ...


class DirectoryPack:
    """An unpacked resource pack on disk."""

    def __init__(self, root: str, name: str | None = None):
        self.root = root
        self.name = name or os.path.basename(os.path.normpath(root))
        self.assets_dir = os.path.join(root, ASSETS_SUBDIR)

    def _full_path(self, path: str) -> str:
        return os.path.join(self.assets_dir, *path.split('/'))

    def read(self, path: str) -> bytes | None:
        full = self._full_path(path)
        if not os.path.isfile(full):
            return None
        with open(full, 'rb') as f:
            return f.read()

    def list(self, prefix: str = '', suffix: str = '') -> list[str]:
        found = []
        for dirpath, _, filenames in os.walk(self.assets_dir):
            rel_dir = os.path.relpath(dirpath, self.assets_dir)
            for filename in filenames:
                rel = filename if rel_dir == '.' else f'{rel_dir}/{filename}'
                rel = rel.replace(os.sep, '/')
                if rel.startswith(prefix) and rel.endswith(suffix):
                    found.append(rel)
        return sorted(found)

    def __repr__(self):
        return f'DirectoryPack({self.root!r})'


class MemoryPack:
    """A resource pack held in a dict of path -> bytes/str."""

    def __init__(self, name: str, files: dict | None = None):
        self.name = name
        self.files: dict[str, bytes] = {}
        for path, data in (files or {}).items():
            self.put(path, data)

    def put(self, path: str, data):
        if isinstance(data, (dict, list)):
            data = json.dumps(data)
        if isinstance(data, str):
            data = data.encode('utf-8')
        self.files[path] = data

    def read(self, path: str) -> bytes | None:
        return self.files.get(path)

    def list(self, prefix: str = '', suffix: str = '') -> list[str]:
        return sorted(p for p in self.files if p.startswith(prefix) and p.endswith(suffix))

    def __repr__(self):
        return f'MemoryPack({self.name!r}, {len(self.files)} files)'


class PackStack:
    """Ordered resource packs, highest priority first."""

    def __init__(self, packs: list[ResourcePack] | None = None):
        self._packs: list[ResourcePack] = list(packs or [])
        self._string_cache: dict[str, str | None] = {}
        self._listeners: list[Callable[[str], None]] = []
        self._lock = threading.Lock()

    # --- pack set management ---

    @property
    def packs(self) -> list:
        return list(self._packs)

    def add_pack(self, pack, priority: int | None = None):
        """Insert a pack. priority is its index in the stack; None puts it on top."""
        with self._lock:
            if priority is None:
                self._packs.insert(0, pack)
            else:
                self._packs.insert(max(0, min(priority, len(self._packs))), pack)
        self._changed(f'added {pack.name}')

    def remove_pack(self, name: str) -> bool:
        with self._lock:
            before = len(self._packs)
            self._packs = [p for p in self._packs if p.name != name]
            removed = len(self._packs) != before
        if removed:
            self._changed(f'removed {name}')
        return removed

    def move_pack(self, name: str, index: int) -> bool:
        with self._lock:
            pack = next((p for p in self._packs if p.name == name), None)
            if pack is None:
                return False
            self._packs.remove(pack)
            self._packs.insert(max(0, min(index, len(self._packs))), pack)
        self._changed(f'moved {name} to {index}')
        return True

    def subscribe(self, callback: Callable[[str], None]):
        """Register a callback fired with a reason string whenever the pack set changes."""
        self._listeners.append(callback)

    def unsubscribe(self, callback: Callable[[str], None]) -> bool:
        try:
            self._listeners.remove(callback)
        except ValueError:
            return False
        return True

    def _changed(self, reason: str):
        self._string_cache.clear()
        logger.info('[Packs] %s (%d active)', reason, len(self._packs))
        for callback in list(self._listeners):
            callback(reason)

    # --- lookup ---

    def get_bytes(self, path: str) -> bytes | None:
        for pack in self._packs:
            try:
                data = pack.read(path)
            except OSError as e:
                logger.warning('[Packs] error reading %s from %s: %s', path, pack.name, e)
                continue
            if data is not None:
                return data
        return None

    def get_string(self, path: str) -> str | None:
        if path in self._string_cache:
            return self._string_cache[path]
        data = self.get_bytes(path)
        text = None
        if data is not None:
            try:
                text = data.decode('utf-8-sig')
            except UnicodeDecodeError as e:
                logger.warning('[Packs] %s is not valid UTF-8: %s', path, e)
        self._string_cache[path] = text
        return text

    def source_of(self, path: str) -> str | None:
        """Name of the pack that provides path."""
        for pack in self._packs:
            if pack.read(path) is not None:
                return pack.name
        return None

    def list_files(self, prefix: str = '', suffix: str = '') -> list[str]:
        seen = set()
        result = []
        for pack in self._packs:
            for path in pack.list(prefix, suffix):
                if path not in seen:
                    seen.add(path)
                    result.append(path)
        return sorted(result)


def parse_json(text: str, path: str):
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedDocumentError(path, str(e)) from e


def load_json(accessor, path: str) -> dict | None:
    """Load a JSON document through the accessor. Missing or malformed documents give None."""
    text = accessor.get_string(path)
    if text is None:
        return None
    try:
        data = parse_json(text, path)
    except MalformedDocumentError as e:
        logger.error('[Packs] malformed JSON in %s', e)
        return None
    if not isinstance(data, dict):
        logger.error('[Packs] expected a JSON object in %s', path)
        return None
    return data
