"""
Memo cache shared by the pipeline's resolvers and builders.

A miss runs the computation once; threads that miss the same key while it is running
wait on the same future instead of recomputing it.
"""

import threading
from concurrent.futures import Future
from typing import Callable

_MISSING = object()


class KeyedCache:
    def __init__(self, name: str = 'cache'):
        self.name = name
        self._values: dict = {}
        self._pending: dict = {}
        self._lock = threading.Lock()
        self._generation = 0
        self.hits = 0
        self.misses = 0

    def get_or_compute(self, key, compute: Callable[[], object]):
        with self._lock:
            value = self._values.get(key, _MISSING)
            if value is not _MISSING:
                self.hits += 1
                return value
            future = self._pending.get(key)
            owner = future is None
            if owner:
                self.misses += 1
                future = Future()
                self._pending[key] = future
            generation = self._generation

        if not owner:
            return future.result()

        try:
            value = compute()
        except BaseException as e:
            with self._lock:
                if self._pending.get(key) is future:
                    del self._pending[key]
            future.set_exception(e)
            raise

        with self._lock:
            if self._pending.get(key) is future:
                del self._pending[key]
            # a value computed before an invalidation must not repopulate the cache
            if generation == self._generation:
                self._values[key] = value
        future.set_result(value)
        return value

    def peek(self, key, default=None):
        with self._lock:
            return self._values.get(key, default)

    def put(self, key, value):
        with self._lock:
            self._values[key] = value

    def invalidate(self, key) -> bool:
        with self._lock:
            return self._values.pop(key, _MISSING) is not _MISSING

    def clear(self):
        with self._lock:
            self._values.clear()
            self._pending.clear()
            self._generation += 1

    def keys(self) -> list:
        with self._lock:
            return list(self._values)

    def __contains__(self, key) -> bool:
        with self._lock:
            return key in self._values

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def __repr__(self):
        return f'KeyedCache({self.name!r}, {len(self)} entries)'
