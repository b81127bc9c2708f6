"""
Execution context — the string pool and execution settings shared by tables.

Every table built under the same TableContext interns its string values into
one StringPool, so string columns across those tables hold comparable integer
ids. The context also carries the ExecutionConfig that decides whether the
hot paths (integer grouping, ordering, edge materialisation) run chunked on a
thread pool.
"""

import logging
import os
import pickle
import zlib
from dataclasses import dataclass, asdict

from .errors import RangeError

logger = logging.getLogger(__name__)


DEFAULT_CONFIG = {
    "parallel": False,
    "workers": None,  # None -> os.cpu_count()
    "chunks_per_worker": 10,
    "insertion_sort_threshold": 20,
}


@dataclass
class ExecutionConfig:
    """Settings for the optional data-parallel execution mode."""
    parallel: bool = DEFAULT_CONFIG["parallel"]
    workers: int = DEFAULT_CONFIG["workers"]
    chunks_per_worker: int = DEFAULT_CONFIG["chunks_per_worker"]
    insertion_sort_threshold: int = DEFAULT_CONFIG["insertion_sort_threshold"]

    @classmethod
    def from_dict(cls, overrides):
        """Build a config from DEFAULT_CONFIG updated with `overrides`."""
        unknown = set(overrides) - set(DEFAULT_CONFIG)
        if unknown:
            raise ValueError(f"Unknown config keys: {sorted(unknown)}. "
                             f"Valid keys: {list(DEFAULT_CONFIG)}")
        values = dict(DEFAULT_CONFIG)
        values.update(overrides)
        return cls(**values)

    @property
    def num_workers(self):
        return self.workers or os.cpu_count() or 1

    @property
    def num_chunks(self):
        return max(1, self.num_workers * self.chunks_per_worker)

    def to_dict(self):
        return asdict(self)


class StringPool:
    """
    Append-only bidirectional mapping between strings and integer ids.

    Equal strings always map to the same id and ids are never reused, so a
    string column can store ids and compare them for equality directly.
    The pool does no locking; serialise interning across writer threads.
    """

    def __init__(self, values=()):
        self._ids = {}
        self._values = []
        for value in values:
            self.intern(value)

    def intern(self, value):
        """Return the id of `value`, allocating a new one on first sight."""
        key = self._ids.get(value)
        if key is None:
            key = len(self._values)
            self._ids[value] = key
            self._values.append(value)
        return key

    def get_id(self, value):
        """Return the id of `value`, or None if it was never interned."""
        return self._ids.get(value)

    def resolve(self, key):
        if key < 0 or key >= len(self._values):
            raise RangeError(f"String id {key} not in pool of size {len(self._values)}")
        return self._values[key]

    @property
    def values(self):
        return list(self._values)

    def __len__(self):
        return len(self._values)

    def __contains__(self, value):
        return value in self._ids

    def __getstate__(self):
        return {"values": self._values}

    def __setstate__(self, state):
        self._values = list(state["values"])
        self._ids = {value: i for i, value in enumerate(self._values)}

    def __repr__(self):
        return f"StringPool(size={len(self._values)})"


class TableContext:
    """
    Owns the string pool shared by all tables created under it.

    Usage:
        ctx = TableContext()
        t = Table([("animal", str), ("number", int)], ctx)
        ctx.config.parallel = True   # later operations run chunked
    """

    def __init__(self, config=None, pool=None):
        self.pool = pool if pool is not None else StringPool()
        self.config = config if config is not None else ExecutionConfig()

    def intern(self, value):
        return self.pool.intern(value)

    def resolve(self, key):
        return self.pool.resolve(key)

    def save(self, path):
        """Save the pool and config as a zipped pickle."""
        blob = zlib.compress(pickle.dumps({
            "values": self.pool.values,
            "config": self.config.to_dict(),
        }))
        with open(path, "wb") as f:
            f.write(blob)
        logger.info(f"Saved context with {len(self.pool)} strings to {path}")

    @classmethod
    def load(cls, path):
        with open(path, "rb") as f:
            state = pickle.loads(zlib.decompress(f.read()))
        ctx = cls(ExecutionConfig(**state["config"]), StringPool(state["values"]))
        logger.info(f"Loaded context with {len(ctx.pool)} strings from {path}")
        return ctx

    def __repr__(self):
        return f"TableContext(strings={len(self.pool)}, parallel={self.config.parallel})"
