"""
Column store — dense, growable numpy buffers indexed by physical row.

String columns hold string-pool ids, so every buffer is either int64 or
float64. Buffers grow geometrically; `values` is a view of the used prefix.
"""

import numpy as np

from .schema import AttrType

_DTYPES = {
    AttrType.INT: np.int64,
    AttrType.FLT: np.float64,
    AttrType.STR: np.int64,
}


class Column:
    """A dense array with amortised O(1) append."""

    INITIAL_CAPACITY = 16
    GROWTH_FACTOR = 2

    def __init__(self, attr_type, values=None, size=0):
        self.attr_type = attr_type
        self.dtype = _DTYPES[attr_type]
        if values is not None:
            data = np.asarray(values, dtype=self.dtype)
            self._data = data.copy()
            self._size = len(data)
        else:
            self._data = np.zeros(max(size, self.INITIAL_CAPACITY), dtype=self.dtype)
            self._size = size

    def _reserve(self, capacity):
        if capacity <= len(self._data):
            return
        new_cap = max(capacity, len(self._data) * self.GROWTH_FACTOR, self.INITIAL_CAPACITY)
        data = np.zeros(new_cap, dtype=self.dtype)
        data[:self._size] = self._data[:self._size]
        self._data = data

    def append(self, value):
        self._reserve(self._size + 1)
        self._data[self._size] = value
        self._size += 1

    def extend(self, values):
        values = np.asarray(values, dtype=self.dtype)
        n = len(values)
        self._reserve(self._size + n)
        self._data[self._size:self._size + n] = values
        self._size += n

    def resize(self, size):
        """Grow (zero filled) or shrink to exactly `size` entries."""
        self._reserve(size)
        if size > self._size:
            self._data[self._size:size] = 0
        self._size = size

    @property
    def values(self):
        return self._data[:self._size]

    def take(self, row_ids):
        """Values at `row_ids`, in that order, as a new array."""
        return self._data[:self._size][np.asarray(row_ids, dtype=np.int64)]

    def copy(self):
        return Column(self.attr_type, self.values)

    def __getitem__(self, idx):
        return self._data[:self._size][idx]

    def __setitem__(self, idx, value):
        self._data[:self._size][idx] = value

    def __len__(self):
        return self._size

    def __repr__(self):
        return f"Column({self.attr_type.value}, len={self._size})"
