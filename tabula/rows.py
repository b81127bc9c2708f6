"""
Row chain and row iterators.

The chain is an arena of slots, one per physical row. Each slot stores the
next and previous valid slot in logical order, LAST at either end of the
chain, or INVALID once the row has been soft-deleted. Removing a row only
relinks its neighbours, so every other physical row id stays valid until
the table is defragmented.
"""

import numpy as np

from .columns import Column
from .errors import EmptyTableError, RangeError
from .schema import AttrType

LAST = -1
INVALID = -2


class RowChain:
    """Logical ordering and soft-delete linkage over physical row slots."""

    def __init__(self):
        self.next = Column(AttrType.INT)
        self.prev = Column(AttrType.INT)
        self.first_valid = LAST
        self.last_valid = LAST
        self.num_rows = 0
        self.num_valid = 0

    @classmethod
    def dense(cls, num_rows):
        """A chain over `num_rows` valid rows in physical order."""
        chain = cls()
        chain.reset(num_rows)
        return chain

    def reset(self, num_rows):
        idx = np.arange(num_rows, dtype=np.int64)
        nxt = idx + 1
        prv = idx - 1
        if num_rows:
            nxt[-1] = LAST
            prv[0] = LAST
        self.next = Column(AttrType.INT, nxt)
        self.prev = Column(AttrType.INT, prv)
        self.num_rows = num_rows
        self.num_valid = num_rows
        self.first_valid = 0 if num_rows else LAST
        self.last_valid = num_rows - 1 if num_rows else LAST

    def append(self):
        """Allocate the next physical slot and link it as the last valid row."""
        idx = self.num_rows
        self.next.append(LAST)
        self.prev.append(self.last_valid)
        if self.last_valid == LAST:
            self.first_valid = idx
        else:
            self.next[self.last_valid] = idx
        self.last_valid = idx
        self.num_rows += 1
        self.num_valid += 1
        return idx

    def is_valid(self, idx):
        return 0 <= idx < self.num_rows and self.next[idx] != INVALID

    def check_valid(self, idx):
        if not self.is_valid(idx):
            raise RangeError(f"Row {idx} is not a valid row "
                             f"(rows={self.num_rows}, valid={self.num_valid})")

    def remove(self, idx):
        """Soft-delete row `idx` in O(1)."""
        self.check_valid(idx)
        prv = int(self.prev[idx])
        nxt = int(self.next[idx])
        if prv == LAST:
            self.first_valid = nxt
        else:
            self.next[prv] = nxt
        if nxt == LAST:
            self.last_valid = prv
        else:
            self.prev[nxt] = prv
        self.next[idx] = INVALID
        self.prev[idx] = INVALID
        self.num_valid -= 1

    def first_row(self):
        if self.first_valid == LAST:
            raise EmptyTableError("Table has no valid rows")
        return self.first_valid

    def relink(self, order):
        """Rewire the chain so that the valid rows follow `order`."""
        order = np.asarray(order, dtype=np.int64)
        if len(order) != self.num_valid:
            raise RangeError(f"Ordering covers {len(order)} rows, "
                             f"table has {self.num_valid} valid rows")
        if not len(order):
            return
        nxt = self.next.values
        prv = self.prev.values
        nxt[order[:-1]] = order[1:]
        nxt[order[-1]] = LAST
        prv[order[1:]] = order[:-1]
        prv[order[0]] = LAST
        self.first_valid = int(order[0])
        self.last_valid = int(order[-1])

    def valid_mask(self):
        return self.next.values != INVALID

    def ids(self):
        return list(self)

    def copy(self):
        chain = RowChain()
        chain.next = self.next.copy()
        chain.prev = self.prev.copy()
        chain.first_valid = self.first_valid
        chain.last_valid = self.last_valid
        chain.num_rows = self.num_rows
        chain.num_valid = self.num_valid
        return chain

    def __iter__(self):
        cur = self.first_valid
        nxt = self.next
        while cur >= 0:
            yield cur
            cur = int(nxt[cur])

    def __len__(self):
        return self.num_valid

    def __repr__(self):
        return f"RowChain(rows={self.num_rows}, valid={self.num_valid})"


class RowIterator:
    """
    Forward iterator over the valid rows of a table, in logical order.

    Each step yields the iterator itself, positioned on the row, so the
    typed accessors read the current row:

        for it in table.iter_rows():
            print(it.row_idx, it.get_str_attr("animal"))
    """

    def __init__(self, table):
        self._table = table
        self._chain = table._chain
        self._curr = None
        self._done = False

    def __iter__(self):
        return self

    def __next__(self):
        if self._done:
            raise StopIteration
        if self._curr is None:
            nxt = self._chain.first_valid
        else:
            nxt = int(self._chain.next[self._curr])
        if nxt < 0:
            self._done = True
            raise StopIteration
        self._curr = nxt
        return self

    @property
    def row_idx(self):
        return self._curr

    def get_int_attr(self, col):
        return self._table.get_int_val(col, self._curr)

    def get_flt_attr(self, col):
        return self._table.get_flt_val(col, self._curr)

    def get_str_attr(self, col):
        return self._table.get_str_val(col, self._curr)

    def get_str_map(self, col):
        """Pool id of the string value in `col` for the current row."""
        return self._table.get_str_map(col, self._curr)

    def get_attr(self, col):
        return self._table.get_val(col, self._curr)

    def compare_atomic_const(self, col, value, comp):
        from .predicate import compare
        return compare(self._table.get_val(col, self._curr), value, comp)


class RowIteratorWithRemove:
    """
    Iterator whose cursor trails one row behind the row being examined.

    Only the row immediately ahead of the cursor can be removed, which keeps
    the traversal correct: no valid row is skipped or visited twice.

        it = RowIteratorWithRemove(table)
        while it.has_next():
            if it.get_next_int_attr("n") < 0:
                it.remove_next()
            else:
                it.advance()
    """

    def __init__(self, table):
        self._table = table
        self._chain = table._chain
        self._curr = None

    @property
    def is_first(self):
        return self._curr is None

    @property
    def row_idx(self):
        return self._curr

    @property
    def next_row_idx(self):
        if self._curr is None:
            return self._chain.first_valid
        return int(self._chain.next[self._curr])

    def has_next(self):
        return self.next_row_idx >= 0

    def advance(self):
        nxt = self.next_row_idx
        if nxt < 0:
            raise StopIteration
        self._curr = nxt

    def remove_next(self):
        nxt = self.next_row_idx
        if nxt < 0:
            raise RangeError("No row ahead of the cursor to remove")
        self._table.remove_row(nxt)

    def get_next_int_attr(self, col):
        return self._table.get_int_val(col, self.next_row_idx)

    def get_next_flt_attr(self, col):
        return self._table.get_flt_val(col, self.next_row_idx)

    def get_next_str_attr(self, col):
        return self._table.get_str_val(col, self.next_row_idx)

    def get_next_attr(self, col):
        return self._table.get_val(col, self.next_row_idx)

    def __iter__(self):
        # the caller may call remove_next() between steps
        while self.has_next():
            nxt = self.next_row_idx
            yield nxt
            if self.next_row_idx == nxt:
                self._curr = nxt
