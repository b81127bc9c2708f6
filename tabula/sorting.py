"""
Sort engine — multi-key row comparison, quicksort and a chunked merge sort.

Rows are compared key by key (most significant first), stopping at the first
key that differs. Strings are compared lexicographically. The sort is not
stable: rows whose keys are all equal may end up in any relative order.
"""

import logging
from functools import partial

from .parallel import map_chunks
from .schema import AttrType

logger = logging.getLogger(__name__)


def sort_keys(table, order_by):
    """Per-column value lists indexed by physical row, ready for compare_rows."""
    keys = []
    for name in order_by:
        attr_type, idx = table.resolve_col(name)
        values = table._column(attr_type, idx).values.tolist()
        if attr_type is AttrType.STR:
            resolve = table.context.pool.resolve
            cache = {}
            for i, key in enumerate(values):
                s = cache.get(key)
                if s is None:
                    s = cache[key] = resolve(key)
                values[i] = s
        keys.append(values)
    return keys


def compare_rows(r1, r2, keys, asc=True):
    """Negative, zero or positive, like strcmp; `asc=False` flips the sign."""
    for values in keys:
        a = values[r1]
        b = values[r2]
        if a < b:
            return -1 if asc else 1
        if a > b:
            return 1 if asc else -1
    return 0


def insertion_sort(v, lo, hi, keys, asc=True):
    """Sort v[lo..hi] (inclusive) in place."""
    for i in range(lo + 1, hi + 1):
        val = v[i]
        j = i - 1
        while j >= lo and compare_rows(v[j], val, keys, asc) > 0:
            v[j + 1] = v[j]
            j -= 1
        v[j + 1] = val


def get_pivot(v, lo, hi, keys, asc=True):
    """Median of the first, middle and last element."""
    mid = (lo + hi) // 2
    a, b, c = v[lo], v[mid], v[hi]
    if compare_rows(a, b, keys, asc) <= 0:
        if compare_rows(b, c, keys, asc) <= 0:
            return b
        return c if compare_rows(a, c, keys, asc) <= 0 else a
    if compare_rows(a, c, keys, asc) <= 0:
        return a
    return c if compare_rows(b, c, keys, asc) <= 0 else b


def partition(v, lo, hi, keys, asc=True):
    """
    Three-way partition of v[lo..hi] around the pivot. Returns (lt, gt):
    v[lt..gt] compare equal to the pivot.
    """
    pivot = get_pivot(v, lo, hi, keys, asc)
    lt, i, gt = lo, lo, hi
    while i <= gt:
        c = compare_rows(v[i], pivot, keys, asc)
        if c < 0:
            v[lt], v[i] = v[i], v[lt]
            lt += 1
            i += 1
        elif c > 0:
            v[gt], v[i] = v[i], v[gt]
            gt -= 1
        else:
            i += 1
    return lt, gt


def quicksort(v, keys, asc=True, threshold=20, lo=0, hi=None):
    """Sort list `v` of row ids in place."""
    if hi is None:
        hi = len(v) - 1
    stack = [(lo, hi)]
    while stack:
        lo, hi = stack.pop()
        if hi - lo + 1 <= threshold:
            if hi > lo:
                insertion_sort(v, lo, hi, keys, asc)
            continue
        lt, gt = partition(v, lo, hi, keys, asc)
        stack.append((lo, lt - 1))
        stack.append((gt + 1, hi))
    return v


def merge(left, right, keys, asc=True):
    """Merge two sorted row-id lists into a new sorted list."""
    out = []
    i = j = 0
    while i < len(left) and j < len(right):
        if compare_rows(right[j], left[i], keys, asc) < 0:
            out.append(right[j])
            j += 1
        else:
            out.append(left[i])
            i += 1
    out.extend(left[i:])
    out.extend(right[j:])
    return out


def _sort_chunk(keys, asc, threshold, chunk):
    chunk = list(chunk)
    return quicksort(chunk, keys, asc, threshold)


def sort_row_ids(table, row_ids, order_by, asc=True, config=None):
    """Return `row_ids` sorted by the columns in `order_by`."""
    keys = sort_keys(table, order_by)
    threshold = config.insertion_sort_threshold if config is not None else 20
    rows = list(row_ids)
    if config is None or not config.parallel:
        return quicksort(rows, keys, asc, threshold)

    runs = map_chunks(partial(_sort_chunk, keys, asc, threshold), rows, config)
    # pairwise merge rounds keep the result independent of worker timing
    while len(runs) > 1:
        merged = [merge(runs[i], runs[i + 1], keys, asc) for i in range(0, len(runs) - 1, 2)]
        if len(runs) % 2:
            merged.append(runs[-1])
        runs = merged
    logger.debug(f"Parallel sort of {len(rows)} rows by {list(order_by)}")
    return runs[0] if runs else []
