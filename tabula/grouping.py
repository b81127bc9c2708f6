"""
Grouping engine — hash partitioning of row ids by one or more columns.

A group key is a pair (int part, float part): integer columns and the pool
ids of string columns go into the int part, float columns into the float
part, so keys of any column mix compare uniformly. Partitions are plain
dicts, whose insertion order gives "first encounter" group order.
"""

import logging
from dataclasses import dataclass, field
from functools import partial

from .parallel import map_chunks
from .schema import AttrType

logger = logging.getLogger(__name__)


@dataclass
class GroupStatement:
    """A cached grouping of a table by `group_by` and its partition."""
    group_by: tuple
    ordered: bool
    types: tuple
    key_to_rows: dict
    id_to_key: dict
    version: int
    names: set = field(default_factory=set)

    @property
    def num_groups(self):
        return len(self.id_to_key)

    def group_ids(self):
        """Mapping group key -> group id."""
        return {key: gid for gid, key in self.id_to_key.items()}

    def rows(self, gid):
        return list(self.key_to_rows[self.id_to_key[gid]])

    def decode_key(self, key, pool):
        """Key values in group_by order, with strings resolved."""
        ints = iter(key[0])
        flts = iter(key[1])
        values = []
        for attr_type in self.types:
            if attr_type is AttrType.FLT:
                values.append(next(flts))
            elif attr_type is AttrType.STR:
                values.append(pool.resolve(next(ints)))
            else:
                values.append(next(ints))
        return tuple(values)


def key_columns(table, group_by):
    """Resolve `group_by` into (types, int-part columns, float-part columns)."""
    types, int_cols, flt_cols = [], [], []
    for name in group_by:
        attr_type, idx = table.resolve_col(name)
        types.append(attr_type)
        col = table._column(attr_type, idx)
        if attr_type is AttrType.FLT:
            flt_cols.append(col)
        else:
            int_cols.append(col)
    return tuple(types), int_cols, flt_cols


def _group_chunk(int_cols, flt_cols, rows):
    ints = [col.take(rows).tolist() for col in int_cols]
    flts = [col.take(rows).tolist() for col in flt_cols]
    grouping = {}
    for i, row in enumerate(rows):
        key = (tuple(c[i] for c in ints), tuple(c[i] for c in flts))
        bucket = grouping.get(key)
        if bucket is None:
            grouping[key] = [row]
        else:
            bucket.append(row)
    return grouping


def group_rows(table, group_by, row_ids=None, config=None):
    """
    Partition valid rows (all, or the valid ones among `row_ids`) by the
    values of `group_by`. Returns {key: [row ids in logical order]}.
    """
    _, int_cols, flt_cols = key_columns(table, group_by)
    if row_ids is None:
        rows = table.row_ids()
    else:
        rows = [int(r) for r in row_ids if table.is_row_valid(r)]

    if config is not None and config.parallel and len(int_cols) == 1 and not flt_cols:
        partials = map_chunks(partial(_group_chunk, int_cols, flt_cols), rows, config)
        merged = {}
        for part in partials:
            for key, ids in part.items():
                bucket = merged.get(key)
                if bucket is None:
                    merged[key] = ids
                else:
                    bucket.extend(ids)
        return merged
    return _group_chunk(int_cols, flt_cols, rows)


def build_statement(table, group_by, ordered, config=None):
    """Group the table and number the groups (ascending key order if `ordered`)."""
    group_by = tuple(group_by)
    types, _, _ = key_columns(table, group_by)
    grouping = group_rows(table, group_by, config=config)
    keys = sorted(grouping) if ordered else list(grouping)
    id_to_key = {gid: key for gid, key in enumerate(keys)}
    logger.debug(f"Grouped {table.num_valid_rows} rows by {list(group_by)} "
                 f"into {len(keys)} groups (ordered={ordered})")
    return GroupStatement(group_by, ordered, types, grouping, id_to_key, table.version)
