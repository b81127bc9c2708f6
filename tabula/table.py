"""
Table — column-oriented in-memory table with soft deletes.

Each declared column is a dense numpy buffer indexed by physical row. Rows
are threaded into a logical order by a RowChain; deleting a row only unlinks
it, so physical row ids held elsewhere stay meaningful until defrag().
String columns store ids from the shared string pool of the table's context.

Usage:
    ctx = TableContext()
    t = Table([("animal", str), ("location", str), ("number", int)], ctx)
    t.extend([("Lion", "Africa", 1), ("Koala", "Australia", 1)])
    t.group(["location"], "loc_group")
    joined = t.join("location", other, "location")

Tables are plain Python objects: every reference sees every mutation, and
copy() is the only way to get an independent table (it still shares the
string pool).
"""

import copy
import logging

import numpy as np

from .aggregation import (
    ArithOp,
    aggregate_vector,
    arith,
    result_type,
    to_policy,
)
from .columns import Column
from .context import TableContext
from .errors import (
    EmptyTableError,
    IncompatibleSchemaError,
    RangeError,
    SchemaError,
)
from .grouping import build_statement, group_rows
from .metrics import SimType, get_metric
from .parallel import partition_ranges
from .predicate import Predicate, col_pred, const_pred
from .rows import RowChain, RowIterator, RowIteratorWithRemove
from .schema import (
    AttrType,
    normalize_col_name,
    strip_ordinal,
    to_attr_type,
    with_ordinal,
)
from .sorting import sort_row_ids

logger = logging.getLogger(__name__)


def _remap_str_ids(ids, src_pool, dst_context):
    """Translate string ids from `src_pool` into `dst_context`'s pool."""
    if src_pool is dst_context.pool:
        return ids
    resolve = src_pool.resolve
    return np.array([dst_context.intern(resolve(i)) for i in ids.tolist()], dtype=np.int64)


def _free_ordinal(name, ordinal, used):
    """First of name-<ordinal>, name-<ordinal+1>, ... not in `used`."""
    for k in range(ordinal, 10):
        candidate = with_ordinal(name, k)
        if candidate not in used:
            return candidate
    raise SchemaError(f"No free ordinal left for column {strip_ordinal(name)!r}")


class Table:
    """
    Relational table with columnar storage.

    schema: list of (column_name, type) pairs; type is an AttrType or one of
            int, float, str
    context: TableContext whose string pool and execution config the table
             uses (a fresh one if omitted)
    """

    def __init__(self, schema=(), context=None):
        self.context = context if context is not None else TableContext()
        self._schema = []
        self._col_map = {}
        self._int_cols = []
        self._flt_cols = []
        self._str_cols = []
        self._chain = RowChain()
        self._group_stmts = {}
        self._group_stmt_names = {}
        self._id_col_name = ""
        self._row_id_map = {}
        self._perm_of = {}
        self._next_perm_id = 0
        self._ids_initialized = False
        self._version = 0
        for name, col_type in schema:
            self.add_col(name, col_type)

    # ── Schema ──────────────────────────────────────────────────────────

    @property
    def schema(self):
        return list(self._schema)

    @property
    def columns(self):
        return [name for name, _ in self._schema]

    @property
    def num_rows(self):
        """Total physical rows, valid and deleted."""
        return self._chain.num_rows

    @property
    def num_valid_rows(self):
        return self._chain.num_valid

    @property
    def version(self):
        """Bumped whenever the row set, row order or stored values change."""
        return self._version

    def _touch(self):
        self._version += 1

    def _cols_of(self, attr_type):
        if attr_type is AttrType.INT:
            return self._int_cols
        if attr_type is AttrType.FLT:
            return self._flt_cols
        return self._str_cols

    def _column(self, attr_type, idx):
        return self._cols_of(attr_type)[idx]

    def is_col_name(self, name):
        return normalize_col_name(name) in self._col_map

    def resolve_col(self, name):
        """Return (AttrType, index among columns of that type) for `name`."""
        entry = self._col_map.get(normalize_col_name(name))
        if entry is None:
            raise SchemaError(f"{name}: no such column (columns: {self.columns})")
        return entry

    def get_col_type(self, name):
        return self.resolve_col(name)[0]

    def _col(self, name):
        attr_type, idx = self.resolve_col(name)
        return attr_type, self._column(attr_type, idx)

    def add_col(self, name, col_type):
        """Declare a new column; existing rows get the type's zero value."""
        attr_type = to_attr_type(col_type)
        stored = normalize_col_name(name)
        if stored in self._col_map:
            raise SchemaError(f"{name}: column already exists")
        col = Column(attr_type, size=self.num_rows)
        if attr_type is AttrType.STR and self.num_rows:
            col.values[:] = self.context.intern("")
        cols = self._cols_of(attr_type)
        cols.append(col)
        self._col_map[stored] = (attr_type, len(cols) - 1)
        self._schema.append((stored, attr_type))
        return stored

    def _rebuild_col_map(self, columns_by_name):
        """Re-create typed column lists following the current schema order."""
        self._int_cols, self._flt_cols, self._str_cols = [], [], []
        self._col_map = {}
        for name, attr_type in self._schema:
            cols = self._cols_of(attr_type)
            cols.append(columns_by_name[name])
            self._col_map[name] = (attr_type, len(cols) - 1)

    def _columns_by_name(self):
        return {name: self._column(*self._col_map[name]) for name, _ in self._schema}

    def rename(self, column, new_name):
        attr_type, idx = self.resolve_col(column)
        old = normalize_col_name(column)
        new = normalize_col_name(new_name)
        if new in self._col_map:
            raise SchemaError(f"{new_name}: column already exists")
        self._schema = [(new if n == old else n, t) for n, t in self._schema]
        del self._col_map[old]
        self._col_map[new] = (attr_type, idx)
        if self._id_col_name == old:
            self._id_col_name = new
        self._group_stmts.clear()
        self._group_stmt_names = {
            name: (tuple(new if c == old else c for c in group_by), ordered)
            for name, (group_by, ordered) in self._group_stmt_names.items()
        }

    def project_in_place(self, cols):
        """Keep only the columns in `cols`, in that order."""
        keep = [normalize_col_name(c) for c in cols]
        for c in cols:
            self.resolve_col(c)
        by_name = self._columns_by_name()
        types = dict(self._schema)
        self._schema = [(name, types[name]) for name in keep]
        self._rebuild_col_map(by_name)
        if self._id_col_name and self._id_col_name not in self._col_map:
            self._id_col_name = ""
        self._group_stmts.clear()
        self._group_stmt_names = {
            name: entry for name, entry in self._group_stmt_names.items()
            if name in self._col_map and all(c in self._col_map for c in entry[0])
        }

    def project(self, cols):
        """New table with only the columns in `cols`, valid rows in logical order."""
        for c in cols:
            self.resolve_col(c)
        rows = self.row_ids()
        schema = [(normalize_col_name(c), self.get_col_type(c)) for c in cols]
        arrays = [self._col(c)[1].take(rows) for c in cols]
        return Table._build(schema, self.context, arrays)

    # ── Values ──────────────────────────────────────────────────────────

    def _check_row(self, row):
        if not 0 <= row < self.num_rows:
            raise RangeError(f"Row {row} out of range [0, {self.num_rows})")

    def _typed_col(self, name, expected):
        attr_type, col = self._col(name)
        if attr_type is not expected:
            raise SchemaError(f"{name} is a {attr_type.value} column, not {expected.value}")
        return col

    def get_int_val(self, col, row):
        self._check_row(row)
        return int(self._typed_col(col, AttrType.INT)[row])

    def get_flt_val(self, col, row):
        self._check_row(row)
        return float(self._typed_col(col, AttrType.FLT)[row])

    def get_str_val(self, col, row):
        self._check_row(row)
        return self.context.resolve(int(self._typed_col(col, AttrType.STR)[row]))

    def get_str_map(self, col, row):
        """Pool id stored in string column `col` at `row`."""
        self._check_row(row)
        return int(self._typed_col(col, AttrType.STR)[row])

    def get_val(self, col, row):
        attr_type = self.get_col_type(col)
        if attr_type is AttrType.INT:
            return self.get_int_val(col, row)
        if attr_type is AttrType.FLT:
            return self.get_flt_val(col, row)
        return self.get_str_val(col, row)

    def set_val(self, col, row, value):
        self._check_row(row)
        attr_type, column = self._col(col)
        column[row] = self._coerce(attr_type, value, col)
        self._touch()

    def _coerce(self, attr_type, value, col=""):
        if attr_type is AttrType.STR:
            if not isinstance(value, str):
                raise SchemaError(f"{col}: expected str, got {value!r}")
            return self.context.intern(value)
        if isinstance(value, (str, bytes)):
            raise SchemaError(f"{col}: expected {attr_type.value}, got {value!r}")
        if attr_type is AttrType.INT:
            if isinstance(value, float) and not value.is_integer():
                raise SchemaError(f"{col}: expected int, got {value!r}")
            return int(value)
        return float(value)

    def _decode(self, attr_type, values):
        """Python values for a numpy slice of a column of `attr_type`."""
        values = values.tolist()
        if attr_type is AttrType.STR:
            resolve = self.context.resolve
            return [resolve(v) for v in values]
        return values

    def read_col(self, name):
        """Values of column `name` for valid rows, in logical order."""
        attr_type, col = self._col(name)
        return self._decode(attr_type, col.take(self.row_ids()))

    def store_col(self, name, values, col_type):
        """Add a column from a full list of per-physical-row values."""
        attr_type = to_attr_type(col_type)
        if len(values) != self.num_rows:
            raise RangeError(f"{name}: got {len(values)} values for {self.num_rows} rows")
        if attr_type is AttrType.STR:
            arr = np.array([self._coerce(attr_type, v, name) for v in values], dtype=np.int64)
        else:
            arr = np.asarray(values, dtype=np.float64 if attr_type is AttrType.FLT else np.int64)
        self.add_col(name, attr_type)
        self._col(name)[1].values[:] = arr

    def _write_col(self, name, attr_type, arr):
        """Write `arr` (one entry per physical row) into column `name`, adding it if new."""
        if self.is_col_name(name):
            existing = self.get_col_type(name)
            if existing is not attr_type:
                raise IncompatibleSchemaError(
                    f"{name} is a {existing.value} column, result is {attr_type.value}")
            self._col(name)[1].values[:] = arr
            self._touch()
        else:
            self.add_col(name, attr_type)
            self._col(name)[1].values[:] = arr

    # ── Rows ────────────────────────────────────────────────────────────

    def _row_values(self, row):
        if isinstance(row, dict):
            given = {normalize_col_name(k): v for k, v in row.items()}
            unknown = set(given) - set(self._col_map)
            if unknown:
                raise SchemaError(f"Unknown columns: {sorted(unknown)}")
            missing = [name for name, _ in self._schema if name not in given]
            if missing:
                raise SchemaError(f"Missing values for columns: {missing}")
            return [given[name] for name, _ in self._schema]
        row = list(row)
        if len(row) != len(self._schema):
            raise SchemaError(f"Row has {len(row)} values, schema has {len(self._schema)} columns")
        return row

    def append(self, row):
        """Append one row (dict keyed by column name, or values in schema order)."""
        values = self._row_values(row)
        coerced = [self._coerce(t, v, n) for (n, t), v in zip(self._schema, values)]
        idx = self._chain.append()
        for (name, attr_type), value in zip(self._schema, coerced):
            self._column(*self._col_map[name]).append(value)
        self._register_new_row(idx)
        self._touch()
        return idx

    def extend(self, rows):
        """Append multiple rows; returns their physical ids."""
        return [self.append(row) for row in rows]

    def add_row_from(self, other, row):
        """Append row `row` of `other`, a table with matching column types."""
        self._check_compatible(other)
        other._check_row(row)
        self._append_from(other, [row])

    def _register_new_row(self, idx):
        if not self._ids_initialized:
            return
        if self._id_col_name:
            perm = self.get_int_val(self._id_col_name, idx)
        else:
            perm = self._next_perm_id
        self._next_perm_id = max(self._next_perm_id, perm + 1)
        self._row_id_map[perm] = idx
        self._perm_of[idx] = perm

    def _set_id_map(self, id_map):
        """Install a permanent-id -> physical-row map and its inverse."""
        self._row_id_map = id_map
        self._perm_of = {phys: perm for perm, phys in id_map.items()}
        if id_map:
            self._next_perm_id = max(self._next_perm_id, max(id_map) + 1)

    def remove_row(self, row):
        """Soft-delete physical row `row`."""
        self._chain.remove(int(row))
        perm = self._perm_of.pop(int(row), None)
        if perm is not None:
            self._row_id_map.pop(perm, None)
        self._touch()

    def remove_first_row(self):
        self.remove_row(self._chain.first_row())

    def is_row_valid(self, row):
        return self._chain.is_valid(row)

    @property
    def first_valid_row(self):
        return self._chain.first_row()

    @property
    def last_valid_row(self):
        if self._chain.last_valid < 0:
            raise EmptyTableError("Table has no valid rows")
        return self._chain.last_valid

    def row_ids(self):
        """Physical ids of valid rows, in logical order."""
        return self._chain.ids()

    def iter_rows(self):
        return RowIterator(self)

    def iter_rows_with_remove(self):
        return RowIteratorWithRemove(self)

    def get_row(self, row):
        self._check_row(row)
        return {name: self.get_val(name, row) for name, _ in self._schema}

    def keep_sorted_rows(self, keep):
        """Remove every valid row whose id is not in `keep`."""
        keep = set(int(r) for r in keep)
        it = RowIteratorWithRemove(self)
        while it.has_next():
            if it.next_row_idx in keep:
                it.advance()
            else:
                it.remove_next()

    def select_first_n_rows(self, n):
        """Keep the first `n` rows in logical order, remove the rest."""
        self.keep_sorted_rows(self.row_ids()[:n])

    def defrag(self):
        """
        Compact every column to the valid rows in logical order. All physical
        row ids held before the call become invalid.
        """
        order = self.row_ids()
        position = {old: new for new, old in enumerate(order)}
        for cols in (self._int_cols, self._flt_cols, self._str_cols):
            for i, col in enumerate(cols):
                cols[i] = Column(col.attr_type, col.take(order))
        self._chain = RowChain.dense(len(order))
        if self._ids_initialized:
            if self._id_col_name:
                self.reindex()
            else:
                self._set_id_map({perm: position[phys]
                                  for perm, phys in self._row_id_map.items() if phys in position})
        self._group_stmts.clear()
        self._touch()
        logger.debug(f"Defragmented table to {len(order)} rows")

    def init_ids(self):
        """Give every valid row a permanent id equal to its current physical index."""
        self._ids_initialized = True
        self._id_col_name = ""
        self._next_perm_id = self.num_rows
        self._set_id_map({row: row for row in self.row_ids()})

    def add_id_column(self, name):
        """Add an int column of consecutive permanent ids in logical order."""
        ids = np.zeros(self.num_rows, dtype=np.int64)
        rows = self.row_ids()
        ids[rows] = np.arange(len(rows), dtype=np.int64)
        self.store_col(name, ids, AttrType.INT)
        self._id_col_name = normalize_col_name(name)
        self._ids_initialized = True
        self.reindex()

    def reindex(self):
        """Rebuild the permanent-id -> physical-row map."""
        self._ids_initialized = True
        if self._id_col_name:
            col = self._typed_col(self._id_col_name, AttrType.INT)
            rows = self.row_ids()
            self._set_id_map(dict(zip(col.take(rows).tolist(), rows)))
        else:
            self._next_perm_id = self.num_rows
            self._set_id_map({row: row for row in self.row_ids()})

    @property
    def id_col_name(self):
        return self._id_col_name

    @property
    def row_id_map(self):
        return dict(self._row_id_map)

    def get_row_idx(self, perm_id):
        """Current physical row of permanent id `perm_id`."""
        try:
            return self._row_id_map[perm_id]
        except KeyError:
            raise RangeError(f"No row with permanent id {perm_id}") from None

    def get_partition_ranges(self, num_partitions):
        """Split the valid rows into contiguous (start, end) ranges of logical positions."""
        return partition_ranges(self.num_valid_rows, num_partitions)

    # ── Building new tables ─────────────────────────────────────────────

    @classmethod
    def _build(cls, schema, context, arrays):
        """Table with `schema` whose columns are `arrays` (schema order, all rows valid)."""
        t = cls(schema, context)
        n = len(arrays[0]) if arrays else 0
        for (name, attr_type), arr in zip(t._schema, arrays):
            _, idx = t._col_map[name]
            t._cols_of(attr_type)[idx] = Column(attr_type, arr)
        t._chain = RowChain.dense(n)
        return t

    def _take_all(self, rows, context=None):
        """Arrays of every column at `rows`, string ids remapped into `context`."""
        context = context if context is not None else self.context
        arrays = []
        for name, attr_type in self._schema:
            arr = self._column(*self._col_map[name]).take(rows)
            if attr_type is AttrType.STR:
                arr = _remap_str_ids(arr, self.context.pool, context)
            arrays.append(arr)
        return arrays

    def _stack(self, parts):
        """New table with this schema holding the rows of each (table, rows) part."""
        per_part = [table._take_all(rows, self.context) for table, rows in parts]
        if per_part:
            arrays = [np.concatenate(cols) for cols in zip(*per_part)]
        else:
            arrays = [np.zeros(0) for _ in self._schema]
        return Table._build(self._schema, self.context, arrays)

    def _append_from(self, other, rows):
        """Append rows of `other` (compatible schema) to this table."""
        arrays = other._take_all(rows, self.context)
        for (name, _), arr in zip(self._schema, arrays):
            self._column(*self._col_map[name]).extend(arr)
        for _ in rows:
            idx = self._chain.append()
            self._register_new_row(idx)
        self._touch()

    @classmethod
    def from_rows(cls, table, row_ids):
        """New table with `table`'s schema holding the valid rows among `row_ids`."""
        rows = [int(r) for r in row_ids if table.is_row_valid(r)]
        return table._stack([(table, rows)])

    def copy(self):
        """Deep copy of columns, chain and caches; the string pool stays shared."""
        t = Table(context=self.context)
        t._schema = list(self._schema)
        t._col_map = dict(self._col_map)
        t._int_cols = [c.copy() for c in self._int_cols]
        t._flt_cols = [c.copy() for c in self._flt_cols]
        t._str_cols = [c.copy() for c in self._str_cols]
        t._chain = self._chain.copy()
        t._group_stmts = copy.deepcopy(self._group_stmts)
        t._group_stmt_names = dict(self._group_stmt_names)
        t._id_col_name = self._id_col_name
        t._row_id_map = dict(self._row_id_map)
        t._perm_of = dict(self._perm_of)
        t._next_perm_id = self._next_perm_id
        t._ids_initialized = self._ids_initialized
        t._version = self._version
        return t

    __copy__ = copy

    # ── Selection ───────────────────────────────────────────────────────

    def select(self, predicate, remove=True, candidates=None):
        """
        Rows matching `predicate`, in logical order.

        With `remove`, every matching row is soft-deleted as well; the
        returned ids are the matched rows either way. `candidates` limits
        the scan to those row ids (deleted ones are skipped).
        """
        check = predicate.bind(self)
        selected = []
        if candidates is None:
            it = RowIteratorWithRemove(self)
            while it.has_next():
                row = it.next_row_idx
                if check(row):
                    selected.append(row)
                    if remove:
                        it.remove_next()
                        continue
                it.advance()
        else:
            wanted = set(int(r) for r in candidates)
            rows = [r for r in self.row_ids() if r in wanted]
            selected = [r for r in rows if check(r)]
            if remove:
                for r in selected:
                    self.remove_row(r)
        logger.debug(f"Select {predicate!r}: {len(selected)} rows matched (remove={remove})")
        return selected

    def select_atomic(self, col1, col2, comp, remove=True):
        """Rows where column `col1` compares `comp` to column `col2`."""
        node = col_pred(col1, comp, col2, self.get_col_type(col1))
        return self.select(Predicate(node), remove)

    def select_atomic_const(self, col, value, comp, remove=True):
        """Rows where column `col` compares `comp` to the constant `value`."""
        attr_type = self.get_col_type(col)
        if isinstance(value, str) != (attr_type is AttrType.STR):
            raise SchemaError(f"Cannot compare {attr_type.value} column {col} with {value!r}")
        if attr_type.is_numeric and isinstance(value, float):
            attr_type = AttrType.FLT
        node = const_pred(col, comp, value, attr_type)
        return self.select(Predicate(node), remove)

    def select_table(self, predicate):
        """New table holding the rows matching `predicate`; this table is untouched."""
        return Table.from_rows(self, self.select(predicate, remove=False))

    def _classify_rows(self, selected, label, positive, negative):
        labels = np.full(self.num_rows, negative, dtype=np.int64)
        labels[np.asarray(selected, dtype=np.int64)] = positive
        self.store_col(label, labels, AttrType.INT)

    def classify(self, predicate, label, positive=1, negative=0):
        """Add int column `label`: `positive` on matching rows, `negative` elsewhere."""
        if self.is_col_name(label):
            raise SchemaError(f"{label}: column already exists")
        self._classify_rows(self.select(predicate, remove=False), label, positive, negative)

    def classify_atomic(self, col1, col2, comp, label, positive=1, negative=0):
        if self.is_col_name(label):
            raise SchemaError(f"{label}: column already exists")
        selected = self.select_atomic(col1, col2, comp, remove=False)
        self._classify_rows(selected, label, positive, negative)

    def classify_atomic_const(self, col, value, comp, label, positive=1, negative=0):
        if self.is_col_name(label):
            raise SchemaError(f"{label}: column already exists")
        selected = self.select_atomic_const(col, value, comp, remove=False)
        self._classify_rows(selected, label, positive, negative)

    # ── Grouping ────────────────────────────────────────────────────────

    def _group_statement(self, group_by, ordered=True):
        if isinstance(group_by, str):
            group_by = [group_by]
        for name in group_by:
            self.resolve_col(name)
        key = (tuple(normalize_col_name(c) for c in group_by), bool(ordered))
        stmt = self._group_stmts.get(key)
        if stmt is None or stmt.version != self._version:
            names = stmt.names if stmt is not None else set()
            stmt = build_statement(self, key[0], key[1], self.context.config)
            stmt.names = names
            self._group_stmts[key] = stmt
        return stmt

    def group(self, group_by, group_col_name, ordered=True):
        """
        Write the group id of every row into new int column `group_col_name`.

        With `ordered`, ids follow ascending key order (string keys compare
        by pool id); otherwise first-encounter order. The grouping is cached
        under `group_col_name` and reused for the same columns.
        """
        if self.is_col_name(group_col_name):
            raise SchemaError(f"{group_col_name}: column already exists")
        stmt = self._group_statement(group_by, ordered)
        ids = np.zeros(self.num_rows, dtype=np.int64)
        for gid, key in stmt.id_to_key.items():
            ids[np.asarray(stmt.key_to_rows[key], dtype=np.int64)] = gid
        self.store_col(group_col_name, ids, AttrType.INT)
        stmt.names.add(normalize_col_name(group_col_name))
        self._group_stmt_names[normalize_col_name(group_col_name)] = (stmt.group_by, stmt.ordered)

    @property
    def group_statements(self):
        return list(self._group_stmt_names)

    def _named_statement(self, name):
        entry = self._group_stmt_names.get(normalize_col_name(name))
        if entry is None:
            raise SchemaError(f"{name}: no such group statement")
        return self._group_statement(list(entry[0]), entry[1])

    def get_group_rows(self, name):
        """{group id: [row ids]} of the group statement called `name`."""
        stmt = self._named_statement(name)
        return {gid: stmt.rows(gid) for gid in stmt.id_to_key}

    def groups(self, name):
        """{key values: [row ids]} of the group statement called `name`."""
        stmt = self._named_statement(name)
        pool = self.context.pool
        return {stmt.decode_key(key, pool): list(stmt.key_to_rows[key])
                for key in stmt.id_to_key.values()}

    def count(self, count_col_name, col):
        """Int column holding, for every row, the size of its group by `col`."""
        if self.is_col_name(count_col_name):
            raise SchemaError(f"{count_col_name}: column already exists")
        grouping = group_rows(self, [col], config=self.context.config)
        counts = np.zeros(self.num_rows, dtype=np.int64)
        for rows in grouping.values():
            counts[np.asarray(rows, dtype=np.int64)] = len(rows)
        self.store_col(count_col_name, counts, AttrType.INT)

    def unique(self, cols, ordered=True):
        """
        Remove rows whose values in `cols` repeat an earlier row's. The
        grouping used is cached like group()'s, keyed on `ordered`.
        """
        if isinstance(cols, str):
            cols = [cols]
        stmt = self._group_statement(cols, ordered)
        keep = {rows[0] for rows in stmt.key_to_rows.values()}
        removed = self.num_valid_rows - len(keep)
        if removed:
            self.keep_sorted_rows(keep)
        logger.debug(f"Unique on {list(cols)} removed {removed} rows")

    def splice_by_group(self, group_by, ordered=True):
        """One new table per group, in group-id order."""
        stmt = self._group_statement(group_by, ordered)
        return [Table.from_rows(self, stmt.rows(gid)) for gid in sorted(stmt.id_to_key)]

    # ── Ordering ────────────────────────────────────────────────────────

    def order(self, order_by, order_col_name="", reset_rank_by_msc=False, asc=True):
        """
        Reorder the logical row chain by `order_by` (first column most
        significant). Physical rows do not move. If `order_col_name` is
        given, each row's rank is stored in that int column; with
        `reset_rank_by_msc` the rank restarts whenever the most significant
        column changes value.
        """
        if isinstance(order_by, str):
            order_by = [order_by]
        for name in order_by:
            self.resolve_col(name)
        if order_col_name and self.is_col_name(order_col_name):
            raise SchemaError(f"{order_col_name}: column already exists")

        rows = sort_row_ids(self, self.row_ids(), order_by, asc, self.context.config)
        self._chain.relink(rows)
        self._touch()

        if order_col_name:
            ranks = np.zeros(self.num_rows, dtype=np.int64)
            if reset_rank_by_msc and rows:
                _, msc = self._col(order_by[0])
                msc_vals = msc.take(rows).tolist()
                rank = 0
                for i, row in enumerate(rows):
                    if i and msc_vals[i] != msc_vals[i - 1]:
                        rank = 0
                    ranks[row] = rank
                    rank += 1
            else:
                ranks[np.asarray(rows, dtype=np.int64)] = np.arange(len(rows), dtype=np.int64)
            self.store_col(order_col_name, ranks, AttrType.INT)

    # ── Joins ───────────────────────────────────────────────────────────

    def _joint_schema(self, other):
        """
        Output schema of a join: this table's columns, then `other`'s.

        Columns whose base name occurs on both sides get ordinal suffixes,
        -1 on the left and -2 on the right; an ordinal already taken by an
        earlier output column is bumped to the next free one.
        """
        common = ({strip_ordinal(n) for n in self.columns}
                  & {strip_ordinal(n) for n in other.columns})
        used = {n for n in self.columns + other.columns if strip_ordinal(n) not in common}
        schema = []
        for cols, ordinal in ((self._schema, 1), (other._schema, 2)):
            for name, attr_type in cols:
                if strip_ordinal(name) in common:
                    name = _free_ordinal(name, ordinal, used)
                used.add(name)
                schema.append((name, attr_type))
        return schema

    def _joint_table(self, other, left_rows, right_rows, extra=()):
        """Table of left_rows[i] ++ right_rows[i], plus extra (name, type, array) columns."""
        schema = self._joint_schema(other)
        arrays = self._take_all(left_rows) + other._take_all(right_rows, self.context)
        for name, attr_type, arr in extra:
            schema.append((name, attr_type))
            arrays.append(arr)
        return Table._build(schema, self.context, arrays)

    def _join_keys(self, col, rows, as_strings):
        attr_type, column = self._col(col)
        if attr_type is AttrType.STR and as_strings:
            return self._decode(attr_type, column.take(rows))
        return column.take(rows).tolist()

    def join(self, col1, other, col2):
        """
        Equi-join this table's `col1` with `other`'s `col2` (hash join).

        Output columns are this table's followed by `other`'s; names present
        in both get the ordinal suffixes -1 and -2.
        """
        t1 = self.get_col_type(col1)
        t2 = other.get_col_type(col2)
        if t1 is not t2:
            raise IncompatibleSchemaError(
                f"Join columns differ in type: {col1} is {t1.value}, {col2} is {t2.value}")
        as_strings = t1 is AttrType.STR and self.context.pool is not other.context.pool

        right_rows = other.row_ids()
        index = {}
        for key, row in zip(other._join_keys(col2, right_rows, as_strings), right_rows):
            index.setdefault(key, []).append(row)

        left_rows = self.row_ids()
        out_left, out_right = [], []
        for key, row in zip(self._join_keys(col1, left_rows, as_strings), left_rows):
            matches = index.get(key)
            if matches:
                out_left.extend([row] * len(matches))
                out_right.extend(matches)

        result = self._joint_table(other, out_left, out_right)
        logger.info(f"Join on {col1}={col2}: {len(left_rows)} x {len(right_rows)} "
                    f"-> {result.num_rows} rows")
        return result

    def self_join(self, col):
        return self.join(col, self, col)

    def _features(self, cols, sim_type, rows):
        """Per-row feature tuples for the similarity metric."""
        types = [self.get_col_type(c) for c in cols]
        if sim_type is SimType.JACCARD:
            if any(t is not AttrType.STR for t in types):
                raise IncompatibleSchemaError("JACCARD needs string columns")
        elif any(t is AttrType.STR for t in types):
            raise IncompatibleSchemaError(f"{sim_type.name} needs numeric columns")
        columns = [self._decode(t, self._col(c)[1].take(rows)) for c, t in zip(cols, types)]
        return [tuple(vals) for vals in zip(*columns)] if columns else [() for _ in rows]

    def _check_sim_args(self, cols1, cols2, sim_type):
        if not isinstance(sim_type, SimType):
            sim_type = SimType(str(sim_type).lower())
        if not cols1 or len(cols1) != len(cols2):
            raise IncompatibleSchemaError(
                f"Similarity join needs equally many columns, got {cols1} and {cols2}")
        if sim_type is SimType.HAVERSINE and len(cols1) != 2:
            raise IncompatibleSchemaError("HAVERSINE needs exactly (latitude, longitude) columns")
        return sim_type

    def sim_join(self, cols1, other, cols2, distance_col, sim_type, threshold):
        """
        Join every row pair whose distance over (cols1, cols2) is at most
        `threshold`. The distance is stored in float column `distance_col`.
        """
        sim_type = self._check_sim_args(cols1, cols2, sim_type)
        metric = get_metric(sim_type)
        left_rows = self.row_ids()
        right_rows = other.row_ids()
        left_feats = self._features(cols1, sim_type, left_rows)
        right_feats = other._features(cols2, sim_type, right_rows)

        out_left, out_right, dists = [], [], []
        for r1, f1 in zip(left_rows, left_feats):
            for r2, f2 in zip(right_rows, right_feats):
                d = metric(f1, f2)
                if d <= threshold:
                    out_left.append(r1)
                    out_right.append(r2)
                    dists.append(d)

        result = self._joint_table(other, out_left, out_right, [
            (normalize_col_name(distance_col), AttrType.FLT, np.asarray(dists, dtype=np.float64)),
        ])
        logger.info(f"SimJoin ({sim_type.name}, threshold={threshold}): "
                    f"{len(left_rows)} x {len(right_rows)} -> {result.num_rows} rows")
        return result

    def self_sim_join(self, cols, distance_col, sim_type, threshold):
        return self.sim_join(cols, self, cols, distance_col, sim_type, threshold)

    def self_sim_join_per_group(self, group_by, sim_cols, distance_col, sim_type, threshold):
        """
        Similarity self-join restricted to pairs of distinct rows that share
        the same `group_by` key.
        """
        if isinstance(group_by, str):
            group_by = [group_by]
        if isinstance(sim_cols, str):
            sim_cols = [sim_cols]
        sim_type = self._check_sim_args(sim_cols, sim_cols, sim_type)
        metric = get_metric(sim_type)
        grouping = group_rows(self, group_by, config=self.context.config)

        out_left, out_right, dists = [], [], []
        for rows in grouping.values():
            feats = self._features(sim_cols, sim_type, rows)
            for i in range(len(rows)):
                for j in range(i + 1, len(rows)):
                    d = metric(feats[i], feats[j])
                    if d <= threshold:
                        out_left.append(rows[i])
                        out_right.append(rows[j])
                        dists.append(d)

        return self._joint_table(self, out_left, out_right, [
            (normalize_col_name(distance_col), AttrType.FLT, np.asarray(dists, dtype=np.float64)),
        ])

    def is_next_k(self, order_col, k, group_by, rank_col=""):
        """
        Order rows by (`group_by`, `order_col`) and join every row with each
        of its next `k` successors inside the same group.
        """
        self.order([group_by, order_col], rank_col)
        _, group_col = self._col(group_by)
        nxt = self._chain.next
        left, right = [], []
        for row in self.row_ids():
            succ = row
            for _ in range(k):
                succ = int(nxt[succ])
                if succ < 0 or group_col[succ] != group_col[row]:
                    break
                left.append(row)
                right.append(succ)
        return self._joint_table(self, left, right)

    # ── Set operations ──────────────────────────────────────────────────

    def _check_compatible(self, other):
        mine = [t for _, t in self._schema]
        theirs = [t for _, t in other._schema]
        if mine != theirs:
            raise IncompatibleSchemaError(
                f"Schemas differ: {[t.value for t in mine]} vs {[t.value for t in theirs]}")

    def _row_keys(self, rows):
        columns = [self._decode(t, self._column(*self._col_map[n]).take(rows))
                   for n, t in self._schema]
        return [tuple(vals) for vals in zip(*columns)] if columns else [() for _ in rows]

    def union(self, other):
        """Distinct rows of this table followed by the new ones of `other`."""
        self._check_compatible(other)
        seen = set()
        parts = []
        for table in (self, other):
            rows = table.row_ids()
            keep = []
            for key, row in zip(table._row_keys(rows), rows):
                if key not in seen:
                    seen.add(key)
                    keep.append(row)
            parts.append((table, keep))
        return self._stack(parts)

    def union_all(self, other):
        """All rows of both tables, duplicates kept."""
        self._check_compatible(other)
        return self._stack([(self, self.row_ids()), (other, other.row_ids())])

    def union_all_in_place(self, other):
        self.add_table(other)

    def add_table(self, other):
        """Append every valid row of `other` (duplicates allowed)."""
        self._check_compatible(other)
        self._append_from(other, other.row_ids())

    def concat_table(self, other):
        self.add_table(other)
        if self._ids_initialized:
            self.reindex()

    def _colliding(self, other):
        self._check_compatible(other)
        theirs = set(other._row_keys(other.row_ids()))
        rows = self.row_ids()
        return [(row, key in theirs) for key, row in zip(self._row_keys(rows), rows)]

    def intersection(self, other):
        """Rows of this table that also occur in `other`."""
        rows = [row for row, hit in self._colliding(other) if hit]
        return self._stack([(self, rows)])

    def minus(self, other):
        """Rows of this table that do not occur in `other`."""
        rows = [row for row, hit in self._colliding(other) if not hit]
        return self._stack([(self, rows)])

    # ── Aggregation ─────────────────────────────────────────────────────

    def aggregate(self, group_by, policy, val_col, res_col, ordered=True):
        """
        Group by `group_by`, aggregate `val_col` of each group with `policy`
        and write the result into every row of the group (column `res_col`).
        """
        policy = to_policy(policy)
        val_type, val_column = self._col(val_col)
        res_type = result_type(policy, val_type)
        if self.is_col_name(res_col):
            raise SchemaError(f"{res_col}: column already exists")
        stmt = self._group_statement(group_by, ordered)

        out = [res_type.zero] * self.num_rows
        for rows in stmt.key_to_rows.values():
            values = self._decode(val_type, val_column.take(rows))
            agg = aggregate_vector(values, policy)
            for row in rows:
                out[row] = agg
        self.store_col(res_col, out, res_type)

    def aggregate_table(self, group_by, agg_dict, ordered=True):
        """
        Summary table with one row per group: the group-by columns followed
        by one "<policy>_<column>" column per entry of `agg_dict`.
        """
        if isinstance(group_by, str):
            group_by = [group_by]
        policies = {col: to_policy(p) for col, p in agg_dict.items()}
        stmt = self._group_statement(group_by, ordered)
        schema = [(strip_ordinal(normalize_col_name(g)), self.get_col_type(g)) for g in group_by]
        for col, policy in policies.items():
            alias = f"{policy.value}_{strip_ordinal(normalize_col_name(col))}"
            schema.append((alias, result_type(policy, self.get_col_type(col))))

        result = Table(schema, self.context)
        pool = self.context.pool
        for gid in sorted(stmt.id_to_key):
            key = stmt.id_to_key[gid]
            row = list(stmt.decode_key(key, pool))
            for col, policy in policies.items():
                val_type, column = self._col(col)
                row.append(aggregate_vector(self._decode(val_type, column.take(stmt.key_to_rows[key])),
                                            policy))
            result.append(row)
        return result

    def aggregate_cols(self, cols, policy, res_col):
        """Aggregate, row by row, the values of `cols` into column `res_col`."""
        policy = to_policy(policy)
        types = {self.get_col_type(c) for c in cols}
        if len(types) != 1:
            raise IncompatibleSchemaError(f"Columns {cols} do not share one type")
        val_type = types.pop()
        res_type = result_type(policy, val_type)
        if self.is_col_name(res_col):
            raise SchemaError(f"{res_col}: column already exists")
        rows = self.row_ids()
        columns = [self._decode(val_type, self._col(c)[1].take(rows)) for c in cols]
        out = [res_type.zero] * self.num_rows
        for i, row in enumerate(rows):
            out[row] = aggregate_vector([vals[i] for vals in columns], policy)
        self.store_col(res_col, out, res_type)

    # ── Column arithmetic ───────────────────────────────────────────────

    def _numeric_col(self, name):
        attr_type, col = self._col(name)
        if attr_type is AttrType.STR:
            raise IncompatibleSchemaError(f"{name} is a string column; arithmetic needs numbers")
        return attr_type, col

    def col_generic_op(self, col1, operand, res_col="", op=ArithOp.ADD, float_cast=False):
        """
        Element-wise `col1 op operand` over the valid rows. `operand` is a
        column name or a number. With an empty `res_col` the result
        overwrites `col1`. Int and float operands promote to float.
        """
        if not isinstance(op, ArithOp):
            op = ArithOp(str(op).lower())
        t1, c1 = self._numeric_col(col1)
        if isinstance(operand, str):
            t2, c2 = self._numeric_col(operand)
            float_result = float_cast or AttrType.FLT in (t1, t2)
        else:
            if isinstance(operand, (bytes, bool)) or operand is None:
                raise IncompatibleSchemaError(f"Unsupported operand {operand!r}")
            c2 = None
            float_result = float_cast or t1 is AttrType.FLT or isinstance(operand, float)
        res_type = AttrType.FLT if float_result else AttrType.INT
        target = res_col or col1
        if self.is_col_name(target) and self.get_col_type(target) is not res_type:
            raise IncompatibleSchemaError(
                f"Result of {op.value} is {res_type.value}, {target} is {self.get_col_type(target).value}")

        mask = self._chain.valid_mask()
        lhs = c1.values[mask]
        rhs = c2.values[mask] if c2 is not None else operand
        out = np.zeros(self.num_rows, dtype=np.float64 if float_result else np.int64)
        out[mask] = arith(lhs, rhs, op, float_result)
        self._write_col(target, res_type, out)

    def col_add(self, col1, operand, res_col="", float_cast=False):
        self.col_generic_op(col1, operand, res_col, ArithOp.ADD, float_cast)

    def col_sub(self, col1, operand, res_col="", float_cast=False):
        self.col_generic_op(col1, operand, res_col, ArithOp.SUB, float_cast)

    def col_mul(self, col1, operand, res_col="", float_cast=False):
        self.col_generic_op(col1, operand, res_col, ArithOp.MUL, float_cast)

    def col_div(self, col1, operand, res_col="", float_cast=False):
        self.col_generic_op(col1, operand, res_col, ArithOp.DIV, float_cast)

    def col_mod(self, col1, operand, res_col="", float_cast=False):
        self.col_generic_op(col1, operand, res_col, ArithOp.MOD, float_cast)

    def col_min(self, col1, operand, res_col="", float_cast=False):
        self.col_generic_op(col1, operand, res_col, ArithOp.MIN, float_cast)

    def col_max(self, col1, operand, res_col="", float_cast=False):
        self.col_generic_op(col1, operand, res_col, ArithOp.MAX, float_cast)

    def col_generic_op_table(self, col1, other, col2, res_col="", op=ArithOp.ADD,
                             add_to_first=True):
        """
        Element-wise op between this table's `col1` and `other`'s `col2`,
        pairing rows by logical position. The result goes into the first
        table (or `other` if `add_to_first` is false).
        """
        if not isinstance(op, ArithOp):
            op = ArithOp(str(op).lower())
        t1, c1 = self._numeric_col(col1)
        t2, c2 = other._numeric_col(col2)
        rows1 = self.row_ids()
        rows2 = other.row_ids()
        if len(rows1) != len(rows2):
            raise RangeError(f"Tables have {len(rows1)} and {len(rows2)} valid rows")
        float_result = AttrType.FLT in (t1, t2)
        res_type = AttrType.FLT if float_result else AttrType.INT
        values = arith(c1.take(rows1), c2.take(rows2), op, float_result)

        dest, dest_rows, default = (self, rows1, col1) if add_to_first else (other, rows2, col2)
        target = res_col or default
        if dest.is_col_name(target) and dest.get_col_type(target) is not res_type:
            raise IncompatibleSchemaError(
                f"Result of {op.value} is {res_type.value}, {target} is {dest.get_col_type(target).value}")
        out = np.zeros(dest.num_rows, dtype=np.float64 if float_result else np.int64)
        if dest.is_col_name(target):
            out[:] = dest._col(target)[1].values
        out[np.asarray(dest_rows, dtype=np.int64)] = values
        dest._write_col(target, res_type, out)

    def col_concat(self, col1, col2, sep="", res_col=""):
        """String concatenation of two string columns, joined by `sep`."""
        a = self._typed_col(col1, AttrType.STR)
        b = self._typed_col(col2, AttrType.STR)
        self._concat_into(col1, res_col, a, lambda row, s: s + sep + self.context.resolve(int(b[row])))

    def col_concat_const(self, col1, value, sep="", res_col=""):
        a = self._typed_col(col1, AttrType.STR)
        self._concat_into(col1, res_col, a, lambda row, s: s + sep + value)

    def _concat_into(self, col1, res_col, a, combine):
        target = res_col or col1
        if self.is_col_name(target) and self.get_col_type(target) is not AttrType.STR:
            raise IncompatibleSchemaError(f"{target} is not a string column")
        out = a.values.copy()
        for row in self.row_ids():
            out[row] = self.context.intern(combine(row, self.context.resolve(int(a[row]))))
        self._write_col(target, AttrType.STR, out)

    # ── Persistence ─────────────────────────────────────────────────────

    def save_ss(self, path, separator="\t"):
        from .io import save_ss
        save_ss(self, path, separator)

    def save_bin(self, path):
        from .io import save_bin
        save_bin(self, path)

    def _to_state(self):
        """Plain-data snapshot of the whole table, deleted slots included."""
        str_ids = set()
        for col in self._str_cols:
            str_ids.update(col.values.tolist())
        return {
            "schema": [(name, t.value) for name, t in self._schema],
            "columns": [self._column(*self._col_map[n]).values.copy() for n, _ in self._schema],
            "next": self._chain.next.values.copy(),
            "prev": self._chain.prev.values.copy(),
            "first_valid": self._chain.first_valid,
            "last_valid": self._chain.last_valid,
            "num_valid": self._chain.num_valid,
            "strings": {i: self.context.resolve(i) for i in sorted(str_ids)},
            "id_col_name": self._id_col_name,
            "row_id_map": dict(self._row_id_map),
            "next_perm_id": self._next_perm_id,
            "ids_initialized": self._ids_initialized,
            "group_stmts": [
                {"group_by": s.group_by, "ordered": s.ordered,
                 "types": [t.value for t in s.types],
                 "key_to_rows": s.key_to_rows, "id_to_key": s.id_to_key,
                 "names": sorted(s.names), "current": s.version == self._version}
                for s in self._group_stmts.values()
            ],
            "group_stmt_names": dict(self._group_stmt_names),
        }

    @classmethod
    def _from_state(cls, state, context):
        from .grouping import GroupStatement

        schema = [(name, AttrType(t)) for name, t in state["schema"]]
        t = cls(schema, context)
        strings = state["strings"]
        # string ids survive only if the target pool agrees with the saved one
        same_pool = all(i < len(context.pool) and context.resolve(i) == s
                        for i, s in strings.items())
        remap = None
        if not same_pool:
            remap = {i: context.intern(s) for i, s in strings.items()}
        for (name, attr_type), values in zip(t._schema, state["columns"]):
            arr = np.asarray(values)
            if attr_type is AttrType.STR and remap is not None:
                arr = np.array([remap[v] for v in arr.tolist()], dtype=np.int64)
            _, idx = t._col_map[name]
            t._cols_of(attr_type)[idx] = Column(attr_type, arr)

        chain = RowChain()
        chain.next = Column(AttrType.INT, state["next"])
        chain.prev = Column(AttrType.INT, state["prev"])
        chain.first_valid = state["first_valid"]
        chain.last_valid = state["last_valid"]
        chain.num_rows = len(state["next"])
        chain.num_valid = state["num_valid"]
        t._chain = chain
        t._id_col_name = state["id_col_name"]
        t._next_perm_id = state["next_perm_id"]
        t._set_id_map(dict(state["row_id_map"]))
        t._ids_initialized = state["ids_initialized"]

        for s in state["group_stmts"]:
            types = tuple(AttrType(v) for v in s["types"])
            key_to_rows = s["key_to_rows"]
            id_to_key = s["id_to_key"]
            if remap is not None and AttrType.STR in types:
                # rebuild keys with the remapped string ids
                stmt = build_statement(t, s["group_by"], s["ordered"])
            else:
                stmt = GroupStatement(tuple(s["group_by"]), s["ordered"], types,
                                      {k: list(v) for k, v in key_to_rows.items()},
                                      dict(id_to_key), 0)
            stmt.names = set(s["names"])
            stmt.version = t._version if s["current"] else -1
            t._group_stmts[(stmt.group_by, stmt.ordered)] = stmt
        t._group_stmt_names = {name: (tuple(g), o) for name, (g, o) in state["group_stmt_names"].items()}
        return t

    def __getstate__(self):
        state = self._to_state()
        state["pool"] = self.context.pool.values
        state["config"] = self.context.config.to_dict()
        return state

    def __setstate__(self, state):
        from .context import ExecutionConfig, StringPool

        context = TableContext(ExecutionConfig(**state["config"]), StringPool(state["pool"]))
        restored = Table._from_state(state, context)
        self.__dict__.update(restored.__dict__)

    # ── Python protocol ─────────────────────────────────────────────────

    def __iter__(self):
        """Yield each valid row as a dict, in logical order."""
        rows = self.row_ids()
        names = self.columns
        columns = [self._decode(t, self._column(*self._col_map[n]).take(rows))
                   for n, t in self._schema]
        for values in zip(*columns):
            yield dict(zip(names, values))

    def __len__(self):
        return self.num_valid_rows

    def __repr__(self):
        return (f"Table(columns={self.columns}, rows={self.num_rows}, "
                f"valid={self.num_valid_rows})")


def table_from_map(mapping, col1, col2, context=None, is_str_keys=False):
    """
    Two-column table from a dict. Keys become `col1` (string column if
    `is_str_keys` or the keys are str), values become `col2` (float column
    if any value is a float).
    """
    context = context if context is not None else TableContext()
    keys = list(mapping)
    values = [mapping[k] for k in keys]
    if is_str_keys or any(isinstance(k, str) for k in keys):
        key_type = AttrType.STR
        if is_str_keys:
            keys = [k if isinstance(k, str) else context.resolve(k) for k in keys]
    else:
        key_type = AttrType.INT
    val_type = AttrType.FLT if any(isinstance(v, float) for v in values) else AttrType.INT
    t = Table([(col1, key_type), (col2, val_type)], context)
    t.extend(zip(keys, values))
    return t
