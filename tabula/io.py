"""
Table persistence — delimited text and zipped-pickle binary snapshots.

Text files are read and written with the csv module, one record per line.
save_ss() writes a header with the stored column names in schema order, then
every valid row in logical order. Floats are written with repr() so a
save/load cycle reproduces them exactly. Values holding the separator or a
quote are quoted.

Binary files are zlib-compressed pickles of the complete table state:
schema, every column buffer including deleted slots, the row chain, the
row-id map, cached group statements and the strings referenced by string
columns. If the loading context's pool disagrees with the saved ids, the
strings are re-interned and the ids remapped.

NOTE: pickle is only safe for files you produced yourself.
"""

import csv
import logging
import pickle
import zlib

import numpy as np

from .context import TableContext
from .errors import SchemaError
from .schema import AttrType, normalize_col_name, to_attr_type
from .table import Table

logger = logging.getLogger(__name__)


def _format_value(attr_type, value):
    if attr_type is AttrType.FLT:
        return repr(float(value))
    return str(value)


def save_ss(table, path, separator="\t"):
    """Write `table` as separator-delimited text."""
    names = table.columns
    types = [t for _, t in table.schema]
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f, delimiter=separator, lineterminator="\n")
        writer.writerow(names)
        for row in table:
            writer.writerow([_format_value(t, row[n]) for n, t in zip(names, types)])
    logger.info(f"Saved {table.num_valid_rows} rows to {path}")


def _parse_field(attr_type, text):
    if attr_type is AttrType.INT:
        return int(text)
    if attr_type is AttrType.FLT:
        return float(text)
    return text


def load_ss(schema, path, context=None, separator="\t", has_title_line=False,
            relevant_cols=None):
    """
    Load a delimited text file into a new table.

    schema: list of (column_name, type) pairs
    relevant_cols: file field index for each schema column (default: the
        first len(schema) fields, in order)

    Blank lines are skipped. A malformed line raises ValueError naming the
    file and line number.
    """
    context = context if context is not None else TableContext()
    types = [to_attr_type(t) for _, t in schema]
    if relevant_cols is None:
        positions = list(range(len(schema)))
    else:
        positions = list(relevant_cols)
        if len(positions) != len(schema):
            raise SchemaError(f"relevant_cols has {len(positions)} entries, "
                              f"schema has {len(schema)} columns")

    columns = [[] for _ in schema]
    with open(path, newline="", encoding="utf-8") as f:
        reader = csv.reader(f, delimiter=separator)
        for fields in reader:
            lineno = reader.line_num
            if has_title_line and lineno == 1:
                continue
            if not fields:
                continue
            for values, attr_type, pos in zip(columns, types, positions):
                if pos >= len(fields):
                    raise ValueError(f"{path}:{lineno}: expected at least {pos + 1} fields, "
                                     f"got {len(fields)}")
                try:
                    value = _parse_field(attr_type, fields[pos])
                except ValueError:
                    raise ValueError(f"{path}:{lineno}: cannot parse {fields[pos]!r} "
                                     f"as {attr_type.value}") from None
                if attr_type is AttrType.STR:
                    value = context.intern(value)
                values.append(value)

    stored = [(normalize_col_name(name), t) for (name, _), t in zip(schema, types)]
    arrays = [np.asarray(values, dtype=np.float64 if t is AttrType.FLT else np.int64)
              for values, t in zip(columns, types)]
    table = Table._build(stored, context, arrays)
    logger.info(f"Loaded {table.num_rows} rows from {path}")
    return table


def save_bin(table, path):
    """Write a zipped-pickle snapshot of `table`."""
    blob = zlib.compress(pickle.dumps(table._to_state()))
    with open(path, "wb") as f:
        f.write(blob)
    logger.info(f"Saved binary table ({table.num_rows} rows, "
                f"{table.num_valid_rows} valid) to {path}")


def load_bin(path, context=None):
    """Load a snapshot written by save_bin() into `context`."""
    context = context if context is not None else TableContext()
    with open(path, "rb") as f:
        state = pickle.loads(zlib.decompress(f.read()))
    table = Table._from_state(state, context)
    logger.info(f"Loaded binary table ({table.num_rows} rows) from {path}")
    return table
