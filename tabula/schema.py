"""
Schema — column types and column-name normalisation.

A schema is an ordered list of (name, AttrType) pairs. Python types are
accepted wherever an AttrType is expected, so Table([("price", float)])
works the same as Table([("price", AttrType.FLT)]).
"""

from enum import Enum

from .errors import SchemaError


class AttrType(Enum):
    INT = "int"
    FLT = "float"
    STR = "str"

    @property
    def zero(self):
        return {AttrType.INT: 0, AttrType.FLT: 0.0, AttrType.STR: ""}[self]

    @property
    def is_numeric(self):
        return self is not AttrType.STR


_PY_TYPES = {
    int: AttrType.INT,
    float: AttrType.FLT,
    str: AttrType.STR,
    bool: AttrType.INT,
}


def to_attr_type(col_type):
    """Map an AttrType, Python type or type name onto an AttrType."""
    if isinstance(col_type, AttrType):
        return col_type
    if col_type in _PY_TYPES:
        return _PY_TYPES[col_type]
    if isinstance(col_type, str):
        try:
            return AttrType(col_type.lower())
        except ValueError:
            pass
        if col_type.lower() in ("integer", "flt", "string"):
            return {"integer": AttrType.INT, "flt": AttrType.FLT,
                    "string": AttrType.STR}[col_type.lower()]
    raise SchemaError(f"Unsupported column type: {col_type!r}")


def normalize_col_name(name):
    """
    Canonical stored name for a raw column name.

    Names starting with "_" and names whose second-to-last character is "-"
    (an ordinal suffix such as "x-2") pass through; everything else gets the
    "-1" suffix. Join uses the suffix to keep duplicate names apart.
    """
    if not name:
        raise SchemaError("Column name must be non-empty")
    if name[0] == "_":
        return name
    if len(name) >= 2 and name[-2] == "-":
        return name
    return name + "-1"


def strip_ordinal(name):
    """Drop a trailing "-<digit>" ordinal suffix, if any."""
    if len(name) >= 2 and name[-2] == "-":
        return name[:-2]
    return name


def with_ordinal(name, ordinal):
    """Stored name of `name` as produced by the `ordinal`-th joined table."""
    return f"{strip_ordinal(name)}-{ordinal}"


def parse_schema(spec):
    """
    Parse "name:type,name:type" into a schema list.

    Used by the command line; types are int, float or str.
    """
    schema = []
    for part in spec.split(","):
        part = part.strip()
        if not part:
            continue
        if ":" not in part:
            raise SchemaError(f"Schema entry {part!r} must look like NAME:TYPE")
        name, col_type = part.rsplit(":", 1)
        schema.append((name.strip(), to_attr_type(col_type.strip())))
    return schema
