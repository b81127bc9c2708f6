"""
Errors raised by the table engine.

All of them are fail-fast: raised at the point of violation, never retried.
"""


class TableError(Exception):
    """Base class for table engine errors."""


class SchemaError(TableError):
    """Unknown column, wrong column type for an accessor, or duplicate name."""


class IncompatibleSchemaError(SchemaError):
    """Operation across columns or tables whose types do not line up."""


class RangeError(TableError, IndexError):
    """Row, column or string-pool index outside its declared bounds."""


class EmptyTableError(TableError):
    """Operation needs at least one valid row (or value)."""


class StateError(TableError):
    """Graph sequence iterator used before initialisation or past its end."""
