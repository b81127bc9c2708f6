"""
tabula — an in-memory, column-oriented table engine.

Components:
- TableContext: shared string pool and execution settings
- Table: columnar storage with soft deletes, selection, grouping,
  ordering, joins, set operations, aggregation and column arithmetic
- Predicate: boolean expression trees over columns
- GraphBridge: nodes, edges and attributes from row selections
- io: delimited text and zipped-pickle persistence
"""

from .errors import (
    TableError,
    SchemaError,
    IncompatibleSchemaError,
    RangeError,
    EmptyTableError,
    StateError,
)
from .context import TableContext, StringPool, ExecutionConfig, DEFAULT_CONFIG
from .schema import AttrType, normalize_col_name, parse_schema
from .rows import RowIterator, RowIteratorWithRemove
from .predicate import (
    PredComp,
    PredOp,
    AtomicPredicate,
    PredicateNode,
    Predicate,
    const_pred,
    col_pred,
)
from .aggregation import AttrAggr, ArithOp, aggregate_vector
from .metrics import SimType
from .table import Table, table_from_map
from .io import load_ss, save_ss, load_bin, save_bin
from .graph import GraphBridge, GraphData

__all__ = [
    # Errors
    "TableError", "SchemaError", "IncompatibleSchemaError", "RangeError",
    "EmptyTableError", "StateError",
    # Context & schema
    "TableContext", "StringPool", "ExecutionConfig", "DEFAULT_CONFIG",
    "AttrType", "normalize_col_name", "parse_schema",
    # Rows
    "RowIterator", "RowIteratorWithRemove",
    # Predicates
    "PredComp", "PredOp", "AtomicPredicate", "PredicateNode", "Predicate",
    "const_pred", "col_pred",
    # Aggregation & similarity
    "AttrAggr", "ArithOp", "aggregate_vector", "SimType",
    # Table
    "Table", "table_from_map",
    # Persistence
    "load_ss", "save_ss", "load_bin", "save_bin",
    # Graph bridge
    "GraphBridge", "GraphData",
]
