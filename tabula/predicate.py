"""
Predicate engine — boolean expression trees evaluated per row.

Inner nodes are AND / OR / NOT connectives; leaves are atomic comparisons,
either column-vs-constant or column-vs-column. A predicate holds no row
state: `bind(table)` resolves its column names against a table and returns
a plain function row_id -> bool, which Table.select() runs over the rows.

    africa = const_pred("Location", PredComp.EQ, "Africa")
    big = const_pred("Size", PredComp.EQ, "big")
    pred = Predicate(africa & big)
    rows = table.select(pred, remove=False)
"""

import operator
from dataclasses import dataclass
from enum import Enum

from .errors import SchemaError
from .schema import AttrType, to_attr_type


class PredComp(Enum):
    EQ = "=="
    NEQ = "!="
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="


class PredOp(Enum):
    AND = "and"
    OR = "or"
    NOT = "not"
    ATOM = "atom"


_COMPARATORS = {
    PredComp.EQ: operator.eq,
    PredComp.NEQ: operator.ne,
    PredComp.LT: operator.lt,
    PredComp.LTE: operator.le,
    PredComp.GT: operator.gt,
    PredComp.GTE: operator.ge,
}


def compare(lhs, rhs, comp):
    """Apply comparison `comp` to two values of the same kind."""
    return _COMPARATORS[comp](lhs, rhs)


def _value_type(value):
    if isinstance(value, str):
        return AttrType.STR
    if isinstance(value, float):
        return AttrType.FLT
    return AttrType.INT


@dataclass
class AtomicPredicate:
    """
    A single comparison.

    When `is_const` is set, column `lvar` is compared against the constant
    of `attr_type`; otherwise against column `rvar`. `lidx` / `ridx` hold the
    typed column indices resolved by the last bind().
    """
    attr_type: AttrType
    is_const: bool
    comp: PredComp
    lvar: str
    rvar: str = ""
    int_const: int = 0
    flt_const: float = 0.0
    str_const: str = ""
    lidx: int = -1
    ridx: int = -1

    def __post_init__(self):
        self.attr_type = to_attr_type(self.attr_type)

    @property
    def const(self):
        if self.attr_type is AttrType.INT:
            return self.int_const
        if self.attr_type is AttrType.FLT:
            return self.flt_const
        return self.str_const

    def _check_type(self, table, col):
        col_type, idx = table.resolve_col(col)
        if col_type is not self.attr_type and not (col_type.is_numeric and self.attr_type.is_numeric):
            raise SchemaError(f"Predicate on {col!r} expects {self.attr_type.value}, "
                              f"column is {col_type.value}")
        return col_type, idx

    def bind(self, table):
        """Resolve column names against `table` and return row_id -> bool."""
        ltype, self.lidx = self._check_type(table, self.lvar)
        cmp = _COMPARATORS[self.comp]
        lcol = table._column(ltype, self.lidx).values

        if self.is_const:
            if ltype is AttrType.STR:
                return self._bind_str_const(table, lcol, cmp)
            const = self.const
            return lambda row: cmp(lcol[row], const)

        rtype, self.ridx = self._check_type(table, self.rvar)
        rcol = table._column(rtype, self.ridx).values
        if ltype is AttrType.STR:
            if self.comp in (PredComp.EQ, PredComp.NEQ):
                return lambda row: cmp(lcol[row], rcol[row])
            resolve = table.context.pool.resolve
            return lambda row: cmp(resolve(lcol[row]), resolve(rcol[row]))
        return lambda row: cmp(lcol[row], rcol[row])

    def _bind_str_const(self, table, lcol, cmp):
        pool = table.context.pool
        if self.comp in (PredComp.EQ, PredComp.NEQ):
            # equal strings share a pool id
            key = pool.get_id(self.str_const)
            if key is None:
                outcome = self.comp is PredComp.NEQ
                return lambda row: outcome
            return lambda row: cmp(lcol[row], key)
        const = self.str_const
        resolve = pool.resolve
        return lambda row: cmp(resolve(lcol[row]), const)

    def __repr__(self):
        rhs = repr(self.const) if self.is_const else self.rvar
        return f"({self.lvar} {self.comp.value} {rhs})"


class PredicateNode:
    """Node of a predicate tree; compose nodes with &, | and ~."""

    def __init__(self, op=PredOp.ATOM, atom=None, left=None, right=None):
        self.op = op
        self.atom = atom
        self.left = None
        self.right = None
        self.parent = None
        if left is not None:
            self.add_left_child(left)
        if right is not None:
            self.add_right_child(right)

    def add_left_child(self, child):
        child.parent = self
        self.left = child

    def add_right_child(self, child):
        child.parent = self
        self.right = child

    def __and__(self, other):
        return PredicateNode(PredOp.AND, left=self, right=other)

    def __or__(self, other):
        return PredicateNode(PredOp.OR, left=self, right=other)

    def __invert__(self):
        return PredicateNode(PredOp.NOT, left=self)

    def variables(self):
        if self.op is PredOp.ATOM:
            names = [self.atom.lvar]
            if not self.atom.is_const:
                names.append(self.atom.rvar)
            return names
        names = []
        for child in (self.left, self.right):
            if child is not None:
                names.extend(child.variables())
        return names

    def bind(self, table):
        if self.op is PredOp.ATOM:
            if self.atom is None:
                raise SchemaError("Atomic predicate node without a comparison")
            return self.atom.bind(table)
        if self.left is None:
            raise SchemaError(f"{self.op.value.upper()} node has no operand")
        left = self.left.bind(table)
        if self.op is PredOp.NOT:
            return lambda row: not left(row)
        if self.right is None:
            raise SchemaError(f"{self.op.value.upper()} node needs two operands")
        right = self.right.bind(table)
        if self.op is PredOp.AND:
            return lambda row: left(row) and right(row)
        return lambda row: left(row) or right(row)

    def __repr__(self):
        if self.op is PredOp.ATOM:
            return repr(self.atom)
        if self.op is PredOp.NOT:
            return f"NOT {self.left!r}"
        return f"({self.left!r} {self.op.value.upper()} {self.right!r})"


class Predicate:
    """A predicate tree rooted at `root`."""

    def __init__(self, root):
        self.root = root

    def bind(self, table):
        return self.root.bind(table)

    def eval(self, table, row_id):
        return bool(self.root.bind(table)(row_id))

    def variables(self):
        return self.root.variables()

    def __and__(self, other):
        return Predicate(self.root & _root(other))

    def __or__(self, other):
        return Predicate(self.root | _root(other))

    def __invert__(self):
        return Predicate(~self.root)

    def __repr__(self):
        return f"Predicate{self.root!r}"


def _root(pred):
    return pred.root if isinstance(pred, Predicate) else pred


def const_pred(col, comp, value, attr_type=None):
    """Leaf node comparing column `col` with a constant."""
    attr_type = to_attr_type(attr_type) if attr_type is not None else _value_type(value)
    atom = AtomicPredicate(attr_type, True, comp, col)
    if attr_type is AttrType.INT:
        atom.int_const = int(value)
    elif attr_type is AttrType.FLT:
        atom.flt_const = float(value)
    else:
        atom.str_const = str(value)
    return PredicateNode(PredOp.ATOM, atom=atom)


def col_pred(lcol, comp, rcol, attr_type):
    """Leaf node comparing two columns of the same type."""
    return PredicateNode(PredOp.ATOM, atom=AtomicPredicate(attr_type, False, comp, lcol, rcol))
