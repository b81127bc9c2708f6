"""
Aggregation policies and element-wise column arithmetic.

aggregate_vector() folds a list of values into one scalar; it backs
Table.aggregate(), Table.aggregate_cols() and the graph bridge's resolution
of conflicting node attributes. arith() applies one ArithOp to two numpy
arrays (or an array and a scalar) for Table.col_generic_op().
"""

from enum import Enum

import numpy as np

from .errors import EmptyTableError, IncompatibleSchemaError
from .schema import AttrType


class AttrAggr(Enum):
    MIN = "min"
    MAX = "max"
    FIRST = "first"
    LAST = "last"
    MEAN = "mean"
    MEDIAN = "median"
    SUM = "sum"
    COUNT = "count"


class ArithOp(Enum):
    ADD = "add"
    SUB = "sub"
    MUL = "mul"
    DIV = "div"
    MOD = "mod"
    MIN = "min"
    MAX = "max"


def to_policy(policy):
    """Accept an AttrAggr or its name ("sum", "MEAN", ...)."""
    if isinstance(policy, AttrAggr):
        return policy
    try:
        return AttrAggr(str(policy).lower())
    except ValueError:
        raise ValueError(f"Unknown aggregation policy: {policy!r}. "
                         f"Available: {[p.value for p in AttrAggr]}") from None


def aggregate_vector(values, policy):
    """
    Aggregate `values` into a single scalar according to `policy`.

    MIN, MAX and SUM fold left to right with the values' own ordering and
    addition (so SUM over strings concatenates). MEDIAN sorts and takes the
    element at len // 2. MEAN is the arithmetic mean and is defined for
    numbers only.
    """
    policy = to_policy(policy)
    values = list(values)
    if policy is AttrAggr.COUNT:
        return len(values)
    if not values:
        raise EmptyTableError(f"Cannot aggregate an empty vector with {policy.value}")

    if policy is AttrAggr.FIRST:
        return values[0]
    if policy is AttrAggr.LAST:
        return values[-1]
    if policy is AttrAggr.MIN:
        res = values[0]
        for v in values[1:]:
            if v < res:
                res = v
        return res
    if policy is AttrAggr.MAX:
        res = values[0]
        for v in values[1:]:
            if v > res:
                res = v
        return res
    if policy is AttrAggr.SUM:
        res = values[0]
        for v in values[1:]:
            res = res + v
        return res
    if policy is AttrAggr.MEAN:
        if isinstance(values[0], str):
            raise IncompatibleSchemaError("MEAN is not defined for string values")
        total = values[0]
        for v in values[1:]:
            total = total + v
        return total / len(values)
    # MEDIAN
    return sorted(values)[len(values) // 2]


def result_type(policy, value_type):
    """Column type produced by aggregating a `value_type` column."""
    policy = to_policy(policy)
    if policy is AttrAggr.COUNT:
        return AttrType.INT
    if policy is AttrAggr.MEAN:
        if value_type is AttrType.STR:
            raise IncompatibleSchemaError("MEAN is not defined for string columns")
        return AttrType.FLT
    return value_type


def arith(lhs, rhs, op, float_result):
    """
    Element-wise `lhs op rhs` on numpy arrays (rhs may be a scalar).

    Integer DIV and MOD use floor division and Python's modulo sign rule;
    float DIV and MOD follow IEEE (inf / nan on zero divisors). Integer
    division by zero raises ZeroDivisionError.
    """
    dtype = np.float64 if float_result else np.int64
    lhs = np.asarray(lhs, dtype=dtype)
    rhs = np.asarray(rhs, dtype=dtype)
    if op is ArithOp.ADD:
        return lhs + rhs
    if op is ArithOp.SUB:
        return lhs - rhs
    if op is ArithOp.MUL:
        return lhs * rhs
    if op is ArithOp.MIN:
        return np.minimum(lhs, rhs)
    if op is ArithOp.MAX:
        return np.maximum(lhs, rhs)

    if not float_result and np.any(rhs == 0):
        raise ZeroDivisionError(f"Integer {op.value} by zero")
    with np.errstate(divide="ignore", invalid="ignore"):
        if op is ArithOp.DIV:
            return lhs / rhs if float_result else np.floor_divide(lhs, rhs)
        return np.mod(lhs, rhs)
