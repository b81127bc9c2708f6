"""Tests for predicate trees and Table.select()."""

import pytest
from tabula.errors import SchemaError
from tabula.predicate import (
    AtomicPredicate,
    PredComp,
    Predicate,
    PredicateNode,
    PredOp,
    col_pred,
    const_pred,
)
from tabula.schema import AttrType
from tabula.table import Table


def make_animals(context=None):
    t = Table([("Animal", str), ("Size", str), ("Location", str), ("Number", int)], context)
    t.extend([
        ("Lion", "big", "Africa", 1),
        ("Koala", "medium", "Australia", 1),
        ("Ant", "small", "Africa", 1),
    ])
    return t


def big_african_or_medium_australian():
    africa = const_pred("Location", PredComp.EQ, "Africa")
    big = const_pred("Size", PredComp.EQ, "big")
    australia = const_pred("Location", PredComp.EQ, "Australia")
    medium = const_pred("Size", PredComp.EQ, "medium")
    return Predicate((africa & big) | (australia & medium))


class TestSelect:
    def test_animals_scenario(self):
        t = make_animals()
        assert t.select(big_african_or_medium_australian(), remove=False) == [0, 1]
        assert len(t) == 3

    def test_select_removes_matches(self):
        t = make_animals()
        selected = t.select(big_african_or_medium_australian())
        assert selected == [0, 1]
        assert t.row_ids() == [2]
        assert t.num_rows == 3

    def test_complementary_select_removes_every_row_once(self):
        t = make_animals()
        pred = big_african_or_medium_australian()
        first = t.select(pred)
        second = t.select(~pred)
        assert sorted(first + second) == [0, 1, 2]
        assert len(t) == 0

    def test_candidates(self):
        t = make_animals()
        pred = Predicate(const_pred("Location", PredComp.EQ, "Africa"))
        assert t.select(pred, remove=False, candidates=[1, 2]) == [2]

    def test_candidates_follow_logical_order(self):
        t = make_animals()
        pred = Predicate(const_pred("Number", PredComp.EQ, 1))
        assert t.select(pred, remove=False, candidates=[2, 1, 0]) == [0, 1, 2]
        t.order("Animal")
        assert t.select(pred, candidates=[0, 1, 2]) == [2, 1, 0]
        assert len(t) == 0

    def test_candidates_skip_deleted_rows(self):
        t = make_animals()
        t.remove_row(0)
        pred = Predicate(const_pred("Location", PredComp.EQ, "Africa"))
        assert t.select(pred, remove=False, candidates=[0, 2]) == [2]

    def test_select_table_leaves_source_untouched(self):
        t = make_animals()
        africa = t.select_table(Predicate(const_pred("Location", PredComp.EQ, "Africa")))
        assert africa.read_col("Animal") == ["Lion", "Ant"]
        assert len(t) == 3


class TestAtomicPredicates:
    def test_unknown_string_constant(self):
        t = make_animals()
        eq = Predicate(const_pred("Location", PredComp.EQ, "Europe"))
        neq = Predicate(const_pred("Location", PredComp.NEQ, "Europe"))
        assert t.select(eq, remove=False) == []
        assert t.select(neq, remove=False) == [0, 1, 2]

    def test_string_ordering_is_lexicographic(self):
        t = make_animals()
        pred = Predicate(const_pred("Animal", PredComp.LT, "B"))
        assert t.select(pred, remove=False) == [2]

    def test_numeric_promotion(self):
        t = make_animals()
        pred = Predicate(const_pred("Number", PredComp.GT, 0.5))
        assert t.select(pred, remove=False) == [0, 1, 2]

    def test_string_against_number_fails(self):
        t = make_animals()
        pred = Predicate(const_pred("Animal", PredComp.EQ, 1))
        with pytest.raises(SchemaError):
            t.select(pred, remove=False)

    def test_unknown_column(self):
        t = make_animals()
        with pytest.raises(SchemaError):
            t.select(Predicate(const_pred("Colour", PredComp.EQ, "red")))

    def test_column_against_column(self):
        t = Table([("a", int), ("b", int)])
        t.extend([(1, 2), (3, 3), (5, 4)])
        pred = Predicate(col_pred("a", PredComp.GTE, "b", AttrType.INT))
        assert t.select(pred, remove=False) == [1, 2]

    def test_string_columns_compared(self):
        t = Table([("x", str), ("y", str)])
        t.extend([("a", "a"), ("b", "a"), ("a", "c")])
        eq = Predicate(col_pred("x", PredComp.EQ, "y", str))
        gt = Predicate(col_pred("x", PredComp.GT, "y", str))
        assert t.select(eq, remove=False) == [0]
        assert t.select(gt, remove=False) == [1]

    def test_select_atomic_helpers(self):
        t = make_animals()
        assert t.select_atomic_const("Size", "small", PredComp.EQ, remove=False) == [2]
        assert t.select_atomic("Animal", "Animal", PredComp.EQ, remove=False) == [0, 1, 2]
        with pytest.raises(SchemaError):
            t.select_atomic_const("Number", "one", PredComp.EQ)


class TestPredicateTree:
    def test_eval_single_row(self):
        t = make_animals()
        pred = big_african_or_medium_australian()
        assert pred.eval(t, 0)
        assert not pred.eval(t, 2)

    def test_variables(self):
        pred = big_african_or_medium_australian()
        assert sorted(set(pred.variables())) == ["Location", "Size"]

    def test_manual_tree(self):
        t = make_animals()
        root = PredicateNode(PredOp.NOT)
        root.add_left_child(PredicateNode(atom=AtomicPredicate(
            AttrType.STR, True, PredComp.EQ, "Location", str_const="Africa")))
        assert t.select(Predicate(root), remove=False) == [1]

    def test_incomplete_and_node(self):
        t = make_animals()
        node = PredicateNode(PredOp.AND, left=const_pred("Number", PredComp.EQ, 1))
        with pytest.raises(SchemaError):
            t.select(Predicate(node))

    def test_predicate_composition(self):
        t = make_animals()
        africa = Predicate(const_pred("Location", PredComp.EQ, "Africa"))
        small = Predicate(const_pred("Size", PredComp.EQ, "small"))
        assert t.select(africa & ~small, remove=False) == [0]
        assert t.select(africa | small, remove=False) == [0, 2]


class TestClassify:
    def test_classify_adds_label_column(self):
        t = make_animals()
        t.classify(big_african_or_medium_australian(), "match")
        assert t.read_col("match") == [1, 1, 0]
        assert len(t) == 3

    def test_classify_atomic_const(self):
        t = make_animals()
        t.classify_atomic_const("Location", "Africa", PredComp.EQ, "african", 7, -1)
        assert t.read_col("african") == [7, -1, 7]

    def test_classify_existing_label(self):
        t = make_animals()
        with pytest.raises(SchemaError):
            t.classify(big_african_or_medium_australian(), "Size")
