"""Tests for the sort engine and Table.order()."""

import numpy as np
import pytest
from tabula.context import ExecutionConfig, TableContext
from tabula.errors import SchemaError
from tabula.sorting import compare_rows, merge, quicksort, sort_row_ids
from tabula.table import Table


def make_scores(context=None):
    t = Table([("name", str), ("score", int), ("team", int)], context)
    t.extend([
        ("delta", 5, 1),
        ("alpha", 3, 0),
        ("charlie", 9, 1),
        ("bravo", 1, 0),
    ])
    return t


class TestComparator:
    def test_most_significant_key_wins(self):
        keys = [[1, 1, 0], [5, 2, 9]]
        assert compare_rows(0, 1, keys) > 0
        assert compare_rows(2, 0, keys) < 0
        assert compare_rows(0, 0, keys) == 0

    def test_descending_flips_sign(self):
        keys = [[1, 2]]
        assert compare_rows(0, 1, keys, asc=False) > 0

    def test_quicksort_matches_sorted(self):
        rng = np.random.default_rng(3)
        values = rng.integers(0, 50, 500).tolist()
        keys = [values]
        rows = quicksort(list(range(len(values))), keys, threshold=8)
        assert [values[r] for r in rows] == sorted(values)

    def test_merge(self):
        keys = [[0, 1, 2, 3, 4, 5]]
        assert merge([0, 2, 4], [1, 3, 5], keys) == [0, 1, 2, 3, 4, 5]


class TestOrder:
    def test_order_by_int(self):
        t = make_scores()
        t.order("score")
        assert t.row_ids() == [3, 1, 0, 2]
        assert t.read_col("score") == [1, 3, 5, 9]

    def test_order_descending(self):
        t = make_scores()
        t.order(["score"], asc=False)
        assert t.read_col("score") == [9, 5, 3, 1]

    def test_order_by_string(self):
        t = make_scores()
        t.order("name")
        assert t.read_col("name") == ["alpha", "bravo", "charlie", "delta"]

    def test_physical_rows_do_not_move(self):
        t = make_scores()
        t.order("score")
        assert t.get_str_val("name", 0) == "delta"

    def test_rank_column(self):
        t = make_scores()
        t.order("score", "rank")
        assert t.get_int_val("rank", 3) == 0
        assert t.get_int_val("rank", 2) == 3
        assert t.read_col("rank") == [0, 1, 2, 3]

    def test_rank_resets_on_most_significant_column(self):
        t = make_scores()
        t.order(["team", "score"], "rank", reset_rank_by_msc=True)
        assert t.read_col("name") == ["bravo", "alpha", "delta", "charlie"]
        assert t.read_col("rank") == [0, 1, 0, 1]

    def test_order_skips_deleted_rows(self):
        t = make_scores()
        t.remove_row(2)
        t.order("score", asc=False)
        assert t.row_ids() == [0, 1, 3]

    def test_rank_column_must_be_new(self):
        t = make_scores()
        with pytest.raises(SchemaError):
            t.order("score", "team")

    def test_unknown_column(self):
        t = make_scores()
        with pytest.raises(SchemaError):
            t.order("height")

    def test_order_then_append(self):
        t = make_scores()
        t.order("score")
        t.append(("echo", 0, 2))
        assert t.read_col("name")[-1] == "echo"


class TestParallelSort:
    def make_random(self, context, n=2000):
        rng = np.random.default_rng(11)
        t = Table([("a", int), ("b", float)], context)
        t.extend(zip(rng.integers(0, 40, n).tolist(), rng.random(n).tolist()))
        return t

    def test_parallel_order_matches_serial(self):
        serial = self.make_random(TableContext())
        parallel = self.make_random(TableContext(ExecutionConfig(parallel=True, workers=4,
                                                                 chunks_per_worker=2)))
        serial.order(["a", "b"])
        parallel.order(["a", "b"])
        assert parallel.read_col("a") == serial.read_col("a")
        assert parallel.read_col("b") == serial.read_col("b")

    def test_parallel_sort_is_sorted(self):
        t = self.make_random(TableContext())
        config = ExecutionConfig(parallel=True, workers=3, insertion_sort_threshold=5)
        rows = sort_row_ids(t, t.row_ids(), ["a"], asc=False, config=config)
        values = [t.get_int_val("a", r) for r in rows]
        assert values == sorted(values, reverse=True)
        assert sorted(rows) == t.row_ids()
