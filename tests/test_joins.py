"""Tests for equi-joins and similarity joins."""

from collections import Counter

import pytest
from tabula.context import TableContext
from tabula.errors import IncompatibleSchemaError, SchemaError
from tabula.metrics import (
    SimType,
    haversine_distance,
    jaccard_distance,
    l1_distance,
    l2_distance,
)
from tabula.table import Table


def make_keyed(keys, payload_name, context):
    t = Table([("k", int), (payload_name, str)], context)
    t.extend([(k, f"{payload_name}{i}") for i, k in enumerate(keys)])
    return t


class TestEquiJoin:
    def test_cardinality(self):
        ctx = TableContext()
        left_keys = [1, 1, 2, 3, 2, 7]
        right_keys = [1, 2, 2, 4, 1, 1]
        left = make_keyed(left_keys, "a", ctx)
        right = make_keyed(right_keys, "b", ctx)
        joined = left.join("k", right, "k")
        c1, c2 = Counter(left_keys), Counter(right_keys)
        assert len(joined) == sum(c1[v] * c2[v] for v in c1)

    def test_output_schema(self):
        ctx = TableContext()
        joined = make_keyed([1], "a", ctx).join("k", make_keyed([1], "b", ctx), "k")
        assert joined.columns == ["k-1", "a-1", "k-2", "b-1"]
        assert list(joined) == [{"k-1": 1, "a-1": "a0", "k-2": 1, "b-1": "b0"}]

    def test_deleted_rows_do_not_join(self):
        ctx = TableContext()
        left = make_keyed([1, 1], "a", ctx)
        right = make_keyed([1], "b", ctx)
        left.remove_row(0)
        assert left.join("k", right, "k").read_col("a") == ["a1"]

    def test_chained_joins_keep_names_unique(self):
        ctx = TableContext()
        a = make_keyed([1, 2], "a", ctx)
        b = make_keyed([1, 2], "b", ctx)
        c = make_keyed([2], "c", ctx)
        ab = a.join("k", b, "k")
        abc = ab.join("k-1", c, "k")
        assert abc.columns == ["k-1", "a-1", "k-2", "b-1", "k-3", "c-1"]
        assert list(abc) == [{"k-1": 2, "a-1": "a1", "k-2": 2, "b-1": "b1",
                              "k-3": 2, "c-1": "c0"}]

    def test_join_against_joined_table_on_the_right(self):
        ctx = TableContext()
        ab = make_keyed([1], "a", ctx).join("k", make_keyed([1], "b", ctx), "k")
        joined = make_keyed([1], "c", ctx).join("k", ab, "k-2")
        assert joined.columns == ["k-1", "c-1", "k-2", "a-1", "k-3", "b-1"]

    def test_self_join(self):
        t = Table([("Animal", str), ("Location", str)])
        t.extend([("Lion", "Africa"), ("Koala", "Australia"), ("Ant", "Africa")])
        joined = t.self_join("Location")
        assert len(joined) == 5
        assert joined.columns == ["Animal-1", "Location-1", "Animal-2", "Location-2"]

    def test_string_join_across_contexts(self):
        left = Table([("city", str)], TableContext())
        right = Table([("city", str), ("country", str)], TableContext())
        right.append(("Nairobi", "Kenya"))
        left.extend([("Lima",), ("Nairobi",)])
        joined = left.join("city", right, "city")
        assert joined.read_col("country") == ["Kenya"]
        assert joined.context is left.context

    def test_type_mismatch(self):
        left = Table([("k", int)])
        right = Table([("k", str)])
        with pytest.raises(IncompatibleSchemaError):
            left.join("k", right, "k")

    def test_source_tables_unchanged(self):
        ctx = TableContext()
        left = make_keyed([1, 2], "a", ctx)
        right = make_keyed([2], "b", ctx)
        left.join("k", right, "k")
        assert left.columns == ["k-1", "a-1"]
        assert len(left) == 2


class TestMetrics:
    def test_l1_l2(self):
        assert l1_distance((0, 0), (3, 4)) == 7
        assert l2_distance((0, 0), (3, 4)) == 5.0

    def test_jaccard(self):
        assert jaccard_distance(["a", "b"], ["a", "c"]) == pytest.approx(2 / 3)
        assert jaccard_distance([], []) == 0.0

    def test_haversine_london_paris(self):
        d = haversine_distance((51.5074, -0.1278), (48.8566, 2.3522))
        assert 340 < d < 346


class TestSimJoin:
    def make_points(self, context):
        t = Table([("name", str), ("x", float), ("y", float)], context)
        t.extend([("p", 0.0, 0.0), ("q", 1.0, 1.0), ("r", 5.0, 5.0)])
        return t

    def test_l2_threshold(self):
        ctx = TableContext()
        pts = self.make_points(ctx)
        probe = Table([("px", float), ("py", float)], ctx)
        probe.append((0.5, 0.5))
        joined = pts.sim_join(["x", "y"], probe, ["px", "py"], "dist", SimType.L2, 1.0)
        assert joined.read_col("name") == ["p", "q"]
        assert joined.read_col("dist") == pytest.approx([0.5 ** 0.5] * 2)

    def test_self_sim_join_l1(self):
        pts = self.make_points(TableContext())
        joined = pts.self_sim_join(["x", "y"], "dist", "l1", 2.0)
        pairs = set(zip(joined.read_col("name-1"), joined.read_col("name-2")))
        assert pairs == {("p", "p"), ("p", "q"), ("q", "p"), ("q", "q"), ("r", "r")}

    def test_jaccard_on_string_columns(self):
        t = Table([("t1", str), ("t2", str)])
        t.extend([("a", "b"), ("a", "c"), ("x", "y")])
        joined = t.self_sim_join(["t1", "t2"], "dist", SimType.JACCARD, 0.7)
        assert len(joined) == 5

    def test_haversine(self):
        cities = Table([("city", str), ("lat", float), ("lon", float)])
        cities.extend([
            ("London", 51.5074, -0.1278),
            ("Paris", 48.8566, 2.3522),
            ("Tokyo", 35.6762, 139.6503),
        ])
        joined = cities.self_sim_join(["lat", "lon"], "km", SimType.HAVERSINE, 500.0)
        near = {(a, b) for a, b in zip(joined.read_col("city-1"), joined.read_col("city-2"))
                if a != b}
        assert near == {("London", "Paris"), ("Paris", "London")}

    def test_per_group_uses_distinct_pairs(self):
        t = Table([("g", int), ("v", float)])
        t.extend([(0, 1.0), (0, 1.5), (0, 9.0), (1, 1.2)])
        joined = t.self_sim_join_per_group("g", ["v"], "d", SimType.L1, 1.0)
        assert len(joined) == 1
        assert joined.read_col("v-1") == [1.0]
        assert joined.read_col("v-2") == [1.5]

    def test_invalid_arguments(self):
        pts = self.make_points(TableContext())
        with pytest.raises(IncompatibleSchemaError):
            pts.self_sim_join(["name"], "d", SimType.L2, 1.0)
        with pytest.raises(IncompatibleSchemaError):
            pts.self_sim_join(["x"], "d", SimType.HAVERSINE, 1.0)
        with pytest.raises(IncompatibleSchemaError):
            pts.self_sim_join(["x", "y"], "d", SimType.JACCARD, 1.0)
        with pytest.raises(IncompatibleSchemaError):
            pts.sim_join(["x", "y"], pts, ["x"], "d", SimType.L1, 1.0)

    def test_distance_column_collision(self):
        pts = self.make_points(TableContext())
        with pytest.raises(SchemaError):
            pts.self_sim_join(["x", "y"], "name-1", SimType.L1, 1.0)


class TestIsNextK:
    def test_successors_within_group(self):
        t = Table([("user", int), ("ts", int)])
        t.extend([(1, 30), (1, 10), (2, 5), (1, 20), (2, 7)])
        pairs = t.is_next_k("ts", 2, "user")
        got = list(zip(pairs.read_col("ts-1"), pairs.read_col("ts-2")))
        assert got == [(10, 20), (10, 30), (20, 30), (5, 7)]
