"""Tests for delimited text and binary persistence."""

import pickle
import zlib

import pytest
from tabula.context import TableContext
from tabula.io import load_bin, load_ss, save_bin, save_ss
from tabula.schema import AttrType
from tabula.table import Table

SCHEMA = [("Animal", str), ("Size", str), ("Location", str), ("Number", int), ("Weight", float)]


def make_animals(context=None):
    t = Table(SCHEMA, context)
    t.extend([
        ("Lion", "big", "Africa", 1, 190.5),
        ("Koala", "medium", "Australia", 1, 0.1 + 0.2),
        ("Ant", "small", "Africa", 1, 1e-06),
    ])
    return t


class TestTextFormat:
    def test_roundtrip(self, tmp_path):
        t = make_animals()
        t.remove_row(1)
        path = tmp_path / "animals.tsv"
        t.save_ss(path)
        loaded = load_ss(SCHEMA, path, TableContext(), has_title_line=True)
        assert len(loaded) == len(t)
        assert list(loaded) == list(t)

    def test_floats_are_exact(self, tmp_path):
        t = make_animals()
        path = tmp_path / "animals.tsv"
        save_ss(t, path)
        loaded = load_ss(SCHEMA, path, has_title_line=True)
        assert loaded.read_col("Weight")[1] == 0.1 + 0.2

    def test_logical_order_is_written(self, tmp_path):
        t = make_animals()
        t.order("Animal")
        path = tmp_path / "sorted.tsv"
        t.save_ss(path)
        loaded = load_ss(SCHEMA, path, has_title_line=True)
        assert loaded.read_col("Animal") == ["Ant", "Koala", "Lion"]

    def test_header_line(self, tmp_path):
        path = tmp_path / "animals.csv"
        make_animals().save_ss(path, separator=",")
        header = path.read_text().splitlines()[0]
        assert header == "Animal-1,Size-1,Location-1,Number-1,Weight-1"

    def test_relevant_columns_and_blank_lines(self, tmp_path):
        path = tmp_path / "trades.csv"
        path.write_text("sym,qty,px\nAAPL,10,150.5\n\nMSFT,-5,310.0\n")
        t = load_ss([("px", float), ("sym", str)], path, separator=",",
                    has_title_line=True, relevant_cols=[2, 0])
        assert t.read_col("sym") == ["AAPL", "MSFT"]
        assert t.read_col("px") == [150.5, 310.0]
        assert t.get_col_type("px") is AttrType.FLT

    def test_values_with_separator_are_quoted(self, tmp_path):
        t = Table([("name", str), ("n", int)])
        t.extend([("Smith, John", 1), ("say \"hi\"", 2)])
        path = tmp_path / "people.csv"
        t.save_ss(path, separator=",")
        loaded = load_ss([("name", str), ("n", int)], path, separator=",", has_title_line=True)
        assert loaded.read_col("name") == ["Smith, John", "say \"hi\""]
        assert loaded.read_col("n") == [1, 2]

    def test_parse_error_names_file_and_line(self, tmp_path):
        path = tmp_path / "bad.tsv"
        path.write_text("Lion\tbig\tAfrica\t1\t2.0\nAnt\tsmall\tAfrica\tmany\t1.0\n")
        with pytest.raises(ValueError, match="bad.tsv:2"):
            load_ss(SCHEMA, path)

    def test_short_line(self, tmp_path):
        path = tmp_path / "short.tsv"
        path.write_text("Lion\tbig\n")
        with pytest.raises(ValueError, match="short.tsv:1"):
            load_ss(SCHEMA, path)

    def test_loaded_strings_are_interned(self, tmp_path):
        ctx = TableContext()
        path = tmp_path / "animals.tsv"
        make_animals(ctx).save_ss(path)
        loaded = load_ss(SCHEMA, path, ctx, has_title_line=True)
        assert loaded.get_str_map("Location", 0) == ctx.pool.get_id("Africa")


class TestBinaryFormat:
    def test_roundtrip_keeps_deleted_slots(self, tmp_path):
        ctx = TableContext()
        t = make_animals(ctx)
        t.remove_row(1)
        t.order("Animal", asc=False)
        path = tmp_path / "animals.bin"
        t.save_bin(path)
        loaded = load_bin(path, ctx)
        assert loaded.schema == t.schema
        assert loaded.num_rows == 3
        assert loaded.num_valid_rows == 2
        assert loaded.row_ids() == t.row_ids()
        assert loaded.get_str_val("Animal", 1) == "Koala"
        assert list(loaded) == list(t)

    def test_load_into_another_pool_remaps_ids(self, tmp_path):
        t = make_animals()
        path = tmp_path / "animals.bin"
        save_bin(t, path)
        other = TableContext()
        other.intern("unrelated")
        loaded = load_bin(path, other)
        assert loaded.read_col("Location") == ["Africa", "Australia", "Africa"]
        assert loaded.get_str_map("Location", 0) == other.pool.get_id("Africa")

    def test_unknown_string_id_is_not_masked(self, tmp_path):
        t = make_animals()
        state = t._to_state()
        del state["strings"][t.get_str_map("Location", 1)]
        path = tmp_path / "corrupt.bin"
        path.write_bytes(zlib.compress(pickle.dumps(state)))
        with pytest.raises(KeyError):
            load_bin(path, TableContext())

    def test_ids_keep_counting_after_reload(self, tmp_path):
        t = make_animals()
        t.init_ids()
        t.remove_row(0)
        t.defrag()
        path = tmp_path / "animals.bin"
        t.save_bin(path)
        loaded = load_bin(path)
        row = loaded.append(("Emu", "big", "Australia", 2, 40.0))
        assert loaded.get_row_idx(3) == row
        assert loaded.get_str_val("Animal", loaded.get_row_idx(2)) == "Ant"

    def test_roundtrip_keeps_ids_and_groups(self, tmp_path):
        t = make_animals()
        t.add_id_column("id")
        t.group("Location", "g")
        path = tmp_path / "animals.bin"
        t.save_bin(path)
        loaded = load_bin(path)
        assert loaded.get_row_idx(2) == 2
        assert loaded.id_col_name == "id-1"
        assert loaded.groups("g") == {("Africa",): [0, 2], ("Australia",): [1]}
