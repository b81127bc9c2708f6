"""Tests for column types and name normalisation."""

import pytest
from tabula.errors import SchemaError
from tabula.schema import (
    AttrType,
    normalize_col_name,
    parse_schema,
    strip_ordinal,
    to_attr_type,
    with_ordinal,
)


class TestAttrType:
    def test_python_types(self):
        assert to_attr_type(int) is AttrType.INT
        assert to_attr_type(float) is AttrType.FLT
        assert to_attr_type(str) is AttrType.STR

    def test_type_names(self):
        assert to_attr_type("int") is AttrType.INT
        assert to_attr_type("FLOAT") is AttrType.FLT
        assert to_attr_type("string") is AttrType.STR

    def test_unsupported(self):
        with pytest.raises(SchemaError):
            to_attr_type(list)
        with pytest.raises(SchemaError):
            to_attr_type("decimal")

    def test_zero_values(self):
        assert AttrType.INT.zero == 0
        assert AttrType.FLT.zero == 0.0
        assert AttrType.STR.zero == ""
        assert not AttrType.STR.is_numeric


class TestNormalisation:
    def test_suffix_added(self):
        assert normalize_col_name("Animal") == "Animal-1"

    def test_idempotent(self):
        assert normalize_col_name(normalize_col_name("Animal")) == "Animal-1"
        assert normalize_col_name("x-2") == "x-2"

    def test_underscore_passes_through(self):
        assert normalize_col_name("_id") == "_id"

    def test_empty_name(self):
        with pytest.raises(SchemaError):
            normalize_col_name("")

    def test_ordinals(self):
        assert strip_ordinal("Animal-1") == "Animal"
        assert strip_ordinal("plain") == "plain"
        assert with_ordinal("Animal-1", 2) == "Animal-2"


class TestParseSchema:
    def test_parse(self):
        schema = parse_schema("animal:str, n:int,w:float")
        assert schema == [("animal", AttrType.STR), ("n", AttrType.INT), ("w", AttrType.FLT)]

    def test_bad_entry(self):
        with pytest.raises(SchemaError):
            parse_schema("animal")
