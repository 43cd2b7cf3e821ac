"""
Unit tests for field normalization.
"""

from datetime import date, datetime

import pytest
from hypothesis import given, strategies as st

from dicomvault.utils.normalizers import (
    FieldType,
    coerce_value,
    empty_value,
    normalize,
    normalize_date,
    normalize_float,
    normalize_integer,
    normalize_string,
)


@pytest.mark.unit
class TestNormalizeDate:
    """Test suite for DICOM date reformatting."""

    def test_eight_character_date_is_reformatted(self):
        assert normalize_date("20230115") == "2023-01-15"

    def test_other_lengths_are_unchanged(self):
        assert normalize_date("2023") == "2023"
        assert normalize_date("2023-01-15") == "2023-01-15"

    def test_surrounding_whitespace_is_trimmed_first(self):
        assert normalize_date(" 20230115 ") == "2023-01-15"

    def test_empty(self):
        assert normalize_date("") == ""
        assert normalize_date(None) == ""


@pytest.mark.unit
class TestNormalizeNumbers:
    """Test suite for integer and float parsing."""

    @pytest.mark.parametrize("raw, expected", [
        ("512", 512),
        (" 256 ", 256),
        ("512.0", 512),
        ("512\\256", 512),
        ("", 0),
        ("abc", 0),
        ("nan", 0),
        ("inf", 0),
        (None, 0),
        ("9223372036854775807", 2 ** 63 - 1),
        ("9223372036854775808", 0),
        ("-9223372036854775809", 0),
        ("1e19", 0),
    ])
    def test_integer(self, raw, expected):
        assert normalize_integer(raw) == expected

    @pytest.mark.parametrize("raw, expected", [
        ("40", 40.0),
        ("-600.5", -600.5),
        ("40\\400", 40.0),
        ("", 0.0),
        ("wide", 0.0),
        ("nan", 0.0),
        ("-inf", 0.0),
    ])
    def test_float(self, raw, expected):
        assert normalize_float(raw) == expected

    @given(st.text())
    def test_integer_never_raises(self, raw):
        assert isinstance(normalize(raw, FieldType.INTEGER), int)

    @given(st.text())
    def test_float_never_raises(self, raw):
        assert isinstance(normalize(raw, FieldType.FLOAT), float)


@pytest.mark.unit
class TestNormalizeDispatch:
    """Test suite for type dispatch and sentinels."""

    def test_string_is_trimmed(self):
        assert normalize_string("  CHEST ") == "CHEST"
        assert normalize("  CHEST ", FieldType.STRING) == "CHEST"

    def test_empty_sentinels(self):
        assert empty_value(FieldType.STRING) == ""
        assert empty_value(FieldType.DATE) == ""
        assert empty_value(FieldType.INTEGER) == 0
        assert empty_value(FieldType.FLOAT) == 0.0

    def test_failure_falls_back_to_sentinel(self):
        class Unprintable:
            def __str__(self):
                raise ValueError("no text")

        assert normalize(Unprintable(), FieldType.STRING) == ""
        assert normalize(Unprintable(), FieldType.INTEGER) == 0


@pytest.mark.unit
class TestCoerceValue:
    """Test suite for coercion of already-typed payload values."""

    def test_none_is_empty(self):
        assert coerce_value(None, FieldType.INTEGER) == 0
        assert coerce_value(None, FieldType.STRING) == ""

    def test_numbers(self):
        assert coerce_value(512, FieldType.INTEGER) == 512
        assert coerce_value(40.5, FieldType.FLOAT) == 40.5
        assert coerce_value("400", FieldType.FLOAT) == 400.0

    def test_out_of_range_integers_are_empty(self):
        # e.g. a JSON upload form carrying {"rows": 1e19}
        assert coerce_value(1e19, FieldType.INTEGER) == 0
        assert coerce_value(10 ** 20, FieldType.INTEGER) == 0
        assert coerce_value(-(10 ** 20), FieldType.INTEGER) == 0

    def test_booleans_are_not_numbers(self):
        assert coerce_value(True, FieldType.INTEGER) == 0

    def test_date_objects(self):
        assert coerce_value(date(1980, 1, 15), FieldType.DATE) == "1980-01-15"
        assert coerce_value(datetime(2023, 1, 15, 10, 30), FieldType.DATE) == "2023-01-15"

    def test_compact_date_text(self):
        assert coerce_value("19800115", FieldType.DATE) == "1980-01-15"
