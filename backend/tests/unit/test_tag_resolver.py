"""
Unit tests for tag resolution over element dictionaries.
"""

import pytest

from dicomvault.core.interfaces import DicomElement
from dicomvault.utils.tag_resolver import (
    candidate_keys,
    resolve_tag,
    tag_spellings,
    value_to_text,
)


class FlakyElements(dict):
    """Element dictionary whose lookup fails for one key spelling."""

    def __init__(self, failing_key, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.failing_key = failing_key

    def get(self, key, default=None):
        if key == self.failing_key:
            raise RuntimeError("corrupt element")
        return super().get(key, default)


@pytest.mark.unit
class TestKeySpellings:
    """Test suite for candidate key generation."""

    def test_spellings_in_lookup_order(self):
        assert tag_spellings("0020000D") == [
            "0020000D",
            "x0020000D",
            "0020000d",
            "0020000D",
            "0020000D",
        ]

    def test_candidate_keys_deduplicated_with_keyword_last(self):
        keys = candidate_keys("0020000D", ["StudyInstanceUID"])

        assert keys == ["0020000D", "x0020000D", "0020000d", "StudyInstanceUID"]

    def test_punctuated_tag_is_stripped(self):
        keys = candidate_keys("(0010,0010)", ["PatientName"])

        assert "00100010" in keys
        assert keys[-1] == "PatientName"

    def test_keyword_only_field(self):
        assert candidate_keys(None, ["PatientName"]) == ["PatientName"]


@pytest.mark.unit
class TestResolveTag:
    """Test suite for resolve_tag."""

    def test_keyword_fallback(self):
        """Only the keyword alias is present."""
        # Arrange
        elements = {"PatientName": {"value": "Doe^Jane"}}

        # Act
        result = resolve_tag(elements, candidate_keys("00100010", ["PatientName"]))

        # Assert
        assert result == "Doe^Jane"

    def test_array_value_joined_with_backslash(self):
        elements = {"00080008": {"value": ["CT", "AXIAL"]}}

        result = resolve_tag(elements, candidate_keys("00080008", ["ImageType"]))

        assert result == "CT\\AXIAL"

    def test_prefixed_spelling(self):
        elements = {"x00100020": "PAT9"}

        assert resolve_tag(elements, candidate_keys("00100020", ["PatientID"])) == "PAT9"

    def test_lower_case_spelling_with_dicom_json_value(self):
        elements = {"0020000d": {"vr": "UI", "Value": ["1.2.3"]}}

        assert resolve_tag(elements, candidate_keys("0020000D", ["StudyInstanceUID"])) == "1.2.3"

    def test_first_spelling_wins(self):
        elements = {"00080060": "MR", "Modality": "CT"}

        assert resolve_tag(elements, candidate_keys("00080060", ["Modality"])) == "MR"

    @pytest.mark.parametrize("empty", ["", "   ", "\x00", " \x00 ", "\t", "\r\n", " \t\x00", None, []])
    def test_empty_values_fall_through(self, empty):
        elements = {"00100010": {"value": empty}, "PatientName": "Jane"}

        assert resolve_tag(elements, candidate_keys("00100010", ["PatientName"])) == "Jane"

    def test_lookup_error_only_skips_that_spelling(self):
        # Arrange
        elements = FlakyElements("00100010", {"x00100010": "Doe^John"})

        # Act
        result = resolve_tag(elements, candidate_keys("00100010", ["PatientName"]))

        # Assert
        assert result == "Doe^John"

    def test_every_lookup_failing_yields_empty(self):
        class Broken:
            def get(self, key):
                raise KeyError(key)

        assert resolve_tag(Broken(), ["00100010", "PatientName"]) == ""

    def test_missing_tag_yields_empty(self):
        assert resolve_tag({"00080060": "CT"}, candidate_keys("00100010", ["PatientName"])) == ""

    def test_none_dictionary_yields_empty(self):
        assert resolve_tag(None, ["00100010"]) == ""

    def test_element_objects_with_value_attribute(self):
        elements = {"00280010": DicomElement(tag="00280010", vr="US", keyword="Rows", value=512)}

        assert resolve_tag(elements, candidate_keys("00280010", ["Rows"])) == "512"

    def test_mapping_without_get_uses_indexing(self):
        class IndexOnly:
            def __init__(self, data):
                self._data = data

            def __getitem__(self, key):
                return self._data[key]

        elements = IndexOnly({"PatientSex": "F"})

        assert resolve_tag(elements, candidate_keys("00100040", ["PatientSex"])) == "F"


@pytest.mark.unit
class TestValueToText:
    """Test suite for raw value rendering."""

    def test_person_name_json(self):
        assert value_to_text([{"Alphabetic": "Doe^Jane"}]) == "Doe^Jane"

    def test_padded_bytes(self):
        assert value_to_text(b"CT\x00") == "CT"

    def test_numbers(self):
        assert value_to_text(40.5) == "40.5"
        assert value_to_text([40, 400]) == "40\\400"

    def test_none(self):
        assert value_to_text(None) == ""
