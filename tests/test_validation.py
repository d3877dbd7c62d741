"""
Test field rules, invalid-value policies and JSON cell decoding.
"""

import json

import pytest

from stib_ingest.errors import FieldValidationError, JsonCellError
from stib_ingest.ingest.validation import (
    COLOR, LINE_CODE, LINE_ID_WITH_MODE, STOP_CODE, FieldValidator, OnInvalid,
    decode_geo, decode_line_stops, decode_localized, split_composite
)


class TestFieldRules:
    """Test the regex rules under their default policies."""

    @pytest.fixture
    def validator(self):
        return FieldValidator()

    @pytest.mark.parametrize("code", ["8042", "5408F", "abc123"])
    def test_alphanumeric_codes_pass(self, validator, code):
        assert validator.check(STOP_CODE, code, 2) is True

    @pytest.mark.parametrize("code", ["80-42", "", "80 42", "8042\n"])
    def test_special_characters_abort(self, validator, code):
        with pytest.raises(FieldValidationError) as exc_info:
            validator.check(STOP_CODE, code, 7)
        assert exc_info.value.row_number == 7
        assert exc_info.value.field == "stop code"

    @pytest.mark.parametrize("color", ["#fff", "#C4008F", "#e7298a"])
    def test_hex_colors_pass(self, validator, color):
        assert validator.check(COLOR, color, 2)

    @pytest.mark.parametrize("color", ["C4008F", "#C4008", "#ggg", "#12345678"])
    def test_bad_hex_colors_abort(self, validator, color):
        with pytest.raises(FieldValidationError):
            validator.check(COLOR, color, 2)

    def test_non_numeric_line_code_is_skipped(self, validator, caplog):
        """Night lines such as N12 are expected noise: skipped with a warning."""
        assert validator.check(LINE_CODE, "N12", 5) is False
        assert validator.skipped == 1
        assert "row 5" in caplog.text

    def test_numeric_line_code_passes(self, validator):
        assert validator.check(LINE_CODE, "12", 5) is True
        assert validator.skipped == 0


class TestPolicies:
    """Test per-rule policy overrides."""

    def test_line_code_can_be_made_fatal(self):
        validator = FieldValidator({LINE_CODE.name: OnInvalid.ABORT})
        with pytest.raises(FieldValidationError):
            validator.check(LINE_CODE, "N12", 3)

    def test_aborting_rule_can_be_made_lenient(self):
        validator = FieldValidator({STOP_CODE.name: OnInvalid.SKIP})
        assert validator.check(STOP_CODE, "80-42", 3) is False

    def test_unknown_rule_name_is_rejected(self):
        with pytest.raises(ValueError):
            FieldValidator({"no such rule": OnInvalid.SKIP})

    def test_overrides_do_not_leak_between_validators(self):
        FieldValidator({LINE_CODE.name: OnInvalid.ABORT})
        assert FieldValidator().policy(LINE_CODE) is OnInvalid.SKIP


class TestLocalizedCells:
    """Test {fr, nl} cell decoding."""

    @pytest.mark.parametrize("fr,nl", [
        ("Gare", "Station"),
        ("GARE DE L'OUEST", "WESTSTATION"),
        ("ARRÊT NON TROUVÉ", "STOP NIET GEVONDEN"),
        ("", ""),
    ])
    def test_decode_then_encode_keeps_both_fields(self, fr, nl):
        text = json.dumps({"fr": fr, "nl": nl}, ensure_ascii=False)

        decoded = decode_localized(text, "name", 2)

        assert json.loads(json.dumps(decoded)) == {"fr": fr, "nl": nl}

    def test_extra_keys_are_dropped(self):
        decoded = decode_localized('{"fr": "A", "nl": "B", "en": "C"}', "name", 2)
        assert decoded == {"fr": "A", "nl": "B"}

    def test_malformed_json_names_row(self):
        with pytest.raises(JsonCellError) as exc_info:
            decode_localized('{"fr": "A", "nl": ', "destination", 14)
        assert exc_info.value.row_number == 14
        assert "destination" in str(exc_info.value)

    @pytest.mark.parametrize("text", ['["A", "B"]', '{"fr": "A"}', '{"fr": "A", "nl": 3}', '"A"'])
    def test_wrong_shape_is_rejected(self, text):
        with pytest.raises(JsonCellError):
            decode_localized(text, "name", 2)


class TestGeoAndLineStops:
    """Test geo and ordered-stop cell decoding."""

    def test_geo_is_not_range_checked(self):
        geo = decode_geo('{"latitude": 123.4, "longitude": -500}', "location", 2)
        assert geo == {"latitude": 123.4, "longitude": -500.0}

    def test_geo_accepts_numeric_strings(self):
        geo = decode_geo('{"latitude": "50.84", "longitude": "4.35"}', "location", 2)
        assert geo == {"latitude": 50.84, "longitude": 4.35}

    @pytest.mark.parametrize("text", ['{"latitude": 50.8}', 'not json', '[50.8, 4.3]'])
    def test_bad_geo_is_rejected(self, text):
        with pytest.raises(JsonCellError):
            decode_geo(text, "location", 4)

    def test_line_stops(self):
        points = decode_line_stops('[{"id": "8042", "order": 1}, {"id": 8032, "order": "2"}]', 2)
        assert points == [{"id": "8042", "order": 1}, {"id": "8032", "order": 2}]

    @pytest.mark.parametrize("text", ['{"id": "8042"}', '[{"id": "8042"}]', '[{"order": 1}]', '[oops'])
    def test_bad_line_stops_are_rejected(self, text):
        with pytest.raises(JsonCellError):
            decode_line_stops(text, 9)


class TestCompositeIds:
    """Test "<digits><mode letter>" line ids."""

    def test_split(self):
        assert split_composite("002m", 2) == (2, "m")
        assert split_composite("12T", 2) == (12, "T")

    @pytest.mark.parametrize("value", ["002", "m002", "002mb", ""])
    def test_split_rejects(self, value):
        with pytest.raises(FieldValidationError):
            split_composite(value, 2)

    def test_rule_rejects_missing_letter(self):
        with pytest.raises(FieldValidationError):
            FieldValidator().check(LINE_ID_WITH_MODE, "002", 2)
