"""Tests for ASIN validation"""

import pytest

from batch_scraper.core.validation import (
    ASIN_PATTERN,
    normalize_asin,
    validate_asin,
    validate_asins,
)


class TestValidateAsin:
    """Tests for single ASIN validation"""

    @pytest.mark.parametrize("value", ["B08N5WRWNW", "B000000000", "BZZZZZZZZZ"])
    def test_valid_asins(self, value: str) -> None:
        result = validate_asin(value)

        assert result.is_valid
        assert result.sanitized_value == value

    def test_lowercase_is_normalized(self) -> None:
        result = validate_asin("  b08n5wrwnw ")

        assert result.is_valid
        assert result.sanitized_value == "B08N5WRWNW"

    @pytest.mark.parametrize(
        "value",
        ["", "A08N5WRWNW", "B08N5WRWN", "B08N5WRWNWX", "B08N5-RWNW", "0123456789"],
    )
    def test_invalid_asins(self, value: str) -> None:
        result = validate_asin(value)

        assert not result.is_valid
        assert "ASIN must be" in result.error_message

    def test_non_string_rejected(self) -> None:
        result = validate_asin(12345)

        assert not result.is_valid
        assert result.error_message == "ASIN must be a string"

    def test_pattern_requires_uppercase(self) -> None:
        assert ASIN_PATTERN.match("B08N5WRWNW")
        assert not ASIN_PATTERN.match("b08n5wrwnw")
        assert normalize_asin("b08n5wrwnw") == "B08N5WRWNW"


class TestValidateAsins:
    """Tests for batch validation and dedupe"""

    def test_dedupes_in_first_seen_order(self) -> None:
        batch = validate_asins(["B000000002", "b000000001", "B000000002", "B000000001"])

        assert batch.valid == ["B000000002", "B000000001"]
        assert batch.duplicates == 2
        assert batch.rejected == []

    def test_rejected_inputs_reported(self) -> None:
        batch = validate_asins(["B000000001", "nope", None, "B00000000"])

        assert batch.valid == ["B000000001"]
        assert batch.rejected == ["nope", "None", "B00000000"]

    def test_all_invalid(self) -> None:
        batch = validate_asins(["x", "y"])

        assert batch.valid == []
        assert batch.rejected == ["x", "y"]

    def test_empty_input(self) -> None:
        batch = validate_asins([])

        assert batch.valid == []
        assert batch.rejected == []
        assert batch.duplicates == 0
