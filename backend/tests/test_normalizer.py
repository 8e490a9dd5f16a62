"""
Unit tests for value normalization helpers.
"""

import pytest

from intake.services.normalizer import clean_text, sanitize_amount


class TestSanitizeAmount:

    @pytest.mark.parametrize("raw,expected", [
        ("$1,234.56 NTE", "1234.56"),
        ("500", "500.00"),
        ("NTE $400.00", "400.00"),
        ("125", "125.00"),
        ("12.345", "12.35"),
        ("0.005", "0.01"),
        (".5", "0.50"),
        ("7.", "7.00"),
        ("1.2.3", "1.20"),
        (250, "250.00"),
    ])
    def test_parses_leading_number(self, raw, expected):
        assert sanitize_amount(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "N/A", "TBD", ".", "$"])
    def test_no_number_returns_none(self, raw):
        assert sanitize_amount(raw) is None


class TestCleanText:

    def test_trims(self):
        assert clean_text("  Acme Corp  ") == "Acme Corp"

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_empty_becomes_none(self, raw):
        assert clean_text(raw) is None

    def test_non_string_is_stringified(self):
        assert clean_text(1910446) == "1910446"
