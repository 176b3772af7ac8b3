"""Unit tests for date cell parsing."""

from datetime import datetime

import pytest

from pps.ingestion.dates import parse_date


class TestParseDate:

    @pytest.mark.parametrize("value, expected", [
        ("2023-05-01T10:30:00.000+03:00", datetime(2023, 5, 1, 7, 30)),
        ("2023-05-01T10:30:00Z", datetime(2023, 5, 1, 10, 30)),
        ("2023-05-01T10:30:00", datetime(2023, 5, 1, 10, 30)),
        ("2023-05-01 10:30", datetime(2023, 5, 1, 10, 30)),
        ("2023-05-01", datetime(2023, 5, 1)),
        ("13/05/2023", datetime(2023, 5, 13)),
        ("13.05.2023", datetime(2023, 5, 13)),
        ("13-05-2023", datetime(2023, 5, 13)),
    ])
    def test_parses_supported_formats(self, value, expected):
        assert parse_date(value) == expected

    def test_ambiguous_slash_date_is_read_month_first(self):
        """Test that 05/01/2023 is May 1st, not January 5th."""
        assert parse_date("05/01/2023") == datetime(2023, 5, 1)

    def test_results_are_naive(self):
        assert parse_date("2023-05-01T10:30:00+02:00").tzinfo is None

    def test_surrounding_whitespace_is_ignored(self):
        assert parse_date("  2023-05-01  ") == datetime(2023, 5, 1)

    @pytest.mark.parametrize("value", ["", "   ", None])
    def test_blank_cells_give_none(self, value):
        assert parse_date(value) is None

    @pytest.mark.parametrize("value", ["not a date", "2023-13-45", "yesterday"])
    def test_unparseable_cells_give_none(self, value):
        assert parse_date(value) is None

    def test_date_only_and_utc_midnight_are_equal(self):
        assert parse_date("2023-05-01") == parse_date("2023-05-01T00:00:00.000Z")
