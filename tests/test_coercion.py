"""
Tests for the value coercion helpers used by the extractors.

Covers: finite_number, first_number, timestamp/date parsing variants,
and the tolerant sort key.
"""
import math
from datetime import date, datetime, timezone

from pipeline.coercion import (
    date_sort_key,
    finite_number,
    first_number,
    first_present,
    midnight_utc,
    parse_calendar_date,
    parse_local_timestamp,
    parse_timestamp,
)


class TestFiniteNumber:

    def test_int_and_float_pass_through(self):
        assert finite_number(7) == 7
        assert finite_number(2.5) == 2.5

    def test_rejects_non_finite(self):
        assert finite_number(math.nan) is None
        assert finite_number(math.inf) is None

    def test_rejects_int_beyond_float_range(self):
        assert finite_number(10**400) is None
        assert finite_number(-(10**400)) is None
        assert finite_number(10**300) == 10**300

    def test_rejects_bool_and_strings(self):
        assert finite_number(True) is None
        assert finite_number("12") is None
        assert finite_number(None) is None

    def test_first_number_skips_missing_spelling(self):
        assert first_number({"avgHr": 140}, "averageHR", "avgHr") == 140
        assert first_number({"averageHR": None, "avgHr": "x"}, "averageHR", "avgHr") is None

    def test_first_present(self):
        assert first_present({"a": None, "b": 0}, "a", "b") == 0
        assert first_present({}, "a") is None


class TestParseTimestamp:

    def test_iso_without_zone_is_utc(self):
        ts = parse_timestamp("2024-03-02T22:30:00.0")
        assert ts == datetime(2024, 3, 2, 22, 30, tzinfo=timezone.utc)

    def test_gmt_suffix(self):
        ts = parse_timestamp("2024-03-02 22:30:00 GMT")
        assert ts == datetime(2024, 3, 2, 22, 30, tzinfo=timezone.utc)

    def test_epoch_millis(self):
        ts = parse_timestamp(1709418600000)
        assert ts == datetime(2024, 3, 2, 22, 30, tzinfo=timezone.utc)

    def test_garbage_returns_none(self):
        assert parse_timestamp("not a date") is None
        assert parse_timestamp("") is None
        assert parse_timestamp(None) is None
        assert parse_timestamp({"x": 1}) is None
        assert parse_timestamp(math.nan) is None

    def test_huge_epoch_returns_none(self):
        assert parse_timestamp(10**400) is None
        assert parse_timestamp(10**30) is None
        assert parse_local_timestamp(10**400) is None
        assert parse_calendar_date(10**400) is None

    def test_relative_words_are_not_dates(self):
        for word in ("now", "today", "tomorrow", "yesterday", " now "):
            assert parse_timestamp(word) is None
            assert parse_local_timestamp(word) is None

    def test_local_timestamp_is_naive(self):
        ts = parse_local_timestamp("2024-03-02T23:30:00.0")
        assert ts == datetime(2024, 3, 2, 23, 30)
        assert ts.tzinfo is None


class TestParseCalendarDate:

    def test_iso_date(self):
        assert parse_calendar_date("2024-03-03") == date(2024, 3, 3)

    def test_datetime_string_truncated(self):
        assert parse_calendar_date("2024-03-03T10:00:00") == date(2024, 3, 3)

    def test_epoch_millis(self):
        assert parse_calendar_date(1709424000000) == date(2024, 3, 3)

    def test_invalid(self):
        assert parse_calendar_date("03/03/2024") is None
        assert parse_calendar_date(None) is None
        assert parse_calendar_date(False) is None


class TestDateSortKey:

    def test_mixed_inputs_are_comparable(self):
        keys = [
            date_sort_key("2024-03-02"),
            date_sort_key("2024-03-01 10:00:00 GMT"),
            date_sort_key(date(2024, 3, 3)),
            date_sort_key(datetime(2024, 2, 28, 12, 0)),
        ]
        assert sorted(keys) == [keys[3], keys[1], keys[0], keys[2]]

    def test_unparseable_sorts_first(self):
        assert date_sort_key("garbage") < date_sort_key("1990-01-01")

    def test_midnight_utc(self):
        assert midnight_utc(date(2024, 3, 3)) == datetime(2024, 3, 3, tzinfo=timezone.utc)
