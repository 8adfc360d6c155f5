"""Tests for time arithmetic helpers."""

from datetime import date, datetime, time

from nowline.engine.timeutil import (
    add_minutes,
    ceil_to_minute,
    compare,
    coverage_minutes,
    floor_to_minute,
    format_iso,
    minutes_between,
    parse_hhmm,
    parse_iso,
    subtract_exclusions,
    window_bounds,
    window_spans,
)
from nowline.models.workspace import UnpluggedWindow

DAY = date(2024, 1, 1)


def _at(hour, minute=0, second=0, day=DAY):
    return datetime(day.year, day.month, day.day, hour, minute, second)


def _window(start, end):
    return UnpluggedWindow(id="w", workspace_id="ws", label="Break", start_time=start, end_time=end)


class TestCompare:
    """Test compare() ordering."""

    def test_orders_datetimes(self):
        assert compare(_at(9), _at(10)) == -1
        assert compare(_at(10), _at(9)) == 1
        assert compare(_at(9), _at(9)) == 0

    def test_mixes_iso_and_hhmm(self):
        assert compare("2024-01-01T09:30:00", "09:45", reference_date=DAY) == -1
        assert compare("09:45", _at(9, 45), reference_date=DAY) == 0


class TestArithmetic:
    """Test minute arithmetic and rounding."""

    def test_add_minutes_crosses_midnight(self):
        assert add_minutes(_at(23, 50), 20) == datetime(2024, 1, 2, 0, 10)

    def test_minutes_between_floors(self):
        assert minutes_between(_at(9), _at(9, 30, 59)) == 30

    def test_floor_and_ceil(self):
        assert floor_to_minute(_at(9, 5, 30)) == _at(9, 5)
        assert ceil_to_minute(_at(9, 5, 30)) == _at(9, 6)
        assert ceil_to_minute(_at(9, 5)) == _at(9, 5)

    def test_iso_round_trip_format(self):
        assert format_iso(_at(14, 5)) == "2024-01-01T14:05:00"
        assert parse_iso("2024-01-01T14:05") == _at(14, 5)

    def test_parse_hhmm(self):
        assert parse_hhmm("07:05") == time(7, 5)


class TestSubtractExclusions:
    """Test subtract_exclusions() carving."""

    def test_no_exclusions(self):
        assert subtract_exclusions((_at(9), _at(10)), []) == [(_at(9), _at(10))]

    def test_exclusion_in_the_middle(self):
        pieces = subtract_exclusions((_at(14), _at(15, 30)), [(_at(14, 30), _at(15))])
        assert pieces == [(_at(14), _at(14, 30)), (_at(15), _at(15, 30))]

    def test_overlapping_exclusions_in_any_order(self):
        pieces = subtract_exclusions(
            (_at(9), _at(12)),
            [(_at(10, 30), _at(11)), (_at(10), _at(10, 45))],
        )
        assert pieces == [(_at(9), _at(10)), (_at(11), _at(12))]

    def test_exclusion_covering_everything(self):
        assert subtract_exclusions((_at(9), _at(10)), [(_at(8), _at(11))]) == []

    def test_zero_length_interval(self):
        assert subtract_exclusions((_at(9), _at(9)), []) == []
        assert subtract_exclusions((_at(10), _at(9)), []) == []

    def test_touching_exclusion_leaves_no_empty_piece(self):
        pieces = subtract_exclusions((_at(9), _at(10)), [(_at(9), _at(9, 30))])
        assert pieces == [(_at(9, 30), _at(10))]


class TestWindows:
    """Test projecting daily windows onto concrete days."""

    def test_plain_window(self):
        assert window_bounds(_window("12:00", "13:00"), DAY) == (_at(12), _at(13))

    def test_overnight_window_runs_into_next_day(self):
        assert window_bounds(_window("22:00", "06:00"), DAY) == (_at(22), datetime(2024, 1, 2, 6, 0))

    def test_empty_window(self):
        assert window_bounds(_window("12:00", "12:00"), DAY) is None

    def test_spans_include_previous_evening(self):
        spans = window_spans([_window("22:00", "06:00")], DAY, DAY)
        assert spans[0] == (datetime(2023, 12, 31, 22, 0), _at(6))
        assert spans[1] == (_at(22), datetime(2024, 1, 2, 6, 0))

    def test_coverage_of_union(self):
        windows = [_window("12:00", "13:00"), _window("12:30", "14:00"), _window("23:00", "01:00")]
        assert coverage_minutes(windows) == 120 + 120

    def test_full_day_coverage(self):
        assert coverage_minutes([_window("00:00", "12:00"), _window("12:00", "00:00")]) == 1440
