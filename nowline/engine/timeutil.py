"""Time arithmetic for nowline.

Pure functions over naive local datetimes, ISO-8601 timestamps and "HH:mm"
wall-clock strings. No state, no clock access.
"""

from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from nowline.models.constants import ISO_FORMAT, HHMM_FORMAT, MINUTES_PER_DAY


Interval = Tuple[datetime, datetime]
TimeLike = Union[datetime, str]


def parse_hhmm(value: str) -> time:
    """Parse an "HH:mm" string into a time."""
    return datetime.strptime(value, HHMM_FORMAT).time()


def format_hhmm(value: Union[datetime, time]) -> str:
    return value.strftime(HHMM_FORMAT)


def parse_iso(value: str) -> datetime:
    """Parse a local ISO-8601 timestamp ("YYYY-MM-DDTHH:MM:SS", seconds optional)."""
    try:
        return datetime.strptime(value, ISO_FORMAT)
    except ValueError:
        return datetime.fromisoformat(value)


def format_iso(value: datetime) -> str:
    return value.strftime(ISO_FORMAT)


def to_datetime(value: TimeLike, reference_date: Optional[date] = None) -> datetime:
    """Coerce a datetime, ISO timestamp or "HH:mm" string to a datetime.

    "HH:mm" strings are anchored on ``reference_date`` (today when omitted).
    """
    if isinstance(value, datetime):
        return value
    if len(value) <= 5 and ":" in value:
        anchor = reference_date or date.today()
        return datetime.combine(anchor, parse_hhmm(value))
    return parse_iso(value)


def compare(a: TimeLike, b: TimeLike, reference_date: Optional[date] = None) -> int:
    """Strict ordering of two timestamps: -1 if a < b, 0 if equal, 1 if a > b."""
    left = to_datetime(a, reference_date)
    right = to_datetime(b, reference_date)
    if left < right:
        return -1
    if left > right:
        return 1
    return 0


def add_minutes(value: TimeLike, minutes: int, reference_date: Optional[date] = None) -> datetime:
    return to_datetime(value, reference_date) + timedelta(minutes=minutes)


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from start to end (floored)."""
    return int((end - start).total_seconds() // 60)


def floor_to_minute(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


def ceil_to_minute(value: datetime) -> datetime:
    """Round up to the next whole minute (unchanged when already on one)."""
    floored = floor_to_minute(value)
    if floored == value:
        return value
    return floored + timedelta(minutes=1)


def day_start(day: date) -> datetime:
    return datetime.combine(day, time(0, 0))


def day_end(day: date) -> datetime:
    """Midnight that closes the given day."""
    return day_start(day) + timedelta(days=1)


def window_bounds(window, day: date) -> Optional[Interval]:
    """Project a daily window onto a concrete day.

    A window whose end is earlier than its start runs past midnight into the
    next day. A window whose start equals its end is empty and yields None.
    """
    start_t = parse_hhmm(window.start_time)
    end_t = parse_hhmm(window.end_time)
    if start_t == end_t:
        return None
    start = datetime.combine(day, start_t)
    end = datetime.combine(day, end_t)
    if end_t < start_t:
        end += timedelta(days=1)
    return (start, end)


def window_spans(windows: Iterable, first_day: date, last_day: date) -> List[Interval]:
    """Concrete window intervals for every day in [first_day, last_day], chronological.

    The day before ``first_day`` is included so overnight windows that started
    the previous evening are not missed.
    """
    spans: List[Interval] = []
    windows = list(windows)
    day = first_day - timedelta(days=1)
    while day <= last_day:
        for window in windows:
            bounds = window_bounds(window, day)
            if bounds is not None:
                spans.append(bounds)
        day += timedelta(days=1)
    spans.sort()
    return spans


def subtract_exclusions(interval: Interval, exclusions: Sequence[Interval]) -> List[Interval]:
    """Remove exclusion intervals from a candidate interval.

    Args:
        interval: Candidate (start, end)
        exclusions: Intervals to carve out, in any order, possibly overlapping

    Returns:
        Remaining sub-intervals in chronological order. Zero-length pieces are
        dropped, so an empty or inverted candidate yields an empty list.
    """
    start, end = interval
    if end <= start:
        return []

    pieces: List[Interval] = []
    cursor = start
    for ex_start, ex_end in sorted(exclusions):
        if ex_end <= cursor:
            continue
        if ex_start >= end:
            break
        if ex_start > cursor:
            pieces.append((cursor, ex_start))
        cursor = max(cursor, ex_end)
        if cursor >= end:
            break
    if cursor < end:
        pieces.append((cursor, end))
    return pieces


def coverage_minutes(windows: Iterable) -> int:
    """Minutes of a day covered by the union of the daily windows."""
    ranges: List[Tuple[int, int]] = []
    for window in windows:
        start_t = parse_hhmm(window.start_time)
        end_t = parse_hhmm(window.end_time)
        start = start_t.hour * 60 + start_t.minute
        end = end_t.hour * 60 + end_t.minute
        if start < end:
            ranges.append((start, end))
        elif end < start:
            ranges.append((start, MINUTES_PER_DAY))
            ranges.append((0, end))

    covered = 0
    current_start: Optional[int] = None
    current_end = 0
    for start, end in sorted(ranges):
        if current_start is None or start > current_end:
            if current_start is not None:
                covered += current_end - current_start
            current_start, current_end = start, end
        else:
            current_end = max(current_end, end)
    if current_start is not None:
        covered += current_end - current_start
    return covered
