"""
Week alignment and odd/even ("parity") week numbering.

Timestamps are epoch milliseconds read in local time. Weeks start on Monday
00:00:00.000. Boundaries are computed on calendar dates, so a week is always
seven calendar days even when a DST switch makes it an hour shorter or longer.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Optional

import preferences

logger = logging.getLogger(__name__)

PARITY_VALUES = (1, 2)


def _to_date(millis: int) -> date:
    return datetime.fromtimestamp(millis / 1000).date()


def _date_start(day: date) -> int:
    """Local midnight of a calendar date, as epoch millis."""
    return int(round(datetime.combine(day, datetime.min.time()).timestamp() * 1000))


def _monday(millis: int) -> date:
    day = _to_date(millis)
    return day - timedelta(days=day.weekday())  # Monday is weekday 0


def start_of_day(millis: int) -> int:
    return _date_start(_to_date(millis))


def next_day_start(millis: int) -> int:
    return _date_start(_to_date(millis) + timedelta(days=1))


def week_start(millis: int) -> int:
    """Monday 00:00:00.000 of the week containing millis."""
    return _date_start(_monday(millis))


def shift_weeks(week_start_millis: int, delta: int) -> int:
    """Week start `delta` weeks away (negative goes back)."""
    return _date_start(_monday(week_start_millis) + timedelta(weeks=delta))


def week_days(week_start_millis: int) -> list[int]:
    """Start of each day Monday..Sunday."""
    monday = _monday(week_start_millis)
    return [_date_start(monday + timedelta(days=i)) for i in range(7)]


def weeks_between(anchor_week_start: int, query_week_start: int) -> int:
    """Signed number of whole weeks from the anchor week to the queried week."""
    return (_monday(query_week_start) - _monday(anchor_week_start)).days // 7


def current_week_start(now: Optional[int] = None) -> int:
    if now is None:
        now = int(datetime.now().timestamp() * 1000)
    return week_start(now)


def opposite(parity: int) -> int:
    return 2 if parity == 1 else 1


def calculate_parity(query_week_start: int, anchor_week_start: int, anchor_value: int) -> int:
    """
    Parity (1 or 2) of the queried week relative to the anchor.
    Parity flips every week in both directions: Python's % is a floor modulo,
    so weeks before the anchor alternate the same way as weeks after it.
    """
    diff_weeks = weeks_between(anchor_week_start, query_week_start)
    if diff_weeks % 2 == 0:
        return anchor_value
    return opposite(anchor_value)


def get_week_parity(week_start_millis: int) -> int:
    """
    Parity of the given week using the stored anchor.
    The first call ever anchors the queried week as parity 1.
    """
    anchor = preferences.get_parity_anchor()
    if anchor is None:
        aligned = week_start(week_start_millis)
        preferences.set_parity_anchor(aligned, 1)
        logger.info("Parity anchor initialised at week %s", aligned)
        return 1
    anchor_week, anchor_value = anchor
    return calculate_parity(week_start_millis, anchor_week, anchor_value)


def set_parity(week_start_millis: int, new_parity: int) -> None:
    """Re-anchor: the given week gets new_parity and every other week follows."""
    if new_parity not in PARITY_VALUES:
        raise ValueError(f"parity must be 1 or 2, got {new_parity!r}")
    aligned = week_start(week_start_millis)
    preferences.set_parity_anchor(aligned, new_parity)
    logger.info("Parity anchor moved to week %s value=%s", aligned, new_parity)
