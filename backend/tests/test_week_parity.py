"""
Tests for week_parity.py - week alignment, parity alternation, anchoring.
"""
import pytest
import sys
import os
from datetime import date, datetime, timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import preferences
from week_parity import (
    calculate_parity,
    current_week_start,
    get_week_parity,
    next_day_start,
    opposite,
    set_parity,
    shift_weeks,
    start_of_day,
    week_days,
    week_start,
    weeks_between,
)

DAY_MS = 24 * 60 * 60 * 1000
W0_DATE = date(2025, 1, 6)  # a Monday


def ms(*args) -> int:
    return int(datetime(*args).timestamp() * 1000)


def week(n: int) -> int:
    """Monday 00:00 of the week n weeks from W0."""
    d = W0_DATE + timedelta(weeks=n)
    return ms(d.year, d.month, d.day)


W0 = week(0)


class TestWeekAlignment:

    def test_week_start_from_any_day_and_time(self, test_db):
        """Every moment of the week maps to its Monday 00:00."""
        assert week_start(ms(2025, 1, 6)) == W0
        assert week_start(ms(2025, 1, 8, 13, 30)) == W0
        assert week_start(ms(2025, 1, 12, 23, 59, 59)) == W0
        assert week_start(ms(2025, 1, 13)) == week(1)

    def test_start_of_day_and_next_day(self, test_db):
        assert start_of_day(ms(2025, 1, 8, 13, 30)) == ms(2025, 1, 8)
        assert next_day_start(ms(2025, 1, 8, 13, 30)) == ms(2025, 1, 9)

    def test_month_and_year_boundaries(self, test_db):
        # Wednesday 1 January 2025 belongs to the week of Monday 30 December 2024
        assert week_start(ms(2025, 1, 1, 9)) == ms(2024, 12, 30)

    def test_shift_weeks(self, test_db):
        assert shift_weeks(W0, 1) == week(1)
        assert shift_weeks(W0, -3) == week(-3)
        assert shift_weeks(W0, 0) == W0
        assert shift_weeks(W0, 52) == week(52)

    def test_shift_weeks_across_dst(self, test_db):
        """Weeks stay Monday-aligned across DST changes in March and October."""
        march = week_start(ms(2025, 3, 24))
        for delta in range(-2, 3):
            assert datetime.fromtimestamp(shift_weeks(march, delta) / 1000).weekday() == 0
            assert datetime.fromtimestamp(shift_weeks(march, delta) / 1000).hour == 0

    def test_week_days(self, test_db):
        days = week_days(W0)
        assert len(days) == 7
        assert days[0] == W0
        assert days[6] == ms(2025, 1, 12)

    def test_weeks_between(self, test_db):
        assert weeks_between(W0, week(5)) == 5
        assert weeks_between(W0, week(-5)) == -5
        assert weeks_between(week(3), week(3)) == 0

    def test_current_week_start(self, test_db):
        assert current_week_start(ms(2025, 1, 9, 18)) == W0
        now_week = current_week_start()
        assert datetime.fromtimestamp(now_week / 1000).weekday() == 0


class TestCalculateParity:
    """Parity alternates every week, in both directions from the anchor."""

    def test_alternates_around_anchor(self, test_db):
        assert calculate_parity(W0, W0, 1) == 1
        assert calculate_parity(W0 + 7 * DAY_MS, W0, 1) == 2
        assert calculate_parity(W0 - 7 * DAY_MS, W0, 1) == 2
        assert calculate_parity(W0 + 14 * DAY_MS, W0, 1) == 1
        assert calculate_parity(W0 - 14 * DAY_MS, W0, 1) == 1

    def test_anchor_value_two(self, test_db):
        assert calculate_parity(W0, W0, 2) == 2
        assert calculate_parity(week(1), W0, 2) == 1
        assert calculate_parity(week(-1), W0, 2) == 1

    @pytest.mark.parametrize("n", [-7, -4, -3, -1, 1, 3, 4, 11])
    def test_negative_and_positive_offsets_symmetric(self, test_db, n):
        """Weeks n before and n after the anchor have the same parity."""
        assert calculate_parity(week(n), W0, 1) == calculate_parity(week(-n), W0, 1)
        expected = 1 if n % 2 == 0 else 2
        assert calculate_parity(week(n), W0, 1) == expected

    def test_opposite(self, test_db):
        assert opposite(1) == 2
        assert opposite(2) == 1


class TestStoredParity:
    """get_week_parity / set_parity against the preference store."""

    def test_first_query_anchors_queried_week(self, test_db):
        """No anchor yet -> queried week becomes the anchor with parity 1."""
        assert preferences.get_parity_anchor() is None

        assert get_week_parity(week(10)) == 1
        assert preferences.get_parity_anchor() == (week(10), 1)

    def test_lazy_init_happens_once(self, test_db):
        get_week_parity(week(10))
        # A later query does not move the anchor
        assert get_week_parity(week(11)) == 2
        assert preferences.get_parity_anchor() == (week(10), 1)

    def test_uses_stored_anchor(self, test_db):
        preferences.set_parity_anchor(W0, 1)
        assert get_week_parity(W0) == 1
        assert get_week_parity(week(1)) == 2
        assert get_week_parity(week(-1)) == 2
        assert get_week_parity(week(2)) == 1

    def test_set_parity_replaces_anchor(self, test_db):
        """Re-anchoring 5 weeks later at parity 1 flips W0 from 1 to 2."""
        preferences.set_parity_anchor(W0, 1)
        w5 = W0 + 35 * DAY_MS
        assert get_week_parity(w5) == 2

        set_parity(w5, 1)

        assert get_week_parity(w5) == 1
        assert get_week_parity(W0) == 2
        assert preferences.get_parity_anchor() == (w5, 1)

    def test_set_parity_to_current_value_keeps_other_weeks(self, test_db):
        """Re-anchoring a week at the parity it already has changes nothing else."""
        preferences.set_parity_anchor(W0, 1)
        w5 = W0 + 35 * DAY_MS

        set_parity(w5, 2)

        assert get_week_parity(W0) == 1
        assert preferences.get_parity_anchor() == (w5, 2)

    def test_set_parity_flip_shifts_all_weeks(self, test_db):
        preferences.set_parity_anchor(W0, 1)
        before = [get_week_parity(week(n)) for n in range(-3, 4)]

        set_parity(W0, 2)

        after = [get_week_parity(week(n)) for n in range(-3, 4)]
        assert after == [opposite(p) for p in before]

    def test_set_parity_aligns_week(self, test_db):
        set_parity(ms(2025, 1, 9, 15), 2)
        assert preferences.get_parity_anchor() == (W0, 2)

    @pytest.mark.parametrize("bad", [0, 3, -1])
    def test_set_parity_rejects_invalid_value(self, test_db, bad):
        with pytest.raises(ValueError):
            set_parity(W0, bad)
        assert preferences.get_parity_anchor() is None
