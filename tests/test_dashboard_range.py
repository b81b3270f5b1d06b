"""Tests for dashboard range resolution and timeline bucketing."""

from datetime import date, datetime

import pytest

from dashboard_range import (
    format_bucket_label,
    get_range_bounds,
    get_timeline_bucket,
    iso_key,
    parse_dashboard_selection,
    truncate_to_bucket,
)
from schemas import DashboardRange, DashboardSelection, TimelineBucket

NOW = datetime(2024, 6, 15, 12, 30, 45)


def bounds(range, now=NOW, **selection):
    return get_range_bounds(range, DashboardSelection(range=range, **selection), now=now)


class TestRangeBounds:
    def test_all_is_unbounded(self):
        assert bounds(DashboardRange.ALL) == (None, None)

    def test_leap_february(self):
        result = bounds(DashboardRange.MONTH, year=2024, month=2)
        assert result.from_ == datetime(2024, 2, 1, 0, 0, 0)
        assert result.to == datetime(2024, 2, 29, 23, 59, 59, 999000)

    def test_month_defaults_to_current(self):
        result = bounds(DashboardRange.MONTH)
        assert result.from_ == datetime(2024, 6, 1)
        assert result.to == datetime(2024, 6, 30, 23, 59, 59, 999000)

    def test_year(self):
        result = bounds(DashboardRange.YEAR, year=2023)
        assert result.from_ == datetime(2023, 1, 1)
        assert result.to == datetime(2023, 12, 31, 23, 59, 59, 999000)

    def test_week_anchored_on_wednesday(self):
        result = bounds(DashboardRange.WEEK, week_start=date(2024, 2, 7))
        assert result.from_ == datetime(2024, 2, 5)
        assert result.to == datetime(2024, 2, 11, 23, 59, 59, 999000)

    def test_week_anchored_on_sunday_rolls_back_six_days(self):
        result = bounds(DashboardRange.WEEK, week_start=date(2024, 2, 11))
        assert result.from_ == datetime(2024, 2, 5)

    def test_week_anchored_on_monday(self):
        result = bounds(DashboardRange.WEEK, week_start=date(2024, 2, 5))
        assert result.from_ == datetime(2024, 2, 5)

    def test_day(self):
        result = bounds(DashboardRange.DAY, day=date(2024, 3, 10))
        assert result.from_ == datetime(2024, 3, 10)
        assert result.to == datetime(2024, 3, 10, 23, 59, 59, 999000)

    def test_day_defaults_to_today(self):
        result = get_range_bounds(DashboardRange.DAY, now=NOW)
        assert result.from_ == datetime(2024, 6, 15)


class TestTimelineBucket:
    @pytest.mark.parametrize(
        "range,bucket",
        [
            (DashboardRange.ALL, TimelineBucket.YEAR),
            (DashboardRange.YEAR, TimelineBucket.MONTH),
            (DashboardRange.MONTH, TimelineBucket.DAY),
            (DashboardRange.WEEK, TimelineBucket.DAY),
            (DashboardRange.DAY, TimelineBucket.HOUR),
        ],
    )
    def test_mapping(self, range, bucket):
        assert get_timeline_bucket(range) == bucket

    def test_truncation(self):
        moment = datetime(2024, 2, 7, 14, 45, 12, 5000)
        assert truncate_to_bucket(moment, TimelineBucket.HOUR) == datetime(2024, 2, 7, 14)
        assert truncate_to_bucket(moment, TimelineBucket.DAY) == datetime(2024, 2, 7)
        assert truncate_to_bucket(moment, TimelineBucket.MONTH) == datetime(2024, 2, 1)
        assert truncate_to_bucket(moment, TimelineBucket.YEAR) == datetime(2024, 1, 1)

    def test_labels(self):
        moment = datetime(2024, 2, 5, 9)
        assert format_bucket_label(moment, TimelineBucket.HOUR) == "9h"
        assert format_bucket_label(moment, TimelineBucket.DAY) == "05 févr."
        assert format_bucket_label(moment, TimelineBucket.MONTH) == "févr. 2024"
        assert format_bucket_label(moment, TimelineBucket.YEAR) == "2024"

    def test_iso_key(self):
        assert iso_key(datetime(2024, 2, 29, 23, 59, 59, 999000)) == "2024-02-29T23:59:59.999Z"


class TestParseSelection:
    TODAY = date(2024, 6, 15)

    def test_defaults(self):
        selection = parse_dashboard_selection(today=self.TODAY)
        assert selection.range == DashboardRange.MONTH
        assert selection.year == 2024
        assert selection.month == 6
        assert selection.week_start == self.TODAY
        assert selection.day == self.TODAY

    def test_unknown_range_falls_back_to_month(self):
        assert parse_dashboard_selection("decade", today=self.TODAY).range == DashboardRange.MONTH

    def test_explicit_values(self):
        selection = parse_dashboard_selection(
            "WEEK", year="2023", month="2", week_start="2024-02-07", day="2024-03-10", today=self.TODAY
        )
        assert selection.range == DashboardRange.WEEK
        assert selection.year == 2023
        assert selection.month == 2
        assert selection.week_start == date(2024, 2, 7)
        assert selection.day == date(2024, 3, 10)

    @pytest.mark.parametrize("month", ["0", "13", "feb", ""])
    def test_bad_month_falls_back(self, month):
        assert parse_dashboard_selection("month", month=month, today=self.TODAY).month == 6

    @pytest.mark.parametrize("year", ["1850", "99999", "20x4"])
    def test_bad_year_falls_back(self, year):
        assert parse_dashboard_selection("year", year=year, today=self.TODAY).year == 2024

    def test_bad_dates_fall_back(self):
        selection = parse_dashboard_selection("day", week_start="yesterday", day="2024-02-30", today=self.TODAY)
        assert selection.week_start == self.TODAY
        assert selection.day == self.TODAY
