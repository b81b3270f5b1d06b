"""
Reporting ranges for the admin dashboard.

All bounds are naive UTC datetimes, inclusive on both ends. Calendar
boundaries (midnight, first of month, Monday) are UTC boundaries.
"""
import calendar
from datetime import date, datetime, time, timedelta
from typing import NamedTuple, Optional

from database import utc_now
from schemas import DashboardRange, DashboardSelection, TimelineBucket

MIN_YEAR = 2000
MAX_YEAR = 2100

END_OF_DAY = time(23, 59, 59, 999000)

FRENCH_MONTHS = [
    "janv.", "févr.", "mars", "avr.", "mai", "juin",
    "juil.", "août", "sept.", "oct.", "nov.", "déc.",
]


class DateInterval(NamedTuple):
    from_: Optional[datetime]
    to: Optional[datetime]


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min)


def end_of_day(day: date) -> datetime:
    return datetime.combine(day, END_OF_DAY)


def start_of_week(day: date) -> date:
    # weekday() is 0 for Monday
    return day - timedelta(days=day.weekday())


def get_range_bounds(
    range: DashboardRange,
    selection: Optional[DashboardSelection] = None,
    now: Optional[datetime] = None,
) -> DateInterval:
    selection = selection or DashboardSelection(range=range)
    today = (now or utc_now()).date()

    if range == DashboardRange.ALL:
        return DateInterval(None, None)

    if range == DashboardRange.YEAR:
        year = selection.year or today.year
        return DateInterval(start_of_day(date(year, 1, 1)), end_of_day(date(year, 12, 31)))

    if range == DashboardRange.MONTH:
        year = selection.year or today.year
        month = selection.month or today.month
        last_day = calendar.monthrange(year, month)[1]
        return DateInterval(start_of_day(date(year, month, 1)), end_of_day(date(year, month, last_day)))

    if range == DashboardRange.WEEK:
        monday = start_of_week(selection.week_start or today)
        return DateInterval(start_of_day(monday), end_of_day(monday + timedelta(days=6)))

    day = selection.day or today
    return DateInterval(start_of_day(day), end_of_day(day))


def get_timeline_bucket(range: DashboardRange) -> TimelineBucket:
    if range == DashboardRange.ALL:
        return TimelineBucket.YEAR
    if range == DashboardRange.DAY:
        return TimelineBucket.HOUR
    if range in (DashboardRange.MONTH, DashboardRange.WEEK):
        return TimelineBucket.DAY
    return TimelineBucket.MONTH


def truncate_to_bucket(moment: datetime, bucket: TimelineBucket) -> datetime:
    if bucket == TimelineBucket.HOUR:
        return moment.replace(minute=0, second=0, microsecond=0)
    if bucket == TimelineBucket.DAY:
        return start_of_day(moment.date())
    if bucket == TimelineBucket.MONTH:
        return datetime(moment.year, moment.month, 1)
    return datetime(moment.year, 1, 1)


def format_bucket_label(moment: datetime, bucket: TimelineBucket) -> str:
    if bucket == TimelineBucket.HOUR:
        return f"{moment.hour}h"
    if bucket == TimelineBucket.DAY:
        return f"{moment.day:02d} {FRENCH_MONTHS[moment.month - 1]}"
    if bucket == TimelineBucket.MONTH:
        return f"{FRENCH_MONTHS[moment.month - 1]} {moment.year}"
    return str(moment.year)


def iso_key(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


# Query-string parsing

def _parse_int(value: Optional[str], low: int, high: int) -> Optional[int]:
    if value is None:
        return None
    try:
        parsed = int(str(value).strip())
    except ValueError:
        return None
    return parsed if low <= parsed <= high else None


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def parse_range(value: Optional[str]) -> DashboardRange:
    try:
        return DashboardRange((value or "").strip().lower())
    except ValueError:
        return DashboardRange.MONTH


def parse_dashboard_selection(
    range: Optional[str] = None,
    year: Optional[str] = None,
    month: Optional[str] = None,
    week_start: Optional[str] = None,
    day: Optional[str] = None,
    today: Optional[date] = None,
) -> DashboardSelection:
    today = today or utc_now().date()
    return DashboardSelection(
        range=parse_range(range),
        year=_parse_int(year, MIN_YEAR, MAX_YEAR) or today.year,
        month=_parse_int(month, 1, 12) or today.month,
        week_start=_parse_date(week_start) or today,
        day=_parse_date(day) or today,
    )
