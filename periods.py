from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional, Protocol, Union
from zoneinfo import ZoneInfo

from config import get_settings
from errors import ValidationFailed
from models import TimeGrain

DAY_START = time(0, 0, 0)
DAY_END = time(23, 59, 59, 999000)
MONTH_ABBREVIATIONS = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)


@dataclass(frozen=True)
class Period:
    slug: str
    start: datetime
    end: datetime

    @property
    def start_date(self) -> date:
        return self.start.date()

    @property
    def end_date(self) -> date:
        return self.end.date()

    def contains(self, value: Union[date, datetime]) -> bool:
        if isinstance(value, datetime):
            return self.start <= value <= self.end
        return self.start_date <= value <= self.end_date


class Dated(Protocol):
    occurred_on: date
    amount_cents: int


def local_now() -> datetime:
    tz = ZoneInfo(get_settings().timezone)
    return datetime.now(tz).replace(tzinfo=None)


def local_today() -> date:
    return local_now().date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def add_months(base: date, months: int) -> date:
    """Shift by whole months, clamping the day to the target month's length."""
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    day = min(base.day, days_in_month(year, month))
    return base.replace(year=year, month=month, day=day)


def _as_date(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


def _span(slug: str, first: date, last: date) -> Period:
    return Period(
        slug, datetime.combine(first, DAY_START), datetime.combine(last, DAY_END)
    )


def date_range_for_grain(
    grain: TimeGrain, reference: Optional[Union[date, datetime]] = None
) -> Period:
    """Inclusive local-time bounds of the week/month/year holding ``reference``.

    Weeks run Sunday through Saturday.
    """
    ref = _as_date(reference) if reference is not None else local_today()
    grain = TimeGrain(grain)
    if grain == TimeGrain.week:
        # date.weekday() is Monday=0, shift so Sunday opens the week
        first = ref - timedelta(days=(ref.weekday() + 1) % 7)
        return _span(grain.value, first, first + timedelta(days=6))
    if grain == TimeGrain.month:
        first = ref.replace(day=1)
        last = ref.replace(day=days_in_month(ref.year, ref.month))
        return _span(grain.value, first, last)
    return _span(grain.value, date(ref.year, 1, 1), date(ref.year, 12, 31))


def previous_period_range(
    grain: TimeGrain, reference: Optional[Union[date, datetime]] = None
) -> Period:
    current = date_range_for_grain(grain, reference)
    grain = TimeGrain(grain)
    first = current.start_date
    if grain == TimeGrain.week:
        prev_first = first - timedelta(days=7)
        prev_last = prev_first + timedelta(days=6)
    elif grain == TimeGrain.month:
        prev_first = add_months(first, -1)
        prev_last = prev_first.replace(
            day=days_in_month(prev_first.year, prev_first.month)
        )
    else:
        prev_first = date(first.year - 1, 1, 1)
        prev_last = date(first.year - 1, 12, 31)
    return _span(f"previous_{grain.value}", prev_first, prev_last)


def bucket_key(value: date, grain: TimeGrain) -> str:
    grain = TimeGrain(grain)
    if grain == TimeGrain.week:
        return value.isoformat()
    if grain == TimeGrain.month:
        return f"Week {(value.day + 6) // 7}"
    return MONTH_ABBREVIATIONS[value.month - 1]


def aggregate_by_grain(
    transactions: Iterable[Dated],
    grain: TimeGrain,
    *,
    chronological: bool = False,
) -> list[dict[str, object]]:
    """Sum amounts into day / week-of-month / month buckets.

    Keys are ordered lexically, which for year buckets is alphabetical by
    month abbreviation. ``chronological`` orders year buckets by month number.
    """
    grain = TimeGrain(grain)
    totals: dict[str, int] = defaultdict(int)
    for txn in transactions:
        totals[bucket_key(txn.occurred_on, grain)] += int(txn.amount_cents)

    if chronological and grain == TimeGrain.year:
        keys = sorted(totals, key=MONTH_ABBREVIATIONS.index)
    else:
        keys = sorted(totals)
    return [{"date": key, "label": key, "amount_cents": totals[key]} for key in keys]


def trend_percentage(current: int, previous: int) -> float:
    if previous > 0:
        return (current - previous) / previous * 100
    return 0.0


def is_in_current_month(
    value: Union[date, datetime], today: Optional[date] = None
) -> bool:
    today = today or local_today()
    value = _as_date(value)
    return value.year == today.year and value.month == today.month


def relative_day_label(
    value: Union[date, datetime], today: Optional[date] = None
) -> str:
    today = today or local_today()
    diff = (_as_date(value) - today).days
    if diff == 0:
        return "Today"
    if diff == 1:
        return "Tomorrow"
    if diff == -1:
        return "Yesterday"
    if diff > 1:
        return f"In {diff} days"
    return f"{abs(diff)} days ago"


def resolve_period(
    grain: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or local_today()
    if start or end or grain == "custom":
        if not start or not end:
            raise ValidationFailed("Custom period requires start and end dates")
        try:
            start_date = date.fromisoformat(start[:10])
            end_date = date.fromisoformat(end[:10])
        except ValueError as exc:
            raise ValidationFailed("Please enter a valid date", field="start") from exc
        if start_date > end_date:
            raise ValidationFailed("Start date must be before end date", field="start")
        return _span("custom", start_date, end_date)
    if grain == "all":
        return _span("all", date(1970, 1, 1), today)
    try:
        time_grain = TimeGrain(grain or TimeGrain.month.value)
    except ValueError as exc:
        raise ValidationFailed(f"Unknown period: {grain}", field="grain") from exc
    return date_range_for_grain(time_grain, today)
