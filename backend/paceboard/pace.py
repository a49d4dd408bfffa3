"""Monthly work pace.

The monthly target is eight hours for every day of the month except the
weekly rest day (Friday). Work logged offline and minutes reported by the
online tracker both count towards it. Pace is the number of minutes per
remaining working day needed to reach the target by the end of the month;
today is not a remaining day because its work is already counted.
"""

from __future__ import annotations

import calendar
import datetime as dt
import enum
import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Tuple, Union

from .utils import format_duration

REST_WEEKDAY = calendar.FRIDAY
DAILY_TARGET_MINUTES = 8 * 60
BEHIND_THRESHOLD_MINUTES = 10 * 60


class PaceStatus(str, enum.Enum):
    COMPLETED = "completed"
    MISSED = "missed"
    BEHIND = "behind"
    ON_TRACK = "on_track"


@dataclass(frozen=True)
class PaceSummary:
    monthly_target_minutes: int
    total_worked_minutes: int
    offline_minutes: int
    online_minutes: int
    remaining_minutes: int
    remaining_working_days: int
    total_working_days: int
    required_daily_minutes: int
    status: PaceStatus

    def as_dict(self, ssm_configured: bool = False) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["monthly_target_formatted"] = format_duration(self.monthly_target_minutes)
        data["total_worked_formatted"] = format_duration(self.total_worked_minutes)
        data["remaining_formatted"] = format_duration(self.remaining_minutes)
        data["required_daily_formatted"] = format_duration(self.required_daily_minutes)
        data["ssm_configured"] = ssm_configured
        return data


def _as_date(value: Union[dt.date, dt.datetime]) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    return value


def month_bounds(day: dt.date) -> Tuple[dt.date, dt.date]:
    last_day = calendar.monthrange(day.year, day.month)[1]
    return day.replace(day=1), day.replace(day=last_day)


def is_rest_day(day: dt.date) -> bool:
    return day.weekday() == REST_WEEKDAY


def count_rest_days(start: dt.date, end: dt.date) -> int:
    count = 0
    current = start
    while current <= end:
        if is_rest_day(current):
            count += 1
        current += dt.timedelta(days=1)
    return count


def count_working_days(start: dt.date, end: dt.date) -> int:
    if end < start:
        return 0
    total_days = (end - start).days + 1
    return total_days - count_rest_days(start, end)


def remaining_working_days(today: dt.date) -> int:
    """Working days strictly after ``today`` up to the end of its month."""
    _, month_end = month_bounds(today)
    return count_working_days(today + dt.timedelta(days=1), month_end)


def _classify(remaining: int, remaining_days: int, required_daily: int) -> PaceStatus:
    if remaining <= 0:
        return PaceStatus.COMPLETED
    if remaining_days == 0:
        return PaceStatus.MISSED
    if required_daily > BEHIND_THRESHOLD_MINUTES:
        return PaceStatus.BEHIND
    return PaceStatus.ON_TRACK


def compute_monthly_pace(
    now: Union[dt.date, dt.datetime],
    offline_minutes: int,
    online_minutes: int,
) -> PaceSummary:
    today = _as_date(now)
    month_start, month_end = month_bounds(today)
    total_working_days = count_working_days(month_start, month_end)
    monthly_target = total_working_days * DAILY_TARGET_MINUTES

    offline_minutes = max(int(offline_minutes), 0)
    online_minutes = max(int(online_minutes), 0)
    total_worked = offline_minutes + online_minutes
    remaining = max(0, monthly_target - total_worked)

    remaining_days = remaining_working_days(today)
    required_daily = math.ceil(remaining / remaining_days) if remaining_days > 0 else 0

    return PaceSummary(
        monthly_target_minutes=monthly_target,
        total_worked_minutes=total_worked,
        offline_minutes=offline_minutes,
        online_minutes=online_minutes,
        remaining_minutes=remaining,
        remaining_working_days=remaining_days,
        total_working_days=total_working_days,
        required_daily_minutes=required_daily,
        status=_classify(remaining, remaining_days, required_daily),
    )
