from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Mapping, Optional, Union

from sqlalchemy.orm import Session

from . import services
from .models import User
from .online_time import OnlineTimeService
from .pace import compute_monthly_pace, month_bounds
from .schemas import OfflineTimeEntryResponse
from .utils import format_duration, minutes_to_hours

SERIES_DAYS = 7

DayKey = Union[str, dt.date]


def _lookup(minutes_by_day: Mapping[DayKey, int], day: dt.date) -> int:
    if day in minutes_by_day:
        return int(minutes_by_day[day] or 0)
    return int(minutes_by_day.get(day.isoformat(), 0) or 0)


def build_seven_day_series(
    today: dt.date,
    local_minutes: Mapping[DayKey, int],
    external_minutes: Mapping[DayKey, int],
) -> List[Dict[str, Any]]:
    """Daily totals for the week ending ``today``, oldest first.

    Both mappings may be keyed by ``date`` or by ISO string; absent days count
    as zero.
    """
    series: List[Dict[str, Any]] = []
    for offset in range(SERIES_DAYS - 1, -1, -1):
        day = today - dt.timedelta(days=offset)
        minutes = _lookup(local_minutes, day) + _lookup(external_minutes, day)
        series.append(
            {
                "date": day.strftime("%b %d"),
                "full_date": day,
                "minutes": minutes,
                "hours": minutes_to_hours(minutes),
            }
        )
    return series


def _serialize_entries(entries) -> List[Dict[str, Any]]:
    return [OfflineTimeEntryResponse.model_validate(entry).model_dump() for entry in entries]


def build_dashboard(
    db: Session,
    user: User,
    online: OnlineTimeService,
    now: Union[dt.date, dt.datetime],
) -> Dict[str, Any]:
    """Compose the dashboard payload.

    Cards, recent entries and the chart cover all users for admins and only
    the current user otherwise. Today's progress and the monthly pace are
    always personal.
    """
    today = now.date() if isinstance(now, dt.datetime) else now
    month_start, month_end = month_bounds(today)
    scope: Optional[int] = None if user.is_admin else user.id

    personal_today = services.sum_minutes(db, today, today, user_id=user.id)
    personal_start = services.earliest_start(db, user.id, today)
    personal_month = services.sum_minutes(db, month_start, month_end, user_id=user.id)
    stats_today = services.sum_minutes(db, today, today, user_id=scope)
    stats_month = services.sum_minutes(db, month_start, month_end, user_id=scope)

    week_start = today - dt.timedelta(days=SERIES_DAYS - 1)
    local_week = services.daily_minutes(db, week_start, today, user_id=scope)
    online_week = online.week_series(user, today)
    chart_data = build_seven_day_series(today, local_week, online_week.days)

    admin_stats: Dict[str, int] = {}
    if user.is_admin:
        admin_stats = {
            "total_users": services.count_users(db),
            "active_users_today": services.active_users_on(db, today),
        }

    online_month = online.monthly(user, today)
    pace = compute_monthly_pace(today, personal_month, online_month.minutes)
    monthly_pace = pace.as_dict(ssm_configured=online_month.configured)
    monthly_pace["ssm_error"] = online_month.error

    return {
        "stats": {
            "personal_today_minutes": personal_today,
            "personal_offline_start": personal_start,
            "today_minutes": stats_today,
            "today_formatted": format_duration(stats_today),
            "month_minutes": stats_month,
            "month_formatted": format_duration(stats_month),
        },
        "recentEntries": _serialize_entries(services.recent_entries(db, 5, user_id=scope)),
        "chartData": chart_data,
        "adminStats": admin_stats,
        "isAdmin": bool(user.is_admin),
        "monthlyPace": monthly_pace,
    }
