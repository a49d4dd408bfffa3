from __future__ import annotations

import datetime as dt
import re
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def _validate_time(value: str) -> str:
    value = value.strip()
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must use the HH:MM format")
    return value


def validate_month(value: str) -> str:
    if not MONTH_PATTERN.match(value):
        raise ValueError("Month must use the YYYY-MM format")
    return value


class UserCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: str = Field(min_length=3, max_length=255)
    is_admin: bool = False
    ssm_api_token: Optional[str] = None


class UserUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    email: Optional[str] = Field(default=None, min_length=3, max_length=255)
    is_admin: Optional[bool] = None
    ssm_api_token: Optional[str] = None


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    email: str
    is_admin: bool
    ssm_configured: bool


class UserRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str


class OfflineTimeEntryRequest(BaseModel):
    date: dt.date
    start_time: str
    end_time: str
    purpose: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _check_time(cls, value: str) -> str:
        return _validate_time(value)


class OfflineTimeEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    user_id: int
    date: dt.date
    start_time: str
    end_time: str
    duration_minutes: int
    purpose: str
    description: Optional[str]
    user: Optional[UserRef] = None


class OfflineTimeListResponse(BaseModel):
    entries: List[OfflineTimeEntryResponse]
    total_duration: int
    total_formatted: str


class MonthlySummaryResponse(BaseModel):
    user: Optional[UserRef] = None
    month: Optional[str] = None
    total_minutes: int
    total_hours: float
    formatted: str


class AllUsersSummaryResponse(BaseModel):
    month: str
    summaries: List[MonthlySummaryResponse]


class DailyStatsResponse(BaseModel):
    configured: bool
    online_minutes: int
    cached: bool
    error: Optional[str] = None
    message: Optional[str] = None


class ChartPoint(BaseModel):
    date: str
    full_date: dt.date
    minutes: int
    hours: float


class DashboardStats(BaseModel):
    personal_today_minutes: int
    personal_offline_start: Optional[str] = None
    today_minutes: int
    today_formatted: str
    month_minutes: int
    month_formatted: str


class MonthlyPaceResponse(BaseModel):
    monthly_target_minutes: int
    monthly_target_formatted: str
    total_worked_minutes: int
    total_worked_formatted: str
    offline_minutes: int
    online_minutes: int
    remaining_minutes: int
    remaining_formatted: str
    remaining_working_days: int
    total_working_days: int
    required_daily_minutes: int
    required_daily_formatted: str
    status: str
    ssm_configured: bool
    ssm_error: Optional[str] = None


class DashboardResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    stats: DashboardStats
    recent_entries: List[OfflineTimeEntryResponse] = Field(alias="recentEntries")
    chart_data: List[ChartPoint] = Field(alias="chartData")
    admin_stats: Dict[str, int] = Field(alias="adminStats")
    is_admin: bool = Field(alias="isAdmin")
    monthly_pace: MonthlyPaceResponse = Field(alias="monthlyPace")
