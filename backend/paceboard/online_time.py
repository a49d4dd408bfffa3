"""Online minutes from the external tracker, cached per user and period.

Upstream failures stop here: the affected cache entry is evicted and the
caller gets zero minutes with an error message, so pages depending on these
figures still render.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar

from .cache import CacheKey, CachePurpose, TTLCache
from .models import User
from .normalizer import extract_daily_series, extract_total_minutes
from .pace import month_bounds
from .ssm_client import ClientFactory, EmploymentId, UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")

WEEK_DAYS = 7
NOT_CONFIGURED_MESSAGE = "ScreenshotMonitor not configured. Please add your API token in Settings."


@dataclass(frozen=True)
class OnlineReport:
    minutes: int
    employment_id: EmploymentId


@dataclass
class OnlineMinutes:
    configured: bool
    minutes: int = 0
    cached: bool = False
    error: Optional[str] = None


@dataclass
class OnlineSeries:
    configured: bool
    days: Dict[str, int] = field(default_factory=dict)
    cached: bool = False
    error: Optional[str] = None


class OnlineTimeService:
    def __init__(self, cache: TTLCache, settings: Any, client_factory: ClientFactory):
        self.cache = cache
        self.settings = settings
        self.client_factory = client_factory

    def _fetch_total(self, token: str, from_date: dt.date, to_date: dt.date) -> OnlineReport:
        client = self.client_factory(token)
        employment_id = client.resolve_employment_id()
        report = client.fetch_report(employment_id, from_date, to_date)
        minutes = extract_total_minutes(report)
        logger.info(
            "SSM report total",
            extra={
                "employment_id": employment_id,
                "from_date": from_date.isoformat(),
                "to_date": to_date.isoformat(),
                "total_minutes": minutes,
            },
        )
        return OnlineReport(minutes=minutes, employment_id=employment_id)

    def _fetch_series(self, token: str, from_date: dt.date, to_date: dt.date) -> Dict[str, int]:
        client = self.client_factory(token)
        employment_id = client.resolve_employment_id()
        report = client.fetch_report(employment_id, from_date, to_date)
        return extract_daily_series(report)

    def _cached(
        self,
        user: User,
        key: CacheKey,
        ttl_seconds: int,
        producer: Callable[[], T],
        refresh: bool = False,
    ) -> Tuple[Optional[T], bool, Optional[str]]:
        if refresh:
            self.cache.forget(key)
        cached = self.cache.has(key)
        try:
            value = self.cache.get_or_compute(key, ttl_seconds, producer)
        except UpstreamError as exc:
            self.cache.forget(key)
            logger.error(
                "SSM fetch failed: %s",
                exc,
                extra={"user_id": user.id, "cache_key": str(key), "status": exc.status_code},
            )
            return None, False, f"Could not sync: {exc}"
        return value, cached, None

    def daily(self, user: User, today: dt.date, refresh: bool = False) -> OnlineMinutes:
        if not user.ssm_configured:
            return OnlineMinutes(configured=False)
        key = CacheKey(CachePurpose.SSM_DAILY, user.id)
        report, cached, error = self._cached(
            user,
            key,
            self.settings.cache_ttl_daily,
            lambda: self._fetch_total(user.ssm_api_token, today, today),
            refresh=refresh,
        )
        if report is None:
            return OnlineMinutes(configured=True, error=error)
        return OnlineMinutes(configured=True, minutes=report.minutes, cached=cached)

    def monthly(self, user: User, today: dt.date) -> OnlineMinutes:
        if not user.ssm_configured:
            return OnlineMinutes(configured=False)
        month_start, _ = month_bounds(today)
        key = CacheKey(CachePurpose.SSM_MONTHLY, user.id, today.strftime("%Y-%m"))
        report, cached, error = self._cached(
            user,
            key,
            self.settings.cache_ttl_monthly,
            lambda: self._fetch_total(user.ssm_api_token, month_start, today),
        )
        if report is None:
            return OnlineMinutes(configured=True, error=error)
        return OnlineMinutes(configured=True, minutes=report.minutes, cached=cached)

    def week_series(self, user: User, today: dt.date) -> OnlineSeries:
        if not user.ssm_configured:
            return OnlineSeries(configured=False)
        from_date = today - dt.timedelta(days=WEEK_DAYS - 1)
        key = CacheKey(CachePurpose.SSM_WEEK_CHART, user.id, today.isoformat())
        days, cached, error = self._cached(
            user,
            key,
            self.settings.cache_ttl_week_chart,
            lambda: self._fetch_series(user.ssm_api_token, from_date, today),
        )
        if days is None:
            return OnlineSeries(configured=True, error=error)
        return OnlineSeries(configured=True, days=dict(days), cached=cached)
