from __future__ import annotations

import datetime as dt

from fastapi.testclient import TestClient

from paceboard.online_time import NOT_CONFIGURED_MESSAGE

TODAY = dt.date(2026, 9, 15)


def test_unconfigured_user_never_reaches_upstream(online_service, upstream, user_factory) -> None:
    user = user_factory("Noor")

    daily = online_service.daily(user, TODAY)
    monthly = online_service.monthly(user, TODAY)
    week = online_service.week_series(user, TODAY)

    assert not daily.configured and daily.minutes == 0
    assert not monthly.configured and monthly.minutes == 0
    assert not week.configured and week.days == {}
    assert upstream.tokens == []


def test_daily_minutes_are_cached(online_service, upstream, user_factory) -> None:
    upstream.daily_report = {"charts": {"employments": [{"Duration": 120}, {"Duration": 30}]}}
    user = user_factory("Rami", token="tok-1")

    first = online_service.daily(user, TODAY)
    second = online_service.daily(user, TODAY)

    assert first.minutes == 150 and first.cached is False
    assert second.minutes == 150 and second.cached is True
    assert upstream.tokens == ["tok-1"]
    assert upstream.report_calls == [(4711, TODAY, TODAY)]


def test_daily_cache_expires(online_service, upstream, clock, user_factory) -> None:
    user = user_factory("Rami", token="tok-1")
    online_service.daily(user, TODAY)

    clock.advance(600)
    upstream.daily_report = {"Duration": 45}
    result = online_service.daily(user, TODAY)

    assert result.minutes == 45
    assert result.cached is False
    assert len(upstream.report_calls) == 2


def test_refresh_bypasses_cache(online_service, upstream, user_factory) -> None:
    user = user_factory("Rami", token="tok-1")
    online_service.daily(user, TODAY)

    upstream.daily_report = {"Duration": 200}
    result = online_service.daily(user, TODAY, refresh=True)

    assert result.minutes == 200
    assert result.cached is False
    assert online_service.daily(user, TODAY).minutes == 200


def test_upstream_failure_returns_error_and_evicts(online_service, upstream, user_factory) -> None:
    user = user_factory("Rami", token="tok-1")
    upstream.error = "GetReport failed. Status: 500"

    failed = online_service.daily(user, TODAY)
    assert failed.configured is True
    assert failed.minutes == 0
    assert failed.error == "Could not sync: GetReport failed. Status: 500"
    assert not online_service.cache.has("ssm_daily_%s" % user.id)

    upstream.error = None
    upstream.daily_report = {"Duration": 15}
    recovered = online_service.daily(user, TODAY)
    assert recovered.minutes == 15
    assert recovered.error is None


def test_monthly_covers_month_to_date(online_service, upstream, user_factory) -> None:
    upstream.monthly_report = {"body": [{"Duration": 3000}]}
    user = user_factory("Rami", token="tok-1")

    result = online_service.monthly(user, TODAY)

    assert result.minutes == 3000
    assert upstream.report_calls == [(4711, dt.date(2026, 9, 1), TODAY)]
    assert online_service.cache.has("ssm_monthly_%s_2026-09" % user.id)


def test_week_series_covers_seven_days(online_service, upstream, user_factory) -> None:
    upstream.week_report = {
        "charts": {
            "timeline": [
                {"Date": "9/14/2026", "Duration": 300},
                {"Date": "9/15/2026", "Duration": 60},
            ]
        }
    }
    user = user_factory("Rami", token="tok-1")

    result = online_service.week_series(user, TODAY)

    assert result.days == {"2026-09-14": 300, "2026-09-15": 60}
    assert upstream.report_calls == [(4711, dt.date(2026, 9, 9), TODAY)]
    assert online_service.cache.has("ssm_week_chart_%s_2026-09-15" % user.id)


def test_cache_entries_are_per_user(online_service, upstream, user_factory) -> None:
    first = user_factory("Rami", token="tok-1")
    second = user_factory("Lina", token="tok-2")
    upstream.daily_report = {"Duration": 10}

    online_service.daily(first, TODAY)
    result = online_service.daily(second, TODAY)

    assert result.cached is False
    assert upstream.tokens == ["tok-1", "tok-2"]


def _create_user(client: TestClient, name: str, token=None) -> int:
    payload = {"name": name, "email": f"{name.lower()}@example.com"}
    if token:
        payload["ssm_api_token"] = token
    response = client.post("/users", json=payload)
    assert response.status_code == 201, response.text
    return response.json()["id"]


def test_daily_stats_not_configured(client: TestClient, frozen_now) -> None:
    user_id = _create_user(client, "Sami")

    response = client.get("/api/ssm/daily-stats", headers={"X-User-Id": str(user_id)})

    assert response.status_code == 200
    body = response.json()
    assert body["configured"] is False
    assert body["online_minutes"] == 0
    assert body["message"] == NOT_CONFIGURED_MESSAGE


def test_daily_stats_endpoint_caches_and_refreshes(client: TestClient, upstream, frozen_now) -> None:
    upstream.daily_report = {"charts": {"employments": [{"Duration": 326}]}}
    user_id = _create_user(client, "Sami", token="tok-9")
    headers = {"X-User-Id": str(user_id)}

    first = client.get("/api/ssm/daily-stats", headers=headers).json()
    second = client.get("/api/ssm/daily-stats", headers=headers).json()
    upstream.daily_report = {"Duration": 400}
    refreshed = client.get("/api/ssm/daily-stats", params={"refresh": "true"}, headers=headers).json()

    assert first == {"configured": True, "online_minutes": 326, "cached": False, "error": None, "message": None}
    assert second["online_minutes"] == 326 and second["cached"] is True
    assert refreshed["online_minutes"] == 400 and refreshed["cached"] is False
    assert upstream.report_calls[0][1:] == (TODAY, TODAY)


def test_daily_stats_reports_sync_errors(client: TestClient, upstream, frozen_now) -> None:
    upstream.error = "Could not find employmentId."
    user_id = _create_user(client, "Sami", token="tok-9")

    response = client.get("/api/ssm/daily-stats", headers={"X-User-Id": str(user_id)})

    assert response.status_code == 200
    body = response.json()
    assert body["configured"] is True
    assert body["online_minutes"] == 0
    assert body["error"] == "Could not sync: Could not find employmentId."


def test_daily_stats_requires_identity(client: TestClient) -> None:
    assert client.get("/api/ssm/daily-stats").status_code == 401
    assert client.get("/api/ssm/daily-stats", headers={"X-User-Id": "9999"}).status_code == 401


def test_stale_period_keys_do_not_accumulate(online_service, upstream, clock, user_factory) -> None:
    user = user_factory("Rami", token="tok-1")
    day = dt.date(2026, 1, 1)
    for _ in range(365):
        online_service.week_series(user, day)
        online_service.monthly(user, day)
        clock.advance(86400)
        day += dt.timedelta(days=1)

    assert len(online_service.cache._entries) <= 2
