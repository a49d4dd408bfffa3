from __future__ import annotations

import datetime as dt
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional

_TMP_DIR = tempfile.mkdtemp(prefix="paceboard-tests-")
os.environ.setdefault("PB_SQLITE_PATH", str(Path(_TMP_DIR) / "app.db"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from paceboard import models
from paceboard.cache import TTLCache
from paceboard.config import settings
from paceboard.database import get_db
from paceboard.main import app
from paceboard.online_time import OnlineTimeService
from paceboard.ssm_client import UpstreamError


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTrackerClient:
    """Stands in for ScreenshotMonitorClient and records every report request."""

    def __init__(self, upstream: "FakeUpstream", token: str):
        self.upstream = upstream
        self.token = token

    def resolve_employment_id(self):
        self.upstream.resolve_calls += 1
        if self.upstream.error:
            raise UpstreamError(self.upstream.error, status_code=500)
        return self.upstream.employment_id

    def fetch_report(self, employment_id, from_date: dt.date, to_date: dt.date) -> Dict[str, Any]:
        self.upstream.report_calls.append((employment_id, from_date, to_date))
        if self.upstream.error:
            raise UpstreamError(self.upstream.error, status_code=500)
        if from_date == to_date:
            return self.upstream.daily_report
        if to_date - from_date == dt.timedelta(days=6):
            return self.upstream.week_report
        return self.upstream.monthly_report


class FakeUpstream:
    def __init__(self) -> None:
        self.employment_id = 4711
        self.error: Optional[str] = None
        self.daily_report: Dict[str, Any] = {"charts": {"employments": [{"Duration": 0}]}}
        self.monthly_report: Dict[str, Any] = {"charts": {"employments": [{"Duration": 0}]}}
        self.week_report: Dict[str, Any] = {"charts": {"timeline": []}}
        self.resolve_calls = 0
        self.report_calls: List[Any] = []
        self.tokens: List[str] = []

    def factory(self, token: str) -> FakeTrackerClient:
        self.tokens.append(token)
        return FakeTrackerClient(self, token)


@pytest.fixture(scope="session")
def temp_db_path() -> Generator[Path, None, None]:
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "test.db"
        yield path


@pytest.fixture(scope="session")
def engine(temp_db_path: Path):
    url = f"sqlite:///{temp_db_path}"
    engine = create_engine(url, connect_args={"check_same_thread": False}, future=True)
    models.Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture(scope="function")
def session(engine) -> Generator[Session, None, None]:
    connection = engine.connect()
    transaction = connection.begin()
    SessionTesting = sessionmaker(bind=connection, autoflush=False, autocommit=False, future=True)
    session = SessionTesting()
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture()
def online_service(clock: FakeClock, upstream: FakeUpstream) -> OnlineTimeService:
    return OnlineTimeService(TTLCache(clock=clock), settings, upstream.factory)


@pytest.fixture(scope="function")
def client(session: Session, online_service: OnlineTimeService) -> Generator[TestClient, None, None]:
    def override_get_db():
        try:
            yield session
        finally:
            session.close()

    previous_service = app.state.online_time
    app.dependency_overrides[get_db] = override_get_db
    app.state.online_time = online_service
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    app.state.online_time = previous_service


@pytest.fixture()
def frozen_now(monkeypatch):
    """Pin the application clock; returns a setter for the current local datetime."""
    from paceboard import main

    current = {"now": dt.datetime(2026, 9, 15, 10, 0, tzinfo=main.LOCAL_TZ)}

    def _set(value: dt.datetime) -> None:
        current["now"] = value.replace(tzinfo=main.LOCAL_TZ) if value.tzinfo is None else value

    monkeypatch.setattr(main, "local_now", lambda: current["now"])
    return _set


@pytest.fixture()
def user_factory(session: Session):
    def _make(
        name: str = "Dana",
        email: Optional[str] = None,
        is_admin: bool = False,
        token: Optional[str] = None,
    ) -> models.User:
        user = models.User(
            name=name,
            email=email or f"{name.lower()}@example.com",
            is_admin=is_admin,
            ssm_api_token=token,
        )
        session.add(user)
        session.flush()
        return user

    return _make
