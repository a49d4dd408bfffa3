from __future__ import annotations

import datetime as dt
import logging
from typing import Optional, Union
from zoneinfo import ZoneInfo

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, Response, status
from sqlalchemy.orm import Session

from . import models
from .cache import TTLCache
from .config import settings
from .dashboard import build_dashboard
from .database import engine, get_db
from .logging_config import setup_logging
from .online_time import NOT_CONFIGURED_MESSAGE, OnlineTimeService
from .schemas import (
    AllUsersSummaryResponse,
    DailyStatsResponse,
    DashboardResponse,
    MonthlySummaryResponse,
    OfflineTimeEntryRequest,
    OfflineTimeEntryResponse,
    OfflineTimeListResponse,
    UserCreateRequest,
    UserResponse,
    UserUpdateRequest,
    validate_month,
)
from .services import (
    all_users_monthly_summary,
    create_entry,
    create_user,
    delete_entry,
    get_entry,
    get_user,
    list_entries,
    update_entry,
    update_user,
    user_monthly_summary,
)
from .ssm_client import client_factory_from_settings
from .utils import format_duration

setup_logging(settings.log_level, settings.log_format)
logger = logging.getLogger(__name__)

LOCAL_TZ = ZoneInfo(settings.timezone)


def local_now() -> dt.datetime:
    return dt.datetime.now(LOCAL_TZ)


models.Base.metadata.create_all(bind=engine)

app = FastAPI(title=settings.app_name)
app.state.online_time = OnlineTimeService(TTLCache(), settings, client_factory_from_settings(settings))


def get_online_time(request: Request) -> OnlineTimeService:
    return request.app.state.online_time


def current_user(
    x_user_id: Optional[int] = Header(default=None),
    db: Session = Depends(get_db),
) -> models.User:
    if x_user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="X-User-Id header required")
    user = db.get(models.User, x_user_id)
    if not user:
        logger.warning("Request for unknown user", extra={"user_id": x_user_id})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user")
    return user


def _month_param(month: Optional[str]) -> str:
    if month is None:
        return local_now().strftime("%Y-%m")
    try:
        return validate_month(month)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def users_create(payload: UserCreateRequest, db: Session = Depends(get_db)) -> UserResponse:
    return create_user(db, payload.name, payload.email, payload.is_admin, payload.ssm_api_token)


@app.patch("/users/{user_id}", response_model=UserResponse)
def users_update(
    user_id: int,
    payload: UserUpdateRequest,
    user: models.User = Depends(current_user),
    db: Session = Depends(get_db),
) -> UserResponse:
    if not user.is_admin and user.id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized action.")
    changes = payload.model_dump(exclude_unset=True)
    if "is_admin" in changes and not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only admins can grant admin rights")
    return update_user(db, user_id, changes)


@app.get("/offline-time", response_model=OfflineTimeListResponse)
def offline_time_index(
    user_id: Optional[int] = None,
    date_from: Optional[dt.date] = None,
    date_to: Optional[dt.date] = None,
    month: Optional[str] = None,
    user: models.User = Depends(current_user),
    db: Session = Depends(get_db),
) -> OfflineTimeListResponse:
    if month is not None:
        month = _month_param(month)
    entries, total = list_entries(db, user, user_id, date_from, date_to, month)
    return OfflineTimeListResponse(
        entries=[OfflineTimeEntryResponse.model_validate(entry) for entry in entries],
        total_duration=total,
        total_formatted=format_duration(total),
    )


@app.post("/offline-time", response_model=OfflineTimeEntryResponse, status_code=status.HTTP_201_CREATED)
def offline_time_store(
    payload: OfflineTimeEntryRequest,
    user: models.User = Depends(current_user),
    db: Session = Depends(get_db),
) -> OfflineTimeEntryResponse:
    return create_entry(
        db,
        user,
        payload.date,
        payload.start_time,
        payload.end_time,
        payload.purpose,
        payload.description,
    )


@app.get("/offline-time/{entry_id}", response_model=OfflineTimeEntryResponse)
def offline_time_show(
    entry_id: int,
    user: models.User = Depends(current_user),
    db: Session = Depends(get_db),
) -> OfflineTimeEntryResponse:
    return get_entry(db, user, entry_id)


@app.put("/offline-time/{entry_id}", response_model=OfflineTimeEntryResponse)
def offline_time_update(
    entry_id: int,
    payload: OfflineTimeEntryRequest,
    user: models.User = Depends(current_user),
    db: Session = Depends(get_db),
) -> OfflineTimeEntryResponse:
    return update_entry(
        db,
        user,
        entry_id,
        payload.date,
        payload.start_time,
        payload.end_time,
        payload.purpose,
        payload.description,
    )


@app.delete("/offline-time/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
def offline_time_destroy(
    entry_id: int,
    user: models.User = Depends(current_user),
    db: Session = Depends(get_db),
) -> Response:
    delete_entry(db, user, entry_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get(
    "/offline-time-summary",
    response_model=Union[MonthlySummaryResponse, AllUsersSummaryResponse],
)
def offline_time_summary(
    month: Optional[str] = None,
    user_id: Optional[int] = None,
    user: models.User = Depends(current_user),
    db: Session = Depends(get_db),
):
    month = _month_param(month)
    if user.is_admin and user_id is not None:
        get_user(db, user_id)
        return user_monthly_summary(db, user_id, month)
    if user.is_admin:
        return all_users_monthly_summary(db, month)
    return user_monthly_summary(db, user.id, month)


@app.get("/api/ssm/daily-stats", response_model=DailyStatsResponse)
def ssm_daily_stats(
    refresh: bool = Query(default=False),
    user: models.User = Depends(current_user),
    online: OnlineTimeService = Depends(get_online_time),
) -> DailyStatsResponse:
    result = online.daily(user, local_now().date(), refresh=refresh)
    if not result.configured:
        return DailyStatsResponse(
            configured=False,
            online_minutes=0,
            cached=False,
            message=NOT_CONFIGURED_MESSAGE,
        )
    return DailyStatsResponse(
        configured=True,
        online_minutes=result.minutes,
        cached=result.cached,
        error=result.error,
    )


@app.get("/dashboard", response_model=DashboardResponse)
def dashboard(
    user: models.User = Depends(current_user),
    online: OnlineTimeService = Depends(get_online_time),
    db: Session = Depends(get_db),
):
    return build_dashboard(db, user, online, local_now())
