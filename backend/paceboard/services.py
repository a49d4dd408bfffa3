from __future__ import annotations

import datetime as dt
import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy import and_, func
from sqlalchemy.orm import Session, joinedload

from .models import OfflineTimeEntry, User
from .pace import month_bounds
from .utils import format_duration, minutes_to_hours

logger = logging.getLogger(__name__)

END_OF_DAY = "24:00"


def _parse_time(value: str) -> dt.time:
    return dt.datetime.strptime(value, "%H:%M").time()


def calculate_duration(start_time: str, end_time: str) -> int:
    """Minutes between two ``HH:MM`` times; an earlier end wraps past midnight."""
    start = dt.datetime.combine(dt.date.min, _parse_time(start_time))
    end = dt.datetime.combine(dt.date.min, _parse_time(end_time))
    if end < start:
        end += dt.timedelta(days=1)
    return int((end - start).total_seconds() // 60)


def _effective_end(start_time: str, end_time: str) -> str:
    # Entries running past midnight occupy the rest of their own date.
    return END_OF_DAY if end_time < start_time else end_time


def month_range(month: str) -> Tuple[dt.date, dt.date]:
    try:
        year, month_number = (int(part) for part in month.split("-", 1))
        first = dt.date(year, month_number, 1)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Month must use YYYY-MM") from exc
    return month_bounds(first)


# ----------------------------------------------------------------------
# Users
# ----------------------------------------------------------------------
def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def create_user(
    db: Session,
    name: str,
    email: str,
    is_admin: bool = False,
    ssm_api_token: Optional[str] = None,
) -> User:
    email = email.strip().lower()
    existing = db.query(User).filter(User.email == email).one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")
    user = User(
        name=name.strip(),
        email=email,
        is_admin=is_admin,
        ssm_api_token=(ssm_api_token or "").strip() or None,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def update_user(db: Session, user_id: int, changes: Dict[str, Any]) -> User:
    user = get_user(db, user_id)
    if "name" in changes and changes["name"] is not None:
        user.name = changes["name"].strip()
    if "email" in changes and changes["email"] is not None:
        email = changes["email"].strip().lower()
        taken = db.query(User).filter(User.email == email, User.id != user.id).one_or_none()
        if taken:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")
        user.email = email
    if "is_admin" in changes and changes["is_admin"] is not None:
        user.is_admin = bool(changes["is_admin"])
    if "ssm_api_token" in changes:
        user.ssm_api_token = (changes["ssm_api_token"] or "").strip() or None
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


# ----------------------------------------------------------------------
# Offline time entries
# ----------------------------------------------------------------------
def has_overlapping_entry(
    db: Session,
    user_id: int,
    day: dt.date,
    start_time: str,
    end_time: str,
    exclude_id: Optional[int] = None,
) -> bool:
    query = db.query(OfflineTimeEntry).filter(
        and_(OfflineTimeEntry.user_id == user_id, OfflineTimeEntry.date == day)
    )
    if exclude_id is not None:
        query = query.filter(OfflineTimeEntry.id != exclude_id)
    # Touching intervals (one ends as the next starts) do not overlap.
    new_end = _effective_end(start_time, end_time)
    for entry in query.all():
        other_end = _effective_end(entry.start_time, entry.end_time)
        if start_time < other_end and new_end > entry.start_time:
            return True
    return False


def _ensure_can_access(user: User, entry: OfflineTimeEntry) -> None:
    if not user.is_admin and entry.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized action.")


def get_entry(db: Session, user: User, entry_id: int) -> OfflineTimeEntry:
    entry = db.get(OfflineTimeEntry, entry_id)
    if not entry:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Entry not found")
    _ensure_can_access(user, entry)
    return entry


def create_entry(
    db: Session,
    user: User,
    day: dt.date,
    start_time: str,
    end_time: str,
    purpose: str,
    description: Optional[str],
) -> OfflineTimeEntry:
    if has_overlapping_entry(db, user.id, day, start_time, end_time):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This time entry overlaps with an existing entry.",
        )
    entry = OfflineTimeEntry(
        user_id=user.id,
        date=day,
        start_time=start_time,
        end_time=end_time,
        duration_minutes=calculate_duration(start_time, end_time),
        purpose=purpose.strip(),
        description=description,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    logger.info("Offline time entry %s created", entry.id, extra={"user_id": user.id})
    return entry


def update_entry(
    db: Session,
    user: User,
    entry_id: int,
    day: dt.date,
    start_time: str,
    end_time: str,
    purpose: str,
    description: Optional[str],
) -> OfflineTimeEntry:
    entry = get_entry(db, user, entry_id)
    if has_overlapping_entry(db, entry.user_id, day, start_time, end_time, exclude_id=entry.id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This time entry overlaps with an existing entry.",
        )
    entry.date = day
    entry.start_time = start_time
    entry.end_time = end_time
    entry.duration_minutes = calculate_duration(start_time, end_time)
    entry.purpose = purpose.strip()
    entry.description = description
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


def delete_entry(db: Session, user: User, entry_id: int) -> None:
    entry = get_entry(db, user, entry_id)
    db.delete(entry)
    db.commit()
    logger.info("Offline time entry %s deleted", entry_id, extra={"user_id": user.id})


def list_entries(
    db: Session,
    user: User,
    user_id: Optional[int] = None,
    date_from: Optional[dt.date] = None,
    date_to: Optional[dt.date] = None,
    month: Optional[str] = None,
) -> Tuple[List[OfflineTimeEntry], int]:
    query = db.query(OfflineTimeEntry)
    if not user.is_admin:
        query = query.filter(OfflineTimeEntry.user_id == user.id)
    elif user_id is not None:
        query = query.filter(OfflineTimeEntry.user_id == user_id)
    if date_from:
        query = query.filter(OfflineTimeEntry.date >= date_from)
    if date_to:
        query = query.filter(OfflineTimeEntry.date <= date_to)
    if month:
        start, end = month_range(month)
        query = query.filter(and_(OfflineTimeEntry.date >= start, OfflineTimeEntry.date <= end))
    total = query.with_entities(func.coalesce(func.sum(OfflineTimeEntry.duration_minutes), 0)).scalar()
    entries = (
        query.options(joinedload(OfflineTimeEntry.user))
        .order_by(OfflineTimeEntry.date.desc(), OfflineTimeEntry.start_time.desc())
        .all()
    )
    return entries, int(total or 0)


# ----------------------------------------------------------------------
# Aggregates
# ----------------------------------------------------------------------
def _scoped(query, user_id: Optional[int]):
    if user_id is not None:
        query = query.filter(OfflineTimeEntry.user_id == user_id)
    return query


def sum_minutes(db: Session, start_day: dt.date, end_day: dt.date, user_id: Optional[int] = None) -> int:
    """Logged minutes between two dates (inclusive); ``user_id=None`` spans all users."""
    query = db.query(func.coalesce(func.sum(OfflineTimeEntry.duration_minutes), 0)).filter(
        and_(OfflineTimeEntry.date >= start_day, OfflineTimeEntry.date <= end_day)
    )
    return int(_scoped(query, user_id).scalar() or 0)


def daily_minutes(
    db: Session,
    start_day: dt.date,
    end_day: dt.date,
    user_id: Optional[int] = None,
) -> Dict[str, int]:
    query = db.query(OfflineTimeEntry.date, OfflineTimeEntry.duration_minutes).filter(
        and_(OfflineTimeEntry.date >= start_day, OfflineTimeEntry.date <= end_day)
    )
    totals: Dict[str, int] = defaultdict(int)
    for day, minutes in _scoped(query, user_id).all():
        totals[day.isoformat()] += minutes or 0
    return dict(totals)


def earliest_start(db: Session, user_id: int, day: dt.date) -> Optional[str]:
    return (
        db.query(func.min(OfflineTimeEntry.start_time))
        .filter(and_(OfflineTimeEntry.user_id == user_id, OfflineTimeEntry.date == day))
        .scalar()
    )


def recent_entries(db: Session, limit: int = 5, user_id: Optional[int] = None) -> List[OfflineTimeEntry]:
    query = db.query(OfflineTimeEntry).options(joinedload(OfflineTimeEntry.user))
    return (
        _scoped(query, user_id)
        .order_by(OfflineTimeEntry.date.desc(), OfflineTimeEntry.start_time.desc())
        .limit(limit)
        .all()
    )


def active_users_on(db: Session, day: dt.date) -> int:
    return int(
        db.query(func.count(func.distinct(OfflineTimeEntry.user_id)))
        .filter(OfflineTimeEntry.date == day)
        .scalar()
        or 0
    )


def count_users(db: Session) -> int:
    return int(db.query(func.count(User.id)).scalar() or 0)


# ----------------------------------------------------------------------
# Monthly summaries
# ----------------------------------------------------------------------
def _summary_row(user: Optional[User], total_minutes: int, month: Optional[str] = None) -> Dict[str, Any]:
    row: Dict[str, Any] = {
        "user": {"id": user.id, "name": user.name} if user else None,
        "total_minutes": total_minutes,
        "total_hours": minutes_to_hours(total_minutes, 2),
        "formatted": format_duration(total_minutes),
    }
    if month is not None:
        row["month"] = month
    return row


def user_monthly_summary(db: Session, user_id: int, month: str) -> Dict[str, Any]:
    start, end = month_range(month)
    user = db.get(User, user_id)
    total = sum_minutes(db, start, end, user_id=user_id)
    return _summary_row(user, total, month)


def all_users_monthly_summary(db: Session, month: str) -> Dict[str, Any]:
    start, end = month_range(month)
    rows = (
        db.query(User, func.coalesce(func.sum(OfflineTimeEntry.duration_minutes), 0))
        .outerjoin(
            OfflineTimeEntry,
            and_(
                OfflineTimeEntry.user_id == User.id,
                OfflineTimeEntry.date >= start,
                OfflineTimeEntry.date <= end,
            ),
        )
        .group_by(User.id)
        .order_by(User.name.asc())
        .all()
    )
    return {
        "month": month,
        "summaries": [_summary_row(user, int(total or 0)) for user, total in rows],
    }
