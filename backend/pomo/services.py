from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional, Tuple

from zoneinfo import ZoneInfo

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from .config import settings
from .models import TimerInterval
from .state import RuntimeState
from .timer import TimerSession, next_interval_type, suggest_long_break


UTC = dt.timezone.utc
LOCAL_TZ = ZoneInfo(settings.timezone)


def _day_bounds(day: dt.date) -> Tuple[dt.datetime, dt.datetime]:
    start_local = dt.datetime.combine(day, dt.time.min, tzinfo=LOCAL_TZ)
    end_local = start_local + dt.timedelta(days=1)
    return start_local.astimezone(UTC), end_local.astimezone(UTC)


def list_intervals(
    db: Session,
    from_date: Optional[dt.date],
    to_date: Optional[dt.date],
    status_filter: Optional[str] = None,
) -> List[TimerInterval]:
    if from_date and to_date and to_date < from_date:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="to_date must not be before from_date")
    query = db.query(TimerInterval)
    if from_date:
        query = query.filter(TimerInterval.start_time >= _day_bounds(from_date)[0])
    if to_date:
        query = query.filter(TimerInterval.start_time < _day_bounds(to_date)[1])
    if status_filter:
        query = query.filter(TimerInterval.status == status_filter)
    return query.order_by(TimerInterval.start_time.asc(), TimerInterval.id.asc()).all()


def get_interval(db: Session, interval_id: int) -> TimerInterval:
    interval = db.get(TimerInterval, interval_id)
    if not interval:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Interval not found")
    return interval


def update_runtime_settings(db: Session, state: RuntimeState, updates: Dict[str, Any]) -> Dict[str, Any]:
    cleaned = {key: value for key, value in updates.items() if value is not None}
    if not cleaned:
        return state.snapshot()
    state.apply(cleaned)
    state.persist(db, cleaned)
    return state.snapshot()


def suggest_next_interval(timer: TimerSession, state: RuntimeState) -> Dict[str, Any]:
    frequency = state.snapshot()["long_break_frequency"]
    count = timer.completed_work_count
    interval_type = next_interval_type(timer.last_completed, count, frequency)
    return {
        "interval_type": interval_type,
        "duration_seconds": state.duration_seconds_for(interval_type),
        "completed_work_count": count,
        "long_break_frequency": frequency,
        "suggest_long_break": suggest_long_break(count, frequency),
    }
