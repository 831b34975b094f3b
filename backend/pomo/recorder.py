from __future__ import annotations

import datetime as dt
from contextlib import contextmanager
from typing import Any, Callable, Generator, Protocol

from sqlalchemy.orm import Session

from .models import TimerInterval, _as_utc


class IntervalRecorder(Protocol):
    """Durable store for interval history consumed by the timer engine."""

    def create(self, interval_type: Any, start_time: dt.datetime, planned_duration_seconds: int) -> int:
        ...

    def complete(self, interval_id: int, end_time: dt.datetime, duration_seconds: int) -> None:
        ...

    def cancel(self, interval_id: int, end_time: dt.datetime, duration_seconds: int) -> None:
        ...


class SettingsProvider(Protocol):
    def get_overtime_enabled(self) -> bool:
        ...


class SqlIntervalRecorder:
    """Stores intervals in the ``timer_intervals`` table.

    Every call runs in its own short-lived session so it is safe to call from
    the tick thread and from request handlers alike.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create(self, interval_type: Any, start_time: dt.datetime, planned_duration_seconds: int) -> int:
        with self._session() as db:
            record = TimerInterval(
                interval_type=getattr(interval_type, "value", interval_type),
                start_time=_as_utc(start_time),
                planned_duration_seconds=int(planned_duration_seconds),
                status="in_progress",
            )
            db.add(record)
            db.flush()
            return record.id

    def complete(self, interval_id: int, end_time: dt.datetime, duration_seconds: int) -> None:
        self._finish(interval_id, "completed", end_time, duration_seconds)

    def cancel(self, interval_id: int, end_time: dt.datetime, duration_seconds: int) -> None:
        self._finish(interval_id, "cancelled", end_time, duration_seconds)

    def _finish(self, interval_id: int, status: str, end_time: dt.datetime, duration_seconds: int) -> None:
        with self._session() as db:
            record = db.get(TimerInterval, interval_id)
            if record is None:
                raise LookupError(f"Interval {interval_id} does not exist")
            if record.is_finalized:
                raise LookupError(f"Interval {interval_id} is already {record.status}")
            record.mark_finished(status, end_time, duration_seconds)
