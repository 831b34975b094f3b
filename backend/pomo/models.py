from __future__ import annotations

import datetime as dt

from sqlalchemy import CheckConstraint, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


UTC = dt.timezone.utc


def _as_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class TimerInterval(Base):
    __tablename__ = "timer_intervals"
    __table_args__ = (
        CheckConstraint(
            "interval_type IN ('work', 'short_break', 'long_break')",
            name="ck_timer_intervals_interval_type",
        ),
        CheckConstraint(
            "status IN ('in_progress', 'completed', 'cancelled')",
            name="ck_timer_intervals_status",
        ),
        Index("idx_timer_intervals_start_time", "start_time"),
        Index("idx_timer_intervals_status", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    interval_type = Column(String(20), nullable=False)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    planned_duration_seconds = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="in_progress")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    @property
    def is_finalized(self) -> bool:
        return self.status != "in_progress"

    def mark_finished(self, status: str, end_time: dt.datetime, duration_seconds: int) -> None:
        if status not in {"completed", "cancelled"}:
            raise ValueError(f"Unsupported final status: {status}")
        self.status = status
        self.end_time = _as_utc(end_time)
        self.duration_seconds = max(int(duration_seconds), 0)


class UserSetting(Base):
    __tablename__ = "user_settings"
    __table_args__ = (
        CheckConstraint(
            "type IN ('string', 'integer', 'real', 'boolean', 'json')",
            name="ck_user_settings_type",
        ),
    )

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)
    type = Column(String(20), nullable=False, default="string")
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
