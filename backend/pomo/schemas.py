from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_serializer

from .timer import IntervalType, TimerState


def _serialize_datetime(value: dt.datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    else:
        value = value.astimezone(dt.timezone.utc)
    return value.isoformat()


class TimerStartRequest(BaseModel):
    interval_type: IntervalType
    duration_seconds: Optional[int] = Field(default=None, gt=0)


class TimerStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    state: TimerState
    interval_type: IntervalType
    remaining_ms: int
    planned_duration_seconds: int
    interval_id: Optional[int]
    completed_work_count: int
    overtime: bool
    overtime_ms: int


class NextIntervalResponse(BaseModel):
    interval_type: IntervalType
    duration_seconds: int
    completed_work_count: int
    long_break_frequency: int
    suggest_long_break: bool


class TimerIntervalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    interval_type: IntervalType
    start_time: dt.datetime
    end_time: Optional[dt.datetime]
    duration_seconds: Optional[int]
    planned_duration_seconds: int
    status: str
    created_at: dt.datetime

    @model_serializer(mode="plain", when_used="json")
    def _serialize(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "interval_type": self.interval_type.value,
            "start_time": _serialize_datetime(self.start_time),
            "end_time": _serialize_datetime(self.end_time) if self.end_time else None,
            "duration_seconds": self.duration_seconds,
            "planned_duration_seconds": self.planned_duration_seconds,
            "status": self.status,
            "created_at": _serialize_datetime(self.created_at),
        }


class SettingsResponse(BaseModel):
    work_duration_minutes: int
    short_break_duration_minutes: int
    long_break_duration_minutes: int
    long_break_frequency: int
    break_overtime_enabled: bool


class SettingsUpdateRequest(BaseModel):
    work_duration_minutes: Optional[int] = Field(default=None, ge=1)
    short_break_duration_minutes: Optional[int] = Field(default=None, ge=1)
    long_break_duration_minutes: Optional[int] = Field(default=None, ge=1)
    long_break_frequency: Optional[int] = Field(default=None, ge=1)
    break_overtime_enabled: Optional[bool] = None
