"""Datenmodelle für den Timer-Client."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(slots=True)
class TimerStatus:
    """Momentaufnahme des Timers, wie sie die API liefert."""

    state: str
    interval_type: str
    remaining_ms: int
    planned_duration_seconds: int
    interval_id: Optional[int] = None
    completed_work_count: int = 0
    overtime: bool = False
    overtime_ms: int = 0

    @property
    def is_active(self) -> bool:
        return self.state != "idle"


@dataclass(slots=True)
class IntervalRecord:
    """Ein gespeichertes Arbeits- oder Pausenintervall."""

    interval_id: int
    interval_type: str
    status: str
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    planned_duration_seconds: int
    duration_seconds: Optional[int] = None


__all__ = ["TimerStatus", "IntervalRecord"]
