from __future__ import annotations

from threading import RLock
from typing import Any, Dict, Tuple

from sqlalchemy.orm import Session

from .models import UserSetting
from .timer import IntervalType


DEFAULT_USER_SETTINGS: Dict[str, Tuple[str, Any]] = {
    "work_duration_minutes": ("integer", 25),
    "short_break_duration_minutes": ("integer", 5),
    "long_break_duration_minutes": ("integer", 15),
    "long_break_frequency": ("integer", 4),
    "break_overtime_enabled": ("boolean", False),
}

DURATION_KEYS = {
    IntervalType.WORK: "work_duration_minutes",
    IntervalType.SHORT_BREAK: "short_break_duration_minutes",
    IntervalType.LONG_BREAK: "long_break_duration_minutes",
}


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _encode(setting_type: str, value: Any) -> str:
    if setting_type == "boolean":
        return "true" if _parse_bool(value) else "false"
    if setting_type == "integer":
        return str(max(1, int(value)))
    return str(value)


class RuntimeState:
    """User timer settings that can be adjusted at runtime.

    Also serves as the settings provider of the timer engine.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self.work_duration_minutes: int = DEFAULT_USER_SETTINGS["work_duration_minutes"][1]
        self.short_break_duration_minutes: int = DEFAULT_USER_SETTINGS["short_break_duration_minutes"][1]
        self.long_break_duration_minutes: int = DEFAULT_USER_SETTINGS["long_break_duration_minutes"][1]
        self.long_break_frequency: int = DEFAULT_USER_SETTINGS["long_break_frequency"][1]
        self.break_overtime_enabled: bool = DEFAULT_USER_SETTINGS["break_overtime_enabled"][1]

    def get_overtime_enabled(self) -> bool:
        with self._lock:
            return self.break_overtime_enabled

    def duration_seconds_for(self, interval_type: IntervalType) -> int:
        with self._lock:
            return int(getattr(self, DURATION_KEYS[IntervalType(interval_type)])) * 60

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {key: getattr(self, key) for key in DEFAULT_USER_SETTINGS}

    def apply(self, updates: Dict[str, Any]) -> None:
        with self._lock:
            for key, (setting_type, _default) in DEFAULT_USER_SETTINGS.items():
                if key not in updates or updates[key] is None:
                    continue
                value = updates[key]
                if setting_type == "boolean":
                    setattr(self, key, _parse_bool(value))
                else:
                    setattr(self, key, max(1, int(value)))

    def load_from_db(self, session: Session) -> None:
        records = session.query(UserSetting).all()
        decoded: Dict[str, Any] = {}
        for record in records:
            if record.key not in DEFAULT_USER_SETTINGS:
                continue
            try:
                if record.type == "boolean":
                    decoded[record.key] = _parse_bool(record.value)
                else:
                    decoded[record.key] = int(record.value)
            except ValueError:
                continue
        if decoded:
            self.apply(decoded)

    def seed_defaults(self, session: Session) -> None:
        existing = {key for (key,) in session.query(UserSetting.key).all()}
        for key, (setting_type, default) in DEFAULT_USER_SETTINGS.items():
            if key not in existing:
                session.add(UserSetting(key=key, value=_encode(setting_type, default), type=setting_type))
        session.commit()

    def persist(self, session: Session, updates: Dict[str, Any]) -> None:
        for key, value in updates.items():
            if key not in DEFAULT_USER_SETTINGS or value is None:
                continue
            setting_type = DEFAULT_USER_SETTINGS[key][0]
            encoded = _encode(setting_type, value)
            record = session.get(UserSetting, key)
            if record:
                record.value = encoded
                record.type = setting_type
            else:
                session.add(UserSetting(key=key, value=encoded, type=setting_type))
        session.commit()
