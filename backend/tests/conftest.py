from __future__ import annotations

import datetime as dt
import os
import tempfile
from pathlib import Path
from typing import Generator

# The app module creates its tables on import; keep them out of the working tree.
os.environ.setdefault("POMO_SQLITE_PATH", str(Path(tempfile.mkdtemp(prefix="pomo-tests-")) / "pomo.db"))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from pomo import models  # noqa: E402
from pomo.database import get_db  # noqa: E402
from pomo.events import EventBus  # noqa: E402
from pomo.main import app, build_timer_session, get_event_bus, get_runtime_state, get_timer_session  # noqa: E402
from pomo.state import RuntimeState  # noqa: E402
from pomo.timer import TimerSession  # noqa: E402


class FakeClock:
    def __init__(self) -> None:
        self.mono = 1000.0
        self.wall = dt.datetime(2026, 2, 14, 9, 0, tzinfo=dt.timezone.utc)

    def advance(self, seconds: float) -> None:
        self.mono += float(seconds)
        self.wall += dt.timedelta(seconds=seconds)

    def monotonic(self) -> float:
        return self.mono

    def now(self) -> dt.datetime:
        return self.wall


class RecordingScheduler:
    def __init__(self) -> None:
        self.started: list[int] = []
        self.stops = 0
        self.stopped: list[int] = []

    def start(self, generation: int) -> None:
        self.started.append(generation)

    def stop(self, generation: int) -> None:
        self.stops += 1
        self.stopped.append(generation)

    def shutdown(self, timeout=None) -> None:
        self.stops += 1


class MemoryRecorder:
    def __init__(self) -> None:
        self.rows: dict[int, dict] = {}
        self.fail_on: set[str] = set()

    def create(self, interval_type, start_time, planned_duration_seconds) -> int:
        if "create" in self.fail_on:
            raise RuntimeError("disk full")
        interval_id = len(self.rows) + 1
        self.rows[interval_id] = {
            "interval_type": interval_type.value,
            "start_time": start_time,
            "planned_duration_seconds": planned_duration_seconds,
            "status": "in_progress",
            "end_time": None,
            "duration_seconds": None,
        }
        return interval_id

    def complete(self, interval_id, end_time, duration_seconds) -> None:
        self._finish("complete", interval_id, "completed", end_time, duration_seconds)

    def cancel(self, interval_id, end_time, duration_seconds) -> None:
        self._finish("cancel", interval_id, "cancelled", end_time, duration_seconds)

    def _finish(self, operation, interval_id, status, end_time, duration_seconds) -> None:
        if operation in self.fail_on:
            raise RuntimeError("database is locked")
        row = self.rows[interval_id]
        assert row["status"] == "in_progress", "finalized interval must not be mutated"
        row.update(status=status, end_time=end_time, duration_seconds=duration_seconds)


class StaticSettings:
    def __init__(self, overtime_enabled: bool = False) -> None:
        self.overtime_enabled = overtime_enabled
        self.reads = 0

    def get_overtime_enabled(self) -> bool:
        self.reads += 1
        return self.overtime_enabled


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def recorder() -> MemoryRecorder:
    return MemoryRecorder()


@pytest.fixture()
def timer_settings() -> StaticSettings:
    return StaticSettings()


@pytest.fixture()
def bus() -> EventBus:
    return EventBus(maxsize=1024)


@pytest.fixture()
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture()
def engine_timer(clock, recorder, timer_settings, bus, scheduler) -> TimerSession:
    """Timer driven by a fake clock; ticks are triggered by the test."""
    return TimerSession(
        recorder,
        timer_settings,
        bus,
        monotonic_now=clock.monotonic,
        wall_now=clock.now,
        scheduler=scheduler,
    )


@pytest.fixture()
def temp_db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture()
def engine(temp_db_path: Path):
    url = f"sqlite:///{temp_db_path}"
    engine = create_engine(url, connect_args={"check_same_thread": False}, future=True)
    models.Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture()
def session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def runtime_state(session: Session) -> RuntimeState:
    state = RuntimeState()
    state.seed_defaults(session)
    state.load_from_db(session)
    return state


@pytest.fixture()
def live_timer(session_factory, runtime_state: RuntimeState, bus: EventBus) -> Generator[TimerSession, None, None]:
    """Timer backed by SQLite with a real, fast tick thread."""
    timer = build_timer_session(session_factory, runtime_state, bus, tick_seconds=0.02)
    try:
        yield timer
    finally:
        timer.shutdown(timeout=2)


@pytest.fixture()
def client(session_factory, runtime_state: RuntimeState, bus: EventBus, live_timer: TimerSession) -> Generator[TestClient, None, None]:
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_runtime_state] = lambda: runtime_state
    app.dependency_overrides[get_event_bus] = lambda: bus
    app.dependency_overrides[get_timer_session] = lambda: live_timer
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
