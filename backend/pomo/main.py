from __future__ import annotations

import datetime as dt
import logging
from contextlib import asynccontextmanager
from typing import Callable, Iterator, Optional

from typing_extensions import Literal

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.orm import Session

from . import models
from .config import settings
from .database import SessionLocal, db_session, engine, get_db
from .events import EventBus
from .recorder import SqlIntervalRecorder
from .schemas import (
    NextIntervalResponse,
    SettingsResponse,
    SettingsUpdateRequest,
    TimerIntervalResponse,
    TimerStartRequest,
    TimerStatusResponse,
)
from .services import get_interval, list_intervals, suggest_next_interval, update_runtime_settings
from .state import RuntimeState
from .timer import InvalidArgument, InvalidTransition, PersistenceFailure, TimerSession

logger = logging.getLogger(__name__)


def build_timer_session(
    session_factory: Callable[[], Session],
    runtime_state: RuntimeState,
    bus: EventBus,
    tick_seconds: Optional[float] = None,
) -> TimerSession:
    return TimerSession(
        SqlIntervalRecorder(session_factory),
        runtime_state,
        bus,
        tick_seconds=settings.tick_seconds if tick_seconds is None else tick_seconds,
    )


models.Base.metadata.create_all(bind=engine)

runtime_state = RuntimeState()
with db_session() as session:
    runtime_state.seed_defaults(session)
    runtime_state.load_from_db(session)

event_bus = EventBus(settings.event_queue_size)
timer_session = build_timer_session(SessionLocal, runtime_state, event_bus)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    logger.info("Stopping timer tick scheduler")
    app.state.timer_session.shutdown(timeout=settings.tick_seconds * 4)


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.state.runtime_state = runtime_state
app.state.event_bus = event_bus
app.state.timer_session = timer_session
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)


def get_runtime_state(request: Request) -> RuntimeState:
    return request.app.state.runtime_state


def get_event_bus(request: Request) -> EventBus:
    return request.app.state.event_bus


def get_timer_session(request: Request) -> TimerSession:
    return request.app.state.timer_session


@app.exception_handler(InvalidTransition)
async def invalid_transition_handler(request: Request, exc: InvalidTransition) -> JSONResponse:
    return JSONResponse({"detail": str(exc)}, status_code=status.HTTP_409_CONFLICT)


@app.exception_handler(InvalidArgument)
async def invalid_argument_handler(request: Request, exc: InvalidArgument) -> JSONResponse:
    return JSONResponse({"detail": str(exc)}, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)


@app.exception_handler(PersistenceFailure)
async def persistence_failure_handler(request: Request, exc: PersistenceFailure) -> JSONResponse:
    return JSONResponse({"detail": str(exc)}, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/timer/start", response_model=TimerStatusResponse, status_code=status.HTTP_201_CREATED)
def timer_start(
    payload: TimerStartRequest,
    timer: TimerSession = Depends(get_timer_session),
    state: RuntimeState = Depends(get_runtime_state),
) -> TimerStatusResponse:
    duration = payload.duration_seconds or state.duration_seconds_for(payload.interval_type)
    return timer.start(payload.interval_type, duration)


@app.post("/timer/pause", response_model=TimerStatusResponse)
def timer_pause(timer: TimerSession = Depends(get_timer_session)) -> TimerStatusResponse:
    return timer.pause()


@app.post("/timer/resume", response_model=TimerStatusResponse)
def timer_resume(timer: TimerSession = Depends(get_timer_session)) -> TimerStatusResponse:
    return timer.resume()


@app.post("/timer/cancel", response_model=TimerStatusResponse)
def timer_cancel(timer: TimerSession = Depends(get_timer_session)) -> TimerStatusResponse:
    return timer.cancel()


@app.get("/timer/state", response_model=TimerStatusResponse)
def timer_state(timer: TimerSession = Depends(get_timer_session)) -> TimerStatusResponse:
    return timer.get_status()


@app.get("/timer/next", response_model=NextIntervalResponse)
def timer_next(
    timer: TimerSession = Depends(get_timer_session),
    state: RuntimeState = Depends(get_runtime_state),
) -> NextIntervalResponse:
    return NextIntervalResponse(**suggest_next_interval(timer, state))


@app.get("/timer/events")
def timer_events(
    max_events: Optional[int] = Query(default=None, ge=1),
    bus: EventBus = Depends(get_event_bus),
) -> StreamingResponse:
    subscription = bus.subscribe()

    def stream() -> Iterator[str]:
        delivered = 0
        try:
            while max_events is None or delivered < max_events:
                event = subscription.get(timeout=settings.event_keepalive_seconds)
                if event is None:
                    yield ": keepalive\n\n"
                    continue
                yield event.to_sse()
                delivered += 1
        finally:
            subscription.close()

    return StreamingResponse(
        stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@app.get("/intervals", response_model=list[TimerIntervalResponse])
def intervals(
    from_date: Optional[dt.date] = None,
    to_date: Optional[dt.date] = None,
    interval_status: Optional[Literal["in_progress", "completed", "cancelled"]] = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
) -> list[TimerIntervalResponse]:
    return list_intervals(db, from_date, to_date, interval_status)


@app.get("/intervals/{interval_id}", response_model=TimerIntervalResponse)
def interval_detail(interval_id: int, db: Session = Depends(get_db)) -> TimerIntervalResponse:
    return get_interval(db, interval_id)


@app.get("/settings", response_model=SettingsResponse)
def get_settings(state: RuntimeState = Depends(get_runtime_state)) -> SettingsResponse:
    return SettingsResponse(**state.snapshot())


@app.put("/settings", response_model=SettingsResponse)
def update_settings(
    payload: SettingsUpdateRequest,
    db: Session = Depends(get_db),
    state: RuntimeState = Depends(get_runtime_state),
) -> SettingsResponse:
    updated = update_runtime_settings(db, state, payload.model_dump(exclude_unset=True))
    return SettingsResponse(**updated)
