"""Timer engine: the single authoritative focus/break session.

Remaining time is always derived from an absolute monotonic anchor
(``end_anchor - now``) and never decremented per tick, so delayed or skipped
ticks cannot make the countdown drift.
"""

from __future__ import annotations

import datetime as dt
import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from .events import EventBus, complete_event, error_event, tick_event

if TYPE_CHECKING:  # pragma: no cover
    from .recorder import IntervalRecorder, SettingsProvider

logger = logging.getLogger(__name__)

DEFAULT_TICK_SECONDS = 0.25


class IntervalType(str, enum.Enum):
    WORK = "work"
    SHORT_BREAK = "short_break"
    LONG_BREAK = "long_break"

    @property
    def is_break(self) -> bool:
        return self is not IntervalType.WORK


class TimerState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


class TimerError(Exception):
    """Base class for errors reported by the timer engine."""


class InvalidTransition(TimerError):
    def __init__(self, action: str, state: TimerState, reason: Optional[str] = None) -> None:
        self.action = action
        self.state = state
        super().__init__(reason or f"Cannot {action} timer while it is {state.value}")


class InvalidArgument(TimerError, ValueError):
    pass


class PersistenceFailure(TimerError):
    def __init__(self, operation: str, interval_id: Optional[int] = None) -> None:
        self.operation = operation
        self.interval_id = interval_id
        target = f" for interval {interval_id}" if interval_id is not None else ""
        super().__init__(f"Failed to {operation} interval record{target}")


# ── Work count policy ────────────────────────────────────────


def apply_work_count(interval_type: IntervalType, current_count: int) -> int:
    """Return the completed-work counter after ``interval_type`` finishes naturally."""
    if interval_type is IntervalType.WORK:
        return current_count + 1
    if interval_type is IntervalType.LONG_BREAK:
        return 0
    return current_count


def suggest_long_break(completed_work_count: int, long_break_frequency: int) -> bool:
    return completed_work_count >= max(1, int(long_break_frequency))


def next_interval_type(
    last_completed: Optional[IntervalType],
    completed_work_count: int,
    long_break_frequency: int,
) -> IntervalType:
    if last_completed is not IntervalType.WORK:
        return IntervalType.WORK
    if suggest_long_break(completed_work_count, long_break_frequency):
        return IntervalType.LONG_BREAK
    return IntervalType.SHORT_BREAK


# ── Overtime ─────────────────────────────────────────────────


class OvertimeTracker:
    """Counts time elapsed past a break's planned end."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self.active = False
        self.since: Optional[float] = None

    def start(self, since: Optional[float] = None) -> None:
        if self.active:
            return
        self.active = True
        self.since = self._clock() if since is None else since

    def elapsed_ms(self, now: Optional[float] = None) -> int:
        if not self.active or self.since is None:
            return 0
        current = self._clock() if now is None else now
        return max(0, int((current - self.since) * 1000))

    def stop(self) -> None:
        self.active = False
        self.since = None


# ── Status snapshot ──────────────────────────────────────────


@dataclass(frozen=True)
class TimerStatus:
    state: TimerState
    interval_type: IntervalType
    remaining_ms: int
    planned_duration_seconds: int
    interval_id: Optional[int]
    completed_work_count: int
    overtime: bool
    overtime_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "interval_type": self.interval_type.value,
            "remaining_ms": self.remaining_ms,
            "planned_duration_seconds": self.planned_duration_seconds,
            "interval_id": self.interval_id,
            "completed_work_count": self.completed_work_count,
            "overtime": self.overtime,
            "overtime_ms": self.overtime_ms,
        }


@dataclass(frozen=True)
class _Finished:
    interval_id: int
    interval_type: IntervalType
    duration_seconds: int
    completed_work_count: int
    overtime: bool


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _coerce_interval_type(value: Any) -> IntervalType:
    try:
        return IntervalType(value)
    except ValueError as exc:
        raise InvalidArgument(f"Unknown interval type: {value!r}") from exc


# ── Session ──────────────────────────────────────────────────


class TimerSession:
    """Owns the timer state; every read and write goes through ``_lock``.

    Calls into the interval recorder are always made with the lock released.
    """

    def __init__(
        self,
        recorder: "IntervalRecorder",
        settings_provider: "SettingsProvider",
        bus: EventBus,
        *,
        tick_seconds: float = DEFAULT_TICK_SECONDS,
        monotonic_now: Optional[Callable[[], float]] = None,
        wall_now: Optional[Callable[[], dt.datetime]] = None,
        scheduler: Optional["TickScheduler"] = None,
    ) -> None:
        self._recorder = recorder
        self._settings = settings_provider
        self._bus = bus
        self._mono_now = monotonic_now or time.monotonic
        self._wall_now = wall_now or _utcnow
        self._lock = threading.Lock()

        self._state = TimerState.IDLE
        self._interval_type = IntervalType.WORK
        self._planned_duration_seconds = 0
        self._end_anchor: Optional[float] = None
        self._remaining_ms = 0
        self._interval_id: Optional[int] = None
        self._completed_work_count = 0
        self._overtime_enabled = False
        self._overtime = OvertimeTracker(self._mono_now)
        self._last_completed: Optional[IntervalType] = None
        self._starting = False
        self._generation = 0

        self.scheduler = scheduler or TickScheduler(self, tick_seconds)

    # -- read side ---------------------------------------------------

    @property
    def completed_work_count(self) -> int:
        with self._lock:
            return self._completed_work_count

    @property
    def last_completed(self) -> Optional[IntervalType]:
        with self._lock:
            return self._last_completed

    def get_status(self) -> TimerStatus:
        with self._lock:
            return self._snapshot_locked()

    def _remaining_from(self, now: float) -> int:
        if self._end_anchor is None:
            return 0
        return max(0, int(round((self._end_anchor - now) * 1000)))

    def _snapshot_locked(self, now: Optional[float] = None) -> TimerStatus:
        now = self._mono_now() if now is None else now
        if self._overtime.active:
            remaining = 0
        elif self._state is TimerState.RUNNING:
            remaining = self._remaining_from(now)
        else:
            remaining = self._remaining_ms
        return TimerStatus(
            state=self._state,
            interval_type=self._interval_type,
            remaining_ms=remaining,
            planned_duration_seconds=self._planned_duration_seconds,
            interval_id=self._interval_id,
            completed_work_count=self._completed_work_count,
            overtime=self._overtime.active,
            overtime_ms=self._overtime.elapsed_ms(now),
        )

    # -- commands ----------------------------------------------------

    def start(self, interval_type: Any, duration_seconds: int) -> TimerStatus:
        kind = _coerce_interval_type(interval_type)
        if isinstance(duration_seconds, bool) or not isinstance(duration_seconds, int) or duration_seconds <= 0:
            raise InvalidArgument("Duration must be a positive number of seconds")

        with self._lock:
            if self._state is not TimerState.IDLE or self._starting:
                raise InvalidTransition("start", self._state)
            self._starting = True

        try:
            overtime_enabled = bool(self._settings.get_overtime_enabled())
            try:
                interval_id = self._recorder.create(kind, self._wall_now(), duration_seconds)
            except Exception as exc:
                logger.exception("Could not create %s interval record", kind.value)
                raise PersistenceFailure("create") from exc
        except BaseException:
            with self._lock:
                self._starting = False
            raise

        with self._lock:
            self._starting = False
            now = self._mono_now()
            self._state = TimerState.RUNNING
            self._interval_type = kind
            self._planned_duration_seconds = duration_seconds
            self._interval_id = interval_id
            self._remaining_ms = duration_seconds * 1000
            self._end_anchor = now + duration_seconds
            self._overtime_enabled = overtime_enabled
            self._overtime.stop()
            self._generation += 1
            generation = self._generation
            status = self._snapshot_locked(now)

        self.scheduler.start(generation)
        logger.info("Started %s interval %s for %ss", kind.value, interval_id, duration_seconds)
        return status

    def pause(self) -> TimerStatus:
        with self._lock:
            if self._state is not TimerState.RUNNING:
                raise InvalidTransition("pause", self._state)
            if self._overtime.active:
                raise InvalidTransition("pause", self._state, "Overtime can only be ended by cancelling")
            now = self._mono_now()
            self._remaining_ms = self._remaining_from(now)
            self._end_anchor = None
            self._state = TimerState.PAUSED
            self._generation += 1
            generation = self._generation
            status = self._snapshot_locked(now)

        self.scheduler.stop(generation)
        logger.info("Paused interval %s with %sms remaining", status.interval_id, status.remaining_ms)
        return status

    def resume(self) -> TimerStatus:
        with self._lock:
            if self._state is not TimerState.PAUSED:
                raise InvalidTransition("resume", self._state)
            now = self._mono_now()
            self._end_anchor = now + self._remaining_ms / 1000
            self._state = TimerState.RUNNING
            self._generation += 1
            generation = self._generation
            status = self._snapshot_locked(now)

        self.scheduler.start(generation)
        logger.info("Resumed interval %s with %sms remaining", status.interval_id, status.remaining_ms)
        return status

    def cancel(self) -> TimerStatus:
        with self._lock:
            if self._state is TimerState.IDLE:
                raise InvalidTransition("cancel", self._state)
            now = self._mono_now()
            interval_id = self._interval_id
            planned_ms = self._planned_duration_seconds * 1000
            in_overtime = self._overtime.active
            if in_overtime:
                duration_seconds = (planned_ms + self._overtime.elapsed_ms(now)) // 1000
            else:
                remaining = self._remaining_from(now) if self._state is TimerState.RUNNING else self._remaining_ms
                duration_seconds = max(0, planned_ms - remaining) // 1000
            finished = _Finished(
                interval_id=interval_id,
                interval_type=self._interval_type,
                duration_seconds=duration_seconds,
                completed_work_count=self._completed_work_count,
                overtime=in_overtime,
            )
            self._reset_locked()
            status = self._snapshot_locked(now)
            generation = self._generation

        self.scheduler.stop(generation)
        end_time = self._wall_now()
        failure: Optional[Exception] = None
        try:
            if in_overtime:
                self._recorder.complete(interval_id, end_time, duration_seconds)
            else:
                self._recorder.cancel(interval_id, end_time, duration_seconds)
        except Exception as exc:
            logger.exception("Could not finalize interval %s on cancel", interval_id)
            failure = exc

        if in_overtime:
            logger.info("Ended overtime of %s interval %s after %ss", finished.interval_type.value, interval_id, duration_seconds)
            self._publish_completion(finished)
        else:
            logger.info("Cancelled %s interval %s after %ss", finished.interval_type.value, interval_id, duration_seconds)

        if failure is not None:
            raise PersistenceFailure("finalize", interval_id) from failure
        return status

    def _reset_locked(self) -> None:
        self._state = TimerState.IDLE
        self._interval_id = None
        self._end_anchor = None
        self._remaining_ms = 0
        self._overtime.stop()
        self._overtime_enabled = False
        self._generation += 1

    # -- ticking -----------------------------------------------------

    def tick(self, generation: Optional[int] = None) -> bool:
        """Run one tick; return ``False`` once the calling loop should exit."""
        with self._lock:
            if generation is not None and generation != self._generation:
                return False
            if self._state is not TimerState.RUNNING:
                return False
            now = self._mono_now()

            if self._overtime.active:
                self._bus.publish(
                    tick_event(0, self._interval_type.value, True, self._overtime.elapsed_ms(now))
                )
                return True

            remaining = self._remaining_from(now)
            if remaining > 0:
                self._bus.publish(tick_event(remaining, self._interval_type.value))
                return True

            if self._interval_type.is_break and self._overtime_enabled:
                self._overtime.start(since=self._end_anchor)
                self._completed_work_count = apply_work_count(self._interval_type, self._completed_work_count)
                self._last_completed = self._interval_type
                logger.info("Interval %s entered overtime", self._interval_id)
                self._bus.publish(
                    tick_event(0, self._interval_type.value, True, self._overtime.elapsed_ms(now))
                )
                return True

            self._completed_work_count = apply_work_count(self._interval_type, self._completed_work_count)
            self._last_completed = self._interval_type
            finished = _Finished(
                interval_id=self._interval_id,
                interval_type=self._interval_type,
                duration_seconds=self._planned_duration_seconds,
                completed_work_count=self._completed_work_count,
                overtime=False,
            )
            self._reset_locked()

        try:
            self._recorder.complete(finished.interval_id, self._wall_now(), finished.duration_seconds)
        except Exception as exc:
            logger.exception("Could not mark interval %s completed", finished.interval_id)
            self._bus.publish(error_event(finished.interval_id, f"Failed to mark interval completed: {exc}"))
        logger.info(
            "Completed %s interval %s (work count %s)",
            finished.interval_type.value,
            finished.interval_id,
            finished.completed_work_count,
        )
        self._publish_completion(finished)
        return False

    def _publish_completion(self, finished: _Finished) -> None:
        self._bus.publish(
            complete_event(
                finished.interval_id,
                finished.interval_type.value,
                finished.completed_work_count,
                finished.overtime,
            )
        )

    def shutdown(self, timeout: Optional[float] = None) -> None:
        self.scheduler.shutdown(timeout)


# ── Scheduler ────────────────────────────────────────────────


class TickScheduler:
    """Background thread that ticks a :class:`TimerSession` while it runs.

    At most one loop is alive at a time: starting a new loop stops and joins
    the previous one first.
    """

    def __init__(self, session: TimerSession, period_seconds: float = DEFAULT_TICK_SECONDS) -> None:
        self._session = session
        self.period_seconds = max(0.001, float(period_seconds))
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._generation = 0

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(self, generation: int) -> None:
        with self._lock:
            if generation < self._generation:
                return
            self._generation = generation
            self._retire_locked()
            stop = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(generation, stop),
                name=f"pomo-tick-{generation}",
                daemon=True,
            )
            self._thread = thread
            self._stop = stop
            thread.start()

    def stop(self, generation: int) -> None:
        """Stop the loop unless a newer one has been started since ``generation``."""
        with self._lock:
            if generation < self._generation:
                return
            self._stop.set()

    def shutdown(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            self._retire_locked(timeout)

    def _retire_locked(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        previous = self._thread
        self._thread = None
        if previous is not None and previous is not threading.current_thread():
            previous.join(timeout)

    def _run(self, generation: int, stop: threading.Event) -> None:
        while not stop.wait(self.period_seconds):
            try:
                if not self._session.tick(generation):
                    return
            except Exception:
                logger.exception("Tick loop %s failed", generation)
                return
