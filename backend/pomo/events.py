from __future__ import annotations

import json
import logging
import queue
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional
from uuid import uuid4

logger = logging.getLogger(__name__)

TIMER_TICK = "timer-tick"
TIMER_COMPLETE = "timer-complete"
TIMER_ERROR = "timer-error"


def utc_now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


@dataclass(frozen=True)
class TimerEvent:
    event_type: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=utc_now_iso)
    event_id: str = field(default_factory=lambda: uuid4().hex)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_sse(self) -> str:
        """Frame the event for a ``text/event-stream`` response."""
        data = json.dumps(self.payload, separators=(",", ":"))
        return f"id: {self.event_id}\nevent: {self.event_type}\ndata: {data}\n\n"


def tick_event(remaining_ms: int, interval_type: str, overtime: bool = False, overtime_ms: int = 0) -> TimerEvent:
    return TimerEvent(
        event_type=TIMER_TICK,
        payload={
            "remaining_ms": int(remaining_ms),
            "interval_type": interval_type,
            "overtime": bool(overtime),
            "overtime_ms": int(overtime_ms),
        },
    )


def complete_event(
    interval_id: int,
    interval_type: str,
    completed_work_count: int,
    overtime: bool = False,
) -> TimerEvent:
    return TimerEvent(
        event_type=TIMER_COMPLETE,
        payload={
            "interval_id": int(interval_id),
            "interval_type": interval_type,
            "completed_work_count": int(completed_work_count),
            "overtime": bool(overtime),
        },
    )


def error_event(interval_id: Optional[int], message: str) -> TimerEvent:
    return TimerEvent(event_type=TIMER_ERROR, payload={"interval_id": interval_id, "message": message})


class Subscription:
    """Bounded queue of events for a single consumer.

    When the consumer falls behind and the queue is full, the oldest queued
    event is discarded to make room for the newest one.
    """

    def __init__(self, bus: "EventBus", maxsize: int) -> None:
        self._bus = bus
        self._queue: queue.Queue[TimerEvent] = queue.Queue(maxsize=max(1, int(maxsize)))
        self.dropped = 0
        self.closed = False

    def get(self, timeout: Optional[float] = None) -> Optional[TimerEvent]:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> List[TimerEvent]:
        events: List[TimerEvent] = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                break
        return events

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._bus._unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *_exc) -> None:
        self.close()

    def _offer(self, event: TimerEvent) -> None:
        while True:
            try:
                self._queue.put_nowait(event)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    continue
                self.dropped += 1
                logger.debug("Dropped oldest event for slow subscriber (dropped=%d)", self.dropped)


class EventBus:
    """Fire-and-forget broadcast of timer events to every current subscriber."""

    def __init__(self, maxsize: int = 256) -> None:
        self.maxsize = max(1, int(maxsize))
        self._lock = threading.Lock()
        self._subscribers: List[Subscription] = []

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, maxsize: Optional[int] = None) -> Subscription:
        subscription = Subscription(self, maxsize or self.maxsize)
        with self._lock:
            self._subscribers.append(subscription)
        return subscription

    def publish(self, event: TimerEvent) -> TimerEvent:
        with self._lock:
            subscribers = list(self._subscribers)
        for subscription in subscribers:
            subscription._offer(event)
        return event

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            try:
                self._subscribers.remove(subscription)
            except ValueError:
                pass
