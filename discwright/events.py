"""
Events Module

Run-scoped log and progress events. A pipeline run receives a publisher
bound to its job; publishers forward every message to the standard logger
and fan events out to subscribers of an EventBus.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

logger = logging.getLogger(__name__)

_LEVELS = {
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "timing": logging.INFO,
    "debug": logging.DEBUG,
}


@dataclass
class Event:
    """One log or progress record."""
    kind: str  # "output" or "progress"
    payload: dict
    job_id: Optional[str] = None
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


class EventPublisher(Protocol):
    """What the pipeline needs to report on a run."""

    def log(self, message: str, level: str = "info") -> None: ...

    def progress(self, current: float, total: float, message: str = "") -> None: ...

    def time(self, label: str) -> None: ...

    def time_end(self, label: str) -> Optional[float]: ...


class Subscription:
    """A subscriber's view of the bus, optionally filtered to one job."""

    def __init__(self, bus: "EventBus", job_id: Optional[str] = None):
        self._bus = bus
        self.job_id = job_id
        self.events: queue.Queue = queue.Queue()

    def accepts(self, event: Event) -> bool:
        return self.job_id is None or event.job_id == self.job_id

    def get(self, timeout: Optional[float] = None) -> Event:
        """Next event; raises queue.Empty on timeout."""
        return self.events.get(timeout=timeout)

    def drain(self) -> list[Event]:
        """All events received so far."""
        items = []
        while True:
            try:
                items.append(self.events.get_nowait())
            except queue.Empty:
                return items

    def unsubscribe(self) -> None:
        self._bus.unsubscribe(self)


class EventBus:
    """Thread-safe fan-out of events to every subscription."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: list[Subscription] = []

    def subscribe(self, job_id: Optional[str] = None) -> Subscription:
        subscription = Subscription(self, job_id)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def publish(self, event: Event) -> None:
        with self._lock:
            targets = [s for s in self._subscriptions if s.accepts(event)]
        for subscription in targets:
            subscription.events.put(event)


class NullPublisher:
    """Publisher that only writes to the standard logger."""

    def __init__(self, job_id: Optional[str] = None):
        self.job_id = job_id
        self._timers: dict[str, float] = {}

    def _emit(self, event: Event) -> None:
        pass

    def _payload(self, **values: Any) -> dict:
        if self.job_id:
            values["jobId"] = self.job_id
        return values

    def log(self, message: str, level: str = "info") -> None:
        logger.log(_LEVELS.get(level, logging.INFO), message)
        self._emit(Event(
            kind="output",
            payload=self._payload(message=message, type=level),
            job_id=self.job_id
        ))

    def warn(self, message: str) -> None:
        self.log(message, "warning")

    def error(self, message: str) -> None:
        self.log(message, "error")

    def progress(self, current: float, total: float, message: str = "") -> None:
        percent = int(current / total * 100) if total else 0
        logger.debug(f"{message} {percent}% ({current}/{total})")
        self._emit(Event(
            kind="progress",
            payload=self._payload(
                percent=percent, current=current, total=total, message=message
            ),
            job_id=self.job_id
        ))

    def time(self, label: str) -> None:
        """Start timing with a label."""
        self._timers[label] = time.perf_counter()

    def time_end(self, label: str) -> Optional[float]:
        """
        End timing and report the duration.

        Returns:
            Elapsed seconds, or None if the timer was never started
        """
        started = self._timers.pop(label, None)
        if started is None:
            self.warn(f"Timer '{label}' does not exist")
            return None

        elapsed = time.perf_counter() - started
        self.log(f"{label}: completed in {elapsed:.2f}s", "timing")
        return elapsed


class JobEventPublisher(NullPublisher):
    """Publisher that tags events with a job id and fans them out on a bus."""

    def __init__(self, bus: EventBus, job_id: Optional[str] = None):
        super().__init__(job_id)
        self.bus = bus

    def _emit(self, event: Event) -> None:
        self.bus.publish(event)
