from datetime import date, datetime, timezone, tzinfo
from threading import Event, Lock
from typing import Optional, Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...

    def wait_until(self, moment: datetime) -> bool: ...


class SystemClock:
    """Wall clock whose waits can be interrupted through a shared stop event."""

    def __init__(self, *, stop_event: Optional[Event] = None) -> None:
        self._stop_event = stop_event or Event()

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def wait_until(self, moment: datetime) -> bool:
        """Block until ``moment``; returns False when interrupted by the stop event."""
        remaining = (moment - self.now()).total_seconds()
        if remaining <= 0:
            return not self._stop_event.is_set()
        return not self._stop_event.wait(timeout=remaining)


class ManualClock:
    """Deterministic clock for tests and replays; waiting jumps straight to the target time."""

    def __init__(self, start: datetime) -> None:
        if start.tzinfo is None:
            raise ValueError("ManualClock requires a timezone-aware start time")
        self._lock = Lock()
        self._now = start

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def wait_until(self, moment: datetime) -> bool:
        with self._lock:
            if moment > self._now:
                self._now = moment
        return True

    def advance_to(self, moment: datetime) -> None:
        self.wait_until(moment)


def business_date(clock: Clock, tz: tzinfo) -> date:
    return clock.now().astimezone(tz).date()
