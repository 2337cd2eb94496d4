"""
Practice timer: a count-up clock with start/pause/reset/save.

The once-per-second increment comes from a Ticker, so the controller itself
never touches the event loop and can be driven by hand in tests.
"""
import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional, Protocol

from errors import TimerError
from schemas import SessionRecord

logger = logging.getLogger(__name__)


class TickHandle(Protocol):
    def cancel(self) -> None: ...


class Ticker(Protocol):
    def every(self, callback: Callable[[], None]) -> TickHandle: ...


class _Repeating:
    def __init__(self, loop: asyncio.AbstractEventLoop, interval: float, callback):
        self._loop = loop
        self._interval = interval
        self._callback = callback
        self.cancelled = False
        self._next = loop.time() + interval
        self._handle = loop.call_at(self._next, self._fire)

    def _fire(self):
        if self.cancelled:
            return
        # Scheduled from the start time, not from now, so ticks do not drift.
        self._next += self._interval
        self._handle = self._loop.call_at(self._next, self._fire)
        self._callback()

    def cancel(self) -> None:
        if not self.cancelled:
            self.cancelled = True
            self._handle.cancel()


class AsyncioTicker:
    """Repeating callbacks on the running event loop."""

    def __init__(self, interval: float = 1.0):
        self.interval = interval

    def every(self, callback: Callable[[], None]) -> _Repeating:
        return _Repeating(asyncio.get_running_loop(), self.interval, callback)


class TimerStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


class TimerController:
    def __init__(self, ticker: Ticker, on_tick: Optional[Callable[[int], None]] = None):
        self.ticker = ticker
        self.on_tick = on_tick
        self.seconds = 0
        self.status = TimerStatus.IDLE
        self._handle: Optional[TickHandle] = None

    def _tick(self):
        self.seconds += 1
        if self.on_tick:
            self.on_tick(self.seconds)

    def _stop_ticking(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def start(self):
        if self.status == TimerStatus.RUNNING:
            return
        self._handle = self.ticker.every(self._tick)
        self.status = TimerStatus.RUNNING

    def pause(self):
        if self.status != TimerStatus.RUNNING:
            return
        self._stop_ticking()
        self.status = TimerStatus.PAUSED

    def toggle(self):
        if self.status == TimerStatus.RUNNING:
            self.pause()
        else:
            self.start()

    def reset(self):
        self._stop_ticking()
        self.seconds = 0
        self.status = TimerStatus.IDLE

    def record(self, now: Optional[datetime] = None) -> SessionRecord:
        """The session a save would emit. Only a paused timer with time on it can be saved."""
        if self.status != TimerStatus.PAUSED:
            raise TimerError("Pause the timer before saving the session")
        if self.seconds <= 0:
            raise TimerError("Nothing to save yet")
        return SessionRecord(date=now or datetime.now(timezone.utc), duration=self.seconds)

    def save(self, sink: Callable[[SessionRecord], object], now: Optional[datetime] = None) -> SessionRecord:
        """
        Hand the finished session to `sink` and reset. If `sink` raises, the
        timer keeps its state so the save can be retried.
        """
        session_record = self.record(now)
        sink(session_record)
        logger.debug("timer saved %ss session", session_record.duration)
        self.reset()
        return session_record

    def dispose(self):
        """Stop ticking for good (the view went away); the counter is left as-is."""
        self._stop_ticking()
        if self.status == TimerStatus.RUNNING:
            self.status = TimerStatus.PAUSED
