import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

from quizroom.models import TimerWindow

logger = logging.getLogger(__name__)


def now_epoch_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class TimerReading:
    remaining: int
    progress: float
    running: bool
    expired: bool


IDLE_READING = TimerReading(remaining=0, progress=0.0, running=False, expired=False)


def compute_remaining(ends_at_ms: int, now_ms: int) -> int:
    return max(0, math.ceil((ends_at_ms - now_ms) / 1000))


def compute_progress(remaining: int, total: float) -> float:
    if not total or total <= 0:
        return 0.0
    return min(100.0, max(0.0, remaining / total * 100))


class TimerClock:
    """Countdown derived from an absolute deadline.

    The window is read from ``window_source`` on every tick and remaining time
    is recomputed from the wall clock, so a late or skipped tick never drifts
    the display. Reaching zero only flags the reading as expired; phase changes
    stay with the authoritative events.
    """

    def __init__(self, window_source: Callable[[], Optional[TimerWindow]],
                 clock: Callable[[], int] = now_epoch_ms, tick_interval: float = 0.25):
        self._window_source = window_source
        self._clock = clock
        self._tick_interval = tick_interval
        self._listeners: list[Callable[[TimerReading], None]] = []
        self._task: Optional[asyncio.Task] = None
        self._expired_window: Optional[int] = None
        self.reading = IDLE_READING

    def subscribe(self, listener: Callable[[TimerReading], None]) -> None:
        self._listeners.append(listener)

    def tick(self) -> TimerReading:
        window = self._window_source()
        if window is None:
            self.reading = IDLE_READING
        else:
            remaining = compute_remaining(window.ends_at_epoch_ms, self._clock())
            self.reading = TimerReading(
                remaining=remaining,
                progress=compute_progress(remaining, window.total_duration_seconds),
                running=remaining > 0,
                expired=remaining == 0,
            )
            if self.reading.expired and self._expired_window != window.ends_at_epoch_ms:
                self._expired_window = window.ends_at_epoch_ms
                logger.info(f"[timer-expired] endsAt={window.ends_at_epoch_ms}")
        for listener in list(self._listeners):
            listener(self.reading)
        return self.reading

    @property
    def expired(self) -> bool:
        # Recompute so callers never act on a stale tick
        return self.tick().expired

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        while True:
            self.tick()
            await asyncio.sleep(self._tick_interval)


def window_from_event(ends_at_ms, duration_ms=None, now_ms: Optional[int] = None) -> Optional[TimerWindow]:
    """Build a window from a timer-started / timer status payload.

    Without an explicit duration the seconds left on arrival become the total,
    falling back to 30 when the deadline is already behind us.
    """
    if ends_at_ms is None:
        return None
    ends_at_ms = int(ends_at_ms)
    if duration_ms:
        total = max(1, round(int(duration_ms) / 1000))
    else:
        now_ms = now_epoch_ms() if now_ms is None else now_ms
        total = compute_remaining(ends_at_ms, now_ms) or 30
    return TimerWindow(ends_at_epoch_ms=ends_at_ms, total_duration_seconds=total)
