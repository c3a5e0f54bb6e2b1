"""Adaptive concurrency throttle driven by anti-bot challenges."""
from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Optional

logger = logging.getLogger(__name__)


@dataclass
class ThrottleConfig:
    """Configuration for the challenge throttle."""

    window: float = 300.0  # trailing window for counting challenges
    trip_count: int = 3
    recovery: float = 600.0  # quiet period before restoring
    min_workers: int = 2
    worker_step: int = 2
    delay_factor: float = 1.5


class CaptchaThrottle:
    """Two-state hysteresis over a trailing window of challenge timestamps.

    Tripping shrinks the active worker count and stretches the delay once.
    Further challenges while reduced do not shrink again. After a quiet
    ``recovery`` period the original values come back exactly once.
    """

    def __init__(
        self,
        workers: int,
        delay: float,
        config: Optional[ThrottleConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or ThrottleConfig()
        self.clock = clock
        self.original_workers = workers
        self.original_delay = delay
        self.active_workers = workers
        self.delay = delay
        self.reduced = False
        self.reduced_at: Optional[float] = None
        self.last_event: Optional[float] = None
        self.events: Deque[float] = deque()

    def _prune(self, now: float) -> None:
        cutoff = now - self.config.window
        while self.events and self.events[0] < cutoff:
            self.events.popleft()

    def record(self, now: Optional[float] = None) -> bool:
        """Register a challenge. Returns ``True`` when this event tripped the throttle."""

        now = self.clock() if now is None else now
        self.events.append(now)
        self.last_event = now
        self._prune(now)
        if self.reduced or len(self.events) < self.config.trip_count:
            return False

        shrunk = max(self.config.min_workers, self.active_workers - self.config.worker_step)
        self.active_workers = min(self.active_workers, shrunk)
        self.delay = self.delay * self.config.delay_factor
        self.reduced = True
        self.reduced_at = now
        logger.warning(
            "Throttle tripped: %d challenges in %.0fs, workers %d -> %d, delay %.2fs",
            len(self.events),
            self.config.window,
            self.original_workers,
            self.active_workers,
            self.delay,
            extra={"phase": "throttle"},
        )
        return True

    def tick(self, now: Optional[float] = None) -> bool:
        """Restore original settings after a quiet period. Returns ``True`` on restoration."""

        if not self.reduced:
            return False
        now = self.clock() if now is None else now
        quiet_since = max(self.last_event or 0.0, self.reduced_at or 0.0)
        if now - quiet_since < self.config.recovery:
            return False

        self.active_workers = self.original_workers
        self.delay = self.original_delay
        self.reduced = False
        self.reduced_at = None
        self._prune(now)
        logger.info(
            "Throttle cleared after %.0fs without challenges, workers %d, delay %.2fs",
            now - quiet_since,
            self.active_workers,
            self.delay,
            extra={"phase": "throttle"},
        )
        return True

    def event_count(self, now: Optional[float] = None) -> int:
        self._prune(self.clock() if now is None else now)
        return len(self.events)
