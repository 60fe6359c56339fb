from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)


class Clock(Protocol):
    """Monotonic clock abstraction.

    Core logic depends on this interface rather than calling real time directly.
    """

    def now(self) -> float:
        """Return monotonic seconds."""


class RealClock:
    """Production clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()


class CountdownClock:
    """Cancelable one-second countdown driven by ``poll()``.

    The owner calls ``poll()`` from its update loop. Whole seconds elapsed on
    the injected Clock are converted into ``on_tick(remaining)`` calls, and
    ``on_expire()`` is delivered exactly once when remaining reaches zero.
    """

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._running = False
        self._remaining = 0
        self._next_tick_at_s = 0.0
        self._on_tick: Callable[[int], None] | None = None
        self._on_expire: Callable[[], None] | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def remaining(self) -> int:
        return self._remaining

    def start(
        self,
        duration_s: int,
        *,
        on_tick: Callable[[int], None] | None = None,
        on_expire: Callable[[], None] | None = None,
    ) -> None:
        if int(duration_s) <= 0:
            raise ValueError("duration_s must be > 0")
        if self._running:
            self.stop()
        self._remaining = int(duration_s)
        self._on_tick = on_tick
        self._on_expire = on_expire
        self._next_tick_at_s = self._clock.now() + 1.0
        self._running = True
        logger.debug("countdown started: %ss", self._remaining)

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self._on_tick = None
        self._on_expire = None
        logger.debug("countdown stopped at %ss", self._remaining)

    def poll(self) -> None:
        now = self._clock.now()
        while self._running and now >= self._next_tick_at_s:
            self._remaining -= 1
            self._next_tick_at_s += 1.0
            on_tick = self._on_tick
            if self._remaining <= 0:
                on_expire = self._on_expire
                # Disarm before notifying so a re-entrant start()/stop() sees a stopped clock.
                self._running = False
                self._on_tick = None
                self._on_expire = None
                if on_tick is not None:
                    on_tick(0)
                if on_expire is not None:
                    on_expire()
                return
            if on_tick is not None:
                on_tick(self._remaining)
