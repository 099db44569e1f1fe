# ABOUTME: Single-flight guard and cooldown for the background enrichment sweep.
# ABOUTME: Read traffic calls maybe_trigger(); at most one sweep runs at a time.

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


def _spawn_thread(target: Callable[[], None]) -> None:
    threading.Thread(target=target, name="lendery-sweep", daemon=True).start()


class SweepCoordinator:
    """Decides whether an opportunistic sweep may start, and runs it off-thread.

    A sweep may start when none is in flight and the previous one finished
    more than `cooldown_seconds` ago. The caller never waits for the sweep.
    `on_complete` receives the sweep's result; failures are logged and
    swallowed so they never reach the triggering request.
    """

    def __init__(
        self,
        run_sweep: Callable[[], Any],
        *,
        cooldown_seconds: float,
        on_complete: Callable[[Any], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        spawn: Callable[[Callable[[], None]], None] = _spawn_thread,
    ) -> None:
        self._run_sweep = run_sweep
        self._cooldown = cooldown_seconds
        self._on_complete = on_complete
        self._clock = clock
        self._spawn = spawn
        self._lock = threading.Lock()
        self._in_flight = False
        self._last_finished_at: float | None = None
        self._idle = threading.Event()
        self._idle.set()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def maybe_trigger(self) -> bool:
        """Start a sweep if allowed. Returns True if one was started."""
        with self._lock:
            if self._in_flight:
                return False
            if (
                self._last_finished_at is not None
                and self._clock() - self._last_finished_at < self._cooldown
            ):
                return False
            self._in_flight = True
            self._idle.clear()

        logger.debug("Starting background enrichment sweep")
        try:
            self._spawn(self._run)
        except Exception:
            self._finish()
            raise
        return True

    def wait(self, timeout: float | None = None) -> bool:
        """Block until no sweep is in flight. Returns False on timeout."""
        return self._idle.wait(timeout)

    def _run(self) -> None:
        try:
            result = self._run_sweep()
            if self._on_complete is not None:
                self._on_complete(result)
        except Exception:
            logger.exception("Background enrichment sweep failed")
        finally:
            self._finish()

    def _finish(self) -> None:
        with self._lock:
            self._in_flight = False
            self._last_finished_at = self._clock()
        self._idle.set()
