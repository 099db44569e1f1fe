# ABOUTME: A "first of (operation, timeout)" combinator for slow, side-effect-free calls.
# ABOUTME: The losing operation keeps running on its worker and its result is ignored.

import logging
from collections.abc import Callable
from concurrent.futures import Executor, Future
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RaceResult(Generic[T]):
    """Outcome of a race: the value, and whether the operation beat the timer."""

    value: T
    completed: bool


def _discard(future: Future) -> None:
    exc = future.exception()
    if exc is not None:
        logger.debug("Abandoned operation finished with error: %s", exc)


def first_of(
    operation: Callable[[], T],
    timeout: float,
    fallback: Callable[[], T],
    *,
    executor: Executor,
) -> RaceResult[T]:
    """Run `operation` on `executor` and wait at most `timeout` seconds.

    If the operation finishes in time its value wins (and its exception, if
    any, propagates). Otherwise `fallback()` wins and the operation is
    abandoned, not cancelled: it must have no observable side effects.
    """
    future = executor.submit(operation)
    try:
        return RaceResult(value=future.result(timeout=timeout), completed=True)
    except FutureTimeout:
        future.add_done_callback(_discard)
        logger.info("Operation did not finish within %.2fs; using fallback", timeout)
        return RaceResult(value=fallback(), completed=False)
