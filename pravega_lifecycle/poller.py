"""
Bounded-interval polling: the single primitive every wait is built on.

Each tick re-fetches live state and hands it to a predicate:
  - predicate returns True   -> done, return the observed state
  - predicate returns False  -> sleep one interval and try again
  - predicate raises         -> abort now, no further ticks

Fetch errors are not retried; a fetch that wants "not found" to mean
something must map it itself before returning.
"""

import logging
import time
from enum import Enum
from typing import Callable, Optional, Tuple, TypeVar

from pravega_lifecycle.errors import TimedOut
from pravega_lifecycle.events import record_poll

logger = logging.getLogger("poller")

T = TypeVar("T")

# Resolved per call so tests can substitute a fake clock
_clock = time.monotonic
_sleep = time.sleep


class PollOutcome(str, Enum):
    READY = "Ready"
    TIMED_OUT = "TimedOut"
    ERROR = "Error"


def poll_until(
    fetch: Callable[[], T],
    predicate: Callable[[T], bool],
    *,
    interval: float,
    timeout: float,
    what: str,
    clock: Optional[Callable[[], float]] = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> T:
    """
    Poll until ``predicate(fetch())`` holds, returning the satisfying state.

    Raises TimedOut (carrying the last observed state) when no tick strictly
    before the deadline satisfied the predicate. Anything raised by fetch or
    predicate propagates immediately.
    """
    if interval <= 0:
        raise ValueError(f"interval must be positive, got {interval}")
    if timeout <= 0:
        raise ValueError(f"timeout must be positive, got {timeout}")
    clock = clock or _clock
    sleep = sleep or _sleep

    start = clock()
    deadline = start + timeout
    observed: Optional[T] = None
    ticks = 0
    try:
        while True:
            now = clock()
            if now >= deadline:
                raise TimedOut(what, timeout, last_observed=observed)
            ticks += 1
            observed = fetch()
            if predicate(observed):
                logger.debug(f"{what}: satisfied after {ticks} tick(s)")
                record_poll(what, PollOutcome.READY.value, clock() - start)
                return observed
            remaining = deadline - clock()
            if remaining > 0:
                sleep(min(interval, remaining))
    except TimedOut:
        logger.warning(f"{what}: timed out after {timeout:g}s ({ticks} tick(s))")
        record_poll(what, PollOutcome.TIMED_OUT.value, clock() - start)
        raise
    except Exception:
        record_poll(what, PollOutcome.ERROR.value, clock() - start)
        raise


def poll_outcome(
    fetch: Callable[[], T],
    predicate: Callable[[T], bool],
    **kwargs,
) -> Tuple[PollOutcome, Optional[T], Optional[Exception]]:
    """Tagged-result form of poll_until: (outcome, last observed state, error)."""
    try:
        return PollOutcome.READY, poll_until(fetch, predicate, **kwargs), None
    except TimedOut as e:
        return PollOutcome.TIMED_OUT, e.last_observed, e
    except Exception as e:
        return PollOutcome.ERROR, None, e
