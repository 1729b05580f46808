"""
Bounded waiting helpers.

Both helpers take ``sleep`` (and ``clock``) as arguments so callers can inject
fakes and tests never wait for real.
"""

import logging
import time
from typing import Callable

LOG = logging.getLogger("PreconfigTester.Retry")


def bounded_retry(
    action: Callable[[], None],
    done: Callable[[], bool],
    attempts: int = 3,
    interval: float = 0.2,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """
    Runs an idempotent ``action`` until ``done()`` holds or attempts run out.

    Each attempt checks ``done()`` first and returns early when it holds;
    otherwise it runs ``action`` and waits ``interval``. One last check
    follows the final attempt.

    Returns:
        True if ``done()`` held before the budget was exhausted.
    """
    if attempts <= 0:
        raise ValueError("attempts must be positive")

    for attempt in range(1, attempts + 1):
        if done():
            return True
        LOG.debug(f"Attempt {attempt}/{attempts}")
        action()
        sleep(interval)
    return done()


def wait_until(
    predicate: Callable[[], bool],
    timeout: float,
    interval: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    """
    Polls ``predicate`` until it holds or ``timeout`` seconds of wall-clock
    time have passed.

    The predicate is always evaluated at least once, and no sleep runs past
    the deadline.
    """
    deadline = clock() + max(timeout, 0.0)
    while True:
        if predicate():
            return True
        remaining = deadline - clock()
        if remaining <= 0:
            return False
        sleep(min(interval, remaining) if interval > 0 else 0.0)
