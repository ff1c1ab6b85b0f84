"""Blocking acquisition layered on the try-once locks."""

import random
import time

import structlog

from .lock import BaseLock

logger = structlog.get_logger(__name__)


def acquire_with_retry(
    lock: BaseLock,
    timeout: float,
    min_delay: float = 0.05,
    max_delay: float = 1.0,
) -> bool:
    """Keep calling ``lock.acquire()`` until it succeeds or time runs out.

    Waits between attempts grow exponentially from ``min_delay`` up to
    ``max_delay``, each drawn uniformly from zero to the current bound.
    Store errors are not retried.

    Args:
        lock: Lock to acquire
        timeout: Seconds to keep trying
        min_delay: Upper bound of the first wait
        max_delay: Cap on the wait bound

    Returns:
        True if the lock was acquired before the deadline
    """
    deadline = time.monotonic() + timeout
    delay = min_delay
    attempts = 0
    while True:
        attempts += 1
        if lock.acquire():
            return True
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            logger.info("lock_wait_timed_out", lock=lock.name, attempts=attempts, timeout=timeout)
            return False
        time.sleep(min(remaining, random.uniform(0, delay)))
        delay = min(max_delay, delay * 2)
