"""Bounded retry with a fixed delay between attempts."""

from __future__ import annotations

import time
from typing import Callable

from system_update.logging import LoggerFactory


log = LoggerFactory.for_disk()


def retry_call(
    operation: Callable[[], bool],
    *,
    attempts: int,
    delay: float,
    description: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Call ``operation`` until it returns True, at most ``attempts`` times.

    Args:
        operation: Callable returning True on success
        attempts: Maximum number of calls, must be at least 1
        delay: Seconds to wait after each failed attempt
        description: Name used in log messages
        sleep: Sleep function, replaceable in tests

    Returns:
        True if an attempt succeeded, False when all attempts failed
    """
    if attempts < 1:
        raise ValueError(f"attempts must be at least 1, got {attempts}")

    for attempt in range(1, attempts + 1):
        if operation():
            if attempt > 1:
                log.debug(f"{description} succeeded on attempt {attempt}/{attempts}")
            return True

        if attempt < attempts:
            log.warning(f"{description} failed (attempt {attempt}/{attempts}), retrying.")
            sleep(delay)

    log.error(f"{description} failed after {attempts} attempts, giving up.")
    return False
