"""Retry-with-deadline primitive used by tunnel discovery."""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from ..utils.logging import DiscoveryTimeoutError

T = TypeVar("T")


@dataclass
class PollResult(Generic[T]):
    """Value returned by a successful poll along with bookkeeping."""

    value: T
    attempts: int
    elapsed: float


def poll_until(
    check: Callable[[], T | None],
    interval: float,
    timeout: float,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> PollResult[T]:
    """Call ``check`` until it returns a value or ``timeout`` elapses.

    A final check is always made once the deadline is reached, so a timeout
    is never reported before ``timeout`` seconds have passed on ``clock``.

    Args:
        check: Callable returning None while the condition is not yet met
        interval: Seconds to wait between attempts
        timeout: Total seconds to keep trying
        clock: Monotonic time source
        sleep: Sleep function

    Returns:
        PollResult wrapping the first non-None value from ``check``

    Raises:
        DiscoveryTimeoutError: If no value is observed before the deadline
    """
    if interval <= 0:
        raise ValueError("interval must be greater than zero")
    if timeout < 0:
        raise ValueError("timeout must not be negative")

    start = clock()
    deadline = start + timeout
    attempts = 0

    while True:
        attempts += 1
        value = check()
        now = clock()
        if value is not None:
            return PollResult(value=value, attempts=attempts, elapsed=now - start)

        if now >= deadline:
            raise DiscoveryTimeoutError(
                f"Condition not met after {now - start:.1f}s ({attempts} attempts)",
                timeout=timeout,
                attempts=attempts,
            )

        sleep(min(interval, deadline - now))
