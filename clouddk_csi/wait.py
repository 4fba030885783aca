"""Readiness polling for freshly created servers."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TypeVar

from loguru import logger

from clouddk_csi.core.exceptions import ReadinessTimeoutError
from clouddk_csi.infra.clock import Clock, SystemClock

# Pause after a failed attempt.
_BACKOFF = 1.0

T = TypeVar("T")


async def wait_for_ready(
    dial: Callable[[], Awaitable[T]],
    *,
    address: str,
    clock: Clock | None = None,
    timeout: float = 300.0,
    interval: int = 10,
    poll: float = 0.2,
) -> T:
    """Dial until it succeeds or ``timeout`` seconds have elapsed.

    Attempts happen only on seconds aligned to ``interval`` (0, 10, 20, ...),
    between them the loop sleeps in ``poll`` increments so elapsed time is
    tracked closely. The first successful result is returned and the caller
    owns it from then on.

    Args:
        dial: Async callable opening the connection.
        address: Target address, for logs and errors.
        clock: Time source. Defaults to the event loop clock.
        timeout: Total time budget in seconds.
        interval: Seconds between connection attempts.
        poll: Sleep granularity between checks.

    Raises:
        ReadinessTimeoutError: If no attempt succeeded within the budget,
            chained from the last dial error.
    """
    clock = clock or SystemClock()
    log = logger.bind(component="wait", address=address)

    start = clock.monotonic()
    elapsed = 0.0
    attempts = 0
    last_error: Exception | None = None

    while elapsed < timeout:
        if int(elapsed) % interval == 0:
            attempts += 1
            try:
                result = await dial()
            except Exception as e:
                last_error = e
                log.debug(
                    "Attempt {n} to reach {address} failed after {elapsed:.1f}s: {error}",
                    n=attempts, address=address, elapsed=elapsed, error=e,
                )
                await clock.sleep(_BACKOFF)
            else:
                log.debug(
                    "{address} reachable after {elapsed:.1f}s ({n} attempts)",
                    address=address, elapsed=elapsed, n=attempts,
                )
                return result

        await clock.sleep(poll)
        elapsed = clock.monotonic() - start

    raise ReadinessTimeoutError(address, timeout) from last_error
