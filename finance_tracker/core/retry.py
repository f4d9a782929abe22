import asyncio
import logging

LOGGER = logging.getLogger("finance_tracker.retry")


def exponential_backoff(base_seconds=2.0, factor=2.0, max_seconds=None):
    """Delay before retry number `attempt` (1-based): 2s, 4s, 8s, ..."""

    def _delay(attempt):
        delay = base_seconds * (factor ** (attempt - 1))
        if max_seconds is not None:
            delay = min(delay, max_seconds)
        return delay

    return _delay


async def with_retry(
    operation,
    *,
    max_attempts=3,
    backoff=None,
    sleep=asyncio.sleep,
    retry_on=(Exception,),
    label="operation",
):
    """
    Await `operation()` up to `max_attempts` times.

    The last failure is re-raised. No delay follows the final attempt.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    backoff = backoff or exponential_backoff()

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except retry_on as exc:
            if attempt == max_attempts:
                LOGGER.error("%s failed after %d attempts: %s", label, attempt, exc)
                raise
            delay = backoff(attempt)
            LOGGER.warning(
                "%s attempt %d/%d failed (%s); retrying in %.1fs",
                label,
                attempt,
                max_attempts,
                exc,
                delay,
            )
            await sleep(delay)
