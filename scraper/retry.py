"""Bounded retry and polling primitives."""
import logging
import time
from typing import Any, Callable, Tuple, Type

logger = logging.getLogger(__name__)


class PollTimeout(Exception):
    """Raised when polling exhausts its attempts without a terminal status."""


def retry_call(
    func: Callable[[], Any],
    max_attempts: int = 3,
    delay: float = 1.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
    description: str = 'call',
) -> Any:
    """
    Call func until it succeeds, with linear backoff between attempts.

    The wait before attempt ``n + 1`` is ``n * delay`` seconds.

    Args:
        func: Zero-argument callable
        max_attempts: Total number of attempts
        delay: Backoff unit in seconds
        retry_on: Exception types that trigger another attempt
        sleep: Sleep function (injectable for tests)
        description: Label used in log messages

    Returns:
        The first successful result

    Raises:
        The last exception once all attempts fail
    """
    for attempt in range(1, max_attempts + 1):
        try:
            return func()
        except retry_on as e:
            if attempt < max_attempts:
                wait = attempt * delay
                logger.warning(
                    f"{description} failed (attempt {attempt}/{max_attempts}): {e}. "
                    f"Retrying in {wait} seconds..."
                )
                sleep(wait)
            else:
                logger.error(
                    f"All {max_attempts} attempts failed for {description}. Last error: {e}"
                )
                raise


def poll_until(
    fetch: Callable[[], Any],
    is_done: Callable[[Any], bool],
    interval: float = 1.5,
    max_attempts: int = 40,
    sleep: Callable[[float], None] = time.sleep,
    description: str = 'job',
) -> Any:
    """
    Poll fetch at a fixed interval until is_done accepts the result.

    ``is_done`` may raise to abort immediately on a failed terminal status.
    There is no cancellation: the loop ends on a terminal result, an
    exception, or attempt exhaustion.

    Args:
        fetch: Zero-argument callable returning the current status
        is_done: Predicate marking a terminal, successful status
        interval: Seconds between polls
        max_attempts: Maximum number of polls
        sleep: Sleep function (injectable for tests)
        description: Label used in log and error messages

    Returns:
        The terminal result

    Raises:
        PollTimeout: If no terminal status is seen within max_attempts
    """
    for attempt in range(1, max_attempts + 1):
        sleep(interval)
        result = fetch()
        if is_done(result):
            return result
        logger.debug(f"{description} still pending (poll {attempt}/{max_attempts})")

    raise PollTimeout(
        f"{description} did not complete after {max_attempts} polls "
        f"({max_attempts * interval:.0f}s)"
    )
