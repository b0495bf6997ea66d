"""Single-flight guard collapsing concurrent calls per key."""
import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, Dict

logger = logging.getLogger(__name__)


class SingleFlight:
    """
    At most one in-flight execution per key.

    A caller arriving while a call for the same key is running joins it and
    receives the same result object (or the same exception). The slot is
    cleared once the call settles, so the next caller starts a fresh run.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._calls: Dict[str, Future] = {}

    def do(self, key: str, func: Callable[[], Any]) -> Any:
        """
        Run func for key, or join the run already in progress.

        Args:
            key: Target identity
            func: Zero-argument callable

        Returns:
            The shared result
        """
        with self._lock:
            future = self._calls.get(key)
            leader = future is None
            if leader:
                future = Future()
                self._calls[key] = future

        if not leader:
            logger.info(f"Joining in-flight run for '{key}'")
            return future.result()

        try:
            result = func()
        except BaseException as e:
            self._settle(key)
            future.set_exception(e)
            raise
        self._settle(key)
        future.set_result(result)
        return result

    def in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._calls

    def _settle(self, key: str) -> None:
        with self._lock:
            self._calls.pop(key, None)
