from __future__ import annotations

import threading
import time
from typing import Callable, Optional, TypeVar

T = TypeVar("T")


class RequestSequencer:
    """Monotonic request numbering for a single view target.

    Every fetch takes a number from ``issue()``. When the response comes back
    it is applied only if its number is still the latest one issued, so a slow
    response for an older request can never overwrite newer state.
    """

    def __init__(self) -> None:
        self._latest = 0
        self._lock = threading.Lock()

    @property
    def latest(self) -> int:
        return self._latest

    def issue(self) -> int:
        with self._lock:
            self._latest += 1
            return self._latest

    def is_current(self, token: int) -> bool:
        return token == self._latest

    def apply_if_current(self, token: int, apply: Callable[[], None]) -> bool:
        with self._lock:
            if token != self._latest:
                return False
            apply()
            return True


def poll_until(
    check: Callable[[], Optional[T]],
    *,
    max_attempts: int = 30,
    interval: float = 0.15,
    initial_delay: float = 0.2,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[T]:
    """Call ``check`` until it returns something truthy.

    One initial check after ``initial_delay`` plus at most ``max_attempts``
    retries spaced by ``interval``. Returns None when every attempt misses.
    """
    if initial_delay > 0:
        sleep(initial_delay)
    attempts = 0
    while True:
        result = check()
        if result:
            return result
        if attempts >= max_attempts:
            return None
        attempts += 1
        sleep(interval)
