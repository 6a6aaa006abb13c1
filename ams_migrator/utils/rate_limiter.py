import threading
import time
from typing import Callable, Optional


class RateLimiter:
    """Token bucket shared by every worker thread of a transport client."""

    def __init__(
        self,
        requests_per_second: float = 10.0,
        burst_size: int = 10,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be > 0")
        self._requests_per_second = requests_per_second
        self._burst_size = burst_size
        self._tokens: float = float(burst_size)
        self._last_update: Optional[float] = None
        self._lock = threading.Lock()
        self._clock = clock
        self._sleep = sleep

    def acquire(self) -> float:
        """Take one token, blocking until it is available. Returns the wait in seconds."""
        with self._lock:
            now = self._clock()

            if self._last_update is None:
                self._last_update = now

            elapsed = max(0.0, now - self._last_update)
            self._tokens = min(
                self._burst_size,
                self._tokens + elapsed * self._requests_per_second,
            )
            self._last_update = max(now, self._last_update)

            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return 0.0

            # reserve the slot so concurrent callers queue up behind this one
            self._last_update += (1.0 - self._tokens) / self._requests_per_second
            self._tokens = 0.0
            wait_time = self._last_update - now

        self._sleep(wait_time)
        return wait_time

    def __enter__(self) -> "RateLimiter":
        self.acquire()
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        pass
