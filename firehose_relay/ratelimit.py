"""Fixed-window message counter used for per-session lossy backpressure."""

import time
from typing import Callable


class WindowRateLimiter:
    """Allow at most ``max_messages`` acquisitions per ``window`` seconds.

    The counter resets when a window has elapsed since the window start.
    Denied acquisitions are not queued; callers drop the message.
    """

    def __init__(self, max_messages: int = 15, window: float = 1.0, clock: Callable[[], float] = time.monotonic):
        if max_messages < 0:
            raise ValueError("max_messages must be >= 0")
        if window <= 0:
            raise ValueError("window must be > 0")
        self.max_messages = max_messages
        self.window = window
        self._clock = clock
        self.window_start = clock()
        self._count = 0
        self.dropped = 0

    def _roll(self) -> None:
        now = self._clock()
        if now - self.window_start >= self.window:
            self.window_start = now
            self._count = 0

    @property
    def count(self) -> int:
        """Messages sent in the current window."""
        self._roll()
        return self._count

    def try_acquire(self) -> bool:
        self._roll()
        if self._count >= self.max_messages:
            self.dropped += 1
            return False
        self._count += 1
        return True
