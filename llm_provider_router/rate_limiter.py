"""Fixed-window rate limiting for tool invocations."""

import threading
import time
from dataclasses import dataclass
from typing import Callable


@dataclass
class RateLimitWindow:
    """Call count for one (tool, conversation) key within the current window."""

    count: int = 0
    window_started_at: float = 0.0


class RateLimiter:
    """
    Limit how often a tool may run for a single conversation.

    Rules:
    - Each (tool name, conversation id) key has a fixed window of
      `window_seconds` that starts with the first call in it.
    - A call is allowed while the count before it is below the limit, and
      allowed calls increment the count. Rejected calls are not counted.
    - When the window has elapsed the next call starts a fresh window.
    """

    def __init__(
        self,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the rate limiter.

        Args:
            window_seconds: Length of each fixed window
            clock: Source of the current time in seconds
        """
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[tuple[str, str], RateLimitWindow] = {}
        self._locks: dict[tuple[str, str], threading.Lock] = {}

    def _lock_for(self, key: tuple[str, str]) -> threading.Lock:
        return self._locks.setdefault(key, threading.Lock())

    def _current_window(self, key: tuple[str, str], now: float) -> RateLimitWindow:
        """Get the live window for a key, resetting it if expired. Caller holds the lock."""
        window = self._windows.get(key)
        if window is None or now - window.window_started_at >= self.window_seconds:
            window = RateLimitWindow(count=0, window_started_at=now)
            self._windows[key] = window
        return window

    def try_acquire(self, tool_name: str, conversation_id: str, limit: int) -> bool:
        """
        Consume one call from the key's window if the limit allows it.

        Args:
            tool_name: Tool being invoked
            conversation_id: Conversation the call belongs to
            limit: Maximum calls per window

        Returns:
            True if the call may proceed
        """
        key = (tool_name, conversation_id)
        with self._lock_for(key):
            window = self._current_window(key, self._clock())
            if window.count >= limit:
                return False
            window.count += 1
            return True

    def get_count(self, tool_name: str, conversation_id: str) -> int:
        """Calls counted in the key's current window."""
        key = (tool_name, conversation_id)
        with self._lock_for(key):
            window = self._windows.get(key)
            if window is None or self._clock() - window.window_started_at >= self.window_seconds:
                return 0
            return window.count

    def get_reset_remaining_seconds(self, tool_name: str, conversation_id: str) -> float | None:
        """Seconds until the key's window resets, or None if no window is live."""
        key = (tool_name, conversation_id)
        with self._lock_for(key):
            window = self._windows.get(key)
            if window is None:
                return None
            remaining = window.window_started_at + self.window_seconds - self._clock()
            return remaining if remaining > 0 else None
