"""Per-provider circuit breaker."""

import threading
import time
from dataclasses import dataclass
from typing import Callable


@dataclass
class BreakerState:
    """Failure tracking for a single provider."""

    consecutive_failures: int = 0

    # 0.0 while closed, otherwise the timestamp at which the breaker closes again
    open_until: float = 0.0


class CircuitBreaker:
    """
    Track consecutive provider failures and temporarily exclude failing providers.

    Rules:
    - After `failure_threshold` consecutive failures the provider is OPEN for
      `cooldown_seconds` and is skipped by the router.
    - Once the cooldown has elapsed the provider counts as CLOSED again on the
      next check. There is no separate half-open trial state, but the failure
      count survives the cooldown, so the first failure afterwards reopens it.
    - A single success resets the failure count and closes the breaker.

    Each provider's state has its own lock, so updates to different providers
    never contend.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        cooldown_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the circuit breaker.

        Args:
            failure_threshold: Consecutive failures that open the breaker
            cooldown_seconds: How long an open breaker keeps the provider excluded
            clock: Source of the current timestamp in seconds
        """
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._states: dict[str, BreakerState] = {}
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, provider_name: str) -> threading.Lock:
        return self._locks.setdefault(provider_name, threading.Lock())

    def _get_state(self, provider_name: str) -> BreakerState:
        """Get or create the state for a provider. Caller holds the provider lock."""
        if provider_name not in self._states:
            self._states[provider_name] = BreakerState()
        return self._states[provider_name]

    def is_open(self, provider_name: str) -> bool:
        """
        Check if a provider's breaker is currently open.

        Args:
            provider_name: Name of the provider to check

        Returns:
            True if the provider should be skipped
        """
        with self._lock_for(provider_name):
            state = self._states.get(provider_name)
            if state is None or state.open_until == 0.0:
                return False
            if self._clock() >= state.open_until:
                # Only a success resets the streak, so one more failure reopens
                state.open_until = 0.0
                return False
            return True

    def record_failure(self, provider_name: str) -> bool:
        """
        Record a failed call for a provider.

        Returns:
            True if this failure opened the breaker
        """
        with self._lock_for(provider_name):
            state = self._get_state(provider_name)
            state.consecutive_failures += 1
            if state.consecutive_failures < self.failure_threshold:
                return False
            now = self._clock()
            was_closed = state.open_until == 0.0 or now >= state.open_until
            state.open_until = now + self.cooldown_seconds
            return was_closed

    def record_success(self, provider_name: str) -> None:
        """Record a successful call, closing the breaker."""
        with self._lock_for(provider_name):
            state = self._get_state(provider_name)
            state.consecutive_failures = 0
            state.open_until = 0.0

    def get_state(self, provider_name: str) -> BreakerState:
        """Return a copy of a provider's current state."""
        with self._lock_for(provider_name):
            state = self._states.get(provider_name, BreakerState())
            return BreakerState(state.consecutive_failures, state.open_until)

    def get_open_until(self, provider_name: str) -> float | None:
        """Timestamp at which an open breaker closes, or None if closed."""
        if not self.is_open(provider_name):
            return None
        return self.get_state(provider_name).open_until

    def get_cooldown_remaining_seconds(self, provider_name: str) -> float | None:
        """Remaining cooldown in seconds, or None if the breaker is closed."""
        open_until = self.get_open_until(provider_name)
        if open_until is None:
            return None
        return max(0.0, open_until - self._clock())

    def all_open(self, provider_names: list[str]) -> bool:
        """True only if every named provider has an open, unexpired breaker."""
        if not provider_names:
            return False
        return all(self.is_open(name) for name in provider_names)
