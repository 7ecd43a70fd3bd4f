"""
Fail-fast guard for realtime publishing.

Order and payment writes commit before their events go out, so a dead
Redis must never slow the request path down. After
``redis_breaker_failure_threshold`` publishes in a row exhaust their
retries the breaker opens and further events are dropped. Once
``redis_breaker_recovery_seconds`` have passed, a single trial publish
is let through: success closes the breaker, failure re-opens it.
"""

from __future__ import annotations

import random
import threading
import time
from enum import Enum
from typing import Any

from shared.config.settings import settings
from shared.config.logging import get_logger

logger = get_logger(__name__)

MAX_RETRY_DELAY = 10.0


class BreakerState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    # One trial publish in flight
    TRIAL = "trial"


class PublishBreaker:
    """Counts consecutive publish failures for the whole process."""

    def __init__(self, failure_threshold: int, recovery_seconds: float):
        self.failure_threshold = failure_threshold
        self.recovery_seconds = recovery_seconds
        self._consecutive_failures = 0
        self._opened_at: float | None = None
        self._trial_running = False
        self._dropped = 0
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls) -> "PublishBreaker":
        return cls(
            failure_threshold=settings.redis_breaker_failure_threshold,
            recovery_seconds=settings.redis_breaker_recovery_seconds,
        )

    @property
    def state(self) -> BreakerState:
        if self._opened_at is None:
            return BreakerState.CLOSED
        return BreakerState.TRIAL if self._trial_running else BreakerState.OPEN

    def allow(self) -> bool:
        """Whether the next publish may go to Redis. Counts drops."""
        with self._lock:
            if self._opened_at is None:
                return True
            cooled_down = time.monotonic() - self._opened_at >= self.recovery_seconds
            if cooled_down and not self._trial_running:
                self._trial_running = True
                logger.info("Publish breaker letting a trial event through")
                return True
            self._dropped += 1
            return False

    def succeeded(self) -> None:
        with self._lock:
            if self._opened_at is not None:
                logger.info("Publish breaker closed", dropped=self._dropped)
            self._consecutive_failures = 0
            self._opened_at = None
            self._trial_running = False

    def failed(self) -> None:
        with self._lock:
            self._consecutive_failures += 1
            tripped = self._opened_at is None and self._consecutive_failures >= self.failure_threshold
            if tripped or self._trial_running:
                logger.error(
                    "Publish breaker open, dropping realtime events",
                    consecutive_failures=self._consecutive_failures,
                    retry_in_seconds=self.recovery_seconds,
                )
                self._opened_at = time.monotonic()
                self._trial_running = False

    def snapshot(self) -> dict[str, Any]:
        """Reported by the detailed health check."""
        with self._lock:
            return {
                "state": self.state.value,
                "consecutive_failures": self._consecutive_failures,
                "dropped_events": self._dropped,
            }


_breaker: PublishBreaker | None = None
_breaker_lock = threading.Lock()


def get_publish_breaker() -> PublishBreaker:
    global _breaker
    with _breaker_lock:
        if _breaker is None:
            _breaker = PublishBreaker.from_settings()
        return _breaker


def reset_publish_breaker() -> None:
    global _breaker
    with _breaker_lock:
        _breaker = None


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Seconds to wait before retry ``attempt`` (0-based): doubling, jittered, capped."""
    ceiling = min(base_delay * 2 ** attempt, MAX_RETRY_DELAY)
    return base_delay + random.random() * max(ceiling - base_delay, 0.0)
