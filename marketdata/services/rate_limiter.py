"""Retry policy for providers that answer with "too many requests"."""

import threading
from collections.abc import Callable
from enum import Enum
from typing import TypeVar

from marketdata.models.errors import (
    RateLimitedError,
    RateLimitExceededError,
    RetryInterruptedError,
)
from marketdata.models.market_data import ProviderId
from marketdata.utils.logger import StructuredLogger

T = TypeVar("T")


class RetryState(str, Enum):
    """States a rate-limited call moves through."""

    ATTEMPTING = "ATTEMPTING"
    BACKING_OFF = "BACKING_OFF"
    EXHAUSTED = "EXHAUSTED"
    SUCCEEDED = "SUCCEEDED"


def event_wait(event: threading.Event, seconds: float) -> bool:
    return event.wait(seconds)


class RetryPolicy:
    """
    Linear backoff retry for rate-limited provider calls.

    Only ``RateLimitedError`` triggers a retry. Before attempt ``n + 1`` the
    caller's thread waits ``base_delay * n`` seconds. The wait is an
    ``Event.wait`` so setting the cancel event interrupts it, which is
    reported as ``RetryInterruptedError``. Any other exception propagates
    immediately.
    """

    def __init__(
        self,
        provider: ProviderId,
        max_attempts: int = 3,
        base_delay: float = 2.0,
        observer: Callable[[RetryState, int], None] | None = None,
        wait: Callable[[threading.Event, float], bool] = event_wait,
    ):
        """
        Initialize the retry policy.

        Args:
            provider: Provider the retried calls belong to
            max_attempts: Total number of attempts, including the first
            base_delay: Seconds to wait, multiplied by the attempt number
            observer: Optional callback receiving (state, attempt) transitions
            wait: Blocking wait returning True when interrupted
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if base_delay < 0:
            raise ValueError("base_delay must not be negative")
        self.provider = provider
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.observer = observer
        self._wait = wait
        self.logger = StructuredLogger("RetryPolicy")

    def delay_for(self, attempt: int) -> float:
        """Backoff in seconds after the given (1-based) failed attempt."""
        return self.base_delay * attempt

    def _notify(self, state: RetryState, attempt: int) -> None:
        if self.observer:
            self.observer(state, attempt)

    def execute(
        self,
        operation: Callable[[], T],
        symbol: str,
        cancel_event: threading.Event | None = None,
    ) -> T:
        """
        Run ``operation`` until it succeeds, fails otherwise, or attempts run out.

        Args:
            operation: Zero-argument call raising RateLimitedError on HTTP 429
            symbol: Symbol being fetched, for logs and error messages
            cancel_event: Optional event that interrupts the backoff wait

        Returns:
            The operation's result

        Raises:
            RateLimitExceededError: If every attempt was rate limited
            RetryInterruptedError: If the backoff wait was interrupted
        """
        cancel_event = cancel_event or threading.Event()
        last_error: RateLimitedError | None = None

        for attempt in range(1, self.max_attempts + 1):
            self._notify(RetryState.ATTEMPTING, attempt)
            try:
                result = operation()
            except RateLimitedError as e:
                last_error = e
            else:
                self._notify(RetryState.SUCCEEDED, attempt)
                return result

            if attempt == self.max_attempts:
                break

            delay = self.delay_for(attempt)
            self.logger.warning(
                "Rate limited, backing off before retry",
                context={
                    "provider": self.provider.value,
                    "symbol": symbol,
                    "attempt": attempt,
                    "max_attempts": self.max_attempts,
                    "delay_seconds": delay,
                },
            )
            self._notify(RetryState.BACKING_OFF, attempt)
            if self._wait(cancel_event, delay):
                raise RetryInterruptedError(
                    self.provider, f"Retry interrupted while fetching {symbol}"
                ) from last_error

        self._notify(RetryState.EXHAUSTED, self.max_attempts)
        self.logger.error(
            "All retry attempts were rate limited",
            context={
                "provider": self.provider.value,
                "symbol": symbol,
                "attempts": self.max_attempts,
            },
        )
        raise RateLimitExceededError(self.provider, self.max_attempts, symbol) from last_error
