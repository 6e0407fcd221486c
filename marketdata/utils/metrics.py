"""Provider call instrumentation: latency timers and error counters."""

import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar, runtime_checkable

LATENCY_METRIC = "market.provider.latency"
ERROR_METRIC = "market.provider.errors"
# Individual tries inside a retry loop; kept apart so one logical call
# still maps to a single latency observation.
ATTEMPT_LATENCY_METRIC = "market.provider.attempt.latency"
ATTEMPT_ERROR_METRIC = "market.provider.attempt.errors"

T = TypeVar("T")


@runtime_checkable
class MetricsSink(Protocol):
    """Destination for timer observations and counter increments."""

    def record_timer(self, name: str, tags: dict[str, str], duration_seconds: float) -> None: ...

    def increment(self, name: str, tags: dict[str, str]) -> None: ...


@dataclass(frozen=True)
class TimerObservation:
    """A single recorded duration."""

    name: str
    tags: dict[str, str]
    duration_seconds: float


@dataclass
class ProviderStats:
    """Aggregated call statistics for one provider."""

    provider: str
    attempts: int
    successes: int
    errors: int
    average_latency_ms: float

    def to_dict(self) -> dict[str, Any]:
        """Convert stats to dictionary."""
        return {
            "provider": self.provider,
            "attempts": self.attempts,
            "successes": self.successes,
            "errors": self.errors,
            "average_latency_ms": self.average_latency_ms,
        }


class InMemoryMetricsSink:
    """Thread-safe in-process metrics sink with bounded timer and counter storage."""

    def __init__(self, max_observations: int = 10000, max_counters: int = 10000):
        """
        Initialize the sink.

        Args:
            max_observations: Maximum number of timer observations to keep
            max_counters: Maximum number of distinct counter series to keep;
                the oldest series is evicted first
        """
        self._timers: deque[TimerObservation] = deque(maxlen=max_observations)
        self.max_counters = max_counters
        self._counters: dict[tuple[str, tuple[tuple[str, str], ...]], int] = {}
        self._lock = threading.RLock()

    @staticmethod
    def _key(name: str, tags: dict[str, str]) -> tuple[str, tuple[tuple[str, str], ...]]:
        return name, tuple(sorted(tags.items()))

    def record_timer(self, name: str, tags: dict[str, str], duration_seconds: float) -> None:
        with self._lock:
            self._timers.append(TimerObservation(name, dict(tags), duration_seconds))

    def increment(self, name: str, tags: dict[str, str]) -> None:
        with self._lock:
            key = self._key(name, tags)
            if key not in self._counters and len(self._counters) >= self.max_counters:
                # Tags carry caller-supplied symbols, so series count grows with traffic.
                del self._counters[next(iter(self._counters))]
            self._counters[key] = self._counters.get(key, 0) + 1

    def timers(self, name: str | None = None, **tags: str) -> list[TimerObservation]:
        """
        Get recorded timer observations, optionally filtered.

        Args:
            name: Metric name to filter by
            **tags: Tag values that must all match

        Returns:
            Matching observations in recording order
        """
        with self._lock:
            return [
                obs
                for obs in self._timers
                if (name is None or obs.name == name)
                and all(obs.tags.get(k) == v for k, v in tags.items())
            ]

    def counter(self, name: str, **tags: str) -> int:
        """Sum of every counter named ``name`` whose tags include ``tags``."""
        with self._lock:
            return sum(
                count
                for (counter_name, counter_tags), count in self._counters.items()
                if counter_name == name
                and all(dict(counter_tags).get(k) == v for k, v in tags.items())
            )

    def summary(self) -> list[ProviderStats]:
        """Aggregate latency observations per provider."""
        with self._lock:
            observations = [obs for obs in self._timers if obs.name == LATENCY_METRIC]

        by_provider: dict[str, list[TimerObservation]] = {}
        for obs in observations:
            by_provider.setdefault(obs.tags.get("provider", "unknown"), []).append(obs)

        stats = []
        for provider, items in sorted(by_provider.items()):
            successes = len([o for o in items if o.tags.get("status") == "success"])
            stats.append(
                ProviderStats(
                    provider=provider,
                    attempts=len(items),
                    successes=successes,
                    errors=len(items) - successes,
                    average_latency_ms=sum(o.duration_seconds for o in items) * 1000 / len(items),
                )
            )
        return stats

    def clear(self) -> None:
        """Drop every recorded observation and counter."""
        with self._lock:
            self._timers.clear()
            self._counters.clear()


class ProviderMetrics:
    """Times provider calls and counts their failures."""

    def __init__(self, sink: MetricsSink):
        self.sink = sink

    def record_latency(
        self,
        provider: str,
        symbol: str,
        operation: Callable[[], T],
        timer_name: str = LATENCY_METRIC,
        counter_name: str = ERROR_METRIC,
    ) -> T:
        """
        Execute ``operation`` while recording its latency.

        One timer observation tagged with the outcome is always recorded.
        On failure an error counter is incremented as well and the same
        exception is re-raised unchanged.

        Args:
            provider: Provider display name used as a tag
            symbol: Requested symbol used as a tag
            operation: Zero-argument callable performing the provider call
            timer_name: Timer to record the duration under
            counter_name: Counter to increment on failure

        Returns:
            Whatever ``operation`` returns
        """
        start = time.perf_counter()
        try:
            result = operation()
        except Exception:
            elapsed = time.perf_counter() - start
            self.sink.record_timer(
                timer_name,
                {"provider": provider, "symbol": symbol, "status": "error"},
                elapsed,
            )
            self.sink.increment(counter_name, {"provider": provider, "symbol": symbol})
            raise

        elapsed = time.perf_counter() - start
        self.sink.record_timer(
            timer_name,
            {"provider": provider, "symbol": symbol, "status": "success"},
            elapsed,
        )
        return result
