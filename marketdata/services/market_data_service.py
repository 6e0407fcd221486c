"""Market data service: priority-ordered fallback across registered providers."""

import threading
from collections.abc import Callable, Iterable
from typing import TypeVar

from marketdata.models.errors import AllProvidersFailedError, NoProviderError, ProviderError
from marketdata.models.market_data import Candle, InstrumentClass, MarketSnapshot
from marketdata.models.time_range import TimeRange
from marketdata.providers.base import MarketDataProvider, ProviderRegistration
from marketdata.utils.logger import StructuredLogger
from marketdata.utils.metrics import ProviderMetrics

T = TypeVar("T")


class MarketDataService:
    """
    Resolves price and history requests against an ordered provider list.

    Providers are tried in ascending priority. Registrations sharing a
    priority keep their registration order. The first success wins; if every
    eligible provider fails, the last failure is surfaced.
    """

    def __init__(self, registrations: Iterable[ProviderRegistration], metrics: ProviderMetrics):
        """
        Initialize the service.

        Args:
            registrations: Providers with their priority ranks
            metrics: Recorder wrapping every provider call
        """
        self.registrations: tuple[ProviderRegistration, ...] = tuple(
            sorted(registrations, key=lambda r: r.priority)
        )
        self.metrics = metrics
        self.logger = StructuredLogger("MarketDataService")

        self.logger.info(
            "Market data service initialized",
            context={
                "providers": [
                    {
                        "name": r.name,
                        "priority": r.priority,
                        "classes": sorted(c.value for c in r.provider.supported_classes),
                    }
                    for r in self.registrations
                ]
            },
        )

    def eligible_providers(self, instrument_class: InstrumentClass) -> list[MarketDataProvider]:
        """Providers supporting ``instrument_class``, in the order they are tried."""
        return [r.provider for r in self.registrations if r.provider.supports(instrument_class)]

    def get_current_price(
        self,
        instrument_class: InstrumentClass,
        symbol: str,
        cancel_event: threading.Event | None = None,
    ) -> MarketSnapshot:
        """
        Fetch the current price from the first provider that answers.

        Args:
            instrument_class: Class of the instrument being requested
            symbol: Ticker or coin id
            cancel_event: Optional event that stops the fallback early

        Returns:
            MarketSnapshot attributed to the provider that served it

        Raises:
            NoProviderError: If no provider supports the instrument class
            AllProvidersFailedError: If every eligible provider failed
        """
        return self._with_fallback(
            "price",
            instrument_class,
            symbol,
            lambda provider: provider.fetch_current_price(symbol, cancel_event),
            cancel_event,
        )

    def get_history(
        self,
        instrument_class: InstrumentClass,
        symbol: str,
        time_range: TimeRange,
        cancel_event: threading.Event | None = None,
    ) -> list[Candle]:
        """
        Fetch OHLCV history from the first provider that answers.

        An empty list is a valid answer and stops the fallback.

        Raises:
            NoProviderError: If no provider supports the instrument class
            AllProvidersFailedError: If every eligible provider failed
        """
        return self._with_fallback(
            "history",
            instrument_class,
            symbol,
            lambda provider: provider.fetch_history(symbol, time_range, cancel_event),
            cancel_event,
            time_range=time_range.token,
        )

    def _with_fallback(
        self,
        action: str,
        instrument_class: InstrumentClass,
        symbol: str,
        call: Callable[[MarketDataProvider], T],
        cancel_event: threading.Event | None,
        **context: str,
    ) -> T:
        candidates = self.eligible_providers(instrument_class)
        if not candidates:
            self.logger.error(
                "No provider supports instrument class",
                context={"instrument_class": instrument_class.value, "symbol": symbol},
            )
            raise NoProviderError(instrument_class)

        failures: list[tuple[str, str]] = []
        last_error: ProviderError | None = None

        for provider in candidates:
            if cancel_event is not None and cancel_event.is_set():
                self.logger.warning(
                    "Request cancelled before trying next provider",
                    context={"symbol": symbol, "next_provider": provider.name.value},
                )
                break

            try:
                result = self.metrics.record_latency(
                    provider.name.value, symbol, lambda p=provider: call(p)
                )
            except ProviderError as e:
                last_error = e
                failures.append((provider.name.value, e.reason))
                self.logger.warning(
                    "Provider failed, trying next",
                    context={
                        "action": action,
                        "provider": provider.name.value,
                        "symbol": symbol,
                        "reason": e.reason,
                        **context,
                    },
                )
                continue

            self.logger.info(
                f"Resolved {action} request",
                context={
                    "action": action,
                    "provider": provider.name.value,
                    "symbol": symbol,
                    "failed_before": len(failures),
                    **context,
                },
            )
            return result

        if last_error is None:
            # Cancelled before the first candidate was tried.
            raise ProviderError(candidates[0].name, f"Request cancelled while fetching {symbol}")

        self.logger.error(
            "All providers failed",
            context={
                "action": action,
                "instrument_class": instrument_class.value,
                "symbol": symbol,
                "attempts": [{"provider": p, "reason": r} for p, r in failures],
                **context,
            },
        )
        raise AllProvidersFailedError(last_error, failures) from last_error
