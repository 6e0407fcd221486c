"""
Provider interface and shared HTTP plumbing.

Every external data source implements ``MarketDataProvider``: it declares
which instrument classes it can serve, fetches a current price snapshot,
and fetches OHLCV history. Raw response shapes stay inside each adapter
module; only canonical ``MarketSnapshot`` and ``Candle`` values cross the
adapter boundary.
"""

import re
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import requests

from marketdata.models.errors import ProviderError, RateLimitedError
from marketdata.models.market_data import Candle, InstrumentClass, MarketSnapshot, ProviderId
from marketdata.models.time_range import TimeRange
from marketdata.utils.logger import StructuredLogger

DEFAULT_TIMEOUT = (2.0, 2.0)

# What mapping code raises when a payload does not have the documented shape.
MALFORMED_PAYLOAD_ERRORS = (KeyError, IndexError, TypeError, ValueError, AttributeError, ArithmeticError)

T = TypeVar("T")

_B3_FUND_SHARE = re.compile(r"^[A-Z]{4}11$")


def infer_b3_class(symbol: str) -> InstrumentClass:
    """
    Infer STOCK vs FII from a Brazilian ticker.

    Real-estate fund shares are four letters followed by "11" (HGLG11, MXRF11).
    """
    bare = symbol.upper().replace(".SA", "")
    if _B3_FUND_SHARE.match(bare):
        return InstrumentClass.FII
    return InstrumentClass.STOCK


class MarketDataProvider(ABC):
    """Contract every market data source implements."""

    name: ProviderId
    supported_classes: frozenset[InstrumentClass] = frozenset()

    def supports(self, instrument_class: InstrumentClass) -> bool:
        """Whether this provider can serve the given instrument class."""
        return instrument_class in self.supported_classes

    @abstractmethod
    def fetch_current_price(
        self, symbol: str, cancel_event: threading.Event | None = None
    ) -> MarketSnapshot:
        """
        Fetch the current price snapshot for a symbol.

        Raises:
            ProviderError: On unknown symbols, malformed payloads or transport errors
        """

    @abstractmethod
    def fetch_history(
        self,
        symbol: str,
        time_range: TimeRange,
        cancel_event: threading.Event | None = None,
    ) -> list[Candle]:
        """
        Fetch OHLCV history sorted ascending by timestamp.

        Raises:
            ProviderError: On unknown symbols, malformed payloads or transport errors
        """


@dataclass(frozen=True)
class ProviderRegistration:
    """A provider with its fixed priority rank (lower is tried first)."""

    provider: MarketDataProvider
    priority: int

    @property
    def name(self) -> str:
        return self.provider.name.value


class HttpMarketDataProvider(MarketDataProvider):
    """Base for providers backed by a JSON-over-HTTP API."""

    default_headers: dict[str, str] = {}

    def __init__(self, timeout: tuple[float, float] = DEFAULT_TIMEOUT):
        """
        Initialize the provider.

        Args:
            timeout: (connect, read) timeout in seconds applied to every call
        """
        self.timeout = timeout
        self.logger = StructuredLogger(f"{self.name.value}Provider")

    def _get_json(
        self,
        url: str,
        symbol: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """
        Perform one GET request and decode its JSON body.

        Transport failures, non-2xx statuses and undecodable bodies are all
        reported as ``ProviderError`` chained to the underlying exception.
        HTTP 429 is reported as ``RateLimitedError`` so retry policies can
        tell it apart.
        """
        try:
            response = requests.get(
                url,
                params=params,
                headers=self.default_headers or None,
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise ProviderError(self.name, f"Timeout while fetching {symbol}") from e
        except requests.RequestException as e:
            raise ProviderError(self.name, f"Connection failure while fetching {symbol}") from e

        if response.status_code == 429:
            raise RateLimitedError(self.name, f"Rate limited (HTTP 429) while fetching {symbol}")

        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            kind = "Client error" if response.status_code < 500 else "Server error"
            raise ProviderError(
                self.name, f"{kind} while fetching {symbol}: HTTP {response.status_code}"
            ) from e

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(self.name, f"Invalid JSON response for {symbol}") from e

    def _log_start(self, action: str, symbol: str, **context: Any) -> None:
        self.logger.info(
            f"Starting {action} fetch",
            context={"provider": self.name.value, "symbol": symbol, **context},
        )

    def _log_failure(self, action: str, symbol: str, error: ProviderError) -> None:
        self.logger.error(
            f"Error fetching {action} for {symbol}",
            context={"provider": self.name.value, "symbol": symbol, "result": "failed"},
            exception=error,
        )

    def _map_payload(self, action: str, symbol: str, mapper: Callable[[], T]) -> T:
        """
        Run ``mapper`` over an already fetched payload.

        A payload whose fields have the wrong type or shape is reported as a
        ``ProviderError`` so the caller can fall back to the next provider.
        """
        try:
            return mapper()
        except MALFORMED_PAYLOAD_ERRORS as e:
            error = ProviderError(self.name, f"Malformed payload for {symbol}")
            self._log_failure(action, symbol, error)
            raise error from e
