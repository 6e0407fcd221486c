"""
Yahoo Finance provider, the fallback for Brazilian equities and funds.

Endpoint: GET https://query2.finance.yahoo.com/v8/finance/chart/{symbol}

Yahoo throttles aggressively, so every call goes through a ``RetryPolicy``
that backs off on HTTP 429. History comes from the same chart endpoint as
parallel ``timestamp`` / ``indicators.quote[0]`` arrays.
"""

import threading
from collections.abc import Callable
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, TypedDict

from marketdata.models.errors import ProviderError
from marketdata.models.market_data import (
    ZERO,
    Candle,
    InstrumentClass,
    MarketSnapshot,
    ProviderId,
    sort_candles,
    to_decimal,
)
from marketdata.models.time_range import TimeRange
from marketdata.providers.base import DEFAULT_TIMEOUT, HttpMarketDataProvider, infer_b3_class
from marketdata.providers.brapi import brapi_range_params
from marketdata.services.rate_limiter import RetryPolicy, event_wait
from marketdata.utils.metrics import ATTEMPT_ERROR_METRIC, ATTEMPT_LATENCY_METRIC, ProviderMetrics

YAHOO_CHART_URL = "https://query2.finance.yahoo.com/v8/finance/chart/"

_BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "application/json",
}

_FOUR_PLACES = Decimal("0.0001")


class _YahooMeta(TypedDict, total=False):
    symbol: str
    shortName: str
    longName: str
    currency: str
    regularMarketPrice: float
    regularMarketVolume: float
    previousClose: float
    chartPreviousClose: float
    marketCap: float


class _YahooQuoteArrays(TypedDict, total=False):
    open: list[float | None]
    high: list[float | None]
    low: list[float | None]
    close: list[float | None]
    volume: list[float | None]


class _YahooResult(TypedDict, total=False):
    meta: _YahooMeta
    timestamp: list[int]
    indicators: dict[str, list[_YahooQuoteArrays]]


def yahoo_range_params(time_range: TimeRange) -> tuple[str, str]:
    """Yahoo's chart endpoint accepts the same (range, interval) tokens as Brapi."""
    return brapi_range_params(time_range)


def change_percent(current: Decimal, previous: Decimal) -> Decimal:
    """
    Percentage change from ``previous`` to ``current``.

    The ratio is rounded half-up to four places before scaling, so results
    carry at most two decimal places. A non-positive previous close gives zero.
    """
    if previous <= 0:
        return ZERO
    return ((current - previous) / previous).quantize(_FOUR_PLACES, rounding=ROUND_HALF_UP) * 100


def _map_snapshot(meta: _YahooMeta, requested_symbol: str) -> MarketSnapshot:
    price = to_decimal(meta.get("regularMarketPrice"))
    previous = to_decimal(meta.get("previousClose") or meta.get("chartPreviousClose"))
    return MarketSnapshot(
        symbol=meta.get("symbol") or requested_symbol,
        name=meta.get("shortName") or meta.get("longName") or requested_symbol,
        current_price=price,
        currency=meta.get("currency") or "BRL",
        change_percent_24h=change_percent(price, previous),
        market_cap=to_decimal(meta.get("marketCap")),
        volume_24h=to_decimal(meta.get("regularMarketVolume")),
        instrument_class=infer_b3_class(requested_symbol),
        provider=ProviderId.YAHOO_FINANCE,
    )


def _column(values: list | None, index: int) -> Any:
    if not values or index >= len(values):
        return None
    return values[index]


def _map_candles(result: _YahooResult) -> list[Candle]:
    timestamps = result.get("timestamp") or []
    quotes = (result.get("indicators") or {}).get("quote") or [{}]
    quote = quotes[0] or {}

    candles = []
    for i, ts in enumerate(timestamps):
        close = _column(quote.get("close"), i)
        if ts is None or close is None:
            continue
        candles.append(
            Candle(
                timestamp=int(ts),
                open=to_decimal(_column(quote.get("open"), i)),
                high=to_decimal(_column(quote.get("high"), i)),
                low=to_decimal(_column(quote.get("low"), i)),
                close=to_decimal(close),
                volume=to_decimal(_column(quote.get("volume"), i)),
            )
        )
    return sort_candles(candles)


class YahooFinanceProvider(HttpMarketDataProvider):
    """Secondary source for B3 stocks and FIIs, with rate-limit retries."""

    name = ProviderId.YAHOO_FINANCE
    supported_classes = frozenset({InstrumentClass.STOCK, InstrumentClass.FII})
    default_headers = _BROWSER_HEADERS

    def __init__(
        self,
        timeout: tuple[float, float] = DEFAULT_TIMEOUT,
        max_attempts: int = 3,
        base_delay: float = 2.0,
        metrics: ProviderMetrics | None = None,
        wait: Callable[[threading.Event, float], bool] = event_wait,
    ):
        """
        Initialize the Yahoo Finance provider.

        Args:
            timeout: (connect, read) timeout in seconds
            max_attempts: Attempts per call when rate limited
            base_delay: Linear backoff step in seconds
            metrics: Optional recorder timing every individual attempt
            wait: Blocking wait used between attempts
        """
        super().__init__(timeout)
        self.retry = RetryPolicy(self.name, max_attempts=max_attempts, base_delay=base_delay, wait=wait)
        self.metrics = metrics

    def _attempt(self, url: str, symbol: str, params: dict[str, str] | None) -> Any:
        if self.metrics is None:
            return self._get_json(url, symbol, params=params)
        return self.metrics.record_latency(
            self.name.value,
            symbol,
            lambda: self._get_json(url, symbol, params=params),
            timer_name=ATTEMPT_LATENCY_METRIC,
            counter_name=ATTEMPT_ERROR_METRIC,
        )

    def _fetch_chart(
        self,
        symbol: str,
        params: dict[str, str] | None,
        cancel_event: threading.Event | None,
    ) -> _YahooResult:
        url = YAHOO_CHART_URL + symbol
        data = self.retry.execute(lambda: self._attempt(url, symbol, params), symbol, cancel_event)

        chart = data.get("chart") if isinstance(data, dict) else None
        if not isinstance(chart, dict):
            raise ProviderError(self.name, f"Missing chart data for symbol: {symbol}")
        if chart.get("error"):
            error = chart["error"]
            description = error.get("description") if isinstance(error, dict) else error
            raise ProviderError(self.name, f"Yahoo returned an error for {symbol}: {description}")

        results = chart.get("result")
        if not isinstance(results, list) or not results or not isinstance(results[0], dict):
            raise ProviderError(self.name, f"No result found for symbol: {symbol}")
        if not isinstance(results[0].get("meta"), dict) or not results[0]["meta"]:
            raise ProviderError(self.name, f"Missing metadata for symbol: {symbol}")
        return results[0]

    def fetch_current_price(
        self, symbol: str, cancel_event: threading.Event | None = None
    ) -> MarketSnapshot:
        upper = symbol.strip().upper()
        self._log_start("price", upper)
        try:
            result = self._fetch_chart(upper, None, cancel_event)
        except ProviderError as e:
            self._log_failure("price", upper, e)
            raise

        snapshot = self._map_payload("price", upper, lambda: _map_snapshot(result["meta"], upper))
        self.logger.info(
            "Successfully fetched price",
            context={"provider": self.name.value, "symbol": upper, "price": str(snapshot.current_price)},
        )
        return snapshot

    def fetch_history(
        self,
        symbol: str,
        time_range: TimeRange,
        cancel_event: threading.Event | None = None,
    ) -> list[Candle]:
        upper = symbol.strip().upper()
        range_token, interval = yahoo_range_params(time_range)
        self._log_start("history", upper, range=range_token, interval=interval)
        try:
            result = self._fetch_chart(upper, {"range": range_token, "interval": interval}, cancel_event)
        except ProviderError as e:
            self._log_failure("history", upper, e)
            raise

        candles = self._map_payload("history", upper, lambda: _map_candles(result))
        if not candles:
            self.logger.warning(
                "No historical data returned",
                context={"provider": self.name.value, "symbol": upper, "range": range_token},
            )
            return []

        self.logger.info(
            "Successfully fetched history",
            context={"provider": self.name.value, "symbol": upper, "candles": len(candles)},
        )
        return candles
