"""
Brapi provider for Brazilian equities and real-estate funds.

Endpoint: GET https://brapi.dev/api/quote/{symbol}?token=...
History uses the same endpoint with ``range`` and ``interval`` parameters.
"""

import threading
from typing import Any, TypedDict

from marketdata.models.errors import ProviderError
from marketdata.models.market_data import (
    Candle,
    InstrumentClass,
    MarketSnapshot,
    ProviderId,
    sort_candles,
    to_decimal,
)
from marketdata.models.time_range import TimeRange
from marketdata.providers.base import DEFAULT_TIMEOUT, HttpMarketDataProvider, infer_b3_class

BRAPI_BASE_URL = "https://brapi.dev/api/quote/"

_RANGE_PARAMS = {
    TimeRange.ONE_DAY: ("1d", "5m"),
    TimeRange.ONE_WEEK: ("5d", "15m"),
    TimeRange.ONE_MONTH: ("1mo", "1d"),
    TimeRange.THREE_MONTHS: ("3mo", "1d"),
    TimeRange.SIX_MONTHS: ("6mo", "1d"),
    TimeRange.ONE_YEAR: ("1y", "1wk"),
    TimeRange.FIVE_YEARS: ("5y", "1mo"),
}


class _BrapiHistoricalPrice(TypedDict, total=False):
    date: int  # epoch seconds
    open: float
    high: float
    low: float
    close: float
    volume: float


class _BrapiQuote(TypedDict, total=False):
    symbol: str
    shortName: str
    longName: str
    currency: str
    regularMarketPrice: float
    regularMarketVolume: float
    regularMarketChangePercent: float
    marketCap: float
    historicalDataPrice: list[_BrapiHistoricalPrice]


def brapi_range_params(time_range: TimeRange) -> tuple[str, str]:
    """Map a TimeRange to Brapi's (range, interval) pair."""
    return _RANGE_PARAMS[time_range]


def clean_symbol(symbol: str) -> str:
    """Brapi wants bare B3 tickers: PETR4.SA -> PETR4."""
    return symbol.strip().upper().replace(".SA", "")


def _map_snapshot(quote: _BrapiQuote, requested_symbol: str) -> MarketSnapshot:
    return MarketSnapshot(
        symbol=(quote.get("symbol") or requested_symbol).upper(),
        name=quote.get("shortName") or quote.get("longName") or requested_symbol,
        current_price=to_decimal(quote.get("regularMarketPrice")),
        currency=quote.get("currency") or "BRL",
        change_percent_24h=to_decimal(quote.get("regularMarketChangePercent")),
        market_cap=to_decimal(quote.get("marketCap")),
        volume_24h=to_decimal(quote.get("regularMarketVolume")),
        instrument_class=infer_b3_class(requested_symbol),
        provider=ProviderId.BRAPI,
    )


def _map_candle(point: _BrapiHistoricalPrice) -> Candle:
    return Candle(
        timestamp=int(point["date"]),
        open=to_decimal(point.get("open")),
        high=to_decimal(point.get("high")),
        low=to_decimal(point.get("low")),
        close=to_decimal(point.get("close")),
        volume=to_decimal(point.get("volume")),
    )


class BrapiProvider(HttpMarketDataProvider):
    """Primary source for B3 stocks and FIIs."""

    name = ProviderId.BRAPI
    supported_classes = frozenset({InstrumentClass.STOCK, InstrumentClass.FII})

    def __init__(self, token: str = "", timeout: tuple[float, float] = DEFAULT_TIMEOUT):
        """
        Initialize the Brapi provider.

        Args:
            token: Brapi API token
            timeout: (connect, read) timeout in seconds
        """
        super().__init__(timeout)
        self.token = token.strip()

    def _fetch_quote(self, symbol: str, params: dict[str, Any]) -> _BrapiQuote:
        if self.token:
            params["token"] = self.token
        data = self._get_json(BRAPI_BASE_URL + symbol, symbol, params=params)

        if not isinstance(data, dict):
            raise ProviderError(self.name, f"Unexpected response type for {symbol}")
        if data.get("error"):
            raise ProviderError(
                self.name, f"Brapi returned an error for {symbol}: {data.get('message', 'unknown')}"
            )

        results = data.get("results")
        if not isinstance(results, list) or not results or not isinstance(results[0], dict):
            raise ProviderError(self.name, f"Empty or missing results for symbol: {symbol}")
        return results[0]

    def fetch_current_price(
        self, symbol: str, cancel_event: threading.Event | None = None
    ) -> MarketSnapshot:
        bare = clean_symbol(symbol)
        self._log_start("price", bare)
        try:
            quote = self._fetch_quote(bare, {})
            if quote.get("regularMarketPrice") is None:
                raise ProviderError(self.name, f"Missing price for symbol: {bare}")
        except ProviderError as e:
            self._log_failure("price", bare, e)
            raise

        snapshot = self._map_payload("price", bare, lambda: _map_snapshot(quote, bare))
        self.logger.info(
            "Successfully fetched price",
            context={"provider": self.name.value, "symbol": bare, "price": str(snapshot.current_price)},
        )
        return snapshot

    def fetch_history(
        self,
        symbol: str,
        time_range: TimeRange,
        cancel_event: threading.Event | None = None,
    ) -> list[Candle]:
        bare = clean_symbol(symbol)
        range_token, interval = brapi_range_params(time_range)
        self._log_start("history", bare, range=range_token, interval=interval)
        try:
            quote = self._fetch_quote(bare, {"range": range_token, "interval": interval})
            points = quote.get("historicalDataPrice") or []
            if not isinstance(points, list):
                raise ProviderError(self.name, f"Malformed history for symbol: {bare}")
        except ProviderError as e:
            self._log_failure("history", bare, e)
            raise

        if not points:
            self.logger.warning(
                "No historical data returned",
                context={"provider": self.name.value, "symbol": bare, "range": range_token},
            )
            return []

        candles = self._map_payload(
            "history",
            bare,
            lambda: sort_candles(
                [_map_candle(p) for p in points if isinstance(p, dict) and p.get("date") is not None]
            ),
        )
        self.logger.info(
            "Successfully fetched history",
            context={"provider": self.name.value, "symbol": bare, "candles": len(candles)},
        )
        return candles
