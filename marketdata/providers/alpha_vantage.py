"""
Alpha Vantage provider for global equities.

Endpoints (https://www.alphavantage.co/query):
  function=GLOBAL_QUOTE       current price
  function=TIME_SERIES_DAILY  full daily history, filtered locally by range
"""

import threading
from datetime import date
from decimal import Decimal
from typing import Any

from marketdata.models.errors import ProviderError
from marketdata.models.market_data import (
    Candle,
    InstrumentClass,
    MarketSnapshot,
    ProviderId,
    epoch_seconds_from_date,
    sort_candles,
    to_decimal,
)
from marketdata.models.time_range import TimeRange, cutoff_for
from marketdata.providers.base import DEFAULT_TIMEOUT, HttpMarketDataProvider

ALPHAVANTAGE_BASE_URL = "https://www.alphavantage.co/query"
TIME_SERIES_KEY = "Time Series (Daily)"

# Payload keys Alpha Vantage uses instead of data when it refuses a call.
_REFUSAL_KEYS = ("Error Message", "Information", "Note")

_COMPACT_RANGES = frozenset({TimeRange.ONE_DAY, TimeRange.ONE_WEEK, TimeRange.ONE_MONTH})


def alphavantage_output_size(time_range: TimeRange) -> str:
    """compact returns ~100 points, enough for ranges up to one month."""
    return "compact" if time_range in _COMPACT_RANGES else "full"


def convert_symbol(symbol: str) -> str:
    """Alpha Vantage lists B3 tickers with a .SAO suffix: PETR4.SA -> PETR4.SAO."""
    upper = symbol.strip().upper()
    if upper.endswith(".SA"):
        return upper[: -len(".SA")] + ".SAO"
    return upper


def parse_change_percent(value: str | None) -> Decimal:
    """'0.9601%' -> Decimal('0.9601')."""
    if not value:
        return to_decimal(None)
    return to_decimal(value.replace("%", ""))


def _map_snapshot(quote: dict[str, str], requested_symbol: str) -> MarketSnapshot:
    upper = requested_symbol.strip().upper()
    return MarketSnapshot(
        symbol=quote.get("01. symbol") or upper,
        name=upper,
        current_price=to_decimal(quote.get("05. price")),
        currency="BRL" if ".SA" in upper else "USD",
        change_percent_24h=parse_change_percent(quote.get("10. change percent")),
        market_cap=to_decimal(None),
        volume_24h=to_decimal(quote.get("06. volume")),
        instrument_class=InstrumentClass.STOCK,
        provider=ProviderId.ALPHA_VANTAGE,
    )


def _map_candle(day: str, values: dict[str, str]) -> Candle:
    return Candle(
        timestamp=epoch_seconds_from_date(day),
        open=to_decimal(values.get("1. open")),
        high=to_decimal(values.get("2. high")),
        low=to_decimal(values.get("3. low")),
        close=to_decimal(values.get("4. close")),
        volume=to_decimal(values.get("5. volume")),
    )


class AlphaVantageProvider(HttpMarketDataProvider):
    """Global equities; secondary to the Brazilian sources for B3 tickers."""

    name = ProviderId.ALPHA_VANTAGE
    supported_classes = frozenset({InstrumentClass.STOCK})

    def __init__(
        self,
        api_key: str = "demo",
        timeout: tuple[float, float] = DEFAULT_TIMEOUT,
        clock=None,
    ):
        """
        Initialize the Alpha Vantage provider.

        Args:
            api_key: Alpha Vantage API key
            timeout: (connect, read) timeout in seconds
            clock: Optional callable returning "now" for range cutoffs
        """
        super().__init__(timeout)
        self.api_key = api_key.strip()
        self.clock = clock

    def _query(self, symbol: str, params: dict[str, str]) -> dict[str, Any]:
        data = self._get_json(
            ALPHAVANTAGE_BASE_URL, symbol, params={**params, "symbol": symbol, "apikey": self.api_key}
        )
        if not isinstance(data, dict):
            raise ProviderError(self.name, f"Unexpected response type for {symbol}")
        for key in _REFUSAL_KEYS:
            if key in data:
                raise ProviderError(self.name, f"Alpha Vantage returned: {data[key]}")
        return data

    def fetch_current_price(
        self, symbol: str, cancel_event: threading.Event | None = None
    ) -> MarketSnapshot:
        av_symbol = convert_symbol(symbol)
        self._log_start("price", av_symbol)
        try:
            data = self._query(av_symbol, {"function": "GLOBAL_QUOTE"})
            quote = data.get("Global Quote")
            if not isinstance(quote, dict) or not quote.get("01. symbol") or not quote.get("05. price"):
                raise ProviderError(self.name, f"Symbol not found or without data: {av_symbol}")
        except ProviderError as e:
            self._log_failure("price", av_symbol, e)
            raise

        snapshot = self._map_payload("price", av_symbol, lambda: _map_snapshot(quote, symbol))
        self.logger.info(
            "Successfully fetched price",
            context={"provider": self.name.value, "symbol": av_symbol, "price": str(snapshot.current_price)},
        )
        return snapshot

    def fetch_history(
        self,
        symbol: str,
        time_range: TimeRange,
        cancel_event: threading.Event | None = None,
    ) -> list[Candle]:
        av_symbol = convert_symbol(symbol)
        output_size = alphavantage_output_size(time_range)
        self._log_start("history", av_symbol, outputsize=output_size)
        try:
            data = self._query(
                av_symbol, {"function": "TIME_SERIES_DAILY", "outputsize": output_size}
            )
            series = data.get(TIME_SERIES_KEY) or {}
            if not isinstance(series, dict):
                raise ProviderError(self.name, f"Malformed time series for symbol: {av_symbol}")
        except ProviderError as e:
            self._log_failure("history", av_symbol, e)
            raise

        if not series:
            self.logger.warning(
                "No historical data returned",
                context={"provider": self.name.value, "symbol": av_symbol},
            )
            return []

        now = self.clock() if self.clock else None
        cutoff = cutoff_for(time_range, now)
        candles = self._map_payload(
            "history",
            av_symbol,
            lambda: sort_candles(
                [
                    _map_candle(day, values)
                    for day, values in series.items()
                    if date.fromisoformat(day) >= cutoff
                ]
            ),
        )
        self.logger.info(
            "Successfully fetched history",
            context={
                "provider": self.name.value,
                "symbol": av_symbol,
                "candles": len(candles),
                "cutoff": cutoff.isoformat(),
            },
        )
        return candles

