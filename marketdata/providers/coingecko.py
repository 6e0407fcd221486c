"""
CoinGecko provider for cryptocurrencies.

Endpoints:
  GET https://api.coingecko.com/api/v3/coins/{id}
  GET https://api.coingecko.com/api/v3/coins/{id}/ohlc?vs_currency=usd&days=N
"""

import threading
from typing import TypedDict

from marketdata.models.errors import ProviderError
from marketdata.models.market_data import (
    Candle,
    InstrumentClass,
    MarketSnapshot,
    ProviderId,
    epoch_seconds_from_millis,
    sort_candles,
    to_decimal,
)
from marketdata.models.time_range import TimeRange
from marketdata.providers.base import DEFAULT_TIMEOUT, HttpMarketDataProvider

COINGECKO_BASE_URL = "https://api.coingecko.com/api/v3"

_COIN_PARAMS = {
    "localization": "false",
    "tickers": "false",
    "community_data": "false",
    "developer_data": "false",
    "sparkline": "false",
}

_DAYS = {
    TimeRange.ONE_DAY: "1",
    TimeRange.ONE_WEEK: "7",
    TimeRange.ONE_MONTH: "30",
    TimeRange.THREE_MONTHS: "90",
    TimeRange.SIX_MONTHS: "180",
    TimeRange.ONE_YEAR: "365",
    TimeRange.FIVE_YEARS: "max",
}


class _CurrencyValue(TypedDict, total=False):
    usd: float


class _CoinMarketData(TypedDict, total=False):
    current_price: _CurrencyValue
    price_change_percentage_24h: float
    market_cap: _CurrencyValue
    total_volume: _CurrencyValue


class _CoinResponse(TypedDict, total=False):
    id: str
    symbol: str
    name: str
    market_data: _CoinMarketData


def coingecko_days(time_range: TimeRange) -> str:
    """Map a TimeRange to CoinGecko's ``days`` lookback."""
    return _DAYS[time_range]


def _usd(block: _CurrencyValue | None):
    return (block or {}).get("usd")


def _map_snapshot(coin: _CoinResponse, requested_id: str) -> MarketSnapshot:
    data = coin["market_data"]
    return MarketSnapshot(
        symbol=(coin.get("symbol") or requested_id).upper(),
        name=coin.get("name") or requested_id,
        current_price=to_decimal(_usd(data.get("current_price"))),
        currency="USD",
        change_percent_24h=to_decimal(data.get("price_change_percentage_24h")),
        market_cap=to_decimal(_usd(data.get("market_cap"))),
        volume_24h=to_decimal(_usd(data.get("total_volume"))),
        instrument_class=InstrumentClass.CRYPTO,
        provider=ProviderId.COINGECKO,
    )


def _map_candle(point: list) -> Candle:
    """[timestamp_ms, open, high, low, close] -> Candle; /ohlc carries no volume."""
    return Candle(
        timestamp=epoch_seconds_from_millis(point[0]),
        open=to_decimal(point[1]),
        high=to_decimal(point[2]),
        low=to_decimal(point[3]),
        close=to_decimal(point[4]),
    )


class CoinGeckoProvider(HttpMarketDataProvider):
    """Crypto prices keyed by CoinGecko coin id (bitcoin, ethereum, ...)."""

    name = ProviderId.COINGECKO
    supported_classes = frozenset({InstrumentClass.CRYPTO})

    def __init__(self, timeout: tuple[float, float] = DEFAULT_TIMEOUT):
        super().__init__(timeout)

    def fetch_current_price(
        self, symbol: str, cancel_event: threading.Event | None = None
    ) -> MarketSnapshot:
        coin_id = symbol.strip().lower()
        self._log_start("price", coin_id)
        try:
            data = self._get_json(f"{COINGECKO_BASE_URL}/coins/{coin_id}", coin_id, params=_COIN_PARAMS)
            if not isinstance(data, dict) or "error" in data:
                raise ProviderError(self.name, f"Coin not found: {coin_id}")
            if not isinstance(data.get("market_data"), dict):
                raise ProviderError(self.name, f"Missing market_data for symbol: {coin_id}")
        except ProviderError as e:
            self._log_failure("price", coin_id, e)
            raise

        snapshot = self._map_payload("price", coin_id, lambda: _map_snapshot(data, coin_id))
        self.logger.info(
            "Successfully fetched price",
            context={"provider": self.name.value, "symbol": coin_id, "price": str(snapshot.current_price)},
        )
        return snapshot

    def fetch_history(
        self,
        symbol: str,
        time_range: TimeRange,
        cancel_event: threading.Event | None = None,
    ) -> list[Candle]:
        coin_id = symbol.strip().lower()
        days = coingecko_days(time_range)
        self._log_start("history", coin_id, days=days)
        try:
            data = self._get_json(
                f"{COINGECKO_BASE_URL}/coins/{coin_id}/ohlc",
                coin_id,
                params={"vs_currency": "usd", "days": days},
            )
            if not isinstance(data, list):
                raise ProviderError(self.name, f"Unexpected OHLC payload for {coin_id}")
        except ProviderError as e:
            self._log_failure("history", coin_id, e)
            raise

        if not data:
            self.logger.warning(
                "No OHLC data returned",
                context={"provider": self.name.value, "symbol": coin_id, "days": days},
            )
            return []

        candles = self._map_payload(
            "history",
            coin_id,
            lambda: sort_candles(
                [_map_candle(p) for p in data if isinstance(p, list) and len(p) >= 5 and p[0] is not None]
            ),
        )
        self.logger.info(
            "Successfully fetched history",
            context={"provider": self.name.value, "symbol": coin_id, "candles": len(candles)},
        )
        return candles
