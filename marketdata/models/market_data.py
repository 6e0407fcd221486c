"""Canonical market data models shared by every provider."""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from marketdata.models.errors import InvalidInputError

ZERO = Decimal("0")


class InstrumentClass(str, Enum):
    """Category of tradable asset; drives which providers are eligible."""

    CRYPTO = "CRYPTO"
    STOCK = "STOCK"
    FII = "FII"

    @classmethod
    def parse(cls, value: str | None) -> "InstrumentClass":
        """
        Parse an instrument class token, ignoring case and surrounding whitespace.

        Args:
            value: Token such as "crypto", "STOCK" or "fii"

        Returns:
            The matching InstrumentClass

        Raises:
            InvalidInputError: If the token is not a known instrument class
        """
        token = (value or "").strip().upper()
        try:
            return cls(token)
        except ValueError:
            accepted = ", ".join(member.value for member in cls)
            raise InvalidInputError(
                f"Invalid instrument class: '{value}'. Accepted values: {accepted}"
            ) from None


class ProviderId(str, Enum):
    """Identity of an external data source."""

    BRAPI = "Brapi"
    YAHOO_FINANCE = "YahooFinance"
    COINGECKO = "CoinGecko"
    ALPHA_VANTAGE = "AlphaVantage"


def to_decimal(value: Any) -> Decimal:
    """
    Convert a raw JSON value into an exact Decimal.

    Missing, blank or unparseable values become zero so consumers never
    have to tell missing apart from zero. Floats go through ``str`` so the
    binary representation never leaks into the result.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        return value
    text = str(value).strip()
    if not text:
        return ZERO
    try:
        result = Decimal(text)
    except InvalidOperation:
        return ZERO
    if not result.is_finite():
        return ZERO
    return result


def epoch_seconds_from_millis(value: Any) -> int:
    """Convert a millisecond epoch timestamp to whole seconds."""
    return int(Decimal(str(value))) // 1000


def epoch_seconds_from_date(value: str) -> int:
    """Convert a ``YYYY-MM-DD`` calendar date to its start-of-day UTC epoch."""
    day = date.fromisoformat(value)
    return int(datetime(day.year, day.month, day.day, tzinfo=UTC).timestamp())


@dataclass(frozen=True)
class MarketSnapshot:
    """Current price snapshot for a single instrument."""

    symbol: str
    name: str
    current_price: Decimal
    currency: str
    change_percent_24h: Decimal
    market_cap: Decimal
    volume_24h: Decimal
    instrument_class: InstrumentClass
    provider: ProviderId
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        """Convert snapshot to a JSON-friendly dictionary."""
        return {
            "symbol": self.symbol,
            "name": self.name,
            "current_price": str(self.current_price),
            "currency": self.currency,
            "change_percent_24h": str(self.change_percent_24h),
            "market_cap": str(self.market_cap),
            "volume_24h": str(self.volume_24h),
            "instrument_class": self.instrument_class.value,
            "provider": self.provider.value,
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z"),
        }


@dataclass(frozen=True)
class Candle:
    """OHLCV point; ``timestamp`` is a UTC epoch in seconds."""

    timestamp: int
    open: Decimal = ZERO
    high: Decimal = ZERO
    low: Decimal = ZERO
    close: Decimal = ZERO
    volume: Decimal = ZERO

    def to_dict(self) -> dict[str, Any]:
        """Convert candle to a JSON-friendly dictionary."""
        return {
            "timestamp": self.timestamp,
            "open": str(self.open),
            "high": str(self.high),
            "low": str(self.low),
            "close": str(self.close),
            "volume": str(self.volume),
        }


def sort_candles(candles: list[Candle]) -> list[Candle]:
    """
    Order candles ascending by timestamp with one point per timestamp.

    When a provider repeats a timestamp the later point wins.
    """
    by_timestamp: dict[int, Candle] = {}
    for candle in candles:
        by_timestamp[candle.timestamp] = candle
    return [by_timestamp[ts] for ts in sorted(by_timestamp)]
