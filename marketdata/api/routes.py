"""API routes for current prices, history and provider metrics."""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from marketdata.api.dependencies import get_market_data_service, get_metrics_sink
from marketdata.models.market_data import InstrumentClass
from marketdata.models.time_range import TimeRange
from marketdata.services.market_data_service import MarketDataService
from marketdata.utils.logger import StructuredLogger
from marketdata.utils.metrics import InMemoryMetricsSink

router = APIRouter()
logger = StructuredLogger("MarketRoutes")


class SnapshotResponse(BaseModel):
    """Response model for a current price snapshot; decimals are strings."""

    symbol: str
    name: str
    current_price: str
    currency: str
    change_percent_24h: str
    market_cap: str
    volume_24h: str
    instrument_class: str
    provider: str
    timestamp: str


class CandleResponse(BaseModel):
    """Response model for one OHLCV point."""

    timestamp: int
    open: str
    high: str
    low: str
    close: str
    volume: str


class ProviderStatsResponse(BaseModel):
    """Response model for aggregated provider call statistics."""

    provider: str
    attempts: int
    successes: int
    errors: int
    average_latency_ms: float


@router.get("/market/{instrument_type}/{symbol}", response_model=SnapshotResponse)
def get_current_price(
    instrument_type: str,
    symbol: str,
    service: MarketDataService = Depends(get_market_data_service),
):
    """
    Get the current price for a symbol.

    Args:
        instrument_type: crypto, stock or fii (case-insensitive)
        symbol: Ticker (PETR4.SA, AAPL) or coin id (bitcoin)

    Returns:
        Snapshot from the first provider that answered
    """
    instrument_class = InstrumentClass.parse(instrument_type)
    logger.info(
        "Price requested",
        context={"instrument_class": instrument_class.value, "symbol": symbol},
    )
    snapshot = service.get_current_price(instrument_class, symbol)
    return SnapshotResponse(**snapshot.to_dict())


@router.get("/market/{instrument_type}/{symbol}/history", response_model=list[CandleResponse])
def get_history(
    instrument_type: str,
    symbol: str,
    range_: str = Query(default="1m", alias="range", description="1d, 1w, 1m, 3m, 6m, 1y or 5y"),
    service: MarketDataService = Depends(get_market_data_service),
):
    """
    Get OHLCV history for a symbol, ascending by timestamp.

    Args:
        instrument_type: crypto, stock or fii (case-insensitive)
        symbol: Ticker or coin id
        range_: History range token, sent as ``range`` (default 1m)
    """
    instrument_class = InstrumentClass.parse(instrument_type)
    time_range = TimeRange.parse(range_)
    logger.info(
        "History requested",
        context={
            "instrument_class": instrument_class.value,
            "symbol": symbol,
            "range": time_range.token,
        },
    )
    candles = service.get_history(instrument_class, symbol, time_range)
    return [CandleResponse(**candle.to_dict()) for candle in candles]


@router.get("/metrics", response_model=list[ProviderStatsResponse])
def get_provider_metrics(sink: InMemoryMetricsSink = Depends(get_metrics_sink)):
    """Per-provider call statistics recorded since startup."""
    return [ProviderStatsResponse(**stats.to_dict()) for stats in sink.summary()]
