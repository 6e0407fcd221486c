"""FastAPI dependencies for the market data service and its metrics."""

from functools import lru_cache

from marketdata.providers.defaults import create_market_data_service, metrics_sink
from marketdata.services.market_data_service import MarketDataService
from marketdata.utils.metrics import InMemoryMetricsSink


@lru_cache(maxsize=1)
def get_market_data_service() -> MarketDataService:
    """
    FastAPI dependency returning the process-wide MarketDataService.

    Built lazily on first use so importing the app never touches provider
    configuration. Tests override it through ``app.dependency_overrides``.
    """
    return create_market_data_service(sink=metrics_sink)


def get_metrics_sink() -> InMemoryMetricsSink:
    """FastAPI dependency returning the sink behind /api/metrics."""
    return metrics_sink
