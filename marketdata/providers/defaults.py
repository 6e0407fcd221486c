"""Default provider wiring for the application."""

from marketdata.providers.alpha_vantage import AlphaVantageProvider
from marketdata.providers.base import ProviderRegistration
from marketdata.providers.brapi import BrapiProvider
from marketdata.providers.coingecko import CoinGeckoProvider
from marketdata.providers.yahoo import YahooFinanceProvider
from marketdata.services.market_data_service import MarketDataService
from marketdata.utils.config import Config
from marketdata.utils.config import config as default_config
from marketdata.utils.metrics import InMemoryMetricsSink, ProviderMetrics

# Priorities per instrument class:
#   STOCK/FII: Brapi (1) -> Yahoo Finance (2) -> Alpha Vantage (3, STOCK only)
#   CRYPTO:    CoinGecko (1)
BRAPI_PRIORITY = 1
YAHOO_PRIORITY = 2
ALPHA_VANTAGE_PRIORITY = 3
COINGECKO_PRIORITY = 1

# Process-wide sink backing the /api/metrics endpoint.
metrics_sink = InMemoryMetricsSink()


def default_registrations(
    cfg: Config | None = None, metrics: ProviderMetrics | None = None
) -> list[ProviderRegistration]:
    """
    Build the production provider list from configuration.

    Args:
        cfg: Configuration to read credentials and timeouts from
        metrics: Recorder for Yahoo's per-attempt timings

    Returns:
        Registrations in declaration order; the service sorts them by priority
    """
    cfg = cfg or default_config
    timeout = cfg.providers.timeout
    return [
        ProviderRegistration(
            BrapiProvider(token=cfg.providers.brapi_token, timeout=timeout), BRAPI_PRIORITY
        ),
        ProviderRegistration(
            YahooFinanceProvider(
                timeout=timeout,
                max_attempts=cfg.retry.max_attempts,
                base_delay=cfg.retry.base_delay,
                metrics=metrics,
            ),
            YAHOO_PRIORITY,
        ),
        ProviderRegistration(
            AlphaVantageProvider(api_key=cfg.providers.alphavantage_api_key, timeout=timeout),
            ALPHA_VANTAGE_PRIORITY,
        ),
        ProviderRegistration(CoinGeckoProvider(timeout=timeout), COINGECKO_PRIORITY),
    ]


def create_market_data_service(
    cfg: Config | None = None, sink: InMemoryMetricsSink | None = None
) -> MarketDataService:
    """Create a MarketDataService wired with the default providers and sink."""
    metrics = ProviderMetrics(sink if sink is not None else metrics_sink)
    return MarketDataService(default_registrations(cfg, metrics), metrics)
