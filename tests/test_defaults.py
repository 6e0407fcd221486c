"""Tests for the default provider wiring."""

from marketdata.api.dependencies import get_metrics_sink
from marketdata.models.market_data import InstrumentClass, ProviderId
from marketdata.providers.defaults import (
    create_market_data_service,
    default_registrations,
    metrics_sink,
)
from marketdata.providers.yahoo import YahooFinanceProvider
from marketdata.utils.config import Config, ProviderConfig, RetryConfig
from marketdata.utils.metrics import InMemoryMetricsSink


def make_config() -> Config:
    config = Config()
    config.providers = ProviderConfig(
        brapi_token="brapi-token", alphavantage_api_key="av-key", connect_timeout=1.0, read_timeout=3.0
    )
    config.retry = RetryConfig(max_attempts=4, base_delay=0.5)
    return config


class TestDefaultRegistrations:
    """Tests for the production provider list."""

    def test_equity_order_is_brapi_yahoo_alpha_vantage(self):
        service = create_market_data_service(make_config(), sink=InMemoryMetricsSink())

        assert [p.name for p in service.eligible_providers(InstrumentClass.STOCK)] == [
            ProviderId.BRAPI,
            ProviderId.YAHOO_FINANCE,
            ProviderId.ALPHA_VANTAGE,
        ]

    def test_funds_skip_alpha_vantage(self):
        service = create_market_data_service(make_config(), sink=InMemoryMetricsSink())

        assert [p.name for p in service.eligible_providers(InstrumentClass.FII)] == [
            ProviderId.BRAPI,
            ProviderId.YAHOO_FINANCE,
        ]

    def test_crypto_is_served_by_coingecko(self):
        service = create_market_data_service(make_config(), sink=InMemoryMetricsSink())

        assert [p.name for p in service.eligible_providers(InstrumentClass.CRYPTO)] == [
            ProviderId.COINGECKO
        ]

    def test_configuration_reaches_providers(self):
        providers = {r.provider.name: r.provider for r in default_registrations(make_config())}

        assert providers[ProviderId.BRAPI].token == "brapi-token"
        assert providers[ProviderId.ALPHA_VANTAGE].api_key == "av-key"
        assert all(p.timeout == (1.0, 3.0) for p in providers.values())

        yahoo = providers[ProviderId.YAHOO_FINANCE]
        assert isinstance(yahoo, YahooFinanceProvider)
        assert yahoo.retry.max_attempts == 4
        assert yahoo.retry.base_delay == 0.5

    def test_yahoo_attempts_share_the_service_sink(self):
        sink = InMemoryMetricsSink()
        service = create_market_data_service(make_config(), sink=sink)

        yahoo = next(
            r.provider for r in service.registrations if r.provider.name is ProviderId.YAHOO_FINANCE
        )
        assert yahoo.metrics.sink is sink
        assert service.metrics.sink is sink

    def test_metrics_dependency_returns_default_sink(self):
        assert get_metrics_sink() is metrics_sink
