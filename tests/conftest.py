"""Pytest configuration and fixtures."""

import json
import threading
from decimal import Decimal

import pytest
import requests
from fastapi.testclient import TestClient

from main import app
from marketdata.api.dependencies import get_market_data_service, get_metrics_sink
from marketdata.models.errors import ProviderError
from marketdata.models.market_data import Candle, InstrumentClass, MarketSnapshot, ProviderId
from marketdata.models.time_range import TimeRange
from marketdata.providers.base import MarketDataProvider, ProviderRegistration
from marketdata.services.market_data_service import MarketDataService
from marketdata.utils.metrics import InMemoryMetricsSink, ProviderMetrics


def make_response(payload, status_code: int = 200, url: str = "https://example.test/") -> requests.Response:
    """Build a real requests.Response carrying ``payload`` as JSON."""
    response = requests.Response()
    response.status_code = status_code
    response.url = url
    if isinstance(payload, bytes):
        response._content = payload
    else:
        response._content = json.dumps(payload).encode()
    response.headers["Content-Type"] = "application/json"
    return response


def make_snapshot(symbol: str = "PETR4", provider: ProviderId = ProviderId.BRAPI, **overrides) -> MarketSnapshot:
    fields = {
        "symbol": symbol,
        "name": symbol,
        "current_price": Decimal("10.50"),
        "currency": "BRL",
        "change_percent_24h": Decimal("0"),
        "market_cap": Decimal("0"),
        "volume_24h": Decimal("0"),
        "instrument_class": InstrumentClass.STOCK,
        "provider": provider,
    }
    fields.update(overrides)
    return MarketSnapshot(**fields)


class FakeProvider(MarketDataProvider):
    """In-memory provider that records calls and replays a scripted outcome."""

    def __init__(
        self,
        name: ProviderId,
        classes: set[InstrumentClass],
        snapshot: MarketSnapshot | None = None,
        history: list[Candle] | None = None,
        error: Exception | None = None,
    ):
        self.name = name
        self.supported_classes = frozenset(classes)
        self.snapshot = snapshot
        self.history = history if history is not None else []
        self.error = error
        self.price_calls: list[str] = []
        self.history_calls: list[tuple[str, TimeRange]] = []
        self.cancel_events: list[threading.Event | None] = []

    def fetch_current_price(self, symbol, cancel_event=None):
        self.price_calls.append(symbol)
        self.cancel_events.append(cancel_event)
        if self.error is not None:
            raise self.error
        return self.snapshot

    def fetch_history(self, symbol, time_range, cancel_event=None):
        self.history_calls.append((symbol, time_range))
        self.cancel_events.append(cancel_event)
        if self.error is not None:
            raise self.error
        return self.history


def failing(name: ProviderId, classes: set[InstrumentClass], reason: str = "Symbol not found") -> FakeProvider:
    return FakeProvider(name, classes, error=ProviderError(name, reason))


@pytest.fixture
def sink():
    """Fresh in-memory metrics sink."""
    return InMemoryMetricsSink()


@pytest.fixture
def metrics(sink):
    """ProviderMetrics recording into the ``sink`` fixture."""
    return ProviderMetrics(sink)


@pytest.fixture
def make_service(metrics):
    """Factory building a MarketDataService from (provider, priority) pairs."""

    def _make(*pairs):
        return MarketDataService(
            [ProviderRegistration(provider, priority) for provider, priority in pairs], metrics
        )

    return _make


@pytest.fixture
def use_service():
    """Route API requests to the given MarketDataService."""

    def _use(service):
        app.dependency_overrides[get_market_data_service] = lambda: service

    yield _use
    app.dependency_overrides.clear()


@pytest.fixture
def test_client(sink, use_service):
    """Create a test client whose metrics sink is the ``sink`` fixture."""
    app.dependency_overrides[get_metrics_sink] = lambda: sink
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
