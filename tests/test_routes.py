"""Integration tests for the market data API."""

from decimal import Decimal

from conftest import FakeProvider, failing, make_snapshot

from marketdata.models.market_data import Candle, InstrumentClass, ProviderId
from marketdata.models.time_range import TimeRange

STOCK = {InstrumentClass.STOCK, InstrumentClass.FII}


class TestCurrentPriceEndpoint:
    """Tests for GET /api/market/{type}/{symbol}."""

    def test_returns_snapshot_with_decimal_strings(self, test_client, use_service, make_service):
        brapi = failing(ProviderId.BRAPI, STOCK)
        yahoo = FakeProvider(
            ProviderId.YAHOO_FINANCE,
            STOCK,
            snapshot=make_snapshot("PETR4.SA", provider=ProviderId.YAHOO_FINANCE, current_price=Decimal("38.15")),
        )
        use_service(make_service((brapi, 1), (yahoo, 2)))

        response = test_client.get("/api/market/stock/PETR4.SA")

        assert response.status_code == 200
        data = response.json()
        assert data["current_price"] == "38.15"
        assert data["provider"] == "YahooFinance"
        assert data["instrument_class"] == "STOCK"
        assert data["timestamp"].endswith("Z")
        assert yahoo.price_calls == ["PETR4.SA"]

    def test_type_is_case_insensitive(self, test_client, use_service, make_service):
        brapi = FakeProvider(ProviderId.BRAPI, STOCK, snapshot=make_snapshot("HGLG11"))
        use_service(make_service((brapi, 1)))

        assert test_client.get("/api/market/FiI/HGLG11").status_code == 200

    def test_unknown_type_is_invalid_input(self, test_client, use_service, make_service):
        use_service(make_service())

        response = test_client.get("/api/market/bond/XYZ")

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "INVALID_INPUT"
        assert "bond" in data["message"]
        assert set(data) == {"error", "message", "timestamp"}

    def test_no_provider_for_class(self, test_client, use_service, make_service):
        brapi = FakeProvider(ProviderId.BRAPI, STOCK, snapshot=make_snapshot())
        use_service(make_service((brapi, 1)))

        response = test_client.get("/api/market/crypto/bitcoin")

        assert response.status_code == 400
        assert response.json()["error"] == "UNSUPPORTED_INSTRUMENT_CLASS"

    def test_all_providers_failed_is_bad_gateway(self, test_client, use_service, make_service):
        brapi = failing(ProviderId.BRAPI, STOCK, "Empty results")
        yahoo = failing(ProviderId.YAHOO_FINANCE, STOCK, "Symbol not found")
        use_service(make_service((brapi, 1), (yahoo, 2)))

        response = test_client.get("/api/market/stock/XXXX4.SA")

        assert response.status_code == 502
        data = response.json()
        assert data["error"] == "PROVIDER_ERROR"
        assert data["provider"] == "YahooFinance"
        assert "Symbol not found" in data["message"]

    def test_unexpected_error_is_internal(self, test_client, use_service, make_service):
        broken = FakeProvider(ProviderId.BRAPI, STOCK, error=RuntimeError("secret detail"))
        use_service(make_service((broken, 1)))

        response = test_client.get("/api/market/stock/PETR4")

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "INTERNAL_ERROR"
        assert "secret detail" not in data["message"]


class TestHistoryEndpoint:
    """Tests for GET /api/market/{type}/{symbol}/history."""

    def test_default_range_is_one_month(self, test_client, use_service, make_service):
        brapi = FakeProvider(
            ProviderId.BRAPI,
            STOCK,
            history=[Candle(timestamp=1, close=Decimal("1.5")), Candle(timestamp=2)],
        )
        use_service(make_service((brapi, 1)))

        response = test_client.get("/api/market/stock/PETR4/history")

        assert response.status_code == 200
        assert response.json()[0] == {
            "timestamp": 1,
            "open": "0",
            "high": "0",
            "low": "0",
            "close": "1.5",
            "volume": "0",
        }
        assert brapi.history_calls == [("PETR4", TimeRange.ONE_MONTH)]

    def test_range_query_is_parsed(self, test_client, use_service, make_service):
        brapi = FakeProvider(ProviderId.BRAPI, STOCK)
        use_service(make_service((brapi, 1)))

        response = test_client.get("/api/market/stock/PETR4/history", params={"range": "5Y"})

        assert response.status_code == 200
        assert response.json() == []
        assert brapi.history_calls == [("PETR4", TimeRange.FIVE_YEARS)]

    def test_invalid_range_is_rejected_before_any_call(self, test_client, use_service, make_service):
        brapi = FakeProvider(ProviderId.BRAPI, STOCK)
        use_service(make_service((brapi, 1)))

        response = test_client.get("/api/market/stock/PETR4/history", params={"range": "2d"})

        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_INPUT"
        assert brapi.history_calls == []


class TestMetricsEndpoint:
    """Tests for GET /api/metrics."""

    def test_reports_per_provider_stats(self, test_client, use_service, make_service):
        brapi = failing(ProviderId.BRAPI, STOCK)
        yahoo = FakeProvider(ProviderId.YAHOO_FINANCE, STOCK, snapshot=make_snapshot())
        use_service(make_service((brapi, 1), (yahoo, 2)))

        test_client.get("/api/market/stock/PETR4")
        response = test_client.get("/api/metrics")

        assert response.status_code == 200
        stats = {s["provider"]: s for s in response.json()}
        assert stats["Brapi"]["errors"] == 1
        assert stats["YahooFinance"]["successes"] == 1
        assert stats["YahooFinance"]["attempts"] == 1


class TestAppSurface:
    """Tests for health and tracing."""

    def test_health(self, test_client):
        response = test_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_trace_id_header_is_generated(self, test_client):
        response = test_client.get("/health")

        assert response.headers["X-Trace-Id"]

    def test_incoming_trace_id_is_echoed(self, test_client):
        response = test_client.get("/health", headers={"X-Trace-Id": "abc-123"})

        assert response.headers["X-Trace-Id"] == "abc-123"
