"""Tests for the Alpha Vantage provider."""

from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import patch

import pytest
from conftest import make_response

from marketdata.models.errors import ProviderError
from marketdata.models.market_data import InstrumentClass, ProviderId, epoch_seconds_from_date
from marketdata.models.time_range import TimeRange
from marketdata.providers.alpha_vantage import (
    AlphaVantageProvider,
    alphavantage_output_size,
    convert_symbol,
    parse_change_percent,
)

GET = "marketdata.providers.base.requests.get"

GLOBAL_QUOTE = {
    "Global Quote": {
        "01. symbol": "PETR4.SAO",
        "05. price": "38.1500",
        "06. volume": "42000000",
        "10. change percent": "0.9601%",
    }
}


def fixed_clock():
    return datetime(2024, 3, 15, 12, 0, tzinfo=UTC)


class TestAlphaVantageHelpers:
    """Tests for symbol, range and field translation."""

    @pytest.mark.parametrize(
        "raw,expected",
        [("PETR4.SA", "PETR4.SAO"), ("petr4.sa", "PETR4.SAO"), ("AAPL", "AAPL"), ("IBM", "IBM")],
    )
    def test_convert_symbol(self, raw, expected):
        assert convert_symbol(raw) == expected

    @pytest.mark.parametrize(
        "time_range,expected",
        [
            (TimeRange.ONE_DAY, "compact"),
            (TimeRange.ONE_WEEK, "compact"),
            (TimeRange.ONE_MONTH, "compact"),
            (TimeRange.THREE_MONTHS, "full"),
            (TimeRange.FIVE_YEARS, "full"),
        ],
    )
    def test_output_size(self, time_range, expected):
        assert alphavantage_output_size(time_range) == expected

    @pytest.mark.parametrize(
        "raw,expected",
        [("0.9601%", Decimal("0.9601")), ("-1.5%", Decimal("-1.5")), (None, Decimal("0")), ("", Decimal("0"))],
    )
    def test_parse_change_percent(self, raw, expected):
        assert parse_change_percent(raw) == expected


class TestAlphaVantageCurrentPrice:
    """Tests for AlphaVantageProvider.fetch_current_price."""

    def test_supports_stock_only(self):
        provider = AlphaVantageProvider()
        assert provider.supports(InstrumentClass.STOCK)
        assert not provider.supports(InstrumentClass.FII)
        assert not provider.supports(InstrumentClass.CRYPTO)

    @patch(GET)
    def test_maps_brazilian_quote(self, mock_get):
        mock_get.return_value = make_response(GLOBAL_QUOTE)

        snapshot = AlphaVantageProvider(api_key="key").fetch_current_price("PETR4.SA")

        assert snapshot.symbol == "PETR4.SAO"
        assert snapshot.current_price == Decimal("38.1500")
        assert snapshot.change_percent_24h == Decimal("0.9601")
        assert snapshot.currency == "BRL"
        assert snapshot.market_cap == Decimal("0")
        assert snapshot.instrument_class is InstrumentClass.STOCK
        assert snapshot.provider is ProviderId.ALPHA_VANTAGE
        assert mock_get.call_args.kwargs["params"] == {
            "function": "GLOBAL_QUOTE",
            "symbol": "PETR4.SAO",
            "apikey": "key",
        }

    @patch(GET)
    def test_us_symbol_is_priced_in_usd(self, mock_get):
        mock_get.return_value = make_response(
            {"Global Quote": {"01. symbol": "AAPL", "05. price": "190.10"}}
        )

        snapshot = AlphaVantageProvider().fetch_current_price("AAPL")

        assert snapshot.currency == "USD"
        assert mock_get.call_args.kwargs["params"]["apikey"] == "demo"

    @pytest.mark.parametrize(
        "payload",
        [
            {"Global Quote": {}},
            {"Global Quote": ["x"]},
            {},
            {"Error Message": "Invalid API call."},
            {"Information": "The demo API key is for demo purposes only."},
            {"Note": "Thank you for using Alpha Vantage! Our standard API rate limit is 25 requests per day."},
        ],
    )
    @patch(GET)
    def test_empty_or_refusal_payloads_raise(self, mock_get, payload):
        mock_get.return_value = make_response(payload)

        with pytest.raises(ProviderError) as exc_info:
            AlphaVantageProvider().fetch_current_price("XXXX4.SA")

        assert exc_info.value.provider is ProviderId.ALPHA_VANTAGE


class TestAlphaVantageHistory:
    """Tests for AlphaVantageProvider.fetch_history."""

    SERIES = {
        "Time Series (Daily)": {
            "2024-03-14": {
                "1. open": "10.0",
                "2. high": "11.0",
                "3. low": "9.5",
                "4. close": "10.5",
                "5. volume": "1000",
            },
            "2024-03-01": {"1. open": "9.0", "4. close": "9.5"},
            "2024-02-10": {"1. open": "8.0", "4. close": "8.5"},
        }
    }

    @patch(GET)
    def test_filters_by_cutoff_and_sorts(self, mock_get):
        mock_get.return_value = make_response(self.SERIES)
        provider = AlphaVantageProvider(clock=fixed_clock)

        candles = provider.fetch_history("PETR4.SA", TimeRange.ONE_MONTH)

        assert [c.timestamp for c in candles] == [
            epoch_seconds_from_date("2024-03-01"),
            epoch_seconds_from_date("2024-03-14"),
        ]
        assert candles[1].high == Decimal("11.0")
        assert candles[0].volume == Decimal("0")
        params = mock_get.call_args.kwargs["params"]
        assert params["function"] == "TIME_SERIES_DAILY"
        assert params["outputsize"] == "compact"

    @patch(GET)
    def test_long_range_requests_full_history(self, mock_get):
        mock_get.return_value = make_response(self.SERIES)

        candles = AlphaVantageProvider(clock=fixed_clock).fetch_history("PETR4.SA", TimeRange.ONE_YEAR)

        assert len(candles) == 3
        assert mock_get.call_args.kwargs["params"]["outputsize"] == "full"

    @patch(GET)
    def test_missing_series_returns_empty_list(self, mock_get):
        mock_get.return_value = make_response({"Meta Data": {}})

        assert AlphaVantageProvider().fetch_history("IBM", TimeRange.ONE_WEEK) == []

    @patch(GET)
    def test_throttle_note_raises(self, mock_get):
        mock_get.return_value = make_response({"Note": "rate limit"})

        with pytest.raises(ProviderError, match="rate limit"):
            AlphaVantageProvider().fetch_history("IBM", TimeRange.ONE_WEEK)

    @patch(GET)
    def test_non_date_series_key_is_malformed(self, mock_get):
        mock_get.return_value = make_response({"Time Series (Daily)": {"yesterday": {"4. close": "1"}}})

        with pytest.raises(ProviderError, match="Malformed payload") as exc_info:
            AlphaVantageProvider(clock=fixed_clock).fetch_history("IBM", TimeRange.ONE_WEEK)

        assert isinstance(exc_info.value.__cause__, ValueError)

    @pytest.mark.parametrize(
        "payload",
        [
            {"Time Series (Daily)": [["2024-03-14", "10.5"]]},
            {"Time Series (Daily)": {"2024-03-14": ["10.0", "10.5"]}},
        ],
    )
    @patch(GET)
    def test_wrong_series_shape_is_provider_error(self, mock_get, payload):
        mock_get.return_value = make_response(payload)

        with pytest.raises(ProviderError) as exc_info:
            AlphaVantageProvider(clock=fixed_clock).fetch_history("IBM", TimeRange.ONE_MONTH)

        assert exc_info.value.provider is ProviderId.ALPHA_VANTAGE
