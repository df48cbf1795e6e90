"""
Tests for concrete data adapters.

============================================================
PURPOSE
============================================================
Verify each provider normalizes vendor payloads, maps failures
onto the error taxonomy and serves repeats from its cache.

TEST PRINCIPLES:
- HTTP clients are AsyncMock(spec=HttpClient)
- Payloads are trimmed copies of real vendor responses

============================================================
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from data_adapters.config import AdapterSettings
from data_adapters.exceptions import (
    AdapterError,
    AdapterUnavailableError,
    ErrorCode,
    InvalidRequestError,
    RateLimitedError,
    UnsupportedOperationError,
)
from data_adapters.http import HttpClient
from data_adapters.models import (
    AdapterType,
    FundamentalsParams,
    HealthStatus,
    HistoricalPriceParams,
    QuoteParams,
    StatementPeriod,
)
from data_adapters.providers import (
    CikLookup,
    OpenBBAdapter,
    SecEdgarAdapter,
    StooqAdapter,
    YahooFinanceAdapter,
)
from data_adapters.providers.sec_edgar import TICKERS_URL


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def client():
    """Mock HTTP client."""
    return AsyncMock(spec=HttpClient)


YAHOO_QUOTE = {
    "quoteResponse": {
        "result": [{
            "symbol": "AAPL",
            "regularMarketPrice": 189.25,
            "regularMarketChange": -1.5,
            "regularMarketChangePercent": -0.79,
            "regularMarketPreviousClose": 190.75,
            "regularMarketOpen": 190.1,
            "regularMarketDayHigh": 191.0,
            "regularMarketDayLow": 188.4,
            "regularMarketVolume": 51234000,
            "regularMarketTime": 1704229200,
            "marketCap": 2950000000000,
            "currency": "USD",
        }],
        "error": None,
    }
}

YAHOO_CHART = {
    "chart": {
        "result": [{
            "meta": {"symbol": "AAPL", "currency": "USD"},
            "timestamp": [1704205800, 1704292200, 1704378600],
            "indicators": {
                "quote": [{
                    "open": [187.15, None, 184.22],
                    "high": [188.44, 185.88, 185.15],
                    "low": [183.89, 183.43, 182.73],
                    "close": [185.64, 184.25, 181.91],
                    "volume": [82488700, 58414500, 71983600],
                }],
                "adjclose": [{"adjclose": [184.94, 183.55, 181.22]}],
            },
        }],
        "error": None,
    }
}

STOOQ_CSV = (
    "Date,Open,High,Low,Close,Volume\n"
    "2024-01-02,187.15,188.44,183.885,185.64,82488742\n"
    "2024-01-03,184.22,185.88,183.43,184.25,58414460\n"
    "2024-01-04,,,,,\n"
)

SEC_TICKERS = {
    "0": {"cik_str": 320193, "ticker": "AAPL", "title": "Apple Inc."},
    "1": {"cik_str": 789019, "ticker": "MSFT", "title": "MICROSOFT CORP"},
}


def usd_facts(*entries):
    return {"units": {"USD": [
        {"end": end, "val": val, "form": form, "fy": int(end[:4]), "fp": "FY"}
        for end, val, form in entries
    ]}}


SEC_FACTS = {
    "cik": 320193,
    "entityName": "Apple Inc.",
    "facts": {
        "us-gaap": {
            "RevenueFromContractWithCustomerExcludingAssessedTax": usd_facts(
                ("2022-09-24", 394328000000, "10-K"),
                ("2023-09-30", 383285000000, "10-K"),
                ("2023-12-30", 119575000000, "10-Q"),
            ),
            "NetIncomeLoss": usd_facts(
                ("2022-09-24", 99803000000, "10-K"),
                ("2023-09-30", 96995000000, "10-K"),
            ),
            "Assets": usd_facts(("2023-09-30", 352583000000, "10-K")),
            "Liabilities": usd_facts(("2023-09-30", 290437000000, "10-K")),
            "StockholdersEquity": usd_facts(("2023-09-30", 62146000000, "10-K")),
            "NetCashProvidedByUsedInOperatingActivities": usd_facts(
                ("2023-09-30", 110543000000, "10-K"),
            ),
        }
    },
}


def sec_client(client, facts=SEC_FACTS):
    async def get_json(endpoint, params=None, headers=None):
        if endpoint == TICKERS_URL:
            return SEC_TICKERS
        return facts

    client.get_json.side_effect = get_json
    return client


# ============================================================
# YAHOO FINANCE
# ============================================================

class TestYahooFinanceAdapter:
    """Tests for YahooFinanceAdapter."""

    def test_identity_and_capabilities(self, client):
        adapter = YahooFinanceAdapter(client=client)

        assert adapter.name == "yahoo-finance"
        assert adapter.adapter_type == AdapterType.BUILT_IN
        assert adapter.requires_setup is False
        caps = adapter.get_capabilities()
        assert caps.quotes and caps.historical
        assert not caps.fundamentals and not caps.realtime

    @pytest.mark.asyncio
    async def test_get_quote(self, client, mock_clock):
        client.get_json.return_value = YAHOO_QUOTE
        adapter = YahooFinanceAdapter(client=client, clock=mock_clock)

        quote = await adapter.get_quote(QuoteParams("aapl"))

        assert quote.symbol == "AAPL"
        assert quote.price == Decimal("189.25")
        assert quote.change == Decimal("-1.5")
        assert quote.volume == 51234000
        assert quote.source_name == "yahoo-finance"
        assert quote.realtime is False
        assert quote.timestamp == datetime.fromtimestamp(1704229200, tz=timezone.utc)
        client.get_json.assert_awaited_once_with("/v7/finance/quote", params={"symbols": "AAPL"})

    @pytest.mark.asyncio
    async def test_quote_served_from_cache(self, client, mock_clock):
        client.get_json.return_value = YAHOO_QUOTE
        adapter = YahooFinanceAdapter(client=client, clock=mock_clock)

        first = await adapter.get_quote(QuoteParams("AAPL"))
        second = await adapter.get_quote(QuoteParams("AAPL"))

        assert first == second
        assert client.get_json.await_count == 1

    @pytest.mark.asyncio
    async def test_cache_expires(self, client, mock_clock):
        client.get_json.return_value = YAHOO_QUOTE
        adapter = YahooFinanceAdapter(settings=AdapterSettings(cache_ttl=15), client=client, clock=mock_clock)

        await adapter.get_quote(QuoteParams("AAPL"))
        mock_clock.advance(16)
        await adapter.get_quote(QuoteParams("AAPL"))

        assert client.get_json.await_count == 2

    @pytest.mark.asyncio
    async def test_empty_result_is_invalid_request(self, client, mock_clock):
        client.get_json.return_value = {"quoteResponse": {"result": [], "error": None}}
        adapter = YahooFinanceAdapter(client=client, clock=mock_clock)

        with pytest.raises(InvalidRequestError):
            await adapter.get_quote(QuoteParams("ZZZZ"))

    @pytest.mark.asyncio
    async def test_malformed_payload_is_unknown(self, client, mock_clock):
        client.get_json.return_value = {"unexpected": True}
        adapter = YahooFinanceAdapter(client=client, clock=mock_clock)

        with pytest.raises(AdapterError) as exc_info:
            await adapter.get_quote(QuoteParams("AAPL"))

        assert exc_info.value.code == ErrorCode.UNKNOWN
        assert exc_info.value.cause is not None

    @pytest.mark.asyncio
    async def test_http_errors_propagate(self, client, mock_clock):
        client.get_json.side_effect = RateLimitedError("quota", "yahoo-finance")
        adapter = YahooFinanceAdapter(client=client, clock=mock_clock)

        with pytest.raises(RateLimitedError):
            await adapter.get_quote(QuoteParams("AAPL"))

    @pytest.mark.asyncio
    async def test_blank_symbol_rejected_without_request(self, client, mock_clock):
        adapter = YahooFinanceAdapter(client=client, clock=mock_clock)

        with pytest.raises(InvalidRequestError):
            await adapter.get_quote(QuoteParams(""))

        client.get_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_historical_prices_skip_gaps(self, client, mock_clock):
        client.get_json.return_value = YAHOO_CHART
        adapter = YahooFinanceAdapter(client=client, clock=mock_clock)

        prices = await adapter.get_historical_prices(
            HistoricalPriceParams("AAPL", date(2024, 1, 2), date(2024, 1, 4))
        )

        assert len(prices) == 2
        assert prices[0].close == Decimal("185.64")
        assert prices[0].adjusted_close == Decimal("184.94")
        assert prices[1].open == Decimal("184.22")
        assert prices[0].timestamp < prices[1].timestamp

        endpoint = client.get_json.call_args.args[0]
        params = client.get_json.call_args.kwargs["params"]
        assert endpoint == "/v8/finance/chart/AAPL"
        assert params["period2"] - params["period1"] == 3 * 86400
        assert params["interval"] == "1d"

    @pytest.mark.asyncio
    async def test_chart_error_is_invalid_request(self, client, mock_clock):
        client.get_json.return_value = {
            "chart": {"result": None, "error": {"code": "Not Found", "description": "No data found"}}
        }
        adapter = YahooFinanceAdapter(client=client, clock=mock_clock)

        with pytest.raises(InvalidRequestError):
            await adapter.get_historical_prices(
                HistoricalPriceParams("ZZZZ", date(2024, 1, 2), date(2024, 1, 4))
            )

    @pytest.mark.asyncio
    async def test_fundamentals_unsupported(self, client):
        adapter = YahooFinanceAdapter(client=client)

        with pytest.raises(UnsupportedOperationError):
            await adapter.get_fundamentals(FundamentalsParams("AAPL"))

    @pytest.mark.asyncio
    async def test_health_check(self, client, mock_clock):
        client.get_status.return_value = 200
        adapter = YahooFinanceAdapter(client=client, clock=mock_clock)

        health = await adapter.health_check()

        assert health.adapter == "yahoo-finance"
        assert health.status == HealthStatus.HEALTHY

    @pytest.mark.asyncio
    async def test_health_check_never_raises(self, client, mock_clock):
        client.get_status.side_effect = OSError("network down")
        adapter = YahooFinanceAdapter(client=client, clock=mock_clock)

        health = await adapter.health_check()

        assert health.status == HealthStatus.UNAVAILABLE
        assert health.error == "network down"


# ============================================================
# STOOQ
# ============================================================

class TestStooqAdapter:
    """Tests for StooqAdapter."""

    def test_capabilities(self, client):
        caps = StooqAdapter(client=client).get_capabilities()

        assert caps.historical
        assert not caps.quotes and not caps.fundamentals

    @pytest.mark.asyncio
    async def test_historical_prices(self, client, mock_clock):
        client.get_text.return_value = STOOQ_CSV
        adapter = StooqAdapter(client=client, clock=mock_clock)

        prices = await adapter.get_historical_prices(
            HistoricalPriceParams("AAPL", date(2024, 1, 2), date(2024, 1, 4))
        )

        assert len(prices) == 2
        assert prices[0].low == Decimal("183.885")
        assert prices[0].volume == 82488742
        assert prices[0].timestamp == datetime(2024, 1, 2, tzinfo=timezone.utc)
        assert prices[0].source_name == "stooq"
        client.get_text.assert_awaited_once_with(
            "/q/d/l/",
            params={"s": "aapl.us", "d1": "20240102", "d2": "20240104", "i": "d"},
        )

    @pytest.mark.asyncio
    async def test_no_data_returns_empty(self, client, mock_clock):
        client.get_text.return_value = "No data"
        adapter = StooqAdapter(client=client, clock=mock_clock)

        prices = await adapter.get_historical_prices(
            HistoricalPriceParams("ZZZZ", date(2024, 1, 2), date(2024, 1, 4))
        )

        assert prices == []

    @pytest.mark.asyncio
    async def test_repeat_served_from_cache(self, client, mock_clock):
        client.get_text.return_value = STOOQ_CSV
        adapter = StooqAdapter(client=client, clock=mock_clock)
        params = HistoricalPriceParams("AAPL", date(2024, 1, 2), date(2024, 1, 4))

        await adapter.get_historical_prices(params)
        await adapter.get_historical_prices(params)

        assert client.get_text.await_count == 1

    @pytest.mark.asyncio
    async def test_intraday_unsupported(self, client, mock_clock):
        adapter = StooqAdapter(client=client, clock=mock_clock)

        with pytest.raises(UnsupportedOperationError):
            await adapter.get_historical_prices(
                HistoricalPriceParams("AAPL", date(2024, 1, 2), date(2024, 1, 2), interval="5m")
            )

    @pytest.mark.asyncio
    async def test_unavailable_propagates(self, client, mock_clock):
        client.get_text.side_effect = AdapterUnavailableError("HTTP 503", "stooq", status_code=503)
        adapter = StooqAdapter(client=client, clock=mock_clock)

        with pytest.raises(AdapterUnavailableError):
            await adapter.get_historical_prices(
                HistoricalPriceParams("AAPL", date(2024, 1, 2), date(2024, 1, 4))
            )

    @pytest.mark.asyncio
    async def test_quote_unsupported(self, client):
        with pytest.raises(UnsupportedOperationError):
            await StooqAdapter(client=client).get_quote(QuoteParams("AAPL"))

    def test_symbol_suffix(self):
        assert StooqAdapter.to_stooq_symbol("AAPL") == "aapl.us"
        assert StooqAdapter.to_stooq_symbol("VOD.UK") == "vod.uk"


# ============================================================
# SEC EDGAR
# ============================================================

class TestCikLookup:
    """Tests for ticker to CIK mapping."""

    def test_format_cik(self):
        assert CikLookup.format_cik(320193) == "0000320193"
        assert CikLookup.format_cik("0000320193") == "0000320193"

    @pytest.mark.asyncio
    async def test_lookup_loads_mapping_once(self, client, mock_clock):
        client.get_json.return_value = SEC_TICKERS
        limiter = AsyncMock()
        lookup = CikLookup(client, limiter, clock=mock_clock)

        assert await lookup.get_cik("aapl") == "0000320193"
        assert await lookup.get_cik("MSFT") == "0000789019"
        assert await lookup.get_cik("NOPE") is None
        assert client.get_json.await_count == 1

    @pytest.mark.asyncio
    async def test_mapping_refreshed_after_a_day(self, client, mock_clock):
        client.get_json.return_value = SEC_TICKERS
        lookup = CikLookup(client, AsyncMock(), clock=mock_clock)

        await lookup.get_cik("AAPL")
        mock_clock.advance(hours=25)
        await lookup.get_cik("AAPL")

        assert client.get_json.await_count == 2


class TestSecEdgarAdapter:
    """Tests for SecEdgarAdapter."""

    def test_capabilities(self, client):
        caps = SecEdgarAdapter(client=client).get_capabilities()

        assert caps.fundamentals
        assert not caps.quotes and not caps.historical

    @pytest.mark.asyncio
    async def test_fundamentals_use_latest_annual_filing(self, client, mock_clock):
        adapter = SecEdgarAdapter(client=sec_client(client), clock=mock_clock)

        fundamentals = await adapter.get_fundamentals(FundamentalsParams("AAPL"))

        assert fundamentals.symbol == "AAPL"
        assert fundamentals.source_name == "sec-edgar"
        assert fundamentals.profile.name == "Apple Inc."
        assert fundamentals.profile.cik == "0000320193"

        income = fundamentals.income_statement
        assert income.date == date(2023, 9, 30)
        assert income.period == StatementPeriod.ANNUAL
        assert income.revenue == Decimal("383285000000")
        assert income.net_income == Decimal("96995000000")

        assert fundamentals.balance_sheet.total_assets == Decimal("352583000000")
        assert fundamentals.balance_sheet.shareholders_equity == Decimal("62146000000")
        assert fundamentals.cash_flow.operating_cash_flow == Decimal("110543000000")

        client.get_json.assert_any_await("/api/xbrl/companyfacts/CIK0000320193.json")

    @pytest.mark.asyncio
    async def test_facts_cached(self, client, mock_clock):
        adapter = SecEdgarAdapter(client=sec_client(client), clock=mock_clock)

        await adapter.get_fundamentals(FundamentalsParams("AAPL"))
        await adapter.get_fundamentals(FundamentalsParams("AAPL"))

        # tickers + facts, once each
        assert client.get_json.await_count == 2

    @pytest.mark.asyncio
    async def test_unknown_ticker_is_invalid_request(self, client, mock_clock):
        adapter = SecEdgarAdapter(client=sec_client(client), clock=mock_clock)

        with pytest.raises(InvalidRequestError):
            await adapter.get_fundamentals(FundamentalsParams("NOPE"))

    @pytest.mark.asyncio
    async def test_missing_us_gaap_is_invalid_request(self, client, mock_clock):
        facts = {"cik": 320193, "entityName": "Apple Inc.", "facts": {"dei": {}}}
        adapter = SecEdgarAdapter(client=sec_client(client, facts), clock=mock_clock)

        with pytest.raises(InvalidRequestError):
            await adapter.get_fundamentals(FundamentalsParams("AAPL"))

    @pytest.mark.asyncio
    async def test_malformed_facts_are_unknown(self, client, mock_clock):
        adapter = SecEdgarAdapter(client=sec_client(client, {"facts": "nope"}), clock=mock_clock)

        with pytest.raises(AdapterError) as exc_info:
            await adapter.get_fundamentals(FundamentalsParams("AAPL"))

        assert exc_info.value.code == ErrorCode.UNKNOWN

    @pytest.mark.asyncio
    async def test_prices_unsupported(self, client):
        adapter = SecEdgarAdapter(client=client)

        with pytest.raises(UnsupportedOperationError):
            await adapter.get_quote(QuoteParams("AAPL"))
        with pytest.raises(UnsupportedOperationError):
            await adapter.get_historical_prices(
                HistoricalPriceParams("AAPL", date(2024, 1, 2), date(2024, 1, 4))
            )

    @pytest.mark.asyncio
    async def test_health_probe_uses_known_cik(self, client, mock_clock):
        client.get_status.return_value = 403
        adapter = SecEdgarAdapter(client=client, clock=mock_clock)

        health = await adapter.health_check()

        assert health.status == HealthStatus.DEGRADED
        assert client.get_status.call_args.args[0] == "/api/xbrl/companyfacts/CIK0000320193.json"

    def test_default_rate_limit(self, client):
        adapter = SecEdgarAdapter(client=client)

        assert adapter._rate_limiter.tokens_per_second == 10


# ============================================================
# OPENBB
# ============================================================

class TestOpenBBAdapter:
    """Tests for OpenBBAdapter."""

    def test_identity(self, client):
        adapter = OpenBBAdapter(client=client)

        assert adapter.adapter_type == AdapterType.OPTIONAL
        assert adapter.requires_setup is True
        caps = adapter.get_capabilities()
        assert caps.quotes and caps.historical and caps.fundamentals

    def test_bearer_token_header(self):
        adapter = OpenBBAdapter(settings=AdapterSettings(api_key="secret"))

        assert adapter._client._headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_get_quote(self, client, mock_clock):
        client.get_json.return_value = {
            "results": [{"symbol": "AAPL", "last_price": 189.25, "change": -1.5, "volume": 1000}],
            "provider": "fmp",
            "warnings": None,
        }
        adapter = OpenBBAdapter(client=client, clock=mock_clock)

        quote = await adapter.get_quote(QuoteParams("AAPL"))

        assert quote.price == Decimal("189.25")
        assert quote.volume == 1000
        assert quote.source_name == "openbb"
        assert quote.timestamp == mock_clock.now()

    @pytest.mark.asyncio
    async def test_historical_prices_sorted(self, client, mock_clock):
        client.get_json.return_value = {
            "results": [
                {"date": "2024-01-03", "open": 184.22, "high": 185.88, "low": 183.43, "close": 184.25, "volume": 58414460},
                {"date": "2024-01-02", "open": 187.15, "high": 188.44, "low": 183.89, "close": 185.64, "volume": 82488742},
            ],
            "provider": "fmp",
        }
        adapter = OpenBBAdapter(client=client, clock=mock_clock)

        prices = await adapter.get_historical_prices(
            HistoricalPriceParams("AAPL", date(2024, 1, 2), date(2024, 1, 3))
        )

        assert [p.timestamp.day for p in prices] == [2, 3]
        params = client.get_json.call_args.kwargs["params"]
        assert params["start_date"] == "2024-01-02"
        assert params["end_date"] == "2024-01-03"

    @pytest.mark.asyncio
    async def test_fundamentals(self, client, mock_clock):
        responses = {
            "/equity/profile": [{"symbol": "AAPL", "name": "Apple Inc.", "sector": "Technology"}],
            "/equity/fundamental/income": [
                {"period_ending": "2023-09-30", "revenue": 383285000000, "net_income": 96995000000},
            ],
            "/equity/fundamental/balance": [
                {"period_ending": "2023-09-30", "total_assets": 352583000000,
                 "total_liabilities": 290437000000, "total_shareholders_equity": 62146000000},
            ],
            "/equity/fundamental/cash": [
                {"period_ending": "2023-09-30", "net_cash_from_operating_activities": 110543000000},
            ],
        }

        async def get_json(endpoint, params=None, headers=None):
            return {"results": responses[endpoint], "provider": "fmp"}

        client.get_json.side_effect = get_json
        adapter = OpenBBAdapter(client=client, clock=mock_clock)

        fundamentals = await adapter.get_fundamentals(FundamentalsParams("AAPL"))

        assert fundamentals.profile.name == "Apple Inc."
        assert fundamentals.profile.sector == "Technology"
        assert fundamentals.income_statement.revenue == Decimal("383285000000")
        assert fundamentals.income_statement.date == date(2023, 9, 30)
        assert fundamentals.balance_sheet.total_liabilities == Decimal("290437000000")
        assert fundamentals.cash_flow.operating_cash_flow == Decimal("110543000000")

    @pytest.mark.asyncio
    async def test_envelope_validation_failure_is_unknown(self, client, mock_clock):
        client.get_json.return_value = ["not", "an", "envelope"]
        adapter = OpenBBAdapter(client=client, clock=mock_clock)

        with pytest.raises(AdapterError) as exc_info:
            await adapter.get_quote(QuoteParams("AAPL"))

        assert exc_info.value.code == ErrorCode.UNKNOWN

    @pytest.mark.asyncio
    async def test_server_down_is_unavailable(self, client, mock_clock):
        client.get_json.side_effect = AdapterUnavailableError("Connection error", "openbb")
        adapter = OpenBBAdapter(client=client, clock=mock_clock)

        with pytest.raises(AdapterUnavailableError):
            await adapter.get_quote(QuoteParams("AAPL"))
