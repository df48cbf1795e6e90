"""
OpenBB Adapter - OpenBB Platform REST API.

Optional adapter: needs a running OpenBB Platform server
(`openbb-api`, default http://127.0.0.1:6900) and, when the server
is protected, a bearer token.

Every response is wrapped as {"results": ..., "provider": ..., "warnings": ...}.
"""

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from pydantic import ValidationError

from data_adapters.base import DataAdapter, validate_request
from data_adapters.cache import MemoryCache
from data_adapters.clock import ClockProtocol, get_clock
from data_adapters.config import AdapterSettings
from data_adapters.exceptions import AdapterError, ErrorCode, InvalidRequestError
from data_adapters.http import HttpClient, probe_endpoint
from data_adapters.models import (
    AdapterCapabilities,
    AdapterType,
    BalanceSheet,
    CashFlowStatement,
    CompanyProfile,
    Fundamentals,
    FundamentalsParams,
    HealthCheck,
    HistoricalPrice,
    HistoricalPriceParams,
    IncomeStatement,
    Quote,
    QuoteParams,
    StatementPeriod,
)
from data_adapters.providers.schemas import (
    OpenBBBar,
    OpenBBProfile,
    OpenBBQuote,
    OpenBBResponse,
    OpenBBStatement,
    to_decimal,
)
from data_adapters.rate_limiter import TokenBucketLimiter


logger = logging.getLogger(__name__)


class OpenBBAdapter(DataAdapter):
    """
    OpenBB Platform data adapter.

    Endpoints used:
    - /equity/price/quote
    - /equity/price/historical
    - /equity/profile
    - /equity/fundamental/{income,balance,cash}
    - /providers - Health check
    """

    name = "openbb"
    adapter_type = AdapterType.OPTIONAL
    requires_setup = True

    BASE_URL = "http://127.0.0.1:6900"
    DEFAULT_TOKENS_PER_SECOND = 10.0
    DEFAULT_CACHE_TTL = 300.0

    def __init__(
        self,
        settings: Optional[AdapterSettings] = None,
        client: Optional[HttpClient] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        settings = settings or AdapterSettings()
        self._clock = clock or get_clock()

        headers = {"Accept": "application/json"}
        if settings.api_key:
            headers["Authorization"] = f"Bearer {settings.api_key}"

        self._client = client or HttpClient(
            self.name,
            base_url=settings.base_url or self.BASE_URL,
            timeout=settings.timeout or HttpClient.DEFAULT_TIMEOUT,
            headers=headers,
        )
        self._rate_limiter = TokenBucketLimiter(
            settings.tokens_per_second or self.DEFAULT_TOKENS_PER_SECOND,
            clock=self._clock,
        )
        self._cache: MemoryCache = MemoryCache(
            default_ttl=settings.cache_ttl or self.DEFAULT_CACHE_TTL,
            clock=self._clock,
        )

    async def health_check(self) -> HealthCheck:
        return await probe_endpoint(self.name, self._client, "/providers", clock=self._clock)

    def get_capabilities(self) -> AdapterCapabilities:
        return AdapterCapabilities(quotes=True, historical=True, fundamentals=True)

    async def get_quote(self, params: QuoteParams) -> Quote:
        validate_request(params, self.name)
        symbol = params.symbol.strip().upper()

        cache_key = f"quote:{symbol}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug(f"[{self.name}] Cache hit: {cache_key}")
            return cached

        results = await self._fetch("/equity/price/quote", {"symbol": symbol}, f"quote for {symbol}")
        rows = _as_list(results)
        if not rows:
            raise InvalidRequestError(f"No quote data found for symbol {symbol}", self.name)

        try:
            data = OpenBBQuote.model_validate(rows[0])
        except ValidationError as e:
            raise AdapterError(
                f"Unexpected quote payload for {symbol}", self.name, ErrorCode.UNKNOWN, cause=e
            ) from e

        quote = Quote(
            symbol=data.symbol,
            price=to_decimal(data.last_price),
            volume=int(data.volume or 0),
            timestamp=self._clock.now(),
            source_name=self.name,
            change=to_decimal(data.change),
            change_percent=to_decimal(data.change_percent),
            previous_close=to_decimal(data.prev_close),
            open=to_decimal(data.open),
            high=to_decimal(data.high),
            low=to_decimal(data.low),
            bid=to_decimal(data.bid),
            ask=to_decimal(data.ask),
            market_cap=to_decimal(data.market_cap),
        )

        self._cache.set(cache_key, quote)
        return quote

    async def get_historical_prices(self, params: HistoricalPriceParams) -> list[HistoricalPrice]:
        validate_request(params, self.name)
        symbol = params.symbol.strip().upper()

        cache_key = f"historical:{symbol}:{params.date_range}:{params.interval}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug(f"[{self.name}] Cache hit: {cache_key}")
            return list(cached)

        results = await self._fetch(
            "/equity/price/historical",
            {
                "symbol": symbol,
                "start_date": params.start.isoformat(),
                "end_date": params.end.isoformat(),
                "interval": params.interval,
            },
            f"historical prices for {symbol}",
        )

        try:
            bars = [OpenBBBar.model_validate(row) for row in _as_list(results)]
            prices = [
                HistoricalPrice(
                    symbol=symbol,
                    timestamp=_parse_timestamp(bar.date),
                    open=to_decimal(bar.open),
                    high=to_decimal(bar.high),
                    low=to_decimal(bar.low),
                    close=to_decimal(bar.close),
                    volume=int(bar.volume or 0),
                    source_name=self.name,
                    adjusted_close=to_decimal(bar.adj_close),
                )
                for bar in bars
            ]
        except (ValidationError, ValueError) as e:
            raise AdapterError(
                f"Unexpected historical payload for {symbol}", self.name, ErrorCode.UNKNOWN, cause=e
            ) from e

        prices.sort(key=lambda p: p.timestamp)

        self._cache.set(cache_key, prices)
        return list(prices)

    async def get_fundamentals(self, params: FundamentalsParams) -> Fundamentals:
        validate_request(params, self.name)
        symbol = params.symbol.strip().upper()

        cache_key = f"fundamentals:{symbol}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug(f"[{self.name}] Cache hit: {cache_key}")
            return cached

        statement_params = {"symbol": symbol, "period": "annual", "limit": 1}
        profile, income, balance, cash = await asyncio.gather(
            self._fetch("/equity/profile", {"symbol": symbol}, f"profile for {symbol}"),
            self._fetch("/equity/fundamental/income", statement_params, f"income statement for {symbol}"),
            self._fetch("/equity/fundamental/balance", statement_params, f"balance sheet for {symbol}"),
            self._fetch("/equity/fundamental/cash", statement_params, f"cash flow for {symbol}"),
        )

        try:
            profile_rows = _as_list(profile)
            company = OpenBBProfile.model_validate(profile_rows[0]) if profile_rows else None
            income_row = _latest_statement(income)
            balance_row = _latest_statement(balance)
            cash_row = _latest_statement(cash)
        except ValidationError as e:
            raise AdapterError(
                f"Unexpected fundamentals payload for {symbol}", self.name, ErrorCode.UNKNOWN, cause=e
            ) from e

        fundamentals = Fundamentals(
            symbol=symbol,
            source_name=self.name,
            profile=CompanyProfile(
                name=company.name,
                industry=company.industry,
                sector=company.sector,
                employees=company.employees,
                description=company.description,
                website=company.website,
                cik=company.cik,
            ) if company else None,
            income_statement=_income_statement(income_row),
            balance_sheet=_balance_sheet(balance_row),
            cash_flow=_cash_flow(cash_row),
        )

        self._cache.set(cache_key, fundamentals)
        return fundamentals

    async def close(self) -> None:
        await self._client.close()

    async def _fetch(self, endpoint: str, params: dict[str, Any], what: str) -> Any:
        """GET an endpoint and unwrap the OpenBB envelope."""
        try:
            await self._rate_limiter.acquire()
            data = await self._client.get_json(endpoint, params=params)
            envelope = OpenBBResponse.model_validate(data)
        except AdapterError:
            raise
        except ValidationError as e:
            raise AdapterError(
                f"Response validation failed for {endpoint}", self.name, ErrorCode.UNKNOWN, cause=e
            ) from e
        except Exception as e:
            raise AdapterError.from_exception(e, self.name, f"Failed to fetch {what}") from e

        if envelope.warnings:
            logger.warning(f"[{self.name}] {endpoint} warnings: {envelope.warnings}")
        return envelope.results


def _as_list(results: Any) -> list:
    if results is None:
        return []
    return results if isinstance(results, list) else [results]


def _latest_statement(results: Any) -> Optional[OpenBBStatement]:
    rows = [OpenBBStatement.model_validate(row) for row in _as_list(results)]
    return max(rows, key=lambda r: r.period_ending, default=None)


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _income_statement(row: Optional[OpenBBStatement]) -> Optional[IncomeStatement]:
    if row is None:
        return None
    revenue = row.item("revenue", "total_revenue")
    net_income = row.item("net_income", "consolidated_net_income")
    if revenue is None and net_income is None:
        return None
    return IncomeStatement(
        date=row.period_ending,
        period=StatementPeriod.ANNUAL,
        revenue=revenue or Decimal("0"),
        net_income=net_income or Decimal("0"),
        gross_profit=row.item("gross_profit"),
        operating_income=row.item("operating_income", "total_operating_income"),
        eps=row.item("diluted_earnings_per_share", "basic_earnings_per_share"),
    )


def _balance_sheet(row: Optional[OpenBBStatement]) -> Optional[BalanceSheet]:
    if row is None:
        return None
    assets = row.item("total_assets")
    if assets is None:
        return None
    return BalanceSheet(
        date=row.period_ending,
        period=StatementPeriod.ANNUAL,
        total_assets=assets,
        total_liabilities=row.item("total_liabilities") or Decimal("0"),
        shareholders_equity=row.item("total_shareholders_equity", "total_equity") or Decimal("0"),
        cash=row.item("cash_and_cash_equivalents", "cash_and_short_term_investments"),
        total_debt=row.item("total_debt"),
    )


def _cash_flow(row: Optional[OpenBBStatement]) -> Optional[CashFlowStatement]:
    if row is None:
        return None
    operating = row.item("net_cash_from_operating_activities", "operating_cash_flow")
    if operating is None:
        return None
    return CashFlowStatement(
        date=row.period_ending,
        period=StatementPeriod.ANNUAL,
        operating_cash_flow=operating,
        investing_cash_flow=row.item("net_cash_from_investing_activities", "investing_cash_flow"),
        financing_cash_flow=row.item("net_cash_from_financing_activities", "financing_cash_flow"),
        free_cash_flow=row.item("free_cash_flow"),
    )
