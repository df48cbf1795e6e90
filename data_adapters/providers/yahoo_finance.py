"""
Yahoo Finance Adapter - Public quote and chart API.

Provides quotes and historical prices. Data is delayed 15-20
minutes; no authentication required.
"""

import logging
from datetime import datetime, time, timedelta, timezone
from typing import Optional

from pydantic import ValidationError

from data_adapters.base import DataAdapter, validate_request
from data_adapters.cache import MemoryCache
from data_adapters.clock import ClockProtocol, get_clock
from data_adapters.config import AdapterSettings
from data_adapters.exceptions import (
    AdapterError,
    ErrorCode,
    InvalidRequestError,
    UnsupportedOperationError,
)
from data_adapters.http import HttpClient, probe_endpoint
from data_adapters.models import (
    AdapterCapabilities,
    AdapterType,
    Fundamentals,
    FundamentalsParams,
    HealthCheck,
    HistoricalPrice,
    HistoricalPriceParams,
    Quote,
    QuoteParams,
)
from data_adapters.providers.schemas import (
    YahooChartResponse,
    YahooQuoteResponse,
    to_decimal,
)
from data_adapters.rate_limiter import TokenBucketLimiter


logger = logging.getLogger(__name__)


class YahooFinanceAdapter(DataAdapter):
    """
    Yahoo Finance data adapter.

    Endpoints used:
    - /v7/finance/quote - Quotes (also the health probe)
    - /v8/finance/chart/{symbol} - Historical bars
    """

    name = "yahoo-finance"
    adapter_type = AdapterType.BUILT_IN
    requires_setup = False

    BASE_URL = "https://query1.finance.yahoo.com"
    DEFAULT_TOKENS_PER_SECOND = 5.0
    DEFAULT_CACHE_TTL = 60.0

    def __init__(
        self,
        settings: Optional[AdapterSettings] = None,
        client: Optional[HttpClient] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        settings = settings or AdapterSettings()
        self._clock = clock or get_clock()
        self._client = client or HttpClient(
            self.name,
            base_url=settings.base_url or self.BASE_URL,
            timeout=settings.timeout or HttpClient.DEFAULT_TIMEOUT,
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
        return await probe_endpoint(
            self.name,
            self._client,
            "/v7/finance/quote",
            params={"symbols": "AAPL"},
            clock=self._clock,
        )

    def get_capabilities(self) -> AdapterCapabilities:
        # Delayed data, so not realtime
        return AdapterCapabilities(quotes=True, historical=True)

    async def get_quote(self, params: QuoteParams) -> Quote:
        validate_request(params, self.name)
        symbol = params.symbol.strip().upper()

        cache_key = f"quote:{symbol}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug(f"[{self.name}] Cache hit: {cache_key}")
            return cached

        try:
            await self._rate_limiter.acquire()
            data = await self._client.get_json("/v7/finance/quote", params={"symbols": symbol})
            body = YahooQuoteResponse.model_validate(data).quote_response
        except AdapterError:
            raise
        except ValidationError as e:
            raise AdapterError(
                f"Unexpected quote payload for {symbol}", self.name, ErrorCode.UNKNOWN, cause=e
            ) from e
        except Exception as e:
            raise AdapterError.from_exception(e, self.name, f"Failed to fetch quote for {symbol}") from e

        if body.error is not None:
            raise InvalidRequestError(f"Yahoo Finance error: {body.error.description}", self.name)
        if not body.result:
            raise InvalidRequestError(f"No quote data found for symbol {symbol}", self.name)

        result = body.result[0]
        timestamp = (
            datetime.fromtimestamp(result.market_time, tz=timezone.utc)
            if result.market_time is not None
            else self._clock.now()
        )

        quote = Quote(
            symbol=result.symbol,
            price=to_decimal(result.price),
            volume=result.volume or 0,
            timestamp=timestamp,
            source_name=self.name,
            realtime=False,
            change=to_decimal(result.change),
            change_percent=to_decimal(result.change_percent),
            previous_close=to_decimal(result.previous_close),
            open=to_decimal(result.open),
            high=to_decimal(result.high),
            low=to_decimal(result.low),
            bid=to_decimal(result.bid),
            ask=to_decimal(result.ask),
            market_cap=to_decimal(result.market_cap),
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

        # period2 is exclusive, so extend to the end of the last day
        period1 = int(datetime.combine(params.start, time.min, tzinfo=timezone.utc).timestamp())
        period2 = int(datetime.combine(params.end + timedelta(days=1), time.min, tzinfo=timezone.utc).timestamp())

        try:
            await self._rate_limiter.acquire()
            data = await self._client.get_json(
                f"/v8/finance/chart/{symbol}",
                params={"period1": period1, "period2": period2, "interval": params.interval},
            )
            chart = YahooChartResponse.model_validate(data).chart
        except AdapterError:
            raise
        except ValidationError as e:
            raise AdapterError(
                f"Unexpected chart payload for {symbol}", self.name, ErrorCode.UNKNOWN, cause=e
            ) from e
        except Exception as e:
            raise AdapterError.from_exception(
                e, self.name, f"Failed to fetch historical prices for {symbol}"
            ) from e

        if chart.error is not None:
            raise InvalidRequestError(f"Yahoo Finance error: {chart.error.description}", self.name)
        if not chart.result or not chart.result[0].indicators.quote:
            return []

        result = chart.result[0]
        bars = result.indicators.quote[0]
        adjusted = result.indicators.adjclose[0].adjclose if result.indicators.adjclose else []

        prices = []
        for i, ts in enumerate(result.timestamp):
            values = [_at(series, i) for series in (bars.open, bars.high, bars.low, bars.close, bars.volume)]
            # Skip bars with gaps
            if any(v is None for v in values):
                continue
            open_, high, low, close, volume = values
            prices.append(HistoricalPrice(
                symbol=symbol,
                timestamp=datetime.fromtimestamp(ts, tz=timezone.utc),
                open=to_decimal(open_),
                high=to_decimal(high),
                low=to_decimal(low),
                close=to_decimal(close),
                volume=int(volume),
                source_name=self.name,
                adjusted_close=to_decimal(_at(adjusted, i)),
            ))

        self._cache.set(cache_key, prices)
        return list(prices)

    async def get_fundamentals(self, params: FundamentalsParams) -> Fundamentals:
        raise UnsupportedOperationError(
            "Yahoo Finance adapter does not support fundamentals (use SEC EDGAR adapter)",
            self.name,
        )

    async def close(self) -> None:
        await self._client.close()


def _at(series: list, index: int):
    return series[index] if index < len(series) else None
