"""
Stooq Adapter - Free historical prices as CSV.

Used as the fallback for historical data when Yahoo Finance is
unavailable. Quotes and fundamentals are not offered.
"""

import csv
import io
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from data_adapters.base import DataAdapter, validate_request
from data_adapters.cache import MemoryCache
from data_adapters.clock import ClockProtocol, get_clock
from data_adapters.config import AdapterSettings
from data_adapters.exceptions import AdapterError, UnsupportedOperationError
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
from data_adapters.rate_limiter import TokenBucketLimiter


logger = logging.getLogger(__name__)


class StooqAdapter(DataAdapter):
    """
    Stooq CSV data adapter.

    Endpoint used:
    - /q/d/l/?s={symbol}&d1=YYYYMMDD&d2=YYYYMMDD&i={d|w|m}

    US tickers get the ".us" market suffix; symbols that already
    carry a suffix are passed through.
    """

    name = "stooq"
    adapter_type = AdapterType.BUILT_IN
    requires_setup = False

    BASE_URL = "https://stooq.com"
    CSV_ENDPOINT = "/q/d/l/"
    DEFAULT_TOKENS_PER_SECOND = 2.0
    DEFAULT_CACHE_TTL = 3600.0

    # Interval mapping: ours -> Stooq
    INTERVAL_MAP = {
        "1d": "d",
        "1wk": "w",
        "1mo": "m",
    }

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
            self.CSV_ENDPOINT,
            params={"s": "aapl.us", "i": "d"},
            clock=self._clock,
        )

    def get_capabilities(self) -> AdapterCapabilities:
        return AdapterCapabilities(historical=True)

    async def get_quote(self, params: QuoteParams) -> Quote:
        raise UnsupportedOperationError("Stooq adapter does not support real-time quotes", self.name)

    async def get_historical_prices(self, params: HistoricalPriceParams) -> list[HistoricalPrice]:
        validate_request(params, self.name)
        symbol = params.symbol.strip().upper()

        interval = self.INTERVAL_MAP.get(params.interval)
        if interval is None:
            raise UnsupportedOperationError(
                f"Stooq does not provide '{params.interval}' bars", self.name
            )

        cache_key = f"historical:{symbol}:{params.date_range}:{params.interval}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug(f"[{self.name}] Cache hit: {cache_key}")
            return list(cached)

        try:
            await self._rate_limiter.acquire()
            text = await self._client.get_text(
                self.CSV_ENDPOINT,
                params={
                    "s": self.to_stooq_symbol(symbol),
                    "d1": params.start.strftime("%Y%m%d"),
                    "d2": params.end.strftime("%Y%m%d"),
                    "i": interval,
                },
            )
        except AdapterError:
            raise
        except Exception as e:
            raise AdapterError.from_exception(
                e, self.name, f"Failed to fetch historical prices for {symbol}"
            ) from e

        prices = self.parse_csv(text, symbol)
        self._cache.set(cache_key, prices)
        return list(prices)

    async def get_fundamentals(self, params: FundamentalsParams) -> Fundamentals:
        raise UnsupportedOperationError("Stooq adapter does not support fundamentals", self.name)

    async def close(self) -> None:
        await self._client.close()

    @staticmethod
    def to_stooq_symbol(symbol: str) -> str:
        symbol = symbol.strip().lower()
        return symbol if "." in symbol else f"{symbol}.us"

    def parse_csv(self, text: str, symbol: str) -> list[HistoricalPrice]:
        """
        Parse a Stooq CSV body (Date,Open,High,Low,Close,Volume).

        Unknown symbols come back as a bare "No data" line, which
        yields an empty list. Incomplete rows are skipped.
        """
        reader = csv.DictReader(io.StringIO(text.strip()))
        if not reader.fieldnames or "Date" not in reader.fieldnames:
            logger.debug(f"[{self.name}] No CSV data for {symbol}")
            return []

        prices = []
        for row in reader:
            try:
                prices.append(HistoricalPrice(
                    symbol=symbol,
                    timestamp=datetime.strptime(row["Date"], "%Y-%m-%d").replace(tzinfo=timezone.utc),
                    open=Decimal(row["Open"]),
                    high=Decimal(row["High"]),
                    low=Decimal(row["Low"]),
                    close=Decimal(row["Close"]),
                    volume=int(Decimal(row["Volume"])),
                    source_name=self.name,
                ))
            except (KeyError, TypeError, ValueError, InvalidOperation):
                logger.debug(f"[{self.name}] Skipping invalid row: {row}")

        return prices
