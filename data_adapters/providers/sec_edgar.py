"""
SEC EDGAR Adapter - Company fundamentals from XBRL company facts.

Endpoints used:
- https://www.sec.gov/files/company_tickers.json - Ticker to CIK map
- https://data.sec.gov/api/xbrl/companyfacts/CIK{cik}.json - Facts

SEC asks for at most 10 requests per second and a descriptive
User-Agent. Facts change only when a company files, so they are
cached for 30 days.
"""

import asyncio
import logging
from datetime import date
from decimal import Decimal
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
    CompanyFacts,
    FactSet,
    TickerEntry,
    UnitFact,
    to_decimal,
)
from data_adapters.rate_limiter import TokenBucketLimiter


logger = logging.getLogger(__name__)

TICKERS_URL = "https://www.sec.gov/files/company_tickers.json"
ANNUAL_FORM = "10-K"

# Apple, always present
HEALTH_CHECK_CIK = "0000320193"

# us-gaap tags, first present wins
REVENUE_TAGS = ("Revenues", "RevenueFromContractWithCustomerExcludingAssessedTax")
NET_INCOME_TAGS = ("NetIncomeLoss",)
GROSS_PROFIT_TAGS = ("GrossProfit",)
OPERATING_INCOME_TAGS = ("OperatingIncomeLoss",)
EPS_TAGS = ("EarningsPerShareDiluted", "EarningsPerShareBasic")
ASSETS_TAGS = ("Assets",)
LIABILITIES_TAGS = ("Liabilities",)
EQUITY_TAGS = ("StockholdersEquity",)
CASH_TAGS = ("CashAndCashEquivalentsAtCarryingValue",)
OPERATING_CASH_TAGS = ("NetCashProvidedByUsedInOperatingActivities",)
INVESTING_CASH_TAGS = ("NetCashProvidedByUsedInInvestingActivities",)
FINANCING_CASH_TAGS = ("NetCashProvidedByUsedInFinancingActivities",)


class CikLookup:
    """
    Ticker to CIK (Central Index Key) lookup.

    The full SEC ticker map is downloaded once and kept for
    cache_ttl seconds; CIKs are zero-padded to 10 digits.
    """

    CACHE_TTL = 24 * 60 * 60.0
    MAPPING_KEY = "tickers"

    def __init__(
        self,
        client: HttpClient,
        rate_limiter: TokenBucketLimiter,
        clock: Optional[ClockProtocol] = None,
        cache_ttl: float = CACHE_TTL,
    ) -> None:
        self._client = client
        self._rate_limiter = rate_limiter
        self._cache: MemoryCache = MemoryCache(default_ttl=cache_ttl, clock=clock)
        self._load_lock = asyncio.Lock()

    @staticmethod
    def format_cik(cik: "int | str") -> str:
        return str(cik).strip().zfill(10)

    async def get_cik(self, ticker: str) -> Optional[str]:
        """Return the 10-digit CIK for a ticker, or None if SEC does not know it."""
        mapping = await self._get_mapping()
        return mapping.get(ticker.strip().upper())

    def clear_cache(self) -> None:
        self._cache.clear()

    async def _get_mapping(self) -> dict[str, str]:
        mapping = self._cache.get(self.MAPPING_KEY)
        if mapping is not None:
            return mapping

        # One download even when many lookups miss at once
        async with self._load_lock:
            mapping = self._cache.get(self.MAPPING_KEY)
            if mapping is None:
                mapping = await self._load_mapping()
                self._cache.set(self.MAPPING_KEY, mapping)
            return mapping

    async def _load_mapping(self) -> dict[str, str]:
        await self._rate_limiter.acquire()
        data = await self._client.get_json(TICKERS_URL)

        entries = data.values() if isinstance(data, dict) else data
        mapping = {}
        for raw in entries:
            entry = TickerEntry.model_validate(raw)
            mapping[entry.ticker.upper()] = self.format_cik(entry.cik_str)

        logger.info(f"Loaded {len(mapping)} SEC ticker mappings")
        return mapping


class SecEdgarAdapter(DataAdapter):
    """
    SEC EDGAR adapter for fundamental data.

    Uses the most recent 10-K value of each us-gaap fact.
    """

    name = "sec-edgar"
    adapter_type = AdapterType.BUILT_IN
    requires_setup = False

    BASE_URL = "https://data.sec.gov"
    DEFAULT_TOKENS_PER_SECOND = 10.0
    FACTS_CACHE_TTL = 30 * 24 * 60 * 60.0

    def __init__(
        self,
        settings: Optional[AdapterSettings] = None,
        client: Optional[HttpClient] = None,
        clock: Optional[ClockProtocol] = None,
        cik_lookup: Optional[CikLookup] = None,
    ) -> None:
        settings = settings or AdapterSettings()
        self._clock = clock or get_clock()
        self._client = client or HttpClient(
            self.name,
            base_url=settings.base_url or self.BASE_URL,
            timeout=settings.timeout or HttpClient.DEFAULT_TIMEOUT,
            headers={"Accept": "application/json"},
        )
        self._rate_limiter = TokenBucketLimiter(
            settings.tokens_per_second or self.DEFAULT_TOKENS_PER_SECOND,
            clock=self._clock,
        )
        self._cache: MemoryCache = MemoryCache(
            default_ttl=settings.cache_ttl or self.FACTS_CACHE_TTL,
            clock=self._clock,
        )
        self._cik_lookup = cik_lookup or CikLookup(self._client, self._rate_limiter, clock=self._clock)

    async def health_check(self) -> HealthCheck:
        return await probe_endpoint(
            self.name,
            self._client,
            f"/api/xbrl/companyfacts/CIK{HEALTH_CHECK_CIK}.json",
            clock=self._clock,
        )

    def get_capabilities(self) -> AdapterCapabilities:
        return AdapterCapabilities(fundamentals=True)

    async def get_quote(self, params: QuoteParams) -> Quote:
        raise UnsupportedOperationError("SEC EDGAR does not support real-time quotes", self.name)

    async def get_historical_prices(self, params: HistoricalPriceParams) -> list[HistoricalPrice]:
        raise UnsupportedOperationError("SEC EDGAR does not support historical prices", self.name)

    async def get_fundamentals(self, params: FundamentalsParams) -> Fundamentals:
        validate_request(params, self.name)
        symbol = params.symbol.strip().upper()

        cache_key = f"fundamentals:{symbol}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug(f"[{self.name}] Cache hit: {cache_key}")
            return cached

        try:
            cik = await self._cik_lookup.get_cik(symbol)
            if cik is None:
                raise InvalidRequestError(f"Ticker {symbol} not found in SEC database", self.name)

            await self._rate_limiter.acquire()
            data = await self._client.get_json(f"/api/xbrl/companyfacts/CIK{cik}.json")
            facts = CompanyFacts.model_validate(data)
        except AdapterError:
            raise
        except ValidationError as e:
            raise AdapterError(
                f"Unexpected SEC EDGAR payload for {symbol}", self.name, ErrorCode.UNKNOWN, cause=e
            ) from e
        except Exception as e:
            raise AdapterError.from_exception(
                e, self.name, f"Failed to fetch SEC EDGAR data for {symbol}"
            ) from e

        fundamentals = self.parse_company_facts(symbol, cik, facts)
        self._cache.set(cache_key, fundamentals)
        return fundamentals

    async def close(self) -> None:
        await self._client.close()

    def parse_company_facts(self, symbol: str, cik: str, facts: CompanyFacts) -> Fundamentals:
        us_gaap = facts.facts.get("us-gaap")
        if not us_gaap:
            raise InvalidRequestError("No US-GAAP data found in SEC filing", self.name)

        def latest(tags: tuple[str, ...]) -> Optional[UnitFact]:
            for tag in tags:
                fact = _most_recent_annual(us_gaap.get(tag))
                if fact is not None:
                    return fact
            return None

        def value(fact: Optional[UnitFact]) -> Optional[Decimal]:
            return to_decimal(fact.val) if fact is not None else None

        revenue = latest(REVENUE_TAGS)
        net_income = latest(NET_INCOME_TAGS)
        assets = latest(ASSETS_TAGS)
        liabilities = latest(LIABILITIES_TAGS)
        equity = latest(EQUITY_TAGS)
        operating_cash = latest(OPERATING_CASH_TAGS)

        found = [f for f in (revenue, net_income, assets, liabilities, equity, operating_cash) if f]
        fiscal_year_end = max((f.end for f in found), default=None)

        income_statement = None
        if revenue or net_income:
            income_statement = IncomeStatement(
                date=fiscal_year_end,
                period=StatementPeriod.ANNUAL,
                revenue=value(revenue) or Decimal("0"),
                net_income=value(net_income) or Decimal("0"),
                gross_profit=value(latest(GROSS_PROFIT_TAGS)),
                operating_income=value(latest(OPERATING_INCOME_TAGS)),
                eps=value(latest(EPS_TAGS)),
            )

        balance_sheet = None
        if assets or liabilities or equity:
            balance_sheet = BalanceSheet(
                date=fiscal_year_end,
                period=StatementPeriod.ANNUAL,
                total_assets=value(assets) or Decimal("0"),
                total_liabilities=value(liabilities) or Decimal("0"),
                shareholders_equity=value(equity) or Decimal("0"),
                cash=value(latest(CASH_TAGS)),
            )

        cash_flow = None
        if operating_cash:
            cash_flow = CashFlowStatement(
                date=fiscal_year_end,
                period=StatementPeriod.ANNUAL,
                operating_cash_flow=value(operating_cash),
                investing_cash_flow=value(latest(INVESTING_CASH_TAGS)),
                financing_cash_flow=value(latest(FINANCING_CASH_TAGS)),
            )

        return Fundamentals(
            symbol=symbol,
            source_name=self.name,
            profile=CompanyProfile(name=facts.entity_name, cik=cik),
            income_statement=income_statement,
            balance_sheet=balance_sheet,
            cash_flow=cash_flow,
        )


def _most_recent_annual(fact_set: Optional[FactSet]) -> Optional[UnitFact]:
    """Latest 10-K fact by period end, preferring USD units."""
    if fact_set is None:
        return None

    units = fact_set.units.get("USD") or fact_set.units.get("USD/shares") or []
    annual = [f for f in units if f.form == ANNUAL_FORM]
    if not annual:
        return None
    return max(annual, key=lambda f: (f.end, f.filed or date.min))
