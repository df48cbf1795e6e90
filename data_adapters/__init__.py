"""
Data Adapters Package - Resilient financial data adapter layer.

Provides interchangeable, health-checked financial data sources.

Features:
- One contract for every provider (quotes, history, fundamentals)
- Fallback chain with health-aware adapter selection
- Cached health probes with periodic monitoring
- Per-adapter token bucket rate limiting and TTL caching
- No caller dependency on specific providers

Quick Start:
    from datetime import date

    from data_adapters import (
        AdapterRegistry,
        HistoricalPriceParams,
        StooqAdapter,
        YahooFinanceAdapter,
    )

    async def setup():
        async with AdapterRegistry() as registry:
            registry.register(YahooFinanceAdapter())
            registry.register(StooqAdapter())

            # Fetch with automatic fallback
            params = HistoricalPriceParams("AAPL", date(2024, 1, 1), date(2024, 1, 31))
            prices = await registry.get_historical_prices(params)

            for bar in prices:
                print(f"{bar.timestamp}: O={bar.open} H={bar.high} L={bar.low} C={bar.close}")

Adding New Providers:
    1. Create class extending DataAdapter
    2. Implement: health_check(), get_capabilities(), get_quote(),
       get_historical_prices(), get_fundamentals()
    3. Register with AdapterRegistry
    4. No changes needed in callers
"""

from data_adapters.base import DataAdapter
from data_adapters.cache import MemoryCache
from data_adapters.clock import ClockProtocol, MockClock, SystemClock, get_clock, set_clock
from data_adapters.config import AdapterSettings, RegistryConfig, get_config, set_config
from data_adapters.exceptions import (
    AdapterError,
    AdapterUnavailableError,
    DuplicateAdapterError,
    ErrorCode,
    FallbackChainError,
    InvalidRequestError,
    RateLimitedError,
    RegistryDisposedError,
    RegistryError,
    UnknownAdapterError,
    UnsupportedOperationError,
)
from data_adapters.models import (
    AdapterCapabilities,
    AdapterType,
    BalanceSheet,
    Capability,
    CashFlowStatement,
    CompanyProfile,
    Fundamentals,
    FundamentalsParams,
    HealthCheck,
    HealthStatus,
    HistoricalPrice,
    HistoricalPriceParams,
    IncomeStatement,
    Quote,
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
from data_adapters.rate_limiter import TokenBucketLimiter
from data_adapters.registry import AdapterRegistry, create_default_registry


__version__ = "1.0.0"

__all__ = [
    # Contract
    "DataAdapter",

    # Models
    "AdapterCapabilities",
    "AdapterType",
    "BalanceSheet",
    "Capability",
    "CashFlowStatement",
    "CompanyProfile",
    "Fundamentals",
    "FundamentalsParams",
    "HealthCheck",
    "HealthStatus",
    "HistoricalPrice",
    "HistoricalPriceParams",
    "IncomeStatement",
    "Quote",
    "QuoteParams",
    "StatementPeriod",

    # Exceptions
    "AdapterError",
    "AdapterUnavailableError",
    "ErrorCode",
    "InvalidRequestError",
    "RateLimitedError",
    "UnsupportedOperationError",
    "RegistryError",
    "DuplicateAdapterError",
    "FallbackChainError",
    "UnknownAdapterError",
    "RegistryDisposedError",

    # Infrastructure
    "ClockProtocol",
    "MockClock",
    "SystemClock",
    "get_clock",
    "set_clock",
    "MemoryCache",
    "TokenBucketLimiter",

    # Configuration
    "AdapterSettings",
    "RegistryConfig",
    "get_config",
    "set_config",

    # Providers
    "CikLookup",
    "OpenBBAdapter",
    "SecEdgarAdapter",
    "StooqAdapter",
    "YahooFinanceAdapter",

    # Registry
    "AdapterRegistry",
    "create_default_registry",
]
