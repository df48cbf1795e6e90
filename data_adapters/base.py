"""
Data Adapter Contract - Interface every financial data source implements.

Adapters share no behaviour, only this contract:
- Identity (name, type, setup requirement)
- A health probe that never raises
- Capability flags
- Three data operations that are always implemented, even when
  the adapter can only answer UNSUPPORTED_OPERATION
"""

from abc import ABC, abstractmethod
from typing import Union

from data_adapters.exceptions import InvalidRequestError
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


RequestParams = Union[QuoteParams, HistoricalPriceParams, FundamentalsParams]


class DataAdapter(ABC):
    """
    Abstract interface for financial data adapters.

    Each implementation must:
    1. Expose name / adapter_type / requires_setup
    2. Implement health_check() - bounded, never raises
    3. Implement get_capabilities() - pure and synchronous
    4. Implement get_quote(), get_historical_prices(), get_fundamentals()
       raising AdapterError subclasses on failure

    Usage:
        class MyAdapter(DataAdapter):
            name = "my-source"
            adapter_type = AdapterType.BUILT_IN
            requires_setup = False
            ...

        registry.register(MyAdapter())
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this adapter."""
        pass

    @property
    @abstractmethod
    def adapter_type(self) -> AdapterType:
        """BUILT_IN or OPTIONAL."""
        pass

    @property
    @abstractmethod
    def requires_setup(self) -> bool:
        """Whether API keys or a local server are needed."""
        pass

    @abstractmethod
    async def health_check(self) -> HealthCheck:
        """
        Probe provider liveness and latency.

        Returns:
            HealthCheck; failures are reported as UNAVAILABLE
            records with the error populated, never raised.
        """
        pass

    @abstractmethod
    def get_capabilities(self) -> AdapterCapabilities:
        """Return capability flags. Pure, no I/O."""
        pass

    @abstractmethod
    async def get_quote(self, params: QuoteParams) -> Quote:
        """
        Get a real-time or delayed quote.

        Raises:
            AdapterError: UNSUPPORTED_OPERATION, RATE_LIMITED,
                UNAVAILABLE, INVALID_REQUEST or UNKNOWN
        """
        pass

    @abstractmethod
    async def get_historical_prices(
        self,
        params: HistoricalPriceParams,
    ) -> list[HistoricalPrice]:
        """
        Get historical OHLCV bars, oldest first.

        Raises:
            AdapterError: see get_quote()
        """
        pass

    @abstractmethod
    async def get_fundamentals(self, params: FundamentalsParams) -> Fundamentals:
        """
        Get latest fundamental data.

        Raises:
            AdapterError: see get_quote()
        """
        pass


def validate_request(params: RequestParams, adapter_name: str) -> None:
    """Validate request parameters, reporting problems as INVALID_REQUEST."""
    try:
        params.validate()
    except ValueError as e:
        raise InvalidRequestError(str(e), adapter_name, cause=e) from e
