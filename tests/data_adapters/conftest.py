"""
Shared fixtures for data adapter tests.
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import pytest

from data_adapters.base import DataAdapter
from data_adapters.clock import MockClock
from data_adapters.exceptions import AdapterError
from data_adapters.models import (
    AdapterCapabilities,
    AdapterType,
    Fundamentals,
    HealthCheck,
    HealthStatus,
    HistoricalPrice,
    Quote,
)
from data_adapters.registry import AdapterRegistry


class StubAdapter(DataAdapter):
    """In-memory adapter with scriptable health and failures."""

    def __init__(
        self,
        name: str,
        adapter_type: AdapterType = AdapterType.BUILT_IN,
        status: HealthStatus = HealthStatus.HEALTHY,
        capabilities: Optional[AdapterCapabilities] = None,
        clock: Optional[MockClock] = None,
    ) -> None:
        self._name = name
        self._adapter_type = adapter_type
        self.status = status
        self.capabilities = capabilities or AdapterCapabilities(quotes=True, historical=True, fundamentals=True)
        self.clock = clock or MockClock()
        self.health_calls = 0
        self.quote_calls = 0
        self.health_error: Optional[Exception] = None
        self.health_delay: Optional[float] = None
        self.health_gate: Optional[asyncio.Event] = None
        self.fetch_error: Optional[AdapterError] = None
        self.closed = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def adapter_type(self) -> AdapterType:
        return self._adapter_type

    @property
    def requires_setup(self) -> bool:
        return self._adapter_type == AdapterType.OPTIONAL

    async def health_check(self) -> HealthCheck:
        self.health_calls += 1
        if self.health_gate is not None:
            await self.health_gate.wait()
        if self.health_delay is not None:
            await asyncio.sleep(self.health_delay)
        if self.health_error is not None:
            raise self.health_error
        return HealthCheck(
            adapter=self._name,
            status=self.status,
            latency_ms=12.0,
            success_rate=1.0 if self.status == HealthStatus.HEALTHY else 0.0,
            last_checked=self.clock.now(),
        )

    def get_capabilities(self) -> AdapterCapabilities:
        return self.capabilities

    async def get_quote(self, params):
        self.quote_calls += 1
        if self.fetch_error is not None:
            raise self.fetch_error
        return Quote(
            symbol=params.symbol,
            price=Decimal("100.5"),
            volume=1000,
            timestamp=self.clock.now(),
            source_name=self._name,
        )

    async def get_historical_prices(self, params):
        if self.fetch_error is not None:
            raise self.fetch_error
        return [
            HistoricalPrice(
                symbol=params.symbol,
                timestamp=datetime(2024, 1, 2, tzinfo=timezone.utc),
                open=Decimal("1"),
                high=Decimal("2"),
                low=Decimal("0.5"),
                close=Decimal("1.5"),
                volume=10,
                source_name=self._name,
            )
        ]

    async def get_fundamentals(self, params):
        if self.fetch_error is not None:
            raise self.fetch_error
        return Fundamentals(symbol=params.symbol, source_name=self._name)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def mock_clock():
    """Mock clock starting at a fixed instant."""
    return MockClock(datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def make_adapter(mock_clock):
    """Factory for stub adapters sharing the mock clock."""
    def _make(name: str, **kwargs) -> StubAdapter:
        kwargs.setdefault("clock", mock_clock)
        return StubAdapter(name, **kwargs)
    return _make


@pytest.fixture
def registry(mock_clock):
    """Registry without background probing."""
    registry = AdapterRegistry(
        health_check_interval=60.0,
        auto_health_check=False,
        clock=mock_clock,
    )
    yield registry
    if not registry.is_disposed:
        registry.dispose()
