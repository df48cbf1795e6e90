"""
Adapter Registry - Central registry for data adapters with fallback logic.

Provides:
- Adapter registration and fallback chain management
- Health-aware adapter selection with cached probes
- Periodic health monitoring
- Fetch helpers that walk the chain on retryable failures
- No caller dependency on specific providers
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional, TypeVar

from data_adapters.base import DataAdapter
from data_adapters.clock import ClockProtocol, get_clock
from data_adapters.config import RegistryConfig
from data_adapters.exceptions import (
    AdapterError,
    AdapterUnavailableError,
    DuplicateAdapterError,
    ErrorCode,
    FallbackChainError,
    RegistryDisposedError,
    UnknownAdapterError,
)
from data_adapters.models import (
    AdapterDescriptor,
    AdapterType,
    Capability,
    Fundamentals,
    FundamentalsParams,
    HealthCheck,
    HealthStatus,
    HistoricalPrice,
    HistoricalPriceParams,
    Quote,
    QuoteParams,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors after which the next adapter in the chain is tried
FALLBACK_CODES = frozenset({
    ErrorCode.UNSUPPORTED_OPERATION,
    ErrorCode.RATE_LIMITED,
    ErrorCode.UNAVAILABLE,
    ErrorCode.UNKNOWN,
})


class AdapterRegistry:
    """
    Central registry for financial data adapters.

    Features:
    - Built-in adapters join the end of the fallback chain,
      optional (premium) adapters the front
    - get_adapter() returns the first healthy or degraded adapter,
      trying an explicit preference first
    - Health records are trusted for health_check_interval seconds
    - Optional periodic probing in a background task

    Usage:
        registry = AdapterRegistry()
        registry.register(YahooFinanceAdapter())
        registry.register(StooqAdapter())

        adapter = await registry.get_adapter()
        quote = await adapter.get_quote(QuoteParams("AAPL"))

        registry.dispose()
    """

    def __init__(
        self,
        health_check_interval: float = 60.0,
        auto_health_check: bool = True,
        health_check_timeout: float = 5.0,
        degraded_as_last_resort: bool = False,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        if health_check_interval <= 0:
            raise ValueError("health_check_interval must be positive")
        if health_check_timeout <= 0:
            raise ValueError("health_check_timeout must be positive")

        self._adapters: dict[str, DataAdapter] = {}
        self._fallback_chain: list[str] = []
        self._health: dict[str, HealthCheck] = {}
        self._health_check_interval = health_check_interval
        self._health_check_timeout = health_check_timeout
        self._auto_health_check = auto_health_check
        self._degraded_as_last_resort = degraded_as_last_resort
        self._clock = clock or get_clock()
        self._health_check_task: Optional[asyncio.Task] = None
        self._health_checks_started = False
        self._disposed = False

        # Event callbacks
        self._on_fallback_callbacks: list[Callable[[str, str], None]] = []
        self._on_recovery_callbacks: list[Callable[[str], None]] = []

        if auto_health_check:
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                logger.debug("No running event loop; health checks start on first use")
            else:
                self.start_health_checks()

    @classmethod
    def from_config(
        cls,
        config: RegistryConfig,
        clock: Optional[ClockProtocol] = None,
    ) -> "AdapterRegistry":
        """Create a registry from a RegistryConfig."""
        return cls(
            health_check_interval=config.health_check_interval,
            auto_health_check=config.auto_health_check,
            health_check_timeout=config.health_check_timeout,
            degraded_as_last_resort=config.degraded_as_last_resort,
            clock=clock,
        )

    @property
    def health_check_interval(self) -> float:
        return self._health_check_interval

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def is_monitoring(self) -> bool:
        return self._health_check_task is not None and not self._health_check_task.done()

    # --------------------------------------------------------
    # REGISTRATION
    # --------------------------------------------------------

    def register(self, adapter: DataAdapter) -> None:
        """
        Register an adapter.

        Raises:
            DuplicateAdapterError: If the name is already registered
            RegistryDisposedError: If the registry was disposed
        """
        self._ensure_not_disposed()
        descriptor = AdapterDescriptor.of(adapter)
        name = descriptor.name

        if name in self._adapters:
            raise DuplicateAdapterError(name)

        self._adapters[name] = adapter

        if name not in self._fallback_chain:
            if descriptor.adapter_type == AdapterType.BUILT_IN:
                self._fallback_chain.append(name)
            else:
                self._fallback_chain.insert(0, name)

        logger.info(
            f"Registered adapter '{name}' ({descriptor.adapter_type.value}), "
            f"chain={self._fallback_chain}"
        )

    def unregister(self, name: str) -> bool:
        """Unregister an adapter. Returns False if it was not registered."""
        if name not in self._adapters:
            return False

        del self._adapters[name]
        self._health.pop(name, None)
        self._fallback_chain = [n for n in self._fallback_chain if n != name]
        logger.info(f"Unregistered adapter '{name}'")
        return True

    def set_fallback_chain(self, names: list[str]) -> None:
        """
        Replace the fallback chain wholesale.

        Raises:
            UnknownAdapterError: If any name is not registered
            FallbackChainError: If a name appears twice
        """
        for name in names:
            if name not in self._adapters:
                raise UnknownAdapterError(name)
        if len(set(names)) != len(names):
            raise FallbackChainError(f"Duplicate adapter names in fallback chain: {names}")

        self._fallback_chain = list(names)
        logger.info(f"Fallback chain set to {self._fallback_chain}")

    def get_fallback_chain(self) -> list[str]:
        return list(self._fallback_chain)

    def get_adapter_by_name(self, name: str) -> Optional[DataAdapter]:
        """Get an adapter by name regardless of its health."""
        return self._adapters.get(name)

    def get_all_adapters(self) -> list[DataAdapter]:
        return list(self._adapters.values())

    def get_adapters_with_capability(self, capability: "Capability | str") -> list[DataAdapter]:
        """All registered adapters declaring a capability, healthy or not."""
        capability = Capability(capability)
        return [
            adapter for adapter in self._adapters.values()
            if adapter.get_capabilities().supports(capability)
        ]

    # --------------------------------------------------------
    # SELECTION
    # --------------------------------------------------------

    async def get_adapter(self, preferred_name: Optional[str] = None) -> DataAdapter:
        """
        Get a healthy (or degraded) adapter.

        An explicit preference wins over chain order but never over
        health.

        Raises:
            AdapterUnavailableError: If no adapter qualifies
            RegistryDisposedError: If the registry is disposed during selection
        """
        self._ensure_not_disposed()
        self._ensure_health_checks()

        candidates = self._candidates(preferred_name)
        for statuses in self._selection_tiers():
            for name in candidates:
                if not await self._is_selectable(name, statuses):
                    continue
                adapter = self._adapters.get(name)
                if adapter is None:
                    continue
                if preferred_name and name != preferred_name:
                    self._on_fallback(preferred_name, name)
                return adapter

        raise AdapterUnavailableError(
            "No healthy data adapters available",
            "registry",
            attempted_adapters=candidates,
        )

    def _candidates(self, preferred_name: Optional[str]) -> list[str]:
        candidates = []
        if preferred_name is not None and preferred_name in self._adapters:
            candidates.append(preferred_name)
        elif preferred_name is not None:
            logger.warning(f"Preferred adapter '{preferred_name}' is not registered")
        candidates.extend(n for n in self._fallback_chain if n != preferred_name)
        return candidates

    def _selection_tiers(self) -> list[frozenset]:
        if self._degraded_as_last_resort:
            return [frozenset({HealthStatus.HEALTHY}), frozenset({HealthStatus.DEGRADED})]
        return [frozenset({HealthStatus.HEALTHY, HealthStatus.DEGRADED})]

    async def _is_selectable(self, name: str, statuses: frozenset) -> bool:
        """Check health, re-probing when the cached record is stale."""
        adapter = self._adapters.get(name)
        if adapter is None:
            return False

        record = self._health.get(name)
        if record is None or not self._is_fresh(record):
            record = await self.check_health(name)
            self._ensure_not_disposed()
            # Unregistered or replaced during the health check
            if self._adapters.get(name) is not adapter:
                return False

        return record is not None and record.status in statuses

    def _is_fresh(self, record: HealthCheck) -> bool:
        age = self._clock.now() - record.last_checked
        return age < timedelta(seconds=self._health_check_interval)

    # --------------------------------------------------------
    # HEALTH CHECKS
    # --------------------------------------------------------

    async def check_health(self, name: str) -> Optional[HealthCheck]:
        """
        Probe one adapter and store the result.

        Returns:
            The new HealthCheck, or None if the adapter is not registered.
            Probe exceptions and timeouts become UNAVAILABLE records.
        """
        adapter = self._adapters.get(name)
        if adapter is None:
            return None

        started = self._clock.monotonic()
        try:
            health = await asyncio.wait_for(adapter.health_check(), self._health_check_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[{name}] Health check timed out after {self._health_check_timeout}s")
            health = HealthCheck.unavailable(
                name,
                f"Health check timed out after {self._health_check_timeout}s",
                checked_at=self._clock.now(),
                latency_ms=(self._clock.monotonic() - started) * 1000,
            )
        except Exception as e:
            logger.warning(f"[{name}] Health check failed: {e}")
            health = HealthCheck.unavailable(
                name,
                str(e) or e.__class__.__name__,
                checked_at=self._clock.now(),
            )

        # The adapter may have been unregistered while the probe ran
        if self._adapters.get(name) is not adapter:
            return health

        previous = self._health.get(name)
        self._health[name] = health

        if (
            health.status == HealthStatus.HEALTHY
            and previous is not None
            and previous.status in (HealthStatus.DEGRADED, HealthStatus.UNAVAILABLE)
        ):
            self._on_recovery(name)
        elif health.status != HealthStatus.HEALTHY and (previous is None or previous.status != health.status):
            logger.warning(f"[{name}] Health is {health.status.value}: {health.error}")

        return health

    async def check_all_health(self) -> dict[str, HealthCheck]:
        """Probe every registered adapter concurrently."""
        names = list(self._adapters)
        results = await asyncio.gather(*(self.check_health(name) for name in names))
        return {name: health for name, health in zip(names, results) if health is not None}

    def get_health_status(self) -> dict[str, HealthCheck]:
        """Latest health record per adapter (copy)."""
        return dict(self._health)

    def start_health_checks(self) -> None:
        """
        Start periodic health monitoring.

        Must be called with a running event loop.
        """
        self._ensure_not_disposed()
        if self.is_monitoring:
            return

        self._health_check_task = asyncio.get_running_loop().create_task(self._health_monitor_loop())
        self._health_checks_started = True
        logger.info(f"Started health monitoring (interval={self._health_check_interval}s)")

    def stop_health_checks(self) -> None:
        """Stop periodic health monitoring. No sweep runs afterwards."""
        task = self._health_check_task
        self._health_check_task = None
        if task is not None and not task.done():
            task.cancel()
            logger.info("Stopped health monitoring")

    def _ensure_health_checks(self) -> None:
        if self._auto_health_check and not self._health_checks_started:
            self.start_health_checks()

    async def _health_monitor_loop(self) -> None:
        """Sweep immediately, then every interval."""
        while True:
            try:
                await self.check_all_health()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Health monitor error: {e}")
            await asyncio.sleep(self._health_check_interval)

    # --------------------------------------------------------
    # FETCH WITH FALLBACK
    # --------------------------------------------------------

    async def get_quote(
        self,
        params: QuoteParams,
        preferred_name: Optional[str] = None,
    ) -> Quote:
        """Fetch a quote from the first adapter that can provide one."""
        return await self._fetch(
            Capability.QUOTES,
            lambda adapter: adapter.get_quote(params),
            preferred_name,
            params.symbol,
        )

    async def get_historical_prices(
        self,
        params: HistoricalPriceParams,
        preferred_name: Optional[str] = None,
    ) -> list[HistoricalPrice]:
        """Fetch historical prices from the first adapter that can provide them."""
        return await self._fetch(
            Capability.HISTORICAL,
            lambda adapter: adapter.get_historical_prices(params),
            preferred_name,
            params.symbol,
        )

    async def get_fundamentals(
        self,
        params: FundamentalsParams,
        preferred_name: Optional[str] = None,
    ) -> Fundamentals:
        """Fetch fundamentals from the first adapter that can provide them."""
        return await self._fetch(
            Capability.FUNDAMENTALS,
            lambda adapter: adapter.get_fundamentals(params),
            preferred_name,
            params.symbol,
        )

    async def _fetch(
        self,
        capability: Capability,
        operation: Callable[[DataAdapter], Awaitable[T]],
        preferred_name: Optional[str],
        symbol: str,
    ) -> T:
        """
        Walk preferred adapter + chain until one answers.

        INVALID_REQUEST stops the walk; every other adapter error
        moves on to the next candidate.
        """
        self._ensure_not_disposed()
        self._ensure_health_checks()

        attempted: list[str] = []
        last_error: Optional[AdapterError] = None

        for statuses in self._selection_tiers():
            for name in self._candidates(preferred_name):
                if name in attempted:
                    continue
                adapter = self._adapters.get(name)
                if adapter is None or not adapter.get_capabilities().supports(capability):
                    continue
                if not await self._is_selectable(name, statuses):
                    continue

                attempted.append(name)
                try:
                    result = await operation(adapter)
                except AdapterError as e:
                    if e.code not in FALLBACK_CODES:
                        raise
                    logger.warning(f"[{name}] {capability.value} failed for {symbol}: {e}")
                    last_error = e
                    continue

                if len(attempted) > 1:
                    self._on_fallback(attempted[0], name)
                return result

        logger.error(f"All adapters failed for {capability.value} {symbol}: {attempted}")
        raise AdapterUnavailableError(
            f"No adapter could provide {capability.value} for {symbol}",
            "registry",
            attempted_adapters=attempted,
            cause=last_error,
        )

    # --------------------------------------------------------
    # CALLBACKS
    # --------------------------------------------------------

    def on_fallback(self, callback: Callable[[str, str], None]) -> None:
        """Register callback for adapter fallback (from_name, to_name)."""
        self._on_fallback_callbacks.append(callback)

    def on_recovery(self, callback: Callable[[str], None]) -> None:
        """Register callback for an adapter returning to HEALTHY."""
        self._on_recovery_callbacks.append(callback)

    def _on_fallback(self, from_name: str, to_name: str) -> None:
        logger.warning(f"Fallback: {from_name} -> {to_name}")
        for callback in self._on_fallback_callbacks:
            try:
                callback(from_name, to_name)
            except Exception as e:
                logger.error(f"Fallback callback error: {e}")

    def _on_recovery(self, name: str) -> None:
        logger.info(f"Adapter recovered: {name}")
        for callback in self._on_recovery_callbacks:
            try:
                callback(name)
            except Exception as e:
                logger.error(f"Recovery callback error: {e}")

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        """Get registry statistics."""
        statuses = {
            name: (self._health[name].status if name in self._health else HealthStatus.UNKNOWN)
            for name in self._adapters
        }
        return {
            "total_adapters": len(self._adapters),
            "fallback_chain": list(self._fallback_chain),
            "health_summary": {
                status.value: sum(1 for s in statuses.values() if s == status)
                for status in HealthStatus
            },
            "monitoring": self.is_monitoring,
            "adapters": {
                name: {
                    **AdapterDescriptor.of(adapter).to_dict(),
                    "status": statuses[name].value,
                    "capabilities": [c.value for c in adapter.get_capabilities().enabled()],
                }
                for name, adapter in self._adapters.items()
            },
        }

    def dispose(self) -> None:
        """Stop monitoring and clear all state. The registry is unusable afterwards."""
        self.stop_health_checks()
        self._adapters.clear()
        self._health.clear()
        self._fallback_chain = []
        self._disposed = True
        logger.info("Registry disposed")

    async def close(self) -> None:
        """Dispose, wait for the monitor task to finish and close adapters."""
        task = self._health_check_task
        adapters = list(self._adapters.values())
        self.dispose()

        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

        for adapter in adapters:
            close = getattr(adapter, "close", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as e:
                logger.error(f"Error closing adapter {adapter.name}: {e}")

    def _ensure_not_disposed(self) -> None:
        if self._disposed:
            raise RegistryDisposedError("Registry has been disposed")

    async def __aenter__(self) -> "AdapterRegistry":
        self._ensure_health_checks()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<AdapterRegistry(adapters={list(self._adapters)}, chain={self._fallback_chain})>"


# ============================================================
# DEFAULT REGISTRY
# ============================================================


def create_default_registry(
    config: Optional[RegistryConfig] = None,
    clock: Optional[ClockProtocol] = None,
) -> AdapterRegistry:
    """
    Build a registry with the standard providers.

    Built-in providers are registered unless disabled; OpenBB is
    registered only when configured and enabled. A configured
    fallback chain is applied last.
    """
    from data_adapters.config import get_config
    from data_adapters.providers import (
        OpenBBAdapter,
        SecEdgarAdapter,
        StooqAdapter,
        YahooFinanceAdapter,
    )

    config = config or get_config()
    registry = AdapterRegistry.from_config(config, clock=clock)

    built_in = {
        YahooFinanceAdapter.name: YahooFinanceAdapter,
        StooqAdapter.name: StooqAdapter,
        SecEdgarAdapter.name: SecEdgarAdapter,
    }
    for name, adapter_cls in built_in.items():
        settings = config.adapter(name)
        if settings.enabled:
            registry.register(adapter_cls(settings=settings, clock=clock))

    openbb_settings = config.adapters.get(OpenBBAdapter.name)
    if openbb_settings is not None and openbb_settings.enabled:
        registry.register(OpenBBAdapter(settings=openbb_settings, clock=clock))

    if config.fallback_chain:
        chain = [name for name in config.fallback_chain if registry.get_adapter_by_name(name)]
        registry.set_fallback_chain(chain)

    return registry
