"""
Data Adapter Models - Descriptors, health records and normalized financial data.

Provides strict typing for everything that crosses the adapter contract,
so no caller depends on provider-specific fields.
"""

from dataclasses import dataclass, field, fields
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


class AdapterType(Enum):
    """
    Adapter classification.

    BUILT_IN adapters are free and need no account; OPTIONAL adapters
    need external setup (API keys, a local server).
    """
    BUILT_IN = "built-in"
    OPTIONAL = "optional"


class HealthStatus(Enum):
    """Health status of an adapter."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"

    @property
    def is_selectable(self) -> bool:
        return self in (HealthStatus.HEALTHY, HealthStatus.DEGRADED)


class Capability(Enum):
    """Kinds of data an adapter may provide."""
    QUOTES = "quotes"
    HISTORICAL = "historical"
    FUNDAMENTALS = "fundamentals"
    OPTIONS = "options"
    ECONOMIC = "economic"
    FOREX = "forex"
    CRYPTO = "crypto"
    NEWS = "news"
    REALTIME = "realtime"


class StatementPeriod(Enum):
    """Financial statement period."""
    ANNUAL = "annual"
    QUARTERLY = "quarterly"


SUPPORTED_INTERVALS = ("1m", "2m", "5m", "15m", "30m", "60m", "90m", "1h", "1d", "5d", "1wk", "1mo", "3mo")


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _str_or_none(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


# =============================================================
# ADAPTER DESCRIPTION
# =============================================================


@dataclass(frozen=True)
class AdapterDescriptor:
    """Identity and classification of one adapter."""
    name: str
    adapter_type: AdapterType
    requires_setup: bool = False

    @classmethod
    def of(cls, adapter: Any) -> "AdapterDescriptor":
        """Describe any object implementing the adapter contract."""
        return cls(
            name=adapter.name,
            adapter_type=adapter.adapter_type,
            requires_setup=adapter.requires_setup,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.adapter_type.value,
            "requires_setup": self.requires_setup,
        }


@dataclass(frozen=True)
class AdapterCapabilities:
    """Capability flags declared by an adapter."""
    quotes: bool = False
    historical: bool = False
    fundamentals: bool = False
    options: bool = False
    economic: bool = False
    forex: bool = False
    crypto: bool = False
    news: bool = False
    realtime: bool = False

    def supports(self, capability: "Capability | str") -> bool:
        """Check a single flag by enum member or name."""
        key = Capability(capability).value
        return getattr(self, key) is True

    def enabled(self) -> list[Capability]:
        """List the declared capabilities."""
        return [c for c in Capability if self.supports(c)]

    def to_dict(self) -> dict[str, bool]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class HealthCheck:
    """Result of one health probe. One record per adapter, no history."""
    adapter: str
    status: HealthStatus
    latency_ms: float
    success_rate: float
    last_checked: datetime
    error: Optional[str] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.success_rate <= 1.0:
            raise ValueError(f"success_rate must be within [0, 1], got {self.success_rate}")
        self.last_checked = _utc(self.last_checked)

    @classmethod
    def unavailable(
        cls,
        adapter: str,
        error: str,
        checked_at: datetime,
        latency_ms: float = -1.0,
    ) -> "HealthCheck":
        """Build the record used when a probe fails or times out."""
        return cls(
            adapter=adapter,
            status=HealthStatus.UNAVAILABLE,
            latency_ms=latency_ms,
            success_rate=0.0,
            last_checked=checked_at,
            error=error,
        )

    def is_healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY

    def is_usable(self) -> bool:
        """Healthy or degraded adapters can still be selected."""
        return self.status.is_selectable

    def age_seconds(self, now: datetime) -> float:
        return (_utc(now) - self.last_checked).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "adapter": self.adapter,
            "status": self.status.value,
            "latency_ms": self.latency_ms,
            "success_rate": self.success_rate,
            "last_checked": self.last_checked.isoformat(),
            "error": self.error,
        }


# =============================================================
# REQUEST PARAMETERS
# =============================================================


@dataclass(frozen=True)
class QuoteParams:
    """Parameters for quote requests."""
    symbol: str

    def validate(self) -> None:
        if not self.symbol or not self.symbol.strip():
            raise ValueError("Symbol is required")


@dataclass(frozen=True)
class HistoricalPriceParams:
    """Parameters for historical price requests (inclusive date range)."""
    symbol: str
    start: date
    end: date
    interval: str = "1d"

    def validate(self) -> None:
        if not self.symbol or not self.symbol.strip():
            raise ValueError("Symbol is required")
        if self.start > self.end:
            raise ValueError("start must not be after end")
        if self.interval not in SUPPORTED_INTERVALS:
            raise ValueError(f"Unsupported interval '{self.interval}'")

    @property
    def date_range(self) -> str:
        return f"{self.start.isoformat()}:{self.end.isoformat()}"


@dataclass(frozen=True)
class FundamentalsParams:
    """Parameters for fundamentals requests."""
    symbol: str

    def validate(self) -> None:
        if not self.symbol or not self.symbol.strip():
            raise ValueError("Symbol is required")


# =============================================================
# NORMALIZED DATA
# =============================================================


@dataclass(frozen=True)
class Quote:
    """Real-time or delayed quote for a security."""
    symbol: str
    price: Decimal
    volume: int
    timestamp: datetime
    source_name: str
    realtime: bool = False
    change: Optional[Decimal] = None
    change_percent: Optional[Decimal] = None
    previous_close: Optional[Decimal] = None
    open: Optional[Decimal] = None
    high: Optional[Decimal] = None
    low: Optional[Decimal] = None
    bid: Optional[Decimal] = None
    ask: Optional[Decimal] = None
    market_cap: Optional[Decimal] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "price": str(self.price),
            "volume": self.volume,
            "timestamp": self.timestamp.isoformat(),
            "source_name": self.source_name,
            "realtime": self.realtime,
            "change": _str_or_none(self.change),
            "change_percent": _str_or_none(self.change_percent),
            "previous_close": _str_or_none(self.previous_close),
            "open": _str_or_none(self.open),
            "high": _str_or_none(self.high),
            "low": _str_or_none(self.low),
            "bid": _str_or_none(self.bid),
            "ask": _str_or_none(self.ask),
            "market_cap": _str_or_none(self.market_cap),
        }


@dataclass(frozen=True)
class HistoricalPrice:
    """One OHLCV bar."""
    symbol: str
    timestamp: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: int
    source_name: str
    adjusted_close: Optional[Decimal] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "timestamp": self.timestamp.isoformat(),
            "open": str(self.open),
            "high": str(self.high),
            "low": str(self.low),
            "close": str(self.close),
            "volume": self.volume,
            "source_name": self.source_name,
            "adjusted_close": _str_or_none(self.adjusted_close),
        }


@dataclass(frozen=True)
class CompanyProfile:
    """Company profile information."""
    name: str
    industry: Optional[str] = None
    sector: Optional[str] = None
    employees: Optional[int] = None
    description: Optional[str] = None
    website: Optional[str] = None
    cik: Optional[str] = None


@dataclass(frozen=True)
class IncomeStatement:
    """Income statement summary."""
    date: date
    period: StatementPeriod
    revenue: Decimal
    net_income: Decimal
    gross_profit: Optional[Decimal] = None
    operating_income: Optional[Decimal] = None
    eps: Optional[Decimal] = None


@dataclass(frozen=True)
class BalanceSheet:
    """Balance sheet summary."""
    date: date
    period: StatementPeriod
    total_assets: Decimal
    total_liabilities: Decimal
    shareholders_equity: Decimal
    cash: Optional[Decimal] = None
    total_debt: Optional[Decimal] = None


@dataclass(frozen=True)
class CashFlowStatement:
    """Cash flow statement summary."""
    date: date
    period: StatementPeriod
    operating_cash_flow: Decimal
    investing_cash_flow: Optional[Decimal] = None
    financing_cash_flow: Optional[Decimal] = None
    free_cash_flow: Optional[Decimal] = None


@dataclass(frozen=True)
class Fundamentals:
    """Latest fundamental data for a company."""
    symbol: str
    source_name: str
    profile: Optional[CompanyProfile] = None
    income_statement: Optional[IncomeStatement] = None
    balance_sheet: Optional[BalanceSheet] = None
    cash_flow: Optional[CashFlowStatement] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        def _section(obj: Any) -> Optional[dict[str, Any]]:
            if obj is None:
                return None
            data = {}
            for f in fields(obj):
                value = getattr(obj, f.name)
                if isinstance(value, Enum):
                    value = value.value
                elif isinstance(value, (date, datetime)):
                    value = value.isoformat()
                elif isinstance(value, Decimal):
                    value = str(value)
                data[f.name] = value
            return data

        return {
            "symbol": self.symbol,
            "source_name": self.source_name,
            "profile": _section(self.profile),
            "income_statement": _section(self.income_statement),
            "balance_sheet": _section(self.balance_sheet),
            "cash_flow": _section(self.cash_flow),
            "extra": self.extra,
        }
