"""
Pydantic schemas for vendor payloads.

Only the fields the adapters read are declared; everything else
the vendors send is ignored.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def to_decimal(value: Optional[Union[int, float, str]]) -> Optional[Decimal]:
    """Convert a JSON number to Decimal without float artifacts."""
    if value is None:
        return None
    return Decimal(str(value))


class VendorModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# =======================
# YAHOO FINANCE
# =======================

class YahooError(VendorModel):
    code: Optional[str] = None
    description: Optional[str] = None


class YahooQuoteResult(VendorModel):
    symbol: str
    price: float = Field(alias="regularMarketPrice")
    change: Optional[float] = Field(default=None, alias="regularMarketChange")
    change_percent: Optional[float] = Field(default=None, alias="regularMarketChangePercent")
    previous_close: Optional[float] = Field(default=None, alias="regularMarketPreviousClose")
    open: Optional[float] = Field(default=None, alias="regularMarketOpen")
    high: Optional[float] = Field(default=None, alias="regularMarketDayHigh")
    low: Optional[float] = Field(default=None, alias="regularMarketDayLow")
    volume: Optional[int] = Field(default=None, alias="regularMarketVolume")
    market_time: Optional[int] = Field(default=None, alias="regularMarketTime")
    bid: Optional[float] = None
    ask: Optional[float] = None
    market_cap: Optional[float] = Field(default=None, alias="marketCap")


class YahooQuoteBody(VendorModel):
    result: List[YahooQuoteResult] = []
    error: Optional[YahooError] = None


class YahooQuoteResponse(VendorModel):
    quote_response: YahooQuoteBody = Field(alias="quoteResponse")


class YahooBars(VendorModel):
    open: List[Optional[float]] = []
    high: List[Optional[float]] = []
    low: List[Optional[float]] = []
    close: List[Optional[float]] = []
    volume: List[Optional[int]] = []


class YahooAdjClose(VendorModel):
    adjclose: List[Optional[float]] = []


class YahooIndicators(VendorModel):
    quote: List[YahooBars] = []
    adjclose: List[YahooAdjClose] = []


class YahooChartResult(VendorModel):
    timestamp: List[int] = []
    indicators: YahooIndicators


class YahooChartBody(VendorModel):
    result: Optional[List[YahooChartResult]] = None
    error: Optional[YahooError] = None


class YahooChartResponse(VendorModel):
    chart: YahooChartBody


# =======================
# SEC EDGAR
# =======================

class UnitFact(VendorModel):
    end: date
    val: float
    form: Optional[str] = None
    fy: Optional[int] = None
    fp: Optional[str] = None
    filed: Optional[date] = None


class FactSet(VendorModel):
    label: Optional[str] = None
    description: Optional[str] = None
    units: Dict[str, List[UnitFact]] = {}


class CompanyFacts(VendorModel):
    cik: Union[int, str]
    entity_name: str = Field(alias="entityName")
    facts: Dict[str, Dict[str, FactSet]] = {}


class TickerEntry(VendorModel):
    cik_str: int
    ticker: str
    title: str


# =======================
# OPENBB PLATFORM
# =======================

class OpenBBResponse(VendorModel):
    results: Any
    provider: Optional[str] = None
    warnings: Optional[List[Any]] = None


class OpenBBBar(VendorModel):
    date: str
    open: float
    high: float
    low: float
    close: float
    volume: Optional[float] = None
    adj_close: Optional[float] = None


class OpenBBQuote(VendorModel):
    symbol: str
    last_price: float
    change: Optional[float] = None
    change_percent: Optional[float] = None
    volume: Optional[float] = None
    prev_close: Optional[float] = None
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    bid: Optional[float] = None
    ask: Optional[float] = None
    market_cap: Optional[float] = None


class OpenBBProfile(VendorModel):
    name: str
    cik: Optional[str] = None
    sector: Optional[str] = None
    industry: Optional[str] = Field(default=None, alias="industry_category")
    description: Optional[str] = Field(default=None, alias="long_description")
    website: Optional[str] = Field(default=None, alias="company_url")
    employees: Optional[int] = None


class OpenBBStatement(BaseModel):
    """Financial statement row; line items vary by provider."""
    model_config = ConfigDict(extra="allow")

    period_ending: date
    fiscal_period: Optional[str] = None

    def item(self, *names: str) -> Optional[Decimal]:
        """First present line item among names."""
        extra = self.model_extra or {}
        for name in names:
            value = extra.get(name)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return to_decimal(value)
        return None
