"""
Providers package - Financial data adapter implementations.
"""

from data_adapters.providers.openbb import OpenBBAdapter
from data_adapters.providers.sec_edgar import CikLookup, SecEdgarAdapter
from data_adapters.providers.stooq import StooqAdapter
from data_adapters.providers.yahoo_finance import YahooFinanceAdapter


__all__ = [
    "CikLookup",
    "OpenBBAdapter",
    "SecEdgarAdapter",
    "StooqAdapter",
    "YahooFinanceAdapter",
]
