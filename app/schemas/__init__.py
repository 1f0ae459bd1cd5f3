"""Pydantic schema exports."""

from .prices import LivePriceSchema, PriceHistoryResponse, PricePointSchema, SharePricePointSchema
from .trades import TradeLegSchema, TradeReportSchema, TradeSchema, TradeStatisticsSchema

__all__ = [
    "LivePriceSchema",
    "PriceHistoryResponse",
    "PricePointSchema",
    "SharePricePointSchema",
    "TradeLegSchema",
    "TradeReportSchema",
    "TradeSchema",
    "TradeStatisticsSchema",
]
