"""Pydantic schemas for reconstructed trades."""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field


class TradeLegSchema(BaseModel):
    transaction_id: str
    timestamp: datetime
    venue_module: str | None = None
    # Raw smallest-unit amounts; strings keep integers above 2**53 intact
    balance_changes: dict[str, str] = Field(default_factory=dict)


class TradeSchema(BaseModel):
    id: str
    status: Literal["open", "closed"]
    exit_timestamp: datetime
    exit_price: float
    entry_timestamp: datetime | None = None
    entry_price: float | None = None
    fee_raw: str = "0"
    fee_usd: float | None = None
    realized_pnl_usd: float | None = None
    realized_pnl_pct: float | None = None
    buy_legs: list[TradeLegSchema] = Field(default_factory=list)
    sell_legs: list[TradeLegSchema] = Field(default_factory=list)


class TradeStatisticsSchema(BaseModel):
    total_trades: int
    open_trades: int
    wins: int
    win_rate_pct: float
    average_pnl_pct: float
    total_realized_pnl_usd: float
    total_fees_usd: float
    net_pnl_usd: float
    compounded_return_pct: float


class TradeReportSchema(BaseModel):
    address: str
    start: date
    end: date
    trades: list[TradeSchema]
    statistics: TradeStatisticsSchema
    stale: bool = False
    error: str | None = None


__all__ = [
    "TradeLegSchema",
    "TradeReportSchema",
    "TradeSchema",
    "TradeStatisticsSchema",
]
