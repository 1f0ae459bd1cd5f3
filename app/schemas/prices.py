"""Pydantic schemas for price history and live prices."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field


class PricePointSchema(BaseModel):
    date: date
    prices: dict[str, float] = Field(default_factory=dict, examples=[{"USDC": 1.0, "SUI": 3.41, "DEEP": 0.21}])
    funds_usd: float
    tokens_available: float
    timestamp: int | None = None


class PriceHistoryResponse(BaseModel):
    data: list[PricePointSchema]


class SharePricePointSchema(BaseModel):
    date: date
    funds_usd: float
    shares_outstanding: float
    share_price: float


class LivePriceSchema(BaseModel):
    symbol: str = Field(..., examples=["SUI"])
    price: float
    cached: bool = False
    stale: bool = False
    error: str | None = None


__all__ = [
    "LivePriceSchema",
    "PriceHistoryResponse",
    "PricePointSchema",
    "SharePricePointSchema",
]
