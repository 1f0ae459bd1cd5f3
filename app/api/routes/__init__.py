"""Route registration helpers."""

from __future__ import annotations

from fastapi import APIRouter

from .prices import router as prices_router
from .trades import router as trades_router

api_router = APIRouter()
api_router.include_router(prices_router, prefix="/prices", tags=["prices"])
api_router.include_router(trades_router, prefix="/trades", tags=["trades"])

__all__ = ["api_router"]
