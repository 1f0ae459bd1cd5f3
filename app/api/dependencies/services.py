"""Dependency helpers exposing the service container to routes."""

from __future__ import annotations

from fastapi import Depends, Request

from app.services.container import ServiceContainer
from app.services.live_prices import LivePriceService
from app.services.price_points import PricePointCache
from app.services.trades import TradeReconstructionService


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_price_points(container: ServiceContainer = Depends(get_container)) -> PricePointCache:
    return container.price_points


def get_live_prices(container: ServiceContainer = Depends(get_container)) -> LivePriceService:
    return container.live_prices


def get_trade_service(container: ServiceContainer = Depends(get_container)) -> TradeReconstructionService:
    return container.trades
