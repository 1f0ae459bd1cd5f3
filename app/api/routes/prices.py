"""Price history and live price endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.dependencies.services import get_container, get_live_prices, get_price_points
from app.core.errors import PriceUnavailableError, UnknownSymbolError
from app.schemas import LivePriceSchema, PriceHistoryResponse, PricePointSchema, SharePricePointSchema
from app.services.container import ServiceContainer
from app.services.live_prices import LivePriceService
from app.services.price_points import PricePointCache
from app.services.valuation import share_price_frame

router = APIRouter()


@router.get("/history", response_model=PriceHistoryResponse)
async def get_price_history(cache: PricePointCache = Depends(get_price_points)) -> PriceHistoryResponse:
    """Return every cached daily price point, newest first."""

    points = [
        PricePointSchema(
            date=point.date,
            prices=point.prices,
            funds_usd=point.funds_usd,
            tokens_available=point.tokens_available,
            timestamp=point.timestamp,
        )
        for point in cache.all()
    ]
    return PriceHistoryResponse(data=points)


@router.get("/share-price", response_model=list[SharePricePointSchema])
async def get_share_price(container: ServiceContainer = Depends(get_container)) -> list[SharePricePointSchema]:
    frame = share_price_frame(container.price_points.all(), container.settings.total_share_supply)
    return [
        SharePricePointSchema(
            date=row.date.date(),
            funds_usd=row.funds_usd,
            shares_outstanding=row.shares_outstanding,
            share_price=row.share_price,
        )
        for row in frame.itertuples(index=False)
    ]


@router.get("/live/{symbol}", response_model=LivePriceSchema)
async def get_live_price(symbol: str, live_prices: LivePriceService = Depends(get_live_prices)) -> LivePriceSchema:
    try:
        quote = await live_prices.get_price(symbol)
    except UnknownSymbolError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PriceUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return LivePriceSchema(
        symbol=quote.symbol,
        price=float(quote.price),
        cached=quote.cached,
        stale=quote.stale,
        error=quote.error,
    )
