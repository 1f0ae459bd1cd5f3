"""Reconstructed trade endpoints."""

from __future__ import annotations

from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.dependencies.services import get_trade_service
from app.schemas import TradeLegSchema, TradeReportSchema, TradeSchema, TradeStatisticsSchema
from app.services.trades import TradeReconstructionService, TradeReport
from fund_ledger.models import GroupedTransaction, Trade

router = APIRouter()


def _optional_float(value) -> float | None:
    return float(value) if value is not None else None


def _leg_schema(leg: GroupedTransaction) -> TradeLegSchema:
    return TradeLegSchema(
        transaction_id=leg.transaction_id,
        timestamp=leg.timestamp,
        venue_module=leg.venue_module,
        balance_changes={symbol: str(amount) for symbol, amount in leg.balance_changes.items()},
    )


def _trade_schema(trade: Trade) -> TradeSchema:
    return TradeSchema(
        id=trade.id,
        status=trade.status.value,
        exit_timestamp=trade.exit_timestamp,
        exit_price=float(trade.exit_price),
        entry_timestamp=trade.entry_timestamp,
        entry_price=_optional_float(trade.entry_price),
        fee_raw=str(trade.fee_raw),
        fee_usd=_optional_float(trade.fee_usd),
        realized_pnl_usd=_optional_float(trade.realized_pnl_usd),
        realized_pnl_pct=_optional_float(trade.realized_pnl_pct),
        buy_legs=[_leg_schema(leg) for leg in trade.buy_legs],
        sell_legs=[_leg_schema(leg) for leg in trade.sell_legs],
    )


def _report_schema(report: TradeReport) -> TradeReportSchema:
    stats = report.statistics
    return TradeReportSchema(
        address=report.address,
        start=report.start,
        end=report.end,
        trades=[_trade_schema(trade) for trade in report.trades],
        statistics=TradeStatisticsSchema(
            total_trades=stats.total_trades,
            open_trades=stats.open_trades,
            wins=stats.wins,
            win_rate_pct=float(stats.win_rate_pct),
            average_pnl_pct=float(stats.average_pnl_pct),
            total_realized_pnl_usd=float(stats.total_realized_pnl_usd),
            total_fees_usd=float(stats.total_fees_usd),
            net_pnl_usd=float(stats.net_pnl_usd),
            compounded_return_pct=float(stats.compounded_return_pct),
        ),
        stale=report.stale,
        error=report.error,
    )


@router.get("/{address}", response_model=TradeReportSchema)
async def get_trades(
    address: str,
    start: date | None = Query(default=None, description="First day of the window (UTC)"),
    end: date | None = Query(default=None, description="Last day of the window (UTC), inclusive"),
    service: TradeReconstructionService = Depends(get_trade_service),
) -> TradeReportSchema:
    """Rebuild the trades for ``address``; defaults to the current calendar year."""

    today = datetime.now(timezone.utc).date()
    end = end or today
    start = start or date(end.year, 1, 1)
    if start > end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start must not be after end")
    report = await service.get_trades(address, start, end)
    return _report_schema(report)
