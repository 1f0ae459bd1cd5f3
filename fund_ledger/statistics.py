"""Aggregate statistics over reconstructed trades."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from .models import Trade

ZERO = Decimal(0)
HUNDRED = Decimal(100)


@dataclass
class TradeStatistics:
    total_trades: int
    open_trades: int
    wins: int
    win_rate_pct: Decimal
    average_pnl_pct: Decimal
    total_realized_pnl_usd: Decimal
    total_fees_usd: Decimal
    net_pnl_usd: Decimal
    compounded_return_pct: Decimal


def closed_trades(trades: Iterable[Trade]) -> list[Trade]:
    return [trade for trade in trades if trade.is_closed]


def compounded_return_pct(trades: Iterable[Trade]) -> Decimal:
    """Compound closed trade returns in chronological order.

    Pairing yields trades newest-first, so the fold re-sorts by entry time.
    """

    chronological = sorted(closed_trades(trades), key=lambda trade: trade.entry_timestamp)
    growth = Decimal(1)
    for trade in chronological:
        growth *= 1 + (trade.realized_pnl_pct or ZERO) / HUNDRED
    return (growth - 1) * HUNDRED


def compute_statistics(trades: Iterable[Trade]) -> TradeStatistics:
    trades = list(trades)
    closed = closed_trades(trades)
    count = len(closed)
    wins = sum(1 for trade in closed if (trade.realized_pnl_pct or ZERO) > 0)
    total_pct = sum((trade.realized_pnl_pct or ZERO for trade in closed), ZERO)
    realized = sum((trade.realized_pnl_usd or ZERO for trade in closed), ZERO)
    fees = sum((trade.fee_usd or ZERO for trade in closed), ZERO)
    return TradeStatistics(
        total_trades=count,
        open_trades=len(trades) - count,
        wins=wins,
        win_rate_pct=Decimal(wins) / count * HUNDRED if count else ZERO,
        average_pnl_pct=total_pct / count if count else ZERO,
        total_realized_pnl_usd=realized,
        total_fees_usd=fees,
        net_pnl_usd=realized - fees,
        compounded_return_pct=compounded_return_pct(closed),
    )


__all__ = ["TradeStatistics", "closed_trades", "compounded_return_pct", "compute_statistics"]
