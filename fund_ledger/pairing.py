"""Reconstruct round-trip trades from grouped venue transactions.

Input is consumed newest-first. The first leg that spends the quote asset seeds
an open trade and fixes its ``exit_*`` fields; walking back in time, the next
leg that receives the quote asset closes the trade and fixes ``entry_*``.
"""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Callable, Iterable, Optional, Sequence

from .amounts import to_units, unit_price
from .models import AssetPair, GroupedTransaction, Trade, TradeStatus

logger = logging.getLogger(__name__)

FeePriceLookup = Callable[[date], Optional[Decimal]]


class TradeOrderingError(ValueError):
    """Raised when pairing input is not sorted newest-first."""


def sort_newest_first(transactions: Iterable[GroupedTransaction]) -> list[GroupedTransaction]:
    return sorted(transactions, key=lambda tx: tx.timestamp_ms, reverse=True)


def ensure_newest_first(transactions: Sequence[GroupedTransaction]) -> None:
    for previous, current in zip(transactions, transactions[1:]):
        if current.timestamp_ms > previous.timestamp_ms:
            raise TradeOrderingError(
                f"Transactions must be sorted newest-first: {current.transaction_id} "
                f"({current.timestamp_ms}) follows {previous.transaction_id} ({previous.timestamp_ms})"
            )


def is_trade_leg(transaction: GroupedTransaction, pair: AssetPair) -> bool:
    """A leg comes from the pairing venue and moves both sides of the pair."""

    return (
        transaction.venue_module is not None
        and transaction.change(pair.quote) != 0
        and transaction.change(pair.base) != 0
    )


def leg_price(transaction: GroupedTransaction, pair: AssetPair) -> Decimal:
    return unit_price(
        transaction.change(pair.quote),
        transaction.change(pair.base),
        pair.quote_decimals,
        pair.base_decimals,
    )


def aggregate_price(legs: Sequence[GroupedTransaction], pair: AssetPair) -> Decimal:
    quote_total = sum(abs(leg.change(pair.quote)) for leg in legs)
    base_total = sum(abs(leg.change(pair.base)) for leg in legs)
    return unit_price(quote_total, base_total, pair.quote_decimals, pair.base_decimals)


def fee_outflow(transaction: GroupedTransaction, fee_asset: Optional[str]) -> int:
    if not fee_asset:
        return 0
    return max(0, -transaction.change(fee_asset))


def _close_trade(
    trade: Trade,
    leg: GroupedTransaction,
    pair: AssetPair,
    fee_asset: Optional[str],
    fee_decimals: int,
    fee_price_for: Optional[FeePriceLookup],
) -> None:
    trade.sell_legs.append(leg)
    trade.status = TradeStatus.CLOSED
    trade.entry_timestamp = leg.timestamp
    trade.entry_price = leg_price(leg, pair)
    trade.fee_raw += fee_outflow(leg, fee_asset)

    fee_usd = Decimal(0)
    if trade.fee_raw:
        fee_price = fee_price_for(leg.date) if fee_price_for is not None else None
        if fee_price is None:
            logger.warning(
                "No %s price for %s; fee of trade %s valued at 0", fee_asset, leg.date, trade.id
            )
        else:
            fee_usd = to_units(trade.fee_raw, fee_decimals) * fee_price
    trade.fee_usd = fee_usd

    quote_total = sum(item.change(pair.quote) for item in trade.legs)
    trade.realized_pnl_usd = to_units(quote_total, pair.quote_decimals)
    if trade.entry_price:
        trade.realized_pnl_pct = (trade.entry_price - trade.exit_price) / trade.entry_price * 100
    else:
        trade.realized_pnl_pct = Decimal(0)


def pair_trades(
    transactions: Sequence[GroupedTransaction],
    *,
    pair: AssetPair,
    fee_asset: Optional[str] = None,
    fee_decimals: int = 6,
    fee_price_for: Optional[FeePriceLookup] = None,
) -> list[Trade]:
    """Pair legs into trades. ``transactions`` must be sorted newest-first."""

    ensure_newest_first(transactions)

    trades: list[Trade] = []
    open_trade: Optional[Trade] = None
    for transaction in transactions:
        if not is_trade_leg(transaction, pair):
            logger.debug("Skipping %s: no %s/%s swap", transaction.transaction_id, pair.base, pair.quote)
            continue

        quote_change = transaction.change(pair.quote)
        if open_trade is None:
            if quote_change >= 0:
                logger.info(
                    "Skipping %s: not a pool interaction we recognize", transaction.transaction_id
                )
                continue
            open_trade = Trade(
                id=transaction.transaction_id,
                status=TradeStatus.OPEN,
                exit_timestamp=transaction.timestamp,
                exit_price=leg_price(transaction, pair),
                fee_raw=fee_outflow(transaction, fee_asset),
                buy_legs=[transaction],
            )
            trades.append(open_trade)
            continue

        if quote_change < 0:
            open_trade.buy_legs.append(transaction)
            open_trade.fee_raw += fee_outflow(transaction, fee_asset)
            open_trade.exit_price = aggregate_price(open_trade.buy_legs, pair)
            continue

        _close_trade(open_trade, transaction, pair, fee_asset, fee_decimals, fee_price_for)
        open_trade = None

    if open_trade is not None:
        logger.info("Trade %s has no matching leg in the window; leaving it open", open_trade.id)
    return trades


__all__ = [
    "FeePriceLookup",
    "TradeOrderingError",
    "aggregate_price",
    "ensure_newest_first",
    "fee_outflow",
    "is_trade_leg",
    "leg_price",
    "pair_trades",
    "sort_newest_first",
]
