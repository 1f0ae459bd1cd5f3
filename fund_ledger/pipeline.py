"""End-to-end reconstruction: raw ledger events to paired trades."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from .grouping import group_transactions
from .models import AssetPair, GroupedTransaction, Trade, TransferEvent
from .normalizer import normalize_events
from .pairing import FeePriceLookup, pair_trades, sort_newest_first

logger = logging.getLogger(__name__)


@dataclass
class ReconstructionResult:
    events: list[TransferEvent] = field(default_factory=list)
    transactions: list[GroupedTransaction] = field(default_factory=list)
    trades: list[Trade] = field(default_factory=list)


def reconstruct_trades(
    raw_events: Iterable[Mapping[str, Any]],
    address: str,
    *,
    pair: AssetPair,
    venue_module: str,
    fee_asset: Optional[str] = None,
    fee_decimals: int = 6,
    fee_price_for: Optional[FeePriceLookup] = None,
    coin_symbols: Optional[Mapping[str, str]] = None,
) -> ReconstructionResult:
    events = normalize_events(raw_events, address, coin_symbols=coin_symbols)
    transactions = sort_newest_first(group_transactions(events, venue_module=venue_module))
    trades = pair_trades(
        transactions,
        pair=pair,
        fee_asset=fee_asset,
        fee_decimals=fee_decimals,
        fee_price_for=fee_price_for,
    )
    logger.info(
        "Reconstructed %d trades from %d transactions (%d events) for %s",
        len(trades),
        len(transactions),
        len(events),
        address,
    )
    return ReconstructionResult(events=events, transactions=transactions, trades=trades)


__all__ = ["ReconstructionResult", "reconstruct_trades"]
