"""Core package for the fund ledger trade reconstruction pipeline."""

from .models import AssetPair, GroupedTransaction, PricePoint, Trade, TradeStatus, TransferEvent
from .pairing import TradeOrderingError, pair_trades, sort_newest_first
from .pipeline import ReconstructionResult, reconstruct_trades
from .statistics import TradeStatistics, compute_statistics

__all__ = [
    "AssetPair",
    "GroupedTransaction",
    "PricePoint",
    "ReconstructionResult",
    "Trade",
    "TradeOrderingError",
    "TradeStatistics",
    "TradeStatus",
    "TransferEvent",
    "compute_statistics",
    "pair_trades",
    "reconstruct_trades",
    "sort_newest_first",
]
