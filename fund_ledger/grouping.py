"""Fold transfer events into one aggregate per ledger transaction."""
from __future__ import annotations

from typing import Iterable

from .models import GroupedTransaction, TransferEvent


def group_transactions(events: Iterable[TransferEvent], *, venue_module: str) -> list[GroupedTransaction]:
    """Group ``events`` by transaction id.

    Every event joins its transaction's ``events`` list. Only events emitted by
    ``venue_module`` contribute to ``balance_changes``.
    """

    grouped: dict[str, GroupedTransaction] = {}
    for event in events:
        group = grouped.get(event.transaction_id)
        if group is None:
            group = GroupedTransaction(transaction_id=event.transaction_id, pairing_venue=venue_module)
            grouped[event.transaction_id] = group
        group.events.append(event)
        if event.venue_module != venue_module:
            continue
        changes = group.balance_changes
        changes[event.asset_symbol] = changes.get(event.asset_symbol, 0) + event.balance_delta
    return list(grouped.values())


__all__ = ["group_transactions"]
