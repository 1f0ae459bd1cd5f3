"""Transaction grouper tests."""

from __future__ import annotations

from collections import Counter

from fund_ledger.grouping import group_transactions
from fund_ledger.models import Direction, TransferEvent


def _transfer(tx: str, symbol: str, amount: int, direction: Direction, *, module: str = "pool", seq: str = "0",
              timestamp_ms: int = 1_000) -> TransferEvent:
    return TransferEvent(
        transaction_id=tx,
        timestamp_ms=timestamp_ms,
        venue_module=module,
        asset_symbol=symbol,
        signed_amount=amount,
        direction=direction,
        event_seq=seq,
    )


def test_every_event_lands_in_exactly_one_group():
    events = [
        _transfer("a", "USDC", 120, Direction.DEPOSIT, seq="0"),
        _transfer("b", "SUI", 40, Direction.DEPOSIT, seq="0"),
        _transfer("a", "SUI", 40, Direction.WITHDRAW, seq="1"),
        _transfer("c", "SUI", 5, Direction.WITHDRAW, module="transfer", seq="0"),
        _transfer("b", "USDC", 150, Direction.WITHDRAW, seq="1"),
        _transfer("a", "DEEP", 7, Direction.DEPOSIT, module="fees", seq="2"),
    ]

    groups = group_transactions(events, venue_module="pool")

    assert sorted(group.transaction_id for group in groups) == ["a", "b", "c"]
    grouped_events = [event for group in groups for event in group.events]
    assert Counter(grouped_events) == Counter(events)


def test_only_venue_events_move_balances():
    events = [
        _transfer("a", "USDC", 120, Direction.DEPOSIT),
        _transfer("a", "SUI", 40, Direction.WITHDRAW),
        _transfer("a", "USDC", 999, Direction.WITHDRAW, module="transfer"),
        _transfer("a", "USDC", 5, Direction.DEPOSIT),
    ]

    (group,) = group_transactions(events, venue_module="pool")

    assert group.balance_changes == {"USDC": -125, "SUI": 40}
    assert len(group.events) == 4
    assert group.venue_module == "pool"


def test_group_without_venue_events_has_no_venue():
    events = [_transfer("x", "SUI", 1, Direction.WITHDRAW, module="transfer", timestamp_ms=42)]
    (group,) = group_transactions(events, venue_module="pool")
    assert group.venue_module is None
    assert group.balance_changes == {}
    assert group.timestamp_ms == 42
