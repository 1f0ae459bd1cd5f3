"""Normalize raw ledger events into :class:`TransferEvent` records."""
from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional

from .models import Direction, TransferEvent

logger = logging.getLogger(__name__)

KNOWN_COIN_SYMBOLS: dict[str, str] = {
    "0000000000000000000000000000000000000000000000000000000000000002::sui::SUI": "SUI",
    "dba34672e30cb065b1f93e3ab55318768fd6fef66c15942c9f7cb846e2f900e7::usdc::USDC": "USDC",
    "deeb7a4662eec9f2f3def03fb937a663dddaa2e215b8078a284d026b7946c270::deep::DEEP": "DEEP",
}


def coin_symbol(coin_type: Optional[str], coin_symbols: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Resolve a fully-qualified coin type to its ticker symbol."""

    if not coin_type:
        return None
    mapping = coin_symbols if coin_symbols is not None else KNOWN_COIN_SYMBOLS
    bare = coin_type[2:] if coin_type.startswith("0x") else coin_type
    for candidate in (coin_type, bare):
        if candidate in mapping:
            return mapping[candidate]
    if "::" in bare:
        return bare.rsplit("::", 1)[-1] or None
    return None


def _unwrap(raw: Mapping[str, Any]) -> Mapping[str, Any]:
    for key in ("rawEvent", "raw"):
        inner = raw.get(key)
        if isinstance(inner, Mapping):
            return inner
    return raw


def event_transaction_id(raw: Mapping[str, Any]) -> Optional[str]:
    event = _unwrap(raw)
    digest = raw.get("digest")
    if not digest:
        event_id = event.get("id")
        if isinstance(event_id, Mapping):
            digest = event_id.get("txDigest")
    if not digest or digest == "unknown":
        return None
    return str(digest)


def event_timestamp_ms(raw: Mapping[str, Any]) -> Optional[int]:
    """Millisecond timestamp from the wrapper or the nested event."""

    event = _unwrap(raw)
    value = raw.get("timestampMs") or event.get("timestampMs")
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse_amount(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _parse_direction(value: Any) -> Optional[Direction]:
    if isinstance(value, bool):
        return Direction.DEPOSIT if value else Direction.WITHDRAW
    if isinstance(value, str) and value.lower() in {"true", "false"}:
        return Direction.DEPOSIT if value.lower() == "true" else Direction.WITHDRAW
    return None


def _asset_name(asset: Any) -> Optional[str]:
    if isinstance(asset, Mapping):
        name = asset.get("name")
        return name if isinstance(name, str) else None
    if isinstance(asset, str):
        return asset
    return None


def normalize_event(
    raw: Mapping[str, Any],
    address: str,
    *,
    position: int = 0,
    coin_symbols: Optional[Mapping[str, str]] = None,
) -> Optional[TransferEvent]:
    """Return a :class:`TransferEvent` or ``None`` when the payload is not a transfer."""

    if not isinstance(raw, Mapping):
        return None
    event = _unwrap(raw)
    transaction_id = event_transaction_id(raw)
    timestamp_ms = event_timestamp_ms(raw)
    if transaction_id is None or timestamp_ms is None:
        return None

    parsed = event.get("parsedJson")
    if not isinstance(parsed, Mapping):
        return None
    amount = _parse_amount(parsed.get("amount"))
    symbol = coin_symbol(_asset_name(parsed.get("asset")), coin_symbols)
    direction = _parse_direction(parsed.get("deposit"))
    if amount is None or symbol is None or direction is None:
        return None

    sender = event.get("sender")
    if sender == address:
        sender = "self"
    event_id = event.get("id")
    event_seq = event_id.get("eventSeq") if isinstance(event_id, Mapping) else None

    return TransferEvent(
        transaction_id=transaction_id,
        timestamp_ms=timestamp_ms,
        venue_module=str(event.get("transactionModule") or ""),
        asset_symbol=symbol,
        signed_amount=amount,
        direction=direction,
        event_seq=str(event_seq if event_seq is not None else position),
        sender=sender,
        event_type=event.get("type"),
        raw=dict(event),
    )


def normalize_events(
    raw_events: Iterable[Mapping[str, Any]],
    address: str,
    *,
    coin_symbols: Optional[Mapping[str, str]] = None,
) -> list[TransferEvent]:
    """Normalize a batch, dropping and logging anything that is not a transfer."""

    events: list[TransferEvent] = []
    total = 0
    for position, raw in enumerate(raw_events):
        total += 1
        event = normalize_event(raw, address, position=position, coin_symbols=coin_symbols)
        if event is None:
            logger.debug("Dropping ledger event %s: not a recognizable transfer", position)
            continue
        events.append(event)

    dropped = total - len(events)
    if dropped:
        logger.info("Normalized %d of %d ledger events (%d dropped)", len(events), total, dropped)
    return events


__all__ = [
    "KNOWN_COIN_SYMBOLS",
    "coin_symbol",
    "event_timestamp_ms",
    "event_transaction_id",
    "normalize_event",
    "normalize_events",
]
