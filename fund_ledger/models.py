"""Domain models used by the trade reconstruction pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional


class Direction(str, Enum):
    """Deposit/withdraw flag carried by a venue balance event."""

    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"


class TradeStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class AssetPair:
    """Quote/base pair traded through the pairing venue."""

    quote: str
    base: str
    quote_decimals: int
    base_decimals: int


@dataclass(frozen=True)
class TransferEvent:
    """A normalized ledger event moving one asset for the account."""

    transaction_id: str
    timestamp_ms: int
    venue_module: str
    asset_symbol: str
    signed_amount: int
    direction: Direction
    event_seq: str = "0"
    sender: Optional[str] = None
    event_type: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def balance_delta(self) -> int:
        """Change to the account balance implied by this event.

        A deposit into the venue moves funds out of the account, a withdrawal
        moves them back in.
        """

        if self.direction is Direction.DEPOSIT:
            return -self.signed_amount
        return self.signed_amount


@dataclass
class GroupedTransaction:
    """All events sharing one ledger transaction id."""

    transaction_id: str
    pairing_venue: Optional[str] = None
    events: list[TransferEvent] = field(default_factory=list)
    balance_changes: dict[str, int] = field(default_factory=dict)

    @property
    def timestamp_ms(self) -> int:
        return self.events[0].timestamp_ms if self.events else 0

    @property
    def timestamp(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp_ms / 1000, tz=timezone.utc)

    @property
    def date(self) -> date:
        return self.timestamp.date()

    @property
    def venue_module(self) -> Optional[str]:
        for event in self.events:
            if event.venue_module == self.pairing_venue:
                return event.venue_module
        return None

    def change(self, symbol: str) -> int:
        return self.balance_changes.get(symbol, 0)


@dataclass
class Trade:
    """One round trip reconstructed from a seed leg and its matching leg.

    Legs are consumed newest-first, so the seed leg fills the ``exit_*`` fields
    and the older matching leg fills ``entry_*``.

    ``exit_timestamp`` is the seed leg's own ledger time, not the wall-clock
    time the trade was reconstructed, so rebuilding the same window always
    yields the same trades.
    """

    id: str
    status: TradeStatus
    exit_timestamp: datetime
    exit_price: Decimal
    entry_timestamp: Optional[datetime] = None
    entry_price: Optional[Decimal] = None
    fee_raw: int = 0
    fee_usd: Optional[Decimal] = None
    realized_pnl_usd: Optional[Decimal] = None
    realized_pnl_pct: Optional[Decimal] = None
    buy_legs: list[GroupedTransaction] = field(default_factory=list)
    sell_legs: list[GroupedTransaction] = field(default_factory=list)

    @property
    def is_closed(self) -> bool:
        return self.status is TradeStatus.CLOSED

    @property
    def legs(self) -> list[GroupedTransaction]:
        return [*self.buy_legs, *self.sell_legs]


PRICE_POINT_RESERVED_KEYS = ("date", "FUNDS", "TOKENS_AVAILABLE", "timestamp")


@dataclass
class PricePoint:
    """One calendar day's valuation snapshot.

    ``extra`` holds any non-numeric keys found on the stored record so a
    rewrite of the record keeps them.
    """

    date: str
    prices: dict[str, float] = field(default_factory=dict)
    funds_usd: float = 0.0
    tokens_available: float = 0.0
    timestamp: Optional[int] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def shares_outstanding(self, total_supply: float) -> float:
        return total_supply - self.tokens_available

    def share_price(self, total_supply: float) -> float:
        outstanding = self.shares_outstanding(total_supply)
        return self.funds_usd / outstanding if outstanding > 0 else 0.0

    def to_record(self) -> dict[str, Any]:
        """Return the flat JSON layout used by the cache file."""

        record: dict[str, Any] = {"date": self.date}
        record.update(self.prices)
        record.update(self.extra)
        record["FUNDS"] = self.funds_usd
        record["TOKENS_AVAILABLE"] = self.tokens_available
        if self.timestamp is not None:
            record["timestamp"] = self.timestamp
        return record

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "PricePoint":
        raw_date = record.get("date")
        if not isinstance(raw_date, str):
            raise ValueError(f"Price point is missing a date: {record!r}")
        day = date.fromisoformat(raw_date).isoformat()
        prices: dict[str, float] = {}
        extra: dict[str, Any] = {}
        for key, value in record.items():
            if key in PRICE_POINT_RESERVED_KEYS:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                extra[key] = value
                continue
            prices[key] = float(value)
        timestamp = record.get("timestamp")
        return cls(
            date=day,
            prices=prices,
            funds_usd=float(record.get("FUNDS") or 0.0),
            tokens_available=float(record.get("TOKENS_AVAILABLE") or 0.0),
            timestamp=int(timestamp) if isinstance(timestamp, (int, float)) else None,
            extra=extra,
        )
