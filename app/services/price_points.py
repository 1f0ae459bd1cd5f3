"""Date-keyed store of daily valuation snapshots backed by a JSON file."""

from __future__ import annotations

import json
import logging
import os
import time
from datetime import date
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from app.core.errors import PriceCacheError
from fund_ledger.models import PricePoint

logger = logging.getLogger(__name__)


def day_key(day: date | str) -> str:
    """Normalize ``day`` to ``YYYY-MM-DD``, rejecting anything else."""

    if isinstance(day, date):
        return day.isoformat()
    try:
        return date.fromisoformat(str(day)).isoformat()
    except ValueError as exc:
        raise ValueError(f"Invalid price point date {day!r}; expected YYYY-MM-DD") from exc


class PricePointCache:
    """Read-modify-write cache of :class:`PricePoint` records.

    The file holds a single JSON array sorted newest-first and is rewritten in
    full on every merge. Records for other dates are written back exactly as
    they were read, including ones that fail to parse. Concurrent merges are
    last-write-wins.
    """

    def __init__(
        self,
        path: Path | str,
        *,
        default_prices: Optional[Mapping[str, float]] = None,
        default_tokens_available: float = 0.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.path = Path(path)
        prices = default_prices if default_prices is not None else {"USDC": 1.0}
        self.default_prices = {symbol: float(value) for symbol, value in prices.items()}
        self.default_tokens_available = float(default_tokens_available)
        self._clock = clock

    def default_point(self, day: date | str) -> PricePoint:
        return PricePoint(
            date=day_key(day),
            prices=dict(self.default_prices),
            funds_usd=0.0,
            tokens_available=self.default_tokens_available,
        )

    def _read_records(self, *, strict: bool) -> list[Any]:
        if not self.path.exists():
            return []
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            if strict:
                raise PriceCacheError(f"Price cache {self.path} is unreadable: {exc}") from exc
            logger.error("Price cache %s is unreadable: %s", self.path, exc)
            return []
        if not isinstance(payload, list):
            if strict:
                raise PriceCacheError(f"Price cache {self.path} does not hold a JSON array")
            logger.error("Price cache %s does not hold a JSON array", self.path)
            return []
        return payload

    def _load(self) -> list[PricePoint]:
        points: list[PricePoint] = []
        for index, record in enumerate(self._read_records(strict=False)):
            if not isinstance(record, dict):
                logger.warning("Skipping malformed price point at index %d", index)
                continue
            try:
                points.append(PricePoint.from_record(record))
            except (TypeError, ValueError) as exc:
                logger.warning("Skipping malformed price point at index %d: %s", index, exc)
        return points

    def _write(self, records: list[Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_name(f"{self.path.name}.tmp")
        body = json.dumps(records, indent=2)
        try:
            temp_path.write_text(body, encoding="utf-8")
            os.replace(temp_path, self.path)
        except OSError as exc:
            raise PriceCacheError(f"Failed to write price cache {self.path}: {exc}") from exc

    def all(self) -> list[PricePoint]:
        """Return every stored point, newest first."""

        return sorted(self._load(), key=lambda point: point.date, reverse=True)

    def get(self, day: date | str) -> Optional[PricePoint]:
        key = day_key(day)
        for point in self._load():
            if point.date == key:
                return point
        return None

    def latest(self) -> Optional[PricePoint]:
        points = self.all()
        return points[0] if points else None

    def merge(
        self,
        day: date | str,
        *,
        prices: Optional[Mapping[str, float]] = None,
        funds_usd: Optional[float] = None,
        tokens_available: Optional[float] = None,
    ) -> PricePoint:
        """Merge the supplied fields into the record for ``day`` and persist it.

        Fields left as ``None`` keep their stored (or default) value. Raises
        :class:`PriceCacheError` when the stored record for ``day`` itself
        cannot be parsed, leaving the file untouched.
        """

        key = day_key(day)
        records = self._read_records(strict=True)
        point: Optional[PricePoint] = None
        others: list[Any] = []
        for record in records:
            if not isinstance(record, dict) or not _same_day(record.get("date"), key):
                others.append(record)
                continue
            if point is not None:
                logger.warning("Dropping duplicate price point for %s", key)
                continue
            try:
                point = PricePoint.from_record(record)
            except (TypeError, ValueError) as exc:
                raise PriceCacheError(f"Stored price point for {key} is malformed: {exc}") from exc

        point = point or self.default_point(key)
        if prices:
            point.prices.update({symbol: float(value) for symbol, value in prices.items()})
        if funds_usd is not None:
            point.funds_usd = float(funds_usd)
        if tokens_available is not None:
            point.tokens_available = float(tokens_available)
        point.timestamp = int(self._clock() * 1000)

        ordered = sorted([point.to_record(), *others], key=_record_sort_key, reverse=True)
        self._write(ordered)
        logger.info("Merged price point for %s", key)
        return point

    def price_for_date(self, symbol: str, day: date | str) -> Optional[float]:
        """Price of ``symbol`` on ``day`` or the nearest earlier day with a positive value."""

        key = day_key(day)
        for point in self.all():
            if point.date > key:
                continue
            value = point.prices.get(symbol)
            if value is not None and value > 0:
                return value
        return None

    def to_records(self) -> list[dict[str, Any]]:
        return [point.to_record() for point in self.all()]


def _same_day(value: Any, key: str) -> bool:
    if not isinstance(value, str):
        return False
    try:
        return day_key(value) == key
    except ValueError:
        return value == key


def _record_sort_key(record: Any) -> tuple[bool, str]:
    # Records without a usable date sink to the end
    value = record.get("date") if isinstance(record, dict) else None
    return (isinstance(value, str), value if isinstance(value, str) else "")


__all__ = ["PricePointCache", "day_key"]
