"""Sui JSON-RPC client used to read the fund account's ledger events."""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from app.core.errors import LedgerError
from fund_ledger.normalizer import event_timestamp_ms

logger = logging.getLogger(__name__)

DEFAULT_PAGE_LIMIT = 50


@dataclass
class LedgerPage:
    events: list[dict[str, Any]] = field(default_factory=list)
    next_cursor: Any = None


class SuiRpcClient:
    """Paginated access to ``suix_queryEvents`` and wallet balances."""

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout_seconds: float = 15.0,
        page_limit: int = DEFAULT_PAGE_LIMIT,
        page_delay_seconds: float = 0.2,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.timeout_seconds = timeout_seconds
        self.page_limit = page_limit
        self.page_delay_seconds = page_delay_seconds
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._request_ids = itertools.count(1)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _call(self, method: str, params: list[Any]) -> Any:
        body = {"jsonrpc": "2.0", "id": next(self._request_ids), "method": method, "params": params}
        try:
            response = await self._client.post(self.rpc_url, json=body, timeout=self.timeout_seconds)
        except httpx.HTTPError as exc:
            raise LedgerError(f"Failed to reach ledger RPC: {exc}") from exc

        if response.status_code >= 400:
            raise LedgerError(f"Ledger RPC error {response.status_code}: {response.text}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise LedgerError("Ledger RPC returned invalid JSON payload") from exc

        if not isinstance(payload, dict):
            raise LedgerError("Ledger RPC response is not an object")
        error = payload.get("error")
        if error:
            message = error.get("message", error) if isinstance(error, dict) else error
            raise LedgerError(f"Ledger RPC {method} failed: {message}")
        return payload.get("result")

    async def fetch_events_page(
        self,
        address: str,
        cursor: Any = None,
        limit: Optional[int] = None,
    ) -> LedgerPage:
        """Fetch one ascending page of events sent by ``address``."""

        result = await self._call(
            "suix_queryEvents",
            [{"Sender": address}, cursor, limit or self.page_limit, False],
        )
        if isinstance(result, list):
            return LedgerPage(events=[item for item in result if isinstance(item, dict)])
        if not isinstance(result, dict):
            raise LedgerError("Ledger RPC returned an unexpected events payload")
        data = result.get("data") or []
        events = [item for item in data if isinstance(item, dict)]
        next_cursor = result.get("nextCursor") if result.get("hasNextPage", True) else None
        return LedgerPage(events=events, next_cursor=next_cursor)

    async def fetch_window(
        self,
        address: str,
        start_ms: Optional[int] = None,
        end_ms: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """Collect every event for ``address`` with a timestamp inside the window."""

        limit = self.page_limit
        collected: list[dict[str, Any]] = []
        cursor: Any = None
        pages = 0
        while True:
            page = await self.fetch_events_page(address, cursor, limit)
            pages += 1
            past_end = False
            for event in page.events:
                timestamp = event_timestamp_ms(event)
                if timestamp is None:
                    collected.append(event)
                    continue
                if start_ms is not None and timestamp < start_ms:
                    continue
                if end_ms is not None and timestamp > end_ms:
                    past_end = True
                    continue
                collected.append(event)

            if len(page.events) < limit or page.next_cursor is None or past_end:
                break
            cursor = page.next_cursor
            await asyncio.sleep(self.page_delay_seconds)

        logger.info("Fetched %d ledger events for %s across %d pages", len(collected), address, pages)
        return collected

    async def get_all_balances(self, address: str) -> list[dict[str, Any]]:
        result = await self._call("suix_getAllBalances", [address])
        if not isinstance(result, list):
            raise LedgerError("Ledger RPC balances response is not a list")
        return [item for item in result if isinstance(item, dict)]


__all__ = ["DEFAULT_PAGE_LIMIT", "LedgerPage", "SuiRpcClient"]
