"""Rebuild and print the fund's trades for a date range."""

from __future__ import annotations

import argparse
import asyncio
from datetime import date, datetime, timezone

from app.config import get_settings
from app.core.logging import setup_logging
from app.services.container import build_container


async def _run(address: str | None, start: date, end: date) -> None:
    settings = get_settings()
    address = address or settings.require_fund_address()
    container = build_container(settings)
    try:
        report = await container.trades.get_trades(address, start, end)
    finally:
        await container.aclose()

    if report.stale:
        print(f"Ledger unavailable, showing no fresh data: {report.error}")
    for trade in report.trades:
        pnl = f"{trade.realized_pnl_pct:.2f}%" if trade.realized_pnl_pct is not None else "-"
        entry = f"{trade.entry_price:.4f}" if trade.entry_price is not None else "-"
        print(
            f"{trade.id} {trade.status.value:<6} entry={entry} exit={trade.exit_price:.4f} "
            f"pnl={pnl} fee_usd={trade.fee_usd or 0:.4f}"
        )
    stats = report.statistics
    print(
        f"Closed {stats.total_trades} (open {stats.open_trades}), win rate {stats.win_rate_pct:.1f}%, "
        f"net P&L {stats.net_pnl_usd:.2f} USD, compounded {stats.compounded_return_pct:.2f}%"
    )


def main() -> None:
    today = datetime.now(timezone.utc).date()
    parser = argparse.ArgumentParser(description="Reconstruct round-trip trades from the ledger")
    parser.add_argument("--address", default=None, help="Defaults to FUND_ADDRESS")
    parser.add_argument("--start", type=date.fromisoformat, default=date(today.year, 1, 1))
    parser.add_argument("--end", type=date.fromisoformat, default=today)
    args = parser.parse_args()
    setup_logging()
    asyncio.run(_run(args.address, args.start, args.end))


if __name__ == "__main__":
    main()
