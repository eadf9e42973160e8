"""CLI for portfolio reports and price refresh.

Usage:
    python scripts/portfolio.py summary --user 1
    python scripts/portfolio.py evolution --user 1 --interval weekly --start 2025-01-01
    python scripts/portfolio.py refresh --user 1
    python scripts/portfolio.py refresh --all
"""

import argparse
import asyncio
import json
import logging
from dataclasses import asdict
from datetime import date

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def _money(cents: int) -> str:
    return f"{cents / 100:,.2f}"


async def show_summary(user_id: int, as_json: bool) -> None:
    from folio.services.portfolio.service import PortfolioService

    summary = await PortfolioService().get_summary(user_id)
    if as_json:
        print(json.dumps(asdict(summary), indent=2, default=str))
        return

    print(f"\n=== Portfolio (user {user_id}) ===")
    for p in summary.positions:
        print(
            f"  {p.symbol:<10} {p.market:<7} qty {p.quantity / 100:>12,.2f}  "
            f"invested {_money(p.invested):>16}  P&L {_money(p.pl):>14} ({p.pl_percent:+.2f}%)"
        )
    for ccy, totals in summary.by_currency.items():
        print(f"  [{ccy}] invested {_money(totals.invested)}  value {_money(totals.current_value)}")
    print(f"  TOTAL P&L: {_money(summary.total_pl)} ({summary.total_pl_percent:+.2f}%)")
    print("================================\n")


async def show_evolution(user_id: int, start: date | None, end: date | None, interval: str, as_json: bool) -> None:
    from folio.services.portfolio.aggregator import BucketInterval
    from folio.services.portfolio.service import PortfolioService

    points = await PortfolioService().get_evolution(user_id, start, end, BucketInterval(interval))
    if as_json:
        print(json.dumps([asdict(p) for p in points], indent=2, default=str))
        return
    for p in points:
        print(f"  {p.date.isoformat()}  invested {_money(p.invested):>16}  ({p.transactions} tx)")


async def do_refresh(user_id: int | None) -> None:
    from folio.services.portfolio.service import PortfolioService
    from folio.tasks.price_tasks import refresh_all_prices_async

    if user_id is None:
        result = await refresh_all_prices_async()
    else:
        result = await PortfolioService().update_prices(user_id)
    logger.info("Refresh result: %s", result)


def main() -> None:
    parser = argparse.ArgumentParser(description="folio — portfolio reports and price refresh")
    sub = parser.add_subparsers(dest="command", required=True)

    p_summary = sub.add_parser("summary", help="Print portfolio summary")
    p_summary.add_argument("--user", type=int, required=True)
    p_summary.add_argument("--json", action="store_true", help="Output as JSON")

    p_evo = sub.add_parser("evolution", help="Print invested-amount evolution")
    p_evo.add_argument("--user", type=int, required=True)
    p_evo.add_argument("--start", type=date.fromisoformat, default=None, help="YYYY-MM-DD")
    p_evo.add_argument("--end", type=date.fromisoformat, default=None, help="YYYY-MM-DD")
    p_evo.add_argument("--interval", default="monthly", choices=["daily", "weekly", "monthly"])
    p_evo.add_argument("--json", action="store_true", help="Output as JSON")

    p_refresh = sub.add_parser("refresh", help="Refresh current prices from quote providers")
    group = p_refresh.add_mutually_exclusive_group(required=True)
    group.add_argument("--user", type=int)
    group.add_argument("--all", action="store_true", help="Every user with open positions")

    args = parser.parse_args()

    if args.command == "summary":
        asyncio.run(show_summary(args.user, args.json))
    elif args.command == "evolution":
        asyncio.run(show_evolution(args.user, args.start, args.end, args.interval, args.json))
    elif args.command == "refresh":
        asyncio.run(do_refresh(None if args.all else args.user))


if __name__ == "__main__":
    main()
