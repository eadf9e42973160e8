"""Portfolio aggregation: summary, per-currency totals, evolution series.

Pure functions over position and ledger snapshots. Nothing here touches the
database, so results are identical for identical inputs.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Iterable

from folio.models.transaction import TransactionType


class BucketInterval(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class PositionSnapshot:
    """The fields of a position the aggregator needs."""

    id: int
    symbol: str
    market: str
    currency_code: str
    quantity: int
    avg_buy_price: int
    current_price: int | None


@dataclass(frozen=True)
class LedgerEntry:
    """The fields of a ledger row the evolution series needs."""

    id: int
    type: TransactionType
    total: int
    trade_date: date


@dataclass
class PositionSummary:
    id: int
    symbol: str
    market: str
    currency_code: str
    quantity: int
    avg_buy_price: int
    current_price: int | None
    invested: int
    current_value: int
    pl: int
    pl_percent: float


@dataclass
class CurrencyTotals:
    invested: int = 0
    current_value: int = 0
    positions_count: int = 0


@dataclass
class PortfolioSummary:
    total_invested: int = 0
    current_value: int = 0
    total_pl: int = 0
    total_pl_percent: float = 0.0
    positions_count: int = 0
    positions: list[PositionSummary] = field(default_factory=list)
    by_currency: dict[str, CurrencyTotals] = field(default_factory=dict)


@dataclass
class EvolutionPoint:
    date: date
    invested: int
    transactions: int


def _pl_percent(pl: int, invested: int) -> float:
    return (pl / invested) * 100 if invested > 0 else 0.0


def summarize_position(pos: PositionSnapshot) -> PositionSummary:
    """Invested vs. current value for one position.

    Falls back to the cost basis when no market quote has been recorded.
    """
    invested = pos.quantity * pos.avg_buy_price
    price = pos.current_price if pos.current_price is not None else pos.avg_buy_price
    current = pos.quantity * price
    pl = current - invested
    return PositionSummary(
        id=pos.id,
        symbol=pos.symbol,
        market=pos.market,
        currency_code=pos.currency_code,
        quantity=pos.quantity,
        avg_buy_price=pos.avg_buy_price,
        current_price=pos.current_price,
        invested=invested,
        current_value=current,
        pl=pl,
        pl_percent=_pl_percent(pl, invested),
    )


def currency_totals_for(summary: PositionSummary) -> CurrencyTotals:
    return CurrencyTotals(invested=summary.invested, current_value=summary.current_value, positions_count=1)


def merge_currency_totals(a: CurrencyTotals, b: CurrencyTotals) -> CurrencyTotals:
    return CurrencyTotals(
        invested=a.invested + b.invested,
        current_value=a.current_value + b.current_value,
        positions_count=a.positions_count + b.positions_count,
    )


def totals_by_currency(summaries: Iterable[PositionSummary]) -> dict[str, CurrencyTotals]:
    totals: dict[str, CurrencyTotals] = {}
    for s in summaries:
        entry = currency_totals_for(s)
        existing = totals.get(s.currency_code)
        totals[s.currency_code] = merge_currency_totals(existing, entry) if existing else entry
    return dict(sorted(totals.items()))


def summarize_portfolio(positions: Iterable[PositionSnapshot]) -> PortfolioSummary:
    """Sum invested/current/P&L across positions.

    Totals are plain sums regardless of currency; use by_currency for a
    currency-correct breakdown.
    """
    summaries = [summarize_position(p) for p in positions]
    if not summaries:
        return PortfolioSummary()

    total_invested = sum(s.invested for s in summaries)
    current_value = sum(s.current_value for s in summaries)
    total_pl = current_value - total_invested
    return PortfolioSummary(
        total_invested=total_invested,
        current_value=current_value,
        total_pl=total_pl,
        total_pl_percent=_pl_percent(total_pl, total_invested),
        positions_count=len(summaries),
        positions=summaries,
        by_currency=totals_by_currency(summaries),
    )


def bucket_key(day: date, interval: BucketInterval) -> date:
    """Start date of the bucket containing day. Weeks start on Sunday."""
    if interval == BucketInterval.DAILY:
        return day
    if interval == BucketInterval.WEEKLY:
        # weekday(): Monday=0 .. Sunday=6
        return day - timedelta(days=(day.weekday() + 1) % 7)
    return day.replace(day=1)


def build_evolution(entries: Iterable[LedgerEntry], interval: BucketInterval) -> list[EvolutionPoint]:
    """Running invested amount snapshotted per bucket.

    Buys add their total, sells subtract it, dividends and interest are
    ignored for the running figure but still counted as bucket activity.
    Entries are processed by (date, id); buckets without entries are not
    synthesized.
    """
    buckets: dict[date, EvolutionPoint] = {}
    cumulative = 0

    for entry in sorted(entries, key=lambda e: (e.trade_date, e.id)):
        if entry.type == TransactionType.BUY:
            cumulative += entry.total
        elif entry.type == TransactionType.SELL:
            cumulative -= entry.total

        key = bucket_key(entry.trade_date, interval)
        point = buckets.get(key)
        if point is None:
            buckets[key] = EvolutionPoint(date=key, invested=cumulative, transactions=1)
        else:
            point.invested = cumulative
            point.transactions += 1

    return [buckets[k] for k in sorted(buckets)]
