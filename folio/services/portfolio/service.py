"""Portfolio read side, manual edits and price refresh.

List-style reads degrade to empty results when the database is unreachable;
writes and single-position lookups propagate StorageUnavailableError.
"""

import logging
from datetime import date, timedelta

from folio.database import session_scope
from folio.errors import InvalidInputError, StorageUnavailableError
from folio.models.position import Position
from folio.models.transaction import InvestmentTransaction, TransactionType
from folio.services.data.quotes import QuoteService, get_quote_service
from folio.services.portfolio.aggregator import (
    BucketInterval,
    EvolutionPoint,
    LedgerEntry,
    PortfolioSummary,
    PositionSnapshot,
    build_evolution,
    summarize_portfolio,
)
from folio.services.portfolio.ledger import TransactionLedger, history_row_to_dict, transaction_to_dict
from folio.services.portfolio.store import PositionStore, position_to_dict

logger = logging.getLogger(__name__)

DEFAULT_EVOLUTION_DAYS = 365


def _snapshot(p: Position) -> PositionSnapshot:
    return PositionSnapshot(
        id=p.id,
        symbol=p.symbol,
        market=p.market.value,
        currency_code=p.currency_code,
        quantity=p.quantity,
        avg_buy_price=p.avg_buy_price,
        current_price=p.current_price,
    )


def _entry(t: InvestmentTransaction) -> LedgerEntry:
    return LedgerEntry(id=t.id, type=t.type, total=t.total, trade_date=t.trade_date)


class PortfolioService:
    """Queries and maintenance operations over one user's portfolio."""

    def __init__(self, session_factory=None, quote_service: QuoteService | None = None) -> None:
        self._session_factory = session_factory
        self._quote_service = quote_service

    @property
    def quotes(self) -> QuoteService:
        if self._quote_service is None:
            self._quote_service = get_quote_service()
        return self._quote_service

    async def get_summary(self, user_id: int) -> PortfolioSummary:
        try:
            async with session_scope(self._session_factory) as session:
                positions = await PositionStore(session).list_positions(user_id)
                snapshots = [_snapshot(p) for p in positions]
        except StorageUnavailableError as e:
            logger.warning("Summary unavailable for user %d: %s", user_id, e)
            return PortfolioSummary()
        return summarize_portfolio(snapshots)

    async def get_positions(self, user_id: int) -> list[dict]:
        try:
            async with session_scope(self._session_factory) as session:
                positions = await PositionStore(session).list_positions(user_id)
                return [position_to_dict(p) for p in positions]
        except StorageUnavailableError as e:
            logger.warning("Positions unavailable for user %d: %s", user_id, e)
            return []

    async def get_position(self, position_id: int, user_id: int) -> dict:
        async with session_scope(self._session_factory) as session:
            pos = await PositionStore(session).require_position(position_id, user_id)
            return position_to_dict(pos)

    async def get_position_transactions(self, position_id: int, user_id: int) -> list[dict]:
        """Ledger of one position, including positions that have since closed."""
        try:
            async with session_scope(self._session_factory) as session:
                rows = await TransactionLedger(session).list_for_position(position_id, user_id)
                return [transaction_to_dict(t) for t in rows]
        except StorageUnavailableError as e:
            logger.warning("Ledger unavailable for position %d: %s", position_id, e)
            return []

    async def get_all_transactions(
        self, user_id: int, limit: int | None = None, tx_type: TransactionType | None = None
    ) -> list[dict]:
        try:
            async with session_scope(self._session_factory) as session:
                rows = await TransactionLedger(session).list_with_positions(user_id, limit=limit, tx_type=tx_type)
                return [history_row_to_dict(t, p) for t, p in rows]
        except StorageUnavailableError as e:
            logger.warning("Ledger unavailable for user %d: %s", user_id, e)
            return []

    async def get_evolution(
        self,
        user_id: int,
        start_date: date | None = None,
        end_date: date | None = None,
        interval: BucketInterval = BucketInterval.MONTHLY,
    ) -> list[EvolutionPoint]:
        """Invested-amount series for charts. Defaults to the last year, monthly."""
        end = end_date or date.today()
        start = start_date or (end - timedelta(days=DEFAULT_EVOLUTION_DAYS))
        if start > end:
            raise InvalidInputError("start_date must not be after end_date")

        try:
            async with session_scope(self._session_factory) as session:
                rows = await TransactionLedger(session).list_between(user_id, start, end)
                entries = [_entry(t) for t in rows]
        except StorageUnavailableError as e:
            logger.warning("Evolution unavailable for user %d: %s", user_id, e)
            return []
        return build_evolution(entries, interval)

    async def update_position(
        self, position_id: int, user_id: int, name: str | None = None, current_price: int | None = None
    ) -> dict:
        if current_price is not None and current_price < 0:
            raise InvalidInputError("current_price cannot be negative")
        async with session_scope(self._session_factory) as session:
            store = PositionStore(session)
            pos = await store.require_position(position_id, user_id, lock=True)
            await store.update_position(pos, name=name, current_price=current_price)
            return position_to_dict(pos)

    async def delete_position(self, position_id: int, user_id: int) -> None:
        """Remove a position together with its whole ledger."""
        async with session_scope(self._session_factory) as session:
            await PositionStore(session).delete_position(position_id, user_id)

    async def update_prices(self, user_id: int) -> dict:
        """Refresh current_price of every open position from the quote service.

        Quotes are fetched before any row is locked; positions closed in the
        meantime are skipped.
        """
        async with session_scope(self._session_factory) as session:
            positions = await PositionStore(session).list_positions(user_id)
            keys = [(p.id, p.symbol, p.market) for p in positions]

        if not keys:
            return {"updated": 0}

        quotes = await self.quotes.batch_get_quotes((symbol, market) for _, symbol, market in keys)

        updated = 0
        async with session_scope(self._session_factory) as session:
            store = PositionStore(session)
            for position_id, symbol, market in keys:
                quote = quotes.get((symbol.upper(), market.value))
                if quote is None:
                    continue
                pos = await store.get_position(position_id, user_id, lock=True)
                if pos is None:
                    continue
                await store.record_price(pos, quote.price, quote.last_updated)
                updated += 1

        logger.info("Prices refreshed for user %d: %d of %d positions", user_id, updated, len(keys))
        return {"updated": updated}
