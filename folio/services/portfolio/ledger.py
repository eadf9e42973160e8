"""Transaction ledger: append-only history of investment events."""

import logging
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from folio.models.position import Position
from folio.models.transaction import InvestmentTransaction, TransactionType
from folio.services.portfolio.cost_basis import transaction_total

logger = logging.getLogger(__name__)


class TransactionLedger:
    """Append and query ledger rows. Rows are never updated."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(
        self,
        user_id: int,
        position_id: int,
        tx_type: TransactionType,
        quantity: int,
        price: int,
        currency_code: str,
        trade_date: date,
        fee: int = 0,
        account_id: int | None = None,
        notes: str | None = None,
    ) -> InvestmentTransaction:
        tx = InvestmentTransaction(
            user_id=user_id,
            position_id=position_id,
            account_id=account_id,
            type=tx_type,
            quantity=quantity,
            price=price,
            total=transaction_total(tx_type, quantity, price, fee),
            fee=fee,
            currency_code=currency_code,
            trade_date=trade_date,
            notes=notes,
            created_at=datetime.now(timezone.utc),
        )
        self._session.add(tx)
        await self._session.flush()
        logger.info(
            "Ledger %s: user=%d position=%d qty=%d @ %d total=%d",
            tx_type.value, user_id, position_id, quantity, price, tx.total,
        )
        return tx

    async def list_for_position(self, position_id: int, user_id: int) -> list[InvestmentTransaction]:
        """Entries for one position, newest first."""
        result = await self._session.execute(
            select(InvestmentTransaction)
            .where(
                InvestmentTransaction.position_id == position_id,
                InvestmentTransaction.user_id == user_id,
            )
            .order_by(InvestmentTransaction.trade_date.desc(), InvestmentTransaction.id.desc())
        )
        return list(result.scalars().all())

    async def list_with_positions(
        self,
        user_id: int,
        limit: int | None = None,
        tx_type: TransactionType | None = None,
    ) -> list[tuple[InvestmentTransaction, Position | None]]:
        """History joined with the owning position, newest first.

        Entries of closed positions come back with a None position.
        """
        stmt = (
            select(InvestmentTransaction, Position)
            .outerjoin(Position, InvestmentTransaction.position_id == Position.id)
            .where(InvestmentTransaction.user_id == user_id)
        )
        if tx_type is not None:
            stmt = stmt.where(InvestmentTransaction.type == tx_type)
        stmt = stmt.order_by(InvestmentTransaction.trade_date.desc(), InvestmentTransaction.id.desc())
        if limit:
            stmt = stmt.limit(limit)
        result = await self._session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]

    async def list_between(self, user_id: int, start: date, end: date) -> list[InvestmentTransaction]:
        """Entries with start <= date <= end in chronological order."""
        result = await self._session.execute(
            select(InvestmentTransaction)
            .where(
                InvestmentTransaction.user_id == user_id,
                InvestmentTransaction.trade_date >= start,
                InvestmentTransaction.trade_date <= end,
            )
            .order_by(InvestmentTransaction.trade_date, InvestmentTransaction.id)
        )
        return list(result.scalars().all())


def transaction_to_dict(t: InvestmentTransaction) -> dict:
    return {
        "id": t.id,
        "user_id": t.user_id,
        "position_id": t.position_id,
        "account_id": t.account_id,
        "type": t.type.value,
        "quantity": t.quantity,
        "price": t.price,
        "total": t.total,
        "fee": t.fee,
        "currency_code": t.currency_code,
        "date": t.trade_date.isoformat(),
        "notes": t.notes,
        "created_at": t.created_at.isoformat(),
    }


def history_row_to_dict(t: InvestmentTransaction, position: Position | None) -> dict:
    """Ledger row plus the owning position's identity; None fields once closed."""
    data = transaction_to_dict(t)
    data["position"] = {
        "symbol": position.symbol if position else None,
        "name": position.name if position else None,
        "type": position.type.value if position else None,
        "market": position.market.value if position else None,
    }
    return data
