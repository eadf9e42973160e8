"""Position store: holdings keyed by (user, symbol, market).

Every method works on a session owned by the caller, so a position change and
the matching ledger append commit or roll back together.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from folio.errors import InsufficientQuantityError, PositionNotFoundError
from folio.models.position import AssetType, Market, Position
from folio.models.transaction import InvestmentTransaction
from folio.services.portfolio.cost_basis import calculate_new_average_price

logger = logging.getLogger(__name__)


class PositionStore:
    """CRUD and state transitions for open positions."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_open_position(self, user_id: int, symbol: str, market: Market) -> Position | None:
        """Look up a position by its three-part key.

        Uses SELECT FOR UPDATE so concurrent buys on the same key serialize.
        """
        result = await self._session.execute(
            select(Position)
            .where(
                Position.user_id == user_id,
                Position.symbol == symbol,
                Position.market == market,
            )
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def get_position(self, position_id: int, user_id: int, lock: bool = False) -> Position | None:
        stmt = select(Position).where(Position.id == position_id, Position.user_id == user_id)
        if lock:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def require_position(self, position_id: int, user_id: int, lock: bool = False) -> Position:
        """Like get_position, but a missing or foreign position is an error."""
        pos = await self.get_position(position_id, user_id, lock=lock)
        if pos is None:
            raise PositionNotFoundError(position_id)
        return pos

    async def list_positions(self, user_id: int) -> list[Position]:
        result = await self._session.execute(
            select(Position).where(Position.user_id == user_id).order_by(Position.symbol, Position.id)
        )
        return list(result.scalars().all())

    async def list_user_ids(self) -> list[int]:
        """Users that hold at least one open position."""
        result = await self._session.execute(
            select(Position.user_id).distinct().order_by(Position.user_id)
        )
        return list(result.scalars().all())

    async def create_position(
        self,
        user_id: int,
        asset_type: AssetType,
        market: Market,
        symbol: str,
        name: str,
        quantity: int,
        price: int,
        currency_code: str,
        account_id: int | None = None,
    ) -> Position:
        now = datetime.now(timezone.utc)
        pos = Position(
            user_id=user_id,
            account_id=account_id,
            type=asset_type,
            market=market,
            symbol=symbol,
            name=name,
            quantity=quantity,
            avg_buy_price=price,
            currency_code=currency_code,
            created_at=now,
            updated_at=now,
        )
        self._session.add(pos)
        await self._session.flush()
        logger.info("Position opened: user=%d %s/%s qty=%d @ %d", user_id, symbol, market.value, quantity, price)
        return pos

    async def apply_buy(self, position: Position, quantity: int, price: int) -> Position:
        """Add a lot and recompute the weighted-average cost basis."""
        new_avg = calculate_new_average_price(position.quantity, position.avg_buy_price, quantity, price)
        position.quantity = position.quantity + quantity
        position.avg_buy_price = new_avg
        position.updated_at = datetime.now(timezone.utc)
        await self._session.flush()
        return position

    async def apply_sell(self, position: Position, quantity: int) -> Position | None:
        """Remove quantity from a position. Returns None when the position closes.

        Cost basis is untouched by sells. A fully sold position row is deleted
        but its ledger history is kept.
        """
        if quantity > position.quantity:
            raise InsufficientQuantityError(quantity, position.quantity)

        remaining = position.quantity - quantity
        if remaining == 0:
            await self._session.delete(position)
            await self._session.flush()
            logger.info("Position closed: id=%d %s", position.id, position.symbol)
            return None

        position.quantity = remaining
        position.updated_at = datetime.now(timezone.utc)
        await self._session.flush()
        return position

    async def update_position(
        self, position: Position, name: str | None = None, current_price: int | None = None
    ) -> Position:
        """Manual edit of display name and/or last known price."""
        now = datetime.now(timezone.utc)
        if name is not None:
            position.name = name
        if current_price is not None:
            position.current_price = current_price
            position.last_price_update = now
        position.updated_at = now
        await self._session.flush()
        return position

    async def record_price(self, position: Position, price: int, updated_at: datetime) -> None:
        position.current_price = price
        position.last_price_update = updated_at
        position.updated_at = datetime.now(timezone.utc)
        await self._session.flush()

    async def delete_position(self, position_id: int, user_id: int) -> None:
        """Delete a position and every ledger row that references it."""
        await self.require_position(position_id, user_id, lock=True)
        await self._session.execute(
            delete(InvestmentTransaction).where(
                InvestmentTransaction.position_id == position_id,
                InvestmentTransaction.user_id == user_id,
            )
        )
        await self._session.execute(
            delete(Position).where(Position.id == position_id, Position.user_id == user_id)
        )
        logger.info("Position deleted with its ledger: id=%d user=%d", position_id, user_id)


def position_to_dict(p: Position) -> dict:
    return {
        "id": p.id,
        "user_id": p.user_id,
        "account_id": p.account_id,
        "type": p.type.value,
        "market": p.market.value,
        "symbol": p.symbol,
        "name": p.name,
        "quantity": p.quantity,
        "avg_buy_price": p.avg_buy_price,
        "current_price": p.current_price,
        "currency_code": p.currency_code,
        "last_price_update": p.last_price_update.isoformat() if p.last_price_update else None,
        "created_at": p.created_at.isoformat(),
        "updated_at": p.updated_at.isoformat(),
    }
