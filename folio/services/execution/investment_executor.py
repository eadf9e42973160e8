"""Investment executor — records buys, sells and cash flows.

Each operation runs in a single database transaction: the position change and
the ledger append commit together or not at all. Positions move through
Absent -> Open -> (Open | Closed); a closed position has no row.
"""

import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy.exc import IntegrityError

from folio.database import session_scope
from folio.errors import InvalidInputError, StorageUnavailableError
from folio.models.position import AssetType, Market
from folio.models.transaction import TransactionType
from folio.services.portfolio.ledger import TransactionLedger, transaction_to_dict
from folio.services.portfolio.store import PositionStore, position_to_dict

logger = logging.getLogger(__name__)


@dataclass
class BuyOrder:
    """Purchase of a symbol. Quantity and prices are fixed-point integers."""

    symbol: str
    name: str
    asset_type: AssetType
    market: Market
    quantity: int
    price: int  # per unit
    currency_code: str
    trade_date: date
    fee: int = 0
    account_id: int | None = None
    notes: str | None = None


@dataclass
class SellOrder:
    """Sale from an existing position, addressed by position id."""

    position_id: int
    quantity: int
    price: int
    trade_date: date
    fee: int = 0
    account_id: int | None = None
    notes: str | None = None


@dataclass
class CashFlowOrder:
    """Dividend or interest received on a position. Ledger only."""

    position_id: int
    tx_type: TransactionType
    quantity: int
    price: int  # amount per unit
    trade_date: date
    fee: int = 0
    account_id: int | None = None
    notes: str | None = None


def _check_amounts(quantity: int, price: int, fee: int) -> None:
    if quantity <= 0:
        raise InvalidInputError("quantity must be positive")
    if price <= 0:
        raise InvalidInputError("price must be positive")
    if fee < 0:
        raise InvalidInputError("fee cannot be negative")


class InvestmentExecutor:
    """Apply investment events to positions and the ledger."""

    def __init__(self, session_factory=None) -> None:
        self._session_factory = session_factory

    async def buy(self, user_id: int, order: BuyOrder) -> dict:
        """Open a position or add to it, then append a buy entry.

        Returns {"position": ..., "transaction": ...}.
        A buy that loses the race to open the same position is retried once
        against the row the winner created.
        """
        _check_amounts(order.quantity, order.price, order.fee)
        symbol = order.symbol.strip().upper()

        try:
            result = await self._apply_buy(user_id, symbol, order)
        except IntegrityError:
            # A concurrent first buy created the row; retry as an add-to-position
            logger.warning("Buy raced on %s/%s for user %d, retrying", symbol, order.market.value, user_id)
            try:
                result = await self._apply_buy(user_id, symbol, order)
            except IntegrityError as e:
                raise StorageUnavailableError(f"Could not record buy of {symbol}: {e}") from e

        logger.info(
            "Buy recorded: user=%d %s qty=%d @ %d, avg now %d",
            user_id, symbol, order.quantity, order.price, result["position"]["avg_buy_price"],
        )
        return result

    async def _apply_buy(self, user_id: int, symbol: str, order: BuyOrder) -> dict:
        async with session_scope(self._session_factory) as session:
            store = PositionStore(session)
            ledger = TransactionLedger(session)

            pos = await store.find_open_position(user_id, symbol, order.market)
            if pos is None:
                pos = await store.create_position(
                    user_id=user_id,
                    asset_type=order.asset_type,
                    market=order.market,
                    symbol=symbol,
                    name=order.name,
                    quantity=order.quantity,
                    price=order.price,
                    currency_code=order.currency_code,
                    account_id=order.account_id,
                )
            else:
                await store.apply_buy(pos, order.quantity, order.price)

            tx = await ledger.append(
                user_id=user_id,
                position_id=pos.id,
                tx_type=TransactionType.BUY,
                quantity=order.quantity,
                price=order.price,
                currency_code=order.currency_code,
                trade_date=order.trade_date,
                fee=order.fee,
                account_id=order.account_id,
                notes=order.notes,
            )
            return {"position": position_to_dict(pos), "transaction": transaction_to_dict(tx)}

    async def sell(self, user_id: int, order: SellOrder) -> dict:
        """Reduce or close a position, then append a sell entry.

        Raises PositionNotFoundError or InsufficientQuantityError with no
        change to the position or the ledger. The sell entry keeps the
        position id and currency even when the sale closes the position.
        """
        _check_amounts(order.quantity, order.price, order.fee)

        async with session_scope(self._session_factory) as session:
            store = PositionStore(session)
            ledger = TransactionLedger(session)

            pos = await store.require_position(order.position_id, user_id, lock=True)
            position_id = pos.id
            currency_code = pos.currency_code

            remaining = await store.apply_sell(pos, order.quantity)

            tx = await ledger.append(
                user_id=user_id,
                position_id=position_id,
                tx_type=TransactionType.SELL,
                quantity=order.quantity,
                price=order.price,
                currency_code=currency_code,
                trade_date=order.trade_date,
                fee=order.fee,
                account_id=order.account_id,
                notes=order.notes,
            )
            result = {
                "position": position_to_dict(remaining) if remaining is not None else None,
                "closed": remaining is None,
                "transaction": transaction_to_dict(tx),
            }

        logger.info(
            "Sell recorded: user=%d position=%d qty=%d @ %d%s",
            user_id, order.position_id, order.quantity, order.price,
            " (closed)" if result["closed"] else "",
        )
        return result

    async def record_cash_flow(self, user_id: int, order: CashFlowOrder) -> dict:
        """Append a dividend or interest entry against an open position.

        Quantity and cost basis are left alone.
        """
        if order.tx_type not in (TransactionType.DIVIDEND, TransactionType.INTEREST):
            raise InvalidInputError("cash flow must be a dividend or interest entry")
        _check_amounts(order.quantity, order.price, order.fee)

        async with session_scope(self._session_factory) as session:
            store = PositionStore(session)
            ledger = TransactionLedger(session)

            pos = await store.require_position(order.position_id, user_id)
            tx = await ledger.append(
                user_id=user_id,
                position_id=pos.id,
                tx_type=order.tx_type,
                quantity=order.quantity,
                price=order.price,
                currency_code=pos.currency_code,
                trade_date=order.trade_date,
                fee=order.fee,
                account_id=order.account_id,
                notes=order.notes,
            )
            return transaction_to_dict(tx)
