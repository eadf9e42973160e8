"""Investment API routes — buy/sell, positions, ledger history, summary, prices."""

import logging
from dataclasses import asdict
from datetime import date

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from folio.api.auth import current_user_id, require_api_key
from folio.models.position import AssetType, Market
from folio.models.transaction import TransactionType
from folio.services.execution.investment_executor import (
    BuyOrder,
    CashFlowOrder,
    InvestmentExecutor,
    SellOrder,
)
from folio.services.portfolio.aggregator import BucketInterval
from folio.services.portfolio.service import PortfolioService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/investments", tags=["investments"])

# Module-level singletons
_executor = InvestmentExecutor()
_portfolio = PortfolioService()


def get_executor() -> InvestmentExecutor:
    return _executor


def get_portfolio_service() -> PortfolioService:
    return _portfolio


class BuyRequest(BaseModel):
    """Request body for a purchase. Quantity and money are fixed-point integers (x100)."""

    model_config = {"populate_by_name": True}

    symbol: str = Field(..., min_length=1, max_length=20, pattern=r"^[A-Za-z0-9.\-]+$")
    name: str = Field(..., min_length=1, max_length=200)
    type: AssetType
    market: Market
    quantity: int = Field(..., gt=0)
    price: int = Field(..., gt=0, description="Price per unit in cents")
    fee: int = Field(0, ge=0)
    currency_code: str = Field(..., pattern=r"^[A-Z]{3}$")
    trade_date: date = Field(..., alias="date")
    account_id: int | None = None
    notes: str | None = Field(None, max_length=1000)


class SellRequest(BaseModel):
    """Request body for a sale from an existing position."""

    model_config = {"populate_by_name": True}

    position_id: int
    quantity: int = Field(..., gt=0)
    price: int = Field(..., gt=0)
    fee: int = Field(0, ge=0)
    trade_date: date = Field(..., alias="date")
    account_id: int | None = None
    notes: str | None = Field(None, max_length=1000)


class CashFlowRequest(BaseModel):
    """Dividend or interest received on a position."""

    model_config = {"populate_by_name": True}

    position_id: int
    type: TransactionType
    quantity: int = Field(..., gt=0)
    price: int = Field(..., gt=0, description="Amount per unit in cents")
    fee: int = Field(0, ge=0)
    trade_date: date = Field(..., alias="date")
    account_id: int | None = None
    notes: str | None = Field(None, max_length=1000)


class UpdatePositionRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    current_price: int | None = Field(None, ge=0)


@router.get("/summary")
async def get_summary(
    user_id: int = Depends(current_user_id),
    portfolio: PortfolioService = Depends(get_portfolio_service),
):
    """Portfolio totals, per-position P&L and per-currency breakdown."""
    summary = await portfolio.get_summary(user_id)
    return asdict(summary)


@router.get("/positions")
async def list_positions(
    user_id: int = Depends(current_user_id),
    portfolio: PortfolioService = Depends(get_portfolio_service),
):
    return {"positions": await portfolio.get_positions(user_id)}


@router.get("/positions/{position_id}")
async def get_position(
    position_id: int,
    user_id: int = Depends(current_user_id),
    portfolio: PortfolioService = Depends(get_portfolio_service),
):
    return await portfolio.get_position(position_id, user_id)


@router.get("/positions/{position_id}/transactions")
async def list_position_transactions(
    position_id: int,
    user_id: int = Depends(current_user_id),
    portfolio: PortfolioService = Depends(get_portfolio_service),
):
    return {"transactions": await portfolio.get_position_transactions(position_id, user_id)}


@router.get("/transactions")
async def list_transactions(
    limit: int | None = Query(None, ge=1, le=1000),
    type: TransactionType | None = Query(None),
    user_id: int = Depends(current_user_id),
    portfolio: PortfolioService = Depends(get_portfolio_service),
):
    """Ledger history, newest first, with the owning position's identity."""
    return {"transactions": await portfolio.get_all_transactions(user_id, limit=limit, tx_type=type)}


@router.get("/evolution")
async def get_evolution(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    interval: BucketInterval = Query(BucketInterval.MONTHLY),
    user_id: int = Depends(current_user_id),
    portfolio: PortfolioService = Depends(get_portfolio_service),
):
    """Cumulative invested amount per day/week/month bucket (sparse)."""
    points = await portfolio.get_evolution(user_id, start_date, end_date, interval)
    return {"interval": interval.value, "points": [asdict(p) for p in points]}


@router.post("/buy", dependencies=[Depends(require_api_key)])
async def buy(
    req: BuyRequest,
    user_id: int = Depends(current_user_id),
    executor: InvestmentExecutor = Depends(get_executor),
):
    order = BuyOrder(
        symbol=req.symbol,
        name=req.name,
        asset_type=req.type,
        market=req.market,
        quantity=req.quantity,
        price=req.price,
        currency_code=req.currency_code,
        trade_date=req.trade_date,
        fee=req.fee,
        account_id=req.account_id,
        notes=req.notes,
    )
    return await executor.buy(user_id, order)


@router.post("/sell", dependencies=[Depends(require_api_key)])
async def sell(
    req: SellRequest,
    user_id: int = Depends(current_user_id),
    executor: InvestmentExecutor = Depends(get_executor),
):
    order = SellOrder(
        position_id=req.position_id,
        quantity=req.quantity,
        price=req.price,
        trade_date=req.trade_date,
        fee=req.fee,
        account_id=req.account_id,
        notes=req.notes,
    )
    return await executor.sell(user_id, order)


@router.post("/cash-flow", dependencies=[Depends(require_api_key)])
async def record_cash_flow(
    req: CashFlowRequest,
    user_id: int = Depends(current_user_id),
    executor: InvestmentExecutor = Depends(get_executor),
):
    order = CashFlowOrder(
        position_id=req.position_id,
        tx_type=req.type,
        quantity=req.quantity,
        price=req.price,
        trade_date=req.trade_date,
        fee=req.fee,
        account_id=req.account_id,
        notes=req.notes,
    )
    return await executor.record_cash_flow(user_id, order)


@router.patch("/positions/{position_id}", dependencies=[Depends(require_api_key)])
async def update_position(
    position_id: int,
    req: UpdatePositionRequest,
    user_id: int = Depends(current_user_id),
    portfolio: PortfolioService = Depends(get_portfolio_service),
):
    """Manual edit of name or current price."""
    return await portfolio.update_position(position_id, user_id, name=req.name, current_price=req.current_price)


@router.delete("/positions/{position_id}", dependencies=[Depends(require_api_key)])
async def delete_position(
    position_id: int,
    user_id: int = Depends(current_user_id),
    portfolio: PortfolioService = Depends(get_portfolio_service),
):
    """Delete a position and its whole ledger."""
    await portfolio.delete_position(position_id, user_id)
    return {"success": True}


@router.get("/quote")
async def get_quote(
    symbol: str = Query(..., min_length=1, max_length=20),
    market: str = Query(...),
    portfolio: PortfolioService = Depends(get_portfolio_service),
):
    """Latest known price for a symbol; null when no provider or cache has one."""
    quote = await portfolio.quotes.get_quote(symbol, market)
    if quote is None:
        return {"quote": None}
    data = asdict(quote)
    data["last_updated"] = quote.last_updated.isoformat()
    return {"quote": data}


@router.post("/prices/refresh", dependencies=[Depends(require_api_key)])
async def refresh_prices(
    user_id: int = Depends(current_user_id),
    portfolio: PortfolioService = Depends(get_portfolio_service),
):
    """Pull fresh quotes for all open positions, one provider call at a time."""
    return await portfolio.update_prices(user_id)
