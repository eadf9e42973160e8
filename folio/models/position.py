"""Open investment position model. A closed position has no row."""

import enum
from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, Enum as SQLEnum, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from folio.database import Base


class AssetType(str, enum.Enum):
    STOCK = "stock"
    FII = "fii"
    FUND = "fund"
    ETF = "etf"
    CRYPTO = "crypto"
    FIXED_INCOME = "fixed-income"
    CDB = "cdb"
    OTHER = "other"


class Market(str, enum.Enum):
    """Trading venue. Decides which quote providers are asked for a price."""

    ASX = "ASX"
    B3 = "B3"
    US = "US"
    CRYPTO = "CRYPTO"
    OTHER = "OTHER"


class Position(Base):
    """Current holding in one symbol on one market.

    Quantity and prices are fixed-point integers with 2 implied decimals.
    """

    __tablename__ = "investment_positions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    account_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    type: Mapped[AssetType] = mapped_column(
        SQLEnum(AssetType, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    market: Mapped[Market] = mapped_column(
        SQLEnum(Market, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)
    avg_buy_price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    current_price: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    last_price_update: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        UniqueConstraint("user_id", "symbol", "market", name="uq_position_user_symbol_market"),
        # Ledger rows outlive their position, so ids must never be reused
        {"sqlite_autoincrement": True},
    )
