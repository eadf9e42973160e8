"""Investment ledger entry model."""

import enum
from datetime import date, datetime, timezone

from sqlalchemy import BigInteger, Date, DateTime, Enum as SQLEnum, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from folio.database import Base


class TransactionType(str, enum.Enum):
    BUY = "buy"
    SELL = "sell"
    DIVIDEND = "dividend"
    INTEREST = "interest"


class InvestmentTransaction(Base):
    """Immutable record of a buy, sell, dividend or interest event.

    position_id is deliberately not a foreign key: the sell that closes a
    position outlives the position row.
    """

    __tablename__ = "investment_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    position_id: Mapped[int] = mapped_column(Integer, nullable=False)
    account_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    type: Mapped[TransactionType] = mapped_column(
        SQLEnum(TransactionType, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)
    price: Mapped[int] = mapped_column(BigInteger, nullable=False)  # per unit
    total: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fee: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    trade_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_inv_tx_user_date", "user_id", "date"),
        Index("ix_inv_tx_position", "position_id"),
    )
