"""SQLAlchemy models for folio."""

from folio.models.position import AssetType, Market, Position
from folio.models.price_cache import PriceCache
from folio.models.transaction import InvestmentTransaction, TransactionType

__all__ = [
    "AssetType",
    "InvestmentTransaction",
    "Market",
    "Position",
    "PriceCache",
    "TransactionType",
]
