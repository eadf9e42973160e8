"""Domain errors for the investment ledger.

Validation failures (not found, insufficient quantity) are surfaced to callers
as typed errors. Quote provider failures never leave the quote service.
"""


class FolioError(Exception):
    """Base class for all folio errors."""


class InvalidInputError(FolioError):
    """Request values that no operation can accept (non-positive quantity, bad range)."""


class PositionNotFoundError(FolioError):
    """Position id is missing or belongs to another user."""

    def __init__(self, position_id: int) -> None:
        super().__init__(f"Position {position_id} not found")
        self.position_id = position_id


class InsufficientQuantityError(FolioError):
    """Sell quantity exceeds the held quantity. No short selling."""

    def __init__(self, requested: int, held: int) -> None:
        super().__init__(f"Cannot sell {requested} units, only {held} held")
        self.requested = requested
        self.held = held


class StorageUnavailableError(FolioError):
    """The database could not be reached."""


class QuoteProviderError(FolioError):
    """Every provider for a market failed to return a quote."""

    def __init__(self, symbol: str, market: str, providers: list[str]) -> None:
        tried = ", ".join(providers) or "none"
        super().__init__(f"No quote for {symbol} ({market}); tried: {tried}")
        self.symbol = symbol
        self.market = market
        self.providers = providers
