"""Quote service: cached market prices with provider fallback.

Lookup order for get_quote(symbol, market):
1. price_cache row younger than the TTL (15 min by default) -> source "cache"
2. each provider of the market's chain, in order; the first hit is cached
3. the stale cache row, if any
4. None

Nothing in this module raises to the caller. Provider and cache failures are
logged and degrade to stale data or None.
"""

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Iterable

from sqlalchemy import select

from folio.config import settings
from folio.database import session_scope
from folio.errors import QuoteProviderError
from folio.models.position import Market
from folio.models.price_cache import PriceCache
from folio.services.data.providers import Quote, QuoteProvider, default_provider_chains
from folio.services.data.rate_limiter import FixedDelayLimiter

logger = logging.getLogger(__name__)


def _as_utc(ts: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


class QuoteService:
    """Time-boxed quote cache in front of per-market provider chains."""

    def __init__(
        self,
        session_factory=None,
        providers: dict[Market, list[QuoteProvider]] | None = None,
        cache_ttl_seconds: int | None = None,
        limiter: FixedDelayLimiter | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._chains = (
            providers if providers is not None
            else default_provider_chains(settings.alpha_vantage_api_key)
        )
        ttl = settings.quote_cache_ttl_seconds if cache_ttl_seconds is None else cache_ttl_seconds
        self._ttl = timedelta(seconds=ttl)
        self._limiter = limiter or FixedDelayLimiter(settings.quote_request_delay_ms / 1000)

    def _is_fresh(self, quote: Quote) -> bool:
        return datetime.now(timezone.utc) - _as_utc(quote.last_updated) < self._ttl

    async def _read_cache(self, symbol: str, market: str) -> Quote | None:
        try:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(
                    select(PriceCache).where(PriceCache.symbol == symbol, PriceCache.market == market)
                )
                row = result.scalar_one_or_none()
        except Exception as e:
            logger.error("Error reading price cache for %s (%s): %s", symbol, market, e)
            return None

        if row is None:
            return None
        return Quote(
            symbol=row.symbol,
            market=row.market,
            price=row.price,
            currency=row.currency,
            last_updated=_as_utc(row.last_updated),
            source="cache",
        )

    async def _write_cache(self, symbol: str, quote: Quote) -> None:
        try:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(
                    select(PriceCache)
                    .where(PriceCache.symbol == symbol, PriceCache.market == quote.market)
                    .with_for_update()
                )
                row = result.scalar_one_or_none()
                if row is None:
                    session.add(PriceCache(
                        symbol=symbol,
                        market=quote.market,
                        price=quote.price,
                        currency=quote.currency,
                        source=quote.source,
                        last_updated=quote.last_updated,
                    ))
                else:
                    row.price = quote.price
                    row.currency = quote.currency
                    row.source = quote.source
                    row.last_updated = quote.last_updated
        except Exception as e:
            logger.error("Error updating price cache for %s (%s): %s", symbol, quote.market, e)

    async def get_quote(self, symbol: str, market: Market | str) -> Quote | None:
        """Best-effort quote for one symbol. Never raises."""
        symbol = symbol.strip().upper()
        try:
            market = market if isinstance(market, Market) else Market(str(market).upper())
        except ValueError:
            logger.warning("Unknown market: %s", market)
            return None

        cached = await self._read_cache(symbol, market.value)
        if cached is not None and self._is_fresh(cached):
            logger.debug("Using cached price for %s (%s)", symbol, market.value)
            return cached

        tried: list[str] = []
        for provider in self._chains.get(market, []):
            tried.append(provider.name)
            await self._limiter.acquire()
            try:
                quote = await provider.fetch(symbol, market)
            except Exception as e:
                logger.warning("%s failed for %s (%s): %s", provider.name, symbol, market.value, e)
                continue
            if quote is not None:
                await self._write_cache(symbol, quote)
                return replace(quote, symbol=symbol)

        logger.warning("%s", QuoteProviderError(symbol, market.value, tried))
        if cached is not None:
            logger.info("Serving stale cached price for %s (%s)", symbol, market.value)
        return cached

    async def batch_get_quotes(
        self, keys: Iterable[tuple[str, Market | str]]
    ) -> dict[tuple[str, str], Quote]:
        """Quotes for many (symbol, market) pairs, fetched one after another.

        Provider calls go through the shared limiter, so a large batch is
        spread out rather than fired in parallel.
        """
        results: dict[tuple[str, str], Quote] = {}
        for symbol, market in keys:
            market_value = market.value if isinstance(market, Market) else str(market).upper()
            key = (symbol.strip().upper(), market_value)
            if key in results:
                continue
            quote = await self.get_quote(symbol, market)
            if quote is not None:
                results[key] = quote
        return results


_quote_service: QuoteService | None = None


def get_quote_service() -> QuoteService:
    """Process-wide quote service so the limiter is shared by all callers."""
    global _quote_service
    if _quote_service is None:
        _quote_service = QuoteService()
    return _quote_service
