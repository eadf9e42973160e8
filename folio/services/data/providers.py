"""Market quote providers.

- Yahoo Finance (yfinance): ASX (.AX suffix), B3 (.SA suffix) and US fallback.
  Free, no auth, delayed.
- Alpha Vantage GLOBAL_QUOTE (httpx): US primary. Free tier is 25 req/day.
- CCXT public Binance ticker: crypto, priced in USDT (treated as USD).

Providers may raise; the quote service decides what a failure means.
Prices are returned in cents.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

import ccxt
import httpx
import yfinance as yf

from folio.models.position import Market

logger = logging.getLogger(__name__)

ALPHA_VANTAGE_URL = "https://www.alphavantage.co/query"

_YAHOO_SUFFIX = {
    Market.ASX: ".AX",
    Market.B3: ".SA",
}
_YAHOO_DEFAULT_CURRENCY = {
    Market.ASX: "AUD",
    Market.B3: "BRL",
    Market.US: "USD",
}


@dataclass
class Quote:
    """A single market price observation."""

    symbol: str
    market: str
    price: int  # cents
    currency: str
    last_updated: datetime
    source: str


def to_cents(price: float) -> int:
    return int(round(price * 100))


class QuoteProvider:
    """Interface: fetch one quote, or None when the symbol is unknown."""

    name = "base"

    async def fetch(self, symbol: str, market: Market) -> Quote | None:
        raise NotImplementedError


class YahooFinanceProvider(QuoteProvider):
    """Pull last price from yfinance fast_info."""

    name = "yahoo_finance"

    @staticmethod
    def ticker_symbol(symbol: str, market: Market) -> str:
        suffix = _YAHOO_SUFFIX.get(market, "")
        if suffix and not symbol.endswith(suffix):
            return f"{symbol}{suffix}"
        return symbol

    def _fetch_sync(self, symbol: str, market: Market) -> Quote | None:
        info = yf.Ticker(self.ticker_symbol(symbol, market)).fast_info
        last_price = float(info.get("lastPrice", 0) or 0)
        if not last_price:
            return None
        currency = info.get("currency") or _YAHOO_DEFAULT_CURRENCY.get(market, "USD")
        return Quote(
            symbol=symbol,
            market=market.value,
            price=to_cents(last_price),
            currency=str(currency).upper(),
            last_updated=datetime.now(timezone.utc),
            source=self.name,
        )

    async def fetch(self, symbol: str, market: Market) -> Quote | None:
        # yfinance is synchronous; run in a thread so the event loop keeps serving
        return await asyncio.to_thread(self._fetch_sync, symbol, market)


class AlphaVantageProvider(QuoteProvider):
    """US equities via Alpha Vantage GLOBAL_QUOTE."""

    name = "alpha_vantage"

    def __init__(self, api_key: str, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._api_key = api_key
        self._transport = transport

    async def fetch(self, symbol: str, market: Market) -> Quote | None:
        if self._api_key == "demo":
            logger.warning("Alpha Vantage API key not set, demo key only covers a few symbols")

        params = {"function": "GLOBAL_QUOTE", "symbol": symbol, "apikey": self._api_key}
        async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
            resp = await client.get(ALPHA_VANTAGE_URL, params=params)
            resp.raise_for_status()
            data = resp.json()

        raw_price = (data.get("Global Quote") or {}).get("05. price")
        if not raw_price:
            return None
        return Quote(
            symbol=symbol,
            market=market.value,
            price=to_cents(float(raw_price)),
            currency="USD",
            last_updated=datetime.now(timezone.utc),
            source=self.name,
        )


class CCXTCryptoProvider(QuoteProvider):
    """Crypto spot price from the Binance public ticker (no auth)."""

    name = "ccxt_binance"
    QUOTE_ASSET = "USDT"

    def __init__(self, exchange: ccxt.Exchange | None = None) -> None:
        self._exchange = exchange

    def _get_exchange(self) -> ccxt.Exchange:
        if self._exchange is None:
            self._exchange = ccxt.binance({"enableRateLimit": True, "timeout": 10000})
        return self._exchange

    @staticmethod
    def base_asset(symbol: str) -> str:
        return symbol.upper().replace("-USD", "")

    def _fetch_sync(self, symbol: str, market: Market) -> Quote | None:
        base = self.base_asset(symbol)
        ticker = self._get_exchange().fetch_ticker(f"{base}/{self.QUOTE_ASSET}")
        last = ticker.get("last") or 0
        if not last:
            return None
        return Quote(
            symbol=base,
            market=market.value,
            price=to_cents(last),
            currency="USD",
            last_updated=datetime.now(timezone.utc),
            source=self.name,
        )

    async def fetch(self, symbol: str, market: Market) -> Quote | None:
        # ccxt is synchronous; run in a thread so the event loop keeps serving
        return await asyncio.to_thread(self._fetch_sync, symbol, market)


def default_provider_chains(alpha_vantage_api_key: str) -> dict[Market, list[QuoteProvider]]:
    """Providers tried in order per market."""
    yahoo = YahooFinanceProvider()
    return {
        Market.ASX: [yahoo],
        Market.B3: [yahoo],
        Market.US: [AlphaVantageProvider(alpha_vantage_api_key), yahoo],
        Market.CRYPTO: [CCXTCryptoProvider()],
        Market.OTHER: [],
    }
