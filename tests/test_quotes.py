"""Tests for the quote service, providers and the fixed-delay limiter."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from sqlalchemy import select

from folio.models.position import Market
from folio.models.price_cache import PriceCache
from folio.services.data.providers import (
    AlphaVantageProvider,
    CCXTCryptoProvider,
    Quote,
    QuoteProvider,
    YahooFinanceProvider,
    default_provider_chains,
)
from folio.services.data.quotes import QuoteService
from folio.services.data.rate_limiter import FixedDelayLimiter


def make_quote(symbol="AAPL", market="US", price=19050, source="fake", age=timedelta(0)) -> Quote:
    return Quote(
        symbol=symbol,
        market=market,
        price=price,
        currency="USD",
        last_updated=datetime.now(timezone.utc) - age,
        source=source,
    )


class FakeProvider(QuoteProvider):
    """Provider returning canned results; an Exception instance is raised."""

    def __init__(self, name: str, result=None) -> None:
        self.name = name
        self.result = result
        self.calls: list[tuple[str, Market]] = []

    async def fetch(self, symbol, market):
        self.calls.append((symbol, market))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def no_wait_limiter() -> FixedDelayLimiter:
    return FixedDelayLimiter(0)


async def seed_cache(session_factory, quote: Quote) -> None:
    async with session_factory() as session:
        async with session.begin():
            session.add(PriceCache(
                symbol=quote.symbol,
                market=quote.market,
                price=quote.price,
                currency=quote.currency,
                source=quote.source,
                last_updated=quote.last_updated,
            ))


class TestGetQuote:
    @pytest.mark.asyncio
    async def test_fresh_cache_skips_providers(self, session_factory):
        await seed_cache(session_factory, make_quote(price=100, age=timedelta(minutes=5)))
        provider = FakeProvider("p1", make_quote(price=200))
        service = QuoteService(session_factory, {Market.US: [provider]}, 900, no_wait_limiter())

        quote = await service.get_quote("aapl", "us")

        assert quote.price == 100
        assert quote.source == "cache"
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_expired_cache_goes_to_provider_and_refreshes(self, session_factory):
        await seed_cache(session_factory, make_quote(price=100, age=timedelta(minutes=30)))
        provider = FakeProvider("p1", make_quote(price=200, source="p1"))
        service = QuoteService(session_factory, {Market.US: [provider]}, 900, no_wait_limiter())

        quote = await service.get_quote("AAPL", Market.US)

        assert quote.price == 200
        assert quote.source == "p1"
        async with session_factory() as session:
            rows = (await session.execute(select(PriceCache))).scalars().all()
        assert len(rows) == 1
        assert rows[0].price == 200
        assert rows[0].source == "p1"

    @pytest.mark.asyncio
    async def test_falls_back_along_chain(self, session_factory):
        failing = FakeProvider("p1", RuntimeError("HTTP 500"))
        empty = FakeProvider("p2", None)
        good = FakeProvider("p3", make_quote(price=300, source="p3"))
        service = QuoteService(session_factory, {Market.US: [failing, empty, good]}, 900, no_wait_limiter())

        quote = await service.get_quote("AAPL", "US")

        assert quote.price == 300
        assert len(failing.calls) == len(empty.calls) == len(good.calls) == 1

    @pytest.mark.asyncio
    async def test_stops_at_first_hit(self, session_factory):
        first = FakeProvider("p1", make_quote(price=100))
        second = FakeProvider("p2", make_quote(price=200))
        service = QuoteService(session_factory, {Market.US: [first, second]}, 900, no_wait_limiter())

        await service.get_quote("AAPL", "US")
        assert second.calls == []

    @pytest.mark.asyncio
    async def test_stale_cache_served_when_all_fail(self, session_factory):
        await seed_cache(session_factory, make_quote(price=100, age=timedelta(days=2)))
        service = QuoteService(
            session_factory, {Market.US: [FakeProvider("p1", RuntimeError("down"))]}, 900, no_wait_limiter()
        )

        quote = await service.get_quote("AAPL", "US")

        assert quote.price == 100
        assert quote.source == "cache"

    @pytest.mark.asyncio
    async def test_none_when_nothing_available(self, session_factory):
        service = QuoteService(
            session_factory, {Market.US: [FakeProvider("p1", RuntimeError("down"))]}, 900, no_wait_limiter()
        )
        assert await service.get_quote("AAPL", "US") is None

    @pytest.mark.asyncio
    async def test_unknown_market_is_none(self, session_factory):
        provider = FakeProvider("p1", make_quote())
        service = QuoteService(session_factory, {Market.US: [provider]}, 900, no_wait_limiter())
        assert await service.get_quote("AAPL", "NYSE") is None
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_market_without_providers(self, session_factory):
        service = QuoteService(session_factory, {}, 900, no_wait_limiter())
        assert await service.get_quote("FOO", Market.OTHER) is None

    @pytest.mark.asyncio
    async def test_cache_failure_does_not_raise(self):
        def broken_factory():
            raise RuntimeError("database gone")

        provider = FakeProvider("p1", make_quote(price=500))
        service = QuoteService(broken_factory, {Market.US: [provider]}, 900, no_wait_limiter())

        quote = await service.get_quote("AAPL", "US")
        assert quote.price == 500

    @pytest.mark.asyncio
    async def test_provider_symbol_replaced_by_request_symbol(self, session_factory):
        provider = FakeProvider("ccxt", make_quote(symbol="BTC", market="CRYPTO"))
        service = QuoteService(session_factory, {Market.CRYPTO: [provider]}, 900, no_wait_limiter())

        quote = await service.get_quote("btc-usd", "crypto")
        assert quote.symbol == "BTC-USD"

        # Second lookup hits the cache under the requested key
        again = await service.get_quote("BTC-USD", "CRYPTO")
        assert again.source == "cache"
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_limiter_acquired_per_provider_call(self, session_factory):
        limiter = MagicMock()
        limiter.acquire = AsyncMock()
        chain = [FakeProvider("p1", None), FakeProvider("p2", make_quote())]
        service = QuoteService(session_factory, {Market.US: chain}, 900, limiter)

        await service.get_quote("AAPL", "US")
        assert limiter.acquire.await_count == 2

        await service.get_quote("AAPL", "US")  # cache hit
        assert limiter.acquire.await_count == 2


class TestBatchQuotes:
    @pytest.mark.asyncio
    async def test_batch_keys_and_dedup(self, session_factory):
        us = FakeProvider("us", make_quote(price=100))
        asx = FakeProvider("asx", make_quote(symbol="BHP", market="ASX", price=4500))
        service = QuoteService(
            session_factory, {Market.US: [us], Market.ASX: [asx], Market.B3: []}, 900, no_wait_limiter()
        )

        quotes = await service.batch_get_quotes([
            ("aapl", "US"),
            ("AAPL", Market.US),
            ("BHP", Market.ASX),
            ("VALE3", Market.B3),
        ])

        assert set(quotes) == {("AAPL", "US"), ("BHP", "ASX")}
        assert quotes[("BHP", "ASX")].price == 4500
        assert len(us.calls) == 1


class TestFixedDelayLimiter:
    @pytest.mark.asyncio
    async def test_first_call_does_not_wait(self):
        sleep = AsyncMock()
        limiter = FixedDelayLimiter(0.2, clock=lambda: 100.0, sleep=sleep)
        await limiter.acquire()
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_waits_remaining_delay(self):
        now = [100.0]
        sleep = AsyncMock()
        limiter = FixedDelayLimiter(0.2, clock=lambda: now[0], sleep=sleep)

        await limiter.acquire()
        now[0] = 100.05
        await limiter.acquire()

        sleep.assert_awaited_once()
        assert sleep.await_args.args[0] == pytest.approx(0.15)

    @pytest.mark.asyncio
    async def test_no_wait_after_delay_elapsed(self):
        now = [100.0]
        sleep = AsyncMock()
        limiter = FixedDelayLimiter(0.2, clock=lambda: now[0], sleep=sleep)

        await limiter.acquire()
        now[0] = 101.0
        await limiter.acquire()
        sleep.assert_not_awaited()

    def test_negative_delay_clamped(self):
        assert FixedDelayLimiter(-1).delay_seconds == 0.0


class TestProviders:
    def test_yahoo_suffixes(self):
        assert YahooFinanceProvider.ticker_symbol("BHP", Market.ASX) == "BHP.AX"
        assert YahooFinanceProvider.ticker_symbol("PETR4", Market.B3) == "PETR4.SA"
        assert YahooFinanceProvider.ticker_symbol("BHP.AX", Market.ASX) == "BHP.AX"
        assert YahooFinanceProvider.ticker_symbol("AAPL", Market.US) == "AAPL"

    @pytest.mark.asyncio
    async def test_yahoo_fetch(self):
        ticker = MagicMock()
        ticker.fast_info = {"lastPrice": 45.123, "currency": "aud"}
        with patch("folio.services.data.providers.yf.Ticker", return_value=ticker) as mock_ticker:
            quote = await YahooFinanceProvider().fetch("BHP", Market.ASX)

        mock_ticker.assert_called_once_with("BHP.AX")
        assert quote.price == 4512
        assert quote.currency == "AUD"
        assert quote.source == "yahoo_finance"

    @pytest.mark.asyncio
    async def test_yahoo_no_price(self):
        ticker = MagicMock()
        ticker.fast_info = {"lastPrice": None}
        with patch("folio.services.data.providers.yf.Ticker", return_value=ticker):
            assert await YahooFinanceProvider().fetch("NOPE", Market.US) is None

    @pytest.mark.asyncio
    async def test_alpha_vantage_fetch(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["symbol"] == "AAPL"
            assert request.url.params["function"] == "GLOBAL_QUOTE"
            return httpx.Response(200, json={"Global Quote": {"05. price": "190.5000"}})

        provider = AlphaVantageProvider("key", transport=httpx.MockTransport(handler))
        quote = await provider.fetch("AAPL", Market.US)

        assert quote.price == 19050
        assert quote.currency == "USD"
        assert quote.source == "alpha_vantage"

    @pytest.mark.asyncio
    async def test_alpha_vantage_empty_payload(self):
        provider = AlphaVantageProvider(
            "key", transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"Note": "rate limited"}))
        )
        assert await provider.fetch("AAPL", Market.US) is None

    @pytest.mark.asyncio
    async def test_alpha_vantage_http_error_raises(self):
        provider = AlphaVantageProvider("key", transport=httpx.MockTransport(lambda r: httpx.Response(503)))
        with pytest.raises(httpx.HTTPStatusError):
            await provider.fetch("AAPL", Market.US)

    @pytest.mark.asyncio
    async def test_ccxt_fetch(self):
        exchange = MagicMock()
        exchange.fetch_ticker.return_value = {"last": 64250.5}
        quote = await CCXTCryptoProvider(exchange).fetch("BTC-USD", Market.CRYPTO)

        exchange.fetch_ticker.assert_called_once_with("BTC/USDT")
        assert quote.price == 6425050
        assert quote.currency == "USD"

    def test_default_chains(self):
        chains = default_provider_chains("key")
        assert [p.name for p in chains[Market.US]] == ["alpha_vantage", "yahoo_finance"]
        assert [p.name for p in chains[Market.ASX]] == ["yahoo_finance"]
        assert [p.name for p in chains[Market.CRYPTO]] == ["ccxt_binance"]
        assert chains[Market.OTHER] == []
