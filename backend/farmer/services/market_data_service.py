"""
Market Data Service - HTTP clients for the Manifold and Polymarket APIs
"""
import asyncio
from datetime import timedelta
from typing import Dict, List, Optional
from dataclasses import dataclass, replace

import aiohttp
from loguru import logger

from core.config import Settings
from core.errors import ConfigurationError, VenueRequestError
from core.rate_limit import RateLimiter
from core.retry import with_retry
from ..models.market import MarketSnapshot, PolymarketMarket, OrderBook, utcnow


MANIFOLD_API_BASE = "https://api.manifold.markets/v0"
POLYMARKET_GAMMA_API = "https://gamma-api.polymarket.com"
POLYMARKET_CLOB_API = "https://clob.polymarket.com"


@dataclass
class TransportConfig:
    """Timeouts and retry policy shared by the HTTP clients."""
    timeout_seconds: float = 30.0
    retry_attempts: int = 3
    retry_base_delay: float = 1.0

    @classmethod
    def from_settings(cls, settings: Settings) -> 'TransportConfig':
        return cls(
            timeout_seconds=settings.http_timeout_seconds,
            retry_attempts=settings.retry_attempts,
            retry_base_delay=settings.retry_base_delay,
        )


class _HttpClient:
    """Shared session handling: lazy session, rate limiting, retries."""

    venue = "http"

    def __init__(
        self,
        transport: Optional[TransportConfig] = None,
        rate_limiter: Optional[RateLimiter] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.transport = transport or TransportConfig()
        self.rate_limiter = rate_limiter
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.transport.timeout_seconds)
            connector = aiohttp.TCPConnector(limit=20, limit_per_host=10)
            self._session = aiohttp.ClientSession(timeout=timeout, connector=connector)
            self._owns_session = True
        return self._session

    async def close(self):
        if self._session and self._owns_session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    def _headers(self) -> Dict[str, str]:
        return {}

    async def _request_once(self, method: str, url: str, params=None, json_body=None):
        if self.rate_limiter:
            await self.rate_limiter.acquire()
        session = await self._get_session()
        try:
            async with session.request(method, url, params=params, json=json_body, headers=self._headers()) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise VenueRequestError(self.venue, f"{method} {url}: {body[:300]}", status=resp.status)
                return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise VenueRequestError(self.venue, f"{method} {url}: {e!r}") from e

    async def _request(self, method: str, url: str, params=None, json_body=None, retry: bool = True):
        result = await with_retry(
            lambda: self._request_once(method, url, params=params, json_body=json_body),
            max_attempts=self.transport.retry_attempts if retry else 1,
            base_delay=self.transport.retry_base_delay,
            description=f"{self.venue} {method} {url}",
        )
        return result.unwrap()


class ManifoldClient(_HttpClient):
    """
    Manifold REST client (pooled-liquidity venue).

    All calls go through the injected rate limiter; Manifold allows 500
    requests per minute per key.
    """

    venue = "manifold"

    def __init__(
        self,
        api_key: str = "",
        api_base: str = MANIFOLD_API_BASE,
        transport: Optional[TransportConfig] = None,
        rate_limiter: Optional[RateLimiter] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        super().__init__(transport, rate_limiter or RateLimiter(450), session)
        self.api_key = api_key
        self.api_base = api_base.rstrip('/')

    @classmethod
    def from_settings(cls, settings: Settings) -> 'ManifoldClient':
        return cls(
            api_key=settings.manifold_api_key or "",
            api_base=settings.manifold_api_base,
            transport=TransportConfig.from_settings(settings),
            rate_limiter=RateLimiter(settings.manifold_requests_per_minute),
        )

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Key {self.api_key}"} if self.api_key else {}

    def _require_key(self):
        if not self.api_key:
            raise ConfigurationError("MANIFOLD_API_KEY is required for this operation")

    async def get_me(self) -> dict:
        self._require_key()
        return await self._request("GET", f"{self.api_base}/me")

    async def get_balance(self) -> float:
        me = await self.get_me()
        return float(me.get("balance", 0) or 0)

    async def search_markets(self, limit: int = 100) -> List[MarketSnapshot]:
        """Open binary markets, most liquid first. Unparseable markets are skipped."""
        data = await self._request("GET", f"{self.api_base}/search-markets", params={
            "filter": "open",
            "contractType": "BINARY",
            "sort": "liquidity",
            "limit": str(limit),
        })
        markets = []
        for raw in data or []:
            try:
                markets.append(MarketSnapshot.from_manifold(raw))
            except Exception as e:
                logger.warning(f"Skipping Manifold market {raw.get('id')}: {e}")
        return markets

    async def get_market(self, market_id: str) -> MarketSnapshot:
        data = await self._request("GET", f"{self.api_base}/market/{market_id}")
        return MarketSnapshot.from_manifold(data)

    async def place_bet(self, market_id: str, outcome: str, amount: float) -> dict:
        """Market buy against the pool. Not retried: a lost response may still have filled."""
        self._require_key()
        return await self._request("POST", f"{self.api_base}/bet", json_body={
            "contractId": market_id,
            "outcome": outcome,
            "amount": round(amount),
        }, retry=False)

    async def sell_shares(self, market_id: str, outcome: str) -> dict:
        self._require_key()
        return await self._request("POST", f"{self.api_base}/market/{market_id}/sell", json_body={
            "outcome": outcome,
        }, retry=False)


@dataclass
class PolymarketFilter:
    """Gamma pre-filter."""
    min_volume_24h: float = 1000.0
    min_liquidity: float = 1000.0
    max_days_to_close: float = 7.0
    fetch_limit: int = 200

    @classmethod
    def from_settings(cls, settings: Settings) -> 'PolymarketFilter':
        return cls(
            min_volume_24h=settings.poly_min_volume_24h,
            min_liquidity=settings.poly_min_liquidity,
            max_days_to_close=settings.poly_max_days_to_close,
        )


class PolymarketClient(_HttpClient):
    """Read-only Gamma (market metadata) and CLOB (order books) client."""

    venue = "polymarket"

    def __init__(
        self,
        gamma_api: str = POLYMARKET_GAMMA_API,
        clob_api: str = POLYMARKET_CLOB_API,
        market_filter: Optional[PolymarketFilter] = None,
        transport: Optional[TransportConfig] = None,
        rate_limiter: Optional[RateLimiter] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        super().__init__(transport, rate_limiter, session)
        self.gamma_api = gamma_api.rstrip('/')
        self.clob_api = clob_api.rstrip('/')
        self.market_filter = market_filter or PolymarketFilter()

    @classmethod
    def from_settings(cls, settings: Settings) -> 'PolymarketClient':
        return cls(
            gamma_api=settings.gamma_api_base,
            clob_api=settings.clob_api_base,
            market_filter=PolymarketFilter.from_settings(settings),
            transport=TransportConfig.from_settings(settings),
        )

    def _headers(self) -> Dict[str, str]:
        return {"User-Agent": "market-farmer/1.0"}

    async def fetch_markets(self) -> List[PolymarketMarket]:
        """
        Active binary markets that pass the volume/liquidity floors and end
        within the configured horizon, soonest first.
        """
        data = await self._request("GET", f"{self.gamma_api}/markets", params={
            "closed": "false",
            "active": "true",
            "limit": str(self.market_filter.fetch_limit),
        })
        return self.parse_markets(data or [])

    def parse_markets(self, data: List[dict]) -> List[PolymarketMarket]:
        f = self.market_filter
        now = utcnow()
        horizon = now + timedelta(days=f.max_days_to_close)
        markets = []
        for raw in data:
            market = PolymarketMarket.from_gamma(raw)
            if market is None:
                continue
            if market.volume_24h < f.min_volume_24h or market.liquidity < f.min_liquidity:
                continue
            if market.end_date <= now or market.end_date > horizon:
                continue
            markets.append(market)
        markets.sort(key=lambda m: m.end_date)
        return markets

    async def fetch_order_book(self, token_id: str) -> OrderBook:
        data = await self._request("GET", f"{self.clob_api}/book", params={"token_id": token_id})
        return OrderBook.from_clob(token_id, data or {})

    async def enrich_with_effective_prices(
        self,
        markets: List[PolymarketMarket],
        amount: float,
    ) -> List[PolymarketMarket]:
        """
        Replace quoted prices with the average fill price for buying `amount`
        on each side. Markets neither side of which can absorb `amount` are
        dropped; on a book fetch failure the quoted prices are kept.
        """
        results = await asyncio.gather(*[self._enrich_one(m, amount) for m in markets])
        return [m for m in results if m is not None]

    async def _enrich_one(self, market: PolymarketMarket, amount: float) -> Optional[PolymarketMarket]:
        try:
            yes_book, no_book = await asyncio.gather(
                self.fetch_order_book(market.yes_token_id),
                self.fetch_order_book(market.no_token_id),
            )
        except VenueRequestError as e:
            logger.warning(f"Order book fetch failed for {market.condition_id}, keeping quoted prices: {e}")
            return market

        yes_eff = yes_book.effective_buy_price(amount)
        no_eff = no_book.effective_buy_price(amount)
        if yes_eff is None and no_eff is None:
            logger.debug(f"Dropping {market.condition_id}: no depth for {amount:.2f}")
            return None
        return replace(
            market,
            yes_price=yes_eff if yes_eff is not None else market.yes_price,
            no_price=no_eff if no_eff is not None else market.no_price,
        )
