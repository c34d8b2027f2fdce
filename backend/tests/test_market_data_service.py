"""Tests for the venue HTTP clients with the transport stubbed out."""

import asyncio
import json
from datetime import timedelta

import pytest

from core.errors import ConfigurationError, VenueRequestError
from farmer.models.market import OrderBook, PolymarketMarket, utcnow
from farmer.services.market_data_service import (
    ManifoldClient,
    PolymarketClient,
    PolymarketFilter,
    TransportConfig,
)

FAST = TransportConfig(retry_attempts=3, retry_base_delay=0.0)


def _manifold_payload(market_id: str = "abc", **kw) -> dict:
    payload = {
        "id": market_id,
        "question": "Will it snow in Denver this week?",
        "probability": 0.42,
        "totalLiquidity": 750,
        "closeTime": int((utcnow() + timedelta(days=2)).timestamp() * 1000),
        "mechanism": "cpmm-1",
        "outcomeType": "BINARY",
        "uniqueBettorCount": 9,
        "isResolved": False,
    }
    payload.update(kw)
    return payload


def _gamma_payload(condition_id: str, days: float = 2, yes: float = 0.4, volume: float = 5000, liquidity: float = 5000) -> dict:
    return {
        "conditionId": condition_id,
        "question": f"Question {condition_id}",
        "slug": condition_id,
        "outcomes": json.dumps(["Yes", "No"]),
        "outcomePrices": json.dumps([str(yes), str(round(1 - yes, 4))]),
        "clobTokenIds": json.dumps([f"{condition_id}-yes", f"{condition_id}-no"]),
        "volume24hr": volume,
        "liquidityNum": liquidity,
        "endDate": (utcnow() + timedelta(days=days)).isoformat(),
    }


class _StubManifold(ManifoldClient):
    """Replays queued responses (or errors) in place of HTTP."""

    def __init__(self, responses, **kw):
        super().__init__(transport=FAST, **kw)
        self.responses = list(responses)
        self.requests = []

    async def _request_once(self, method, url, params=None, json_body=None):
        self.requests.append((method, url, params, json_body))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class _StubPolymarket(PolymarketClient):
    def __init__(self, books, **kw):
        super().__init__(transport=FAST, **kw)
        self.books = books

    async def fetch_order_book(self, token_id):
        book = self.books[token_id]
        if isinstance(book, Exception):
            raise book
        return book


def _book(token_id: str, asks) -> OrderBook:
    return OrderBook.from_clob(token_id, {"asks": [{"price": p, "size": s} for p, s in asks], "bids": []})


# ---------------------------------------------------------------------------
# Manifold
# ---------------------------------------------------------------------------


class TestManifoldClient:
    def test_search_skips_malformed_markets(self) -> None:
        client = _StubManifold([[_manifold_payload("good"), _manifold_payload("bad", probability=1.7)]])
        markets = asyncio.run(client.search_markets(10))

        assert [m.market_id for m in markets] == ["good"]
        method, url, params, _ = client.requests[0]
        assert url.endswith("/search-markets")
        assert params["filter"] == "open"
        assert params["contractType"] == "BINARY"

    def test_transient_errors_are_retried(self) -> None:
        client = _StubManifold([VenueRequestError("manifold", "down", status=503), _manifold_payload("abc")])
        market = asyncio.run(client.get_market("abc"))
        assert market.market_id == "abc"
        assert len(client.requests) == 2

    def test_bets_are_not_retried(self) -> None:
        client = _StubManifold([VenueRequestError("manifold", "down", status=503)], api_key="k")
        with pytest.raises(VenueRequestError):
            asyncio.run(client.place_bet("abc", "YES", 12.4))
        assert len(client.requests) == 1
        assert client.requests[0][3] == {"contractId": "abc", "outcome": "YES", "amount": 12}

    def test_authenticated_calls_need_a_key(self) -> None:
        with pytest.raises(ConfigurationError):
            asyncio.run(_StubManifold([]).get_balance())

    def test_balance(self) -> None:
        client = _StubManifold([{"balance": 1234.5}], api_key="k")
        assert asyncio.run(client.get_balance()) == 1234.5
        assert client._headers() == {"Authorization": "Key k"}


# ---------------------------------------------------------------------------
# Polymarket
# ---------------------------------------------------------------------------


class TestPolymarketParsing:
    def test_filters_and_sorts(self) -> None:
        client = PolymarketClient(market_filter=PolymarketFilter(max_days_to_close=7))
        markets = client.parse_markets([
            _gamma_payload("late", days=5),
            _gamma_payload("soon", days=1),
            _gamma_payload("thin", volume=10),
            _gamma_payload("far", days=30),
            _gamma_payload("past", days=-1),
            {"conditionId": "multi", "outcomes": '["A", "B", "C"]', "outcomePrices": '["0.3", "0.3", "0.4"]'},
        ])
        assert [m.condition_id for m in markets] == ["soon", "late"]
        assert markets[0].yes_token_id == "soon-yes"


class TestEffectivePrices:
    def _market(self) -> PolymarketMarket:
        return PolymarketClient().parse_markets([_gamma_payload("c1", yes=0.40)])[0]

    def test_prices_replaced_by_fill_price(self) -> None:
        client = _StubPolymarket({
            "c1-yes": _book("c1-yes", [(0.40, 10), (0.50, 100)]),
            "c1-no": _book("c1-no", [(0.62, 100)]),
        })
        [priced] = asyncio.run(client.enrich_with_effective_prices([self._market()], 10))
        # 4.00 buys 10 shares at 0.40, 6.00 buys 12 at 0.50
        assert priced.yes_price == pytest.approx(10 / 22)
        assert priced.no_price == pytest.approx(0.62)

    def test_market_without_depth_dropped(self) -> None:
        client = _StubPolymarket({"c1-yes": _book("c1-yes", []), "c1-no": _book("c1-no", [(0.6, 1)])})
        assert asyncio.run(client.enrich_with_effective_prices([self._market()], 10)) == []

    def test_book_failure_keeps_quoted_prices(self) -> None:
        client = _StubPolymarket({
            "c1-yes": VenueRequestError("polymarket", "down", status=502),
            "c1-no": _book("c1-no", [(0.6, 100)]),
        })
        [kept] = asyncio.run(client.enrich_with_effective_prices([self._market()], 10))
        assert kept.yes_price == pytest.approx(0.40)
