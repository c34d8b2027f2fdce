"""Tests for market, estimate and record models."""

from datetime import timezone

import pytest

from core.errors import InvalidMarketDataError
from farmer.models.estimate import Confidence, Estimate
from farmer.models.market import Direction, Mechanism, MarketSnapshot, OrderBook, PolymarketMarket, to_snapshot
from farmer.models.records import DecisionAction, DecisionRecord, ResolutionOutcome
from farmer.services.strategy_engine import make_decision
from tests.factories import NOW, estimate, market


class TestMarketSnapshot:
    def test_from_manifold(self) -> None:
        m = MarketSnapshot.from_manifold({
            "id": "abc",
            "question": "Will it rain?",
            "probability": 0.25,
            "totalLiquidity": 300,
            "closeTime": 1772366400000,
            "uniqueBettorCount": 4,
            "outcomeType": "BINARY",
            "isResolved": True,
            "resolution": "MKT",
            "resolutionProbability": 0.3,
        })
        assert m.market_id == "abc"
        assert m.mechanism == Mechanism.POOLED
        assert m.close_time.tzinfo == timezone.utc
        assert m.resolution_probability == 0.3

    @pytest.mark.parametrize("probability", [-0.1, 1.5, "abc", None])
    def test_probability_outside_unit_interval_rejected(self, probability) -> None:
        with pytest.raises(InvalidMarketDataError):
            market(probability=probability)

    def test_missing_close_time_rejected(self) -> None:
        with pytest.raises(InvalidMarketDataError):
            MarketSnapshot.from_manifold({"id": "abc", "probability": 0.5})

    def test_hours_to_close(self) -> None:
        assert market().hours_to_close(NOW) == pytest.approx(72.0)


class TestPolymarketMarket:
    def test_from_gamma_with_tokens(self) -> None:
        poly = PolymarketMarket.from_gamma({
            "condition_id": "0xabc",
            "question": "Will X happen?",
            "market_slug": "will-x-happen",
            "outcomes": '["Yes", "No"]',
            "outcomePrices": '["0.35", "0.65"]',
            "tokens": [{"outcome": "No", "token_id": "t-no"}, {"outcome": "Yes", "token_id": "t-yes"}],
            "volume24hr": "2500",
            "liquidityNum": 4000,
            "end_date_iso": "2026-03-05T00:00:00Z",
        })
        assert poly.token_for(Direction.YES) == "t-yes"
        assert poly.token_for(Direction.NO) == "t-no"

        snap = to_snapshot(poly)
        assert snap.probability == 0.35
        assert snap.mechanism == Mechanism.ORDER_BOOK
        assert snap.url == "https://polymarket.com/event/will-x-happen"
        assert snap.no_price == 0.65
        assert snap.entry_prob(Direction.NO) == pytest.approx(0.35)

    def test_entry_prob_follows_no_book(self) -> None:
        snap = market(probability=0.72, no_price=0.33)
        assert snap.entry_prob(Direction.YES) == 0.72
        assert snap.entry_prob(Direction.NO) == pytest.approx(0.67)
        assert market(probability=0.72).entry_prob(Direction.NO) == 0.72

    def test_non_binary_ignored(self) -> None:
        assert PolymarketMarket.from_gamma({"outcomes": '["A", "B", "C"]', "outcomePrices": '["1", "0", "0"]'}) is None


class TestOrderBook:
    def test_sorted_levels_and_fill_price(self) -> None:
        book = OrderBook.from_clob("t", {
            "asks": [{"price": "0.55", "size": "100"}, {"price": "0.50", "size": "20"}],
            "bids": [{"price": "0.45", "size": "10"}, {"price": "0.48", "size": "5"}],
        })
        assert book.best_ask == 0.50
        assert book.best_bid == 0.48
        assert book.effective_buy_price(5) == pytest.approx(0.50)
        assert book.effective_buy_price(1000) is None


class TestEstimate:
    def test_label_parsed(self) -> None:
        assert Estimate(probability=0.4, confidence="HIGH").confidence == Confidence.HIGH

    def test_unknown_label_rejected(self) -> None:
        with pytest.raises(InvalidMarketDataError):
            Estimate(probability=0.4, confidence="certain")

    def test_probability_checked(self) -> None:
        with pytest.raises(InvalidMarketDataError):
            Estimate(probability=1.2, confidence=Confidence.LOW)


class TestRecords:
    def test_unknown_resolution_rejected(self) -> None:
        with pytest.raises(InvalidMarketDataError):
            ResolutionOutcome.parse("MAYBE")

    def test_resolution_case_insensitive(self) -> None:
        assert ResolutionOutcome.parse("cancel") == ResolutionOutcome.CANCEL

    def test_bet_action_must_match_stake(self) -> None:
        d = make_decision(market(probability=0.30), estimate(0.60), 1000)
        fields = {**d.__dict__, "stake": 0.0}
        with pytest.raises(InvalidMarketDataError):
            DecisionRecord(**fields)

    def test_skip_cannot_carry_stake(self) -> None:
        d = make_decision(market(probability=0.30), estimate(0.60), 1000)
        fields = {**d.__dict__, "action": DecisionAction.SKIP_LOW_EDGE}
        with pytest.raises(InvalidMarketDataError):
            DecisionRecord(**fields)
