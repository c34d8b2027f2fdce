"""Tests for the operator commands wired end to end against fakes."""

import asyncio
from datetime import timedelta

import pytest

from core.errors import ConfigurationError, FarmerError
from farmer.models.estimate import Confidence
from farmer.models.market import Direction, PolymarketMarket, utcnow
from farmer.models.records import DecisionAction
from farmer.services.pipeline import Farmer, context_hint, load_estimator
from tests.factories import FakeChain, FakeClob, FakeEstimator, FakeManifold, execution, market, resolution


def _open_market(market_id: str, **kw):
    fields = dict(market_id=market_id, probability=0.30, close_time=utcnow() + timedelta(days=2))
    fields.update(kw)
    return market(**fields)


class _FakePolymarket:
    def __init__(self, markets):
        self.markets = markets
        self.enrich_calls = []

    async def fetch_markets(self):
        return self.markets

    async def enrich_with_effective_prices(self, markets, amount):
        self.enrich_calls.append((len(markets), amount))
        return markets


def _poly(condition_id: str, yes_price: float = 0.30) -> PolymarketMarket:
    return PolymarketMarket(
        condition_id=condition_id,
        question=f"Will {condition_id} happen?",
        slug=condition_id,
        yes_price=yes_price,
        no_price=1 - yes_price,
        yes_token_id=f"{condition_id}-yes",
        no_token_id=f"{condition_id}-no",
        volume_24h=5000,
        liquidity=5000,
        end_date=utcnow() + timedelta(days=2),
    )


# ---------------------------------------------------------------------------
# Estimator loading
# ---------------------------------------------------------------------------


class TestLoadEstimator:
    def test_missing_path(self) -> None:
        with pytest.raises(ConfigurationError):
            load_estimator(None)

    def test_malformed_path(self) -> None:
        with pytest.raises(ConfigurationError):
            load_estimator("tests.factories")

    def test_factory(self) -> None:
        est = load_estimator("tests.factories:FakeEstimator")
        assert isinstance(est, FakeEstimator)

    def test_unknown_attribute(self) -> None:
        with pytest.raises(ConfigurationError):
            load_estimator("tests.factories:Nope")


class TestContextHint:
    def test_categories(self) -> None:
        assert context_hint("Will NVDA close above $150?").startswith("category: finance")
        assert context_hint("NBA: Will the Lakers beat the Celtics?").startswith("category: sports")
        assert context_hint("Will it rain in Lisbon?") is None


# ---------------------------------------------------------------------------
# scan
# ---------------------------------------------------------------------------


class TestScan:
    def test_dry_run_journals_everything(self, test_settings) -> None:
        manifold = FakeManifold({"a": _open_market("a"), "b": _open_market("b", bettor_count=0)})
        estimator = FakeEstimator(0.60)
        farmer = Farmer(test_settings, estimator=estimator, manifold=manifold)

        summary = asyncio.run(farmer.scan())

        decisions = farmer.journal.read_decisions()
        assert [d.market_id for d in decisions] == ["a"]
        assert decisions[0].action == DecisionAction.BET
        assert summary.attempted == 1
        assert summary.succeeded == 1
        assert manifold.bets == []
        assert farmer.journal.read_executions()[0].dry_run

    def test_estimator_error_becomes_skip(self, test_settings) -> None:
        manifold = FakeManifold({"a": _open_market("a")})
        farmer = Farmer(test_settings, estimator=FakeEstimator(error=RuntimeError("model down")), manifold=manifold)

        summary = asyncio.run(farmer.scan())

        [decision] = farmer.journal.read_decisions()
        assert decision.action == DecisionAction.SKIP_ERROR
        assert summary.failed == 1
        assert farmer.journal.read_executions() == []

    def test_held_markets_skipped(self, test_settings) -> None:
        manifold = FakeManifold({"a": _open_market("a")})
        farmer = Farmer(test_settings, estimator=FakeEstimator(), manifold=manifold)
        farmer.journal.append_execution(execution(market_id="a"))

        asyncio.run(farmer.scan())

        assert farmer.journal.read_decisions() == []

    def test_low_balance_aborts(self, test_settings) -> None:
        farmer = Farmer(test_settings, estimator=FakeEstimator(), manifold=FakeManifold(balance=5))
        with pytest.raises(FarmerError):
            asyncio.run(farmer.scan())

    def test_feedback_reaches_estimator(self, test_settings) -> None:
        estimator = FakeEstimator(0.60)
        farmer = Farmer(test_settings, estimator=estimator, manifold=FakeManifold({"a": _open_market("a")}))
        for _ in range(11):
            farmer.journal.append_resolution(resolution())

        asyncio.run(farmer.scan())

        _, _, feedback = estimator.calls[0]
        assert feedback.startswith("## Your Past Performance")

    def test_live_run_places_bets(self, test_settings) -> None:
        manifold = FakeManifold({"a": _open_market("a")})
        farmer = Farmer(test_settings.model_copy(update={"dry_run": False}),
                        estimator=FakeEstimator(0.60), manifold=manifold)

        asyncio.run(farmer.scan())

        assert len(manifold.bets) == 1
        assert farmer.journal.read_executions()[0].holds_position


# ---------------------------------------------------------------------------
# poly-scan
# ---------------------------------------------------------------------------


class TestPolyScan:
    def test_token_id_attached_to_bet_side(self, test_settings) -> None:
        polymarket = _FakePolymarket([_poly("c1", 0.70), _poly("c2", 0.99)])
        farmer = Farmer(test_settings, estimator=FakeEstimator(0.40), polymarket=polymarket)

        asyncio.run(farmer.poly_scan())

        [decision] = farmer.journal.read_decisions()
        assert decision.market_id == "c1"
        assert decision.direction == Direction.NO
        assert decision.token_id == "c1-no"
        assert polymarket.enrich_calls == [(1, test_settings.poly_max_bet_amount)]

    def test_live_no_order_uses_no_book_price(self, test_settings) -> None:
        priced = _poly("c1", 0.72)
        priced.no_price = 0.33
        clob = FakeClob()
        farmer = Farmer(test_settings.model_copy(update={"dry_run": False}), estimator=FakeEstimator(0.40),
                        polymarket=_FakePolymarket([priced]), clob=clob)

        asyncio.run(farmer.poly_scan())

        [(token_id, _, price)] = clob.orders
        assert token_id == "c1-no"
        assert price == pytest.approx(0.33)
        [trade] = farmer.journal.read_executions()
        assert trade.market_prob == pytest.approx(0.67)

    def test_low_confidence_skip(self, test_settings) -> None:
        farmer = Farmer(test_settings, estimator=FakeEstimator(0.60, Confidence.LOW),
                        polymarket=_FakePolymarket([_poly("c1")]))
        asyncio.run(farmer.poly_scan())
        assert farmer.journal.read_decisions()[0].action == DecisionAction.SKIP_LOW_CONFIDENCE


# ---------------------------------------------------------------------------
# resolve / stats / monitor
# ---------------------------------------------------------------------------


class TestReporting:
    def test_resolve_aggregates_both_venues(self, test_settings) -> None:
        resolved = market(market_id="m1", probability=0.99, is_resolved=True, resolution="YES")
        farmer = Farmer(test_settings, manifold=FakeManifold({"m1": resolved}), chain=FakeChain({"0xc": (1, 0)}))
        farmer.journal.append_execution(execution(trace_id="m", market_id="m1"))

        summary = asyncio.run(farmer.resolve())

        assert summary.command == "resolve"
        assert summary.succeeded == 1
        assert farmer.journal.resolved_trace_ids() == {"m"}

    def test_stats_without_resolutions(self, test_settings) -> None:
        assert Farmer(test_settings).stats() == "No resolved bets yet."

    def test_stats_table(self, test_settings) -> None:
        farmer = Farmer(test_settings)
        farmer.journal.append_resolution(resolution())
        assert farmer.stats().startswith("=== Calibration Report (1 resolved")

    def test_monitor_snapshots_open_positions(self, test_settings) -> None:
        manifold = FakeManifold({"m1": market(market_id="m1", probability=0.8)})
        farmer = Farmer(test_settings, manifold=manifold, chain=FakeChain())
        farmer.journal.append_execution(execution(trace_id="t1", market_id="m1", market_prob=0.5))

        report = asyncio.run(farmer.monitor())

        assert report.positions == 1
        assert report.with_snapshot == 1
        assert report.agreeing == 1
