"""
Record builders and in-memory venue fakes shared by the test suites.
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from farmer.models.market import Direction, Mechanism, MarketSnapshot, Venue
from farmer.models.estimate import Confidence, Estimate
from farmer.models.records import (
    ExecutionKind, ExecutionRecord, OrderFailed, OrderPlaced, PositionSnapshot,
    ResolutionOutcome, ResolutionRecord, new_trace_id,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def market(**kw) -> MarketSnapshot:
    fields = dict(
        market_id="m1",
        question="Will it rain in Lisbon on Saturday?",
        probability=0.30,
        liquidity=500.0,
        close_time=NOW + timedelta(days=3),
        venue=Venue.MANIFOLD,
        mechanism=Mechanism.POOLED,
        bettor_count=12,
    )
    fields.update(kw)
    return MarketSnapshot(**fields)


def book_market(**kw) -> MarketSnapshot:
    fields = dict(market_id="0xcond", venue=Venue.POLYMARKET, mechanism=Mechanism.ORDER_BOOK, bettor_count=0)
    fields.update(kw)
    return market(**fields)


def estimate(p: float = 0.60, confidence: Confidence = Confidence.MEDIUM, reasoning: str = "base rates") -> Estimate:
    return Estimate(probability=p, confidence=confidence, reasoning=reasoning)


def execution(
    trace_id: Optional[str] = None,
    venue: Venue = Venue.MANIFOLD,
    market_id: str = "m1",
    direction: Direction = Direction.YES,
    amount: float = 50.0,
    market_prob: float = 0.50,
    estimate: float = 0.70,
    shares: Optional[float] = 100.0,
    dry_run: bool = False,
    filled: bool = True,
    error: Optional[str] = None,
    kind: ExecutionKind = ExecutionKind.BUY,
    timestamp: datetime = NOW,
) -> ExecutionRecord:
    if error:
        result = OrderFailed(error=error)
    else:
        result = OrderPlaced(order_id="bet-1", shares=shares, filled=filled)
    return ExecutionRecord(
        trace_id=trace_id or new_trace_id(),
        timestamp=timestamp,
        venue=venue,
        kind=kind,
        market_id=market_id,
        question=f"Question for {market_id}",
        direction=direction,
        amount=amount,
        market_prob=market_prob,
        estimate=estimate,
        edge=abs(estimate - market_prob),
        dry_run=dry_run,
        result=result,
    )


def resolution(
    estimate: float = 0.70,
    direction: Direction = Direction.YES,
    won: bool = True,
    amount: float = 10.0,
    pnl: Optional[float] = None,
    outcome: Optional[ResolutionOutcome] = None,
    confidence: Confidence = Confidence.MEDIUM,
) -> ResolutionRecord:
    if outcome is None:
        yes_won = won if direction == Direction.YES else not won
        outcome = ResolutionOutcome.YES if yes_won else ResolutionOutcome.NO
    actual = 1.0 if outcome == ResolutionOutcome.YES else 0.0
    return ResolutionRecord(
        trace_id=new_trace_id(),
        resolved_at=NOW,
        venue=Venue.MANIFOLD,
        market_id="m1",
        question="q",
        outcome=outcome,
        direction=direction,
        estimate=estimate,
        market_prob_at_bet=0.5,
        edge=abs(estimate - 0.5),
        confidence=confidence,
        amount=amount,
        won=won,
        pnl=pnl if pnl is not None else (amount if won else -amount),
        brier_score=(estimate - actual) ** 2,
    )


def snapshot(position: ExecutionRecord, current_prob: float, unrealized_pnl: float = 0.0,
             timestamp: datetime = NOW) -> PositionSnapshot:
    return PositionSnapshot(
        trace_id=position.trace_id,
        timestamp=timestamp,
        market_id=position.market_id,
        question=position.question,
        direction=position.direction,
        amount=position.amount,
        estimate=position.estimate,
        entry_prob=position.market_prob,
        current_prob=current_prob,
        unrealized_pnl=unrealized_pnl,
    )


class FakeManifold:
    """Serves canned markets; records every bet and sell."""

    def __init__(self, markets: Optional[Dict[str, MarketSnapshot]] = None, balance: float = 1000.0):
        self.markets = markets or {}
        self.balance = balance
        self.bets: List[tuple] = []
        self.sells: List[tuple] = []
        self.get_market_calls = 0
        self.fail_with: Optional[Exception] = None

    async def get_balance(self) -> float:
        return self.balance

    async def search_markets(self, limit: int = 100) -> List[MarketSnapshot]:
        return list(self.markets.values())[:limit]

    async def get_market(self, market_id: str) -> MarketSnapshot:
        self.get_market_calls += 1
        return self.markets[market_id]

    async def place_bet(self, market_id: str, outcome: str, amount: float) -> dict:
        if self.fail_with is not None:
            raise self.fail_with
        self.bets.append((market_id, outcome, amount))
        return {"betId": f"bet-{len(self.bets)}", "shares": amount * 2}

    async def sell_shares(self, market_id: str, outcome: str) -> dict:
        if self.fail_with is not None:
            raise self.fail_with
        self.sells.append((market_id, outcome))
        return {"betId": f"sell-{len(self.sells)}"}


class FakeClob:
    def __init__(self, result: Optional[OrderPlaced] = None):
        self.result = result or OrderPlaced(order_id="0xorder", shares=25.0, filled=True, status="matched")
        self.orders: List[tuple] = []

    async def buy_fok(self, token_id: str, amount: float, price: float) -> OrderPlaced:
        self.orders.append((token_id, amount, price))
        return self.result


class FakeChain:
    """Payout vectors keyed by condition id. Missing conditions are unsettled."""

    def __init__(self, payouts: Optional[Dict[str, tuple]] = None):
        self.payouts = payouts or {}
        self.denominator_calls = 0

    async def payout_denominator(self, condition_id: str) -> int:
        self.denominator_calls += 1
        if condition_id not in self.payouts:
            return 0
        yes, no = self.payouts[condition_id]
        return yes + no

    async def payout_numerators(self, condition_id: str):
        return self.payouts[condition_id]


class FakeEstimator:
    def __init__(self, probability: float = 0.60, confidence: Confidence = Confidence.MEDIUM,
                 error: Optional[Exception] = None):
        self.probability = probability
        self.confidence = confidence
        self.error = error
        self.calls: List[tuple] = []

    async def estimate(self, market, context=None, feedback=None) -> Estimate:
        self.calls.append((market.market_id, context, feedback))
        if self.error is not None:
            raise self.error
        return Estimate(probability=self.probability, confidence=self.confidence, reasoning="fake")
