"""
Strategy Engine - Turns a probability estimate into a bet or a recorded skip
"""
from datetime import datetime
from typing import Optional
from dataclasses import dataclass, field

from loguru import logger

from core.config import Settings
from ..models.market import MarketSnapshot, Venue, utcnow
from ..models.estimate import Estimate, Confidence
from ..models.records import DecisionRecord, DecisionAction, new_trace_id
from .eligibility import has_structured_data
from .sizing import (
    SizingConfig, SizingResult, calculate_edge, get_direction, size_plain, size_with_slippage,
)


@dataclass
class StrategyConfig:
    """Decision policy."""
    edge_threshold: float = 0.10
    sizing: SizingConfig = field(default_factory=SizingConfig)

    @classmethod
    def from_settings(cls, settings: Settings, venue: Venue = Venue.MANIFOLD) -> 'StrategyConfig':
        return cls(
            edge_threshold=settings.edge_threshold,
            sizing=SizingConfig.from_settings(settings, venue),
        )


def _record(
    market: MarketSnapshot,
    action: DecisionAction,
    estimate: float,
    confidence: Confidence,
    reasoning: str,
    edge: float,
    sizing: Optional[SizingResult] = None,
    direction=None,
    token_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> DecisionRecord:
    return DecisionRecord(
        trace_id=new_trace_id(),
        timestamp=now or utcnow(),
        venue=market.venue,
        market_id=market.market_id,
        question=market.question,
        market_url=market.url,
        market_prob=market.probability,
        liquidity=market.liquidity,
        close_time=market.close_time,
        bettor_count=market.bettor_count,
        estimate=estimate,
        confidence=confidence,
        reasoning=reasoning,
        edge=edge,
        direction=direction,
        kelly_fraction=sizing.kelly_fraction if sizing else 0.0,
        effective_prob=sizing.effective_prob if sizing else market.probability,
        stake=sizing.stake if sizing and action.is_bet else 0.0,
        action=action,
        token_id=token_id,
    )


def make_decision(
    market: MarketSnapshot,
    estimate: Estimate,
    bankroll: float,
    config: Optional[StrategyConfig] = None,
    token_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> DecisionRecord:
    """
    Classify one market. Gates run in order and the first failure wins:

    1. edge below threshold -> SKIP_LOW_EDGE
    2. low confidence with no finance/sports data source -> SKIP_LOW_CONFIDENCE
    3. direction + sizing: Kelly <= 0 -> SKIP_NEGATIVE_KELLY,
       stake < 1 -> SKIP_LOW_EDGE, otherwise BET

    Pooled markets are sized with slippage iteration, order-book markets with
    plain Kelly at the effective ask of the side being bought.
    """
    config = config or StrategyConfig()
    p = estimate.probability
    edge = calculate_edge(p, market.probability)

    def skip(action: DecisionAction, **kwargs) -> DecisionRecord:
        decision = _record(market, action, p, estimate.confidence, estimate.reasoning, edge,
                           token_id=token_id, now=now, **kwargs)
        logger.debug(f"{action.value} {market.market_id}: edge={edge:.3f} ({market.question[:60]})")
        return decision

    if edge < config.edge_threshold:
        return skip(DecisionAction.SKIP_LOW_EDGE)

    if estimate.confidence == Confidence.LOW and not has_structured_data(market.question):
        return skip(DecisionAction.SKIP_LOW_CONFIDENCE)

    direction = get_direction(p, market.probability)
    if market.is_pooled:
        sizing = size_with_slippage(p, market.probability, direction, bankroll, market.liquidity, config.sizing)
    else:
        sizing = size_plain(p, market.entry_prob(direction), direction, bankroll, config.sizing)

    if sizing.kelly_fraction <= 0:
        return skip(DecisionAction.SKIP_NEGATIVE_KELLY, sizing=sizing, direction=direction)
    if sizing.stake < 1:
        return skip(DecisionAction.SKIP_LOW_EDGE, sizing=sizing, direction=direction)

    decision = _record(market, DecisionAction.BET, p, estimate.confidence, estimate.reasoning, edge,
                       sizing=sizing, direction=direction, token_id=token_id, now=now)
    logger.info(
        f"BET {direction.value} {sizing.stake:.0f} on {market.market_id} "
        f"(est {p:.1%} vs mkt {market.probability:.1%}, eff {sizing.effective_prob:.1%}, "
        f"kelly {sizing.kelly_fraction:.3f}, {sizing.rounds} rounds)"
    )
    return decision


def error_decision(
    market: MarketSnapshot,
    error: Exception,
    token_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> DecisionRecord:
    """Audit record for a market whose estimate could not be obtained."""
    logger.warning(f"Estimation failed for {market.market_id}: {error}")
    return _record(
        market, DecisionAction.SKIP_ERROR,
        estimate=0.0,
        confidence=Confidence.LOW,
        reasoning=f"Error: {error}",
        edge=0.0,
        token_id=token_id,
        now=now,
    )
