"""
Edge & Sizing Engine - Fractional Kelly staking, plain or slippage-aware
"""
import math
from typing import List, Optional
from dataclasses import dataclass, field

from core.config import Settings
from core.errors import InvalidMarketDataError
from ..models.market import Direction, Venue


PROB_FLOOR = 0.01
PROB_CEIL = 0.99


def clamp_prob(p: float) -> float:
    return min(PROB_CEIL, max(PROB_FLOOR, p))


def calculate_edge(estimate: float, market_prob: float) -> float:
    """Absolute disagreement between our estimate and the market."""
    return abs(estimate - market_prob)


def get_direction(estimate: float, market_prob: float) -> Direction:
    """YES only when we are strictly above the market; ties go to NO."""
    return Direction.YES if estimate > market_prob else Direction.NO


def kelly_fraction(estimate: float, market_prob: float, direction: Direction) -> float:
    """
    Full Kelly fraction for a binary contract bought at `market_prob`.

    YES at price m: net odds b = (1 - m) / m, win prob p = estimate
    NO at price m:  net odds b = m / (1 - m), win prob p = 1 - estimate

    f* = (b * p - (1 - p)) / b, floored at 0.
    """
    m = clamp_prob(market_prob)
    if direction == Direction.YES:
        b = (1 - m) / m
        p = estimate
    else:
        b = m / (1 - m)
        p = 1 - estimate
    f = (b * p - (1 - p)) / b
    return max(0.0, f)


def round_stake(amount: float) -> float:
    """Round half up to the smallest tradeable unit."""
    return float(math.floor(amount + 0.5))


@dataclass
class SizingConfig:
    """Position limits applied on top of the Kelly fraction."""
    kelly_fraction: float = 0.25
    max_position_pct: float = 0.20
    max_bet_amount: float = 50.0
    max_impact_pct: float = 0.10
    max_rounds: int = 8

    @classmethod
    def from_settings(cls, settings: Settings, venue: Venue = Venue.MANIFOLD) -> 'SizingConfig':
        max_bet = settings.poly_max_bet_amount if venue == Venue.POLYMARKET else settings.max_bet_amount
        return cls(
            kelly_fraction=settings.kelly_fraction,
            max_position_pct=settings.max_position_pct,
            max_bet_amount=max_bet,
            max_impact_pct=settings.max_impact_pct,
            max_rounds=settings.slippage_max_rounds,
        )


@dataclass
class SizingResult:
    """Stake plus the Kelly fraction and fill probability it was derived at."""
    stake: float
    kelly_fraction: float
    effective_prob: float
    rounds: int = 1
    trace: List[float] = field(default_factory=list)


def size_stake(
    full_kelly: float,
    bankroll: float,
    config: SizingConfig,
    liquidity: Optional[float] = None,
) -> float:
    """
    Apply, in order: fractional Kelly, percent-of-bankroll cap, absolute cap,
    price-impact cap (pooled venues only, when `liquidity` is given), rounding,
    and a floor at 0.
    """
    stake = full_kelly * config.kelly_fraction * bankroll
    stake = min(stake, bankroll * config.max_position_pct)
    stake = min(stake, config.max_bet_amount)
    if liquidity is not None:
        stake = min(stake, config.max_impact_pct * 2 * liquidity)
    return max(0.0, round_stake(stake))


def size_plain(
    estimate: float,
    market_prob: float,
    direction: Direction,
    bankroll: float,
    config: SizingConfig,
) -> SizingResult:
    """Order-book venues: one evaluation at the quoted price."""
    f = kelly_fraction(estimate, market_prob, direction)
    stake = size_stake(f, bankroll, config) if f > 0 else 0.0
    return SizingResult(stake=stake, kelly_fraction=f, effective_prob=market_prob, trace=[stake])


def slippage_adjusted_prob(market_prob: float, stake: float, liquidity: float, direction: Direction) -> float:
    """Average fill probability after pushing `stake` through a pool of `liquidity`."""
    slippage = stake / (4 * liquidity)
    return clamp_prob(market_prob + direction.sign * slippage)


def size_with_slippage(
    estimate: float,
    market_prob: float,
    direction: Direction,
    bankroll: float,
    liquidity: float,
    config: SizingConfig,
) -> SizingResult:
    """
    Pooled venues: solve stake = size(kelly(price(stake))) by iteration.

    The first round sizes at the quoted price. Each later round re-prices at the
    current stake and moves halfway toward the re-derived stake, never upward,
    so the stake sequence is non-increasing. Stops after `max_rounds` or once
    successive stakes differ by less than one unit. A non-positive Kelly
    fraction at any round ends sizing with a zero stake.
    """
    if liquidity is None or liquidity <= 0:
        raise InvalidMarketDataError(f"pooled market needs positive liquidity, got {liquidity!r}")

    stake = 0.0
    f = 0.0
    adj_prob = market_prob
    trace: List[float] = []

    for i in range(config.max_rounds):
        adj_prob = slippage_adjusted_prob(market_prob, stake, liquidity, direction)
        f = kelly_fraction(estimate, adj_prob, direction)
        if f <= 0:
            trace.append(0.0)
            return SizingResult(stake=0.0, kelly_fraction=0.0, effective_prob=adj_prob, rounds=i + 1, trace=trace)

        candidate = size_stake(f, bankroll, config, liquidity=liquidity)
        if i == 0:
            new_stake = candidate
        else:
            new_stake = min(stake, round_stake((stake + candidate) / 2))
        trace.append(new_stake)

        if i > 0 and abs(new_stake - stake) < 1:
            stake = new_stake
            break
        stake = new_stake

    return SizingResult(stake=stake, kelly_fraction=f, effective_prob=adj_prob, rounds=len(trace), trace=trace)
