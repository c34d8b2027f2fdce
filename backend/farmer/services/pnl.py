"""
Outcome and P&L arithmetic shared by the reconciler and the exit advisor.

`market_prob` / `entry_prob` is always the YES probability at entry. When the
filled share count is known it is authoritative; the price-based formulas are
a fallback for positions whose share count was never reported.
"""
from typing import Optional

from ..models.market import Direction
from ..models.records import ResolutionOutcome


def compute_won(direction: Direction, outcome: ResolutionOutcome, actual: float) -> bool:
    """
    Binary outcomes: the bet side matches. Partial (MKT) outcomes: YES wins
    above 0.5, NO wins at or below it. CANCEL never wins.
    """
    if outcome == ResolutionOutcome.CANCEL:
        return False
    if outcome == ResolutionOutcome.MKT:
        return (direction == Direction.YES) == (actual > 0.5)
    return direction.value == outcome.value


def actual_value(outcome: ResolutionOutcome, resolution_probability: Optional[float] = None) -> float:
    """Realized YES value used for Brier scoring."""
    if outcome == ResolutionOutcome.YES:
        return 1.0
    if outcome == ResolutionOutcome.NO:
        return 0.0
    if outcome == ResolutionOutcome.MKT:
        return resolution_probability if resolution_probability is not None else 0.5
    return 0.0


def brier_contribution(estimate: float, outcome: ResolutionOutcome, actual: float) -> float:
    if outcome == ResolutionOutcome.CANCEL:
        return 0.0
    return (estimate - actual) ** 2


def compute_realized_pnl(
    direction: Direction,
    amount: float,
    market_prob: float,
    outcome: ResolutionOutcome,
    won: bool,
    shares: Optional[float] = None,
    resolution_probability: Optional[float] = None,
) -> float:
    if outcome == ResolutionOutcome.CANCEL:
        return 0.0

    if outcome == ResolutionOutcome.MKT:
        p = resolution_probability if resolution_probability is not None else 0.5
        if shares:
            return shares * p - amount if direction == Direction.YES else shares * (1 - p) - amount
        if direction == Direction.YES:
            return amount * (p - market_prob) / market_prob
        return amount * (market_prob - p) / (1 - market_prob)

    if shares:
        return shares - amount if won else -amount
    if not won:
        return -amount
    if direction == Direction.YES:
        return amount * (1 - market_prob) / market_prob
    return amount * market_prob / (1 - market_prob)


def compute_unrealized_pnl(
    direction: Direction,
    amount: float,
    entry_prob: float,
    current_prob: float,
    shares: Optional[float] = None,
) -> float:
    """Mark-to-market value of a position minus its cost."""
    if shares:
        if direction == Direction.YES:
            return shares * current_prob - amount
        return shares * (1 - current_prob) - amount
    if direction == Direction.YES:
        return amount * (current_prob - entry_prob) / entry_prob
    return amount * (entry_prob - current_prob) / (1 - entry_prob)


def compute_max_payout(
    direction: Direction,
    amount: float,
    entry_prob: float,
    shares: Optional[float] = None,
) -> float:
    """Profit if the position resolves in our favour."""
    if shares:
        return shares - amount
    if direction == Direction.YES:
        return amount * (1 - entry_prob) / entry_prob
    return amount * entry_prob / (1 - entry_prob)
