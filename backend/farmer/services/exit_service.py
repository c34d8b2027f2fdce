"""
Exit Service - Sell advisor and drift monitor for open pooled-venue positions
"""
from typing import Dict, List, Optional
from dataclasses import dataclass
from enum import Enum

from loguru import logger

from ..models.market import Direction, MarketSnapshot, Venue, utcnow
from ..models.records import (
    ExecutionKind, ExecutionRecord, OrderFailed, OrderPlaced, PositionSnapshot, RunSummary,
)
from .journal import Journal
from .pnl import compute_max_payout, compute_unrealized_pnl
from .resolution_service import open_positions


class ExitReason(str, Enum):
    TAKE_PROFIT = "TAKE_PROFIT"
    STOP_LOSS = "STOP_LOSS"
    NEAR_CERTAIN_LOSS = "NEAR_CERTAIN_LOSS"


@dataclass
class ExitConfig:
    take_profit_ratio: float = 0.70   # Share of max payout already captured
    stop_loss_ratio: float = 0.50     # Share of stake lost
    near_certain: float = 0.05        # Price this close to 0 / 1 against us
    min_monitor_positions: int = 5
    drift_warn_below: float = 0.40
    drift_praise_above: float = 0.70


@dataclass
class PositionValuation:
    position: ExecutionRecord
    current_prob: float
    unrealized_pnl: float
    max_payout: float
    reason: Optional[ExitReason] = None

    @property
    def payout_ratio(self) -> float:
        return self.unrealized_pnl / self.max_payout if self.max_payout > 0 else 0.0


def value_position(position: ExecutionRecord, current_prob: float, config: Optional[ExitConfig] = None) -> PositionValuation:
    """Mark a position to market and decide whether to exit. Later rules take precedence."""
    config = config or ExitConfig()
    unrealized = compute_unrealized_pnl(
        position.direction, position.amount, position.market_prob, current_prob, position.shares,
    )
    max_payout = compute_max_payout(position.direction, position.amount, position.market_prob, position.shares)
    valuation = PositionValuation(position, current_prob, unrealized, max_payout)

    reason = None
    if valuation.payout_ratio >= config.take_profit_ratio:
        reason = ExitReason.TAKE_PROFIT
    if unrealized < -position.amount * config.stop_loss_ratio:
        reason = ExitReason.STOP_LOSS
    if position.direction == Direction.YES and current_prob < config.near_certain:
        reason = ExitReason.NEAR_CERTAIN_LOSS
    if position.direction == Direction.NO and current_prob > 1 - config.near_certain:
        reason = ExitReason.NEAR_CERTAIN_LOSS
    valuation.reason = reason
    return valuation


class ExitService:
    """Evaluates open Manifold positions and sells the ones that hit an exit rule."""

    def __init__(self, journal: Journal, manifold, dry_run: bool = True, config: Optional[ExitConfig] = None):
        self.journal = journal
        self.manifold = manifold
        self.dry_run = dry_run
        self.config = config or ExitConfig()

    async def run_sell(self) -> RunSummary:
        summary = RunSummary(command="sell")
        positions = open_positions(
            self.journal.read_executions(), self.journal.resolved_trace_ids(), venue=Venue.MANIFOLD,
        )
        if not positions:
            logger.info("No open positions to evaluate.")
            return summary

        logger.info(f"Evaluating {len(positions)} open positions")
        candidates: List[PositionValuation] = []
        for pos in positions:
            try:
                market: MarketSnapshot = await self.manifold.get_market(pos.market_id)
            except Exception as e:
                summary.failed += 1
                logger.error(f"Error checking trace={pos.trace_id} market={pos.market_id}: {e}")
                continue
            if market.is_resolved:
                logger.info(f"  {pos.question[:50]} already resolved ({market.resolution}), skip sell")
                summary.skipped += 1
                continue

            valuation = value_position(pos, market.probability, self.config)
            if valuation.reason is None:
                summary.skipped += 1
                logger.info(
                    f"  HOLD: {pos.question[:50]} | {pos.direction.value} {pos.amount:.0f} | "
                    f"{valuation.unrealized_pnl:+.1f} ({valuation.payout_ratio * 100:.0f}% of max)"
                )
            else:
                candidates.append(valuation)

        for c in candidates:
            summary.attempted += 1
            logger.info(
                f"  SELL: {c.position.question[:50]} | {c.position.direction.value} {c.position.amount:.0f} | "
                f"{c.unrealized_pnl:+.1f} | {c.reason.value}"
            )
            if self.dry_run:
                summary.pending += 1
                continue
            if await self._sell(c):
                summary.succeeded += 1
            else:
                summary.failed += 1

        if self.dry_run and candidates:
            logger.info(f"[DRY RUN] Would sell {len(candidates)} positions.")
        logger.info(str(summary))
        return summary

    async def _sell(self, c: PositionValuation) -> bool:
        pos = c.position
        try:
            resp = await self.manifold.sell_shares(pos.market_id, pos.direction.value)
            result = OrderPlaced(order_id=str((resp or {}).get("betId") or "sold"), status=c.reason.value)
        except Exception as e:
            logger.error(f"Failed to sell trace={pos.trace_id} market={pos.market_id}: {e}")
            result = OrderFailed(error=str(e))

        self.journal.append_execution(ExecutionRecord(
            trace_id=pos.trace_id,
            timestamp=utcnow(),
            venue=pos.venue,
            kind=ExecutionKind.SELL,
            market_id=pos.market_id,
            question=pos.question,
            direction=pos.direction,
            amount=pos.amount,
            market_prob=c.current_prob,
            estimate=pos.estimate,
            edge=pos.edge,
            dry_run=False,
            result=result,
        ))
        return isinstance(result, OrderPlaced)


@dataclass
class MonitorReport:
    positions: int
    with_snapshot: int
    unrealized_pnl: float
    agreeing: int
    verdict: Optional[str] = None

    @property
    def agreement_rate(self) -> float:
        return self.agreeing / self.with_snapshot if self.with_snapshot else 0.0

    def to_dict(self) -> dict:
        return {
            'positions': self.positions,
            'with_snapshot': self.with_snapshot,
            'unrealized_pnl': round(self.unrealized_pnl, 2),
            'agreement_rate': round(self.agreement_rate, 4),
            'verdict': self.verdict,
        }


def latest_snapshots(snapshots: List[PositionSnapshot]) -> Dict[str, PositionSnapshot]:
    latest: Dict[str, PositionSnapshot] = {}
    for s in snapshots:
        current = latest.get(s.trace_id)
        if current is None or s.timestamp > current.timestamp:
            latest[s.trace_id] = s
    return latest


def build_monitor_report(
    positions: List[ExecutionRecord],
    snapshots: List[PositionSnapshot],
    config: Optional[ExitConfig] = None,
) -> MonitorReport:
    """
    Aggregate drift for open positions from their most recent snapshot.
    Drift is measured against the entry price of the execution.
    """
    config = config or ExitConfig()
    latest = latest_snapshots(snapshots)
    total_pnl = 0.0
    counted = 0
    agreeing = 0
    for pos in positions:
        snap = latest.get(pos.trace_id)
        if snap is None:
            continue
        drift = (snap.current_prob - pos.market_prob) * pos.direction.sign
        total_pnl += snap.unrealized_pnl
        counted += 1
        if drift > 0:
            agreeing += 1
        logger.info(
            f"  {pos.direction.value} {pos.question[:50]} | {snap.unrealized_pnl:+.1f} | drift: {drift * 100:+.1f}pts"
        )

    report = MonitorReport(positions=len(positions), with_snapshot=counted, unrealized_pnl=total_pnl, agreeing=agreeing)
    if counted >= config.min_monitor_positions:
        if report.agreement_rate < config.drift_warn_below:
            report.verdict = "WARNING: Markets consistently moving against estimates. Consider being less contrarian."
        elif report.agreement_rate > config.drift_praise_above:
            report.verdict = "Strong signal: markets confirming estimates."
    return report
