"""
Resolution Service - Reconciles open executions against each venue's source of truth

- Manifold: polled market status (YES / NO / MKT / CANCEL)
- Polymarket: Conditional Token Framework payouts read on-chain
"""
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from loguru import logger

from ..models.market import Venue, utcnow
from ..models.estimate import Confidence
from ..models.records import (
    DecisionRecord, ExecutionKind, ExecutionRecord, PositionSnapshot,
    ResolutionOutcome, ResolutionRecord, RunSummary,
)
from .journal import Journal
from .pnl import (
    actual_value, brier_contribution, compute_realized_pnl, compute_unrealized_pnl, compute_won,
)


def sold_trace_ids(executions: List[ExecutionRecord]) -> Set[str]:
    return {
        e.trace_id for e in executions
        if e.kind == ExecutionKind.SELL and not e.dry_run and not e.failed
    }


def open_positions(
    executions: List[ExecutionRecord],
    resolved_ids: Set[str],
    venue: Optional[Venue] = None,
) -> List[ExecutionRecord]:
    """Live, filled buys that are neither resolved nor sold. One per trace id."""
    sold = sold_trace_ids(executions)
    seen: Set[str] = set()
    positions = []
    for e in executions:
        if not e.holds_position:
            continue
        if venue is not None and e.venue != venue:
            continue
        if e.trace_id in resolved_ids or e.trace_id in sold or e.trace_id in seen:
            continue
        seen.add(e.trace_id)
        positions.append(e)
    return positions


def build_resolution(
    execution: ExecutionRecord,
    outcome: ResolutionOutcome,
    confidence: Confidence = Confidence.UNKNOWN,
    resolution_probability: Optional[float] = None,
    resolved_at: Optional[datetime] = None,
) -> ResolutionRecord:
    """Turn a settled outcome into a resolution record with P&L and Brier score."""
    if outcome == ResolutionOutcome.CANCEL:
        won, pnl, brier = False, 0.0, 0.0
    else:
        actual = actual_value(outcome, resolution_probability)
        won = compute_won(execution.direction, outcome, actual)
        pnl = compute_realized_pnl(
            execution.direction,
            execution.amount,
            execution.market_prob,
            outcome,
            won,
            shares=execution.shares,
            resolution_probability=resolution_probability,
        )
        brier = brier_contribution(execution.estimate, outcome, actual)

    return ResolutionRecord(
        trace_id=execution.trace_id,
        resolved_at=resolved_at or utcnow(),
        venue=execution.venue,
        market_id=execution.market_id,
        question=execution.question,
        outcome=outcome,
        resolution_probability=resolution_probability if outcome == ResolutionOutcome.MKT else None,
        direction=execution.direction,
        estimate=execution.estimate,
        market_prob_at_bet=execution.market_prob,
        edge=execution.edge,
        confidence=confidence,
        amount=execution.amount,
        won=won,
        pnl=pnl,
        brier_score=brier,
    )


class ResolutionService:
    """
    Appends at most one ResolutionRecord per trace id. Already-resolved trace ids
    are read back from the journal on every run, so re-running is a no-op until
    a venue reports a new resolution. A failure on one position is logged and
    retried on the next run.
    """

    def __init__(self, journal: Journal, manifold=None, chain=None):
        self.journal = journal
        self.manifold = manifold
        self.chain = chain

    def _load(self) -> Tuple[List[ExecutionRecord], Set[str], Dict[str, DecisionRecord]]:
        executions = self.journal.read_executions()
        resolved = self.journal.resolved_trace_ids()
        decisions = {d.trace_id: d for d in self.journal.read_decisions()}
        return executions, resolved, decisions

    async def resolve_all(self) -> List[RunSummary]:
        summaries = []
        if self.manifold is not None:
            summaries.append(await self.resolve_manifold())
        if self.chain is not None:
            summaries.append(await self.resolve_polymarket())
        return summaries

    async def resolve_manifold(self) -> RunSummary:
        summary = RunSummary(command="resolve:manifold")
        executions, resolved, decisions = self._load()
        pending = open_positions(executions, resolved, venue=Venue.MANIFOLD)
        logger.info(f"Found {len(pending)} unresolved Manifold bets to check")

        for trade in pending:
            summary.attempted += 1
            try:
                market = await self.manifold.get_market(trade.market_id)
                if not market.is_resolved or not market.resolution:
                    summary.pending += 1
                    continue
                outcome = ResolutionOutcome.parse(market.resolution)
                record = build_resolution(
                    trade,
                    outcome,
                    confidence=self._confidence(decisions, trade.trace_id),
                    resolution_probability=market.resolution_probability,
                )
            except Exception as e:
                summary.failed += 1
                logger.warning(f"Failed to check trace={trade.trace_id} venue=manifold market={trade.market_id}: {e}")
                continue

            self._commit(record, resolved)
            summary.succeeded += 1

        logger.info(str(summary))
        return summary

    async def resolve_polymarket(self) -> RunSummary:
        summary = RunSummary(command="resolve:polymarket")
        executions, resolved, decisions = self._load()
        pending = open_positions(executions, resolved, venue=Venue.POLYMARKET)
        logger.info(f"Checking {len(pending)} unresolved Polymarket bets on-chain")

        # One RPC round per condition per run
        cache: Dict[str, Optional[ResolutionOutcome]] = {}

        for trade in pending:
            summary.attempted += 1
            try:
                if trade.market_id not in cache:
                    cache[trade.market_id] = await self.chain_outcome(trade.market_id)
                outcome = cache[trade.market_id]
                if outcome is None:
                    summary.pending += 1
                    continue
                record = build_resolution(trade, outcome, confidence=self._confidence(decisions, trade.trace_id))
            except Exception as e:
                summary.failed += 1
                logger.warning(f"Failed to check trace={trade.trace_id} venue=polymarket condition={trade.market_id}: {e}")
                continue

            self._commit(record, resolved)
            summary.succeeded += 1

        logger.info(str(summary))
        return summary

    async def chain_outcome(self, condition_id: str) -> Optional[ResolutionOutcome]:
        """None while unsettled; otherwise the side with the strictly larger numerator (ties go to NO)."""
        denominator = await self.chain.payout_denominator(condition_id)
        if int(denominator) == 0:
            return None
        yes, no = await self.chain.payout_numerators(condition_id)
        return ResolutionOutcome.YES if yes > no else ResolutionOutcome.NO

    def _commit(self, record: ResolutionRecord, resolved: Set[str]):
        self.journal.append_resolution(record)
        resolved.add(record.trace_id)
        symbol = "+" if record.won else "-"
        logger.info(
            f"  {symbol} {record.question[:60]} -> {record.outcome.value} | PnL: {record.pnl:+.2f}"
        )

    @staticmethod
    def _confidence(decisions: Dict[str, DecisionRecord], trace_id: str) -> Confidence:
        decision = decisions.get(trace_id)
        return decision.confidence if decision else Confidence.UNKNOWN

    async def record_snapshots(self) -> int:
        """Mark every open Manifold position to market. Failures are skipped."""
        if self.manifold is None:
            return 0
        executions = self.journal.read_executions()
        positions = open_positions(executions, self.journal.resolved_trace_ids(), venue=Venue.MANIFOLD)
        if not positions:
            return 0

        logger.info(f"Recording snapshots for {len(positions)} open positions")
        recorded = 0
        for trade in positions:
            try:
                market = await self.manifold.get_market(trade.market_id)
            except Exception as e:
                logger.debug(f"Snapshot skipped for trace={trade.trace_id}: {e}")
                continue
            if market.is_resolved:
                continue
            self.journal.append_snapshot(PositionSnapshot(
                trace_id=trade.trace_id,
                timestamp=utcnow(),
                market_id=trade.market_id,
                question=trade.question,
                direction=trade.direction,
                amount=trade.amount,
                estimate=trade.estimate,
                entry_prob=trade.market_prob,
                current_prob=market.probability,
                unrealized_pnl=compute_unrealized_pnl(
                    trade.direction, trade.amount, trade.market_prob, market.probability, trade.shares,
                ),
            ))
            recorded += 1

        logger.info(f"Recorded {recorded} snapshots")
        return recorded
