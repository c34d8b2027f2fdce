"""
Execution Service - Routes BET decisions to the right venue and journals every attempt
"""
from typing import List, Optional

from loguru import logger

from ..models.market import Direction, Venue, utcnow
from ..models.records import (
    DecisionRecord, ExecutionRecord, ExecutionResult, OrderPlaced, OrderFailed,
)
from .journal import Journal
from .market_data_service import ManifoldClient
from .clob_service import ClobOrderClient


DRY_RUN_ORDER_ID = "dry-run"


def order_price(decision: DecisionRecord) -> float:
    """
    Worst acceptable price for the side being bought. `effective_prob` is the
    YES-space entry price, so for NO it is one minus the NO-side ask.
    """
    if decision.direction == Direction.YES:
        return round(decision.effective_prob, 6)
    return round(1 - decision.effective_prob, 6)


class ExecutionDispatcher:
    """
    Places BET decisions and converts every outcome (fill, no-fill, rejection,
    transport failure) into exactly one ExecutionRecord. Never raises for a
    per-order failure; callers inspect `record.failed`.
    """

    def __init__(
        self,
        journal: Journal,
        dry_run: bool = True,
        manifold: Optional[ManifoldClient] = None,
        clob: Optional[ClobOrderClient] = None,
    ):
        self.journal = journal
        self.dry_run = dry_run
        self.manifold = manifold
        self.clob = clob

    async def dispatch(self, decisions: List[DecisionRecord]) -> List[ExecutionRecord]:
        executions = []
        for decision in decisions:
            if not decision.action.is_bet:
                continue
            executions.append(await self.execute(decision))
        return executions

    async def execute(self, decision: DecisionRecord) -> ExecutionRecord:
        if self.dry_run:
            logger.info(
                f"[DRY RUN] Would bet {decision.stake:.0f} on {decision.direction.value} "
                f"for: {decision.question[:60]}"
            )
            result: ExecutionResult = OrderPlaced(order_id=DRY_RUN_ORDER_ID, status="dry-run")
        else:
            result = await self._place(decision)

        record = ExecutionRecord(
            trace_id=decision.trace_id,
            timestamp=utcnow(),
            venue=decision.venue,
            market_id=decision.market_id,
            question=decision.question,
            direction=decision.direction,
            amount=decision.stake,
            market_prob=decision.effective_prob,
            estimate=decision.estimate,
            edge=decision.edge,
            dry_run=self.dry_run,
            result=result,
        )
        self.journal.append_execution(record)
        return record

    async def _place(self, decision: DecisionRecord) -> ExecutionResult:
        try:
            if decision.venue == Venue.POLYMARKET:
                result = await self._place_polymarket(decision)
            else:
                result = await self._place_manifold(decision)
        except Exception as e:
            logger.error(
                f"Order failed trace={decision.trace_id} venue={decision.venue.value} "
                f"market={decision.market_id}: {e}"
            )
            return OrderFailed(error=str(e))

        if isinstance(result, OrderPlaced) and result.filled:
            logger.info(
                f"Placed {decision.stake:.0f} on {decision.direction.value} - "
                f"{decision.question[:60]} (order {result.order_id}, shares {result.shares})"
            )
        elif isinstance(result, OrderPlaced):
            logger.info(f"No fill trace={decision.trace_id} ({result.status})")
        return result

    async def _place_manifold(self, decision: DecisionRecord) -> ExecutionResult:
        if self.manifold is None:
            return OrderFailed(error="no Manifold client configured")
        resp = await self.manifold.place_bet(decision.market_id, decision.direction.value, decision.stake)
        bet_id = resp.get("betId")
        if not bet_id:
            return OrderFailed(error=f"bet response without betId: {resp}")
        shares = resp.get("shares")
        return OrderPlaced(
            order_id=bet_id,
            shares=float(shares) if shares is not None else None,
            filled=True,
            status="filled",
        )

    async def _place_polymarket(self, decision: DecisionRecord) -> ExecutionResult:
        if self.clob is None:
            return OrderFailed(error="no CLOB client configured")
        if not decision.token_id:
            return OrderFailed(error="decision has no token id")
        return await self.clob.buy_fok(decision.token_id, decision.stake, order_price(decision))
