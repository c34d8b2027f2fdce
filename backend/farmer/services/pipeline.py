"""
Pipeline - One entry point per operator command (scan, poly-scan, resolve, stats, monitor, sell)
"""
import importlib
from dataclasses import replace
from typing import List, Optional

from loguru import logger

from core.config import Settings
from core.errors import ConfigurationError, FarmerError
from ..models.market import MarketSnapshot, Venue, to_snapshot
from ..models.estimate import Estimator
from ..models.records import DecisionAction, DecisionRecord, ExecutionRecord, RunSummary
from ..models.calibration import CalibrationReport
from .journal import Journal
from .eligibility import (
    EligibilityConfig, filter_markets, filter_polymarket_markets, is_finance_market, is_sports_market,
)
from .strategy_engine import StrategyConfig, make_decision, error_decision
from .execution_service import ExecutionDispatcher
from .resolution_service import ResolutionService, open_positions
from .evaluation_service import CalibrationConfig, compute_calibration, format_feedback, render_stats
from .exit_service import ExitService, MonitorReport, build_monitor_report
from .market_data_service import ManifoldClient, PolymarketClient
from .clob_service import ClobConfig, ClobOrderClient
from .chain_service import ChainReader


MIN_BANKROLL = 10.0
SEARCH_LIMIT = 50


def load_estimator(path: Optional[str]) -> Estimator:
    """
    Import an estimator from "package.module:attribute". The attribute may be
    an estimator instance or a zero-argument factory returning one.
    """
    if not path:
        raise ConfigurationError("ESTIMATOR is not set (expected 'package.module:attribute')")
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ConfigurationError(f"Invalid estimator path: {path!r}")
    try:
        target = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Cannot load estimator {path!r}: {e}") from e

    estimator = target
    if isinstance(target, type) or (callable(target) and not hasattr(target, "estimate")):
        estimator = target()
    if not hasattr(estimator, "estimate"):
        raise ConfigurationError(f"{path!r} did not produce an object with an estimate() method")
    return estimator


def context_hint(question: str) -> Optional[str]:
    """Tell the estimator which structured data source applies, if any."""
    if is_finance_market(question):
        return "category: finance (market quotes available)"
    if is_sports_market(question):
        return "category: sports (bookmaker odds available)"
    return None


class Farmer:
    """
    Owns the journal and the venue clients for one process. Clients not passed
    in are built from settings on first use.
    """

    def __init__(
        self,
        settings: Settings,
        journal: Optional[Journal] = None,
        estimator: Optional[Estimator] = None,
        manifold=None,
        polymarket=None,
        clob=None,
        chain=None,
    ):
        self.settings = settings
        self.journal = journal or Journal(settings.data_dir)
        self._estimator = estimator
        self._manifold = manifold
        self._polymarket = polymarket
        self._clob = clob
        self._chain = chain
        self.calibration_config = CalibrationConfig.from_settings(settings)

    # Collaborators

    @property
    def estimator(self) -> Estimator:
        if self._estimator is None:
            self._estimator = load_estimator(self.settings.estimator)
        return self._estimator

    @property
    def manifold(self):
        if self._manifold is None:
            self._manifold = ManifoldClient.from_settings(self.settings)
        return self._manifold

    @property
    def polymarket(self):
        if self._polymarket is None:
            self._polymarket = PolymarketClient.from_settings(self.settings)
        return self._polymarket

    @property
    def clob(self):
        if self._clob is None:
            self._clob = ClobOrderClient(ClobConfig.from_settings(self.settings))
        return self._clob

    @property
    def chain(self):
        if self._chain is None:
            self._chain = ChainReader.from_settings(self.settings)
        return self._chain

    async def close(self):
        for client in (self._manifold, self._polymarket):
            if client is not None and hasattr(client, "close"):
                await client.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    # Shared helpers

    def calibration(self) -> CalibrationReport:
        return compute_calibration(self.journal.read_resolutions(), self.calibration_config)

    def feedback(self) -> Optional[str]:
        return format_feedback(self.calibration(), self.calibration_config)

    def held_market_ids(self) -> set:
        positions = open_positions(self.journal.read_executions(), self.journal.resolved_trace_ids())
        return {p.market_id for p in positions}

    def _dispatcher(self, venue: Venue) -> ExecutionDispatcher:
        if venue == Venue.POLYMARKET:
            return ExecutionDispatcher(self.journal, dry_run=self.settings.dry_run, clob=None if self.settings.dry_run else self.clob)
        return ExecutionDispatcher(self.journal, dry_run=self.settings.dry_run, manifold=self.manifold)

    async def _decide(
        self,
        market: MarketSnapshot,
        bankroll: float,
        strategy: StrategyConfig,
        feedback: Optional[str],
        token_ids=None,
    ) -> DecisionRecord:
        try:
            estimate = await self.estimator.estimate(market, context_hint(market.question), feedback)
            decision = make_decision(market, estimate, bankroll, strategy)
        except ConfigurationError:
            raise
        except Exception as e:
            decision = error_decision(market, e)
        if token_ids is not None and decision.direction is not None:
            decision = replace(decision, token_id=token_ids(decision.direction))
        self.journal.append_decision(decision)
        return decision

    @staticmethod
    def _tally(summary: RunSummary, decisions: List[DecisionRecord], executions: List[ExecutionRecord]):
        summary.attempted = len(decisions)
        summary.skipped = sum(1 for d in decisions if not d.action.is_bet)
        summary.failed = sum(1 for e in executions if e.failed)
        summary.succeeded = sum(1 for e in executions if not e.failed)
        errors = sum(1 for d in decisions if d.action == DecisionAction.SKIP_ERROR)
        summary.failed += errors
        summary.skipped -= errors

    # Commands

    async def scan(self) -> RunSummary:
        """Pooled venue: estimate, classify and bet on the fastest-resolving eligible markets."""
        s = self.settings
        summary = RunSummary(command="scan")
        logger.info(f"Mode: {'DRY RUN' if s.dry_run else 'LIVE'} | edge threshold {s.edge_threshold:.0%}")

        # Fail before any network call if the estimator is not configured
        _ = self.estimator
        feedback = self.feedback()
        if feedback:
            logger.info("Loaded calibration feedback from resolved bets")

        bankroll = await self.manifold.get_balance()
        logger.info(f"Balance: {bankroll:.0f}")
        if bankroll < MIN_BANKROLL:
            raise FarmerError(f"Balance too low to trade ({bankroll:.2f} < {MIN_BANKROLL:.0f})")

        held = self.held_market_ids()
        if held:
            logger.info(f"Skipping {len(held)} markets with existing positions")

        markets = await self.manifold.search_markets(SEARCH_LIMIT)
        candidates = [
            m for m in filter_markets(markets, EligibilityConfig.from_settings(s))
            if m.market_id not in held
        ]
        to_analyze = candidates[:s.max_markets_per_run]
        logger.info(f"Fetched {len(markets)} markets, {len(candidates)} pass filters, analyzing {len(to_analyze)}")

        strategy = StrategyConfig.from_settings(s, Venue.MANIFOLD)
        decisions = []
        for lite in to_analyze:
            try:
                market = await self.manifold.get_market(lite.market_id)
            except Exception as e:
                logger.warning(f"Failed to load market {lite.market_id}: {e}")
                decision = error_decision(lite, e)
                self.journal.append_decision(decision)
                decisions.append(decision)
                continue
            decisions.append(await self._decide(market, bankroll, strategy, feedback))

        executions = await self._dispatcher(Venue.MANIFOLD).dispatch(decisions)
        self._tally(summary, decisions, executions)
        logger.info(str(summary))
        return summary

    async def poly_scan(self) -> RunSummary:
        """Order-book venue: price against real depth, then classify with plain Kelly."""
        s = self.settings
        summary = RunSummary(command="poly-scan")
        logger.info(f"Polymarket scan - {'DRY RUN' if s.dry_run else 'LIVE'}")

        _ = self.estimator
        feedback = self.feedback()

        fetched = await self.polymarket.fetch_markets()
        filtered = filter_polymarket_markets(fetched)
        held = self.held_market_ids()
        candidates = [m for m in filtered if m.condition_id not in held]
        logger.info(f"Fetched {len(fetched)} markets, {len(filtered)} pass filters, {len(candidates)} not held")

        priced = await self.polymarket.enrich_with_effective_prices(
            candidates[:s.poly_max_markets_per_run * 2], s.poly_max_bet_amount,
        )
        to_analyze = priced[:s.poly_max_markets_per_run]

        bankroll = s.poly_max_bet_amount * 10
        strategy = StrategyConfig.from_settings(s, Venue.POLYMARKET)
        decisions = []
        for poly in to_analyze:
            try:
                market = to_snapshot(poly)
            except FarmerError as e:
                logger.warning(f"Skipping {poly.condition_id}: {e}")
                continue
            decisions.append(await self._decide(market, bankroll, strategy, feedback, token_ids=poly.token_for))

        executions = await self._dispatcher(Venue.POLYMARKET).dispatch(decisions)
        self._tally(summary, decisions, executions)
        logger.info(str(summary))
        return summary

    async def resolve(self) -> RunSummary:
        """Reconcile both venues, then snapshot the positions still open."""
        service = ResolutionService(self.journal, manifold=self.manifold, chain=self.chain)
        parts = await service.resolve_all()
        await service.record_snapshots()

        summary = RunSummary(command="resolve")
        for part in parts:
            summary.attempted += part.attempted
            summary.succeeded += part.succeeded
            summary.failed += part.failed
            summary.pending += part.pending
        logger.info(str(summary))
        return summary

    def stats(self) -> str:
        report = self.calibration()
        if report.total_resolved == 0 and report.cancelled == 0:
            return "No resolved bets yet."
        return render_stats(report, self.calibration_config)

    async def monitor(self) -> MonitorReport:
        await self.resolve()
        positions = open_positions(
            self.journal.read_executions(), self.journal.resolved_trace_ids(), venue=Venue.MANIFOLD,
        )
        if not positions:
            logger.info("No open positions to monitor.")
        report = build_monitor_report(positions, self.journal.read_snapshots())
        logger.info(
            f"Unrealized P&L: {report.unrealized_pnl:+.1f} | drift agreement "
            f"{report.agreement_rate:.0%} ({report.agreeing}/{report.with_snapshot})"
        )
        if report.verdict:
            logger.info(report.verdict)
        return report

    async def sell(self) -> RunSummary:
        return await ExitService(self.journal, self.manifold, dry_run=self.settings.dry_run).run_sell()
