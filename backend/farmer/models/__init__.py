"""
Farmer Data Models
"""
from .market import (
    Venue, Mechanism, Direction, MarketSnapshot, PolymarketMarket,
    OrderBook, OrderBookLevel, to_snapshot,
)
from .estimate import Confidence, Estimate, Estimator
from .records import (
    DecisionAction, DecisionRecord, ExecutionKind, ExecutionRecord,
    OrderPlaced, OrderFailed, ResolutionOutcome, ResolutionRecord,
    PositionSnapshot, RunSummary, new_trace_id,
)
from .calibration import CalibrationBucket, CalibrationReport, GroupStats

__all__ = [
    'Venue', 'Mechanism', 'Direction', 'MarketSnapshot', 'PolymarketMarket',
    'OrderBook', 'OrderBookLevel', 'to_snapshot',
    'Confidence', 'Estimate', 'Estimator',
    'DecisionAction', 'DecisionRecord', 'ExecutionKind', 'ExecutionRecord',
    'OrderPlaced', 'OrderFailed', 'ResolutionOutcome', 'ResolutionRecord',
    'PositionSnapshot', 'RunSummary', 'new_trace_id',
    'CalibrationBucket', 'CalibrationReport', 'GroupStats',
]
