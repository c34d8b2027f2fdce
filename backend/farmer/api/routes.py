"""
API Routes for the Market Farmer journal (read-only)
"""
from typing import Dict, List, Optional
from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel
from loguru import logger

from ..models.market import Venue
from ..services.journal import Journal
from ..services.resolution_service import open_positions
from ..services.evaluation_service import CalibrationConfig, compute_calibration, format_feedback
from ..services.exit_service import build_monitor_report

router = APIRouter(prefix="/farmer", tags=["farmer"])


# ============================================================================
# Response Models
# ============================================================================

class GroupStatsResponse(BaseModel):
    count: int
    win_rate: float
    avg_brier: float
    roi: float
    total_pnl: float
    total_staked: float


class BucketResponse(BaseModel):
    range: str
    count: int
    avg_estimate: float
    actual_frequency: float
    overconfidence: float


class CalibrationResponse(BaseModel):
    """Calibration of resolved bets."""
    total_resolved: int
    cancelled: int
    win_rate: float
    avg_brier_score: float
    total_pnl: float
    roi: float
    buckets: List[BucketResponse]
    by_confidence: Dict[str, GroupStatsResponse]
    recent_trend: GroupStatsResponse


class FeedbackResponse(BaseModel):
    available: bool
    text: Optional[str] = None


class DecisionResponse(BaseModel):
    """One journaled classifier verdict."""
    trace_id: str
    timestamp: str
    venue: str
    market_id: str
    question: str
    market_prob: float
    estimate: float
    confidence: str
    edge: float
    direction: Optional[str]
    kelly_fraction: float
    effective_prob: float
    stake: float
    action: str
    reasoning: str


class PositionResponse(BaseModel):
    trace_id: str
    venue: str
    market_id: str
    question: str
    direction: str
    amount: float
    entry_prob: float
    estimate: float
    shares: Optional[float]
    opened_at: str


class MonitorResponse(BaseModel):
    positions: int
    with_snapshot: int
    unrealized_pnl: float
    agreement_rate: float
    verdict: Optional[str] = None


# ============================================================================
# Helpers
# ============================================================================

def _journal(req: Request) -> Journal:
    journal = getattr(req.app.state, 'journal', None)
    if journal is None:
        raise HTTPException(status_code=503, detail="Journal not initialized")
    return journal


def _calibration_config(req: Request) -> CalibrationConfig:
    return getattr(req.app.state, 'calibration_config', None) or CalibrationConfig()


# ============================================================================
# Endpoints
# ============================================================================

@router.get("/calibration", response_model=CalibrationResponse)
async def get_calibration(req: Request):
    """
    Calibration report over every resolved bet.
    """
    try:
        journal = _journal(req)
        report = compute_calibration(journal.read_resolutions(), _calibration_config(req))
        return report.to_dict()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error computing calibration: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/feedback", response_model=FeedbackResponse)
async def get_feedback(req: Request):
    """
    The feedback text the estimator will see on its next run.
    """
    config = _calibration_config(req)
    report = compute_calibration(_journal(req).read_resolutions(), config)
    text = format_feedback(report, config)
    return {"available": text is not None, "text": text}


@router.get("/decisions", response_model=List[DecisionResponse])
async def list_decisions(
    req: Request,
    action: Optional[str] = Query(default=None, description="Filter by action, e.g. BET"),
    limit: int = Query(default=50, ge=1, le=500),
):
    """
    Most recent decisions, newest first.
    """
    decisions = _journal(req).read_decisions()
    if action:
        decisions = [d for d in decisions if d.action.value == action.upper()]
    return [d.to_dict() for d in decisions[::-1][:limit]]


@router.get("/positions", response_model=List[PositionResponse])
async def list_positions(req: Request, venue: Optional[Venue] = Query(default=None)):
    """
    Live, filled buys that have not resolved or been sold.
    """
    journal = _journal(req)
    positions = open_positions(journal.read_executions(), journal.resolved_trace_ids(), venue=venue)
    return [
        {
            'trace_id': p.trace_id,
            'venue': p.venue.value,
            'market_id': p.market_id,
            'question': p.question,
            'direction': p.direction.value,
            'amount': p.amount,
            'entry_prob': p.market_prob,
            'estimate': p.estimate,
            'shares': p.shares,
            'opened_at': p.timestamp.isoformat(),
        }
        for p in positions
    ]


@router.get("/monitor", response_model=MonitorResponse)
async def get_monitor(req: Request):
    """
    Drift of open Manifold positions since entry, from the latest recorded snapshots.
    """
    journal = _journal(req)
    positions = open_positions(journal.read_executions(), journal.resolved_trace_ids(), venue=Venue.MANIFOLD)
    return build_monitor_report(positions, journal.read_snapshots()).to_dict()


@router.get("/health")
async def health(req: Request):
    """Journal presence and record counts."""
    journal = _journal(req)
    return {
        "status": "healthy",
        "data_dir": str(journal.data_dir),
        "decisions": len(journal.read_decisions()),
        "executions": len(journal.read_executions()),
        "resolutions": len(journal.read_resolutions()),
    }
