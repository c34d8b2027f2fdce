"""
Calibration report models. Derived from the resolution log, never persisted.
"""
from typing import Dict, List
from dataclasses import dataclass, field


@dataclass
class CalibrationBucket:
    """Resolutions whose bet-side probability fell in [low, high)."""
    low: float
    high: float
    count: int
    avg_estimate: float
    actual_frequency: float

    @property
    def label(self) -> str:
        return f"{round(self.low * 100)}-{round(self.high * 100)}%"

    @property
    def overconfidence(self) -> float:
        """Positive = predicted more often than it happened."""
        return self.avg_estimate - self.actual_frequency

    def to_dict(self) -> dict:
        return {
            'range': self.label,
            'count': self.count,
            'avg_estimate': round(self.avg_estimate, 4),
            'actual_frequency': round(self.actual_frequency, 4),
            'overconfidence': round(self.overconfidence, 4),
        }


@dataclass
class GroupStats:
    """Win rate / Brier / ROI triple for a slice of resolutions."""
    count: int = 0
    win_rate: float = 0.0
    avg_brier: float = 0.0
    roi: float = 0.0
    total_pnl: float = 0.0
    total_staked: float = 0.0

    def to_dict(self) -> dict:
        return {
            'count': self.count,
            'win_rate': round(self.win_rate, 4),
            'avg_brier': round(self.avg_brier, 4),
            'roi': round(self.roi, 4),
            'total_pnl': round(self.total_pnl, 2),
            'total_staked': round(self.total_staked, 2),
        }


@dataclass
class CalibrationReport:
    """
    Aggregate calibration of resolved bets (CANCEL excluded).
    """
    overall: GroupStats
    buckets: List[CalibrationBucket] = field(default_factory=list)
    by_confidence: Dict[str, GroupStats] = field(default_factory=dict)
    recent_trend: GroupStats = field(default_factory=GroupStats)
    cancelled: int = 0

    @property
    def total_resolved(self) -> int:
        return self.overall.count

    @property
    def win_rate(self) -> float:
        return self.overall.win_rate

    @property
    def avg_brier_score(self) -> float:
        return self.overall.avg_brier

    @property
    def total_pnl(self) -> float:
        return self.overall.total_pnl

    @property
    def roi(self) -> float:
        return self.overall.roi

    def to_dict(self) -> dict:
        return {
            'total_resolved': self.total_resolved,
            'cancelled': self.cancelled,
            'win_rate': round(self.win_rate, 4),
            'avg_brier_score': round(self.avg_brier_score, 4),
            'total_pnl': round(self.total_pnl, 2),
            'roi': round(self.roi, 4),
            'buckets': [b.to_dict() for b in self.buckets],
            'by_confidence': {k: v.to_dict() for k, v in self.by_confidence.items()},
            'recent_trend': self.recent_trend.to_dict(),
        }
