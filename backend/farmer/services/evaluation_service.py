"""
Evaluation Service - Calibration metrics over resolved bets and the feedback text built from them
"""
from typing import Dict, List, Optional
from dataclasses import dataclass

import numpy as np

from core.config import Settings
from ..models.estimate import Confidence
from ..models.records import ResolutionOutcome, ResolutionRecord
from ..models.calibration import CalibrationBucket, CalibrationReport, GroupStats


CONFIDENCE_LEVELS = (Confidence.HIGH, Confidence.MEDIUM, Confidence.LOW)


@dataclass
class CalibrationConfig:
    """Thresholds for the calibration report and feedback."""
    bucket_count: int = 10
    recent_window: int = 20
    min_resolutions: int = 10
    min_bucket_count: int = 3
    miscalibration_threshold: float = 0.05
    trend_threshold: float = 0.05
    trust_win_rate: float = 0.65
    abstain_win_rate: float = 0.50

    @classmethod
    def from_settings(cls, settings: Settings) -> 'CalibrationConfig':
        return cls(
            recent_window=settings.recent_window,
            min_resolutions=settings.min_resolutions_for_feedback,
            min_bucket_count=settings.min_bucket_count,
        )


def group_stats(records: List[ResolutionRecord]) -> GroupStats:
    """Win rate, mean Brier score and ROI for a slice of resolutions."""
    if not records:
        return GroupStats()
    won = np.array([r.won for r in records], dtype=float)
    brier = np.array([r.brier_score for r in records], dtype=float)
    pnl = np.array([r.pnl for r in records], dtype=float)
    staked = np.array([r.amount for r in records], dtype=float)

    total_staked = float(staked.sum())
    total_pnl = float(pnl.sum())
    return GroupStats(
        count=len(records),
        win_rate=float(won.mean()),
        avg_brier=float(brier.mean()),
        roi=total_pnl / total_staked if total_staked > 0 else 0.0,
        total_pnl=total_pnl,
        total_staked=total_staked,
    )


def compute_buckets(records: List[ResolutionRecord], bucket_count: int = 10) -> List[CalibrationBucket]:
    """
    Bucket by our probability for the side we bet on. Only populated buckets
    are returned. A bet-side probability of exactly 1.0 lands in the top bucket.
    """
    if not records:
        return []
    p = np.array([r.bet_side_probability for r in records], dtype=float)
    won = np.array([r.won for r in records], dtype=float)
    width = 1.0 / bucket_count
    # Work in whole percentage points so 0.3 does not land in the 20-30% bucket
    idx = np.minimum(np.floor(np.round(p * 100, 6) / (100 / bucket_count)).astype(int), bucket_count - 1)

    buckets = []
    for i in range(bucket_count):
        mask = idx == i
        n = int(mask.sum())
        if n == 0:
            continue
        buckets.append(CalibrationBucket(
            low=i * width,
            high=(i + 1) * width,
            count=n,
            avg_estimate=float(p[mask].mean()),
            actual_frequency=float(won[mask].mean()),
        ))
    return buckets


def compute_calibration(
    resolutions: List[ResolutionRecord],
    config: Optional[CalibrationConfig] = None,
) -> CalibrationReport:
    """Aggregate the resolution log. CANCEL records are counted but excluded from every metric."""
    config = config or CalibrationConfig()
    valid = [r for r in resolutions if r.outcome != ResolutionOutcome.CANCEL]

    by_confidence: Dict[str, GroupStats] = {
        level.value: group_stats([r for r in valid if r.confidence == level])
        for level in CONFIDENCE_LEVELS
    }

    return CalibrationReport(
        overall=group_stats(valid),
        buckets=compute_buckets(valid, config.bucket_count),
        by_confidence=by_confidence,
        recent_trend=group_stats(valid[-config.recent_window:]),
        cancelled=len(resolutions) - len(valid),
    )


def _pct(x: float) -> str:
    return f"{x * 100:.1f}%"


def _signed_pct(x: float) -> str:
    return f"{'+' if x >= 0 else ''}{_pct(x)}"


def format_feedback(report: CalibrationReport, config: Optional[CalibrationConfig] = None) -> Optional[str]:
    """
    Feedback text for the estimator's next run, or None until enough bets have
    resolved to say anything useful (strictly more than `min_resolutions`).
    """
    config = config or CalibrationConfig()
    if report.total_resolved <= config.min_resolutions:
        return None

    lines = [
        f"## Your Past Performance ({report.total_resolved} resolved forecasts)",
        f"- Win rate: {_pct(report.win_rate)} | Brier: {report.avg_brier_score:.2f} | ROI: {_signed_pct(report.roi)}",
    ]

    sized = [b for b in report.buckets if b.count >= config.min_bucket_count]
    miscalibrated = [b for b in sized if abs(b.overconfidence) >= config.miscalibration_threshold]
    calibrated = [b for b in sized if abs(b.overconfidence) < config.miscalibration_threshold]

    if miscalibrated:
        lines.append("")
        lines.append("### Calibration Issues")
        for b in miscalibrated:
            over = b.overconfidence > 0
            direction = "OVERCONFIDENT" if over else "UNDERCONFIDENT"
            adjust = "Adjust down" if over else "Adjust up"
            pts = f"{abs(b.overconfidence * 100):.0f}"
            lines.append(
                f"- {b.label} bucket: actual frequency {_pct(b.actual_frequency)}. "
                f"You are ~{pts}pts {direction}. {adjust}."
            )
    for b in calibrated:
        lines.append(f"- {b.label} bucket: Well calibrated.")

    if any(s.count > 0 for s in report.by_confidence.values()):
        lines.append("")
        lines.append("### Confidence Labels")
        for level in CONFIDENCE_LEVELS:
            s = report.by_confidence.get(level.value)
            if s is None or s.count < config.min_bucket_count:
                continue
            if s.win_rate >= config.trust_win_rate:
                quality = "Good signal — trust these."
            elif s.win_rate < config.abstain_win_rate:
                quality = "Consider abstaining."
            else:
                quality = "Moderate signal."
            lines.append(f'- "{level.value}" → {_pct(s.win_rate)} win, {s.avg_brier:.2f} Brier. {quality}')

    if report.total_resolved >= config.recent_window:
        t = report.recent_trend
        if t.win_rate < report.win_rate - config.trend_threshold:
            trending = "(declining). Be more selective."
        elif t.win_rate > report.win_rate + config.trend_threshold:
            trending = "(improving). Keep it up."
        else:
            trending = "(stable)."
        lines.append("")
        lines.append(f"### Recent Trend (last {config.recent_window}): Win rate {_pct(t.win_rate)} {trending}")

    return "\n".join(lines)


def render_stats(report: CalibrationReport, config: Optional[CalibrationConfig] = None) -> str:
    """Console table for the `stats` command."""
    config = config or CalibrationConfig()
    lines = [
        f"=== Calibration Report ({report.total_resolved} resolved, {report.cancelled} cancelled) ===",
        "",
        f"  Win rate:    {_pct(report.win_rate)}",
        f"  Brier score: {report.avg_brier_score:.3f}",
        f"  Total PnL:   {report.total_pnl:+.1f}",
        f"  ROI:         {_signed_pct(report.roi)}",
    ]

    if report.buckets:
        lines += ["", "  --- Calibration Buckets ---"]
        for b in report.buckets:
            if abs(b.overconfidence) >= config.miscalibration_threshold:
                note = f" ({'over' if b.overconfidence > 0 else 'under'} by {abs(b.overconfidence) * 100:.0f}pts)"
            else:
                note = " (calibrated)"
            lines.append(
                f"  {b.label:<8} n={b.count:<3} est={b.avg_estimate * 100:.0f}% "
                f"actual={b.actual_frequency * 100:.0f}%{note}"
            )

    lines += ["", "  --- By Confidence ---"]
    for level in CONFIDENCE_LEVELS:
        s = report.by_confidence.get(level.value)
        if s is None or s.count == 0:
            continue
        lines.append(
            f"  {level.value:<7} n={s.count:<3} win={s.win_rate * 100:.0f}% "
            f"brier={s.avg_brier:.2f} roi={s.roi * 100:.1f}%"
        )

    if report.total_resolved >= config.recent_window:
        t = report.recent_trend
        lines += [
            "",
            f"  --- Recent Trend (last {config.recent_window}) ---",
            f"  Win: {t.win_rate * 100:.0f}% | Brier: {t.avg_brier:.2f} | ROI: {t.roi * 100:.1f}%",
        ]

    return "\n".join(lines)
