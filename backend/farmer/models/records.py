"""
Append-only record types joined by trace id.

Decision -> Execution -> Resolution, plus any number of PositionSnapshots in
between. All records are immutable once built.
"""
import uuid
from datetime import datetime
from typing import Optional, Union
from dataclasses import dataclass, field
from enum import Enum

from core.errors import InvalidMarketDataError
from .market import Venue, Direction, parse_timestamp
from .estimate import Confidence


def new_trace_id() -> str:
    return str(uuid.uuid4())


class DecisionAction(str, Enum):
    """Terminal outcomes of the decision classifier."""
    BET = "BET"
    SKIP_LOW_EDGE = "SKIP_LOW_EDGE"
    SKIP_NEGATIVE_KELLY = "SKIP_NEGATIVE_KELLY"
    SKIP_LOW_CONFIDENCE = "SKIP_LOW_CONFIDENCE"
    SKIP_ERROR = "SKIP_ERROR"

    @property
    def is_bet(self) -> bool:
        return self is DecisionAction.BET


class ResolutionOutcome(str, Enum):
    YES = "YES"
    NO = "NO"
    MKT = "MKT"        # Resolved to a partial probability
    CANCEL = "CANCEL"  # Voided, stakes returned

    @classmethod
    def parse(cls, value) -> 'ResolutionOutcome':
        try:
            return cls(str(value).upper())
        except ValueError:
            raise InvalidMarketDataError(f"unexpected resolution value: {value!r}")


class ExecutionKind(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


def _direction(value) -> Optional[Direction]:
    return Direction(value) if value else None


@dataclass(frozen=True)
class DecisionRecord:
    """
    One classifier verdict. Skips carry the same fields as bets so the
    audit trail is complete.
    """
    trace_id: str
    timestamp: datetime
    venue: Venue
    market_id: str
    question: str
    market_prob: float
    liquidity: float
    estimate: float
    confidence: Confidence
    edge: float
    direction: Optional[Direction]
    kelly_fraction: float
    effective_prob: float
    stake: float
    action: DecisionAction
    reasoning: str = ""
    market_url: str = ""
    close_time: Optional[datetime] = None
    bettor_count: int = 0
    token_id: Optional[str] = None

    def __post_init__(self):
        is_bet = (
            self.direction is not None
            and self.kelly_fraction > 0
            and self.stake >= 1
        )
        if self.action.is_bet != is_bet:
            raise InvalidMarketDataError(
                f"decision {self.trace_id}: action {self.action.value} inconsistent with "
                f"direction={self.direction}, kelly={self.kelly_fraction}, stake={self.stake}"
            )

    def to_dict(self) -> dict:
        return {
            'trace_id': self.trace_id,
            'timestamp': self.timestamp.isoformat(),
            'venue': self.venue.value,
            'market_id': self.market_id,
            'question': self.question,
            'market_url': self.market_url,
            'market_prob': self.market_prob,
            'liquidity': self.liquidity,
            'close_time': self.close_time.isoformat() if self.close_time else None,
            'bettor_count': self.bettor_count,
            'estimate': self.estimate,
            'confidence': self.confidence.value,
            'reasoning': self.reasoning,
            'edge': self.edge,
            'direction': self.direction.value if self.direction else None,
            'kelly_fraction': self.kelly_fraction,
            'effective_prob': self.effective_prob,
            'stake': self.stake,
            'action': self.action.value,
            'token_id': self.token_id,
        }

    @classmethod
    def from_dict(cls, d: dict) -> 'DecisionRecord':
        return cls(
            trace_id=d['trace_id'],
            timestamp=parse_timestamp(d['timestamp']),
            venue=Venue(d.get('venue', Venue.MANIFOLD.value)),
            market_id=d['market_id'],
            question=d.get('question', ''),
            market_url=d.get('market_url', ''),
            market_prob=float(d['market_prob']),
            liquidity=float(d.get('liquidity', 0)),
            close_time=parse_timestamp(d.get('close_time')),
            bettor_count=int(d.get('bettor_count', 0)),
            estimate=float(d['estimate']),
            confidence=Confidence.parse(d.get('confidence')),
            reasoning=d.get('reasoning', ''),
            edge=float(d['edge']),
            direction=_direction(d.get('direction')),
            kelly_fraction=float(d.get('kelly_fraction', 0)),
            effective_prob=float(d.get('effective_prob', d['market_prob'])),
            stake=float(d.get('stake', 0)),
            action=DecisionAction(d['action']),
            token_id=d.get('token_id'),
        )


@dataclass(frozen=True)
class OrderPlaced:
    """The venue accepted the order. `filled` is False for a killed FOK order."""
    order_id: str
    shares: Optional[float] = None
    filled: bool = True
    status: str = "filled"


@dataclass(frozen=True)
class OrderFailed:
    """The venue rejected the order or it could not be sent."""
    error: str


ExecutionResult = Union[OrderPlaced, OrderFailed]


def result_to_dict(result: ExecutionResult) -> dict:
    if isinstance(result, OrderFailed):
        return {'error': result.error}
    return {
        'order_id': result.order_id,
        'shares': result.shares,
        'filled': result.filled,
        'status': result.status,
    }


def result_from_dict(d: Optional[dict]) -> ExecutionResult:
    d = d or {}
    if d.get('error'):
        return OrderFailed(error=str(d['error']))
    if not d.get('order_id'):
        return OrderFailed(error="missing order id")
    shares = d.get('shares')
    return OrderPlaced(
        order_id=str(d['order_id']),
        shares=float(shares) if shares is not None else None,
        filled=bool(d.get('filled', True)),
        status=d.get('status', 'filled'),
    )


@dataclass(frozen=True)
class ExecutionRecord:
    """Exactly one per dispatch attempt, success or failure."""
    trace_id: str
    timestamp: datetime
    venue: Venue
    market_id: str
    question: str
    direction: Direction
    amount: float
    market_prob: float  # Entry price (effective fill probability for YES)
    estimate: float
    edge: float
    dry_run: bool
    result: ExecutionResult
    kind: ExecutionKind = ExecutionKind.BUY

    @property
    def failed(self) -> bool:
        return isinstance(self.result, OrderFailed)

    @property
    def shares(self) -> Optional[float]:
        return self.result.shares if isinstance(self.result, OrderPlaced) else None

    @property
    def holds_position(self) -> bool:
        """A live buy that actually filled."""
        return (
            self.kind == ExecutionKind.BUY
            and not self.dry_run
            and isinstance(self.result, OrderPlaced)
            and self.result.filled
        )

    def to_dict(self) -> dict:
        return {
            'trace_id': self.trace_id,
            'timestamp': self.timestamp.isoformat(),
            'venue': self.venue.value,
            'kind': self.kind.value,
            'market_id': self.market_id,
            'question': self.question,
            'direction': self.direction.value,
            'amount': self.amount,
            'market_prob': self.market_prob,
            'estimate': self.estimate,
            'edge': self.edge,
            'dry_run': self.dry_run,
            'result': result_to_dict(self.result),
        }

    @classmethod
    def from_dict(cls, d: dict) -> 'ExecutionRecord':
        return cls(
            trace_id=d['trace_id'],
            timestamp=parse_timestamp(d['timestamp']),
            venue=Venue(d.get('venue', Venue.MANIFOLD.value)),
            kind=ExecutionKind(d.get('kind', ExecutionKind.BUY.value)),
            market_id=d['market_id'],
            question=d.get('question', ''),
            direction=Direction(d['direction']),
            amount=float(d['amount']),
            market_prob=float(d['market_prob']),
            estimate=float(d.get('estimate', 0)),
            edge=float(d.get('edge', 0)),
            dry_run=bool(d.get('dry_run', False)),
            result=result_from_dict(d.get('result')),
        )


@dataclass(frozen=True)
class ResolutionRecord:
    """Realized outcome of one execution. At most one per trace id."""
    trace_id: str
    resolved_at: datetime
    venue: Venue
    market_id: str
    question: str
    outcome: ResolutionOutcome
    direction: Direction
    estimate: float
    market_prob_at_bet: float
    edge: float
    confidence: Confidence
    amount: float
    won: bool
    pnl: float
    brier_score: float
    resolution_probability: Optional[float] = None

    @property
    def bet_side_probability(self) -> float:
        """Our probability for the side we actually bet."""
        return self.estimate if self.direction == Direction.YES else 1 - self.estimate

    def to_dict(self) -> dict:
        return {
            'trace_id': self.trace_id,
            'resolved_at': self.resolved_at.isoformat(),
            'venue': self.venue.value,
            'market_id': self.market_id,
            'question': self.question,
            'outcome': self.outcome.value,
            'resolution_probability': self.resolution_probability,
            'direction': self.direction.value,
            'estimate': self.estimate,
            'market_prob_at_bet': self.market_prob_at_bet,
            'edge': self.edge,
            'confidence': self.confidence.value,
            'amount': self.amount,
            'won': self.won,
            'pnl': self.pnl,
            'brier_score': self.brier_score,
        }

    @classmethod
    def from_dict(cls, d: dict) -> 'ResolutionRecord':
        rp = d.get('resolution_probability')
        return cls(
            trace_id=d['trace_id'],
            resolved_at=parse_timestamp(d['resolved_at']),
            venue=Venue(d.get('venue', Venue.MANIFOLD.value)),
            market_id=d.get('market_id', ''),
            question=d.get('question', ''),
            outcome=ResolutionOutcome.parse(d['outcome']),
            resolution_probability=float(rp) if rp is not None else None,
            direction=Direction(d['direction']),
            estimate=float(d['estimate']),
            market_prob_at_bet=float(d.get('market_prob_at_bet', 0)),
            edge=float(d.get('edge', 0)),
            confidence=Confidence.parse(d.get('confidence')),
            amount=float(d['amount']),
            won=bool(d['won']),
            pnl=float(d['pnl']),
            brier_score=float(d['brier_score']),
        )


@dataclass(frozen=True)
class PositionSnapshot:
    """Mark-to-market reading of an open position."""
    trace_id: str
    timestamp: datetime
    market_id: str
    question: str
    direction: Direction
    amount: float
    estimate: float
    entry_prob: float
    current_prob: float
    unrealized_pnl: float

    @property
    def drift(self) -> float:
        """Price movement in our favour since entry (positive = toward us)."""
        return (self.current_prob - self.entry_prob) * self.direction.sign

    def to_dict(self) -> dict:
        return {
            'trace_id': self.trace_id,
            'timestamp': self.timestamp.isoformat(),
            'market_id': self.market_id,
            'question': self.question,
            'direction': self.direction.value,
            'amount': self.amount,
            'estimate': self.estimate,
            'entry_prob': self.entry_prob,
            'current_prob': self.current_prob,
            'unrealized_pnl': self.unrealized_pnl,
        }

    @classmethod
    def from_dict(cls, d: dict) -> 'PositionSnapshot':
        return cls(
            trace_id=d['trace_id'],
            timestamp=parse_timestamp(d['timestamp']),
            market_id=d.get('market_id', ''),
            question=d.get('question', ''),
            direction=Direction(d['direction']),
            amount=float(d['amount']),
            estimate=float(d.get('estimate', 0)),
            entry_prob=float(d['entry_prob']),
            current_prob=float(d['current_prob']),
            unrealized_pnl=float(d['unrealized_pnl']),
        )


@dataclass
class RunSummary:
    """Per-run counts reported to the operator."""
    command: str
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    pending: int = 0
    skipped: int = 0
    notes: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'command': self.command,
            'attempted': self.attempted,
            'succeeded': self.succeeded,
            'failed': self.failed,
            'pending': self.pending,
            'skipped': self.skipped,
        }

    def __str__(self) -> str:
        return (
            f"{self.command}: attempted={self.attempted} succeeded={self.succeeded} "
            f"failed={self.failed} pending={self.pending} skipped={self.skipped}"
        )
