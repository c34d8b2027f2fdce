"""
Probability Estimate Models
"""
from typing import Optional, Protocol
from dataclasses import dataclass
from enum import Enum

from core.errors import InvalidMarketDataError
from .market import MarketSnapshot, check_probability


class Confidence(str, Enum):
    """Confidence label attached to an estimate."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    UNKNOWN = "unknown"  # Only for records whose decision could not be joined

    @classmethod
    def parse(cls, value) -> 'Confidence':
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class Estimate:
    """
    Output of the external estimation step for one market.
    """
    probability: float
    confidence: Confidence
    reasoning: str = ""

    def __post_init__(self):
        object.__setattr__(self, 'probability', check_probability(self.probability, "estimate"))
        confidence = self.confidence
        if isinstance(confidence, str):
            try:
                confidence = Confidence(confidence.lower())
            except ValueError:
                raise InvalidMarketDataError(f"unknown confidence label: {self.confidence!r}")
        if confidence == Confidence.UNKNOWN:
            raise InvalidMarketDataError("estimate confidence must be low, medium or high")
        object.__setattr__(self, 'confidence', confidence)

    def to_dict(self) -> dict:
        return {
            'probability': round(self.probability, 4),
            'confidence': self.confidence.value,
            'reasoning': self.reasoning,
        }


class Estimator(Protocol):
    """
    External probability-estimation service.

    `context` is optional structured data (finance quotes, sports odds) for the
    question; `feedback` is the calibration text from past resolutions.
    """

    async def estimate(
        self,
        market: MarketSnapshot,
        context: Optional[str] = None,
        feedback: Optional[str] = None,
    ) -> Estimate:
        ...
