"""
Eligibility Filter - Selects tradeable markets and ranks them by how soon they resolve
"""
import re
from datetime import datetime
from typing import List, Optional
from dataclasses import dataclass

from core.config import Settings
from ..models.market import MarketSnapshot, PolymarketMarket, utcnow


# Questions that usually resolve within hours or days
FAST_RESOLUTION_PATTERNS = [
    re.compile(r"\bNBA\b.*beat", re.I),
    re.compile(r"\bNHL\b.*beat", re.I),
    re.compile(r"\bNFL\b.*(?:beat|win)", re.I),
    re.compile(r"\bMLB\b.*beat", re.I),
    re.compile(r"\bUFC\b", re.I),
    re.compile(r"\bstock.*close|close.*stock|stock.*price.*(?:on|by)\b", re.I),
    re.compile(r"\bcoin\s?flip", re.I),
    re.compile(r"\bdaily\b", re.I),
    re.compile(r"\bby (?:end of |eod )?\w+ \d{1,2}(?:st|nd|rd|th)?\b", re.I),
    re.compile(r"\bbefore (?:end of )?\w+ \d{1,2}", re.I),
    re.compile(r"\b(?:earning|revenue|eps)\b.*(?:Q[1-4]|quarter)", re.I),
    re.compile(r"\bgold\b.*(?:above|below|end of)", re.I),
]

# Categories with a structured data source (quotes / odds) behind them
FINANCE_PATTERNS = [
    re.compile(r"\bnvda\b|nvidia", re.I),
    re.compile(r"\baapl\b|apple.*stock", re.I),
    re.compile(r"\btsla\b|tesla.*stock", re.I),
    re.compile(r"\bmeta\b.*stock|meta platforms", re.I),
    re.compile(r"\bgoogl?\b|alphabet.*stock", re.I),
    re.compile(r"\bmsft\b|microsoft.*stock", re.I),
    re.compile(r"\bamzn\b|amazon.*stock", re.I),
    re.compile(r"\b(?:s&p|spx|nasdaq|dow jones)\b", re.I),
    re.compile(r"\b(?:bitcoin|btc|ethereum|eth)\b.*(?:price|above|below|\$)", re.I),
    re.compile(r"\bgold\b.*(?:price|above|below|\$)", re.I),
    re.compile(r"\b(?:earning|revenue|eps)", re.I),
    re.compile(r"\bstock\b.*(?:close|higher|lower|above|below)", re.I),
    re.compile(r"\b(?:interest rate|fed|federal reserve|inflation|gdp|recession|tariff)\b", re.I),
]

SPORTS_PATTERNS = [
    re.compile(r"\bnba\b", re.I),
    re.compile(r"\bnfl\b", re.I),
    re.compile(r"\bmlb\b", re.I),
    re.compile(r"\bnhl\b", re.I),
    re.compile(r"\bpremier league\b|\bepl\b", re.I),
    re.compile(r"\bchampions league\b|\bucl\b", re.I),
    re.compile(r"\bufc\b|\bmma\b", re.I),
]


def is_finance_market(question: str) -> bool:
    return any(p.search(question) for p in FINANCE_PATTERNS)


def is_sports_market(question: str) -> bool:
    return any(p.search(question) for p in SPORTS_PATTERNS)


def has_structured_data(question: str) -> bool:
    """True when a quote or odds source can corroborate the estimate."""
    return is_finance_market(question) or is_sports_market(question)


@dataclass
class EligibilityConfig:
    """Configuration for market eligibility."""
    min_liquidity: float = 100.0
    min_bettors: int = 1
    min_hours_to_close: float = 1.0
    max_days_to_close: float = 90.0

    # Ranking
    fast_window_days: float = 7.0
    time_score_max: float = 50.0
    pattern_bonus: float = 30.0
    liquidity_score_max: float = 20.0
    liquidity_saturation: float = 5000.0

    # Polymarket pre-filter
    poly_min_price: float = 0.05
    poly_max_price: float = 0.95

    @classmethod
    def from_settings(cls, settings: Settings) -> 'EligibilityConfig':
        return cls(
            min_liquidity=settings.min_liquidity,
            min_bettors=settings.min_bettors,
            min_hours_to_close=settings.min_hours_to_close,
            max_days_to_close=settings.max_days_to_close,
            fast_window_days=settings.fast_window_days,
        )


def resolution_speed_score(
    market: MarketSnapshot,
    config: Optional[EligibilityConfig] = None,
    now: Optional[datetime] = None,
) -> float:
    """
    Score how quickly a market is likely to resolve (higher = sooner).

    - Time: full marks inside the fast window, linear decay to 0 at the
      maximum horizon
    - Pattern bonus for questions with a known near-term resolution date
    - Liquidity bonus, saturating at a fixed ceiling
    """
    config = config or EligibilityConfig()
    hours = market.hours_to_close(now)
    fast_hours = config.fast_window_days * 24
    max_hours = config.max_days_to_close * 24

    time_score = 0.0
    if hours <= fast_hours:
        time_score = config.time_score_max
    elif hours <= max_hours:
        time_score = config.time_score_max * (1 - (hours - fast_hours) / (max_hours - fast_hours))

    pattern_score = config.pattern_bonus if any(p.search(market.question) for p in FAST_RESOLUTION_PATTERNS) else 0.0

    liq_score = min(
        config.liquidity_score_max,
        market.liquidity / config.liquidity_saturation * config.liquidity_score_max,
    )

    return time_score + pattern_score + liq_score


def is_eligible(
    market: MarketSnapshot,
    config: EligibilityConfig,
    now: Optional[datetime] = None,
) -> bool:
    if market.outcome_type != "BINARY":
        return False
    if market.is_resolved:
        return False
    if market.liquidity < config.min_liquidity:
        return False

    hours = market.hours_to_close(now)
    if hours < config.min_hours_to_close:
        return False
    if hours > config.max_days_to_close * 24:
        return False

    return market.bettor_count >= config.min_bettors


def filter_markets(
    markets: List[MarketSnapshot],
    config: Optional[EligibilityConfig] = None,
    rank: bool = True,
    now: Optional[datetime] = None,
) -> List[MarketSnapshot]:
    """
    Keep binary, unresolved markets with enough liquidity and participants that
    close inside the configured window. Optionally sorted fastest-resolving first.
    """
    config = config or EligibilityConfig()
    now = now or utcnow()
    eligible = [m for m in markets if is_eligible(m, config, now)]
    if rank:
        eligible.sort(key=lambda m: resolution_speed_score(m, config, now), reverse=True)
    return eligible


def filter_polymarket_markets(
    markets: List[PolymarketMarket],
    config: Optional[EligibilityConfig] = None,
) -> List[PolymarketMarket]:
    """Drop near-certain prices; soonest end date first."""
    config = config or EligibilityConfig()
    kept = [m for m in markets if config.poly_min_price <= m.yes_price <= config.poly_max_price]
    return sorted(kept, key=lambda m: m.end_date)
