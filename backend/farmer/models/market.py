"""
Market snapshot and order book models shared by both venues.
"""
import json
from datetime import datetime, timezone
from typing import List, Optional
from dataclasses import dataclass, field
from enum import Enum

from core.errors import InvalidMarketDataError


class Venue(str, Enum):
    MANIFOLD = "manifold"
    POLYMARKET = "polymarket"


class Mechanism(str, Enum):
    """How trades execute on a market."""
    POOLED = "cpmm-1"     # Automated market maker (constant product)
    ORDER_BOOK = "clob"   # Resting limit orders


class Direction(str, Enum):
    YES = "YES"
    NO = "NO"

    @property
    def sign(self) -> int:
        return 1 if self is Direction.YES else -1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def from_epoch_ms(value) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(float(value) / 1000, tz=timezone.utc)


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO-8601 string (with or without 'Z') into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    dt = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def check_probability(value, name: str = "probability") -> float:
    """Reject probabilities outside [0, 1] instead of clamping them."""
    try:
        p = float(value)
    except (TypeError, ValueError):
        raise InvalidMarketDataError(f"{name} is not a number: {value!r}")
    if p != p or p < 0.0 or p > 1.0:
        raise InvalidMarketDataError(f"{name} outside [0, 1]: {value!r}")
    return p


@dataclass(frozen=True)
class MarketSnapshot:
    """
    Normalized, read-only view of one binary market.

    Produced by the venue clients; the decision engine never mutates it.
    """
    market_id: str
    question: str
    probability: float
    liquidity: float
    close_time: datetime
    venue: Venue = Venue.MANIFOLD
    mechanism: Mechanism = Mechanism.POOLED
    volume: float = 0.0
    bettor_count: int = 0
    outcome_type: str = "BINARY"
    is_resolved: bool = False
    resolution: Optional[str] = None
    resolution_probability: Optional[float] = None
    url: str = ""
    description: str = ""
    # Order-book venues: average ask on the NO side, which need not equal 1 - probability
    no_price: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, 'probability', check_probability(self.probability, f"market {self.market_id} probability"))
        if self.no_price is not None:
            object.__setattr__(self, 'no_price', check_probability(self.no_price, f"market {self.market_id} NO price"))
        if isinstance(self.venue, str):
            object.__setattr__(self, 'venue', Venue(self.venue))
        if isinstance(self.mechanism, str):
            object.__setattr__(self, 'mechanism', Mechanism(self.mechanism))

    @property
    def is_pooled(self) -> bool:
        return self.mechanism == Mechanism.POOLED

    def entry_prob(self, direction: Direction) -> float:
        """YES-space price a bet on `direction` fills at. Pooled markets share one price."""
        if direction == Direction.NO and self.no_price is not None:
            return 1 - self.no_price
        return self.probability

    def hours_to_close(self, now: Optional[datetime] = None) -> float:
        """Hours until close_time (negative once closed)."""
        now = now or utcnow()
        return (self.close_time - now).total_seconds() / 3600

    @classmethod
    def from_manifold(cls, data: dict) -> 'MarketSnapshot':
        """Build a snapshot from a Manifold market payload."""
        if "id" not in data:
            raise InvalidMarketDataError("Manifold market without id")
        description = data.get("textDescription") or ""
        if not description and isinstance(data.get("description"), str):
            description = data["description"]
        resolution_probability = data.get("resolutionProbability")
        close_time = from_epoch_ms(data.get("closeTime"))
        if close_time is None:
            raise InvalidMarketDataError(f"market {data['id']} has no closeTime")
        return cls(
            market_id=data["id"],
            question=data.get("question", ""),
            probability=data.get("probability"),
            liquidity=float(data.get("totalLiquidity", 0) or 0),
            close_time=close_time,
            venue=Venue.MANIFOLD,
            mechanism=Mechanism.POOLED if data.get("mechanism", "cpmm-1") != "clob" else Mechanism.ORDER_BOOK,
            volume=float(data.get("volume", 0) or 0),
            bettor_count=int(data.get("uniqueBettorCount", 0) or 0),
            outcome_type=data.get("outcomeType", ""),
            is_resolved=bool(data.get("isResolved", False)),
            resolution=data.get("resolution"),
            resolution_probability=(
                check_probability(resolution_probability, "resolutionProbability")
                if resolution_probability is not None else None
            ),
            url=data.get("url", ""),
            description=description[:2000],
        )

    def to_dict(self) -> dict:
        return {
            'market_id': self.market_id,
            'question': self.question,
            'probability': self.probability,
            'liquidity': self.liquidity,
            'close_time': self.close_time.isoformat(),
            'venue': self.venue.value,
            'mechanism': self.mechanism.value,
            'volume': self.volume,
            'bettor_count': self.bettor_count,
            'is_resolved': self.is_resolved,
            'resolution': self.resolution,
            'url': self.url,
        }


@dataclass
class PolymarketMarket:
    """A binary Polymarket market with the token ids needed to trade it."""
    condition_id: str
    question: str
    slug: str
    yes_price: float
    no_price: float
    yes_token_id: str
    no_token_id: str
    volume_24h: float
    liquidity: float
    end_date: datetime

    @classmethod
    def from_gamma(cls, data: dict) -> Optional['PolymarketMarket']:
        """
        Parse a Gamma API market. Returns None for anything that is not a
        tradeable binary market (wrong outcome count, missing tokens/prices).
        """
        try:
            outcomes = _json_list(data.get("outcomes"))
            prices = _json_list(data.get("outcomePrices"))
        except ValueError:
            return None
        if len(outcomes) != 2 or len(prices) != 2:
            return None

        try:
            yes_price = float(prices[0])
            no_price = float(prices[1])
        except (TypeError, ValueError):
            return None

        tokens = data.get("tokens") or []
        yes_token = next((t for t in tokens if t.get("outcome") == "Yes"), None)
        no_token = next((t for t in tokens if t.get("outcome") == "No"), None)
        if yes_token is None or no_token is None:
            # Newer Gamma payloads only carry clobTokenIds in outcome order
            try:
                token_ids = _json_list(data.get("clobTokenIds"))
            except ValueError:
                return None
            if len(token_ids) < 2:
                return None
            yes_token, no_token = {"token_id": token_ids[0]}, {"token_id": token_ids[1]}

        end_date = parse_timestamp(data.get("endDate") or data.get("end_date_iso"))
        if end_date is None:
            return None

        return cls(
            condition_id=data.get("condition_id") or data.get("conditionId") or "",
            question=data.get("question", ""),
            slug=data.get("market_slug") or data.get("slug") or "",
            yes_price=yes_price,
            no_price=no_price,
            yes_token_id=str(yes_token["token_id"]),
            no_token_id=str(no_token["token_id"]),
            volume_24h=float(data.get("volume24hr", 0) or 0),
            liquidity=float(data.get("liquidityNum", 0) or 0),
            end_date=end_date,
        )

    def token_for(self, direction: Direction) -> str:
        return self.yes_token_id if direction == Direction.YES else self.no_token_id


def to_snapshot(poly: PolymarketMarket) -> MarketSnapshot:
    """Adapt a Polymarket market to the common snapshot type."""
    return MarketSnapshot(
        market_id=poly.condition_id,
        question=poly.question,
        probability=poly.yes_price,
        liquidity=poly.liquidity,
        close_time=poly.end_date,
        venue=Venue.POLYMARKET,
        mechanism=Mechanism.ORDER_BOOK,
        volume=poly.volume_24h,
        bettor_count=0,
        outcome_type="BINARY",
        url=f"https://polymarket.com/event/{poly.slug}",
        no_price=poly.no_price,
    )


def _json_list(value) -> list:
    """Gamma encodes some list fields as JSON strings."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    parsed = json.loads(value)
    if not isinstance(parsed, list):
        raise ValueError("expected a JSON list")
    return parsed


@dataclass
class OrderBookLevel:
    """A single price level in the order book."""
    price: float
    size: float  # shares

    def to_list(self) -> List[float]:
        return [self.price, self.size]


@dataclass
class OrderBook:
    """L2 Order Book for a token."""
    token_id: str
    bids: List[OrderBookLevel] = field(default_factory=list)
    asks: List[OrderBookLevel] = field(default_factory=list)
    timestamp: datetime = field(default_factory=utcnow)

    @classmethod
    def from_clob(cls, token_id: str, data: dict) -> 'OrderBook':
        bids = []
        asks = []
        for side, levels in (("bids", bids), ("asks", asks)):
            for raw in data.get(side, []) or []:
                try:
                    levels.append(OrderBookLevel(price=float(raw["price"]), size=float(raw["size"])))
                except (KeyError, TypeError, ValueError):
                    continue
        bids.sort(key=lambda x: x.price, reverse=True)
        asks.sort(key=lambda x: x.price)
        return cls(token_id=token_id, bids=bids, asks=asks)

    @property
    def best_bid(self) -> Optional[float]:
        return self.bids[0].price if self.bids else None

    @property
    def best_ask(self) -> Optional[float]:
        return self.asks[0].price if self.asks else None

    @property
    def ask_depth_usd(self) -> float:
        return sum(level.price * level.size for level in self.asks)

    def effective_buy_price(self, amount: float) -> Optional[float]:
        """
        Average price paid per share when buying `amount` of collateral by
        sweeping the asks. None when the book cannot absorb the whole amount.
        """
        remaining = amount
        shares = 0.0

        for level in sorted(self.asks, key=lambda x: x.price):
            if level.price <= 0 or level.size <= 0:
                continue
            capacity = level.price * level.size
            if remaining <= capacity:
                shares += remaining / level.price
                remaining = 0.0
                break
            shares += level.size
            remaining -= capacity

        if remaining > 0 or shares == 0:
            return None
        return amount / shares

    def to_dict(self) -> dict:
        return {
            'token_id': self.token_id,
            'bids': [l.to_list() for l in self.bids],
            'asks': [l.to_list() for l in self.asks],
            'timestamp': self.timestamp.isoformat(),
            'best_bid': self.best_bid,
            'best_ask': self.best_ask,
        }
