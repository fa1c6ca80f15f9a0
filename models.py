from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from vol_utils import IVSource, RealizedVolatility

CONTRACT_SIZE = 100  # shares per equity option contract


class OptionType(str, Enum):
    CALL = "call"
    PUT = "put"


class OptionSide(str, Enum):
    CALL = "CALL"
    PUT = "PUT"


class Position(str, Enum):
    LONG = "long"
    SHORT = "short"


class Moneyness(str, Enum):
    ITM = "ITM"
    ATM = "ATM"
    OTM = "OTM"


@dataclass(frozen=True)
class OptionContract:
    """One exchange-listed option instrument at a point in time."""

    symbol: str
    underlying: str
    expiry_date: int  # epoch ms
    strike_price: float
    side: OptionSide
    mark_price: Optional[float] = None
    unit: Optional[float] = None
    bid_iv: Optional[float] = None
    ask_iv: Optional[float] = None
    mark_iv: Optional[float] = None
    delta: Optional[float] = None
    theta: Optional[float] = None
    gamma: Optional[float] = None
    vega: Optional[float] = None


@dataclass
class OptionContractSnapshot:
    """Single row of an equity option chain."""

    contract_symbol: str
    strike: float
    last_price: float
    expiration: str  # YYYY-MM-DD
    option_type: OptionType
    bid: Optional[float] = None
    ask: Optional[float] = None
    implied_volatility: Optional[float] = None
    delta: Optional[float] = None
    gamma: Optional[float] = None
    theta: Optional[float] = None
    vega: Optional[float] = None
    rho: Optional[float] = None
    open_interest: Optional[int] = None
    volume: Optional[int] = None
    in_the_money: Optional[bool] = None


@dataclass
class QuoteSnapshot:
    symbol: str
    price: float
    change: float
    change_percent: float
    previous_close: Optional[float] = None
    volume: Optional[int] = None


@dataclass
class OptionAnalysisInput:
    """A hypothetical or live single-leg trade being evaluated."""

    symbol: str
    expiration: str  # ISO date
    option_type: OptionType
    position: Position
    strike: float
    quantity: int = 1
    interest_rate: float = 0.045
    dividend_yield: float = 0.0
    premium: Optional[float] = None
    volatility: Optional[float] = None
    underlying_override: Optional[float] = None


@dataclass
class OptionGreeks:
    delta: float
    gamma: float
    theta: float  # per day
    vega: float  # per 1% vol
    rho: float  # per 1% rate


@dataclass
class ProfitPoint:
    price: float
    profit: float


@dataclass
class OptionAnalytics:
    """Derived bundle for one position; computed fresh, never persisted."""

    underlying_price: float
    position: Position
    break_even: float
    max_profit: Optional[float]
    max_loss: Optional[float]
    probability_in_the_money: float
    expected_move: float
    annualized_return: Optional[float]
    payoff_at_expiration: List[ProfitPoint]
    greeks: OptionGreeks
    moneyness: Moneyness
    premium_per_contract: float
    position_premium: float
    intrinsic_value_per_contract: float
    intrinsic_value_total: float
    time_value_per_contract: float
    time_value_total: float
    contracts: int
    contract_size: int = CONTRACT_SIZE


@dataclass
class OpenInterestEntry:
    symbol: str
    open_interest: float


@dataclass
class PricePoint:
    timestamp: int  # epoch ms
    price: float


@dataclass
class BaselineSentimentResult:
    value: Optional[float]
    strikes_considered: int


@dataclass
class RiskReversalResult:
    rr25: Optional[float]
    call_strike: Optional[float] = None
    put_strike: Optional[float] = None


@dataclass
class NetDeltaTiltResult:
    value: Optional[float]
    notionals_considered: float


@dataclass
class OptionExpirySignals:
    expiry: int
    baseline: Optional[float]
    rr25: Optional[float]
    net_delta_tilt: Optional[float]
    forward_returns: Optional[Dict[str, Optional[float]]]
    strikes_considered: int


@dataclass
class VolatilitySmilePoint:
    strike: float
    implied_volatility: float
    option_type: OptionType


@dataclass
class OpenInterestPoint:
    strike: float
    open_interest: int
    option_type: OptionType


@dataclass
class OptionChain:
    expiration_dates: List[str]
    contracts: List[OptionContractSnapshot]
    volatility_smile: List[VolatilitySmilePoint]
    open_interest: List[OpenInterestPoint]
    resolved_expiration: Optional[str] = None


@dataclass
class OptionAnalysisResult:
    quote: QuoteSnapshot
    analytics: OptionAnalytics
    contract: Optional[OptionContractSnapshot]
    open_interest: List[OpenInterestPoint]
    volatility_smile: List[VolatilitySmilePoint]
    notable_strikes: List[OptionContractSnapshot]
    resolved_expiration: Optional[str]
    iv_source: IVSource
    realized_volatility: Optional[RealizedVolatility] = None


@dataclass
class OptionPrefill:
    symbol: str
    expiration: str
    option_type: OptionType
    strike: float
    underlying_price: float
    quote: QuoteSnapshot
    expiration_dates: List[str] = field(default_factory=list)
    premium: Optional[float] = None
    implied_volatility: Optional[float] = None
    contract_symbol: Optional[str] = None


@dataclass
class ExpirySentiment:
    score: float
    strikes_considered: int


@dataclass
class ContractRow:
    """One strike of the strike x {call, put} grid."""

    strike: float
    call_symbol: Optional[str] = None
    put_symbol: Optional[str] = None


@dataclass
class OptionSnapshot:
    id: str
    underlying: str
    created_at: int
    index_price: Optional[float]
    expiries: List[int]
    symbols: List[OptionContract]


@dataclass
class SnapshotExpiryAggregate:
    expiry: int
    baseline: Optional[float]
    rr25: Optional[float]
    price: Optional[float]
    strikes_considered: int = 0


@dataclass
class AggregateMetadata:
    version: int
    source_snapshot_id: Optional[str] = None


@dataclass
class SnapshotAggregate:
    underlying: str
    created_at: int
    index_price: Optional[float]
    expiries: List[SnapshotExpiryAggregate]
    metadata: AggregateMetadata
