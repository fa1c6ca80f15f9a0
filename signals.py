"""Per-expiry sentiment and skew signals over a flat option contract list."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from models import (
    BaselineSentimentResult,
    NetDeltaTiltResult,
    OpenInterestEntry,
    OptionContract,
    OptionExpirySignals,
    OptionSide,
    PricePoint,
    RiskReversalResult,
)
from utils import clamp, is_finite_number

DEFAULT_BASELINE_OPTIONS: Dict[str, float] = {
    "strike_window_pct": 0.2,
    "weight_exponent": 1.25,
}

DEFAULT_RISK_REVERSAL_OPTIONS: Dict[str, float] = {
    "target_delta": 0.25,
}

DEFAULT_NET_DELTA_OPTIONS: Dict[str, float] = {
    "min_delta": 0.05,
}

DEFAULT_FORWARD_HORIZONS: Dict[str, int] = {
    "15m": 15 * 60 * 1000,
    "1h": 60 * 60 * 1000,
    "4h": 4 * 60 * 60 * 1000,
    "1d": 24 * 60 * 60 * 1000,
}


def normalize_iv(contract: OptionContract) -> Optional[float]:
    """Return mark IV, else mid of bid/ask IV, else whichever side exists."""
    if is_finite_number(contract.mark_iv):
        return contract.mark_iv
    if is_finite_number(contract.bid_iv) and is_finite_number(contract.ask_iv):
        return (contract.bid_iv + contract.ask_iv) / 2
    if is_finite_number(contract.bid_iv):
        return contract.bid_iv
    if is_finite_number(contract.ask_iv):
        return contract.ask_iv
    return None


def compute_baseline_sentiment(
    contracts: Sequence[OptionContract],
    index_price: float,
    strike_window_pct: float = DEFAULT_BASELINE_OPTIONS["strike_window_pct"],
    weight_exponent: float = DEFAULT_BASELINE_OPTIONS["weight_exponent"],
) -> BaselineSentimentResult:
    """Call/put premium imbalance in [-1, 1] around the index price.

    Contracts are kept when their strike lies within ``strike_window_pct``
    (relative) of the index, then weighted by ``1 / (1 + |K - S|**exp)``
    using the absolute distance.
    """
    if not contracts or not is_finite_number(index_price) or index_price <= 0:
        return BaselineSentimentResult(value=None, strikes_considered=0)

    filtered = [
        c
        for c in contracts
        if is_finite_number(c.mark_price)
        and abs(c.strike_price - index_price) / index_price <= strike_window_pct
    ]
    if not filtered:
        return BaselineSentimentResult(value=None, strikes_considered=0)

    call_score = 0.0
    put_score = 0.0
    for contract in filtered:
        distance = abs(contract.strike_price - index_price)
        weight = 1 / (1 + distance ** weight_exponent)
        if OptionSide(contract.side) == OptionSide.CALL:
            call_score += weight * contract.mark_price
        else:
            put_score += weight * contract.mark_price

    total = call_score + put_score
    if total == 0:
        return BaselineSentimentResult(value=None, strikes_considered=len(filtered))

    value = (call_score - put_score) / total
    return BaselineSentimentResult(value=clamp(value), strikes_considered=len(filtered))


def _closest_to_delta(
    contracts: Sequence[OptionContract], side: OptionSide, target: float
) -> Optional[OptionContract]:
    closest: Optional[OptionContract] = None
    for contract in contracts:
        if OptionSide(contract.side) != side or not is_finite_number(contract.delta):
            continue
        # zero deltas carry no skew information
        if not contract.delta:
            continue
        if closest is None or abs(contract.delta - target) < abs(closest.delta - target):
            closest = contract
    return closest


def compute_risk_reversal_25(
    contracts: Sequence[OptionContract],
    target_delta: float = DEFAULT_RISK_REVERSAL_OPTIONS["target_delta"],
) -> RiskReversalResult:
    """IV(call nearest +target delta) - IV(put nearest -target delta)."""
    if not contracts:
        return RiskReversalResult(rr25=None)

    call = _closest_to_delta(contracts, OptionSide.CALL, target_delta)
    put = _closest_to_delta(contracts, OptionSide.PUT, -target_delta)
    if call is None or put is None:
        return RiskReversalResult(rr25=None)

    call_iv = normalize_iv(call)
    put_iv = normalize_iv(put)
    if call_iv is None or put_iv is None:
        return RiskReversalResult(rr25=None)

    return RiskReversalResult(
        rr25=call_iv - put_iv,
        call_strike=call.strike_price,
        put_strike=put.strike_price,
    )


def compute_net_delta_tilt(
    contracts: Sequence[OptionContract],
    open_interest: Optional[Sequence[OpenInterestEntry]],
    min_delta: float = DEFAULT_NET_DELTA_OPTIONS["min_delta"],
) -> NetDeltaTiltResult:
    """Open-interest weighted mean delta, clamped to [-1, 1]."""
    if not contracts or not open_interest:
        return NetDeltaTiltResult(value=None, notionals_considered=0)

    interest_by_symbol = {entry.symbol: entry.open_interest for entry in open_interest}

    numerator = 0.0
    denominator = 0.0
    for contract in contracts:
        oi = interest_by_symbol.get(contract.symbol)
        if not is_finite_number(oi) or not is_finite_number(contract.delta):
            continue
        if abs(contract.delta) < min_delta:
            continue
        numerator += contract.delta * oi
        denominator += abs(oi)

    if denominator == 0:
        return NetDeltaTiltResult(value=None, notionals_considered=0)

    return NetDeltaTiltResult(
        value=clamp(numerator / denominator),
        notionals_considered=denominator,
    )


def compute_forward_returns(
    timeline: Sequence[PricePoint],
    anchor_timestamp: int,
    horizons: Optional[Dict[str, int]] = None,
) -> Dict[str, Optional[float]]:
    """Simple returns from the anchor point to the first point past each horizon.

    The anchor is the first point at or after ``anchor_timestamp``, falling
    back to the last point of the series. A zero or non-finite anchor price
    leaves every horizon undefined.
    """
    if horizons is None:
        horizons = DEFAULT_FORWARD_HORIZONS
    if not timeline:
        return {label: None for label in horizons}

    ordered: List[PricePoint] = sorted(timeline, key=lambda p: p.timestamp)
    anchor = next((p for p in ordered if p.timestamp >= anchor_timestamp), ordered[-1])
    if not is_finite_number(anchor.price) or anchor.price == 0:
        return {label: None for label in horizons}

    returns: Dict[str, Optional[float]] = {}
    for label, offset in horizons.items():
        target = anchor.timestamp + offset
        future = next((p for p in ordered if p.timestamp >= target), None)
        if future is None:
            returns[label] = None
            continue
        returns[label] = (future.price - anchor.price) / anchor.price
    return returns


def compute_option_signals(
    expiry: int,
    contracts: Sequence[OptionContract],
    index_price: float,
    anchor_timestamp: int,
    open_interest: Optional[Sequence[OpenInterestEntry]] = None,
    price_timeline: Optional[Sequence[PricePoint]] = None,
    baseline_options: Optional[Dict[str, float]] = None,
    risk_reversal_options: Optional[Dict[str, float]] = None,
    net_delta_options: Optional[Dict[str, float]] = None,
    forward_horizons: Optional[Dict[str, int]] = None,
) -> OptionExpirySignals:
    baseline = compute_baseline_sentiment(
        contracts, index_price, **{**DEFAULT_BASELINE_OPTIONS, **(baseline_options or {})}
    )
    rr = compute_risk_reversal_25(
        contracts, **{**DEFAULT_RISK_REVERSAL_OPTIONS, **(risk_reversal_options or {})}
    )
    net_delta = compute_net_delta_tilt(
        contracts, open_interest, **{**DEFAULT_NET_DELTA_OPTIONS, **(net_delta_options or {})}
    )
    forward_returns = None
    if price_timeline is not None:
        forward_returns = compute_forward_returns(
            price_timeline, anchor_timestamp, forward_horizons or DEFAULT_FORWARD_HORIZONS
        )

    return OptionExpirySignals(
        expiry=expiry,
        baseline=baseline.value,
        rr25=rr.rr25,
        net_delta_tilt=net_delta.value,
        forward_returns=forward_returns,
        strikes_considered=baseline.strikes_considered,
    )


__all__ = [
    "DEFAULT_BASELINE_OPTIONS",
    "DEFAULT_RISK_REVERSAL_OPTIONS",
    "DEFAULT_NET_DELTA_OPTIONS",
    "DEFAULT_FORWARD_HORIZONS",
    "normalize_iv",
    "compute_baseline_sentiment",
    "compute_risk_reversal_25",
    "compute_net_delta_tilt",
    "compute_forward_returns",
    "compute_option_signals",
]
