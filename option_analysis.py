# -*- coding: utf-8 -*-
"""Black-Scholes-Merton pricing and single-leg position analytics."""

from __future__ import annotations

import datetime as dt
import math
from dataclasses import dataclass
from typing import List, Optional, Union

import numpy as np

from models import (
    CONTRACT_SIZE,
    Moneyness,
    OptionAnalysisInput,
    OptionAnalytics,
    OptionGreeks,
    OptionType,
    Position,
    ProfitPoint,
)
from utils import EPSILON, MIN_SIGMA, ensure_positive, norm_cdf, norm_pdf

MONEYNESS_TOLERANCE = 0.005
MS_PER_YEAR = 365 * 24 * 60 * 60 * 1000


@dataclass
class BlackScholesResult:
    """Raw model output; theta is annual, vega and rho are per 1.0 move."""

    price: float
    delta: float
    gamma: float
    theta: float
    vega: float
    rho: float
    probability_itm: float
    expected_move: float


def calculate_black_scholes(
    S: float,
    K: float,
    T: float,
    r: float,
    q: float,
    sigma: float,
    option_type: Union[OptionType, str] = OptionType.CALL,
) -> BlackScholesResult:
    """Return Black-Scholes-Merton price and greeks with continuous dividend yield.

    Non-positive spot, strike, time or volatility is floored so the result
    stays finite.
    """
    safe_s = ensure_positive(S, EPSILON)
    safe_k = ensure_positive(K, EPSILON)
    safe_sigma = ensure_positive(sigma, MIN_SIGMA)
    safe_t = ensure_positive(T, EPSILON)
    sqrt_t = math.sqrt(safe_t)
    d1 = (math.log(safe_s / safe_k) + (r - q + 0.5 * safe_sigma * safe_sigma) * safe_t) / (safe_sigma * sqrt_t)
    d2 = d1 - safe_sigma * sqrt_t

    dividend_discount = math.exp(-q * safe_t)
    discounted_spot = safe_s * dividend_discount
    discounted_strike = safe_k * math.exp(-r * safe_t)
    is_call = OptionType(option_type) == OptionType.CALL

    if is_call:
        price = discounted_spot * norm_cdf(d1) - discounted_strike * norm_cdf(d2)
        delta = dividend_discount * norm_cdf(d1)
        theta = (
            -dividend_discount * safe_s * norm_pdf(d1) * safe_sigma / (2 * sqrt_t)
            - r * discounted_strike * norm_cdf(d2)
            + q * discounted_spot * norm_cdf(d1)
        )
        rho = safe_t * discounted_strike * norm_cdf(d2)
        probability_itm = norm_cdf(d2)
    else:
        price = discounted_strike * norm_cdf(-d2) - discounted_spot * norm_cdf(-d1)
        delta = dividend_discount * (norm_cdf(d1) - 1)
        theta = (
            -dividend_discount * safe_s * norm_pdf(d1) * safe_sigma / (2 * sqrt_t)
            + r * discounted_strike * norm_cdf(-d2)
            - q * discounted_spot * norm_cdf(-d1)
        )
        rho = -safe_t * discounted_strike * norm_cdf(-d2)
        probability_itm = norm_cdf(-d2)

    gamma = dividend_discount * norm_pdf(d1) / (safe_s * safe_sigma * sqrt_t)
    vega = discounted_spot * norm_pdf(d1) * sqrt_t

    return BlackScholesResult(
        price=price,
        delta=delta,
        gamma=gamma,
        theta=theta,
        vega=vega,
        rho=rho,
        probability_itm=probability_itm,
        expected_move=safe_s * safe_sigma * sqrt_t,
    )


def parse_expiration(expiration: Union[str, dt.date, dt.datetime]) -> dt.datetime:
    """Return an aware datetime; bare dates are read as UTC midnight."""
    if isinstance(expiration, dt.datetime):
        parsed = expiration
    elif isinstance(expiration, dt.date):
        parsed = dt.datetime(expiration.year, expiration.month, expiration.day)
    else:
        text = expiration.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = dt.datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


def year_fraction(
    expiration: Union[str, dt.date, dt.datetime], now: Optional[dt.datetime] = None
) -> float:
    """Time to expiry in years, floored just above zero once expired."""
    if now is None:
        now = dt.datetime.now(dt.timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=dt.timezone.utc)
    millis = (parse_expiration(expiration) - now).total_seconds() * 1000
    return max(millis, EPSILON) / MS_PER_YEAR


def generate_profit_curve(
    current_price: float,
    strike: float,
    premium: float,
    option_type: Union[OptionType, str],
    quantity: float,
    price_steps: int = 60,
    range_multiplier: float = 2,
) -> List[ProfitPoint]:
    """Return expiry P/L sampled evenly from current/range to current*range."""
    min_price = max(current_price / range_multiplier, 0)
    max_price = current_price * range_multiplier
    step = (max_price - min_price) / price_steps
    prices = min_price + step * np.arange(price_steps + 1)

    if OptionType(option_type) == OptionType.CALL:
        intrinsic = np.maximum(prices - strike, 0.0)
    else:
        intrinsic = np.maximum(strike - prices, 0.0)
    profits = (intrinsic - premium) * quantity

    return [ProfitPoint(price=float(p), profit=float(v)) for p, v in zip(prices, profits)]


def payoff_at_price(curve: List[ProfitPoint], price: float) -> Optional[float]:
    """Profit at the curve sample nearest to ``price``; first match wins ties."""
    if not curve:
        return None
    closest = curve[0]
    for point in curve[1:]:
        if abs(point.price - price) < abs(closest.price - price):
            closest = point
    return closest.profit


def classify_moneyness(
    spot: float, strike: float, option_type: Union[OptionType, str]
) -> Moneyness:
    if abs(spot - strike) <= max(spot, strike) * MONEYNESS_TOLERANCE:
        return Moneyness.ATM
    is_call = OptionType(option_type) == OptionType.CALL
    in_the_money = spot > strike if is_call else spot < strike
    return Moneyness.ITM if in_the_money else Moneyness.OTM


def _max_profit_and_loss(
    option_type: OptionType,
    position: Position,
    strike: float,
    premium: float,
    quantity: int,
):
    contract_multiplier = quantity * CONTRACT_SIZE
    credit = premium * contract_multiplier
    if option_type == OptionType.CALL:
        if position == Position.LONG:
            return None, credit
        return credit, None

    # puts are bounded by the strike on both sides
    bounded = max(strike - premium, 0) * CONTRACT_SIZE * quantity
    if position == Position.LONG:
        return bounded, credit
    return credit, bounded


def build_option_analytics(
    analysis_input: OptionAnalysisInput,
    resolved_price: float,
    implied_vol: float,
    premium: float,
    now: Optional[dt.datetime] = None,
) -> OptionAnalytics:
    """Return the full analytics bundle for one single-leg position.

    ``premium`` is per share. Degenerate numeric input never raises; values
    that are unbounded or undefined come back as None.
    """
    option_type = OptionType(analysis_input.option_type)
    position = Position(analysis_input.position)
    strike = analysis_input.strike
    quantity = analysis_input.quantity

    position_multiplier = 1 if position == Position.LONG else -1
    time_to_expiry = year_fraction(analysis_input.expiration, now)
    bs = calculate_black_scholes(
        resolved_price,
        strike,
        time_to_expiry,
        analysis_input.interest_rate,
        analysis_input.dividend_yield,
        implied_vol,
        option_type,
    )

    contract_multiplier = quantity * CONTRACT_SIZE
    effective_quantity = contract_multiplier * position_multiplier
    payoff = generate_profit_curve(
        current_price=resolved_price,
        strike=strike,
        premium=premium,
        option_type=option_type,
        quantity=effective_quantity,
    )

    break_even = strike + premium if option_type == OptionType.CALL else strike - premium
    max_profit, max_loss = _max_profit_and_loss(option_type, position, strike, premium, quantity)

    if option_type == OptionType.CALL:
        intrinsic_per_share = max(resolved_price - strike, 0)
    else:
        intrinsic_per_share = max(strike - resolved_price, 0)
    premium_per_contract = premium * CONTRACT_SIZE
    intrinsic_long = intrinsic_per_share * CONTRACT_SIZE
    time_value_long = max(premium_per_contract - intrinsic_long, 0)
    intrinsic_per_contract = intrinsic_long * position_multiplier
    time_value_per_contract = time_value_long * position_multiplier

    annualized_return = None
    if max_loss is not None and max_loss > 0:
        expected_profit = payoff_at_price(payoff, resolved_price + bs.expected_move) or 0.0
        annualized_return = (expected_profit / max_loss) / max(time_to_expiry, EPSILON)

    greeks = OptionGreeks(
        delta=bs.delta,
        gamma=bs.gamma,
        theta=bs.theta / 365,
        vega=bs.vega / 100,
        rho=bs.rho / 100,
    )

    return OptionAnalytics(
        underlying_price=resolved_price,
        position=position,
        break_even=break_even,
        max_profit=max_profit,
        max_loss=max_loss,
        probability_in_the_money=bs.probability_itm,
        expected_move=bs.expected_move,
        annualized_return=annualized_return,
        payoff_at_expiration=payoff,
        greeks=greeks,
        moneyness=classify_moneyness(resolved_price, strike, option_type),
        premium_per_contract=premium_per_contract,
        position_premium=premium_per_contract * quantity * position_multiplier,
        intrinsic_value_per_contract=intrinsic_per_contract,
        intrinsic_value_total=intrinsic_per_contract * quantity,
        time_value_per_contract=time_value_per_contract,
        time_value_total=time_value_per_contract * quantity,
        contracts=quantity,
        contract_size=CONTRACT_SIZE,
    )


__all__ = [
    "BlackScholesResult",
    "calculate_black_scholes",
    "parse_expiration",
    "year_fraction",
    "generate_profit_curve",
    "payoff_at_price",
    "classify_moneyness",
    "build_option_analytics",
]
