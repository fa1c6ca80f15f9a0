"""Evaluate a user-entered option trade against live market data."""

from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Mapping, Optional

import structlog
from pydantic import ValidationError

import market_data
from models import (
    OptionAnalysisResult,
    OptionContractSnapshot,
    OptionPrefill,
)
from option_analysis import build_option_analytics
from schemas import OptionAnalysisForm, field_errors
from vol_utils import resolve_analysis_iv

NOTABLE_STRIKES = 6
STRIKE_MATCH_TOLERANCE = 1e-6

_log = structlog.get_logger(__name__)


class OptionAnalysisError(Exception):
    """User-facing failure; ``errors`` maps form fields to messages."""

    def __init__(self, message: str, errors: Optional[Dict[str, List[str]]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or {}


def select_contract(
    contracts: List[OptionContractSnapshot],
    option_type,
    strike: float,
    expiration: str,
) -> Optional[OptionContractSnapshot]:
    """Return the matching contract with the highest open interest."""
    matches = [
        c
        for c in contracts
        if c.option_type == option_type
        and abs(c.strike - strike) < STRIKE_MATCH_TOLERANCE
        and c.expiration == expiration
    ]
    if not matches:
        return None
    return sorted(matches, key=lambda c: c.open_interest or 0, reverse=True)[0]


def notable_strikes(
    contracts: List[OptionContractSnapshot], limit: int = NOTABLE_STRIKES
) -> List[OptionContractSnapshot]:
    with_oi = [c for c in contracts if c.open_interest]
    return sorted(with_oi, key=lambda c: c.open_interest or 0, reverse=True)[:limit]


def analyze_option_trade(
    form: Mapping[str, Any], now: Optional[dt.datetime] = None
) -> OptionAnalysisResult:
    """Validate ``form``, fetch market data and build the trade analytics."""
    try:
        payload = OptionAnalysisForm.model_validate(dict(form)).to_input()
    except ValidationError as exc:
        raise OptionAnalysisError("Please correct the highlighted errors.", field_errors(exc)) from exc

    try:
        quote = market_data.fetch_quote(payload.symbol)
        chain = market_data.fetch_options_chain(payload.symbol, payload.expiration[:10])
    except Exception as exc:
        _log.error("trade_analysis.failed", symbol=payload.symbol, error=str(exc))
        raise OptionAnalysisError(
            "Unable to analyze trade. Please verify the ticker and expiration."
        ) from exc

    try:
        realized = market_data.fetch_realized_volatility(payload.symbol, 21)
    except Exception as exc:
        _log.warning("trade_analysis.realized_vol_unavailable", symbol=payload.symbol, error=str(exc))
        realized = None

    expiration = chain.resolved_expiration or payload.expiration
    contract = select_contract(chain.contracts, payload.option_type, payload.strike, expiration)

    if payload.premium is not None:
        premium = payload.premium
    elif contract is not None:
        premium = contract.last_price
    else:
        premium = 0.0
    implied_vol, iv_source = resolve_analysis_iv(
        payload.volatility, contract.implied_volatility if contract else None
    )
    underlying = payload.underlying_override if payload.underlying_override is not None else quote.price

    payload.expiration = expiration
    payload.premium = premium
    payload.volatility = implied_vol
    analytics = build_option_analytics(payload, underlying, implied_vol, premium, now=now)

    _log.info(
        "trade_analysis.completed",
        symbol=payload.symbol,
        expiration=expiration,
        strike=payload.strike,
        iv_source=iv_source.value,
        matched_contract=contract.contract_symbol if contract else None,
    )

    return OptionAnalysisResult(
        quote=quote,
        analytics=analytics,
        contract=contract,
        open_interest=chain.open_interest,
        volatility_smile=chain.volatility_smile,
        notable_strikes=notable_strikes(chain.contracts),
        resolved_expiration=expiration,
        iv_source=iv_source,
        realized_volatility=realized,
    )


def pick_default_expiration(contracts: List[OptionContractSnapshot]) -> Optional[str]:
    if not contracts:
        return None
    return sorted(c.expiration for c in contracts)[0]


def pick_atm_contract(
    contracts: List[OptionContractSnapshot],
    price: float,
    expiration: Optional[str] = None,
) -> Optional[OptionContractSnapshot]:
    """Nearest strike to ``price``; ties go to higher open interest, then last price."""
    scoped = [c for c in contracts if c.expiration == expiration] if expiration else list(contracts)
    if not scoped:
        return contracts[0] if contracts else None
    return sorted(
        scoped,
        key=lambda c: (abs(c.strike - price), -(c.open_interest or 0), -(c.last_price or 0)),
    )[0]


def suggest_option_defaults(raw_symbol: str) -> OptionPrefill:
    """Suggest an at-the-money contract on the nearest expiry for ``raw_symbol``."""
    symbol = raw_symbol.strip().upper()
    if not symbol:
        raise OptionAnalysisError("Enter a ticker symbol to load defaults.")

    try:
        quote = market_data.fetch_quote(symbol)
        chain = market_data.fetch_options_chain(symbol)
    except Exception as exc:
        _log.error("trade_analysis.suggest_failed", symbol=symbol, error=str(exc))
        raise OptionAnalysisError(
            "We couldn't auto-fill this symbol. Try submitting the form manually."
        ) from exc

    if not chain.contracts:
        raise OptionAnalysisError("No option contracts available for this symbol.")

    default_expiration = pick_default_expiration(chain.contracts)
    if default_expiration is None and chain.expiration_dates:
        default_expiration = chain.expiration_dates[0]
    best = pick_atm_contract(chain.contracts, quote.price, default_expiration)
    if best is None:
        raise OptionAnalysisError("Unable to locate a nearby option contract.")

    return OptionPrefill(
        symbol=quote.symbol,
        expiration=best.expiration,
        option_type=best.option_type,
        strike=best.strike,
        premium=best.last_price,
        implied_volatility=best.implied_volatility,
        underlying_price=quote.price,
        contract_symbol=best.contract_symbol,
        expiration_dates=chain.expiration_dates,
        quote=quote,
    )


__all__ = [
    "OptionAnalysisError",
    "select_contract",
    "notable_strikes",
    "analyze_option_trade",
    "pick_default_expiration",
    "pick_atm_contract",
    "suggest_option_defaults",
]
