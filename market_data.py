"""Fetch quotes, option chains and price history from Yahoo Finance.

Internet access is required for the ``fetch_*`` helpers; the frame
conversion helpers are pure and used directly by the tests.
"""

from __future__ import annotations

import math
from typing import Any, List, Optional

import pandas as pd
import structlog
import yfinance as yf

from models import (
    OpenInterestPoint,
    OptionChain,
    OptionContractSnapshot,
    OptionType,
    QuoteSnapshot,
    VolatilitySmilePoint,
)
from utils import fetch_with_retry
from vol_utils import RealizedVolatility, realized_volatility

_log = structlog.get_logger(__name__)


def _num(value: Any) -> Optional[float]:
    """Return a finite float or None."""
    if value is None:
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return parsed if math.isfinite(parsed) else None


def _int(value: Any) -> Optional[int]:
    parsed = _num(value)
    return int(parsed) if parsed is not None else None


def _history(symbol: str, period: str) -> pd.DataFrame:
    return yf.Ticker(symbol).history(period=period)


def _expirations(symbol: str) -> List[str]:
    return list(yf.Ticker(symbol).options)


def _option_chain(symbol: str, expiration: str):
    return yf.Ticker(symbol).option_chain(expiration)


def quote_from_history(symbol: str, history: pd.DataFrame) -> QuoteSnapshot:
    """Build a quote from the most recent daily bars."""
    if history is None or history.empty:
        raise RuntimeError(f"No data returned for {symbol}")
    closes = history["Close"]
    price = float(closes.iloc[-1])
    previous = float(closes.iloc[-2]) if len(closes) > 1 else None
    change = price - previous if previous is not None else 0.0
    change_percent = change / previous * 100 if previous else 0.0
    volume = _int(history["Volume"].iloc[-1]) if "Volume" in history else None
    return QuoteSnapshot(
        symbol=symbol.upper(),
        price=price,
        change=change,
        change_percent=change_percent,
        previous_close=previous,
        volume=volume,
    )


def fetch_quote(symbol: str) -> QuoteSnapshot:
    """Return the latest quote for ``symbol``."""
    history = fetch_with_retry(_history, symbol, period="5d")
    return quote_from_history(symbol, history)


def chain_from_frames(
    calls: Optional[pd.DataFrame],
    puts: Optional[pd.DataFrame],
    expiration: str,
) -> OptionChain:
    """Convert yfinance call/put frames into chain records and chart series."""
    contracts: List[OptionContractSnapshot] = []
    smile: List[VolatilitySmilePoint] = []
    open_interest: List[OpenInterestPoint] = []

    for option_type, frame in ((OptionType.CALL, calls), (OptionType.PUT, puts)):
        if frame is None:
            continue
        for _, row in frame.iterrows():
            strike = _num(row.get("strike")) or 0.0
            iv = _num(row.get("impliedVolatility"))
            oi = _int(row.get("openInterest")) or 0
            itm = row.get("inTheMoney")
            contracts.append(
                OptionContractSnapshot(
                    contract_symbol=str(row.get("contractSymbol", "") or ""),
                    strike=strike,
                    last_price=_num(row.get("lastPrice")) or 0.0,
                    expiration=expiration,
                    option_type=option_type,
                    bid=_num(row.get("bid")),
                    ask=_num(row.get("ask")),
                    implied_volatility=iv if iv else None,
                    delta=_num(row.get("delta")),
                    gamma=_num(row.get("gamma")),
                    theta=_num(row.get("theta")),
                    vega=_num(row.get("vega")),
                    rho=_num(row.get("rho")),
                    open_interest=oi,
                    volume=_int(row.get("volume")),
                    in_the_money=bool(itm) if itm is not None and not pd.isna(itm) else None,
                )
            )
            if iv:
                smile.append(VolatilitySmilePoint(strike=strike, implied_volatility=iv, option_type=option_type))
            if oi:
                open_interest.append(OpenInterestPoint(strike=strike, open_interest=oi, option_type=option_type))

    return OptionChain(
        expiration_dates=[],
        contracts=contracts,
        volatility_smile=smile,
        open_interest=open_interest,
        resolved_expiration=expiration,
    )


def fetch_options_chain(symbol: str, expiration: Optional[str] = None) -> OptionChain:
    """Return the chain for ``expiration``, or the nearest listed expiry.

    An expiration that is not listed falls back to the first listed one.
    """
    expirations = fetch_with_retry(_expirations, symbol)
    if not expirations:
        return OptionChain(
            expiration_dates=[],
            contracts=[],
            volatility_smile=[],
            open_interest=[],
            resolved_expiration=expiration,
        )

    resolved = expiration if expiration in expirations else expirations[0]
    if expiration and resolved != expiration:
        _log.info("market_data.expiration_fallback", symbol=symbol, requested=expiration, resolved=resolved)

    chain = fetch_with_retry(_option_chain, symbol, resolved)
    result = chain_from_frames(chain.calls, chain.puts, resolved)
    result.expiration_dates = list(expirations)
    return result


def fetch_realized_volatility(symbol: str, window: int = 21) -> Optional[RealizedVolatility]:
    """Annualized realized volatility from roughly three windows of daily closes."""
    days = max(window * 3, window + 10)
    history = fetch_with_retry(_history, symbol, period=f"{days}d")
    if history is None or history.empty:
        return None
    column = "Adj Close" if "Adj Close" in history else "Close"
    return realized_volatility(history[column].tolist(), window=window)


__all__ = [
    "quote_from_history",
    "fetch_quote",
    "chain_from_frames",
    "fetch_options_chain",
    "fetch_realized_volatility",
]
