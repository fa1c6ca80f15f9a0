"""Strike x {call, put} grid metrics for one underlying and expiry."""

from __future__ import annotations

import datetime as dt
import math
from typing import Dict, Iterable, List, Mapping, Optional

from models import ContractRow, ExpirySentiment, OptionContract, OptionSide
from utils import is_finite_number

SENTIMENT_BETA = 6.0  # decay rate over |ln(K/S)|


def build_contract_grid(
    symbols: Iterable[OptionContract], underlying: str, expiry: int
) -> List[ContractRow]:
    """Return rows sorted by strike; a later symbol replaces an earlier one on the same leg."""
    by_strike: Dict[float, ContractRow] = {}
    for contract in symbols:
        if contract.underlying != underlying or contract.expiry_date != expiry:
            continue
        row = by_strike.setdefault(contract.strike_price, ContractRow(strike=contract.strike_price))
        if OptionSide(contract.side) == OptionSide.CALL:
            row.call_symbol = contract.symbol
        else:
            row.put_symbol = contract.symbol
    return [by_strike[strike] for strike in sorted(by_strike)]


def unique_expiries_for_underlying(
    symbols: Iterable[OptionContract], underlying: str
) -> List[int]:
    return sorted({c.expiry_date for c in symbols if c.underlying == underlying})


def format_expiry_to_yymmdd(expiry_ms: int) -> str:
    """Format an epoch-ms expiry as the exchange's UTC ``YYMMDD`` code."""
    moment = dt.datetime.fromtimestamp(expiry_ms / 1000, tz=dt.timezone.utc)
    return moment.strftime("%y%m%d")


def compute_sentiment_for_expiry(
    grid: Iterable[ContractRow],
    mark_by_symbol: Mapping[str, Optional[float]],
    index_price: float,
    oi_by_symbol: Optional[Mapping[str, float]] = None,
) -> ExpirySentiment:
    """Strike-by-strike call/put balance weighted toward the money.

    Each strike contributes ``(call - put) / (call + put)`` weighted by
    ``exp(-beta * |ln(K/S)|)`` and, when open interest is supplied, a gentle
    ``1 + log10(1 + OI)`` boost. Returns 0.0 when no strike qualifies.
    """
    if not is_finite_number(index_price) or index_price <= 0:
        return ExpirySentiment(score=0.0, strikes_considered=0)

    numerator = 0.0
    denominator = 0.0
    strikes = 0

    for row in grid:
        call_price = mark_by_symbol.get(row.call_symbol) if row.call_symbol else None
        put_price = mark_by_symbol.get(row.put_symbol) if row.put_symbol else None
        if call_price is None and put_price is None:
            continue

        distance_weight = math.exp(-SENTIMENT_BETA * abs(math.log(row.strike / index_price)))
        call_oi = (oi_by_symbol or {}).get(row.call_symbol, 0) if row.call_symbol else 0
        put_oi = (oi_by_symbol or {}).get(row.put_symbol, 0) if row.put_symbol else 0
        oi_weight = 1 + math.log10(1 + call_oi + put_oi)

        total = (call_price or 0.0) + (put_price or 0.0)
        if total <= 0:
            continue
        local = ((call_price or 0.0) - (put_price or 0.0)) / total

        weight = distance_weight * oi_weight
        numerator += local * weight
        denominator += weight
        strikes += 1

    score = max(-1.0, min(1.0, numerator / denominator)) if denominator > 0 else 0.0
    return ExpirySentiment(score=score, strikes_considered=strikes)


def prefer_iv(entry: Optional[OptionContract]) -> Optional[float]:
    """Mark IV, else bid/ask mean, else one side; None for a missing entry."""
    if entry is None:
        return None
    if entry.mark_iv is not None:
        return entry.mark_iv
    if entry.bid_iv is not None and entry.ask_iv is not None:
        return (entry.bid_iv + entry.ask_iv) / 2
    if entry.bid_iv is not None:
        return entry.bid_iv
    if entry.ask_iv is not None:
        return entry.ask_iv
    return None


def compute_rr25_for_expiry(
    grid: Iterable[ContractRow],
    marks_by_symbol: Mapping[str, OptionContract],
    target_delta: float = 0.25,
) -> Optional[float]:
    """Return IV(call nearest +target) - IV(put nearest -target), or None."""
    best_call: Optional[tuple] = None
    best_put: Optional[tuple] = None
    for row in grid:
        if row.call_symbol:
            entry = marks_by_symbol.get(row.call_symbol)
            if entry is not None and entry.delta is not None:
                diff = abs(entry.delta - target_delta)
                if best_call is None or diff < best_call[1]:
                    best_call = (row.call_symbol, diff)
        if row.put_symbol:
            entry = marks_by_symbol.get(row.put_symbol)
            if entry is not None and entry.delta is not None:
                diff = abs(entry.delta + target_delta)
                if best_put is None or diff < best_put[1]:
                    best_put = (row.put_symbol, diff)

    call_iv = prefer_iv(marks_by_symbol.get(best_call[0])) if best_call else None
    put_iv = prefer_iv(marks_by_symbol.get(best_put[0])) if best_put else None
    if call_iv is None or put_iv is None:
        return None
    return call_iv - put_iv


def compute_dealer_gex_for_expiry(
    grid: Iterable[ContractRow],
    marks_by_symbol: Mapping[str, OptionContract],
    oi_by_symbol: Optional[Mapping[str, float]],
    index_price: float,
    unit_by_symbol: Optional[Mapping[str, float]] = None,
) -> Optional[float]:
    """Raw dealer gamma-exposure proxy: sum of gamma * OI * unit * S^2.

    Legs without gamma are skipped; missing OI counts as zero and a missing
    unit as one. None when no leg carries gamma.
    """
    spot_squared = index_price * index_price
    aggregate = 0.0
    got_any = False
    for row in grid:
        for symbol in (row.call_symbol, row.put_symbol):
            if not symbol:
                continue
            entry = marks_by_symbol.get(symbol)
            if entry is None or entry.gamma is None:
                continue
            oi = (oi_by_symbol or {}).get(symbol, 0)
            unit = (unit_by_symbol or {}).get(symbol, 1)
            aggregate += entry.gamma * oi * unit * spot_squared
            got_any = True
    return aggregate if got_any else None


__all__ = [
    "build_contract_grid",
    "unique_expiries_for_underlying",
    "format_expiry_to_yymmdd",
    "compute_sentiment_for_expiry",
    "prefer_iv",
    "compute_rr25_for_expiry",
    "compute_dealer_gex_for_expiry",
]
