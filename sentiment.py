"""Named variants of the baseline call/put sentiment score.

``DISTANCE_DECAY`` weights each contract by ``1 / (1 + |K - S|**1.25)`` and
compares weighted call and put premium totals. ``LOG_MONEYNESS`` compares
calls and puts strike by strike and weights strikes by
``exp(-6 |ln(K/S)|)``, optionally boosted by open interest. The two produce
different numbers for the same chain.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Sequence

from expiry_grid import build_contract_grid, compute_sentiment_for_expiry
from models import BaselineSentimentResult, OpenInterestEntry, OptionContract
from signals import compute_baseline_sentiment


class SentimentMethod(str, Enum):
    DISTANCE_DECAY = "distance_decay"
    LOG_MONEYNESS = "log_moneyness"


def baseline_sentiment(
    contracts: Sequence[OptionContract],
    index_price: float,
    method: SentimentMethod = SentimentMethod.DISTANCE_DECAY,
    open_interest: Optional[Sequence[OpenInterestEntry]] = None,
    **options: float,
) -> BaselineSentimentResult:
    """Score one expiry's contracts with the chosen variant.

    ``options`` are forwarded to the distance-decay variant. For
    ``LOG_MONEYNESS`` the contracts must share one underlying and expiry
    (the first contract decides), and ``open_interest`` feeds the OI boost.
    """
    method = SentimentMethod(method)
    if method == SentimentMethod.DISTANCE_DECAY:
        return compute_baseline_sentiment(contracts, index_price, **options)

    if not contracts:
        return BaselineSentimentResult(value=None, strikes_considered=0)

    first = contracts[0]
    grid = build_contract_grid(contracts, first.underlying, first.expiry_date)
    marks = {c.symbol: c.mark_price for c in contracts}
    oi = {e.symbol: e.open_interest for e in open_interest} if open_interest else None
    result = compute_sentiment_for_expiry(grid, marks, index_price, oi)
    if result.strikes_considered == 0:
        return BaselineSentimentResult(value=None, strikes_considered=0)
    return BaselineSentimentResult(value=result.score, strikes_considered=result.strikes_considered)
