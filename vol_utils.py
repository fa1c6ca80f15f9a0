from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple

import numpy as np
import pandas as pd

DEFAULT_IMPLIED_VOL = 0.22
TRADING_DAYS_PER_YEAR = 252


class IVSource(str, Enum):
    OVERRIDE = "override"
    CHAIN = "chain"
    DEFAULT = "default"


@dataclass
class RealizedVolatility:
    value: float
    window: int
    observations: int


def iv_is_valid(iv: float | None) -> bool:
    """Return True if IV is usable (not None/NaN and non-zero)."""
    return iv is not None and not math.isnan(iv) and iv != 0


def resolve_analysis_iv(
    override: Optional[float],
    contract_iv: Optional[float],
    default: float = DEFAULT_IMPLIED_VOL,
) -> Tuple[float, IVSource]:
    """Return (iv, IVSource) after fallback: override -> chain -> default."""
    if override is not None:
        return override, IVSource.OVERRIDE
    if iv_is_valid(contract_iv):
        return float(contract_iv), IVSource.CHAIN
    return default, IVSource.DEFAULT


def realized_volatility(
    closes: Iterable[float], window: int = 21
) -> Optional[RealizedVolatility]:
    """Annualized close-to-close volatility over the last ``window`` log returns.

    Non-positive or missing closes are dropped before returns are taken.
    Returns None when fewer than two returns are available.
    """
    series = pd.Series(list(closes), dtype="float64")
    series = series[series > 0].dropna()
    if len(series) < 2:
        return None

    log_returns = np.log(series / series.shift(1)).dropna()
    log_returns = log_returns[np.isfinite(log_returns)]
    sample = log_returns.iloc[-window:] if len(log_returns) >= window else log_returns
    if len(sample) < 2:
        return None

    std = float(sample.std(ddof=1))
    return RealizedVolatility(
        value=std * math.sqrt(TRADING_DAYS_PER_YEAR),
        window=len(sample),
        observations=len(log_returns),
    )
