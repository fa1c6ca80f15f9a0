from __future__ import annotations
import math
import time
from typing import Any, Callable, Dict, Tuple

EPSILON = 1e-8
MIN_SIGMA = 1e-4  # volatility floor for degenerate inputs

# Abramowitz and Stegun 7.1.26
_ERF_P = 0.3275911
_ERF_COEFFICIENTS = (0.254829592, -0.284496736, 1.421413741, -1.453152027, 1.061405429)


def erf(x: float) -> float:
    """Polynomial approximation of the error function (max error ~1.5e-7)."""
    sign = 1.0 if x >= 0 else -1.0
    abs_x = abs(x)
    t = 1.0 / (1.0 + _ERF_P * abs_x)
    poly = 0.0
    for index, c in enumerate(_ERF_COEFFICIENTS):
        poly += c * t ** (index + 1)
    return sign * (1.0 - poly * math.exp(-abs_x * abs_x))


def norm_cdf(x: float) -> float:
    """Cumulative distribution function for the standard normal distribution."""
    return 0.5 * (1.0 + erf(x / math.sqrt(2.0)))


def norm_pdf(x: float) -> float:
    return (1.0 / math.sqrt(2.0 * math.pi)) * math.exp(-0.5 * x * x)


def is_finite_number(value: Any) -> bool:
    """Return True for real, finite numbers (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def ensure_positive(value: float, fallback: float) -> float:
    """Return ``value`` when finite and > 0, else ``fallback``."""
    return value if is_finite_number(value) and value > 0 else fallback


def clamp(value: float, low: float = -1.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


_fetch_cache: Dict[Tuple[str, Tuple[Any, ...], Tuple[Tuple[str, Any], ...]], Any] = {}


def fetch_with_retry(func: Callable[..., Any], *args: Any, retries: int = 3, delay: float = 1.0, **kwargs: Any) -> Any:
    """Call ``func`` with retries and simple caching."""
    key = (getattr(func, "__qualname__", repr(func)), args, tuple(sorted(kwargs.items())))
    if key in _fetch_cache:
        return _fetch_cache[key]
    last_exc: Exception | None = None
    for _ in range(retries):
        try:
            result = func(*args, **kwargs)
            _fetch_cache[key] = result
            return result
        except Exception as exc:
            last_exc = exc
            time.sleep(delay)
    if last_exc:
        raise last_exc
    raise RuntimeError("fetch_with_retry failed")


def clear_fetch_cache() -> None:
    _fetch_cache.clear()
