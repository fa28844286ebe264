"""
Network measurement statistics.

Pure functions -- no I/O, no side effects.  Everything here is
deterministic and easy to unit-test.
"""
from __future__ import annotations

import math
from typing import Callable, Iterable, List, Sequence, TypeVar

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Basic helpers
# ---------------------------------------------------------------------------

def clamp(value: float, lo: float, hi: float) -> float:
    if value < lo:
        return lo
    if value > hi:
        return hi
    return value


def is_finite(value: float) -> bool:
    return value is not None and not math.isnan(value) and not math.isinf(value)


def mean(values: Iterable[float]) -> float:
    """Arithmetic mean; 0.0 for an empty input."""
    items = list(values)
    return sum(items) / len(items) if items else 0.0


def sample_stddev(values: Sequence[float]) -> float:
    """Sample standard deviation (N-1 divisor); 0.0 below two samples."""
    if len(values) < 2:
        return 0.0
    m = mean(values)
    return math.sqrt(sum((v - m) ** 2 for v in values) / (len(values) - 1))


def coefficient_of_variation(values: Sequence[float]) -> float:
    """stddev / mean, with zero variance reported below two samples."""
    if len(values) < 2:
        return 0.0
    m = mean(values)
    return sample_stddev(values) / max(m, 0.001)


def calculate_percentile(ordered: Sequence[float], fraction: float) -> float:
    """Linear-interpolation percentile of an already sorted sequence.

    *fraction* is 0..1 (0.25 for Q1).
    """
    if not ordered:
        return 0.0
    if len(ordered) == 1:
        return ordered[0]

    position = (len(ordered) - 1) * clamp(fraction, 0.0, 1.0)
    lower = int(math.floor(position))
    upper = int(math.ceil(position))
    if lower == upper:
        return ordered[lower]
    weight = position - lower
    return ordered[lower] + (ordered[upper] - ordered[lower]) * weight


# ---------------------------------------------------------------------------
# Outlier handling
# ---------------------------------------------------------------------------

def filter_iqr_outliers(
    items: Sequence[T],
    key: Callable[[T], float],
    multiplier: float = 1.5,
) -> List[T]:
    """Drop items whose key lies outside ``multiplier`` x IQR of the quartiles.

    Returns the items sorted by key.  With fewer than four items, a zero
    IQR, or a filter that would remove everything, the sorted input is
    returned unchanged.
    """
    ordered = sorted((i for i in items if is_finite(key(i))), key=key)
    if len(ordered) < 4:
        return ordered

    values = [key(i) for i in ordered]
    q1 = calculate_percentile(values, 0.25)
    q3 = calculate_percentile(values, 0.75)
    iqr = q3 - q1
    if iqr <= 0.0:
        return ordered

    lo = max(0.0, q1 - multiplier * iqr)
    hi = q3 + multiplier * iqr
    kept = [i for i in ordered if lo <= key(i) <= hi]
    return kept or ordered


def select_median(items: Sequence[T], key: Callable[[T], float]) -> T:
    """Median element by *key*; the upper middle wins for even counts."""
    if not items:
        raise ValueError("select_median() requires at least one item")
    ordered = sorted(items, key=key)
    index = int(math.floor((len(ordered) - 1) * 0.5 + 0.5))
    return ordered[max(0, min(len(ordered) - 1, index))]


# ---------------------------------------------------------------------------
# Interpolation
# ---------------------------------------------------------------------------

def smoothstep(t: float) -> float:
    t = clamp(t, 0.0, 1.0)
    return t * t * (3.0 - 2.0 * t)


def lerp(a: float, b: float, t: float) -> float:
    """Linear interpolation that tolerates NaN on either end."""
    a_nan, b_nan = math.isnan(a), math.isnan(b)
    if a_nan and b_nan:
        return math.nan
    if a_nan:
        return b
    if b_nan:
        return a
    return a + (b - a) * t


def catmull_rom(v0: float, v1: float, v2: float, v3: float, t: float) -> float:
    """Uniform Catmull-Rom spline between *v1* and *v2*."""
    t = clamp(t, 0.0, 1.0)
    t2 = t * t
    t3 = t2 * t
    return 0.5 * (
        2.0 * v1
        + (-v0 + v2) * t
        + (2.0 * v0 - 5.0 * v1 + 4.0 * v2 - v3) * t2
        + (-v0 + 3.0 * v1 - 3.0 * v2 + v3) * t3
    )


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def format_speed(speed_mbps: float) -> str:
    """Human-readable speed string."""
    if not is_finite(speed_mbps):
        return "n/a"
    if speed_mbps >= 1000:
        return f"{speed_mbps / 1000:.2f} Gbps"
    return f"{speed_mbps:.2f} Mbps"


def format_latency(latency_ms: float) -> str:
    """Human-readable latency string."""
    if not is_finite(latency_ms):
        return "n/a"
    if latency_ms >= 1000:
        return f"{latency_ms / 1000:.2f} s"
    return f"{latency_ms:.1f} ms"
