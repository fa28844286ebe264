"""
Quality scoring and tier resolution.

Turns the latest measurements into a 0-100 score and a named tier, and
picks the next throughput probe interval from the result.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .config import Config
from .constants import (
    CADENCE_NORMAL_BELOW,
    CADENCE_POOR_BELOW,
    CV_SATURATION,
    STALE_HALF_LIFE_SECONDS,
    TIER_BAD,
    TIER_HIGH,
    TIER_OFFLINE,
    TIER_PAUSED,
    TIER_POOR,
    TIER_VERY_POOR,
)
from .stats import clamp, coefficient_of_variation, mean


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScoringProfile:
    """Reference points and weights of the quality score."""

    download_reference_mbps: float = 200.0
    upload_reference_mbps: float = 80.0
    latency_worst_ms: float = 180.0
    jitter_worst_ms: float = 80.0
    loss_worst_pct: float = 20.0

    download_weight: float = 0.34
    upload_weight: float = 0.18
    latency_weight: float = 0.18
    jitter_weight: float = 0.10
    loss_weight: float = 0.10
    consistency_weight: float = 0.10


DEFAULT_PROFILE = ScoringProfile()


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------

def normalize_log_scale(value: float, reference: float) -> float:
    """``log10(value+1) / log10(reference+1)`` clamped to 0..1."""
    if math.isnan(value) or value <= 0.0 or reference <= 0.0:
        return 0.0
    return clamp(math.log10(value + 1.0) / math.log10(reference + 1.0), 0.0, 1.0)


def linear_ramp(value: float, worst: float) -> float:
    """1.0 at zero, falling linearly to 0.0 at *worst*.  NaN scores 0."""
    if math.isnan(value):
        return 0.0
    return clamp(1.0 - value / worst, 0.0, 1.0)


def decay_stale_value(value: float, age_seconds: float, half_life: float = STALE_HALF_LIFE_SECONDS) -> float:
    """Halve *value* every *half_life* seconds since it was measured."""
    if value <= 0.0:
        return 0.0
    if age_seconds <= 0.0:
        return value
    return value * math.pow(0.5, age_seconds / max(half_life, 1.0))


def _window_consistency(window: Sequence[float]) -> float:
    if len(window) < 2:
        return 1.0
    if mean(window) <= 0.0:
        return 0.0
    return 1.0 - clamp(coefficient_of_variation(window) / CV_SATURATION, 0.0, 1.0)


def consistency_score(
    download_window: Sequence[float],
    upload_window: Sequence[float],
    success_window: Sequence[float],
) -> float:
    """Mean of download stability, upload stability and the probe success rate."""
    success_rate = mean(success_window) if success_window else 1.0
    parts = (
        _window_consistency(download_window),
        _window_consistency(upload_window),
        success_rate,
    )
    return clamp(sum(parts) / 3.0, 0.0, 1.0)


# ---------------------------------------------------------------------------
# Score / tier
# ---------------------------------------------------------------------------

def resolve_tier(score: float, offline: bool, config: Config) -> str:
    if offline:
        return TIER_OFFLINE
    if score >= config.quality_high_min_score:
        return TIER_HIGH
    if score >= config.quality_poor_min_score:
        return TIER_POOR
    if score >= config.quality_very_poor_min_score:
        return TIER_VERY_POOR
    return TIER_BAD


def score_quality(
    download_mbps: float,
    upload_mbps: float,
    latency_ms: float,
    jitter_ms: float,
    loss_pct: float,
    consistency: float,
    offline: bool,
    paused: bool,
    config: Config,
    previous_score: Optional[float] = None,
    profile: ScoringProfile = DEFAULT_PROFILE,
) -> Tuple[float, str]:
    """Return ``(score, tier)``.

    Paused holds the previous score; offline is always ``(0, "Offline")``.
    """
    if paused:
        return (previous_score or 0.0, TIER_PAUSED)
    if offline:
        return (0.0, TIER_OFFLINE)

    p = profile
    weighted = (
        p.download_weight * normalize_log_scale(download_mbps, p.download_reference_mbps)
        + p.upload_weight * normalize_log_scale(upload_mbps, p.upload_reference_mbps)
        + p.latency_weight * linear_ramp(latency_ms, p.latency_worst_ms)
        + p.jitter_weight * linear_ramp(jitter_ms, p.jitter_worst_ms)
        + p.loss_weight * linear_ramp(loss_pct, p.loss_worst_pct)
        + p.consistency_weight * clamp(consistency, 0.0, 1.0)
    )
    score = round(clamp(100.0 * weighted, 0.0, 100.0), 1)
    return (score, resolve_tier(score, False, config))


def speed_interval_for(score: float, offline: bool, config: Config) -> int:
    """Seconds until the next throughput probe."""
    if offline or score < CADENCE_POOR_BELOW:
        return config.speed_interval_poor_sec
    if score < CADENCE_NORMAL_BELOW:
        return config.speed_interval_normal_sec
    return config.speed_interval_good_sec
