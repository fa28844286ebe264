"""
Result and snapshot data models.

Probe outcomes are frozen dataclasses: a prober builds one, hands it up,
and nobody edits it afterwards.  ``Snapshot`` is the only aggregate and is
always handed to consumers as a deep copy.
"""
from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .constants import TIER_OFFLINE


def _round_or_nan(value: float, digits: int) -> Optional[float]:
    """JSON has no NaN; render it as null."""
    if value is None or math.isnan(value):
        return None
    return round(value, digits)


# ---------------------------------------------------------------------------
# Probe results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LatencyResult:
    """Outcome of one latency cycle against the selected host."""

    success: bool = False
    host: Optional[str] = None
    avg_ms: float = math.nan
    jitter_ms: float = math.nan
    loss_pct: float = 100.0

    @classmethod
    def fail(cls) -> LatencyResult:
        return cls()

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "host": self.host,
            "avg_ms": _round_or_nan(self.avg_ms, 1),
            "jitter_ms": _round_or_nan(self.jitter_ms, 1),
            "loss_pct": round(self.loss_pct, 1),
        }


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one stream, one trial, or one aggregated throughput probe."""

    success: bool = False
    mbps: float = 0.0
    bytes: int = 0
    duration_ms: int = 0
    error: str = ""
    endpoint: str = ""

    @classmethod
    def ok(cls, mbps: float, nbytes: int, duration_ms: int, endpoint: str) -> ProbeResult:
        return cls(
            success=True,
            mbps=round(mbps, 2),
            bytes=int(nbytes),
            duration_ms=int(duration_ms),
            endpoint=endpoint,
        )

    @classmethod
    def fail(cls, error: Optional[str] = None, endpoint: str = "") -> ProbeResult:
        return cls(success=False, error=error or "Probe failed.", endpoint=endpoint)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "mbps": round(self.mbps, 2),
            "bytes": self.bytes,
            "duration_ms": self.duration_ms,
            "error": self.error,
            "endpoint": self.endpoint,
        }


@dataclass(frozen=True)
class InterfaceInfo:
    """The interface most likely carrying the default route."""

    is_connected: bool = False
    name: str = "Offline"
    interface_type: str = "n/a"
    link_mbps: float = 0.0

    @classmethod
    def offline(cls) -> InterfaceInfo:
        return cls()

    def to_dict(self) -> dict:
        return {
            "is_connected": self.is_connected,
            "name": self.name,
            "interface_type": self.interface_type,
            "link_mbps": round(self.link_mbps, 1),
        }


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class QualityHistoryPoint:
    timestamp_utc: datetime
    quality_score: float
    tier: Optional[str]
    download_mbps: float
    upload_mbps: float
    latency_ms: float
    jitter_ms: float
    loss_pct: float

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp_utc.isoformat(),
            "quality_score": round(self.quality_score, 1),
            "tier": self.tier,
            "download_mbps": round(self.download_mbps, 2),
            "upload_mbps": round(self.upload_mbps, 2),
            "latency_ms": _round_or_nan(self.latency_ms, 1),
            "jitter_ms": _round_or_nan(self.jitter_ms, 1),
            "loss_pct": _round_or_nan(self.loss_pct, 1),
        }


@dataclass(frozen=True)
class TimelineSample:
    """One resampled point of the trailing window; NaN means no data."""

    offset_sec: float
    quality_score: float = math.nan
    tier: Optional[str] = None
    download_mbps: float = math.nan
    upload_mbps: float = math.nan
    latency_ms: float = math.nan
    jitter_ms: float = math.nan
    loss_pct: float = math.nan

    @property
    def has_data(self) -> bool:
        return not math.isnan(self.quality_score)


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------

@dataclass
class Snapshot:
    """Everything a status consumer needs, produced once per loop tick."""

    timestamp_utc: datetime
    interface: InterfaceInfo = field(default_factory=InterfaceInfo.offline)
    latency: LatencyResult = field(default_factory=LatencyResult.fail)
    download: ProbeResult = field(default_factory=ProbeResult.fail)
    upload: ProbeResult = field(default_factory=ProbeResult.fail)
    download_mbps: float = 0.0
    upload_mbps: float = 0.0
    latency_ms: float = math.nan
    jitter_ms: float = math.nan
    loss_pct: float = 100.0
    consistency_score: float = 0.0
    quality_score: float = 0.0
    tier: str = TIER_OFFLINE
    offline: bool = True
    quality_history: List[QualityHistoryPoint] = field(default_factory=list)

    @property
    def latency_host(self) -> str:
        return self.latency.host or "n/a"

    @property
    def last_download_error(self) -> str:
        return self.download.error

    @property
    def last_upload_error(self) -> str:
        return self.upload.error

    def copy(self) -> Snapshot:
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp_utc.isoformat(),
            "interface": self.interface.to_dict(),
            "quality_score": round(self.quality_score, 1),
            "tier": self.tier,
            "offline": self.offline,
            "download_mbps": round(self.download_mbps, 2),
            "upload_mbps": round(self.upload_mbps, 2),
            "latency_ms": _round_or_nan(self.latency_ms, 1),
            "jitter_ms": _round_or_nan(self.jitter_ms, 1),
            "loss_pct": round(self.loss_pct, 1),
            "consistency_score": round(self.consistency_score, 3),
            "latency_host": self.latency_host,
            "probes": {
                "latency": self.latency.to_dict(),
                "download": self.download.to_dict(),
                "upload": self.upload.to_dict(),
            },
            "history": [p.to_dict() for p in self.quality_history],
        }
