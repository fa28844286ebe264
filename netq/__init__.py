"""Network quality engine -- probing, scoring, and history."""

from .backoff import EndpointBackoffState, EndpointBackoffTracker, backoff_seconds
from .config import Config, load_config, save_config
from .download import DownloadProber, build_download_url
from .history import QualityHistory, build_timeline
from .interface import get_primary_interface
from .latency import LatencyProber
from .models import (
    InterfaceInfo,
    LatencyResult,
    ProbeResult,
    QualityHistoryPoint,
    Snapshot,
    TimelineSample,
)
from .monitor import NetworkQualityMonitor
from .scoring import ScoringProfile, resolve_tier, score_quality
from .stats import format_latency, format_speed
from .upload import UploadProber

__all__ = [
    "Config",
    "DownloadProber",
    "EndpointBackoffState",
    "EndpointBackoffTracker",
    "InterfaceInfo",
    "LatencyProber",
    "LatencyResult",
    "NetworkQualityMonitor",
    "ProbeResult",
    "QualityHistory",
    "QualityHistoryPoint",
    "ScoringProfile",
    "Snapshot",
    "TimelineSample",
    "UploadProber",
    "backoff_seconds",
    "build_download_url",
    "build_timeline",
    "format_latency",
    "format_speed",
    "get_primary_interface",
    "load_config",
    "resolve_tier",
    "save_config",
    "score_quality",
]
