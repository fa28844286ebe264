"""
User configuration file support.

Reads/writes ``~/.netquality-sentinel/config.json``.  Every value passes
through :meth:`Config.normalized` before the engine sees it, so a hand-edited
or partially written file can never put the monitor in an invalid state.

Supported keys (all optional)::

    latency_hosts = ["1.1.1.1", "8.8.8.8"]
    latency_samples = 8
    download_endpoints = ["https://speed.cloudflare.com/__down?bytes={bytes}"]
    upload_endpoints = ["https://speed.cloudflare.com/__up"]
    download_small_bytes = 4000000
    quality_high_min_score = 70
    ...
"""
from __future__ import annotations

import dataclasses
import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .constants import (
    DEFAULT_DOWNLOAD_ENDPOINTS,
    DEFAULT_LATENCY_HOSTS,
    DEFAULT_UPLOAD_ENDPOINTS,
    PREFERRED_DOWNLOAD_ENDPOINT,
    PREFERRED_UPLOAD_ENDPOINT,
    TIER_BAD,
    TIER_HIGH,
    TIER_OFFLINE,
    TIER_PAUSED,
    TIER_POOR,
    TIER_VERY_POOR,
)

logger = logging.getLogger(__name__)

_CONFIG_DIR = os.path.join(Path.home(), ".netquality-sentinel")
_CONFIG_FILE = "config.json"

_HEX_RE = re.compile(r"^[0-9A-Fa-f]{6}$")

# Old single-megabyte mirrors finish before the timer is meaningful.
_LEGACY_DOWNLOAD_ENDPOINTS = {
    "https://speed.hetzner.de/1mb.bin": "https://speed.hetzner.de/100MB.bin",
    "https://proof.ovh.net/files/1mb.dat": "https://proof.ovh.net/files/100Mb.dat",
}

_UNKNOWN_TIER_COLOR = "#9AA6B2"


def _config_path() -> str:
    return os.path.join(_CONFIG_DIR, _CONFIG_FILE)


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

@dataclass
class Config:
    """Tunable parameters for the monitor.

    Instances are treated as values: the monitor never mutates the one it
    holds, it swaps in a new normalised copy instead.
    """

    latency_hosts: List[str] = field(default_factory=lambda: list(DEFAULT_LATENCY_HOSTS))
    latency_samples: int = 8
    latency_timeout_ms: int = 900
    latency_interval_sec: int = 4

    download_endpoints: List[str] = field(default_factory=lambda: list(DEFAULT_DOWNLOAD_ENDPOINTS))
    upload_endpoints: List[str] = field(default_factory=lambda: list(DEFAULT_UPLOAD_ENDPOINTS))
    download_small_bytes: int = 4_000_000
    download_full_bytes: int = 18_000_000
    upload_small_bytes: int = 3_000_000
    upload_full_bytes: int = 12_000_000
    download_probe_max_ms: int = 6000
    upload_probe_max_ms: int = 6000
    max_endpoint_backoff_sec: int = 180
    http_timeout_sec: int = 15

    speed_interval_good_sec: int = 30
    speed_interval_normal_sec: int = 18
    speed_interval_poor_sec: int = 10
    full_probe_interval_sec: int = 300
    history_size: int = 20

    quality_high_min_score: int = 70
    quality_poor_min_score: int = 45
    quality_very_poor_min_score: int = 25

    color_high_hex: str = "#2ECC71"
    color_poor_hex: str = "#F1C40F"
    color_very_poor_hex: str = "#E67E22"
    color_bad_hex: str = "#E74C3C"
    color_offline_hex: str = "#951111"
    color_paused_hex: str = "#A0A0A0"

    # -- Normalisation ------------------------------------------------------

    def normalized(self) -> Config:
        """Return a copy with every field clamped into its valid range."""
        c = dataclasses.replace(self)

        c.latency_hosts = _normalize_list(c.latency_hosts, DEFAULT_LATENCY_HOSTS)
        c.download_endpoints = _ensure_first(
            [_LEGACY_DOWNLOAD_ENDPOINTS.get(e.lower(), e)
             for e in _normalize_list(c.download_endpoints, DEFAULT_DOWNLOAD_ENDPOINTS)],
            PREFERRED_DOWNLOAD_ENDPOINT,
        )
        c.upload_endpoints = _ensure_first(
            _normalize_list(c.upload_endpoints, DEFAULT_UPLOAD_ENDPOINTS),
            PREFERRED_UPLOAD_ENDPOINT,
        )

        c.latency_samples = _clamp_int(c.latency_samples, 6, 20, 8)
        c.latency_timeout_ms = _clamp_int(c.latency_timeout_ms, 300, 5000, 900)
        c.latency_interval_sec = _clamp_int(c.latency_interval_sec, 1, 30, 4)

        c.download_small_bytes = _clamp_int(c.download_small_bytes, 250_000, 24_000_000, 4_000_000)
        c.download_full_bytes = _clamp_int(c.download_full_bytes, 500_000, 60_000_000, 18_000_000)
        c.upload_small_bytes = _clamp_int(c.upload_small_bytes, 128_000, 20_000_000, 3_000_000)
        c.upload_full_bytes = _clamp_int(c.upload_full_bytes, 256_000, 40_000_000, 12_000_000)
        c.download_probe_max_ms = _clamp_int(c.download_probe_max_ms, 1200, 20_000, 6000)
        c.upload_probe_max_ms = _clamp_int(c.upload_probe_max_ms, 1200, 20_000, 6000)
        c.max_endpoint_backoff_sec = _clamp_int(c.max_endpoint_backoff_sec, 10, 900, 180)
        c.http_timeout_sec = _clamp_int(c.http_timeout_sec, 4, 90, 15)

        c.speed_interval_poor_sec = _clamp_int(c.speed_interval_poor_sec, 2, 120, 10)
        c.speed_interval_normal_sec = _clamp_int(c.speed_interval_normal_sec, 3, 180, 18)
        c.speed_interval_good_sec = _clamp_int(c.speed_interval_good_sec, 5, 300, 30)
        c.full_probe_interval_sec = _clamp_int(c.full_probe_interval_sec, 30, 3600, 300)
        c.history_size = _clamp_int(c.history_size, 6, 240, 20)

        c.download_full_bytes = max(c.download_full_bytes, c.download_small_bytes)
        c.upload_full_bytes = max(c.upload_full_bytes, c.upload_small_bytes)
        c.speed_interval_normal_sec = max(c.speed_interval_normal_sec, c.speed_interval_poor_sec)
        c.speed_interval_good_sec = max(c.speed_interval_good_sec, c.speed_interval_normal_sec)

        c.quality_high_min_score = _clamp_int(c.quality_high_min_score, 2, 100, 70)
        c.quality_poor_min_score = _clamp_int(c.quality_poor_min_score, 0, 99, 45)
        c.quality_very_poor_min_score = _clamp_int(c.quality_very_poor_min_score, 0, 98, 25)

        # Thresholds must be strictly descending; push the lower ones down.
        if c.quality_poor_min_score >= c.quality_high_min_score:
            c.quality_poor_min_score = max(0, c.quality_high_min_score - 1)
        if c.quality_very_poor_min_score >= c.quality_poor_min_score:
            c.quality_very_poor_min_score = max(0, c.quality_poor_min_score - 1)

        c.color_high_hex = _normalize_hex(c.color_high_hex, "#2ECC71")
        c.color_poor_hex = _normalize_hex(c.color_poor_hex, "#F1C40F")
        c.color_very_poor_hex = _normalize_hex(c.color_very_poor_hex, "#E67E22")
        c.color_bad_hex = _normalize_hex(c.color_bad_hex, "#E74C3C")
        c.color_offline_hex = _normalize_hex(c.color_offline_hex, "#951111")
        c.color_paused_hex = _normalize_hex(c.color_paused_hex, "#A0A0A0")
        return c

    def tier_color(self, tier: Optional[str]) -> str:
        """Hex colour for *tier*, used by status consumers."""
        return {
            TIER_HIGH: self.color_high_hex,
            TIER_POOR: self.color_poor_hex,
            TIER_VERY_POOR: self.color_very_poor_hex,
            TIER_BAD: self.color_bad_hex,
            TIER_OFFLINE: self.color_offline_hex,
            TIER_PAUSED: self.color_paused_hex,
        }.get((tier or "").strip(), _UNKNOWN_TIER_COLOR)

    # -- Serialisation ------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Config:
        """Build a normalised config, ignoring unknown keys."""
        known = {f.name for f in dataclasses.fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known}).normalized()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _clamp_int(value: Any, lo: int, hi: int, fallback: int) -> int:
    if isinstance(value, bool):
        value = fallback
    try:
        value = int(value)
    except (TypeError, ValueError):
        value = fallback
    if value == 0:
        value = fallback
    return max(lo, min(hi, value))


def _normalize_list(values: Any, fallback: List[str]) -> List[str]:
    if not isinstance(values, (list, tuple)):
        return list(fallback)

    out: List[str] = []
    for item in values:
        if not isinstance(item, str) or not item.strip():
            continue
        trimmed = item.strip()
        if trimmed not in out:
            out.append(trimmed)
    return out or list(fallback)


def _ensure_first(values: List[str], preferred: str) -> List[str]:
    rest = [v for v in values if v.lower() != preferred.lower()]
    return [preferred] + rest


def _normalize_hex(value: Any, fallback: str) -> str:
    raw = value.strip() if isinstance(value, str) and value.strip() else fallback
    raw = raw.lstrip("#")
    if not _HEX_RE.match(raw):
        raw = fallback.lstrip("#")
    return "#" + raw.upper()


DEFAULTS: Dict[str, Any] = Config().normalized().to_dict()


# ---------------------------------------------------------------------------
# Read / Write
# ---------------------------------------------------------------------------

def load_config(path: Optional[str] = None) -> Config:
    """Load config from disk, returning defaults for missing keys."""
    path = path or _config_path()

    if not os.path.isfile(path):
        return Config().normalized()

    try:
        with open(path, encoding="utf-8") as fh:
            user = json.load(fh)
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return Config().normalized()

    if not isinstance(user, dict):
        logger.warning("Ignoring config %s: top level is not an object", path)
        return Config().normalized()

    return Config.from_dict(user)


def save_config(config: Config, path: Optional[str] = None) -> str:
    """Write the normalised *config* to disk.  Returns the file path."""
    path = path or _config_path()
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

    with open(path, "w", encoding="utf-8") as fh:
        json.dump(config.normalized().to_dict(), fh, indent=2, ensure_ascii=False)

    return path


def config_path() -> str:
    """Return the config file path (for display purposes)."""
    return _config_path()
