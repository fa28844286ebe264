"""
Shared constants used across all engine modules.

Centralises magic numbers, default headers, and tunables so they live in
exactly one place.
"""

# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

USER_AGENT = "NetQualitySentinel/2.0"

COMMON_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "*/*",
    "Accept-Encoding": "identity",
    "Cache-Control": "no-cache",
}

UPLOAD_CONTENT_TYPE = "application/octet-stream"

# ---------------------------------------------------------------------------
# Default endpoints
# ---------------------------------------------------------------------------

PREFERRED_DOWNLOAD_ENDPOINT = "https://speed.cloudflare.com/__down?bytes={bytes}"
PREFERRED_UPLOAD_ENDPOINT = "https://speed.cloudflare.com/__up"

# Substrings identifying the canonical (preferred) endpoints.
PREFERRED_DOWNLOAD_MARKER = "speed.cloudflare.com/__down"
PREFERRED_UPLOAD_MARKER = "speed.cloudflare.com/__up"

DEFAULT_LATENCY_HOSTS = ["1.1.1.1", "8.8.8.8", "9.9.9.9"]
DEFAULT_DOWNLOAD_ENDPOINTS = [
    PREFERRED_DOWNLOAD_ENDPOINT,
    "https://speed.hetzner.de/100MB.bin",
    "https://proof.ovh.net/files/100Mb.dat",
]
DEFAULT_UPLOAD_ENDPOINTS = [
    PREFERRED_UPLOAD_ENDPOINT,
    "https://postman-echo.com/post",
    "https://httpbin.org/post",
]

# ---------------------------------------------------------------------------
# Throughput probing
# ---------------------------------------------------------------------------

TRIALS_PER_ENDPOINT = 3
STREAMS_SMALL = 2
STREAMS_FULL = 3

MIN_DOWNLOAD_LANE_BYTES = 512_000
MIN_UPLOAD_LANE_BYTES = 384_000

MAX_WARMUP_BYTES = 128 * 1024
MIN_WARMUP_BYTES = 32 * 1024
MIN_DOWNLOAD_BYTES = 20_480       # anything below is not a usable sample
MIN_TIMED_BYTES = 16_384          # below this, fall back to total bytes

MIN_RELIABLE_BYTES = 64 * 1024
MIN_RELIABLE_DURATION_MS = 280

TARGET_DURATION_SMALL_MS = 1200
TARGET_DURATION_FULL_MS = 3000
UPLOAD_FINALIZE_OFFSET_MS = 150
MIN_FINALIZE_DURATION_MS = 350
MIN_FINALIZE_BYTES = 128 * 1024

OUTLIER_IQR_MULTIPLIER = 1.5

READ_CHUNK_SIZE = 32 * 1024
UPLOAD_CHUNK_SIZE = 32 * 1024
MAX_UPLOAD_BUFFER_BYTES = 64_000_000
MIN_STREAM_TIMEOUT_MS = 200

# Adaptive sizing: (fallback Mbps, target seconds, floor bytes, cap bytes)
DOWNLOAD_SIZING = {
    False: (75.0, 1.2, 256_000, 16_000_000),
    True: (120.0, 3.0, 512_000, 48_000_000),
}
UPLOAD_SIZING = {
    False: (25.0, 1.0, 256_000, 10_000_000),
    True: (40.0, 2.7, 512_000, 28_000_000),
}
MIN_DOWNLOAD_REQUEST_BYTES = 32_768
MIN_UPLOAD_REQUEST_BYTES = 4096

# Endpoint selection
DOWNLOAD_BASELINE_MBPS = 30.0
UPLOAD_BASELINE_MBPS = 9.0
PREFERRED_ACCEPT_RATIO = 0.70
DOWNLOAD_REQUIRED_GAIN = 1.45
UPLOAD_REQUIRED_GAIN = 1.60

# Backoff
BACKOFF_BASE_SECONDS = 5
MIN_BACKOFF_CAP_SECONDS = 10
MAX_BACKOFF_SHIFT = 7
MAX_CONSECUTIVE_FAILURES = 24

# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

TIER_HIGH = "High"
TIER_POOR = "Poor"
TIER_VERY_POOR = "VeryPoor"
TIER_BAD = "Bad"
TIER_OFFLINE = "Offline"
TIER_PAUSED = "Paused"

STALE_HALF_LIFE_SECONDS = 45.0
CV_SATURATION = 0.9

# Cadence boundaries used to pick the next throughput probe interval.
CADENCE_POOR_BELOW = 40.0
CADENCE_NORMAL_BELOW = 70.0

# ---------------------------------------------------------------------------
# History / timeline
# ---------------------------------------------------------------------------

HISTORY_WINDOW_SECONDS = 60
HISTORY_SAMPLE_INTERVAL_SECONDS = 1
TIMELINE_STEP_SECONDS = 0.2
TIMELINE_CACHE_MAX_AGE_MS = 150

# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

LOOP_POLL_SECONDS = 0.5
LOOP_ERROR_COOLDOWN_SECONDS = 2.0
PAUSED_RECHECK_SECONDS = 5
FULL_PROBE_WARMUP_CYCLES = 2
