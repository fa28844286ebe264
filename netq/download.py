"""
Download throughput probing.

Each stream issues an HTTP GET and reads ``READ_CHUNK_SIZE`` chunks until
the lane target or the time limit is hit.  A warm-up prefix is read but not
timed, so TCP slow-start does not drag the figure down.
"""
from __future__ import annotations

import re
import time

import aiohttp

from .constants import (
    DOWNLOAD_BASELINE_MBPS,
    DOWNLOAD_REQUIRED_GAIN,
    DOWNLOAD_SIZING,
    MAX_WARMUP_BYTES,
    MIN_DOWNLOAD_BYTES,
    MIN_DOWNLOAD_LANE_BYTES,
    MIN_DOWNLOAD_REQUEST_BYTES,
    MIN_RELIABLE_BYTES,
    MIN_RELIABLE_DURATION_MS,
    MIN_TIMED_BYTES,
    MIN_WARMUP_BYTES,
    PREFERRED_DOWNLOAD_MARKER,
    READ_CHUNK_SIZE,
)
from .models import ProbeResult
from .throughput import ThroughputProber, resolve_probe_bytes, transfer_rate_mbps

_BYTES_PLACEHOLDER = re.compile(r"\{bytes\}", re.IGNORECASE)
_BYTES_PARAM = re.compile(r"([?&]bytes=)[^&#]*", re.IGNORECASE)


def build_download_url(endpoint: str, nbytes: int) -> str:
    """Put the byte count into *endpoint*.

    ``{bytes}`` is substituted, an existing ``bytes=`` query parameter is
    overwritten, anything else is fetched as-is and read up to the target.
    """
    if _BYTES_PLACEHOLDER.search(endpoint):
        return _BYTES_PLACEHOLDER.sub(str(nbytes), endpoint)
    if _BYTES_PARAM.search(endpoint):
        return _BYTES_PARAM.sub(lambda m: m.group(1) + str(nbytes), endpoint, count=1)
    return endpoint


def warmup_bytes(nbytes: int) -> int:
    return min(max(MIN_WARMUP_BYTES, nbytes // 5), MAX_WARMUP_BYTES)


def resolve_download_bytes(configured: int, full_probe: bool, last_good_mbps: float) -> int:
    return resolve_probe_bytes(
        configured, full_probe, last_good_mbps, DOWNLOAD_SIZING, MIN_DOWNLOAD_REQUEST_BYTES,
    )


class DownloadProber(ThroughputProber):
    """Parallel HTTP GET download prober."""

    direction = "download"
    min_lane_bytes = MIN_DOWNLOAD_LANE_BYTES
    baseline_mbps = DOWNLOAD_BASELINE_MBPS
    required_gain = DOWNLOAD_REQUIRED_GAIN
    preferred_marker = PREFERRED_DOWNLOAD_MARKER

    async def _measure_stream(
        self,
        session: aiohttp.ClientSession,
        endpoint: str,
        nbytes: int,
        max_duration_ms: int,
    ) -> ProbeResult:
        url = build_download_url(endpoint, nbytes)
        warmup = warmup_bytes(nbytes)
        deadline = max_duration_ms / 1000.0

        bytes_read = 0
        timed_bytes = 0
        timer_start = None
        t0 = time.perf_counter()

        async with session.get(url) as resp:
            if resp.status >= 400:
                return ProbeResult.fail(f"HTTP {resp.status} on {endpoint}", endpoint)

            async for chunk in resp.content.iter_chunked(READ_CHUNK_SIZE):
                bytes_read += len(chunk)
                if timer_start is not None:
                    timed_bytes += len(chunk)
                elif bytes_read >= warmup:
                    # The chunk that crosses the warm-up line is not timed.
                    timer_start = time.perf_counter()

                if bytes_read >= nbytes or time.perf_counter() - t0 >= deadline:
                    break

        timer_stop = time.perf_counter()
        wall_s = timer_stop - t0

        if bytes_read < MIN_DOWNLOAD_BYTES:
            return ProbeResult.fail(f"Too little data from {endpoint} ({bytes_read} bytes).", endpoint)

        measured_bytes = timed_bytes if timed_bytes >= MIN_TIMED_BYTES else bytes_read
        timed_s = timer_stop - timer_start if timer_start is not None else 0.0
        if measured_bytes == bytes_read or timed_s <= 0.02:
            measured_s = wall_s
        else:
            measured_s = timed_s
        measured_ms = int(round(measured_s * 1000))

        if measured_bytes < MIN_RELIABLE_BYTES and measured_ms < MIN_RELIABLE_DURATION_MS:
            return ProbeResult.fail(
                f"Probe sample from {endpoint} was too short for accurate measurement.", endpoint,
            )

        mbps = transfer_rate_mbps(measured_bytes, measured_s * 1000)
        return ProbeResult.ok(mbps, measured_bytes, max(1, measured_ms), endpoint)
