"""
Upload throughput probing.

Each stream POSTs a random ``application/octet-stream`` body.  The transfer
clock starts when the first body chunk is handed to the connection and
stops when the response arrives.
"""
from __future__ import annotations

import os
import time
from typing import AsyncIterator, Optional

import aiohttp

from .constants import (
    MAX_UPLOAD_BUFFER_BYTES,
    MIN_RELIABLE_BYTES,
    MIN_RELIABLE_DURATION_MS,
    MIN_UPLOAD_LANE_BYTES,
    MIN_UPLOAD_REQUEST_BYTES,
    PREFERRED_UPLOAD_MARKER,
    UPLOAD_BASELINE_MBPS,
    UPLOAD_CHUNK_SIZE,
    UPLOAD_CONTENT_TYPE,
    UPLOAD_FINALIZE_OFFSET_MS,
    UPLOAD_REQUIRED_GAIN,
    UPLOAD_SIZING,
)
from .models import ProbeResult
from .throughput import ThroughputProber, resolve_probe_bytes, transfer_rate_mbps


def resolve_upload_bytes(configured: int, full_probe: bool, last_good_mbps: float) -> int:
    return resolve_probe_bytes(
        configured, full_probe, last_good_mbps, UPLOAD_SIZING, MIN_UPLOAD_REQUEST_BYTES,
    )


class UploadProber(ThroughputProber):
    """Parallel HTTP POST upload prober."""

    direction = "upload"
    min_lane_bytes = MIN_UPLOAD_LANE_BYTES
    baseline_mbps = UPLOAD_BASELINE_MBPS
    required_gain = UPLOAD_REQUIRED_GAIN
    preferred_marker = PREFERRED_UPLOAD_MARKER
    finalize_offset_ms = UPLOAD_FINALIZE_OFFSET_MS

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._buffer = b""

    def _ensure_buffer(self, nbytes: int) -> int:
        """Grow the shared random payload; returns how many bytes can be sent."""
        wanted = min(max(1024, nbytes), MAX_UPLOAD_BUFFER_BYTES)
        if len(self._buffer) < wanted:
            self._buffer = os.urandom(wanted)
        return wanted

    async def _measure_stream(
        self,
        session: aiohttp.ClientSession,
        endpoint: str,
        nbytes: int,
        max_duration_ms: int,
    ) -> ProbeResult:
        send_bytes = self._ensure_buffer(nbytes)
        payload = memoryview(self._buffer)[:send_bytes]
        timer_start: Optional[float] = None

        async def body() -> AsyncIterator[bytes]:
            nonlocal timer_start
            for offset in range(0, send_bytes, UPLOAD_CHUNK_SIZE):
                if timer_start is None:
                    timer_start = time.perf_counter()
                yield bytes(payload[offset:offset + UPLOAD_CHUNK_SIZE])

        headers = {
            "Content-Type": UPLOAD_CONTENT_TYPE,
            "Content-Length": str(send_bytes),
        }

        t0 = time.perf_counter()
        async with session.post(endpoint, data=body(), headers=headers) as resp:
            timer_stop = time.perf_counter()
            if resp.status >= 400:
                return ProbeResult.fail(f"HTTP {resp.status} on {endpoint}", endpoint)

        wall_s = timer_stop - t0
        timed_s = timer_stop - timer_start if timer_start is not None else 0.0
        measured_s = timed_s if timed_s > 0.02 else wall_s
        measured_ms = int(round(measured_s * 1000))

        if send_bytes < MIN_RELIABLE_BYTES and measured_ms < MIN_RELIABLE_DURATION_MS:
            return ProbeResult.fail(
                f"Upload sample to {endpoint} was too short for accurate measurement.", endpoint,
            )

        mbps = transfer_rate_mbps(send_bytes, measured_s * 1000)
        return ProbeResult.ok(mbps, send_bytes, max(1, measured_ms), endpoint)
