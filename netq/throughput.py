"""
Multi-stream throughput probing shared by download and upload.

One ``measure()`` call walks the backoff-filtered endpoint list.  Every
endpoint gets up to ``TRIALS_PER_ENDPOINT`` trials; a trial runs N
concurrent streams against the same endpoint and folds them into a single
``ProbeResult``.  Trials are aggregated to a median, and the preferred
endpoint wins unless an alternate is dramatically faster.

Subclasses provide ``_measure_stream`` (one HTTP transfer) and the
direction-specific class attributes.
"""
from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import List, Optional, Sequence

import aiohttp

from .backoff import EndpointBackoffTracker
from .constants import (
    COMMON_HEADERS,
    MIN_FINALIZE_BYTES,
    MIN_FINALIZE_DURATION_MS,
    MIN_RELIABLE_BYTES,
    MIN_RELIABLE_DURATION_MS,
    MIN_STREAM_TIMEOUT_MS,
    OUTLIER_IQR_MULTIPLIER,
    PREFERRED_ACCEPT_RATIO,
    STREAMS_FULL,
    STREAMS_SMALL,
    TARGET_DURATION_FULL_MS,
    TARGET_DURATION_SMALL_MS,
    TRIALS_PER_ENDPOINT,
)
from .models import ProbeResult
from .stats import filter_iqr_outliers, is_finite, select_median

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def lane_bytes(requested_bytes: int, streams: int, min_lane: int) -> int:
    """Bytes each of *streams* concurrent transfers should move."""
    streams = max(1, streams)
    total = max(min_lane, requested_bytes)
    return max(min_lane, int(math.ceil(total / streams)))


def is_reliable(result: ProbeResult) -> bool:
    """A sample is trustworthy once it is either big enough or long enough."""
    return result.bytes >= MIN_RELIABLE_BYTES or result.duration_ms >= MIN_RELIABLE_DURATION_MS


def transfer_rate_mbps(nbytes: int, duration_ms: float) -> float:
    seconds = max(duration_ms / 1000.0, 0.001)
    return (nbytes * 8.0 / 1_000_000.0) / seconds


def combine_streams(
    results: Sequence[ProbeResult],
    wall_ms: int,
    endpoint: str,
    label: str = "probe",
) -> ProbeResult:
    """Fold the concurrent streams of one trial into one result.

    Throughput is the summed bytes over the slowest stream or the wall
    clock, whichever is longer.
    """
    failure = ProbeResult.fail(f"All parallel {label} streams failed.", endpoint)
    total_bytes = 0
    max_ms = 0
    ok = 0

    for r in results:
        if not r.success:
            failure = r
            continue
        if not is_finite(r.mbps) or r.mbps <= 0.0:
            continue
        total_bytes += max(0, r.bytes)
        max_ms = max(max_ms, max(1, r.duration_ms))
        ok += 1

    if ok == 0:
        return failure

    if total_bytes < MIN_RELIABLE_BYTES and max_ms < MIN_RELIABLE_DURATION_MS:
        return ProbeResult.fail(
            f"Parallel {label} sample was too short for accurate measurement.", endpoint,
        )

    duration_ms = max(1, max_ms, int(wall_ms))
    mbps = transfer_rate_mbps(total_bytes, duration_ms)
    if round(mbps, 2) <= 0.0:
        return ProbeResult.fail(f"Parallel {label} rate was too low to measure.", endpoint)
    return ProbeResult.ok(mbps, total_bytes, duration_ms, endpoint)


def should_finalize(successes: Sequence[ProbeResult], requested_bytes: int, target_ms: int) -> bool:
    """True once enough successful trials exist to stop probing an endpoint."""
    if len(successes) >= TRIALS_PER_ENDPOINT:
        return True
    if len(successes) < 2:
        return False

    total_ms = sum(max(0, s.duration_ms) for s in successes)
    if total_ms >= max(MIN_FINALIZE_DURATION_MS, target_ms):
        return True

    total_bytes = sum(max(0, s.bytes) for s in successes)
    return total_bytes >= 2 * max(MIN_FINALIZE_BYTES, requested_bytes)


def aggregate_trials(trials: Sequence[ProbeResult], endpoint: str = "") -> Optional[ProbeResult]:
    """Median of the reliable successful trials, outliers removed.

    Returns None when no trial is usable.
    """
    usable = [
        t for t in trials
        if t.success and is_finite(t.mbps) and t.mbps > 0.0 and is_reliable(t)
    ]
    if not usable:
        return None

    if len(usable) >= 4:
        usable = filter_iqr_outliers(usable, key=lambda r: r.mbps, multiplier=OUTLIER_IQR_MULTIPLIER)

    median = select_median(usable, key=lambda r: r.mbps)
    return ProbeResult.ok(
        median.mbps,
        max(0, median.bytes),
        max(1, median.duration_ms),
        endpoint or median.endpoint,
    )


def should_accept_preferred(result: ProbeResult, last_good_mbps: float, baseline_mbps: float) -> bool:
    if not result.success:
        return False
    ratio_floor = last_good_mbps * PREFERRED_ACCEPT_RATIO if last_good_mbps > 0.1 else baseline_mbps
    return result.mbps >= max(baseline_mbps, ratio_floor)


def select_best(
    preferred: Optional[ProbeResult],
    alternate: Optional[ProbeResult],
    required_gain: float,
) -> Optional[ProbeResult]:
    """Keep the preferred result unless the alternate beats it by *required_gain*."""
    preferred_ok = preferred is not None and preferred.success
    alternate_ok = alternate is not None and alternate.success
    if preferred_ok and not alternate_ok:
        return preferred
    if alternate_ok and not preferred_ok:
        return alternate
    if not preferred_ok:
        return None
    if alternate.mbps >= preferred.mbps * required_gain:
        return alternate
    return preferred


def resolve_probe_bytes(
    configured: int,
    full_probe: bool,
    last_good_mbps: float,
    sizing: dict,
    min_request: int,
) -> int:
    """Size a probe so it lasts roughly the target duration at the last speed."""
    fallback_mbps, target_s, floor, cap = sizing[bool(full_probe)]
    estimate = last_good_mbps if last_good_mbps > 0.1 else fallback_mbps
    adaptive = int(round(estimate * 1_000_000 / 8 * target_s))
    adaptive = max(floor, min(cap, adaptive))
    return max(max(min_request, configured), adaptive)


# ---------------------------------------------------------------------------
# Prober
# ---------------------------------------------------------------------------

class ThroughputProber:
    """Base class for the download and upload probers."""

    direction = "probe"
    min_lane_bytes = 0
    baseline_mbps = 0.0
    required_gain = 1.0
    preferred_marker = ""
    finalize_offset_ms = 0

    def __init__(self, tracker: Optional[EndpointBackoffTracker] = None, http_timeout_sec: int = 15) -> None:
        self.tracker = tracker or EndpointBackoffTracker(label=self.direction)
        self.http_timeout_sec = http_timeout_sec

    # -- Seams --------------------------------------------------------------

    def _open_session(self, streams: int) -> aiohttp.ClientSession:
        connector = aiohttp.TCPConnector(
            limit=streams,
            limit_per_host=streams,
            force_close=False,
            enable_cleanup_closed=True,
        )
        timeout = aiohttp.ClientTimeout(total=self.http_timeout_sec)
        return aiohttp.ClientSession(headers=COMMON_HEADERS, connector=connector, timeout=timeout)

    async def _measure_stream(
        self,
        session: aiohttp.ClientSession,
        endpoint: str,
        nbytes: int,
        max_duration_ms: int,
    ) -> ProbeResult:
        raise NotImplementedError

    # -- Public -------------------------------------------------------------

    def is_preferred(self, endpoint: str) -> bool:
        return bool(self.preferred_marker) and self.preferred_marker in endpoint.strip().lower()

    def target_duration_ms(self, full_probe: bool) -> int:
        base = TARGET_DURATION_FULL_MS if full_probe else TARGET_DURATION_SMALL_MS
        return base - self.finalize_offset_ms

    async def measure(
        self,
        endpoints: Sequence[str],
        requested_bytes: int,
        max_duration_ms: int,
        full_probe: bool,
        last_good_mbps: float = 0.0,
    ) -> ProbeResult:
        candidates = self.tracker.candidates(endpoints)
        if not candidates:
            return ProbeResult.fail(f"No {self.direction} endpoints configured.")

        streams = STREAMS_FULL if full_probe else STREAMS_SMALL
        failure = ProbeResult.fail(f"All {self.direction} endpoints failed.")
        preferred_best: Optional[ProbeResult] = None
        alternate_best: Optional[ProbeResult] = None

        async with self._open_session(streams) as session:
            for endpoint in candidates:
                result = await self._probe_endpoint(
                    session, endpoint, requested_bytes, max_duration_ms, full_probe, streams,
                )
                if not result.success:
                    failure = result
                    continue

                if self.is_preferred(endpoint):
                    if preferred_best is None or result.mbps > preferred_best.mbps:
                        preferred_best = result
                    if should_accept_preferred(result, last_good_mbps, self.baseline_mbps):
                        logger.info("%s %.2f Mbps via %s", self.direction, result.mbps, endpoint)
                        return result
                elif alternate_best is None or result.mbps > alternate_best.mbps:
                    alternate_best = result

        best = select_best(preferred_best, alternate_best, self.required_gain)
        if best is None:
            logger.warning("%s probe failed: %s", self.direction, failure.error)
            return failure

        logger.info("%s %.2f Mbps via %s", self.direction, best.mbps, best.endpoint)
        return best

    # -- Internals ----------------------------------------------------------

    async def _probe_endpoint(
        self,
        session: aiohttp.ClientSession,
        endpoint: str,
        requested_bytes: int,
        max_duration_ms: int,
        full_probe: bool,
        streams: int,
    ) -> ProbeResult:
        lane = lane_bytes(requested_bytes, streams, self.min_lane_bytes)
        target_ms = self.target_duration_ms(full_probe)
        successes: List[ProbeResult] = []
        failure: Optional[ProbeResult] = None

        for trial in range(TRIALS_PER_ENDPOINT):
            result = await self._run_trial(session, endpoint, lane, streams, max_duration_ms)
            if result.success:
                successes.append(result)
                if should_finalize(successes, requested_bytes, target_ms):
                    break
            else:
                failure = result
                logger.debug("%s trial %d on %s failed: %s", self.direction, trial + 1, endpoint, result.error)

        aggregate = aggregate_trials(successes, endpoint)
        if aggregate is None:
            self.tracker.on_failure(endpoint)
            return failure or ProbeResult.fail(f"No usable {self.direction} sample from {endpoint}.", endpoint)

        self.tracker.on_success(endpoint)
        return aggregate

    async def _run_trial(
        self,
        session: aiohttp.ClientSession,
        endpoint: str,
        lane: int,
        streams: int,
        max_duration_ms: int,
    ) -> ProbeResult:
        started = time.perf_counter()
        tasks = [
            asyncio.create_task(self._bounded_stream(session, endpoint, lane, max_duration_ms))
            for _ in range(streams)
        ]
        try:
            results = await asyncio.gather(*tasks)
        finally:
            for t in tasks:
                if not t.done():
                    t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        wall_ms = max(1, int((time.perf_counter() - started) * 1000))
        return combine_streams(results, wall_ms, endpoint, self.direction)

    async def _bounded_stream(
        self,
        session: aiohttp.ClientSession,
        endpoint: str,
        nbytes: int,
        max_duration_ms: int,
    ) -> ProbeResult:
        limit = max(MIN_STREAM_TIMEOUT_MS, max_duration_ms) / 1000.0
        try:
            return await asyncio.wait_for(
                self._measure_stream(session, endpoint, nbytes, max_duration_ms),
                timeout=limit,
            )
        except asyncio.TimeoutError:
            return ProbeResult.fail(f"Timeout on {endpoint}.", endpoint)
        except (aiohttp.ClientError, OSError) as exc:
            return ProbeResult.fail(f"{self.direction.capitalize()} failed on {endpoint}: {exc}", endpoint)
