"""
Rolling quality history and resampled timeline.

The monitor records one ``QualityHistoryPoint`` per wall-clock second and
keeps the trailing minute.  ``timeline()`` resamples that minute onto a
fixed grid for charting, smoothing the score with an eased Catmull-Rom
spline.
"""
from __future__ import annotations

import math
import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Deque, List, Optional, Tuple

from .constants import (
    HISTORY_SAMPLE_INTERVAL_SECONDS,
    HISTORY_WINDOW_SECONDS,
    TIMELINE_CACHE_MAX_AGE_MS,
    TIMELINE_STEP_SECONDS,
)
from .models import QualityHistoryPoint, Snapshot, TimelineSample
from .stats import catmull_rom, clamp, lerp, smoothstep


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def align_to_next_second(ts: datetime) -> datetime:
    """Round *ts* up to the next whole second (unchanged if already whole)."""
    whole = ts.replace(microsecond=0)
    if whole < ts:
        whole += timedelta(seconds=1)
    return whole


def history_point(snapshot: Snapshot, ts: datetime) -> QualityHistoryPoint:
    return QualityHistoryPoint(
        timestamp_utc=ts,
        quality_score=snapshot.quality_score,
        tier=snapshot.tier,
        download_mbps=snapshot.download_mbps,
        upload_mbps=snapshot.upload_mbps,
        latency_ms=snapshot.latency_ms,
        jitter_ms=snapshot.jitter_ms,
        loss_pct=snapshot.loss_pct,
    )


def _smooth_score(points: List[QualityHistoryPoint], index: int, t: float) -> float:
    last = len(points) - 1
    v0 = points[max(0, index - 1)].quality_score
    v1 = points[min(index, last)].quality_score
    v2 = points[min(index + 1, last)].quality_score
    v3 = points[min(index + 2, last)].quality_score
    return clamp(catmull_rom(v0, v1, v2, v3, t), 0.0, 100.0)


def build_timeline(
    points: List[QualityHistoryPoint],
    now: datetime,
    step: float = TIMELINE_STEP_SECONDS,
    window: int = HISTORY_WINDOW_SECONDS,
) -> List[TimelineSample]:
    """Resample *points* onto offsets ``0, step, ... window`` seconds.

    Offset 0 is ``now - window``.  Offsets before the first point carry no
    data (NaN); offsets after the last point hold its values.
    """
    if step <= 0:
        raise ValueError("step must be positive")

    count = int(round(window / step)) + 1
    ordered = sorted(points, key=lambda p: p.timestamp_utc)
    if not ordered:
        return [TimelineSample(offset_sec=round(i * step, 6)) for i in range(count)]

    start = now - timedelta(seconds=window)
    out: List[TimelineSample] = []
    idx = 0

    for i in range(count):
        offset = round(i * step, 6)
        t = start + timedelta(seconds=offset)
        if t < ordered[0].timestamp_utc:
            out.append(TimelineSample(offset_sec=offset))
            continue

        while idx + 1 < len(ordered) and ordered[idx + 1].timestamp_utc <= t:
            idx += 1

        left = ordered[idx]
        right = ordered[idx + 1] if idx + 1 < len(ordered) else left

        frac = 0.0
        span = (right.timestamp_utc - left.timestamp_utc).total_seconds()
        if span > 0:
            frac = clamp((t - left.timestamp_utc).total_seconds() / span, 0.0, 1.0)
        eased = smoothstep(frac)

        out.append(TimelineSample(
            offset_sec=offset,
            quality_score=_smooth_score(ordered, idx, eased),
            tier=left.tier or right.tier,
            download_mbps=lerp(left.download_mbps, right.download_mbps, eased),
            upload_mbps=lerp(left.upload_mbps, right.upload_mbps, eased),
            latency_ms=lerp(left.latency_ms, right.latency_ms, eased),
            jitter_ms=lerp(left.jitter_ms, right.jitter_ms, eased),
            loss_pct=lerp(left.loss_pct, right.loss_pct, eased),
        ))

    return out


def sparkline(values: List[float]) -> str:
    """Single-line Unicode sparkline chart; NaN renders as a blank."""
    finite = [v for v in values if not math.isnan(v)]
    if not finite:
        return " " * len(values)
    bars = "▁▂▃▄▅▆▇█"
    lo, hi = min(finite), max(finite)
    span = hi - lo if hi > lo else 1.0
    return "".join(
        " " if math.isnan(v)
        else bars[min(int((v - lo) / span * (len(bars) - 1)), len(bars) - 1)]
        for v in values
    )


# ---------------------------------------------------------------------------
# History store
# ---------------------------------------------------------------------------

class QualityHistory:
    """Fixed-interval history of published snapshots.

    Written by the monitor loop, read from any thread.
    """

    def __init__(self, window_seconds: int = HISTORY_WINDOW_SECONDS) -> None:
        self.window_seconds = window_seconds
        self._points: Deque[QualityHistoryPoint] = deque()
        self._next_sample_at: Optional[datetime] = None
        self._version = 0
        self._lock = threading.Lock()

        self._cache: List[TimelineSample] = []
        self._cache_key: Optional[Tuple[int, float]] = None
        self._cache_built_at: Optional[datetime] = None

    @property
    def version(self) -> int:
        return self._version

    def __len__(self) -> int:
        return len(self._points)

    def points(self) -> List[QualityHistoryPoint]:
        with self._lock:
            return list(self._points)

    def record_tick(self, snapshot: Snapshot, now: datetime) -> int:
        """Append a point for every whole second up to *now*.

        Returns the number of points added.
        """
        interval = timedelta(seconds=HISTORY_SAMPLE_INTERVAL_SECONDS)
        added = 0
        with self._lock:
            if self._next_sample_at is None:
                self._next_sample_at = align_to_next_second(now)

            # After a long stall only the visible window is worth filling.
            edge = now - timedelta(seconds=self.window_seconds)
            if self._next_sample_at < edge:
                self._next_sample_at = align_to_next_second(edge)

            while self._next_sample_at <= now:
                self._points.append(history_point(snapshot, self._next_sample_at))
                self._next_sample_at += interval
                added += 1

            if added:
                self._version += 1
            self._prune_locked(now)
        return added

    def prune(self, now: datetime) -> int:
        with self._lock:
            return self._prune_locked(now)

    def _prune_locked(self, now: datetime) -> int:
        cutoff = now - timedelta(seconds=self.window_seconds)
        dropped = 0
        while self._points and self._points[0].timestamp_utc < cutoff:
            self._points.popleft()
            dropped += 1
        if dropped:
            self._version += 1
        return dropped

    def timeline(self, now: datetime, step: float = TIMELINE_STEP_SECONDS) -> List[TimelineSample]:
        with self._lock:
            key = (self._version, step)
            if (
                self._cache_key == key
                and self._cache_built_at is not None
                and abs((now - self._cache_built_at).total_seconds()) * 1000 <= TIMELINE_CACHE_MAX_AGE_MS
            ):
                return list(self._cache)

            self._cache = build_timeline(list(self._points), now, step, self.window_seconds)
            self._cache_key = key
            self._cache_built_at = now
            return list(self._cache)
