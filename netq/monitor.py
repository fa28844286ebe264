"""
The orchestration loop.

``NetworkQualityMonitor.run()`` is a single asyncio task that wakes every
``LOOP_POLL_SECONDS``, runs whichever probes are due, scores the result and
publishes a ``Snapshot``.  Consumers on any thread read snapshots and the
timeline through the public accessors.  Config swaps and probe requests
only set flags under the lock; the loop applies them at the start of the
next tick, so all probe state is mutated by the loop alone.
"""
from __future__ import annotations

import asyncio
import logging
import math
import threading
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Callable, Deque, List, Optional

from .backoff import EndpointBackoffTracker
from .config import Config
from .constants import (
    FULL_PROBE_WARMUP_CYCLES,
    LOOP_ERROR_COOLDOWN_SECONDS,
    LOOP_POLL_SECONDS,
    PAUSED_RECHECK_SECONDS,
    TIMELINE_STEP_SECONDS,
)
from .download import DownloadProber, resolve_download_bytes
from .history import QualityHistory
from .interface import get_primary_interface
from .latency import LatencyProber
from .models import InterfaceInfo, LatencyResult, ProbeResult, Snapshot, TimelineSample
from .scoring import consistency_score, decay_stale_value, score_quality, speed_interval_for
from .upload import UploadProber, resolve_upload_bytes

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _round_metric(value: float, digits: int) -> float:
    return value if math.isnan(value) else round(value, digits)


class NetworkQualityMonitor:
    """Background network quality sampler."""

    def __init__(
        self,
        config: Optional[Config] = None,
        latency_prober: Optional[LatencyProber] = None,
        download_prober: Optional[DownloadProber] = None,
        upload_prober: Optional[UploadProber] = None,
        interface_probe: Callable[[], InterfaceInfo] = get_primary_interface,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = (config or Config()).normalized()
        self._clock = clock
        self._interface_probe = interface_probe

        self.latency_prober = latency_prober or LatencyProber()
        self.download_prober = download_prober or DownloadProber(
            EndpointBackoffTracker(self._config.max_endpoint_backoff_sec, "download"),
            self._config.http_timeout_sec,
        )
        self.upload_prober = upload_prober or UploadProber(
            EndpointBackoffTracker(self._config.max_endpoint_backoff_sec, "upload"),
            self._config.http_timeout_sec,
        )
        self.history = QualityHistory()

        self._lock = threading.Lock()
        self._snapshot: Optional[Snapshot] = None
        self._task: Optional[asyncio.Task] = None

        self._paused = False
        self._force_probe = False
        self._config_changed = False

        self._preferred_host: Optional[str] = None
        self._last_latency = LatencyResult.fail()
        self._last_download = ProbeResult.fail("No download probe yet.")
        self._last_upload = ProbeResult.fail("No upload probe yet.")
        self._last_good_down = 0.0
        self._last_good_up = 0.0
        self._last_good_down_at: Optional[datetime] = None
        self._last_good_up_at: Optional[datetime] = None

        self._down_window: Deque[float] = deque(maxlen=self._config.history_size)
        self._up_window: Deque[float] = deque(maxlen=self._config.history_size)
        self._success_window: Deque[float] = deque(maxlen=self._config.history_size)

        self._next_latency_at: Optional[datetime] = None
        self._next_speed_at: Optional[datetime] = None
        self._next_full_at: Optional[datetime] = None
        self._probe_cycles = 0

    # -- Consumer API -------------------------------------------------------

    @property
    def config(self) -> Config:
        return self._config

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def probe_cycles(self) -> int:
        """Completed throughput cycles since start or the last config change."""
        return self._probe_cycles

    def snapshot(self) -> Optional[Snapshot]:
        """Deep copy of the latest snapshot, or None before the first tick."""
        with self._lock:
            return self._snapshot.copy() if self._snapshot is not None else None

    def timeline(self, now: Optional[datetime] = None, step: float = TIMELINE_STEP_SECONDS) -> List[TimelineSample]:
        return self.history.timeline(now or self._clock(), step)

    def set_paused(self, paused: bool) -> None:
        was_paused, self._paused = self._paused, bool(paused)
        if was_paused and not self._paused:
            self.request_probe()
        logger.info("Monitoring %s", "paused" if self._paused else "resumed")

    def request_probe(self) -> None:
        """Run latency and a full throughput cycle on the next tick."""
        with self._lock:
            self._force_probe = True

    def update_config(self, config: Config) -> None:
        """Swap in a new configuration; the next tick applies it and probes."""
        new = config.normalized()
        with self._lock:
            self._config = new
            self._config_changed = True
        logger.info("Configuration updated")

    # -- Lifecycle ----------------------------------------------------------

    def start(self) -> asyncio.Task:
        """Schedule :meth:`run` on the running event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def run(self) -> None:
        logger.info("Monitor loop started")
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                logger.info("Monitor loop stopped")
                raise
            except Exception:
                logger.exception("Monitor tick failed; retrying in %.0fs", LOOP_ERROR_COOLDOWN_SECONDS)
                await asyncio.sleep(LOOP_ERROR_COOLDOWN_SECONDS)
                continue
            await asyncio.sleep(LOOP_POLL_SECONDS)

    # -- Loop body ----------------------------------------------------------

    @staticmethod
    def _due(deadline: Optional[datetime], now: datetime) -> bool:
        return deadline is None or now >= deadline

    async def tick(self, now: Optional[datetime] = None) -> Snapshot:
        """Run one loop iteration and publish its snapshot."""
        now = now or self._clock()
        with self._lock:
            config = self._config
            config_changed, self._config_changed = self._config_changed, False
            forced, self._force_probe = self._force_probe, False

        if config_changed:
            self._apply_config(config, now)
        elif forced:
            self._next_full_at = now
        if config_changed or forced:
            self._next_latency_at = now
            self._next_speed_at = now

        nic = self._interface_probe()

        if not self._paused:
            if self._due(self._next_latency_at, now):
                await self._run_latency(config)
                self._next_latency_at = now + timedelta(seconds=config.latency_interval_sec)

            if self._due(self._next_speed_at, now):
                await self._run_speed(config, now)

        snapshot = self._compute_snapshot(nic, now, config)
        self.history.record_tick(snapshot, now)
        snapshot.quality_history = self.history.points()
        with self._lock:
            self._snapshot = snapshot

        if self._paused:
            self._next_speed_at = now + timedelta(seconds=PAUSED_RECHECK_SECONDS)
        elif self._due(self._next_speed_at, now):
            interval = speed_interval_for(snapshot.quality_score, snapshot.offline, config)
            self._next_speed_at = now + timedelta(seconds=interval)

        return snapshot

    def _apply_config(self, config: Config, now: datetime) -> None:
        if self._down_window.maxlen != config.history_size:
            self._down_window = deque(self._down_window, maxlen=config.history_size)
            self._up_window = deque(self._up_window, maxlen=config.history_size)
            self._success_window = deque(self._success_window, maxlen=config.history_size)
        self._probe_cycles = 0
        self._next_full_at = now + timedelta(seconds=config.full_probe_interval_sec)

    async def _run_latency(self, config: Config) -> None:
        result = await self.latency_prober.measure_latency(
            config.latency_hosts,
            self._preferred_host,
            config.latency_samples,
            config.latency_timeout_ms,
        )
        self._last_latency = result
        if result.success and result.host:
            self._preferred_host = result.host

    async def _run_speed(self, config: Config, now: datetime) -> None:
        full = self._due(self._next_full_at, now) or self._probe_cycles < FULL_PROBE_WARMUP_CYCLES

        for prober in (self.download_prober, self.upload_prober):
            prober.http_timeout_sec = config.http_timeout_sec
            prober.tracker.max_backoff_sec = config.max_endpoint_backoff_sec

        down_bytes = resolve_download_bytes(
            config.download_full_bytes if full else config.download_small_bytes, full, self._last_good_down,
        )
        up_bytes = resolve_upload_bytes(
            config.upload_full_bytes if full else config.upload_small_bytes, full, self._last_good_up,
        )
        logger.debug("%s throughput cycle: %d down / %d up bytes", "full" if full else "interim", down_bytes, up_bytes)

        down = await self.download_prober.measure(
            config.download_endpoints, down_bytes, config.download_probe_max_ms, full, self._last_good_down,
        )
        up = await self.upload_prober.measure(
            config.upload_endpoints, up_bytes, config.upload_probe_max_ms, full, self._last_good_up,
        )
        self._probe_cycles += 1
        self._last_download = down
        self._last_upload = up

        if down.success:
            self._last_good_down = down.mbps
            self._last_good_down_at = now
            self._down_window.append(down.mbps)
        if up.success:
            self._last_good_up = up.mbps
            self._last_good_up_at = now
            self._up_window.append(up.mbps)
        self._success_window.append(1.0 if (down.success or up.success) else 0.0)

        if full:
            self._next_full_at = now + timedelta(seconds=config.full_probe_interval_sec)

    def _effective_mbps(self, probe: ProbeResult, last_good: float, at: Optional[datetime], now: datetime) -> float:
        if probe.success:
            return probe.mbps
        if at is None:
            return 0.0
        return decay_stale_value(last_good, (now - at).total_seconds())

    def _compute_snapshot(self, nic: InterfaceInfo, now: datetime, config: Config) -> Snapshot:
        down = self._effective_mbps(self._last_download, self._last_good_down, self._last_good_down_at, now)
        up = self._effective_mbps(self._last_upload, self._last_good_up, self._last_good_up_at, now)

        latency = self._last_latency
        latency_ms = latency.avg_ms if latency.success else float("nan")
        jitter_ms = latency.jitter_ms if latency.success else float("nan")
        loss_pct = latency.loss_pct if latency.success else 100.0
        consistency = consistency_score(self._down_window, self._up_window, self._success_window)

        offline = not nic.is_connected and not (
            self._last_download.success or self._last_upload.success or latency.success
        )

        with self._lock:
            previous = self._snapshot.quality_score if self._snapshot is not None else None
        score, tier = score_quality(
            down, up, latency_ms, jitter_ms, loss_pct, consistency,
            offline=offline,
            paused=self._paused,
            config=config,
            previous_score=previous,
        )

        return Snapshot(
            timestamp_utc=now,
            interface=nic,
            latency=latency,
            download=self._last_download,
            upload=self._last_upload,
            download_mbps=round(down, 2),
            upload_mbps=round(up, 2),
            latency_ms=_round_metric(latency_ms, 1),
            jitter_ms=_round_metric(jitter_ms, 1),
            loss_pct=round(loss_pct, 1),
            consistency_score=consistency,
            quality_score=score,
            tier=tier,
            offline=offline,
        )
