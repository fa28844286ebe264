"""
ICMP latency probing through the platform ``ping`` binary.

One cycle picks a host (the sticky preferred host first, then the
configured list) and sends it ``samples`` single-echo pings.  Average,
jitter (sample stddev) and loss are derived from the replies.
"""
from __future__ import annotations

import asyncio
import logging
import math
import re
import sys
from typing import List, Optional, Sequence

from .backoff import unique_endpoints
from .models import LatencyResult
from .stats import mean, sample_stddev

logger = logging.getLogger(__name__)

_RTT_RE = re.compile(r"time[=<]([0-9.]+)\s*ms", re.IGNORECASE)


def parse_rtt(output: str) -> Optional[float]:
    match = _RTT_RE.search(output)
    if not match:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


def ping_command(host: str, timeout_ms: int) -> List[str]:
    if sys.platform.startswith("win"):
        return ["ping", "-n", "1", "-w", str(int(timeout_ms)), host]
    return ["ping", "-c", "1", "-W", str(max(1, int(math.ceil(timeout_ms / 1000.0)))), host]


def summarize(host: str, rtts: Sequence[float], attempted: int) -> LatencyResult:
    """Fold the replies of one cycle into a ``LatencyResult``."""
    if not rtts or attempted <= 0:
        return LatencyResult(success=False, host=host)

    loss = (attempted - len(rtts)) / attempted * 100.0
    return LatencyResult(
        success=True,
        host=host,
        avg_ms=round(mean(rtts), 1),
        jitter_ms=round(sample_stddev(rtts), 1),
        loss_pct=round(loss, 1),
    )


class LatencyProber:
    """Sticky-host ICMP latency prober."""

    async def _echo(self, host: str, timeout_ms: int) -> Optional[float]:
        """Send one echo; returns the RTT in ms or None on any failure."""
        try:
            proc = await asyncio.create_subprocess_exec(
                *ping_command(host, timeout_ms),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except (FileNotFoundError, PermissionError) as exc:
            logger.debug("Cannot run ping: %s", exc)
            return None

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout_ms / 1000.0 + 1.0)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.debug("ping %s overran %d ms", host, timeout_ms)
            return None
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
            raise

        if proc.returncode != 0:
            return None
        return parse_rtt(stdout.decode(errors="replace"))

    async def measure_latency(
        self,
        hosts: Sequence[str],
        preferred_host: Optional[str],
        samples: int,
        timeout_ms: int,
    ) -> LatencyResult:
        candidates = unique_endpoints(([preferred_host] if preferred_host else []) + list(hosts or []))
        if not candidates:
            return LatencyResult.fail()

        samples = max(1, samples)
        for host in candidates:
            first = await self._echo(host, timeout_ms)
            if first is None:
                logger.debug("No echo reply from %s", host)
                continue

            rtts = [first]
            for _ in range(samples - 1):
                rtt = await self._echo(host, timeout_ms)
                if rtt is not None:
                    rtts.append(rtt)

            result = summarize(host, rtts, samples)
            logger.debug(
                "latency %s: avg %.1f ms, jitter %.1f ms, loss %.1f%%",
                host, result.avg_ms, result.jitter_ms, result.loss_pct,
            )
            return result

        logger.debug("No latency host answered (%s)", ", ".join(candidates))
        return LatencyResult.fail()
