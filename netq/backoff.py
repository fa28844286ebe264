"""
Per-endpoint failure bookkeeping.

A repeatedly failing endpoint is deprioritised for an exponentially growing
cooldown.  When every endpoint is cooling down the full list is returned
anyway, so a probe cycle always has something to try.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .constants import (
    BACKOFF_BASE_SECONDS,
    MAX_BACKOFF_SHIFT,
    MAX_CONSECUTIVE_FAILURES,
    MIN_BACKOFF_CAP_SECONDS,
)

logger = logging.getLogger(__name__)


@dataclass
class EndpointBackoffState:
    endpoint: str
    consecutive_failures: int = 0
    backoff_until: float = 0.0


def backoff_seconds(failures: int, max_backoff_sec: int) -> int:
    """``5 * 2**(failures-1)`` capped at *max_backoff_sec* (never below 10)."""
    cap = max(MIN_BACKOFF_CAP_SECONDS, max_backoff_sec)
    shift = max(0, min(MAX_BACKOFF_SHIFT, failures - 1))
    return max(BACKOFF_BASE_SECONDS, min(cap, BACKOFF_BASE_SECONDS * (1 << shift)))


def unique_endpoints(endpoints: Iterable[str]) -> List[str]:
    """Trimmed, non-empty endpoints in first-seen order (case-insensitive)."""
    seen = set()
    out: List[str] = []
    for endpoint in endpoints or []:
        trimmed = (endpoint or "").strip()
        if not trimmed or trimmed.lower() in seen:
            continue
        seen.add(trimmed.lower())
        out.append(trimmed)
    return out


class EndpointBackoffTracker:
    """Backoff state for one transfer direction.

    Only the orchestration loop touches a tracker, so it carries no lock.
    Times are ``time.monotonic()`` seconds unless the caller passes *now*.
    """

    def __init__(self, max_backoff_sec: int = 180, label: str = "endpoint") -> None:
        self.max_backoff_sec = max_backoff_sec
        self.label = label
        self._states: Dict[str, EndpointBackoffState] = {}

    # -- Queries ------------------------------------------------------------

    def state(self, endpoint: str) -> Optional[EndpointBackoffState]:
        return self._states.get(endpoint.strip().lower())

    def is_backed_off(self, endpoint: str, now: Optional[float] = None) -> bool:
        st = self.state(endpoint)
        if st is None:
            return False
        now = time.monotonic() if now is None else now
        return st.backoff_until > now

    def candidates(self, endpoints: Iterable[str], now: Optional[float] = None) -> List[str]:
        """Endpoints not cooling down, or all of them if every one is."""
        everything = unique_endpoints(endpoints)
        if not everything:
            return everything

        now = time.monotonic() if now is None else now
        available = [e for e in everything if not self.is_backed_off(e, now)]
        return available or everything

    # -- Feedback -----------------------------------------------------------

    def on_success(self, endpoint: str) -> None:
        st = self.state(endpoint)
        if st is None:
            return
        if st.consecutive_failures:
            logger.debug("%s %s recovered after %d failures", self.label, endpoint, st.consecutive_failures)
        st.consecutive_failures = 0
        st.backoff_until = 0.0

    def on_failure(self, endpoint: str, now: Optional[float] = None) -> float:
        """Record a failure and return the cooldown applied, in seconds."""
        key = endpoint.strip().lower()
        st = self._states.get(key)
        if st is None:
            st = self._states[key] = EndpointBackoffState(endpoint=endpoint.strip())

        st.consecutive_failures = min(MAX_CONSECUTIVE_FAILURES, st.consecutive_failures + 1)
        delay = backoff_seconds(st.consecutive_failures, self.max_backoff_sec)
        now = time.monotonic() if now is None else now
        st.backoff_until = now + delay
        logger.debug(
            "%s %s failed %d time(s) in a row; backing off %ds",
            self.label, endpoint, st.consecutive_failures, delay,
        )
        return float(delay)
