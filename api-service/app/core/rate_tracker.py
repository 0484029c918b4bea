"""
Request rate tracking per caller address.

Best-effort and process-local: a rolling window of recent request timestamps
per address, swept periodically. Losing it on restart is acceptable.
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    count: int
    limit: int
    anomalous: bool
    retry_after: int


class RequestRateTracker:
    def __init__(
        self,
        limit: int,
        window_seconds: int = 60,
        anomaly_threshold: Optional[int] = None,
        sweep_interval: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self.anomaly_threshold = anomaly_threshold
        self.sweep_interval = sweep_interval or window_seconds
        self._clock = clock
        self._requests: Dict[str, Deque[float]] = {}
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._requests)

    def _trim(self, timestamps: Deque[float], now: float) -> None:
        cutoff = now - self.window_seconds
        while timestamps and timestamps[0] <= cutoff:
            timestamps.popleft()

    def sweep(self) -> int:
        """Drop stale timestamps and forget idle addresses. Returns the number of addresses removed."""
        now = self._clock()
        removed = 0
        for address in list(self._requests):
            timestamps = self._requests[address]
            self._trim(timestamps, now)
            if not timestamps:
                del self._requests[address]
                removed += 1
        self._last_sweep = now
        if removed:
            logger.debug("Rate tracker swept", removed=removed, tracked=len(self._requests))
        return removed

    def count(self, address: str) -> int:
        timestamps = self._requests.get(address)
        if not timestamps:
            return 0
        self._trim(timestamps, self._clock())
        return len(timestamps)

    def record(self, address: str) -> RateDecision:
        """Record one request from ``address`` unless it is over the limit"""
        now = self._clock()
        if now - self._last_sweep >= self.sweep_interval:
            self.sweep()

        timestamps = self._requests.setdefault(address, deque())
        self._trim(timestamps, now)

        if len(timestamps) >= self.limit:
            retry_after = max(1, int(timestamps[0] + self.window_seconds - now) + 1)
            return RateDecision(False, len(timestamps), self.limit, self._is_anomalous(len(timestamps)), retry_after)

        timestamps.append(now)
        count = len(timestamps)
        anomalous = self._is_anomalous(count)
        if anomalous and count == self.anomaly_threshold:
            logger.warning(
                "Abnormal request rate detected",
                address=address,
                requests=count,
                window_seconds=self.window_seconds,
            )
        return RateDecision(True, count, self.limit, anomalous, 0)

    def _is_anomalous(self, count: int) -> bool:
        return self.anomaly_threshold is not None and count >= self.anomaly_threshold

    def reset(self) -> None:
        self._requests.clear()
