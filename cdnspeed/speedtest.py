"""Download speed measurement.

Each candidate downloads the configured URL through a connection pinned
to its address.  The test duration is split into equal time slices; the
bytes read in each slice feed an exponentially weighted moving average,
and the final average is rescaled to bytes per second.

Public API:
    MovingAverage    -- simple EWMA
    SpeedEstimator   -- slice bookkeeping for one download
    BandwidthMonitor -- live sum of in-flight download rates
    download_speed   -- measure one address
    measure_speeds   -- measure the ranked candidates and sort by speed
"""

from __future__ import annotations

import asyncio
import logging
import math
import threading
import time
from typing import Awaitable, Callable, Optional

import httpx

from cdnspeed.config import (
    DOWNLOAD_CHUNK_SIZE,
    DOWNLOAD_MAX_REDIRECTS,
    EWMA_AGE,
    SPEED_RESCALE,
    SPEED_SLICES,
    USER_AGENT,
)
from cdnspeed.filters import sort_by_speed
from cdnspeed.models import IPAddress, IPResult, ScanConfig
from cdnspeed.transport import PinnedTransport

logger = logging.getLogger(__name__)

# (result, accepted) after each finished download
SpeedCallback = Callable[[IPResult, bool], None]
Downloader = Callable[
    [IPAddress, ScanConfig, Optional["BandwidthMonitor"]], Awaitable[float]
]


class MovingAverage:
    """Exponentially weighted moving average.

    The first sample seeds the average; later samples are blended in
    with ``decay = 2 / (age + 1)``.
    """

    def __init__(self, age: int = EWMA_AGE):
        self.decay = 2.0 / (age + 1)
        self.value = 0.0

    def add(self, sample: float) -> None:
        if self.value == 0.0:
            self.value = sample
        else:
            self.value = sample * self.decay + self.value * (1.0 - self.decay)


class SpeedEstimator:
    """Slice-based throughput estimate for one download.

    Callers report bytes with :meth:`add_bytes` and the current time with
    :meth:`tick`; each slice boundary crossed records one EWMA sample of
    bytes per slice.  :meth:`finish` folds a partial final slice in,
    scaled up to a full slice, for downloads that end early.
    """

    def __init__(
        self,
        duration: float,
        slices: int = SPEED_SLICES,
        rescale: float = SPEED_RESCALE,
        start: Optional[float] = None,
    ):
        self.duration = duration
        self.slice = duration / slices
        self.rescale = rescale
        self.start = time.perf_counter() if start is None else start
        self.end = self.start + duration
        self.last_rate = 0.0  # bytes/s over the latest closed slice
        self._counter = 1
        self._next = self.start + self.slice
        self._read = 0
        self._last_read = 0
        self._ewma = MovingAverage()

    @property
    def bytes_read(self) -> int:
        return self._read

    @property
    def speed(self) -> float:
        """Estimated bytes per second."""
        return self._ewma.value / (self.duration / self.rescale)

    def add_bytes(self, count: int) -> None:
        self._read += count

    def expired(self, now: float) -> bool:
        return now > self.end

    def tick(self, now: float) -> bool:
        """Close every slice that ended before *now*.

        Bytes read since the last boundary are spread evenly over the
        slices that passed.  Returns True if any slice was closed.
        """
        if now <= self._next:
            return False
        passed = max(int((now - self.start) / self.slice) - (self._counter - 1), 1)
        per_slice = (self._read - self._last_read) / passed
        for _ in range(passed):
            self._ewma.add(per_slice)
        self._counter += passed
        self._next = self.start + self.slice * self._counter
        self._last_read = self._read
        self.last_rate = per_slice / self.slice
        return True

    def finish(self, now: float) -> None:
        """Fold the partial slice ending at *now* into the average."""
        slice_start = self.start + self.slice * (self._counter - 1)
        elapsed = now - slice_start
        if elapsed <= 0:
            return
        partial = self._read - self._last_read
        self._ewma.add(partial / (elapsed / self.slice))
        self._last_read = self._read


class BandwidthMonitor:
    """Most recent download rate of every in-flight address.

    Purely observational: the total is displayed while downloads run and
    never feeds back into acceptance or per-address estimates.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rates: dict[IPAddress, float] = {}

    def update(self, address: IPAddress, rate: float) -> None:
        with self._lock:
            self._rates[address] = rate

    def remove(self, address: IPAddress) -> None:
        with self._lock:
            self._rates.pop(address, None)

    @property
    def total(self) -> float:
        """Sum of current rates in bytes/s."""
        with self._lock:
            return sum(self._rates.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._rates)


# ---------------------------------------------------------------------------
# Single download
# ---------------------------------------------------------------------------

async def download_speed(
    address: IPAddress,
    config: ScanConfig,
    monitor: Optional[BandwidthMonitor] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> float:
    """Download ``config.url`` from *address* and return bytes/s.

    The download stops when the declared length is consumed, the stream
    ends, the test duration elapses, or a read fails.  A failed request
    or a non-200 status measures 0.
    """
    duration = config.effective_download_seconds
    transport = transport or PinnedTransport(address, config.effective_port, verify=True)
    client = httpx.AsyncClient(
        transport=transport,
        timeout=httpx.Timeout(duration),
        follow_redirects=True,
        max_redirects=DOWNLOAD_MAX_REDIRECTS,
        headers={"User-Agent": USER_AGENT},
    )

    estimator: Optional[SpeedEstimator] = None
    try:
        async with client, client.stream("GET", config.url) as response:
            if response.status_code != 200:
                logger.debug("Download from %s returned %d", address, response.status_code)
                return 0.0

            length_header = response.headers.get("content-length")
            content_length = int(length_header) if length_header and length_header.isdigit() else None

            estimator = SpeedEstimator(duration, config.speed_slices, config.speed_rescale)
            last_report = estimator.start
            try:
                async for chunk in response.aiter_raw(DOWNLOAD_CHUNK_SIZE):
                    now = time.perf_counter()
                    if estimator.tick(now) and monitor is not None and now - last_report >= config.bandwidth_interval:
                        monitor.update(address, estimator.last_rate)
                        last_report = now
                    if estimator.expired(now):
                        break
                    estimator.add_bytes(len(chunk))
                    if content_length is not None and estimator.bytes_read >= content_length:
                        estimator.finish(time.perf_counter())
                        break
                else:
                    # End of stream, with or without a declared length.
                    estimator.finish(time.perf_counter())
            except httpx.HTTPError as exc:
                logger.debug("Download from %s interrupted: %r", address, exc)
    except httpx.HTTPError as exc:
        logger.debug("Download from %s failed: %r", address, exc)
        return 0.0
    finally:
        if monitor is not None:
            monitor.remove(address)

    return estimator.speed if estimator else 0.0


# ---------------------------------------------------------------------------
# Ranked list
# ---------------------------------------------------------------------------

async def measure_speeds(
    ranked: list[IPResult],
    config: ScanConfig,
    downloader: Downloader | None = None,
    progress_callback: SpeedCallback | None = None,
    monitor: BandwidthMonitor | None = None,
) -> list[IPResult]:
    """Download-test the best candidates and return them fastest first.

    Candidates are tried in ranked order until ``test_count`` of them
    reach ``min_speed``.  Without a speed floor only the first
    ``test_count`` are tried.  If none qualifies, every attempted
    candidate is returned.  With ``disable_download`` the input is
    returned unchanged.
    """
    if config.disable_download:
        return list(ranked)
    if not ranked:
        logger.info("No reachable candidates, skipping download test")
        return []

    downloader = downloader or download_speed
    test_count = config.effective_test_count
    if config.min_speed > 0 or len(ranked) < test_count:
        queue = list(ranked)
    else:
        queue = ranked[:test_count]
    workers = max(config.download_workers, 1)

    async def _safe_download(result: IPResult) -> float:
        try:
            speed = await downloader(result.address, config, monitor)
        except Exception:
            logger.exception("Unexpected error downloading from %s", result.address)
            return 0.0
        return speed if math.isfinite(speed) and speed > 0 else 0.0

    accepted: list[IPResult] = []
    attempted: list[IPResult] = []
    for start in range(0, len(queue), workers):
        window = queue[start:start + workers]
        speeds = await asyncio.gather(*(_safe_download(r) for r in window))
        for result, speed in zip(window, speeds):
            result.download_speed = speed
            attempted.append(result)
            ok = speed >= config.min_speed_bytes and len(accepted) < test_count
            if ok:
                accepted.append(result)
            if progress_callback:
                progress_callback(result, ok)
        if len(accepted) >= test_count:
            break

    if not accepted:
        logger.info("No candidate reached %.2f MB/s, returning all tested", config.min_speed)
        accepted = attempted

    return sort_by_speed(accepted)
