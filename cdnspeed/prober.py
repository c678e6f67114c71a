"""Latency probing for candidate addresses.

Two modes:
  TCP   -- ``ping_times`` timed TCP connects per address, each closed
           right after the handshake.
  HTTP  -- one verification HEAD request through a connection pinned to
           the address (status code and datacenter checks), then
           ``ping_times`` timed HEAD requests on the same client.

Every candidate runs as its own task; an ``asyncio.Semaphore`` bounds
how many are in flight.  Addresses with no successful attempt produce no
result.

Public API:
    probe_address      -- probe one candidate
    probe_all          -- probe every candidate concurrently
    iter_probe_batches -- probe fixed-size slices, yielding each batch
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import AsyncIterator, Callable, Optional

import httpx

from cdnspeed.config import USER_AGENT
from cdnspeed.filters import sort_by_loss_and_delay
from cdnspeed.models import IPAddress, IPResult, ScanConfig
from cdnspeed.providers import detect_colo
from cdnspeed.transport import PinnedTransport

logger = logging.getLogger(__name__)

# Called once per finished candidate with the result, or None if dropped.
ProbeCallback = Callable[[IPAddress, Optional[IPResult]], None]


# ---------------------------------------------------------------------------
# TCP mode
# ---------------------------------------------------------------------------

async def tcp_ping(address: IPAddress, port: int, timeout: float) -> Optional[float]:
    """Time one TCP connect to *address*:*port* in milliseconds.

    Returns None when the connection fails or times out.
    """
    t0 = time.perf_counter()
    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(str(address), port),
            timeout=timeout,
        )
    except (OSError, asyncio.TimeoutError) as exc:
        logger.debug("TCP connect to %s:%d failed: %r", address, port, exc)
        return None
    elapsed_ms = (time.perf_counter() - t0) * 1000.0
    _safe_close_writer(writer)
    return elapsed_ms


async def tcp_probe(address: IPAddress, config: ScanConfig) -> tuple[int, float]:
    """Run the TCP attempts for one address, returning (received, total_ms)."""
    received = 0
    total_ms = 0.0
    for _ in range(config.effective_ping_times):
        delay = await tcp_ping(address, config.effective_port, config.tcp_timeout)
        if delay is not None:
            received += 1
            total_ms += delay
    return received, total_ms


def _safe_close_writer(writer: Optional[asyncio.StreamWriter]) -> None:
    """Close a stream writer without raising on already-closed transports."""
    if writer is None:
        return
    try:
        writer.close()
    except OSError:
        pass


# ---------------------------------------------------------------------------
# HTTP mode
# ---------------------------------------------------------------------------

def _make_client(
    address: IPAddress,
    config: ScanConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    transport = transport or PinnedTransport(address, config.effective_port, verify=True)
    return httpx.AsyncClient(
        transport=transport,
        timeout=httpx.Timeout(config.http_timeout),
        follow_redirects=False,
        headers={"User-Agent": USER_AGENT},
    )


async def http_probe(
    address: IPAddress,
    config: ScanConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> tuple[int, float, Optional[str]]:
    """Verify and time HEAD requests, returning (received, total_ms, colo).

    The candidate is rejected (0 received) when the verification request
    fails, its status is not accepted, or its datacenter is outside the
    configured ``colo_filter``.
    """
    async with _make_client(address, config, transport) as client:
        try:
            response = await client.head(config.url)
        except httpx.HTTPError as exc:
            logger.debug("HTTP verification failed for %s: %r", address, exc)
            return 0, 0.0, None

        if response.status_code not in config.accepted_codes:
            logger.debug("Rejected %s: status %d", address, response.status_code)
            return 0, 0.0, None

        colo = detect_colo(response)
        if config.colo_filter and colo not in config.colo_filter:
            logger.debug("Rejected %s: datacenter %s not wanted", address, colo)
            return 0, 0.0, None

        received = 0
        total_ms = 0.0
        ping_times = config.effective_ping_times
        for i in range(ping_times):
            # The last request lets the server drop the connection.
            headers = {"Connection": "close"} if i == ping_times - 1 else None
            t0 = time.perf_counter()
            try:
                await client.head(config.url, headers=headers)
            except httpx.HTTPError as exc:
                logger.debug("HTTP ping %d to %s failed: %r", i, address, exc)
                continue
            received += 1
            total_ms += (time.perf_counter() - t0) * 1000.0

    return received, total_ms, colo


async def fetch_colo(
    address: IPAddress,
    config: ScanConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[str]:
    """Issue one HEAD request only to read the datacenter code."""
    async with _make_client(address, config, transport) as client:
        try:
            response = await client.head(config.url)
        except httpx.HTTPError as exc:
            logger.debug("Datacenter lookup failed for %s: %r", address, exc)
            return None
    return detect_colo(response)


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

async def probe_address(address: IPAddress, config: ScanConfig) -> Optional[IPResult]:
    """Probe one candidate in the configured mode.

    Returns None when no attempt succeeded.
    """
    colo: Optional[str] = None
    if config.httping:
        received, total_ms, colo = await http_probe(address, config)
    else:
        received, total_ms = await tcp_probe(address, config)
        if config.show_colo and received > 0:
            colo = await fetch_colo(address, config)

    if received == 0:
        return None

    return IPResult(
        address=address,
        sent=config.effective_ping_times,
        received=received,
        total_delay_ms=total_ms,
        colo=colo,
    )


async def probe_all(
    candidates: list[IPAddress],
    config: ScanConfig,
    progress_callback: ProbeCallback | None = None,
) -> list[IPResult]:
    """Probe every candidate with at most ``routines`` in flight.

    Returns the successful results sorted by loss rate, then delay.
    """
    semaphore = asyncio.Semaphore(config.effective_routines)
    results: list[IPResult] = []

    async def _probe_one(address: IPAddress) -> None:
        async with semaphore:
            try:
                result = await probe_address(address, config)
            except Exception:
                logger.exception("Unexpected error probing %s", address)
                result = None
        # Only the event loop thread appends, so no further locking.
        if result is not None:
            results.append(result)
        if progress_callback:
            progress_callback(address, result)

    await asyncio.gather(*(_probe_one(a) for a in candidates))

    logger.info("Probed %d candidates, %d reachable", len(candidates), len(results))
    return sort_by_loss_and_delay(results)


async def iter_probe_batches(
    candidates: list[IPAddress],
    config: ScanConfig,
    progress_callback: ProbeCallback | None = None,
) -> AsyncIterator[list[IPResult]]:
    """Probe candidates in slices of ``batch_size`` and yield each sorted batch.

    A ``batch_size`` of 0 probes everything as a single batch.
    """
    size = config.batch_size if config.batch_size > 0 else max(len(candidates), 1)
    for start in range(0, len(candidates), size):
        yield await probe_all(candidates[start:start + size], config, progress_callback)
