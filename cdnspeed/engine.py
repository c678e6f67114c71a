"""Measurement pipeline for cdnspeed.

Runs the four stages in order:
  sample ranges -> probe latency -> filter/sort -> download test

Each probe batch is filtered as soon as it completes; the accumulated
survivors are then re-ranked by (loss rate, delay) before the download
stage, which re-ranks them by speed.  When downloading is disabled the
delay ranking is the final order.

Public API:
    run_scan -- run the whole pipeline for one configuration
"""

from __future__ import annotations

import logging
import random
from typing import Callable, Optional

from cdnspeed.filters import filter_results, group_and_shuffle
from cdnspeed.models import IPAddress, IPResult, ScanConfig, ScanResult
from cdnspeed.prober import ProbeCallback, iter_probe_batches
from cdnspeed.sampler import build_candidates
from cdnspeed.speedtest import BandwidthMonitor, SpeedCallback, measure_speeds

logger = logging.getLogger(__name__)


async def run_scan(
    config: ScanConfig,
    candidates: Optional[list[IPAddress]] = None,
    on_candidates: Callable[[int], None] | None = None,
    probe_callback: ProbeCallback | None = None,
    on_ranked: Callable[[list[IPResult]], None] | None = None,
    speed_callback: SpeedCallback | None = None,
    monitor: BandwidthMonitor | None = None,
) -> ScanResult:
    """Run the full pipeline and return the final ranking.

    Parameters
    ----------
    config:
        Scan configuration, shared read-only by every stage.
    candidates:
        Pre-built candidate list; sampled from the configured ranges
        when omitted.
    on_candidates:
        Called with the candidate count before probing starts.
    probe_callback:
        Forwarded to the prober, once per finished candidate.
    on_ranked:
        Called with the filtered delay ranking before downloads start.
    speed_callback, monitor:
        Forwarded to :func:`measure_speeds`.

    Raises
    ------
    cdnspeed.sampler.RangeSpecError
        When a range or quota cannot be parsed.
    OSError
        When the range file cannot be read.
    """
    rng = random.Random(config.seed)

    if candidates is None:
        candidates = build_candidates(config, rng)
    result = ScanResult(config=config, candidate_count=len(candidates))
    if on_candidates:
        on_candidates(len(candidates))
    if not candidates:
        logger.info("No candidates to probe")
        return result

    ranked: list[IPResult] = []
    async for batch in iter_probe_batches(candidates, config, probe_callback):
        result.probed_count += len(batch)
        ranked.extend(filter_results(batch, config, rng))

    if config.batch_size > 0:
        ranked = group_and_shuffle(ranked, config.tie_tolerance_ms, rng)
    logger.info("%d of %d reachable candidates passed the filters", len(ranked), result.probed_count)

    if on_ranked:
        on_ranked(ranked)

    result.results = await measure_speeds(
        ranked,
        config,
        progress_callback=speed_callback,
        monitor=monitor,
    )
    return result
