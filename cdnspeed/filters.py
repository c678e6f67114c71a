"""Filtering and ordering of latency results.

Results are filtered by delay bounds and loss rate, sorted by
(loss rate, delay), and then shuffled within "delay groups" so that
differences below the tie tolerance do not decide the ranking.
"""

from __future__ import annotations

import random
from typing import Iterable, Optional

from cdnspeed.config import DEFAULT_MAX_DELAY_MS, DEFAULT_MAX_LOSS_RATE, DEFAULT_MIN_DELAY_MS
from cdnspeed.models import DelayGroup, IPResult, ScanConfig


def _sort_key(result: IPResult) -> tuple[float, float]:
    delay = result.delay_ms
    return result.loss_rate, delay if delay is not None else float("inf")


def sort_by_loss_and_delay(results: Iterable[IPResult]) -> list[IPResult]:
    """Canonical order: ascending loss rate, then ascending mean delay."""
    return sorted(results, key=_sort_key)


def sort_by_speed(results: Iterable[IPResult]) -> list[IPResult]:
    """Descending download speed."""
    return sorted(results, key=lambda r: r.download_speed, reverse=True)


def filter_delay(
    results: Iterable[IPResult],
    max_delay_ms: float = DEFAULT_MAX_DELAY_MS,
    min_delay_ms: float = DEFAULT_MIN_DELAY_MS,
) -> list[IPResult]:
    """Keep results whose mean delay lies in ``[min_delay_ms, max_delay_ms]``.

    Bounds at (or outside) the defaults disable the filter.
    """
    results = list(results)
    if max_delay_ms >= DEFAULT_MAX_DELAY_MS and min_delay_ms <= DEFAULT_MIN_DELAY_MS:
        return results
    kept = []
    for r in results:
        delay = r.delay_ms
        if delay is None or delay > max_delay_ms or delay < min_delay_ms:
            continue
        kept.append(r)
    return kept


def filter_loss_rate(
    results: Iterable[IPResult],
    max_loss_rate: float = DEFAULT_MAX_LOSS_RATE,
) -> list[IPResult]:
    """Keep results with a loss rate of at most ``max_loss_rate``."""
    results = list(results)
    if max_loss_rate >= DEFAULT_MAX_LOSS_RATE:
        return results
    return [r for r in results if r.loss_rate <= max_loss_rate]


def group_by_delay(sorted_results: list[IPResult], tolerance_ms: float) -> list[DelayGroup]:
    """Split canonically sorted results into delay groups.

    A group is a maximal run of results with the same loss rate whose
    delays are within ``tolerance_ms`` of the group's first (minimum)
    delay.  Groups never span loss-rate classes.
    """
    groups: list[DelayGroup] = []
    current: Optional[DelayGroup] = None
    current_loss = 0.0

    for r in sorted_results:
        delay = r.delay_ms or 0.0
        if (
            current is not None
            and r.loss_rate == current_loss
            and delay - current.min_delay <= tolerance_ms
        ):
            current.members.append(r)
            current.max_delay = max(current.max_delay, delay)
            continue
        current = DelayGroup(min_delay=delay, max_delay=delay, members=[r])
        current_loss = r.loss_rate
        groups.append(current)

    return groups


def group_and_shuffle(
    results: Iterable[IPResult],
    tolerance_ms: float,
    rng: Optional[random.Random] = None,
) -> list[IPResult]:
    """Sort canonically, then shuffle the members of each delay group."""
    rng = rng or random.Random()
    shuffled: list[IPResult] = []
    for group in group_by_delay(sort_by_loss_and_delay(results), tolerance_ms):
        members = list(group.members)
        rng.shuffle(members)
        shuffled.extend(members)
    return shuffled


def filter_results(
    results: Iterable[IPResult],
    config: ScanConfig,
    rng: Optional[random.Random] = None,
) -> list[IPResult]:
    """Apply delay and loss bounds, then the tie-breaking order."""
    kept = filter_delay(results, config.max_delay_ms, config.min_delay_ms)
    kept = filter_loss_rate(kept, config.max_loss_rate)
    return group_and_shuffle(kept, config.tie_tolerance_ms, rng)
