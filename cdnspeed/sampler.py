"""Candidate address sampling.

Turns range specifications (single addresses or CIDR prefixes) into a
bounded list of concrete addresses to probe.

Policy per range:
  * single host            -> that address
  * IPv4, quota >= size    -> every address in the prefix
  * IPv4, quota < size     -> ``quota`` distinct addresses, uniform
  * IPv4, no quota         -> one random address per 256-address block
  * IPv6, quota            -> ``quota`` distinct addresses, uniform
  * IPv6, no quota         -> one random address

A quota is written ``n`` (2^n) or ``n+m`` / ``n-m`` (2^n +/- m), with
``n`` capped per family.  After all ranges are expanded, a global
ceiling trims the combined list by uniform subsampling.
"""

from __future__ import annotations

import ipaddress
import logging
import random
import re
import sys
from pathlib import Path
from typing import Iterable, Optional

from cdnspeed.config import IPV4_BLOCK_SIZE, QUOTA_MAX_EXPONENT
from cdnspeed.models import IPAddress, RangeSpec, ScanConfig

logger = logging.getLogger(__name__)

_QUOTA_RE = re.compile(r"^(\d+)([+-]\d+)?$")


class RangeSpecError(ValueError):
    """Raised for a range or quota that cannot be parsed."""


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def parse_range(text: str) -> RangeSpec:
    """Parse ``text`` as a single address or a CIDR prefix.

    Host bits in a prefix are ignored (``10.0.0.7/24`` is ``10.0.0.0/24``).
    """
    value = text.strip()
    try:
        if "/" in value:
            network = ipaddress.ip_network(value, strict=False)
        else:
            address = ipaddress.ip_address(value)
            network = ipaddress.ip_network(address)
    except ValueError as exc:
        raise RangeSpecError(f"Invalid address range {text!r}: {exc}") from exc

    single = network.prefixlen == network.max_prefixlen
    return RangeSpec(network=network, single=single)


def parse_quota(text: str, version: int) -> Optional[int]:
    """Parse a ``2^n +/- m`` quota for the given address family.

    Returns None for an empty string.  ``n`` is capped at the family's
    maximum exponent and the result is never negative.
    """
    value = (text or "").strip()
    if not value:
        return None

    match = _QUOTA_RE.match(value)
    if match is None:
        raise RangeSpecError(f"Invalid quota {text!r}: expected n, n+m or n-m")

    exponent = min(int(match.group(1)), QUOTA_MAX_EXPONENT[version])
    offset = int(match.group(2) or 0)
    return max(2 ** exponent + offset, 0)


# ---------------------------------------------------------------------------
# Sampling
# ---------------------------------------------------------------------------

def _distinct_offsets(size: int, count: int, rng: random.Random) -> list[int]:
    """Pick ``count`` distinct offsets in ``[0, size)`` uniformly."""
    if count >= size:
        return list(range(size))
    if size <= sys.maxsize:
        return rng.sample(range(size), count)

    # range() objects this large have no len(); fall back to rejection.
    chosen: set[int] = set()
    offsets: list[int] = []
    while len(offsets) < count:
        offset = rng.randrange(size)
        if offset not in chosen:
            chosen.add(offset)
            offsets.append(offset)
    return offsets


def sample(
    spec: RangeSpec,
    quota: Optional[int] = None,
    rng: Optional[random.Random] = None,
    test_all: bool = False,
) -> list[IPAddress]:
    """Expand one range into candidate addresses.

    A quota of None (or 0) selects the default policy for the family.
    ``test_all`` enumerates the whole prefix and only applies to IPv4.
    """
    rng = rng or random.Random()
    network = spec.network
    base = int(network.network_address)
    size = network.num_addresses

    if spec.single:
        return [network.network_address]

    if spec.version == 4 and test_all:
        quota = size

    if quota:
        offsets = _distinct_offsets(size, min(quota, size), rng)
    elif spec.version == 4:
        offsets = []
        for block_start in range(0, size, IPV4_BLOCK_SIZE):
            block_len = min(IPV4_BLOCK_SIZE, size - block_start)
            offsets.append(block_start + rng.randrange(block_len))
    else:
        offsets = [rng.randrange(size)]

    address_type = type(network.network_address)
    return [address_type(base + offset) for offset in offsets]


def apply_ceiling(
    candidates: list[IPAddress],
    limit: int,
    rng: Optional[random.Random] = None,
) -> list[IPAddress]:
    """Uniformly subsample ``candidates`` down to ``limit`` entries."""
    if limit <= 0 or len(candidates) <= limit:
        return candidates
    rng = rng or random.Random()
    logger.info("Candidate ceiling reached: sampling %d of %d", limit, len(candidates))
    return rng.sample(candidates, limit)


# ---------------------------------------------------------------------------
# Source loading
# ---------------------------------------------------------------------------

def read_range_lines(config: ScanConfig) -> list[str]:
    """Return the non-empty range entries from ``ip_text`` or ``ip_file``.

    Raises
    ------
    OSError
        When the range file cannot be read.
    RangeSpecError
        When the range file is not UTF-8 text.
    """
    if config.ip_text:
        entries: Iterable[str] = config.ip_text.split(",")
    else:
        try:
            entries = Path(config.ip_file).read_text(encoding="utf-8").splitlines()
        except UnicodeDecodeError as exc:
            raise RangeSpecError(f"Range file {config.ip_file!r} is not valid UTF-8: {exc}") from exc
    return [e.strip() for e in entries if e.strip()]


def build_candidates(
    config: ScanConfig,
    rng: Optional[random.Random] = None,
) -> list[IPAddress]:
    """Load every configured range and expand it into the candidate list.

    Any invalid range aborts the whole load with :class:`RangeSpecError`.
    """
    rng = rng or random.Random(config.seed)
    quotas = {
        4: parse_quota(config.v4_quota, 4),
        6: parse_quota(config.v6_quota, 6),
    }

    candidates: list[IPAddress] = []
    for line in read_range_lines(config):
        spec = parse_range(line)
        picked = sample(spec, quotas[spec.version], rng, test_all=config.test_all_v4)
        logger.debug("Range %s -> %d candidates", spec.network, len(picked))
        candidates.extend(picked)

    return apply_ceiling(candidates, config.max_candidates, rng)
