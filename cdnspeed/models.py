"""Data models for cdnspeed."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from functools import cached_property
from typing import Optional, Union

from cdnspeed import config as defaults

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]

CSV_HEADERS = [
    "IP Address",
    "Sent",
    "Received",
    "Loss Rate",
    "Avg Delay (ms)",
    "Download Speed (MB/s)",
    "Colo",
]


@dataclass(frozen=True)
class RangeSpec:
    """A parsed address range: one host or a CIDR prefix."""

    network: IPNetwork
    single: bool = False

    @property
    def version(self) -> int:
        return self.network.version

    @property
    def size(self) -> int:
        return self.network.num_addresses


@dataclass
class IPResult:
    """Latency statistics for one candidate, plus its download speed.

    ``received <= sent`` always holds.  The loss rate is computed once on
    first access and cached; ``download_speed`` (bytes/s) stays 0 unless
    the speed tester measured the address.
    """

    address: IPAddress
    sent: int
    received: int
    total_delay_ms: float = 0.0
    colo: Optional[str] = None
    download_speed: float = 0.0

    @cached_property
    def loss_rate(self) -> float:
        if self.sent <= 0:
            return 0.0
        return (self.sent - self.received) / self.sent

    @property
    def delay_ms(self) -> Optional[float]:
        """Mean delay of the successful attempts, None when nothing succeeded."""
        if self.received <= 0:
            return None
        return self.total_delay_ms / self.received

    @property
    def display_address(self) -> str:
        if self.address.version == 6:
            return f"[{self.address}]"
        return str(self.address)

    @property
    def speed_mb(self) -> float:
        return self.download_speed / defaults.BYTES_PER_MB

    def to_row(self) -> list[str]:
        delay = self.delay_ms
        return [
            self.display_address,
            str(self.sent),
            str(self.received),
            f"{self.loss_rate:.2f}",
            f"{delay:.2f}" if delay is not None else "",
            f"{self.speed_mb:.2f}",
            self.colo or "",
        ]


@dataclass
class DelayGroup:
    """A run of results whose delays lie within a tolerance of ``min_delay``."""

    min_delay: float
    max_delay: float
    members: list[IPResult] = field(default_factory=list)


@dataclass(frozen=True)
class ScanConfig:
    """Immutable configuration shared by every pipeline stage."""

    # Latency probing
    routines: int = defaults.DEFAULT_ROUTINES
    ping_times: int = defaults.DEFAULT_PING_TIMES
    port: int = defaults.DEFAULT_PORT
    url: str = defaults.DEFAULT_URL
    httping: bool = False
    httping_codes: tuple[int, ...] = ()
    colo_filter: frozenset[str] = frozenset()
    show_colo: bool = False
    tcp_timeout: float = defaults.TCP_CONNECT_TIMEOUT
    http_timeout: float = defaults.HTTP_PING_TIMEOUT
    batch_size: int = 0

    # Filtering
    max_delay_ms: float = defaults.DEFAULT_MAX_DELAY_MS
    min_delay_ms: float = defaults.DEFAULT_MIN_DELAY_MS
    max_loss_rate: float = defaults.DEFAULT_MAX_LOSS_RATE
    tie_tolerance_ms: float = defaults.TIE_TOLERANCE_MS

    # Download testing
    disable_download: bool = False
    test_count: int = defaults.DEFAULT_TEST_COUNT
    min_speed: float = defaults.DEFAULT_MIN_SPEED  # MB/s
    download_seconds: float = defaults.DEFAULT_DOWNLOAD_SECONDS
    download_workers: int = 1
    speed_slices: int = defaults.SPEED_SLICES
    speed_rescale: float = defaults.SPEED_RESCALE
    bandwidth_interval: float = defaults.BANDWIDTH_INTERVAL

    # Address source and sampling
    ip_file: str = defaults.DEFAULT_IP_FILE
    ip_text: str = ""
    v4_quota: str = ""
    v6_quota: str = ""
    test_all_v4: bool = False
    max_candidates: int = defaults.DEFAULT_MAX_CANDIDATES
    seed: Optional[int] = None

    # Output
    output: str = defaults.DEFAULT_OUTPUT
    print_num: int = defaults.DEFAULT_PRINT_NUM
    json_output: bool = False

    @property
    def effective_port(self) -> int:
        if 0 < self.port < 65535:
            return self.port
        return defaults.DEFAULT_PORT

    @property
    def effective_routines(self) -> int:
        if self.routines <= 0:
            return defaults.DEFAULT_ROUTINES
        return min(self.routines, defaults.MAX_ROUTINES)

    @property
    def effective_ping_times(self) -> int:
        return self.ping_times if self.ping_times > 0 else defaults.DEFAULT_PING_TIMES

    @property
    def accepted_codes(self) -> tuple[int, ...]:
        valid = tuple(c for c in self.httping_codes if 100 <= c <= 599)
        return valid or defaults.DEFAULT_HTTPING_CODES

    @property
    def effective_download_seconds(self) -> float:
        if self.download_seconds > 0:
            return self.download_seconds
        return defaults.DEFAULT_DOWNLOAD_SECONDS

    @property
    def effective_test_count(self) -> int:
        return self.test_count if self.test_count > 0 else defaults.DEFAULT_TEST_COUNT

    @property
    def min_speed_bytes(self) -> float:
        return self.min_speed * defaults.BYTES_PER_MB


@dataclass
class ScanResult:
    """Outcome of one pipeline run."""

    config: ScanConfig
    candidate_count: int = 0
    probed_count: int = 0
    results: list[IPResult] = field(default_factory=list)
