"""Abstract base class for CDN datacenter detection."""

from __future__ import annotations

import abc
import re
from typing import Optional

import httpx

from cdnspeed.config import COLO_PATTERN

_COLO_RE = re.compile(COLO_PATTERN)


class CDNProvider(abc.ABC):
    """Base class that each CDN provider must implement."""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Human-readable provider name (e.g. 'Cloudflare')."""

    @property
    @abc.abstractmethod
    def colo_header(self) -> str:
        """Response header carrying the serving datacenter."""

    def matches(self, response: httpx.Response) -> bool:
        """Whether *response* carries this provider's signature."""
        return self.colo_header in response.headers

    def detect_colo(self, response: httpx.Response) -> Optional[str]:
        """Extract the 3-letter datacenter code from the response.

        The default takes the first uppercase 3-letter run in the
        provider's header.
        """
        raw = response.headers.get(self.colo_header, "")
        match = _COLO_RE.search(raw)
        return match.group(0) if match else None
