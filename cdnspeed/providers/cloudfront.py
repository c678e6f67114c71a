"""Amazon CloudFront CDN provider."""

from __future__ import annotations

import re
from typing import Optional

import httpx

from cdnspeed.providers.base import CDNProvider


class CloudFrontProvider(CDNProvider):
    """CloudFront detection via the ``x-amz-cf-pop`` response header.

    The header value looks like ``DFW55-C1`` where the first 3 characters
    are the IATA airport code of the edge location.
    """

    @property
    def name(self) -> str:
        return "CloudFront"

    @property
    def colo_header(self) -> str:
        return "x-amz-cf-pop"

    def detect_colo(self, response: httpx.Response) -> Optional[str]:
        raw = response.headers.get(self.colo_header, "")
        match = re.match(r"^([A-Z]{3})", raw)
        return match.group(1) if match else None
