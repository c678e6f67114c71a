"""Fastly CDN provider."""

from __future__ import annotations

import re
from typing import Optional

import httpx

from cdnspeed.providers.base import CDNProvider


class FastlyProvider(CDNProvider):
    """Fastly detection via the ``X-Served-By`` response header.

    The header contains cache node identifiers such as
    ``cache-dfw18681-DFW``.  When shielding is active, multiple
    comma-separated entries may be present; the *last* entry is the
    edge node closest to the client.
    """

    @property
    def name(self) -> str:
        return "Fastly"

    @property
    def colo_header(self) -> str:
        return "x-served-by"

    def detect_colo(self, response: httpx.Response) -> Optional[str]:
        raw = response.headers.get(self.colo_header, "")
        if not raw:
            return None
        last_entry = raw.split(",")[-1].strip()
        match = re.search(r"-([A-Z]{3})$", last_entry)
        return match.group(1) if match else None
