"""Cloudflare CDN provider."""

from __future__ import annotations

import httpx

from cdnspeed.providers.base import CDNProvider


class CloudflareProvider(CDNProvider):
    """Cloudflare detection via the ``CF-RAY`` response header.

    The header looks like ``7bd32409eda7b020-SJC``: a lowercase hex ray
    id followed by the IATA code of the serving datacenter.
    """

    @property
    def name(self) -> str:
        return "Cloudflare"

    @property
    def colo_header(self) -> str:
        return "cf-ray"

    def matches(self, response: httpx.Response) -> bool:
        server = response.headers.get("server", "").lower()
        return server == "cloudflare" or super().matches(response)
