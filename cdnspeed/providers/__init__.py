"""CDN provider registry and datacenter detection."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    import httpx

    from cdnspeed.providers.base import CDNProvider

logger = logging.getLogger(__name__)

_PROVIDERS: list[CDNProvider] | None = None


def _load_providers() -> list[CDNProvider]:
    from cdnspeed.providers.cloudflare import CloudflareProvider
    from cdnspeed.providers.cloudfront import CloudFrontProvider
    from cdnspeed.providers.fastly import FastlyProvider

    # Checked in order; Cloudflare first since it is the usual target.
    return [CloudflareProvider(), CloudFrontProvider(), FastlyProvider()]


def get_providers() -> list[CDNProvider]:
    """Return the provider instances, loading lazily."""
    global _PROVIDERS
    if _PROVIDERS is None:
        _PROVIDERS = _load_providers()
    return _PROVIDERS


def detect_colo(response: httpx.Response) -> Optional[str]:
    """Return the datacenter code of *response*, or None if unrecognized."""
    for provider in get_providers():
        if provider.matches(response):
            colo = provider.detect_colo(response)
            logger.debug("%s edge detected, datacenter %s", provider.name, colo)
            return colo
    return None
