"""httpx transport that sends every request to one fixed edge address."""

from __future__ import annotations

import httpx

from cdnspeed.models import IPAddress


def pin_request(request: httpx.Request, address: IPAddress, port: int) -> httpx.Request:
    """Return a copy of *request* aimed at *address*:*port*.

    The Host header and TLS SNI keep the original hostname so the edge
    serves (and certifies) the configured site.
    """
    url = request.url
    pinned_url = url.copy_with(host=str(address), port=port)
    return httpx.Request(
        method=request.method,
        url=pinned_url,
        headers=request.headers,
        stream=request.stream,
        extensions={**request.extensions, "sni_hostname": url.host.encode()},
    )


class PinnedTransport(httpx.AsyncHTTPTransport):
    """Transport that bypasses DNS and dials a candidate address.

    Rewrites the request URL to target the candidate while preserving
    the original hostname via the ``sni_hostname`` extension so that TLS
    SNI and certificate validation work correctly.
    """

    def __init__(self, address: IPAddress, port: int, **kwargs):
        self._address = address
        self._port = port
        super().__init__(**kwargs)

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        return await super().handle_async_request(
            pin_request(request, self._address, self._port)
        )
