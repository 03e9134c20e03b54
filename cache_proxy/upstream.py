import asyncio
import logging
from typing import Iterable, List, Optional, Tuple

import httpx

from .errors import UpstreamTimeout, UpstreamTransportError
from .schemas import ProxyRequest, ProxyResponse
from .settings import settings

logger = logging.getLogger(__name__)

# Connection-scoped headers that must not be relayed by a proxy (RFC 9110 7.6.1),
# plus the ones httpx recomputes for the outgoing message.
HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
    "host",
    "content-length",
})

# httpx advertises and decodes its own encodings; a client's list may name ones it cannot decode.
REQUEST_ONLY_HEADERS = frozenset({"accept-encoding"})


def end_to_end_headers(headers: Iterable[Tuple[str, str]], *,
                       drop: frozenset = frozenset()) -> List[Tuple[str, str]]:
    """Return the `(name, value)` pairs of `headers` minus hop-by-hop entries and `drop`.

    Names compare case-insensitively; repeated headers stay separate pairs.
    """

    excluded = HOP_BY_HOP_HEADERS | drop
    return [(k, v) for k, v in headers if k.lower() not in excluded]


class UpstreamClient:
    """Thin async client that relays requests to the single upstream origin.

    Parameters
    ----------
    base_url : Optional[str]
        Upstream origin. Defaults to `settings.upstream_base_url`.
    timeout : Optional[float]
        Per-request timeout in seconds. Defaults to `settings.upstream_timeout`.
    transport : Optional[httpx.AsyncBaseTransport]
        Transport override, e.g. `httpx.MockTransport` in tests.

    Notes
    -----
    - Uses `httpx` with one client per relayed request; the whole call is
      bounded by `timeout`, not just each connect/read phase.
    - No retries: a failed call fails the request that triggered it.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url or settings.upstream_base_url
        self.timeout = timeout if timeout is not None else settings.upstream_timeout
        self._transport = transport

    async def forward(self, request: ProxyRequest) -> ProxyResponse:
        """Relay `request` to the upstream and return its response.

        Parameters
        ----------
        request : ProxyRequest
            Inbound request; method, path, query, body and end-to-end headers are relayed.

        Returns
        -------
        ProxyResponse
            Upstream status, end-to-end headers and (decompressed) body.

        Raises
        ------
        UpstreamTimeout
            If the upstream does not answer within `timeout`.
        UpstreamTransportError
            For other transport-level errors (connection refused, DNS, etc.).
        """

        target = request.path + (f"?{request.query}" if request.query else "")
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout,
                                     transport=self._transport) as client:
            try:
                r = await asyncio.wait_for(client.request(
                    request.method,
                    target,
                    headers=end_to_end_headers(request.headers.items(), drop=REQUEST_ONLY_HEADERS),
                    content=request.body or None,
                ), self.timeout)
            except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
                logger.warning("Upstream timeout for %s %s", request.method, target)
                raise UpstreamTimeout(target, self.timeout) from exc
            except httpx.RequestError as exc:
                logger.warning("Upstream transport error for %s %s: %s", request.method, target, exc)
                raise UpstreamTransportError(target, str(exc) or type(exc).__name__) from exc
        return ProxyResponse(
            status_code=r.status_code,
            # httpx hands back the decoded body, so its encoding no longer applies
            headers=end_to_end_headers(r.headers.multi_items(), drop=frozenset({"content-encoding"})),
            body=r.content,
        )
