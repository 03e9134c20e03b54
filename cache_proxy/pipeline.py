import json
import logging
import math
from typing import Any, Iterable

from .cache import CacheStore
from .errors import DecodeError
from .schemas import ProxyRequest, ProxyResponse
from .upstream import UpstreamClient

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json; charset=utf-8"

_MISS = object()


def request_key(path: str, query: str = "") -> str:
    """Derive the cache key for a request.

    The key is the raw path followed by `?` and the raw query string when there
    is one, compared verbatim and case-sensitively. Method and headers are not
    part of it, so all methods sharing a path share one slot.

    Examples
    --------
    - `request_key("/0/public/Ticker", "pair=XBTUSD")` -> `"/0/public/Ticker?pair=XBTUSD"`
    - `request_key("/0/public/Time")` -> `"/0/public/Time"`
    """

    return f"{path}?{query}" if query else path


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def _finite_float(text: str) -> float:
    value = float(text)
    if math.isinf(value):
        # e.g. 1e400 overflows and could not be re-encoded as JSON
        raise ValueError(f"number {text} is out of range")
    return value


def decode_json(raw: bytes) -> Any:
    """Parse an upstream body as strict UTF-8 JSON.

    `NaN`/`Infinity` tokens and numbers that overflow a float are rejected, so
    every decoded value can be encoded back to valid JSON.
    """

    return json.loads(raw.decode("utf-8"), parse_constant=_reject_constant, parse_float=_finite_float)


def encode_json(value: Any) -> bytes:
    """Canonical compact JSON text for `value`, as served on both miss and hit."""

    return json.dumps(value, ensure_ascii=False, allow_nan=False, separators=(",", ":")).encode("utf-8")


class ProxyPipeline:
    """Cache-first request handling in front of a single upstream.

    Parameters
    ----------
    cache : CacheStore
        Store consulted before, and populated after, every upstream call.
    upstream : UpstreamClient
        Client used on a cache miss.
    cache_methods : Iterable[str]
        Methods whose responses go through the cache. Others are relayed as-is.

    Notes
    -----
    - Concurrent misses for one key are not coalesced; each forwards and
      writes, and the last write wins.
    - Nothing is written unless the upstream call completed and its body
      decoded as JSON.
    """

    def __init__(self, cache: CacheStore, upstream: UpstreamClient, cache_methods: Iterable[str] = ("GET",)):
        self.cache = cache
        self.upstream = upstream
        self.cache_methods = frozenset(m.upper() for m in cache_methods)

    async def handle(self, request: ProxyRequest) -> ProxyResponse:
        """Serve `request` from the cache, or forward it and cache the result.

        Raises
        ------
        UpstreamTimeout, UpstreamTransportError
            If the upstream call fails on a miss.
        DecodeError
            If the upstream body on a miss is not valid JSON.
        """

        key = request_key(request.path, request.query)
        if request.method.upper() not in self.cache_methods:
            response = await self.upstream.forward(request)
            return response.model_copy(update={"headers": response.without_headers("X-Cached")})

        value = self.cache.get(key, _MISS)
        if value is not _MISS:
            logger.info("Serving cache for url %s", key)
            return ProxyResponse(
                status_code=200,
                headers=[("Content-Type", JSON_CONTENT_TYPE), ("X-Cached", "true")],
                body=encode_json(value),
            )

        response = await self.upstream.forward(request)
        try:
            value = decode_json(response.body)
        except ValueError as exc:
            # UnicodeDecodeError and JSONDecodeError are both ValueErrors
            raise DecodeError(key, str(exc)) from exc

        logger.info("Caching data for url %s", key)
        self.cache.put(key, value)

        headers = response.without_headers("Content-Type", "X-Cached")
        headers.append(("Content-Type", JSON_CONTENT_TYPE))
        return ProxyResponse(status_code=response.status_code, headers=headers, body=encode_json(value))
