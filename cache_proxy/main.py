import logging
from typing import Optional

from fastapi import FastAPI, Request, Response

from .cache import CacheStore
from .errors import register_error_handlers
from .pipeline import ProxyPipeline
from .schemas import HealthResponse, ProxyRequest
from .settings import Settings, settings as default_settings
from .upstream import UpstreamClient

logger = logging.getLogger(__name__)

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def configure_logging(level: str = "info") -> None:
    logging.basicConfig(level=level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def create_app(settings: Optional[Settings] = None, cache: Optional[CacheStore] = None,
               upstream: Optional[UpstreamClient] = None) -> FastAPI:
    """Build the proxy application.

    Parameters
    ----------
    settings : Optional[Settings]
        Configuration. Defaults to the process-wide `settings`.
    cache : Optional[CacheStore]
        Store shared by every request. A new one with `settings.cache_ttl` by default.
    upstream : Optional[UpstreamClient]
        Upstream client. Built from `settings` by default.

    Notes
    -----
    - Every path except `/_proxy/health` is relayed through `ProxyPipeline`.
    - The pipeline is kept on `app.state.pipeline` so tests can reach the cache.
    """

    settings = settings or default_settings
    if cache is None:
        cache = CacheStore(settings.cache_ttl)
    if upstream is None:
        upstream = UpstreamClient(settings.upstream_base_url, settings.upstream_timeout)
    pipeline = ProxyPipeline(cache, upstream, settings.cache_methods)

    # no docs/openapi routes: every path except the probe belongs to the upstream
    app = FastAPI(title="Caching Reverse Proxy", version="1.0.0",
                  docs_url=None, redoc_url=None, openapi_url=None)
    app.state.pipeline = pipeline
    register_error_handlers(app)

    @app.get("/_proxy/health", response_model=HealthResponse)
    async def health():
        """Liveness probe for the proxy itself; never forwarded upstream.

        Returns
        -------
        HealthResponse
            `status`, the upstream origin and the number of live cache entries.
        """

        return {"status": "ok", "upstream": upstream.base_url, "cached_keys": len(cache)}

    @app.api_route("/{path:path}", methods=PROXY_METHODS, include_in_schema=False)
    async def proxy(request: Request):
        """Relay any request through the cache-first pipeline.

        Notes
        -----
        - The cache key is built from the raw, still percent-encoded path and
          query string, exactly as the client sent them.
        """

        raw_path = request.scope.get("raw_path")
        path = raw_path.decode("latin-1").split("?", 1)[0] if raw_path else request.url.path
        result = await pipeline.handle(ProxyRequest(
            method=request.method,
            path=path,
            query=request.scope.get("query_string", b"").decode("latin-1"),
            headers=dict(request.headers),
            body=await request.body(),
        ))
        response = Response(content=result.body, status_code=result.status_code)
        for name, value in result.headers:
            response.headers.append(name, value)
        return response

    return app


app = create_app()
