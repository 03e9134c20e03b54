"""Proxy exceptions and the FastAPI handlers that turn them into responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ProxyError(Exception):
    """Base exception with the HTTP status code reported to the client."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.status_code = status_code


class UpstreamTimeout(ProxyError):
    def __init__(self, url: str, timeout: float):
        super().__init__(f"Upstream did not answer {url} within {timeout:g}s", status_code=504)


class UpstreamTransportError(ProxyError):
    """Connection refused, DNS failure and other transport-level errors."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Upstream request to {url} failed: {reason}", status_code=502)


class DecodeError(ProxyError):
    """The upstream body is not valid UTF-8 JSON, so it cannot be cached."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Upstream response for {url} is not valid JSON: {reason}", status_code=502)


def register_error_handlers(app: FastAPI) -> None:
    """Register centralized exception handlers on the FastAPI app."""

    @app.exception_handler(ProxyError)
    async def handle_proxy_error(_request: Request, exc: ProxyError):
        return JSONResponse({"error": str(exc)}, status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def handle_unexpected(_request: Request, exc: Exception):
        logger.exception("Unhandled error: %s", exc)
        return JSONResponse(
            {"error": "Internal server error"},
            status_code=500,
        )
