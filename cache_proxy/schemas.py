from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field


class CacheEntry(BaseModel):
    """A decoded upstream response held by `CacheStore`.

    Notes
    -----
    - `expires_at` is measured on the store's clock, not wall time.
    - `generation` increases with every write, so an expiry timer can tell
      whether the entry it was scheduled for has since been replaced.
    """

    key: str
    value: Any = None
    expires_at: float
    generation: int


class ProxyRequest(BaseModel):
    """Framework-independent view of an inbound request.

    `path` and `query` are kept exactly as received (still percent-encoded);
    `query` excludes the leading `?`.
    """

    method: str = "GET"
    path: str
    query: str = ""
    headers: Dict[str, str] = Field(default_factory=dict)
    body: bytes = b""


class ProxyResponse(BaseModel):
    """Response handed back to the client.

    `headers` is a list of `(name, value)` pairs so repeated headers such as
    `Set-Cookie` survive the relay.
    """

    status_code: int = 200
    headers: List[Tuple[str, str]] = Field(default_factory=list)
    body: bytes = b""

    def header(self, name: str) -> Optional[str]:
        """First value of header `name` (case-insensitive), or `None`."""

        name = name.lower()
        return next((v for k, v in self.headers if k.lower() == name), None)

    def without_headers(self, *names: str) -> List[Tuple[str, str]]:
        excluded = {n.lower() for n in names}
        return [(k, v) for k, v in self.headers if k.lower() not in excluded]

    @property
    def cached(self) -> bool:
        return self.header("X-Cached") == "true"


class HealthResponse(BaseModel):
    status: str
    upstream: str
    cached_keys: int
