"""
Offline shell in front of the Tabill web client.

Lifecycle per version: parsed -> installing -> installed -> activating ->
activated (or redundant when install fails and no complete copy of this
version is already stored). Navigations always go network-first with the
cached root document as fallback. Once activated, other GETs go cache-first;
everything else passes straight through to the upstream.
"""
from enum import Enum
from typing import List, Optional

import httpx

from core.logger import get_logger
from services.cache_storage import (
    CacheAddError,
    CacheStorage,
    Fetch,
    ShellRequest,
    ShellResponse,
    add_all,
    is_storable,
)

logger = get_logger(__name__)

OFFLINE_URL = "/"
PRECACHE_URLS = [
    "/",
    "/manifest.webmanifest",
    "/icons/icon-192.png?v=2",
    "/icons/icon-512.png?v=2",
]

# Request headers that must not be forwarded upstream
HOP_BY_HOP_REQUEST = {"host", "content-length", "connection", "keep-alive", "transfer-encoding", "upgrade"}
# Response headers invalidated by httpx decoding the body
HOP_BY_HOP_RESPONSE = {"content-length", "content-encoding", "transfer-encoding", "connection", "keep-alive"}

class ShellState(str, Enum):
    PARSED = "parsed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVATED = "activated"
    REDUNDANT = "redundant"

class NetworkError(Exception):
    pass

def offline_response() -> ShellResponse:
    return ShellResponse(
        status_code=200,
        headers=[("content-type", "text/plain")],
        body=b"You are offline",
    )

def network_error_response() -> ShellResponse:
    return ShellResponse(
        status_code=502,
        headers=[("content-type", "text/plain")],
        body=b"Network error",
        response_type="error",
    )

def is_navigation(request: ShellRequest) -> bool:
    if request.method.upper() != "GET":
        return False
    mode = request.header("sec-fetch-mode")
    if mode is not None:
        return mode.lower() == "navigate"
    accept = request.header("accept") or ""
    return "text/html" in accept

DEFAULT_PORTS = {"http": 80, "https": 443}

def origin_of(url: httpx.URL) -> tuple:
    # httpx lowercases the host; an explicit default port equals an omitted one
    return (url.scheme, url.host, url.port or DEFAULT_PORTS.get(url.scheme))

class UpstreamFetcher:
    """Network access for the shell, over a shared httpx.AsyncClient."""

    def __init__(self, base_url: str, client: httpx.AsyncClient):
        self.base_url = base_url.rstrip("/")
        self.origin = origin_of(httpx.URL(self.base_url))
        self.client = client

    async def __call__(self, request: ShellRequest) -> ShellResponse:
        headers = {k: v for k, v in request.headers.items() if k.lower() not in HOP_BY_HOP_REQUEST}
        try:
            resp = await self.client.request(
                request.method,
                self.base_url + request.url,
                headers=headers,
                content=request.body or None,
                follow_redirects=True,
            )
        except httpx.HTTPError as e:
            raise NetworkError(f"{request.method} {request.url} failed: {e}") from e

        return ShellResponse(
            status_code=resp.status_code,
            headers=[(k, v) for k, v in resp.headers.multi_items() if k.lower() not in HOP_BY_HOP_RESPONSE],
            body=resp.content,
            response_type="basic" if origin_of(resp.url) == self.origin else "cors",
            redirected=bool(resp.history),
        )

class OfflineShell:
    def __init__(self, cache_name: str, storage: CacheStorage, fetch: Fetch, precache_urls: Optional[List[str]] = None):
        self.cache_name = cache_name
        self.storage = storage
        self.fetch = fetch
        self.precache_urls = list(precache_urls if precache_urls is not None else PRECACHE_URLS)
        self.state = ShellState.PARSED

    async def start(self) -> ShellState:
        """Install, then activate straight away instead of waiting."""
        if await self.install():
            await self.activate()
        return self.state

    async def install(self) -> bool:
        self.state = ShellState.INSTALLING
        bucket = self.storage.open(self.cache_name)
        try:
            await add_all(bucket, self.precache_urls, self.fetch)
        except (CacheAddError, NetworkError) as e:
            if not self.is_installed():
                logger.warning(f"Shell install for {self.cache_name} failed: {e}")
                self.state = ShellState.REDUNDANT
                return False
            logger.warning(f"Shell refresh for {self.cache_name} failed, keeping stored assets: {e}")
        else:
            logger.info(f"Shell {self.cache_name} installed with {len(self.precache_urls)} assets")
        self.state = ShellState.INSTALLED
        return True

    def is_installed(self) -> bool:
        """Whether every precache URL is already stored for this version."""
        if not self.storage.has(self.cache_name):
            return False
        stored = set(self.storage.open(self.cache_name).keys())
        return all(ShellRequest(method="GET", url=url).cache_key in stored for url in self.precache_urls)

    async def activate(self) -> List[str]:
        self.state = ShellState.ACTIVATING
        removed = [name for name in self.storage.keys() if name != self.cache_name]
        for name in removed:
            self.storage.delete(name)
            logger.info(f"Purged stale cache bucket {name}")
        self.state = ShellState.ACTIVATED
        return removed

    async def handle(self, request: ShellRequest) -> ShellResponse:
        if is_navigation(request):
            return await self._network_first(request)
        if self.state != ShellState.ACTIVATED:
            return await self._passthrough(request)
        if request.method.upper() == "GET":
            return await self._cache_first(request)
        return await self._passthrough(request)

    async def _passthrough(self, request: ShellRequest) -> ShellResponse:
        try:
            return await self.fetch(request)
        except NetworkError as e:
            logger.warning(f"Upstream unreachable: {e}")
            return network_error_response()

    async def _network_first(self, request: ShellRequest) -> ShellResponse:
        try:
            return await self.fetch(request)
        except NetworkError as e:
            logger.info(f"Serving offline fallback for {request.url}: {e}")
        cached = None
        if self.storage.has(self.cache_name):
            cached = self.storage.open(self.cache_name).match(ShellRequest(method="GET", url=OFFLINE_URL))
        return cached or offline_response()

    async def _cache_first(self, request: ShellRequest) -> ShellResponse:
        bucket = self.storage.open(self.cache_name)
        cached = bucket.match(request)
        if cached:
            return cached
        try:
            fresh = await self.fetch(request)
        except NetworkError as e:
            logger.warning(f"Cache miss and upstream unreachable for {request.url}: {e}")
            return network_error_response()

        if fresh.status_code == 200 and fresh.response_type == "basic" and is_storable(fresh):
            try:
                bucket.put(request, fresh.clone())
            except Exception as e:
                logger.warning(f"Could not cache {request.url}: {e}")
        return fresh
