"""
Named cache buckets for the offline shell.

A bucket maps a request identity (method + URL) to the last response stored
for it. A response carrying ``Vary`` only matches requests whose varied
headers equal the ones it was stored under. ``InMemoryCacheStorage`` is
process-local; ``SQLCacheStorage`` keeps entries in the ``cache_entries``
table so the shell survives restarts.
"""
import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Protocol, Set, Tuple

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from models import CacheEntry

@dataclass(frozen=True)
class ShellRequest:
    method: str
    url: str # path + query, relative to the upstream origin
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def cache_key(self) -> str:
        return f"{self.method.upper()} {self.url}"

    def header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

@dataclass
class ShellResponse:
    status_code: int
    headers: List[Tuple[str, str]] = field(default_factory=list)
    body: bytes = b""
    # "basic" = same-origin and not redirected off-origin
    response_type: str = "basic"
    redirected: bool = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def header(self, name: str) -> Optional[str]:
        values = self.header_values(name)
        return ", ".join(values) if values else None

    def header_values(self, name: str) -> List[str]:
        lowered = name.lower()
        return [value for key, value in self.headers if key.lower() == lowered]

    def clone(self) -> "ShellResponse":
        return replace(self, headers=list(self.headers))

Fetch = Callable[[ShellRequest], Awaitable[ShellResponse]]

class CacheAddError(Exception):
    pass

def vary_names(response: ShellResponse) -> List[str]:
    names = []
    for value in response.header_values("vary"):
        names.extend(part.strip().lower() for part in value.split(",") if part.strip())
    return names

def request_variant(request: ShellRequest, names: Iterable[str]) -> Dict[str, str]:
    return {name: request.header(name) or "" for name in names}

def variant_matches(request: ShellRequest, variant: Dict[str, str]) -> bool:
    return all((request.header(name) or "") == value for name, value in variant.items())

def is_storable(response: ShellResponse) -> bool:
    """Whether a runtime response may be kept for other requests to reuse."""
    if "*" in vary_names(response):
        return False
    if response.header_values("set-cookie"):
        return False
    directives = {d.strip().split("=", 1)[0].lower() for d in (response.header("cache-control") or "").split(",")}
    return not directives & {"no-store", "private"}

def stored_copy(request: ShellRequest, response: ShellResponse) -> Tuple[ShellResponse, Dict[str, str]]:
    """The response as kept in a bucket, plus the request headers it varies on."""
    names = vary_names(response)
    if "*" in names:
        raise ValueError(f"{request.cache_key} varies on every header and cannot be stored")
    stored = replace(response, headers=[(k, v) for k, v in response.headers if k.lower() != "set-cookie"])
    return stored, request_variant(request, names)

class CacheBucket(Protocol):
    name: str
    def match(self, request: ShellRequest) -> Optional[ShellResponse]: ...
    def put(self, request: ShellRequest, response: ShellResponse) -> None: ...
    def keys(self) -> List[str]: ...

class CacheStorage(Protocol):
    def open(self, name: str) -> CacheBucket: ...
    def has(self, name: str) -> bool: ...
    def keys(self) -> List[str]: ...
    def delete(self, name: str) -> bool: ...

async def add_all(bucket: CacheBucket, urls: Iterable[str], fetch: Fetch) -> None:
    """Fetch every URL and store them together; nothing is stored if any fails."""
    fetched = []
    for url in urls:
        request = ShellRequest(method="GET", url=url)
        response = await fetch(request)
        if not response.ok:
            raise CacheAddError(f"Preload of {url} failed with status {response.status_code}")
        if "*" in vary_names(response):
            raise CacheAddError(f"Preload of {url} returned Vary: *")
        fetched.append((request, response))
    for request, response in fetched:
        bucket.put(request, response)

# --- In-memory ---

class InMemoryCacheBucket:
    def __init__(self, name: str):
        self.name = name
        self.entries: Dict[str, Tuple[ShellResponse, Dict[str, str]]] = {}

    def match(self, request: ShellRequest) -> Optional[ShellResponse]:
        cached = self.entries.get(request.cache_key)
        if cached is None or not variant_matches(request, cached[1]):
            return None
        return cached[0].clone()

    def put(self, request: ShellRequest, response: ShellResponse) -> None:
        self.entries[request.cache_key] = stored_copy(request, response)

    def keys(self) -> List[str]:
        return list(self.entries)

class InMemoryCacheStorage:
    def __init__(self):
        self.buckets: Dict[str, InMemoryCacheBucket] = {}

    def open(self, name: str) -> InMemoryCacheBucket:
        if name not in self.buckets:
            self.buckets[name] = InMemoryCacheBucket(name)
        return self.buckets[name]

    def has(self, name: str) -> bool:
        return name in self.buckets

    def keys(self) -> List[str]:
        return list(self.buckets)

    def delete(self, name: str) -> bool:
        return self.buckets.pop(name, None) is not None

# --- SQL ---

class SQLCacheBucket:
    def __init__(self, name: str, engine: Engine):
        self.name = name
        self.engine = engine

    def match(self, request: ShellRequest) -> Optional[ShellResponse]:
        with Session(self.engine) as session:
            entry = session.get(CacheEntry, (self.name, request.cache_key))
            if entry is None or not variant_matches(request, json.loads(entry.vary)):
                return None
            return ShellResponse(
                status_code=entry.status_code,
                headers=[tuple(h) for h in json.loads(entry.headers)],
                body=entry.body,
            )

    def put(self, request: ShellRequest, response: ShellResponse) -> None:
        stored, variant = stored_copy(request, response)
        with Session(self.engine) as session:
            entry = session.get(CacheEntry, (self.name, request.cache_key))
            if entry is None:
                entry = CacheEntry(bucket=self.name, request_key=request.cache_key, status_code=stored.status_code)
            entry.status_code = stored.status_code
            entry.headers = json.dumps([list(h) for h in stored.headers])
            entry.vary = json.dumps(variant)
            entry.body = stored.body
            entry.stored_at = datetime.utcnow()
            session.add(entry)
            session.commit()

    def keys(self) -> List[str]:
        with Session(self.engine) as session:
            return list(session.exec(
                select(CacheEntry.request_key).where(CacheEntry.bucket == self.name)
            ).all())

class SQLCacheStorage:
    def __init__(self, engine: Engine):
        self.engine = engine
        # Buckets opened in this process that may not hold entries yet
        self._opened: Set[str] = set()

    def open(self, name: str) -> SQLCacheBucket:
        self._opened.add(name)
        return SQLCacheBucket(name, self.engine)

    def has(self, name: str) -> bool:
        return name in self.keys()

    def keys(self) -> List[str]:
        with Session(self.engine) as session:
            stored = set(session.exec(select(CacheEntry.bucket).distinct()).all())
        return sorted(stored | self._opened)

    def delete(self, name: str) -> bool:
        existed = self.has(name)
        with Session(self.engine) as session:
            for entry in session.exec(select(CacheEntry).where(CacheEntry.bucket == name)).all():
                session.delete(entry)
            session.commit()
        self._opened.discard(name)
        return existed
