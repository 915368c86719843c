import asyncio

import pytest

from services.cache_storage import (
    CacheAddError,
    InMemoryCacheStorage,
    SQLCacheStorage,
    ShellRequest,
    ShellResponse,
    add_all,
    is_storable,
)

@pytest.fixture(params=["memory", "sql"])
def storage(request, engine):
    if request.param == "memory":
        return InMemoryCacheStorage()
    return SQLCacheStorage(engine)

def test_put_then_match_returns_stored_response(storage):
    bucket = storage.open("tabill-cache-v2")
    request = ShellRequest(method="GET", url="/icons/icon-192.png?v=2")
    bucket.put(request, ShellResponse(status_code=200, headers=[("content-type", "image/png")], body=b"\x89PNG"))

    cached = storage.open("tabill-cache-v2").match(request)

    assert cached.status_code == 200
    assert cached.body == b"\x89PNG"
    assert ("content-type", "image/png") in cached.headers
    assert bucket.keys() == ["GET /icons/icon-192.png?v=2"]

def test_query_string_is_part_of_the_key(storage):
    bucket = storage.open("v1")
    bucket.put(ShellRequest(method="GET", url="/app.js?v=1"), ShellResponse(status_code=200, body=b"one"))

    assert bucket.match(ShellRequest(method="GET", url="/app.js?v=2")) is None

def test_put_replaces_existing_entry(storage):
    bucket = storage.open("v1")
    request = ShellRequest(method="GET", url="/")
    bucket.put(request, ShellResponse(status_code=200, body=b"old"))
    bucket.put(request, ShellResponse(status_code=200, body=b"new"))

    assert bucket.match(request).body == b"new"
    assert len(bucket.keys()) == 1

def test_vary_headers_must_match_to_hit(storage):
    bucket = storage.open("v1")
    english = ShellRequest(method="GET", url="/locale.json", headers={"Accept-Language": "en"})
    bucket.put(english, ShellResponse(status_code=200, headers=[("Vary", "Accept-Language")], body=b"hello"))

    assert bucket.match(ShellRequest(method="GET", url="/locale.json", headers={"accept-language": "en"})).body == b"hello"
    assert bucket.match(ShellRequest(method="GET", url="/locale.json", headers={"Accept-Language": "hi"})) is None
    assert bucket.match(ShellRequest(method="GET", url="/locale.json")) is None

def test_stored_responses_never_replay_cookies(storage):
    bucket = storage.open("v1")
    request = ShellRequest(method="GET", url="/")
    bucket.put(request, ShellResponse(status_code=200, headers=[("content-type", "text/html"), ("Set-Cookie", "sid=1")]))

    assert bucket.match(request).headers == [("content-type", "text/html")]

def test_vary_star_cannot_be_stored(storage):
    with pytest.raises(ValueError):
        storage.open("v1").put(ShellRequest(method="GET", url="/"), ShellResponse(status_code=200, headers=[("Vary", "*")]))

def test_delete_drops_whole_bucket(storage):
    storage.open("v1").put(ShellRequest(method="GET", url="/"), ShellResponse(status_code=200, body=b"x"))
    storage.open("v2")

    assert sorted(storage.keys()) == ["v1", "v2"]
    assert storage.delete("v1") is True
    assert storage.delete("v1") is False
    assert storage.keys() == ["v2"]
    assert storage.open("v1").match(ShellRequest(method="GET", url="/")) is None

def test_add_all_stores_nothing_when_one_asset_fails():
    storage = InMemoryCacheStorage()
    bucket = storage.open("v1")

    async def fetch(request):
        if request.url == "/manifest.webmanifest":
            return ShellResponse(status_code=404)
        return ShellResponse(status_code=200, body=request.url.encode())

    with pytest.raises(CacheAddError):
        asyncio.run(add_all(bucket, ["/", "/manifest.webmanifest"], fetch))

    assert bucket.keys() == []

def test_is_storable():
    assert is_storable(ShellResponse(status_code=200, headers=[("cache-control", "public, max-age=31536000")]))
    assert is_storable(ShellResponse(status_code=200, headers=[("vary", "Accept-Encoding")]))
    assert not is_storable(ShellResponse(status_code=200, headers=[("Cache-Control", "no-store")]))
    assert not is_storable(ShellResponse(status_code=200, headers=[("cache-control", "private=\"set-cookie\"")]))
    assert not is_storable(ShellResponse(status_code=200, headers=[("set-cookie", "sid=1")]))
    assert not is_storable(ShellResponse(status_code=200, headers=[("vary", "Accept-Language, *")]))
