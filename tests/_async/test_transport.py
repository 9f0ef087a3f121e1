import gzip

import httpx
import pytest

from maxage import AsyncInMemoryStorage, CachedEntry
from maxage.httpx import AsyncCacheClient, AsyncCacheTransport, MockAsyncTransport

URL = "http://www.example.com/path"


def origin_response(content=b"I am a string!", cache_control="max-age=60", **kwargs):
    headers = {"cache-control": cache_control} if cache_control is not None else {}
    return httpx.Response(200, headers=headers, content=content, **kwargs)


@pytest.mark.anyio
async def test_transport_stores_for_max_age(clock):
    storage = AsyncInMemoryStorage(clock=clock)
    transport = MockAsyncTransport()
    transport.add_responses([origin_response()])

    async with AsyncCacheTransport(next_transport=transport, storage=storage, clock=clock) as cache_transport:
        response = await cache_transport.handle_async_request(httpx.Request("GET", URL))
        await response.aread()
        stored = await storage.get("body", URL)

    assert not response.extensions["from_cache"]
    assert stored is not None
    assert CachedEntry.from_dict(stored.item).body == b"I am a string!"
    assert abs(stored.expires_at - (clock.now() + 60_000)) < 1000


@pytest.mark.anyio
async def test_transport_serves_from_cache(clock):
    transport = MockAsyncTransport()
    transport.add_responses([origin_response()])

    async with AsyncCacheTransport(
        next_transport=transport, storage=AsyncInMemoryStorage(clock=clock), clock=clock
    ) as cache_transport:
        await cache_transport.handle_async_request(httpx.Request("GET", URL))
        response = await cache_transport.handle_async_request(httpx.Request("GET", URL))

        assert response.extensions["from_cache"]
        assert await response.aread() == b"I am a string!"
        assert len(transport.requests) == 1


@pytest.mark.anyio
async def test_transport_varies_on_query_strings(clock):
    storage = AsyncInMemoryStorage(clock=clock)
    transport = MockAsyncTransport()
    transport.add_responses([origin_response(b"I am a string!"), origin_response(b"clade")])

    async with AsyncCacheTransport(next_transport=transport, storage=storage, clock=clock) as cache_transport:
        await cache_transport.handle_async_request(httpx.Request("GET", URL))
        await cache_transport.handle_async_request(httpx.Request("GET", URL, params={"a": 1}))

        default = await storage.get("body", URL)
        alternate = await storage.get("body", URL + "?a=1")

    assert default is not None and alternate is not None
    assert CachedEntry.from_dict(default.item).body == b"I am a string!"
    assert CachedEntry.from_dict(alternate.item).body == b"clade"


@pytest.mark.anyio
async def test_transport_does_not_store_without_cache_control(clock):
    storage = AsyncInMemoryStorage(clock=clock)
    transport = MockAsyncTransport()
    transport.add_responses([origin_response(cache_control=None)])

    async with AsyncCacheTransport(next_transport=transport, storage=storage, clock=clock) as cache_transport:
        await cache_transport.handle_async_request(httpx.Request("GET", URL))

        assert await storage.get("body", URL) is None


@pytest.mark.anyio
async def test_transport_respects_is_stale_extension(clock):
    storage = AsyncInMemoryStorage(clock=clock)
    transport = MockAsyncTransport()
    transport.add_responses([origin_response(extensions={"is_stale": True})])

    async with AsyncCacheTransport(next_transport=transport, storage=storage, clock=clock) as cache_transport:
        await cache_transport.handle_async_request(httpx.Request("GET", URL))

        assert await storage.get("body", URL) is None


@pytest.mark.anyio
async def test_transport_returns_cached_response_verbatim(clock):
    storage = AsyncInMemoryStorage(clock=clock)
    storage.start()
    cached = CachedEntry(
        body=b"cached",
        headers={"cache-control": "max-age=60", "x-custom": "value"},
        status_code=203,
        elapsed_time=12,
        url=URL,
    )
    await storage.set("body", URL, cached.to_dict(), 600)
    transport = MockAsyncTransport()

    async with AsyncCacheTransport(next_transport=transport, storage=storage, clock=clock) as cache_transport:
        response = await cache_transport.handle_async_request(httpx.Request("GET", URL))

        assert response.status_code == 203
        assert response.headers["x-custom"] == "value"
        assert await response.aread() == b"cached"
        assert response.extensions["from_cache"]
        assert response.extensions["elapsed_time"] == 12
        assert transport.requests == []


@pytest.mark.anyio
async def test_transport_stale_while_revalidate(clock):
    storage = AsyncInMemoryStorage(clock=clock)
    transport = MockAsyncTransport()
    transport.add_responses(
        [
            origin_response(b"stale", cache_control="max-age=1, stale-while-revalidate=60"),
            origin_response(b"fresh"),
        ]
    )

    async with AsyncCacheTransport(
        next_transport=transport, storage=storage, stale_while_revalidate=True, clock=clock
    ) as cache_transport:
        await cache_transport.handle_async_request(httpx.Request("GET", URL))
        clock.advance(2)

        response = await cache_transport.handle_async_request(httpx.Request("GET", URL))
        assert response.extensions["from_cache"]
        assert await response.aread() == b"stale"

        await cache_transport.middleware.wait_for_revalidations()

        stored = await storage.get("body", URL)
        assert stored is not None
        assert stored.ttl == 60_000
        assert CachedEntry.from_dict(stored.item).body == b"fresh"

        response = await cache_transport.handle_async_request(httpx.Request("GET", URL))
        assert await response.aread() == b"fresh"
        assert len(transport.requests) == 2


@pytest.mark.anyio
async def test_transport_does_not_cache_other_methods(clock):
    transport = MockAsyncTransport()
    transport.add_responses([origin_response(), origin_response()])

    async with AsyncCacheTransport(
        next_transport=transport, storage=AsyncInMemoryStorage(clock=clock), clock=clock
    ) as cache_transport:
        await cache_transport.handle_async_request(httpx.Request("POST", URL, content=b"data"))
        response = await cache_transport.handle_async_request(httpx.Request("POST", URL, content=b"data"))

        assert "from_cache" not in response.extensions
        assert len(transport.requests) == 2


@pytest.mark.anyio
async def test_transport_origin_errors_propagate(clock):
    transport = MockAsyncTransport()
    transport.add_responses([httpx.ConnectError("origin is down")])

    async with AsyncCacheTransport(
        next_transport=transport, storage=AsyncInMemoryStorage(clock=clock), clock=clock
    ) as cache_transport:
        with pytest.raises(httpx.ConnectError):
            await cache_transport.handle_async_request(httpx.Request("GET", URL))


@pytest.mark.anyio
async def test_client(clock):
    transport = MockAsyncTransport()
    transport.add_responses(
        [
            httpx.Response(
                200,
                headers={"cache-control": "max-age=60", "content-encoding": "gzip"},
                content=gzip.compress(b"hello"),
            )
        ]
    )

    async with AsyncCacheClient(transport=transport, storage=AsyncInMemoryStorage(clock=clock)) as client:
        first = await client.get(URL)
        second = await client.get(URL)

    assert first.text == "hello"
    assert second.text == "hello"
    assert not first.extensions["from_cache"]
    assert second.extensions["from_cache"]
    assert "content-encoding" not in second.headers
    assert len(transport.requests) == 1


@pytest.mark.anyio
async def test_transport_refresh_keeps_the_original_query(clock):
    storage = AsyncInMemoryStorage(clock=clock)
    transport = MockAsyncTransport()
    transport.add_responses(
        [
            origin_response(b"stale", cache_control="max-age=1, stale-while-revalidate=60"),
            origin_response(b"fresh"),
        ]
    )
    url = URL + "?q=a%20b&flag"

    async with AsyncCacheTransport(
        next_transport=transport, storage=storage, stale_while_revalidate=True, clock=clock
    ) as cache_transport:
        await cache_transport.handle_async_request(httpx.Request("GET", url))
        clock.advance(2)
        await cache_transport.handle_async_request(httpx.Request("GET", url))
        await cache_transport.middleware.wait_for_revalidations()

        response = await cache_transport.handle_async_request(httpx.Request("GET", url))
        assert await response.aread() == b"fresh"

    assert len(transport.requests) == 2
    assert transport.requests[1].url.query == b"q=a%20b&flag"
