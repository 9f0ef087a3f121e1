from __future__ import annotations

import ssl
import time
import typing as t
from typing import Awaitable, Callable, Optional

from maxage._async._storages import AsyncBaseStorage
from maxage._async_cache import AsyncCachingMiddleware
from maxage._models import Request, Response
from maxage._spec import DEFAULT_REFRESH_TTL
from maxage._utils import BaseClock, filter_mapping

try:
    import httpx
except ImportError as e:
    raise ImportError(
        "httpx is required to use maxage.httpx module. "
        "Please install maxage with the 'httpx' extra, "
        "e.g., 'pip install maxage[httpx]'."
    ) from e

__all__ = ("AsyncCacheClient", "AsyncCacheTransport")

CACHEABLE_METHODS = ("GET",)

# Describe the encoded payload; the body is kept decoded.
DROPPED_HEADERS = ("content-encoding", "content-length", "transfer-encoding")

REQUEST_EXTENSION = "maxage_httpx_request"


def _url_without_query(url: httpx.URL) -> str:
    path = url.raw_path.split(b"?", 1)[0]
    return f"{url.scheme}://{url.netloc.decode('ascii')}{path.decode('ascii')}"


def _httpx_to_internal_request(request: httpx.Request) -> Request:
    return Request(
        url=_url_without_query(request.url),
        queries=request.url.params.multi_items(),
        metadata={REQUEST_EXTENSION: request},
    )


def _internal_to_httpx_request(request: Request) -> httpx.Request:
    original = request.metadata.get(REQUEST_EXTENSION)
    if isinstance(original, httpx.Request):
        return original
    # Requests built from a cache key, e.g. by a background refresh
    return httpx.Request("GET", request.get_url(), params=request.get_queries() or None)


def _httpx_to_internal_response(response: httpx.Response, request: httpx.Request, elapsed_time: float) -> Response:
    body = response.content
    headers = filter_mapping({key: value for key, value in response.headers.items()}, DROPPED_HEADERS)
    headers["content-length"] = str(len(body))
    return Response(
        body=body,
        headers=headers,
        status_code=response.status_code,
        elapsed_time=elapsed_time,
        url=str(request.url),
        from_cache=bool(response.extensions.get("from_cache", False)),
        is_stale=bool(response.extensions.get("is_stale", False)),
    )


def _internal_to_httpx_response(response: Response) -> httpx.Response:
    return httpx.Response(
        status_code=response.status_code,
        headers=response.headers,
        content=response.body,
        extensions={
            "from_cache": response.from_cache,
            "elapsed_time": response.elapsed_time,
        },
    )


class AsyncCacheTransport(httpx.AsyncBaseTransport):
    """
    An HTTPX transport that caches GET responses according to their `Cache-Control` header.

    :param next_transport: Transport that our class wraps in order to add a cache layer on top of
    :type next_transport: httpx.AsyncBaseTransport
    :param storage: Storage for the cached responses, defaults to None
    :type storage: tp.Optional[AsyncBaseStorage], optional
    :param refresh: Fetches a fresh response for a cache key during background revalidation, defaults to None
    :type refresh: tp.Optional[tp.Callable[[str], tp.Awaitable[Response]]], optional
    :param stale_while_revalidate: Honor the `stale-while-revalidate` directive, defaults to False
    :type stale_while_revalidate: bool, optional
    :param refresh_ttl: Seconds a refreshed response is kept for, defaults to 60
    :type refresh_ttl: float, optional
    """

    def __init__(
        self,
        next_transport: httpx.AsyncBaseTransport,
        storage: Optional[AsyncBaseStorage] = None,
        refresh: Optional[Callable[[str], Awaitable[Response]]] = None,
        stale_while_revalidate: bool = False,
        refresh_ttl: float = DEFAULT_REFRESH_TTL,
        clock: Optional[BaseClock] = None,
    ) -> None:
        self.next_transport = next_transport
        self.middleware = AsyncCachingMiddleware(
            request_sender=self.request_sender,
            storage=storage,
            refresh=refresh,
            stale_while_revalidate=stale_while_revalidate,
            refresh_ttl=refresh_ttl,
            clock=clock,
        )
        self.storage = self.middleware.storage

    async def handle_async_request(
        self,
        request: httpx.Request,
    ) -> httpx.Response:
        if request.method not in CACHEABLE_METHODS:
            return await self.next_transport.handle_async_request(request)

        internal_response = await self.middleware.handle_request(_httpx_to_internal_request(request))
        return _internal_to_httpx_response(internal_response)

    async def aclose(self) -> None:
        await self.middleware.aclose()
        await self.next_transport.aclose()

    async def request_sender(self, request: Request) -> Response:
        httpx_request = _internal_to_httpx_request(request)
        started = time.perf_counter()
        httpx_response = await self.next_transport.handle_async_request(httpx_request)
        try:
            await httpx_response.aread()
        finally:
            await httpx_response.aclose()
        elapsed_time = (time.perf_counter() - started) * 1000
        return _httpx_to_internal_response(httpx_response, httpx_request, elapsed_time)


class AsyncCacheClient(httpx.AsyncClient):
    def __init__(self, *args: t.Any, **kwargs: t.Any) -> None:
        self.storage: Optional[AsyncBaseStorage] = kwargs.pop("storage", None)
        self.refresh: Optional[Callable[[str], Awaitable[Response]]] = kwargs.pop("refresh", None)
        self.stale_while_revalidate: bool = kwargs.pop("stale_while_revalidate", False)
        self.refresh_ttl: float = kwargs.pop("refresh_ttl", DEFAULT_REFRESH_TTL)
        super().__init__(*args, **kwargs)

    def _wrap(self, next_transport: httpx.AsyncBaseTransport) -> AsyncCacheTransport:
        return AsyncCacheTransport(
            next_transport=next_transport,
            storage=self.storage,
            refresh=self.refresh,
            stale_while_revalidate=self.stale_while_revalidate,
            refresh_ttl=self.refresh_ttl,
        )

    def _init_transport(
        self,
        verify: ssl.SSLContext | str | bool = True,
        cert: t.Union[str, t.Tuple[str, str], t.Tuple[str, str, str], None] = None,
        trust_env: bool = True,
        http1: bool = True,
        http2: bool = False,
        limits: httpx.Limits = httpx.Limits(max_connections=100, max_keepalive_connections=20),
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: t.Any,
    ) -> httpx.AsyncBaseTransport:
        if transport is not None:
            return self._wrap(transport)

        return self._wrap(
            httpx.AsyncHTTPTransport(
                verify=verify,
                cert=cert,
                trust_env=trust_env,
                http1=http1,
                http2=http2,
                limits=limits,
            )
        )

    def _init_proxy_transport(
        self,
        proxy: httpx.Proxy,
        verify: ssl.SSLContext | str | bool = True,
        cert: t.Union[str, t.Tuple[str, str], t.Tuple[str, str, str], None] = None,
        trust_env: bool = True,
        http1: bool = True,
        http2: bool = False,
        limits: httpx.Limits = httpx.Limits(max_connections=100, max_keepalive_connections=20),
        **kwargs: t.Any,
    ) -> httpx.AsyncBaseTransport:
        return self._wrap(
            httpx.AsyncHTTPTransport(
                verify=verify,
                cert=cert,
                trust_env=trust_env,
                http1=http1,
                http2=http2,
                limits=limits,
                proxy=proxy,
            )
        )
