from __future__ import annotations

import ssl
import time
import typing as t
from typing import Callable, Optional

from maxage._models import Request, Response
from maxage._spec import DEFAULT_REFRESH_TTL
from maxage._sync._storages import SyncBaseStorage
from maxage._sync_cache import SyncCachingMiddleware
from maxage._utils import BaseClock

try:
    import httpx
except ImportError as e:
    raise ImportError(
        "httpx is required to use maxage.httpx module. "
        "Please install maxage with the 'httpx' extra, "
        "e.g., 'pip install maxage[httpx]'."
    ) from e

from maxage._async_httpx import (
    CACHEABLE_METHODS,
    _httpx_to_internal_request,
    _httpx_to_internal_response,
    _internal_to_httpx_request,
    _internal_to_httpx_response,
)

__all__ = ("SyncCacheClient", "SyncCacheTransport")


class SyncCacheTransport(httpx.BaseTransport):
    """
    An HTTPX transport that caches GET responses according to their `Cache-Control` header.

    :param next_transport: Transport that our class wraps in order to add a cache layer on top of
    :type next_transport: httpx.BaseTransport
    :param storage: Storage for the cached responses, defaults to None
    :type storage: tp.Optional[SyncBaseStorage], optional
    :param refresh: Fetches a fresh response for a cache key during background revalidation, defaults to None
    :type refresh: tp.Optional[tp.Callable[[str], Response]], optional
    :param stale_while_revalidate: Honor the `stale-while-revalidate` directive, defaults to False
    :type stale_while_revalidate: bool, optional
    :param refresh_ttl: Seconds a refreshed response is kept for, defaults to 60
    :type refresh_ttl: float, optional
    """

    def __init__(
        self,
        next_transport: httpx.BaseTransport,
        storage: Optional[SyncBaseStorage] = None,
        refresh: Optional[Callable[[str], Response]] = None,
        stale_while_revalidate: bool = False,
        refresh_ttl: float = DEFAULT_REFRESH_TTL,
        clock: Optional[BaseClock] = None,
    ) -> None:
        self.next_transport = next_transport
        self.middleware = SyncCachingMiddleware(
            request_sender=self.request_sender,
            storage=storage,
            refresh=refresh,
            stale_while_revalidate=stale_while_revalidate,
            refresh_ttl=refresh_ttl,
            clock=clock,
        )
        self.storage = self.middleware.storage

    def handle_request(
        self,
        request: httpx.Request,
    ) -> httpx.Response:
        if request.method not in CACHEABLE_METHODS:
            return self.next_transport.handle_request(request)

        internal_response = self.middleware.handle_request(_httpx_to_internal_request(request))
        return _internal_to_httpx_response(internal_response)

    def close(self) -> None:
        self.middleware.close()
        self.next_transport.close()

    def request_sender(self, request: Request) -> Response:
        httpx_request = _internal_to_httpx_request(request)
        started = time.perf_counter()
        httpx_response = self.next_transport.handle_request(httpx_request)
        try:
            httpx_response.read()
        finally:
            httpx_response.close()
        elapsed_time = (time.perf_counter() - started) * 1000
        return _httpx_to_internal_response(httpx_response, httpx_request, elapsed_time)


class SyncCacheClient(httpx.Client):
    def __init__(self, *args: t.Any, **kwargs: t.Any) -> None:
        self.storage: Optional[SyncBaseStorage] = kwargs.pop("storage", None)
        self.refresh: Optional[Callable[[str], Response]] = kwargs.pop("refresh", None)
        self.stale_while_revalidate: bool = kwargs.pop("stale_while_revalidate", False)
        self.refresh_ttl: float = kwargs.pop("refresh_ttl", DEFAULT_REFRESH_TTL)
        super().__init__(*args, **kwargs)

    def _wrap(self, next_transport: httpx.BaseTransport) -> SyncCacheTransport:
        return SyncCacheTransport(
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
        transport: httpx.BaseTransport | None = None,
        **kwargs: t.Any,
    ) -> httpx.BaseTransport:
        if transport is not None:
            return self._wrap(transport)

        return self._wrap(
            httpx.HTTPTransport(
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
    ) -> httpx.BaseTransport:
        return self._wrap(
            httpx.HTTPTransport(
                verify=verify,
                cert=cert,
                trust_env=trust_env,
                http1=http1,
                http2=http2,
                limits=limits,
                proxy=proxy,
            )
        )
