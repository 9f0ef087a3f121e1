from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

from typing_extensions import assert_never

from ._async._storages import AsyncBaseStorage, AsyncInMemoryStorage
from ._keygen import KeyGenerator
from ._models import Request, Response, StoredItem
from ._revalidation import RevalidationTracker
from ._spec import (
    DEFAULT_REFRESH_TTL,
    SEGMENT,
    AnyState,
    CacheMiss,
    CacheOptions,
    CouldNotBeStored,
    FromCache,
    IdleClient,
    Revalidating,
    StoreAndUse,
)
from ._utils import BaseClock, Clock

logger = logging.getLogger("maxage.middleware")

__all__ = ("AsyncCachingMiddleware",)


class AsyncCachingMiddleware:
    """
    Caches responses of a request pipeline according to their `Cache-Control` header.

    This class is independent of any specific HTTP library and works only with internal models.
    It delegates request execution to a user-provided callable.

    Args:
        request_sender: The next stage of the pipeline; sends a request and returns its response.
        storage: Storage for cached entries. Defaults to AsyncInMemoryStorage.
        refresh: Callable fetching a fresh response for a cache key during background
            revalidation. Defaults to sending a request through `request_sender` for the URL the
            stale entry was fetched from, or for the key when that URL no longer maps onto it.
        stale_while_revalidate: Honor the `stale-while-revalidate` directive.
        refresh_ttl: Seconds a refreshed response is kept for.
        key_generator: Derives cache keys from requests.
        tracker: Keeps track of in-flight background refreshes.
        clock: Source of the current time.
    """

    def __init__(
        self,
        request_sender: Callable[[Request], Awaitable[Response]],
        storage: Optional[AsyncBaseStorage] = None,
        refresh: Optional[Callable[[str], Awaitable[Response]]] = None,
        stale_while_revalidate: bool = False,
        refresh_ttl: float = DEFAULT_REFRESH_TTL,
        key_generator: Optional[KeyGenerator] = None,
        tracker: Optional[RevalidationTracker] = None,
        clock: Optional[BaseClock] = None,
    ) -> None:
        self.send_request = request_sender
        self.storage = storage if storage is not None else AsyncInMemoryStorage()
        self.refresh = refresh
        self.options = CacheOptions(stale_while_revalidate=stale_while_revalidate, refresh_ttl=refresh_ttl)
        self.key_generator = key_generator if key_generator is not None else KeyGenerator()
        self.tracker = tracker if tracker is not None else RevalidationTracker()
        self._clock = clock if clock is not None else Clock()
        self._background_tasks: Set["asyncio.Task[None]"] = set()

        self.storage.start()

    async def handle_request(self, request: Request) -> Response:
        state: AnyState = IdleClient(options=self.options, key=self.key_generator.generate(request))

        while state:
            logger.debug(f"Handling state: {state.__class__.__name__}")
            if isinstance(state, IdleClient):
                state = await self._handle_idle_state(state)
            elif isinstance(state, FromCache):
                revalidation = state.next()
                if revalidation is not None:
                    self._schedule_revalidation(revalidation)
                return state.response
            elif isinstance(state, CacheMiss):
                state = await self._handle_cache_miss(state, request)
            elif isinstance(state, StoreAndUse):
                await self._handle_store_and_use(state)
                return state.response
            elif isinstance(state, CouldNotBeStored):
                return state.response
            elif isinstance(state, Revalidating):
                raise RuntimeError("Revalidation must not run in the foreground")
            else:
                assert_never(state)

        raise RuntimeError("Unreachable")

    async def revalidate(self, key: str) -> None:
        """
        Refresh the entry stored under `key`, unless a refresh for it is already running.

        Errors are logged and discarded.
        """

        if self.tracker.try_begin(key):
            await self._refresh_entry(Revalidating(options=self.options, key=key))

    async def wait_for_revalidations(self) -> None:
        """
        Wait until every background refresh started so far has finished.
        """

        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    async def aclose(self) -> None:
        await self.wait_for_revalidations()
        await self.storage.aclose()

    async def _handle_idle_state(self, state: IdleClient) -> AnyState:
        stored: Optional[StoredItem]
        try:
            stored = await self.storage.get(SEGMENT, state.key)
        except Exception as exc:
            logger.warning(f"Could not read {state.key} from the storage, treating it as a miss: {exc!r}")
            stored = None
        return state.next(stored, self._clock.now())

    async def _handle_cache_miss(self, state: CacheMiss, request: Request) -> AnyState:
        response = await self.send_request(request)
        return state.next(response, self._clock.now())

    async def _handle_store_and_use(self, state: StoreAndUse) -> None:
        logger.debug(f"Storing response for {state.key} for {state.ttl}ms")
        try:
            await self.storage.set(SEGMENT, state.key, state.entry.to_dict(), state.ttl)
        except Exception as exc:
            logger.warning(f"Could not store {state.key}: {exc!r}")

    def _schedule_revalidation(self, state: Revalidating) -> None:
        if not self.tracker.try_begin(state.key):
            logger.debug(f"Revalidation of {state.key} is already in progress")
            return

        try:
            task = asyncio.get_running_loop().create_task(self._refresh_entry(state))
        except Exception:
            self.tracker.complete(state.key)
            raise
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _refresh_entry(self, state: Revalidating) -> None:
        # The tracker entry for `state.key` is taken by the caller.
        try:
            if self.refresh is not None:
                response = await self.refresh(state.key)
            else:
                response = await self.send_request(self._refresh_request(state))
            next_state = state.next(response)
            if isinstance(next_state, StoreAndUse):
                await self.storage.set(SEGMENT, next_state.key, next_state.entry.to_dict(), next_state.ttl)
                logger.debug(f"Revalidated {state.key}")
            else:
                logger.warning(f"Discarding refreshed response for {state.key}: {next_state.reason}")
        except Exception as exc:
            logger.warning(f"Background revalidation of {state.key} failed, keeping the stale entry: {exc!r}")
        finally:
            self.tracker.complete(state.key)

    def _refresh_request(self, state: Revalidating) -> Request:
        # The entry URL keeps the query exactly as it was first sent; the key is form-encoded.
        if state.url is not None and self.key_generator.generate(Request.from_url(state.url)) == state.key:
            return Request(url=state.url)
        return Request(url=state.key)
