from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

from typing_extensions import assert_never

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
from ._sync._storages import SyncBaseStorage, SyncInMemoryStorage
from ._synchronization import Lock
from ._utils import BaseClock, Clock

logger = logging.getLogger("maxage.middleware")

__all__ = ("SyncCachingMiddleware",)


class SyncCachingMiddleware:
    """
    Caches responses of a blocking request pipeline according to their `Cache-Control` header.

    Works like `AsyncCachingMiddleware`; background refreshes run on daemon threads.
    """

    def __init__(
        self,
        request_sender: Callable[[Request], Response],
        storage: Optional[SyncBaseStorage] = None,
        refresh: Optional[Callable[[str], Response]] = None,
        stale_while_revalidate: bool = False,
        refresh_ttl: float = DEFAULT_REFRESH_TTL,
        key_generator: Optional[KeyGenerator] = None,
        tracker: Optional[RevalidationTracker] = None,
        clock: Optional[BaseClock] = None,
    ) -> None:
        self.send_request = request_sender
        self.storage = storage if storage is not None else SyncInMemoryStorage()
        self.refresh = refresh
        self.options = CacheOptions(stale_while_revalidate=stale_while_revalidate, refresh_ttl=refresh_ttl)
        self.key_generator = key_generator if key_generator is not None else KeyGenerator()
        self.tracker = tracker if tracker is not None else RevalidationTracker()
        self._clock = clock if clock is not None else Clock()
        self._background_threads: List[threading.Thread] = []
        self._threads_lock = Lock()

        self.storage.start()

    def handle_request(self, request: Request) -> Response:
        state: AnyState = IdleClient(options=self.options, key=self.key_generator.generate(request))

        while state:
            logger.debug(f"Handling state: {state.__class__.__name__}")
            if isinstance(state, IdleClient):
                state = self._handle_idle_state(state)
            elif isinstance(state, FromCache):
                revalidation = state.next()
                if revalidation is not None:
                    self._schedule_revalidation(revalidation)
                return state.response
            elif isinstance(state, CacheMiss):
                state = self._handle_cache_miss(state, request)
            elif isinstance(state, StoreAndUse):
                self._handle_store_and_use(state)
                return state.response
            elif isinstance(state, CouldNotBeStored):
                return state.response
            elif isinstance(state, Revalidating):
                raise RuntimeError("Revalidation must not run in the foreground")
            else:
                assert_never(state)

        raise RuntimeError("Unreachable")

    def revalidate(self, key: str) -> None:
        if self.tracker.try_begin(key):
            self._refresh_entry(Revalidating(options=self.options, key=key))

    def wait_for_revalidations(self, timeout: Optional[float] = None) -> None:
        with self._threads_lock:
            threads = list(self._background_threads)
        for thread in threads:
            thread.join(timeout)
        with self._threads_lock:
            self._background_threads = [thread for thread in self._background_threads if thread.is_alive()]

    def close(self) -> None:
        self.wait_for_revalidations()
        self.storage.close()

    def _handle_idle_state(self, state: IdleClient) -> AnyState:
        stored: Optional[StoredItem]
        try:
            stored = self.storage.get(SEGMENT, state.key)
        except Exception as exc:
            logger.warning(f"Could not read {state.key} from the storage, treating it as a miss: {exc!r}")
            stored = None
        return state.next(stored, self._clock.now())

    def _handle_cache_miss(self, state: CacheMiss, request: Request) -> AnyState:
        response = self.send_request(request)
        return state.next(response, self._clock.now())

    def _handle_store_and_use(self, state: StoreAndUse) -> None:
        logger.debug(f"Storing response for {state.key} for {state.ttl}ms")
        try:
            self.storage.set(SEGMENT, state.key, state.entry.to_dict(), state.ttl)
        except Exception as exc:
            logger.warning(f"Could not store {state.key}: {exc!r}")

    def _schedule_revalidation(self, state: Revalidating) -> None:
        if not self.tracker.try_begin(state.key):
            logger.debug(f"Revalidation of {state.key} is already in progress")
            return

        thread = threading.Thread(
            target=self._refresh_entry,
            args=(state,),
            name=f"maxage-revalidate-{state.key}",
            daemon=True,
        )
        with self._threads_lock:
            self._background_threads = [t for t in self._background_threads if t.is_alive()]
            try:
                thread.start()
            except Exception:
                self.tracker.complete(state.key)
                raise
            self._background_threads.append(thread)

    def _refresh_entry(self, state: Revalidating) -> None:
        # The tracker entry for `state.key` is taken by the caller.
        try:
            if self.refresh is not None:
                response = self.refresh(state.key)
            else:
                response = self.send_request(self._refresh_request(state))
            next_state = state.next(response)
            if isinstance(next_state, StoreAndUse):
                self.storage.set(SEGMENT, next_state.key, next_state.entry.to_dict(), next_state.ttl)
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
