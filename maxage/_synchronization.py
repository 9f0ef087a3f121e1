from __future__ import annotations

import threading
import types

import anyio

__all__ = ("AsyncLock", "Lock")


class AsyncLock:
    """
    Serializes access to an async storage's index between tasks.

    Built on `anyio.Lock`, so it is usable from whichever event loop drives the storage.
    """

    def __init__(self) -> None:
        self._lock = anyio.Lock()

    async def __aenter__(self) -> None:
        await self._lock.acquire()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None = None,
        exc_value: BaseException | None = None,
        traceback: types.TracebackType | None = None,
    ) -> None:
        self._lock.release()


class Lock:
    """
    Guards state shared between threads and tasks: the sync storage index,
    the set of keys being revalidated and the list of refresh threads.

    Acquiring it never suspends the event loop, so the sections it guards must not await.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def __enter__(self) -> None:
        self._lock.acquire()

    def __exit__(
        self,
        exc_type: type[BaseException] | None = None,
        exc_value: BaseException | None = None,
        traceback: types.TracebackType | None = None,
    ) -> None:
        self._lock.release()
