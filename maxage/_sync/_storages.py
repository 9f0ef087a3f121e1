from __future__ import annotations

import logging
import typing as tp
from copy import deepcopy

from .._lfu_cache import LFUCache
from .._models import SerializedEntry, StoredItem
from .._synchronization import Lock
from .._utils import BaseClock, Clock

logger = logging.getLogger("maxage.storages")

__all__ = (
    "SyncBaseStorage",
    "SyncInMemoryStorage",
)


class SyncBaseStorage:
    """
    A key-value store whose items expire after a TTL.

    Items are addressed by a `segment` (a namespace) and an `id`. Expiry is
    entirely the storage's business: once an item's TTL has passed, `get`
    must return None for it.
    """

    def start(self) -> None:
        raise NotImplementedError()

    def is_ready(self) -> bool:
        raise NotImplementedError()

    def get(self, segment: str, id: str) -> tp.Optional[StoredItem]:
        raise NotImplementedError()

    def set(self, segment: str, id: str, item: SerializedEntry, ttl: int) -> None:
        raise NotImplementedError()

    def drop(self, segment: str, id: str) -> None:
        raise NotImplementedError()

    def close(self) -> None:
        raise NotImplementedError()


class SyncInMemoryStorage(SyncBaseStorage):
    """
    A simple in-memory storage.

    :param capacity: The maximum number of items that can be kept, defaults to 128
    :type capacity: int, optional
    :param clock: Clock used to stamp and expire items, defaults to None
    :type clock: tp.Optional[BaseClock], optional
    """

    def __init__(
        self,
        capacity: int = 128,
        clock: tp.Optional[BaseClock] = None,
    ) -> None:
        self._cache: LFUCache[tp.Tuple[str, str], StoredItem] = LFUCache(capacity=capacity)
        self._clock = clock if clock is not None else Clock()
        self._lock = Lock()
        self._ready = False

    def start(self) -> None:
        self._ready = True

    def is_ready(self) -> bool:
        return self._ready

    def get(self, segment: str, id: str) -> tp.Optional[StoredItem]:
        """
        Retrieves a live item.

        :param segment: Namespace of the item
        :type segment: str
        :param id: Identifier of the item inside the segment
        :type id: str
        :return: The stored item with its TTL and storing time, or None if absent or expired
        :rtype: tp.Optional[StoredItem]
        """

        self._ensure_ready()
        with self._lock:
            stored = self._cache.peek((segment, id))
            if stored is None:
                return None
            if self._is_expired(stored):
                self._cache.remove_key((segment, id))
                return None
            stored = self._cache.get((segment, id))
            return deepcopy(stored)

    def set(self, segment: str, id: str, item: SerializedEntry, ttl: int) -> None:
        """
        Stores an item, replacing whatever was stored under the same address.

        :param segment: Namespace of the item
        :type segment: str
        :param id: Identifier of the item inside the segment
        :type id: str
        :param item: A serialized cache entry
        :type item: SerializedEntry
        :param ttl: Time to live in milliseconds
        :type ttl: int
        """

        self._ensure_ready()
        if ttl <= 0:
            raise ValueError(f"TTL must be positive, got {ttl}")

        stored = StoredItem(item=deepcopy(item), ttl=int(ttl), stored=int(self._clock.now()))
        with self._lock:
            self._cache.put((segment, id), stored)
        self._remove_expired()

    def drop(self, segment: str, id: str) -> None:
        self._ensure_ready()
        with self._lock:
            self._cache.remove_key((segment, id))

    def close(self) -> None:
        self._ready = False

    def _ensure_ready(self) -> None:
        if not self._ready:
            raise RuntimeError("The storage has not been started.")

    def _is_expired(self, stored: StoredItem) -> bool:
        return self._clock.now() >= stored.expires_at

    def _remove_expired(self) -> None:
        with self._lock:
            expired = [
                address
                for address in self._cache
                if self._is_expired(tp.cast(StoredItem, self._cache.peek(address)))
            ]

            for address in expired:
                logger.debug(f"Removing expired item {address[1]} from segment {address[0]}")
                self._cache.remove_key(address)
