from __future__ import annotations

import logging
import typing as tp

from ._synchronization import Lock

logger = logging.getLogger("maxage.revalidation")

__all__ = ("RevalidationTracker",)


class RevalidationTracker:
    """
    The set of cache keys that currently have a background refresh in flight.

    `try_begin` is an atomic test-and-set: among any number of callers racing on
    the same key, exactly one gets `True` until `complete` is called for that key.
    Both operations are guarded by a thread lock and never suspend, so the
    guarantee holds for event-loop tasks and for threads alike.
    """

    def __init__(self) -> None:
        self._keys: tp.Set[str] = set()
        self._lock = Lock()

    def try_begin(self, key: str) -> bool:
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
        logger.debug(f"Revalidation started for {key}")
        return True

    def complete(self, key: str) -> None:
        with self._lock:
            self._keys.discard(key)
        logger.debug(f"Revalidation finished for {key}")

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)
