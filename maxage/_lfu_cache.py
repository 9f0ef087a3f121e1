from collections import OrderedDict
from typing import DefaultDict, Dict, Generic, Iterator, Optional, Tuple, TypeVar

K = TypeVar("K")
V = TypeVar("V")

__all__ = ["LFUCache"]


class LFUCache(Generic[K, V]):
    """
    A bounded mapping that evicts the least frequently used key when full.

    Ties between equally used keys are broken by age, the oldest goes first.
    """

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError("Capacity must be positive")

        self.capacity = capacity
        self.cache: Dict[K, Tuple[V, int]] = {}
        self.freq_count: DefaultDict[int, "OrderedDict[K, None]"] = DefaultDict(OrderedDict)
        self.min_freq = 0

    def _unlink(self, key: K, freq: int) -> None:
        bucket = self.freq_count[freq]
        bucket.pop(key)
        if not bucket:
            del self.freq_count[freq]
            if freq == self.min_freq:
                self.min_freq += 1

    def _bump(self, key: K, value: V) -> None:
        _, freq = self.cache[key]
        self._unlink(key, freq)
        self.freq_count[freq + 1][key] = None
        self.cache[key] = (value, freq + 1)

    def get(self, key: K) -> V:
        if key not in self.cache:
            raise KeyError(f"Key {key} not found")
        value, _ = self.cache[key]
        self._bump(key, value)
        return value

    def peek(self, key: K) -> Optional[V]:
        """Return the value without counting it as a use."""
        entry = self.cache.get(key)
        return entry[0] if entry is not None else None

    def put(self, key: K, value: V) -> None:
        if key in self.cache:
            self._bump(key, value)
            return

        if len(self.cache) == self.capacity:
            # `remove_key` can leave min_freq pointing at an empty bucket
            self.min_freq = min(self.freq_count)
            evicted_key, _ = self.freq_count[self.min_freq].popitem(last=False)
            if not self.freq_count[self.min_freq]:
                del self.freq_count[self.min_freq]
            del self.cache[evicted_key]

        self.cache[key] = (value, 1)
        self.freq_count[1][key] = None
        self.min_freq = 1

    def remove_key(self, key: K) -> None:
        if key in self.cache:
            _, freq = self.cache.pop(key)
            self._unlink(key, freq)

    def __contains__(self, key: object) -> bool:
        return key in self.cache

    def __len__(self) -> int:
        return len(self.cache)

    def __iter__(self) -> Iterator[K]:
        yield from list(self.cache)
