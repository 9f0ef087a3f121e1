from __future__ import annotations

import time
import typing as tp

T = tp.TypeVar("T")

__all__ = ("BaseClock", "Clock", "seconds_to_milliseconds")


class BaseClock:
    def now(self) -> float:
        """Current time as epoch milliseconds."""
        raise NotImplementedError()


class Clock(BaseClock):
    def now(self) -> float:
        return time.time() * 1000


def seconds_to_milliseconds(seconds: tp.Union[int, float]) -> int:
    return int(round(seconds * 1000))


def filter_mapping(mapping: tp.Mapping[str, T], keys_to_exclude: tp.Iterable[str]) -> tp.Dict[str, T]:
    """
    Filter out specified keys from a string-keyed mapping using case-insensitive comparison.

    Example:
    ```python
        original = {'a': 1, 'B': 2, 'c': 3}
        filtered = filter_mapping(original, ['b'])
        # filtered will be {'a': 1, 'c': 3}
    ```
    """
    exclude_set = {k.lower() for k in keys_to_exclude}
    return {k: v for k, v in mapping.items() if k.lower() not in exclude_set}
