from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union

from ._headers import MAX_AGE, STALE_WHILE_REVALIDATE, parse_cache_control
from ._models import CachedEntry, Response, StoredItem
from ._utils import seconds_to_milliseconds

logger = logging.getLogger("maxage.spec")

SEGMENT = "body"
"""The storage segment every response body is kept under."""

DEFAULT_REFRESH_TTL = 60

__all__ = (
    "AnyState",
    "CacheMiss",
    "CacheOptions",
    "CouldNotBeStored",
    "FromCache",
    "IdleClient",
    "Revalidating",
    "SEGMENT",
    "State",
    "StoreAndUse",
    "get_time_to_live",
)


@dataclass
class CacheOptions:
    """
    Configuration options for the caching decisions.

    Attributes:
    ----------
    stale_while_revalidate : bool
        When True, responses carrying a `stale-while-revalidate` directive are kept
        past their `max-age`, and a hit on such an entry after `max-age` has elapsed
        is served immediately while a refresh runs in the background.

        Default: False

    refresh_ttl : float
        Seconds a response obtained by a background refresh is kept for.

        Default: 60
    """

    stale_while_revalidate: bool = False
    refresh_ttl: float = DEFAULT_REFRESH_TTL

    def __post_init__(self) -> None:
        if self.refresh_ttl <= 0:
            raise ValueError(f"refresh_ttl must be positive, got {self.refresh_ttl}")


@dataclass
class State(ABC):
    options: CacheOptions

    @abstractmethod
    def next(self, *args: Any, **kwargs: Any) -> Union["State", None]:
        raise NotImplementedError("Subclasses must implement this method")


def get_time_to_live(response: Response, options: CacheOptions, now: float) -> Optional[Tuple[int, Optional[float]]]:
    """
    Compute how long a response may be stored, and when it should be refreshed.

    Parameters:
    ----------
    response : Response
        The response received from the next stage
    options : CacheOptions
        Cache configuration
    now : float
        Current time, epoch milliseconds

    Returns:
    -------
    Optional[Tuple[int, Optional[float]]]
        None when the response carries no usable `max-age`. Otherwise the TTL in
        milliseconds and the `revalidate_at` timestamp (None unless
        stale-while-revalidate applies).

    Examples:
    --------
    >>> response = Response(headers={"cache-control": "max-age=60, stale-while-revalidate=30"})
    >>> get_time_to_live(response, CacheOptions(), now=0)
    (60000, None)
    >>> get_time_to_live(response, CacheOptions(stale_while_revalidate=True), now=0)
    (90000, 60000)
    """

    directives = parse_cache_control(response.get_header("cache-control"))
    max_age = directives.get(MAX_AGE)

    if not max_age:
        return None

    stale_while_revalidate = directives.get(STALE_WHILE_REVALIDATE, 0)

    if options.stale_while_revalidate and stale_while_revalidate > 0:
        revalidate_at = now + seconds_to_milliseconds(max_age)
        return seconds_to_milliseconds(max_age + stale_while_revalidate), revalidate_at

    return seconds_to_milliseconds(max_age), None


@dataclass
class IdleClient(State):
    """
    The entry point of the state machine: a key was computed and the storage was asked for it.

    State Transitions:
    -----------------
    - FromCache: The storage returned an item
    - CacheMiss: Nothing is stored under the key, or the stored item cannot be read
    """

    key: str

    def next(self, stored: Optional[StoredItem], now: float) -> Union["CacheMiss", "FromCache"]:
        if stored is None:
            logger.debug(f"Cache miss for {self.key}")
            return CacheMiss(options=self.options, key=self.key)

        try:
            entry = CachedEntry.from_dict(stored.item)
        except (KeyError, TypeError, ValueError) as exc:
            # binascii.Error is a ValueError
            logger.warning(f"Ignoring unreadable entry for {self.key}, treating it as a miss: {exc!r}")
            return CacheMiss(options=self.options, key=self.key)

        need_revalidation = (
            self.options.stale_while_revalidate and entry.revalidate_at is not None and entry.revalidate_at <= now
        )
        logger.debug(f"Cache hit for {self.key}" + (" (stale, revalidating)" if need_revalidation else ""))
        return FromCache(
            options=self.options,
            key=self.key,
            entry=entry,
            need_revalidation=need_revalidation,
        )


@dataclass
class FromCache(State):
    """
    A stored entry answers the request.

    When `need_revalidation` is True the caller still gets the entry right away;
    refreshing it is left to a background task.
    """

    key: str
    entry: CachedEntry
    need_revalidation: bool = False

    @property
    def response(self) -> Response:
        return self.entry.to_response()

    def next(self) -> Optional["Revalidating"]:
        if self.need_revalidation:
            return Revalidating(options=self.options, key=self.key, url=self.entry.url)
        return None


@dataclass
class CacheMiss(State):
    """
    The request was forwarded and its response must be evaluated for storage.

    State Transitions:
    -----------------
    - StoreAndUse: The response is fresh for a positive `max-age` and may be stored
    - CouldNotBeStored: Anything else; the response is used as is
    """

    key: str

    def next(self, response: Response, now: float) -> Union["StoreAndUse", "CouldNotBeStored"]:
        if response.is_stale:
            return CouldNotBeStored(options=self.options, key=self.key, response=response, reason="marked as stale")

        if response.status_code >= 400:
            return CouldNotBeStored(
                options=self.options, key=self.key, response=response, reason=f"status {response.status_code}"
            )

        if response.from_cache:
            return CouldNotBeStored(options=self.options, key=self.key, response=response, reason="served from cache")

        time_to_live = get_time_to_live(response, self.options, now)

        if time_to_live is None:
            return CouldNotBeStored(options=self.options, key=self.key, response=response, reason="no positive max-age")

        ttl, revalidate_at = time_to_live
        return StoreAndUse(
            options=self.options,
            key=self.key,
            response=response,
            entry=CachedEntry.from_response(response, revalidate_at=revalidate_at),
            ttl=ttl,
        )


@dataclass
class Revalidating(State):
    """
    A background refresh is running for a stale entry.

    Whatever the refresh returns replaces the entry for `refresh_ttl` seconds,
    unless it is an error response, which keeps the stale entry in place.
    """

    key: str
    url: Optional[str] = None
    """The URL the stale entry was fetched from, if known."""

    def next(self, response: Response) -> Union["StoreAndUse", "CouldNotBeStored"]:
        if response.status_code >= 400:
            return CouldNotBeStored(
                options=self.options, key=self.key, response=response, reason=f"status {response.status_code}"
            )

        if response.is_stale or response.from_cache:
            return CouldNotBeStored(
                options=self.options, key=self.key, response=response, reason="refresh did not reach the origin"
            )

        return StoreAndUse(
            options=self.options,
            key=self.key,
            response=response,
            entry=CachedEntry.from_response(response),
            ttl=seconds_to_milliseconds(self.options.refresh_ttl),
        )


@dataclass
class StoreAndUse(State):
    """
    The response is stored under `key` for `ttl` milliseconds and returned.
    """

    key: str
    response: Response
    entry: CachedEntry
    ttl: int

    def next(self) -> None:
        return None


@dataclass
class CouldNotBeStored(State):
    """
    The response is returned without being stored.
    """

    key: str
    response: Response
    reason: str

    def __post_init__(self) -> None:
        logger.debug(f"Not storing response for {self.key}: {self.reason}")

    def next(self) -> None:
        return None


AnyState = Union[
    IdleClient,
    FromCache,
    CacheMiss,
    Revalidating,
    StoreAndUse,
    CouldNotBeStored,
]
