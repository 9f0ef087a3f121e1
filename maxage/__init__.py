from maxage._async._storages import AsyncBaseStorage, AsyncInMemoryStorage
from maxage._async_cache import AsyncCachingMiddleware
from maxage._exceptions import CacheControlError, ParseError, ValidationError
from maxage._headers import parse_cache_control, parse_directives
from maxage._keygen import KeyGenerator, generate_key
from maxage._lfu_cache import LFUCache
from maxage._models import CachedEntry, Request, Response, StoredItem
from maxage._revalidation import RevalidationTracker
from maxage._spec import (
    SEGMENT,
    AnyState,
    CacheMiss,
    CacheOptions,
    CouldNotBeStored,
    FromCache,
    IdleClient,
    Revalidating,
    State,
    StoreAndUse,
    get_time_to_live,
)
from maxage._sync._storages import SyncBaseStorage, SyncInMemoryStorage
from maxage._sync_cache import SyncCachingMiddleware
from maxage._utils import BaseClock, Clock

__all__ = (
    # Middlewares
    "AsyncCachingMiddleware",
    "SyncCachingMiddleware",
    "RevalidationTracker",
    ## States
    "AnyState",
    "State",
    "IdleClient",
    "FromCache",
    "CacheMiss",
    "Revalidating",
    "StoreAndUse",
    "CouldNotBeStored",
    "CacheOptions",
    "SEGMENT",
    "get_time_to_live",
    ## Models
    "Request",
    "Response",
    "CachedEntry",
    "StoredItem",
    ## Keys and headers
    "KeyGenerator",
    "generate_key",
    "parse_cache_control",
    "parse_directives",
    # Storages
    "AsyncBaseStorage",
    "AsyncInMemoryStorage",
    "SyncBaseStorage",
    "SyncInMemoryStorage",
    "LFUCache",
    # Clocks
    "BaseClock",
    "Clock",
    # Exceptions
    "CacheControlError",
    "ParseError",
    "ValidationError",
)

__version__ = "0.1.0"
