try:
    import httpx  # noqa: F401
except ImportError as e:
    raise ImportError(
        "httpx is required to use maxage.httpx module. "
        "Please install maxage with the 'httpx' extra, "
        "e.g., 'pip install maxage[httpx]'."
    ) from e


from ._async._mock import MockAsyncTransport as MockAsyncTransport
from ._async_httpx import AsyncCacheClient as AsyncCacheClient, AsyncCacheTransport as AsyncCacheTransport
from ._sync._mock import MockTransport as MockTransport
from ._sync_httpx import SyncCacheClient as SyncCacheClient, SyncCacheTransport as SyncCacheTransport

__all__ = (
    "AsyncCacheClient",
    "AsyncCacheTransport",
    "MockAsyncTransport",
    "MockTransport",
    "SyncCacheClient",
    "SyncCacheTransport",
)
