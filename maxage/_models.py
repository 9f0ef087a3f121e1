from __future__ import annotations

import base64
from dataclasses import dataclass, field, replace
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypedDict,
    Union,
)
from urllib.parse import parse_qsl

__all__ = (
    "CachedEntry",
    "QueryParams",
    "Request",
    "Response",
    "SerializedEntry",
    "StoredItem",
)

QueryParams = Union[Mapping[str, Any], Sequence[Tuple[str, Any]]]


class SerializedEntry(TypedDict):
    body: str
    headers: Dict[str, str]
    statusCode: int
    elapsedTime: float
    url: str
    revalidateAt: Optional[float]


def normalize_queries(queries: Optional[QueryParams]) -> List[Tuple[str, str]]:
    if not queries:
        return []
    items = queries.items() if isinstance(queries, Mapping) else queries
    return [(str(name), str(value)) for name, value in items]


@dataclass(init=False)
class Request:
    """
    A request as the cache sees it: the URL without its query and the query parameters.
    """

    url: str
    queries: List[Tuple[str, str]] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __init__(
        self,
        url: str,
        queries: Optional[QueryParams] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.url = url
        self.queries = normalize_queries(queries)
        self.metadata = metadata if metadata is not None else {}

    @classmethod
    def from_url(cls, url: str, metadata: Optional[Dict[str, Any]] = None) -> "Request":
        """
        Split a full URL into the URL without its query and its query parameters.
        """
        base, _, query = url.partition("?")
        return cls(base, parse_qsl(query, keep_blank_values=True), metadata)

    def get_url(self) -> str:
        return self.url

    def has_queries(self) -> bool:
        return bool(self.queries)

    def get_queries(self) -> List[Tuple[str, str]]:
        return list(self.queries)


@dataclass
class Response:
    body: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)
    status_code: int = 200
    elapsed_time: float = 0.0
    """Time spent fetching the response, in milliseconds."""
    url: str = ""
    from_cache: bool = False
    """True when the response was built from a cached entry."""
    is_stale: bool = False
    """Set by an upstream stage to prevent the response from being cached."""

    def get_header(self, name: str) -> Optional[str]:
        name = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name:
                return value
        return None

    def to_dict(self) -> SerializedEntry:
        return CachedEntry.from_response(self).to_dict()


@dataclass(frozen=True)
class CachedEntry:
    body: bytes
    headers: Dict[str, str]
    status_code: int
    elapsed_time: float
    url: str
    revalidate_at: Optional[float] = None
    """Epoch milliseconds after which a hit should trigger a background refresh."""

    @classmethod
    def from_response(cls, response: Response, revalidate_at: Optional[float] = None) -> "CachedEntry":
        return cls(
            body=response.body,
            headers=dict(response.headers),
            status_code=response.status_code,
            elapsed_time=response.elapsed_time,
            url=response.url,
            revalidate_at=revalidate_at,
        )

    def with_revalidate_at(self, revalidate_at: Optional[float]) -> "CachedEntry":
        return replace(self, revalidate_at=revalidate_at)

    def to_response(self) -> Response:
        return Response(
            body=self.body,
            headers=dict(self.headers),
            status_code=self.status_code,
            elapsed_time=self.elapsed_time,
            url=self.url,
            from_cache=True,
        )

    def to_dict(self) -> SerializedEntry:
        return {
            "body": base64.b64encode(self.body).decode("ascii"),
            "headers": dict(self.headers),
            "statusCode": self.status_code,
            "elapsedTime": self.elapsed_time,
            "url": self.url,
            "revalidateAt": self.revalidate_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CachedEntry":
        return cls(
            body=base64.b64decode(data["body"], validate=True),
            headers=dict(data["headers"]),
            status_code=data["statusCode"],
            elapsed_time=data["elapsedTime"],
            url=data["url"],
            revalidate_at=data.get("revalidateAt"),
        )


@dataclass(frozen=True)
class StoredItem:
    """
    What a storage returns for a live key.
    """

    item: SerializedEntry
    ttl: int
    """Time to live in milliseconds, as given when the item was stored."""
    stored: int
    """Epoch milliseconds at which the item was stored."""

    @property
    def expires_at(self) -> int:
        return self.stored + self.ttl
