from __future__ import annotations

import typing as tp
from urllib.parse import urlencode

from ._models import Request

__all__ = ("KeyGenerator", "generate_key", "encode_queries")


def encode_queries(queries: tp.Iterable[tp.Tuple[str, str]]) -> str:
    """
    Encode query parameters in a canonical order.

    Parameters are sorted by name; the sort is stable, so repeated names keep
    their relative order. Names and values are form-encoded, which keeps a value
    such as `1&b=2` from colliding with two separate parameters.

    Example:
        ```
        encode_queries([("b", "2"), ("a", "1")])
        # 'a=1&b=2'
        ```
    """
    return urlencode(sorted(queries, key=lambda pair: pair[0]))


def generate_key(request: Request) -> str:
    if request.has_queries():
        return f"{request.get_url()}?{encode_queries(request.get_queries())}"
    return request.get_url()


class KeyGenerator:
    """
    Derives the cache key of a request.

    Subclass and override `generate` to change how requests map onto cache entries.
    """

    def generate(self, request: Request) -> str:
        return generate_key(request)

    def __call__(self, request: Request) -> str:
        return self.generate(request)
