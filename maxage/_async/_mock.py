import typing as tp

import httpx

__all__ = ("MockAsyncTransport",)


class MockAsyncTransport(httpx.AsyncBaseTransport):
    """
    Replays queued responses and records the requests it received.

    Queued exceptions are raised instead of being returned.
    """

    def __init__(self) -> None:
        self.mocked_responses: tp.List[tp.Union[httpx.Response, Exception]] = []
        self.requests: tp.List[httpx.Request] = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        await request.aread()
        if not self.mocked_responses:
            raise AssertionError(f"Unexpected request to {request.url}")
        response = self.mocked_responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def add_responses(self, responses: tp.Sequence[tp.Union[httpx.Response, Exception]]) -> None:
        self.mocked_responses.extend(responses)
