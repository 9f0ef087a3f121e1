import pytest

from maxage import BaseClock

# 2023-11-14T22:13:20Z
EPOCH_MS = 1_700_000_000_000


class FakeClock(BaseClock):
    def __init__(self, now: float = EPOCH_MS) -> None:
        self.current = now

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds * 1000


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def anyio_backend() -> str:
    # Background refreshes are scheduled as asyncio tasks.
    return "asyncio"
