import time_machine

from maxage import Clock
from maxage._utils import filter_mapping, seconds_to_milliseconds


@time_machine.travel(1_700_000_000, tick=False)
def test_clock_returns_epoch_milliseconds():
    assert Clock().now() == 1_700_000_000_000


def test_seconds_to_milliseconds():
    assert seconds_to_milliseconds(60) == 60_000
    assert seconds_to_milliseconds(0.5) == 500


def test_filter_mapping_is_case_insensitive():
    assert filter_mapping({"a": 1, "B": 2, "c": 3}, ["b"]) == {"a": 1, "c": 3}
