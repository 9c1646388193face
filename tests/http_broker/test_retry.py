"""Tests for the single bounded retry."""

from __future__ import annotations

import pytest

from broker_fakes import FakeAdapter, outcome
from HttpBroker.options import RequestArguments
from HttpBroker.retry import is_retryable, send_with_retry
from HttpBroker.transport import FaultName


@pytest.mark.parametrize(
    "result,expected",
    [
        (outcome(503, fault=FaultName.RESPONSE_ERROR.value), True),
        (outcome(0, fault=FaultName.HOST_NOT_FOUND.value), True),
        (outcome(0, fault=FaultName.CONNECTION_FAILED.value), True),
        (outcome(500, fault=FaultName.RESPONSE_ERROR.value), False),
        (outcome(0, fault=FaultName.REQUEST_TIMED_OUT.value), False),
        (outcome(503), False),
        (outcome(200, {}), False),
    ],
)
def test_is_retryable(result, expected: bool) -> None:
    assert is_retryable(result) is expected


def test_never_more_than_two_attempts() -> None:
    adapter = FakeAdapter([outcome(503, fault=FaultName.RESPONSE_ERROR.value)])
    sleeps = []
    result = send_with_retry(
        adapter, "GET", RequestArguments(), retry_delay_ms=1500, sleep=sleeps.append
    )
    assert len(adapter.calls) == 2
    assert adapter.resets == 1
    assert sleeps == [1.5]
    assert result.status == 503


def test_first_success_is_not_retried() -> None:
    adapter = FakeAdapter([outcome(200, {"ok": True})])
    sleeps = []
    result = send_with_retry(adapter, "GET", RequestArguments(), retry_delay_ms=10, sleep=sleeps.append)
    assert len(adapter.calls) == 1
    assert sleeps == []
    assert result.data == {"ok": True}


def test_arguments_are_passed_to_each_attempt() -> None:
    adapter = FakeAdapter([outcome(0, fault=FaultName.HOST_NOT_FOUND.value), outcome(200, {})])
    arguments = RequestArguments(("a",), {"q": 1}, {"b": 2})
    send_with_retry(adapter, "PUT", arguments, retry_delay_ms=1, sleep=lambda s: None)
    assert adapter.calls == [("PUT", ("a",), {"q": 1}, {"b": 2})] * 2
