"""At-most-one retry of a transport attempt on transient unavailability.

A request is re-sent exactly once, after a fixed delay, when the first attempt
reports status 503 or a host-not-found / connection-failed fault, and the
request's ``retry_on_unavailable`` delay is positive. Whatever the second
attempt yields is final. The adapter is reset before the retry.

Example:
    >>> outcome = send_with_retry(adapter, "GET", arguments, retry_delay_ms=500)
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from tenacity import RetryCallState, Retrying, retry_if_result, stop_after_attempt, wait_fixed

from .options import RequestArguments
from .transport import FaultName, TransportAdapter, TransportOutcome

__all__ = ("RETRYABLE_FAULTS", "is_retryable", "send_with_retry")

LOGGER = logging.getLogger(__name__)

RETRYABLE_FAULTS = frozenset({FaultName.HOST_NOT_FOUND.value, FaultName.CONNECTION_FAILED.value})


def is_retryable(outcome: TransportOutcome) -> bool:
    """Transient and worth exactly one more try."""
    if outcome.fault is None:
        return False
    return outcome.status == 503 or outcome.fault.name in RETRYABLE_FAULTS


def send_with_retry(
    adapter: TransportAdapter,
    method: str,
    arguments: RequestArguments,
    *,
    retry_delay_ms: int = 0,
    sleep: Callable[[float], None] = time.sleep,
) -> TransportOutcome:
    """Send through ``adapter``, retrying once when :func:`is_retryable`."""

    def attempt() -> TransportOutcome:
        return adapter.send(method, arguments.path, arguments.query, arguments.body)

    if retry_delay_ms <= 0:
        return attempt()

    def before_retry(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome.result() if retry_state.outcome else None
        LOGGER.info(
            "Retrying %s in %d ms after %s (status %s)",
            method,
            retry_delay_ms,
            outcome.fault.name if outcome and outcome.fault else "fault",
            outcome.status if outcome else "?",
        )
        adapter.reset()

    retrying = Retrying(
        stop=stop_after_attempt(2),
        wait=wait_fixed(retry_delay_ms / 1000.0),
        retry=retry_if_result(is_retryable),
        before_sleep=before_retry,
        # Second outcome is final even when still retryable.
        retry_error_callback=lambda retry_state: retry_state.outcome.result(),
        sleep=sleep,
        reraise=True,
    )
    return retrying(attempt)
