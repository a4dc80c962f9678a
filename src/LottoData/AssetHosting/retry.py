"""Tenacity retry strategies for source downloads.

Provides:
- Retryability classification for HTTP statuses and httpx exceptions
- Retry-After aware wait strategy with exponential jitter fallback
- Tenacity controller builder driven by :class:`RetryPolicy`
- Structured logging before each sleep
"""

from __future__ import annotations

import email.utils
import logging
import time
from datetime import datetime
from typing import Any, Callable, Optional

import httpx
import tenacity
from tenacity import RetryCallState, retry_if_exception, retry_if_result

from LottoData.AssetHosting.config.models import RetryPolicy

LOGGER = logging.getLogger(__name__)

_RETRYABLE_EXCEPTIONS = (
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.TimeoutException,
    httpx.RemoteProtocolError,
)

# Upper bound on a server-provided Retry-After; longer waits fail the asset instead.
RETRY_AFTER_CAP_S = 30.0


def is_retryable(
    *,
    status: Optional[int] = None,
    exception: Optional[BaseException] = None,
    policy: RetryPolicy,
) -> bool:
    """Determine if a download attempt should be retried.

    Args:
        status: HTTP status code (if from response)
        exception: Exception that occurred (if from exception)
        policy: Retry policy

    Returns:
        True if the request should be retried, False otherwise
    """
    if status is not None:
        return status in policy.retry_statuses

    if exception is not None:
        if isinstance(exception, httpx.LocalProtocolError):
            return False
        return isinstance(exception, _RETRYABLE_EXCEPTIONS)

    return False


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header given in seconds or as an HTTP-date."""
    if not value:
        return None
    try:
        return max(0.0, float(int(value)))
    except ValueError:
        pass
    try:
        dt = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    return max(0.0, (dt - datetime.now(dt.tzinfo)).total_seconds())


class _WaitRetryAfter(tenacity.wait.wait_base):
    """Wait strategy that prefers Retry-After header over exponential backoff."""

    def __init__(self, fallback: tenacity.wait.wait_base, cap_s: float) -> None:
        self.fallback = fallback
        self.cap_s = cap_s

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        if outcome is None or outcome.failed:
            return self.fallback(retry_state)

        response = outcome.result()
        headers = getattr(response, "headers", None)
        retry_after_s = parse_retry_after(headers.get("Retry-After")) if headers else None

        if retry_after_s is not None and retry_after_s > 0:
            wait_s = min(retry_after_s, self.cap_s)
            LOGGER.debug(f"Using Retry-After header: {wait_s}s (capped at {self.cap_s}s)")
            return wait_s

        return self.fallback(retry_state)


def build_retrying(
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
    before_sleep_hook: Optional[Callable[[RetryCallState], None]] = None,
) -> tenacity.Retrying:
    """Build a Tenacity Retrying controller for one source download.

    The controller retries transient exceptions and responses whose status is in
    ``policy.retry_statuses``. When attempts run out on a retryable *response*
    the last response is returned (``retry_error_callback``) so the caller can
    report its status; exhausted *exceptions* are re-raised.

    Args:
        policy: Retry policy
        sleep: Sleep function (patched in tests)
        before_sleep_hook: Optional hook to run before each sleep

    Returns:
        Configured Tenacity Retrying controller
    """

    def exception_predicate(exception: BaseException) -> bool:
        return is_retryable(exception=exception, policy=policy)

    def result_predicate(value: Any) -> bool:
        status = getattr(value, "status_code", None)
        if status is None:
            return False
        return is_retryable(status=status, policy=policy)

    fallback_wait = tenacity.wait_random_exponential(
        multiplier=policy.backoff_multiplier_s,
        max=policy.backoff_max_s,
    )

    return tenacity.Retrying(
        retry=retry_if_exception(exception_predicate) | retry_if_result(result_predicate),
        stop=tenacity.stop_after_attempt(policy.max_attempts),
        wait=_WaitRetryAfter(fallback=fallback_wait, cap_s=RETRY_AFTER_CAP_S),
        sleep=sleep,
        before_sleep=before_sleep_hook or _default_before_sleep_hook,
        retry_error_callback=_return_last_result,
        reraise=True,
    )


def _return_last_result(retry_state: RetryCallState) -> Any:
    outcome = retry_state.outcome
    if outcome is None:  # pragma: no cover - tenacity always records an outcome
        return None
    return outcome.result()


def _default_before_sleep_hook(retry_state: RetryCallState) -> None:
    """Log attempt number and wait before each retry sleep."""
    next_action = retry_state.next_action
    wait_ms = int(next_action.sleep * 1000) if next_action is not None else 0

    reason = "unknown"
    outcome = retry_state.outcome
    if outcome is not None:
        if outcome.failed:
            reason = type(outcome.exception()).__name__
        else:
            reason = f"HTTP {getattr(outcome.result(), 'status_code', '?')}"

    LOGGER.warning(
        f"[fetch] retry attempt={retry_state.attempt_number} reason={reason} "
        f"wait_ms={wait_ms} elapsed_s={retry_state.seconds_since_start:.1f}"
    )
