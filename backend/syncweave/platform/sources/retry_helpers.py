"""Retry policy of the source clients.

Rate limits (429, or Slack's in-body ``ratelimited``) and network timeouts
are retried inside the client with tenacity. Provider outages
(UpstreamUnavailableError) propagate so that the Temporal activity retry
policy handles them.
"""

from typing import Optional

import httpx
from tenacity import retry_if_exception, stop_after_attempt, wait_exponential

from syncweave.core.exceptions import SourceApiError

RATE_LIMITED_ERROR_CODES = frozenset({"ratelimited", "rate_limited"})

MIN_RETRY_AFTER_SECONDS = 1.0
MAX_RETRY_AFTER_SECONDS = 120.0

SOURCE_RETRY_STOP = stop_after_attempt(5)

_rate_limit_backoff = wait_exponential(multiplier=1, min=2, max=30)
_timeout_backoff = wait_exponential(multiplier=1, min=2, max=10)


def _is_http_429(exception: BaseException) -> bool:
    return (
        isinstance(exception, httpx.HTTPStatusError)
        and exception.response.status_code == 429
    )


def _retry_after_seconds(response: httpx.Response) -> Optional[float]:
    """Retry-After in seconds, clamped, or None when absent or not a number."""
    header = response.headers.get("Retry-After")
    if not header:
        return None
    try:
        seconds = float(header)
    except ValueError:
        return None
    return min(max(seconds, MIN_RETRY_AFTER_SECONDS), MAX_RETRY_AFTER_SECONDS)


def should_retry_on_rate_limit(exception: BaseException) -> bool:
    """True for HTTP 429 and for provider errors reporting a rate limit."""
    if isinstance(exception, SourceApiError):
        return exception.code in RATE_LIMITED_ERROR_CODES
    return _is_http_429(exception)


def should_retry_on_timeout(exception: BaseException) -> bool:
    """True for connect and read timeouts."""
    return isinstance(exception, (httpx.ConnectTimeout, httpx.ReadTimeout))


def should_retry_on_rate_limit_or_timeout(exception: BaseException) -> bool:
    """Retry condition of every source API call."""
    return should_retry_on_rate_limit(exception) or should_retry_on_timeout(exception)


def wait_rate_limit_with_backoff(retry_state) -> float:
    """Seconds to wait before the next attempt.

    A 429 waits for its Retry-After header when usable; otherwise, and for
    timeouts, the wait grows exponentially.
    """
    exception = retry_state.outcome.exception()
    if not _is_http_429(exception):
        return _timeout_backoff(retry_state)

    retry_after = _retry_after_seconds(exception.response)
    if retry_after is not None:
        return retry_after
    return _rate_limit_backoff(retry_state)


retry_if_rate_limit_or_timeout = retry_if_exception(should_retry_on_rate_limit_or_timeout)
