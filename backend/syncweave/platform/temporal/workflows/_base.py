"""Shared workflow options and helpers.

Only deterministic code lives here: it runs inside the workflow sandbox.
"""

from datetime import timedelta

from temporalio.common import RetryPolicy

ACTIVITY_START_TO_CLOSE_TIMEOUT = timedelta(minutes=10)
ACTIVITY_MAX_ATTEMPTS = 5

ACTIVITY_OPTIONS = {
    "start_to_close_timeout": ACTIVITY_START_TO_CLOSE_TIMEOUT,
    "retry_policy": RetryPolicy(maximum_attempts=ACTIVITY_MAX_ATTEMPTS),
}

# Quiet period a debounced workflow waits for before syncing
DEBOUNCE_DELAY = timedelta(seconds=10)


def percent(done: int, total: int) -> int:
    """Progress percentage rounded half up (1/3 -> 33, 2/3 -> 67)."""
    if total <= 0:
        return 100
    return (200 * done + total) // (2 * total)


def failure_reason(error: BaseException) -> str:
    """Message of the innermost cause, which carries the actual error."""
    while error.__cause__ is not None:
        error = error.__cause__
    return str(error) or type(error).__name__
