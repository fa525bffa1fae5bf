"""Whole-invocation retry with fixed backoff.

A failed attempt discards all partial state (its workspace is gone), so the
supervisor always re-runs the complete top-level command rather than a step.
Usage errors are final: they return immediately and never consume a retry.
"""

import time
from collections.abc import Callable

from tenacity import RetryCallState, Retrying, retry_if_result, stop_after_attempt, wait_fixed

from danmux.logging import logger
from danmux.models import EXIT_FAILURE, EXIT_OK, EXIT_USAGE

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_DELAY = 1.0


def is_retryable_code(code: int) -> bool:
    """Operational failures (non-zero, non-usage) are retryable."""
    return code not in (EXIT_OK, EXIT_USAGE)


def _guarded(command: Callable[[], int]) -> Callable[[], int]:
    def attempt() -> int:
        try:
            return command()
        except Exception as e:
            logger.error("Unexpected failure: {}", e)
            return EXIT_FAILURE

    return attempt


def supervise(
    command: Callable[[], int],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    delay: float = DEFAULT_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Run command until it succeeds, fails with a usage error, or attempts run out.

    Args:
        command: Callable running one full invocation and returning its exit code.
        max_attempts: Total attempts including the first.
        delay: Seconds to wait between attempts.
        sleep: Sleep function (injectable for tests).

    Returns:
        Exit code of the last attempt.
    """

    def warn(state: RetryCallState) -> None:
        code = state.outcome.result() if state.outcome else EXIT_FAILURE
        logger.warning(
            "Attempt {}/{} failed with exit code {}, retrying in {:.1f}s",
            state.attempt_number,
            max_attempts,
            code,
            delay,
        )

    def give_up(state: RetryCallState) -> int:
        code: int = state.outcome.result() if state.outcome else EXIT_FAILURE
        logger.error("Giving up after {} attempts (exit code {})", state.attempt_number, code)
        return code

    retryer = Retrying(
        retry=retry_if_result(is_retryable_code),
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_fixed(delay),
        before_sleep=warn,
        retry_error_callback=give_up,
        sleep=sleep,
    )
    result: int = retryer(_guarded(command))
    return result
