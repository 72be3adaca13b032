"""
csv2gremlin - Bounded Retry

Retry with exponential backoff for transient transport failures.

Each call is tracked by a small state machine:

    ATTEMPTING -> RETRYING(n) -> ... -> SUCCEEDED | FAILED

Only GraphConnectionError with ``retryable=True`` (or a built-in
ConnectionError or TimeoutError) moves the machine into RETRYING; every
other exception (RemoteRejection in particular) goes straight to FAILED
after a single attempt.

Example:
    >>> policy = RetryPolicy(max_attempts=3, base_ms=100)
    >>> result, state = call_with_retry(lambda: session.find_vertex("42"), policy)
    >>> state.attempts
    1
"""

import logging
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Tuple

from .exceptions import GraphConnectionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry configuration with exponential backoff.

    Attributes:
        max_attempts: Total tries including the first attempt
        base_ms: Initial backoff in milliseconds
        max_ms: Maximum backoff cap in milliseconds
        multiplier: Exponential growth factor per retry
        use_jitter: Randomize sleep in [0, backoff]
    """

    max_attempts: int = 3
    base_ms: int = 200
    max_ms: int = 5_000
    multiplier: float = 2.0
    use_jitter: bool = True

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_ms < 0 or self.max_ms < 0:
            raise ValueError("Backoff times must not be negative")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if self.base_ms > self.max_ms:
            raise ValueError("base_ms cannot exceed max_ms")

    def backoff_ms(self, retry_index: int) -> int:
        """Backoff before retry number ``retry_index`` (0-based)."""
        raw = int(self.base_ms * (self.multiplier ** retry_index))
        return min(raw, self.max_ms)

    def delay(self, retry_index: int) -> float:
        """Seconds to sleep before the given retry, jitter applied."""
        backoff = self.backoff_ms(retry_index) / 1000.0
        return random.random() * backoff if self.use_jitter else backoff


NO_RETRY = RetryPolicy(max_attempts=1, base_ms=0, max_ms=0)


class RetryPhase(str, Enum):
    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def is_retryable(error: BaseException) -> bool:
    if isinstance(error, GraphConnectionError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


class RetryState:
    """
    State of one retried operation.

    Transitions are driven by ``succeed()`` and ``fail(error)``; the
    state decides on its own whether a failure leads to another attempt.
    """

    def __init__(self, policy: RetryPolicy):
        self.policy = policy
        self.phase = RetryPhase.ATTEMPTING
        self.attempts = 0
        self.retries = 0
        self.last_error: Optional[BaseException] = None

    @property
    def done(self) -> bool:
        return self.phase in (RetryPhase.SUCCEEDED, RetryPhase.FAILED)

    def start_attempt(self):
        if self.done:
            raise RuntimeError(f"Cannot attempt again from phase {self.phase.value}")
        self.attempts += 1

    def succeed(self):
        self.phase = RetryPhase.SUCCEEDED

    def fail(self, error: BaseException) -> Optional[float]:
        """
        Record a failed attempt.

        Returns:
            Seconds to wait before the next attempt, or None when the
            state moved to FAILED
        """
        self.last_error = error
        if not is_retryable(error) or self.attempts >= self.policy.max_attempts:
            self.phase = RetryPhase.FAILED
            return None
        delay = self.policy.delay(self.retries)
        self.retries += 1
        self.phase = RetryPhase.RETRYING
        return delay

    def __repr__(self) -> str:
        if self.phase is RetryPhase.RETRYING:
            return f"<RetryState retrying({self.retries})>"
        return f"<RetryState {self.phase.value} attempts={self.attempts}>"


def call_with_retry(
    fn: Callable[[], Any],
    policy: RetryPolicy,
    sleep: Callable[[float], Any] = time.sleep,
    state: Optional[RetryState] = None,
) -> Tuple[Any, RetryState]:
    """
    Run ``fn`` until it succeeds, fails permanently or runs out of attempts.

    Args:
        fn: Zero-argument callable performing one remote operation
        policy: Retry bounds and backoff
        sleep: Called with the backoff delay between attempts
        state: Existing state to continue (a fresh one by default)

    Returns:
        (result, state) on success

    Raises:
        The last exception once the state is FAILED. The state is
        attached to it as ``retry_state``.
    """
    state = state or RetryState(policy)
    while True:
        state.start_attempt()
        try:
            result = fn()
        except Exception as e:
            delay = state.fail(e)
            if delay is None:
                e.retry_state = state
                raise
            logger.debug(
                "Attempt %d/%d failed (%s), retrying in %.2fs",
                state.attempts,
                policy.max_attempts,
                e,
                delay,
            )
            sleep(delay)
            continue
        state.succeed()
        return result, state
