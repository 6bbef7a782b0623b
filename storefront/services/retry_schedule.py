import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from storefront.errors import GatewayUnavailable
from storefront.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry policy for gateway transport errors."""
    max_attempts: int = 3
    initial_delay_seconds: float = 0.5
    backoff_multiplier: float = 2.0
    max_delay_seconds: float = 4.0


def compute_backoff_delay(policy: RetryPolicy, attempt_index: int) -> float:
    """Compute the wait before the next attempt using exponential backoff with cap.

    Args:
        policy: Retry policy
        attempt_index: 0-based retry index (0 for first retry)

    Returns:
        Delay in seconds
    """
    delay = policy.initial_delay_seconds * (policy.backoff_multiplier ** attempt_index)
    return min(delay, policy.max_delay_seconds)


def call_with_retry(
    func: Callable[[], T],
    policy: RetryPolicy,
    sleep: Optional[Callable[[float], None]] = None,
    operation: str = "gateway_call",
) -> T:
    """
    Run `func`, retrying on a retryable GatewayUnavailable up to
    policy.max_attempts.

    Any other exception (GatewayRejected included) propagates immediately.
    The last GatewayUnavailable is re-raised once attempts are exhausted.
    """
    sleep = sleep or time.sleep
    attempts = max(1, policy.max_attempts)
    for attempt in range(attempts):
        try:
            return func()
        except GatewayUnavailable as exc:
            if not exc.retryable:
                logger.warning("gateway_retry_unsafe", operation=operation, attempt=attempt + 1, error=str(exc))
                raise
            if attempt + 1 >= attempts:
                logger.error("gateway_retries_exhausted", operation=operation, attempts=attempts, error=str(exc))
                raise
            delay = compute_backoff_delay(policy, attempt)
            logger.warning(
                "gateway_retry_scheduled",
                operation=operation,
                attempt=attempt + 1,
                delay_seconds=delay,
                error=str(exc),
            )
            sleep(delay)
    raise AssertionError("unreachable")
