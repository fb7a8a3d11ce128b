"""
Retry Controller for the notification scheduler.

Pure decision logic for one attempt outcome:
- Success → SENT (terminal)
- Failure with retries remaining → RETRIED, retry_count + 1, re-arm
- Failure at the retry ceiling → FAILED (terminal)

Backoff calculation:
    delay = base_delay * (2 ^ retry_count)
    With a 1000ms base: 1000ms → 2000ms → 4000ms

What RetryController MUST NOT do:
- Touch the Status Store, Delay Queue or Broadcast Bus
- Count queue-level redeliveries as retries
"""

from dataclasses import dataclass
from typing import Optional

from .entities import MAX_RETRIES, NotificationStatus
from .errors import InvalidOperationError


DEFAULT_BASE_DELAY_MS = 1000


@dataclass(frozen=True)
class RetryDecision:
    """Outcome of the retry state machine for one attempt."""

    next_status: NotificationStatus
    next_retry_count: int
    re_arm: bool
    delay_ms: Optional[int] = None


def backoff_ms(retry_count: int, base_delay_ms: int = DEFAULT_BASE_DELAY_MS) -> int:
    """
    Calculate exponential backoff delay for the retry that follows an
    attempt made with retry_count retries already used.

    No jitter and no cap; the retry ceiling bounds the largest delay.
    """
    if retry_count < 0:
        raise InvalidOperationError(f"retry_count cannot be negative (got {retry_count})")
    return base_delay_ms * (2 ** retry_count)


def decide(
    success: bool,
    retry_count: int,
    max_retries: int = MAX_RETRIES,
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
) -> RetryDecision:
    """
    Decide the next status after an attempt.

    Args:
        success: Whether the send succeeded
        retry_count: Authoritative retry count read before the attempt
        max_retries: Retry ceiling
        base_delay_ms: Backoff base for re-armed retries

    Raises:
        InvalidOperationError: If retry_count is outside 0..max_retries
    """
    if retry_count < 0 or retry_count > max_retries:
        raise InvalidOperationError(
            f"retry_count {retry_count} is outside 0..{max_retries}"
        )

    if success:
        return RetryDecision(
            next_status=NotificationStatus.SENT,
            next_retry_count=retry_count,
            re_arm=False,
        )

    if retry_count < max_retries:
        return RetryDecision(
            next_status=NotificationStatus.RETRIED,
            next_retry_count=retry_count + 1,
            re_arm=True,
            delay_ms=backoff_ms(retry_count, base_delay_ms),
        )

    return RetryDecision(
        next_status=NotificationStatus.FAILED,
        next_retry_count=retry_count,
        re_arm=False,
    )


class RetryController:
    """Carries the configured retry ceiling and backoff base."""

    def __init__(
        self,
        max_retries: int = MAX_RETRIES,
        base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
    ):
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms

    def decide(self, success: bool, retry_count: int) -> RetryDecision:
        return decide(
            success,
            retry_count,
            max_retries=self.max_retries,
            base_delay_ms=self.base_delay_ms,
        )

    def backoff_ms(self, retry_count: int) -> int:
        return backoff_ms(retry_count, self.base_delay_ms)

    def is_max_retries_reached(self, retry_count: int) -> bool:
        return retry_count >= self.max_retries
