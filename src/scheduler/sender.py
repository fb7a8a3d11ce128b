"""
Notification senders.

The worker only depends on send(recipient, content) -> bool. Latency and
failure behavior belong to the sender, not to the retry logic.

- SimulatedSender: bounded random latency and a fixed failure probability
- WebhookSender: HTTP POST to a delivery endpoint, 2xx means sent
"""

import logging
import random
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

import httpx


logger = logging.getLogger(__name__)


DEFAULT_FAILURE_RATE = 0.1
DEFAULT_MIN_LATENCY_SECONDS = 0.1
DEFAULT_MAX_LATENCY_SECONDS = 0.6
WEBHOOK_TIMEOUT_SECONDS = 10


class NotificationSender(ABC):
    """Delivers one notification and reports success or failure."""

    @abstractmethod
    def send(self, recipient: str, content: str) -> bool:
        """
        Attempt delivery.

        Returns:
            True if delivered, False on a (retryable) delivery failure
        """
        ...


class SimulatedSender(NotificationSender):
    """
    Sender that only pretends to deliver.

    Sleeps 100-600ms and fails with probability failure_rate.
    """

    def __init__(
        self,
        failure_rate: float = DEFAULT_FAILURE_RATE,
        min_latency: float = DEFAULT_MIN_LATENCY_SECONDS,
        max_latency: float = DEFAULT_MAX_LATENCY_SECONDS,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError(f"failure_rate must be within 0..1 (got {failure_rate})")
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        self._rng = rng or random.Random()
        self._sleep = sleep

    def send(self, recipient: str, content: str) -> bool:
        self._sleep(self._rng.uniform(self.min_latency, self.max_latency))

        success = self._rng.random() >= self.failure_rate

        if success:
            logger.info(
                f"[SIMULATED SEND] Successfully sent message to {recipient}: "
                f"\"{content[:50]}...\""
            )
        else:
            logger.warning(
                f"[SIMULATED SEND] Failed to send message to {recipient}. "
                "Simulating network error."
            )
        return success


class WebhookSender(NotificationSender):
    """Delivers by POSTing the notification to an HTTP endpoint."""

    def __init__(
        self,
        url: str,
        timeout: float = WEBHOOK_TIMEOUT_SECONDS,
        client: Optional[httpx.Client] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    def send(self, recipient: str, content: str) -> bool:
        try:
            response = self._client.post(
                self.url,
                json={"recipientEmail": recipient, "message": content},
                headers={
                    "Content-Type": "application/json",
                    "User-Agent": "EventNotificationScheduler/1.0",
                },
            )
        except httpx.TimeoutException:
            logger.warning(f"Webhook delivery to {recipient} timed out after {self.timeout}s")
            return False
        except httpx.RequestError as e:
            logger.warning(f"Webhook delivery to {recipient} failed: {e}")
            return False

        if 200 <= response.status_code < 300:
            logger.info(f"Webhook delivered message to {recipient} (status={response.status_code})")
            return True

        logger.warning(
            f"Webhook delivery to {recipient} rejected: "
            f"HTTP {response.status_code}: {response.text[:200]}"
        )
        return False

    def close(self) -> None:
        self._client.close()


def create_sender(
    webhook_url: Optional[str] = None,
    failure_rate: float = DEFAULT_FAILURE_RATE,
) -> NotificationSender:
    """WebhookSender when a delivery URL is configured, else SimulatedSender."""
    if webhook_url:
        logger.info(f"Delivering notifications via webhook {webhook_url}")
        return WebhookSender(webhook_url)

    logger.info(f"Using simulated sender (failure rate {failure_rate})")
    return SimulatedSender(failure_rate=failure_rate)
