"""
Integrator Notifier

Delivers order outcome webhooks to integrators, at least once and best
effort. Delivery runs as a detached asyncio task so the processor webhook
response is never held up by a slow or failing integrator.

Retry policy: up to `max_attempts` POSTs; attempt 1 is immediate and attempt
n waits base_delay * 2**(n-2) seconds (0, 1, 2, 4, 8 with the defaults).
Any non-2xx response or network error is a failed attempt. After the last
attempt, or once `deadline` seconds have passed in total, the failure is
logged and dropped.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Any, Optional, Set

import httpx

from ..config import Settings
from ..db.models import OrderModel, ProviderModel, ServiceModel
from ..models.orders import IntegratorNotification, NotificationEvent

logger = logging.getLogger(__name__)

NOTIFICATION_HEADER = "X-Storefront-Webhook"
NOTIFICATION_HEADER_VALUE = "payment-notification"


@dataclass
class PendingNotification:
    """A notification decided inside a transaction, sent after commit."""
    url: str
    provider_name: str
    payload: IntegratorNotification


def build_notification(
    event: NotificationEvent,
    order: OrderModel,
    provider: ProviderModel,
    service: Optional[ServiceModel] = None
) -> Optional[PendingNotification]:
    """
    Snapshot an order into a notification for its integrator.

    Returns:
        None if the integrator has no webhook URL
    """
    if not provider.webhook_url:
        return None

    if service is not None:
        service_name = service.title
    else:
        service_name = order.item_name or "Unknown Service"

    payload = IntegratorNotification(
        event=event,
        order_id=order.id,
        external_id=order.external_id,
        provider_id=provider.id,
        provider_name=provider.name,
        service_id=order.service_id,
        service_name=service_name,
        amount=float(order.total),
        status=order.status,
        stripe_payment_intent_id=order.stripe_payment_intent_id,
        timestamp=datetime.now(timezone.utc),
    )
    return PendingNotification(url=provider.webhook_url, provider_name=provider.name, payload=payload)


class IntegratorNotifier:
    """
    Sends integrator notifications with exponential backoff.

    Args:
        client: Shared httpx.AsyncClient (one is created if omitted)
        max_attempts: Total POST attempts per notification
        base_delay: Delay before attempt 2, doubled for each later attempt
        request_timeout: Timeout for each POST
        deadline: Budget for all attempts and backoff of one notification
        sleep: Awaitable sleep (replaced in tests)
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        max_attempts: int = 5,
        base_delay: float = 1.0,
        request_timeout: float = 2.0,
        deadline: Optional[float] = 20.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self._client = client or httpx.AsyncClient(timeout=request_timeout)
        self._owns_client = client is None
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.deadline = deadline
        self._sleep = sleep
        self._tasks: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: Settings) -> "IntegratorNotifier":
        return cls(
            max_attempts=settings.notifier_max_attempts,
            base_delay=settings.notifier_base_delay_seconds,
            request_timeout=settings.notifier_request_timeout_seconds,
            deadline=settings.notifier_deadline_seconds,
        )

    def delay_before(self, attempt: int) -> float:
        """Seconds to wait before the 1-based `attempt`."""
        if attempt <= 1:
            return 0.0
        return self.base_delay * (2 ** (attempt - 2))

    async def deliver(self, notification: PendingNotification) -> bool:
        """
        POST one notification, retrying per policy.

        Returns:
            True if some attempt got a 2xx response. Never raises for
            delivery failures.
        """
        try:
            return await asyncio.wait_for(self._deliver_with_retries(notification), timeout=self.deadline)
        except asyncio.TimeoutError:
            logger.error(
                f"Failed to notify provider {notification.provider_name} within {self.deadline}s "
                f"for order {notification.payload.order_id}; notification dropped"
            )
            return False

    async def _deliver_with_retries(self, notification: PendingNotification) -> bool:
        body: Dict[str, Any] = notification.payload.model_dump(mode="json", by_alias=True)
        order_id = notification.payload.order_id
        headers = {
            "Content-Type": "application/json",
            NOTIFICATION_HEADER: NOTIFICATION_HEADER_VALUE,
        }

        for attempt in range(1, self.max_attempts + 1):
            delay = self.delay_before(attempt)
            if delay:
                logger.info(
                    f"Retry attempt {attempt}/{self.max_attempts} for provider "
                    f"{notification.provider_name} in {delay}s"
                )
                await self._sleep(delay)

            try:
                response = await self._client.post(notification.url, json=body, headers=headers)
            except httpx.HTTPError as e:
                logger.warning(
                    f"Error notifying provider {notification.provider_name} "
                    f"(attempt {attempt}/{self.max_attempts}): {type(e).__name__}: {e}"
                )
                continue

            if response.is_success:
                logger.info(
                    f"Provider {notification.provider_name} notified of "
                    f"{notification.payload.event} for order {order_id}"
                )
                return True

            logger.warning(
                f"Failed to notify provider {notification.provider_name} "
                f"(attempt {attempt}/{self.max_attempts}): HTTP {response.status_code}"
            )

        logger.error(
            f"Failed to notify provider {notification.provider_name} after "
            f"{self.max_attempts} attempts for order {order_id}; notification dropped"
        )
        return False

    def dispatch(self, notification: PendingNotification) -> asyncio.Task:
        """Start delivery in the background and return the task."""
        task = asyncio.create_task(self.deliver(notification))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every dispatched delivery to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Finish in-flight deliveries, then close the HTTP client if owned."""
        await self.drain()
        if self._owns_client:
            await self._client.aclose()
