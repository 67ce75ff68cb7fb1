"""
Webhook Reconciler

Verifies signed processor events and applies them to the Order Ledger.

Processing order for one delivery:
1. Verify the signature against the platform secret, then every integrator
   secret; the first that validates wins.
2. Parse the body into a typed event.
3. Skip event ids already recorded in webhook_events.
4. Apply the handler, record the event id, commit once.
5. Dispatch integrator notifications in the background.

Handler failures roll back and surface as 500 so the processor redelivers;
every write is a conditional transition, so a redelivery is harmless.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional

import stripe
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import OrderModel, ProviderModel, ServiceModel, WebhookEventModel
from ..exceptions import (
    SignatureInvalidError,
    WebhookConfigurationError,
    EventPayloadError,
    StorefrontError,
    WebhookProcessingError,
)
from ..models.events import (
    parse_event,
    ProcessorEvent,
    PaymentIntentSucceededEvent,
    PaymentIntentFailedEvent,
    DisputeEvent,
)
from ..models.orders import NotificationEvent
from .encryption import CredentialVault
from .gateways.stripe_gateway import from_minor_units
from .notifier import IntegratorNotifier, PendingNotification, build_notification
from .order_service import get_order_by_payment_id, create_order_for_payment, transition_order, record_dispute
from .provider_service import list_provider_webhook_secrets

logger = logging.getLogger(__name__)

SIGNATURE_TOLERANCE_SECONDS = 300

# Processor dispute sub-states kept verbatim in disputeStatus
DISPUTE_STATUSES = frozenset({
    "warning_needs_response",
    "warning_under_review",
    "warning_closed",
    "needs_response",
    "under_review",
    "won",
    "lost",
    "prevented",
})

# Dispute sub-states that settle in the merchant's favor
DISPUTE_RESOLVED_FOR_MERCHANT = frozenset({"won", "warning_closed", "prevented"})

# No later sub-state follows these
DISPUTE_FINAL_STATUSES = DISPUTE_RESOLVED_FOR_MERCHANT | {"lost"}

NOTIFICATION_FOR_STATUS: Dict[str, NotificationEvent] = {
    "disputed": "payment_disputed",
    "paid": "dispute_won",
    "refunded": "payment_refunded",
}


@dataclass
class WebhookOutcome:
    event_id: str
    event_type: str
    duplicate: bool = False
    notifications: List[PendingNotification] = field(default_factory=list)


def dispute_order_status(dispute_status: str) -> str:
    """Top-level order status implied by a dispute sub-state."""
    if dispute_status in DISPUTE_RESOLVED_FOR_MERCHANT:
        return "paid"
    if dispute_status == "lost":
        return "refunded"
    return "disputed"


# ============================================================================
# Verification
# ============================================================================

async def collect_signing_secrets(
    db: AsyncSession,
    vault: CredentialVault,
    platform_secret: Optional[str]
) -> List[str]:
    """Platform secret first, then integrator secrets, without duplicates."""
    candidates = [platform_secret] if platform_secret else []
    candidates.extend(await list_provider_webhook_secrets(db, vault))
    return list(dict.fromkeys(candidates))


def verify_signature(
    payload: bytes,
    signature: Optional[str],
    signing_secrets: List[str],
    tolerance: int = SIGNATURE_TOLERANCE_SECONDS
) -> int:
    """
    Check a Stripe-Signature header against each secret in turn.

    Returns:
        Index of the secret that validated

    Raises:
        SignatureInvalidError: header missing or no secret validates
        WebhookConfigurationError: there are no secrets to try
    """
    if not signature:
        logger.error("No Stripe signature found in headers")
        raise SignatureInvalidError("No signature")
    if not signing_secrets:
        logger.error("No webhook signing secret is configured")
        raise WebhookConfigurationError()

    body = payload.decode("utf-8")
    for index, secret in enumerate(signing_secrets):
        try:
            stripe.WebhookSignature.verify_header(body, signature, secret, tolerance)
            return index
        except stripe.SignatureVerificationError:
            continue

    logger.error(f"Signature verification failed against {len(signing_secrets)} secret(s)")
    raise SignatureInvalidError()


def decode_event(payload: bytes) -> ProcessorEvent:
    try:
        body = json.loads(payload)
    except ValueError as e:
        raise EventPayloadError("Webhook body is not valid JSON") from e
    return parse_event(body)


# ============================================================================
# Handlers
# ============================================================================

async def _notification_for(
    db: AsyncSession,
    event: NotificationEvent,
    order: OrderModel
) -> Optional[PendingNotification]:
    if not order.provider_id:
        return None
    provider = await db.get(ProviderModel, order.provider_id)
    if provider is None:
        logger.warning(f"Order {order.id} references missing provider {order.provider_id}")
        return None
    service = await db.get(ServiceModel, order.service_id) if order.service_id else None
    return build_notification(event, order, provider, service)


async def handle_payment_succeeded(
    db: AsyncSession,
    event: PaymentIntentSucceededEvent
) -> List[PendingNotification]:
    """
    Mark the order paid, creating it from metadata if the ledger never saw it.

    A refunded or disputed order is never moved back to paid by this event.
    """
    intent = event.data.object
    metadata = intent.metadata
    order = await get_order_by_payment_id(db, intent.id)
    created = False
    changed = False

    if order is None:
        service_id = metadata.get("serviceId")
        if not service_id:
            logger.warning(f"No order for PaymentIntent {intent.id} and no serviceId in metadata; dropping")
            return []

        provider_id = metadata.get("providerId")
        if provider_id and await db.get(ProviderModel, provider_id) is None:
            logger.warning(f"PaymentIntent {intent.id} names unknown provider {provider_id}")
            provider_id = None

        order, created = await create_order_for_payment(
            db,
            intent.id,
            total=from_minor_units(intent.amount),
            status="paid",
            currency=intent.currency,
            service_id=service_id,
            provider_id=provider_id,
            external_id=metadata.get("externalId"),
        )
        if created:
            logger.info(f"Order {order.id} created for PaymentIntent {intent.id}")

    if not created:
        result = await transition_order(db, order, "paid", allowed_from={"pending", "failed"})
        changed = result.changed

    if not (created or changed):
        return []
    notification = await _notification_for(db, "payment_succeeded", order)
    return [notification] if notification else []


async def handle_payment_failed(
    db: AsyncSession,
    event: PaymentIntentFailedEvent
) -> List[PendingNotification]:
    """Mark a pending order failed; unknown payments are dropped."""
    intent = event.data.object
    order = await get_order_by_payment_id(db, intent.id)
    if order is None:
        logger.warning(f"No order for failed PaymentIntent {intent.id}; dropping")
        return []

    result = await transition_order(db, order, "failed", allowed_from={"pending"})
    if not result.changed:
        return []
    notification = await _notification_for(db, "payment_failed", order)
    return [notification] if notification else []


async def handle_dispute(db: AsyncSession, event: DisputeEvent) -> List[PendingNotification]:
    """
    Record dispute details and derive the order status from the dispute state.

    Dispute fields are persisted unless the event is stale. The status moves
    only along legal edges; a paid order whose dispute is reported lost
    passes through disputed on its way to refunded.

    Events arrive out of order: once a dispute is closed, an open sub-state
    for the same dispute is dropped.
    """
    dispute = event.data.object
    payment_id = dispute.payment_intent
    if not payment_id:
        logger.warning(f"Dispute {dispute.id} carries no payment_intent; dropping")
        return []

    order = await get_order_by_payment_id(db, payment_id)
    if order is None:
        logger.warning(f"No order found for disputed payment intent: {payment_id}")
        return []

    if (
        order.dispute_id == dispute.id
        and order.dispute_status in DISPUTE_FINAL_STATUSES
        and dispute.status not in DISPUTE_FINAL_STATUSES
    ):
        logger.warning(
            f"Dropping stale status {dispute.status!r} for dispute {dispute.id}; "
            f"already closed as {order.dispute_status!r}"
        )
        return []

    if dispute.status not in DISPUTE_STATUSES:
        logger.warning(f"Unrecognized dispute status {dispute.status!r} for dispute {dispute.id}")

    await record_dispute(
        db,
        order,
        dispute_id=dispute.id,
        dispute_status=dispute.status,
        dispute_amount=from_minor_units(dispute.amount),
        dispute_reason=dispute.reason,
    )

    target = dispute_order_status(dispute.status)
    start_status = order.status

    # A dispute proves the charge went through
    if order.status in ("pending", "failed"):
        await transition_order(db, order, "paid", allowed_from={"pending", "failed"})

    if target == "disputed":
        await transition_order(db, order, "disputed")
    elif target == "refunded":
        if order.status == "paid":
            await transition_order(db, order, "disputed")
        await transition_order(db, order, "refunded")
    elif order.status == "disputed":
        await transition_order(db, order, "paid", allowed_from={"disputed"})

    if order.status == start_status or order.status != target:
        return []
    logger.info(f"Order {order.id} dispute {dispute.id} -> {dispute.status}, status {start_status} -> {order.status}")
    notification = await _notification_for(db, NOTIFICATION_FOR_STATUS[target], order)
    return [notification] if notification else []


EventHandler = Callable[[AsyncSession, ProcessorEvent], Awaitable[List[PendingNotification]]]

EVENT_HANDLERS: Dict[str, EventHandler] = {
    "payment_intent.succeeded": handle_payment_succeeded,
    "payment_intent.payment_failed": handle_payment_failed,
    "charge.dispute.created": handle_dispute,
    "charge.dispute.updated": handle_dispute,
    "charge.dispute.closed": handle_dispute,
}


# ============================================================================
# Entry point
# ============================================================================

async def apply_event(db: AsyncSession, event: ProcessorEvent) -> WebhookOutcome:
    """
    Apply one verified event exactly once per event id.

    Returns:
        WebhookOutcome; notifications are only returned after a successful commit

    Raises:
        WebhookProcessingError: the handler failed (changes rolled back)
    """
    outcome = WebhookOutcome(event_id=event.id, event_type=event.type)

    if await db.get(WebhookEventModel, event.id) is not None:
        logger.info(f"Event {event.id} ({event.type}) already processed; acknowledging")
        outcome.duplicate = True
        return outcome

    handler = EVENT_HANDLERS.get(event.type)
    try:
        if handler is None:
            logger.info(f"Unhandled event type: {event.type}")
            notifications: List[PendingNotification] = []
        else:
            notifications = await handler(db, event)
        db.add(WebhookEventModel(event_id=event.id, event_type=event.type))
        await db.commit()
    except IntegrityError:
        # A concurrent delivery of the same event committed first
        await db.rollback()
        if await db.get(WebhookEventModel, event.id) is None:
            logger.error(f"Integrity error applying event {event.id} ({event.type})", exc_info=True)
            raise WebhookProcessingError(event.id, event.type)
        logger.info(f"Event {event.id} applied concurrently; acknowledging")
        outcome.duplicate = True
        return outcome
    except StorefrontError:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Error processing webhook {event.id} ({event.type}): {e}", exc_info=True)
        raise WebhookProcessingError(event.id, event.type) from e

    outcome.notifications = notifications
    return outcome


async def process_webhook(
    db: AsyncSession,
    vault: CredentialVault,
    notifier: IntegratorNotifier,
    payload: bytes,
    signature: Optional[str],
    platform_secret: Optional[str]
) -> WebhookOutcome:
    """
    Verify, apply and fan out one inbound processor webhook.

    Args:
        db: Database session
        vault: Credential vault for integrator signing secrets
        notifier: Integrator notifier (deliveries run in the background)
        payload: Raw request body exactly as received
        signature: Stripe-Signature header value
        platform_secret: Platform webhook signing secret

    Returns:
        WebhookOutcome

    Raises:
        SignatureInvalidError: 400, nothing is processed
        WebhookConfigurationError: 500, no secrets configured
        EventPayloadError: 400, verified body has the wrong shape
        WebhookProcessingError: 500, handler failed and the processor should retry
    """
    signing_secrets = await collect_signing_secrets(db, vault, platform_secret)
    verify_signature(payload, signature, signing_secrets)

    event = decode_event(payload)
    logger.info(f"Webhook event {event.id}: {event.type}")

    outcome = await apply_event(db, event)
    for notification in outcome.notifications:
        notifier.dispatch(notification)
    return outcome
