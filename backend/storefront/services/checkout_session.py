"""
Checkout Session Resolver

Turns an opaque checkout token into everything the checkout page needs, and
re-synchronizes the order against the processor's live status on every read.

The fallback sync exists because webhook delivery is not guaranteed to land
before the buyer's next page load. A failed fallback write never fails the
read; the status from the fresh processor read is returned regardless.
"""
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import OrderModel, ProviderModel, ServiceModel
from ..exceptions import InvalidCheckoutTokenError, CheckoutSessionNotFoundError, GatewayNotImplementedError
from ..models.checkout import CheckoutSessionResponse, ServiceSummary, CheckoutItem
from .checkout_token import is_valid_checkout_token
from .encryption import CredentialVault
from .gateways.base import PaymentStatus
from .gateways.registry import GatewayRegistry
from .order_service import get_order_by_token, transition_order
from .provider_service import get_provider_credentials, build_redirect_url

logger = logging.getLogger(__name__)


def fallback_target(ledger_status: str, processor_status: PaymentStatus) -> Optional[str]:
    """
    Status the ledger should move to given a fresh processor read.

    Returns:
        "paid", "failed" or None when the ledger needs no correction
    """
    if processor_status == "succeeded" and ledger_status in ("pending", "failed"):
        return "paid"
    if processor_status == "canceled" and ledger_status == "pending":
        return "failed"
    return None


async def _sync_order_status(db: AsyncSession, order: OrderModel, processor_status: PaymentStatus) -> str:
    """Apply the fallback correction and return the effective status."""
    ledger_status = order.status
    target = fallback_target(ledger_status, processor_status)
    if target is None:
        return ledger_status

    order_id = order.id
    try:
        result = await transition_order(db, order, target, allowed_from={ledger_status})
        await db.commit()
    except SQLAlchemyError as e:
        logger.warning(
            f"Fallback sync for order {order_id} ({ledger_status} -> {target}) failed: {e}",
            exc_info=True
        )
        await db.rollback()
        return target

    if result.changed:
        logger.info(f"Fallback sync moved order {order_id} {ledger_status} -> {target}")
        return target
    # Another writer got there first; report what is stored now
    return result.order.status


async def resolve_checkout_session(
    db: AsyncSession,
    registry: GatewayRegistry,
    vault: CredentialVault,
    token: str
) -> CheckoutSessionResponse:
    """
    Resolve a checkout token to the full session payload.

    Args:
        db: Database session
        registry: Gateway registry
        vault: Credential vault for integrator-owned processor accounts
        token: Opaque checkout token from the URL

    Returns:
        CheckoutSessionResponse with the effective (reconciled) status

    Raises:
        InvalidCheckoutTokenError: token is not 32 lowercase hex characters
        CheckoutSessionNotFoundError: no order carries this token
        ProcessorError: the live payment could not be retrieved
    """
    if not is_valid_checkout_token(token):
        raise InvalidCheckoutTokenError()

    order = await get_order_by_token(db, token)
    if order is None:
        logger.info("Checkout token not found")
        raise CheckoutSessionNotFoundError()

    service = await db.get(ServiceModel, order.service_id) if order.service_id else None
    provider = await db.get(ProviderModel, order.provider_id) if order.provider_id else None

    gateway = registry.for_provider(provider.payment_gateway if provider else None)
    credentials = get_provider_credentials(vault, provider)

    try:
        publishable_key = gateway.get_publishable_key(credentials) or None
    except GatewayNotImplementedError:
        publishable_key = None

    # Everything below is read before the fallback write, which may roll back
    amount = float(order.total)
    if service is not None:
        display_name = service.title
        service_summary = ServiceSummary(
            id=service.id,
            title=service.title,
            description=service.description or "",
            price=amount,
            slug=service.slug,
            icon=service.icon,
            price_unit=service.price_unit,
        )
        item = None
    else:
        display_name = order.item_name or "Payment"
        service_summary = None
        item = CheckoutItem(name=display_name, description=order.item_description or "", price=amount)

    session = CheckoutSessionResponse(
        order_id=order.id,
        checkout_token=token,
        status=order.status,
        amount=amount,
        quantity=order.quantity or 1,
        service_name=display_name,
        service_id=service.id if service is not None else None,
        stripe_publishable_key=publishable_key,
        service=service_summary,
        item=item,
        provider=provider.name if provider else None,
        success_redirect_url=build_redirect_url(provider.success_redirect_url, order.id) if provider else None,
        cancel_redirect_url=build_redirect_url(provider.cancel_redirect_url, order.id) if provider else None,
    )

    if order.stripe_payment_intent_id:
        payment = await gateway.retrieve_payment(order.stripe_payment_intent_id, credentials)
        session.client_secret = payment.client_secret
        session.status = await _sync_order_status(db, order, payment.status)

    return session
