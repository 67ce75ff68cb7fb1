"""
Payment Creation Service

Starts payments for storefront buyers (catalog services) and for integrators
(free-text items), recording a pending order for each one.
"""
import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import ServiceModel, ProviderModel
from ..exceptions import ServiceNotFoundError, InvalidRequestError, ProviderAuthenticationError
from ..models.checkout import CreatePaymentResponse, IntegratorCheckoutRequest, IntegratorCheckoutResponse
from .encryption import CredentialVault
from .gateways.registry import GatewayRegistry
from .order_generator import generate_order_id
from .order_service import create_order, get_order_by_order_number
from .provider_service import get_provider_credentials, touch_provider

logger = logging.getLogger(__name__)


async def get_service(db: AsyncSession, id_or_slug: str) -> Optional[ServiceModel]:
    """Catalog lookup by id, then by slug."""
    result = await db.execute(
        select(ServiceModel).where(or_(ServiceModel.id == id_or_slug, ServiceModel.slug == id_or_slug))
    )
    services = result.scalars().all()
    for service in services:
        if service.id == id_or_slug:
            return service
    return services[0] if services else None


# ============================================================================
# Storefront purchases
# ============================================================================

async def create_service_payment(
    db: AsyncSession,
    registry: GatewayRegistry,
    service_id: str,
    order_number: Optional[str] = None
) -> CreatePaymentResponse:
    """
    Create a payment for a catalog service and pre-create its pending order.

    The order number doubles as the processor idempotency key, so a client
    retrying with the same orderId gets the same payment back and the same
    order row is reused.

    Args:
        db: Database session
        registry: Gateway registry (platform default gateway is used)
        service_id: Catalog service id
        order_number: Client-generated ORD-... number, generated if omitted

    Raises:
        ServiceNotFoundError: unknown service
        InvalidRequestError: order number belongs to a finished order
        CredentialValidationError: platform keys mix test and live mode
        CashAppUnavailableError / ProcessorError: from the gateway
    """
    service = await db.get(ServiceModel, service_id)
    if service is None:
        raise ServiceNotFoundError()

    order_number = order_number or generate_order_id()
    existing = await get_order_by_order_number(db, order_number)
    if existing is not None and (existing.status != "pending" or existing.service_id != service.id):
        raise InvalidRequestError("Order has already been processed")

    gateway = registry.default()
    gateway.check_credentials()
    payment = await gateway.create_payment(
        amount=service.price,
        currency="usd",
        description=service.title,
        metadata={
            "serviceId": service.id,
            "orderId": order_number,
            "serviceName": service.title,
        },
        idempotency_key=f"create-payment-{order_number}",
    )

    amount = float(service.price)
    service_title = service.title

    checkout_token = None
    try:
        if existing is not None:
            if not existing.stripe_payment_intent_id:
                existing.stripe_payment_intent_id = payment.payment_id
            order = existing
        else:
            order = await create_order(
                db,
                total=service.price,
                order_number=order_number,
                stripe_payment_intent_id=payment.payment_id,
                service_id=service.id,
            )
        checkout_token = order.checkout_token
        await db.commit()
    except SQLAlchemyError as e:
        # The webhook creates the order from payment metadata if this is lost
        logger.error(f"Error creating pending order {order_number}: {e}", exc_info=True)
        await db.rollback()
        checkout_token = None

    return CreatePaymentResponse(
        client_secret=payment.client_secret,
        order_id=order_number,
        checkout_token=checkout_token,
        amount=amount,
        service_name=service_title,
        stripe_publishable_key=gateway.get_publishable_key(),
    )


# ============================================================================
# Integrator checkouts
# ============================================================================

async def create_integrator_checkout(
    db: AsyncSession,
    registry: GatewayRegistry,
    vault: CredentialVault,
    provider: ProviderModel,
    request: IntegratorCheckoutRequest,
    public_base_url: str
) -> IntegratorCheckoutResponse:
    """
    Create a payment on an integrator's behalf and return a shareable checkout link.

    The pending order is written first so its id can key the processor
    idempotency and metadata; if the processor call fails nothing is kept.

    Raises:
        ProviderAuthenticationError: integrator is inactive
        UnknownGatewayError / GatewayNotImplementedError: integrator gateway unusable
        CredentialValidationError: the effective key pair mixes test and live mode
        CashAppUnavailableError / ProcessorError: from the gateway
    """
    if provider.status != "active":
        raise ProviderAuthenticationError("Provider is inactive")

    gateway = registry.for_provider(provider.payment_gateway)
    credentials = get_provider_credentials(vault, provider)
    gateway.check_credentials(credentials)
    total = Decimal(str(request.amount))

    order = await create_order(
        db,
        total=total,
        quantity=request.quantity,
        external_id=request.external_id,
        provider_id=provider.id,
        item_name=request.item_name,
        item_description=request.item_description,
    )

    metadata = {"orderId": order.id, "providerId": provider.id, "itemName": request.item_name}
    if request.external_id:
        metadata["externalId"] = request.external_id

    try:
        payment = await gateway.create_payment(
            amount=total,
            currency="usd",
            description=request.item_name,
            metadata=metadata,
            idempotency_key=f"order-{order.id}",
            credentials=credentials,
        )
    except Exception:
        await db.rollback()
        raise

    order.stripe_payment_intent_id = payment.payment_id
    await touch_provider(db, provider)

    response = IntegratorCheckoutResponse(
        order_id=order.id,
        checkout_token=order.checkout_token,
        checkout_url=f"{public_base_url.rstrip('/')}/checkout/o/{order.checkout_token}",
        amount=float(total),
        status="pending",
    )
    await db.commit()

    logger.info(f"Integrator checkout created: provider={provider.id}, order={order.id}")
    return response
