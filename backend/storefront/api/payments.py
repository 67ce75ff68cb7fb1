"""
Payments API Endpoints

Payment creation for storefront buyers, checkout session resolution by
opaque token, and checkout creation for integrators.

Errors raised by the services are StorefrontError subclasses and are turned
into `{error, errorCode}` bodies by the application exception handler.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ..config import Settings
from ..db.init_db import get_db
from ..dependencies import get_registry, get_vault, get_settings
from ..exceptions import ProviderAuthenticationError
from ..models.checkout import (
    CreatePaymentRequest,
    CreatePaymentResponse,
    CheckoutSessionResponse,
    IntegratorCheckoutRequest,
    IntegratorCheckoutResponse,
)
from ..services.checkout_session import resolve_checkout_session
from ..services.encryption import CredentialVault
from ..services.gateways.registry import GatewayRegistry
from ..services.payment_service import create_service_payment, create_integrator_checkout
from ..services.provider_service import get_provider_by_api_key

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/create-payment-intent", response_model=CreatePaymentResponse)
async def create_payment_intent_endpoint(
    request: CreatePaymentRequest,
    db: AsyncSession = Depends(get_db),
    registry: GatewayRegistry = Depends(get_registry)
) -> CreatePaymentResponse:
    """
    Start a Cash App payment for a catalog service.

    Request Body:
        {"serviceId": "...", "orderId": "ORD-..." (optional)}

    Returns:
        clientSecret, orderId, checkoutToken, amount, serviceName, stripePublishableKey

    Errors:
        400 CASHAPP_UNAVAILABLE when the processor account cannot offer Cash App Pay
        404 unknown service, 500 processor failure
    """
    logger.info(f"Creating payment for service {request.service_id}")
    return await create_service_payment(db, registry, request.service_id, request.order_id)


@router.get(
    "/checkout-session/{token}",
    response_model=CheckoutSessionResponse,
    response_model_exclude_none=True
)
async def get_checkout_session_endpoint(
    token: str,
    db: AsyncSession = Depends(get_db),
    registry: GatewayRegistry = Depends(get_registry),
    vault: CredentialVault = Depends(get_vault)
) -> CheckoutSessionResponse:
    """
    Resolve an opaque checkout token to the full session.

    Errors:
        400 malformed token, 404 unknown token, 500 processor retrieval failure
    """
    return await resolve_checkout_session(db, registry, vault, token)


@router.post("/v1/checkout", response_model=IntegratorCheckoutResponse, status_code=201)
async def create_integrator_checkout_endpoint(
    request: IntegratorCheckoutRequest,
    x_api_key: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db),
    registry: GatewayRegistry = Depends(get_registry),
    vault: CredentialVault = Depends(get_vault),
    app_settings: Settings = Depends(get_settings)
) -> IntegratorCheckoutResponse:
    """
    Create a checkout on behalf of an integrator.

    Headers:
        X-API-Key: integrator API key

    Returns:
        orderId, checkoutToken, checkoutUrl, amount, status
    """
    provider = await get_provider_by_api_key(db, x_api_key or "")
    if provider is None:
        raise ProviderAuthenticationError()

    return await create_integrator_checkout(
        db, registry, vault, provider, request, app_settings.public_base_url
    )
