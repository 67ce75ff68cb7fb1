"""
Pydantic Checkout Models

Request and response bodies for payment creation, checkout session
resolution, catalog lookup and gateway listing. JSON field names are
camelCase; Python attributes are snake_case.
"""
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .orders import OrderStatus


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Create payment (storefront buyers)
# ============================================================================

class CreatePaymentRequest(CamelModel):
    service_id: str = Field(min_length=1)
    order_id: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {"serviceId": "svc_web_audit", "orderId": "ORD-20251017-143500-7K2QZ"}
        }
    )


class CreatePaymentResponse(CamelModel):
    client_secret: str
    order_id: str
    checkout_token: Optional[str] = None
    amount: float
    service_name: str
    stripe_publishable_key: str


# ============================================================================
# Checkout session
# ============================================================================

class ServiceSummary(CamelModel):
    id: str
    title: str
    description: str = ""
    price: float
    slug: str
    icon: Optional[str] = None
    price_unit: Optional[str] = None


class CheckoutItem(CamelModel):
    """Free-text item for integrator orders that have no catalog service."""
    name: str
    description: str = ""
    price: float


class CheckoutSessionResponse(CamelModel):
    """
    Everything the checkout page needs to render and confirm a payment.

    Exactly one of `service` and `item` is set.
    """
    client_secret: Optional[str] = None
    order_id: str
    checkout_token: str
    status: OrderStatus
    amount: float
    quantity: int = 1
    service_name: str
    service_id: Optional[str] = None
    stripe_publishable_key: Optional[str] = None
    service: Optional[ServiceSummary] = None
    item: Optional[CheckoutItem] = None
    provider: Optional[str] = None
    success_redirect_url: Optional[str] = None
    cancel_redirect_url: Optional[str] = None


# ============================================================================
# Integrator checkout
# ============================================================================

class IntegratorCheckoutRequest(CamelModel):
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    item_name: str = Field(min_length=1, max_length=200)
    item_description: Optional[str] = None
    external_id: Optional[str] = None
    quantity: int = Field(default=1, ge=1)

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "amount": 150.00,
                "itemName": "Consulting hour",
                "itemDescription": "Remote session",
                "externalId": "inv_1042",
                "quantity": 1
            }
        }
    )


class IntegratorCheckoutResponse(CamelModel):
    order_id: str
    checkout_token: str
    checkout_url: str
    amount: float
    status: OrderStatus


# ============================================================================
# Catalog and gateways
# ============================================================================

class ServiceResponse(CamelModel):
    id: str
    title: str
    description: str = ""
    price: float
    price_unit: Optional[str] = None
    icon: Optional[str] = None
    slug: str
    features: List[str] = Field(default_factory=list)


class GatewaySummary(CamelModel):
    name: str
    display_name: str
    is_active: bool
    supported_methods: List[str]
    is_default: bool


class GatewayListResponse(CamelModel):
    default_gateway: str
    gateways: List[GatewaySummary]
